"""
Item availability checks.

An item is committed while it sits in a pending or accepted offer. These
checks keep one item from being promised in two places at once.

Cross-user conflicts on the wanted side are only detected through the
primary offered slot of other users' offers. Items that another user
offers as an *additional* bundle item are not found by that search.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from liquidswap.models.offer import Offer, OfferStatus, COMMITTED_STATUSES
from liquidswap.services.offer_store import OfferStore, SENDER, OFFERED, WANTED

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityResult:
    all_available: bool = True
    busy_offered: List[str] = field(default_factory=list)
    busy_wanted: List[str] = field(default_factory=list)
    duplicate_exists: bool = False


class ItemAvailabilityChecker:
    """Detects items that are already committed to other offers."""

    def __init__(self, store: OfferStore):
        self.store = store

    async def check_availability(
        self,
        offered_ids: Sequence[str],
        wanted_ids: Sequence[str],
        acting_user_id: str,
        exclude_offer_ids: Iterable[str] = (),
    ) -> AvailabilityResult:
        """
        Check a proposed exchange against the acting user's committed offers
        and against other users' committed offers.

        Args:
            offered_ids: Items the acting user would give, primary first
            wanted_ids: Items the acting user would receive, primary first
            acting_user_id: The user proposing the exchange
            exclude_offer_ids: Offers to leave out of the conflict search

        Returns:
            AvailabilityResult. When the store cannot be read the result
            reports everything as available.
        """
        excluded = set(exclude_offer_ids)
        try:
            own_offers = [
                offer for offer in await self.store.find_by_participant(
                    acting_user_id, statuses=COMMITTED_STATUSES, role=SENDER
                )
                if offer.id not in excluded
            ]

            committed_offered = set()
            for offer in own_offers:
                committed_offered.update(offer.all_offered_ids)
            busy_offered = _dedupe(item_id for item_id in offered_ids if item_id in committed_offered)

            duplicate_exists = False
            if offered_ids and wanted_ids:
                primary_pair = (offered_ids[0], wanted_ids[0])
                duplicate_exists = any(
                    (offer.offered_item_id, offer.wanted_item_id) == primary_pair
                    for offer in own_offers
                )

            promised_elsewhere = await self.store.find_by_item_role(
                wanted_ids, OFFERED, statuses=COMMITTED_STATUSES
            )
            promised_ids = {
                offer.offered_item_id for offer in promised_elsewhere
                if offer.id not in excluded
            }
            busy_wanted = _dedupe(item_id for item_id in wanted_ids if item_id in promised_ids)

        except SQLAlchemyError:
            logger.exception(f"Availability check failed for user {acting_user_id}, allowing trade")
            return AvailabilityResult()

        return AvailabilityResult(
            all_available=not busy_offered and not busy_wanted and not duplicate_exists,
            busy_offered=busy_offered,
            busy_wanted=busy_wanted,
            duplicate_exists=duplicate_exists,
        )

    async def accepted_conflicts(self, offer: Offer) -> Tuple[List[str], List[str]]:
        """
        Items of ``offer`` that already belong to another accepted offer.

        Every item is owned by one of the two participants, so searching
        their accepted offers covers bundle items as well. Storage only
        guarantees that a primary wanted item is accepted once; bundle
        items rely on this check and can still race.

        Returns:
            (busy offered ids, busy wanted ids); both empty when the store
            cannot be read
        """
        try:
            accepted: dict[str, Offer] = {}
            for user_id in (offer.sender_id, offer.receiver_id):
                for other in await self.store.find_by_participant(
                    user_id, statuses=[OfferStatus.ACCEPTED]
                ):
                    if other.id != offer.id:
                        accepted[other.id] = other
        except SQLAlchemyError:
            logger.exception(f"Accept-time availability check failed for offer {offer.id}, allowing accept")
            return [], []

        taken = set()
        for other in accepted.values():
            taken.update(other.all_item_ids)

        busy_offered = _dedupe(item_id for item_id in offer.all_offered_ids if item_id in taken)
        busy_wanted = _dedupe(item_id for item_id in offer.all_wanted_ids if item_id in taken)
        return busy_offered, busy_wanted

    async def is_item_busy(self, item_id: str) -> bool:
        """
        True when the item is the primary offered item of a committed offer
        or the primary wanted item of an accepted offer.

        Returns False when the store cannot be read.
        """
        try:
            if await self.store.find_by_item_role([item_id], OFFERED, statuses=COMMITTED_STATUSES):
                return True
            return bool(
                await self.store.find_by_item_role([item_id], WANTED, statuses=[OfferStatus.ACCEPTED])
            )
        except SQLAlchemyError:
            logger.exception(f"Busy check failed for item {item_id}, reporting available")
            return False


def _dedupe(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(ids))
