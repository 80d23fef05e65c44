"""
Trade offer negotiation engine.

Owns the offer lifecycle: creation, answers, counter-offers, cancellation
and two-phase completion. Every operation takes ids only and re-reads the
offer before checking its preconditions; status writes go through the
store's guarded updates.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from liquidswap.config import Settings, get_settings
from liquidswap.core.errors import (
    Blocked,
    DuplicateOffer,
    InvalidItems,
    ItemsBusy,
    NotLoggedIn,
    NotOfferReceiver,
    NotOriginalReceiver,
    NotParticipant,
    OfferNotCancellable,
    OfferNotFound,
    OfferNotPending,
    OriginalTradeInvalidStatus,
    RateLimited,
)
from liquidswap.core.events import EventBus
from liquidswap.core.rate_limiter import RateLimitAction, RateLimiter
from liquidswap.models.item import Item
from liquidswap.models.offer import Offer, OfferStatus
from liquidswap.services.availability import AvailabilityResult, ItemAvailabilityChecker
from liquidswap.services.change_feed import OfferViews
from liquidswap.services.directories import ItemDirectory, ProfileDirectory
from liquidswap.services.hydration import HydratedOffer, OfferHydrator, ProfileCache
from liquidswap.services.notifications import NotificationDispatcher
from liquidswap.services.offer_store import OfferStore, SENDER, RECEIVER

logger = logging.getLogger(__name__)

TRADE_COMPLETED_EVENT = "trade_completed"


class CompletionResult(str, Enum):
    """Outcome of a completion confirmation."""
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    TRADE_COMPLETED = "trade_completed"
    TRADE_NOT_ACCEPTED = "trade_not_accepted"
    NOT_PARTICIPANT = "not_participant"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class CompletionStatus:
    user_confirmed: bool
    partner_confirmed: bool
    is_complete: bool


class NegotiationEngine:
    """
    Negotiation engine bound to one database session.

    Built per request (or per session) with the application's shared rate
    limiter, event bus and notification dispatcher.
    """

    def __init__(
        self,
        db: AsyncSession,
        rate_limiter: RateLimiter,
        event_bus: Optional[EventBus] = None,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
        profile_cache: Optional[ProfileCache] = None,
    ):
        self.db = db
        self.rate_limiter = rate_limiter
        self.event_bus = event_bus
        self.notifier = notifier
        self.settings = settings or get_settings()

        self.store = OfferStore(db, event_bus)
        self.items = ItemDirectory(db)
        self.profiles = ProfileDirectory(db)
        self.availability = ItemAvailabilityChecker(self.store)
        if profile_cache is None:
            profile_cache = ProfileCache(self.settings.PROFILE_CACHE_SIZE)
        self.hydrator = OfferHydrator(self.items, self.profiles, profile_cache)

    # ------------------------------------------------------------------
    # Offer creation and answers
    # ------------------------------------------------------------------

    async def create_offer(
        self,
        sender_id: Optional[str],
        offered_item_ids: Sequence[str],
        wanted_item_ids: Sequence[str],
    ) -> Offer:
        """
        Propose an exchange of the sender's items for another user's items.

        The first id on each side is the primary item; the rest form the
        bundle. The receiver is the owner of the primary wanted item.

        Args:
            sender_id: Acting user
            offered_item_ids: Items the sender gives, primary first
            wanted_item_ids: Items the sender asks for, primary first

        Returns:
            The new pending offer

        Raises:
            NotLoggedIn, RateLimited, InvalidItems, Blocked, DuplicateOffer, ItemsBusy
        """
        if not sender_id:
            raise NotLoggedIn()

        await self._check_rate_limit(sender_id)

        offered_ids = list(offered_item_ids)
        wanted_ids = list(wanted_item_ids)
        receiver_id = await self._validate_items(sender_id, offered_ids, wanted_ids)

        if await self.profiles.is_blocked(receiver_id, sender_id):
            raise Blocked()

        availability = await self.availability.check_availability(offered_ids, wanted_ids, sender_id)
        self._raise_if_unavailable(availability, offered_ids[0], wanted_ids[0])

        offer = Offer(
            sender_id=sender_id,
            receiver_id=receiver_id,
            offered_item_id=offered_ids[0],
            wanted_item_id=wanted_ids[0],
            additional_offered_ids=offered_ids[1:],
            additional_wanted_ids=wanted_ids[1:],
            status=OfferStatus.PENDING,
        )
        try:
            await self.store.insert(offer)
            await self.store.commit()
        except IntegrityError:
            # A concurrent request committed a conflicting offer first
            await self.store.rollback()
            availability = await self.availability.check_availability(offered_ids, wanted_ids, sender_id)
            self._raise_if_unavailable(availability, offered_ids[0], wanted_ids[0])
            raise ItemsBusy([offered_ids[0]], [])

        logger.info(
            f"Offer {offer.id} created: {sender_id} offers {offered_ids} to {receiver_id} for {wanted_ids}"
        )

        await self._mark_interest(sender_id, offer.wanted_item_id)
        await self._notify(receiver_id, "New offer", "You received a new trade offer.", offer.id)
        return offer

    async def respond_to_offer(self, offer_id: str, acting_user_id: Optional[str], accept: bool) -> OfferStatus:
        """
        Accept or reject a pending offer as its receiver.

        Returns:
            The offer's new status

        Raises:
            NotLoggedIn, OfferNotFound, NotOfferReceiver, OfferNotPending,
            Blocked (accept only), ItemsBusy (accept only)
        """
        if not acting_user_id:
            raise NotLoggedIn()

        offer = await self._get_offer(offer_id)

        if offer.receiver_id != acting_user_id:
            raise NotOfferReceiver(offer_id)

        if offer.status != OfferStatus.PENDING:
            raise OfferNotPending(offer_id, offer.status.value)

        if accept:
            if await self.profiles.is_blocked_either(offer.sender_id, offer.receiver_id):
                raise Blocked()

            if self.settings.REVALIDATE_ON_ACCEPT:
                busy_offered, busy_wanted = await self.availability.accepted_conflicts(offer)
                if busy_offered or busy_wanted:
                    raise ItemsBusy(busy_offered, busy_wanted)

        new_status = OfferStatus.ACCEPTED if accept else OfferStatus.REJECTED
        try:
            updated = await self.store.update_status(offer_id, new_status, expected_status=OfferStatus.PENDING)
        except IntegrityError:
            # Another offer for the same wanted item was accepted first
            await self.store.rollback()
            current = await self._get_offer(offer_id)
            busy_offered, busy_wanted = await self.availability.accepted_conflicts(current)
            if not busy_offered and not busy_wanted:
                busy_wanted = [current.wanted_item_id]
            raise ItemsBusy(busy_offered, busy_wanted)

        if not updated:
            await self.store.rollback()
            current = await self._get_offer(offer_id)
            raise OfferNotPending(offer_id, current.status.value)
        await self.store.commit()

        logger.info(f"Offer {offer_id} {new_status.value} by {acting_user_id}")

        if accept:
            await self._notify(offer.sender_id, "Offer accepted", "Your trade offer was accepted.", offer_id)
        else:
            await self._notify(offer.sender_id, "Offer declined", "Your trade offer was declined.", offer_id)
        return new_status

    async def create_counter_offer(
        self,
        original_offer_id: str,
        counter_user_id: Optional[str],
        new_wanted_item_id: str,
    ) -> Offer:
        """
        Answer a pending offer with a different request.

        The counter-offer gives back the item originally asked for and asks
        the original sender for ``new_wanted_item_id`` instead. The original
        offer becomes ``countered`` in the same transaction that inserts the
        new one.

        Returns:
            The new pending offer, with sender and receiver swapped

        Raises:
            NotLoggedIn, RateLimited, OfferNotFound, OriginalTradeInvalidStatus,
            NotOriginalReceiver, Blocked, ItemsBusy, InvalidItems
        """
        if not counter_user_id:
            raise NotLoggedIn()

        await self._check_rate_limit(counter_user_id)

        original = await self._get_offer(original_offer_id)

        if original.status != OfferStatus.PENDING:
            raise OriginalTradeInvalidStatus(original_offer_id, original.status.value)

        if original.receiver_id != counter_user_id:
            raise NotOriginalReceiver(original_offer_id)

        if await self.profiles.is_blocked_either(original.sender_id, original.receiver_id):
            raise Blocked()

        offered_item_id = original.wanted_item_id
        availability = await self.availability.check_availability(
            [offered_item_id],
            [new_wanted_item_id],
            counter_user_id,
            exclude_offer_ids=[original.id],
        )
        if not availability.all_available:
            raise ItemsBusy(availability.busy_offered, availability.busy_wanted)

        new_wanted = await self.items.fetch_item(new_wanted_item_id)
        if new_wanted is None:
            raise InvalidItems(f"Item not found: {new_wanted_item_id}")
        if new_wanted.owner_id != original.sender_id:
            raise InvalidItems("You can only ask for items owned by the person who sent the offer")

        if not await self.store.update_status(
            original.id, OfferStatus.COUNTERED, expected_status=OfferStatus.PENDING
        ):
            await self.store.rollback()
            current = await self._get_offer(original.id)
            raise OriginalTradeInvalidStatus(original.id, current.status.value)

        counter = Offer(
            sender_id=counter_user_id,
            receiver_id=original.sender_id,
            offered_item_id=offered_item_id,
            wanted_item_id=new_wanted_item_id,
            additional_offered_ids=[],
            additional_wanted_ids=[],
            status=OfferStatus.PENDING,
            countered_from_id=original.id,
        )
        try:
            await self.store.insert(counter)
            await self.store.commit()
        except IntegrityError:
            # The returned item was committed elsewhere meanwhile; the original stays pending
            await self.store.rollback()
            raise ItemsBusy([offered_item_id], [])

        logger.info(f"Offer {original.id} countered by {counter_user_id} with offer {counter.id}")

        await self._mark_interest(counter_user_id, new_wanted_item_id)
        await self._notify(original.sender_id, "Counter offer", "Your offer received a counter offer.", counter.id)
        return counter

    async def cancel_offer(self, offer_id: str, acting_user_id: Optional[str]) -> OfferStatus:
        """
        Withdraw an offer.

        The sender may cancel a pending offer. Either participant may cancel
        an accepted offer that has not been completed.

        Raises:
            NotLoggedIn, OfferNotFound, NotParticipant, OfferNotCancellable
        """
        if not acting_user_id:
            raise NotLoggedIn()

        offer = await self._get_offer(offer_id)
        party = offer.party_of(acting_user_id)
        if party is None:
            raise NotParticipant(offer_id)

        cancellable = (
            (offer.status == OfferStatus.PENDING and party == SENDER)
            or offer.status == OfferStatus.ACCEPTED
        )
        if not cancellable:
            raise OfferNotCancellable(offer_id, offer.status.value)

        if not await self.store.update_status(offer_id, OfferStatus.CANCELLED, expected_status=offer.status):
            await self.store.rollback()
            current = await self._get_offer(offer_id)
            raise OfferNotCancellable(offer_id, current.status.value)
        await self.store.commit()

        logger.info(f"Offer {offer_id} cancelled by {acting_user_id} (was {offer.status.value})")

        await self._notify(
            offer.counterparty_of(acting_user_id),
            "Offer cancelled",
            "A trade offer you were part of was cancelled.",
            offer_id,
        )
        return OfferStatus.CANCELLED

    # ------------------------------------------------------------------
    # Two-phase completion
    # ------------------------------------------------------------------

    async def confirm_completion(self, trade_id: str, acting_user_id: Optional[str]) -> CompletionResult:
        """
        Record that the acting participant considers the trade done.

        The trade becomes ``completed`` once both participants have
        confirmed. Under concurrent confirmations exactly one caller
        receives ``TRADE_COMPLETED``.

        Returns:
            CompletionResult

        Raises:
            NotLoggedIn, OfferNotFound
        """
        if not acting_user_id:
            raise NotLoggedIn()

        offer = await self._get_offer(trade_id)

        party = offer.party_of(acting_user_id)
        if party is None:
            return CompletionResult.NOT_PARTICIPANT

        if await self.profiles.is_blocked_either(offer.sender_id, offer.receiver_id):
            return CompletionResult.BLOCKED

        if offer.status == OfferStatus.COMPLETED:
            return CompletionResult.TRADE_COMPLETED
        if offer.status != OfferStatus.ACCEPTED:
            return CompletionResult.TRADE_NOT_ACCEPTED

        if _confirmed_by(offer, party):
            return CompletionResult.ALREADY_CONFIRMED

        if not await self.store.update_completion_flag(trade_id, party):
            # Lost a race: another request moved the offer or set this flag
            await self.store.rollback()
            current = await self._get_offer(trade_id)
            if current.status == OfferStatus.COMPLETED:
                return CompletionResult.TRADE_COMPLETED
            if current.status != OfferStatus.ACCEPTED:
                return CompletionResult.TRADE_NOT_ACCEPTED
            return CompletionResult.ALREADY_CONFIRMED

        completed = await self.store.mark_completed_if_confirmed(trade_id)
        if completed:
            await self.profiles.record_completed_trade([offer.sender_id, offer.receiver_id])
        await self.store.commit()

        partner_id = offer.counterparty_of(acting_user_id)
        if not completed:
            logger.info(f"Trade {trade_id} confirmed by {acting_user_id}, waiting for {partner_id}")
            await self._notify(
                partner_id,
                "Trade confirmation",
                "Your trade partner marked the trade as complete. Confirm to finish it.",
                trade_id,
            )
            return CompletionResult.CONFIRMED

        logger.info(f"Trade {trade_id} completed between {offer.sender_id} and {offer.receiver_id}")
        if self.event_bus is not None:
            await self.event_bus.publish(TRADE_COMPLETED_EVENT, {
                "offer_id": trade_id,
                "sender_id": offer.sender_id,
                "receiver_id": offer.receiver_id,
            })
        for user_id in (offer.sender_id, offer.receiver_id):
            await self._notify(user_id, "Trade completed", "Both sides confirmed. The trade is complete.", trade_id)
        return CompletionResult.TRADE_COMPLETED

    async def get_completion_status(self, trade_id: str, acting_user_id: Optional[str]) -> Optional[CompletionStatus]:
        """Confirmation state from the acting user's side, or None for unknown offers and outsiders."""
        if not acting_user_id:
            raise NotLoggedIn()
        offer = await self.store.find_by_id(trade_id)
        if offer is None:
            return None
        party = offer.party_of(acting_user_id)
        if party is None:
            return None
        partner = RECEIVER if party == SENDER else SENDER
        return CompletionStatus(
            user_confirmed=_confirmed_by(offer, party),
            partner_confirmed=_confirmed_by(offer, partner),
            is_complete=offer.status == OfferStatus.COMPLETED,
        )

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def check_availability(
        self,
        offered_item_ids: Sequence[str],
        wanted_item_ids: Sequence[str],
        acting_user_id: Optional[str],
    ) -> AvailabilityResult:
        if not acting_user_id:
            raise NotLoggedIn()
        return await self.availability.check_availability(
            list(offered_item_ids), list(wanted_item_ids), acting_user_id
        )

    async def is_item_busy(self, item_id: str) -> bool:
        return await self.availability.is_item_busy(item_id)

    async def has_pending_offer(self, user_id: Optional[str], wanted_item_id: str) -> bool:
        """True when ``user_id`` already has a pending offer asking for ``wanted_item_id``."""
        if not user_id:
            raise NotLoggedIn()
        offers = await self.store.find_by_participant(user_id, statuses=[OfferStatus.PENDING], role=SENDER)
        return any(offer.wanted_item_id == wanted_item_id for offer in offers)

    # ------------------------------------------------------------------
    # Interest markers
    # ------------------------------------------------------------------

    async def mark_interest(self, user_id: Optional[str], item_id: str) -> None:
        """
        Record that a user likes an item.

        Raises:
            NotLoggedIn, RateLimited, InvalidItems
        """
        if not user_id:
            raise NotLoggedIn()

        await self._check_rate_limit(user_id, RateLimitAction.LIKE_ITEM)

        if await self.items.fetch_item(item_id) is None:
            raise InvalidItems(f"Item not found: {item_id}")

        await self.profiles.add_interest(user_id, item_id)
        await self.db.commit()
        logger.info(f"User {user_id} marked interest in item {item_id}")

    async def remove_interest(self, user_id: Optional[str], item_id: str) -> bool:
        """Drop a like. Returns False when the user had none for the item."""
        if not user_id:
            raise NotLoggedIn()
        removed = await self.profiles.remove_interest(user_id, item_id)
        await self.db.commit()
        return removed

    async def get_active_trade(self, user_id: Optional[str], partner_id: str) -> Optional[HydratedOffer]:
        """Newest pending, accepted or completed offer between two users."""
        if not user_id:
            raise NotLoggedIn()
        offers = await self.store.find_between(
            user_id,
            partner_id,
            statuses=[OfferStatus.PENDING, OfferStatus.ACCEPTED, OfferStatus.COMPLETED],
        )
        if not offers:
            return None
        hydrated = await self.hydrator.hydrate_offers(offers[:1])
        return hydrated[0]

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def get_offer(self, offer_id: str, acting_user_id: Optional[str]) -> HydratedOffer:
        """Hydrated offer, visible to its participants only."""
        if not acting_user_id:
            raise NotLoggedIn()
        offer = await self._get_offer(offer_id)
        if offer.party_of(acting_user_id) is None:
            raise NotParticipant(offer_id)
        hydrated = await self.hydrator.hydrate_offers([offer])
        return hydrated[0]

    async def list_incoming(self, user_id: str) -> List[HydratedOffer]:
        """Pending offers sent to ``user_id``, without senders they blocked."""
        offers = await self._incoming_offers(user_id, await self.profiles.blocked_user_ids(user_id))
        return await self.hydrator.hydrate_offers(offers)

    async def list_active(self, user_id: str) -> List[HydratedOffer]:
        """Accepted and completed trades of ``user_id``, without partners they blocked."""
        offers = await self._active_offers(user_id, await self.profiles.blocked_user_ids(user_id))
        return await self.hydrator.hydrate_offers(offers)

    async def list_outgoing(self, user_id: str) -> List[HydratedOffer]:
        """Pending offers sent by ``user_id``."""
        offers = await self.store.find_by_participant(user_id, statuses=[OfferStatus.PENDING], role=SENDER)
        return await self.hydrator.hydrate_offers(offers)

    async def load_offer_views(self, user_id: str) -> OfferViews:
        """All lists shown to ``user_id`` plus the profiles of their trade partners."""
        blocked = await self.profiles.blocked_user_ids(user_id)
        incoming = await self._incoming_offers(user_id, blocked)
        active = await self._active_offers(user_id, blocked)
        outgoing = await self.store.find_by_participant(user_id, statuses=[OfferStatus.PENDING], role=SENDER)

        return OfferViews(
            incoming=await self.hydrator.hydrate_offers(incoming),
            active=await self.hydrator.hydrate_offers(active),
            outgoing=await self.hydrator.hydrate_offers(outgoing),
            related_profiles=await self.hydrator.hydrate_profiles(incoming + active, user_id),
        )

    async def _incoming_offers(self, user_id: str, blocked: set) -> List[Offer]:
        offers = await self.store.find_by_participant(user_id, statuses=[OfferStatus.PENDING], role=RECEIVER)
        return [offer for offer in offers if offer.sender_id not in blocked]

    async def _active_offers(self, user_id: str, blocked: set) -> List[Offer]:
        offers = await self.store.find_by_participant(
            user_id, statuses=[OfferStatus.ACCEPTED, OfferStatus.COMPLETED]
        )
        return [offer for offer in offers if offer.counterparty_of(user_id) not in blocked]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_offer(self, offer_id: str) -> Offer:
        offer = await self.store.find_by_id(offer_id)
        if offer is None:
            raise OfferNotFound(offer_id)
        return offer

    async def _check_rate_limit(self, user_id: str, action: RateLimitAction = RateLimitAction.CREATE_OFFER) -> None:
        decision = await self.rate_limiter.can_perform(user_id, action)
        if not decision.allowed:
            raise RateLimited(decision.message, decision.retry_after)

    async def _validate_items(self, sender_id: str, offered_ids: List[str], wanted_ids: List[str]) -> str:
        """Check both sides of a proposed exchange and return the receiver id."""
        if not offered_ids or not wanted_ids:
            raise InvalidItems("An offer needs at least one item on each side")

        all_ids = offered_ids + wanted_ids
        if len(set(all_ids)) != len(all_ids):
            raise InvalidItems("Each item can appear only once in an offer")

        items: Dict[str, Item] = {item.id: item for item in await self.items.fetch_items_by_ids(all_ids)}
        missing = [item_id for item_id in all_ids if item_id not in items]
        if missing:
            raise InvalidItems(f"Items not found: {', '.join(missing)}")

        if items[offered_ids[0]].owner_id != sender_id:
            raise InvalidItems("You can only offer your own items")

        receiver_id = items[wanted_ids[0]].owner_id
        if receiver_id == sender_id:
            raise InvalidItems("You cannot trade with yourself")

        if any(items[item_id].owner_id != sender_id for item_id in offered_ids[1:]):
            raise InvalidItems("You can only offer your own items")
        if any(items[item_id].owner_id != receiver_id for item_id in wanted_ids[1:]):
            raise InvalidItems("All requested items must belong to the same user")

        return receiver_id

    @staticmethod
    def _raise_if_unavailable(availability: AvailabilityResult, offered_item_id: str, wanted_item_id: str) -> None:
        if availability.duplicate_exists:
            raise DuplicateOffer(offered_item_id, wanted_item_id)
        if not availability.all_available:
            raise ItemsBusy(availability.busy_offered, availability.busy_wanted)

    async def _mark_interest(self, user_id: str, item_id: str) -> None:
        """Best-effort interest marker; failures are logged only."""
        try:
            await self.profiles.add_interest(user_id, item_id)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(f"Failed to record interest of user {user_id} in item {item_id}: {e}")

    async def _notify(self, user_id: str, title: str, body: str, offer_id: Optional[str]) -> None:
        if self.notifier is not None:
            await self.notifier.notify(user_id, title, body, offer_id=offer_id)


def _confirmed_by(offer: Offer, party: str) -> bool:
    if party == SENDER:
        return bool(offer.sender_confirmed_completion)
    return bool(offer.receiver_confirmed_completion)
