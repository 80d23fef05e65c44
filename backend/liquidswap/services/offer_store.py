"""
Offer persistence.

All status and completion writes are guarded UPDATE statements so that a
transition only lands when the row is still in the state the caller
validated against. Change events are queued per write and published on the
event bus only after the surrounding transaction commits.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, update, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from liquidswap.core.events import EventBus
from liquidswap.models.offer import Offer, OfferStatus

logger = logging.getLogger(__name__)

OFFER_CHANGED = "offer_changed"

SENDER = "sender"
RECEIVER = "receiver"

OFFERED = "offered"
WANTED = "wanted"


class OfferStore:
    """Offer table access bound to one session."""

    def __init__(self, db: AsyncSession, event_bus: Optional[EventBus] = None):
        self.db = db
        self.event_bus = event_bus
        self._pending_changes: List[Dict[str, Any]] = []

    async def insert(self, offer: Offer) -> Offer:
        self.db.add(offer)
        await self.db.flush()
        self._queue_change("insert", offer.id, offer.sender_id, offer.receiver_id, offer.status)
        return offer

    async def find_by_id(self, offer_id: str) -> Optional[Offer]:
        """Fetch the current stored state, bypassing any copy cached in the session."""
        result = await self.db.execute(
            select(Offer)
            .where(Offer.id == offer_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_status(
        self,
        offer_id: str,
        new_status: OfferStatus,
        expected_status: OfferStatus | Sequence[OfferStatus],
    ) -> bool:
        """
        Move an offer to ``new_status`` if it is still in ``expected_status``.

        Returns:
            True when the row was updated, False when its status had already moved on
        """
        if isinstance(expected_status, OfferStatus):
            expected = [expected_status]
        else:
            expected = list(expected_status)

        now = datetime.utcnow()
        values: Dict[str, Any] = {"status": new_status, "updated_at": now}
        if new_status == OfferStatus.COMPLETED:
            values["completed_at"] = now

        result = await self.db.execute(
            update(Offer)
            .where(Offer.id == offer_id, Offer.status.in_(expected))
            .values(**values)
            .returning(Offer.sender_id, Offer.receiver_id)
            .execution_options(synchronize_session=False)
        )
        row = result.first()
        if row is None:
            return False
        self._queue_change("update", offer_id, row.sender_id, row.receiver_id, new_status)
        return True

    async def update_completion_flag(self, offer_id: str, party: str) -> bool:
        """
        Set one party's completion flag on an accepted offer.

        Only the single flag column is written, so a concurrent confirmation
        by the other party is never overwritten.

        Returns:
            True when the flag flipped from false to true
        """
        column = _completion_column(party)
        result = await self.db.execute(
            update(Offer)
            .where(
                Offer.id == offer_id,
                Offer.status == OfferStatus.ACCEPTED,
                column.is_(False),
            )
            .values({column.key: True, "updated_at": datetime.utcnow()})
            .returning(Offer.sender_id, Offer.receiver_id)
            .execution_options(synchronize_session=False)
        )
        row = result.first()
        if row is None:
            return False
        self._queue_change("update", offer_id, row.sender_id, row.receiver_id, OfferStatus.ACCEPTED)
        return True

    async def mark_completed_if_confirmed(self, offer_id: str) -> bool:
        """
        Compare-and-set ``accepted -> completed`` once both flags are true.

        Exactly one caller gets True for a given offer.
        """
        now = datetime.utcnow()
        result = await self.db.execute(
            update(Offer)
            .where(
                Offer.id == offer_id,
                Offer.status == OfferStatus.ACCEPTED,
                Offer.sender_confirmed_completion.is_(True),
                Offer.receiver_confirmed_completion.is_(True),
            )
            .values(status=OfferStatus.COMPLETED, completed_at=now, updated_at=now)
            .returning(Offer.sender_id, Offer.receiver_id)
            .execution_options(synchronize_session=False)
        )
        row = result.first()
        if row is None:
            return False
        self._queue_change("update", offer_id, row.sender_id, row.receiver_id, OfferStatus.COMPLETED)
        return True

    async def find_by_participant(
        self,
        user_id: str,
        statuses: Optional[Iterable[OfferStatus]] = None,
        role: Optional[str] = None,
    ) -> List[Offer]:
        """
        Offers where ``user_id`` takes part, newest first.

        Args:
            user_id: Participant
            statuses: Optional status filter
            role: "sender", "receiver" or None for either
        """
        if role == SENDER:
            condition = Offer.sender_id == user_id
        elif role == RECEIVER:
            condition = Offer.receiver_id == user_id
        elif role is None:
            condition = or_(Offer.sender_id == user_id, Offer.receiver_id == user_id)
        else:
            raise ValueError(f"Invalid participant role: {role}")

        query = select(Offer).where(condition)
        if statuses is not None:
            query = query.where(Offer.status.in_(list(statuses)))
        query = query.order_by(Offer.created_at.desc()).execution_options(populate_existing=True)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_between(
        self,
        user_id: str,
        partner_id: str,
        statuses: Optional[Iterable[OfferStatus]] = None,
    ) -> List[Offer]:
        """Offers exchanged between two users in either direction, newest first."""
        query = select(Offer).where(
            or_(
                and_(Offer.sender_id == user_id, Offer.receiver_id == partner_id),
                and_(Offer.sender_id == partner_id, Offer.receiver_id == user_id),
            )
        )
        if statuses is not None:
            query = query.where(Offer.status.in_(list(statuses)))
        query = query.order_by(Offer.created_at.desc()).execution_options(populate_existing=True)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_by_item_role(
        self,
        item_ids: Iterable[str],
        role: str,
        statuses: Optional[Iterable[OfferStatus]] = None,
    ) -> List[Offer]:
        """
        Offers whose primary offered (or wanted) item is one of ``item_ids``.

        Only the primary slots are indexed; additional bundle items are not
        searched here.
        """
        ids = list(dict.fromkeys(item_ids))
        if not ids:
            return []
        if role == OFFERED:
            column = Offer.offered_item_id
        elif role == WANTED:
            column = Offer.wanted_item_id
        else:
            raise ValueError(f"Invalid item role: {role}")

        query = select(Offer).where(column.in_(ids))
        if statuses is not None:
            query = query.where(Offer.status.in_(list(statuses)))
        query = query.execution_options(populate_existing=True)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def commit(self) -> None:
        """Commit the session, then publish the changes it contained."""
        await self.db.commit()
        changes, self._pending_changes = self._pending_changes, []
        if self.event_bus is None:
            return
        for change in changes:
            await self.event_bus.publish(OFFER_CHANGED, change)

    async def rollback(self) -> None:
        self._pending_changes = []
        await self.db.rollback()

    def _queue_change(
        self,
        change: str,
        offer_id: str,
        sender_id: str,
        receiver_id: str,
        status: OfferStatus,
    ) -> None:
        self._pending_changes.append({
            "change": change,
            "offer_id": offer_id,
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "status": OfferStatus(status).value,
        })


def _completion_column(party: str):
    if party == SENDER:
        return Offer.sender_confirmed_completion
    if party == RECEIVER:
        return Offer.receiver_confirmed_completion
    raise ValueError(f"Invalid party: {party}")
