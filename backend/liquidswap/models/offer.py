"""Trade offer database model and status state machine."""

import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import List

from sqlalchemy import String, Boolean, ForeignKey, TIMESTAMP, JSON, Index, text
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import Mapped, mapped_column

from liquidswap.database import Base

logger = logging.getLogger(__name__)


class OfferStatus(str, Enum):
    """Offer status enum. Unknown values resolve to PENDING."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COUNTERED = "countered"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        logger.warning(f"Unknown offer status {value!r}, treating as pending")
        return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS.get(self)


# Items in offers with these statuses are unavailable for other offers
COMMITTED_STATUSES = (OfferStatus.PENDING, OfferStatus.ACCEPTED)

# Partial-index predicates backing the committed-item invariants
COMMITTED_WHERE = text("status IN ('pending', 'accepted')")
ACCEPTED_WHERE = text("status = 'accepted'")

# Valid state transitions
VALID_TRANSITIONS = {
    OfferStatus.PENDING: [
        OfferStatus.ACCEPTED,
        OfferStatus.REJECTED,
        OfferStatus.COUNTERED,
        OfferStatus.CANCELLED,
    ],
    OfferStatus.ACCEPTED: [OfferStatus.COMPLETED, OfferStatus.CANCELLED],
}


def can_transition(current: OfferStatus, new: OfferStatus) -> bool:
    """Return True when ``current -> new`` is an edge of the state machine."""
    return new in VALID_TRANSITIONS.get(current, [])


class OfferStatusType(TypeDecorator):
    """
    Stores OfferStatus by name.

    Writes must name a known status. Unrecognized stored values load as
    PENDING.
    """

    impl = String(20)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, OfferStatus):
            return value.value
        # The unknown-name fallback only applies to stored rows
        if isinstance(value, str) and value in OfferStatus._value2member_map_:
            return value
        raise ValueError(f"Invalid offer status: {value!r}")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return OfferStatus(value)


class Offer(Base):
    """A proposed exchange of one or more items between two users."""

    __tablename__ = "offers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Participants
    sender_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)

    # Primary items (single-item trades)
    offered_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False)
    wanted_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False)

    # Bundles
    additional_offered_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    additional_wanted_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Current state
    status: Mapped[OfferStatus] = mapped_column(
        OfferStatusType(),
        nullable=False,
        default=OfferStatus.PENDING
    )

    # Two-phase completion
    sender_confirmed_completion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    receiver_confirmed_completion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    # Set on the replacement offer created by a counter
    countered_from_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("offers.id"), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("ix_offers_sender_status", "sender_id", "status"),
        Index("ix_offers_receiver_status", "receiver_id", "status"),
        Index("ix_offers_offered_item_status", "offered_item_id", "status"),
        Index("ix_offers_wanted_item_status", "wanted_item_id", "status"),
        # One committed offer per sender and primary pair
        Index(
            "uq_offers_committed_pair", "sender_id", "offered_item_id", "wanted_item_id",
            unique=True, sqlite_where=COMMITTED_WHERE, postgresql_where=COMMITTED_WHERE,
        ),
        # An item is the primary offered item of at most one committed offer
        Index(
            "uq_offers_committed_offered_item", "offered_item_id",
            unique=True, sqlite_where=COMMITTED_WHERE, postgresql_where=COMMITTED_WHERE,
        ),
        # ... and the primary wanted item of at most one accepted offer
        Index(
            "uq_offers_accepted_wanted_item", "wanted_item_id",
            unique=True, sqlite_where=ACCEPTED_WHERE, postgresql_where=ACCEPTED_WHERE,
        ),
    )

    @property
    def all_offered_ids(self) -> List[str]:
        return [self.offered_item_id] + list(self.additional_offered_ids or [])

    @property
    def all_wanted_ids(self) -> List[str]:
        return [self.wanted_item_id] + list(self.additional_wanted_ids or [])

    @property
    def all_item_ids(self) -> List[str]:
        return self.all_offered_ids + self.all_wanted_ids

    def party_of(self, user_id: str) -> str | None:
        """Return "sender", "receiver" or None for ``user_id``."""
        if user_id == self.sender_id:
            return "sender"
        if user_id == self.receiver_id:
            return "receiver"
        return None

    def counterparty_of(self, user_id: str) -> str:
        return self.receiver_id if user_id == self.sender_id else self.sender_id

    def __repr__(self) -> str:
        return f"<Offer(id={self.id}, sender={self.sender_id}, receiver={self.receiver_id}, status={self.status})>"
