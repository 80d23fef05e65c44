"""Database models package."""

from liquidswap.models.user import User, BlockedUser
from liquidswap.models.item import Item, ItemInterest
from liquidswap.models.offer import (
    Offer,
    OfferStatus,
    OfferStatusType,
    COMMITTED_STATUSES,
    VALID_TRANSITIONS,
    can_transition,
)
from liquidswap.models.notification import Notification

__all__ = [
    "User",
    "BlockedUser",
    "Item",
    "ItemInterest",
    "Offer",
    "OfferStatus",
    "OfferStatusType",
    "COMMITTED_STATUSES",
    "VALID_TRANSITIONS",
    "can_transition",
    "Notification",
]
