"""Business logic services package."""

from liquidswap.services.negotiation_engine import NegotiationEngine, CompletionResult, CompletionStatus
from liquidswap.services.offer_store import OfferStore
from liquidswap.services.availability import ItemAvailabilityChecker, AvailabilityResult
from liquidswap.services.directories import ItemDirectory, ProfileDirectory
from liquidswap.services.hydration import OfferHydrator, HydratedOffer, ProfileCache
from liquidswap.services.notifications import NotificationDispatcher
from liquidswap.services.change_feed import OfferChangeFeed, OfferViewCache, OfferViews

__all__ = [
    # Negotiation engine
    "NegotiationEngine",
    "CompletionResult",
    "CompletionStatus",
    # Persistence
    "OfferStore",
    "ItemDirectory",
    "ProfileDirectory",
    # Availability
    "ItemAvailabilityChecker",
    "AvailabilityResult",
    # Hydration
    "OfferHydrator",
    "HydratedOffer",
    "ProfileCache",
    # Realtime
    "NotificationDispatcher",
    "OfferChangeFeed",
    "OfferViewCache",
    "OfferViews",
]
