"""
Realtime offer change feed.

``OfferChangeFeed`` keeps a subscription to the event bus alive for one
user and hands every change that touches them to a callback.
``OfferViewCache`` is the per-session read-through cache of that user's
hydrated offer lists; the feed invalidates it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from liquidswap.config import Settings
from liquidswap.core.events import EventBus, EventPredicate, SubscriptionClosed
from liquidswap.models.user import User
from liquidswap.services.notifications import NOTIFICATION
from liquidswap.services.offer_store import OFFER_CHANGED

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[Dict[str, Any]], Awaitable[None]]


def offer_event_predicate(user_id: str) -> EventPredicate:
    """Accept offer changes where ``user_id`` is sender or receiver."""
    def predicate(event: Dict[str, Any]) -> bool:
        if event["type"] != OFFER_CHANGED:
            return False
        data = event["data"]
        return user_id in (data.get("sender_id"), data.get("receiver_id"))
    return predicate


def user_event_predicate(user_id: str) -> EventPredicate:
    """Offer changes for ``user_id`` plus notifications addressed to them."""
    offer_predicate = offer_event_predicate(user_id)

    def predicate(event: Dict[str, Any]) -> bool:
        if event["type"] == NOTIFICATION:
            return event["data"].get("user_id") == user_id
        return offer_predicate(event)
    return predicate


class OfferChangeFeed:
    """
    Reconnecting subscriber for one user's offer changes.

    When the subscription drops or the handler fails, the feed waits
    ``retry_seconds`` and subscribes again. It only stops when cancelled.
    """

    def __init__(self, event_bus: EventBus, retry_seconds: float = 5):
        self.event_bus = event_bus
        self.retry_seconds = retry_seconds
        self.connect_count = 0

    @classmethod
    def from_settings(cls, event_bus: EventBus, settings: Settings) -> "OfferChangeFeed":
        return cls(event_bus, retry_seconds=settings.REALTIME_RETRY_SECONDS)

    async def run(self, user_id: str, on_change: ChangeHandler) -> None:
        while True:
            self.connect_count += 1
            subscription = self.event_bus.subscribe(offer_event_predicate(user_id))
            try:
                try:
                    async for event in subscription:
                        await on_change(event["data"])
                finally:
                    await subscription.aclose()
            except asyncio.CancelledError:
                raise
            except SubscriptionClosed:
                logger.warning(
                    f"Offer feed for user {user_id} disconnected, retrying in {self.retry_seconds}s"
                )
            except Exception:
                logger.exception(
                    f"Offer feed for user {user_id} failed, retrying in {self.retry_seconds}s"
                )
            await asyncio.sleep(self.retry_seconds)


@dataclass
class OfferViews:
    """Hydrated offer lists shown to one user."""
    incoming: List[Any] = field(default_factory=list)
    active: List[Any] = field(default_factory=list)
    outgoing: List[Any] = field(default_factory=list)
    related_profiles: Dict[str, User] = field(default_factory=dict)


class OfferViewCache:
    """
    Read-through cache of one user's ``OfferViews``.

    The cache is for display only; engine decisions always re-read the store.
    """

    def __init__(self, user_id: str, loader: Callable[[str], Awaitable[OfferViews]]):
        self.user_id = user_id
        self._loader = loader
        self._views: Optional[OfferViews] = None
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._views is not None

    async def get(self) -> OfferViews:
        async with self._lock:
            if self._views is None:
                self._views = await self._loader(self.user_id)
            return self._views

    async def refresh(self) -> OfferViews:
        self.invalidate()
        return await self.get()

    def invalidate(self) -> None:
        self._views = None

    async def handle_change(self, change: Dict[str, Any]) -> None:
        """Change feed callback."""
        logger.debug(f"Offer {change.get('offer_id')} changed, invalidating views of user {self.user_id}")
        self.invalidate()
