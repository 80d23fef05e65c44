"""Event bus system for real-time offer change fan-out."""

import asyncio
import logging
from typing import Dict, Any, AsyncGenerator, Callable, Optional
from datetime import datetime

logger = logging.getLogger(__name__)

EventPredicate = Callable[[Dict[str, Any]], bool]

_DISCONNECT = object()


class SubscriptionClosed(ConnectionError):
    """Raised inside a subscription when the bus drops its subscribers."""


class EventBus:
    """
    In-memory event bus using asyncio.Queue for pub/sub pattern.

    Feeds the realtime offer change stream and Server-Sent Events clients.
    """

    def __init__(self, max_queue_size: int = 1000):
        """Initialize the event bus with an empty subscriber list."""
        self._subscribers: list[tuple[asyncio.Queue, Optional[EventPredicate]]] = []
        self._max_queue_size = max_queue_size

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event_type: str, data: Dict[str, Any]) -> None:
        """
        Publish an event to all subscribers.

        Args:
            event_type: Type of event (e.g., "offer_changed", "notification")
            data: Event payload data
        """
        event = {
            "type": event_type,
            "data": data,
            "timestamp": datetime.utcnow().isoformat()
        }

        # Send to all matching subscribers
        dead = []
        for entry in list(self._subscribers):
            queue, predicate = entry
            if predicate is not None and not predicate(event):
                continue
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # Slow consumer; drop it so it resubscribes with a fresh view
                dead.append(entry)

        for entry in dead:
            logger.warning("Dropping slow event subscriber")
            self._disconnect(entry)

    async def subscribe(
        self,
        predicate: Optional[EventPredicate] = None
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Subscribe to events and receive them as an async generator.

        Args:
            predicate: Optional filter; only events it accepts are delivered

        Yields:
            Event dictionaries containing type, data, and timestamp

        Raises:
            SubscriptionClosed: When the bus disconnects this subscriber

        Usage:
            async for event in event_bus.subscribe():
                ...
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        entry = (queue, predicate)
        self._subscribers.append(entry)

        try:
            while True:
                event = await queue.get()
                if event is _DISCONNECT:
                    raise SubscriptionClosed("event bus subscription closed")
                yield event
        finally:
            # Clean up subscription
            self._remove(entry)

    def disconnect_all(self) -> None:
        """Terminate every active subscription (transport drop or shutdown)."""
        for entry in list(self._subscribers):
            self._disconnect(entry)

    def _disconnect(self, entry) -> None:
        self._remove(entry)
        queue = entry[0]
        while queue.full():
            queue.get_nowait()
        queue.put_nowait(_DISCONNECT)

    def _remove(self, entry) -> None:
        if entry in self._subscribers:
            self._subscribers.remove(entry)
