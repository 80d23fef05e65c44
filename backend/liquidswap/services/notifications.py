"""Notification delivery for counterparty actions on offers."""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from liquidswap.core.events import EventBus
from liquidswap.models.notification import Notification

logger = logging.getLogger(__name__)

NOTIFICATION = "notification"


class NotificationDispatcher:
    """
    Persists notifications and pushes them on the event bus.

    Uses its own session so a failed notification never touches the
    caller's transaction. Delivery is best effort: errors are logged and
    swallowed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], event_bus: Optional[EventBus] = None):
        self.session_factory = session_factory
        self.event_bus = event_bus

    async def notify(self, user_id: str, title: str, body: str, offer_id: Optional[str] = None) -> None:
        """
        Deliver a notification to ``user_id``.

        Args:
            user_id: Recipient
            title: Short headline
            body: Notification text
            offer_id: Offer the notification refers to, if any
        """
        try:
            async with self.session_factory() as session:
                notification = Notification(user_id=user_id, title=title, body=body, offer_id=offer_id)
                session.add(notification)
                await session.commit()
                notification_id = notification.id
        except SQLAlchemyError:
            logger.exception(f"Failed to store notification for user {user_id}")
            return

        if self.event_bus is not None:
            await self.event_bus.publish(NOTIFICATION, {
                "notification_id": notification_id,
                "user_id": user_id,
                "offer_id": offer_id,
                "title": title,
                "body": body,
            })

        logger.debug(f"Notified user {user_id}: {title}")
