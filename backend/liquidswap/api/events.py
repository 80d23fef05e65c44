"""Events API router for the Server-Sent Events change stream."""

import json
import logging

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from liquidswap.api.deps import get_current_user, get_event_bus, get_settings
from liquidswap.config import Settings
from liquidswap.core.events import EventBus, SubscriptionClosed
from liquidswap.models.user import User
from liquidswap.services.change_feed import user_event_predicate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/offers", tags=["events"])


@router.get("/stream")
async def offer_event_stream(
    request: Request,
    current_user: User = Depends(get_current_user),
    event_bus: EventBus = Depends(get_event_bus),
    settings: Settings = Depends(get_settings)
):
    """
    Server-Sent Events (SSE) stream of changes to your offers.

    Emits ``offer_changed`` for offers you send or receive and
    ``notification`` for notifications addressed to you. When the stream
    ends the client should reconnect and reload its offer lists.

    Usage:
        const eventSource = new EventSource('/api/offers/stream');
        eventSource.addEventListener('offer_changed', (e) => {
            console.log(JSON.parse(e.data));
        });
    """
    user_id = current_user.id

    async def generate():
        subscription = event_bus.subscribe(user_event_predicate(user_id))
        try:
            async for event in subscription:
                # Check if client disconnected
                if await request.is_disconnected():
                    break

                yield {
                    "event": event["type"],
                    "data": json.dumps(event["data"])
                }
        except SubscriptionClosed:
            logger.info(f"Event stream for user {user_id} closed by the event bus")
        finally:
            await subscription.aclose()

    return EventSourceResponse(generate(), ping=settings.SSE_PING_SECONDS)
