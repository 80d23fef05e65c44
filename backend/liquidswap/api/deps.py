"""API dependencies for authentication, database access and the negotiation engine."""

from typing import Optional
from fastapi import Depends, HTTPException, Request, status, Header
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from liquidswap.config import Settings
from liquidswap.core.events import EventBus
from liquidswap.core.security import hash_api_key, looks_like_api_key
from liquidswap.database import get_db
from liquidswap.models.user import User
from liquidswap.services.negotiation_engine import NegotiationEngine
from liquidswap.services.notifications import NotificationDispatcher


async def _user_for_key(db: AsyncSession, api_key: str) -> Optional[User]:
    if not looks_like_api_key(api_key):
        return None
    result = await db.execute(select(User).where(User.api_key_hash == hash_api_key(api_key)))
    return result.scalar_one_or_none()


async def get_current_user(
    x_user_key: str = Header(..., description="API key for authentication"),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Dependency that validates the X-User-Key header and returns the authenticated user.

    Args:
        x_user_key: API key from X-User-Key header
        db: Database session

    Returns:
        User: The authenticated user

    Raises:
        HTTPException: 401 if API key is invalid
    """
    user = await _user_for_key(db, x_user_key)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": "INVALID_API_KEY",
                "message": "Invalid API key provided"
            }
        )
    return user


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


async def get_negotiation_engine(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> NegotiationEngine:
    """Build a negotiation engine for this request's session."""
    state = request.app.state
    return NegotiationEngine(
        db=db,
        rate_limiter=state.rate_limiter,
        event_bus=state.event_bus,
        notifier=NotificationDispatcher(state.session_factory, state.event_bus),
        settings=state.settings,
    )
