"""Pytest configuration and fixtures for testing."""

from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from liquidswap.config import Settings
from liquidswap.core.security import generate_api_key, hash_api_key
from liquidswap.database import create_tables
from liquidswap.main import create_app
from liquidswap.models import BlockedUser, Item, Offer, User
from liquidswap.services.negotiation_engine import NegotiationEngine
from liquidswap.services.notifications import NotificationDispatcher


USER_KEYS = {name: generate_api_key() for name in ("alice", "bob", "carol")}


def auth(name: str) -> dict:
    """Headers authenticating as one of the seeded users."""
    return {"X-User-Key": USER_KEYS[name]}


@pytest.fixture
def settings(tmp_path) -> Settings:
    """
    Settings for a throwaway SQLite database.

    Offer limits are raised so tests that are not about rate limiting never
    hit them.
    """
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'liquidswap_test.db'}",
        ENVIRONMENT="test",
        LOG_LEVEL="WARNING",
        CORS_ORIGINS=["http://test"],
        OFFER_RATE_LIMIT_PER_MINUTE=1000,
        OFFER_RATE_LIMIT_PER_HOUR=10000,
        REALTIME_RETRY_SECONDS=0.01,
    )


@pytest.fixture
async def app(settings: Settings):
    """Application with its tables created."""
    application = create_app(settings)
    await create_tables(application.state.engine)
    yield application
    application.state.event_bus.disconnect_all()
    await application.state.engine.dispose()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client talking to the app in-process."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def session_factory(app):
    return app.state.session_factory


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A session for assertions, separate from any engine's session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seed(session_factory) -> SimpleNamespace:
    """
    Three users with three items each.

    Returns:
        Namespace with ``users`` (name -> id) and ``items``
        ("a1".."a3" for alice, "b1".."b3" for bob, "c1".."c3" for carol -> id)
    """
    async with session_factory() as session:
        users = {
            name: User(username=name, api_key_hash=hash_api_key(key))
            for name, key in USER_KEYS.items()
        }
        session.add_all(users.values())
        await session.flush()

        items = {}
        for name, user in users.items():
            for n in range(1, 4):
                items[f"{name[0]}{n}"] = Item(owner_id=user.id, title=f"{name}'s item {n}")
        session.add_all(items.values())
        await session.commit()

        return SimpleNamespace(
            users={name: user.id for name, user in users.items()},
            items={key: item.id for key, item in items.items()},
        )


@pytest.fixture
async def make_engine(app):
    """
    Factory for negotiation engines, each with its own session.

    Keyword overrides: ``rate_limiter``, ``settings``, ``notifier``.
    """
    sessions = []

    def _make(**overrides) -> NegotiationEngine:
        session = app.state.session_factory()
        sessions.append(session)
        return NegotiationEngine(
            db=session,
            rate_limiter=overrides.get("rate_limiter", app.state.rate_limiter),
            event_bus=app.state.event_bus,
            notifier=overrides.get(
                "notifier",
                NotificationDispatcher(app.state.session_factory, app.state.event_bus)
            ),
            settings=overrides.get("settings", app.state.settings),
        )

    yield _make

    for session in sessions:
        await session.close()


@pytest.fixture
def engine(make_engine) -> NegotiationEngine:
    return make_engine()


async def block(session_factory, blocker_id: str, blocked_id: str) -> None:
    """Record that ``blocker_id`` blocked ``blocked_id``."""
    async with session_factory() as session:
        session.add(BlockedUser(blocker_id=blocker_id, blocked_id=blocked_id))
        await session.commit()


async def count_offers(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(Offer))
        return result.scalar()


async def load_offer(session_factory, offer_id: str) -> Offer:
    async with session_factory() as session:
        result = await session.execute(select(Offer).where(Offer.id == offer_id))
        return result.scalar_one()
