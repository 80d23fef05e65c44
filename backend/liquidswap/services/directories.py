"""Item and profile directories: the engine's view of the catalog and user records."""

import logging
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import delete, select, update, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from liquidswap.models.item import Item, ItemInterest
from liquidswap.models.user import User, BlockedUser

logger = logging.getLogger(__name__)


class ItemDirectory:
    """Read access to catalog items."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_items_by_ids(self, ids: Iterable[str]) -> List[Item]:
        """Fetch all items with the given ids in one query. Unknown ids are skipped."""
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []
        result = await self.db.execute(select(Item).where(Item.id.in_(unique_ids)))
        return list(result.scalars().all())

    async def fetch_item(self, item_id: str) -> Optional[Item]:
        result = await self.db.execute(select(Item).where(Item.id == item_id))
        return result.scalar_one_or_none()


class ProfileDirectory:
    """Read access to user profiles and the block list, plus trade side effects on profiles."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_profiles_by_ids(self, ids: Iterable[str]) -> List[User]:
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []
        result = await self.db.execute(select(User).where(User.id.in_(unique_ids)))
        return list(result.scalars().all())

    async def is_blocked(self, blocker_id: str, blocked_id: str) -> bool:
        """True when ``blocker_id`` has blocked ``blocked_id``."""
        result = await self.db.execute(
            select(BlockedUser.id).where(
                BlockedUser.blocker_id == blocker_id,
                BlockedUser.blocked_id == blocked_id
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def is_blocked_either(self, user_a: str, user_b: str) -> bool:
        """True when either user has blocked the other."""
        result = await self.db.execute(
            select(BlockedUser.id).where(
                or_(
                    and_(BlockedUser.blocker_id == user_a, BlockedUser.blocked_id == user_b),
                    and_(BlockedUser.blocker_id == user_b, BlockedUser.blocked_id == user_a),
                )
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def blocked_user_ids(self, user_id: str) -> Set[str]:
        """Ids of users that ``user_id`` has blocked."""
        result = await self.db.execute(
            select(BlockedUser.blocked_id).where(BlockedUser.blocker_id == user_id)
        )
        return set(result.scalars().all())

    async def add_interest(self, user_id: str, item_id: str) -> None:
        """Record that ``user_id`` is interested in ``item_id`` (no-op when already recorded)."""
        result = await self.db.execute(
            select(ItemInterest.id).where(
                ItemInterest.user_id == user_id,
                ItemInterest.item_id == item_id
            )
        )
        if result.scalar_one_or_none() is None:
            self.db.add(ItemInterest(user_id=user_id, item_id=item_id))

    async def remove_interest(self, user_id: str, item_id: str) -> bool:
        """Forget an interest marker. Returns False when there was none."""
        result = await self.db.execute(
            delete(ItemInterest).where(
                ItemInterest.user_id == user_id,
                ItemInterest.item_id == item_id
            )
        )
        return result.rowcount > 0

    async def record_completed_trade(self, user_ids: Iterable[str]) -> None:
        """Bump the completed-trade counter of each participant."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return
        await self.db.execute(
            update(User)
            .where(User.id.in_(ids))
            .values(trades_completed=User.trades_completed + 1)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def index_by_id(profiles: Iterable[User]) -> Dict[str, User]:
        return {profile.id: profile for profile in profiles}
