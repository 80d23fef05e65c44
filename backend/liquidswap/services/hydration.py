"""Batch hydration of offers with their items and participant profiles."""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from liquidswap.models.item import Item
from liquidswap.models.offer import Offer
from liquidswap.models.user import User
from liquidswap.services.directories import ItemDirectory, ProfileDirectory

logger = logging.getLogger(__name__)


@dataclass
class HydratedOffer:
    """An offer with its referenced items resolved. Unknown items stay None / are skipped."""
    offer: Offer
    offered_item: Optional[Item] = None
    wanted_item: Optional[Item] = None
    additional_offered_items: List[Item] = field(default_factory=list)
    additional_wanted_items: List[Item] = field(default_factory=list)
    sender: Optional[User] = None
    receiver: Optional[User] = None


class ProfileCache:
    """Bounded LRU of profiles, owned by one session or request."""

    def __init__(self, max_size: int = 256):
        if max_size < 1:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._entries: "OrderedDict[str, User]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._entries

    def get(self, user_id: str) -> Optional[User]:
        profile = self._entries.get(user_id)
        if profile is not None:
            self._entries.move_to_end(user_id)
        return profile

    def put(self, profile: User) -> None:
        self._entries[profile.id] = profile
        self._entries.move_to_end(profile.id)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def update(self, profiles: Iterable[User]) -> None:
        for profile in profiles:
            self.put(profile)

    def snapshot(self) -> Dict[str, User]:
        return dict(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class OfferHydrator:
    """
    Resolves the ids referenced by a batch of offers.

    Each call issues one item query and at most one profile query no matter
    how many offers are passed in.
    """

    def __init__(
        self,
        items: ItemDirectory,
        profiles: ProfileDirectory,
        profile_cache: Optional[ProfileCache] = None,
    ):
        self.items = items
        self.profiles = profiles
        self.profile_cache = profile_cache

    async def hydrate_offers(self, offers: Sequence[Offer]) -> List[HydratedOffer]:
        """
        Attach items and both participants' profiles to each offer.

        The output preserves input order; hydrating the same offers twice
        yields the same result.
        """
        if not offers:
            return []

        item_ids = []
        for offer in offers:
            item_ids.extend(offer.all_item_ids)
        item_map = {item.id: item for item in await self.items.fetch_items_by_ids(item_ids)}

        user_ids = []
        for offer in offers:
            user_ids.extend((offer.sender_id, offer.receiver_id))
        profile_map = await self._profiles_for(user_ids)

        hydrated = []
        for offer in offers:
            hydrated.append(HydratedOffer(
                offer=offer,
                offered_item=item_map.get(offer.offered_item_id),
                wanted_item=item_map.get(offer.wanted_item_id),
                additional_offered_items=_resolve(offer.additional_offered_ids, item_map),
                additional_wanted_items=_resolve(offer.additional_wanted_ids, item_map),
                sender=profile_map.get(offer.sender_id),
                receiver=profile_map.get(offer.receiver_id),
            ))
        return hydrated

    async def hydrate_profiles(self, offers: Sequence[Offer], current_user_id: str) -> Dict[str, User]:
        """
        Profiles of every counterparty of ``current_user_id`` in ``offers``.

        Returns:
            Mapping of user id to profile; users that no longer exist are absent
        """
        counterparty_ids = [offer.counterparty_of(current_user_id) for offer in offers]
        return await self._profiles_for(counterparty_ids)

    async def _profiles_for(self, user_ids: Iterable[str]) -> Dict[str, User]:
        wanted = list(dict.fromkeys(user_ids))
        found: Dict[str, User] = {}
        missing = []

        for user_id in wanted:
            cached = self.profile_cache.get(user_id) if self.profile_cache is not None else None
            if cached is not None:
                found[user_id] = cached
            else:
                missing.append(user_id)

        if missing:
            fetched = await self.profiles.fetch_profiles_by_ids(missing)
            if self.profile_cache is not None:
                self.profile_cache.update(fetched)
            found.update(ProfileDirectory.index_by_id(fetched))

        return found


def _resolve(ids: Iterable[str], item_map: Dict[str, Item]) -> List[Item]:
    return [item_map[item_id] for item_id in ids or [] if item_id in item_map]
