"""Tests for batch hydration and the profile cache."""

import pytest

from liquidswap.models import Offer, User
from liquidswap.services.directories import ItemDirectory, ProfileDirectory
from liquidswap.services.hydration import OfferHydrator, ProfileCache


class CountingItems(ItemDirectory):
    def __init__(self, db):
        super().__init__(db)
        self.calls = 0

    async def fetch_items_by_ids(self, ids):
        self.calls += 1
        return await super().fetch_items_by_ids(ids)


class CountingProfiles(ProfileDirectory):
    def __init__(self, db):
        super().__init__(db)
        self.calls = 0

    async def fetch_profiles_by_ids(self, ids):
        self.calls += 1
        return await super().fetch_profiles_by_ids(ids)


def make_offer(sender_id, receiver_id, offered, wanted, extra_offered=(), extra_wanted=()):
    return Offer(
        sender_id=sender_id,
        receiver_id=receiver_id,
        offered_item_id=offered,
        wanted_item_id=wanted,
        additional_offered_ids=list(extra_offered),
        additional_wanted_ids=list(extra_wanted),
    )


@pytest.mark.asyncio
async def test_hydrate_offers_in_one_batch(db, seed):
    users, items = seed.users, seed.items
    offers = [
        make_offer(users["alice"], users["bob"], items["a1"], items["b1"], [items["a2"]], [items["b2"]]),
        make_offer(users["carol"], users["bob"], items["c1"], items["b3"]),
        make_offer(users["bob"], users["alice"], items["b1"], items["a3"]),
    ]
    item_directory = CountingItems(db)
    profile_directory = CountingProfiles(db)
    hydrator = OfferHydrator(item_directory, profile_directory)

    hydrated = await hydrator.hydrate_offers(offers)

    assert item_directory.calls == 1
    assert profile_directory.calls == 1
    assert [h.offer for h in hydrated] == offers

    first = hydrated[0]
    assert first.offered_item.id == items["a1"]
    assert first.wanted_item.id == items["b1"]
    assert [item.id for item in first.additional_offered_items] == [items["a2"]]
    assert [item.id for item in first.additional_wanted_items] == [items["b2"]]
    assert first.sender.username == "alice"
    assert first.receiver.username == "bob"

    assert hydrated[1].offered_item.title == "carol's item 1"


@pytest.mark.asyncio
async def test_hydration_is_idempotent_and_order_independent(db, seed):
    users, items = seed.users, seed.items
    first = make_offer(users["alice"], users["bob"], items["a1"], items["b1"])
    second = make_offer(users["carol"], users["alice"], items["c1"], items["a2"])
    hydrator = OfferHydrator(ItemDirectory(db), ProfileDirectory(db))

    forward = await hydrator.hydrate_offers([first, second])
    backward = await hydrator.hydrate_offers([second, first])
    again = await hydrator.hydrate_offers([first, second])

    assert [h.wanted_item.id for h in forward] == [items["b1"], items["a2"]]
    assert [h.wanted_item.id for h in backward] == [items["a2"], items["b1"]]
    assert [(h.offered_item.id, h.wanted_item.id) for h in again] == [
        (h.offered_item.id, h.wanted_item.id) for h in forward
    ]


@pytest.mark.asyncio
async def test_missing_items_stay_unresolved(db, seed):
    users, items = seed.users, seed.items
    offer = make_offer(users["alice"], users["bob"], items["a1"], "deleted-item", ["gone"], [items["b2"]])
    hydrator = OfferHydrator(ItemDirectory(db), ProfileDirectory(db))

    [hydrated] = await hydrator.hydrate_offers([offer])

    assert hydrated.offered_item.id == items["a1"]
    assert hydrated.wanted_item is None
    assert hydrated.additional_offered_items == []
    assert [item.id for item in hydrated.additional_wanted_items] == [items["b2"]]


@pytest.mark.asyncio
async def test_hydrate_nothing(db):
    directory = CountingItems(db)
    hydrator = OfferHydrator(directory, ProfileDirectory(db))

    assert await hydrator.hydrate_offers([]) == []
    assert directory.calls == 0


@pytest.mark.asyncio
async def test_hydrate_profiles_returns_counterparties(db, seed):
    users, items = seed.users, seed.items
    offers = [
        make_offer(users["alice"], users["bob"], items["a1"], items["b1"]),
        make_offer(users["bob"], users["carol"], items["b2"], items["c1"]),
    ]
    hydrator = OfferHydrator(ItemDirectory(db), ProfileDirectory(db))

    profiles = await hydrator.hydrate_profiles(offers, users["bob"])

    assert set(profiles) == {users["alice"], users["carol"]}
    assert profiles[users["carol"]].username == "carol"


@pytest.mark.asyncio
async def test_profile_cache_avoids_refetch(db, seed):
    users, items = seed.users, seed.items
    offers = [make_offer(users["alice"], users["bob"], items["a1"], items["b1"])]
    profile_directory = CountingProfiles(db)
    cache = ProfileCache(max_size=8)
    hydrator = OfferHydrator(ItemDirectory(db), profile_directory, cache)

    await hydrator.hydrate_profiles(offers, users["alice"])
    await hydrator.hydrate_profiles(offers, users["alice"])

    assert profile_directory.calls == 1
    assert users["bob"] in cache


def test_profile_cache_evicts_least_recently_used():
    cache = ProfileCache(max_size=2)
    alice, bob, carol = (User(id=name, username=name, api_key_hash=name) for name in ("alice", "bob", "carol"))

    cache.put(alice)
    cache.put(bob)
    assert cache.get("alice") is alice
    cache.put(carol)

    assert len(cache) == 2
    assert "bob" not in cache
    assert set(cache.snapshot()) == {"alice", "carol"}


def test_profile_cache_rejects_zero_size():
    with pytest.raises(ValueError):
        ProfileCache(max_size=0)
