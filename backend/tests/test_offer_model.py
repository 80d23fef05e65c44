"""Tests for the offer status enum, state machine and stored record format."""

from datetime import datetime

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import StatementError

from liquidswap.models import Offer, OfferStatus, can_transition
from liquidswap.models.offer import OfferStatusType
from liquidswap.schemas.offer import OfferRecord


def test_unknown_status_reads_as_pending():
    assert OfferStatus("archived") == OfferStatus.PENDING
    assert OfferStatus("ACCEPTED") == OfferStatus.ACCEPTED
    assert OfferStatus(" Completed ") == OfferStatus.COMPLETED


def test_state_machine():
    assert can_transition(OfferStatus.PENDING, OfferStatus.ACCEPTED)
    assert can_transition(OfferStatus.PENDING, OfferStatus.COUNTERED)
    assert can_transition(OfferStatus.ACCEPTED, OfferStatus.COMPLETED)
    assert can_transition(OfferStatus.ACCEPTED, OfferStatus.CANCELLED)

    assert not can_transition(OfferStatus.ACCEPTED, OfferStatus.PENDING)
    assert not can_transition(OfferStatus.PENDING, OfferStatus.COMPLETED)
    for terminal in (OfferStatus.REJECTED, OfferStatus.COUNTERED, OfferStatus.CANCELLED, OfferStatus.COMPLETED):
        assert terminal.is_terminal
        assert not can_transition(terminal, OfferStatus.PENDING)


def test_record_parses_status_by_name():
    base = {
        "id": "offer-1",
        "sender_id": "u1",
        "receiver_id": "u2",
        "offered_item_id": "i1",
        "wanted_item_id": "i2",
        "created_at": datetime(2026, 1, 1),
    }

    assert OfferRecord.model_validate({**base, "status": "accepted"}).status == OfferStatus.ACCEPTED
    assert OfferRecord.model_validate({**base, "status": "on_hold"}).status == OfferStatus.PENDING
    assert OfferRecord.model_validate({**base, "status": None}).status == OfferStatus.PENDING

    record = OfferRecord.model_validate({**base, "status": "completed", "additional_offered_ids": None})
    assert record.additional_offered_ids == []
    assert record.model_dump(mode="json")["status"] == "completed"


@pytest.mark.asyncio
async def test_unknown_stored_status_loads_as_pending(engine, seed, session_factory):
    offer = await engine.create_offer(seed.users["alice"], [seed.items["a1"]], [seed.items["b1"]])

    async with session_factory() as session:
        await session.execute(
            text("UPDATE offers SET status = :status WHERE id = :id"),
            {"status": "archived", "id": offer.id},
        )
        await session.commit()

    async with session_factory() as session:
        result = await session.execute(select(Offer).where(Offer.id == offer.id))
        assert result.scalar_one().status == OfferStatus.PENDING


@pytest.mark.asyncio
async def test_status_stored_by_name(engine, seed, session_factory):
    offer = await engine.create_offer(seed.users["alice"], [seed.items["a1"]], [seed.items["b1"]])
    await engine.respond_to_offer(offer.id, seed.users["bob"], accept=True)

    async with session_factory() as session:
        result = await session.execute(text("SELECT status FROM offers WHERE id = :id"), {"id": offer.id})
        assert result.scalar_one() == "accepted"


def test_status_writes_must_be_known():
    column_type = OfferStatusType()

    assert column_type.process_bind_param(OfferStatus.ACCEPTED, None) == "accepted"
    assert column_type.process_bind_param("countered", None) == "countered"
    assert column_type.process_bind_param(None, None) is None

    for bad in ("archived", "ACCEPTED", 3):
        with pytest.raises(ValueError):
            column_type.process_bind_param(bad, None)


@pytest.mark.asyncio
async def test_unknown_status_write_is_refused(seed, session_factory):
    """A misspelled status fails the write instead of being stored as pending."""
    async with session_factory() as session:
        session.add(Offer(
            sender_id=seed.users["alice"],
            receiver_id=seed.users["bob"],
            offered_item_id=seed.items["a1"],
            wanted_item_id=seed.items["b1"],
            status="archived",
        ))
        with pytest.raises(StatementError):
            await session.flush()
        await session.rollback()

    async with session_factory() as session:
        result = await session.execute(select(Offer))
        assert result.scalars().all() == []


def test_offer_item_helpers():
    offer = Offer(
        sender_id="u1",
        receiver_id="u2",
        offered_item_id="i1",
        wanted_item_id="i2",
        additional_offered_ids=["i3"],
        additional_wanted_ids=["i4", "i5"],
    )

    assert offer.all_offered_ids == ["i1", "i3"]
    assert offer.all_wanted_ids == ["i2", "i4", "i5"]
    assert offer.party_of("u1") == "sender"
    assert offer.party_of("u2") == "receiver"
    assert offer.party_of("u3") is None
    assert offer.counterparty_of("u1") == "u2"
