"""
Trade offer endpoints.

Engine failures are ``OfferError`` subclasses; the application's exception
handler renders them with their code and HTTP status.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from liquidswap.api.deps import get_current_user, get_negotiation_engine
from liquidswap.core.errors import OfferNotFound
from liquidswap.models.user import User
from liquidswap.services.negotiation_engine import NegotiationEngine
from liquidswap.schemas.offer import (
    OfferCreateRequest,
    OfferRespondRequest,
    CounterOfferRequest,
    AvailabilityRequest,
    AvailabilityResponse,
    ItemBusyResponse,
    InterestResponse,
    PendingOfferResponse,
    OfferResponse,
    OfferStatusResponse,
    CompletionResponse,
    CompletionStatusResponse,
)

router = APIRouter(prefix="/offers", tags=["offers"])
items_router = APIRouter(prefix="/items", tags=["items"])


@router.post("", response_model=OfferResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(
    request: OfferCreateRequest,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """
    Send a trade offer.

    The first id of each list is the primary item. The receiver is the
    owner of the primary wanted item.

    Example:
        ```json
        {
          "offered_item_ids": ["item-1"],
          "wanted_item_ids": ["item-2", "item-3"]
        }
        ```

    Returns:
        The new offer with status "pending"
    """
    offer = await engine.create_offer(
        sender_id=current_user.id,
        offered_item_ids=request.offered_item_ids,
        wanted_item_ids=request.wanted_item_ids
    )
    return await _hydrated(engine, offer.id, current_user.id)


@router.get("/incoming", response_model=List[OfferResponse])
async def list_incoming_offers(
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Pending offers waiting for your answer."""
    offers = await engine.list_incoming(current_user.id)
    return [OfferResponse.from_hydrated(offer) for offer in offers]


@router.get("/active", response_model=List[OfferResponse])
async def list_active_trades(
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Accepted and completed trades."""
    offers = await engine.list_active(current_user.id)
    return [OfferResponse.from_hydrated(offer) for offer in offers]


@router.get("/outgoing", response_model=List[OfferResponse])
async def list_outgoing_offers(
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Pending offers you sent."""
    offers = await engine.list_outgoing(current_user.id)
    return [OfferResponse.from_hydrated(offer) for offer in offers]


@router.post("/availability", response_model=AvailabilityResponse)
async def check_availability(
    request: AvailabilityRequest,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Check whether the given items are free to be traded by you."""
    result = await engine.check_availability(
        request.offered_item_ids,
        request.wanted_item_ids,
        current_user.id
    )
    return AvailabilityResponse.model_validate(result)


@router.get("/with/{partner_id}", response_model=Optional[OfferResponse])
async def get_trade_with_partner(
    partner_id: str,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Your newest pending, accepted or completed offer with another user, or null."""
    offer = await engine.get_active_trade(current_user.id, partner_id)
    if offer is None:
        return None
    return OfferResponse.from_hydrated(offer)


@router.get("/{offer_id}", response_model=OfferResponse)
async def get_offer(
    offer_id: str,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Get an offer you take part in."""
    return await _hydrated(engine, offer_id, current_user.id)


@router.post("/{offer_id}/respond", response_model=OfferStatusResponse)
async def respond_to_offer(
    offer_id: str,
    request: OfferRespondRequest,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """
    Accept or reject an offer sent to you.

    Returns:
        The offer's new status ("accepted" or "rejected")
    """
    new_status = await engine.respond_to_offer(offer_id, current_user.id, request.accept)
    return OfferStatusResponse(offer_id=offer_id, status=new_status)


@router.post("/{offer_id}/counter", response_model=OfferResponse, status_code=status.HTTP_201_CREATED)
async def counter_offer(
    offer_id: str,
    request: CounterOfferRequest,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """
    Counter an offer sent to you.

    You offer back the item that was asked of you and ask for a different
    item of the original sender. The original offer becomes "countered".
    """
    counter = await engine.create_counter_offer(offer_id, current_user.id, request.new_wanted_item_id)
    return await _hydrated(engine, counter.id, current_user.id)


@router.post("/{offer_id}/cancel", response_model=OfferStatusResponse)
async def cancel_offer(
    offer_id: str,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Cancel a pending offer you sent, or an accepted trade you take part in."""
    new_status = await engine.cancel_offer(offer_id, current_user.id)
    return OfferStatusResponse(offer_id=offer_id, status=new_status)


@router.post("/{offer_id}/confirm", response_model=CompletionResponse)
async def confirm_completion(
    offer_id: str,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """
    Confirm that an accepted trade took place.

    The trade is completed once both participants have confirmed.
    """
    result = await engine.confirm_completion(offer_id, current_user.id)
    return CompletionResponse(offer_id=offer_id, result=result)


@router.get("/{offer_id}/completion", response_model=CompletionStatusResponse)
async def get_completion_status(
    offer_id: str,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Confirmation state of a trade from your side."""
    completion = await engine.get_completion_status(offer_id, current_user.id)
    if completion is None:
        # Outsiders cannot tell an existing offer from a missing one
        raise OfferNotFound(offer_id)
    return CompletionStatusResponse.model_validate(completion)


@items_router.get("/{item_id}/busy", response_model=ItemBusyResponse)
async def is_item_busy(
    item_id: str,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Whether the item is already committed to a trade."""
    return ItemBusyResponse(item_id=item_id, busy=await engine.is_item_busy(item_id))


@items_router.get("/{item_id}/pending-offer", response_model=PendingOfferResponse)
async def has_pending_offer(
    item_id: str,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Whether you already have a pending offer asking for this item."""
    pending = await engine.has_pending_offer(current_user.id, item_id)
    return PendingOfferResponse(item_id=item_id, has_pending_offer=pending)


@items_router.post("/{item_id}/interest", response_model=InterestResponse)
async def mark_interest(
    item_id: str,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Like an item. Subject to the per-user like limit."""
    await engine.mark_interest(current_user.id, item_id)
    return InterestResponse(item_id=item_id, interested=True)


@items_router.delete("/{item_id}/interest", response_model=InterestResponse)
async def remove_interest(
    item_id: str,
    current_user: User = Depends(get_current_user),
    engine: NegotiationEngine = Depends(get_negotiation_engine)
):
    """Remove a like. Removing one that does not exist is not an error."""
    await engine.remove_interest(current_user.id, item_id)
    return InterestResponse(item_id=item_id, interested=False)


async def _hydrated(engine: NegotiationEngine, offer_id: str, user_id: str) -> OfferResponse:
    hydrated = await engine.get_offer(offer_id, user_id)
    return OfferResponse.from_hydrated(hydrated)
