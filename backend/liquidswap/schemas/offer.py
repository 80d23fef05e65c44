"""
Trade offer schemas.
"""

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from liquidswap.models.offer import OfferStatus
from liquidswap.services.hydration import HydratedOffer
from liquidswap.services.negotiation_engine import CompletionResult


# Requests

class OfferCreateRequest(BaseModel):
    """Request to create a trade offer. The first id on each side is the primary item."""
    offered_item_ids: List[str] = Field(..., description="Your items, primary first")
    wanted_item_ids: List[str] = Field(..., description="Items you ask for, primary first")


class OfferRespondRequest(BaseModel):
    """Accept or reject an incoming offer."""
    accept: bool = Field(..., description="True to accept, False to reject")


class CounterOfferRequest(BaseModel):
    """Counter an incoming offer by asking for a different item."""
    new_wanted_item_id: str = Field(..., description="Item of the original sender you want instead")


class AvailabilityRequest(BaseModel):
    offered_item_ids: List[str] = Field(default_factory=list)
    wanted_item_ids: List[str] = Field(default_factory=list)


# Responses

class AvailabilityResponse(BaseModel):
    all_available: bool
    busy_offered: List[str] = []
    busy_wanted: List[str] = []
    duplicate_exists: bool = False

    class Config:
        from_attributes = True


class ItemBusyResponse(BaseModel):
    item_id: str
    busy: bool


class InterestResponse(BaseModel):
    item_id: str
    interested: bool


class PendingOfferResponse(BaseModel):
    item_id: str
    has_pending_offer: bool


class ItemSummary(BaseModel):
    """Item as shown inside an offer."""
    id: str
    owner_id: str
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None

    class Config:
        from_attributes = True


class ProfileSummary(BaseModel):
    """Public profile of a trade participant."""
    id: str
    username: str
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    trades_completed: int = 0

    class Config:
        from_attributes = True


class OfferRecord(BaseModel):
    """Stored offer record. Unknown status names read as pending."""
    id: str
    sender_id: str
    receiver_id: str
    offered_item_id: str
    wanted_item_id: str
    additional_offered_ids: List[str] = []
    additional_wanted_ids: List[str] = []
    status: OfferStatus = OfferStatus.PENDING
    sender_confirmed_completion: bool = False
    receiver_confirmed_completion: bool = False
    completed_at: Optional[datetime] = None
    countered_from_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        if v is None:
            return OfferStatus.PENDING
        return OfferStatus(v)

    @field_validator("additional_offered_ids", "additional_wanted_ids", mode="before")
    @classmethod
    def default_empty(cls, v):
        return v or []


class OfferResponse(OfferRecord):
    """Offer with its items and participants resolved."""
    offered_item: Optional[ItemSummary] = None
    wanted_item: Optional[ItemSummary] = None
    additional_offered_items: List[ItemSummary] = []
    additional_wanted_items: List[ItemSummary] = []
    sender: Optional[ProfileSummary] = None
    receiver: Optional[ProfileSummary] = None

    @classmethod
    def from_hydrated(cls, hydrated: HydratedOffer) -> "OfferResponse":
        record = OfferRecord.model_validate(hydrated.offer)
        return cls(
            **record.model_dump(),
            offered_item=_item(hydrated.offered_item),
            wanted_item=_item(hydrated.wanted_item),
            additional_offered_items=[_item(item) for item in hydrated.additional_offered_items],
            additional_wanted_items=[_item(item) for item in hydrated.additional_wanted_items],
            sender=_profile(hydrated.sender),
            receiver=_profile(hydrated.receiver),
        )


class OfferStatusResponse(BaseModel):
    offer_id: str
    status: OfferStatus


class CompletionResponse(BaseModel):
    offer_id: str
    result: CompletionResult


class CompletionStatusResponse(BaseModel):
    user_confirmed: bool
    partner_confirmed: bool
    is_complete: bool

    class Config:
        from_attributes = True


def _item(item) -> Optional[ItemSummary]:
    return ItemSummary.model_validate(item) if item is not None else None


def _profile(profile) -> Optional[ProfileSummary]:
    return ProfileSummary.model_validate(profile) if profile is not None else None
