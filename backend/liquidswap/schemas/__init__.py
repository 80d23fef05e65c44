"""Pydantic schemas package."""

from liquidswap.schemas.offer import (
    OfferCreateRequest,
    OfferRespondRequest,
    CounterOfferRequest,
    AvailabilityRequest,
    AvailabilityResponse,
    ItemBusyResponse,
    InterestResponse,
    PendingOfferResponse,
    ItemSummary,
    ProfileSummary,
    OfferRecord,
    OfferResponse,
    OfferStatusResponse,
    CompletionResponse,
    CompletionStatusResponse,
)

__all__ = [
    "OfferCreateRequest",
    "OfferRespondRequest",
    "CounterOfferRequest",
    "AvailabilityRequest",
    "AvailabilityResponse",
    "ItemBusyResponse",
    "InterestResponse",
    "PendingOfferResponse",
    "ItemSummary",
    "ProfileSummary",
    "OfferRecord",
    "OfferResponse",
    "OfferStatusResponse",
    "CompletionResponse",
    "CompletionStatusResponse",
]
