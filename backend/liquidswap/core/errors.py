"""
Negotiation error taxonomy.

Every failure an engine operation can report is one of the classes below.
Each carries a stable ``code`` the API and clients switch on, a human
readable ``message`` and optional structured ``details``.
"""

from typing import Any, Dict, List, Optional


class OfferError(Exception):
    """Base class for expected negotiation failures."""

    code = "OFFER_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_detail(self) -> Dict[str, Any]:
        """Error payload in the API ``detail`` shape."""
        detail: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            detail["details"] = self.details
        return detail


# Authentication / authorization

class NotLoggedIn(OfferError):
    code = "NOT_LOGGED_IN"
    status_code = 401

    def __init__(self):
        super().__init__("You must be logged in to trade")


class NotOfferReceiver(OfferError):
    code = "NOT_OFFER_RECEIVER"
    status_code = 403

    def __init__(self, offer_id: str):
        super().__init__("Only the receiver can respond to this offer", {"offer_id": offer_id})


class NotOriginalReceiver(OfferError):
    code = "NOT_ORIGINAL_RECEIVER"
    status_code = 403

    def __init__(self, offer_id: str):
        super().__init__("Only the receiver of the original offer can counter it", {"offer_id": offer_id})


class NotParticipant(OfferError):
    code = "NOT_PARTICIPANT"
    status_code = 403

    def __init__(self, offer_id: str):
        super().__init__("You are not part of this trade", {"offer_id": offer_id})


# Validation

class InvalidItems(OfferError):
    code = "INVALID_ITEMS"
    status_code = 400

    def __init__(self, reason: str):
        super().__init__(reason)


# Contention

class RateLimited(OfferError):
    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, message: str, retry_after: float):
        super().__init__(message, {"retry_after": round(retry_after, 1)})
        self.retry_after = retry_after


class DuplicateOffer(OfferError):
    code = "DUPLICATE_OFFER"
    status_code = 409

    def __init__(self, offered_item_id: str, wanted_item_id: str):
        super().__init__(
            "You already have an active offer for these items",
            {"offered_item_id": offered_item_id, "wanted_item_id": wanted_item_id},
        )


class ItemsBusy(OfferError):
    code = "ITEMS_BUSY"
    status_code = 409

    def __init__(self, offered: List[str], wanted: List[str]):
        super().__init__(
            "Some items are already in active trades",
            {"busy_offered": list(offered), "busy_wanted": list(wanted)},
        )
        self.offered = list(offered)
        self.wanted = list(wanted)


# Relationship

class Blocked(OfferError):
    code = "BLOCKED"
    status_code = 403

    def __init__(self):
        super().__init__("Trading is not possible between these users")


# State conflict

class OfferNotFound(OfferError):
    code = "OFFER_NOT_FOUND"
    status_code = 404

    def __init__(self, offer_id: str):
        super().__init__(f"Offer not found: {offer_id}", {"offer_id": offer_id})


class OfferNotPending(OfferError):
    code = "OFFER_NOT_PENDING"
    status_code = 409

    def __init__(self, offer_id: str, current_status: str):
        super().__init__(
            f"Offer is {current_status}, it can no longer be answered",
            {"offer_id": offer_id, "current_status": current_status},
        )


class OriginalTradeInvalidStatus(OfferError):
    code = "ORIGINAL_TRADE_INVALID_STATUS"
    status_code = 409

    def __init__(self, offer_id: str, current_status: str):
        super().__init__(
            f"Only pending offers can be countered (offer is {current_status})",
            {"offer_id": offer_id, "current_status": current_status},
        )


class OfferNotCancellable(OfferError):
    code = "OFFER_NOT_CANCELLABLE"
    status_code = 409

    def __init__(self, offer_id: str, current_status: str):
        super().__init__(
            f"Offer is {current_status} and cannot be cancelled by you",
            {"offer_id": offer_id, "current_status": current_status},
        )
