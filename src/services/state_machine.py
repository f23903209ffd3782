"""Listing state machine: the single (status, action) -> status table.

Lifecycle:
    available --request--> available
    available --accept_request--> claimed
    claimed --confirm_deal--> deal_confirmed
    claimed --confirm_receipt--> received
    available --expire (time, via sweep)--> expired

Terminal states (received, expired, deal_confirmed) have no outgoing user
transitions. Guards on who may act live in authorization.py; this module
only answers whether a status allows an action.
"""

from enum import Enum
from typing import Optional

from src.models.listing import ListingStatus
from src.utils.errors import InvalidStateError


class LifecycleAction(str, Enum):
    """Actions that create or move a listing."""
    CREATE = "create"
    REQUEST = "request"
    ACCEPT_REQUEST = "accept_request"
    CONFIRM_DEAL = "confirm_deal"
    CONFIRM_RECEIPT = "confirm_receipt"
    EXPIRE = "expire"


TRANSITIONS: dict[tuple[Optional[ListingStatus], LifecycleAction], ListingStatus] = {
    (None, LifecycleAction.CREATE): ListingStatus.AVAILABLE,
    (ListingStatus.AVAILABLE, LifecycleAction.REQUEST): ListingStatus.AVAILABLE,
    (ListingStatus.AVAILABLE, LifecycleAction.ACCEPT_REQUEST): ListingStatus.CLAIMED,
    (ListingStatus.CLAIMED, LifecycleAction.CONFIRM_DEAL): ListingStatus.DEAL_CONFIRMED,
    (ListingStatus.CLAIMED, LifecycleAction.CONFIRM_RECEIPT): ListingStatus.RECEIVED,
    (ListingStatus.AVAILABLE, LifecycleAction.EXPIRE): ListingStatus.EXPIRED,
}

# Status each action must find the listing in
REQUIRED_STATUS: dict[LifecycleAction, Optional[ListingStatus]] = {
    action: current for (current, action) in TRANSITIONS
}

_INVALID_STATE_DETAIL: dict[LifecycleAction, str] = {
    LifecycleAction.CREATE: "Listing already exists",
    LifecycleAction.REQUEST: "Listing is not available",
    LifecycleAction.ACCEPT_REQUEST: "Listing is not available",
    LifecycleAction.CONFIRM_DEAL: "Listing must be claimed before confirming the deal",
    LifecycleAction.CONFIRM_RECEIPT: "Listing must be claimed before confirming receipt",
    LifecycleAction.EXPIRE: "Only available listings can expire",
}


def is_allowed(current: Optional[ListingStatus], action: LifecycleAction) -> bool:
    """Check whether the table has a transition for (current, action)."""
    return (current, action) in TRANSITIONS


def next_status(
    current: Optional[ListingStatus],
    action: LifecycleAction,
    listing_id: Optional[str] = None,
) -> ListingStatus:
    """Resolve the target status or raise InvalidStateError."""
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidStateError(invalid_state_detail(action), listing_id=listing_id)
    return target


def invalid_state_detail(action: LifecycleAction) -> str:
    return _INVALID_STATE_DETAIL[action]


def is_terminal(status: ListingStatus) -> bool:
    """No transition leaves this status."""
    return not any(current == status for (current, _action) in TRANSITIONS)
