"""Authorization guard for listing transitions.

Pure: decides from an already-loaded listing and a resolved principal.
Identity rules are checked before status rules, so a stranger always gets
FORBIDDEN regardless of where the listing is in its lifecycle.
"""

from typing import Optional
from pydantic import BaseModel

from src.models.listing import Listing
from src.models.user import Principal
from src.services.state_machine import LifecycleAction, REQUIRED_STATUS, invalid_state_detail
from src.utils.errors import ErrorKind, LifecycleError, error_for_kind


class AuthorizationDecision(BaseModel):
    """Allow, or Deny with the error kind the caller should see."""
    allowed: bool
    kind: Optional[ErrorKind] = None
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "AuthorizationDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, kind: ErrorKind, reason: str) -> "AuthorizationDecision":
        return cls(allowed=False, kind=kind, reason=reason)

    def to_error(self, listing_id: Optional[str] = None) -> LifecycleError:
        return error_for_kind(self.kind, self.reason, listing_id=listing_id)


def _status_denial(listing: Listing, action: LifecycleAction) -> Optional[AuthorizationDecision]:
    if listing.status != REQUIRED_STATUS[action]:
        return AuthorizationDecision.deny(ErrorKind.INVALID_STATE, invalid_state_detail(action))
    return None


def authorize(
    principal: Optional[Principal],
    listing: Optional[Listing],
    action: LifecycleAction,
) -> AuthorizationDecision:
    """Decide whether principal may perform action on listing."""
    if principal is None:
        return AuthorizationDecision.deny(ErrorKind.FORBIDDEN, "Authentication required")

    if action == LifecycleAction.CREATE:
        return AuthorizationDecision.allow()

    if action == LifecycleAction.EXPIRE:
        return AuthorizationDecision.deny(ErrorKind.FORBIDDEN, "Listings expire by time only")

    if listing is None:
        return AuthorizationDecision.deny(ErrorKind.NOT_FOUND, "Listing not found")

    if action == LifecycleAction.REQUEST:
        if principal.id == listing.posted_by:
            return AuthorizationDecision.deny(ErrorKind.FORBIDDEN, "You cannot request your own listing")
        denial = _status_denial(listing, action)
        if denial:
            return denial
        if principal.id in listing.requested_by:
            return AuthorizationDecision.deny(ErrorKind.INVALID_STATE, "You have already requested this listing")
        return AuthorizationDecision.allow()

    if action == LifecycleAction.ACCEPT_REQUEST:
        if principal.id != listing.posted_by:
            return AuthorizationDecision.deny(ErrorKind.FORBIDDEN, "Only the donor can accept requests")
        denial = _status_denial(listing, action)
        if denial:
            return denial
        if not listing.requested_by:
            return AuthorizationDecision.deny(ErrorKind.INVALID_STATE, "No requests to accept")
        return AuthorizationDecision.allow()

    if action in (LifecycleAction.CONFIRM_DEAL, LifecycleAction.CONFIRM_RECEIPT):
        if listing.claimed_by is None or principal.id != listing.claimed_by:
            return AuthorizationDecision.deny(
                ErrorKind.FORBIDDEN, "Only the receiver who claimed this listing can confirm it"
            )
        denial = _status_denial(listing, action)
        if denial:
            return denial
        return AuthorizationDecision.allow()

    return AuthorizationDecision.deny(ErrorKind.INVALID_STATE, f"Unsupported action: {action.value}")


def ensure_authorized(
    principal: Optional[Principal],
    listing: Optional[Listing],
    action: LifecycleAction,
) -> None:
    """Raise the matching LifecycleError when the guard denies."""
    decision = authorize(principal, listing, action)
    if not decision.allowed:
        raise decision.to_error(listing_id=listing.id if listing else None)
