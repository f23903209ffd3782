"""Error handling utilities."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Lifecycle error taxonomy."""
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    INVALID_STATE = "INVALID_STATE"
    INVALID_INPUT = "INVALID_INPUT"
    CONFLICT = "CONFLICT"


# One stable, user-facing message per kind
ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NOT_FOUND: "Listing not found",
    ErrorKind.FORBIDDEN: "You are not allowed to perform this action",
    ErrorKind.INVALID_STATE: "Listing is not in a valid state for this action",
    ErrorKind.INVALID_INPUT: "Invalid input",
    ErrorKind.CONFLICT: "Listing was modified concurrently, reload and retry",
}


class SecondServeError(Exception):
    """Base exception for Second Serve backend."""
    pass


class LifecycleError(SecondServeError):
    """Listing lifecycle operation rejected; nothing was written."""

    kind: ErrorKind = ErrorKind.INVALID_STATE

    def __init__(self, detail: str, listing_id: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.listing_id = listing_id

    @property
    def message(self) -> str:
        return ERROR_MESSAGES[self.kind]

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "detail": self.detail,
        }


class NotFoundError(LifecycleError):
    """Entity id does not exist."""
    kind = ErrorKind.NOT_FOUND


class ForbiddenError(LifecycleError):
    """Authorization guard denied the caller."""
    kind = ErrorKind.FORBIDDEN


class InvalidStateError(LifecycleError):
    """Action is not valid for the listing's current status."""
    kind = ErrorKind.INVALID_STATE


class InvalidInputError(LifecycleError):
    """Malformed required input."""
    kind = ErrorKind.INVALID_INPUT


class ConflictError(LifecycleError):
    """Lost an atomic conditional update race."""
    kind = ErrorKind.CONFLICT


class StoreError(SecondServeError):
    """Supabase operation error."""
    pass


class AuthenticationError(SecondServeError):
    """Caller could not be authenticated."""
    pass


def error_for_kind(kind: ErrorKind, detail: str, listing_id: Optional[str] = None) -> LifecycleError:
    """Build the LifecycleError subclass matching an ErrorKind."""
    classes = {
        ErrorKind.NOT_FOUND: NotFoundError,
        ErrorKind.FORBIDDEN: ForbiddenError,
        ErrorKind.INVALID_STATE: InvalidStateError,
        ErrorKind.INVALID_INPUT: InvalidInputError,
        ErrorKind.CONFLICT: ConflictError,
    }
    return classes[kind](detail, listing_id=listing_id)
