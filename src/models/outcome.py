"""Operation results returned by the lifecycle engine and the API surface."""

from typing import Optional
from pydantic import BaseModel, Field

from src.models.listing import Listing
from src.models.notification import EmailStatus
from src.utils.errors import LifecycleError


class LifecycleOutcome(BaseModel):
    """Committed listing plus the notification summary for the transition."""
    listing: Listing
    email_status: EmailStatus = Field(default_factory=EmailStatus)


class OperationResult(BaseModel):
    """Tagged result: either a listing or an error kind, never both."""
    ok: bool
    listing: Optional[dict] = None
    email_status: Optional[EmailStatus] = None
    error: Optional[dict] = None

    @classmethod
    def success(cls, outcome: LifecycleOutcome) -> "OperationResult":
        return cls(ok=True, listing=outcome.listing.to_api(), email_status=outcome.email_status)

    @classmethod
    def failure(cls, error: LifecycleError) -> "OperationResult":
        return cls(ok=False, error=error.to_dict())

    def to_api(self) -> dict:
        if not self.ok:
            return {"ok": False, "error": self.error}
        return {
            "ok": True,
            "listing": self.listing,
            "emailStatus": self.email_status.model_dump() if self.email_status else None,
        }
