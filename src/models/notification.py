"""Notification delivery models."""

from typing import Optional
from pydantic import BaseModel, Field


class DeliveryResult(BaseModel):
    """Outcome of one outbound message."""
    success: bool
    message: str
    recipient: Optional[str] = Field(None, exclude=True, description="Recipient address; kept out of API bodies")
    attempts: int = Field(default=0, ge=0)


class EmailStatus(BaseModel):
    """Best-effort summary of the notifications sent for one transition."""
    success: bool = True
    message: str = "No notifications sent"
    deliveries: list[DeliveryResult] = Field(default_factory=list)

    @classmethod
    def summarize(cls, deliveries: list[DeliveryResult]) -> "EmailStatus":
        if not deliveries:
            return cls()
        failed = [d for d in deliveries if not d.success]
        if not failed:
            message = f"{len(deliveries)} notification(s) sent"
        else:
            message = f"{len(failed)} of {len(deliveries)} notification(s) failed"
        return cls(success=not failed, message=message, deliveries=deliveries)
