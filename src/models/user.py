"""User and principal models."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Marketplace role chosen after signup."""
    DONOR = "donor"
    RECEIVER = "receiver"


class User(BaseModel):
    """Registered user (credential material is not loaded here)."""
    id: str = Field(..., description="User ID")
    email: str = Field(..., description="Notification address")
    phone: Optional[str] = Field(None, description="Contact phone")
    role: Optional[UserRole] = Field(None, description="donor, receiver, or unset for new users")


class Principal(BaseModel):
    """Authenticated caller as resolved by the auth layer."""
    id: str
    role: Optional[UserRole] = None

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, role=user.role)
