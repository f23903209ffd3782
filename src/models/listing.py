"""Food listing models."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


FALLBACK_RECEIVER_ADDRESS = "Current Location (Geolocation)"
UNKNOWN_COUNTRY = "Unknown"


class ListingStatus(str, Enum):
    """Listing lifecycle status."""
    AVAILABLE = "available"
    CLAIMED = "claimed"
    DEAL_CONFIRMED = "deal_confirmed"
    RECEIVED = "received"
    EXPIRED = "expired"


# claimed_by is set exactly in these states
CLAIMED_STATUSES = frozenset({
    ListingStatus.CLAIMED,
    ListingStatus.DEAL_CONFIRMED,
    ListingStatus.RECEIVED,
})


def _ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _require_number(value: Any) -> Any:
    # bool is an int subclass; strings must not be coerced
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    return value


class Location(BaseModel):
    """Pickup or drop-off location."""
    model_config = ConfigDict(str_strip_whitespace=True)

    address: str = Field(..., min_length=1, description="Street address")
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def coordinates_are_numbers(cls, value: Any) -> Any:
        return _require_number(value)

    @classmethod
    def fallback(cls) -> "Location":
        """Placeholder used when a receiver location is unusable."""
        return cls(address=FALLBACK_RECEIVER_ADDRESS, latitude=0.0, longitude=0.0)


class ListingDraft(BaseModel):
    """Donor input for a new listing."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0, allow_inf_nan=False, description="Quantity in kilograms")
    location: Location
    expires_at: Optional[datetime] = Field(None, description="Requested expiry, clamped to creation time")

    @field_validator("quantity", mode="before")
    @classmethod
    def quantity_is_number(cls, value: Any) -> Any:
        return _require_number(value)

    @field_validator("expires_at")
    @classmethod
    def expires_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_utc(value)


def compute_expires_at(
    created_at: datetime,
    supplied: Optional[datetime],
    default_ttl_days: int = 7,
) -> datetime:
    """Supplied expiry clamped to created_at, or created_at + default TTL."""
    if supplied is None:
        return created_at + timedelta(days=default_ttl_days)
    return max(created_at, _ensure_utc(supplied))


class Listing(BaseModel):
    """Posted surplus-food offer."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., description="Listing ID (ULID)")
    title: str
    description: str
    quantity: float = Field(..., gt=0, allow_inf_nan=False, description="Quantity in kilograms")
    location: Location
    country: str = Field(default=UNKNOWN_COUNTRY, description="Country resolved from the address")
    posted_by: str = Field(..., description="Donor user ID")
    requested_by: list[str] = Field(default_factory=list, description="Requesting user IDs, in request order")
    claimed_by: Optional[str] = Field(None, description="Accepted receiver user ID")
    receiver_location: Optional[Location] = None
    status: ListingStatus = Field(default=ListingStatus.AVAILABLE)
    revision: int = Field(default=0, ge=0, description="Incremented on every conditional write")
    created_at: datetime
    expires_at: datetime
    deal_confirmed_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "expires_at", "deal_confirmed_at", "received_at", "updated_at")
    @classmethod
    def timestamps_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_utc(value)

    @field_validator("requested_by", mode="before")
    @classmethod
    def null_requests_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def is_past_expiry(self, now: datetime) -> bool:
        return self.expires_at < now

    def to_record(self) -> dict:
        """Store row (snake_case, JSON-safe)."""
        return self.model_dump(mode="json")

    def to_api(self) -> dict:
        """API payload (camelCase, JSON-safe)."""
        return self.model_dump(mode="json", by_alias=True)


class UserRef(BaseModel):
    """Referenced user fields materialized for a listing read."""
    id: str
    email: Optional[str] = None
    phone: Optional[str] = None


class ListingView(BaseModel):
    """Listing with its referenced users loaded explicitly."""
    listing: Listing
    donor: Optional[UserRef] = None
    claimant: Optional[UserRef] = None

    def to_api(self) -> dict:
        payload = self.listing.to_api()
        payload["donor"] = self.donor.model_dump() if self.donor else None
        payload["claimant"] = self.claimant.model_dump() if self.claimant else None
        return payload
