"""Test data factories using Faker."""

from faker import Faker
from typing import Optional
from datetime import datetime, timedelta, timezone
from ulid import ULID

from src.models.listing import Listing, ListingStatus, Location
from src.models.user import User, UserRole

fake = Faker()


def create_user(role: Optional[UserRole] = UserRole.RECEIVER, email: Optional[str] = None) -> User:
    """Create a test user."""
    return User(
        id=str(ULID()),
        email=email or fake.unique.email(),
        phone=fake.phone_number(),
        role=role,
    )


def create_location_data() -> dict:
    """Create a valid location payload."""
    return {
        "address": fake.street_address(),
        "latitude": float(fake.latitude()),
        "longitude": float(fake.longitude()),
    }


def create_listing_payload(**overrides) -> dict:
    """Create a camelCase create-listing request body."""
    payload = {
        "title": fake.sentence(nb_words=3).rstrip("."),
        "description": fake.text(max_nb_chars=120),
        "quantity": fake.random_int(min=1, max=40),
        "location": create_location_data(),
    }
    payload.update(overrides)
    return payload


def create_listing(
    posted_by: str,
    status: ListingStatus = ListingStatus.AVAILABLE,
    created_at: Optional[datetime] = None,
    expires_in: timedelta = timedelta(days=7),
    **overrides,
) -> Listing:
    """Create a stored listing in any status."""
    created_at = created_at or datetime(2024, 12, 9, 12, 0, tzinfo=timezone.utc)
    data = {
        "id": str(ULID()),
        "title": fake.sentence(nb_words=3).rstrip("."),
        "description": fake.text(max_nb_chars=120),
        "quantity": float(fake.random_int(min=1, max=40)),
        "location": Location(**create_location_data()),
        "country": "Canada",
        "posted_by": posted_by,
        "status": status,
        "created_at": created_at,
        "expires_at": created_at + expires_in,
        "updated_at": created_at,
    }
    data.update(overrides)
    return Listing(**data)
