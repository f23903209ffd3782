"""Shared pytest fixtures and configuration."""

import os
import pytest
from freezegun import freeze_time

from src.models.user import Principal, UserRole
from src.services.lifecycle import ListingLifecycleEngine
from src.utils.config import ServiceConfig
from tests.utils.factories import create_listing_payload, create_location_data, create_user
from tests.utils.fakes import InMemoryListingStore, MutableClock, RecordingNotifier, StaticGeocoder

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("LOG_LEVEL", "DEBUG")


@pytest.fixture
def config():
    """Config with token secrets and no outbound delivery."""
    return ServiceConfig(
        supabase_url="https://test.supabase.co",
        supabase_key="test-key",
        jwt_secret="test-jwt-secret",
        jwt_refresh_secret="test-refresh-secret",
        notify_backoff_seconds=0.0,
    )


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def donor():
    return create_user(role=UserRole.DONOR)


@pytest.fixture
def receiver():
    return create_user(role=UserRole.RECEIVER)


@pytest.fixture
def other_receiver():
    return create_user(role=UserRole.RECEIVER)


@pytest.fixture
def stranger():
    return create_user(role=None)


@pytest.fixture
def store(donor, receiver, other_receiver, stranger):
    """In-memory store seeded with the four test users."""
    return InMemoryListingStore(users=[donor, receiver, other_receiver, stranger])


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def geocoder():
    return StaticGeocoder(country="Canada", address="221B Baker Street, London")


@pytest.fixture
def engine(store, notifier, geocoder, clock):
    """Lifecycle engine over in-memory collaborators."""
    return ListingLifecycleEngine(
        store=store,
        notifier=notifier,
        geocoder=geocoder,
        clock=clock,
        id_factory=iter(f"listing-{n:03d}" for n in range(1, 1000)).__next__,
    )


@pytest.fixture
def donor_principal(donor):
    return Principal.from_user(donor)


@pytest.fixture
def receiver_principal(receiver):
    return Principal.from_user(receiver)


@pytest.fixture
def other_receiver_principal(other_receiver):
    return Principal.from_user(other_receiver)


@pytest.fixture
def stranger_principal(stranger):
    return Principal.from_user(stranger)


@pytest.fixture
def location_data():
    return create_location_data()


@pytest.fixture
def listing_payload():
    """Valid create-listing body."""
    return create_listing_payload(title="Fresh bread", quantity=5)


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
