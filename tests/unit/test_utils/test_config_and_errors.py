"""Tests for configuration loading and the error taxonomy."""

import pytest

from src.utils.config import ServiceConfig
from src.utils.errors import (
    ERROR_MESSAGES,
    ConflictError,
    ErrorKind,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    LifecycleError,
    NotFoundError,
    error_for_kind,
)


@pytest.mark.unit
def test_config_defaults(monkeypatch):
    for name in ("LISTINGS_TABLE", "EMAIL_API_KEY", "NOTIFY_MAX_RETRIES", "CONFLICT_RETRY_LIMIT"):
        monkeypatch.delenv(name, raising=False)

    config = ServiceConfig.from_env()

    assert config.listings_table == "food_listings"
    assert config.email_api_key is None
    assert config.notify_max_retries == 2
    assert config.listing_default_ttl_days == 7
    assert config.conflict_retry_limit == 10
    assert config.geocoder_user_agent == "SecondServe/1.0"


@pytest.mark.unit
def test_config_from_env(monkeypatch):
    monkeypatch.setenv("LISTINGS_TABLE", "listings_v2")
    monkeypatch.setenv("NOTIFY_BACKOFF_SECONDS", "0.25")
    monkeypatch.setenv("LISTING_DEFAULT_TTL_DAYS", "3")
    monkeypatch.setenv("EMAIL_API_KEY", "")

    config = ServiceConfig.from_env()

    assert config.listings_table == "listings_v2"
    assert config.notify_backoff_seconds == 0.25
    assert config.listing_default_ttl_days == 3
    assert config.email_api_key is None


@pytest.mark.unit
def test_config_rejects_zero_retry_limit():
    with pytest.raises(ValueError):
        ServiceConfig(conflict_retry_limit=0)


@pytest.mark.unit
@pytest.mark.parametrize("error_class,kind", [
    (NotFoundError, ErrorKind.NOT_FOUND),
    (ForbiddenError, ErrorKind.FORBIDDEN),
    (InvalidStateError, ErrorKind.INVALID_STATE),
    (InvalidInputError, ErrorKind.INVALID_INPUT),
    (ConflictError, ErrorKind.CONFLICT),
])
def test_error_kinds(error_class, kind):
    error = error_class("detail", listing_id="listing-1")

    assert isinstance(error, LifecycleError)
    assert error.kind == kind
    assert error.message == ERROR_MESSAGES[kind]
    assert error.to_dict() == {"kind": kind.value, "message": ERROR_MESSAGES[kind], "detail": "detail"}
    assert type(error_for_kind(kind, "detail")) is error_class
