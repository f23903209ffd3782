"""Service configuration read from environment variables."""

import os
from typing import Optional
from pydantic import BaseModel, Field


class ServiceConfig(BaseModel):
    """Runtime settings injected into the store, notifier, geocoder and engine."""
    supabase_url: Optional[str] = Field(None, description="Supabase project URL")
    supabase_key: Optional[str] = Field(None, description="Supabase service role key")
    listings_table: str = Field(default="food_listings")
    users_table: str = Field(default="users")

    email_api_url: str = Field(default="https://api.resend.com/emails")
    email_api_key: Optional[str] = Field(None, description="Email API bearer key; delivery is skipped when unset")
    email_from: str = Field(default="Second Serve <no-reply@secondserve.app>")
    notify_max_retries: int = Field(default=2, ge=0, description="Retries after the first delivery attempt")
    notify_backoff_seconds: float = Field(default=1.0, ge=0.0, description="Linear backoff unit")
    notify_timeout_seconds: float = Field(default=10.0, gt=0.0)

    geocoder_url: str = Field(default="https://nominatim.openstreetmap.org")
    geocoder_user_agent: str = Field(default="SecondServe/1.0")
    geocoder_timeout_seconds: float = Field(default=5.0, gt=0.0)

    listing_default_ttl_days: int = Field(default=7, ge=0)
    conflict_retry_limit: int = Field(default=10, ge=1, description="Reload attempts after a lost conditional write")

    jwt_secret: Optional[str] = None
    jwt_refresh_secret: Optional[str] = None
    jwt_algorithm: str = Field(default="HS256")
    access_token_ttl_seconds: int = Field(default=3600, gt=0)

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Build config from the process environment."""
        env = os.environ
        return cls(
            supabase_url=env.get("SUPABASE_URL"),
            supabase_key=env.get("SUPABASE_SERVICE_ROLE_KEY"),
            listings_table=env.get("LISTINGS_TABLE", "food_listings"),
            users_table=env.get("USERS_TABLE", "users"),
            email_api_url=env.get("EMAIL_API_URL", "https://api.resend.com/emails"),
            email_api_key=env.get("EMAIL_API_KEY") or None,
            email_from=env.get("EMAIL_FROM", "Second Serve <no-reply@secondserve.app>"),
            notify_max_retries=int(env.get("NOTIFY_MAX_RETRIES", "2")),
            notify_backoff_seconds=float(env.get("NOTIFY_BACKOFF_SECONDS", "1.0")),
            notify_timeout_seconds=float(env.get("NOTIFY_TIMEOUT_SECONDS", "10")),
            geocoder_url=env.get("GEOCODER_URL", "https://nominatim.openstreetmap.org"),
            geocoder_user_agent=env.get("GEOCODER_USER_AGENT", "SecondServe/1.0"),
            geocoder_timeout_seconds=float(env.get("GEOCODER_TIMEOUT_SECONDS", "5")),
            listing_default_ttl_days=int(env.get("LISTING_DEFAULT_TTL_DAYS", "7")),
            conflict_retry_limit=int(env.get("CONFLICT_RETRY_LIMIT", "10")),
            jwt_secret=env.get("JWT_SECRET") or None,
            jwt_refresh_secret=env.get("JWT_REFRESH_SECRET") or None,
            jwt_algorithm=env.get("JWT_ALGORITHM", "HS256"),
            access_token_ttl_seconds=int(env.get("ACCESS_TOKEN_TTL_SECONDS", "3600")),
        )
