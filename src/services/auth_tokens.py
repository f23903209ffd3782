"""Access/refresh token verification and principal resolution."""

import time
from typing import Optional
from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import BaseModel

from src.models.user import Principal
from src.services.supabase_client import SupabaseListingStore
from src.utils.config import ServiceConfig
from src.utils.errors import AuthenticationError, NotFoundError
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

REFRESH_TOKEN_TTL_SECONDS = 60 * 60 * 24 * 7


class PrincipalResolution(BaseModel):
    """Resolved caller, plus a fresh access token when the refresh path was used."""
    principal: Principal
    new_access_token: Optional[str] = None


def _encode(user_id: str, secret: str, algorithm: str, ttl_seconds: int) -> str:
    exp = int(time.time()) + ttl_seconds
    return jwt.encode({"sub": user_id, "exp": exp}, secret, algorithm=algorithm)


def issue_access_token(user_id: str, config: ServiceConfig, ttl_seconds: Optional[int] = None) -> str:
    if not config.jwt_secret:
        raise AuthenticationError("JWT_SECRET is not configured")
    ttl = config.access_token_ttl_seconds if ttl_seconds is None else ttl_seconds
    return _encode(user_id, config.jwt_secret, config.jwt_algorithm, ttl)


def issue_refresh_token(user_id: str, config: ServiceConfig, ttl_seconds: int = REFRESH_TOKEN_TTL_SECONDS) -> str:
    if not config.jwt_refresh_secret:
        raise AuthenticationError("JWT_REFRESH_SECRET is not configured")
    return _encode(user_id, config.jwt_refresh_secret, config.jwt_algorithm, ttl_seconds)


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> str:
    """Return the subject user ID; raises jose errors on bad or expired tokens."""
    claims = jwt.decode(token, secret, algorithms=[algorithm])
    subject = claims.get("sub")
    if not subject:
        raise JWTError("Token has no subject")
    return subject


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Authentication failed: No token provided")
    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Authentication failed: Invalid token format")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthenticationError("Authentication failed: No token provided")
    return token


async def _principal_for(store: SupabaseListingStore, user_id: str) -> Principal:
    try:
        user = await store.load_user(user_id)
    except NotFoundError:
        logger.warning("Token subject has no user record", user_id=mask_user_id(user_id))
        raise AuthenticationError("Authentication failed: User not found")
    return Principal.from_user(user)


async def resolve_principal(
    authorization: Optional[str],
    refresh_token: Optional[str],
    store: SupabaseListingStore,
    config: ServiceConfig,
) -> PrincipalResolution:
    """Verify the bearer token, falling back to the refresh token when it has expired."""
    if not config.jwt_secret:
        raise AuthenticationError("Authentication is not configured")

    token = bearer_token(authorization)
    try:
        user_id = decode_token(token, config.jwt_secret, config.jwt_algorithm)
        return PrincipalResolution(principal=await _principal_for(store, user_id))
    except ExpiredSignatureError:
        pass
    except JWTError as e:
        logger.warning("Invalid access token", error=str(e))
        raise AuthenticationError("Authentication failed: Invalid token")

    if not refresh_token:
        raise AuthenticationError("Authentication failed: Token has expired")
    if not config.jwt_refresh_secret:
        raise AuthenticationError("Authentication failed: Token has expired")

    try:
        user_id = decode_token(refresh_token, config.jwt_refresh_secret, config.jwt_algorithm)
    except JWTError as e:
        logger.warning("Invalid refresh token", error=str(e))
        raise AuthenticationError("Authentication failed: Invalid refresh token")

    principal = await _principal_for(store, user_id)
    new_token = issue_access_token(user_id, config)
    logger.info("Access token refreshed", user_id=mask_user_id(user_id))
    return PrincipalResolution(principal=principal, new_access_token=new_token)
