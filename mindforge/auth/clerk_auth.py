"""
Clerk Session Authentication
============================

Verifies the Clerk session JWT sent as ``Authorization: Bearer <token>``
(or the ``__session`` cookie set by Clerk's frontend SDK).

    - RS256 signature checked against the instance JWKS (PyJWKClient,
      keys cached in-process)
    - ``exp`` / ``nbf`` enforced with a small leeway; ``iss`` when
      MINDFORGE_CLERK_ISSUER is set
    - verified tokens cached in a TTLCache until the token's own expiry

Auth can only be disabled for local development (see _is_auth_enabled).
"""

import logging
import os
import time
from typing import Any, Dict, Optional

import jwt
from cachetools import TTLCache
from fastapi import HTTPException, Request, status
from pydantic import BaseModel

from mindforge.config import settings
from mindforge.core.structured_logging import user_id_var

logger = logging.getLogger(__name__)

CLOCK_SKEW_LEEWAY_S = 5
MOCK_USER_ID = "mock_user_auth_disabled"


class AuthenticatedUser(BaseModel):
    user_id: str
    session_id: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[int] = None


# Verified tokens; entries are re-checked against their exp on hit
token_cache: TTLCache = TTLCache(maxsize=1000, ttl=settings.auth_cache_ttl)

_jwks_client: Optional[jwt.PyJWKClient] = None


def _is_auth_enabled() -> bool:
    """Check if auth is enabled.

    Auth can only be disabled when BOTH conditions are met:
      1. settings.debug is True
      2. ENVIRONMENT is 'development'
    """
    if settings.auth_enabled:
        return True
    environment = os.environ.get("ENVIRONMENT", "production").lower()
    if settings.debug and environment == "development":
        logger.warning(
            "AUTH DISABLED: MINDFORGE_AUTH_ENABLED=false with debug=True and ENVIRONMENT=development. "
            "Do NOT use this in production."
        )
        return False
    logger.error(
        "Ignoring MINDFORGE_AUTH_ENABLED=false because debug=%s and ENVIRONMENT=%s. "
        "Auth disable requires debug=True AND ENVIRONMENT=development.",
        settings.debug,
        environment,
    )
    return True


def _get_jwks_client() -> jwt.PyJWKClient:
    global _jwks_client
    if _jwks_client is None:
        if not settings.clerk_jwks_url:
            logger.error("MINDFORGE_CLERK_JWKS_URL not set; cannot verify session tokens")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Authentication is not configured.",
            )
        _jwks_client = jwt.PyJWKClient(settings.clerk_jwks_url, cache_keys=True)
    return _jwks_client


def _extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if header:
        parts = header.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
        return None
    return request.cookies.get("__session")


def decode_session_token(token: str) -> Dict[str, Any]:
    """Verify a Clerk session JWT and return its claims. Raises HTTP 401."""
    try:
        signing_key = _get_jwks_client().get_signing_key_from_jwt(token)
        options = {"require": ["exp", "sub"], "verify_aud": False}
        kwargs: Dict[str, Any] = {}
        if settings.clerk_issuer:
            kwargs["issuer"] = settings.clerk_issuer
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            leeway=CLOCK_SKEW_LEEWAY_S,
            options=options,
            **kwargs,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired.")
    except jwt.PyJWKClientError as exc:
        logger.warning("Session token key lookup failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session token.")
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected session token: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session token.")


async def get_current_user(request: Request) -> AuthenticatedUser:
    """FastAPI dependency: the verified Clerk user for this request."""
    if not _is_auth_enabled():
        mock_user = AuthenticatedUser(user_id=MOCK_USER_ID)
        request.state.user = mock_user
        return mock_user

    token = _extract_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    cached: Optional[AuthenticatedUser] = token_cache.get(token)
    if cached and cached.expires_at and cached.expires_at > time.time():
        request.state.user = cached
        user_id_var.set(cached.user_id)
        return cached

    claims = decode_session_token(token)
    user = AuthenticatedUser(
        user_id=claims["sub"],
        session_id=claims.get("sid"),
        email=claims.get("email"),
        expires_at=claims.get("exp"),
    )
    token_cache[token] = user
    request.state.user = user
    user_id_var.set(user.user_id)
    return user
