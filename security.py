"""
Security Module: Bearer Tokens for the Analysis API

Provides:
- JWT creation and validation (user identity for /analyze and /my-analyses)
- Operator token check for /reconcile-analyses
- Security response headers

Architectural Pattern: Security Utilities + Cross-Cutting Concerns
"""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from loguru import logger
from pydantic import BaseModel

from config.settings import get_settings
from core.exceptions import AuthorizationError

# Bearer scheme; missing credentials are handled by the dependencies below
bearer_scheme = HTTPBearer(auto_error=False)

ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24


def get_security_headers() -> Dict[str, str]:
    """
    Get security headers with environment-specific CSP configuration.

    Returns:
        Dict[str, str]: Security headers dictionary with appropriate CSP
    """
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "no-referrer",
    }
    if get_settings().is_production:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        headers["Content-Security-Policy"] = "default-src 'self'"
    return headers


class TokenData(BaseModel):
    """Identity carried by a validated JWT."""

    user_id: str
    expires_at: Optional[datetime] = None


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT.

    Args:
        data: Claims to encode; ``sub`` should hold the user id
        expires_delta: Optional expiration time delta

    Returns:
        str: The encoded JWT token
    """
    settings = get_settings()
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"iat": now, "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))})
    return jwt.encode(to_encode, settings.secret_key.get_secret_value(), algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenData:
    """
    Decode and validate a JWT.

    The user id is read from ``sub`` and, for tokens issued by older clients,
    from ``userId``/``user_id``.

    Raises:
        AuthorizationError: 401 if the token is invalid, expired or has no user id
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key.get_secret_value(), algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.debug(f"JWT rejected: {e}")
        raise AuthorizationError("Invalid token", status_code=401, cause=e) from e

    user_id = payload.get("sub") or payload.get("userId") or payload.get("user_id")
    if not user_id:
        raise AuthorizationError("Token has no subject", status_code=401)

    exp = payload.get("exp")
    return TokenData(
        user_id=str(user_id),
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
    )


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """User id from a valid bearer JWT; ``None`` when absent or invalid."""
    if credentials is None:
        return None
    try:
        return decode_access_token(credentials.credentials).user_id
    except AuthorizationError:
        logger.info("Ignoring invalid bearer token on anonymous endpoint")
        return None


async def require_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """User id from a bearer JWT, or 401."""
    if credentials is None:
        raise AuthorizationError("Missing token", status_code=401)
    return decode_access_token(credentials.credentials).user_id


async def require_reconcile_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> None:
    """Bearer token must equal ``RECONCILE_TOKEN``; otherwise 403."""
    expected = get_settings().reconcile_token
    if credentials is None or expected is None or not expected.get_secret_value():
        raise AuthorizationError("Forbidden", status_code=403)
    if not hmac.compare_digest(credentials.credentials.encode(), expected.get_secret_value().encode()):
        raise AuthorizationError("Forbidden", status_code=403)
