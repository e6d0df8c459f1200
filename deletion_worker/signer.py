"""
Short-lived bearer tokens for the remote deletion endpoint.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

ALGORITHM = "HS256"
TOKEN_SUBJECT = "delete-files"
DEFAULT_TTL_SECONDS = 300


class SigningError(ValueError):
    """Raised when a token cannot be created or does not verify."""


def sign_token(
    secret: str,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    *,
    now: Optional[datetime] = None,
) -> str:
    """
    Create a signed JWT that the deletion endpoint accepts until it expires.

    Args:
        secret: Shared secret known to the deletion endpoint.
        ttl_seconds: Validity window of the token.
        now: Issue time, defaults to the current UTC time.

    Returns:
        The encoded token.

    Raises:
        SigningError: If the secret is empty, the TTL is not positive, or encoding fails.
    """
    if not secret:
        raise SigningError("A token secret is required to sign deletion requests")
    if ttl_seconds <= 0:
        raise SigningError(f"Token TTL must be positive, got {ttl_seconds}")

    issued_at = now or datetime.now(timezone.utc)
    to_encode = {
        "sub": TOKEN_SUBJECT,
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=ttl_seconds),
    }
    try:
        return jwt.encode(to_encode, secret, algorithm=ALGORITHM)
    except JWTError as exc:
        raise SigningError(f"Failed to sign token: {exc}") from exc


def verify_token(token: str, secret: str) -> Dict[str, Any]:
    """Decode a token the way the endpoint does; expired or tampered tokens raise SigningError."""
    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise SigningError(f"Invalid token: {exc}") from exc
