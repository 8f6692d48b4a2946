"""
Session token verification for the external identity provider.

The identity provider (Cognito or any OIDC-compatible issuer) signs the
tokens; this module only validates them and extracts the principal.
"""
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Optional

from jose import JWTError, jwt

from saaskit.core.config import settings


@dataclass(frozen=True)
class Principal:
    """Authenticated identity extracted from a verified token."""

    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token.

    Used by tests and local tooling; production tokens come from the
    identity provider with the same claims.

    Args:
        data: Payload data to encode in token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token
    """
    to_encode = data.copy()
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "token_use": "access"})
    if settings.AUTH_JWT_AUDIENCE:
        to_encode.setdefault("aud", settings.AUTH_JWT_AUDIENCE)
    if settings.AUTH_JWT_ISSUER:
        to_encode.setdefault("iss", settings.AUTH_JWT_ISSUER)
    return jwt.encode(to_encode, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """
    Decode and verify a JWT token.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload or None if invalid
    """
    options = {"verify_aud": settings.AUTH_JWT_AUDIENCE is not None}
    try:
        return jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
            issuer=settings.AUTH_JWT_ISSUER,
            options=options,
        )
    except JWTError:
        return None


def principal_from_token(token: str) -> Optional[Principal]:
    """Valida o token e monta o Principal; None se invalido ou sem ``sub``."""
    payload = decode_token(token)
    if payload is None:
        return None
    if payload.get("token_use", "access") != "access":
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    return Principal(
        user_id=str(user_id),
        email=payload.get("email"),
        name=payload.get("name"),
    )
