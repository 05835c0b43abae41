"""Verification of Supabase-issued access tokens."""

from jose import jwt

from promptvault.config import settings
from promptvault.models.user import AuthUser


def decode_token(token: str) -> dict:
    """Decode and verify a Supabase access token.

    Args:
        token: Encoded JWT string from the ``Authorization`` header.

    Returns:
        Decoded payload dictionary.

    Raises:
        jose.JWTError: If the token is invalid, expired, malformed, or was
            issued for another audience.
    """
    return jwt.decode(
        token,
        settings.supabase_jwt_secret,
        algorithms=[settings.supabase_jwt_algorithm],
        audience=settings.supabase_jwt_audience,
    )


def user_from_payload(payload: dict, access_token: str | None = None) -> AuthUser | None:
    """Build the principal from verified claims; ``None`` without a subject."""
    sub = payload.get("sub")
    if not sub:
        return None
    return AuthUser(
        id=str(sub),
        email=payload.get("email"),
        role=payload.get("role") or "authenticated",
        access_token=access_token,
    )
