"""FastAPI authentication dependencies for route protection."""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from promptvault.auth.jwt import decode_token, user_from_payload
from promptvault.config import settings
from promptvault.gateway import DataGateway, SupabaseGateway
from promptvault.models.user import AuthUser

logger = logging.getLogger(__name__)

# Strict bearer: raises 403 automatically if no token provided
_bearer_scheme = HTTPBearer()


async def get_auth_gateway() -> DataGateway:
    """Anonymous gateway used only to ask Supabase Auth who a token belongs to."""
    return await SupabaseGateway.create()


async def resolve_user(token: str) -> AuthUser | None:
    """Verify ``token`` locally when a JWT secret is configured, else ask Supabase."""
    if settings.supabase_jwt_secret:
        try:
            payload = decode_token(token)
        except JWTError as e:
            logger.debug("Rejected access token: %s", e)
            return None
        return user_from_payload(payload, access_token=token)

    gateway = await get_auth_gateway()
    try:
        return await gateway.get_user(token)
    finally:
        await gateway.close()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> AuthUser:
    """Extract and validate the Bearer token, then return the authenticated user.

    Raises:
        HTTPException 401: If the token is invalid, expired, or has no subject.
    """
    user = await resolve_user(credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
