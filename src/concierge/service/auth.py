"""Bearer-token verification against the hosted auth service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import httpx
from pydantic import BaseModel, ConfigDict
from supabase import AuthError as SupabaseAuthError

from ..domain.exceptions import AuthError, ConciergeError
from ..log import get_logger

if TYPE_CHECKING:
    from .storage import StorageService

log = get_logger(__name__)


class AuthenticatedUser(BaseModel):
    id: str
    email: str | None = None

    model_config = ConfigDict(frozen=True)


class Authenticator(Protocol):
    async def authenticate(self, authorization: str | None) -> AuthenticatedUser: ...


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <jwt>`` header value."""
    if not authorization:
        raise AuthError("missing Authorization header")
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Authorization header is not a bearer token")
    return token.strip()


class SupabaseAuthenticator:
    """Resolves a member session JWT to the member's id."""

    def __init__(self, storage: StorageService):
        self.storage = storage

    async def authenticate(self, authorization: str | None) -> AuthenticatedUser:
        """
        Raises:
            AuthError: missing, malformed, expired or revoked token
            ConciergeError: auth service unreachable
        """
        token = bearer_token(authorization)
        client = await self.storage.get_database_client()
        try:
            response = await client.auth.get_user(token)
        except SupabaseAuthError as exc:
            raise AuthError(f"session rejected: {exc}") from exc
        except httpx.HTTPError as exc:
            log.error("auth_service_unreachable", error=str(exc))
            raise ConciergeError(f"auth service unreachable: {exc}") from exc

        if response is None or response.user is None:
            raise AuthError("session has no user")
        return AuthenticatedUser(id=str(response.user.id), email=response.user.email)


__all__ = ["AuthenticatedUser", "Authenticator", "SupabaseAuthenticator", "bearer_token"]
