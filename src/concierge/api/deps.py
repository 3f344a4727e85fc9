"""API dependency wiring."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header

from ..config import settings
from ..service import (
    AuthenticatedUser,
    Authenticator,
    ConciergeService,
    DatabaseConfig,
    MemoryStoreConfig,
    StorageService,
    SupabaseAuthenticator,
    create_concierge_service,
    create_storage_service,
)


@lru_cache(maxsize=1)
def get_storage_service() -> StorageService:
    """Create storage service from config (cached singleton)."""
    return create_storage_service(
        memory_config=MemoryStoreConfig(url=settings.redis_url),
        database_config=DatabaseConfig(
            url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
        ),
    )


@lru_cache(maxsize=1)
def get_concierge_service() -> ConciergeService:
    """
    Create concierge service (cached singleton).

    Service factory handles all construction logic - deps.py is just thin DI glue.
    """
    return create_concierge_service(settings, get_storage_service())


@lru_cache(maxsize=1)
def get_authenticator() -> Authenticator:
    return SupabaseAuthenticator(get_storage_service())


async def get_current_user(
    authenticator: Annotated[Authenticator, Depends(get_authenticator)],
    authorization: Annotated[str | None, Header()] = None,
) -> AuthenticatedUser:
    """Verified member behind the ``Authorization: Bearer`` header."""
    return await authenticator.authenticate(authorization)
