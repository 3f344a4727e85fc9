"""Storage service - thin orchestrator for the Redis and Supabase clients."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from supabase import AsyncClient


class MemoryStoreConfig(BaseModel):
    """Redis connection configuration (conversation sessions)."""

    url: str

    model_config = ConfigDict(frozen=True)


class DatabaseConfig(BaseModel):
    """Hosted database configuration (venues, bookings, members, auth)."""

    url: str
    service_role_key: str

    model_config = ConfigDict(frozen=True, hide_input_in_errors=True)


class StorageService:
    """
    Thin orchestrator - lazy-loads storage clients from config.

    Responsibilities:
    - Provide Redis client for conversation history
    - Provide Supabase client for domain data and session verification
    - Lazy initialization for faster startup
    """

    def __init__(self, memory_config: MemoryStoreConfig, database_config: DatabaseConfig):
        self.memory_config = memory_config
        self.database_config = database_config
        self._memory_client: Redis | None = None
        self._database_client: AsyncClient | None = None
        self._database_lock = asyncio.Lock()

    def get_memory_client(self) -> Redis:
        """Get or create Redis client (lazy)."""
        if self._memory_client is None:
            from redis.asyncio import Redis

            self._memory_client = Redis.from_url(self.memory_config.url, decode_responses=True)
        return self._memory_client

    async def get_database_client(self) -> AsyncClient:
        """Get or create the async Supabase client (lazy, created once)."""
        if self._database_client is None:
            async with self._database_lock:
                if self._database_client is None:
                    from supabase import acreate_client

                    self._database_client = await acreate_client(
                        self.database_config.url,
                        self.database_config.service_role_key,
                    )
        return self._database_client

    async def close(self) -> None:
        if self._memory_client is not None:
            await self._memory_client.aclose()
            self._memory_client = None


def create_storage_service(memory_config: MemoryStoreConfig, database_config: DatabaseConfig) -> StorageService:
    """Factory from infrastructure configs."""
    return StorageService(memory_config, database_config)


__all__ = ["DatabaseConfig", "MemoryStoreConfig", "StorageService", "create_storage_service"]
