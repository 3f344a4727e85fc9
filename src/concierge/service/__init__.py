"""Service layer - infrastructure adapters and the per-request turn runner."""

from .auth import AuthenticatedUser, Authenticator, SupabaseAuthenticator
from .concierge import ChatMirror, ConciergeReply, ConciergeService, create_concierge_service
from .conversation_store import RedisConversationStore
from .gateway import SupabaseGateway
from .storage import DatabaseConfig, MemoryStoreConfig, StorageService, create_storage_service

__all__ = [
    "AuthenticatedUser",
    "Authenticator",
    "ChatMirror",
    "ConciergeReply",
    "ConciergeService",
    "DatabaseConfig",
    "MemoryStoreConfig",
    "RedisConversationStore",
    "StorageService",
    "SupabaseAuthenticator",
    "SupabaseGateway",
    "create_concierge_service",
    "create_storage_service",
]
