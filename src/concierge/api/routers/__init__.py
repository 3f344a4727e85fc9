"""API router exports"""

from .conversation import router as conversation_router
from .health import router as health_router
from .process_message import router as process_message_router

__all__ = ["conversation_router", "health_router", "process_message_router"]
