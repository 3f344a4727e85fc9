from .conversation import ConversationResponse
from .health import HealthResponse
from .process_message import ProcessMessageRequest, ProcessMessageResponse

__all__ = [
    "ConversationResponse",
    "HealthResponse",
    "ProcessMessageRequest",
    "ProcessMessageResponse",
]
