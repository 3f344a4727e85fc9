"""Seven Keys concierge backend package exports."""

from .domain import ConciergeOrchestrator, ConversationHistory, ToolRegistry

__version__ = "0.1.0"

__all__ = [
    "ConciergeOrchestrator",
    "ConversationHistory",
    "ToolRegistry",
    "__version__",
]
