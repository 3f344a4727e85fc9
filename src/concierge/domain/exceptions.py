"""Error taxonomy for the concierge.

Every error carries a machine-readable ``kind``, the HTTP status it maps to at
the boundary, and a ``public_message`` that is safe to show to a member. The
``str()`` of an exception is the internal detail and only ever goes to logs.

Tool-level errors (InvalidArguments, ToolExecutionError) are not HTTP errors:
the registry captures them and the orchestrator hands them back to the model.
"""

from __future__ import annotations

GENERIC_MESSAGE = "Something went wrong on our side. Please try again."
TRY_AGAIN_MESSAGE = "The concierge is temporarily unavailable. Please try again in a moment."


class ConciergeError(Exception):
    """Base for every error the service raises on purpose."""

    kind: str = "internal_error"
    status_code: int = 500
    public_message: str = GENERIC_MESSAGE
    retryable: bool = False

    def __init__(self, detail: str | None = None, *, public_message: str | None = None):
        super().__init__(detail or self.public_message)
        if public_message is not None:
            self.public_message = public_message


class ConfigurationError(ConciergeError):
    """Required environment is missing or invalid at process start."""

    kind = "configuration_error"


# ---------------------------------------------------------------------------
# Boundary errors
# ---------------------------------------------------------------------------


class InvalidRequest(ConciergeError):
    kind = "validation_error"
    status_code = 400
    public_message = "The request is invalid."

    def __init__(self, detail: str):
        # Validation messages describe the caller's own payload, safe to return.
        super().__init__(detail, public_message=detail)


class AuthError(ConciergeError):
    kind = "auth_error"
    status_code = 401
    public_message = "Your session has expired. Please sign in again."


class ConversationNotFound(ConciergeError):
    kind = "not_found"
    status_code = 404
    public_message = "Conversation not found."


class ConversationBusy(ConciergeError):
    kind = "rate_limited"
    status_code = 429
    public_message = "Still working on your previous message. Please try again in a moment."
    retryable = True


class DeadlineExceeded(ConciergeError):
    kind = "timeout"
    status_code = 504
    public_message = "That took longer than expected. Please try again."
    retryable = True


# ---------------------------------------------------------------------------
# Model errors
# ---------------------------------------------------------------------------


class ModelCallError(ConciergeError):
    """Provider failure that survived the single retry."""

    kind = "model_unavailable"
    status_code = 502
    public_message = TRY_AGAIN_MESSAGE
    retryable = True


class ModelTimeout(ModelCallError):
    kind = "timeout"
    status_code = 504


class ModelRateLimited(ModelCallError):
    kind = "rate_limited"
    status_code = 429


class LoopBoundExceeded(ConciergeError):
    """The model kept asking for tools past the iteration bound.

    Never reaches the client: the orchestrator converts it into an escalation reply.
    """

    kind = "loop_bound_exceeded"

    def __init__(self, max_model_calls: int):
        super().__init__(f"model still requested tools after {max_model_calls} calls")
        self.max_model_calls = max_model_calls


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------


class StorageError(ConciergeError):
    """Session store unavailable. Retryable, distinct from ConversationNotFound."""

    kind = "storage_unavailable"
    status_code = 500
    retryable = True


class ConcurrentAppendError(StorageError):
    """Another writer appended to the conversation since it was loaded. Served as a retryable 500."""

    public_message = "Your conversation changed while we were replying. Please try again."


class MessageOrderError(ConciergeError):
    """An append would break the conversation's ordering invariants."""

    kind = "message_order"


# ---------------------------------------------------------------------------
# Tool errors (fed back to the model, not raised to HTTP)
# ---------------------------------------------------------------------------


class ToolError(ConciergeError):
    def __init__(self, detail: str, *, tool_name: str | None = None, kind: str | None = None, retryable: bool | None = None):
        super().__init__(detail)
        self.tool_name = tool_name
        if kind is not None:
            self.kind = kind
        if retryable is not None:
            self.retryable = retryable

    @property
    def message(self) -> str:
        return str(self)


class InvalidArguments(ToolError):
    """Arguments did not match the tool's schema, or the tool does not exist."""

    kind = "invalid_arguments"


class ToolExecutionError(ToolError):
    """The tool's underlying operation failed (venue not found, booking conflict, ...)."""

    kind = "tool_execution_error"


__all__ = [
    "AuthError",
    "ConciergeError",
    "ConcurrentAppendError",
    "ConfigurationError",
    "ConversationBusy",
    "ConversationNotFound",
    "DeadlineExceeded",
    "InvalidArguments",
    "InvalidRequest",
    "LoopBoundExceeded",
    "MessageOrderError",
    "ModelCallError",
    "ModelRateLimited",
    "ModelTimeout",
    "StorageError",
    "ToolError",
    "ToolExecutionError",
]
