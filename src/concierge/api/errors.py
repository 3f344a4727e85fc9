"""Error responses.

Every failure leaves the API as ``{"error": {"kind": ..., "message": ...}}``.
The message is always member-safe; internal detail goes to the log only.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from time import perf_counter

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..domain.exceptions import GENERIC_MESSAGE, ConciergeError
from ..log import clear_request_context, get_logger

log = get_logger(__name__)


def error_response(status_code: int, kind: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"kind": kind, "message": message}})


def describe_validation_errors(exc: RequestValidationError) -> str:
    """First problem in the payload, as ``field: reason``."""
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = ".".join(location)
        return f"{field}: {error['msg']}" if field else str(error["msg"])
    return "The request is invalid."


async def handle_concierge_error(request: Request, exc: ConciergeError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("request_failed", path=request.url.path, kind=exc.kind, error=str(exc), exc_info=exc)
    else:
        log.warning("request_rejected", path=request.url.path, kind=exc.kind, error=str(exc))
    return error_response(exc.status_code, exc.kind, exc.public_message)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = describe_validation_errors(exc)
    log.warning("request_rejected", path=request.url.path, kind="validation_error", error=message)
    return error_response(400, "validation_error", message)


HTTP_ERROR_KINDS = {404: "not_found", 405: "method_not_allowed"}


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = HTTP_ERROR_KINDS.get(exc.status_code, "validation_error")
    return error_response(exc.status_code, kind, str(exc.detail))


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Fresh log context per request, one completion line, and the last-resort 500."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        clear_request_context()
        started = perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log.exception("unhandled_error", method=request.method, path=request.url.path)
            response = error_response(500, "internal_error", GENERIC_MESSAGE)

        log.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((perf_counter() - started) * 1000, 1),
        )
        return response


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ConciergeError, handle_concierge_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, handle_http_error)  # type: ignore[arg-type]


__all__ = ["RequestLogMiddleware", "error_response", "install_error_handlers"]
