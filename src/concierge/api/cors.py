"""CORS policy and middleware.

The mobile client and dashboard call the API cross-origin. Every response,
including errors and preflights, carries the CORS headers: the request origin
when it is allow-listed, otherwise the configured default origin. CORS is not
authorization, so a non-listed origin is still served normally.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

from pydantic import BaseModel, ConfigDict
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

ALLOWED_HEADERS = "authorization, x-client-info, apikey, content-type"
ALLOWED_METHODS = "POST, GET, OPTIONS"


class CorsPolicy(BaseModel):
    allowed_origins: frozenset[str]
    default_origin: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_origins(cls, origins: Iterable[str], default_origin: str) -> CorsPolicy:
        return cls(allowed_origins=frozenset(origins), default_origin=default_origin)

    def origin_for(self, request_origin: str | None) -> str:
        if request_origin and request_origin in self.allowed_origins:
            return request_origin
        return self.default_origin

    def headers_for(self, request_origin: str | None) -> dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.origin_for(request_origin),
            "Access-Control-Allow-Headers": ALLOWED_HEADERS,
            "Access-Control-Allow-Methods": ALLOWED_METHODS,
            "Access-Control-Allow-Credentials": "true",
            "Vary": "Origin",
        }


class CorsMiddleware(BaseHTTPMiddleware):
    """Answers preflights directly and decorates every other response."""

    def __init__(self, app: ASGIApp, policy: CorsPolicy):
        super().__init__(app)
        self.policy = policy

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        headers = self.policy.headers_for(request.headers.get("origin"))
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response


__all__ = ["ALLOWED_HEADERS", "ALLOWED_METHODS", "CorsMiddleware", "CorsPolicy"]
