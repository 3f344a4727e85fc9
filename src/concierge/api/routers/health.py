"""Health check router

Endpoints:
- GET /health: Service health status and metadata

Liveness only: does not touch Redis, the datastore or the model provider.
"""

from fastapi import APIRouter

from ...config import settings
from ..contracts import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """API health check"""
    return HealthResponse(status="healthy", service="concierge", version=settings.app_version)
