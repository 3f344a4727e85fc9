"""Seven Keys Concierge API

FastAPI application serving the AI concierge: one POST per member message,
answered by a bounded tool-calling loop over the venue and booking datastore.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api.cors import CorsMiddleware, CorsPolicy
from .api.deps import get_storage_service
from .api.errors import RequestLogMiddleware, install_error_handlers
from .api.routers import conversation_router, health_router, process_message_router
from .config import DEFAULT_CORS_ORIGINS, settings
from .log import get_logger, setup_logging

setup_logging(settings.log_level, settings.log_format)
log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan - startup and shutdown logic"""
    log.info("starting", app=settings.app_name, version=settings.app_version, environment=settings.environment)
    yield
    log.info("shutting_down")
    await get_storage_service().close()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.is_development,
    lifespan=lifespan,
)

install_error_handlers(app)

# Added last runs outermost
app.add_middleware(RequestLogMiddleware)
app.add_middleware(
    CorsMiddleware,
    policy=CorsPolicy.from_origins(
        (*DEFAULT_CORS_ORIGINS, *settings.extra_cors_origins, settings.cors_default_origin),
        settings.cors_default_origin,
    ),
)

app.include_router(health_router)
app.include_router(process_message_router)
app.include_router(conversation_router)
