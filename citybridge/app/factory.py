"""
FastAPI application factory for the CityBridge server.

This module handles FastAPI app creation, middleware configuration and
router registration.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..api.blocking import blocking_router
from ..api.connections import connections_router
from ..api.messages import messages_router
from ..api.moderation import moderation_router
from ..api.notifications import notifications_router
from ..api.posts import posts_router
from ..api.real_time import realtime_router
from ..config import get_config
from ..config.models import AppConfig
from ..middleware.correlation_middleware import CorrelationMiddleware
from ..middleware.error_handling_middleware import register_error_handlers
from ..structured_logging.enhanced_logging_config import get_logger
from .lifespan import lifespan

logger = get_logger(__name__)


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration (loaded from the environment when None)

    Returns:
        FastAPI: The configured application; its container is created by the lifespan
    """
    config = config or get_config()

    app = FastAPI(
        title="CityBridge API",
        description="Realtime presence, direct messaging and notifications for CityBridge",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.container = None

    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors.allow_origins,
        allow_credentials=config.cors.allow_credentials,
        allow_methods=config.cors.allow_methods,
        allow_headers=config.cors.allow_headers,
        max_age=config.cors.max_age,
    )
    logger.info("CORS configuration", allow_origins=config.cors.allow_origins, max_age=config.cors.max_age)

    register_error_handlers(app)

    for router in (
        realtime_router,
        messages_router,
        notifications_router,
        connections_router,
        moderation_router,
        posts_router,
        blocking_router,
    ):
        app.include_router(router)

    @app.get("/health", tags=["health"])
    async def health(request: Request) -> dict:
        container = request.app.state.container
        database_ok = bool(container and container.database and await container.database.ping())
        return {
            "status": "ok" if database_ok else "degraded",
            "database": database_ok,
            "online_users": len(container.presence) if container and container.presence else 0,
        }

    return app
