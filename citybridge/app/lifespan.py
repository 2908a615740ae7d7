"""
Application lifecycle management for the CityBridge server.

Startup builds and initializes the ApplicationContainer (unless a test has
already attached one to app.state) and starts the rate-limit sweep task;
shutdown reverses both.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..container import ApplicationContainer
from ..structured_logging.enhanced_logging_config import get_logger, setup_enhanced_logging

logger = get_logger("citybridge.lifespan")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    config = app.state.config
    setup_enhanced_logging(config.to_logging_dict())

    container: ApplicationContainer | None = getattr(app.state, "container", None)
    owns_container = container is None
    if container is None:
        logger.info("Starting CityBridge server", host=config.server.host, port=config.server.port)
        container = ApplicationContainer(config=config)
        await container.initialize()
        app.state.container = container
    else:
        logger.info("Using pre-initialized ApplicationContainer")

    if container.rate_limiters is not None and container.rate_limiters.enabled:
        container.rate_limiters.start_sweeper()

    try:
        yield
    finally:
        logger.info("Shutting down CityBridge server")
        if container.rate_limiters is not None:
            await container.rate_limiters.stop_sweeper()
        if owns_container:
            await container.shutdown()
            app.state.container = None
        logger.info("CityBridge server shutdown complete")
