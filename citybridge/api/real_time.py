"""
Realtime WebSocket endpoint.

Clients connect to /api/ws with a bearer token in the "token" query
parameter, the Authorization header, or as "bearer, <token>" subprotocols.
"""

from fastapi import APIRouter, WebSocket

from ..realtime.websocket_handler import handle_websocket_connection
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

realtime_router = APIRouter(prefix="/api", tags=["realtime"])

TRY_AGAIN_LATER_CLOSE_CODE = 1013


@realtime_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    container = getattr(websocket.app.state, "container", None)
    if container is None or not container.is_initialized:
        logger.error("Realtime connection refused: application container not initialized")
        await websocket.close(code=TRY_AGAIN_LATER_CLOSE_CODE)
        return

    await handle_websocket_connection(
        websocket,
        container.connection_lifecycle,
        container.presence,
        container.event_router,
    )
