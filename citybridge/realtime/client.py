"""
Async Python client for the CityBridge realtime endpoint.

Used by integration tooling and bots. Replies to request frames are matched
by correlation id: every request carries a fresh request_id and the server
answers with reply_to set to it.

    client = RealtimeClient("ws://127.0.0.1:5000/api/ws", token)
    await client.connect()
    client.on("receive_message", handle_message)
    online = await client.check_user_status(friend_id)
    await client.close()
"""

import asyncio
import inspect
import json
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from ..config.models import RealtimeConfig
from ..exceptions import CityBridgeError
from ..structured_logging.enhanced_logging_config import get_logger
from .connection_lifecycle import BEARER_SUBPROTOCOL

logger = get_logger(__name__)

EventCallback = Callable[[dict[str, Any]], Awaitable[None] | None]

ERROR_REPLY_EVENTS = frozenset({"error", "message_error"})


class RealtimeClientError(CityBridgeError):
    """Client-side realtime failure."""

    log_level = "warning"


class RealtimeRequestTimeout(RealtimeClientError):
    """No reply arrived for a request within its timeout."""


class RealtimeRequestError(RealtimeClientError):
    """The server answered a request with an error event."""

    def __init__(self, message: str, event_type: str, data: dict[str, Any] | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.event_type = event_type
        self.data = data or {}


class RealtimeClient:
    """
    WebSocket client speaking the CityBridge event envelope.

    Args:
        url: ws:// or wss:// URL of the /api/ws endpoint
        token: Bearer access token, offered as the second subprotocol
        request_timeout: Default seconds to wait for a reply in request()
        connector: Coroutine factory opening the connection (websockets.connect)
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        request_timeout: float = 5.0,
        connector: Callable[..., Any] | None = None,
    ) -> None:
        self._url = url
        self._token = token
        self._request_timeout = request_timeout
        self._connector = connector or websockets.connect
        self._connection: Any = None
        self._reader_task: asyncio.Task | None = None
        self._pending: dict[str, asyncio.Future] = {}
        self._handlers: dict[str, list[EventCallback]] = defaultdict(list)

    @classmethod
    def from_config(cls, url: str, token: str, config: RealtimeConfig, **kwargs: Any) -> "RealtimeClient":
        return cls(url, token, request_timeout=config.client_request_timeout, **kwargs)

    @property
    def connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        if self._connection is not None:
            return
        self._connection = await self._connector(self._url, subprotocols=[BEARER_SUBPROTOCOL, self._token])
        self._reader_task = asyncio.create_task(self._read_loop())
        logger.info("Realtime client connected", url=self._url)

    def on(self, event_type: str, callback: EventCallback) -> None:
        """Register a callback for a server event; coroutine functions are awaited."""
        self._handlers[event_type].append(callback)

    async def emit(self, event_type: str, data: dict[str, Any] | None = None) -> None:
        """Send a fire-and-forget frame."""
        await self._send({"event_type": event_type, "data": data or {}})

    async def request(
        self,
        event_type: str,
        data: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Send a frame and wait for the reply correlated to it.

        Returns:
            The reply's data payload

        Raises:
            RealtimeRequestTimeout: No reply within the timeout
            RealtimeRequestError: The reply was an error or message_error event
        """
        request_id = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send({"event_type": event_type, "data": data or {}, "request_id": request_id})
            return await asyncio.wait_for(future, timeout if timeout is not None else self._request_timeout)
        except TimeoutError:
            raise RealtimeRequestTimeout(
                f"No reply to {event_type} within timeout",
                details={"event_type": event_type, "request_id": request_id},
            ) from None
        finally:
            self._pending.pop(request_id, None)

    async def check_user_status(self, user_id: uuid.UUID | str, timeout: float | None = None) -> bool:
        reply = await self.request("check_user_status", {"userId": str(user_id)}, timeout=timeout)
        return bool(reply.get("isOnline", False))

    async def send_message(self, receiver_id: uuid.UUID | str, content: str, timeout: float | None = None) -> dict:
        """Send a direct message and return the stored record from message_sent."""
        return await self.request("send_message", {"receiver": str(receiver_id), "content": content}, timeout=timeout)

    async def close(self) -> None:
        if self._connection is None:
            return
        connection, self._connection = self._connection, None
        await connection.close()
        if self._reader_task is not None:
            await self._reader_task
            self._reader_task = None

    async def _send(self, frame: dict[str, Any]) -> None:
        if self._connection is None:
            raise RealtimeClientError("Realtime client is not connected")
        await self._connection.send(json.dumps(frame))

    async def _read_loop(self) -> None:
        connection = self._connection
        try:
            async for raw in connection:
                await self._handle_frame(raw)
        except ConnectionClosed as e:
            logger.info("Realtime connection closed by server", code=getattr(e, "code", None))
        finally:
            self._fail_pending()

    async def _handle_frame(self, raw: str | bytes) -> None:
        try:
            event = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding non-JSON realtime frame")
            return
        if not isinstance(event, dict):
            return

        event_type = event.get("event_type", "")
        data = event.get("data") or {}

        future = self._pending.get(event.get("reply_to") or "")
        if future is not None and not future.done():
            if event_type in ERROR_REPLY_EVENTS:
                future.set_exception(
                    RealtimeRequestError(str(data.get("error", "Request failed")), event_type=event_type, data=data)
                )
            else:
                future.set_result(data)

        for callback in list(self._handlers.get(event_type, ())):
            try:
                result = callback(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:  # pylint: disable=broad-exception-caught
                # A failing callback must not stop the reader
                logger.error("Realtime event callback failed", event_type=event_type, error=str(e), exc_info=True)

    def _fail_pending(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(RealtimeClientError("Realtime connection closed before reply"))
