"""
In-process presence registry.

Maps each online user to the single connection that can reach them, plus a
last-seen timestamp. A user is online exactly when they have an entry in the
connection map. Nothing here is persisted; a restart starts empty, and a
second server process would have its own independent view.

All mutations are plain synchronous code, so on one event loop they are
atomic with respect to each other. Sends are await points and the registry
may change while they are in flight.
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..structured_logging.enhanced_logging_config import get_logger
from .envelope import EventSequencer, build_event

logger = get_logger(__name__)


@dataclass
class ConnectionHandle:
    """One live realtime session bound to one authenticated user."""

    user_id: uuid.UUID
    websocket: Any
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    async def send_event(self, event: dict[str, Any]) -> None:
        await self.websocket.send_json(event)


class PresenceRegistry:
    """
    Registry of the newest connection per user.

    Registering a second connection for a user replaces the mapping. The older
    connection stays open but is no longer reachable through the registry, and
    its later unregister call leaves the newer mapping alone.
    """

    def __init__(
        self,
        sequencer: EventSequencer | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._connections: dict[uuid.UUID, ConnectionHandle] = {}
        self._last_seen: dict[uuid.UUID, datetime] = {}
        self._sequencer = sequencer or EventSequencer()
        self._now_provider = now_provider or (lambda: datetime.now(UTC))

    def register(self, handle: ConnectionHandle) -> ConnectionHandle | None:
        """
        Make handle the reachable connection for its user.

        Returns:
            The connection it superseded, if the user was already online
        """
        previous = self._connections.get(handle.user_id)
        self._connections[handle.user_id] = handle
        self._last_seen[handle.user_id] = self._now_provider()
        if previous is not None:
            logger.info(
                "Connection superseded by newer session",
                user_id=str(handle.user_id),
                previous_connection_id=previous.connection_id,
                connection_id=handle.connection_id,
            )
        return previous

    def unregister(self, handle: ConnectionHandle) -> bool:
        """
        Remove handle if it is still the user's current connection.

        Returns:
            True when the user went offline as a result
        """
        current = self._connections.get(handle.user_id)
        if current is None or current.connection_id != handle.connection_id:
            logger.debug(
                "Ignoring unregister of non-current connection",
                user_id=str(handle.user_id),
                connection_id=handle.connection_id,
            )
            return False
        del self._connections[handle.user_id]
        self._last_seen.pop(handle.user_id, None)
        return True

    def is_online(self, user_id: uuid.UUID) -> bool:
        return user_id in self._connections

    def get(self, user_id: uuid.UUID) -> ConnectionHandle | None:
        return self._connections.get(user_id)

    def mark_seen(self, user_id: uuid.UUID) -> None:
        if user_id in self._connections:
            self._last_seen[user_id] = self._now_provider()

    def last_seen(self, user_id: uuid.UUID) -> datetime | None:
        return self._last_seen.get(user_id)

    def online_user_ids(self) -> list[uuid.UUID]:
        return list(self._connections)

    def __len__(self) -> int:
        return len(self._connections)

    def build_event(self, event_type: str, data: dict[str, Any] | None = None, reply_to: str | None = None) -> dict:
        return build_event(event_type, data, sequence_number=self._sequencer.next(), reply_to=reply_to)

    async def send_to_connection(
        self,
        handle: ConnectionHandle,
        event_type: str,
        data: dict[str, Any] | None = None,
        *,
        reply_to: str | None = None,
    ) -> bool:
        """
        Push one event to a specific connection.

        Push is best effort: a failed send is logged and reported as False,
        never raised, and is not retried.
        """
        event = self.build_event(event_type, data, reply_to=reply_to)
        try:
            await handle.send_event(event)
            return True
        except Exception as e:  # pylint: disable=broad-exception-caught
            # At-most-once: the push is dropped, never retried
            logger.warning(
                "Realtime push failed",
                event_type=event_type,
                user_id=str(handle.user_id),
                connection_id=handle.connection_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def send_to_user(self, user_id: uuid.UUID, event_type: str, data: dict[str, Any] | None = None) -> bool:
        """Push to the user's current connection; False when offline or the push failed."""
        handle = self._connections.get(user_id)
        if handle is None:
            return False
        return await self.send_to_connection(handle, event_type, data)

    async def broadcast(
        self,
        event_type: str,
        data: dict[str, Any] | None = None,
        *,
        exclude_user_id: uuid.UUID | None = None,
    ) -> int:
        """
        Push to every registered connection except exclude_user_id's.

        Returns:
            Number of connections the event reached
        """
        # Snapshot: the map may change while sends are awaited
        targets = [handle for user_id, handle in self._connections.items() if user_id != exclude_user_id]
        delivered = 0
        for handle in targets:
            if await self.send_to_connection(handle, event_type, data):
                delivered += 1
        return delivered
