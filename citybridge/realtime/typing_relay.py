"""
Typing indicator relay.

Forwards typing/stop_typing signals to the named receiver when they are
online. Nothing is stored, acknowledged or retried; the next keystroke sends
a fresh signal anyway.
"""

import uuid
from typing import Any

from ..structured_logging.enhanced_logging_config import get_logger
from .presence_registry import ConnectionHandle, PresenceRegistry

logger = get_logger(__name__)


def _receiver_from(data: dict[str, Any]) -> uuid.UUID | None:
    raw = data.get("receiver")
    if raw is None:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


class TypingRelay:
    def __init__(self, presence: PresenceRegistry) -> None:
        self._presence = presence

    async def _forward(self, sender: ConnectionHandle, data: dict[str, Any], event_type: str) -> bool:
        receiver_id = _receiver_from(data)
        if receiver_id is None:
            logger.debug("Typing signal without a valid receiver", sender_id=str(sender.user_id))
            return False
        return await self._presence.send_to_user(receiver_id, event_type, {"userId": str(sender.user_id)})

    async def handle_typing(self, sender: ConnectionHandle, data: dict[str, Any]) -> bool:
        return await self._forward(sender, data, "user_typing")

    async def handle_stop_typing(self, sender: ConnectionHandle, data: dict[str, Any]) -> bool:
        return await self._forward(sender, data, "user_stop_typing")
