"""
Event envelope utilities for CityBridge realtime frames.

Every server frame has the same shape:
- event_type: str
- timestamp: ISO 8601 UTC with 'Z'
- sequence_number: int (monotonic per process)
- data: dict payload
- reply_to: request_id of the client frame being answered, when there is one

Client frames are {"event_type", "data", "request_id"?}.
"""

import itertools
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def utc_now_z() -> str:
    """Return current UTC time in ISO 8601 format with 'Z' suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class EventSequencer:
    """Hands out increasing sequence numbers for outbound frames."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)

    def next(self) -> int:
        return next(self._counter)


def build_event(
    event_type: str,
    data: dict[str, Any] | None = None,
    *,
    sequence_number: int,
    reply_to: str | None = None,
) -> dict[str, Any]:
    """
    Create a normalized event envelope.

    Args:
        event_type: Type of event
        data: Event data payload
        sequence_number: Sequence number from the process EventSequencer
        reply_to: request_id of the client frame this event answers

    Returns:
        JSON-ready envelope dict
    """
    event: dict[str, Any] = {
        "event_type": event_type,
        "timestamp": utc_now_z(),
        "sequence_number": sequence_number,
        "data": data or {},
    }
    if reply_to is not None:
        event["reply_to"] = reply_to
    return event


class ClientFrame(BaseModel):
    """An inbound frame from a realtime client."""

    event_type: str = Field(..., min_length=1, max_length=64)
    data: dict[str, Any] = Field(default_factory=dict)
    request_id: str | None = Field(default=None, max_length=128)
