"""Tests for typing indicator forwarding."""

import uuid

import pytest

from citybridge.realtime.presence_registry import ConnectionHandle, PresenceRegistry
from citybridge.realtime.typing_relay import TypingRelay
from citybridge.tests.fakes import FakeWebSocket


@pytest.fixture
def setup():
    presence = PresenceRegistry()
    sender = ConnectionHandle(user_id=uuid.uuid4(), websocket=FakeWebSocket())
    receiver = ConnectionHandle(user_id=uuid.uuid4(), websocket=FakeWebSocket())
    presence.register(sender)
    presence.register(receiver)
    return TypingRelay(presence), sender, receiver


@pytest.mark.asyncio
async def test_typing_forwarded_to_online_receiver(setup):
    relay, sender, receiver = setup

    assert await relay.handle_typing(sender, {"receiver": str(receiver.user_id)}) is True

    event = receiver.websocket.sent[0]
    assert event["event_type"] == "user_typing"
    assert event["data"] == {"userId": str(sender.user_id)}
    assert sender.websocket.sent == []


@pytest.mark.asyncio
async def test_stop_typing_forwarded(setup):
    relay, sender, receiver = setup

    await relay.handle_stop_typing(sender, {"receiver": str(receiver.user_id)})

    assert receiver.websocket.event_types() == ["user_stop_typing"]


@pytest.mark.asyncio
async def test_offline_receiver_dropped_silently(setup):
    relay, sender, _ = setup

    assert await relay.handle_typing(sender, {"receiver": str(uuid.uuid4())}) is False
    assert sender.websocket.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize("data", [{}, {"receiver": "not-a-uuid"}, {"receiver": None}])
async def test_malformed_receiver_ignored(setup, data):
    relay, sender, receiver = setup

    assert await relay.handle_typing(sender, data) is False
    assert receiver.websocket.sent == []
