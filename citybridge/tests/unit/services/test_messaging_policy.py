"""Tests for the block-list and privacy checks applied before a message is stored."""

import uuid

import pytest

from citybridge.exceptions import MessagingDeniedError, ResourceNotFoundError
from citybridge.models.connection import ConnectionStatus
from citybridge.models.user import MessagingPrivacy
from citybridge.tests.fakes import create_user


@pytest.mark.asyncio
async def test_open_receiver_accepts_anyone(container):
    sender = await create_user(container.user_repository)
    receiver = await create_user(container.user_repository)

    result = await container.messaging_policy.check_can_message(sender.id, receiver.id)

    assert result.id == receiver.id


@pytest.mark.asyncio
async def test_unknown_receiver(container):
    sender = await create_user(container.user_repository)

    with pytest.raises(ResourceNotFoundError) as exc_info:
        await container.messaging_policy.check_can_message(sender.id, uuid.uuid4())

    assert exc_info.value.user_friendly == "Receiver not found"


@pytest.mark.asyncio
async def test_blocked_sender_denied(container):
    sender = await create_user(container.user_repository)
    receiver = await create_user(container.user_repository)
    await container.user_repository.block(receiver.id, sender.id)

    with pytest.raises(MessagingDeniedError) as exc_info:
        await container.messaging_policy.check_can_message(sender.id, receiver.id)

    assert exc_info.value.reason == "blocked"
    assert exc_info.value.user_friendly == "Cannot send message to this user"


@pytest.mark.asyncio
async def test_block_is_directional(container):
    sender = await create_user(container.user_repository)
    receiver = await create_user(container.user_repository)
    await container.user_repository.block(sender.id, receiver.id)

    result = await container.messaging_policy.check_can_message(sender.id, receiver.id)

    assert result.id == receiver.id


@pytest.mark.asyncio
async def test_friends_only_requires_accepted_connection(container):
    sender = await create_user(container.user_repository)
    receiver = await create_user(container.user_repository, messaging_privacy=MessagingPrivacy.FRIENDS_ONLY)

    with pytest.raises(MessagingDeniedError) as exc_info:
        await container.messaging_policy.check_can_message(sender.id, receiver.id)
    assert exc_info.value.reason == "friends_only"

    connection = await container.connection_repository.create_request(sender.id, receiver.id)
    with pytest.raises(MessagingDeniedError):
        await container.messaging_policy.check_can_message(sender.id, receiver.id)

    await container.connection_repository.set_status(connection.id, ConnectionStatus.ACCEPTED)
    result = await container.messaging_policy.check_can_message(sender.id, receiver.id)
    assert result.id == receiver.id
