"""
Dependency injection providers for the CityBridge API.

Route handlers never reach into app.state themselves; they declare one of
these providers and receive the component from the ApplicationContainer.
"""

from fastapi import Request

from .container import ApplicationContainer
from .persistence.repositories import (
    ConnectionRepository,
    MessageRepository,
    NotificationRepository,
    PostRepository,
    UserRepository,
)
from .realtime.message_relay import MessageRelay
from .realtime.notification_dispatcher import NotificationDispatcher
from .realtime.presence_registry import PresenceRegistry


def get_container(request: Request) -> ApplicationContainer:
    """
    Get the application container from request state.

    Raises:
        RuntimeError: If the lifespan did not attach a container
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("ApplicationContainer not found in app.state - ensure it is initialized in lifespan")
    return container


def get_user_repository(request: Request) -> UserRepository:
    return get_container(request).user_repository


def get_connection_repository(request: Request) -> ConnectionRepository:
    return get_container(request).connection_repository


def get_message_repository(request: Request) -> MessageRepository:
    return get_container(request).message_repository


def get_notification_repository(request: Request) -> NotificationRepository:
    return get_container(request).notification_repository


def get_post_repository(request: Request) -> PostRepository:
    return get_container(request).post_repository


def get_presence_registry(request: Request) -> PresenceRegistry:
    return get_container(request).presence


def get_message_relay(request: Request) -> MessageRelay:
    return get_container(request).message_relay


def get_notification_dispatcher(request: Request) -> NotificationDispatcher:
    return get_container(request).notification_dispatcher
