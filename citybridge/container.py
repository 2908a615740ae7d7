"""
Application container for CityBridge.

Owns every long-lived component: configuration, the database, repositories,
the presence registry, the realtime relays and the rate limiters. Nothing is
a module-level singleton; each FastAPI app holds exactly one container on
app.state.container.

USAGE:
    # In application startup (lifespan.py):
    container = ApplicationContainer()
    await container.initialize()
    app.state.container = container

    # In dependency injection (dependencies.py):
    def get_presence_registry(request: Request) -> PresenceRegistry:
        return request.app.state.container.presence

    # In tests:
    container = ApplicationContainer(config=test_config)
    await container.initialize()
"""

import asyncio
from typing import TYPE_CHECKING

from .structured_logging.enhanced_logging_config import get_logger

if TYPE_CHECKING:
    from .config.models import AppConfig
    from .database import Database
    from .persistence.repositories import (
        ConnectionRepository,
        MessageRepository,
        NotificationRepository,
        PostRepository,
        UserRepository,
    )
    from .realtime.connection_lifecycle import ConnectionLifecycleHandler
    from .realtime.message_relay import MessageRelay
    from .realtime.notification_dispatcher import NotificationDispatcher
    from .realtime.presence_registry import PresenceRegistry
    from .realtime.typing_relay import TypingRelay
    from .realtime.websocket_handler import RealtimeEventRouter
    from .services.messaging_policy import MessagingPolicy
    from .services.rate_limiter import RateLimiterRegistry

logger = get_logger(__name__)


class ApplicationContainer:
    """
    Dependency container for one CityBridge application.

    Services are created in initialize() in dependency order and released in
    shutdown(). Accessing a service before initialize() returns None.
    """

    def __init__(self, config: "AppConfig | None" = None):
        self.config: AppConfig | None = config

        self.database: Database | None = None

        self.user_repository: UserRepository | None = None
        self.connection_repository: ConnectionRepository | None = None
        self.message_repository: MessageRepository | None = None
        self.notification_repository: NotificationRepository | None = None
        self.post_repository: PostRepository | None = None

        self.presence: PresenceRegistry | None = None
        self.messaging_policy: MessagingPolicy | None = None
        self.notification_dispatcher: NotificationDispatcher | None = None
        self.message_relay: MessageRelay | None = None
        self.typing_relay: TypingRelay | None = None
        self.connection_lifecycle: ConnectionLifecycleHandler | None = None
        self.event_router: RealtimeEventRouter | None = None

        self.rate_limiters: RateLimiterRegistry | None = None

        self._initialized: bool = False
        self._initialization_lock = asyncio.Lock()

        logger.debug("ApplicationContainer created (not yet initialized)")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Initialize all services in dependency order.

        INITIALIZATION ORDER:
        1. Configuration
        2. Database and schema
        3. Repositories
        4. Presence registry and messaging policy
        5. Realtime services (dispatcher, relays, lifecycle, event router)
        6. Rate limiters

        Raises:
            DatabaseError: If the schema cannot be created
        """
        async with self._initialization_lock:
            if self._initialized:
                logger.debug("Container already initialized, skipping")
                return

            # pylint: disable=import-outside-toplevel
            from .config import get_config
            from .database import Database
            from .persistence.repositories import (
                ConnectionRepository,
                MessageRepository,
                NotificationRepository,
                PostRepository,
                UserRepository,
            )
            from .realtime.connection_lifecycle import ConnectionLifecycleHandler
            from .realtime.envelope import EventSequencer
            from .realtime.message_relay import MessageRelay
            from .realtime.notification_dispatcher import NotificationDispatcher
            from .realtime.presence_registry import PresenceRegistry
            from .realtime.typing_relay import TypingRelay
            from .realtime.websocket_handler import RealtimeEventRouter
            from .services.messaging_policy import MessagingPolicy
            from .services.rate_limiter import RateLimiterRegistry

            logger.info("Initializing ApplicationContainer")

            if self.config is None:
                self.config = get_config()
            config = self.config

            self.database = Database.from_config(config.database)
            await self.database.create_all()

            self.user_repository = UserRepository(self.database)
            self.connection_repository = ConnectionRepository(self.database)
            self.message_repository = MessageRepository(self.database)
            self.notification_repository = NotificationRepository(self.database)
            self.post_repository = PostRepository(self.database)

            self.presence = PresenceRegistry(sequencer=EventSequencer())
            self.messaging_policy = MessagingPolicy(self.user_repository, self.connection_repository)

            self.notification_dispatcher = NotificationDispatcher(self.notification_repository, self.presence)
            self.message_relay = MessageRelay(
                self.message_repository,
                self.presence,
                self.messaging_policy,
                max_message_length=config.realtime.max_message_length,
            )
            self.typing_relay = TypingRelay(self.presence)
            self.connection_lifecycle = ConnectionLifecycleHandler(
                self.presence,
                config.security,
                self.user_repository,
                self.notification_repository,
            )
            self.event_router = RealtimeEventRouter(self.presence, self.message_relay, self.typing_relay)

            self.rate_limiters = RateLimiterRegistry(
                config.rate_limit.limiter_settings(),
                enabled=config.rate_limit.enabled,
                sweep_interval_seconds=config.rate_limit.sweep_interval_seconds,
            )

            self._initialized = True
            logger.info("ApplicationContainer initialized", realtime_events=self.event_router.supported_events())

    async def shutdown(self) -> None:
        """Stop background tasks and release the database."""
        if not self._initialized:
            return
        logger.info("Shutting down ApplicationContainer")

        if self.rate_limiters is not None:
            await self.rate_limiters.stop_sweeper()

        if self.database is not None:
            await self.database.dispose()

        self._initialized = False
        logger.info("ApplicationContainer shutdown complete")
