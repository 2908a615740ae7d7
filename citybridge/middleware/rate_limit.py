"""
FastAPI dependency applying a named fixed-window rate limiter.

    router = APIRouter(dependencies=[Depends(rate_limit("api"))])

    @router.post("", dependencies=[Depends(rate_limit("message"))])
    async def send_message(...): ...

The key is the raw client address as the ASGI server reports it. Proxies are
not unwrapped, so all clients behind one proxy share a window.
"""

from collections.abc import Awaitable, Callable

from fastapi import Request

from ..exceptions import RateLimitError
from ..structured_logging.enhanced_logging_config import get_logger
from ..utils.error_logging import log_and_raise

logger = get_logger(__name__)

UNKNOWN_CLIENT = "unknown"


def client_key(request: Request) -> str:
    return request.client.host if request.client and request.client.host else UNKNOWN_CLIENT


def rate_limit(name: str) -> Callable[[Request], Awaitable[None]]:
    """
    Build a dependency that counts the request against limiter `name`.

    Raises:
        RateLimitError: When the client has exceeded the window (HTTP 429)
    """

    async def dependency(request: Request) -> None:
        registry = request.app.state.container.rate_limiters
        if not registry.enabled:
            return

        limiter = registry.get(name)
        key = client_key(request)
        decision = limiter.hit(key)
        if decision.allowed:
            return

        log_and_raise(
            RateLimitError,
            f"Rate limit '{name}' exceeded",
            details={"rate_limit_key": key, "count": decision.count, "limit": decision.limit},
            user_friendly=limiter.message,
            limit_type=name,
            retry_after=decision.retry_after_seconds(limiter.now()),
        )

    dependency.__name__ = f"rate_limit_{name}"
    return dependency
