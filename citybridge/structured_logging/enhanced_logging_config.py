"""
Structlog-based logging configuration for the CityBridge server.

This is the main entry point for the logging system. It wires structlog on top
of the standard library logging module so that uvicorn, SQLAlchemy and our own
modules all end up in the same handlers, with sensitive-data redaction,
correlation IDs and request context bound through contextvars.

Usage:
    from citybridge.structured_logging.enhanced_logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Message relayed", sender_id=sender_id, receiver_online=True)
"""

import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any, cast

import structlog
from structlog.contextvars import merge_contextvars
from structlog.stdlib import BoundLogger, LoggerFactory

from .logging_context import (
    bind_request_context as _bind_request_context,
)
from .logging_context import (
    clear_request_context as _clear_request_context,
)
from .logging_context import (
    get_current_context as _get_current_context,
)
from .logging_processors import add_correlation_id, sanitize_sensitive_data

# Re-export context helpers so callers only need this module
bind_request_context = _bind_request_context
clear_request_context = _clear_request_context
get_current_context = _get_current_context

VALID_ENVIRONMENTS = ("local", "unit_test", "e2e_test", "production")


class _LoggingState:  # pylint: disable=too-few-public-methods
    """State container for logging initialization to avoid global statements."""

    initialized: bool = False
    signature: str | None = None


_logging_state = _LoggingState()


def detect_environment() -> str:
    """
    Detect the logging environment.

    Returns:
        "unit_test" under pytest, otherwise the LOGGING_ENVIRONMENT variable,
        falling back to "local".
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return "unit_test"
    environment = os.getenv("LOGGING_ENVIRONMENT", "local")
    return environment if environment in VALID_ENVIRONMENTS else "local"


def _build_file_handler(log_base: str, environment: str, rotation_max_bytes: int, backup_count: int) -> logging.Handler:
    log_dir = Path(log_base) / environment
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_dir / "server.log",
        maxBytes=rotation_max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def configure_enhanced_structlog(
    environment: str | None = None,
    log_level: str = "INFO",
    log_config: dict[str, Any] | None = None,
) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        environment: Environment name (auto-detected if None)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_config: Logging configuration dictionary (format, log_base, rotation, disable_logging)
    """
    if environment is None:
        environment = detect_environment()
    log_config = log_config or {}

    base_processors: list[Any] = [
        # Redaction runs first so nothing downstream ever sees a secret
        sanitize_sensitive_data,
        merge_contextvars,
        add_correlation_id,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Any
    if log_config.get("format", "human") == "json":
        renderer = structlog.processors.JSONRenderer(default=str)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    if log_config.get("disable_logging", False):
        root_logger.addHandler(logging.NullHandler())
    else:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(stream_handler)

        if environment != "unit_test" and log_config.get("log_base"):
            rotation = log_config.get("rotation", {})
            root_logger.addHandler(
                _build_file_handler(
                    log_config["log_base"],
                    environment,
                    int(rotation.get("max_bytes", 100 * 1024 * 1024)),
                    int(rotation.get("backup_count", 5)),
                )
            )

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    structlog.configure(
        processors=base_processors + [renderer],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )


def setup_enhanced_logging(config: dict[str, Any], *, force_reconfigure: bool = False) -> None:
    """
    Set up logging from the application configuration.

    Repeated calls with an unchanged configuration are no-ops unless
    force_reconfigure is set.

    Args:
        config: Configuration dictionary with a "logging" section
        force_reconfigure: When True, tear down existing handlers before reconfiguring
    """
    config_signature = json.dumps(config, sort_keys=True, default=str)

    if _logging_state.initialized and not force_reconfigure and _logging_state.signature == config_signature:
        get_logger("citybridge.structured_logging.setup").debug(
            "setup_enhanced_logging skipped; logging system already initialized"
        )
        return

    logging_config = config.get("logging", {})
    environment = logging_config.get("environment", detect_environment())
    log_level = logging_config.get("level", "INFO")

    configure_enhanced_structlog(environment, log_level, logging_config)
    _configure_uvicorn_logging()

    get_logger("citybridge.structured_logging.setup").info(
        "Logging system initialized",
        environment=environment,
        log_level=log_level,
        log_format=logging_config.get("format", "human"),
    )

    _logging_state.initialized = True
    _logging_state.signature = config_signature


def _configure_uvicorn_logging() -> None:
    """Route uvicorn's loggers through the root handlers configured above."""
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True


def get_logger(name: str) -> Any:  # Returns BoundLogger but typed as Any for flexibility
    """
    Get a structlog logger with the specified name.

    This is the public API for obtaining loggers. All application code should
    use this function rather than calling structlog.get_logger() directly.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def log_exception_once(
    bound_logger: BoundLogger,
    level: str,
    message: str,
    *,
    exc: Exception | None = None,
    mark_logged: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log an exception once, skipping exceptions that have already been logged.

    Args:
        bound_logger: Structlog bound logger instance
        level: Logging level to use (for example, "error" or "warning")
        message: Log message to emit
        exc: Optional exception to include in the log entry
        mark_logged: When True, mark the exception as logged to prevent duplicates
        **kwargs: Additional key-value pairs for structured logging
    """
    if exc is not None:
        if getattr(exc, "already_logged", False) or getattr(exc, "_already_logged", False):
            return
        kwargs.setdefault("error_type", type(exc).__name__)
        kwargs.setdefault("error", str(exc))

    log_method = getattr(bound_logger, level.lower(), bound_logger.error)
    log_method(message, **kwargs)

    if exc is not None and mark_logged:
        cast(Any, exc)._already_logged = True  # pylint: disable=protected-access
