"""
Pydantic-based configuration models for the CityBridge server.

Each section is its own BaseSettings class with an environment prefix, and
AppConfig composes them. Values come from the environment and an optional
.env file.
"""

import json
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


def _parse_env_list(candidate: Any) -> list[str]:
    """Parse a string from the environment as JSON list or CSV."""
    if candidate is None:
        return []
    if isinstance(candidate, list | tuple):
        return [str(item).strip() for item in candidate if str(item).strip()]
    s = str(candidate).strip()
    if not s:
        return []
    try:
        loaded = json.loads(s)
        if isinstance(loaded, list):
            return [str(item).strip() for item in loaded if str(item).strip()]
    except json.JSONDecodeError:
        pass
    return [item.strip() for item in s.split(",") if item.strip()]


class ServerConfig(BaseSettings):
    """Server network configuration."""

    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=5000, description="Server port")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1024 <= v <= 65535:
            logger.error("Invalid server port", port=v, valid_range="1024-65535")
            raise ValueError("Port must be between 1024 and 65535")
        return v

    model_config = {"env_prefix": "SERVER_", "case_sensitive": False, "extra": "ignore"}


class DatabaseConfig(BaseSettings):
    """Database configuration."""

    url: str = Field(..., description="Primary database URL (required)")
    echo: bool = Field(default=False, description="Echo SQL statements to the log")

    # Connection pool configuration (ignored for SQLite)
    pool_size: int = Field(default=5, description="Number of connections to maintain in pool")
    max_overflow: int = Field(default=10, description="Additional connections that can be created beyond pool_size")
    pool_timeout: int = Field(default=30, description="Seconds to wait for connection from pool")

    @field_validator("url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL format - PostgreSQL (asyncpg) or SQLite (aiosqlite)."""
        if not v:
            logger.error("Database URL validation failed - empty URL")
            raise ValueError("Database URL cannot be empty")
        if not v.startswith(("postgresql", "sqlite")):
            logger.error(
                "Database URL validation failed - invalid protocol",
                url_preview=v[:50],
                expected_protocols=["postgresql", "sqlite"],
            )
            raise ValueError("Database URL must start with 'postgresql' or 'sqlite'")
        return v

    @field_validator("pool_size", "max_overflow", "pool_timeout")
    @classmethod
    def validate_pool_config(cls, v: int) -> int:
        """Validate pool configuration values are positive."""
        if v < 1:
            raise ValueError("Pool configuration values must be at least 1")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    model_config = {"env_prefix": "DATABASE_", "case_sensitive": False, "extra": "ignore"}


class SecurityConfig(BaseSettings):
    """Security-sensitive configuration."""

    jwt_secret: str = Field(..., description="Secret used to sign access tokens (required)")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60 * 24 * 7, description="Access token lifetime in minutes")

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Validate the signing secret is long enough to be meaningful."""
        if len(v) < 16:
            logger.error("JWT secret validation failed - too short", secret_length=len(v), minimum_length=16)
            raise ValueError("JWT secret must be at least 16 characters")
        return v

    @field_validator("access_token_expire_minutes")
    @classmethod
    def validate_expiry(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Token lifetime must be at least 1 minute")
        return v

    model_config = {"env_prefix": "CITYBRIDGE_", "case_sensitive": False, "extra": "ignore"}


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    environment: str = Field(default="local", description="Logging environment")
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="human", description="Log format")
    log_base: str = Field(default="logs", description="Base log directory")
    rotation_max_bytes: int = Field(default=100 * 1024 * 1024, description="Log rotation max size in bytes")
    rotation_backup_count: int = Field(default=5, description="Number of backup log files")
    disable_logging: bool = Field(default=False, description="Disable all logging")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate logging environment."""
        valid_environments = ["local", "unit_test", "e2e_test", "production"]
        if v not in valid_environments:
            logger.error("Invalid logging environment", environment=v, valid_environments=valid_environments)
            raise ValueError(f"Environment must be one of {valid_environments}, got '{v}'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}, got '{v}'")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "human"]
        if v not in valid_formats:
            raise ValueError(f"Log format must be one of {valid_formats}, got '{v}'")
        return v

    model_config = {"env_prefix": "LOGGING_", "case_sensitive": False, "extra": "ignore"}

    def to_dict(self) -> dict[str, Any]:
        """Return the dict structure expected by setup_enhanced_logging."""
        return {
            "environment": self.environment,
            "level": self.level,
            "format": self.format,
            "log_base": self.log_base,
            "rotation": {
                "max_bytes": self.rotation_max_bytes,
                "backup_count": self.rotation_backup_count,
            },
            "disable_logging": self.disable_logging,
        }


class RateLimitConfig(BaseSettings):
    """HTTP rate limiter configuration (fixed windows keyed by client address)."""

    enabled: bool = Field(default=True, description="Enforce HTTP rate limits")
    sweep_interval_seconds: int = Field(default=300, description="Seconds between expired-window sweeps")

    api_window_seconds: int = Field(default=15 * 60)
    api_max_requests: int = Field(default=100)
    api_message: str = Field(default="Too many requests from this IP")

    auth_window_seconds: int = Field(default=15 * 60)
    auth_max_requests: int = Field(default=5)
    auth_message: str = Field(default="Too many authentication attempts")

    upload_window_seconds: int = Field(default=60 * 60)
    upload_max_requests: int = Field(default=10)
    upload_message: str = Field(default="Too many uploads")

    post_window_seconds: int = Field(default=60 * 60)
    post_max_requests: int = Field(default=20)
    post_message: str = Field(default="Too many posts created")

    message_window_seconds: int = Field(default=60 * 60)
    message_max_requests: int = Field(default=50)
    message_message: str = Field(default="Too many messages sent")

    @field_validator(
        "sweep_interval_seconds",
        "api_window_seconds",
        "api_max_requests",
        "auth_window_seconds",
        "auth_max_requests",
        "upload_window_seconds",
        "upload_max_requests",
        "post_window_seconds",
        "post_max_requests",
        "message_window_seconds",
        "message_max_requests",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate window lengths and limits are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    def limiter_settings(self) -> dict[str, tuple[int, int, str]]:
        """Return (window seconds, max requests, rejection message) per named limiter."""
        return {
            name: (
                getattr(self, f"{name}_window_seconds"),
                getattr(self, f"{name}_max_requests"),
                getattr(self, f"{name}_message"),
            )
            for name in ("api", "auth", "upload", "post", "message")
        }

    model_config = {"env_prefix": "RATE_LIMIT_", "case_sensitive": False, "extra": "ignore"}


class RealtimeConfig(BaseSettings):
    """Realtime channel configuration."""

    max_message_length: int = Field(default=2000, description="Maximum direct message length in characters")
    client_request_timeout: float = Field(default=5.0, description="Seconds a client waits for a correlated reply")

    @field_validator("max_message_length")
    @classmethod
    def validate_max_message_length(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Maximum message length must be at least 1")
        return v

    @field_validator("client_request_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Client request timeout must be positive")
        return v

    model_config = {"env_prefix": "REALTIME_", "case_sensitive": False, "extra": "ignore"}


class CORSConfig(BaseSettings):
    """Cross-origin resource sharing configuration."""

    allow_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Origins permitted to access the CityBridge API",
    )
    allow_credentials: bool = Field(default=True, description="Whether credentialed requests are accepted")
    allow_methods: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        description="HTTP methods permitted by CORS responses",
    )
    allow_headers: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["Content-Type", "Authorization", "X-Requested-With", "X-Correlation-ID"],
        description="Request headers permitted by CORS responses",
    )
    max_age: int = Field(default=600, description="Seconds browsers may cache CORS preflight responses")

    @field_validator("allow_origins", "allow_methods", "allow_headers", mode="before")
    @classmethod
    def parse_list(cls, value: object) -> list[str]:
        """Accept JSON arrays or comma separated strings."""
        return _parse_env_list(value)

    @field_validator("max_age")
    @classmethod
    def validate_max_age(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_age must be non-negative")
        return value

    model_config = {"env_prefix": "CORS_", "case_sensitive": False, "extra": "ignore"}


class AppConfig(BaseSettings):
    """Top-level application configuration composed of the section models."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)  # type: ignore[arg-type]
    security: SecurityConfig = Field(default_factory=SecurityConfig)  # type: ignore[arg-type]
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    cors: CORSConfig = Field(default_factory=CORSConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False, "extra": "ignore"}

    def to_logging_dict(self) -> dict[str, Any]:
        """Config dict accepted by setup_enhanced_logging."""
        return {"logging": self.logging.to_dict()}
