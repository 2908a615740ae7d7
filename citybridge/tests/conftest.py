"""
Test configuration and fixtures for the CityBridge test suite.

Environment variables are set before any citybridge module builds its
configuration. Every test that touches storage gets its own SQLite file
under tmp_path.
"""

import os

os.environ.setdefault("CITYBRIDGE_JWT_SECRET", "test-jwt-secret-key-for-testing-only")
os.environ.setdefault("SERVER_PORT", "54731")
os.environ.setdefault("SERVER_HOST", "127.0.0.1")
os.environ.setdefault("LOGGING_ENVIRONMENT", "unit_test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncIterator, Iterator  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from citybridge.config import reset_config  # noqa: E402
from citybridge.config.models import AppConfig, DatabaseConfig, SecurityConfig  # noqa: E402
from citybridge.container import ApplicationContainer  # noqa: E402
from citybridge.database import Database  # noqa: E402


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture(autouse=True)
def _isolated_config() -> Iterator[None]:
    reset_config()
    yield
    reset_config()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Application config pointing at a fresh SQLite file."""
    return AppConfig(database=DatabaseConfig(url=sqlite_url(tmp_path / "citybridge_test.db")))


@pytest.fixture
def security_config(app_config: AppConfig) -> SecurityConfig:
    return app_config.security


@pytest_asyncio.fixture
async def database(app_config: AppConfig) -> AsyncIterator[Database]:
    db = Database.from_config(app_config.database)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def container(app_config: AppConfig) -> AsyncIterator[ApplicationContainer]:
    """Fully initialized container; rate limit sweeps are not started."""
    app_container = ApplicationContainer(config=app_config)
    await app_container.initialize()
    yield app_container
    await app_container.shutdown()
