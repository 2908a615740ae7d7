"""
Shared SQLAlchemy DeclarativeBase for all models.

All models must inherit from this Base so SQLAlchemy can resolve string
references in relationships and create_all sees every table.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import Enum as SAEnum
from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)


class Base(DeclarativeBase):
    """Shared declarative base for all CityBridge models."""

    metadata = metadata


def utc_now() -> datetime:
    """Current time as naive UTC, the form timestamps are persisted in."""
    return datetime.now(UTC).replace(tzinfo=None)


def string_enum(enum_cls: type[Enum], length: int = 32) -> Any:
    """Column type storing an Enum by value in a VARCHAR rather than a native enum."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        validate_strings=True,
        length=length,
        values_callable=lambda members: [member.value for member in members],
    )
