"""
Shared schema building blocks.

Records go over the wire with camelCase keys while the Python side keeps
snake_case attribute names; CamelModel provides that mapping.
"""

from datetime import UTC, datetime

from pydantic import AliasGenerator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def to_utc_iso(value: datetime) -> str:
    """Render a stored (naive UTC) or aware timestamp as ISO 8601 with a Z suffix."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase and accepting either form on input."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase keys, as sent to clients."""
        return self.model_dump(mode="json", by_alias=True)


class CountResponse(BaseModel):
    count: int


class StatusMessage(BaseModel):
    message: str
