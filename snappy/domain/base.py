"""Shared configuration for wire-format models."""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Model exchanged with the API: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        """Serialize only the fields that were explicitly set."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


def coerce_reference(value: Any) -> Any:
    """Collapse a populated document ({"_id": ..., "name": ...}) to its id."""
    if isinstance(value, dict):
        return value.get("_id") or value.get("id")
    return value
