"""Shared base model for records exchanged with the outside world."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case fields in Python, camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_output(self) -> dict[str, Any]:
        """Serialize for the dataset sink."""
        return self.model_dump(mode="json", by_alias=True)
