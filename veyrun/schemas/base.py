"""Foundation types for the veyrun engine."""

from typing import TypeAlias

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

TabId: TypeAlias = int
"""Identifier of a browsing tab as assigned by the host browser."""


class BaseVeyrunModel(BaseModel):
    """Base class for all veyrun models with camelCase JSON serialization.

    All Pydantic models in the package should inherit from this class.
    Do NOT repeat model_config in individual models.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict:
        """Dump to the camelCase dict shape sent over the message channel."""
        return self.model_dump(by_alias=True, exclude_none=True)
