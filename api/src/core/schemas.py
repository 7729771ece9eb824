"""Shared Pydantic base for the public JSON API (camelCase on the wire)."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model serialized with camelCase aliases.

    Request bodies accept both the camelCase alias and the field name.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(ApiModel):
    """Generic message response."""

    message: str
    success: bool = True
