"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read ORM objects MUST inherit from
BaseResponseSchema. Request schemas accept camelCase aliases from the
storefront and snake_case from internal callers.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class CommissionResponse(BaseResponseSchema):
            id: UUID
            commission_amount: int
    """
    model_config = ConfigDict(
        from_attributes=True,
        json_encoders={
            UUID: str,
            datetime: lambda v: v.isoformat() if v else None,
        },
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Unknown fields are ignored so older storefront builds keep working.
    """
    model_config = ConfigDict(
        extra='ignore',
        populate_by_name=True,
        str_strip_whitespace=True,
    )
