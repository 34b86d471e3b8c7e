"""
Base Schema Classes for Pydantic Models

This module provides base classes that handle common patterns like Decimal and
time serialization, ensuring consistency across all response schemas.

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
"""

from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, PlainSerializer


# Money, KM and ratio columns are Numeric in the database; JSON carries them as numbers
DecimalAsFloat = Annotated[Decimal, PlainSerializer(lambda x: float(x), return_type=float)]
OptionalDecimal = Optional[DecimalAsFloat]


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Features:
    - Enables from_attributes for ORM compatibility
    - Allows population by field name or alias

    Usage:
        class TransactionSummary(BaseResponseSchema):
            transaction_id: int
            trip_type: TripType
            total_freight: DecimalAsFloat
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Multipart forms send every value as a string; field validators in the
    concrete schemas coerce them.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
        str_strip_whitespace=True,
    )


class ListResponse(BaseModel):
    """Pagination envelope shared by list endpoints."""
    total: int
    page: int
    size: int
    pages: int
