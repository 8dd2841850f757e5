"""
Base schemas shared by all models.
"""

from decimal import Decimal
from pydantic import BaseModel, ConfigDict


# Quantity vector indexed by size/variant slot. Ragged lengths are padded
# with zero by services.breakdown_math only.
Breakdown = list[Decimal]


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class FrozenSchema(BaseSchema):
    """Base for immutable input records (activities, box lines)."""
    model_config = ConfigDict(frozen=True)
