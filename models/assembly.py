"""
Assembly input schemas.

These are the read-only snapshots the data layer hands to the engine:
the assembly itself, its job dates, tolerance overrides, and the BOM
costings used for external-step expectations and fallback demand.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field, field_validator

from models.base import BaseSchema
from models.activity import ExternalStepType
from utils.date_utils import to_date
from utils.number_utils import to_optional_quantity


class SupplierLite(BaseSchema):
    """Supplier company with its default lead time."""

    id: Optional[int] = None
    name: Optional[str] = None
    default_lead_time_days: Optional[int] = None


class ProductLite(BaseSchema):
    """Product referenced by a costing or by the assembly."""

    id: Optional[int] = None
    name: Optional[str] = None
    type: Optional[str] = Field(None, description="FABRIC, TRIM, PACKAGING, RAW, ...")
    stock_tracking_enabled: Optional[bool] = None
    lead_time_days: Optional[int] = None
    external_step_type: Optional[ExternalStepType] = None
    supplier: Optional[SupplierLite] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip().upper()
        return text or None


class CostingLite(BaseSchema):
    """BOM costing line."""

    id: int
    product_id: Optional[int] = None
    quantity_per_unit: Optional[Decimal] = None
    activity_used: Optional[str] = Field(None, description="Stage that consumes the material")
    flag_is_disabled: Optional[bool] = None
    external_step_type: Optional[ExternalStepType] = None
    lead_time_days: Optional[int] = None
    product: Optional[ProductLite] = None

    @field_validator("quantity_per_unit", mode="before")
    @classmethod
    def coerce_qty(cls, value: Any) -> Optional[Decimal]:
        return to_optional_quantity(value)


class AssemblyInput(BaseSchema):
    """One assembly (work order) as seen by the evaluators."""

    id: int
    job_id: Optional[int] = None
    name: Optional[str] = None
    quantity: Optional[Decimal] = Field(None, description="Ordered unit count")
    status: Optional[str] = None
    target_date: Optional[date] = None
    drop_dead_date: Optional[date] = None
    stock_location_id: Optional[int] = None
    material_coverage_tolerance_pct: Optional[Decimal] = None
    material_coverage_tolerance_abs: Optional[Decimal] = None
    costings: list[CostingLite] = Field(default_factory=list)
    product: Optional[ProductLite] = None

    @field_validator("target_date", "drop_dead_date", mode="before")
    @classmethod
    def coerce_dates(cls, value: Any) -> Optional[date]:
        return to_date(value)

    @field_validator(
        "quantity",
        "material_coverage_tolerance_pct",
        "material_coverage_tolerance_abs",
        mode="before",
    )
    @classmethod
    def coerce_quantities(cls, value: Any) -> Optional[Decimal]:
        return to_optional_quantity(value)

    @property
    def needed_date(self) -> Optional[date]:
        """Date materials must be in hand: target date, else drop-dead date."""
        return self.target_date or self.drop_dead_date
