"""
Assembly risk signal schemas for the production dashboard.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from models.base import BaseSchema
from models.external_step import LeadTimeSource
from utils.date_utils import to_date
from utils.number_utils import to_quantity


class NextActionKind(str, Enum):
    """Suggested follow-up for a human."""

    SEND_OUT = "SEND_OUT"                  # Cut output exists, vendor step not started
    FOLLOW_UP_VENDOR = "FOLLOW_UP_VENDOR"  # Step at vendor and late
    RESOLVE_PO = "RESOLVE_PO"              # Material uncovered or PO timing blocks


class NextAction(BaseSchema):
    kind: NextActionKind
    label: str
    detail: Optional[str] = None


class VendorStepInfo(BaseSchema):
    """Step currently at a vendor."""

    assembly_id: int
    job_id: Optional[int] = None
    step_label: str
    vendor_name: Optional[str] = None
    eta_date: Optional[date] = None
    eta_source: Optional[LeadTimeSource] = None


class PurchaseOrderLineSummary(BaseSchema):
    """PO line linked to an assembly, used when no coverage result is supplied."""

    id: int
    purchase_order_id: Optional[int] = None
    product_id: Optional[int] = None
    eta_date: Optional[date] = None
    qty_ordered: Decimal = Decimal("0")
    qty_expected: Decimal = Decimal("0")
    qty_received: Decimal = Decimal("0")

    @field_validator("eta_date", mode="before")
    @classmethod
    def coerce_eta(cls, value: Any) -> Optional[date]:
        return to_date(value)

    @field_validator("qty_ordered", "qty_expected", "qty_received", mode="before")
    @classmethod
    def coerce_qty(cls, value: Any) -> Decimal:
        return to_quantity(value)


class PoLineEvaluation(BaseSchema):
    """Result of the PO-line-only hold check."""

    po_hold: bool = False
    po_hold_reason: Optional[str] = None
    po_blocking_eta: Optional[date] = None
    po_blocking_line_id: Optional[int] = None
    next_actions: list[NextAction] = Field(default_factory=list)


class AssemblyRiskSignals(BaseSchema):
    """Hold and next-action signals for one assembly."""

    assembly_id: int
    external_eta: Optional[date] = Field(None, description="Nearest open vendor step ETA")
    external_eta_source: Optional[LeadTimeSource] = None
    external_eta_step_label: Optional[str] = None
    has_external_late: bool = False
    external_due_soon: bool = False
    po_hold: bool = False
    po_hold_reason: Optional[str] = None
    po_blocking_eta: Optional[date] = None
    po_blocking_line_id: Optional[int] = None
    next_actions: list[NextAction] = Field(default_factory=list)
    vendor_steps: list[VendorStepInfo] = Field(default_factory=list)
