"""
External (vendor round-trip) step schemas.

A derived step summarizes the sent/received activities of one vendor step
type (embroidery, wash, dye) for an assembly: its status, when it is
expected back, and whether it is late.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field

from models.base import BaseSchema
from models.activity import ActivityAction, ActivityKind, ExternalStepType, VendorRef


class ExternalStepStatus(str, Enum):
    """Progress of a vendor step."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"      # Sent out, nothing received yet
    DONE = "DONE"                    # Something received back
    IMPLICIT_DONE = "IMPLICIT_DONE"  # No events, but finish already recorded


class LeadTimeSource(str, Enum):
    """Where a step's lead time came from."""

    COSTING = "COSTING"
    PRODUCT = "PRODUCT"
    COMPANY = "COMPANY"


class StepActivitySummary(BaseSchema):
    """Activity line shown in a step's drawer."""

    id: Optional[int] = None
    action: Optional[ActivityAction] = None
    kind: Optional[ActivityKind] = None
    activity_date: Optional[date] = None
    quantity: Optional[Decimal] = None
    vendor: Optional[VendorRef] = None


class DerivedExternalStep(BaseSchema):
    """Status and timing of one vendor step for one assembly."""

    type: ExternalStepType
    label: str
    expected: bool = Field(False, description="Step is called for by the BOM costings")
    status: ExternalStepStatus = ExternalStepStatus.NOT_STARTED
    sent_date: Optional[date] = None
    received_date: Optional[date] = None
    qty_out: Optional[Decimal] = None
    qty_in: Optional[Decimal] = None
    defect_qty: Optional[Decimal] = None
    vendor: Optional[VendorRef] = None
    eta_date: Optional[date] = None
    lead_time_days: Optional[int] = None
    lead_time_source: Optional[LeadTimeSource] = None
    is_late: bool = False
    low_confidence: bool = Field(
        False,
        description="Step progressed but no sew output recorded yet"
    )
    inferred_start_date: Optional[date] = None
    inferred_end_date: Optional[date] = None
    activities: list[StepActivitySummary] = Field(default_factory=list)

    @property
    def is_open(self) -> bool:
        """Not started or still at the vendor."""
        return self.status in (ExternalStepStatus.NOT_STARTED, ExternalStepStatus.IN_PROGRESS)
