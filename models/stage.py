"""
Stage aggregation schemas.

StageAggregation is the single source of truth for one assembly's stage
quantities. Stage rows, rollups, reconcile validation and the risk builder
all read from it; none of them re-fold the raw activities.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import Field, field_validator

from models.base import BaseSchema, Breakdown
from models.activity import ExternalStepType, Stage, VendorRef
from models.external_step import (
    ExternalStepStatus,
    LeadTimeSource,
    StepActivitySummary,
)
from utils.number_utils import to_quantity

ZERO = Decimal("0")


class StageStats(BaseSchema):
    """Good/defect/processed/usable quantities for one stage."""

    good_arr: Breakdown = Field(default_factory=list)
    defect_arr: Breakdown = Field(default_factory=list)
    logged_defect_arr: Breakdown = Field(default_factory=list)
    reconciled_defect_arr: Breakdown = Field(default_factory=list)
    processed_arr: Breakdown = Field(default_factory=list)  # good + defect
    usable_arr: Breakdown = Field(default_factory=list)     # good
    attempts_arr: Breakdown = Field(default_factory=list)   # processed

    good_total: Decimal = ZERO
    defect_total: Decimal = ZERO
    logged_defect_total: Decimal = ZERO
    reconciled_defect_total: Decimal = ZERO
    processed_total: Decimal = ZERO
    usable_total: Decimal = ZERO
    attempts_total: Decimal = ZERO


class ExternalAggregate(BaseSchema):
    """Sent/received quantities for one vendor step type."""

    sent: Breakdown = Field(default_factory=list)
    received: Breakdown = Field(default_factory=list)
    net: Breakdown = Field(default_factory=list)   # min(sent, received)
    loss: Breakdown = Field(default_factory=list)  # max(sent - received, 0)
    sent_total: Decimal = ZERO
    received_total: Decimal = ZERO
    net_total: Decimal = ZERO
    loss_total: Decimal = ZERO


class FallbackBreakdowns(BaseSchema):
    """Persisted legacy per-stage breakdowns used when a stage has no activity."""

    cut: Breakdown = Field(default_factory=list)
    sew: Breakdown = Field(default_factory=list)
    finish: Breakdown = Field(default_factory=list)

    @field_validator("cut", "sew", "finish", mode="before")
    @classmethod
    def coerce_breakdown(cls, value: Any) -> list:
        if not isinstance(value, (list, tuple)):
            return []
        return [to_quantity(entry) for entry in value]


class FallbackTotals(BaseSchema):
    """Persisted legacy per-stage totals paired with FallbackBreakdowns."""

    cut: Decimal = ZERO
    sew: Decimal = ZERO
    finish: Decimal = ZERO

    @field_validator("cut", "sew", "finish", mode="before")
    @classmethod
    def coerce_total(cls, value: Any) -> Decimal:
        return to_quantity(value)


class StageAggregation(BaseSchema):
    """Aggregated stage quantities for one assembly."""

    assembly_id: int
    ordered_raw: Breakdown = Field(default_factory=list)
    canceled: Breakdown = Field(default_factory=list)
    ordered: Breakdown = Field(default_factory=list)  # ordered - canceled, floored at 0
    ordered_total: Decimal = ZERO
    display_arrays: dict[Stage, Breakdown] = Field(default_factory=dict)
    totals: dict[Stage, Decimal] = Field(default_factory=dict)
    stage_stats: dict[Stage, StageStats] = Field(default_factory=dict)
    external_aggregates: dict[ExternalStepType, ExternalAggregate] = Field(default_factory=dict)

    def stats(self, stage: Stage) -> StageStats:
        """StageStats for a stage (empty stats when the stage is not aggregated)."""
        return self.stage_stats.get(stage) or StageStats()

    def display(self, stage: Stage) -> Breakdown:
        return self.display_arrays.get(stage, [])

    def total(self, stage: Stage) -> Decimal:
        return self.totals.get(stage, ZERO)

    def external(self, step_type: ExternalStepType) -> ExternalAggregate:
        return self.external_aggregates.get(step_type) or ExternalAggregate()


# ===================
# GATES
# ===================

class SewGateSource(str, Enum):
    """Which signal the sew gate was derived from."""

    EXTERNAL_RECEIVED = "external_received"
    EXTERNAL_SENT = "external_sent"
    FINISH = "finish"
    SEW = "sew"
    FALLBACK_CUT = "fallback_cut"
    NONE = "none"


class SewGate(BaseSchema):
    """Ceiling on sewn quantity."""

    breakdown: Breakdown = Field(default_factory=list)
    total: Decimal = ZERO
    source: SewGateSource = SewGateSource.NONE


class ExternalGateSource(str, Enum):
    RECEIVED = "received"
    SENT = "sent"
    NONE = "none"


class ExternalGate(BaseSchema):
    """Element-wise minimum over external steps' received (else sent) vectors."""

    received: Optional[Breakdown] = None
    sent: Optional[Breakdown] = None
    gate: Optional[Breakdown] = None
    source: ExternalGateSource = ExternalGateSource.NONE


class DownstreamUsed(BaseSchema):
    """Quantity of each stage already consumed by later stages."""

    cut: Breakdown = Field(default_factory=list)
    sew: Breakdown = Field(default_factory=list)
    finish: Breakdown = Field(default_factory=list)
    pack: Breakdown = Field(default_factory=list)


# ===================
# STAGE ROWS
# ===================

class InternalStageRow(BaseSchema):
    """Order or internal stage row."""

    kind: Literal["internal"] = "internal"
    stage: str
    label: str
    breakdown: Breakdown = Field(default_factory=list)
    total: Decimal = ZERO
    loss: Optional[Breakdown] = None
    loss_total: Optional[Decimal] = None
    logged_defect_total: Optional[Decimal] = None
    hint: Optional[str] = None


class ExternalStageTotals(BaseSchema):
    sent: Decimal = ZERO
    received: Decimal = ZERO
    net: Decimal = ZERO
    loss: Decimal = ZERO


class ExternalStageRow(BaseSchema):
    """Vendor round-trip row between sew and finish."""

    kind: Literal["external"] = "external"
    stage: str = "external"
    label: str
    external_step_type: ExternalStepType
    expected: bool = False
    status: ExternalStepStatus = ExternalStepStatus.NOT_STARTED
    eta_date: Optional[date] = None
    is_late: bool = False
    vendor: Optional[VendorRef] = None
    low_confidence: bool = False
    lead_time_days: Optional[int] = None
    lead_time_source: Optional[LeadTimeSource] = None
    activities: list[StepActivitySummary] = Field(default_factory=list)
    sent: Breakdown = Field(default_factory=list)
    received: Breakdown = Field(default_factory=list)
    net: Breakdown = Field(default_factory=list)
    loss: Breakdown = Field(default_factory=list)
    totals: ExternalStageTotals = Field(default_factory=ExternalStageTotals)


StageRow = Union[InternalStageRow, ExternalStageRow]


class FinishInput(BaseSchema):
    """Ceiling for manual finish entry."""

    breakdown: Breakdown = Field(default_factory=list)
    total: Decimal = ZERO


class StageRowsResult(BaseSchema):
    """Ordered presentation rows plus the finish-input ceiling."""

    rows: list[StageRow] = Field(default_factory=list)
    finish_input: FinishInput = Field(default_factory=FinishInput)


# ===================
# ROLLUPS
# ===================

class AssemblyRollup(BaseSchema):
    """Scalar stage totals used by demand fallback and risk signals."""

    assembly_id: int
    cut_good_qty: Decimal = ZERO
    sew_good_qty: Decimal = ZERO
    finish_good_qty: Decimal = ZERO
    finish_net_qty: Decimal = ZERO
    packed_qty: Decimal = ZERO
    pack_defect_qty: Decimal = ZERO
    ready_to_pack_qty: Decimal = ZERO
    qty_sent_out_not_received: Decimal = ZERO
    sewn_available_qty: Decimal = ZERO
    sewn_available_low_confidence: bool = False
