"""
Batch evaluation schemas: everything the data layer loads for one assembly,
and everything the engine hands back for a batch.
"""

from typing import Any, Optional

from pydantic import Field

from models.base import BaseSchema, Breakdown
from models.activity import Activity, PackLine
from models.assembly import AssemblyInput
from models.external_step import DerivedExternalStep
from models.material import (
    AssemblyMaterialCoverage,
    MaterialDemandRow,
    SupplyReservation,
)
from models.risk import AssemblyRiskSignals, PurchaseOrderLineSummary
from models.stage import (
    AssemblyRollup,
    FallbackBreakdowns,
    FallbackTotals,
    StageAggregation,
    StageRowsResult,
)


class AssemblyProductionInput(BaseSchema):
    """Atomic per-assembly snapshot loaded by the data layer."""

    assembly: AssemblyInput
    ordered_breakdown: Breakdown = Field(default_factory=list)
    fallback_breakdowns: FallbackBreakdowns = Field(default_factory=FallbackBreakdowns)
    fallback_totals: FallbackTotals = Field(default_factory=FallbackTotals)
    pack_lines: list[PackLine] = Field(default_factory=list)
    activities: list[Activity] = Field(default_factory=list)
    demand_rows: list[MaterialDemandRow] = Field(default_factory=list)
    reservations: list[SupplyReservation] = Field(default_factory=list)
    purchase_order_lines: list[PurchaseOrderLineSummary] = Field(default_factory=list)


class AssemblyProductionResult(BaseSchema):
    """Stage-side results for one assembly."""

    assembly_id: int
    aggregation: StageAggregation
    stage_rows: StageRowsResult
    rollup: AssemblyRollup
    external_steps: list[DerivedExternalStep] = Field(default_factory=list)
    material_coverage: Optional[AssemblyMaterialCoverage] = None
    risk: Optional[AssemblyRiskSignals] = None


class ProductionBatchResult(BaseSchema):
    """Results for a batch; failed assemblies are listed in errors."""

    results: dict[int, AssemblyProductionResult] = Field(default_factory=dict)
    errors: list[dict[str, Any]] = Field(default_factory=list)

