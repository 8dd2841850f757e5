"""
Pydantic models for the stage gating and material coverage engine.
"""

from models.base import BaseSchema, FrozenSchema, Breakdown
from models.activity import (
    Stage,
    ActivityKind,
    ActivityAction,
    ExternalStepType,
    VendorRef,
    Activity,
    PackLine,
    PackSnapshot,
    coerce_stage,
)
from models.assembly import (
    SupplierLite,
    ProductLite,
    CostingLite,
    AssemblyInput,
)
from models.external_step import (
    ExternalStepStatus,
    LeadTimeSource,
    StepActivitySummary,
    DerivedExternalStep,
)
from models.stage import (
    StageStats,
    ExternalAggregate,
    FallbackBreakdowns,
    FallbackTotals,
    StageAggregation,
    SewGateSource,
    SewGate,
    ExternalGateSource,
    ExternalGate,
    DownstreamUsed,
    InternalStageRow,
    ExternalStageRow,
    ExternalStageTotals,
    StageRow,
    FinishInput,
    StageRowsResult,
    AssemblyRollup,
)
from models.material import (
    DemandSource,
    ReservationType,
    ReservationStatus,
    CoverageStatus,
    ToleranceSource,
    MaterialDemandCalc,
    MaterialDemandRow,
    PurchaseOrderLineTiming,
    SupplyReservation,
    StockLocationQty,
    StockSnapshot,
    ToleranceEntry,
    CoverageToleranceDefaults,
    CoverageTolerance,
    MaterialReservationRow,
    MaterialCoverageItem,
    MaterialHoldReason,
    AssemblyMaterialCoverage,
)
from models.risk import (
    NextActionKind,
    NextAction,
    VendorStepInfo,
    PurchaseOrderLineSummary,
    PoLineEvaluation,
    AssemblyRiskSignals,
)
from models.production import (
    AssemblyProductionInput,
    AssemblyProductionResult,
    ProductionBatchResult,
)

__all__ = [
    # Base
    "BaseSchema",
    "FrozenSchema",
    "Breakdown",
    # Activity
    "Stage",
    "ActivityKind",
    "ActivityAction",
    "ExternalStepType",
    "VendorRef",
    "Activity",
    "PackLine",
    "PackSnapshot",
    "coerce_stage",
    # Assembly
    "SupplierLite",
    "ProductLite",
    "CostingLite",
    "AssemblyInput",
    # External steps
    "ExternalStepStatus",
    "LeadTimeSource",
    "StepActivitySummary",
    "DerivedExternalStep",
    # Stage
    "StageStats",
    "ExternalAggregate",
    "FallbackBreakdowns",
    "FallbackTotals",
    "StageAggregation",
    "SewGateSource",
    "SewGate",
    "ExternalGateSource",
    "ExternalGate",
    "DownstreamUsed",
    "InternalStageRow",
    "ExternalStageRow",
    "ExternalStageTotals",
    "StageRow",
    "FinishInput",
    "StageRowsResult",
    "AssemblyRollup",
    # Material
    "DemandSource",
    "ReservationType",
    "ReservationStatus",
    "CoverageStatus",
    "ToleranceSource",
    "MaterialDemandCalc",
    "MaterialDemandRow",
    "PurchaseOrderLineTiming",
    "SupplyReservation",
    "StockLocationQty",
    "StockSnapshot",
    "ToleranceEntry",
    "CoverageToleranceDefaults",
    "CoverageTolerance",
    "MaterialReservationRow",
    "MaterialCoverageItem",
    "MaterialHoldReason",
    "AssemblyMaterialCoverage",
    # Risk
    "NextActionKind",
    "NextAction",
    "VendorStepInfo",
    "PurchaseOrderLineSummary",
    "PoLineEvaluation",
    "AssemblyRiskSignals",
    # Batch
    "AssemblyProductionInput",
    "AssemblyProductionResult",
    "ProductionBatchResult",
]
