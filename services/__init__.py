"""
Business logic services.

Each service handles one stage of the production evaluation.
"""

from services.stage_aggregation_service import (
    StageAggregationService,
    get_stage_aggregation_service,
    merge_pack_breakdown,
    normalize_activity,
)
from services.stage_row_service import StageRowService, get_stage_row_service
from services.external_step_service import ExternalStepService, get_external_step_service
from services.material_coverage_service import (
    MaterialCoverageService,
    get_material_coverage_service,
)
from services.coverage_tolerance_service import (
    FALLBACK_TOLERANCE_DEFAULTS,
    compute_tolerance_qty,
    parse_tolerance_defaults,
    resolve_coverage_tolerance,
)
from services.material_demand_service import build_derived_demand_rows, resolve_demand_rows
from services.risk_signal_service import RiskSignalService, get_risk_signal_service
from services.reconcile_service import build_reconcile_activity, validate_reconcile_breakdown
from services.production_batch_service import (
    ProductionBatchService,
    get_production_batch_service,
)

__all__ = [
    "StageAggregationService",
    "get_stage_aggregation_service",
    "merge_pack_breakdown",
    "normalize_activity",
    "StageRowService",
    "get_stage_row_service",
    "ExternalStepService",
    "get_external_step_service",
    "MaterialCoverageService",
    "get_material_coverage_service",
    "FALLBACK_TOLERANCE_DEFAULTS",
    "compute_tolerance_qty",
    "parse_tolerance_defaults",
    "resolve_coverage_tolerance",
    "build_derived_demand_rows",
    "resolve_demand_rows",
    "RiskSignalService",
    "get_risk_signal_service",
    "build_reconcile_activity",
    "validate_reconcile_breakdown",
    "ProductionBatchService",
    "get_production_batch_service",
]
