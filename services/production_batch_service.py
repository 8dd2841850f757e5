"""
Batch evaluation of assemblies for the production dashboard.

Runs the stage pipeline (aggregation, external steps, rows, rollup) for each
assembly on its own, then material coverage and risk signals for every
assembly that made it through. One bad assembly never sinks the batch.
"""

from datetime import date
from typing import Iterable, Optional, Union

import structlog

from exceptions import AssemblyEvaluationError
from models.activity import PackSnapshot
from models.material import CoverageToleranceDefaults, StockSnapshot
from models.production import (
    AssemblyProductionInput,
    AssemblyProductionResult,
    ProductionBatchResult,
)
from services.external_step_service import get_external_step_service
from services.material_coverage_service import get_material_coverage_service
from services.risk_signal_service import get_risk_signal_service
from services.stage_aggregation_service import (
    get_stage_aggregation_service,
    merge_pack_breakdown,
)
from services.stage_row_service import get_stage_row_service

logger = structlog.get_logger(__name__)


class ProductionBatchService:
    """Evaluate stage, coverage and risk results for many assemblies."""

    def __init__(self):
        self.aggregation_service = get_stage_aggregation_service()
        self.external_step_service = get_external_step_service()
        self.row_service = get_stage_row_service()
        self.coverage_service = get_material_coverage_service()
        self.risk_service = get_risk_signal_service()

    def evaluate_assembly(
        self,
        production_input: AssemblyProductionInput,
        today: date,
    ) -> AssemblyProductionResult:
        """Stage-side results for one assembly (no coverage or risk)."""
        assembly = production_input.assembly
        pack_snapshot = (
            merge_pack_breakdown(production_input.pack_lines)
            if production_input.pack_lines
            else None
        )

        aggregation = self.aggregation_service.aggregate(
            assembly_id=assembly.id,
            ordered_breakdown=production_input.ordered_breakdown,
            fallback_breakdowns=production_input.fallback_breakdowns,
            fallback_totals=production_input.fallback_totals,
            pack_snapshot=pack_snapshot or PackSnapshot(),
            activities=production_input.activities,
        )
        external_steps = self.external_step_service.derive_steps(
            assembly,
            production_input.activities,
            totals=aggregation.totals,
            today=today,
        )
        stage_rows = self.row_service.build_rows(aggregation, external_steps)
        rollup = self.aggregation_service.build_rollup(
            aggregation,
            activities=production_input.activities,
            pack_snapshot=pack_snapshot,
        )

        return AssemblyProductionResult(
            assembly_id=assembly.id,
            aggregation=aggregation,
            stage_rows=stage_rows,
            rollup=rollup,
            external_steps=external_steps,
        )

    def evaluate(
        self,
        inputs: Iterable[AssemblyProductionInput],
        stock_snapshots: Union[Iterable[StockSnapshot], dict[int, StockSnapshot], None],
        tolerance_defaults: CoverageToleranceDefaults,
        today: Optional[date] = None,
    ) -> ProductionBatchResult:
        """
        Evaluate a batch of assemblies.

        Args:
            inputs: Per-assembly snapshots
            stock_snapshots: Stock per product, shared by the batch
            tolerance_defaults: Company coverage tolerance table
            today: Reference date (default: date.today())

        Returns:
            ProductionBatchResult with results per assembly and the errors
            of any assembly that failed
        """
        today = today or date.today()
        inputs = list(inputs or [])
        batch = ProductionBatchResult()

        evaluated: list[AssemblyProductionInput] = []
        for production_input in inputs:
            assembly_id = production_input.assembly.id
            try:
                batch.results[assembly_id] = self.evaluate_assembly(production_input, today)
                evaluated.append(production_input)
            except Exception as e:
                batch.errors.append(AssemblyEvaluationError(assembly_id, str(e)).to_dict())
                logger.error(
                    "assembly_evaluation_failed",
                    assembly_id=assembly_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        if evaluated:
            self._attach_coverage_and_risk(batch, evaluated, stock_snapshots, tolerance_defaults, today)

        logger.info(
            "production_batch_evaluated",
            assemblies=len(inputs),
            evaluated=len(batch.results),
            failed=len(batch.errors),
        )
        return batch

    def _attach_coverage_and_risk(
        self,
        batch: ProductionBatchResult,
        evaluated: list[AssemblyProductionInput],
        stock_snapshots,
        tolerance_defaults: CoverageToleranceDefaults,
        today: date,
    ) -> None:
        assemblies = [item.assembly for item in evaluated]
        rollups = {a.id: batch.results[a.id].rollup for a in assemblies}

        coverage = self.coverage_service.evaluate(
            assemblies=assemblies,
            demand_rows=[row for item in evaluated for row in item.demand_rows],
            reservations=[r for item in evaluated for r in item.reservations],
            stock_snapshots=stock_snapshots,
            tolerance_defaults=tolerance_defaults,
            today=today,
            rollups=rollups,
        )
        risk = self.risk_service.build(
            assemblies=assemblies,
            rollups=rollups,
            external_steps_by_assembly={a.id: batch.results[a.id].external_steps for a in assemblies},
            purchase_orders_by_assembly={
                item.assembly.id: item.purchase_order_lines for item in evaluated
            },
            material_coverage=coverage,
            today=today,
        )

        for assembly in assemblies:
            result = batch.results[assembly.id]
            result.material_coverage = coverage.get(assembly.id)
            result.risk = risk.get(assembly.id)


# Singleton instance
_production_batch_service: Optional[ProductionBatchService] = None


def get_production_batch_service() -> ProductionBatchService:
    """Get or create ProductionBatchService instance."""
    global _production_batch_service
    if _production_batch_service is None:
        _production_batch_service = ProductionBatchService()
    return _production_batch_service
