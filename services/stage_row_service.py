"""
Stage row builder.

Projects a StageAggregation into the ordered rows shown on the assembly
detail view (order → cut → sew → vendor steps → finish → pack → qc) and the
finish-input ceiling used to cap manual finish entry.
"""

from typing import Iterable, Optional

import structlog

from models.activity import Stage
from models.external_step import DerivedExternalStep
from models.stage import (
    ExternalStageRow,
    ExternalStageTotals,
    FinishInput,
    InternalStageRow,
    StageAggregation,
    StageRow,
    StageRowsResult,
)
from services.breakdown_math import sum_array
from services.stage_gates import (
    compute_external_gate,
    compute_finish_cap,
    compute_sew_gate,
    sew_gate_hint,
)

logger = structlog.get_logger(__name__)

STAGE_LABELS = {
    Stage.CUT: "Cut",
    Stage.SEW: "Sew",
    Stage.FINISH: "Finish",
    Stage.PACK: "Pack",
    Stage.QC: "QC",
}


def _internal_row(aggregation: StageAggregation, stage: Stage) -> InternalStageRow:
    stats = aggregation.stats(stage)
    return InternalStageRow(
        stage=stage.value,
        label=STAGE_LABELS[stage],
        breakdown=aggregation.display(stage),
        total=aggregation.total(stage),
        loss=stats.defect_arr,
        loss_total=stats.defect_total,
        logged_defect_total=stats.logged_defect_total,
    )


def _external_row(aggregation: StageAggregation, step: DerivedExternalStep) -> ExternalStageRow:
    aggregate = aggregation.external(step.type)
    return ExternalStageRow(
        label=step.label,
        external_step_type=step.type,
        expected=step.expected,
        status=step.status,
        eta_date=step.eta_date,
        is_late=step.is_late,
        vendor=step.vendor,
        low_confidence=step.low_confidence,
        lead_time_days=step.lead_time_days,
        lead_time_source=step.lead_time_source,
        activities=step.activities,
        sent=aggregate.sent,
        received=aggregate.received,
        net=aggregate.net,
        loss=aggregate.loss,
        totals=ExternalStageTotals(
            sent=aggregate.sent_total,
            received=aggregate.received_total,
            net=aggregate.net_total,
            loss=aggregate.loss_total,
        ),
    )


class StageRowService:
    """Build presentation rows from a StageAggregation."""

    def build_rows(
        self,
        aggregation: StageAggregation,
        external_steps: Optional[Iterable[DerivedExternalStep]] = None,
    ) -> StageRowsResult:
        """
        Build the ordered stage rows and the finish-input ceiling.

        The sew row uses the sew gate without the cut fallback, so sew
        progress is never invented from cut output.

        Args:
            aggregation: Aggregated stage quantities
            external_steps: Derived vendor steps for the assembly, in order

        Returns:
            StageRowsResult
        """
        steps = list(external_steps or [])
        sew_gate = compute_sew_gate(aggregation, steps, allow_cut_fallback=False)
        sew_stats = aggregation.stats(Stage.SEW)

        rows: list[StageRow] = [
            InternalStageRow(
                stage="order",
                label="Ordered",
                breakdown=aggregation.ordered,
                total=aggregation.ordered_total,
            ),
            _internal_row(aggregation, Stage.CUT),
            InternalStageRow(
                stage=Stage.SEW.value,
                label=STAGE_LABELS[Stage.SEW],
                breakdown=sew_gate.breakdown,
                total=sew_gate.total,
                loss=sew_stats.defect_arr,
                loss_total=sew_stats.defect_total,
                logged_defect_total=sew_stats.logged_defect_total,
                hint=sew_gate_hint(sew_gate.source),
            ),
        ]
        rows.extend(_external_row(aggregation, step) for step in steps)
        rows.extend(_internal_row(aggregation, stage) for stage in (Stage.FINISH, Stage.PACK, Stage.QC))

        external_gate = compute_external_gate(aggregation.external(step.type) for step in steps)
        finish_stats = aggregation.stats(Stage.FINISH)
        finish_cap = compute_finish_cap(
            external_gate=external_gate,
            sew_recorded=sew_stats.good_arr,
            sew_has_explicit=sew_stats.attempts_total > 0,
            cut_recorded=aggregation.stats(Stage.CUT).good_arr,
            finish_recorded=finish_stats.good_arr,
            finish_logged=[],
            finish_loss_reconciled=finish_stats.defect_arr,
        )

        logger.debug(
            "stage_rows_built",
            assembly_id=aggregation.assembly_id,
            rows=len(rows),
            sew_gate_source=sew_gate.source.value,
            external_gate_source=external_gate.source.value,
        )

        return StageRowsResult(
            rows=rows,
            finish_input=FinishInput(breakdown=finish_cap, total=sum_array(finish_cap)),
        )


# Singleton instance
_stage_row_service: Optional[StageRowService] = None


def get_stage_row_service() -> StageRowService:
    """Get or create StageRowService instance."""
    global _stage_row_service
    if _stage_row_service is None:
        _stage_row_service = StageRowService()
    return _stage_row_service
