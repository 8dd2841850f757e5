"""
Loss reconciliation.

A reconcile writes off the part of a stage's usable output that no later
stage consumed and that has not already been written off.
"""

from datetime import datetime
from typing import Any, Iterable, Optional

import structlog

from exceptions import ReconcileSlackError, ValidationError
from models.activity import Activity, ActivityAction, ActivityKind, Stage, coerce_stage
from models.base import Breakdown
from models.stage import StageAggregation
from services.breakdown_math import has_any, normalize, pad, sum_array
from services.stage_gates import compute_downstream_used, compute_external_gate, compute_reconcile_max
from utils.number_utils import ZERO, format_qty

logger = structlog.get_logger(__name__)

RECONCILABLE_STAGES = (Stage.CUT, Stage.SEW, Stage.FINISH, Stage.PACK)

RECONCILE_ACTIVITY_NAME = "Reconcile defects"


def compute_stage_reconcile_max(aggregation: StageAggregation, stage: Stage) -> Breakdown:
    """
    Remaining slack per variant for a stage.

    usable - downstream used - already reconciled, floored at 0. Stages
    outside cut/sew/finish/pack have no slack.
    """
    if stage not in RECONCILABLE_STAGES:
        return []

    external_gate = compute_external_gate(aggregation.external_aggregates.values())
    downstream = compute_downstream_used(
        external_gate=external_gate,
        sew_recorded=aggregation.stats(Stage.SEW).processed_arr,
        finish_recorded=aggregation.stats(Stage.FINISH).processed_arr,
        pack_recorded=aggregation.stats(Stage.PACK).processed_arr,
    )
    stats = aggregation.stats(stage)
    return compute_reconcile_max(
        stats.usable_arr,
        getattr(downstream, stage.value),
        stats.reconciled_defect_arr,
    )


def validate_reconcile_breakdown(
    aggregation: StageAggregation,
    stage: Any,
    breakdown: Iterable[Any],
) -> Breakdown:
    """
    Check a requested reconcile breakdown against the remaining slack.

    Args:
        aggregation: Current stage aggregation for the assembly
        stage: Stage being reconciled
        breakdown: Requested write-off per variant

    Returns:
        The remaining slack per variant

    Raises:
        ReconcileSlackError: No slack remains, or a variant exceeds it
    """
    stage = coerce_stage(stage)
    max_reconcile = compute_stage_reconcile_max(aggregation, stage)
    if not has_any(max_reconcile):
        raise ReconcileSlackError(
            stage=stage.value,
            message="No reconciliable slack remains at this stage.",
        )

    requested = normalize(list(breakdown or []), allow_fallback=False)
    length = max(len(max_reconcile), len(requested))
    caps = pad(max_reconcile, length)
    for i, qty in enumerate(pad(requested, length)):
        if qty > caps[i]:
            logger.info(
                "reconcile_exceeds_slack",
                assembly_id=aggregation.assembly_id,
                stage=stage.value,
                variant_index=i,
                requested=str(qty),
                remaining=str(caps[i]),
            )
            raise ReconcileSlackError(
                stage=stage.value,
                message=f"Reconcile qty at variant {i + 1} exceeds remaining slack ({format_qty(caps[i])}).",
                variant_index=i,
                remaining=caps[i],
            )

    return max_reconcile


def build_reconcile_activity(
    stage: Any,
    qty_breakdown: Iterable[Any],
    activity_date: Optional[datetime] = None,
) -> Activity:
    """
    Build the loss_reconciled defect activity for a write-off.

    Raises:
        ValidationError: The breakdown totals zero
    """
    breakdown = normalize(list(qty_breakdown or []), allow_fallback=False)
    total = sum_array(breakdown)
    if total <= ZERO:
        raise ValidationError(
            message="Reconcile quantity must be greater than zero.",
            details={"stage": coerce_stage(stage).value},
        )

    return Activity(
        name=RECONCILE_ACTIVITY_NAME,
        stage=coerce_stage(stage),
        kind=ActivityKind.DEFECT,
        action=ActivityAction.LOSS_RECONCILED,
        quantity=total,
        qty_breakdown=breakdown,
        activity_date=activity_date or datetime.now(),
    )
