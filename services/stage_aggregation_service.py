"""
Assembly stage aggregation.

Folds an assembly's activity history into per-stage, per-variant quantities
with monotonic gating (a stage cannot show more than the stage before it
delivered), then derives the scalar rollups used by demand fallback and
risk signals.
"""

from typing import Any, Iterable, Optional, Union

import structlog

from models.activity import (
    Activity,
    ActivityAction,
    ActivityKind,
    PackLine,
    PackSnapshot,
    Stage,
)
from models.base import Breakdown
from models.stage import (
    AssemblyRollup,
    FallbackBreakdowns,
    FallbackTotals,
    StageAggregation,
    StageStats,
)
from services.breakdown_math import (
    add_into,
    has_any,
    min_arrays,
    normalize,
    sum_array,
    zeros,
)
from services.external_aggregate import build_external_aggregates
from services.stage_gates import compute_effective_ordered
from services.stage_stats import compute_stage_stats
from utils.number_utils import ZERO, to_non_negative, to_quantity

logger = structlog.get_logger(__name__)

# Activity actions that count as recorded output in rollups (None = legacy rows)
ROLLUP_RECORDED_ACTIONS = (ActivityAction.RECORDED, None)


def normalize_activity(raw: Union[Activity, dict, Any]) -> Activity:
    """
    Validate a raw activity (dict or ORM row) into an Activity.

    Legacy stages are resolved here: make → finish, trim → sew,
    embroidery → finish; a missing stage is inferred from the name.
    """
    if isinstance(raw, Activity):
        return raw
    return Activity.model_validate(raw)


def merge_pack_breakdown(lines: Iterable[Union[PackLine, dict]]) -> PackSnapshot:
    """Sum box-line breakdowns into the pack snapshot used as pack fallback."""
    breakdown: Breakdown = []
    for line in lines or []:
        if not isinstance(line, PackLine):
            line = PackLine.model_validate(line)
        add_into(breakdown, normalize(line.qty_breakdown, line.quantity))
    return PackSnapshot(breakdown=breakdown, total=sum_array(breakdown))


def _filter_stage(activities: list[Activity], stage: Stage) -> list[Activity]:
    return [activity for activity in activities if activity.stage == stage]


class StageAggregationService:
    """
    Aggregate stage quantities for one assembly.

    Pure: every call recomputes from its inputs, nothing is cached.
    """

    def aggregate(
        self,
        assembly_id: int,
        ordered_breakdown: Optional[Iterable[Any]] = None,
        fallback_breakdowns: Optional[FallbackBreakdowns] = None,
        fallback_totals: Optional[FallbackTotals] = None,
        pack_snapshot: Optional[PackSnapshot] = None,
        activities: Optional[Iterable[Any]] = None,
    ) -> StageAggregation:
        """
        Build the StageAggregation for one assembly.

        Args:
            assembly_id: Assembly ID
            ordered_breakdown: Ordered quantity per variant
            fallback_breakdowns: Persisted cut/sew/finish breakdowns (legacy)
            fallback_totals: Persisted cut/sew/finish totals (legacy)
            pack_snapshot: Merged box-line breakdown (pack fallback)
            activities: Activity records (Activity, dict or ORM rows)

        Returns:
            StageAggregation
        """
        fallback_breakdowns = fallback_breakdowns or FallbackBreakdowns()
        fallback_totals = fallback_totals or FallbackTotals()
        pack_snapshot = pack_snapshot or PackSnapshot()
        acts = [normalize_activity(raw) for raw in activities or []]

        # Step 1: ordered net of cancellations
        ordered_raw = normalize(
            list(ordered_breakdown) if ordered_breakdown is not None else None,
            0,
            allow_fallback=False,
        )
        canceled: Breakdown = []
        for activity in _filter_stage(acts, Stage.CANCEL):
            add_into(canceled, normalize(activity.qty_breakdown, activity.quantity))
        ordered, ordered_total = compute_effective_ordered(ordered_raw, canceled)

        # Step 2: stage statistics
        fallback_cut = normalize(fallback_breakdowns.cut, 0, allow_fallback=False)
        fallback_sew = normalize(fallback_breakdowns.sew, 0, allow_fallback=False)
        fallback_finish = normalize(fallback_breakdowns.finish, 0, allow_fallback=False)
        fallback_pack = normalize(pack_snapshot.breakdown, pack_snapshot.total)
        fallback_pack_total = max(to_non_negative(pack_snapshot.total), sum_array(fallback_pack))

        stage_stats: dict[Stage, StageStats] = {
            Stage.CUT: compute_stage_stats(
                _filter_stage(acts, Stage.CUT), fallback_cut, fallback_totals.cut
            ),
            Stage.SEW: compute_stage_stats(
                _filter_stage(acts, Stage.SEW), fallback_sew, fallback_totals.sew
            ),
            Stage.FINISH: compute_stage_stats(
                _filter_stage(acts, Stage.FINISH), fallback_finish, fallback_totals.finish
            ),
            Stage.PACK: compute_stage_stats(
                _filter_stage(acts, Stage.PACK),
                fallback_pack,
                fallback_pack_total,
                use_fallback_if_no_normal=True,
            ),
            Stage.QC: compute_stage_stats(_filter_stage(acts, Stage.QC), [], ZERO),
        }

        cut = stage_stats[Stage.CUT]
        sew = stage_stats[Stage.SEW]
        finish = stage_stats[Stage.FINISH]
        pack = stage_stats[Stage.PACK]
        qc = stage_stats[Stage.QC]

        # Step 3: usable gating, upstream to downstream
        has_sew_data = sew.attempts_total > 0 or has_any(fallback_sew)
        has_finish_data = finish.attempts_total > 0 or has_any(fallback_finish)
        has_pack_data = pack.attempts_total > 0 or has_any(fallback_pack)

        usable_cut = list(cut.usable_arr)
        usable_sew = min_arrays(sew.usable_arr, usable_cut) if has_sew_data else list(sew.usable_arr)
        sew_limit = usable_sew if has_sew_data else usable_cut
        usable_finish = (
            min_arrays(finish.usable_arr, sew_limit) if has_finish_data else list(finish.usable_arr)
        )
        usable_pack = min_arrays(pack.usable_arr, usable_finish) if has_pack_data else usable_finish

        # Step 4: display arrays, capped by downstream shortfalls too
        display_arrays: dict[Stage, Breakdown] = {
            Stage.CUT: min_arrays(usable_cut, usable_sew) if has_sew_data else usable_cut,
            Stage.SEW: min_arrays(usable_sew, usable_finish) if has_finish_data else usable_sew,
            Stage.FINISH: usable_finish,
            # Un-started pack shows zeros, not finish's quantity
            Stage.PACK: usable_pack if has_pack_data else zeros(len(usable_finish)),
            Stage.QC: list(qc.usable_arr),
        }

        # Step 5: totals and external aggregates
        totals = {stage: sum_array(arr) for stage, arr in display_arrays.items()}

        aggregation = StageAggregation(
            assembly_id=assembly_id,
            ordered_raw=ordered_raw,
            canceled=canceled,
            ordered=ordered,
            ordered_total=ordered_total,
            display_arrays=display_arrays,
            totals=totals,
            stage_stats=stage_stats,
            external_aggregates=build_external_aggregates(acts),
        )

        logger.debug(
            "stage_aggregation_computed",
            assembly_id=assembly_id,
            activities=len(acts),
            ordered_total=str(ordered_total),
            totals={stage.value: str(total) for stage, total in totals.items()},
        )

        return aggregation

    def build_rollup(
        self,
        aggregation: StageAggregation,
        activities: Optional[Iterable[Any]] = None,
        pack_snapshot: Optional[PackSnapshot] = None,
    ) -> AssemblyRollup:
        """
        Scalar stage totals for one assembly.

        - cut/sew/finish good: recorded normal output per stage
        - pack defect: recorded pack/qc defects
        - packed: box-line total (display pack total when no snapshot)
        - sewn available: sew good (else finish good) minus units still at a vendor

        Args:
            aggregation: Result of aggregate() for the same assembly
            activities: Same activities passed to aggregate()
            pack_snapshot: Merged box-line breakdown

        Returns:
            AssemblyRollup
        """
        acts = [normalize_activity(raw) for raw in activities or []]

        good = {Stage.CUT: ZERO, Stage.SEW: ZERO, Stage.FINISH: ZERO}
        pack_defect = ZERO
        sent = ZERO
        received = ZERO

        for activity in acts:
            qty = to_quantity(activity.quantity)
            if activity.action in ROLLUP_RECORDED_ACTIONS:
                if activity.kind == ActivityKind.NORMAL and activity.stage in good:
                    good[activity.stage] += qty
                elif activity.kind == ActivityKind.DEFECT and activity.stage in (Stage.PACK, Stage.QC):
                    pack_defect += qty
            if activity.action == ActivityAction.SENT_OUT:
                sent += qty
            elif activity.action == ActivityAction.RECEIVED_IN:
                received += qty

        if pack_snapshot is not None:
            packed = to_non_negative(pack_snapshot.total)
        else:
            packed = aggregation.total(Stage.PACK)

        cut_good = max(good[Stage.CUT], ZERO)
        sew_good = max(good[Stage.SEW], ZERO)
        finish_good = max(good[Stage.FINISH], ZERO)
        pack_defect = abs(pack_defect)
        finish_net = max(finish_good - pack_defect, ZERO)
        sent_not_received = max(sent - received, ZERO)

        base_sewn = sew_good if sew_good > 0 else finish_good

        return AssemblyRollup(
            assembly_id=aggregation.assembly_id,
            cut_good_qty=cut_good,
            sew_good_qty=sew_good,
            finish_good_qty=finish_good,
            finish_net_qty=finish_net,
            packed_qty=packed,
            pack_defect_qty=pack_defect,
            ready_to_pack_qty=max(finish_net - packed, ZERO),
            qty_sent_out_not_received=sent_not_received,
            sewn_available_qty=max(base_sewn - sent_not_received, ZERO),
            sewn_available_low_confidence=sew_good <= 0 and finish_good > 0,
        )


# ----------------------------------------------------------------------
# Singleton
# ----------------------------------------------------------------------

_stage_aggregation_service: Optional[StageAggregationService] = None


def get_stage_aggregation_service() -> StageAggregationService:
    """Get or create StageAggregationService singleton."""
    global _stage_aggregation_service
    if _stage_aggregation_service is None:
        _stage_aggregation_service = StageAggregationService()
    return _stage_aggregation_service
