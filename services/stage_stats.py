"""
Stage statistics: fold one stage's activities into good/defect vectors.
"""

from decimal import Decimal
from typing import Iterable, Optional

import structlog

from models.activity import Activity, ActivityAction, ActivityKind
from models.base import Breakdown
from models.stage import StageStats
from services.breakdown_math import add_into, clamp, normalize, pad, sum_array
from utils.number_utils import ZERO, to_non_negative

logger = structlog.get_logger(__name__)

# Defect actions that settle a shortfall rather than report one
RECONCILED_DEFECT_ACTIONS = (ActivityAction.LOSS_RECONCILED, ActivityAction.ADJUSTMENT)


def activity_total(activity: Activity, breakdown: Breakdown) -> Decimal:
    """Scalar quantity of an activity; breakdown sum when the scalar is missing."""
    qty = to_non_negative(activity.quantity)
    if qty > 0:
        return qty
    return sum_array(breakdown)


def _fallback_stats(fallback_arr: Breakdown, fallback_total: Decimal) -> StageStats:
    # Legacy rows: persisted totals stand in for activity history
    arr = clamp(fallback_arr)
    return StageStats(
        good_arr=list(arr),
        processed_arr=list(arr),
        usable_arr=list(arr),
        attempts_arr=list(arr),
        good_total=fallback_total,
        processed_total=fallback_total,
        usable_total=fallback_total,
        attempts_total=fallback_total,
    )


def compute_stage_stats(
    activities: Iterable[Activity],
    fallback_arr: Optional[Breakdown] = None,
    fallback_total=ZERO,
    use_fallback_if_no_normal: bool = False,
) -> StageStats:
    """
    Compute good/defect/processed/usable quantities for one stage.

    Args:
        activities: Activities already filtered to the stage
        fallback_arr: Persisted breakdown used when there is no activity
        fallback_total: Persisted total paired with fallback_arr
        use_fallback_if_no_normal: Substitute the fallback as good output when
            every recorded activity is a defect (pack stage)

    Returns:
        StageStats with all quantities >= 0
    """
    acts = list(activities)
    fallback = clamp(fallback_arr or [])
    fallback_qty = to_non_negative(fallback_total)

    if not acts:
        return _fallback_stats(fallback, fallback_qty)

    good_arr: Breakdown = []
    defect_arr: Breakdown = []
    logged_arr: Breakdown = []
    reconciled_arr: Breakdown = []
    good_total = ZERO
    defect_total = ZERO
    logged_total = ZERO
    reconciled_total = ZERO

    for activity in acts:
        breakdown = normalize(activity.qty_breakdown, activity.quantity)
        qty = activity_total(activity, breakdown)

        if activity.kind == ActivityKind.DEFECT:
            defect_total += qty
            add_into(defect_arr, breakdown)
            if activity.action in RECONCILED_DEFECT_ACTIONS:
                reconciled_total += qty
                add_into(reconciled_arr, breakdown)
            elif activity.action == ActivityAction.DEFECT_LOGGED:
                logged_total += qty
                add_into(logged_arr, breakdown)
        else:
            good_total += qty
            add_into(good_arr, breakdown)

    if use_fallback_if_no_normal and good_total == 0 and defect_total > 0 and fallback:
        # Packs recorded purely as shortfall: box lines carry the good count
        logger.debug(
            "stage_stats_fallback_substituted",
            fallback_total=str(fallback_qty),
            defect_total=str(defect_total),
        )
        good_arr = list(fallback)
        good_total = fallback_qty

    length = max(len(good_arr), len(defect_arr), len(logged_arr), len(reconciled_arr))
    good_arr = pad(good_arr, length)
    defect_padded = pad(defect_arr, length)
    processed_arr = [good + bad for good, bad in zip(good_arr, defect_padded)]
    processed_total = good_total + defect_total

    return StageStats(
        good_arr=good_arr,
        defect_arr=defect_arr,
        logged_defect_arr=logged_arr,
        reconciled_defect_arr=reconciled_arr,
        processed_arr=processed_arr,
        usable_arr=list(good_arr),
        attempts_arr=list(processed_arr),
        good_total=good_total,
        defect_total=defect_total,
        logged_defect_total=logged_total,
        reconciled_defect_total=reconciled_total,
        processed_total=processed_total,
        usable_total=good_total,
        attempts_total=processed_total,
    )
