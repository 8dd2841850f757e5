"""
Gate computation for the stage pipeline.

A gate is a ceiling on how much of a stage may be credited, based on what
upstream stages (or external vendors) have confirmed:

- Sew gate: how many units count as sewn. Vendor receipts beat vendor
  shipments, which beat internal sew/finish records, which beat cut.
- External gate: element-wise minimum across vendor steps.
- Finish cap: ceiling for manual finish entry.
- Downstream used / reconcile slack: how much of a stage is already consumed
  by later stages, and how much shortfall may still be written off.
- Default activity quantities suggested when recording cut/finish/pack.
"""

from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Sequence

from models.activity import ExternalStepType, Stage
from models.base import Breakdown
from models.stage import (
    DownstreamUsed,
    ExternalAggregate,
    ExternalGate,
    ExternalGateSource,
    SewGate,
    SewGateSource,
    StageAggregation,
)
from services.breakdown_math import (
    add,
    clamp,
    has_any,
    max_arrays,
    min_arrays,
    pad,
    subtract_floor,
    sum_array,
)
from utils.number_utils import ZERO, to_non_negative

SEW_GATE_HINTS = {
    SewGateSource.EXTERNAL_RECEIVED: "Implied from external received",
    SewGateSource.EXTERNAL_SENT: "Implied from external sent",
    SewGateSource.FINISH: "Implied from finish",
    SewGateSource.FALLBACK_CUT: "Implied from cut usable",
}


def compute_effective_ordered(
    ordered: Optional[Iterable[Any]],
    canceled: Optional[Iterable[Any]],
) -> tuple[Breakdown, Decimal]:
    """
    Net cancellations out of the ordered breakdown.

    effective[i] = max(ordered[i] - max(canceled[i], 0), 0)

    Returns:
        (effective breakdown, effective total)
    """
    effective = subtract_floor(clamp(ordered), clamp(canceled))
    return effective, sum_array(effective)


def _step_types(external_steps) -> list[ExternalStepType]:
    types = []
    for step in external_steps or []:
        step_type = getattr(step, "type", step)
        if isinstance(step_type, ExternalStepType):
            types.append(step_type)
    return types


def _min_of_nonzero(vectors: Iterable[Breakdown]) -> Optional[Breakdown]:
    gate: Optional[Breakdown] = None
    for vector in vectors:
        if not has_any(vector):
            continue
        gate = list(vector) if gate is None else min_arrays(gate, vector)
    if gate is not None and has_any(gate):
        return gate
    return None


# ----------------------------------------------------------------------
# Sew gate strategies, tried in order
# ----------------------------------------------------------------------

def _gate(breakdown: Breakdown, source: SewGateSource) -> SewGate:
    breakdown = clamp(breakdown)
    return SewGate(breakdown=breakdown, total=sum_array(breakdown), source=source)


def sew_gate_from_external_received(
    aggregation: StageAggregation,
    step_types: Sequence[ExternalStepType],
    allow_cut_fallback: bool,
) -> Optional[SewGate]:
    gate = _min_of_nonzero(aggregation.external(t).received for t in step_types)
    if gate is None:
        return None
    return _gate(gate, SewGateSource.EXTERNAL_RECEIVED)


def sew_gate_from_external_sent(
    aggregation: StageAggregation,
    step_types: Sequence[ExternalStepType],
    allow_cut_fallback: bool,
) -> Optional[SewGate]:
    gate = _min_of_nonzero(aggregation.external(t).sent for t in step_types)
    if gate is None:
        return None
    return _gate(gate, SewGateSource.EXTERNAL_SENT)


def sew_gate_from_internal(
    aggregation: StageAggregation,
    step_types: Sequence[ExternalStepType],
    allow_cut_fallback: bool,
) -> Optional[SewGate]:
    # Finish output implicitly confirms sew output
    sew_arr = aggregation.stats(Stage.SEW).processed_arr
    finish_arr = aggregation.stats(Stage.FINISH).processed_arr
    sew_total = sum_array(sew_arr)
    finish_total = sum_array(finish_arr)
    if sew_total <= 0 and finish_total <= 0:
        return None
    source = SewGateSource.FINISH if finish_total >= sew_total else SewGateSource.SEW
    return _gate(max_arrays(sew_arr, finish_arr), source)


def sew_gate_from_cut(
    aggregation: StageAggregation,
    step_types: Sequence[ExternalStepType],
    allow_cut_fallback: bool,
) -> Optional[SewGate]:
    if not allow_cut_fallback:
        return None
    return _gate(aggregation.stats(Stage.CUT).processed_arr, SewGateSource.FALLBACK_CUT)


SewGateStrategy = Callable[
    [StageAggregation, Sequence[ExternalStepType], bool],
    Optional[SewGate],
]

SEW_GATE_STRATEGIES: tuple[SewGateStrategy, ...] = (
    sew_gate_from_external_received,
    sew_gate_from_external_sent,
    sew_gate_from_internal,
    sew_gate_from_cut,
)


def compute_sew_gate(
    aggregation: StageAggregation,
    external_steps=None,
    allow_cut_fallback: bool = True,
) -> SewGate:
    """
    Ceiling on sewn quantity.

    Args:
        aggregation: Aggregated stage quantities
        external_steps: Vendor steps to consider (DerivedExternalStep or
            ExternalStepType); only these step types can gate sew
        allow_cut_fallback: Fall back to cut processed when nothing else
            is recorded (off for display rows)

    Returns:
        SewGate with its source
    """
    step_types = _step_types(external_steps)
    for strategy in SEW_GATE_STRATEGIES:
        gate = strategy(aggregation, step_types, allow_cut_fallback)
        if gate is not None:
            return gate
    return SewGate(source=SewGateSource.NONE)


def sew_gate_hint(source: SewGateSource) -> Optional[str]:
    return SEW_GATE_HINTS.get(source)


# ----------------------------------------------------------------------
# External gate and finish cap
# ----------------------------------------------------------------------

def compute_external_gate(steps: Iterable[ExternalAggregate]) -> ExternalGate:
    """Minimum over steps' received vectors, else sent vectors."""
    steps = list(steps)
    received = _min_of_nonzero(step.received for step in steps)
    sent = _min_of_nonzero(step.sent for step in steps)

    if received is not None:
        return ExternalGate(
            received=received, sent=sent, gate=received, source=ExternalGateSource.RECEIVED
        )
    if sent is not None:
        return ExternalGate(
            received=received, sent=sent, gate=sent, source=ExternalGateSource.SENT
        )
    return ExternalGate()


def compute_finish_cap(
    external_gate: ExternalGate,
    sew_recorded: Breakdown,
    sew_has_explicit: bool,
    cut_recorded: Breakdown,
    finish_recorded: Optional[Breakdown] = None,
    finish_logged: Optional[Breakdown] = None,
    finish_loss_reconciled: Optional[Breakdown] = None,
) -> Breakdown:
    """
    Ceiling for manual finish entry.

    1. External gate, when any vendor step confirmed quantity
    2. Sew recorded, when sew has explicit records
    3. max(cut recorded, finish recorded + logged + reconciled loss)
    """
    if external_gate.gate and has_any(external_gate.gate):
        return clamp(external_gate.gate)

    if sew_has_explicit and has_any(sew_recorded):
        return clamp(sew_recorded)

    finish_reached = add(finish_recorded or [], add(finish_logged or [], finish_loss_reconciled or []))
    return clamp(max_arrays(cut_recorded, finish_reached))


def compute_downstream_used(
    external_gate: ExternalGate,
    sew_recorded: Breakdown,
    finish_recorded: Breakdown,
    pack_recorded: Breakdown,
    retain_recorded: Optional[Breakdown] = None,
) -> DownstreamUsed:
    """
    How much of each stage later stages have already consumed.

    Pack (or retained samples) consumes finish; finish and the external
    gate consume sew; sew consumes cut.
    """
    pack_like = max_arrays(pack_recorded, retain_recorded) if retain_recorded else list(pack_recorded)
    finish_down = max_arrays(finish_recorded, pack_like)
    sew_down = max_arrays(finish_down, external_gate.gate or [])
    cut_down = max_arrays(sew_down, sew_recorded)
    return DownstreamUsed(
        cut=clamp(cut_down),
        sew=clamp(sew_down),
        finish=clamp(pack_like),
        pack=[],
    )


def compute_reconcile_default(usable: Breakdown, downstream_used: Breakdown) -> Breakdown:
    """Suggested write-off: max(usable - used, 0)."""
    return subtract_floor(usable, downstream_used)


def compute_reconcile_max(
    usable: Breakdown,
    downstream_used: Breakdown,
    already_reconciled: Optional[Breakdown] = None,
) -> Breakdown:
    """Largest allowed write-off: max(usable - used - already reconciled, 0)."""
    return subtract_floor(subtract_floor(usable, downstream_used), already_reconciled or [])


# ----------------------------------------------------------------------
# Default activity quantities
# ----------------------------------------------------------------------

def compute_default_activity_breakdown(
    activity_type: Stage,
    labels_len: int,
    ordered: Optional[Breakdown] = None,
    canceled: Optional[Breakdown] = None,
    already_cut: Optional[Breakdown] = None,
    left_to_cut: Optional[Sequence[Optional[Any]]] = None,
    finish_input: Optional[Breakdown] = None,
    finish_done: Optional[Breakdown] = None,
    packed_done: Optional[Breakdown] = None,
) -> Breakdown:
    """
    Quantities pre-filled when recording a cut, finish or pack activity.

    - cut: left-to-cut where known (capped by effective ordered), else
      effective ordered minus already cut
    - finish: cap minus finish done
    - pack: cap minus packed done

    The finish/pack cap is the finish input when given, else already cut,
    else effective ordered.

    Returns:
        Breakdown of labels_len slots, all >= 0
    """
    length = max(labels_len, 0)
    effective, _ = compute_effective_ordered(ordered or [], canceled or [])
    effective = pad(effective, length)
    already_cut = already_cut or []
    left_to_cut = list(left_to_cut or [])

    if activity_type == Stage.CUT:
        cut_arr = pad(already_cut, length)
        result = []
        for i in range(length):
            external = left_to_cut[i] if i < len(left_to_cut) else None
            if external is not None:
                result.append(min(to_non_negative(external), effective[i]))
            else:
                result.append(max(effective[i] - cut_arr[i], ZERO))
        return result

    if finish_input:
        cap = pad(finish_input, length)
    elif already_cut:
        cap = pad(already_cut, length)
    else:
        cap = effective

    done = finish_done if activity_type == Stage.FINISH else packed_done
    return subtract_floor(cap[:length], pad(done or [], length)[:length])
