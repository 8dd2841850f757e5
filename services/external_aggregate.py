"""
External (vendor round-trip) aggregation: sent/received/net/loss per step type.
"""

from typing import Iterable

from models.activity import Activity, ActivityAction, ExternalStepType
from models.stage import ExternalAggregate
from services.breakdown_math import (
    add_into,
    min_arrays,
    normalize,
    subtract_floor,
    sum_array,
)

EXTERNAL_ACTIONS = (ActivityAction.SENT_OUT, ActivityAction.RECEIVED_IN)


def build_external_aggregates(
    activities: Iterable[Activity],
) -> dict[ExternalStepType, ExternalAggregate]:
    """
    Group vendor step activities by step type.

    Activities without a step type, without a sent/received action, or
    without any usable quantity are skipped.

    Returns:
        Step type → ExternalAggregate (net = min(sent, received),
        loss = max(sent - received, 0))
    """
    sent: dict[ExternalStepType, list] = {}
    received: dict[ExternalStepType, list] = {}
    seen: list[ExternalStepType] = []

    for activity in activities:
        step_type = activity.external_step_type
        if step_type is None or activity.action not in EXTERNAL_ACTIONS:
            continue
        breakdown = normalize(activity.qty_breakdown, activity.quantity)
        if not breakdown:
            continue

        if step_type not in seen:
            seen.append(step_type)
            sent[step_type] = []
            received[step_type] = []

        if activity.action == ActivityAction.SENT_OUT:
            add_into(sent[step_type], breakdown)
        else:
            add_into(received[step_type], breakdown)

    aggregates: dict[ExternalStepType, ExternalAggregate] = {}
    for step_type in seen:
        net = min_arrays(sent[step_type], received[step_type])
        loss = subtract_floor(sent[step_type], received[step_type])
        aggregates[step_type] = ExternalAggregate(
            sent=sent[step_type],
            received=received[step_type],
            net=net,
            loss=loss,
            sent_total=sum_array(sent[step_type]),
            received_total=sum_array(received[step_type]),
            net_total=sum_array(net),
            loss_total=sum_array(loss),
        )
    return aggregates
