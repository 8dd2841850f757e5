"""
Assembly risk signals for the production dashboard.

Combines vendor step timing, material coverage and stage rollups into
per-assembly flags and suggested next actions. When no coverage result is
available, PO lines linked to the assembly are checked directly (timing
only, no tolerance).
"""

from datetime import date
from typing import Iterable, Optional

import structlog

from config.settings import settings
from models.assembly import AssemblyInput
from models.external_step import DerivedExternalStep, ExternalStepStatus
from models.material import (
    AssemblyMaterialCoverage,
    CoverageStatus,
    ReservationStatus,
    ReservationType,
)
from models.risk import (
    AssemblyRiskSignals,
    NextAction,
    NextActionKind,
    PoLineEvaluation,
    PurchaseOrderLineSummary,
    VendorStepInfo,
)
from models.stage import AssemblyRollup
from utils.date_utils import format_short
from utils.number_utils import ZERO, format_qty

logger = structlog.get_logger(__name__)


def format_po_line_label(purchase_order_id: Optional[int], line_id: Optional[int]) -> str:
    """
    Human label for a PO line.

    Examples:
        - (12, 3) → "PO #12, Line #3"
        - (None, 3) → "PO line #3"
        - (12, None) → "PO #12"
    """
    if purchase_order_id and line_id:
        return f"PO #{purchase_order_id}, Line #{line_id}"
    if line_id:
        return f"PO line #{line_id}"
    if purchase_order_id:
        return f"PO #{purchase_order_id}"
    return "PO line"


def is_due_soon(eta: Optional[date], today: date, window_days: int) -> bool:
    if eta is None:
        return False
    return 0 <= (eta - today).days <= window_days


def evaluate_po_lines(
    lines: Iterable[PurchaseOrderLineSummary],
    target_date: Optional[date],
    today: date,
) -> PoLineEvaluation:
    """
    Timing check of PO lines with outstanding quantity.

    A line blocks when its ETA is missing, before today, or after the
    target date. The earliest blocking line (missing ETA last) drives the
    hold reason; every blocking line gets a RESOLVE_PO action.
    """
    evaluation = PoLineEvaluation()

    blocking = []
    for line in lines:
        if line.qty_expected - line.qty_received <= 0:
            continue
        eta = line.eta_date
        missing_eta = eta is None
        past_due = eta is not None and eta < today
        after_target = eta is not None and target_date is not None and eta > target_date
        if missing_eta or past_due or after_target:
            blocking.append((line, missing_eta, past_due, after_target))

    if not blocking:
        return evaluation

    blocking.sort(key=lambda entry: (entry[0].eta_date is None, entry[0].eta_date or date.max))

    focus, missing_eta, past_due, _ = blocking[0]
    focus_label = format_po_line_label(focus.purchase_order_id, focus.id)
    evaluation.po_hold = True
    evaluation.po_blocking_line_id = focus.id
    evaluation.po_blocking_eta = focus.eta_date
    if missing_eta:
        evaluation.po_hold_reason = f"Missing ETA on {focus_label}"
    elif past_due:
        evaluation.po_hold_reason = f"{focus_label} past ETA"
    else:
        evaluation.po_hold_reason = f"{focus_label} arrives after target"

    for line, missing_eta, past_due, _ in blocking:
        if missing_eta:
            detail = "ETA missing"
        elif past_due:
            detail = f"ETA {format_short(line.eta_date)} past due"
        else:
            detail = f"ETA {format_short(line.eta_date)} after target"
        evaluation.next_actions.append(NextAction(
            kind=NextActionKind.RESOLVE_PO,
            label=f"Resolve {format_po_line_label(line.purchase_order_id, line.id)}",
            detail=detail,
        ))

    return evaluation


def _coverage_actions(coverage: AssemblyMaterialCoverage) -> list[NextAction]:
    actions = []
    for material in coverage.materials:
        if material.status == CoverageStatus.PO_HOLD and material.qty_uncovered_after_tolerance > 0:
            actions.append(NextAction(
                kind=NextActionKind.RESOLVE_PO,
                label=f"Assign PO for {material.product_name or 'material'}",
                detail=(
                    f"Uncovered {format_qty(material.qty_uncovered_after_tolerance)} "
                    f"(raw {format_qty(material.qty_uncovered)})"
                ),
            ))
        for reservation in material.reservations:
            if (
                reservation.type == ReservationType.PO
                and reservation.status == ReservationStatus.BLOCKED
                and reservation.purchase_order_line_id
            ):
                actions.append(NextAction(
                    kind=NextActionKind.RESOLVE_PO,
                    label=(
                        "Resolve "
                        f"{format_po_line_label(reservation.purchase_order_id, reservation.purchase_order_line_id)}"
                    ),
                    detail=reservation.reason,
                ))
    return actions


def _first_blocked_reservation(coverage: AssemblyMaterialCoverage):
    for material in coverage.materials:
        for reservation in material.reservations:
            if reservation.type == ReservationType.PO and reservation.status == ReservationStatus.BLOCKED:
                return reservation
    return None


class RiskSignalService:
    """Build dashboard risk signals per assembly."""

    def build(
        self,
        assemblies: Iterable[AssemblyInput],
        rollups: Optional[dict[int, AssemblyRollup]] = None,
        external_steps_by_assembly: Optional[dict[int, list[DerivedExternalStep]]] = None,
        purchase_orders_by_assembly: Optional[dict[int, list[PurchaseOrderLineSummary]]] = None,
        material_coverage: Optional[dict[int, AssemblyMaterialCoverage]] = None,
        today: Optional[date] = None,
    ) -> dict[int, AssemblyRiskSignals]:
        """
        Build risk signals.

        Args:
            assemblies: Assemblies to evaluate
            rollups: assembly_id → stage rollup (cut output drives SEND_OUT)
            external_steps_by_assembly: assembly_id → derived vendor steps
            purchase_orders_by_assembly: assembly_id → PO lines (fallback only)
            material_coverage: assembly_id → coverage result, when evaluated
            today: Reference date (default: date.today())

        Returns:
            assembly_id → AssemblyRiskSignals
        """
        today = today or date.today()
        rollups = rollups or {}
        external_steps_by_assembly = external_steps_by_assembly or {}
        purchase_orders_by_assembly = purchase_orders_by_assembly or {}
        window_days = settings.due_soon_window_days

        result: dict[int, AssemblyRiskSignals] = {}
        for assembly in assemblies:
            rollup = rollups.get(assembly.id)
            steps = external_steps_by_assembly.get(assembly.id) or []

            open_with_eta = sorted(
                (s for s in steps if s.is_open and s.eta_date is not None),
                key=lambda s: s.eta_date,
            )
            nearest = open_with_eta[0] if open_with_eta else None
            has_external_late = any(s.is_late for s in steps)
            external_due_soon = bool(
                nearest and not nearest.is_late and is_due_soon(nearest.eta_date, today, window_days)
            )

            next_actions: list[NextAction] = []
            if rollup is not None and rollup.cut_good_qty > ZERO:
                for step in steps:
                    if step.expected and step.status == ExternalStepStatus.NOT_STARTED:
                        next_actions.append(NextAction(
                            kind=NextActionKind.SEND_OUT,
                            label=f"Send {step.label} out",
                        ))
            for step in steps:
                if step.status == ExternalStepStatus.IN_PROGRESS and step.is_late:
                    next_actions.append(NextAction(
                        kind=NextActionKind.FOLLOW_UP_VENDOR,
                        label=f"Follow up vendor for {step.label}",
                        detail=step.vendor.name if step.vendor else None,
                    ))

            coverage = (material_coverage or {}).get(assembly.id)
            if coverage is not None:
                if coverage.held:
                    next_actions.extend(_coverage_actions(coverage))
                hold_reasons = [r for r in coverage.reasons if r.status == CoverageStatus.PO_HOLD]
                blocked = _first_blocked_reservation(coverage)
                po_hold = coverage.held
                po_hold_reason = hold_reasons[0].message if hold_reasons else None
                po_blocking_eta = next(
                    (
                        r.eta_date
                        for m in coverage.materials
                        for r in m.reservations
                        if r.type == ReservationType.PO
                        and r.status == ReservationStatus.BLOCKED
                        and r.eta_date is not None
                    ),
                    None,
                )
                po_blocking_line_id = blocked.purchase_order_line_id if blocked else None
            else:
                fallback = evaluate_po_lines(
                    purchase_orders_by_assembly.get(assembly.id) or [],
                    assembly.target_date,
                    today,
                )
                next_actions.extend(fallback.next_actions)
                po_hold = fallback.po_hold
                po_hold_reason = fallback.po_hold_reason
                po_blocking_eta = fallback.po_blocking_eta
                po_blocking_line_id = fallback.po_blocking_line_id

            vendor_steps = [
                VendorStepInfo(
                    assembly_id=assembly.id,
                    job_id=assembly.job_id,
                    step_label=step.label,
                    vendor_name=step.vendor.name if step.vendor else None,
                    eta_date=step.eta_date,
                    eta_source=step.lead_time_source,
                )
                for step in steps
                if step.status == ExternalStepStatus.IN_PROGRESS
            ]

            result[assembly.id] = AssemblyRiskSignals(
                assembly_id=assembly.id,
                external_eta=nearest.eta_date if nearest else None,
                external_eta_source=nearest.lead_time_source if nearest else None,
                external_eta_step_label=nearest.label if nearest else None,
                has_external_late=has_external_late,
                external_due_soon=external_due_soon,
                po_hold=po_hold,
                po_hold_reason=po_hold_reason,
                po_blocking_eta=po_blocking_eta,
                po_blocking_line_id=po_blocking_line_id,
                next_actions=next_actions,
                vendor_steps=vendor_steps,
            )

        logger.info(
            "risk_signals_built",
            assemblies=len(result),
            po_hold=sum(1 for s in result.values() if s.po_hold),
            external_late=sum(1 for s in result.values() if s.has_external_late),
        )
        return result


# Singleton instance
_risk_signal_service: Optional[RiskSignalService] = None


def get_risk_signal_service() -> RiskSignalService:
    """Get or create RiskSignalService instance."""
    global _risk_signal_service
    if _risk_signal_service is None:
        _risk_signal_service = RiskSignalService()
    return _risk_signal_service
