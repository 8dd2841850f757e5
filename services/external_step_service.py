"""
External step derivation.

Works out, per assembly, which vendor round-trips (embroidery, wash, dye)
are expected by the BOM or already recorded, where each one stands, and
when it is due back.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from models.activity import Activity, ActivityAction, ActivityKind, ExternalStepType, Stage
from models.assembly import AssemblyInput, CostingLite, ProductLite, SupplierLite
from models.external_step import (
    DerivedExternalStep,
    ExternalStepStatus,
    LeadTimeSource,
    StepActivitySummary,
)
from services.stage_aggregation_service import normalize_activity
from utils.number_utils import ZERO, to_quantity

logger = structlog.get_logger(__name__)

STEP_ORDER = (ExternalStepType.EMBROIDERY, ExternalStepType.WASH, ExternalStepType.DYE)

STEP_LABELS = {
    ExternalStepType.EMBROIDERY: "Embroidery",
    ExternalStepType.WASH: "Wash",
    ExternalStepType.DYE: "Dye",
}

DONE_STATUSES = (ExternalStepStatus.DONE, ExternalStepStatus.IMPLICIT_DONE)


def _latest(activities: Iterable[Activity]) -> Optional[Activity]:
    """Most recent dated activity; later list entries win ties."""
    latest = None
    for activity in activities:
        if activity.activity_date is None:
            continue
        if latest is None or activity.activity_date >= latest.activity_date:
            latest = activity
    return latest


def _activity_day(activity: Optional[Activity]) -> Optional[date]:
    if activity is None or activity.activity_date is None:
        return None
    return activity.activity_date.date()


def _costing_for_step(assembly: AssemblyInput, step_type: ExternalStepType) -> Optional[CostingLite]:
    candidates = [c for c in assembly.costings if c.external_step_type == step_type]
    if not candidates:
        return None
    for costing in candidates:
        if (costing.lead_time_days or 0) > 0:
            return costing
    return candidates[0]


def resolve_lead_time(
    costing: Optional[CostingLite],
    product: Optional[ProductLite],
    supplier: Optional[SupplierLite],
) -> tuple[Optional[int], Optional[LeadTimeSource]]:
    """
    Lead time for a vendor step: costing, else product, else supplier default.

    Returns:
        (days, source), or (None, None) when nothing positive is configured
    """
    candidates = (
        (costing.lead_time_days if costing else None, LeadTimeSource.COSTING),
        (product.lead_time_days if product else None, LeadTimeSource.PRODUCT),
        (supplier.default_lead_time_days if supplier else None, LeadTimeSource.COMPANY),
    )
    for days, source in candidates:
        if days is not None and days > 0:
            return days, source
    return None, None


class ExternalStepService:
    """Derive vendor step status and timing for an assembly."""

    def derive_steps(
        self,
        assembly: AssemblyInput,
        activities: Iterable,
        totals: Optional[dict[Stage, Decimal]] = None,
        today: Optional[date] = None,
    ) -> list[DerivedExternalStep]:
        """
        Derive one step per expected or recorded vendor step type.

        Args:
            assembly: Assembly with costings and product
            activities: All activities for the assembly
            totals: Display totals per stage (from StageAggregation.totals)
            today: Reference date for lateness (default: date.today())

        Returns:
            Steps ordered embroidery, wash, dye
        """
        today = today or date.today()
        totals = totals or {}
        acts = [normalize_activity(raw) for raw in activities or []]

        expected_types: set[ExternalStepType] = set()
        for costing in assembly.costings:
            step_type = costing.external_step_type or (
                costing.product.external_step_type if costing.product else None
            )
            if step_type is not None:
                expected_types.add(step_type)

        recorded_types = {a.external_step_type for a in acts if a.external_step_type is not None}
        all_types = expected_types | recorded_types
        ordered_types = [t for t in STEP_ORDER if t in all_types]
        if not ordered_types:
            return []

        has_finish = to_quantity(totals.get(Stage.FINISH)) > 0 or any(
            a.stage == Stage.FINISH and a.quantity > 0 for a in acts
        )
        has_sew = to_quantity(totals.get(Stage.SEW)) > 0 or any(
            a.stage == Stage.SEW and a.quantity > 0 for a in acts
        )
        stage_dates = {
            stage: _activity_day(_latest(a for a in acts if a.stage == stage))
            for stage in (Stage.CUT, Stage.SEW, Stage.FINISH)
        }

        steps = []
        for step_type in ordered_types:
            step = self._derive_step(
                step_type=step_type,
                assembly=assembly,
                activities=acts,
                expected=step_type in expected_types,
                has_finish=has_finish,
                has_sew=has_sew,
                stage_dates=stage_dates,
                today=today,
            )
            if step is not None:
                steps.append(step)
        return steps

    def _derive_step(
        self,
        step_type: ExternalStepType,
        assembly: AssemblyInput,
        activities: list[Activity],
        expected: bool,
        has_finish: bool,
        has_sew: bool,
        stage_dates: dict[Stage, Optional[date]],
        today: date,
    ) -> Optional[DerivedExternalStep]:
        step_acts = [a for a in activities if a.external_step_type == step_type]
        if not expected and not step_acts:
            return None

        sent_events = [a for a in step_acts if a.action == ActivityAction.SENT_OUT]
        received_events = [a for a in step_acts if a.action == ActivityAction.RECEIVED_IN]
        latest_sent = _latest(sent_events)
        latest_received = _latest(received_events)

        if received_events:
            status = ExternalStepStatus.DONE
        elif sent_events:
            status = ExternalStepStatus.IN_PROGRESS
        elif has_finish and expected:
            status = ExternalStepStatus.IMPLICIT_DONE
        else:
            status = ExternalStepStatus.NOT_STARTED

        defect_qty = sum(
            (abs(a.quantity) for a in step_acts if a.kind == ActivityKind.DEFECT),
            ZERO,
        )
        vendor = (latest_received.vendor if latest_received else None) or (
            latest_sent.vendor if latest_sent else None
        )

        costing = _costing_for_step(assembly, step_type)
        product = (costing.product if costing else None) or assembly.product
        supplier = (
            costing.product.supplier if costing and costing.product else None
        ) or (assembly.product.supplier if assembly.product else None)
        lead_time_days, lead_time_source = resolve_lead_time(costing, product, supplier)

        if expected and lead_time_days is None:
            logger.warning(
                "external_step_lead_time_missing",
                assembly_id=assembly.id,
                step_type=step_type.value,
            )

        sent_date = _activity_day(latest_sent)
        eta_date = sent_date + timedelta(days=lead_time_days) if sent_date and lead_time_days else None
        is_late = eta_date is not None and status not in DONE_STATUSES and eta_date < today

        has_explicit_events = bool(sent_events or received_events)
        inferred_start = None
        inferred_end = None
        if not has_explicit_events:
            inferred_start = stage_dates[Stage.SEW] or stage_dates[Stage.CUT]
            inferred_end = stage_dates[Stage.FINISH]

        return DerivedExternalStep(
            type=step_type,
            label=STEP_LABELS.get(step_type, step_type.value),
            expected=expected,
            status=status,
            sent_date=sent_date,
            received_date=_activity_day(latest_received),
            qty_out=latest_sent.quantity if latest_sent else None,
            qty_in=latest_received.quantity if latest_received else None,
            defect_qty=defect_qty if defect_qty > 0 else None,
            vendor=vendor,
            eta_date=eta_date,
            lead_time_days=lead_time_days,
            lead_time_source=lead_time_source,
            is_late=is_late,
            low_confidence=not has_sew and status != ExternalStepStatus.NOT_STARTED,
            inferred_start_date=inferred_start,
            inferred_end_date=inferred_end,
            activities=[
                StepActivitySummary(
                    id=a.id,
                    action=a.action,
                    kind=a.kind,
                    activity_date=_activity_day(a),
                    quantity=a.quantity,
                    vendor=a.vendor,
                )
                for a in step_acts
            ],
        )


# Singleton instance
_external_step_service: Optional[ExternalStepService] = None


def get_external_step_service() -> ExternalStepService:
    """Get or create ExternalStepService instance."""
    global _external_step_service
    if _external_step_service is None:
        _external_step_service = ExternalStepService()
    return _external_step_service
