"""
Unit tests for RiskSignalService.

Tests cover vendor step timing, next actions, and PO hold signals with and
without a material coverage result.
"""

from datetime import date
from decimal import Decimal

import pytest

from models.activity import ExternalStepType, VendorRef
from models.external_step import DerivedExternalStep, ExternalStepStatus, LeadTimeSource
from models.risk import NextActionKind, PoLineEvaluation
from models.stage import AssemblyRollup
from services.coverage_tolerance_service import FALLBACK_TOLERANCE_DEFAULTS
from services.material_coverage_service import MaterialCoverageService
from services.risk_signal_service import (
    RiskSignalService,
    evaluate_po_lines,
    format_po_line_label,
    get_risk_signal_service,
)
from tests.factories import (
    AssemblyFactory,
    DemandRowFactory,
    PurchaseOrderLineFactory,
    ReservationFactory,
)


@pytest.fixture
def service(due_soon_window):
    return RiskSignalService()


@pytest.fixture
def assembly():
    return AssemblyFactory.create(target_date=date(2025, 3, 20))


def step(step_type, status, eta=None, late=False, expected=True, vendor=None):
    return DerivedExternalStep(
        type=step_type,
        label=step_type.value.title(),
        expected=expected,
        status=status,
        eta_date=eta,
        is_late=late,
        lead_time_source=LeadTimeSource.COSTING if eta else None,
        vendor=VendorRef(id=1, name=vendor) if vendor else None,
    )


def rollup(assembly, cut_good=0):
    return AssemblyRollup(assembly_id=assembly.id, cut_good_qty=Decimal(str(cut_good)))


# ===================
# EXTERNAL STEPS
# ===================

class TestExternalSignals:

    def test_nearest_open_step_eta(self, service, assembly, today):
        steps = [
            step(ExternalStepType.WASH, ExternalStepStatus.IN_PROGRESS, eta=date(2025, 3, 14), vendor="Acme Wash"),
            step(ExternalStepType.DYE, ExternalStepStatus.IN_PROGRESS, eta=date(2025, 3, 18)),
            step(ExternalStepType.EMBROIDERY, ExternalStepStatus.DONE, eta=date(2025, 3, 11)),
        ]

        signals = service.build([assembly], external_steps_by_assembly={assembly.id: steps}, today=today)[assembly.id]

        assert signals.external_eta == date(2025, 3, 14)
        assert signals.external_eta_step_label == "Wash"
        assert signals.external_eta_source == LeadTimeSource.COSTING
        assert signals.external_due_soon is True
        assert signals.has_external_late is False
        assert [v.step_label for v in signals.vendor_steps] == ["Wash", "Dye"]
        assert signals.vendor_steps[0].vendor_name == "Acme Wash"
        assert signals.vendor_steps[0].job_id == assembly.job_id

    def test_late_step_not_due_soon(self, service, assembly, today):
        steps = [
            step(ExternalStepType.WASH, ExternalStepStatus.IN_PROGRESS, eta=date(2025, 3, 5), late=True, vendor="Acme Wash"),
        ]

        signals = service.build([assembly], external_steps_by_assembly={assembly.id: steps}, today=today)[assembly.id]

        assert signals.has_external_late is True
        assert signals.external_due_soon is False
        follow_up = [a for a in signals.next_actions if a.kind == NextActionKind.FOLLOW_UP_VENDOR]
        assert len(follow_up) == 1
        assert follow_up[0].label == "Follow up vendor for Wash"
        assert follow_up[0].detail == "Acme Wash"

    def test_eta_beyond_window_not_due_soon(self, service, assembly, today):
        steps = [step(ExternalStepType.WASH, ExternalStepStatus.IN_PROGRESS, eta=date(2025, 3, 30))]

        signals = service.build([assembly], external_steps_by_assembly={assembly.id: steps}, today=today)[assembly.id]

        assert signals.external_due_soon is False

    def test_send_out_when_cut_output_exists(self, service, assembly, today):
        steps = [
            step(ExternalStepType.EMBROIDERY, ExternalStepStatus.NOT_STARTED),
            step(ExternalStepType.WASH, ExternalStepStatus.NOT_STARTED, expected=False),
        ]

        signals = service.build(
            [assembly],
            rollups={assembly.id: rollup(assembly, cut_good=5)},
            external_steps_by_assembly={assembly.id: steps},
            today=today,
        )[assembly.id]

        assert [a.label for a in signals.next_actions] == ["Send Embroidery out"]
        assert signals.next_actions[0].kind == NextActionKind.SEND_OUT

    def test_no_send_out_before_cut(self, service, assembly, today):
        steps = [step(ExternalStepType.EMBROIDERY, ExternalStepStatus.NOT_STARTED)]

        signals = service.build(
            [assembly],
            rollups={assembly.id: rollup(assembly, cut_good=0)},
            external_steps_by_assembly={assembly.id: steps},
            today=today,
        )[assembly.id]

        assert signals.next_actions == []

    def test_assembly_without_data(self, service, assembly, today):
        signals = service.build([assembly], today=today)[assembly.id]

        assert signals.external_eta is None
        assert signals.po_hold is False
        assert signals.next_actions == []
        assert signals.vendor_steps == []


# ===================
# PO LINE FALLBACK
# ===================

class TestPoLineFallback:

    def test_blocking_lines_sorted_by_eta(self, service, assembly, today):
        lines = [
            PurchaseOrderLineFactory.create(1),
            PurchaseOrderLineFactory.create(2, eta_date=date(2025, 3, 5)),
            PurchaseOrderLineFactory.create(3, eta_date=date(2025, 3, 25)),
            PurchaseOrderLineFactory.create(4, eta_date=date(2025, 3, 15)),
            PurchaseOrderLineFactory.create(5, eta_date=date(2025, 3, 1), qty_received=10),
        ]

        signals = service.build(
            [assembly], purchase_orders_by_assembly={assembly.id: lines}, today=today
        )[assembly.id]

        assert signals.po_hold is True
        assert signals.po_hold_reason == "PO #77, Line #2 past ETA"
        assert signals.po_blocking_line_id == 2
        assert signals.po_blocking_eta == date(2025, 3, 5)
        assert [(a.label, a.detail) for a in signals.next_actions] == [
            ("Resolve PO #77, Line #2", "ETA Mar 5 past due"),
            ("Resolve PO #77, Line #3", "ETA Mar 25 after target"),
            ("Resolve PO #77, Line #1", "ETA missing"),
        ]

    def test_missing_eta_reason(self, today):
        evaluation = evaluate_po_lines([PurchaseOrderLineFactory.create(8)], date(2025, 3, 20), today)

        assert evaluation.po_hold is True
        assert evaluation.po_hold_reason == "Missing ETA on PO #77, Line #8"
        assert evaluation.po_blocking_eta is None

    def test_after_target_reason(self, today):
        evaluation = evaluate_po_lines(
            [PurchaseOrderLineFactory.create(8, eta_date=date(2025, 3, 28))], date(2025, 3, 20), today
        )
        assert evaluation.po_hold_reason == "PO #77, Line #8 arrives after target"

    def test_no_target_date_only_checks_past_due(self, today):
        evaluation = evaluate_po_lines(
            [PurchaseOrderLineFactory.create(8, eta_date=date(2025, 6, 1))], None, today
        )
        assert evaluation.po_hold is False
        assert evaluation.next_actions == []

    def test_evaluation_is_schema(self, today):
        evaluation = evaluate_po_lines(
            [PurchaseOrderLineFactory.create(8, eta_date=date(2025, 3, 5))], date(2025, 3, 20), today
        )

        assert isinstance(evaluation, PoLineEvaluation)
        dumped = evaluation.model_dump()
        assert dumped["po_hold"] is True
        assert dumped["po_blocking_line_id"] == 8
        assert dumped["po_blocking_eta"] == date(2025, 3, 5)
        assert dumped["next_actions"][0]["kind"] == NextActionKind.RESOLVE_PO

    def test_empty_lines(self, today):
        assert evaluate_po_lines([], date(2025, 3, 20), today) == PoLineEvaluation()


class TestFormatPoLineLabel:

    @pytest.mark.parametrize("po_id,line_id,label", [
        (12, 3, "PO #12, Line #3"),
        (None, 3, "PO line #3"),
        (12, None, "PO #12"),
        (None, None, "PO line"),
    ])
    def test_labels(self, po_id, line_id, label):
        assert format_po_line_label(po_id, line_id) == label


# ===================
# WITH MATERIAL COVERAGE
# ===================

class TestWithMaterialCoverage:

    @pytest.fixture
    def coverage_assembly(self):
        return AssemblyFactory.create(target_date=date(2025, 3, 24))

    def _coverage(self, assembly, today, demands, reservations):
        return MaterialCoverageService().evaluate(
            assemblies=[assembly],
            demand_rows=demands,
            reservations=reservations,
            stock_snapshots=[],
            tolerance_defaults=FALLBACK_TOLERANCE_DEFAULTS,
            today=today,
        )

    def test_held_coverage_drives_po_signals(self, service, coverage_assembly, today):
        assembly = coverage_assembly
        coverage = self._coverage(
            assembly,
            today,
            demands=[
                DemandRowFactory.create(assembly.id, 10, qty_required=100, product_name="Denim"),
                DemandRowFactory.create(assembly.id, 11, qty_required=50, product_name="Thread", product_type="TRIM"),
            ],
            reservations=[
                ReservationFactory.create_po(
                    assembly.id, 10, qty_reserved=100, eta_date=date(2025, 3, 5), purchase_order_line_id=501
                ),
            ],
        )
        # PO lines are ignored once coverage is supplied
        lines = [PurchaseOrderLineFactory.create(9)]

        signals = service.build(
            [assembly],
            purchase_orders_by_assembly={assembly.id: lines},
            material_coverage=coverage,
            today=today,
        )[assembly.id]

        assert signals.po_hold is True
        assert signals.po_hold_reason == "PO line timing blocks Denim"
        assert signals.po_blocking_line_id == 501
        assert signals.po_blocking_eta == date(2025, 3, 5)
        assert [(a.label, a.detail) for a in signals.next_actions] == [
            ("Resolve PO #77, Line #501", "ETA past due"),
            ("Assign PO for Thread", "Uncovered 39 (raw 50)"),
        ]
        assert all(a.kind == NextActionKind.RESOLVE_PO for a in signals.next_actions)

    def test_unheld_coverage_has_no_po_actions(self, service, coverage_assembly, today):
        assembly = coverage_assembly
        coverage = self._coverage(
            assembly,
            today,
            demands=[DemandRowFactory.create(assembly.id, 10, qty_required=100, product_name="Denim")],
            reservations=[ReservationFactory.create_po(assembly.id, 10, qty_reserved=100, eta_date=date(2025, 3, 12))],
        )

        signals = service.build([assembly], material_coverage=coverage, today=today)[assembly.id]

        assert signals.po_hold is False
        assert signals.po_hold_reason is None
        assert signals.po_blocking_line_id is None
        assert signals.next_actions == []


class TestSingleton:

    def test_same_instance(self):
        assert get_risk_signal_service() is get_risk_signal_service()
