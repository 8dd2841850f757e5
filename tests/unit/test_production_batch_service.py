"""
Unit tests for ProductionBatchService.

Tests cover the full per-assembly pipeline, coverage and risk attachment,
and isolation of failing assemblies.
"""

from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch

import pytest

from models.activity import ExternalStepType, Stage
from models.external_step import ExternalStepStatus
from models.material import CoverageStatus
from models.production import AssemblyProductionInput
from models.risk import NextActionKind
from services.production_batch_service import (
    ProductionBatchService,
    get_production_batch_service,
)
from services.stage_aggregation_service import StageAggregationService
from tests.factories import (
    ActivityFactory,
    AssemblyFactory,
    CostingFactory,
    DemandRowFactory,
)


@pytest.fixture
def service(due_soon_window):
    return ProductionBatchService()


@pytest.fixture
def washed_input():
    """Cut 8 of 10, all of it at the wash vendor since Mar 3."""
    assembly = AssemblyFactory.create(
        id=1,
        quantity=10,
        target_date=date(2025, 3, 20),
        costings=[
            CostingFactory.create_external_step(ExternalStepType.WASH, lead_time_days=5),
            CostingFactory.create(
                product_type="FABRIC", product_id=10, product_name="Denim", activity_used="cut"
            ),
        ],
    )
    return AssemblyProductionInput(
        assembly=assembly,
        ordered_breakdown=[5, 5],
        activities=[
            ActivityFactory.create(stage="cut", qty_breakdown=[4, 4]),
            ActivityFactory.sent_out(
                ExternalStepType.WASH, [4, 4], activity_date=datetime(2025, 3, 3, 8, 0)
            ),
        ],
    )


@pytest.fixture
def short_input():
    """Planner demand for 100 Denim with nothing in stock or reserved."""
    assembly = AssemblyFactory.create(id=2, quantity=100, target_date=date(2025, 3, 25))
    return AssemblyProductionInput(
        assembly=assembly,
        ordered_breakdown=[100],
        demand_rows=[DemandRowFactory.create(2, 20, qty_required=100, product_name="Denim")],
        pack_lines=[{"qty_breakdown": [2]}, {"qty_breakdown": [1]}],
    )


# ===================
# PIPELINE
# ===================

class TestEvaluate:

    def test_stage_results(self, service, washed_input, today, tolerance_defaults):
        batch = service.evaluate([washed_input], stock_snapshots=[], tolerance_defaults=tolerance_defaults, today=today)

        result = batch.results[1]
        assert batch.errors == []
        assert result.aggregation.total(Stage.CUT) == Decimal("8")
        assert result.rollup.cut_good_qty == Decimal("8")
        assert result.rollup.qty_sent_out_not_received == Decimal("8")
        assert result.stage_rows.rows
        assert [s.type for s in result.external_steps] == [ExternalStepType.WASH]
        assert result.external_steps[0].status == ExternalStepStatus.IN_PROGRESS
        assert result.external_steps[0].eta_date == date(2025, 3, 8)

    def test_bom_demand_from_rollup(self, service, washed_input, today, tolerance_defaults):
        batch = service.evaluate([washed_input], stock_snapshots=[], tolerance_defaults=tolerance_defaults, today=today)

        coverage = batch.results[1].material_coverage
        assert coverage.held is False
        material = coverage.materials[0]
        assert material.product_id == 10
        assert material.qty_required == Decimal("2")
        assert material.product_name == "Denim"
        assert material.status == CoverageStatus.POTENTIAL_UNDERCUT

    def test_risk_signals_attached(self, service, washed_input, today, tolerance_defaults):
        batch = service.evaluate([washed_input], stock_snapshots=[], tolerance_defaults=tolerance_defaults, today=today)

        risk = batch.results[1].risk
        assert risk.has_external_late is True
        assert risk.external_eta == date(2025, 3, 8)
        assert risk.po_hold is False
        assert [a.kind for a in risk.next_actions] == [NextActionKind.FOLLOW_UP_VENDOR]
        assert [v.step_label for v in risk.vendor_steps] == ["Wash"]

    def test_held_assembly(self, service, short_input, today, tolerance_defaults):
        batch = service.evaluate([short_input], stock_snapshots=[], tolerance_defaults=tolerance_defaults, today=today)

        result = batch.results[2]
        assert result.material_coverage.held is True
        assert result.risk.po_hold is True
        assert result.risk.po_hold_reason == "Uncovered qty for Denim"
        assert [(a.label, a.detail) for a in result.risk.next_actions] == [
            ("Assign PO for Denim", "Uncovered 92 (raw 100)"),
        ]
        assert result.rollup.packed_qty == Decimal("3")

    def test_empty_batch(self, service, today, tolerance_defaults):
        batch = service.evaluate([], stock_snapshots=None, tolerance_defaults=tolerance_defaults, today=today)

        assert batch.results == {}
        assert batch.errors == []


# ===================
# FAILURE ISOLATION
# ===================

class TestFailureIsolation:

    def test_failing_assembly_reported(self, service, washed_input, short_input, today, tolerance_defaults):
        real_aggregate = StageAggregationService().aggregate

        def aggregate(**kwargs):
            if kwargs["assembly_id"] == 1:
                raise ValueError("corrupt activity history")
            return real_aggregate(**kwargs)

        with patch.object(service.aggregation_service, "aggregate", side_effect=aggregate):
            batch = service.evaluate(
                [washed_input, short_input], stock_snapshots=[], tolerance_defaults=tolerance_defaults, today=today
            )

        assert list(batch.results) == [2]
        assert batch.results[2].material_coverage is not None
        assert batch.results[2].risk is not None
        assert len(batch.errors) == 1
        error = batch.errors[0]["error"]
        assert error["code"] == "ASSEMBLY_EVALUATION_FAILED"
        assert error["message"] == "corrupt activity history"
        assert error["details"] == {"assembly_id": 1}

    def test_all_failing(self, service, washed_input, today, tolerance_defaults):
        with patch.object(service.aggregation_service, "aggregate", side_effect=RuntimeError("boom")):
            batch = service.evaluate([washed_input], stock_snapshots=[], tolerance_defaults=tolerance_defaults, today=today)

        assert batch.results == {}
        assert len(batch.errors) == 1


class TestSingleton:

    def test_same_instance(self):
        assert get_production_batch_service() is get_production_batch_service()