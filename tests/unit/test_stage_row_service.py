"""
Unit tests for StageRowService.
"""

from datetime import date
from decimal import Decimal

import pytest

from models.activity import ExternalStepType, VendorRef
from models.external_step import DerivedExternalStep, ExternalStepStatus
from services.stage_aggregation_service import StageAggregationService
from services.stage_row_service import StageRowService, get_stage_row_service
from tests.factories import ActivityFactory


def D(*values):
    return [Decimal(str(v)) for v in values]


@pytest.fixture
def service():
    return StageRowService()


def aggregate(activities, ordered=None):
    return StageAggregationService().aggregate(
        assembly_id=1,
        ordered_breakdown=ordered or [3],
        activities=activities,
    )


class TestBuildRows:
    """Tests for build_rows()."""

    def test_row_order_with_external_step(self, service):
        aggregation = aggregate([
            ActivityFactory.create(stage="cut", qty_breakdown=[3]),
            ActivityFactory.sent_out(ExternalStepType.WASH, [3]),
        ])
        step = DerivedExternalStep(
            type=ExternalStepType.WASH,
            label="Wash",
            expected=True,
            status=ExternalStepStatus.IN_PROGRESS,
            eta_date=date(2025, 3, 20),
            vendor=VendorRef(id=4, name="Acme Wash"),
        )

        result = service.build_rows(aggregation, [step])

        assert [row.label for row in result.rows] == [
            "Ordered", "Cut", "Sew", "Wash", "Finish", "Pack", "QC"
        ]
        wash = result.rows[3]
        assert wash.kind == "external"
        assert wash.sent == D(3)
        assert wash.totals.sent == Decimal("3")
        assert wash.vendor.name == "Acme Wash"
        assert wash.eta_date == date(2025, 3, 20)

    def test_ordered_row_uses_effective_ordered(self, service):
        aggregation = aggregate(
            [ActivityFactory.cancel([1])],
            ordered=[3],
        )

        result = service.build_rows(aggregation)

        assert result.rows[0].stage == "order"
        assert result.rows[0].breakdown == D(2)
        assert result.rows[0].total == Decimal("2")

    def test_sew_row_never_falls_back_to_cut(self, service):
        aggregation = aggregate([ActivityFactory.create(stage="cut", qty_breakdown=[3])])

        result = service.build_rows(aggregation)

        sew = result.rows[2]
        assert sew.stage == "sew"
        assert sew.total == Decimal("0")
        assert sew.hint is None

    def test_sew_row_hint_from_finish(self, service):
        aggregation = aggregate([
            ActivityFactory.create(stage="cut", qty_breakdown=[3]),
            ActivityFactory.create(stage="finish", qty_breakdown=[2]),
        ])

        result = service.build_rows(aggregation)

        sew = result.rows[2]
        assert sew.total == Decimal("2")
        assert sew.hint == "Implied from finish"

    def test_sew_row_from_external_received(self, service):
        aggregation = aggregate([
            ActivityFactory.create(stage="cut", qty_breakdown=[3]),
            ActivityFactory.sent_out(ExternalStepType.EMBROIDERY, [3]),
            ActivityFactory.received_in(ExternalStepType.EMBROIDERY, [1]),
        ])
        step = DerivedExternalStep(type=ExternalStepType.EMBROIDERY, label="Embroidery", expected=True)

        result = service.build_rows(aggregation, [step])

        assert result.rows[2].total == Decimal("1")
        assert result.rows[2].hint == "Implied from external received"
        assert result.finish_input.breakdown == D(1)
        assert result.finish_input.total == Decimal("1")

    def test_finish_input_from_explicit_sew(self, service):
        aggregation = aggregate([
            ActivityFactory.create(stage="cut", qty_breakdown=[3]),
            ActivityFactory.create(stage="sew", qty_breakdown=[2]),
        ])

        result = service.build_rows(aggregation)

        assert result.finish_input.breakdown == D(2)

    def test_finish_input_from_cut_without_sew(self, service):
        aggregation = aggregate([ActivityFactory.create(stage="cut", qty_breakdown=[3])])

        result = service.build_rows(aggregation)

        assert result.finish_input.breakdown == D(3)

    def test_defect_loss_on_rows(self, service):
        aggregation = aggregate([
            ActivityFactory.create(stage="cut", qty_breakdown=[3]),
            ActivityFactory.defect("cut", [1]),
        ])

        result = service.build_rows(aggregation)

        cut = result.rows[1]
        assert cut.loss == D(1)
        assert cut.loss_total == Decimal("1")
        assert cut.logged_defect_total == Decimal("1")


class TestSingleton:

    def test_same_instance(self):
        assert get_stage_row_service() is get_stage_row_service()
