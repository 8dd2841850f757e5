"""
Shared test fixtures.

Factories for activities, assemblies and material records live in
tests/factories.py.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import pytest
from datetime import date
from unittest.mock import patch

from services.coverage_tolerance_service import FALLBACK_TOLERANCE_DEFAULTS
from services.stage_aggregation_service import StageAggregationService
from tests.factories import (
    ActivityFactory,
    AssemblyFactory,
    CostingFactory,
    ReservationFactory,
)


# ===================
# DATES
# ===================

@pytest.fixture
def today() -> date:
    """Fixed reference date so ETA comparisons are deterministic."""
    return date(2025, 3, 10)


# ===================
# CONFIG
# ===================

@pytest.fixture
def tolerance_defaults():
    """Built-in company tolerance table."""
    return FALLBACK_TOLERANCE_DEFAULTS


@pytest.fixture
def due_soon_window():
    """
    Pin the due-soon window to 7 days regardless of the environment.

    Usage:
        def test_something(due_soon_window):
            ...
    """
    with patch("services.material_coverage_service.settings") as coverage_settings, \
            patch("services.risk_signal_service.settings") as risk_settings:
        coverage_settings.due_soon_window_days = 7
        risk_settings.due_soon_window_days = 7
        yield 7


# ===================
# SERVICES
# ===================

@pytest.fixture
def aggregation_service() -> StageAggregationService:
    return StageAggregationService()


# ===================
# FACTORY RESET
# ===================

@pytest.fixture(autouse=True)
def reset_factories():
    """Restart factory counters so generated IDs are stable per test."""
    for factory in (ActivityFactory, AssemblyFactory, CostingFactory, ReservationFactory):
        factory.reset_counter()
    yield
