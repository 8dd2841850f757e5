"""
Material demand, reservation and coverage schemas.

Coverage answers one question per (assembly, material): is the required
quantity covered by on-hand stock plus active reservations, in time for the
assembly's needed date, allowing for a tolerance?
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from models.base import BaseSchema
from utils.date_utils import to_date
from utils.number_utils import to_optional_quantity, to_quantity

ZERO = Decimal("0")


class DemandSource(str, Enum):
    """Where a demand row came from."""

    PLANNER = "PLANNER"  # Supplied by the external material planner
    MANUAL = "MANUAL"
    BOM = "BOM"          # Derived from BOM costings (fallback)


class ReservationType(str, Enum):
    PO = "PO"
    BATCH = "BATCH"


class ReservationStatus(str, Enum):
    OK = "OK"
    BLOCKED = "BLOCKED"


class CoverageStatus(str, Enum):
    """Per-material coverage status, most severe first."""

    PO_HOLD = "PO_HOLD"                        # Uncovered beyond tolerance, or timing blocks
    POTENTIAL_UNDERCUT = "POTENTIAL_UNDERCUT"  # Uncovered, but within tolerance
    DUE_SOON = "DUE_SOON"                      # Covered; a PO lands close to the needed date
    OK = "OK"


class ToleranceSource(str, Enum):
    ASSEMBLY = "ASSEMBLY"
    GLOBAL_TYPE = "GLOBAL_TYPE"
    GLOBAL_DEFAULT = "GLOBAL_DEFAULT"


# ===================
# INPUTS
# ===================

class MaterialDemandCalc(BaseSchema):
    """How a BOM-derived demand row was computed (for drill-down)."""

    order_qty: Optional[Decimal] = None
    cut_good_qty: Optional[Decimal] = None
    remaining_to_cut: Optional[Decimal] = None
    qty_per_unit: Optional[Decimal] = None
    stage: Optional[str] = None
    status: Optional[str] = None
    status_hint: Optional[str] = None


class MaterialDemandRow(BaseSchema):
    """Required quantity of one product for one assembly."""

    id: Optional[int] = None
    assembly_id: int
    product_id: int
    product_name: Optional[str] = None
    product_type: Optional[str] = None
    costing_id: Optional[int] = None
    qty_required: Optional[Decimal] = None
    uom: Optional[str] = None
    source: Optional[DemandSource] = None
    calc: Optional[MaterialDemandCalc] = None

    @field_validator("qty_required", mode="before")
    @classmethod
    def coerce_qty(cls, value: Any) -> Optional[Decimal]:
        return to_optional_quantity(value)


class PurchaseOrderLineTiming(BaseSchema):
    """Timing fields of the PO line behind a reservation."""

    id: int
    purchase_order_id: Optional[int] = None
    eta_date: Optional[date] = None
    qty_ordered: Optional[Decimal] = None
    qty_expected: Optional[Decimal] = None
    qty_received: Optional[Decimal] = None

    @field_validator("eta_date", mode="before")
    @classmethod
    def coerce_eta(cls, value: Any) -> Optional[date]:
        return to_date(value)

    @field_validator("qty_ordered", "qty_expected", "qty_received", mode="before")
    @classmethod
    def coerce_qty(cls, value: Any) -> Optional[Decimal]:
        return to_optional_quantity(value)

    @property
    def outstanding_qty(self) -> Optional[Decimal]:
        """Expected (else ordered) minus received; None when unknown."""
        expected = self.qty_expected if self.qty_expected is not None else self.qty_ordered
        if expected is None or self.qty_received is None:
            return None
        return max(expected - self.qty_received, ZERO)


class SupplyReservation(BaseSchema):
    """Claim of a PO line or an inventory batch against an assembly's need."""

    id: int
    assembly_id: int
    product_id: int
    product_name: Optional[str] = None
    qty_reserved: Decimal = ZERO
    purchase_order_line_id: Optional[int] = None
    purchase_order_line: Optional[PurchaseOrderLineTiming] = None
    inventory_batch_id: Optional[int] = None
    settled_at: Optional[datetime] = None
    note: Optional[str] = None

    @field_validator("qty_reserved", mode="before")
    @classmethod
    def coerce_reserved(cls, value: Any) -> Decimal:
        qty = to_optional_quantity(value)
        return qty if qty is not None and qty > 0 else ZERO

    @property
    def is_settled(self) -> bool:
        return self.settled_at is not None


class StockLocationQty(BaseSchema):
    location_id: int
    qty: Decimal = ZERO

    @field_validator("qty", mode="before")
    @classmethod
    def coerce_qty(cls, value: Any) -> Decimal:
        return to_quantity(value)


class StockSnapshot(BaseSchema):
    """On-hand stock for one product."""

    product_id: int
    total_qty: Decimal = ZERO
    by_location: list[StockLocationQty] = Field(default_factory=list)

    @field_validator("total_qty", mode="before")
    @classmethod
    def coerce_total(cls, value: Any) -> Decimal:
        return to_quantity(value)

    def qty_at(self, location_id: Optional[int]) -> Decimal:
        """Stock at a location; zero when no location is given."""
        if location_id is None:
            return ZERO
        for row in self.by_location:
            if row.location_id == location_id:
                return max(row.qty, ZERO)
        return ZERO


class ToleranceEntry(BaseSchema):
    pct: Decimal = ZERO
    abs: Decimal = ZERO

    @field_validator("pct", "abs", mode="before")
    @classmethod
    def coerce_value(cls, value: Any) -> Decimal:
        return to_quantity(value)


class CoverageToleranceDefaults(BaseSchema):
    """Company-level tolerance table: global default plus per product type."""

    default_pct: Decimal = Decimal("0.01")
    default_abs: Decimal = ZERO
    by_type: dict[str, ToleranceEntry] = Field(default_factory=dict)


class CoverageTolerance(BaseSchema):
    """Resolved slack for one (assembly, material)."""

    pct: Decimal = ZERO
    abs: Decimal = ZERO
    source: ToleranceSource = ToleranceSource.GLOBAL_DEFAULT


# ===================
# OUTPUTS
# ===================

class MaterialReservationRow(BaseSchema):
    """Reservation as evaluated for coverage."""

    id: int
    assembly_id: int
    product_id: int
    product_name: Optional[str] = None
    qty_reserved: Decimal = ZERO
    type: ReservationType
    purchase_order_id: Optional[int] = None
    purchase_order_line_id: Optional[int] = None
    inventory_batch_id: Optional[int] = None
    eta_date: Optional[date] = None
    qty_ordered: Optional[Decimal] = None
    qty_received: Optional[Decimal] = None
    outstanding_qty: Optional[Decimal] = None
    status: ReservationStatus = ReservationStatus.OK
    reason: Optional[str] = None
    due_soon: bool = False
    note: Optional[str] = None


class MaterialCoverageItem(BaseSchema):
    """Coverage of one material for one assembly."""

    product_id: int
    product_name: Optional[str] = None
    product_type: Optional[str] = None
    qty_required: Optional[Decimal] = None
    qty_reserved_to_po: Decimal = ZERO
    qty_reserved_to_batch: Decimal = ZERO
    loc_stock: Decimal = ZERO
    total_stock: Decimal = ZERO
    covered_by_on_hand: Decimal = ZERO
    covered_by_reservations: Decimal = ZERO
    remaining_after_on_hand: Decimal = ZERO
    qty_uncovered: Decimal = ZERO
    tolerance: CoverageTolerance = Field(default_factory=CoverageTolerance)
    tolerance_qty: Decimal = ZERO
    qty_uncovered_after_tolerance: Decimal = ZERO
    status: CoverageStatus = CoverageStatus.OK
    reservations: list[MaterialReservationRow] = Field(default_factory=list)
    blocking_po_line_ids: list[int] = Field(default_factory=list)
    earliest_eta: Optional[date] = None
    calc: Optional[MaterialDemandCalc] = None


class MaterialHoldReason(BaseSchema):
    """Why a material holds (or may undercut) an assembly."""

    product_id: int
    status: CoverageStatus
    qty_uncovered: Decimal = ZERO
    qty_uncovered_after_tolerance: Decimal = ZERO
    tolerance_qty: Decimal = ZERO
    reserved_po_line_ids: list[int] = Field(default_factory=list)
    suggested_po_line_ids: list[int] = Field(default_factory=list)
    earliest_eta: Optional[date] = None
    message: str


class AssemblyMaterialCoverage(BaseSchema):
    """Coverage result for one assembly."""

    assembly_id: int
    held: bool = False
    reasons: list[MaterialHoldReason] = Field(default_factory=list)
    materials: list[MaterialCoverageItem] = Field(default_factory=list)
