"""
Material coverage evaluation.

For each assembly and each material it needs, works out how much of the
requirement is covered by stock at the job's location and by active
reservations (PO lines or inventory batches), whether PO timing can deliver
in time, and classifies the material:

    OK                  Covered, nothing landing close to the deadline
    DUE_SOON            Covered, but a PO lands within the due-soon window
    POTENTIAL_UNDERCUT  Short, but within tolerance
    PO_HOLD             Short beyond tolerance, or every reservation is
                        blocked by PO timing

An assembly is held when any material is PO_HOLD.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Union

import structlog

from config.settings import settings
from models.assembly import AssemblyInput
from models.material import (
    AssemblyMaterialCoverage,
    CoverageStatus,
    CoverageToleranceDefaults,
    MaterialCoverageItem,
    MaterialDemandRow,
    MaterialHoldReason,
    MaterialReservationRow,
    ReservationStatus,
    ReservationType,
    StockSnapshot,
    SupplyReservation,
)
from models.stage import AssemblyRollup
from services.coverage_tolerance_service import (
    compute_tolerance_qty,
    resolve_coverage_tolerance,
)
from services.material_demand_service import resolve_demand_rows
from utils.number_utils import ZERO

logger = structlog.get_logger(__name__)

REASON_ETA_MISSING = "ETA missing"
REASON_ETA_PAST_DUE = "ETA past due"
REASON_ETA_AFTER_NEEDED = "ETA after needed date"


def evaluate_reservation(
    reservation: SupplyReservation,
    needed_date: Optional[date],
    today: date,
    due_soon_days: int,
) -> MaterialReservationRow:
    """
    Classify one active reservation.

    A PO-backed reservation is BLOCKED when its line still has unreceived
    quantity (or the outstanding quantity is unknown) and its ETA is missing,
    before today, or after the needed date. An unblocked PO reservation is
    due soon when its ETA lands within `due_soon_days` of the needed date
    (of today when there is no needed date).
    """
    line = reservation.purchase_order_line
    line_id = reservation.purchase_order_line_id or (line.id if line else None)
    is_po = line_id is not None
    eta = line.eta_date if line else None
    outstanding = line.outstanding_qty if line else None

    reason = None
    if is_po and (outstanding is None or outstanding > 0):
        if eta is None:
            reason = REASON_ETA_MISSING
        elif eta < today:
            reason = REASON_ETA_PAST_DUE
        elif needed_date is not None and eta > needed_date:
            reason = REASON_ETA_AFTER_NEEDED

    due_soon = False
    if is_po and reason is None and eta is not None:
        if needed_date is not None:
            due_soon = 0 <= (needed_date - eta).days <= due_soon_days
        else:
            due_soon = 0 <= (eta - today).days <= due_soon_days

    qty_ordered = None
    if line is not None:
        qty_ordered = line.qty_ordered if line.qty_ordered is not None else line.qty_expected

    return MaterialReservationRow(
        id=reservation.id,
        assembly_id=reservation.assembly_id,
        product_id=reservation.product_id,
        product_name=reservation.product_name,
        qty_reserved=reservation.qty_reserved,
        type=ReservationType.PO if is_po else ReservationType.BATCH,
        purchase_order_id=line.purchase_order_id if line else None,
        purchase_order_line_id=line_id,
        inventory_batch_id=reservation.inventory_batch_id,
        eta_date=eta,
        qty_ordered=qty_ordered,
        qty_received=line.qty_received if line else None,
        outstanding_qty=outstanding,
        status=ReservationStatus.BLOCKED if reason else ReservationStatus.OK,
        reason=reason,
        due_soon=due_soon,
        note=reservation.note,
    )


def classify_coverage(
    required: Decimal,
    remaining_after_on_hand: Decimal,
    qty_uncovered: Decimal,
    qty_uncovered_after_tolerance: Decimal,
    reservations: list[MaterialReservationRow],
) -> CoverageStatus:
    """First matching rule wins."""
    if required <= 0:
        return CoverageStatus.OK
    if qty_uncovered > 0:
        if qty_uncovered_after_tolerance > 0:
            return CoverageStatus.PO_HOLD
        return CoverageStatus.POTENTIAL_UNDERCUT
    if remaining_after_on_hand > 0 and reservations and not any(
        r.status == ReservationStatus.OK for r in reservations
    ):
        return CoverageStatus.PO_HOLD
    if any(r.due_soon for r in reservations):
        return CoverageStatus.DUE_SOON
    return CoverageStatus.OK


def _new_item(product_id: int, product_name: Optional[str], demand: Optional[MaterialDemandRow] = None):
    return MaterialCoverageItem(
        product_id=product_id,
        product_name=product_name,
        product_type=demand.product_type if demand else None,
        qty_required=demand.qty_required if demand else None,
        calc=demand.calc if demand else None,
    )


def _hold_reason(item: MaterialCoverageItem, blocked: list[MaterialReservationRow]) -> MaterialHoldReason:
    name = item.product_name or "material"
    if item.status == CoverageStatus.POTENTIAL_UNDERCUT:
        message = f"Potential undercut for {name} (within tolerance)"
    elif item.qty_uncovered > 0:
        message = f"Uncovered qty for {name}"
    else:
        message = f"PO line timing blocks {name}"

    blocked_etas = [r.eta_date for r in blocked if r.eta_date is not None]
    return MaterialHoldReason(
        product_id=item.product_id,
        status=item.status,
        qty_uncovered=item.qty_uncovered,
        qty_uncovered_after_tolerance=item.qty_uncovered_after_tolerance,
        tolerance_qty=item.tolerance_qty,
        reserved_po_line_ids=list(item.blocking_po_line_ids),
        suggested_po_line_ids=[],
        earliest_eta=min(blocked_etas) if blocked_etas else item.earliest_eta,
        message=message,
    )


def _stock_by_product(
    stock_snapshots: Union[Iterable[StockSnapshot], dict[int, StockSnapshot], None],
) -> dict[int, StockSnapshot]:
    if stock_snapshots is None:
        return {}
    if isinstance(stock_snapshots, dict):
        return stock_snapshots
    return {snapshot.product_id: snapshot for snapshot in stock_snapshots}


class MaterialCoverageService:
    """
    Evaluate material coverage for a batch of assemblies.

    Pure over its inputs: stock snapshots and tolerance defaults are read-only.
    """

    def evaluate(
        self,
        assemblies: Iterable[AssemblyInput],
        demand_rows: Iterable[MaterialDemandRow],
        reservations: Iterable[SupplyReservation],
        stock_snapshots: Union[Iterable[StockSnapshot], dict[int, StockSnapshot], None],
        tolerance_defaults: CoverageToleranceDefaults,
        today: Optional[date] = None,
        rollups: Optional[dict[int, AssemblyRollup]] = None,
    ) -> dict[int, AssemblyMaterialCoverage]:
        """
        Evaluate coverage per assembly.

        Args:
            assemblies: Assemblies to evaluate
            demand_rows: Planner demand rows (any assembly in the batch)
            reservations: Supply reservations (any assembly in the batch)
            stock_snapshots: Stock per product (list or product_id → snapshot)
            tolerance_defaults: Company tolerance table
            today: Reference date (default: date.today())
            rollups: Stage rollups, used for BOM-derived demand

        Returns:
            assembly_id → AssemblyMaterialCoverage
        """
        today = today or date.today()
        rollups = rollups or {}
        demand_rows = list(demand_rows or [])
        stock = _stock_by_product(stock_snapshots)

        reservations_by_assembly: dict[int, list[SupplyReservation]] = {}
        for reservation in reservations or []:
            if reservation.is_settled:
                continue
            reservations_by_assembly.setdefault(reservation.assembly_id, []).append(reservation)

        result: dict[int, AssemblyMaterialCoverage] = {}
        for assembly in assemblies:
            result[assembly.id] = self._evaluate_assembly(
                assembly=assembly,
                demands=resolve_demand_rows(assembly, demand_rows, rollups.get(assembly.id)),
                reservations=reservations_by_assembly.get(assembly.id, []),
                stock=stock,
                tolerance_defaults=tolerance_defaults,
                today=today,
            )

        logger.info(
            "material_coverage_evaluated",
            assemblies=len(result),
            held=sum(1 for coverage in result.values() if coverage.held),
        )
        return result

    def _evaluate_assembly(
        self,
        assembly: AssemblyInput,
        demands: list[MaterialDemandRow],
        reservations: list[SupplyReservation],
        stock: dict[int, StockSnapshot],
        tolerance_defaults: CoverageToleranceDefaults,
        today: date,
    ) -> AssemblyMaterialCoverage:
        needed_date = assembly.needed_date
        due_soon_days = settings.due_soon_window_days

        items: dict[int, MaterialCoverageItem] = {}
        for demand in demands:
            existing = items.get(demand.product_id)
            if existing is None:
                items[demand.product_id] = _new_item(demand.product_id, demand.product_name, demand)
            else:
                # Several demand rows for one product add up
                existing.qty_required = (existing.qty_required or ZERO) + (demand.qty_required or ZERO)

        for reservation in reservations:
            row = evaluate_reservation(reservation, needed_date, today, due_soon_days)
            item = items.get(row.product_id)
            if item is None:
                item = _new_item(row.product_id, row.product_name)
                items[row.product_id] = item

            item.reservations.append(row)
            if row.type == ReservationType.PO:
                item.qty_reserved_to_po += row.qty_reserved
                if row.eta_date is not None and (
                    item.earliest_eta is None or row.eta_date < item.earliest_eta
                ):
                    item.earliest_eta = row.eta_date
            else:
                item.qty_reserved_to_batch += row.qty_reserved

        materials = sorted(
            items.values(),
            key=lambda i: ((i.product_name or "").lower(), i.product_id),
        )

        reasons: list[MaterialHoldReason] = []
        for item in materials:
            snapshot = stock.get(item.product_id)
            required = max(item.qty_required or ZERO, ZERO)

            item.loc_stock = snapshot.qty_at(assembly.stock_location_id) if snapshot else ZERO
            item.total_stock = max(snapshot.total_qty, ZERO) if snapshot else ZERO
            item.covered_by_on_hand = min(required, item.loc_stock)
            item.remaining_after_on_hand = max(required - item.covered_by_on_hand, ZERO)

            total_reserved = item.qty_reserved_to_po + item.qty_reserved_to_batch
            item.covered_by_reservations = min(item.remaining_after_on_hand, total_reserved)
            item.qty_uncovered = max(item.remaining_after_on_hand - total_reserved, ZERO)

            item.tolerance = resolve_coverage_tolerance(
                assembly.material_coverage_tolerance_pct,
                assembly.material_coverage_tolerance_abs,
                item.product_type,
                tolerance_defaults,
            )
            item.tolerance_qty = compute_tolerance_qty(item.tolerance.abs, item.tolerance.pct, required)
            item.qty_uncovered_after_tolerance = max(item.qty_uncovered - item.tolerance_qty, ZERO)

            blocked = [
                r for r in item.reservations
                if r.type == ReservationType.PO and r.status == ReservationStatus.BLOCKED
            ]
            item.blocking_po_line_ids = [r.purchase_order_line_id for r in blocked if r.purchase_order_line_id]

            item.status = classify_coverage(
                required=required,
                remaining_after_on_hand=item.remaining_after_on_hand,
                qty_uncovered=item.qty_uncovered,
                qty_uncovered_after_tolerance=item.qty_uncovered_after_tolerance,
                reservations=item.reservations,
            )
            if item.status in (CoverageStatus.PO_HOLD, CoverageStatus.POTENTIAL_UNDERCUT):
                reasons.append(_hold_reason(item, blocked))

        held = any(item.status == CoverageStatus.PO_HOLD for item in materials)

        if held:
            logger.info(
                "assembly_material_hold",
                assembly_id=assembly.id,
                products=[r.product_id for r in reasons if r.status == CoverageStatus.PO_HOLD],
            )

        return AssemblyMaterialCoverage(
            assembly_id=assembly.id,
            held=held,
            reasons=reasons,
            materials=materials,
        )


# Singleton instance
_material_coverage_service: Optional[MaterialCoverageService] = None


def get_material_coverage_service() -> MaterialCoverageService:
    """Get or create MaterialCoverageService instance."""
    global _material_coverage_service
    if _material_coverage_service is None:
        _material_coverage_service = MaterialCoverageService()
    return _material_coverage_service
