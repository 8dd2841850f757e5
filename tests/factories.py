"""
Test data factories.

Uses factory pattern to generate consistent test data.
ActivityFactory returns raw dicts (as loaded from the database) so the
normalization path is exercised; the others return validated models.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from models.activity import ExternalStepType
from models.assembly import AssemblyInput, CostingLite, ProductLite, SupplierLite
from models.material import (
    MaterialDemandRow,
    PurchaseOrderLineTiming,
    StockLocationQty,
    StockSnapshot,
    SupplyReservation,
)
from models.risk import PurchaseOrderLineSummary


class ActivityFactory:
    """
    Factory for raw activity rows.

    Usage:
        # Recorded cut of 2 units in one size
        activity = ActivityFactory.create(stage="cut", qty_breakdown=[2])

        # Vendor round-trip
        sent = ActivityFactory.sent_out(ExternalStepType.WASH, [3])
        received = ActivityFactory.received_in(ExternalStepType.WASH, [1])

        # Create multiple
        activities = ActivityFactory.create_batch(3, stage="sew", quantity=1)
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        stage: Optional[str] = "cut",
        kind: str = "normal",
        action: Optional[str] = "recorded",
        quantity=None,
        qty_breakdown: Optional[list] = None,
        external_step_type: Optional[str] = None,
        activity_date: Optional[datetime] = None,
        vendor: Optional[dict] = None,
        name: Optional[str] = None,
        id: Optional[int] = None,
    ) -> dict:
        """
        Create a single activity dict.

        Args:
            stage: cut, sew, finish, pack, qc, cancel, other (or legacy names)
            kind: normal or defect
            action: recorded, sent_out, received_in, defect_logged, ...
            quantity: Scalar quantity (defaults to the breakdown sum)
            qty_breakdown: Per-variant quantities
            external_step_type: EMBROIDERY, WASH or DYE
            activity_date: When it happened
            vendor: {"id": ..., "name": ...}
            name: Free-text activity name
            id: Activity ID (auto-generated if not provided)

        Returns:
            Activity dict matching the database row shape
        """
        counter = cls._next_counter()
        if quantity is None:
            quantity = sum(qty_breakdown) if qty_breakdown else 0

        return {
            "id": id or counter,
            "name": name,
            "stage": stage,
            "kind": kind,
            "action": action,
            "quantity": quantity,
            "qty_breakdown": qty_breakdown,
            "external_step_type": external_step_type,
            "activity_date": activity_date or datetime(2025, 3, 1, 9, 0),
            "vendor": vendor,
        }

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list:
        """Create multiple activities with the same overrides."""
        return [cls.create(**overrides) for _ in range(count)]

    @classmethod
    def defect(cls, stage: str, qty_breakdown: list, action: str = "defect_logged", **overrides) -> dict:
        """Create a defect activity."""
        return cls.create(stage=stage, kind="defect", action=action, qty_breakdown=qty_breakdown, **overrides)

    @classmethod
    def cancel(cls, qty_breakdown: list, **overrides) -> dict:
        """Create a cancellation."""
        return cls.create(stage="cancel", action=None, qty_breakdown=qty_breakdown, **overrides)

    @classmethod
    def sent_out(cls, step_type: ExternalStepType, qty_breakdown: list, **overrides) -> dict:
        """Create a vendor shipment."""
        return cls.create(
            stage="other",
            action="sent_out",
            qty_breakdown=qty_breakdown,
            external_step_type=step_type.value,
            **overrides,
        )

    @classmethod
    def received_in(cls, step_type: ExternalStepType, qty_breakdown: list, **overrides) -> dict:
        """Create a vendor receipt."""
        return cls.create(
            stage="other",
            action="received_in",
            qty_breakdown=qty_breakdown,
            external_step_type=step_type.value,
            **overrides,
        )

    @classmethod
    def reset_counter(cls):
        """Reset the counter (call in test setup if needed)."""
        cls._counter = 0


class CostingFactory:
    """
    Factory for BOM costing lines.

    Usage:
        fabric = CostingFactory.create(product_type="FABRIC", quantity_per_unit=2)
        wash = CostingFactory.create_external_step(ExternalStepType.WASH, lead_time_days=10)
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        product_type: Optional[str] = "FABRIC",
        quantity_per_unit=1,
        activity_used: Optional[str] = None,
        product_id: Optional[int] = None,
        product_name: Optional[str] = None,
        stock_tracking_enabled: Optional[bool] = True,
        flag_is_disabled: Optional[bool] = None,
        external_step_type: Optional[ExternalStepType] = None,
        lead_time_days: Optional[int] = None,
        product_lead_time_days: Optional[int] = None,
        supplier_lead_time_days: Optional[int] = None,
    ) -> CostingLite:
        counter = cls._next_counter()
        product_id = product_id or 1000 + counter
        supplier = None
        if supplier_lead_time_days is not None:
            supplier = SupplierLite(id=counter, name=f"Supplier {counter}", default_lead_time_days=supplier_lead_time_days)

        return CostingLite(
            id=counter,
            product_id=product_id,
            quantity_per_unit=quantity_per_unit,
            activity_used=activity_used,
            flag_is_disabled=flag_is_disabled,
            external_step_type=external_step_type,
            lead_time_days=lead_time_days,
            product=ProductLite(
                id=product_id,
                name=product_name or f"Material {counter}",
                type=product_type,
                stock_tracking_enabled=stock_tracking_enabled,
                lead_time_days=product_lead_time_days,
                supplier=supplier,
            ),
        )

    @classmethod
    def create_external_step(cls, step_type: ExternalStepType, **overrides) -> CostingLite:
        """Create a service costing for a vendor step."""
        overrides.setdefault("product_type", "SERVICE")
        overrides.setdefault("stock_tracking_enabled", False)
        return cls.create(external_step_type=step_type, **overrides)

    @classmethod
    def reset_counter(cls):
        cls._counter = 0


class AssemblyFactory:
    """
    Factory for AssemblyInput.

    Usage:
        assembly = AssemblyFactory.create(quantity=100, target_date=date(2025, 3, 20))
        assemblies = AssemblyFactory.create_batch(3)
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        id: Optional[int] = None,
        job_id: Optional[int] = None,
        quantity=100,
        status: Optional[str] = None,
        target_date: Optional[date] = None,
        drop_dead_date: Optional[date] = None,
        stock_location_id: Optional[int] = 1,
        tolerance_pct=None,
        tolerance_abs=None,
        costings: Optional[list] = None,
        product: Optional[ProductLite] = None,
    ) -> AssemblyInput:
        counter = cls._next_counter()
        return AssemblyInput(
            id=id or counter,
            job_id=job_id or 500 + counter,
            name=f"Assembly {counter}",
            quantity=quantity,
            status=status,
            target_date=target_date,
            drop_dead_date=drop_dead_date,
            stock_location_id=stock_location_id,
            material_coverage_tolerance_pct=tolerance_pct,
            material_coverage_tolerance_abs=tolerance_abs,
            costings=costings or [],
            product=product,
        )

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list:
        return [cls.create(**overrides) for _ in range(count)]

    @classmethod
    def reset_counter(cls):
        cls._counter = 0


class DemandRowFactory:
    """Factory for planner demand rows."""

    @classmethod
    def create(
        cls,
        assembly_id: int,
        product_id: int,
        qty_required=100,
        product_name: Optional[str] = None,
        product_type: Optional[str] = "FABRIC",
    ) -> MaterialDemandRow:
        return MaterialDemandRow(
            assembly_id=assembly_id,
            product_id=product_id,
            product_name=product_name or f"Material {product_id}",
            product_type=product_type,
            qty_required=qty_required,
            source="PLANNER",
        )


class ReservationFactory:
    """
    Factory for supply reservations.

    Usage:
        po = ReservationFactory.create_po(assembly_id=1, product_id=10, qty_reserved=50,
                                          eta_date=date(2025, 3, 15))
        batch = ReservationFactory.create_inventory(assembly_id=1, product_id=10, qty_reserved=20)
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create_po(
        cls,
        assembly_id: int,
        product_id: int,
        qty_reserved=50,
        eta_date: Optional[date] = None,
        purchase_order_id: Optional[int] = 77,
        purchase_order_line_id: Optional[int] = None,
        qty_ordered=None,
        qty_expected=None,
        qty_received=0,
        settled_at: Optional[datetime] = None,
        product_name: Optional[str] = None,
    ) -> SupplyReservation:
        """
        Create a PO-backed reservation.

        The PO line defaults to an open line for exactly the reserved quantity.
        """
        counter = cls._next_counter()
        line_id = purchase_order_line_id or 9000 + counter
        return SupplyReservation(
            id=counter,
            assembly_id=assembly_id,
            product_id=product_id,
            product_name=product_name or f"Material {product_id}",
            qty_reserved=qty_reserved,
            purchase_order_line_id=line_id,
            purchase_order_line=PurchaseOrderLineTiming(
                id=line_id,
                purchase_order_id=purchase_order_id,
                eta_date=eta_date,
                qty_ordered=qty_ordered if qty_ordered is not None else qty_reserved,
                qty_expected=qty_expected,
                qty_received=qty_received,
            ),
            settled_at=settled_at,
        )

    @classmethod
    def create_inventory(
        cls,
        assembly_id: int,
        product_id: int,
        qty_reserved=20,
        inventory_batch_id: Optional[int] = None,
        product_name: Optional[str] = None,
    ) -> SupplyReservation:
        """Create a reservation against an inventory batch."""
        counter = cls._next_counter()
        return SupplyReservation(
            id=counter,
            assembly_id=assembly_id,
            product_id=product_id,
            product_name=product_name or f"Material {product_id}",
            qty_reserved=qty_reserved,
            inventory_batch_id=inventory_batch_id or 300 + counter,
        )

    @classmethod
    def reset_counter(cls):
        cls._counter = 0


class StockFactory:
    """Factory for stock snapshots."""

    @classmethod
    def create(
        cls,
        product_id: int,
        location_qty=0,
        location_id: int = 1,
        total_qty=None,
    ) -> StockSnapshot:
        location_qty = Decimal(str(location_qty))
        return StockSnapshot(
            product_id=product_id,
            total_qty=Decimal(str(total_qty)) if total_qty is not None else location_qty,
            by_location=[StockLocationQty(location_id=location_id, qty=location_qty)],
        )


class PurchaseOrderLineFactory:
    """Factory for PO lines linked to an assembly (risk fallback)."""

    @classmethod
    def create(
        cls,
        id: int,
        eta_date: Optional[date] = None,
        purchase_order_id: Optional[int] = 77,
        qty_expected=10,
        qty_received=0,
    ) -> PurchaseOrderLineSummary:
        return PurchaseOrderLineSummary(
            id=id,
            purchase_order_id=purchase_order_id,
            eta_date=eta_date,
            qty_ordered=qty_expected,
            qty_expected=qty_expected,
            qty_received=qty_received,
        )
