"""
Material demand resolution.

Demand rows normally come from the material planner. When an assembly has
none, demand is derived from its BOM costings and how much is left to cut.
"""

from typing import Callable, Optional

import structlog

from models.assembly import AssemblyInput, CostingLite
from models.material import DemandSource, MaterialDemandCalc, MaterialDemandRow
from models.stage import AssemblyRollup
from services.coverage_tolerance_service import normalize_product_type
from utils.number_utils import ZERO, to_non_negative

logger = structlog.get_logger(__name__)

# Product types that consume stock and can be reserved
DEMAND_PRODUCT_TYPES = ("FABRIC", "TRIM", "PACKAGING", "RAW")

# Costing stages that consume trim
TRIM_STAGES = ("sew", "finish")

FULLY_CUT_STATUS = "FULLY_CUT"


def _is_eligible_costing(costing: CostingLite) -> bool:
    if costing.flag_is_disabled is True:
        return False
    product = costing.product
    if product is None or product.stock_tracking_enabled is not True:
        return False
    return normalize_product_type(product.type) in DEMAND_PRODUCT_TYPES


def build_derived_demand_rows(
    assembly: AssemblyInput,
    rollup: Optional[AssemblyRollup] = None,
) -> list[MaterialDemandRow]:
    """
    Derive demand rows from BOM costings.

    Rules:
    - Only enabled costings of stock-tracked FABRIC/TRIM/PACKAGING/RAW
      products with a positive quantity per unit
    - FABRIC: per unit × remaining to cut; skipped once fully cut, and only
      for costings used at the cut stage (or with no stage)
    - TRIM: only costings used at sew or finish (or with no stage)
    - Others: per unit × ordered quantity (remaining to cut if none)
    - Status FULLY_CUT forces remaining to cut to 0

    Args:
        assembly: Assembly with costings
        rollup: Stage rollup for cut good quantity

    Returns:
        Demand rows tagged DemandSource.BOM
    """
    if not assembly.costings:
        return []

    order_qty = to_non_negative(assembly.quantity)
    cut_good_qty = to_non_negative(rollup.cut_good_qty) if rollup else ZERO
    fully_cut = (assembly.status or "").strip().upper() == FULLY_CUT_STATUS
    remaining_to_cut = ZERO if fully_cut else max(order_qty - cut_good_qty, ZERO)

    rows = []
    for costing in assembly.costings:
        if not _is_eligible_costing(costing):
            continue
        product_id = costing.product_id or (costing.product.id if costing.product else None)
        if not product_id:
            continue
        per_unit = costing.quantity_per_unit
        if per_unit is None or per_unit <= 0:
            continue

        product_type = normalize_product_type(costing.product.type)
        stage = (costing.activity_used or "").strip().lower()

        if product_type == "FABRIC":
            if remaining_to_cut == 0 or (stage and stage != "cut"):
                continue
            base_qty = remaining_to_cut
        else:
            if product_type == "TRIM" and stage and stage not in TRIM_STAGES:
                continue
            base_qty = order_qty or remaining_to_cut

        qty_required = per_unit * base_qty if base_qty else per_unit
        if qty_required <= 0:
            continue

        rows.append(MaterialDemandRow(
            assembly_id=assembly.id,
            product_id=product_id,
            product_name=costing.product.name,
            product_type=product_type,
            costing_id=costing.id,
            qty_required=qty_required,
            source=DemandSource.BOM,
            calc=MaterialDemandCalc(
                order_qty=order_qty,
                cut_good_qty=cut_good_qty,
                remaining_to_cut=remaining_to_cut,
                qty_per_unit=per_unit,
                stage=stage or None,
                status=assembly.status,
                status_hint="Status FULLY_CUT → remainingToCut=0" if fully_cut else None,
            ),
        ))

    return rows


# ----------------------------------------------------------------------
# Demand strategies, tried in order
# ----------------------------------------------------------------------

def demand_from_planner(
    assembly: AssemblyInput,
    demand_rows: list[MaterialDemandRow],
    rollup: Optional[AssemblyRollup],
) -> list[MaterialDemandRow]:
    return [row for row in demand_rows if row.assembly_id == assembly.id]


def demand_from_bom(
    assembly: AssemblyInput,
    demand_rows: list[MaterialDemandRow],
    rollup: Optional[AssemblyRollup],
) -> list[MaterialDemandRow]:
    return build_derived_demand_rows(assembly, rollup)


DemandStrategy = Callable[
    [AssemblyInput, list[MaterialDemandRow], Optional[AssemblyRollup]],
    list[MaterialDemandRow],
]

DEMAND_STRATEGIES: tuple[DemandStrategy, ...] = (
    demand_from_planner,
    demand_from_bom,
)


def resolve_demand_rows(
    assembly: AssemblyInput,
    demand_rows: list[MaterialDemandRow],
    rollup: Optional[AssemblyRollup] = None,
) -> list[MaterialDemandRow]:
    """First non-empty result of DEMAND_STRATEGIES."""
    for strategy in DEMAND_STRATEGIES:
        rows = strategy(assembly, demand_rows, rollup)
        if rows:
            if strategy is not demand_from_planner:
                logger.debug(
                    "material_demand_fallback_used",
                    assembly_id=assembly.id,
                    strategy=strategy.__name__,
                    rows=len(rows),
                )
            return rows
    return []
