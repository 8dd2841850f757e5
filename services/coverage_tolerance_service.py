"""
Coverage tolerance resolution.

Tolerance is the slack allowed before an uncovered material quantity counts
as a real shortfall. Priority:
    1. Assembly override (pct and/or abs set on the assembly)
    2. Company default for the product type (FABRIC, TRIM, PACKAGING, ...)
    3. Company global default

Defaults are always passed in explicitly; see Settings.tolerance_defaults().
"""

import json
from decimal import Decimal
from typing import Any, Optional, Union

import structlog

from models.material import (
    CoverageTolerance,
    CoverageToleranceDefaults,
    ToleranceEntry,
    ToleranceSource,
)
from utils.number_utils import ZERO, to_optional_quantity

logger = structlog.get_logger(__name__)

FALLBACK_TOLERANCE_DEFAULTS = CoverageToleranceDefaults(
    default_pct=Decimal("0.01"),
    default_abs=ZERO,
    by_type={
        "FABRIC": ToleranceEntry(pct=Decimal("0.03"), abs=Decimal("5")),
        "TRIM": ToleranceEntry(pct=Decimal("0.02"), abs=Decimal("10")),
        "PACKAGING": ToleranceEntry(pct=Decimal("0.02"), abs=Decimal("25")),
    },
)


def normalize_product_type(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().upper()
    return text or None


def _non_negative(value: Optional[Decimal]) -> Decimal:
    if value is None or value < 0:
        return ZERO
    return value


def resolve_coverage_tolerance(
    assembly_pct: Any,
    assembly_abs: Any,
    product_type: Optional[str],
    defaults: CoverageToleranceDefaults,
) -> CoverageTolerance:
    """
    Resolve the tolerance for one (assembly, material).

    Args:
        assembly_pct: Assembly override percentage (fraction, 0.05 = 5%)
        assembly_abs: Assembly override absolute quantity
        product_type: Material product type
        defaults: Company tolerance defaults

    Returns:
        CoverageTolerance with pct/abs >= 0 and its source
    """
    pct_override = to_optional_quantity(assembly_pct)
    abs_override = to_optional_quantity(assembly_abs)
    if pct_override is not None or abs_override is not None:
        # A single override field means the other one is zero
        return CoverageTolerance(
            pct=_non_negative(pct_override),
            abs=_non_negative(abs_override),
            source=ToleranceSource.ASSEMBLY,
        )

    normalized = normalize_product_type(product_type)
    if normalized and normalized in defaults.by_type:
        entry = defaults.by_type[normalized]
        return CoverageTolerance(
            pct=_non_negative(entry.pct),
            abs=_non_negative(entry.abs),
            source=ToleranceSource.GLOBAL_TYPE,
        )

    return CoverageTolerance(
        pct=_non_negative(defaults.default_pct),
        abs=_non_negative(defaults.default_abs),
        source=ToleranceSource.GLOBAL_DEFAULT,
    )


def compute_tolerance_qty(abs_qty: Any, pct: Any, required: Any) -> Decimal:
    """
    Tolerance quantity: abs + pct × required.

    The percentage part only applies when required > 0.

    Examples:
        - abs=0, pct=0.05, required=100 → 5
        - abs=10, pct=0.02, required=500 → 20
    """
    abs_part = _non_negative(to_optional_quantity(abs_qty))
    pct_value = _non_negative(to_optional_quantity(pct))
    required_qty = to_optional_quantity(required) or ZERO
    pct_part = required_qty * pct_value if required_qty > 0 else ZERO
    return abs_part + pct_part


def parse_tolerance_defaults(raw: Union[str, dict, None]) -> CoverageToleranceDefaults:
    """
    Parse a tolerance table.

    Format (JSON string or mapping):
        {"default": {"pct": 0.01, "abs": 0}, "FABRIC": {"pct": 0.03, "abs": 5}}

    Type keys are upper-cased; a missing pct/abs on a type entry falls back to
    the built-in value for that type, then the built-in global default.
    Malformed input returns the built-in table.
    """
    if raw is None or raw == "":
        return FALLBACK_TOLERANCE_DEFAULTS

    try:
        parsed = json.loads(raw) if isinstance(raw, str) else raw
    except (TypeError, ValueError) as e:
        logger.warning("tolerance_defaults_parse_failed", error=str(e))
        return FALLBACK_TOLERANCE_DEFAULTS

    if not isinstance(parsed, dict):
        logger.warning("tolerance_defaults_parse_failed", error="expected an object")
        return FALLBACK_TOLERANCE_DEFAULTS

    fallback = FALLBACK_TOLERANCE_DEFAULTS
    default_entry = parsed.get("default") if isinstance(parsed.get("default"), dict) else {}

    by_type: dict[str, ToleranceEntry] = {}
    for key, value in parsed.items():
        if key == "default" or not isinstance(value, dict):
            continue
        type_key = normalize_product_type(key) or str(key)
        builtin = fallback.by_type.get(type_key)
        abs_value = to_optional_quantity(value.get("abs"))
        pct_value = to_optional_quantity(value.get("pct"))
        by_type[type_key] = ToleranceEntry(
            abs=_non_negative(
                abs_value if abs_value is not None else (builtin.abs if builtin else fallback.default_abs)
            ),
            pct=_non_negative(
                pct_value if pct_value is not None else (builtin.pct if builtin else fallback.default_pct)
            ),
        )

    default_pct = to_optional_quantity(default_entry.get("pct"))
    default_abs = to_optional_quantity(default_entry.get("abs"))

    defaults = CoverageToleranceDefaults(
        default_pct=_non_negative(default_pct if default_pct is not None else fallback.default_pct),
        default_abs=_non_negative(default_abs if default_abs is not None else fallback.default_abs),
        by_type=by_type or dict(fallback.by_type),
    )

    logger.debug(
        "tolerance_defaults_parsed",
        default_pct=str(defaults.default_pct),
        default_abs=str(defaults.default_abs),
        types=sorted(defaults.by_type),
    )
    return defaults
