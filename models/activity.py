"""
Production activity records.

An activity is one immutable event against an assembly: units cut, sewn,
finished or packed, a defect logged or reconciled, a batch sent to or
received back from an external vendor, or a cancellation.

Loose upstream values (legacy stage names, mixed-case enums, string
quantities) are normalized here so the aggregation code only ever sees the
closed enums below.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator

from models.base import BaseSchema, FrozenSchema, Breakdown
from utils.number_utils import to_quantity


class Stage(str, Enum):
    """Pipeline stage an activity is recorded against."""

    CUT = "cut"
    SEW = "sew"
    FINISH = "finish"
    PACK = "pack"
    QC = "qc"
    CANCEL = "cancel"  # Not a production stage: reduces the ordered quantity
    OTHER = "other"


class ActivityKind(str, Enum):
    """Good output vs. defect/loss."""

    NORMAL = "normal"
    DEFECT = "defect"


class ActivityAction(str, Enum):
    """What the activity did."""

    RECORDED = "recorded"
    SENT_OUT = "sent_out"
    RECEIVED_IN = "received_in"
    DEFECT_LOGGED = "defect_logged"
    LOSS_RECONCILED = "loss_reconciled"
    ADJUSTMENT = "adjustment"


class ExternalStepType(str, Enum):
    """Vendor round-trip steps, in pipeline order."""

    EMBROIDERY = "EMBROIDERY"
    WASH = "WASH"
    DYE = "DYE"


# Legacy stage names still present in historical activity rows
LEGACY_STAGE_ALIASES = {
    "make": Stage.FINISH,
    "trim": Stage.SEW,
    "embroidery": Stage.FINISH,
}

# Name keywords used when an activity has no stage at all
_NAME_KEYWORDS = (
    ("cut", Stage.CUT),
    ("sew", Stage.SEW),
    ("finish", Stage.FINISH),
    ("make", Stage.FINISH),
    ("pack", Stage.PACK),
    ("qc", Stage.QC),
    ("cancel", Stage.CANCEL),
)


def coerce_stage(raw_stage: Any, name: Optional[str] = None) -> Stage:
    """
    Resolve a raw stage value to a Stage.

    - Known values map directly ("SEW" → sew)
    - Legacy aliases: make → finish, trim → sew, embroidery → finish
    - Empty stage: inferred from the activity name, else OTHER
    - Anything else: OTHER
    """
    if isinstance(raw_stage, Stage):
        return raw_stage

    text = str(raw_stage or "").strip().lower()
    if not text:
        lowered = str(name or "").lower()
        for keyword, stage in _NAME_KEYWORDS:
            if keyword in lowered:
                return stage
        return Stage.OTHER

    if text in LEGACY_STAGE_ALIASES:
        return LEGACY_STAGE_ALIASES[text]

    try:
        return Stage(text)
    except ValueError:
        return Stage.OTHER


def _coerce_enum(enum_cls, value: Any, upper: bool = False):
    if value is None or isinstance(value, enum_cls):
        return value
    text = str(value).strip()
    text = text.upper() if upper else text.lower()
    try:
        return enum_cls(text)
    except ValueError:
        return None


class VendorRef(BaseSchema):
    """Vendor company attached to an external-step activity."""

    id: Optional[int] = None
    name: Optional[str] = None


class Activity(FrozenSchema):
    """
    One production event against an assembly.

    Never mutated by the engine; only read and folded into aggregates.
    """

    id: Optional[int] = None
    name: Optional[str] = None
    stage: Stage = Field(default=Stage.OTHER, description="Pipeline stage")
    kind: ActivityKind = Field(default=ActivityKind.NORMAL, description="normal or defect")
    action: Optional[ActivityAction] = None
    quantity: Decimal = Field(default=Decimal("0"), description="Scalar quantity")
    qty_breakdown: Optional[Breakdown] = Field(
        None,
        description="Per-variant quantities (index = size slot)"
    )
    external_step_type: Optional[ExternalStepType] = None
    activity_date: Optional[datetime] = None
    vendor: Optional[VendorRef] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_stage(cls, data: Any) -> Any:
        """Resolve legacy/empty stages before field validation."""
        if isinstance(data, dict):
            data = dict(data)
            data["stage"] = coerce_stage(data.get("stage"), data.get("name"))
        return data

    @field_validator("stage", mode="before")
    @classmethod
    def coerce_stage_value(cls, value: Any) -> Stage:
        # ORM objects skip the dict path above
        return coerce_stage(value)

    @field_validator("kind", mode="before")
    @classmethod
    def coerce_kind(cls, value: Any) -> ActivityKind:
        return _coerce_enum(ActivityKind, value) or ActivityKind.NORMAL

    @field_validator("action", mode="before")
    @classmethod
    def coerce_action(cls, value: Any) -> Optional[ActivityAction]:
        return _coerce_enum(ActivityAction, value)

    @field_validator("external_step_type", mode="before")
    @classmethod
    def coerce_step_type(cls, value: Any) -> Optional[ExternalStepType]:
        return _coerce_enum(ExternalStepType, value, upper=True)

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, value: Any) -> Decimal:
        return to_quantity(value)

    @field_validator("qty_breakdown", mode="before")
    @classmethod
    def coerce_breakdown(cls, value: Any) -> Optional[list]:
        if value is None:
            return None
        if not isinstance(value, (list, tuple)):
            return None
        return [to_quantity(entry) for entry in value]


class PackLine(FrozenSchema):
    """Box line contributing to the pack snapshot."""

    qty_breakdown: Optional[Breakdown] = None
    quantity: Optional[Decimal] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, value: Any) -> Optional[Decimal]:
        return None if value is None else to_quantity(value)

    @field_validator("qty_breakdown", mode="before")
    @classmethod
    def coerce_breakdown(cls, value: Any) -> Optional[list]:
        if not isinstance(value, (list, tuple)):
            return None
        return [to_quantity(entry) for entry in value]


class PackSnapshot(BaseSchema):
    """Summed box-line breakdown used as the pack stage fallback."""

    breakdown: Breakdown = Field(default_factory=list)
    total: Decimal = Decimal("0")

    @field_validator("total", mode="before")
    @classmethod
    def coerce_total(cls, value: Any) -> Decimal:
        return to_quantity(value)

    @field_validator("breakdown", mode="before")
    @classmethod
    def coerce_breakdown(cls, value: Any) -> list:
        if not isinstance(value, (list, tuple)):
            return []
        return [to_quantity(entry) for entry in value]
