"""
Record Schema - Typed Record Variants for the Operations Console

Two families of records pass through the mutation coordinator:

- Progressable records (DeliveryBooking): advance through ordered stages
  owned by different departments. Status is derived, never edited.
- Auditable records (Complaint, QualityCall): every edit to a tracked
  field leaves an audit entry.

Row shapes match the hosted backend's tables (snake_case columns,
string/number/boolean values).
"""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Final, Mapping, Optional

from core.records.progress import (
    Stage,
    StagePlan,
    StageStatus,
    derive_status,
    evaluation_complete,
)


# =============================================================================
# Enums
# =============================================================================


class RecordClass(Enum):
    """Record classes the coordinator knows how to mutate."""

    BOOKING = "booking"
    COMPLAINT = "complaint"
    QUALITY_CALL = "quality_call"


class ComplaintPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ComplaintStatus(Enum):
    NEW = "new"
    IN_PROGRESS = "in_progress"
    STILL_OPEN = "still_open"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


class QualificationStatus(Enum):
    UNDER_REVIEW = "under_review"
    QUALIFIED = "qualified"
    NOT_QUALIFIED = "not_qualified"
    NO_ANSWER = "no_answer"


# =============================================================================
# Stage Configuration (Sales -> Projects -> Customer-Care)
# =============================================================================

SALES_FIELDS: Final[tuple[str, ...]] = (
    "booking_date",
    "customer_name",
    "project",
    "building",
    "unit",
    "payment_method",
    "sale_type",
    "unit_value",
    "sales_employee",
)

PROJECTS_FIELDS: Final[tuple[str, ...]] = (
    "transfer_date",
    "construction_end_date",
    "final_receipt_date",
    "electricity_transfer_date",
    "water_transfer_date",
)

CUSTOMER_CARE_FIELDS: Final[tuple[str, ...]] = (
    "delivery_date",
    "is_evaluated",
    "evaluation_score",
)

BOOKING_STAGE_PLAN: Final[StagePlan] = StagePlan(
    stages=(
        Stage("sales", "Sales", "status_sales_filled", SALES_FIELDS, ("sales",)),
        Stage("projects", "Projects", "status_projects_filled", PROJECTS_FIELDS, ("projects",)),
        Stage(
            "customer_care",
            "Customer-Care",
            "status_customer_filled",
            CUSTOMER_CARE_FIELDS,
            ("customer_care",),
        ),
    ),
)

# Sales opens the booking; these must be present on creation
REQUIRED_BOOKING_FIELDS: Final[tuple[str, ...]] = (
    "booking_id",
    "booking_date",
    "customer_name",
    "project",
    "unit",
    "payment_method",
    "sale_type",
    "unit_value",
    "sales_employee",
)


# =============================================================================
# Audit Configuration
# =============================================================================


@dataclass(frozen=True)
class ReasonRule:
    """
    A change of `field` into one of `values` must carry a non-empty `reason_field`.
    """

    field: str
    values: frozenset[str]
    reason_field: str

    def applies(self, proposed_value: Any) -> bool:
        if isinstance(proposed_value, Enum):
            proposed_value = proposed_value.value
        return proposed_value in self.values


@dataclass(frozen=True)
class AuditPolicy:
    """Tracked fields, their display labels, and reason rules for a record class."""

    tracked_fields: tuple[str, ...]
    field_labels: Mapping[str, str] = field(default_factory=dict)
    reason_rules: tuple[ReasonRule, ...] = ()

    def label_for(self, name: str) -> str:
        return self.field_labels.get(name, name)


COMPLAINT_FIELD_LABELS: Final[dict[str, str]] = {
    "priority": "Priority",
    "customer_name": "Customer name",
    "project": "Project",
    "unit_number": "Unit number",
    "source": "Complaint source",
    "status": "Status",
    "description": "Complaint details",
    "maintenance_delivery_action": "Maintenance and delivery action",
    "action": "Action taken",
    "expected_closure_time": "Expected closure time",
}

COMPLAINT_AUDIT_POLICY: Final[AuditPolicy] = AuditPolicy(
    tracked_fields=tuple(COMPLAINT_FIELD_LABELS),
    field_labels=COMPLAINT_FIELD_LABELS,
)

QUALITY_CALL_FIELD_LABELS: Final[dict[str, str]] = {
    "call_type": "Call type",
    "evaluation_score": "Evaluation score",
    "qualification_status": "Qualification status",
    "qualification_reason": "Qualification reason",
    "notes": "Notes",
}

QUALITY_CALL_AUDIT_POLICY: Final[AuditPolicy] = AuditPolicy(
    tracked_fields=tuple(QUALITY_CALL_FIELD_LABELS),
    field_labels=QUALITY_CALL_FIELD_LABELS,
    reason_rules=(
        ReasonRule(
            field="qualification_status",
            values=frozenset({QualificationStatus.QUALIFIED.value}),
            reason_field="qualification_reason",
        ),
    ),
)

REQUIRED_COMPLAINT_FIELDS: Final[tuple[str, ...]] = (
    "complaint_id",
    "date",
    "customer_name",
    "project",
    "source",
    "description",
)

REQUIRED_QUALITY_CALL_FIELDS: Final[tuple[str, ...]] = (
    "call_id",
    "call_date",
    "customer_name",
    "phone_number",
    "project",
    "call_type",
)


# =============================================================================
# Helpers
# =============================================================================


def as_flag(value: Any) -> bool:
    """
    Coerce a stored stage flag to bool.

    Older rows stored the submission timestamp in the flag column instead
    of true, so any non-empty text other than an explicit false counts.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    return text not in ("", "false", "0", "no", "null")


def _as_optional_number(value: Any) -> Optional[float]:
    """Blank means unset; anything else must parse as a number."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Not a number: {value!r}") from None
    return int(number) if number.is_integer() else number


def missing_fields(values: Mapping[str, Any], required: tuple[str, ...]) -> list[str]:
    """Required fields that are absent or blank."""
    missing = []
    for name in required:
        value = values.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing


def generate_request_number() -> str:
    """Generate a complaint request number."""
    return f"REQ-{uuid.uuid4().hex[:8].upper()}"


# =============================================================================
# Row Model Base
# =============================================================================


class RowModel:
    """Shared row conversion for the record dataclasses."""

    key_field: ClassVar[str]
    collection: ClassVar[str]

    @property
    def key(self) -> str:
        return getattr(self, self.key_field)

    def to_row(self) -> dict[str, Any]:
        row = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            row[f.name] = value
        return row

    def to_dict(self) -> dict[str, Any]:
        return self.to_row()

    @classmethod
    def from_row(cls, row: Mapping[str, Any]):
        names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in names})

    def with_changes(self, values: Mapping[str, Any]):
        names = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(values) - names)
        if unknown:
            raise KeyError(f"Unknown fields for {type(self).__name__}: {unknown}")
        return type(self).from_row({**self.to_row(), **values})


# =============================================================================
# Delivery Booking (Progressable)
# =============================================================================


@dataclass
class DeliveryBooking(RowModel):
    """
    Unit booking tracked from sale through handover.

    Sales opens the booking, Projects records construction and utility
    handover dates, Customer-Care records delivery and the customer's
    evaluation. `status` is always derived from the three stage flags and
    the evaluation predicate; a stored status value is ignored on load.
    """

    key_field: ClassVar[str] = "booking_id"
    collection: ClassVar[str] = "bookings"
    stage_plan: ClassVar[StagePlan] = BOOKING_STAGE_PLAN

    booking_id: str

    # === SALES ===
    booking_date: str = ""
    customer_name: str = ""
    project: str = ""
    building: str = ""
    unit: str = ""
    payment_method: str = ""
    sale_type: str = ""
    unit_value: Optional[float] = None
    transfer_date: str = ""
    sales_employee: str = ""

    # === PROJECTS ===
    construction_end_date: str = ""
    final_receipt_date: str = ""
    electricity_transfer_date: str = ""
    water_transfer_date: str = ""

    # === CUSTOMER-CARE ===
    delivery_date: str = ""
    is_evaluated: bool = False
    evaluation_score: Optional[float] = None

    # === STAGE FLAGS ===
    status_sales_filled: bool = False
    status_projects_filled: bool = False
    status_customer_filled: bool = False

    # === METADATA ===
    created_by: str = ""
    updated_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    version: int = 0

    def __post_init__(self) -> None:
        if not self.booking_id or not str(self.booking_id).strip():
            raise ValueError("booking_id is required and cannot be empty")
        self.booking_id = str(self.booking_id)
        for flag in self.stage_plan.flag_fields:
            setattr(self, flag, as_flag(getattr(self, flag)))
        self.is_evaluated = as_flag(self.is_evaluated)
        self.unit_value = _as_optional_number(self.unit_value)
        self.evaluation_score = _as_optional_number(self.evaluation_score)
        self.version = int(self.version or 0)

    @property
    def stage_flags(self) -> dict[str, bool]:
        return {s.key: getattr(self, s.flag_field) for s in self.stage_plan.stages}

    @property
    def completion_predicate(self) -> bool:
        return evaluation_complete(self.is_evaluated, self.evaluation_score)

    @property
    def status(self) -> StageStatus:
        return derive_status(self.stage_plan, self.stage_flags, self.completion_predicate)

    def to_row(self) -> dict[str, Any]:
        row = super().to_row()
        row["status"] = self.status.label
        return row

    def to_dict(self) -> dict[str, Any]:
        data = super().to_row()
        data["status"] = self.status.to_dict()
        data["stage_flags"] = self.stage_flags
        return data


# =============================================================================
# Complaint (Auditable)
# =============================================================================


@dataclass
class Complaint(RowModel):
    """Customer complaint. Edits to tracked fields are audited."""

    key_field: ClassVar[str] = "complaint_id"
    collection: ClassVar[str] = "complaints"
    audit_policy: ClassVar[AuditPolicy] = COMPLAINT_AUDIT_POLICY

    complaint_id: str
    date: str = ""
    priority: str = ComplaintPriority.MEDIUM.value
    customer_name: str = ""
    project: str = ""
    unit_number: str = ""
    source: str = ""
    status: str = ComplaintStatus.NEW.value
    request_number: str = ""
    description: str = ""
    maintenance_delivery_action: str = ""
    action: str = ""
    duration: int = 0
    expected_closure_time: str = ""

    # === METADATA ===
    created_by: str = ""
    updated_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    version: int = 0

    def __post_init__(self) -> None:
        if not self.complaint_id or not str(self.complaint_id).strip():
            raise ValueError("complaint_id is required and cannot be empty")
        self.complaint_id = str(self.complaint_id)
        self.duration = int(self.duration or 0)
        self.version = int(self.version or 0)


# =============================================================================
# Quality Call (Auditable)
# =============================================================================


@dataclass
class QualityCall(RowModel):
    """Quality-assurance call placed to a customer."""

    key_field: ClassVar[str] = "call_id"
    collection: ClassVar[str] = "quality_calls"
    audit_policy: ClassVar[AuditPolicy] = QUALITY_CALL_AUDIT_POLICY

    call_id: str
    call_date: str = ""
    customer_name: str = ""
    phone_number: str = ""
    project: str = ""
    unit_number: str = ""
    call_type: str = ""
    call_duration: Optional[int] = None
    evaluation_score: Optional[float] = None
    qualification_status: str = QualificationStatus.UNDER_REVIEW.value
    qualification_reason: str = ""
    notes: str = ""
    audio_file_url: str = ""

    # === METADATA ===
    created_by: str = ""
    updated_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    version: int = 0

    def __post_init__(self) -> None:
        if not self.call_id or not str(self.call_id).strip():
            raise ValueError("call_id is required and cannot be empty")
        self.call_id = str(self.call_id)
        self.evaluation_score = _as_optional_number(self.evaluation_score)
        self.version = int(self.version or 0)


# =============================================================================
# Registry
# =============================================================================


@dataclass(frozen=True)
class RecordDefinition:
    """How the coordinator handles one record class."""

    record_class: RecordClass
    model: type
    page: str
    required_fields: tuple[str, ...]
    stage_plan: Optional[StagePlan] = None
    audit_policy: Optional[AuditPolicy] = None
    audit_collection: Optional[str] = None

    @property
    def collection(self) -> str:
        return self.model.collection

    @property
    def key_field(self) -> str:
        return self.model.key_field

    @property
    def is_progressable(self) -> bool:
        return self.stage_plan is not None

    @property
    def is_auditable(self) -> bool:
        return self.audit_policy is not None


RECORD_DEFINITIONS: Final[dict[RecordClass, RecordDefinition]] = {
    RecordClass.BOOKING: RecordDefinition(
        record_class=RecordClass.BOOKING,
        model=DeliveryBooking,
        page="delivery",
        required_fields=REQUIRED_BOOKING_FIELDS,
        stage_plan=BOOKING_STAGE_PLAN,
    ),
    RecordClass.COMPLAINT: RecordDefinition(
        record_class=RecordClass.COMPLAINT,
        model=Complaint,
        page="complaints",
        required_fields=REQUIRED_COMPLAINT_FIELDS,
        audit_policy=COMPLAINT_AUDIT_POLICY,
        audit_collection="complaint_updates",
    ),
    RecordClass.QUALITY_CALL: RecordDefinition(
        record_class=RecordClass.QUALITY_CALL,
        model=QualityCall,
        page="quality-calls",
        required_fields=REQUIRED_QUALITY_CALL_FIELDS,
        audit_policy=QUALITY_CALL_AUDIT_POLICY,
        audit_collection="quality_call_updates",
    ),
}


def get_definition(record_class: RecordClass) -> RecordDefinition:
    """Look up the definition for a record class."""
    return RECORD_DEFINITIONS[record_class]
