"""
Records: stage progress, change audit, schema and the mutation coordinator.
"""

from core.records.errors import (
    MutationError,
    NotFoundError,
    AuthorizationError,
    NoChangesError,
    ValidationError,
    StoreError,
    PersistError,
    ConflictError,
)
from core.records.progress import (
    Stage,
    StagePlan,
    StageStatus,
    derive_status,
    evaluation_complete,
)
from core.records.audit import (
    AuditEntry,
    compute_audit,
    changed_fields,
    normalise_value,
)
from core.records.schema import (
    RecordClass,
    ComplaintPriority,
    ComplaintStatus,
    QualificationStatus,
    ReasonRule,
    AuditPolicy,
    DeliveryBooking,
    Complaint,
    QualityCall,
    RecordDefinition,
    RECORD_DEFINITIONS,
    BOOKING_STAGE_PLAN,
    get_definition,
)
from core.records.notifications import (
    Notification,
    NotificationKind,
    NotificationSink,
    CollectingSink,
    FanOutSink,
    LoggingSink,
)
from core.records.coordinator import (
    MutationApplied,
    MutationNoChanges,
    MutationFailed,
    MutationResult,
    RecordMutationCoordinator,
)

__all__ = [
    # Errors
    "MutationError",
    "NotFoundError",
    "AuthorizationError",
    "NoChangesError",
    "ValidationError",
    "StoreError",
    "PersistError",
    "ConflictError",
    # Stage progress
    "Stage",
    "StagePlan",
    "StageStatus",
    "derive_status",
    "evaluation_complete",
    # Change audit
    "AuditEntry",
    "compute_audit",
    "changed_fields",
    "normalise_value",
    # Schema
    "RecordClass",
    "ComplaintPriority",
    "ComplaintStatus",
    "QualificationStatus",
    "ReasonRule",
    "AuditPolicy",
    "DeliveryBooking",
    "Complaint",
    "QualityCall",
    "RecordDefinition",
    "RECORD_DEFINITIONS",
    "BOOKING_STAGE_PLAN",
    "get_definition",
    # Notifications
    "Notification",
    "NotificationKind",
    "NotificationSink",
    "CollectingSink",
    "FanOutSink",
    "LoggingSink",
    # Coordinator
    "MutationApplied",
    "MutationNoChanges",
    "MutationFailed",
    "MutationResult",
    "RecordMutationCoordinator",
]
