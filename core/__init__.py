"""
Ops Console - Core Record Logic

This module provides the record mutation pipeline:
1. Fetch      (RecordStore)
2. Authorize  (AccessPolicy)
3. Derive     (Stage Progress Engine / Change Audit Engine)
4. Short-circuit on empty audit diffs
5. Persist    (field-scoped patch + audit entries)
6. Notify     (NotificationSink)
"""

from .records import (
    RecordClass,
    DeliveryBooking,
    Complaint,
    QualityCall,
    StagePlan,
    StageStatus,
    derive_status,
    evaluation_complete,
    AuditEntry,
    compute_audit,
    MutationApplied,
    MutationNoChanges,
    MutationFailed,
    RecordMutationCoordinator,
    CollectingSink,
    FanOutSink,
    LoggingSink,
)
from .access import Actor, AccessProfile, AccessPolicy, ActorDirectory
from .store import RecordStore, InMemoryRecordStore, RestRecordStore, LiveCollection

__all__ = [
    # Records
    "RecordClass",
    "DeliveryBooking",
    "Complaint",
    "QualityCall",
    "StagePlan",
    "StageStatus",
    "derive_status",
    "evaluation_complete",
    "AuditEntry",
    "compute_audit",
    "MutationApplied",
    "MutationNoChanges",
    "MutationFailed",
    "RecordMutationCoordinator",
    "CollectingSink",
    "FanOutSink",
    "LoggingSink",
    # Access
    "Actor",
    "AccessProfile",
    "AccessPolicy",
    "ActorDirectory",
    # Stores
    "RecordStore",
    "InMemoryRecordStore",
    "RestRecordStore",
    "LiveCollection",
]
