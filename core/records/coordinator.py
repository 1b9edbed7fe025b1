"""
Record Mutation Coordinator

The only component that performs I/O on records. Every mutation runs the
same steps, strictly in order:

1. Fetch      current version from the store
2. Authorize  actor against the record class (re-checked even if the UI hid the control)
              and, for a stage submission, against the stage's owner roles
3. Derive     status (progressable) or audit entries (auditable)
4. Short-circuit  an empty audit diff writes nothing and reports "no changes"
5. Persist    changed fields (field-scoped patch) and any audit entries
6. Notify     one message per changed field / new status, then one for the outcome

Errors are caught at this boundary and turned into exactly one user-visible
notification. Nothing is retried. After a PersistError the store may be out
of step with what the caller last saw; reload before trying again.

The store offers no transaction around fetch/derive/persist. Writes are
field-scoped patches, so two parties submitting different stages of the
same booking do not overwrite each other's flags. Passing expected_version
turns on a version guard that rejects stale writes with ConflictError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Union

from core.records.audit import AuditEntry, compute_audit, normalise_value
from core.records.errors import (
    AuthorizationError,
    ConflictError,
    MutationError,
    NoChangesError,
    NotFoundError,
    PersistError,
    StoreError,
    ValidationError,
)
from core.records.notifications import Notification, NotificationKind, NotificationSink
from core.records.progress import Stage, StageStatus
from core.records.schema import (
    AuditPolicy,
    DeliveryBooking,
    RecordClass,
    RecordDefinition,
    generate_request_number,
    get_definition,
    missing_fields,
)
from utils.formatting import format_change_message, format_status_message

if TYPE_CHECKING:
    from core.access.identity import Actor
    from core.access.permissions import PermissionChecker
    from core.store.base import RecordStore, Row


logger = logging.getLogger(__name__)


# Columns the coordinator maintains itself; never part of a diff
SYSTEM_FIELDS = frozenset({"version", "created_by", "created_at", "updated_by", "updated_at"})


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class MutationApplied:
    """The record (and any audit entries) were written."""

    record_class: RecordClass
    record_id: str
    record: Any
    audit_entries: tuple[AuditEntry, ...] = ()
    status: Optional[StageStatus] = None
    created: bool = False


@dataclass(frozen=True)
class MutationNoChanges:
    """Nothing tracked changed; nothing was written."""

    record_class: RecordClass
    record_id: str
    error: NoChangesError


@dataclass(frozen=True)
class MutationFailed:
    """The mutation was rejected or failed; see error for which."""

    record_class: RecordClass
    record_id: str
    error: MutationError


MutationResult = Union[MutationApplied, MutationNoChanges, MutationFailed]


# =============================================================================
# Coordinator
# =============================================================================


class RecordMutationCoordinator:
    """
    Orchestrates fetch -> authorize -> derive -> persist -> notify.

    Usage:
        coordinator = RecordMutationCoordinator(store, AccessPolicy(), sink)
        result = coordinator.update_auditable(
            RecordClass.COMPLAINT, "1042", {"status": "resolved"}, actor
        )
        if isinstance(result, MutationNoChanges):
            ...
    """

    def __init__(
        self,
        store: RecordStore,
        permissions: PermissionChecker,
        sink: NotificationSink,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._store = store
        self._permissions = permissions
        self._sink = sink
        self._clock = clock

    # =========================================================================
    # Reads
    # =========================================================================

    def load_record(self, record_class: RecordClass, record_id: str) -> Any:
        """Fetch and type a record. Raises NotFoundError / StoreError."""
        definition = get_definition(record_class)
        row = self._store.get(definition.collection, record_id)
        return definition.model.from_row(row)

    def load_booking(self, booking_id: str) -> DeliveryBooking:
        return self.load_record(RecordClass.BOOKING, booking_id)

    def list_records(self, record_class: RecordClass) -> list[Any]:
        definition = get_definition(record_class)
        return [definition.model.from_row(r) for r in self._store.list_all(definition.collection)]

    def load_audit_trail(self, record_class: RecordClass, record_id: str) -> list[AuditEntry]:
        definition = get_definition(record_class)
        _require_auditable(definition)
        rows = self._store.list_audit_entries(
            definition.audit_collection, definition.key_field, record_id
        )
        return [AuditEntry.from_row(r, definition.key_field) for r in rows]

    # =========================================================================
    # Progressable Records
    # =========================================================================

    def create_booking(
        self,
        values: Mapping[str, Any],
        actor: Actor,
        at: Optional[datetime] = None,
    ) -> MutationResult:
        """Open a booking from the Sales form. Sets the Sales stage flag."""
        record_id = str(values.get("booking_id") or "")
        return self._run(
            RecordClass.BOOKING,
            record_id,
            lambda: self._create_booking(values, actor, at or self._clock()),
        )

    def submit_stage(
        self,
        booking_id: str,
        stage_key: str,
        values: Mapping[str, Any],
        actor: Actor,
        expected_version: Optional[int] = None,
        at: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Record one party's sub-form on a booking.

        Only the stage's owned fields may be supplied. The stage flag is set
        and the status re-derived.
        """
        return self._run(
            RecordClass.BOOKING,
            booking_id,
            lambda: self._submit_stage(
                booking_id, stage_key, values, actor, expected_version, at or self._clock()
            ),
        )

    def _create_booking(self, values: Mapping[str, Any], actor: Actor, at: datetime) -> MutationApplied:
        definition = get_definition(RecordClass.BOOKING)
        self._authorize(actor, definition, str(values.get("booking_id") or ""))

        plan = definition.stage_plan
        first = plan.stages[0]
        self._authorize_stage(actor, first, str(values.get("booking_id") or ""))
        self._require(values, definition)
        self._reject_unknown(values, set(first.owned_fields) | {definition.key_field}, values.get("booking_id"))

        record_id = str(values["booking_id"])
        booking = _apply_changes(DeliveryBooking(booking_id=record_id), {
            **values,
            first.flag_field: True,
            "created_by": actor.actor_id,
            "created_at": at.isoformat(),
        }, record_id)
        status = booking.status

        stored = self._persist_insert(definition, booking)
        booking = DeliveryBooking.from_row(stored)

        logger.info("Booking %s opened by %s: %s", booking.key, actor.actor_id, status.code)
        self._notify("Status updated", format_status_message(booking.key, status.label), NotificationKind.SUCCESS)
        self._notify("Saved", f"Booking {booking.key} created", NotificationKind.SUCCESS)
        return MutationApplied(RecordClass.BOOKING, booking.key, booking, status=status, created=True)

    def _submit_stage(
        self,
        booking_id: str,
        stage_key: str,
        values: Mapping[str, Any],
        actor: Actor,
        expected_version: Optional[int],
        at: datetime,
    ) -> MutationApplied:
        definition = get_definition(RecordClass.BOOKING)

        # 1. Fetch
        current = DeliveryBooking.from_row(self._store.get(definition.collection, booking_id))

        # 2. Authorize
        self._authorize(actor, definition, booking_id)

        plan = definition.stage_plan
        stage = plan.get_stage(stage_key)
        if stage is None:
            raise ValidationError(f"Unknown stage: {stage_key}", booking_id, [stage_key])
        self._authorize_stage(actor, stage, booking_id)
        self._reject_unknown(values, set(stage.owned_fields), booking_id)

        index = plan.stages.index(stage)
        pending_before = [s.key for s in plan.stages[:index] if not current.stage_flags[s.key]]
        if pending_before:
            logger.warning(
                "Booking %s: %s submitted before %s",
                booking_id,
                stage.key,
                ", ".join(pending_before),
            )

        # 3. Derive
        proposed = _apply_changes(current, {**values, stage.flag_field: True}, booking_id)
        status = proposed.status

        # 5. Persist (only what changed, plus the fresh status)
        changes = _diff_rows(current.to_row(), proposed.to_row(), exclude=SYSTEM_FIELDS)
        changes["status"] = status.label
        changes["updated_by"] = actor.actor_id
        changes["updated_at"] = at.isoformat()
        stored = self._persist_patch(definition, booking_id, changes, expected_version)
        updated = DeliveryBooking.from_row(stored)

        # 6. Notify
        logger.info(
            "Booking %s stage %s submitted by %s: %s -> %s",
            booking_id, stage.key, actor.actor_id, current.status.code, status.code,
        )
        self._notify("Status updated", format_status_message(booking_id, status.label), NotificationKind.SUCCESS)
        self._notify("Saved", f"{stage.label} details saved", NotificationKind.SUCCESS)
        return MutationApplied(RecordClass.BOOKING, booking_id, updated, status=status)

    # =========================================================================
    # Auditable Records
    # =========================================================================

    def create_auditable(
        self,
        record_class: RecordClass,
        values: Mapping[str, Any],
        actor: Actor,
        at: Optional[datetime] = None,
    ) -> MutationResult:
        """Create a complaint or quality call. Creation itself is not audited."""
        definition = get_definition(record_class)
        _require_auditable(definition)
        record_id = str(values.get(definition.key_field) or "")
        return self._run(
            record_class,
            record_id,
            lambda: self._create_auditable(definition, values, actor, at or self._clock()),
        )

    def update_auditable(
        self,
        record_class: RecordClass,
        record_id: str,
        proposed: Mapping[str, Any],
        actor: Actor,
        expected_version: Optional[int] = None,
        at: Optional[datetime] = None,
    ) -> MutationResult:
        """Apply an edit and record one audit entry per changed tracked field."""
        definition = get_definition(record_class)
        _require_auditable(definition)
        return self._run(
            record_class,
            record_id,
            lambda: self._update_auditable(
                definition, record_id, proposed, actor, expected_version, at or self._clock()
            ),
        )

    def _create_auditable(
        self,
        definition: RecordDefinition,
        values: Mapping[str, Any],
        actor: Actor,
        at: datetime,
    ) -> MutationApplied:
        record_id = str(values.get(definition.key_field) or "")
        self._authorize(actor, definition, record_id)
        self._require(values, definition)

        row = dict(values)
        row.update({
            "created_by": actor.actor_id,
            "created_at": at.isoformat(),
            "updated_by": None,
            "updated_at": None,
        })
        if definition.record_class == RecordClass.COMPLAINT and not row.get("request_number"):
            row["request_number"] = generate_request_number()

        record = _apply_changes(definition.model.from_row({definition.key_field: record_id}), row, record_id)

        policy = definition.audit_policy
        self._check_reasons(policy, record, policy.tracked_fields, record_id)

        stored = self._persist_insert(definition, record)
        record = definition.model.from_row(stored)

        logger.info("%s %s created by %s", definition.record_class.value, record_id, actor.actor_id)
        noun = definition.record_class.value.replace("_", " ").capitalize()
        self._notify("Saved", f"{noun} {record_id} created", NotificationKind.SUCCESS)
        return MutationApplied(definition.record_class, record_id, record, created=True)

    def _update_auditable(
        self,
        definition: RecordDefinition,
        record_id: str,
        proposed_values: Mapping[str, Any],
        actor: Actor,
        expected_version: Optional[int],
        at: datetime,
    ) -> MutationApplied:
        policy = definition.audit_policy

        # 1. Fetch
        current = definition.model.from_row(self._store.get(definition.collection, record_id))

        # 2. Authorize
        self._authorize(actor, definition, record_id)

        # 3. Derive
        editable = {k: v for k, v in proposed_values.items() if k not in SYSTEM_FIELDS}
        if definition.key_field in editable and str(editable[definition.key_field]) != record_id:
            raise ValidationError(f"{definition.key_field} cannot be changed", record_id, [definition.key_field])
        proposed = _apply_changes(current, editable, record_id)

        entries = compute_audit(
            current.to_row(),
            proposed.to_row(),
            policy.tracked_fields,
            author=actor.actor_id,
            at=at,
            record_id=record_id,
        )

        # 4. Short-circuit
        if not entries:
            raise NoChangesError("No changes were made", record_id)

        self._check_reasons(policy, proposed, [e.field for e in entries], record_id)

        # 5. Persist
        changes = _diff_rows(current.to_row(), proposed.to_row(), exclude=SYSTEM_FIELDS)
        changes["updated_by"] = actor.actor_id
        changes["updated_at"] = at.isoformat()
        stored = self._persist_patch(definition, record_id, changes, expected_version)

        try:
            self._store.append_audit_entries(
                definition.audit_collection,
                [e.to_row(definition.key_field) for e in entries],
            )
        except StoreError as e:
            raise PersistError(
                f"Record {record_id} was saved but its change history was not; reload before retrying",
                record_id,
            ) from e

        updated = definition.model.from_row(stored)

        # 6. Notify
        logger.info(
            "%s %s updated by %s: %s",
            definition.record_class.value, record_id, actor.actor_id,
            ", ".join(e.field for e in entries),
        )
        for entry in entries:
            self._notify(
                "Updated",
                format_change_message(
                    policy.label_for(entry.field), entry.old_value, entry.new_value, actor.display_name
                ),
                NotificationKind.SUCCESS,
            )
        self._notify("Updated", "Changes saved", NotificationKind.SUCCESS)
        return MutationApplied(definition.record_class, record_id, updated, audit_entries=tuple(entries))

    # =========================================================================
    # Steps
    # =========================================================================

    def _run(
        self,
        record_class: RecordClass,
        record_id: str,
        operation: Callable[[], MutationApplied],
    ) -> MutationResult:
        """Error boundary: each failure becomes exactly one notification."""
        try:
            return operation()
        except NoChangesError as e:
            self._notify(e.title, e.message, NotificationKind.INFO)
            return MutationNoChanges(record_class, record_id, e)
        except MutationError as e:
            logger.warning(
                "%s %s mutation failed (%s): %s",
                record_class.value, record_id, type(e).__name__, e.message,
            )
            self._notify(e.title, e.message, NotificationKind.ERROR)
            return MutationFailed(record_class, record_id, e)

    def _authorize(self, actor: Actor, definition: RecordDefinition, record_id: str) -> None:
        if not self._permissions.can_edit(actor, definition.record_class):
            raise AuthorizationError(
                f"{actor.display_name} cannot edit {definition.record_class.value} records",
                record_id,
            )

    def _authorize_stage(self, actor: Actor, stage: Stage, record_id: str) -> None:
        if not self._permissions.can_submit_stage(actor, stage):
            raise AuthorizationError(
                f"{actor.display_name} cannot submit the {stage.label} stage",
                record_id,
            )

    @staticmethod
    def _require(values: Mapping[str, Any], definition: RecordDefinition) -> None:
        missing = missing_fields(values, definition.required_fields)
        if missing:
            raise ValidationError(
                f"Required fields missing: {', '.join(missing)}",
                str(values.get(definition.key_field) or "") or None,
                missing,
            )

    @staticmethod
    def _reject_unknown(values: Mapping[str, Any], allowed: set[str], record_id: Any) -> None:
        unknown = sorted(set(values) - allowed)
        if unknown:
            raise ValidationError(
                f"Fields not editable here: {', '.join(unknown)}",
                str(record_id or "") or None,
                unknown,
            )

    @staticmethod
    def _check_reasons(policy: AuditPolicy, record: Any, fields: Any, record_id: str) -> None:
        for rule in policy.reason_rules:
            if rule.field not in fields:
                continue
            if not rule.applies(getattr(record, rule.field)):
                continue
            if not normalise_value(getattr(record, rule.reason_field)).strip():
                raise ValidationError(
                    f"{policy.label_for(rule.reason_field)} is required",
                    record_id,
                    [rule.reason_field],
                )

    def _persist_insert(self, definition: RecordDefinition, record: Any) -> Row:
        return self._store.insert(definition.collection, record.key, record.to_row())

    def _persist_patch(
        self,
        definition: RecordDefinition,
        record_id: str,
        changes: Row,
        expected_version: Optional[int],
    ) -> Row:
        try:
            return self._store.patch(definition.collection, record_id, changes, expected_version)
        except (NotFoundError, ConflictError, PersistError):
            raise
        except StoreError as e:
            raise PersistError(f"Could not save {record_id}: {e.message}", record_id) from e

    def _notify(self, title: str, message: str, kind: NotificationKind) -> None:
        self._sink.notify(Notification(title=title, message=message, kind=kind))


def _diff_rows(previous: Row, proposed: Row, exclude: frozenset) -> Row:
    """Fields whose value differs between two rows."""
    return {
        name: value
        for name, value in proposed.items()
        if name not in exclude and previous.get(name) != value
    }


def _apply_changes(record: Any, values: Mapping[str, Any], record_id: str) -> Any:
    """Copy of record with values applied; bad input becomes ValidationError."""
    try:
        return record.with_changes(values)
    except KeyError as e:
        raise ValidationError(str(e.args[0]), record_id) from e
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid value: {e}", record_id) from e


def _require_auditable(definition: RecordDefinition) -> None:
    if not definition.is_auditable:
        raise ValueError(f"{definition.record_class.value} records are not audited")
