"""
Record Routes - JSON API over the Record Mutation Coordinator

Every write goes through the coordinator; these handlers only translate
HTTP in and results out.

Access Control:
- The caller is identified by the X-Actor-Id header (unknown -> 401)
- Reads require page read access, writes are checked by the coordinator
- List and detail responses carry "read_only" so clients can hide edit controls

Lists are served from per-collection live views (see core.store.live).
Every notification is returned to the caller and also written to the log.

Outcome mapping:
- applied            -> 200 (201 on create)
- no changes         -> 200 with "changed": false
- NotFoundError      -> 404
- AuthorizationError -> 403
- ValidationError    -> 422
- ConflictError      -> 409
- StoreError         -> 502
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.access import AccessPolicy, Actor
from core.records import (
    AuthorizationError,
    CollectingSink,
    ConflictError,
    FanOutSink,
    LoggingSink,
    MutationApplied,
    MutationError,
    MutationFailed,
    MutationNoChanges,
    MutationResult,
    NotFoundError,
    RecordClass,
    RecordMutationCoordinator,
    StoreError,
    ValidationError,
    get_definition,
)
from core.store import LiveCollection


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/api", tags=["records"])


# =============================================================================
# Request Bodies
# =============================================================================


class BookingCreate(BaseModel):
    """Sales form that opens a booking."""
    booking_id: str
    booking_date: str
    customer_name: str
    project: str
    building: str = ""
    unit: str
    payment_method: str
    sale_type: str
    unit_value: float
    sales_employee: str


class StageSubmission(BaseModel):
    """One party's sub-form. `values` may only hold that stage's fields."""
    values: dict[str, Any] = {}
    expected_version: Optional[int] = None


class ComplaintCreate(BaseModel):
    complaint_id: str
    date: str
    priority: str = "medium"
    customer_name: str
    project: str
    unit_number: str = ""
    source: str
    status: str = "new"
    request_number: str = ""
    description: str
    maintenance_delivery_action: str = ""
    action: str = ""
    duration: int = 0
    expected_closure_time: str = ""


class QualityCallCreate(BaseModel):
    call_id: str
    call_date: str
    customer_name: str
    phone_number: str
    project: str
    unit_number: str = ""
    call_type: str
    call_duration: Optional[int] = None
    evaluation_score: Optional[float] = None
    qualification_status: str = "under_review"
    qualification_reason: str = ""
    notes: str = ""
    audio_file_url: str = ""


class RecordUpdate(BaseModel):
    """Proposed field values for an auditable record."""
    changes: dict[str, Any]
    expected_version: Optional[int] = None


# =============================================================================
# Dependencies
# =============================================================================


@dataclass
class RequestContext:
    """Per-request coordinator with its own notification sink."""
    actor: Actor
    coordinator: RecordMutationCoordinator
    sink: CollectingSink
    permissions: AccessPolicy
    live: dict[RecordClass, LiveCollection]


def require_actor(
    request: Request,
    x_actor_id: Optional[str] = Header(None),
) -> Actor:
    """
    Resolve the calling actor.

    Raises:
        HTTPException(401) if the header is missing or the actor is unknown
    """
    actor = request.app.state.actors.get(x_actor_id)
    if actor is None:
        raise HTTPException(status_code=401, detail="Unknown actor")
    return actor


def get_context(
    request: Request,
    actor: Actor = Depends(require_actor),
) -> RequestContext:
    sink = CollectingSink()
    permissions = request.app.state.permissions
    coordinator = RecordMutationCoordinator(
        request.app.state.store,
        permissions,
        FanOutSink(sink, LoggingSink()),
    )
    return RequestContext(
        actor=actor,
        coordinator=coordinator,
        sink=sink,
        permissions=permissions,
        live=request.app.state.live,
    )


# =============================================================================
# Response Helpers
# =============================================================================


def status_code_for(error: MutationError) -> int:
    """HTTP status for a mutation error."""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, AuthorizationError):
        return 403
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, ConflictError):
        return 409
    if isinstance(error, StoreError):
        return 502
    return 400


def _error_body(error: MutationError) -> dict:
    body = {
        "error": type(error).__name__,
        "title": error.title,
        "message": error.message,
        "record_id": error.record_id,
    }
    if isinstance(error, ValidationError):
        body["fields"] = error.fields
    if isinstance(error, ConflictError):
        body["expected_version"] = error.expected_version
        body["actual_version"] = error.actual_version
    return body


def respond(result: MutationResult, ctx: RequestContext) -> JSONResponse:
    """Translate a coordinator result into a JSON response."""
    notifications = [n.to_dict() for n in ctx.sink.drain()]

    if isinstance(result, MutationApplied):
        return JSONResponse(
            status_code=201 if result.created else 200,
            content={
                "changed": True,
                "record_id": result.record_id,
                "record": result.record.to_dict(),
                "status": result.status.to_dict() if result.status else None,
                "audit_entries": [e.to_dict() for e in result.audit_entries],
                "notifications": notifications,
            },
        )

    if isinstance(result, MutationNoChanges):
        return JSONResponse(
            status_code=200,
            content={
                "changed": False,
                "record_id": result.record_id,
                "message": result.error.message,
                "notifications": notifications,
            },
        )

    raise HTTPException(
        status_code=status_code_for(result.error),
        detail={**_error_body(result.error), "notifications": notifications},
    )


def require_read(ctx: RequestContext, record_class: RecordClass) -> None:
    page = get_definition(record_class).page
    if not ctx.permissions.has_read_access(ctx.actor, page):
        raise HTTPException(status_code=403, detail=f"No access to {page}")


def _load(ctx: RequestContext, record_class: RecordClass, record_id: str) -> Any:
    require_read(ctx, record_class)
    try:
        return ctx.coordinator.load_record(record_class, record_id)
    except MutationError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.message) from e


def _detail(ctx: RequestContext, record_class: RecordClass, record_id: str) -> dict:
    record = _load(ctx, record_class, record_id)
    return {**record.to_dict(), "read_only": ctx.permissions.is_read_only(ctx.actor, record_class)}


def _list(ctx: RequestContext, record_class: RecordClass, key: str) -> dict:
    """Whole collection from its live view, newest first."""
    require_read(ctx, record_class)
    model = get_definition(record_class).model
    try:
        rows = ctx.live[record_class].fresh_rows()
    except MutationError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.message) from e
    return {
        key: [model.from_row(r).to_dict() for r in rows],
        "read_only": ctx.permissions.is_read_only(ctx.actor, record_class),
    }


def _audit_trail(ctx: RequestContext, record_class: RecordClass, record_id: str) -> dict:
    _load(ctx, record_class, record_id)
    try:
        entries = ctx.coordinator.load_audit_trail(record_class, record_id)
    except MutationError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.message) from e
    return {"record_id": record_id, "updates": [e.to_dict() for e in entries]}


# =============================================================================
# Delivery Bookings
# =============================================================================


@router.get("/bookings")
def list_bookings(ctx: RequestContext = Depends(get_context)):
    return _list(ctx, RecordClass.BOOKING, "bookings")


@router.get("/bookings/{booking_id}")
def get_booking(booking_id: str, ctx: RequestContext = Depends(get_context)):
    """Booking with its derived status."""
    return _detail(ctx, RecordClass.BOOKING, booking_id)


@router.post("/bookings")
def create_booking(body: BookingCreate, ctx: RequestContext = Depends(get_context)):
    result = ctx.coordinator.create_booking(body.model_dump(), ctx.actor)
    return respond(result, ctx)


@router.post("/bookings/{booking_id}/stages/{stage_key}")
def submit_stage(
    booking_id: str,
    stage_key: str,
    body: StageSubmission,
    ctx: RequestContext = Depends(get_context),
):
    """Record Projects or Customer-Care details (or re-submit Sales)."""
    result = ctx.coordinator.submit_stage(
        booking_id,
        stage_key,
        body.values,
        ctx.actor,
        expected_version=body.expected_version,
    )
    return respond(result, ctx)


# =============================================================================
# Complaints
# =============================================================================


@router.get("/complaints")
def list_complaints(ctx: RequestContext = Depends(get_context)):
    return _list(ctx, RecordClass.COMPLAINT, "complaints")


@router.get("/complaints/{complaint_id}")
def get_complaint(complaint_id: str, ctx: RequestContext = Depends(get_context)):
    return _detail(ctx, RecordClass.COMPLAINT, complaint_id)


@router.post("/complaints")
def create_complaint(body: ComplaintCreate, ctx: RequestContext = Depends(get_context)):
    result = ctx.coordinator.create_auditable(RecordClass.COMPLAINT, body.model_dump(), ctx.actor)
    return respond(result, ctx)


@router.put("/complaints/{complaint_id}")
def update_complaint(
    complaint_id: str,
    body: RecordUpdate,
    ctx: RequestContext = Depends(get_context),
):
    result = ctx.coordinator.update_auditable(
        RecordClass.COMPLAINT,
        complaint_id,
        body.changes,
        ctx.actor,
        expected_version=body.expected_version,
    )
    return respond(result, ctx)


@router.get("/complaints/{complaint_id}/updates")
def complaint_updates(complaint_id: str, ctx: RequestContext = Depends(get_context)):
    """Audit trail, oldest first."""
    return _audit_trail(ctx, RecordClass.COMPLAINT, complaint_id)


# =============================================================================
# Quality Calls
# =============================================================================


@router.get("/quality-calls")
def list_quality_calls(ctx: RequestContext = Depends(get_context)):
    return _list(ctx, RecordClass.QUALITY_CALL, "quality_calls")


@router.get("/quality-calls/{call_id}")
def get_quality_call(call_id: str, ctx: RequestContext = Depends(get_context)):
    return _detail(ctx, RecordClass.QUALITY_CALL, call_id)


@router.post("/quality-calls")
def create_quality_call(body: QualityCallCreate, ctx: RequestContext = Depends(get_context)):
    result = ctx.coordinator.create_auditable(RecordClass.QUALITY_CALL, body.model_dump(), ctx.actor)
    return respond(result, ctx)


@router.put("/quality-calls/{call_id}")
def update_quality_call(
    call_id: str,
    body: RecordUpdate,
    ctx: RequestContext = Depends(get_context),
):
    result = ctx.coordinator.update_auditable(
        RecordClass.QUALITY_CALL,
        call_id,
        body.changes,
        ctx.actor,
        expected_version=body.expected_version,
    )
    return respond(result, ctx)


@router.get("/quality-calls/{call_id}/updates")
def quality_call_updates(call_id: str, ctx: RequestContext = Depends(get_context)):
    return _audit_trail(ctx, RecordClass.QUALITY_CALL, call_id)
