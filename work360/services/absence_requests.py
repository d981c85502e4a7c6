from __future__ import annotations

import logging
import math
import re
import uuid
from calendar import monthrange
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from work360.errors import Forbidden, InvalidState, NotFound, ValidationError
from work360.models import (
    AbsenceRequest,
    AbsenceRequestRevision,
    AbsenceStatus,
    AbsenceType,
)
from work360.services.absence_rules import (
    EDITABLE_FIELDS,
    AbsenceFields,
    TransitionActor,
    changed_field_names,
    ensure_transition,
    merge_resubmitted_fields,
    snapshot_fields,
    validate_fields,
)
from work360.services.tenancy import AuthContext

logger = logging.getLogger("work360.absence_requests")

OVERLAP_LIMIT = 5
DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 50
WORKER_DELETABLE_STATUSES = frozenset({AbsenceStatus.PENDING, AbsenceStatus.CANCELLED})
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True, slots=True)
class AbsenceMutationResult:
    request: AbsenceRequest
    overlaps: list[AbsenceRequest] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AbsencePage:
    items: list[AbsenceRequest]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _fields_of(request: AbsenceRequest) -> AbsenceFields:
    return AbsenceFields(**{name: getattr(request, name) for name in EDITABLE_FIELDS})


def _apply_fields(request: AbsenceRequest, fields: AbsenceFields) -> None:
    for name in EDITABLE_FIELDS:
        setattr(request, name, getattr(fields, name))
    request.is_104 = fields.is_104
    request.duration_minutes = fields.duration_minutes


def _clear_decision(request: AbsenceRequest) -> None:
    request.decision_by = None
    request.decision_at = None
    request.decision_note = None
    request.requested_changes = None


def _concurrent_modification() -> InvalidState:
    return InvalidState(
        "The request was changed by someone else in the meantime. Reload it and try again.",
        code="CONCURRENT_MODIFICATION",
    )


def _normalize_paging(page: int, limit: int) -> tuple[int, int]:
    return max(1, int(page)), max(1, min(int(limit), MAX_PAGE_LIMIT))


def _load_visible(
    db: Session,
    auth: AuthContext,
    request_id: uuid.UUID,
    *,
    for_update: bool = False,
    with_revisions: bool = False,
) -> AbsenceRequest:
    stmt = select(AbsenceRequest).where(
        AbsenceRequest.id == request_id,
        AbsenceRequest.company_id == auth.company_id,
    )
    if not auth.is_owner:
        stmt = stmt.where(AbsenceRequest.employee_id == auth.user_id)
    if with_revisions:
        stmt = stmt.options(selectinload(AbsenceRequest.revisions))
    if for_update:
        stmt = stmt.with_for_update()

    try:
        request = db.scalar(stmt)
    except StaleDataError:
        db.rollback()
        raise _concurrent_modification() from None
    if request is None:
        raise NotFound("Absence request not found.", code="ABSENCE_REQUEST_NOT_FOUND")
    return request


def _commit(db: Session, request: AbsenceRequest, *, event: str, auth: AuthContext) -> None:
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning(
            "absence_request_concurrent_update",
            extra={"absence_request_id": str(request.id), "event": event, "actor_id": str(auth.user_id)},
        )
        raise _concurrent_modification() from None
    db.refresh(request)
    logger.info(
        event,
        extra={
            "absence_request_id": str(request.id),
            "company_id": str(request.company_id),
            "actor_id": str(auth.user_id),
            "status": request.status.value,
            "revision_number": request.revision_number,
        },
    )


def check_overlaps(
    db: Session,
    *,
    employee_id: uuid.UUID,
    company_id: uuid.UUID,
    start_date: date,
    end_date: date | None,
    exclude_id: uuid.UUID | None = None,
) -> list[AbsenceRequest]:
    candidate_end = end_date or start_date
    existing_end = func.coalesce(AbsenceRequest.end_date, AbsenceRequest.start_date)
    stmt = (
        select(AbsenceRequest)
        .where(
            AbsenceRequest.employee_id == employee_id,
            AbsenceRequest.company_id == company_id,
            AbsenceRequest.status == AbsenceStatus.APPROVED,
            AbsenceRequest.start_date <= candidate_end,
            existing_end >= start_date,
        )
        .order_by(AbsenceRequest.start_date.asc(), AbsenceRequest.created_at.asc())
        .limit(OVERLAP_LIMIT)
    )
    if exclude_id is not None:
        stmt = stmt.where(AbsenceRequest.id != exclude_id)
    return list(db.scalars(stmt).all())


def _overlaps_for(db: Session, request: AbsenceRequest) -> list[AbsenceRequest]:
    return check_overlaps(
        db,
        employee_id=request.employee_id,
        company_id=request.company_id,
        start_date=request.start_date,
        end_date=request.end_date,
        exclude_id=request.id,
    )


def create_absence_request(db: Session, auth: AuthContext, fields: AbsenceFields) -> AbsenceMutationResult:
    fields = validate_fields(fields.normalized())

    request = AbsenceRequest(
        employee_id=auth.user_id,
        company_id=auth.company_id,
        status=AbsenceStatus.PENDING,
        revision_number=1,
    )
    _apply_fields(request, fields)
    db.add(request)
    _commit(db, request, event="absence_request_created", auth=auth)
    return AbsenceMutationResult(request=request, overlaps=_overlaps_for(db, request))


def resubmit_absence_request(
    db: Session,
    auth: AuthContext,
    request_id: uuid.UUID,
    changes: Mapping[str, Any],
) -> AbsenceMutationResult:
    request = _load_visible(db, auth, request_id, for_update=True)
    if request.employee_id != auth.user_id:
        raise Forbidden("Only the employee who created the request can resubmit it.")
    ensure_transition(request.status, AbsenceStatus.PENDING, TransitionActor.SELF)

    before = _fields_of(request)
    after = validate_fields(merge_resubmitted_fields(before, changes))

    request.revisions.append(
        AbsenceRequestRevision(
            revision_number=request.revision_number,
            changed_by=auth.user_id,
            changes={
                "before": snapshot_fields(
                    before,
                    status=request.status,
                    requested_changes=request.requested_changes,
                ),
                "after": snapshot_fields(after),
                "changed_fields": changed_field_names(before, after),
            },
        )
    )
    _apply_fields(request, after)
    _clear_decision(request)
    request.revision_number += 1
    request.status = AbsenceStatus.PENDING

    _commit(db, request, event="absence_request_resubmitted", auth=auth)
    return AbsenceMutationResult(request=request, overlaps=_overlaps_for(db, request))


def _load_for_decision(
    db: Session,
    auth: AuthContext,
    request_id: uuid.UUID,
    target: AbsenceStatus,
) -> AbsenceRequest:
    request = _load_visible(db, auth, request_id, for_update=True)
    auth.require_owner()
    ensure_transition(request.status, target, TransitionActor.OWNER)
    return request


def approve_absence_request(
    db: Session,
    auth: AuthContext,
    request_id: uuid.UUID,
    *,
    note: str | None = None,
    now_utc: datetime | None = None,
) -> AbsenceMutationResult:
    request = _load_for_decision(db, auth, request_id, AbsenceStatus.APPROVED)

    request.status = AbsenceStatus.APPROVED
    request.decision_by = auth.user_id
    request.decision_at = now_utc or _utcnow()
    request.decision_note = (note or "").strip() or None
    request.requested_changes = None

    _commit(db, request, event="absence_request_approved", auth=auth)
    return AbsenceMutationResult(request=request, overlaps=_overlaps_for(db, request))


def reject_absence_request(
    db: Session,
    auth: AuthContext,
    request_id: uuid.UUID,
    *,
    note: str | None,
    now_utc: datetime | None = None,
) -> AbsenceMutationResult:
    request = _load_for_decision(db, auth, request_id, AbsenceStatus.REJECTED)
    clean_note = (note or "").strip()
    if not clean_note:
        raise ValidationError.single("note", "A reason is required to reject a request.")

    request.status = AbsenceStatus.REJECTED
    request.decision_by = auth.user_id
    request.decision_at = now_utc or _utcnow()
    request.decision_note = clean_note
    request.requested_changes = None

    _commit(db, request, event="absence_request_rejected", auth=auth)
    return AbsenceMutationResult(request=request)


def request_absence_changes(
    db: Session,
    auth: AuthContext,
    request_id: uuid.UUID,
    *,
    requested_changes: str | None,
    now_utc: datetime | None = None,
) -> AbsenceMutationResult:
    request = _load_for_decision(db, auth, request_id, AbsenceStatus.CHANGES_REQUESTED)
    clean_text = (requested_changes or "").strip()
    if not clean_text:
        raise ValidationError.single("requested_changes", "Describe the changes the employee has to make.")

    request.status = AbsenceStatus.CHANGES_REQUESTED
    request.requested_changes = clean_text
    request.decision_by = auth.user_id
    request.decision_at = now_utc or _utcnow()
    request.decision_note = None

    _commit(db, request, event="absence_request_changes_requested", auth=auth)
    return AbsenceMutationResult(request=request)


def cancel_absence_request(db: Session, auth: AuthContext, request_id: uuid.UUID) -> AbsenceMutationResult:
    request = _load_visible(db, auth, request_id, for_update=True)
    if request.employee_id != auth.user_id:
        raise Forbidden("Only the employee who created the request can cancel it.")
    ensure_transition(request.status, AbsenceStatus.CANCELLED, TransitionActor.SELF)

    request.status = AbsenceStatus.CANCELLED
    request.requested_changes = None

    _commit(db, request, event="absence_request_cancelled", auth=auth)
    return AbsenceMutationResult(request=request)


def get_absence_request(db: Session, auth: AuthContext, request_id: uuid.UUID) -> AbsenceRequest:
    return _load_visible(db, auth, request_id, with_revisions=True)


def _parse_month(month: str) -> tuple[date, date]:
    match = _MONTH_RE.match(month.strip())
    if match is None:
        raise ValidationError.single("month", "Month must use the YYYY-MM format.")
    year, month_number = int(match.group(1)), int(match.group(2))
    if not 1 <= month_number <= 12:
        raise ValidationError.single("month", "Month must be between 01 and 12.")
    return date(year, month_number, 1), date(year, month_number, monthrange(year, month_number)[1])


def _paginate(db: Session, conditions: list[Any], page: int, limit: int) -> AbsencePage:
    page, limit = _normalize_paging(page, limit)
    total = db.scalar(select(func.count()).select_from(AbsenceRequest).where(*conditions)) or 0
    stmt = (
        select(AbsenceRequest)
        .where(*conditions)
        .options(selectinload(AbsenceRequest.employee))
        .order_by(AbsenceRequest.created_at.desc(), AbsenceRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return AbsencePage(items=list(db.scalars(stmt).all()), total=int(total), page=page, limit=limit)


def list_my_absence_requests(
    db: Session,
    auth: AuthContext,
    *,
    status: AbsenceStatus | None = None,
    type: AbsenceType | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> AbsencePage:
    conditions: list[Any] = [
        AbsenceRequest.company_id == auth.company_id,
        AbsenceRequest.employee_id == auth.user_id,
    ]
    if status is not None:
        conditions.append(AbsenceRequest.status == status)
    if type is not None:
        conditions.append(AbsenceRequest.type == type)
    return _paginate(db, conditions, page, limit)


def list_company_absence_requests(
    db: Session,
    auth: AuthContext,
    *,
    status: AbsenceStatus | None = None,
    type: AbsenceType | None = None,
    employee_id: uuid.UUID | None = None,
    month: str | None = None,
    is_104: bool | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> AbsencePage:
    auth.require_owner()

    conditions: list[Any] = [AbsenceRequest.company_id == auth.company_id]
    if status is not None:
        conditions.append(AbsenceRequest.status == status)
    if type is not None:
        conditions.append(AbsenceRequest.type == type)
    if employee_id is not None:
        conditions.append(AbsenceRequest.employee_id == employee_id)
    if is_104 is not None:
        conditions.append(AbsenceRequest.is_104 == is_104)
    if month:
        month_start, month_end = _parse_month(month)
        conditions.append(AbsenceRequest.start_date <= month_end)
        conditions.append(func.coalesce(AbsenceRequest.end_date, AbsenceRequest.start_date) >= month_start)
    return _paginate(db, conditions, page, limit)


def delete_absence_request(db: Session, auth: AuthContext, request_id: uuid.UUID) -> None:
    request = _load_visible(db, auth, request_id, for_update=True)
    if not auth.is_owner and request.status not in WORKER_DELETABLE_STATUSES:
        raise InvalidState(
            f"A {request.status.value} request can no longer be deleted by the employee.",
            code="ABSENCE_REQUEST_LOCKED",
        )

    db.delete(request)
    db.commit()
    logger.info(
        "absence_request_deleted",
        extra={
            "absence_request_id": str(request_id),
            "company_id": str(auth.company_id),
            "actor_id": str(auth.user_id),
        },
    )
