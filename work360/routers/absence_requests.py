import uuid

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from work360.audit import log_user_action
from work360.db import get_db
from work360.models import AbsenceStatus, AbsenceType
from work360.schemas import (
    AbsenceApproveRequest,
    AbsenceChangesRequest,
    AbsenceMutationResponse,
    AbsenceOverlapRead,
    AbsenceRejectRequest,
    AbsenceRequestCreate,
    AbsenceRequestDetailRead,
    AbsenceRequestPage,
    AbsenceRequestRead,
    AbsenceRequestResubmit,
    PaginationRead,
)
from work360.security import require_auth, require_owner
from work360.services.absence_requests import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    AbsenceMutationResult,
    AbsencePage,
    approve_absence_request,
    cancel_absence_request,
    create_absence_request,
    delete_absence_request,
    get_absence_request,
    list_company_absence_requests,
    list_my_absence_requests,
    reject_absence_request,
    request_absence_changes,
    resubmit_absence_request,
)
from work360.services.absence_rules import AbsenceFields
from work360.services.tenancy import AuthContext

router = APIRouter(prefix="/api/absence-requests", tags=["absence-requests"])

ENTITY_TYPE = "absence_request"


def _mutation_response(result: AbsenceMutationResult) -> AbsenceMutationResponse:
    overlaps = [AbsenceOverlapRead.model_validate(item) for item in result.overlaps]
    return AbsenceMutationResponse(
        request=AbsenceRequestRead.model_validate(result.request),
        overlaps=overlaps,
        has_overlaps=bool(overlaps),
    )


def _page_response(page: AbsencePage) -> AbsenceRequestPage:
    return AbsenceRequestPage(
        items=[AbsenceRequestRead.model_validate(item) for item in page.items],
        pagination=PaginationRead(
            total=page.total,
            page=page.page,
            limit=page.limit,
            total_pages=page.total_pages,
        ),
    )


def _audit(
    db: Session,
    request: Request,
    auth: AuthContext,
    action: str,
    response: AbsenceMutationResponse,
) -> None:
    log_user_action(
        db,
        request,
        auth,
        action=action,
        entity_type=ENTITY_TYPE,
        entity_id=response.request.id,
        details={
            "status": response.request.status.value,
            "employee_id": str(response.request.employee_id),
            "revision_number": response.request.revision_number,
            "overlaps": len(response.overlaps),
        },
    )


@router.post("", response_model=AbsenceMutationResponse, status_code=status.HTTP_201_CREATED)
def create_request(
    payload: AbsenceRequestCreate,
    request: Request,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> AbsenceMutationResponse:
    result = create_absence_request(db, auth, AbsenceFields.from_mapping(payload.model_dump()))
    response = _mutation_response(result)
    _audit(db, request, auth, "ABSENCE_REQUEST_CREATED", response)
    return response


@router.get("/mine", response_model=AbsenceRequestPage)
def list_mine(
    status_filter: AbsenceStatus | None = Query(default=None, alias="status"),
    type_filter: AbsenceType | None = Query(default=None, alias="type"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> AbsenceRequestPage:
    return _page_response(
        list_my_absence_requests(db, auth, status=status_filter, type=type_filter, page=page, limit=limit)
    )


@router.get("/all", response_model=AbsenceRequestPage)
def list_all(
    status_filter: AbsenceStatus | None = Query(default=None, alias="status"),
    type_filter: AbsenceType | None = Query(default=None, alias="type"),
    employee_id: uuid.UUID | None = Query(default=None),
    month: str | None = Query(default=None, description="YYYY-MM"),
    is_104: bool | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    auth: AuthContext = Depends(require_owner),
    db: Session = Depends(get_db),
) -> AbsenceRequestPage:
    return _page_response(
        list_company_absence_requests(
            db,
            auth,
            status=status_filter,
            type=type_filter,
            employee_id=employee_id,
            month=month,
            is_104=is_104,
            page=page,
            limit=limit,
        )
    )


@router.get("/{request_id}", response_model=AbsenceRequestDetailRead)
def get_request(
    request_id: uuid.UUID,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> AbsenceRequestDetailRead:
    return AbsenceRequestDetailRead.model_validate(get_absence_request(db, auth, request_id))


@router.post("/{request_id}/approve", response_model=AbsenceMutationResponse)
def approve_request(
    request_id: uuid.UUID,
    request: Request,
    payload: AbsenceApproveRequest | None = None,
    auth: AuthContext = Depends(require_owner),
    db: Session = Depends(get_db),
) -> AbsenceMutationResponse:
    note = payload.note if payload is not None else None
    response = _mutation_response(approve_absence_request(db, auth, request_id, note=note))
    _audit(db, request, auth, "ABSENCE_REQUEST_APPROVED", response)
    return response


@router.post("/{request_id}/reject", response_model=AbsenceMutationResponse)
def reject_request(
    request_id: uuid.UUID,
    payload: AbsenceRejectRequest,
    request: Request,
    auth: AuthContext = Depends(require_owner),
    db: Session = Depends(get_db),
) -> AbsenceMutationResponse:
    response = _mutation_response(reject_absence_request(db, auth, request_id, note=payload.note))
    _audit(db, request, auth, "ABSENCE_REQUEST_REJECTED", response)
    return response


@router.post("/{request_id}/request-changes", response_model=AbsenceMutationResponse)
def request_changes(
    request_id: uuid.UUID,
    payload: AbsenceChangesRequest,
    request: Request,
    auth: AuthContext = Depends(require_owner),
    db: Session = Depends(get_db),
) -> AbsenceMutationResponse:
    result = request_absence_changes(db, auth, request_id, requested_changes=payload.requested_changes)
    response = _mutation_response(result)
    _audit(db, request, auth, "ABSENCE_REQUEST_CHANGES_REQUESTED", response)
    return response


@router.post("/{request_id}/cancel", response_model=AbsenceMutationResponse)
def cancel_request(
    request_id: uuid.UUID,
    request: Request,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> AbsenceMutationResponse:
    response = _mutation_response(cancel_absence_request(db, auth, request_id))
    _audit(db, request, auth, "ABSENCE_REQUEST_CANCELLED", response)
    return response


@router.post("/{request_id}/resubmit", response_model=AbsenceMutationResponse)
def resubmit_request(
    request_id: uuid.UUID,
    payload: AbsenceRequestResubmit,
    request: Request,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> AbsenceMutationResponse:
    result = resubmit_absence_request(db, auth, request_id, payload.model_dump(exclude_unset=True))
    response = _mutation_response(result)
    _audit(db, request, auth, "ABSENCE_REQUEST_RESUBMITTED", response)
    return response


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_request(
    request_id: uuid.UUID,
    request: Request,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> Response:
    delete_absence_request(db, auth, request_id)
    log_user_action(
        db,
        request,
        auth,
        action="ABSENCE_REQUEST_DELETED",
        entity_type=ENTITY_TYPE,
        entity_id=request_id,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
