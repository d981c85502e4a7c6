import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from work360.audit import log_user_action
from work360.db import get_db
from work360.schemas import (
    AttendanceRead,
    AttendanceWithUserRead,
    ClockInRequest,
    ClockOutRequest,
    GeoPointIn,
)
from work360.security import require_auth, require_owner
from work360.services.attendance import (
    GeoPoint,
    clock_in,
    clock_out,
    get_active_attendance,
    list_company_attendances,
    list_my_attendances,
)
from work360.services.tenancy import AuthContext, SiteValidationCache, get_site_validation_cache

router = APIRouter(prefix="/api/attendance", tags=["attendance"])

ENTITY_TYPE = "attendance"


def _geo_point(location: GeoPointIn | None) -> GeoPoint | None:
    if location is None:
        return None
    return GeoPoint(latitude=location.latitude, longitude=location.longitude, address=location.address)


@router.post("/clock-in", response_model=AttendanceRead, status_code=status.HTTP_201_CREATED)
def clock_in_endpoint(
    payload: ClockInRequest,
    request: Request,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    cache: SiteValidationCache = Depends(get_site_validation_cache),
) -> AttendanceRead:
    attendance = clock_in(
        db,
        auth,
        site_id=payload.site_id,
        location=_geo_point(payload.location),
        notes=payload.notes,
        cache=cache,
    )
    response = AttendanceRead.model_validate(attendance)
    log_user_action(
        db,
        request,
        auth,
        action="ATTENDANCE_CLOCK_IN",
        entity_type=ENTITY_TYPE,
        entity_id=response.id,
        details={"site_id": str(response.site_id)},
    )
    return response


@router.post("/clock-out", response_model=AttendanceRead)
def clock_out_endpoint(
    payload: ClockOutRequest,
    request: Request,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> AttendanceRead:
    attendance = clock_out(
        db,
        auth,
        attendance_id=payload.attendance_id,
        location=_geo_point(payload.location),
        notes=payload.notes,
    )
    response = AttendanceRead.model_validate(attendance)
    log_user_action(
        db,
        request,
        auth,
        action="ATTENDANCE_CLOCK_OUT",
        entity_type=ENTITY_TYPE,
        entity_id=response.id,
        details={"site_id": str(response.site_id), "total_hours": response.total_hours},
    )
    return response


@router.get("/my-records", response_model=list[AttendanceRead])
def my_records(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    site_id: uuid.UUID | None = Query(default=None),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> list[AttendanceRead]:
    rows = list_my_attendances(db, auth, start_date=start_date, end_date=end_date, site_id=site_id)
    return [AttendanceRead.model_validate(row) for row in rows]


@router.get("/active", response_model=AttendanceRead | None)
def active_attendance(
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> AttendanceRead | None:
    attendance = get_active_attendance(db, auth)
    if attendance is None:
        return None
    return AttendanceRead.model_validate(attendance)


@router.get("/all", response_model=list[AttendanceWithUserRead])
def all_attendances(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    site_id: uuid.UUID | None = Query(default=None),
    user_id: uuid.UUID | None = Query(default=None),
    active_only: bool = Query(default=False),
    auth: AuthContext = Depends(require_owner),
    db: Session = Depends(get_db),
) -> list[AttendanceWithUserRead]:
    rows = list_company_attendances(
        db,
        auth,
        start_date=start_date,
        end_date=end_date,
        site_id=site_id,
        user_id=user_id,
        active_only=active_only,
    )
    return [AttendanceWithUserRead.model_validate(row) for row in rows]
