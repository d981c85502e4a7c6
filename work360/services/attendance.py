from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from work360.errors import InvalidState, NotFound
from work360.models import Attendance, User
from work360.services.local_time import local_date_range_to_utc_bounds
from work360.services.tenancy import AuthContext, SiteValidationCache, ensure_site_in_company
from work360.services.worked_hours import calculate_worked_hours

logger = logging.getLogger("work360.attendance")

RECALCULATION_TOLERANCE_HOURS = 0.01


@dataclass(frozen=True, slots=True)
class GeoPoint:
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None


@dataclass(frozen=True, slots=True)
class RecalculationReport:
    updated: int
    unchanged: int
    skipped: int

    @property
    def total(self) -> int:
        return self.updated + self.unchanged + self.skipped


def _normalize_ts(ts_utc: datetime | None) -> datetime:
    if ts_utc is None:
        return datetime.now(timezone.utc)
    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)
    return ts_utc.astimezone(timezone.utc)


def _already_clocked_in() -> InvalidState:
    return InvalidState(
        "You are already clocked in. Clock out before starting a new shift.",
        code="ALREADY_CLOCKED_IN",
    )


def _find_open_attendance(db: Session, *, company_id: uuid.UUID, user_id: uuid.UUID) -> Attendance | None:
    return db.scalar(
        select(Attendance)
        .where(
            Attendance.company_id == company_id,
            Attendance.user_id == user_id,
            Attendance.clock_out_time.is_(None),
        )
        .options(selectinload(Attendance.site))
    )


def clock_in(
    db: Session,
    auth: AuthContext,
    *,
    site_id: uuid.UUID,
    location: GeoPoint | None = None,
    notes: str | None = None,
    now_utc: datetime | None = None,
    cache: SiteValidationCache | None = None,
) -> Attendance:
    ensure_site_in_company(db, company_id=auth.company_id, site_id=site_id, cache=cache)

    user = db.get(User, auth.user_id)
    if user is None or user.company_id != auth.company_id:
        raise NotFound("User not found.", code="USER_NOT_FOUND")

    if _find_open_attendance(db, company_id=auth.company_id, user_id=auth.user_id) is not None:
        raise _already_clocked_in()

    location = location or GeoPoint()
    attendance = Attendance(
        company_id=auth.company_id,
        user_id=auth.user_id,
        site_id=site_id,
        clock_in_time=_normalize_ts(now_utc),
        clock_in_latitude=location.latitude,
        clock_in_longitude=location.longitude,
        clock_in_address=location.address,
        total_hours=Decimal("0"),
        hourly_cost=user.hourly_cost,
        notes=(notes or "").strip() or None,
    )
    db.add(attendance)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent clock-in won the open-attendance unique index
        db.rollback()
        raise _already_clocked_in() from None
    db.refresh(attendance)

    logger.info(
        "attendance_clock_in",
        extra={
            "attendance_id": str(attendance.id),
            "company_id": str(auth.company_id),
            "user_id": str(auth.user_id),
            "site_id": str(site_id),
        },
    )
    return attendance


def clock_out(
    db: Session,
    auth: AuthContext,
    *,
    attendance_id: uuid.UUID | None = None,
    location: GeoPoint | None = None,
    notes: str | None = None,
    now_utc: datetime | None = None,
) -> Attendance:
    stmt = select(Attendance).where(
        Attendance.company_id == auth.company_id,
        Attendance.user_id == auth.user_id,
    )
    if attendance_id is not None:
        stmt = stmt.where(Attendance.id == attendance_id)
    else:
        stmt = stmt.where(Attendance.clock_out_time.is_(None))

    attendance = db.scalar(stmt.with_for_update())
    if attendance is None:
        raise NotFound("Attendance record not found.", code="ATTENDANCE_NOT_FOUND")
    if attendance.clock_out_time is not None:
        raise InvalidState("This attendance has already been clocked out.", code="ALREADY_CLOCKED_OUT")

    clock_out_time = _normalize_ts(now_utc)
    worked = calculate_worked_hours(attendance.clock_in_time, clock_out_time)
    location = location or GeoPoint()

    attendance.clock_out_time = clock_out_time
    attendance.clock_out_latitude = location.latitude
    attendance.clock_out_longitude = location.longitude
    attendance.clock_out_address = location.address
    attendance.total_hours = Decimal(str(worked.worked_hours))
    clean_notes = (notes or "").strip()
    if clean_notes:
        attendance.notes = clean_notes
    db.commit()
    db.refresh(attendance)

    logger.info(
        "attendance_clock_out",
        extra={
            "attendance_id": str(attendance.id),
            "company_id": str(auth.company_id),
            "user_id": str(auth.user_id),
            "presence_hours": worked.presence_hours,
            "worked_hours": worked.worked_hours,
            "lunch_break_applied": worked.lunch_break_applied,
        },
    )
    return attendance


def _range_conditions(start_date: date | None, end_date: date | None) -> list:
    start_utc, end_utc = local_date_range_to_utc_bounds(start_date, end_date)
    conditions = []
    if start_utc is not None:
        conditions.append(Attendance.clock_in_time >= start_utc)
    if end_utc is not None:
        conditions.append(Attendance.clock_in_time < end_utc)
    return conditions


def list_my_attendances(
    db: Session,
    auth: AuthContext,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    site_id: uuid.UUID | None = None,
) -> list[Attendance]:
    stmt = (
        select(Attendance)
        .where(
            Attendance.company_id == auth.company_id,
            Attendance.user_id == auth.user_id,
            *_range_conditions(start_date, end_date),
        )
        .options(selectinload(Attendance.site))
        .order_by(Attendance.clock_in_time.desc())
    )
    if site_id is not None:
        stmt = stmt.where(Attendance.site_id == site_id)
    return list(db.scalars(stmt).all())


def get_active_attendance(db: Session, auth: AuthContext) -> Attendance | None:
    return _find_open_attendance(db, company_id=auth.company_id, user_id=auth.user_id)


def list_company_attendances(
    db: Session,
    auth: AuthContext,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    site_id: uuid.UUID | None = None,
    user_id: uuid.UUID | None = None,
    active_only: bool = False,
) -> list[Attendance]:
    auth.require_owner()

    stmt = (
        select(Attendance)
        .where(Attendance.company_id == auth.company_id, *_range_conditions(start_date, end_date))
        .options(selectinload(Attendance.site), selectinload(Attendance.user))
        .order_by(Attendance.clock_in_time.desc())
    )
    if site_id is not None:
        stmt = stmt.where(Attendance.site_id == site_id)
    if user_id is not None:
        stmt = stmt.where(Attendance.user_id == user_id)
    if active_only:
        stmt = stmt.where(Attendance.clock_out_time.is_(None))
    return list(db.scalars(stmt).all())


def recalculate_completed_attendances(
    db: Session,
    *,
    company_id: uuid.UUID | None = None,
    dry_run: bool = False,
) -> RecalculationReport:
    stmt = select(Attendance).where(Attendance.clock_out_time.is_not(None)).order_by(Attendance.clock_in_time.asc())
    if company_id is not None:
        stmt = stmt.where(Attendance.company_id == company_id)

    updated = unchanged = skipped = 0
    for attendance in db.scalars(stmt).all():
        worked = calculate_worked_hours(attendance.clock_in_time, attendance.clock_out_time)
        if worked.presence_hours <= 0:
            skipped += 1
            continue

        current = float(attendance.total_hours or 0)
        if abs(current - worked.worked_hours) <= RECALCULATION_TOLERANCE_HOURS:
            unchanged += 1
            continue

        logger.info(
            "attendance_hours_recalculated",
            extra={
                "attendance_id": str(attendance.id),
                "previous_hours": current,
                "worked_hours": worked.worked_hours,
                "lunch_break_applied": worked.lunch_break_applied,
                "dry_run": dry_run,
            },
        )
        if not dry_run:
            attendance.total_hours = Decimal(str(worked.worked_hours))
        updated += 1

    if dry_run:
        db.rollback()
    else:
        db.commit()

    return RecalculationReport(updated=updated, unchanged=unchanged, skipped=skipped)
