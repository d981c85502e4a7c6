from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session, selectinload

from work360.models import (
    Attendance,
    ConstructionSite,
    MaterialCatalogItem,
    MaterialUsage,
    MaterialUsageState,
    SiteStatus,
    User,
    UserRole,
)
from work360.services.local_time import current_month_utc_bounds, local_date_range_to_utc_bounds
from work360.services.margin import (
    HomeInsights,
    SiteMargin,
    generate_home_insights,
    get_site_margin_info,
    incidence_percent,
)
from work360.services.tenancy import AuthContext, SiteValidationCache, ensure_site_in_company, get_company_site
from work360.services.worked_hours import live_hours

logger = logging.getLogger("work360.analytics")

# No equipment costing yet; kept in every total so the shape stays stable.
EQUIPMENT_COST = 0.0
DEFAULT_MATERIAL_UNIT = "pz"
OPEN_SITE_STATUSES = (SiteStatus.PLANNED, SiteStatus.ACTIVE)


@dataclass(slots=True)
class LaborTotals:
    cost: float = 0.0
    completed_hours: float = 0.0
    live_hours: float = 0.0
    active_user_ids: set[uuid.UUID] = field(default_factory=set)

    @property
    def active_workers(self) -> int:
        return len(self.active_user_ids)

    @property
    def has_live_data(self) -> bool:
        return bool(self.active_user_ids)


@dataclass(frozen=True, slots=True)
class SiteCostSummary:
    site_id: uuid.UUID
    site_name: str
    status: SiteStatus
    contract_value: float | None
    labor_cost: float
    materials_cost: float
    equipment_cost: float
    completed_hours: float
    live_hours: float
    active_workers: int
    has_live_data: bool
    margin: SiteMargin

    @property
    def total_cost(self) -> float:
        return self.labor_cost + self.materials_cost + self.equipment_cost

    @property
    def total_hours(self) -> float:
        return self.completed_hours + self.live_hours

    @property
    def is_active(self) -> bool:
        return self.has_live_data

    @property
    def labor_percent(self) -> float:
        return incidence_percent(self.labor_cost, self.total_cost)

    @property
    def materials_percent(self) -> float:
        return incidence_percent(self.materials_cost, self.total_cost)


@dataclass(slots=True)
class EmployeeHours:
    user_id: uuid.UUID
    username: str
    first_name: str | None
    last_name: str | None
    hourly_cost: float
    completed_hours: float = 0.0
    live_hours: float = 0.0
    days: int = 0
    labor_cost: float = 0.0

    @property
    def total_hours(self) -> float:
        return self.completed_hours + self.live_hours


@dataclass(slots=True)
class MaterialLine:
    material_id: uuid.UUID
    name: str
    brand: str | None
    unit: str
    unit_price: float | None
    quantity: int = 0
    usages: int = 0
    cost: float = 0.0


@dataclass(frozen=True, slots=True)
class SiteReport:
    summary: SiteCostSummary
    materials: list[MaterialLine]
    employees: list[EmployeeHours]


@dataclass(frozen=True, slots=True)
class CompanyDashboard:
    labor_cost: float
    materials_cost: float
    equipment_cost: float
    total_contract_value: float
    total_margin_value: float
    margin_growth_percent: float | None
    active_sites: int
    total_sites: int
    sites_with_margin: int
    total_employees: int
    total_workers: int
    monthly_hours: float
    live_hours: float
    active_workers: int
    sites: list[SiteCostSummary]
    insights: HomeInsights

    @property
    def total_cost(self) -> float:
        return self.labor_cost + self.materials_cost + self.equipment_cost

    @property
    def labor_percent(self) -> float:
        return incidence_percent(self.labor_cost, self.total_cost)

    @property
    def materials_percent(self) -> float:
        return incidence_percent(self.materials_cost, self.total_cost)

    @property
    def has_live_data(self) -> bool:
        return self.active_workers > 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def effective_hourly_cost(attendance: Attendance) -> float:
    snapshot = float(attendance.hourly_cost or 0)
    if snapshot > 0:
        return snapshot
    user_cost = float(attendance.user.hourly_cost or 0) if attendance.user is not None else 0.0
    return user_cost if user_cost > 0 else 0.0


def _load_attendances(
    db: Session,
    *,
    company_id: uuid.UUID,
    site_ids: list[uuid.UUID] | None,
    start_date: date | None,
    end_date: date | None,
    user_id: uuid.UUID | None = None,
) -> list[Attendance]:
    start_utc, end_utc = local_date_range_to_utc_bounds(start_date, end_date)
    stmt = (
        select(Attendance)
        .where(Attendance.company_id == company_id)
        .options(selectinload(Attendance.user))
    )
    if site_ids is not None:
        stmt = stmt.where(Attendance.site_id.in_(site_ids))
    if user_id is not None:
        stmt = stmt.where(Attendance.user_id == user_id)
    if start_utc is not None:
        stmt = stmt.where(Attendance.clock_in_time >= start_utc)
    if end_utc is not None:
        stmt = stmt.where(Attendance.clock_in_time < end_utc)
    return list(db.scalars(stmt).all())


def _labor_by_site(attendances: list[Attendance], now_utc: datetime) -> dict[uuid.UUID, LaborTotals]:
    totals: dict[uuid.UUID, LaborTotals] = defaultdict(LaborTotals)
    for attendance in attendances:
        site_totals = totals[attendance.site_id]
        rate = effective_hourly_cost(attendance)
        if attendance.clock_out_time is None:
            hours = live_hours(attendance.clock_in_time, now_utc)
            site_totals.live_hours += hours
            site_totals.active_user_ids.add(attendance.user_id)
        else:
            hours = float(attendance.total_hours or 0)
            site_totals.completed_hours += hours
        site_totals.cost += hours * rate
    return totals


def _material_rows(
    db: Session,
    *,
    company_id: uuid.UUID,
    site_ids: list[uuid.UUID],
    start_date: date | None,
    end_date: date | None,
):
    start_utc, end_utc = local_date_range_to_utc_bounds(start_date, end_date)
    stmt = (
        select(MaterialUsage, MaterialCatalogItem)
        .outerjoin(
            MaterialCatalogItem,
            and_(
                MaterialUsage.material_id == MaterialCatalogItem.id,
                MaterialCatalogItem.company_id == MaterialUsage.company_id,
            ),
        )
        .where(
            MaterialUsage.company_id == company_id,
            MaterialUsage.site_id.in_(site_ids),
            MaterialUsage.state == MaterialUsageState.CATALOGUED,
        )
    )
    if start_utc is not None:
        stmt = stmt.where(MaterialUsage.used_at >= start_utc)
    if end_utc is not None:
        stmt = stmt.where(MaterialUsage.used_at < end_utc)
    return db.execute(stmt).all()


def _material_cost(usage: MaterialUsage, item: MaterialCatalogItem | None) -> float:
    if item is None or item.price is None:
        return 0.0
    return float(usage.package_count or 0) * float(item.price)


def _summaries_for_sites(
    db: Session,
    *,
    company_id: uuid.UUID,
    sites: list[ConstructionSite],
    start_date: date | None,
    end_date: date | None,
    now_utc: datetime,
) -> list[SiteCostSummary]:
    if not sites:
        return []

    site_ids = [site.id for site in sites]
    labor = _labor_by_site(
        _load_attendances(db, company_id=company_id, site_ids=site_ids, start_date=start_date, end_date=end_date),
        now_utc,
    )
    materials: dict[uuid.UUID, float] = defaultdict(float)
    for usage, item in _material_rows(
        db, company_id=company_id, site_ids=site_ids, start_date=start_date, end_date=end_date
    ):
        materials[usage.site_id] += _material_cost(usage, item)

    summaries: list[SiteCostSummary] = []
    for site in sites:
        site_labor = labor.get(site.id) or LaborTotals()
        contract_value = float(site.contract_value) if site.contract_value is not None else None
        total_cost = site_labor.cost + materials[site.id] + EQUIPMENT_COST
        summaries.append(
            SiteCostSummary(
                site_id=site.id,
                site_name=site.name,
                status=site.status,
                contract_value=contract_value,
                labor_cost=site_labor.cost,
                materials_cost=materials[site.id],
                equipment_cost=EQUIPMENT_COST,
                completed_hours=site_labor.completed_hours,
                live_hours=site_labor.live_hours,
                active_workers=site_labor.active_workers,
                has_live_data=site_labor.has_live_data,
                margin=get_site_margin_info(contract_value, total_cost),
            )
        )
    return summaries


def site_cost_summary(
    db: Session,
    auth: AuthContext,
    site_id: uuid.UUID,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    now_utc: datetime | None = None,
) -> SiteCostSummary:
    auth.require_owner()
    site = get_company_site(db, company_id=auth.company_id, site_id=site_id)
    summaries = _summaries_for_sites(
        db,
        company_id=auth.company_id,
        sites=[site],
        start_date=start_date,
        end_date=end_date,
        now_utc=now_utc or _utcnow(),
    )
    return summaries[0]


def _monthly_completed_hours(db: Session, *, company_id: uuid.UUID, now_utc: datetime) -> float:
    month_start, month_end = current_month_utc_bounds(now_utc)
    total = db.scalar(
        select(func.coalesce(func.sum(Attendance.total_hours), 0)).where(
            Attendance.company_id == company_id,
            Attendance.clock_out_time.is_not(None),
            Attendance.clock_in_time >= month_start,
            Attendance.clock_in_time < month_end,
        )
    )
    return float(total or 0)


def company_dashboard(db: Session, auth: AuthContext, *, now_utc: datetime | None = None) -> CompanyDashboard:
    auth.require_owner()
    now_utc = now_utc or _utcnow()

    sites = list(
        db.scalars(
            select(ConstructionSite)
            .where(ConstructionSite.company_id == auth.company_id, ConstructionSite.deleted_at.is_(None))
            .order_by(ConstructionSite.name.asc())
        ).all()
    )
    summaries = _summaries_for_sites(
        db,
        company_id=auth.company_id,
        sites=sites,
        start_date=None,
        end_date=None,
        now_utc=now_utc,
    )

    with_contract = [item for item in summaries if item.margin.margin_value is not None]
    total_contract_value = sum(item.contract_value or 0.0 for item in with_contract)
    total_margin_value = sum(item.margin.margin_value or 0.0 for item in with_contract)
    margin_growth_percent = total_margin_value / total_contract_value * 100 if total_contract_value > 0 else None

    users = list(
        db.scalars(select(User).where(User.company_id == auth.company_id, User.active.is_(True))).all()
    )
    total_workers = sum(1 for user in users if user.role == UserRole.WORKER)
    active_sites = sum(1 for site in sites if site.status in OPEN_SITE_STATUSES)

    labor_cost = sum(item.labor_cost for item in summaries)
    materials_cost = sum(item.materials_cost for item in summaries)
    total_cost = labor_cost + materials_cost + EQUIPMENT_COST
    monthly_hours = _monthly_completed_hours(db, company_id=auth.company_id, now_utc=now_utc)
    active_workers = len(
        {
            user_id
            for user_id in db.scalars(
                select(Attendance.user_id).where(
                    Attendance.company_id == auth.company_id,
                    Attendance.clock_out_time.is_(None),
                )
            ).all()
        }
    )

    insights = generate_home_insights(
        margin_growth_percent=margin_growth_percent,
        margin_percent=margin_growth_percent,
        labor_percent=incidence_percent(labor_cost, total_cost),
        materials_percent=incidence_percent(materials_cost, total_cost),
        monthly_hours=monthly_hours,
        total_workers=total_workers,
        active_sites=active_sites,
        total_sites=len(sites),
        sites_with_margin=len(with_contract),
    )

    logger.info(
        "company_dashboard_computed",
        extra={
            "company_id": str(auth.company_id),
            "sites": len(sites),
            "status_level": insights.status.level.value,
        },
    )
    return CompanyDashboard(
        labor_cost=labor_cost,
        materials_cost=materials_cost,
        equipment_cost=EQUIPMENT_COST,
        total_contract_value=total_contract_value,
        total_margin_value=total_margin_value,
        margin_growth_percent=margin_growth_percent,
        active_sites=active_sites,
        total_sites=len(sites),
        sites_with_margin=len(with_contract),
        total_employees=len(users),
        total_workers=total_workers,
        monthly_hours=monthly_hours,
        live_hours=sum(item.live_hours for item in summaries),
        active_workers=active_workers,
        sites=summaries,
        insights=insights,
    )


def hours_per_employee(
    db: Session,
    auth: AuthContext,
    *,
    site_id: uuid.UUID | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    now_utc: datetime | None = None,
    cache: SiteValidationCache | None = None,
) -> list[EmployeeHours]:
    auth.require_owner()
    if site_id is not None:
        ensure_site_in_company(db, company_id=auth.company_id, site_id=site_id, cache=cache)
    return _hours_per_employee(
        _load_attendances(
            db,
            company_id=auth.company_id,
            site_ids=[site_id] if site_id is not None else None,
            start_date=start_date,
            end_date=end_date,
        ),
        now_utc or _utcnow(),
    )


def _hours_per_employee(attendances: list[Attendance], now_utc: datetime) -> list[EmployeeHours]:
    rows: dict[uuid.UUID, EmployeeHours] = {}
    for attendance in attendances:
        user = attendance.user
        row = rows.get(attendance.user_id)
        if row is None:
            row = EmployeeHours(
                user_id=attendance.user_id,
                username=user.username if user is not None else "",
                first_name=user.first_name if user is not None else None,
                last_name=user.last_name if user is not None else None,
                hourly_cost=float(user.hourly_cost or 0) if user is not None else 0.0,
            )
            rows[attendance.user_id] = row

        if attendance.clock_out_time is None:
            hours = live_hours(attendance.clock_in_time, now_utc)
            row.live_hours += hours
        else:
            hours = float(attendance.total_hours or 0)
            row.completed_hours += hours
        row.days += 1
        row.labor_cost += hours * effective_hourly_cost(attendance)

    return sorted(rows.values(), key=lambda item: item.total_hours, reverse=True)


def site_report(
    db: Session,
    auth: AuthContext,
    site_id: uuid.UUID,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    now_utc: datetime | None = None,
) -> SiteReport:
    auth.require_owner()
    now_utc = now_utc or _utcnow()
    summary = site_cost_summary(db, auth, site_id, start_date=start_date, end_date=end_date, now_utc=now_utc)

    lines: dict[uuid.UUID, MaterialLine] = {}
    for usage, item in _material_rows(
        db, company_id=auth.company_id, site_ids=[site_id], start_date=start_date, end_date=end_date
    ):
        if item is None:
            continue
        line = lines.get(item.id)
        if line is None:
            line = MaterialLine(
                material_id=item.id,
                name=item.name,
                brand=item.brand,
                unit=item.unit or DEFAULT_MATERIAL_UNIT,
                unit_price=float(item.price) if item.price is not None else None,
            )
            lines[item.id] = line
        line.quantity += int(usage.package_count or 0)
        line.usages += 1
        line.cost += _material_cost(usage, item)

    employees = _hours_per_employee(
        _load_attendances(
            db,
            company_id=auth.company_id,
            site_ids=[site_id],
            start_date=start_date,
            end_date=end_date,
        ),
        now_utc,
    )
    materials = sorted(lines.values(), key=lambda line: (-line.cost, line.name))
    return SiteReport(summary=summary, materials=materials, employees=employees)
