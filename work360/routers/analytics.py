import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from work360.db import get_db
from work360.schemas import (
    CompanyStatusRead,
    CostBreakdownRead,
    DashboardRead,
    EmployeeHoursRead,
    HomeInsightsRead,
    HoursBreakdownRead,
    MaterialLineRead,
    SiteCostRead,
    SiteMarginRead,
    SiteReportRead,
)
from work360.security import require_owner
from work360.services.analytics import (
    CompanyDashboard,
    EmployeeHours,
    MaterialLine,
    SiteCostSummary,
    company_dashboard,
    hours_per_employee,
    site_cost_summary,
    site_report,
)
from work360.services.tenancy import AuthContext, SiteValidationCache, get_site_validation_cache

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def _money(value: float | None) -> float | None:
    return None if value is None else round(value, 2)


def _percent(value: float | None) -> float | None:
    return None if value is None else round(value, 1)


def _hours(value: float) -> float:
    return round(value, 2)


def _site_cost_read(summary: SiteCostSummary) -> SiteCostRead:
    return SiteCostRead(
        site_id=summary.site_id,
        site_name=summary.site_name,
        status=summary.status,
        contract_value=_money(summary.contract_value),
        costs=CostBreakdownRead(
            labor=_money(summary.labor_cost),
            materials=_money(summary.materials_cost),
            equipment=_money(summary.equipment_cost),
            total=_money(summary.total_cost),
        ),
        hours=HoursBreakdownRead(
            completed=_hours(summary.completed_hours),
            live=_hours(summary.live_hours),
            total=_hours(summary.total_hours),
        ),
        labor_percent=_percent(summary.labor_percent),
        materials_percent=_percent(summary.materials_percent),
        active_workers=summary.active_workers,
        has_live_data=summary.has_live_data,
        is_active=summary.is_active,
        margin=SiteMarginRead(
            margin_value=_money(summary.margin.margin_value),
            margin_percent=_percent(summary.margin.margin_percent),
            cost_vs_revenue_percent=_percent(summary.margin.cost_vs_revenue_percent),
            status=summary.margin.status,
        ),
    )


def _employee_hours_read(row: EmployeeHours) -> EmployeeHoursRead:
    return EmployeeHoursRead(
        user_id=row.user_id,
        username=row.username,
        first_name=row.first_name,
        last_name=row.last_name,
        hourly_cost=_money(row.hourly_cost),
        completed_hours=_hours(row.completed_hours),
        live_hours=_hours(row.live_hours),
        total_hours=_hours(row.total_hours),
        days=row.days,
        labor_cost=_money(row.labor_cost),
    )


def _material_line_read(line: MaterialLine) -> MaterialLineRead:
    return MaterialLineRead(
        material_id=line.material_id,
        name=line.name,
        brand=line.brand,
        unit=line.unit,
        unit_price=_money(line.unit_price),
        quantity=line.quantity,
        usages=line.usages,
        cost=_money(line.cost),
    )


def _dashboard_read(dashboard: CompanyDashboard) -> DashboardRead:
    insights = dashboard.insights
    return DashboardRead(
        company_costs=CostBreakdownRead(
            labor=_money(dashboard.labor_cost),
            materials=_money(dashboard.materials_cost),
            equipment=_money(dashboard.equipment_cost),
            total=_money(dashboard.total_cost),
        ),
        labor_percent=_percent(dashboard.labor_percent),
        materials_percent=_percent(dashboard.materials_percent),
        total_contract_value=_money(dashboard.total_contract_value),
        total_margin_value=_money(dashboard.total_margin_value),
        margin_growth_percent=_percent(dashboard.margin_growth_percent),
        active_sites=dashboard.active_sites,
        total_sites=dashboard.total_sites,
        sites_with_margin=dashboard.sites_with_margin,
        total_employees=dashboard.total_employees,
        total_workers=dashboard.total_workers,
        monthly_hours=_hours(dashboard.monthly_hours),
        live_hours=_hours(dashboard.live_hours),
        active_workers=dashboard.active_workers,
        has_live_data=dashboard.has_live_data,
        insights=HomeInsightsRead(
            status=CompanyStatusRead(
                label=insights.status.label,
                level=insights.status.level,
                color=insights.status.color,
            ),
            growth_percent=_percent(insights.growth_percent),
            thresholds=insights.thresholds,
            texts=insights.insights,
        ),
        sites=[_site_cost_read(item) for item in dashboard.sites],
    )


@router.get("/dashboard", response_model=DashboardRead)
def dashboard(
    auth: AuthContext = Depends(require_owner),
    db: Session = Depends(get_db),
) -> DashboardRead:
    return _dashboard_read(company_dashboard(db, auth))


@router.get("/sites/{site_id}/costs", response_model=SiteCostRead)
def site_costs(
    site_id: uuid.UUID,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    auth: AuthContext = Depends(require_owner),
    db: Session = Depends(get_db),
) -> SiteCostRead:
    return _site_cost_read(site_cost_summary(db, auth, site_id, start_date=start_date, end_date=end_date))


@router.get("/sites/{site_id}/report", response_model=SiteReportRead)
def site_report_endpoint(
    site_id: uuid.UUID,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    auth: AuthContext = Depends(require_owner),
    db: Session = Depends(get_db),
) -> SiteReportRead:
    report = site_report(db, auth, site_id, start_date=start_date, end_date=end_date)
    return SiteReportRead(
        summary=_site_cost_read(report.summary),
        materials=[_material_line_read(line) for line in report.materials],
        employees=[_employee_hours_read(row) for row in report.employees],
    )


@router.get("/hours-per-employee", response_model=list[EmployeeHoursRead])
def hours_per_employee_endpoint(
    site_id: uuid.UUID | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    auth: AuthContext = Depends(require_owner),
    db: Session = Depends(get_db),
    cache: SiteValidationCache = Depends(get_site_validation_cache),
) -> list[EmployeeHoursRead]:
    rows = hours_per_employee(
        db,
        auth,
        site_id=site_id,
        start_date=start_date,
        end_date=end_date,
        cache=cache,
    )
    return [_employee_hours_read(row) for row in rows]
