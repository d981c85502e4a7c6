import uuid
from datetime import date, datetime, time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from work360.models import (
    AbsenceCategory,
    AbsenceMode,
    AbsenceStatus,
    AbsenceType,
    DayPart,
    SiteStatus,
)
from work360.services.margin import CompanyStatusLevel, MarginStatus


class AbsenceRequestCreate(BaseModel):
    # type and start_date are checked with the other field rules so every
    # violation comes back in a single response
    type: AbsenceType | None = None
    mode: AbsenceMode | None = None
    category: AbsenceCategory | None = None
    start_date: date | None = None
    end_date: date | None = None
    day_part: DayPart | None = None
    start_time: time | None = None
    end_time: time | None = None
    notes: str | None = None
    attachment_url: str | None = Field(default=None, max_length=500)


class AbsenceRequestResubmit(AbsenceRequestCreate):
    pass


class AbsenceApproveRequest(BaseModel):
    note: str | None = Field(default=None, max_length=1000)


class AbsenceRejectRequest(BaseModel):
    note: str | None = Field(default=None, max_length=1000)


class AbsenceChangesRequest(BaseModel):
    requested_changes: str | None = Field(default=None, max_length=1000)


class AbsenceRevisionRead(BaseModel):
    id: uuid.UUID
    revision_number: int
    changed_by: uuid.UUID
    changes: dict[str, Any]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AbsenceRequestRead(BaseModel):
    id: uuid.UUID
    employee_id: uuid.UUID
    company_id: uuid.UUID
    type: AbsenceType
    mode: AbsenceMode | None
    status: AbsenceStatus
    category: AbsenceCategory | None
    is_104: bool
    start_date: date
    end_date: date | None
    day_part: DayPart | None
    start_time: time | None
    end_time: time | None
    duration_minutes: int | None
    notes: str | None
    attachment_url: str | None
    decision_by: uuid.UUID | None
    decision_at: datetime | None
    decision_note: str | None
    requested_changes: str | None
    revision_number: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AbsenceRequestDetailRead(AbsenceRequestRead):
    revisions: list[AbsenceRevisionRead] = Field(default_factory=list)


class AbsenceOverlapRead(BaseModel):
    id: uuid.UUID
    type: AbsenceType
    start_date: date
    end_date: date | None
    day_part: DayPart | None

    model_config = ConfigDict(from_attributes=True)


class AbsenceMutationResponse(BaseModel):
    request: AbsenceRequestRead
    overlaps: list[AbsenceOverlapRead] = Field(default_factory=list)
    has_overlaps: bool = False


class PaginationRead(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class AbsenceRequestPage(BaseModel):
    items: list[AbsenceRequestRead]
    pagination: PaginationRead


class GeoPointIn(BaseModel):
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    address: str | None = Field(default=None, max_length=255)


class ClockInRequest(BaseModel):
    site_id: uuid.UUID
    location: GeoPointIn | None = None
    notes: str | None = Field(default=None, max_length=1000)


class ClockOutRequest(BaseModel):
    attendance_id: uuid.UUID | None = None
    location: GeoPointIn | None = None
    notes: str | None = Field(default=None, max_length=1000)


class SiteBriefRead(BaseModel):
    id: uuid.UUID
    name: str
    address: str | None

    model_config = ConfigDict(from_attributes=True)


class UserBriefRead(BaseModel):
    id: uuid.UUID
    username: str
    first_name: str | None
    last_name: str | None

    model_config = ConfigDict(from_attributes=True)


class AttendanceRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    site_id: uuid.UUID
    clock_in_time: datetime
    clock_in_latitude: float | None
    clock_in_longitude: float | None
    clock_in_address: str | None
    clock_out_time: datetime | None
    clock_out_latitude: float | None
    clock_out_longitude: float | None
    clock_out_address: str | None
    total_hours: float
    hourly_cost: float | None
    notes: str | None
    is_active: bool
    site: SiteBriefRead | None = None

    model_config = ConfigDict(from_attributes=True)


class AttendanceWithUserRead(AttendanceRead):
    user: UserBriefRead | None = None


class CostBreakdownRead(BaseModel):
    labor: float
    materials: float
    equipment: float
    total: float


class HoursBreakdownRead(BaseModel):
    completed: float
    live: float
    total: float


class SiteMarginRead(BaseModel):
    margin_value: float | None
    margin_percent: float | None
    cost_vs_revenue_percent: float | None
    status: MarginStatus


class SiteCostRead(BaseModel):
    site_id: uuid.UUID
    site_name: str
    status: SiteStatus
    contract_value: float | None
    costs: CostBreakdownRead
    hours: HoursBreakdownRead
    labor_percent: float
    materials_percent: float
    active_workers: int
    has_live_data: bool
    is_active: bool
    margin: SiteMarginRead


class CompanyStatusRead(BaseModel):
    label: str
    level: CompanyStatusLevel
    color: str


class HomeInsightsRead(BaseModel):
    status: CompanyStatusRead
    growth_percent: float
    thresholds: dict[str, float]
    texts: dict[str, str]


class DashboardRead(BaseModel):
    company_costs: CostBreakdownRead
    labor_percent: float
    materials_percent: float
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
    has_live_data: bool
    insights: HomeInsightsRead
    sites: list[SiteCostRead]


class EmployeeHoursRead(BaseModel):
    user_id: uuid.UUID
    username: str
    first_name: str | None
    last_name: str | None
    hourly_cost: float
    completed_hours: float
    live_hours: float
    total_hours: float
    days: int
    labor_cost: float


class MaterialLineRead(BaseModel):
    material_id: uuid.UUID
    name: str
    brand: str | None
    unit: str
    unit_price: float | None
    quantity: int
    usages: int
    cost: float


class SiteReportRead(BaseModel):
    summary: SiteCostRead
    materials: list[MaterialLineRead]
    employees: list[EmployeeHoursRead]
