from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from work360.db import Base

JSONVariant = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    WORKER = "worker"
    OWNER = "owner"


class SiteStatus(str, enum.Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    SUSPENDED = "suspended"


class MaterialUsageState(str, enum.Enum):
    CATALOGUED = "catalogato"
    PENDING_APPROVAL = "da_approvare"
    REJECTED = "rifiutato"


class AbsenceType(str, enum.Enum):
    FERIE = "FERIE"
    PERMESSO = "PERMESSO"


class AbsenceMode(str, enum.Enum):
    HOURS = "HOURS"
    DAY = "DAY"


class AbsenceStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"


class AbsenceCategory(str, enum.Enum):
    PERSONALE = "PERSONALE"
    MEDICO = "MEDICO"
    LEGGE_104 = "LEGGE_104"
    ALTRO = "ALTRO"


class DayPart(str, enum.Enum):
    FULL = "FULL"
    AM = "AM"
    PM = "PM"


class AuditActorType(str, enum.Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [str(member.value) for member in enum_cls]


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    users: Mapped[list[User]] = relationship(back_populates="company")
    sites: Mapped[list[ConstructionSite]] = relationship(back_populates="company")


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=_enum_values),
        nullable=False,
    )
    hourly_cost: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        server_default=text("0"),
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    company: Mapped[Company] = relationship(back_populates="users")
    attendances: Mapped[list[Attendance]] = relationship(back_populates="user")


class ConstructionSite(Base):
    __tablename__ = "construction_sites"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    address: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[SiteStatus] = mapped_column(
        Enum(SiteStatus, name="site_status", values_callable=_enum_values),
        nullable=False,
        default=SiteStatus.PLANNED,
        server_default=text("'planned'"),
    )
    contract_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    company: Mapped[Company] = relationship(back_populates="sites")
    attendances: Mapped[list[Attendance]] = relationship(back_populates="site")
    material_usages: Mapped[list[MaterialUsage]] = relationship(back_populates="site")


class MaterialCatalogItem(Base):
    __tablename__ = "material_catalog_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    brand: Mapped[str] = mapped_column(String(150), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="Altro", server_default=text("'Altro'"))
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))


class MaterialUsage(Base):
    __tablename__ = "material_usages"
    __table_args__ = (Index("ix_material_usages_site_used_at", "site_id", "used_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    site_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("construction_sites.id", ondelete="CASCADE"),
        nullable=False,
    )
    material_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("material_catalog_items.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    package_count: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[MaterialUsageState] = mapped_column(
        Enum(MaterialUsageState, name="material_usage_state", values_callable=_enum_values),
        nullable=False,
        default=MaterialUsageState.CATALOGUED,
        server_default=text("'catalogato'"),
    )
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    site: Mapped[ConstructionSite] = relationship(back_populates="material_usages")
    material: Mapped[MaterialCatalogItem | None] = relationship()


class Attendance(Base):
    __tablename__ = "attendances"
    __table_args__ = (
        Index(
            "uq_attendances_user_open",
            "user_id",
            unique=True,
            postgresql_where=text("clock_out_time IS NULL"),
            sqlite_where=text("clock_out_time IS NULL"),
        ),
        Index("ix_attendances_site_clock_in", "site_id", "clock_in_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    site_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("construction_sites.id", ondelete="CASCADE"),
        nullable=False,
    )
    clock_in_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    clock_in_latitude: Mapped[float | None] = mapped_column(Numeric(9, 6, asdecimal=False), nullable=True)
    clock_in_longitude: Mapped[float | None] = mapped_column(Numeric(9, 6, asdecimal=False), nullable=True)
    clock_in_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    clock_out_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    clock_out_latitude: Mapped[float | None] = mapped_column(Numeric(9, 6, asdecimal=False), nullable=True)
    clock_out_longitude: Mapped[float | None] = mapped_column(Numeric(9, 6, asdecimal=False), nullable=True)
    clock_out_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_hours: Mapped[Decimal] = mapped_column(
        Numeric(6, 2),
        nullable=False,
        default=Decimal("0"),
        server_default=text("0"),
    )
    hourly_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    user: Mapped[User] = relationship(back_populates="attendances")
    site: Mapped[ConstructionSite] = relationship(back_populates="attendances")

    @property
    def is_active(self) -> bool:
        return self.clock_out_time is None


class AbsenceRequest(Base):
    __tablename__ = "absence_requests"
    __table_args__ = (
        CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_absence_requests_date_order"),
        CheckConstraint(
            "(type = 'FERIE' AND mode IS NULL) OR (type = 'PERMESSO' AND mode IS NOT NULL)",
            name="ck_absence_requests_mode_by_type",
        ),
        CheckConstraint(
            "duration_minutes IS NULL OR duration_minutes > 0",
            name="ck_absence_requests_duration_positive",
        ),
        Index("ix_absence_requests_employee_status", "employee_id", "status"),
        Index("ix_absence_requests_company_status", "company_id", "status"),
        Index("ix_absence_requests_start_date", "start_date"),
        Index("ix_absence_requests_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    company_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[AbsenceType] = mapped_column(Enum(AbsenceType, name="absence_request_type"), nullable=False)
    mode: Mapped[AbsenceMode | None] = mapped_column(
        Enum(AbsenceMode, name="absence_request_mode"),
        nullable=True,
    )
    status: Mapped[AbsenceStatus] = mapped_column(
        Enum(AbsenceStatus, name="absence_request_status"),
        nullable=False,
        default=AbsenceStatus.PENDING,
        server_default=text("'PENDING'"),
    )
    category: Mapped[AbsenceCategory | None] = mapped_column(
        Enum(AbsenceCategory, name="absence_request_category"),
        nullable=True,
    )
    is_104: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    day_part: Mapped[DayPart | None] = mapped_column(Enum(DayPart, name="absence_day_part"), nullable=True)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachment_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    decision_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    decision_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decision_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_changes: Mapped[str | None] = mapped_column(Text, nullable=True)
    revision_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default=text("1"))
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )

    employee: Mapped[User] = relationship(foreign_keys=[employee_id])
    decider: Mapped[User | None] = relationship(foreign_keys=[decision_by])
    revisions: Mapped[list[AbsenceRequestRevision]] = relationship(
        back_populates="absence_request",
        cascade="all, delete-orphan",
        order_by="AbsenceRequestRevision.revision_number",
    )

    __mapper_args__ = {"version_id_col": version_id}


class AbsenceRequestRevision(Base):
    __tablename__ = "absence_request_revisions"
    __table_args__ = (
        UniqueConstraint(
            "absence_request_id",
            "revision_number",
            name="uq_absence_request_revisions_request_number",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    absence_request_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("absence_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    revision_number: Mapped[int] = mapped_column(Integer, nullable=False)
    changed_by: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    changes: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    absence_request: Mapped[AbsenceRequest] = relationship(back_populates="revisions")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    company_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSONVariant, nullable=False, default=dict)
