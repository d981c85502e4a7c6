from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "companies": {"id", "name"},
    "users": {"id", "company_id", "role", "hourly_cost"},
    "construction_sites": {"id", "company_id", "status", "contract_value", "deleted_at"},
    "material_catalog_items": {"id", "company_id", "price"},
    "material_usages": {"id", "company_id", "site_id", "material_id", "package_count", "state", "used_at"},
    "attendances": {"id", "company_id", "user_id", "site_id", "clock_in_time", "clock_out_time", "total_hours", "hourly_cost"},
    "absence_requests": {"id", "employee_id", "company_id", "status", "revision_number", "version_id"},
    "absence_request_revisions": {"id", "absence_request_id", "revision_number", "changes"},
    "audit_logs": {"id", "company_id", "action"},
    "alembic_version": {"version_num"},
}

REQUIRED_UNIQUE_INDEXES: dict[str, set[str]] = {
    "attendances": {"uq_attendances_user_open"},
}

REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "absence_request_status": {"PENDING", "APPROVED", "REJECTED", "CANCELLED", "CHANGES_REQUESTED"},
    "material_usage_state": {"catalogato", "da_approvare", "rifiutato"},
    "user_role": {"worker", "owner"},
}


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except Exception as exc:
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    for table_name, required_indexes in REQUIRED_UNIQUE_INDEXES.items():
        try:
            indexes = inspector.get_indexes(table_name)
        except Exception as exc:
            issues.append(f"INDEXES_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        unique_names = {str(item.get("name")) for item in indexes if item.get("unique")}
        missing_indexes = sorted(item for item in required_indexes if item not in unique_names)
        if missing_indexes:
            issues.append(f"MISSING_UNIQUE_INDEXES:{table_name}:{','.join(missing_indexes)}")

    # Only PostgreSQL exposes named enum types.
    get_enums = getattr(inspector, "get_enums", None)
    enums: list[dict[str, Any]] = []
    if get_enums is None:
        warnings.append(f"ENUM_INSPECTION_UNSUPPORTED:{engine.dialect.name}")
    else:
        try:
            enums = get_enums() or []
        except Exception as exc:
            warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")

    enum_values_by_name: dict[str, set[str]] = {}
    for enum_item in enums:
        name = str(enum_item.get("name") or "").strip()
        if not name:
            continue
        labels = enum_item.get("labels")
        if isinstance(labels, list):
            enum_values_by_name[name] = {str(label) for label in labels}

    if enum_values_by_name:
        for enum_name, required_values in REQUIRED_ENUM_VALUES.items():
            if enum_name not in enum_values_by_name:
                warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
                continue
            missing_values = sorted(item for item in required_values if item not in enum_values_by_name[enum_name])
            if missing_values:
                issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing_values)}")

    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
            version = str(row).strip() if row is not None else ""
            if not version:
                issues.append("ALEMBIC_VERSION_EMPTY")
    except Exception as exc:
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
