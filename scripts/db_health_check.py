#!/usr/bin/env python
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, text

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from work360.settings import get_settings

EXPECTED_HEAD = "0002_absence_requests"

# check name -> query returning the ids of offending rows
ABSENCE_INVARIANT_QUERIES: dict[str, str] = {
    "absence_ferie_with_mode": """
        select id from absence_requests
        where type = 'FERIE' and (mode is not null or category is not null)
        limit 20
    """,
    "absence_permesso_without_mode": """
        select id from absence_requests
        where type = 'PERMESSO' and mode is null
        limit 20
    """,
    "absence_requested_changes_outside_state": """
        select id from absence_requests
        where requested_changes is not null and status <> 'CHANGES_REQUESTED'
        limit 20
    """,
    "absence_changes_requested_without_text": """
        select id from absence_requests
        where status = 'CHANGES_REQUESTED' and (requested_changes is null or requested_changes = '')
        limit 20
    """,
    "absence_is_104_mismatch": """
        select id from absence_requests
        where is_104 <> (coalesce(category::text, '') = 'LEGGE_104')
        limit 20
    """,
    "absence_revision_gap": """
        select r.id from absence_requests r
        where r.revision_number - 1 <> (
            select count(*) from absence_request_revisions v where v.absence_request_id = r.id
        )
        limit 20
    """,
}


def run() -> dict:
    database_url = get_settings().database_url
    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "database": engine.url.render_as_string(hide_password=True),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})

        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        if "attendances" in tables:
            duplicate_open_attendances = conn.execute(
                text(
                    """
                    select user_id, count(*)
                    from attendances
                    where clock_out_time is null
                    group by user_id
                    having count(*) > 1
                    """
                )
            ).fetchall()
            add(
                "duplicate_open_attendance",
                "fail" if duplicate_open_attendances else "ok",
                {"rows": [[str(row[0]), row[1]] for row in duplicate_open_attendances]},
            )

            cross_tenant_sites = conn.execute(
                text(
                    """
                    select a.id
                    from attendances a
                    join construction_sites s on s.id = a.site_id
                    where s.company_id <> a.company_id
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "attendance_cross_tenant_site",
                "fail" if cross_tenant_sites else "ok",
                {"sample_ids": [str(row[0]) for row in cross_tenant_sites]},
            )

        if "absence_requests" in tables:
            for name, query in ABSENCE_INVARIANT_QUERIES.items():
                rows = conn.execute(text(query)).fetchall()
                add(name, "fail" if rows else "ok", {"sample_ids": [str(row[0]) for row in rows]})

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
