from __future__ import annotations

import unittest
import uuid
from datetime import date

from db_support import (
    add_attendance,
    add_catalog_item,
    add_company,
    add_material_usage,
    add_site,
    add_user,
    auth_for,
    create_sqlite_engine,
    make_session_factory,
    utc,
)
from work360.errors import Forbidden, NotFound
from work360.models import MaterialUsageState, SiteStatus, UserRole
from work360.services.analytics import (
    company_dashboard,
    effective_hourly_cost,
    hours_per_employee,
    site_cost_summary,
    site_report,
)
from work360.services.margin import CompanyStatusLevel, MarginStatus

NOW = utc(2026, 10, 15, 12, 0)


class AnalyticsTestCase(unittest.TestCase):
    """Seeds one company with three sites.

    Alfa (active, contract 10000): mario 8h at 20/h, anna 4h completed plus an
    open shift since 07:00 at 25/h, cement 14 bags at 8.50, unpriced sand.
    Beta (planned): no contract, no activity.
    Gamma (completed, contract 5000): mario 5h in September, cement 20 bags.
    """

    def setUp(self) -> None:
        self.engine = create_sqlite_engine()
        self.db = make_session_factory(self.engine)()
        self.company = add_company(self.db)
        other_company = add_company(self.db, "Costruzioni Bianchi")

        self.owner = add_user(self.db, self.company, role=UserRole.OWNER, username="titolare", hourly_cost="0")
        self.mario = add_user(self.db, self.company, username="mario", first_name="Mario", hourly_cost="20.00")
        self.anna = add_user(self.db, self.company, username="anna", first_name="Anna", hourly_cost="25.00")
        add_user(self.db, self.company, username="ex-dipendente", active=False)
        self.owner_auth = auth_for(self.owner)
        self.worker_auth = auth_for(self.mario)

        self.alfa = add_site(self.db, self.company, name="Alfa", contract_value="10000.00")
        self.beta = add_site(self.db, self.company, name="Beta", status=SiteStatus.PLANNED)
        self.gamma = add_site(self.db, self.company, name="Gamma", status=SiteStatus.COMPLETED, contract_value="5000")
        self.foreign_site = add_site(self.db, other_company, name="Bianchi")

        add_attendance(
            self.db,
            self.mario,
            self.alfa,
            clock_in_time=utc(2026, 10, 1, 6, 0),
            clock_out_time=utc(2026, 10, 1, 15, 0),
            total_hours="8.00",
            hourly_cost="20.00",
        )
        # no snapshot: falls back to the user's current rate
        add_attendance(
            self.db,
            self.anna,
            self.alfa,
            clock_in_time=utc(2026, 10, 2, 6, 0),
            clock_out_time=utc(2026, 10, 2, 10, 0),
            total_hours="4.00",
        )
        add_attendance(self.db, self.anna, self.alfa, clock_in_time=utc(2026, 10, 15, 7, 0), hourly_cost="25.00")
        add_attendance(
            self.db,
            self.mario,
            self.gamma,
            clock_in_time=utc(2026, 9, 10, 6, 0),
            clock_out_time=utc(2026, 9, 10, 11, 0),
            total_hours="5.00",
            hourly_cost="20.00",
        )

        cement = add_catalog_item(self.db, self.company, name="Cemento 325", price="8.50")
        sand = add_catalog_item(self.db, self.company, name="Sabbia", price=None, unit=None)
        foreign_item = add_catalog_item(self.db, other_company, name="Listino Bianchi", price="100.00")
        add_material_usage(self.db, self.mario, self.alfa, material=cement, package_count=10)
        add_material_usage(self.db, self.anna, self.alfa, material=cement, package_count=4)
        add_material_usage(self.db, self.anna, self.alfa, material=sand, package_count=3)
        add_material_usage(self.db, self.anna, self.alfa, material=None, package_count=2)
        add_material_usage(self.db, self.anna, self.alfa, material=foreign_item, package_count=1)
        add_material_usage(
            self.db,
            self.anna,
            self.alfa,
            material=cement,
            package_count=100,
            state=MaterialUsageState.PENDING_APPROVAL,
        )
        add_material_usage(
            self.db,
            self.mario,
            self.gamma,
            material=cement,
            package_count=20,
            used_at=utc(2026, 9, 10, 9, 0),
        )

        self.alfa_labor = 8 * 20 + 4 * 25 + 5 * 25
        self.alfa_materials = 14 * 8.5
        self.gamma_labor = 5 * 20
        self.gamma_materials = 20 * 8.5

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()


class SiteCostTests(AnalyticsTestCase):
    def test_site_costs_include_live_labor(self) -> None:
        summary = site_cost_summary(self.db, self.owner_auth, self.alfa.id, now_utc=NOW)

        self.assertAlmostEqual(summary.labor_cost, self.alfa_labor)
        self.assertAlmostEqual(summary.materials_cost, self.alfa_materials)
        self.assertEqual(summary.equipment_cost, 0.0)
        self.assertAlmostEqual(summary.completed_hours, 12.0)
        self.assertAlmostEqual(summary.live_hours, 5.0)
        self.assertAlmostEqual(summary.total_hours, 17.0)
        self.assertEqual(summary.active_workers, 1)
        self.assertTrue(summary.has_live_data)
        self.assertTrue(summary.is_active)

        total_cost = self.alfa_labor + self.alfa_materials
        self.assertAlmostEqual(summary.total_cost, total_cost)
        self.assertAlmostEqual(summary.margin.margin_value or 0.0, 10000 - total_cost)
        self.assertAlmostEqual(summary.margin.margin_percent or 0.0, (10000 - total_cost) / 100)
        self.assertEqual(summary.margin.status, MarginStatus.HIGH)
        self.assertAlmostEqual(summary.labor_percent, self.alfa_labor / total_cost * 100)

    def test_site_without_contract_has_unknown_margin(self) -> None:
        summary = site_cost_summary(self.db, self.owner_auth, self.beta.id, now_utc=NOW)

        self.assertEqual(summary.total_cost, 0.0)
        self.assertEqual(summary.labor_percent, 0.0)
        self.assertEqual(summary.margin.status, MarginStatus.UNKNOWN)
        self.assertIsNone(summary.margin.margin_value)
        self.assertFalse(summary.has_live_data)

    def test_date_range_limits_labor_and_materials(self) -> None:
        summary = site_cost_summary(
            self.db,
            self.owner_auth,
            self.alfa.id,
            start_date=date(2026, 10, 2),
            end_date=date(2026, 10, 2),
            now_utc=NOW,
        )

        self.assertAlmostEqual(summary.labor_cost, 100.0)
        self.assertEqual(summary.materials_cost, 0.0)
        self.assertEqual(summary.live_hours, 0.0)

    def test_site_costs_are_owner_only_and_tenant_scoped(self) -> None:
        with self.assertRaises(Forbidden):
            site_cost_summary(self.db, self.worker_auth, self.alfa.id, now_utc=NOW)
        with self.assertRaises(NotFound):
            site_cost_summary(self.db, self.owner_auth, self.foreign_site.id, now_utc=NOW)


class EffectiveHourlyCostTests(AnalyticsTestCase):
    def test_snapshot_wins_over_user_rate(self) -> None:
        attendance = add_attendance(
            self.db,
            self.mario,
            self.beta,
            clock_in_time=utc(2026, 10, 3, 6, 0),
            clock_out_time=utc(2026, 10, 3, 7, 0),
            total_hours="1.00",
            hourly_cost="31.00",
        )
        self.assertEqual(effective_hourly_cost(attendance), 31.0)

    def test_zero_snapshot_falls_back_to_user_rate(self) -> None:
        attendance = add_attendance(
            self.db,
            self.mario,
            self.beta,
            clock_in_time=utc(2026, 10, 3, 6, 0),
            clock_out_time=utc(2026, 10, 3, 7, 0),
            total_hours="1.00",
            hourly_cost="0",
        )
        self.assertEqual(effective_hourly_cost(attendance), 20.0)

    def test_no_rate_at_all_costs_nothing(self) -> None:
        attendance = add_attendance(
            self.db,
            self.owner,
            self.beta,
            clock_in_time=utc(2026, 10, 3, 6, 0),
            clock_out_time=utc(2026, 10, 3, 7, 0),
            total_hours="1.00",
        )
        self.assertEqual(effective_hourly_cost(attendance), 0.0)


class DashboardTests(AnalyticsTestCase):
    def test_dashboard_totals(self) -> None:
        dashboard = company_dashboard(self.db, self.owner_auth, now_utc=NOW)

        self.assertEqual([item.site_name for item in dashboard.sites], ["Alfa", "Beta", "Gamma"])
        self.assertAlmostEqual(dashboard.labor_cost, self.alfa_labor + self.gamma_labor)
        self.assertAlmostEqual(dashboard.materials_cost, self.alfa_materials + self.gamma_materials)
        self.assertEqual(dashboard.total_sites, 3)
        self.assertEqual(dashboard.active_sites, 2)
        self.assertEqual(dashboard.sites_with_margin, 2)
        self.assertEqual(dashboard.total_employees, 3)
        self.assertEqual(dashboard.total_workers, 2)
        self.assertEqual(dashboard.active_workers, 1)
        self.assertTrue(dashboard.has_live_data)
        self.assertAlmostEqual(dashboard.monthly_hours, 12.0)
        self.assertAlmostEqual(dashboard.live_hours, 5.0)

    def test_dashboard_margin_growth_and_status(self) -> None:
        dashboard = company_dashboard(self.db, self.owner_auth, now_utc=NOW)

        total_cost = self.alfa_labor + self.alfa_materials + self.gamma_labor + self.gamma_materials
        expected_growth = (15000 - total_cost) / 15000 * 100
        self.assertAlmostEqual(dashboard.total_contract_value, 15000.0)
        self.assertAlmostEqual(dashboard.total_margin_value, 15000 - total_cost)
        self.assertAlmostEqual(dashboard.margin_growth_percent or 0.0, expected_growth)
        self.assertEqual(dashboard.insights.status.level, CompanyStatusLevel.EXCELLENT)
        self.assertAlmostEqual(dashboard.insights.growth_percent, expected_growth)
        self.assertIn("Ottimo equilibrio", dashboard.insights.insights["margin"])
        self.assertIn("2 cantieri attivi su 3 totali", dashboard.insights.insights["sites"])

    def test_dashboard_for_empty_company(self) -> None:
        empty = add_company(self.db, "Nuova Srl")
        owner = add_user(self.db, empty, role=UserRole.OWNER, username="nuovo-titolare")

        dashboard = company_dashboard(self.db, auth_for(owner), now_utc=NOW)

        self.assertEqual(dashboard.sites, [])
        self.assertEqual(dashboard.total_cost, 0.0)
        self.assertIsNone(dashboard.margin_growth_percent)
        self.assertEqual(dashboard.insights.status.level, CompanyStatusLevel.CRITICAL)
        self.assertFalse(dashboard.has_live_data)

    def test_dashboard_is_owner_only(self) -> None:
        with self.assertRaises(Forbidden):
            company_dashboard(self.db, self.worker_auth, now_utc=NOW)


class HoursPerEmployeeTests(AnalyticsTestCase):
    def test_hours_sorted_by_total(self) -> None:
        rows = hours_per_employee(self.db, self.owner_auth, now_utc=NOW)

        self.assertEqual([row.username for row in rows], ["mario", "anna"])
        mario, anna = rows
        self.assertAlmostEqual(mario.completed_hours, 13.0)
        self.assertEqual(mario.days, 2)
        self.assertAlmostEqual(mario.labor_cost, 260.0)
        self.assertAlmostEqual(anna.completed_hours, 4.0)
        self.assertAlmostEqual(anna.live_hours, 5.0)
        self.assertAlmostEqual(anna.total_hours, 9.0)
        self.assertAlmostEqual(anna.labor_cost, 225.0)

    def test_site_and_range_filters(self) -> None:
        rows = hours_per_employee(
            self.db,
            self.owner_auth,
            site_id=self.alfa.id,
            start_date=date(2026, 10, 1),
            end_date=date(2026, 10, 1),
            now_utc=NOW,
        )
        self.assertEqual([(row.username, row.total_hours) for row in rows], [("mario", 8.0)])

    def test_foreign_site_is_not_found(self) -> None:
        with self.assertRaises(NotFound):
            hours_per_employee(self.db, self.owner_auth, site_id=self.foreign_site.id, now_utc=NOW)

    def test_unknown_site_is_not_found(self) -> None:
        with self.assertRaises(NotFound):
            hours_per_employee(self.db, self.owner_auth, site_id=uuid.uuid4(), now_utc=NOW)


class SiteReportTests(AnalyticsTestCase):
    def test_report_groups_materials_by_catalog_item(self) -> None:
        report = site_report(self.db, self.owner_auth, self.alfa.id, now_utc=NOW)

        self.assertEqual([line.name for line in report.materials], ["Cemento 325", "Sabbia"])
        cement, sand = report.materials
        self.assertEqual(cement.quantity, 14)
        self.assertEqual(cement.usages, 2)
        self.assertAlmostEqual(cement.cost, 119.0)
        self.assertEqual(cement.unit, "sacco")
        self.assertEqual(sand.unit, "pz")
        self.assertIsNone(sand.unit_price)
        self.assertEqual(sand.cost, 0.0)

        self.assertEqual([row.username for row in report.employees], ["anna", "mario"])
        self.assertAlmostEqual(report.summary.materials_cost, 119.0)


if __name__ == "__main__":
    unittest.main()
