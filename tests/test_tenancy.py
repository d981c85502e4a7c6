from __future__ import annotations

import unittest
import uuid

from db_support import add_company, add_site, create_sqlite_engine, make_session_factory, utc
from work360.errors import Forbidden, NotFound
from work360.models import UserRole
from work360.services.tenancy import AuthContext, SiteValidationCache, ensure_site_in_company, get_company_site


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class SiteValidationCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = _FakeClock()
        self.cache = SiteValidationCache(ttl_seconds=60, max_entries=2, clock=self.clock)
        self.company_id = uuid.uuid4()

    def test_entry_expires_after_ttl(self) -> None:
        site_id = uuid.uuid4()
        self.cache.remember(site_id, self.company_id)
        self.clock.now += 59
        self.assertTrue(self.cache.contains(site_id, self.company_id))
        self.clock.now += 1
        self.assertFalse(self.cache.contains(site_id, self.company_id))
        self.assertEqual(len(self.cache), 0)

    def test_entry_is_scoped_to_company(self) -> None:
        site_id = uuid.uuid4()
        self.cache.remember(site_id, self.company_id)
        self.assertFalse(self.cache.contains(site_id, uuid.uuid4()))

    def test_least_recently_used_entry_is_evicted(self) -> None:
        first, second, third = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        self.cache.remember(first, self.company_id)
        self.cache.remember(second, self.company_id)
        self.assertTrue(self.cache.contains(first, self.company_id))
        self.cache.remember(third, self.company_id)

        self.assertTrue(self.cache.contains(first, self.company_id))
        self.assertFalse(self.cache.contains(second, self.company_id))
        self.assertTrue(self.cache.contains(third, self.company_id))

    def test_invalidate_drops_every_company_entry_for_site(self) -> None:
        site_id = uuid.uuid4()
        other_company = uuid.uuid4()
        self.cache.remember(site_id, self.company_id)
        self.cache.remember(site_id, other_company)
        self.cache.invalidate(site_id)
        self.assertEqual(len(self.cache), 0)

    def test_zero_ttl_disables_cache(self) -> None:
        cache = SiteValidationCache(ttl_seconds=0, clock=self.clock)
        site_id = uuid.uuid4()
        cache.remember(site_id, self.company_id)
        self.assertFalse(cache.enabled)
        self.assertFalse(cache.contains(site_id, self.company_id))
        self.assertEqual(len(cache), 0)


class AuthContextTests(unittest.TestCase):
    def test_require_owner(self) -> None:
        owner = AuthContext(user_id=uuid.uuid4(), company_id=uuid.uuid4(), role=UserRole.OWNER)
        owner.require_owner()
        worker = AuthContext(user_id=uuid.uuid4(), company_id=owner.company_id, role=UserRole.WORKER)
        with self.assertRaises(Forbidden):
            worker.require_owner()


class CompanySiteLookupTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_sqlite_engine()
        self.db = make_session_factory(self.engine)()
        self.company = add_company(self.db, "Edil Rossi")
        self.other_company = add_company(self.db, "Costruzioni Bianchi")
        self.site = add_site(self.db, self.company)

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def test_site_of_another_company_is_not_found(self) -> None:
        with self.assertRaises(NotFound) as ctx:
            get_company_site(self.db, company_id=self.other_company.id, site_id=self.site.id)
        self.assertEqual(ctx.exception.code, "SITE_NOT_FOUND")

    def test_soft_deleted_site_is_not_found(self) -> None:
        deleted = add_site(self.db, self.company, name="Vecchio cantiere", deleted_at=utc(2026, 1, 1))
        with self.assertRaises(NotFound):
            ensure_site_in_company(self.db, company_id=self.company.id, site_id=deleted.id)

    def test_successful_check_is_cached(self) -> None:
        cache = SiteValidationCache(ttl_seconds=300)
        ensure_site_in_company(self.db, company_id=self.company.id, site_id=self.site.id, cache=cache)
        self.assertTrue(cache.contains(self.site.id, self.company.id))

    def test_failed_check_is_not_cached(self) -> None:
        cache = SiteValidationCache(ttl_seconds=300)
        with self.assertRaises(NotFound):
            ensure_site_in_company(self.db, company_id=self.other_company.id, site_id=self.site.id, cache=cache)
        self.assertEqual(len(cache), 0)


if __name__ == "__main__":
    unittest.main()
