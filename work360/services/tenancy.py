from __future__ import annotations

import threading
import time
import uuid
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy import select
from sqlalchemy.orm import Session

from work360.errors import Forbidden, NotFound
from work360.models import ConstructionSite, UserRole
from work360.settings import get_settings


@dataclass(frozen=True, slots=True)
class AuthContext:
    user_id: uuid.UUID
    company_id: uuid.UUID
    role: UserRole

    @property
    def is_owner(self) -> bool:
        return self.role == UserRole.OWNER

    def require_owner(self) -> None:
        if not self.is_owner:
            raise Forbidden("Only the company owner can perform this action.")


class SiteValidationCache:
    """Remembers successful (site, company) ownership checks for a short time.

    Only positive results are stored, so a site moved or deleted is at most
    ``ttl_seconds`` stale. ``ttl_seconds=0`` turns the cache off.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = max(0.0, float(ttl_seconds))
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[tuple[uuid.UUID, uuid.UUID], float] = OrderedDict()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def contains(self, site_id: uuid.UUID, company_id: uuid.UUID) -> bool:
        if not self.enabled:
            return False
        key = (site_id, company_id)
        now = self._clock()
        with self._lock:
            expires_at = self._entries.get(key)
            if expires_at is None:
                return False
            if expires_at <= now:
                self._entries.pop(key, None)
                return False
            self._entries.move_to_end(key)
            return True

    def remember(self, site_id: uuid.UUID, company_id: uuid.UUID) -> None:
        if not self.enabled:
            return
        key = (site_id, company_id)
        with self._lock:
            self._entries[key] = self._clock() + self.ttl_seconds
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, site_id: uuid.UUID) -> None:
        with self._lock:
            for key in [key for key in self._entries if key[0] == site_id]:
                self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@lru_cache
def get_site_validation_cache() -> SiteValidationCache:
    settings = get_settings()
    return SiteValidationCache(
        ttl_seconds=settings.site_validation_cache_ttl_seconds,
        max_entries=settings.site_validation_cache_max_entries,
    )


def get_company_site(db: Session, *, company_id: uuid.UUID, site_id: uuid.UUID) -> ConstructionSite:
    site = db.scalar(
        select(ConstructionSite).where(
            ConstructionSite.id == site_id,
            ConstructionSite.company_id == company_id,
            ConstructionSite.deleted_at.is_(None),
        )
    )
    if site is None:
        raise NotFound("Construction site not found.", code="SITE_NOT_FOUND")
    return site


def ensure_site_in_company(
    db: Session,
    *,
    company_id: uuid.UUID,
    site_id: uuid.UUID,
    cache: SiteValidationCache | None = None,
) -> None:
    if cache is not None and cache.contains(site_id, company_id):
        return
    get_company_site(db, company_id=company_id, site_id=site_id)
    if cache is not None:
        cache.remember(site_id, company_id)
