from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Tuple

from bizops import config

from .contracts import CompanyViewSnapshot


class SnapshotCache:
    """Per-tenant snapshot cache with timestamp expiry.

    Unbounded: one entry per tenant that has been viewed. Expired entries are
    dropped on read, there is no sweeper.
    """

    def __init__(self, ttl_s: float | None = None, *, clock: Callable[[], float] = time.time) -> None:
        self.ttl_s = ttl_s if ttl_s is not None else config.COMPANY_VIEW_CACHE_TTL_SEC
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, CompanyViewSnapshot]] = {}

    def get(self, tenant_id: str) -> CompanyViewSnapshot | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(tenant_id)
            if entry is None:
                return None
            stored_at, snapshot = entry
            if (now - stored_at) > self.ttl_s:
                del self._entries[tenant_id]
                return None
            return snapshot

    def set(self, tenant_id: str, snapshot: CompanyViewSnapshot) -> None:
        with self._lock:
            self._entries[tenant_id] = (self._clock(), snapshot)

    def __len__(self) -> int:
        return len(self._entries)
