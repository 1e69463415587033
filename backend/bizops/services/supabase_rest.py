from __future__ import annotations

from typing import Any, Dict, List

import requests

from bizops import config

DEFAULT_TIMEOUT = 20


class SupabaseRestError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SupabaseConflictError(SupabaseRestError):
    """Unique-constraint violation (HTTP 409)."""


class SupabaseRestClient:
    def __init__(
        self,
        *,
        supabase_url: str | None = None,
        service_key: str | None = None,
        timeout: int = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        url = (supabase_url if supabase_url is not None else config.SUPABASE_URL).strip().rstrip("/")
        key = (service_key if service_key is not None else config.SUPABASE_SERVICE_ROLE_KEY).strip()
        self.base_url = f"{url}/rest/v1" if url else ""
        self.timeout = timeout
        self._configured = bool(url and key)
        self._session = session or requests.Session()
        self.common_headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    @property
    def configured(self) -> bool:
        return self._configured

    def _ensure_configured(self) -> None:
        if not self.configured:
            raise SupabaseRestError(
                "Supabase is not configured. Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY."
            )

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Dict[str, Any] | None = None,
        payload: Any = None,
        headers: Dict[str, str] | None = None,
    ) -> Any:
        self._ensure_configured()
        merged_headers = dict(self.common_headers)
        if headers:
            merged_headers.update(headers)
        response = self._session.request(
            method=method,
            url=f"{self.base_url}{path}",
            params=params,
            json=payload,
            headers=merged_headers,
            timeout=self.timeout,
        )
        if response.status_code == 409:
            raise SupabaseConflictError(
                f"Supabase {method} {path} conflict: {response.text[:500]}",
                status_code=409,
            )
        if response.status_code >= 400:
            snippet = response.text[:1200]
            raise SupabaseRestError(
                f"Supabase {method} {path} failed ({response.status_code}): {snippet}",
                status_code=response.status_code,
            )
        content_type = response.headers.get("content-type", "")
        if response.text and "application/json" in content_type:
            return response.json()
        return None

    def fetch_one(
        self,
        table: str,
        *,
        select: str = "*",
        filters: Dict[str, str] | None = None,
        order: str | None = None,
    ) -> Dict[str, Any] | None:
        params: Dict[str, Any] = {"select": select, "limit": 1}
        if order:
            params["order"] = order
        params.update(filters or {})
        page = self._request("GET", f"/{table}", params=params)
        if not isinstance(page, list):
            raise SupabaseRestError(f"Unexpected response type for table {table}")
        return page[0] if page else None

    def insert_row(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        created = self._request(
            "POST",
            f"/{table}",
            payload=row,
            headers={"Prefer": "return=representation"},
        )
        if not isinstance(created, list) or not created:
            raise SupabaseRestError(f"Insert into {table} returned no representation")
        return created[0]

    def upsert_rows(self, table: str, rows: List[Dict[str, Any]], on_conflict: str) -> None:
        if not rows:
            return
        self._request(
            "POST",
            f"/{table}",
            params={"on_conflict": on_conflict},
            payload=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def update_rows(self, table: str, *, filters: Dict[str, str], changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        """PATCH rows matching ``filters``; returns the updated rows (empty if none matched)."""
        updated = self._request(
            "PATCH",
            f"/{table}",
            params=filters,
            payload=changes,
            headers={"Prefer": "return=representation"},
        )
        return updated if isinstance(updated, list) else []


_client: SupabaseRestClient | None = None


def get_supabase_client() -> SupabaseRestClient:
    global _client
    if _client is None:
        _client = SupabaseRestClient(timeout=config.SUPABASE_TIMEOUT_SEC)
    return _client
