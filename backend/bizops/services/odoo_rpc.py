from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Dict, List, Sequence

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from bizops import config

logger = logging.getLogger(__name__)

OdooDomain = List[Any]


class OdooRpcError(RuntimeError):
    def __init__(self, message: str, *, model: str | None = None, remote_type: str | None = None) -> None:
        super().__init__(message)
        self.model = model
        self.remote_type = remote_type


class OdooAuthError(OdooRpcError):
    pass


class OdooClient:
    """Thin JSON-RPC client for the Odoo external API (``/jsonrpc``)."""

    def __init__(
        self,
        *,
        url: str | None = None,
        db: str | None = None,
        username: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.url = (url if url is not None else config.ODOO_URL).strip().rstrip("/")
        self.db = db if db is not None else config.ODOO_DB
        self.username = username if username is not None else config.ODOO_USERNAME
        self._api_key = api_key if api_key is not None else config.ODOO_API_KEY
        self.timeout = timeout if timeout is not None else config.ODOO_TIMEOUT_SEC
        self._session = session or requests.Session()
        self._uid: int | None = None
        self._uid_lock = threading.Lock()
        self._ids = itertools.count(1)

    @property
    def configured(self) -> bool:
        return bool(self.url and self.db and self.username and self._api_key)

    def _ensure_configured(self) -> None:
        if not self.configured:
            raise OdooRpcError("Odoo is not configured. Set ODOO_URL, ODOO_DB, ODOO_USERNAME and ODOO_API_KEY.")

    @retry(
        retry=retry_if_exception_type((requests.exceptions.ConnectionError, requests.exceptions.Timeout)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.25, min=0.25, max=1),
        reraise=True,
    )
    def _post(self, service: str, method: str, args: Sequence[Any]) -> Any:
        """Send one JSON-RPC call, retrying transport errors only.

        Remote faults (``error`` in the envelope) and HTTP status errors are
        raised as ``OdooRpcError`` and are not retried.
        """
        payload = {
            "jsonrpc": "2.0",
            "method": "call",
            "params": {"service": service, "method": method, "args": list(args)},
            "id": next(self._ids),
        }
        response = self._session.post(f"{self.url}/jsonrpc", json=payload, timeout=self.timeout)
        if response.status_code >= 400:
            snippet = response.text[:500]
            raise OdooRpcError(f"Odoo {service}.{method} failed ({response.status_code}): {snippet}")
        data = response.json()
        error = data.get("error")
        if error:
            detail = error.get("data") or {}
            message = str(detail.get("message") or error.get("message") or "Odoo RPC error")
            remote_type = str(detail.get("name") or "")
            if "AccessDenied" in remote_type or "authentication" in message.lower():
                raise OdooAuthError(f"Odoo authentication failed: {message}", remote_type=remote_type)
            raise OdooRpcError(message, remote_type=remote_type)
        return data.get("result")

    def version(self) -> Dict[str, Any]:
        if not self.url:
            raise OdooRpcError("Odoo is not configured. Set ODOO_URL.")
        result = self._post("common", "version", [])
        return result if isinstance(result, dict) else {}

    def authenticate(self) -> int:
        self._ensure_configured()
        with self._uid_lock:
            if self._uid is not None:
                return self._uid
            uid = self._post("common", "login", [self.db, self.username, self._api_key])
            if not uid:
                raise OdooAuthError("Odoo authentication failed: invalid credentials")
            self._uid = int(uid)
            logger.info("Odoo session established: db=%s uid=%s", self.db, self._uid)
            return self._uid

    def execute_kw(
        self,
        model: str,
        method: str,
        args: Sequence[Any],
        kwargs: Dict[str, Any] | None = None,
    ) -> Any:
        uid = self.authenticate()
        try:
            return self._post(
                "object",
                "execute_kw",
                [self.db, uid, self._api_key, model, method, list(args), kwargs or {}],
            )
        except OdooRpcError as exc:
            if exc.model is None:
                exc.model = model
            raise

    def search_read(
        self,
        model: str,
        domain: OdooDomain,
        *,
        fields: Sequence[str] | None = None,
        limit: int | None = None,
        offset: int = 0,
        order: str | None = None,
    ) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {"offset": offset}
        if fields:
            kwargs["fields"] = list(fields)
        if limit is not None:
            kwargs["limit"] = limit
        if order:
            kwargs["order"] = order
        rows = self.execute_kw(model, "search_read", [domain], kwargs)
        if not isinstance(rows, list):
            raise OdooRpcError(f"Unexpected search_read response for {model}", model=model)
        return rows

    def search_count(self, model: str, domain: OdooDomain) -> int:
        return int(self.execute_kw(model, "search_count", [domain]) or 0)

    def create(self, model: str, values: Dict[str, Any]) -> int:
        return int(self.execute_kw(model, "create", [values]))


_client: OdooClient | None = None


def get_odoo_client() -> OdooClient:
    global _client
    if _client is None:
        _client = OdooClient()
    return _client
