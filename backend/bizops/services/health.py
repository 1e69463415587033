from __future__ import annotations

import asyncio
import logging
import shutil
import time
from datetime import datetime, timezone
from typing import Any, Dict

from bizops import config

from .odoo_rpc import OdooClient

logger = logging.getLogger(__name__)

_STARTED_AT = time.monotonic()
DISK_WARN_PERCENT = 90.0
DISK_FAIL_PERCENT = 97.0


def _check(status: str, message: str, started: float, details: Dict[str, Any] | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "status": status,
        "message": message,
        "responseTime": int((time.perf_counter() - started) * 1000),
    }
    if details:
        payload["details"] = details
    return payload


async def _check_store(store: Any) -> Dict[str, Any]:
    started = time.perf_counter()
    try:
        await store.ping()
    except Exception as exc:
        logger.warning("Health store check failed: %s", exc)
        return _check("fail", f"Store unreachable: {exc}", started)
    return _check("pass", "Store reachable", started, {"backend": config.STORE_BACKEND})


async def _check_odoo(odoo_client: OdooClient) -> Dict[str, Any]:
    started = time.perf_counter()
    if not odoo_client.url:
        return _check("warn", "Odoo is not configured", started)
    try:
        info = await asyncio.to_thread(odoo_client.version)
    except Exception as exc:
        logger.warning("Health odoo check failed: %s", exc)
        return _check("fail", f"Odoo unreachable: {exc}", started)
    return _check(
        "pass",
        "Odoo reachable",
        started,
        {"serverVersion": info.get("server_version"), "db": odoo_client.db},
    )


def _check_disk(path: str = "/") -> Dict[str, Any]:
    started = time.perf_counter()
    try:
        usage = shutil.disk_usage(path)
    except OSError as exc:
        return _check("fail", f"Disk usage unavailable: {exc}", started)
    used_percent = round(usage.used / usage.total * 100, 1) if usage.total else 0.0
    details = {"path": path, "usedPercent": used_percent, "freeBytes": usage.free}
    if used_percent >= DISK_FAIL_PERCENT:
        return _check("fail", f"Disk nearly full ({used_percent}%)", started, details)
    if used_percent >= DISK_WARN_PERCENT:
        return _check("warn", f"Disk usage high ({used_percent}%)", started, details)
    return _check("pass", "Disk usage normal", started, details)


def roll_up_status(checks: Dict[str, Dict[str, Any]]) -> str:
    """The store is critical; everything else only degrades."""
    if checks["store"]["status"] == "fail":
        return "unhealthy"
    if any(check["status"] in {"fail", "warn"} for check in checks.values()):
        return "degraded"
    return "healthy"


async def run_system_health_check(store: Any, odoo_client: OdooClient) -> Dict[str, Any]:
    store_check, odoo_check = await asyncio.gather(_check_store(store), _check_odoo(odoo_client))
    checks = {"store": store_check, "odoo": odoo_check, "disk": _check_disk()}
    return {
        "status": roll_up_status(checks),
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "checks": checks,
        "version": config.APP_VERSION,
        "environment": config.APP_ENV,
    }
