from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from bizops import config
from bizops.services.health import run_system_health_check

router = APIRouter(prefix="/api/monitoring", tags=["monitoring"])
logger = logging.getLogger(__name__)

NO_CACHE = "no-cache, no-store, must-revalidate"


@router.get("/system-health")
async def system_health(request: Request):
    started = time.perf_counter()
    try:
        result = await run_system_health_check(request.app.state.store, request.app.state.odoo())
    except Exception as exc:
        logger.exception("Health check error")
        failed = {"status": "fail", "message": "Health check failed"}
        return JSONResponse(
            {
                "status": "unhealthy",
                "timestamp": datetime.now(tz=timezone.utc).isoformat(),
                "checks": {"store": failed, "odoo": failed, "disk": failed},
                "version": config.APP_VERSION,
                "environment": config.APP_ENV,
                "error": str(exc),
            },
            status_code=503,
            headers={"Cache-Control": NO_CACHE},
        )

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    logger.info("Health check: status=%s response_time=%sms", result["status"], elapsed_ms)
    return JSONResponse(
        result,
        status_code=503 if result["status"] == "unhealthy" else 200,
        headers={"Cache-Control": NO_CACHE, "X-Response-Time": f"{elapsed_ms}ms"},
    )
