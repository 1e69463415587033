from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bizops import config
from bizops.assistant.lifecycle import AssistantService
from bizops.assistant.registry import ToolRegistry
from bizops.assistant.tools import build_tool_registry
from bizops.company_view.aggregator import CompanyViewAggregator
from bizops.routes import assistant, company_view, monitoring, tenants
from bizops.services.errors import AssistantError
from bizops.services.health import run_system_health_check
from bizops.services.odoo_rpc import OdooClient, get_odoo_client
from bizops.services.seed import seed_demo_tenant
from bizops.services.store import InMemoryStore
from bizops.services.store_supabase import SupabaseStore
from bizops.services.supabase_rest import SupabaseRestError

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_store() -> Any:
    if config.STORE_BACKEND == "supabase":
        return SupabaseStore()
    return InMemoryStore()


async def _assistant_error(request: Request, exc: AssistantError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed: path=%s code=%s error=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {
            "error": "Bad Request: Invalid request body",
            "code": "invalid_request",
            "details": jsonable_encoder(exc.errors()),
        },
        status_code=400,
    )


async def _store_error(request: Request, exc: SupabaseRestError) -> JSONResponse:
    logger.error("Store request failed: path=%s error=%s", request.url.path, exc)
    return JSONResponse({"error": "Internal Server Error", "code": "store_unavailable"}, status_code=500)


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: path=%s", request.url.path)
    return JSONResponse({"error": "Internal Server Error", "code": "internal_error"}, status_code=500)


def create_app(
    *,
    store: Any = None,
    odoo: Callable[[], OdooClient] | None = None,
    registry: ToolRegistry | None = None,
    aggregator: CompanyViewAggregator | None = None,
    seed_demo: bool | None = None,
) -> FastAPI:
    store = store if store is not None else build_store()
    odoo = odoo or get_odoo_client
    seed_demo = config.SEED_DEMO_TENANT if seed_demo is None else seed_demo

    async def run_health() -> dict:
        return await run_system_health_check(store, odoo())

    if registry is None:
        registry = build_tool_registry(odoo, run_health)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if seed_demo and isinstance(store, InMemoryStore):
            await seed_demo_tenant(store)
        logger.info(
            "BizOps API ready: env=%s store=%s tools=%s",
            config.APP_ENV,
            type(store).__name__,
            len(registry.list_tools()),
        )
        yield

    app = FastAPI(title="BizOps Assistant API", version=config.APP_VERSION, lifespan=lifespan)
    app.state.store = store
    app.state.odoo = odoo
    app.state.assistant = AssistantService(store, registry)
    app.state.company_view = aggregator or CompanyViewAggregator(odoo)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.API_CORS_ORIGINS or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AssistantError, _assistant_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(SupabaseRestError, _store_error)
    app.add_exception_handler(Exception, _unexpected_error)

    app.include_router(assistant.router)  # propose / approve / reject / execute
    app.include_router(company_view.router)  # tenant dashboard
    app.include_router(tenants.router)
    app.include_router(monitoring.router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
