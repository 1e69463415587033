from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from bizops.assistant.contracts import CallerContext
from bizops.company_view.aggregator import CompanyViewAggregator
from bizops.services.tenancy import tenant_context

router = APIRouter(prefix="/api", tags=["company-view"])


def get_aggregator(request: Request) -> CompanyViewAggregator:
    return request.app.state.company_view


@router.get("/company-view")
async def company_view(
    response: Response,
    caller: CallerContext = Depends(tenant_context),
    aggregator: CompanyViewAggregator = Depends(get_aggregator),
):
    snapshot, cache_hit = await aggregator.get_company_view(caller.tenant_id)
    response.headers["X-Cache"] = "HIT" if cache_hit else "MISS"
    response.headers["Cache-Control"] = f"private, max-age={int(aggregator.cache.ttl_s)}"
    return snapshot.to_payload()
