from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from bizops.services.auth import current_user
from bizops.services.tenancy import get_store

router = APIRouter(prefix="/api/tenants", tags=["tenants"])


@router.get("/current")
async def current_tenant(user=Depends(current_user), store: Any = Depends(get_store)):
    tenant = await store.get_default_tenant(str(user.get("sub", "")))
    if tenant is None:
        return {"tenantId": None, "tenantName": None, "error": "No default tenant"}
    return {"tenantId": tenant.id, "tenantName": tenant.name, "error": None}
