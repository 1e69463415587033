from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request

from bizops.assistant.contracts import CallerContext

from .auth import current_user, is_admin
from .errors import BadRequestError, ForbiddenError

logger = logging.getLogger(__name__)


def get_store(request: Request) -> Any:
    return request.app.state.store


async def resolve_tenant(store: Any, user_id: str, tenant_id: Optional[str]) -> CallerContext:
    """Header present, tenant exists, tenant active, caller is a member."""
    tenant_id = (tenant_id or "").strip()
    if not tenant_id:
        raise BadRequestError("Bad Request: Missing x-tenant-id header", code="missing_tenant_header")

    tenant = await store.find_tenant(tenant_id)
    if tenant is None:
        raise BadRequestError("Bad Request: Invalid tenant ID", code="invalid_tenant")
    if not tenant.is_active:
        raise ForbiddenError("Forbidden: Tenant is inactive", code="tenant_inactive")
    if not await store.is_member(tenant_id, user_id):
        logger.warning("Tenant access denied: tenant=%s user=%s", tenant_id, user_id)
        raise ForbiddenError("Forbidden: User is not a member of this tenant", code="not_member")
    return CallerContext(user_id=user_id, tenant_id=tenant.id, tenant_name=tenant.name)


async def tenant_context(
    x_tenant_id: Optional[str] = Header(None),
    user: Dict = Depends(current_user),
    store: Any = Depends(get_store),
) -> CallerContext:
    caller = await resolve_tenant(store, str(user.get("sub", "")), x_tenant_id)
    return caller.model_copy(update={"is_admin": is_admin(user)})
