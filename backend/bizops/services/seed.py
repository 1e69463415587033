from __future__ import annotations

import logging
import os

from bizops.assistant.contracts import Tenant, TenantMembership

from .auth import DEV_USER

logger = logging.getLogger(__name__)

DEMO_TENANT_ID = os.getenv("DEMO_TENANT_ID", "demo-tenant")
DEMO_TENANT_NAME = os.getenv("DEMO_TENANT_NAME", "Demo Company")
DEMO_USER_ID = os.getenv("DEMO_USER_ID", DEV_USER["sub"])


def demo_tenant() -> Tenant:
    return Tenant(id=DEMO_TENANT_ID, name=DEMO_TENANT_NAME, is_active=True)


def demo_membership(user_id: str = DEMO_USER_ID) -> TenantMembership:
    return TenantMembership(tenant_id=DEMO_TENANT_ID, user_id=user_id, role="owner", is_default=True)


async def seed_demo_tenant(store, user_id: str = DEMO_USER_ID) -> Tenant:
    tenant = await store.add_tenant(demo_tenant())
    await store.add_membership(demo_membership(user_id))
    logger.info("Seeded demo tenant: tenant=%s user=%s", tenant.id, user_id)
    return tenant
