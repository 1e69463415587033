"""Seed the demo tenant and its owner membership into Supabase.

Usage: python backend/scripts/seed_demo_tenant.py --user-id <cognito-sub>
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bizops.services.seed import DEMO_USER_ID, demo_membership, demo_tenant  # noqa: E402
from bizops.services.supabase_rest import SupabaseRestClient  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed the demo tenant into Supabase.")
    parser.add_argument("--supabase-url", default=os.getenv("SUPABASE_URL", ""), help="Supabase project URL")
    parser.add_argument(
        "--service-role-key",
        default=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        help="Supabase service role key",
    )
    parser.add_argument("--user-id", default=DEMO_USER_ID, help="User to add as tenant owner")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    client = SupabaseRestClient(supabase_url=args.supabase_url, service_key=args.service_role_key)
    tenant = demo_tenant()
    membership = demo_membership(args.user_id)
    client.upsert_rows("tenants", [tenant.model_dump()], on_conflict="id")
    client.upsert_rows("tenant_members", [membership.model_dump()], on_conflict="tenant_id,user_id")
    print(f"Seeded tenant: {tenant.id} ({tenant.name})")
    print(f"Owner membership: {membership.user_id}")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        raise SystemExit(1)
