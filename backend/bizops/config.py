from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Always load backend/.env regardless of current working directory.
# config.py is at backend/bizops/config.py -> backend/.env is parents[1]/.env
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
# Read .env as UTF-8 with BOM support to avoid malformed first key.
load_dotenv(ENV_PATH, encoding="utf-8-sig")


def _get_env(name: str, default: str = "") -> str:
    value = os.getenv(name)
    if value is not None:
        return str(value)
    # BOM-prefixed key names show up in .env files saved by some editors.
    bom_value = os.getenv(f"\ufeff{name}")
    if bom_value is not None:
        return str(bom_value)
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


APP_ENV = _get_env("APP_ENV", "development").strip().lower()
APP_VERSION = _get_env("APP_VERSION", "0.3.0")
LOG_LEVEL = _get_env("LOG_LEVEL", "INFO").strip().upper()
API_CORS_ORIGINS = [
    origin.strip() for origin in _get_env("API_CORS_ORIGINS", "").split(",") if origin.strip()
]

# Odoo (JSON-RPC)
ODOO_URL = _get_env("ODOO_URL", "").strip().rstrip("/")
ODOO_DB = _get_env("ODOO_DB", "").strip()
ODOO_USERNAME = _get_env("ODOO_USERNAME", "").strip()
ODOO_API_KEY = _get_env("ODOO_API_KEY", "").strip()
ODOO_TIMEOUT_SEC = max(1.0, _env_float("ODOO_TIMEOUT_SEC", 10.0))

# Lifecycle persistence
STORE_BACKEND = _get_env("STORE_BACKEND", "memory").strip().lower()
if STORE_BACKEND not in {"memory", "supabase"}:
    STORE_BACKEND = "memory"
SUPABASE_URL = _get_env("SUPABASE_URL", "").strip()
SUPABASE_SERVICE_ROLE_KEY = _get_env("SUPABASE_SERVICE_ROLE_KEY", "").strip()
SUPABASE_TIMEOUT_SEC = max(1, _env_int("SUPABASE_TIMEOUT_SEC", 20))
SEED_DEMO_TENANT = _env_bool("SEED_DEMO_TENANT", False)

# Assistant
TOOL_EXECUTION_TIMEOUT_SEC = max(1.0, _env_float("TOOL_EXECUTION_TIMEOUT_SEC", 30.0))

# Company view
COMPANY_VIEW_CACHE_TTL_SEC = max(1.0, _env_float("COMPANY_VIEW_CACHE_TTL_SEC", 30.0))
COMPANY_VIEW_SECTION_TIMEOUT_SEC = max(0.1, _env_float("COMPANY_VIEW_SECTION_TIMEOUT_SEC", 4.0))
COMPANY_VIEW_TOTAL_BUDGET_SEC = max(0.1, _env_float("COMPANY_VIEW_TOTAL_BUDGET_SEC", 6.0))

# Auth
AUTH_JWKS_URL = _get_env("AUTH_JWKS_URL", "").strip()
AUTH_ISSUER = _get_env("AUTH_ISSUER", "").strip()
AUTH_AUDIENCE = _get_env("AUTH_AUDIENCE", "").strip()
DEV_BYPASS_AUTH = _env_bool("DEV_BYPASS_AUTH", False)
