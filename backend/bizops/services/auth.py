from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Optional

import requests
from fastapi import Header
from jose import jwt

from bizops import config

from .errors import UnauthorizedError

DEV_USER: Dict[str, Any] = {"sub": "demo-user", "email": "demo@bizops.local", "groups": ["admin"]}
ADMIN_GROUP = "admin"


@lru_cache
def _jwks(jwks_url: str) -> Dict:
    if not jwks_url:
        return {}
    return requests.get(jwks_url, timeout=5).json()


def _get_key(token: str) -> Optional[Dict]:
    headers = jwt.get_unverified_header(token)
    for key in _jwks(config.AUTH_JWKS_URL).get("keys", []):
        if key.get("kid") == headers.get("kid"):
            return key
    return None


def verify_jwt(authorization: Optional[str]) -> Dict:
    if config.DEV_BYPASS_AUTH:
        return dict(DEV_USER)

    if not authorization:
        raise UnauthorizedError("Unauthorized: No valid session", code="missing_token")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise UnauthorizedError("Unauthorized: Invalid token format", code="invalid_token")

    token = parts[1]
    try:
        key = _get_key(token)
    except Exception as exc:
        raise UnauthorizedError(f"Unauthorized: {exc}", code="invalid_token") from exc
    if not key:
        raise UnauthorizedError("Unauthorized: Unknown key", code="invalid_token")

    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            audience=config.AUTH_AUDIENCE or None,
            issuer=config.AUTH_ISSUER or None,
            options={"verify_aud": bool(config.AUTH_AUDIENCE)},
        )
    except Exception as exc:
        raise UnauthorizedError(f"Unauthorized: {exc}", code="invalid_token") from exc
    if not claims.get("sub"):
        raise UnauthorizedError("Unauthorized: Token has no subject", code="invalid_token")
    return claims


def is_admin(claims: Dict[str, Any]) -> bool:
    groups = claims.get("groups") or claims.get("cognito:groups") or []
    if isinstance(groups, str):
        groups = [groups]
    return ADMIN_GROUP in groups


def current_user(authorization: Optional[str] = Header(None)) -> Dict:
    return verify_jwt(authorization)
