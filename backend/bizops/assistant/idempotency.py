from __future__ import annotations

import hashlib
import json
from typing import Any, Dict

IDEMPOTENCY_KEY_PREFIX = "assistant:propose:v1:"


def canonical_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def derive_idempotency_key(
    tenant_id: str,
    user_id: str,
    tool_id: str,
    tool_input: Dict[str, Any],
    raw_text: str,
) -> str:
    # Raw text is hashed verbatim (after trimming): cosmetic differences in the
    # command produce distinct keys even when the parsed input is identical.
    material = "|".join(
        [
            tenant_id,
            user_id,
            tool_id,
            canonical_json(tool_input),
            str(raw_text or "").strip(),
        ]
    )
    return IDEMPOTENCY_KEY_PREFIX + hashlib.sha256(material.encode("utf-8", "surrogatepass")).hexdigest()
