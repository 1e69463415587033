from __future__ import annotations

from typing import Any, Mapping

from .contracts import Channel, PolicyResult, RiskLevel

RECOGNIZED_TOOL_IDS: frozenset[str] = frozenset(
    {
        "assistant.create_task",
        "assistant.summarize_inbox_thread",
        "assistant.draft_email",
        "assistant.create_expense",
        "assistant.system_health_check",
    }
)

RISK_LEVELS: tuple[RiskLevel, ...] = ("low", "medium", "high")
RISK_METADATA_KEY = "assistantRiskLevel"


def evaluate_policy(
    *,
    tenant_id: str,
    user_id: str,
    tool_id: str,
    risk_level: str,
    channel: Channel = "web",
) -> PolicyResult:
    # tenant_id/user_id/channel are part of the contract for per-tenant rules;
    # the current rule set only looks at the tool and its risk tier.
    if tool_id not in RECOGNIZED_TOOL_IDS:
        return PolicyResult(decision="deny", reason=f"Tool ID '{tool_id}' is not recognized")

    if risk_level == "low":
        return PolicyResult(decision="allow", reason="Low risk tool - auto-approved")

    if risk_level in {"medium", "high"}:
        tier = "High" if risk_level == "high" else "Medium"
        return PolicyResult(
            decision="requires_approval",
            reason=f"{tier} risk tool - requires user approval before execution",
        )

    return PolicyResult(decision="deny", reason="Invalid risk level")


def normalize_risk_level(metadata: Mapping[str, Any] | None) -> tuple[RiskLevel, str | None]:
    """Read the risk tier from tool metadata, defaulting to ``low`` with a warning."""
    value = (metadata or {}).get(RISK_METADATA_KEY)
    if value in RISK_LEVELS:
        return value, None
    return "low", f"Tool metadata missing or invalid {RISK_METADATA_KEY}, defaulting to 'low'"


def is_executable_decision(decision: str | None) -> bool:
    return decision in {"allow", "requires_approval"}
