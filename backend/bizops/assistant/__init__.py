from .contracts import (
    CallerContext,
    ParsedIntent,
    PolicyResult,
    ToolCall,
    ToolCallOutput,
    ToolResult,
)
from .idempotency import canonical_json, derive_idempotency_key
from .intent import parse_intent
from .policy import RECOGNIZED_TOOL_IDS, evaluate_policy, normalize_risk_level
from .registry import ToolContext, ToolDefinition, ToolRegistry

__all__ = [
    "RECOGNIZED_TOOL_IDS",
    "CallerContext",
    "ParsedIntent",
    "PolicyResult",
    "ToolCall",
    "ToolCallOutput",
    "ToolContext",
    "ToolDefinition",
    "ToolRegistry",
    "ToolResult",
    "canonical_json",
    "derive_idempotency_key",
    "evaluate_policy",
    "normalize_risk_level",
    "parse_intent",
]
