from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RiskLevel = Literal["low", "medium", "high"]
PolicyDecision = Literal["allow", "deny", "requires_approval"]
Channel = Literal["web", "telegram"]
ToolCallStatus = Literal["proposed", "pending", "running", "completed", "failed"]

PROPOSAL_CONVERSATION_KIND = "assistant_proposals"
PROPOSAL_CONVERSATION_TITLE = "Assistant Proposals"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PolicyResult(CamelModel):
    decision: PolicyDecision
    reason: str


class ParsedIntent(CamelModel):
    tool_id: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ApprovalRecord(CamelModel):
    decision: Literal["approved", "rejected"]
    approved_at: str | None = None
    approved_by: str | None = None
    rejected_at: str | None = None
    rejected_by: str | None = None
    comment: str | None = None
    reason: str | None = None


class ExecutionRecord(CamelModel):
    attempted_at: str
    status: Literal["completed", "failed"]
    duration_ms: int = 0
    error: str | None = None


class ToolCallOutput(CamelModel):
    """Structured ``outputResult`` of a tool call.

    The proposal context (tenant, user, tool, policy, risk) is written once at
    proposal time. Approval and execution sub-records are added later through
    ``with_approval`` / ``with_execution``, which return new instances.
    """

    tenant_id: str | None = None
    user_id: str | None = None
    tool_id: str | None = None
    policy: PolicyResult | None = None
    risk_level: str | None = None
    warning: str | None = None
    approval: ApprovalRecord | None = None
    execution: ExecutionRecord | None = None
    tool_result: Dict[str, Any] | None = None
    formatted: Any = None

    def with_approval(self, approval: ApprovalRecord) -> "ToolCallOutput":
        return self.model_copy(update={"approval": approval})

    def with_execution(
        self,
        execution: ExecutionRecord,
        *,
        tool_result: Dict[str, Any] | None = None,
        formatted: Any = None,
    ) -> "ToolCallOutput":
        update: Dict[str, Any] = {"execution": execution}
        if tool_result is not None:
            update["tool_result"] = tool_result
        if formatted is not None:
            update["formatted"] = formatted
        return self.model_copy(update=update)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class ToolCall(BaseModel):
    id: str
    tool_call_id: str
    tool_name: str
    conversation_id: str
    message_id: str
    input_arguments: Dict[str, Any] = Field(default_factory=dict)
    status: ToolCallStatus
    output: ToolCallOutput = Field(default_factory=ToolCallOutput)
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None


class Conversation(BaseModel):
    id: str
    user_id: str
    title: str = PROPOSAL_CONVERSATION_TITLE
    kind: str = PROPOSAL_CONVERSATION_KIND
    created_at: datetime | None = None


class Message(BaseModel):
    id: str
    conversation_id: str
    role: Literal["user", "assistant", "system"] = "user"
    content: str
    sequence_number: int
    created_at: datetime | None = None


class Tenant(BaseModel):
    id: str
    name: str
    is_active: bool = True


class TenantMembership(BaseModel):
    tenant_id: str
    user_id: str
    role: str = "member"
    is_default: bool = False


class CallerContext(BaseModel):
    """Authenticated user plus the tenant they are acting in."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    tenant_id: str
    tenant_name: str | None = None
    is_admin: bool = False
    channel: Channel = "web"


class ToolError(CamelModel):
    code: str
    message: str


class ToolResult(CamelModel):
    success: bool
    data: Any = None
    error: ToolError | None = None


class ToolExecution(CamelModel):
    result: ToolResult
    formatted: Any = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ProposedCall(CamelModel):
    tool_id: str
    input: Dict[str, Any]
    risk_level: RiskLevel
    warning: str | None = None


class ProposalRecord(CamelModel):
    ai_tool_call_id: str
    ai_conversation_id: str
    ai_message_id: str
    tool_call_id: str


class ProposalOutcome(CamelModel):
    ok: bool = True
    tenant_id: str
    user_id: str
    proposed: ProposedCall | None = None
    policy: PolicyResult | None = None
    reason: str | None = None
    proposal_record: ProposalRecord | None = None
    replayed: bool = False


class TransitionOutcome(CamelModel):
    ok: bool = True
    ai_tool_call_id: str
    status: ToolCallStatus
    tool_name: str
    tool_call_id: str
    approval: ApprovalRecord


class ResultSummary(CamelModel):
    success: bool
    formatted: str | None = None
    error: str | None = None


class ExecutionOutcome(CamelModel):
    ok: bool = True
    ai_tool_call_id: str
    status: Literal["completed", "failed"]
    tool_name: str
    tool_call_id: str
    duration_ms: int
    result_summary: ResultSummary
