"""Propose / approve / reject / execute orchestration for assistant tool calls.

State machine: ``proposed -> pending -> running -> completed|failed`` and
``proposed -> failed`` on rejection. Every status change goes through the
store's compare-and-set so a concurrent request can never move a call twice.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any

from bizops import config
from bizops.services.errors import (
    BadRequestError,
    ConflictError,
    DataIntegrityError,
    ForbiddenError,
    NotFoundError,
)
from bizops.services.store import utcnow

from .contracts import (
    ApprovalRecord,
    CallerContext,
    ExecutionOutcome,
    ExecutionRecord,
    ProposalOutcome,
    ProposalRecord,
    ProposedCall,
    ResultSummary,
    ToolCall,
    ToolCallOutput,
    ToolError,
    ToolExecution,
    ToolResult,
    TransitionOutcome,
)
from .idempotency import derive_idempotency_key
from .intent import parse_intent
from .policy import evaluate_policy, is_executable_decision, normalize_risk_level
from .registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

SUMMARY_CHARS = 200


def _iso_now() -> str:
    return utcnow().isoformat()


def _truncate(value: Any) -> str | None:
    if value is None or value == "":
        return None
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text[:SUMMARY_CHARS]


class AssistantService:
    def __init__(self, store: Any, registry: ToolRegistry, *, tool_timeout_s: float | None = None) -> None:
        self._store = store
        self._registry = registry
        self._tool_timeout_s = tool_timeout_s if tool_timeout_s is not None else config.TOOL_EXECUTION_TIMEOUT_SEC

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # propose
    # ------------------------------------------------------------------
    async def propose(self, caller: CallerContext, text: str) -> ProposalOutcome:
        parsed = parse_intent(text)
        if parsed is None:
            return ProposalOutcome(tenant_id=caller.tenant_id, user_id=caller.user_id, reason="no_intent_match")

        tool = self._registry.get(parsed.tool_id)
        if tool is None:
            logger.error("Propose: tool not found in registry: %s", parsed.tool_id)
            return ProposalOutcome(tenant_id=caller.tenant_id, user_id=caller.user_id, reason="tool_not_found")

        risk_level, warning = normalize_risk_level(tool.metadata)
        if warning:
            logger.warning("Propose: %s (tool=%s)", warning, parsed.tool_id)
        idempotency_key = derive_idempotency_key(
            caller.tenant_id, caller.user_id, parsed.tool_id, parsed.input, text
        )
        policy = evaluate_policy(
            tenant_id=caller.tenant_id,
            user_id=caller.user_id,
            tool_id=parsed.tool_id,
            risk_level=risk_level,
            channel=caller.channel,
        )
        output = ToolCallOutput(
            tenant_id=caller.tenant_id,
            user_id=caller.user_id,
            tool_id=parsed.tool_id,
            policy=policy,
            risk_level=risk_level,
            warning=warning,
        )
        tool_call, created = await self._store.create_proposal(
            user_id=caller.user_id,
            raw_text=text,
            tool_name=parsed.tool_id,
            idempotency_key=idempotency_key,
            input_arguments=parsed.input,
            output=output,
        )
        if created:
            logger.info("Propose: created proposal %s key=%s", tool_call.id, idempotency_key)
        else:
            logger.info("Propose: idempotent duplicate detected key=%s", idempotency_key)

        return ProposalOutcome(
            tenant_id=caller.tenant_id,
            user_id=caller.user_id,
            proposed=ProposedCall(tool_id=parsed.tool_id, input=parsed.input, risk_level=risk_level, warning=warning),
            policy=policy,
            proposal_record=ProposalRecord(
                ai_tool_call_id=tool_call.id,
                ai_conversation_id=tool_call.conversation_id,
                ai_message_id=tool_call.message_id,
                tool_call_id=tool_call.tool_call_id,
            ),
            replayed=not created,
        )

    # ------------------------------------------------------------------
    # guards
    # ------------------------------------------------------------------
    async def _load_guarded(self, caller: CallerContext, tool_call_pk: str, expected_status: str) -> ToolCall:
        """Existence, status, ownership, tenant context, tenant match, in that order."""
        tool_call = await self._store.find_tool_call(tool_call_pk)
        if tool_call is None:
            raise NotFoundError("Not Found: Tool call does not exist", code="tool_call_not_found")

        if tool_call.status != expected_status:
            raise ConflictError(
                f"Bad Request: Tool call status is '{tool_call.status}', must be '{expected_status}'",
                code=f"not_{expected_status}",
                currentStatus=tool_call.status,
            )

        conversation = await self._store.find_conversation_for_user(tool_call.conversation_id, caller.user_id)
        if conversation is None:
            raise ForbiddenError("Forbidden: Tool call does not belong to authenticated user", code="not_owner")

        proposal_tenant = tool_call.output.tenant_id
        if not proposal_tenant:
            raise BadRequestError(
                "Bad Request: Proposal missing tenant context",
                code="proposal_missing_tenant_context",
                message="Please re-create the proposal using /api/assistant/propose",
            )
        if proposal_tenant != caller.tenant_id:
            raise ForbiddenError(
                "Forbidden: Tool call tenant does not match x-tenant-id",
                code="tenant_mismatch",
                proposalTenantId=proposal_tenant,
                requestTenantId=caller.tenant_id,
            )
        return tool_call

    # ------------------------------------------------------------------
    # approve / reject
    # ------------------------------------------------------------------
    async def approve(self, caller: CallerContext, tool_call_pk: str, comment: str | None = None) -> TransitionOutcome:
        tool_call = await self._load_guarded(caller, tool_call_pk, "proposed")
        approved_at = utcnow()
        approval = ApprovalRecord(
            decision="approved",
            approved_at=approved_at.isoformat(),
            approved_by=caller.user_id,
            comment=comment or None,
        )
        updated = await self._store.transition_tool_call(
            tool_call.id,
            expected_status="proposed",
            status="pending",
            started_at=approved_at,
            error_message=None,
            output=tool_call.output.with_approval(approval),
        )
        if updated is None:
            raise ConflictError("Bad Request: Tool call is no longer proposed", code="not_proposed")
        logger.info("Approve: tool call %s approved by %s", updated.id, caller.user_id)
        return TransitionOutcome(
            ai_tool_call_id=updated.id,
            status=updated.status,
            tool_name=updated.tool_name,
            tool_call_id=updated.tool_call_id,
            approval=approval,
        )

    async def reject(self, caller: CallerContext, tool_call_pk: str, reason: str | None) -> TransitionOutcome:
        if not reason or not reason.strip():
            raise BadRequestError("Bad Request: Missing or invalid 'reason' field", code="missing_reason")
        tool_call = await self._load_guarded(caller, tool_call_pk, "proposed")
        rejected_at = utcnow()
        approval = ApprovalRecord(
            decision="rejected",
            rejected_at=rejected_at.isoformat(),
            rejected_by=caller.user_id,
            reason=reason,
        )
        updated = await self._store.transition_tool_call(
            tool_call.id,
            expected_status="proposed",
            status="failed",
            completed_at=rejected_at,
            error_message=reason,
            output=tool_call.output.with_approval(approval),
        )
        if updated is None:
            raise ConflictError("Bad Request: Tool call is no longer proposed", code="not_proposed")
        logger.info("Reject: tool call %s rejected by %s", updated.id, caller.user_id)
        return TransitionOutcome(
            ai_tool_call_id=updated.id,
            status=updated.status,
            tool_name=updated.tool_name,
            tool_call_id=updated.tool_call_id,
            approval=approval,
        )

    # ------------------------------------------------------------------
    # execute
    # ------------------------------------------------------------------
    async def execute(self, caller: CallerContext, tool_call_pk: str) -> ExecutionOutcome:
        tool_call = await self._load_guarded(caller, tool_call_pk, "pending")

        if not self._registry.has(tool_call.tool_name):
            raise BadRequestError(
                f"Bad Request: Tool '{tool_call.tool_name}' not found in registry",
                code="tool_not_registered",
                toolName=tool_call.tool_name,
            )

        policy = tool_call.output.policy
        if policy is not None and not is_executable_decision(policy.decision):
            raise ForbiddenError(
                f"Forbidden: Policy decision was '{policy.decision}', cannot execute",
                code="policy_denied",
                policyDecision=policy.decision,
            )

        running = await self._store.transition_tool_call(
            tool_call.id,
            expected_status="pending",
            status="running",
            started_at=tool_call.started_at or utcnow(),
            error_message=None,
        )
        if running is None:
            raise ConflictError(
                "Bad Request: Tool call is no longer pending (race condition)",
                code="not_pending",
            )
        logger.info("Execute: tool call %s transition to running", running.id)

        context = ToolContext(
            user_id=caller.user_id,
            tenant_id=caller.tenant_id,
            is_admin=caller.is_admin,
            channel=caller.channel,
            custom={"tenantId": caller.tenant_id, "channel": caller.channel},
        )
        started = time.perf_counter()
        try:
            execution = await self._registry.execute(
                running.tool_name,
                running.input_arguments,
                context,
                timeout_s=self._tool_timeout_s,
            )
        except Exception as exc:
            # The call is already running; it must still end up failed.
            logger.exception("Execute: tool call %s raised outside the registry", running.id)
            execution = ToolExecution(
                result=ToolResult(
                    success=False,
                    error=ToolError(code="HANDLER_ERROR", message=str(exc) or type(exc).__name__),
                )
            )
        duration_ms = int((time.perf_counter() - started) * 1000)
        result = execution.result

        if result.success:
            output = running.output.with_execution(
                ExecutionRecord(attempted_at=_iso_now(), status="completed", duration_ms=duration_ms),
                tool_result=result.model_dump(by_alias=True, exclude_none=True),
                formatted=execution.formatted,
            )
            final = await self._store.transition_tool_call(
                running.id,
                expected_status="running",
                status="completed",
                completed_at=utcnow(),
                output=output,
            )
            logger.info("Execute: tool call %s completed in %sms", running.id, duration_ms)
        else:
            error_message = (result.error.message if result.error else "") or "Tool execution failed"
            output = running.output.with_execution(
                ExecutionRecord(
                    attempted_at=_iso_now(),
                    status="failed",
                    duration_ms=duration_ms,
                    error=error_message,
                )
            )
            final = await self._store.transition_tool_call(
                running.id,
                expected_status="running",
                status="failed",
                completed_at=utcnow(),
                error_message=error_message,
                output=output,
            )
            logger.info("Execute: tool call %s failed - %s", running.id, error_message)

        if final is None:
            raise DataIntegrityError("Internal Error: Failed to persist execution results", code="persist_failed")

        return ExecutionOutcome(
            ai_tool_call_id=final.id,
            status=final.status,
            tool_name=final.tool_name,
            tool_call_id=final.tool_call_id,
            duration_ms=duration_ms,
            result_summary=ResultSummary(
                success=result.success,
                formatted=_truncate(execution.formatted),
                error=(final.error_message or "Execution failed")[:SUMMARY_CHARS] if final.status == "failed" else None,
            ),
        )
