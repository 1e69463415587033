from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping

from pydantic import ValidationError

from bizops.assistant.contracts import (
    PROPOSAL_CONVERSATION_KIND,
    PROPOSAL_CONVERSATION_TITLE,
    Conversation,
    Message,
    Tenant,
    TenantMembership,
    ToolCall,
    ToolCallOutput,
)

from .errors import DataIntegrityError

logger = logging.getLogger(__name__)

UTC = timezone.utc
TOOL_CALL_COLUMNS = {"status", "output", "error_message", "started_at", "completed_at"}


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _parse_json_column(row: Mapping[str, Any], column: str) -> Any:
    value = row.get(column)
    if value is None or value == "":
        return None
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError) as exc:
        raise DataIntegrityError(
            "Internal Error: Invalid tool call data",
            code="invalid_tool_call_data",
        ) from exc


def tool_call_from_row(row: Mapping[str, Any]) -> ToolCall:
    """Map a persisted row to a ``ToolCall``.

    ``output_result`` and ``input_arguments`` are stored as JSON text. A blob
    that does not parse or validate is a data-integrity failure, never coerced.
    """
    output_raw = _parse_json_column(row, "output_result") or {}
    input_raw = _parse_json_column(row, "input_arguments") or {}
    if not isinstance(output_raw, dict) or not isinstance(input_raw, dict):
        raise DataIntegrityError("Internal Error: Invalid tool call data", code="invalid_tool_call_data")
    try:
        return ToolCall(
            id=str(row["id"]),
            tool_call_id=str(row["tool_call_id"]),
            tool_name=str(row["tool_name"]),
            conversation_id=str(row["conversation_id"]),
            message_id=str(row["message_id"]),
            input_arguments=input_raw,
            status=row["status"],
            output=ToolCallOutput.model_validate(output_raw),
            error_message=row.get("error_message"),
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            created_at=row.get("created_at"),
        )
    except (KeyError, ValidationError) as exc:
        logger.error("Stored tool call failed validation: id=%s error=%s", row.get("id"), exc)
        raise DataIntegrityError(
            "Internal Error: Invalid tool call data",
            code="invalid_tool_call_data",
        ) from exc


def tool_call_changes_to_row(changes: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = set(changes) - TOOL_CALL_COLUMNS
    if unknown:
        raise ValueError(f"Unknown tool call columns: {sorted(unknown)}")
    row: Dict[str, Any] = {}
    for key, value in changes.items():
        if key == "output":
            row["output_result"] = value.to_json() if isinstance(value, ToolCallOutput) else value
        else:
            row[key] = value
    return row


@dataclass
class InMemoryStore:
    """Process-local system of record for tenants and the tool-call lifecycle.

    All mutations run under one ``asyncio.Lock``. That keeps sequence
    allocation, proposal de-duplication and status compare-and-set atomic.
    """

    tenants: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    memberships: List[Dict[str, Any]] = field(default_factory=list)
    conversations: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    messages: List[Dict[str, Any]] = field(default_factory=list)
    tool_calls: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    # ------------------------------------------------------------------
    # tenants
    # ------------------------------------------------------------------
    async def add_tenant(self, tenant: Tenant) -> Tenant:
        async with self._lock:
            self.tenants[tenant.id] = tenant.model_dump()
        return tenant

    async def add_membership(self, membership: TenantMembership) -> TenantMembership:
        async with self._lock:
            self.memberships = [
                m
                for m in self.memberships
                if not (m["tenant_id"] == membership.tenant_id and m["user_id"] == membership.user_id)
            ]
            self.memberships.append(membership.model_dump())
        return membership

    async def find_tenant(self, tenant_id: str) -> Tenant | None:
        row = self.tenants.get(tenant_id)
        return Tenant.model_validate(row) if row else None

    async def is_member(self, tenant_id: str, user_id: str) -> bool:
        return any(m["tenant_id"] == tenant_id and m["user_id"] == user_id for m in self.memberships)

    async def get_default_tenant(self, user_id: str) -> Tenant | None:
        own = [m for m in self.memberships if m["user_id"] == user_id]
        if not own:
            return None
        chosen = next((m for m in own if m.get("is_default")), own[0])
        return await self.find_tenant(chosen["tenant_id"])

    # ------------------------------------------------------------------
    # conversations & messages
    # ------------------------------------------------------------------
    def _proposal_conversation_locked(self, user_id: str) -> Dict[str, Any]:
        for row in self.conversations.values():
            if row["user_id"] == user_id and row["kind"] == PROPOSAL_CONVERSATION_KIND:
                return row
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "title": PROPOSAL_CONVERSATION_TITLE,
            "kind": PROPOSAL_CONVERSATION_KIND,
            "created_at": utcnow(),
        }
        self.conversations[row["id"]] = row
        return row

    def _next_sequence_locked(self, conversation_id: str) -> int:
        current = [m["sequence_number"] for m in self.messages if m["conversation_id"] == conversation_id]
        return max(current, default=0) + 1

    async def find_conversation_for_user(self, conversation_id: str, user_id: str) -> Conversation | None:
        row = self.conversations.get(conversation_id)
        if row is None or row["user_id"] != user_id:
            return None
        return Conversation.model_validate(row)

    async def list_messages(self, conversation_id: str) -> list[Message]:
        rows = [m for m in self.messages if m["conversation_id"] == conversation_id]
        rows.sort(key=lambda m: m["sequence_number"])
        return [Message.model_validate(m) for m in rows]

    # ------------------------------------------------------------------
    # tool calls
    # ------------------------------------------------------------------
    async def find_tool_call(self, tool_call_pk: str) -> ToolCall | None:
        row = self.tool_calls.get(tool_call_pk)
        return tool_call_from_row(row) if row else None

    async def create_proposal(
        self,
        *,
        user_id: str,
        raw_text: str,
        tool_name: str,
        idempotency_key: str,
        input_arguments: Dict[str, Any],
        output: ToolCallOutput,
    ) -> tuple[ToolCall, bool]:
        """Create conversation/message/tool call in one step, or return the existing call.

        Returns ``(tool_call, created)``.
        """
        async with self._lock:
            for row in self.tool_calls.values():
                if row["tool_call_id"] == idempotency_key:
                    return tool_call_from_row(row), False

            conversation = self._proposal_conversation_locked(user_id)
            now = utcnow()
            message = {
                "id": str(uuid.uuid4()),
                "conversation_id": conversation["id"],
                "role": "user",
                "content": raw_text,
                "sequence_number": self._next_sequence_locked(conversation["id"]),
                "created_at": now,
            }
            self.messages.append(message)
            row = {
                "id": str(uuid.uuid4()),
                "tool_call_id": idempotency_key,
                "tool_name": tool_name,
                "conversation_id": conversation["id"],
                "message_id": message["id"],
                "input_arguments": json.dumps(input_arguments),
                "status": "proposed",
                "output_result": output.to_json(),
                "error_message": None,
                "started_at": None,
                "completed_at": None,
                "created_at": now,
            }
            self.tool_calls[row["id"]] = row
        return tool_call_from_row(row), True

    async def transition_tool_call(self, tool_call_pk: str, *, expected_status: str, **changes: Any) -> ToolCall | None:
        """Compare-and-set update: applies ``changes`` only if status is still ``expected_status``.

        Returns the updated call, or ``None`` when the row is missing or has moved on.
        """
        updates = tool_call_changes_to_row(changes)
        async with self._lock:
            row = self.tool_calls.get(tool_call_pk)
            if row is None or row["status"] != expected_status:
                return None
            row.update(updates)
            snapshot = dict(row)
        return tool_call_from_row(snapshot)

    async def ping(self) -> bool:
        return True
