"""Supabase (PostgREST) implementation of the lifecycle store.

Expected tables: ``tenants``, ``tenant_members``, ``ai_conversations``,
``ai_messages`` (unique ``conversation_id, sequence_number``) and
``ai_tool_calls`` (unique ``tool_call_id``). Status compare-and-set uses a
filtered PATCH (``id=eq.X&status=eq.pending``) so only one writer wins.
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random

from bizops.assistant.contracts import (
    PROPOSAL_CONVERSATION_KIND,
    PROPOSAL_CONVERSATION_TITLE,
    Conversation,
    Tenant,
    ToolCall,
    ToolCallOutput,
)

from .store import tool_call_changes_to_row, tool_call_from_row, utcnow
from .supabase_rest import SupabaseConflictError, SupabaseRestClient, get_supabase_client

logger = logging.getLogger(__name__)

TOOL_CALLS_TABLE = "ai_tool_calls"
CONVERSATIONS_TABLE = "ai_conversations"
MESSAGES_TABLE = "ai_messages"


def _jsonable(row: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value.isoformat() if isinstance(value, datetime) else value for key, value in row.items()}


class SupabaseStore:
    def __init__(self, client: SupabaseRestClient | None = None) -> None:
        self._client = client or get_supabase_client()

    # ------------------------------------------------------------------
    # tenants
    # ------------------------------------------------------------------
    async def find_tenant(self, tenant_id: str) -> Tenant | None:
        row = await asyncio.to_thread(
            self._client.fetch_one,
            "tenants",
            select="id,name,is_active",
            filters={"id": f"eq.{tenant_id}"},
        )
        return Tenant.model_validate(row) if row else None

    async def is_member(self, tenant_id: str, user_id: str) -> bool:
        row = await asyncio.to_thread(
            self._client.fetch_one,
            "tenant_members",
            select="tenant_id",
            filters={"tenant_id": f"eq.{tenant_id}", "user_id": f"eq.{user_id}"},
        )
        return row is not None

    async def get_default_tenant(self, user_id: str) -> Tenant | None:
        row = await asyncio.to_thread(
            self._client.fetch_one,
            "tenant_members",
            select="tenant_id,is_default",
            filters={"user_id": f"eq.{user_id}"},
            order="is_default.desc",
        )
        if not row:
            return None
        return await self.find_tenant(str(row["tenant_id"]))

    # ------------------------------------------------------------------
    # conversations & messages
    # ------------------------------------------------------------------
    def _proposal_conversation(self, user_id: str) -> Dict[str, Any]:
        filters = {"user_id": f"eq.{user_id}", "kind": f"eq.{PROPOSAL_CONVERSATION_KIND}"}
        existing = self._client.fetch_one(CONVERSATIONS_TABLE, filters=filters)
        if existing:
            return existing
        try:
            return self._client.insert_row(
                CONVERSATIONS_TABLE,
                _jsonable(
                    {
                        "id": str(uuid.uuid4()),
                        "user_id": user_id,
                        "title": PROPOSAL_CONVERSATION_TITLE,
                        "kind": PROPOSAL_CONVERSATION_KIND,
                        "created_at": utcnow(),
                    }
                ),
            )
        except SupabaseConflictError:
            # Lost a get-or-create race; the winner's row is now visible.
            existing = self._client.fetch_one(CONVERSATIONS_TABLE, filters=filters)
            if existing is None:
                raise
            return existing

    @retry(
        retry=retry_if_exception_type(SupabaseConflictError),
        stop=stop_after_attempt(5),
        wait=wait_random(min=0.01, max=0.05),
        reraise=True,
    )
    def _insert_message(self, conversation_id: str, content: str) -> Dict[str, Any]:
        """Fetch-max-then-insert; a duplicate sequence number (409) retries with a fresh max."""
        last = self._client.fetch_one(
            MESSAGES_TABLE,
            select="sequence_number",
            filters={"conversation_id": f"eq.{conversation_id}"},
            order="sequence_number.desc",
        )
        next_sequence = int(last["sequence_number"]) + 1 if last else 1
        return self._client.insert_row(
            MESSAGES_TABLE,
            _jsonable(
                {
                    "id": str(uuid.uuid4()),
                    "conversation_id": conversation_id,
                    "role": "user",
                    "content": content,
                    "sequence_number": next_sequence,
                    "created_at": utcnow(),
                }
            ),
        )

    async def find_conversation_for_user(self, conversation_id: str, user_id: str) -> Conversation | None:
        row = await asyncio.to_thread(
            self._client.fetch_one,
            CONVERSATIONS_TABLE,
            filters={"id": f"eq.{conversation_id}", "user_id": f"eq.{user_id}"},
        )
        return Conversation.model_validate(row) if row else None

    # ------------------------------------------------------------------
    # tool calls
    # ------------------------------------------------------------------
    async def find_tool_call(self, tool_call_pk: str) -> ToolCall | None:
        row = await asyncio.to_thread(self._client.fetch_one, TOOL_CALLS_TABLE, filters={"id": f"eq.{tool_call_pk}"})
        return tool_call_from_row(row) if row else None

    def _find_by_key(self, idempotency_key: str) -> Dict[str, Any] | None:
        return self._client.fetch_one(TOOL_CALLS_TABLE, filters={"tool_call_id": f"eq.{idempotency_key}"})

    def _create_proposal(
        self,
        *,
        user_id: str,
        raw_text: str,
        tool_name: str,
        idempotency_key: str,
        input_arguments: Dict[str, Any],
        output: ToolCallOutput,
    ) -> tuple[Dict[str, Any], bool]:
        existing = self._find_by_key(idempotency_key)
        if existing:
            return existing, False
        conversation = self._proposal_conversation(user_id)
        message = self._insert_message(str(conversation["id"]), raw_text)
        try:
            created = self._client.insert_row(
                TOOL_CALLS_TABLE,
                _jsonable(
                    {
                        "id": str(uuid.uuid4()),
                        "tool_call_id": idempotency_key,
                        "tool_name": tool_name,
                        "conversation_id": conversation["id"],
                        "message_id": message["id"],
                        "input_arguments": json.dumps(input_arguments),
                        "status": "proposed",
                        "output_result": output.to_json(),
                        "created_at": utcnow(),
                    }
                ),
            )
        except SupabaseConflictError:
            # A concurrent propose with the same key won; converge on its row.
            # The message inserted above stays as part of the audit trail.
            existing = self._find_by_key(idempotency_key)
            if existing is None:
                raise
            logger.info("Proposal insert lost idempotency race: key=%s", idempotency_key)
            return existing, False
        return created, True

    async def create_proposal(self, **kwargs: Any) -> tuple[ToolCall, bool]:
        row, created = await asyncio.to_thread(lambda: self._create_proposal(**kwargs))
        return tool_call_from_row(row), created

    async def transition_tool_call(self, tool_call_pk: str, *, expected_status: str, **changes: Any) -> ToolCall | None:
        updates = _jsonable(tool_call_changes_to_row(changes))
        rows = await asyncio.to_thread(
            lambda: self._client.update_rows(
                TOOL_CALLS_TABLE,
                filters={"id": f"eq.{tool_call_pk}", "status": f"eq.{expected_status}"},
                changes=updates,
            )
        )
        return tool_call_from_row(rows[0]) if rows else None

    async def ping(self) -> bool:
        await asyncio.to_thread(self._client.fetch_one, "tenants", select="id")
        return True
