from __future__ import annotations

import html
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List

from bizops.services.odoo_rpc import OdooAuthError, OdooClient, OdooRpcError

from .contracts import ToolError, ToolResult
from .registry import ToolContext, ToolDefinition, ToolRegistry

logger = logging.getLogger(__name__)

OdooProvider = Callable[[], OdooClient]
HealthRunner = Callable[[], Awaitable[Dict[str, Any]]]

DEFAULT_THREAD_MESSAGES = 20
THREAD_EXCERPTS = 3
EXCERPT_CHARS = 160
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")

CREATE_TASK_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string", "minLength": 1, "description": "Task title"},
        "description": {"type": "string", "description": "Detailed task description"},
        "priority": {
            "type": "string",
            "enum": ["low", "normal", "high"],
            "description": "Task priority level",
        },
        "dueDate": {"type": "string", "description": "Due date in ISO 8601 format"},
    },
    "required": ["title"],
}

SUMMARIZE_THREAD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "threadId": {"type": "string", "description": "Unique identifier of the thread to summarize"},
        "maxMessages": {
            "type": "number",
            "minimum": 1,
            "description": "Maximum number of messages to include in summary",
        },
    },
    "required": ["threadId"],
}

DRAFT_EMAIL_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "to": {"type": "string", "description": "Email recipient address"},
        "subject": {"type": "string", "description": "Email subject line"},
        "context": {"type": "string", "description": "Context or main points to include in email"},
        "tone": {
            "type": "string",
            "enum": ["professional", "friendly", "formal"],
            "description": "Desired tone of the email",
        },
    },
    "required": ["to", "subject", "context"],
}

CREATE_EXPENSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "amount": {"type": "number", "exclusiveMinimum": 0, "description": "Expense amount in local currency"},
        "description": {"type": "string", "description": "Description of the expense"},
        "category": {"type": "string", "description": "Expense category (e.g., travel, meals, supplies)"},
        "date": {"type": "string", "description": "Expense date in ISO 8601 format"},
    },
    "required": ["amount", "description", "category"],
}

SYSTEM_HEALTH_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "includeDetails": {"type": "boolean", "description": "Include detailed diagnostics in response"},
    },
}

_EMAIL_TEMPLATES = {
    "professional": ("Hello {name},", "Best regards,"),
    "friendly": ("Hi {name}!", "Cheers,"),
    "formal": ("Dear {name},", "Yours sincerely,"),
}


def _odoo_failure(exc: OdooRpcError) -> ToolResult:
    code = "ODOO_AUTH_ERROR" if isinstance(exc, OdooAuthError) else "ODOO_ERROR"
    return ToolResult(success=False, error=ToolError(code=code, message=str(exc)))


def _plain_text(body: Any) -> str:
    text = _TAG_RE.sub(" ", str(body or ""))
    return _SPACE_RE.sub(" ", html.unescape(text)).strip()


def _many2one_name(value: Any) -> str | None:
    if isinstance(value, (list, tuple)) and len(value) > 1:
        return str(value[1])
    return None


# ---------------------------------------------------------------------------
# handlers
# ---------------------------------------------------------------------------


def _create_task_handler(odoo: OdooProvider):
    def handler(tool_input: Dict[str, Any], context: ToolContext) -> ToolResult:
        priority = tool_input.get("priority") or "normal"
        values: Dict[str, Any] = {
            "name": tool_input["title"].strip(),
            # project.task only knows 0 (normal) and 1 (starred).
            "priority": "1" if priority == "high" else "0",
        }
        if tool_input.get("description"):
            values["description"] = tool_input["description"]
        if tool_input.get("dueDate"):
            values["date_deadline"] = tool_input["dueDate"]
        try:
            task_id = odoo().create("project.task", values)
        except OdooRpcError as exc:
            logger.warning("create_task failed: tenant=%s error=%s", context.tenant_id, exc)
            return _odoo_failure(exc)
        logger.info("create_task done: tenant=%s task_id=%s", context.tenant_id, task_id)
        return ToolResult(
            success=True,
            data={"taskId": task_id, "title": values["name"], "priority": priority, "dueDate": tool_input.get("dueDate")},
        )

    return handler


def _summarize_thread_handler(odoo: OdooProvider):
    def handler(tool_input: Dict[str, Any], context: ToolContext) -> ToolResult:
        thread_id = str(tool_input["threadId"]).strip().lstrip("#")
        if not thread_id.isdigit():
            return ToolResult(
                success=False,
                error=ToolError(code="INVALID_THREAD_ID", message=f"Thread id must be numeric, got '{thread_id}'"),
            )
        limit = int(tool_input.get("maxMessages") or DEFAULT_THREAD_MESSAGES)
        domain = [
            ["model", "in", ["discuss.channel", "mail.channel"]],
            ["res_id", "=", int(thread_id)],
            ["message_type", "in", ["comment", "email"]],
        ]
        try:
            rows = odoo().search_read(
                "mail.message",
                domain,
                fields=["id", "author_id", "body", "date"],
                limit=limit,
                order="date desc",
            )
        except OdooRpcError as exc:
            return _odoo_failure(exc)
        if not rows:
            return ToolResult(
                success=False,
                error=ToolError(code="THREAD_NOT_FOUND", message=f"No messages found for thread {thread_id}"),
            )

        chronological = list(reversed(rows))
        participants: List[str] = []
        for row in chronological:
            name = _many2one_name(row.get("author_id")) or "Unknown"
            if name not in participants:
                participants.append(name)
        excerpts = [
            {
                "author": _many2one_name(row.get("author_id")) or "Unknown",
                "date": row.get("date"),
                "text": _plain_text(row.get("body"))[:EXCERPT_CHARS],
            }
            for row in rows[:THREAD_EXCERPTS]
        ]
        return ToolResult(
            success=True,
            data={
                "threadId": thread_id,
                "messageCount": len(rows),
                "participants": participants,
                "firstMessageAt": chronological[0].get("date"),
                "lastMessageAt": chronological[-1].get("date"),
                "latest": excerpts,
            },
        )

    return handler


def _format_thread_summary(result: ToolResult) -> str | None:
    if not result.success:
        return result.error.message if result.error else None
    data = result.data or {}
    people = ", ".join(data.get("participants") or [])
    return (
        f"Thread {data.get('threadId')}: {data.get('messageCount')} messages from {people} "
        f"between {data.get('firstMessageAt')} and {data.get('lastMessageAt')}."
    )


def draft_email_handler(tool_input: Dict[str, Any], context: ToolContext) -> ToolResult:
    tone = tool_input.get("tone") or "professional"
    greeting, closing = _EMAIL_TEMPLATES[tone]
    recipient = tool_input["to"].strip()
    name = recipient.split("@", 1)[0].replace(".", " ").replace("_", " ").title() or recipient
    context_text = tool_input["context"].strip()
    if context_text and context_text[-1] not in ".!?":
        context_text += "."
    body = "\n\n".join(
        [
            greeting.format(name=name),
            f"I am writing regarding {tool_input['subject'].strip()}. {context_text}",
            "Please let me know if you have any questions.",
            closing,
        ]
    )
    return ToolResult(
        success=True,
        data={"to": recipient, "subject": tool_input["subject"].strip(), "tone": tone, "body": body},
    )


def _create_expense_handler(odoo: OdooProvider):
    def handler(tool_input: Dict[str, Any], context: ToolContext) -> ToolResult:
        client = odoo()
        category = tool_input["category"].strip()
        try:
            products = client.search_read(
                "product.product",
                [["can_be_expensed", "=", True], ["name", "ilike", category]],
                fields=["id", "name"],
                limit=1,
            )
            values: Dict[str, Any] = {
                "name": tool_input["description"].strip(),
                "unit_amount": float(tool_input["amount"]),
                "quantity": 1,
            }
            if products:
                values["product_id"] = products[0]["id"]
            if tool_input.get("date"):
                values["date"] = tool_input["date"]
            expense_id = client.create("hr.expense", values)
        except OdooRpcError as exc:
            logger.warning("create_expense failed: tenant=%s error=%s", context.tenant_id, exc)
            return _odoo_failure(exc)
        logger.info("create_expense done: tenant=%s expense_id=%s", context.tenant_id, expense_id)
        return ToolResult(
            success=True,
            data={
                "expenseId": expense_id,
                "amount": values["unit_amount"],
                "category": products[0]["name"] if products else category,
                "categoryMatched": bool(products),
            },
        )

    return handler


def _system_health_handler(run_health: HealthRunner):
    async def handler(tool_input: Dict[str, Any], context: ToolContext) -> ToolResult:
        try:
            health = await run_health()
        except Exception as exc:
            logger.exception("system_health_check failed")
            return ToolResult(
                success=False,
                error=ToolError(code="HEALTH_CHECK_FAILED", message=str(exc) or "Health check failed"),
            )
        if tool_input.get("includeDetails") is False:
            health = {
                **health,
                "checks": {
                    name: {key: value for key, value in check.items() if key != "details"}
                    for name, check in health.get("checks", {}).items()
                },
            }
        return ToolResult(success=True, data=health)

    return handler


# ---------------------------------------------------------------------------
# registry bootstrap
# ---------------------------------------------------------------------------


def assistant_tools(odoo: OdooProvider, run_health: HealthRunner) -> List[ToolDefinition]:
    return [
        ToolDefinition(
            id="assistant.create_task",
            name="Create Task",
            description="Create a new task in the task management system with title, description, priority, and optional due date",
            input_schema=CREATE_TASK_SCHEMA,
            handler=_create_task_handler(odoo),
            metadata={"assistantRiskLevel": "medium"},
        ),
        ToolDefinition(
            id="assistant.summarize_inbox_thread",
            name="Summarize Inbox Thread",
            description="Generate a summary of an inbox conversation thread including key points and action items",
            input_schema=SUMMARIZE_THREAD_SCHEMA,
            handler=_summarize_thread_handler(odoo),
            metadata={"assistantRiskLevel": "low"},
            category="communication",
            formatter=_format_thread_summary,
        ),
        ToolDefinition(
            id="assistant.draft_email",
            name="Draft Email",
            description="Generate a draft email based on recipient, subject, context, and desired tone",
            input_schema=DRAFT_EMAIL_SCHEMA,
            handler=draft_email_handler,
            metadata={"assistantRiskLevel": "low"},
            category="communication",
        ),
        ToolDefinition(
            id="assistant.create_expense",
            name="Create Expense",
            description="Record a new expense entry with amount, description, category, and date",
            input_schema=CREATE_EXPENSE_SCHEMA,
            handler=_create_expense_handler(odoo),
            metadata={"assistantRiskLevel": "high"},
            category="data",
        ),
        ToolDefinition(
            id="assistant.system_health_check",
            name="System Health Check",
            description="Check system health status including store connectivity, Odoo availability, and disk usage",
            input_schema=SYSTEM_HEALTH_SCHEMA,
            handler=_system_health_handler(run_health),
            metadata={"assistantRiskLevel": "low"},
            category="integration",
        ),
    ]


def build_tool_registry(odoo: OdooProvider, run_health: HealthRunner) -> ToolRegistry:
    registry = ToolRegistry()
    for tool in assistant_tools(odoo, run_health):
        registry.register(tool)
    return registry
