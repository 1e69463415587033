from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Union

from jsonschema import Draft202012Validator

from .contracts import Channel, ToolError, ToolExecution, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 30.0


@dataclass(frozen=True)
class ToolContext:
    user_id: str
    tenant_id: str
    is_admin: bool = False
    channel: Channel = "web"
    custom: Dict[str, Any] = field(default_factory=dict)


ToolHandler = Callable[[Dict[str, Any], ToolContext], Union[ToolResult, Awaitable[ToolResult]]]
ToolFormatter = Callable[[ToolResult], Any]


@dataclass
class ToolDefinition:
    id: str
    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: ToolHandler
    metadata: Dict[str, Any] = field(default_factory=dict)
    version: str = "1.0.0"
    category: str = "utility"
    enabled: bool = True
    formatter: ToolFormatter | None = None


def _failure(code: str, message: str) -> ToolExecution:
    return ToolExecution(result=ToolResult(success=False, error=ToolError(code=code, message=message)))


def _default_formatter(result: ToolResult) -> str | None:
    if not result.success:
        return result.error.message if result.error else None
    if result.data is None:
        return None
    if isinstance(result.data, str):
        return result.data
    return json.dumps(result.data, default=str, separators=(",", ":"))


class ToolRegistry:
    """Tool id -> definition map, owned by the app factory and injected where needed."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolDefinition] = {}
        self._validators: Dict[str, Draft202012Validator] = {}

    def register(self, tool: ToolDefinition) -> None:
        if tool.id in self._tools:
            logger.debug("Tool already registered, skipping: %s", tool.id)
            return
        Draft202012Validator.check_schema(tool.input_schema)
        self._tools[tool.id] = tool
        self._validators[tool.id] = Draft202012Validator(tool.input_schema)

    def unregister(self, tool_id: str) -> None:
        self._tools.pop(tool_id, None)
        self._validators.pop(tool_id, None)

    def get(self, tool_id: str) -> ToolDefinition | None:
        return self._tools.get(tool_id)

    def has(self, tool_id: str) -> bool:
        return tool_id in self._tools

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def describe(self) -> list[Dict[str, Any]]:
        return [
            {"name": tool.id, "description": tool.description, "input_schema": tool.input_schema}
            for tool in self._tools.values()
            if tool.enabled
        ]

    def validate_input(self, tool_id: str, tool_input: Dict[str, Any]) -> list[str]:
        validator = self._validators.get(tool_id)
        if validator is None:
            return []
        errors = sorted(validator.iter_errors(tool_input), key=lambda item: list(item.path))
        messages: list[str] = []
        for item in errors:
            path = ".".join(str(part) for part in item.path)
            location = path if path else "$"
            messages.append(f"{location}: {item.message}")
        return messages

    async def execute(
        self,
        tool_id: str,
        tool_input: Dict[str, Any],
        context: ToolContext,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_SEC,
    ) -> ToolExecution:
        """Run a tool handler under a timeout.

        Never raises for handler problems: unknown tools, invalid input,
        timeouts and handler exceptions all come back as a failed ``ToolResult``.
        """
        tool = self._tools.get(tool_id)
        if tool is None:
            return _failure("TOOL_NOT_FOUND", f"Tool '{tool_id}' is not registered")
        if not tool.enabled:
            return _failure("TOOL_DISABLED", f"Tool '{tool_id}' is disabled")

        errors = self.validate_input(tool_id, tool_input)
        if errors:
            logger.warning("Tool input validation failed: tool=%s errors=%s", tool_id, errors)
            return _failure("INVALID_INPUT", f"Invalid arguments for {tool_id}: {'; '.join(errors)}")

        try:
            result = await asyncio.wait_for(self._invoke(tool, tool_input, context), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Tool execution timed out: tool=%s timeout=%ss", tool_id, timeout_s)
            return _failure("TIMEOUT", f"Tool '{tool_id}' timed out after {timeout_s:g}s")
        except Exception as exc:
            logger.exception("Tool handler raised: tool=%s error=%s", tool_id, exc)
            return _failure("HANDLER_ERROR", str(exc) or type(exc).__name__)

        formatter = tool.formatter or _default_formatter
        try:
            formatted = formatter(result)
        except Exception as exc:
            logger.exception("Tool formatter raised: tool=%s error=%s", tool_id, exc)
            return _failure("FORMAT_ERROR", str(exc) or type(exc).__name__)
        return ToolExecution(result=result, formatted=formatted)

    @staticmethod
    async def _invoke(tool: ToolDefinition, tool_input: Dict[str, Any], context: ToolContext) -> ToolResult:
        if inspect.iscoroutinefunction(tool.handler):
            raw = await tool.handler(tool_input, context)
        else:
            raw = await asyncio.to_thread(tool.handler, tool_input, context)
        if isinstance(raw, ToolResult):
            return raw
        return ToolResult.model_validate(raw)
