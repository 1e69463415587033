from __future__ import annotations

import asyncio
import unittest
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from bizops.assistant.contracts import ToolResult
from bizops.assistant.registry import ToolContext, ToolDefinition, ToolRegistry

ECHO_SCHEMA = {
    "type": "object",
    "properties": {"value": {"type": "string"}},
    "required": ["value"],
}
CONTEXT = ToolContext(user_id="u1", tenant_id="t1")


def _echo(tool_input, context):
    return ToolResult(success=True, data={"value": tool_input["value"], "tenant": context.tenant_id})


class ToolRegistryTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.registry = ToolRegistry()

    def _tool(self, tool_id: str = "test.echo", handler=_echo, **kwargs) -> ToolDefinition:
        return ToolDefinition(
            id=tool_id,
            name=tool_id,
            description="test tool",
            input_schema=ECHO_SCHEMA,
            handler=handler,
            **kwargs,
        )

    def test_register_is_idempotent(self) -> None:
        first = self._tool(metadata={"assistantRiskLevel": "low"})
        second = self._tool(metadata={"assistantRiskLevel": "high"})
        self.registry.register(first)
        self.registry.register(second)
        self.assertIs(self.registry.get("test.echo"), first)
        self.assertEqual(len(self.registry.list_tools()), 1)

    def test_unregister_and_has(self) -> None:
        self.registry.register(self._tool())
        self.assertTrue(self.registry.has("test.echo"))
        self.registry.unregister("test.echo")
        self.assertFalse(self.registry.has("test.echo"))
        self.assertIsNone(self.registry.get("test.echo"))

    def test_describe_lists_enabled_tools(self) -> None:
        self.registry.register(self._tool())
        self.registry.register(self._tool("test.off", enabled=False))
        described = self.registry.describe()
        self.assertEqual([item["name"] for item in described], ["test.echo"])
        self.assertEqual(described[0]["input_schema"], ECHO_SCHEMA)

    async def test_sync_handler_runs_and_formats(self) -> None:
        self.registry.register(self._tool())
        execution = await self.registry.execute("test.echo", {"value": "hi"}, CONTEXT)
        self.assertTrue(execution.result.success)
        self.assertEqual(execution.result.data, {"value": "hi", "tenant": "t1"})
        self.assertEqual(execution.formatted, '{"value":"hi","tenant":"t1"}')

    async def test_dict_results_are_validated(self) -> None:
        async def handler(tool_input, context):
            return {"success": True, "data": "plain"}

        self.registry.register(self._tool(handler=handler))
        execution = await self.registry.execute("test.echo", {"value": "x"}, CONTEXT)
        self.assertTrue(execution.result.success)
        self.assertEqual(execution.formatted, "plain")

    async def test_unknown_tool(self) -> None:
        execution = await self.registry.execute("test.missing", {}, CONTEXT)
        self.assertFalse(execution.result.success)
        self.assertEqual(execution.result.error.code, "TOOL_NOT_FOUND")

    async def test_schema_violation_is_invalid_input(self) -> None:
        calls = []

        def handler(tool_input, context):
            calls.append(tool_input)
            return ToolResult(success=True)

        self.registry.register(self._tool(handler=handler))
        execution = await self.registry.execute("test.echo", {"value": 3}, CONTEXT)
        self.assertEqual(execution.result.error.code, "INVALID_INPUT")
        self.assertIn("value", execution.result.error.message)
        self.assertEqual(calls, [])

    async def test_timeout_becomes_failed_result(self) -> None:
        async def slow(tool_input, context):
            await asyncio.sleep(1)
            return ToolResult(success=True)

        self.registry.register(self._tool(handler=slow))
        execution = await self.registry.execute("test.echo", {"value": "x"}, CONTEXT, timeout_s=0.05)
        self.assertFalse(execution.result.success)
        self.assertEqual(execution.result.error.code, "TIMEOUT")

    async def test_handler_exception_is_caught(self) -> None:
        def broken(tool_input, context):
            raise RuntimeError("boom")

        self.registry.register(self._tool(handler=broken))
        with self.assertLogs("bizops.assistant.registry", level="ERROR"):
            execution = await self.registry.execute("test.echo", {"value": "x"}, CONTEXT)
        self.assertEqual(execution.result.error.code, "HANDLER_ERROR")
        self.assertEqual(execution.result.error.message, "boom")
        self.assertEqual(execution.formatted, None)

    async def test_formatter_exception_is_caught(self) -> None:
        def bad_formatter(result):
            raise ValueError("cannot render")

        self.registry.register(self._tool(formatter=bad_formatter))
        with self.assertLogs("bizops.assistant.registry", level="ERROR"):
            execution = await self.registry.execute("test.echo", {"value": "x"}, CONTEXT)
        self.assertFalse(execution.result.success)
        self.assertEqual(execution.result.error.code, "FORMAT_ERROR")
        self.assertEqual(execution.result.error.message, "cannot render")


if __name__ == "__main__":
    unittest.main()
