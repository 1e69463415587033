from __future__ import annotations

import unittest
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))
TESTS = Path(__file__).resolve().parent
if str(TESTS) not in sys.path:
    sys.path.append(str(TESTS))

from fakes import FakeOdoo

from bizops.assistant.registry import ToolContext
from bizops.assistant.tools import build_tool_registry
from bizops.services.health import roll_up_status, run_system_health_check
from bizops.services.odoo_rpc import OdooAuthError
from bizops.services.store import InMemoryStore

CONTEXT = ToolContext(user_id="u1", tenant_id="t1")

THREAD_ROWS = [
    {"id": 3, "author_id": [2, "Bob"], "body": "<p>Sounds &amp; good</p>", "date": "2026-01-03 10:00:00"},
    {"id": 2, "author_id": [1, "Alice"], "body": "<p>Draft attached</p>", "date": "2026-01-02 10:00:00"},
    {"id": 1, "author_id": [2, "Bob"], "body": "Kickoff", "date": "2026-01-01 10:00:00"},
]


class FailingStore:
    async def ping(self) -> bool:
        raise ConnectionError("store down")


class AssistantToolTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.odoo = FakeOdoo()
        self.health_calls = 0

        async def run_health():
            self.health_calls += 1
            return {
                "status": "healthy",
                "checks": {"store": {"status": "pass", "message": "ok", "responseTime": 1, "details": {"x": 1}}},
            }

        self.registry = build_tool_registry(lambda: self.odoo, run_health)

    async def _run(self, tool_id: str, tool_input):
        return await self.registry.execute(tool_id, tool_input, CONTEXT)

    def test_five_tools_with_risk_levels(self) -> None:
        levels = {tool.id: tool.metadata["assistantRiskLevel"] for tool in self.registry.list_tools()}
        self.assertEqual(
            levels,
            {
                "assistant.create_task": "medium",
                "assistant.summarize_inbox_thread": "low",
                "assistant.draft_email": "low",
                "assistant.create_expense": "high",
                "assistant.system_health_check": "low",
            },
        )

    async def test_create_task_maps_priority(self) -> None:
        execution = await self._run("assistant.create_task", {"title": " Ship ", "priority": "high", "dueDate": "2026-03-01"})
        self.assertTrue(execution.result.success)
        self.assertEqual(execution.result.data["taskId"], 42)
        model, values = self.odoo.created[0]
        self.assertEqual(model, "project.task")
        self.assertEqual(values, {"name": "Ship", "priority": "1", "date_deadline": "2026-03-01"})

        await self._run("assistant.create_task", {"title": "Low one", "priority": "low"})
        self.assertEqual(self.odoo.created[1][1]["priority"], "0")

    async def test_create_task_odoo_auth_failure(self) -> None:
        self.odoo.failures["project.task"] = OdooAuthError("Odoo authentication failed")
        execution = await self._run("assistant.create_task", {"title": "x"})
        self.assertFalse(execution.result.success)
        self.assertEqual(execution.result.error.code, "ODOO_AUTH_ERROR")

    async def test_summarize_thread(self) -> None:
        self.odoo.rows["mail.message"] = THREAD_ROWS
        execution = await self._run("assistant.summarize_inbox_thread", {"threadId": "#12"})
        data = execution.result.data
        self.assertEqual(data["threadId"], "12")
        self.assertEqual(data["messageCount"], 3)
        self.assertEqual(data["participants"], ["Bob", "Alice"])
        self.assertEqual(data["firstMessageAt"], "2026-01-01 10:00:00")
        self.assertEqual(data["latest"][0]["text"], "Sounds & good")
        self.assertEqual(
            execution.formatted,
            "Thread 12: 3 messages from Bob, Alice between 2026-01-01 10:00:00 and 2026-01-03 10:00:00.",
        )

    async def test_summarize_thread_rejects_bad_id_and_missing_thread(self) -> None:
        bad = await self._run("assistant.summarize_inbox_thread", {"threadId": "abc"})
        self.assertEqual(bad.result.error.code, "INVALID_THREAD_ID")
        self.assertEqual(self.odoo.calls, [])

        missing = await self._run("assistant.summarize_inbox_thread", {"threadId": "99"})
        self.assertEqual(missing.result.error.code, "THREAD_NOT_FOUND")

    async def test_draft_email_tones(self) -> None:
        formal = await self._run(
            "assistant.draft_email",
            {"to": "jane.doe@example.com", "subject": "Q3 report", "context": "Numbers are in", "tone": "formal"},
        )
        body = formal.result.data["body"]
        self.assertTrue(body.startswith("Dear Jane Doe,"))
        self.assertIn("regarding Q3 report. Numbers are in.", body)
        self.assertTrue(body.endswith("Yours sincerely,"))

        default = await self._run("assistant.draft_email", {"to": "bob@example.com", "subject": "Hi", "context": "Lunch?"})
        self.assertEqual(default.result.data["tone"], "professional")
        self.assertTrue(default.result.data["body"].startswith("Hello Bob,"))

    async def test_create_expense_matches_product(self) -> None:
        self.odoo.rows["product.product"] = [{"id": 5, "name": "Travel"}]
        execution = await self._run(
            "assistant.create_expense",
            {"amount": 120, "description": "Taxi to airport", "category": "travel", "date": "2026-01-15"},
        )
        self.assertTrue(execution.result.data["categoryMatched"])
        self.assertEqual(execution.result.data["category"], "Travel")
        model, values = self.odoo.created[0]
        self.assertEqual(model, "hr.expense")
        self.assertEqual(
            values,
            {"name": "Taxi to airport", "unit_amount": 120.0, "quantity": 1, "product_id": 5, "date": "2026-01-15"},
        )

    async def test_create_expense_rejects_non_positive_amount(self) -> None:
        execution = await self._run("assistant.create_expense", {"amount": 0, "description": "x", "category": "meals"})
        self.assertEqual(execution.result.error.code, "INVALID_INPUT")
        self.assertEqual(self.odoo.created, [])

    async def test_system_health_details_toggle(self) -> None:
        full = await self._run("assistant.system_health_check", {})
        self.assertIn("details", full.result.data["checks"]["store"])

        trimmed = await self._run("assistant.system_health_check", {"includeDetails": False})
        self.assertNotIn("details", trimmed.result.data["checks"]["store"])
        self.assertEqual(self.health_calls, 2)


class HealthCheckTests(unittest.IsolatedAsyncioTestCase):
    def test_roll_up_status(self) -> None:
        passing = {"status": "pass"}
        self.assertEqual(roll_up_status({"store": passing, "odoo": passing, "disk": passing}), "healthy")
        self.assertEqual(roll_up_status({"store": passing, "odoo": {"status": "warn"}, "disk": passing}), "degraded")
        self.assertEqual(roll_up_status({"store": passing, "odoo": {"status": "fail"}, "disk": passing}), "degraded")
        self.assertEqual(roll_up_status({"store": {"status": "fail"}, "odoo": passing, "disk": passing}), "unhealthy")

    async def test_reachable_store_and_odoo(self) -> None:
        report = await run_system_health_check(InMemoryStore(), FakeOdoo())
        self.assertEqual(report["checks"]["store"]["status"], "pass")
        self.assertEqual(report["checks"]["odoo"]["status"], "pass")
        self.assertEqual(report["checks"]["odoo"]["details"]["serverVersion"], "17.0")
        self.assertIn(report["status"], {"healthy", "degraded"})
        self.assertIn("uptime", report)

    async def test_failing_store_is_unhealthy(self) -> None:
        report = await run_system_health_check(FailingStore(), FakeOdoo())
        self.assertEqual(report["status"], "unhealthy")
        self.assertIn("store down", report["checks"]["store"]["message"])

    async def test_unconfigured_odoo_warns(self) -> None:
        odoo = FakeOdoo()
        odoo.url = ""
        report = await run_system_health_check(InMemoryStore(), odoo)
        self.assertEqual(report["checks"]["odoo"]["status"], "warn")
        self.assertEqual(report["status"], "degraded")


if __name__ == "__main__":
    unittest.main()
