from __future__ import annotations

import json
import unittest
from datetime import date
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))
TESTS = Path(__file__).resolve().parent
if str(TESTS) not in sys.path:
    sys.path.append(str(TESTS))

from fakes import FakeOdoo, company_rows

from bizops.company_view.aggregator import CompanyViewAggregator
from bizops.company_view.cache import SnapshotCache
from bizops.company_view.sections import invoice_status, is_low_stock
from bizops.services.odoo_rpc import OdooAuthError, OdooRpcError

TODAY = date(2026, 2, 1)
SECTION_NAMES = {"accounting", "crm", "projects", "helpdesk", "inventory"}


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class CompanyViewAggregatorTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()

    def _aggregator(self, odoo: FakeOdoo, **kwargs) -> CompanyViewAggregator:
        kwargs.setdefault("section_timeout_s", 1.0)
        kwargs.setdefault("total_budget_s", 2.0)
        return CompanyViewAggregator(
            lambda: odoo,
            cache=SnapshotCache(30, clock=self.clock),
            today=lambda: TODAY,
            **kwargs,
        )

    async def test_all_sections_succeed(self) -> None:
        odoo = FakeOdoo(rows=company_rows(), counts={"account.move": 4})
        snapshot, cache_hit = await self._aggregator(odoo).get_company_view("t1")
        payload = snapshot.to_payload()

        self.assertFalse(cache_hit)
        self.assertEqual(payload["tenantId"], "t1")
        self.assertEqual(payload["recommendedPollIntervalMs"], 30000)
        self.assertEqual(set(payload["sections"]), SECTION_NAMES)
        self.assertEqual(payload["errorsBySection"], {})
        self.assertEqual(payload["kpis"]["openInvoicesCount"], 4)
        self.assertEqual(payload["kpis"]["lowStockItemsCount"], 1)

        invoice = payload["sections"]["accounting"]["recentInvoices"][0]
        self.assertEqual(invoice["partnerName"], "Acme Corp")
        self.assertEqual(invoice["currency"], "EUR")
        self.assertEqual(invoice["status"], "overdue")
        lead = payload["sections"]["crm"]["openLeads"][0]
        self.assertIsNone(lead["partnerName"])
        self.assertEqual(lead["stageName"], "Qualified")
        task = payload["sections"]["projects"]["openTasks"][0]
        self.assertEqual(task["assigneeName"], "5")
        self.assertIsNone(task["deadline"])
        items = payload["sections"]["inventory"]["lowStockItems"]
        self.assertEqual([item["productName"] for item in items], ["Widget"])

    async def test_one_failing_section_is_isolated(self) -> None:
        odoo = FakeOdoo(
            rows=company_rows(),
            failures={"helpdesk.ticket": OdooRpcError("Object helpdesk.ticket doesn't exist", model="helpdesk.ticket")},
        )
        snapshot, _ = await self._aggregator(odoo).get_company_view("t1")
        payload = snapshot.to_payload()

        self.assertEqual(set(payload["sections"]), SECTION_NAMES)
        self.assertEqual(list(payload["errorsBySection"]), ["helpdesk"])
        error = payload["errorsBySection"]["helpdesk"]
        self.assertTrue(error["isModuleMissing"])
        self.assertFalse(error["isAuthError"])
        self.assertEqual(payload["sections"]["helpdesk"]["openTickets"], [])
        self.assertIsNone(payload["kpis"]["openTicketsCount"])

        self.assertEqual(len(payload["sections"]["accounting"]["recentInvoices"]), 1)
        self.assertEqual(len(payload["sections"]["crm"]["openLeads"]), 1)
        self.assertEqual(len(payload["sections"]["projects"]["openTasks"]), 1)
        self.assertEqual(len(payload["sections"]["inventory"]["lowStockItems"]), 1)
        self.assertEqual(payload["kpis"]["openLeadsCount"], 1)

    async def test_auth_failure_is_flagged(self) -> None:
        odoo = FakeOdoo(rows=company_rows(), failures={"crm.lead": OdooAuthError("Odoo authentication failed: bad key")})
        snapshot, _ = await self._aggregator(odoo).get_company_view("t1")
        error = snapshot.errors_by_section["crm"]
        self.assertTrue(error.is_auth_error)
        self.assertFalse(error.is_module_missing)

    async def test_slow_section_times_out_alone(self) -> None:
        odoo = FakeOdoo(rows=company_rows(), delays={"crm.lead": 0.5})
        snapshot, _ = await self._aggregator(odoo, section_timeout_s=0.05).get_company_view("t1")
        self.assertEqual(list(snapshot.errors_by_section), ["crm"])
        self.assertIn("timeout", snapshot.errors_by_section["crm"].message)
        self.assertEqual(snapshot.sections.crm.open_leads, [])
        self.assertIsNone(snapshot.kpis.open_leads_count)
        self.assertEqual(snapshot.kpis.open_tasks_count, 1)

    async def test_total_budget_still_returns_every_section(self) -> None:
        odoo = FakeOdoo(rows=company_rows(), delays={"product.product": 0.4, "account.move": 0.4})
        snapshot, _ = await self._aggregator(odoo, section_timeout_s=1.0, total_budget_s=0.1).get_company_view("t1")
        payload = snapshot.to_payload()
        self.assertEqual(set(payload["sections"]), SECTION_NAMES)
        self.assertEqual(set(payload["errorsBySection"]), {"inventory", "accounting"})
        self.assertIn("total budget", payload["errorsBySection"]["inventory"]["message"])
        self.assertIsNone(payload["kpis"]["openInvoicesCount"])
        self.assertIsNone(payload["kpis"]["overdueInvoicesCount"])
        self.assertEqual(payload["kpis"]["openTicketsCount"], 1)

    async def test_cache_hit_within_ttl_and_refetch_after(self) -> None:
        odoo = FakeOdoo(rows=company_rows())
        aggregator = self._aggregator(odoo)

        first, first_hit = await aggregator.get_company_view("t1")
        calls_after_first = len(odoo.calls)
        self.clock.now += 29
        second, second_hit = await aggregator.get_company_view("t1")

        self.assertFalse(first_hit)
        self.assertTrue(second_hit)
        self.assertEqual(len(odoo.calls), calls_after_first)
        self.assertEqual(json.dumps(first.to_payload()), json.dumps(second.to_payload()))

        self.clock.now += 2
        third, third_hit = await aggregator.get_company_view("t1")
        self.assertFalse(third_hit)
        self.assertGreater(len(odoo.calls), calls_after_first)
        self.assertIsNot(third, first)

    async def test_cache_is_per_tenant(self) -> None:
        odoo = FakeOdoo(rows=company_rows())
        aggregator = self._aggregator(odoo)
        await aggregator.get_company_view("t1")
        snapshot, hit = await aggregator.get_company_view("t2")
        self.assertFalse(hit)
        self.assertEqual(snapshot.tenant_id, "t2")
        self.assertEqual(len(aggregator.cache), 2)


class SectionRulesTests(unittest.TestCase):
    def test_invoice_status_mapping(self) -> None:
        self.assertEqual(invoice_status({"state": "posted", "payment_state": "paid"}, TODAY), "paid")
        self.assertEqual(
            invoice_status({"state": "posted", "payment_state": "not_paid", "invoice_date_due": "2026-01-31"}, TODAY),
            "overdue",
        )
        self.assertEqual(
            invoice_status({"state": "posted", "payment_state": "not_paid", "invoice_date_due": "2026-02-01"}, TODAY),
            "posted",
        )
        self.assertEqual(
            invoice_status({"state": "posted", "payment_state": "not_paid", "invoice_date_due": False}, TODAY),
            "posted",
        )
        self.assertEqual(invoice_status({"state": "draft", "payment_state": "not_paid"}, TODAY), "draft")
        self.assertEqual(invoice_status({"state": "posted", "payment_state": "partial"}, TODAY), "unknown")

    def test_low_stock_rule(self) -> None:
        self.assertTrue(is_low_stock({"qty_available": 1, "reordering_min_qty": 2}))
        self.assertFalse(is_low_stock({"qty_available": 2, "reordering_min_qty": 2}))
        self.assertFalse(is_low_stock({"qty_available": -1, "reordering_min_qty": 0}))
        self.assertFalse(is_low_stock({"qty_available": 0, "reordering_min_qty": False}))

    def test_cache_expiry_uses_clock(self) -> None:
        clock = FakeClock()
        cache = SnapshotCache(30, clock=clock)
        self.assertIsNone(cache.get("t1"))
        cache.set("t1", object())
        clock.now += 30
        self.assertIsNotNone(cache.get("t1"))
        clock.now += 0.5
        self.assertIsNone(cache.get("t1"))
        self.assertEqual(len(cache), 0)


if __name__ == "__main__":
    unittest.main()
