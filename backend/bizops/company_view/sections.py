"""Odoo read queries behind the five company view sections.

Each fetcher is a blocking function ``(client, today) -> (section, kpis)``
that raises on any upstream failure. Isolation, timeouts and empty fallbacks
are the aggregator's job.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Tuple

from pydantic import BaseModel

from bizops.services.odoo_rpc import OdooAuthError, OdooClient, OdooRpcError

from .contracts import (
    AccountingSection,
    CrmSection,
    HelpdeskSection,
    InventorySection,
    InvoiceRow,
    LeadRow,
    LowStockRow,
    ProjectsSection,
    SectionError,
    TaskRow,
    TicketRow,
)

SECTION_ROWS = 10
INVENTORY_WINDOW = 100

SectionKpis = Dict[str, int | None]
SectionFetcher = Callable[[OdooClient, date], Tuple[BaseModel, SectionKpis]]

_CUSTOMER_INVOICES = [["move_type", "in", ["out_invoice", "out_refund"]], ["state", "=", "posted"]]
_UNPAID = ["payment_state", "in", ["not_paid", "partial"]]


def _m2o_name(value: Any) -> str | None:
    # Odoo many2one values come back as [id, display_name], or False when empty.
    if isinstance(value, (list, tuple)) and len(value) > 1:
        return str(value[1])
    return None


def _text_or_none(value: Any) -> str | None:
    return str(value) if value not in (None, False, "") else None


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def invoice_status(row: Dict[str, Any], today: date) -> str:
    payment_state = row.get("payment_state")
    state = row.get("state")
    if payment_state == "paid":
        return "paid"
    if state == "posted" and payment_state == "not_paid":
        due = _parse_date(row.get("invoice_date_due"))
        return "overdue" if due is not None and due < today else "posted"
    if state == "draft":
        return "draft"
    return "unknown"


def fetch_accounting(client: OdooClient, today: date) -> Tuple[AccountingSection, SectionKpis]:
    rows = client.search_read(
        "account.move",
        list(_CUSTOMER_INVOICES),
        fields=[
            "id",
            "name",
            "partner_id",
            "amount_total",
            "currency_id",
            "state",
            "payment_state",
            "invoice_date",
            "invoice_date_due",
        ],
        limit=SECTION_ROWS,
        order="invoice_date desc",
    )
    open_count = client.search_count("account.move", [*_CUSTOMER_INVOICES, _UNPAID])
    overdue_count = client.search_count(
        "account.move",
        [*_CUSTOMER_INVOICES, _UNPAID, ["invoice_date_due", "<", today.isoformat()]],
    )
    invoices = [
        InvoiceRow(
            id=str(row["id"]),
            number=row.get("name") or "",
            partner_name=_m2o_name(row.get("partner_id")) or "Unknown",
            amount_total=row.get("amount_total") or 0,
            currency=_m2o_name(row.get("currency_id")) or "USD",
            status=invoice_status(row, today),
            invoice_date=_text_or_none(row.get("invoice_date")),
            due_date=_text_or_none(row.get("invoice_date_due")),
        )
        for row in rows
    ]
    return AccountingSection(recent_invoices=invoices), {
        "open_invoices_count": open_count,
        "overdue_invoices_count": overdue_count,
    }


def fetch_crm(client: OdooClient, today: date) -> Tuple[CrmSection, SectionKpis]:
    domain = [["type", "=", "opportunity"], ["active", "=", True]]
    rows = client.search_read(
        "crm.lead",
        domain,
        fields=["id", "name", "partner_id", "stage_id", "expected_revenue", "probability"],
        limit=SECTION_ROWS,
        order="expected_revenue desc",
    )
    count = client.search_count("crm.lead", domain)
    leads = [
        LeadRow(
            id=str(row["id"]),
            name=row.get("name") or "",
            partner_name=_m2o_name(row.get("partner_id")),
            stage_name=_m2o_name(row.get("stage_id")),
            expected_revenue=row.get("expected_revenue") or None,
            probability=row.get("probability") or None,
        )
        for row in rows
    ]
    return CrmSection(open_leads=leads), {"open_leads_count": count}


def fetch_projects(client: OdooClient, today: date) -> Tuple[ProjectsSection, SectionKpis]:
    domain = [["active", "=", True]]
    rows = client.search_read(
        "project.task",
        domain,
        fields=["id", "name", "project_id", "stage_id", "user_ids", "date_deadline"],
        limit=SECTION_ROWS,
        order="date_deadline asc",
    )
    count = client.search_count("project.task", domain)
    tasks = []
    for row in rows:
        assignees = row.get("user_ids") or []
        tasks.append(
            TaskRow(
                id=str(row["id"]),
                name=row.get("name") or "",
                project_name=_m2o_name(row.get("project_id")),
                stage_name=_m2o_name(row.get("stage_id")),
                # user_ids is a plain id list; no name lookup is made for it.
                assignee_name=str(assignees[0]) if assignees else None,
                deadline=_text_or_none(row.get("date_deadline")),
            )
        )
    return ProjectsSection(open_tasks=tasks), {"open_tasks_count": count}


def fetch_helpdesk(client: OdooClient, today: date) -> Tuple[HelpdeskSection, SectionKpis]:
    domain = [["active", "=", True]]
    rows = client.search_read(
        "helpdesk.ticket",
        domain,
        fields=["id", "name", "partner_id", "stage_id", "priority"],
        limit=SECTION_ROWS,
        order="priority desc, create_date desc",
    )
    count = client.search_count("helpdesk.ticket", domain)
    tickets = [
        TicketRow(
            id=str(row["id"]),
            name=row.get("name") or "",
            partner_name=_m2o_name(row.get("partner_id")),
            stage_name=_m2o_name(row.get("stage_id")),
            priority=_text_or_none(row.get("priority")),
        )
        for row in rows
    ]
    return HelpdeskSection(open_tickets=tickets), {"open_tickets_count": count}


def is_low_stock(row: Dict[str, Any]) -> bool:
    minimum = row.get("reordering_min_qty") or 0
    return minimum > 0 and (row.get("qty_available") or 0) < minimum


def fetch_inventory(client: OdooClient, today: date) -> Tuple[InventorySection, SectionKpis]:
    rows = client.search_read(
        "product.product",
        [["type", "=", "product"], ["active", "=", True]],
        fields=["id", "display_name", "qty_available", "reordering_min_qty"],
        limit=INVENTORY_WINDOW,
    )
    # Odoo domains cannot compare two fields, so the filter runs here.
    low_stock = [row for row in rows if is_low_stock(row)]
    items = [
        LowStockRow(
            id=str(row["id"]),
            product_name=row.get("display_name") or "",
            qty_available=row.get("qty_available") or 0,
            reorder_min_qty=row.get("reordering_min_qty") or None,
        )
        for row in low_stock[:SECTION_ROWS]
    ]
    return InventorySection(low_stock_items=items), {"low_stock_items_count": len(low_stock)}


@dataclass(frozen=True)
class SectionSpec:
    name: str
    model: str
    fetch: SectionFetcher
    empty: Callable[[], BaseModel]
    kpi_keys: Tuple[str, ...]


SECTIONS: List[SectionSpec] = [
    SectionSpec(
        "accounting",
        "account.move",
        fetch_accounting,
        AccountingSection,
        ("open_invoices_count", "overdue_invoices_count"),
    ),
    SectionSpec("crm", "crm.lead", fetch_crm, CrmSection, ("open_leads_count",)),
    SectionSpec("projects", "project.task", fetch_projects, ProjectsSection, ("open_tasks_count",)),
    SectionSpec("helpdesk", "helpdesk.ticket", fetch_helpdesk, HelpdeskSection, ("open_tickets_count",)),
    SectionSpec("inventory", "product.product", fetch_inventory, InventorySection, ("low_stock_items_count",)),
]


def classify_section_error(spec: SectionSpec, exc: BaseException) -> SectionError:
    message = str(exc) or f"Failed to fetch {spec.name} data"
    lowered = message.lower()
    missing_phrase = any(phrase in lowered for phrase in ("not found", "does not exist", "doesn't exist"))
    is_module_missing = missing_phrase and (
        spec.model in message or (isinstance(exc, OdooRpcError) and exc.model == spec.model)
    )
    return SectionError(
        message=message,
        is_module_missing=is_module_missing,
        is_auth_error=isinstance(exc, OdooAuthError) or "authentication" in lowered,
    )
