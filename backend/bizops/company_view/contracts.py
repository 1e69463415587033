from __future__ import annotations

from typing import Dict, List, Literal

from pydantic import Field

from bizops.assistant.contracts import CamelModel

SectionKey = Literal["accounting", "crm", "projects", "helpdesk", "inventory"]
InvoiceStatus = Literal["draft", "posted", "paid", "overdue", "unknown"]

RECOMMENDED_POLL_INTERVAL_MS = 30000


class InvoiceRow(CamelModel):
    id: str
    number: str
    partner_name: str
    amount_total: float
    currency: str
    status: InvoiceStatus
    invoice_date: str | None = None
    due_date: str | None = None


class LeadRow(CamelModel):
    id: str
    name: str
    partner_name: str | None = None
    stage_name: str | None = None
    expected_revenue: float | None = None
    probability: float | None = None


class TaskRow(CamelModel):
    id: str
    name: str
    project_name: str | None = None
    stage_name: str | None = None
    assignee_name: str | None = None
    deadline: str | None = None


class TicketRow(CamelModel):
    id: str
    name: str
    partner_name: str | None = None
    stage_name: str | None = None
    priority: str | None = None


class LowStockRow(CamelModel):
    id: str
    product_name: str
    qty_available: float
    reorder_min_qty: float | None = None


class AccountingSection(CamelModel):
    recent_invoices: List[InvoiceRow] = Field(default_factory=list)


class CrmSection(CamelModel):
    open_leads: List[LeadRow] = Field(default_factory=list)


class ProjectsSection(CamelModel):
    open_tasks: List[TaskRow] = Field(default_factory=list)


class HelpdeskSection(CamelModel):
    open_tickets: List[TicketRow] = Field(default_factory=list)


class InventorySection(CamelModel):
    low_stock_items: List[LowStockRow] = Field(default_factory=list)


class CompanyKpis(CamelModel):
    open_invoices_count: int | None = None
    overdue_invoices_count: int | None = None
    open_leads_count: int | None = None
    open_tasks_count: int | None = None
    open_tickets_count: int | None = None
    low_stock_items_count: int | None = None


class CompanySections(CamelModel):
    accounting: AccountingSection = Field(default_factory=AccountingSection)
    crm: CrmSection = Field(default_factory=CrmSection)
    projects: ProjectsSection = Field(default_factory=ProjectsSection)
    helpdesk: HelpdeskSection = Field(default_factory=HelpdeskSection)
    inventory: InventorySection = Field(default_factory=InventorySection)


class SectionError(CamelModel):
    message: str
    is_module_missing: bool = False
    is_auth_error: bool = False


class CompanyViewSnapshot(CamelModel):
    tenant_id: str
    refreshed_at: str
    recommended_poll_interval_ms: int = RECOMMENDED_POLL_INTERVAL_MS
    kpis: CompanyKpis = Field(default_factory=CompanyKpis)
    sections: CompanySections = Field(default_factory=CompanySections)
    errors_by_section: Dict[SectionKey, SectionError] = Field(default_factory=dict)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
