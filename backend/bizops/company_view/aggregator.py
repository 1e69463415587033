from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Sequence, Tuple

from pydantic import BaseModel

from bizops import config
from bizops.services.odoo_rpc import OdooClient, get_odoo_client

from .cache import SnapshotCache
from .contracts import CompanyKpis, CompanySections, CompanyViewSnapshot, SectionError
from .sections import SECTIONS, SectionKpis, SectionSpec, classify_section_error

logger = logging.getLogger(__name__)

SectionOutcome = Tuple[BaseModel, SectionKpis, SectionError | None]


def _empty_outcome(spec: SectionSpec, error: SectionError) -> SectionOutcome:
    return spec.empty(), {key: None for key in spec.kpi_keys}, error


class CompanyViewAggregator:
    """Fans out the five section fetchers under a per-section timeout and a total budget."""

    def __init__(
        self,
        odoo: Callable[[], OdooClient] = get_odoo_client,
        *,
        cache: SnapshotCache | None = None,
        section_timeout_s: float | None = None,
        total_budget_s: float | None = None,
        sections: Sequence[SectionSpec] = SECTIONS,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._odoo = odoo
        self.cache = cache if cache is not None else SnapshotCache()
        self._section_timeout_s = (
            section_timeout_s if section_timeout_s is not None else config.COMPANY_VIEW_SECTION_TIMEOUT_SEC
        )
        self._total_budget_s = total_budget_s if total_budget_s is not None else config.COMPANY_VIEW_TOTAL_BUDGET_SEC
        self._sections: List[SectionSpec] = list(sections)
        self._today = today

    async def get_company_view(self, tenant_id: str) -> Tuple[CompanyViewSnapshot, bool]:
        """Return ``(snapshot, cache_hit)``. Never raises for upstream failures."""
        cached = self.cache.get(tenant_id)
        if cached is not None:
            logger.info("Company view cache hit: tenant=%s", tenant_id)
            return cached, True

        logger.info("Company view cache miss: tenant=%s, fetching sections", tenant_id)
        snapshot = await self._aggregate(tenant_id)
        self.cache.set(tenant_id, snapshot)
        return snapshot, False

    async def _run_section(self, spec: SectionSpec, client: OdooClient, today: date) -> SectionOutcome:
        try:
            section, kpis = await asyncio.wait_for(
                asyncio.to_thread(spec.fetch, client, today),
                timeout=self._section_timeout_s,
            )
        except asyncio.TimeoutError:
            timeout_ms = int(self._section_timeout_s * 1000)
            logger.warning("Company view section timed out: section=%s after %sms", spec.name, timeout_ms)
            return _empty_outcome(spec, SectionError(message=f"{spec.name} timeout after {timeout_ms}ms"))
        except Exception as exc:
            logger.error("Company view section failed: section=%s error=%s", spec.name, exc)
            return _empty_outcome(spec, classify_section_error(spec, exc))
        return section, kpis, None

    async def _aggregate(self, tenant_id: str) -> CompanyViewSnapshot:
        client = self._odoo()
        today = self._today()
        tasks: Dict[str, asyncio.Task[SectionOutcome]] = {
            spec.name: asyncio.create_task(self._run_section(spec, client, today)) for spec in self._sections
        }
        done, pending = await asyncio.wait(tasks.values(), timeout=self._total_budget_s)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "Company view total budget exceeded: tenant=%s pending=%s",
                tenant_id,
                sorted(name for name, task in tasks.items() if task in pending),
            )

        kpis: Dict[str, Any] = {}
        sections: Dict[str, BaseModel] = {}
        errors: Dict[str, SectionError] = {}
        budget_ms = int(self._total_budget_s * 1000)
        for spec in self._sections:
            task = tasks[spec.name]
            if task in done:
                section, section_kpis, error = task.result()
            else:
                section, section_kpis, error = _empty_outcome(
                    spec, SectionError(message=f"{spec.name} exceeded total budget of {budget_ms}ms")
                )
            sections[spec.name] = section
            kpis.update(section_kpis)
            if error is not None:
                errors[spec.name] = error

        return CompanyViewSnapshot(
            tenant_id=tenant_id,
            refreshed_at=datetime.now(tz=timezone.utc).isoformat(),
            kpis=CompanyKpis(**kpis),
            sections=CompanySections(**sections),
            errors_by_section=errors,
        )
