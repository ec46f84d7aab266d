"""Change-detection scanner: walks a retailer's plan list."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from plansync.config import settings
from plansync.ingest.cdr_client import CDRClient, CDRError
from plansync.ingest.retailers import RetailerDescriptor
from plansync.ingest.schemas import PlanDecodeError, decode_plan_list_page, decode_plan_summary
from plansync.metrics import plan_list_pages_total

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], Awaitable[None]]


@dataclass
class RemotePlanSummary:
    plan_id: str
    last_updated: Optional[datetime]
    fuel_type: str
    customer_type: Optional[str] = None


@dataclass
class ScanResult:
    """Plans seen on the remote list, keyed by id in scan order."""

    retailer: RetailerDescriptor
    plans: dict[str, RemotePlanSummary] = field(default_factory=dict)
    pages_fetched: int = 0
    total_records: Optional[int] = None
    malformed: int = 0
    truncated: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def total_plans(self) -> int:
        return len(self.plans)


class PlanScanner:
    """Pages through the plan-list endpoint of one retailer."""

    def __init__(self, client: CDRClient, max_pages: Optional[int] = None):
        self.client = client
        self.max_pages = max_pages or settings.cdr_max_pages

    async def scan(
        self,
        retailer: RetailerDescriptor,
        progress: Optional[ProgressCallback] = None,
    ) -> ScanResult:
        """
        Collect every plan summary the retailer publishes.

        Paging stops when a page is empty, when the reported total-pages
        count is reached, or after ``max_pages`` (the result is then marked
        ``truncated``). Any failed page aborts the scan: partial results are
        discarded and ``error`` is set.

        Args:
            retailer: Retailer to scan
            progress: Optional coroutine receiving progress lines

        Returns:
            ScanResult
        """
        result = ScanResult(retailer=retailer)
        page = 1

        while page <= self.max_pages:
            try:
                payload = await self.client.get_plan_list(retailer, page)
                envelope = decode_plan_list_page(payload)
            except (CDRError, PlanDecodeError) as e:
                plan_list_pages_total.labels(retailer=retailer.slug, status="error").inc()
                logger.warning(
                    f"Scan of {retailer.name} aborted on page {page} "
                    f"after {result.pages_fetched} page(s): {e}"
                )
                return ScanResult(
                    retailer=retailer,
                    pages_fetched=result.pages_fetched,
                    error=f"Plan list page {page} failed: {e}",
                )

            plan_list_pages_total.labels(retailer=retailer.slug, status="ok").inc()
            result.pages_fetched += 1
            if envelope.meta.total_records is not None:
                result.total_records = envelope.meta.total_records

            entries = envelope.data.plans
            for entry in entries:
                try:
                    summary = decode_plan_summary(entry)
                except PlanDecodeError as e:
                    result.malformed += 1
                    logger.debug(f"Skipping malformed plan entry from {retailer.slug}: {e}")
                    continue
                result.plans[summary.plan_id] = RemotePlanSummary(
                    plan_id=summary.plan_id,
                    last_updated=summary.last_updated,
                    fuel_type=(summary.fuel_type or "").upper(),
                    customer_type=summary.customer_type,
                )

            if progress is not None:
                await progress(
                    f"  Page {page}: {len(entries)} plans (total so far: {result.total_plans})"
                )

            if not entries:
                break
            total_pages = envelope.meta.total_pages
            if total_pages is not None and page >= total_pages:
                break
            if result.total_records is not None and result.total_plans >= result.total_records:
                break
            page += 1
        else:
            # more pages may exist; the list is not a full picture of the retailer
            result.truncated = True
            logger.warning(f"Scan of {retailer.name} stopped at the {self.max_pages} page limit")

        if result.malformed:
            logger.warning(f"{retailer.name}: {result.malformed} malformed plan entries skipped")
        return result
