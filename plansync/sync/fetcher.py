"""Chunked detail fetching for plans that need a refresh."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Mapping, Optional, Sequence

from plansync.ingest.cdr_client import CDRClient, CDRError
from plansync.ingest.plan_parser import ParsedPlan, parse_plan_detail
from plansync.ingest.retailers import RetailerDescriptor
from plansync.ingest.schemas import PlanDecodeError, decode_plan_detail
from plansync.metrics import plan_detail_fetches_total

logger = logging.getLogger(__name__)


def chunk_bounds(total: int, cursor: int, chunk_size: int) -> tuple[int, int, Optional[int]]:
    """
    Slice bounds for one chunk of a fetch list.

    Args:
        total: Length of the fetch list
        cursor: Offset of the first item in this chunk
        chunk_size: Maximum items per chunk (> 0)

    Returns:
        (start, end, next_cursor) where next_cursor is None on the last chunk
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if cursor < 0:
        raise ValueError("cursor must not be negative")
    start = min(cursor, total)
    end = min(cursor + chunk_size, total)
    next_cursor = end if end < total else None
    return start, end, next_cursor


@dataclass
class FetchOutcome:
    index: int
    plan_id: str
    plan: Optional[ParsedPlan] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.plan is not None


class DetailFetcher:
    """Fetches and parses plan details one at a time, paced by the client."""

    def __init__(self, client: CDRClient):
        self.client = client

    async def fetch_one(
        self,
        retailer: RetailerDescriptor,
        plan_id: str,
        listed_at: Optional[datetime] = None,
    ) -> ParsedPlan:
        payload = await self.client.get_plan_detail(retailer, plan_id)
        detail = decode_plan_detail(payload)
        plan = parse_plan_detail(retailer, detail)
        # reconciliation compares against the plan-list timestamp, so store that one
        if listed_at is not None:
            plan.last_updated = listed_at
        return plan

    async def iter_chunk(
        self,
        retailer: RetailerDescriptor,
        plan_ids: Sequence[str],
        start: int,
        end: int,
        listed_updates: Optional[Mapping[str, Optional[datetime]]] = None,
    ) -> AsyncIterator[FetchOutcome]:
        """
        Yield one outcome per plan in ``plan_ids[start:end]``, in order.

        A failed fetch or parse yields an outcome with ``error`` set; it
        never stops the chunk. ``listed_updates`` maps plan ids to their
        plan-list ``lastUpdated``, which takes precedence over the detail's.
        """
        for index in range(start, end):
            plan_id = plan_ids[index]
            try:
                plan = await self.fetch_one(retailer, plan_id, (listed_updates or {}).get(plan_id))
            except (CDRError, PlanDecodeError) as e:
                plan_detail_fetches_total.labels(retailer=retailer.slug, status="error").inc()
                logger.warning(f"Skipping plan {plan_id} ({retailer.slug}): {e}")
                yield FetchOutcome(index=index, plan_id=plan_id, error=str(e))
                continue
            except Exception as e:
                plan_detail_fetches_total.labels(retailer=retailer.slug, status="error").inc()
                logger.error(f"Failed to parse plan {plan_id} ({retailer.slug}): {e}", exc_info=True)
                yield FetchOutcome(index=index, plan_id=plan_id, error=str(e))
                continue

            plan_detail_fetches_total.labels(retailer=retailer.slug, status="ok").inc()
            yield FetchOutcome(index=index, plan_id=plan_id, plan=plan)
