"""Sync orchestration: scan, reconcile, deactivate, fetch and store.

One invocation walks the selected retailers strictly in sequence. Work for
a retailer is bounded by ``cursor``/``chunk_size`` over the ordered list of
plans that need a detail fetch; the list is checkpointed on the first chunk
so that later chunks slice exactly the same sequence.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from plansync.config import settings
from plansync.db.models import SyncCheckpoint
from plansync.ingest.cdr_client import CDRClient
from plansync.ingest.retailers import RetailerDescriptor, RetailerRegistry, UnknownRetailerError
from plansync.ingest.scanner import PlanScanner
from plansync.logging_config import get_logger
from plansync.metrics import retailer_sync_duration_seconds, sync_runs_total
from plansync.sync.fetcher import DetailFetcher, chunk_bounds
from plansync.sync.progress import ProgressChannel
from plansync.sync.reconcile import reconcile
from plansync.sync.upsert import (
    ACTION_CREATED,
    PlanUpserter,
    complete_checkpoint,
    listed_updates,
    load_checkpoint,
    load_stored_state,
    save_checkpoint,
)

logger = logging.getLogger(__name__)

FATAL_ERROR = "Failed to sync energy plans"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncRequest:
    retailer: Optional[str] = None
    priority_only: bool = False
    all_retailers: bool = False
    # fetch every listed plan, not only new or changed ones
    force: bool = False
    cursor: int = 0
    chunk_size: int = field(default_factory=lambda: settings.default_chunk_size)


@dataclass
class RetailerSyncResult:
    """Outcome of one retailer within one invocation."""

    retailer: str
    slug: str
    success: bool = True
    pages_fetched: int = 0
    total_plans: int = 0
    new_count: int = 0
    updated_count: int = 0
    reactivated_count: int = 0
    skipped_count: int = 0
    deleted_count: int = 0
    gas_skipped_count: int = 0
    to_fetch_count: int = 0
    processed_count: int = 0
    stored_count: int = 0
    created_count: int = 0
    failed_count: int = 0
    has_more: bool = False
    next_cursor: Optional[int] = None
    resumed: bool = False
    duration: float = 0.0
    error: Optional[str] = None

    def apply_counts(self, counts: dict[str, Any]) -> None:
        self.total_plans = counts.get("totalPlans", 0)
        self.new_count = counts.get("newCount", 0)
        self.updated_count = counts.get("updatedCount", 0)
        self.reactivated_count = counts.get("reactivatedCount", 0)
        self.skipped_count = counts.get("unchangedCount", 0)
        self.deleted_count = counts.get("deletedCount", 0)
        self.gas_skipped_count = counts.get("gasSkippedCount", 0)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "retailer": self.retailer,
            "slug": self.slug,
            "success": self.success,
            "plans": self.stored_count,
            "storedCount": self.stored_count,
            "createdCount": self.created_count,
            "totalPlans": self.total_plans,
            "newCount": self.new_count,
            "updatedCount": self.updated_count,
            "reactivatedCount": self.reactivated_count,
            "skippedCount": self.skipped_count,
            "deletedCount": self.deleted_count,
            "gasSkippedCount": self.gas_skipped_count,
            "toFetchCount": self.to_fetch_count,
            "processedCount": self.processed_count,
            "failedCount": self.failed_count,
            "pagesFetched": self.pages_fetched,
            "hasMore": self.has_more,
            "nextCursor": self.next_cursor,
            "duration": round(self.duration, 2),
        }
        if self.error is not None:
            data["error"] = self.error
        return data


class SyncOrchestrator:
    """Runs sync invocations against the CDR endpoints and the plan store."""

    def __init__(
        self,
        client: CDRClient,
        registry: RetailerRegistry,
        session_factory: async_sessionmaker,
        scanner: Optional[PlanScanner] = None,
        fetcher: Optional[DetailFetcher] = None,
        upserter: Optional[PlanUpserter] = None,
        progress_every: Optional[int] = None,
    ):
        self.client = client
        self.registry = registry
        self.session_factory = session_factory
        self.scanner = scanner or PlanScanner(client)
        self.fetcher = fetcher or DetailFetcher(client)
        self.upserter = upserter or PlanUpserter()
        self.progress_every = progress_every or settings.progress_every

    async def run(
        self,
        request: SyncRequest,
        channel: ProgressChannel,
        trigger: str = "manual",
    ) -> dict[str, Any]:
        """
        Execute one sync invocation and finish ``channel`` with its result.

        Args:
            request: Retailer selection and chunk window
            channel: Progress channel (always receives a terminal event)
            trigger: Label for metrics ("manual", "cron", "scheduler")

        Returns:
            The terminal event payload
        """
        try:
            await channel.emit("Starting CDR plan sync...")
            try:
                retailers = self.registry.resolve(
                    request.retailer,
                    priority_only=request.priority_only,
                    all_retailers=request.all_retailers,
                )
            except UnknownRetailerError as e:
                await channel.warn(f"Error: {e}")
                sync_runs_total.labels(trigger=trigger, status="failed").inc()
                payload = {"done": True, "success": False, "error": str(e)}
                await channel.finish(payload)
                return payload

            if request.retailer:
                await channel.emit(f"Syncing single retailer: {retailers[0].name}")
            elif request.priority_only:
                await channel.emit(f"Syncing Big 3 only: {', '.join(r.name for r in retailers)}")
            elif request.all_retailers:
                await channel.emit(f"Syncing all {len(retailers)} registered retailers")
            else:
                await channel.emit(f"Syncing all top {len(retailers)} retailers")
            if request.force:
                await channel.emit("Full refresh: fetching every listed plan")
            if request.cursor > 0:
                await channel.emit(f"Resuming at cursor {request.cursor} (chunk size {request.chunk_size})")

            results: list[RetailerSyncResult] = []
            for retailer in retailers:
                results.append(await self._sync_retailer_safely(retailer, request, channel))

            total_stored = sum(r.stored_count for r in results)
            has_more = any(r.has_more for r in results)
            next_cursor = request.cursor + request.chunk_size if has_more else None

            if has_more:
                await channel.emit(
                    f"Chunk complete. Stored {total_stored} plans; continue with cursor={next_cursor}"
                )
            else:
                await channel.emit(f"Sync complete! Total electricity plans stored: {total_stored}")

            sync_runs_total.labels(trigger=trigger, status="success").inc()
            payload = {
                "done": True,
                "success": True,
                "totalPlans": total_stored,
                "retailers": [r.to_dict() for r in results],
                "nextCursor": next_cursor,
                "timestamp": _timestamp(),
            }
            await channel.finish(payload)
            return payload

        except Exception as e:
            logger.error(f"Fatal sync error: {e}", exc_info=True)
            sync_runs_total.labels(trigger=trigger, status="error").inc()
            payload = {"done": True, "success": False, "error": FATAL_ERROR, "details": str(e)}
            await channel.finish(payload)
            return payload

    async def _sync_retailer_safely(
        self,
        retailer: RetailerDescriptor,
        request: SyncRequest,
        channel: ProgressChannel,
    ) -> RetailerSyncResult:
        log = get_logger(__name__, retailer=retailer.slug)
        started = time.monotonic()
        result = RetailerSyncResult(retailer=retailer.name, slug=retailer.slug)
        try:
            async with self.session_factory() as session:
                await self._sync_retailer(session, retailer, request, channel, result)
        except Exception as e:
            log.error(f"Error syncing {retailer.name}: {e}", exc_info=True)
            await channel.warn(f"Error syncing {retailer.name}: {e}")
            result.success = False
            result.error = str(e)
            result.has_more = False
            result.next_cursor = None
        finally:
            result.duration = time.monotonic() - started
            retailer_sync_duration_seconds.labels(retailer=retailer.slug).observe(result.duration)
        return result

    async def _sync_retailer(
        self,
        session: AsyncSession,
        retailer: RetailerDescriptor,
        request: SyncRequest,
        channel: ProgressChannel,
        result: RetailerSyncResult,
    ) -> None:
        await channel.emit(f"Fetching plans from {retailer.name}...")

        cursor = request.cursor
        checkpoint: Optional[SyncCheckpoint] = None

        if cursor > 0:
            checkpoint = await load_checkpoint(session, retailer.slug)
            problem = self._checkpoint_problem(checkpoint, cursor)
            if problem is not None:
                await channel.warn(
                    f"  {problem} for {retailer.name}; rescanning, this chunk starts at the first plan"
                )
                checkpoint = None
            elif checkpoint.completed:
                result.apply_counts(checkpoint.counts or {})
                result.to_fetch_count = len(checkpoint.plan_ids)
                result.resumed = True
                await channel.emit(f"  {retailer.name}: already complete")
                return
            else:
                result.apply_counts(checkpoint.counts or {})
                result.resumed = True

        if checkpoint is None:
            checkpoint = await self._scan_and_reconcile(session, retailer, request, channel, result)
            if checkpoint is None:
                return

        plan_ids = list(checkpoint.plan_ids)
        total = len(plan_ids)
        result.to_fetch_count = total
        offset = checkpoint.cursor_offset
        start, end, next_index = chunk_bounds(total, cursor - offset, request.chunk_size)

        if start < end:
            await channel.emit(f"  Fetching details for plans {start + 1}-{end} of {total}")
        elif total == 0:
            await channel.emit(f"  {retailer.name}: nothing to fetch")

        chunk = self.fetcher.iter_chunk(retailer, plan_ids, start, end, listed_updates(checkpoint))
        async for outcome in chunk:
            position = outcome.index + 1
            if outcome.index == start or position % self.progress_every == 0:
                await channel.emit(f"  Fetching details: {position}/{total}...")

            if not outcome.ok:
                result.failed_count += 1
                await channel.warn(f"  Failed to fetch details for {outcome.plan_id}: {outcome.error}")
                continue

            action = await self.upserter.upsert(session, outcome.plan)
            if action is None:
                result.failed_count += 1
                await channel.warn(f"  Error storing plan {outcome.plan_id}")
                continue
            result.stored_count += 1
            if action == ACTION_CREATED:
                result.created_count += 1

        result.processed_count = end - start
        result.next_cursor = next_index + offset if next_index is not None else None
        result.has_more = next_index is not None

        if result.has_more:
            await channel.emit(
                f"  {retailer.name}: chunk done ({end}/{total}), more plans remain"
            )
        else:
            await complete_checkpoint(session, retailer.slug)
            await channel.emit(
                f"  {retailer.name}: complete, stored {result.stored_count} plans this chunk"
            )

    @staticmethod
    def _checkpoint_problem(checkpoint: Optional[SyncCheckpoint], cursor: int) -> Optional[str]:
        """Why a saved fetch list cannot serve ``cursor``, or None when it can."""
        if checkpoint is None:
            return "No saved fetch list"
        if cursor < checkpoint.cursor_offset:
            return f"Saved fetch list starts at cursor {checkpoint.cursor_offset}"
        age = datetime.utcnow() - checkpoint.created_at
        if age > timedelta(hours=settings.checkpoint_max_age_hours):
            return f"Saved fetch list is {age.total_seconds() / 3600:.0f}h old"
        return None

    async def _scan_and_reconcile(
        self,
        session: AsyncSession,
        retailer: RetailerDescriptor,
        request: SyncRequest,
        channel: ProgressChannel,
        result: RetailerSyncResult,
    ) -> Optional[SyncCheckpoint]:
        """Scan, reconcile and deactivate; returns the saved fetch list or None on scan failure."""
        scan = await self.scanner.scan(retailer, progress=channel.emit)
        result.pages_fetched = scan.pages_fetched

        if not scan.ok:
            # nothing is reconciled against a partial list
            await channel.warn(
                f"  {retailer.name} scan aborted after {scan.pages_fetched} page(s): {scan.error}"
            )
            result.success = False
            result.error = scan.error
            return None

        if scan.truncated:
            await channel.warn(
                f"  {retailer.name}: plan list cut off at {scan.pages_fetched} page(s); "
                f"no plans will be marked inactive"
            )

        stored = await load_stored_state(session, retailer.slug)
        recon = reconcile(scan.plans, stored, complete=not scan.truncated, force=request.force)

        await channel.emit(
            f"  {retailer.name}: {scan.total_plans} plans listed "
            f"({recon.electricity_count} electricity, {recon.gas_skipped_count} gas skipped)"
        )
        await channel.emit(
            f"  New: {recon.new_count}, updated: {recon.updated_count}, "
            f"reactivated: {recon.reactivated_count}, unchanged: {recon.unchanged_count}, "
            f"deleted: {recon.deleted_count}"
        )

        deactivated = await self.upserter.deactivate(session, retailer.slug, recon.to_deactivate)
        if recon.to_deactivate:
            await channel.emit(f"  Marked {deactivated} plans inactive")

        counts = {"totalPlans": recon.electricity_count, **recon.counts()}
        result.apply_counts(counts)
        return await save_checkpoint(
            session,
            retailer.slug,
            recon.to_fetch,
            counts,
            listed_updates={plan_id: scan.plans[plan_id].last_updated for plan_id in recon.to_fetch},
            cursor_offset=request.cursor,
        )

    async def run_to_completion(
        self,
        retailers: Optional[list[RetailerDescriptor]] = None,
        chunk_size: Optional[int] = None,
        chunk_delay: Optional[float] = None,
        trigger: str = "cron",
        force: bool = False,
    ) -> dict[str, Any]:
        """
        Sync each retailer chunk by chunk until it reports no further cursor.

        Args:
            retailers: Retailers to sync (default: the registry's top set)
            chunk_size: Plans per chunk
            chunk_delay: Seconds to wait between chunks
            force: Refetch every listed plan (full refresh)

        Returns:
            ``{success, duration, totalPlans, results, timestamp}``
        """
        chunk_size = chunk_size or settings.cron_chunk_size
        delay = settings.cron_chunk_delay_seconds if chunk_delay is None else chunk_delay
        started = time.monotonic()
        results = []

        for retailer in retailers if retailers is not None else self.registry.top():
            created = updated = errors = 0
            cursor = 0
            while True:
                channel = ProgressChannel(stream=False)
                payload = await self.run(
                    SyncRequest(retailer=retailer.slug, force=force, cursor=cursor, chunk_size=chunk_size),
                    channel,
                    trigger=trigger,
                )
                if not payload.get("success"):
                    errors += 1
                    break
                for item in payload["retailers"]:
                    created += item.get("createdCount", 0)
                    updated += item.get("storedCount", 0) - item.get("createdCount", 0)
                    if item.get("error"):
                        errors += 1
                if payload.get("nextCursor") is None:
                    break
                cursor = payload["nextCursor"]
                if delay > 0:
                    await asyncio.sleep(delay)

            results.append({"retailer": retailer.name, "new": created, "updated": updated, "errors": errors})
            logger.info(f"{retailer.name}: {created + updated} plans synced")

        duration = round(time.monotonic() - started)
        total = sum(r["new"] + r["updated"] for r in results)
        logger.info(f"Scheduled sync complete: {total} plans synced in {duration}s")
        return {
            "success": True,
            "duration": duration,
            "totalPlans": total,
            "results": results,
            "timestamp": _timestamp(),
        }
