"""Persistence of parsed plans, deactivations and sync checkpoints."""

import logging
from datetime import datetime
from typing import Mapping, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plansync.db.models import Plan, SyncCheckpoint, TariffPeriod
from plansync.ingest.plan_parser import ParsedPlan
from plansync.ingest.schemas import ELECTRICITY_FUEL_TYPES
from plansync.metrics import plans_deactivated_total, plans_upserted_total
from plansync.sync.reconcile import StoredPlanState

logger = logging.getLogger(__name__)

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"

# keep IN (...) lists well under driver parameter limits
DEACTIVATE_BATCH = 500


async def load_stored_state(session: AsyncSession, retailer_slug: str) -> dict[str, StoredPlanState]:
    """Stored electricity plans of a retailer, keyed by plan id."""
    result = await session.execute(
        select(Plan.id, Plan.last_updated, Plan.is_active).where(
            Plan.retailer_id == retailer_slug,
            Plan.fuel_type.in_(ELECTRICITY_FUEL_TYPES),
        )
    )
    return {
        row.id: StoredPlanState(last_updated=row.last_updated, is_active=row.is_active)
        for row in result
    }


def _tariff_rows(parsed: ParsedPlan) -> list[TariffPeriod]:
    return [
        TariffPeriod(
            plan_id=parsed.id,
            type=period.type,
            display_name=period.display_name,
            rate=period.rate,
            time_windows=period.time_windows,
            sequence_order=period.sequence_order,
        )
        for period in parsed.tariff_periods
    ]


class PlanUpserter:
    """Writes plans one at a time, committing each so failures stay local."""

    async def upsert(self, session: AsyncSession, parsed: ParsedPlan) -> Optional[str]:
        """
        Create or replace one plan and all of its tariff periods.

        On update every column is overwritten and the tariff periods are
        deleted and recreated; the plan is (re)activated either way.

        Args:
            session: Database session
            parsed: Plan produced by the parser

        Returns:
            "created" or "updated", or None if the write failed
        """
        now = datetime.utcnow()
        columns = parsed.plan_columns()

        try:
            existing = await session.get(Plan, parsed.id, populate_existing=True)
            if existing is None:
                plan = Plan(**columns, is_active=True, created_at=now, updated_at=now)
                plan.tariff_periods = _tariff_rows(parsed)
                session.add(plan)
                action = ACTION_CREATED
            else:
                for key, value in columns.items():
                    setattr(existing, key, value)
                existing.is_active = True
                existing.updated_at = now
                await session.execute(
                    delete(TariffPeriod)
                    .where(TariffPeriod.plan_id == parsed.id)
                    .execution_options(synchronize_session=False)
                )
                session.add_all(_tariff_rows(parsed))
                action = ACTION_UPDATED

            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Failed to store plan {parsed.id}: {e}")
            return None

        plans_upserted_total.labels(retailer=parsed.retailer_id, action=action).inc()
        return action

    async def deactivate(self, session: AsyncSession, retailer_slug: str, plan_ids: Sequence[str]) -> int:
        """Soft-delete plans that left the remote list. Returns rows changed."""
        if not plan_ids:
            return 0

        now = datetime.utcnow()
        changed = 0
        ids = list(plan_ids)
        for i in range(0, len(ids), DEACTIVATE_BATCH):
            batch = ids[i:i + DEACTIVATE_BATCH]
            result = await session.execute(
                update(Plan)
                .where(Plan.id.in_(batch), Plan.is_active.is_(True))
                .values(is_active=False, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            changed += result.rowcount or 0
        await session.commit()

        plans_deactivated_total.labels(retailer=retailer_slug).inc(changed)
        return changed


async def save_checkpoint(
    session: AsyncSession,
    retailer_slug: str,
    plan_ids: Sequence[str],
    counts: dict,
    listed_updates: Optional[Mapping[str, Optional[datetime]]] = None,
    cursor_offset: int = 0,
) -> SyncCheckpoint:
    """
    Store the ordered fetch list of a retailer, replacing any previous one.

    Args:
        session: Database session
        retailer_slug: Retailer the list belongs to
        plan_ids: Plans still to fetch, in scan order
        counts: Reconciliation counts reported with every chunk
        listed_updates: Plan-list ``lastUpdated`` of each queued plan
        cursor_offset: Request cursor that maps to the first queued plan
    """
    now = datetime.utcnow()
    checkpoint = await session.get(SyncCheckpoint, retailer_slug, populate_existing=True)
    if checkpoint is None:
        checkpoint = SyncCheckpoint(retailer_slug=retailer_slug, created_at=now)
        session.add(checkpoint)
    else:
        checkpoint.created_at = now
    checkpoint.plan_ids = list(plan_ids)
    checkpoint.counts = dict(counts)
    checkpoint.listed_updates = {
        plan_id: value.isoformat() if value is not None else None
        for plan_id, value in (listed_updates or {}).items()
    }
    checkpoint.cursor_offset = cursor_offset
    checkpoint.completed = False
    checkpoint.updated_at = now
    await session.commit()
    return checkpoint


async def load_checkpoint(session: AsyncSession, retailer_slug: str) -> Optional[SyncCheckpoint]:
    return await session.get(SyncCheckpoint, retailer_slug, populate_existing=True)


async def complete_checkpoint(session: AsyncSession, retailer_slug: str) -> None:
    await session.execute(
        update(SyncCheckpoint)
        .where(SyncCheckpoint.retailer_slug == retailer_slug)
        .values(completed=True, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    await session.commit()


def listed_updates(checkpoint: SyncCheckpoint) -> dict[str, Optional[datetime]]:
    """Plan-list timestamps saved with a checkpoint, parsed back to datetimes."""
    return {
        plan_id: datetime.fromisoformat(value) if value else None
        for plan_id, value in (checkpoint.listed_updates or {}).items()
    }
