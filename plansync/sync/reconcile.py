"""Reconciliation of a remote plan scan against stored plans."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional

from plansync.ingest.scanner import RemotePlanSummary
from plansync.ingest.schemas import ELECTRICITY_FUEL_TYPES


@dataclass
class StoredPlanState:
    last_updated: Optional[datetime]
    is_active: bool


@dataclass
class ReconciliationResult:
    """Classification of one retailer's plans.

    ``to_fetch`` keeps remote scan order; ``to_deactivate`` only ever holds
    plans that are stored, active and absent from the remote list.
    """

    to_fetch: list[str] = field(default_factory=list)
    to_deactivate: list[str] = field(default_factory=list)
    new_count: int = 0
    updated_count: int = 0
    reactivated_count: int = 0
    unchanged_count: int = 0
    gas_skipped_count: int = 0

    @property
    def deleted_count(self) -> int:
        return len(self.to_deactivate)

    @property
    def electricity_count(self) -> int:
        return self.new_count + self.updated_count + self.reactivated_count + self.unchanged_count

    def counts(self) -> dict[str, int]:
        return {
            "newCount": self.new_count,
            "updatedCount": self.updated_count,
            "reactivatedCount": self.reactivated_count,
            "unchangedCount": self.unchanged_count,
            "deletedCount": self.deleted_count,
            "gasSkippedCount": self.gas_skipped_count,
        }


def _is_newer(remote: Optional[datetime], stored: Optional[datetime]) -> bool:
    # Strictly greater only; an unknown remote timestamp never triggers a fetch
    if remote is None:
        return False
    if stored is None:
        return True
    return remote > stored


def reconcile(
    remote: Mapping[str, RemotePlanSummary],
    stored: Mapping[str, StoredPlanState],
    complete: bool = True,
    force: bool = False,
) -> ReconciliationResult:
    """
    Classify plans as new, updated, unchanged or deleted.

    Args:
        remote: Scanned plan summaries keyed by plan id
        stored: Persisted state of the retailer's plans keyed by plan id
        complete: Whether ``remote`` is the full plan list; a partial list
            never deactivates anything
        force: Fetch every listed electricity plan regardless of timestamps

    Returns:
        ReconciliationResult
    """
    result = ReconciliationResult()

    for plan_id, summary in remote.items():
        if summary.fuel_type not in ELECTRICITY_FUEL_TYPES:
            result.gas_skipped_count += 1
            continue

        existing = stored.get(plan_id)
        if existing is None:
            result.to_fetch.append(plan_id)
            result.new_count += 1
        elif _is_newer(summary.last_updated, existing.last_updated):
            result.to_fetch.append(plan_id)
            result.updated_count += 1
        elif not existing.is_active:
            # back on the remote list after being deactivated
            result.to_fetch.append(plan_id)
            result.reactivated_count += 1
        elif force:
            result.to_fetch.append(plan_id)
            result.updated_count += 1
        else:
            result.unchanged_count += 1

    if not complete:
        return result

    for plan_id, existing in stored.items():
        if plan_id not in remote and existing.is_active:
            result.to_deactivate.append(plan_id)

    return result
