"""Tests for plan reconciliation."""

from datetime import datetime, timedelta

from plansync.ingest.scanner import RemotePlanSummary
from plansync.sync.reconcile import StoredPlanState, reconcile

T0 = datetime(2025, 1, 1, 0, 0, 0)
T1 = T0 + timedelta(days=1)


def remote(*items):
    return {
        plan_id: RemotePlanSummary(plan_id=plan_id, last_updated=ts, fuel_type=fuel)
        for plan_id, ts, fuel in items
    }


class TestReconcile:
    def test_all_new_plans(self):
        result = reconcile(
            remote(("p1", T0, "ELECTRICITY"), ("p2", T0, "ELECTRICITY"), ("p3", T0, "ELECTRICITY")),
            {},
        )

        assert result.to_fetch == ["p1", "p2", "p3"]
        assert result.to_deactivate == []
        assert result.new_count == 3

    def test_new_updated_unchanged_deleted(self):
        stored = {
            "p1": StoredPlanState(last_updated=T0, is_active=True),
            "p2": StoredPlanState(last_updated=T0, is_active=True),
        }
        result = reconcile(remote(("p1", T0, "ELECTRICITY"), ("p3", T1, "ELECTRICITY")), stored)

        assert result.to_fetch == ["p3"]
        assert result.to_deactivate == ["p2"]
        assert result.unchanged_count == 1
        assert result.new_count == 1
        assert result.deleted_count == 1

    def test_equal_timestamp_is_unchanged(self):
        stored = {"p1": StoredPlanState(last_updated=T0, is_active=True)}
        result = reconcile(remote(("p1", T0, "ELECTRICITY")), stored)

        assert result.to_fetch == []
        assert result.updated_count == 0
        assert result.unchanged_count == 1

    def test_strictly_newer_timestamp_is_updated(self):
        stored = {"p1": StoredPlanState(last_updated=T0, is_active=True)}
        result = reconcile(remote(("p1", T0 + timedelta(seconds=1), "ELECTRICITY")), stored)

        assert result.to_fetch == ["p1"]
        assert result.updated_count == 1

    def test_older_remote_timestamp_is_unchanged(self):
        stored = {"p1": StoredPlanState(last_updated=T1, is_active=True)}
        result = reconcile(remote(("p1", T0, "ELECTRICITY")), stored)

        assert result.to_fetch == []
        assert result.unchanged_count == 1

    def test_missing_remote_timestamp_never_refetches(self):
        stored = {"p1": StoredPlanState(last_updated=T0, is_active=True)}
        result = reconcile(remote(("p1", None, "ELECTRICITY")), stored)

        assert result.to_fetch == []

    def test_missing_stored_timestamp_refetches(self):
        stored = {"p1": StoredPlanState(last_updated=None, is_active=True)}
        result = reconcile(remote(("p1", T0, "ELECTRICITY")), stored)

        assert result.to_fetch == ["p1"]
        assert result.updated_count == 1

    def test_only_active_missing_plans_are_deactivated(self):
        stored = {
            "active": StoredPlanState(last_updated=T0, is_active=True),
            "inactive": StoredPlanState(last_updated=T0, is_active=False),
        }
        result = reconcile({}, stored)

        assert result.to_deactivate == ["active"]

    def test_inactive_plan_back_on_list_is_fetched(self):
        stored = {"p1": StoredPlanState(last_updated=T0, is_active=False)}
        result = reconcile(remote(("p1", T0, "ELECTRICITY")), stored)

        assert result.to_fetch == ["p1"]
        assert result.reactivated_count == 1
        assert result.unchanged_count == 0

    def test_fuel_filter(self):
        result = reconcile(
            remote(
                ("e1", T0, "ELECTRICITY"),
                ("g1", T0, "GAS"),
                ("d1", T0, "DUAL"),
                ("g2", T0, ""),
            ),
            {},
        )

        assert result.to_fetch == ["e1", "d1"]
        assert result.gas_skipped_count == 2
        assert result.new_count == 2
        assert result.electricity_count == 2

    def test_gas_plan_is_never_deactivated_or_counted(self):
        stored = {"g1": StoredPlanState(last_updated=T0, is_active=True)}
        result = reconcile(remote(("g1", T1, "GAS")), stored)

        assert result.to_fetch == []
        assert result.to_deactivate == []
        assert result.updated_count == 0
        assert result.gas_skipped_count == 1

    def test_remote_order_is_preserved(self):
        ids = [f"p{i}" for i in range(20, 0, -1)]
        result = reconcile(remote(*[(i, T0, "ELECTRICITY") for i in ids]), {})

        assert result.to_fetch == ids

    def test_counts_payload(self):
        result = reconcile(remote(("p1", T0, "ELECTRICITY"), ("g", T0, "GAS")), {})

        assert result.counts() == {
            "newCount": 1,
            "updatedCount": 0,
            "reactivatedCount": 0,
            "unchangedCount": 0,
            "deletedCount": 0,
            "gasSkippedCount": 1,
        }

    def test_partial_list_never_deactivates(self):
        stored = {
            "p1": StoredPlanState(last_updated=T0, is_active=True),
            "p2": StoredPlanState(last_updated=T0, is_active=True),
        }
        result = reconcile(remote(("p1", T0, "ELECTRICITY"), ("p3", T0, "ELECTRICITY")), stored, complete=False)

        assert result.to_deactivate == []
        assert result.deleted_count == 0
        assert result.to_fetch == ["p3"]

    def test_force_refetches_unchanged_plans(self):
        stored = {
            "p1": StoredPlanState(last_updated=T0, is_active=True),
            "p2": StoredPlanState(last_updated=T0, is_active=False),
        }
        result = reconcile(
            remote(("p1", T0, "ELECTRICITY"), ("p2", T0, "ELECTRICITY"), ("g", T0, "GAS")),
            stored,
            force=True,
        )

        assert result.to_fetch == ["p1", "p2"]
        assert result.updated_count == 1
        assert result.reactivated_count == 1
        assert result.unchanged_count == 0
