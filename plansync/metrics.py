"""Prometheus metrics for the plan sync service."""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("plansync", "CDR plan sync application info")
app_info.info({"version": "0.1.0", "name": "batteryiq-plansync"})

# Sync invocations
sync_runs_total = Counter(
    "plansync_sync_runs_total",
    "Total number of sync invocations",
    ["trigger", "status"],
)

retailer_sync_duration_seconds = Histogram(
    "plansync_retailer_sync_duration_seconds",
    "Time spent syncing one retailer chunk",
    ["retailer"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
)

# Scanner
plan_list_pages_total = Counter(
    "plansync_plan_list_pages_total",
    "Plan-list pages fetched",
    ["retailer", "status"],
)

# Detail fetcher
plan_detail_fetches_total = Counter(
    "plansync_plan_detail_fetches_total",
    "Plan detail fetch attempts",
    ["retailer", "status"],
)

# Persistence
plans_upserted_total = Counter(
    "plansync_plans_upserted_total",
    "Plans written to the store",
    ["retailer", "action"],
)

plans_deactivated_total = Counter(
    "plansync_plans_deactivated_total",
    "Plans marked inactive because they left the remote plan list",
    ["retailer"],
)
