"""Prometheus metrics for provisioning runs."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

node_operations_total = Counter(
    "tierforge_node_operations_total",
    "Per-resource operations by planned action and final outcome",
    ["action", "outcome"],
)

provider_retries_total = Counter(
    "tierforge_provider_retries_total",
    "Provider calls retried after a transient failure",
    ["kind"],
)

drift_conflicts_total = Counter(
    "tierforge_drift_conflicts_total",
    "Resources whose remote state diverged from the recorded state",
)

run_duration_seconds = Histogram(
    "tierforge_run_duration_seconds",
    "Wall-clock duration of plan/apply/destroy runs",
    ["command"],
    buckets=(0.1, 0.5, 1, 5, 15, 60, 300, 900, 1800),
)
