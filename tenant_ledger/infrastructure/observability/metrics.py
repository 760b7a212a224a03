"""Prometheus metrics for settlement commits and store access"""

from decimal import Decimal

from prometheus_client import Counter, Histogram

# Settlement metrics
settlement_commit_counter = Counter(
    "tenant_ledger_settlement_commit_total",
    "Settlement commits attempted",
    ["outcome", "store"],  # success | failure
)

settlement_amount_histogram = Histogram(
    "tenant_ledger_settlement_amount",
    "Total amount applied per successful settlement",
    buckets=[50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

settlement_compensation_counter = Counter(
    "tenant_ledger_settlement_compensations_total",
    "Partially applied settlements rolled back by compensation",
)

# Store metrics
store_request_histogram = Histogram(
    "tenant_ledger_store_request_seconds",
    "Remote store request latency",
    ["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

store_failure_counter = Counter(
    "tenant_ledger_store_failures_total",
    "Failed remote store reads",
    ["operation"],
)


def record_commit(store: str, success: bool, total_amount: Decimal) -> None:
    """Record settlement outcome and, on success, the amount moved"""
    outcome = "success" if success else "failure"
    settlement_commit_counter.labels(outcome=outcome, store=store).inc()
    if success:
        settlement_amount_histogram.observe(float(total_amount))
