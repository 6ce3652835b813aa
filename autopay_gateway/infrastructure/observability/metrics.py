"""Prometheus metrics for execution outcomes, ledger health and sweep performance"""

from prometheus_client import Counter, Histogram

# Execution metrics
execution_counter = Counter(
    "autopay_execution_total",
    "Obligation execution attempts",
    ["kind", "status"],  # DEBIT | CREDIT, SUCCESS | FAILED | INSUFFICIENT_FUNDS | PARTIAL | SKIPPED
)

execution_amount_counter = Counter(
    "autopay_execution_amount_cents_total",
    "Cents moved by executions",
    ["kind"],
)

execution_error_counter = Counter(
    "autopay_execution_errors_total",
    "Executions aborted by an unexpected error",
)

lock_contention_counter = Counter(
    "autopay_lock_contention_total",
    "Executions skipped because the obligation lock was held",
)

installment_completed_counter = Counter(
    "autopay_installment_completed_total",
    "Installment plans that reached their final period",
)

# Ledger metrics
ledger_latency_histogram = Histogram(
    "ledger_latency_seconds",
    "Ledger API response time",
    ["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

ledger_failure_counter = Counter(
    "ledger_failures_total",
    "Ledger calls that failed with a transient error",
    ["operation"],
)

# Notifier metrics
notifier_failure_counter = Counter(
    "notifier_failures_total",
    "Notifications that could not be delivered",
)

# Sweep metrics
sweep_duration_histogram = Histogram(
    "autopay_sweep_duration_seconds",
    "Duration of one scheduler sweep",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

budget_generated_counter = Counter(
    "autopay_budget_generated_total",
    "Budget rows generated by recurring rollover",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_execution(kind: str, status: str, amount_cents: int) -> None:
    """Record execution metrics for monitoring success and shortfall rates"""
    execution_counter.labels(kind=kind, status=status).inc()
    if amount_cents > 0:
        execution_amount_counter.labels(kind=kind).inc(amount_cents)
