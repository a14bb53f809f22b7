"""Prometheus metrics for financing outcomes, pool state, and external call performance"""

from prometheus_client import Counter, Histogram, Gauge
from invoicefin_gateway.domain.models import Pool

# Financing metrics
financing_operation_counter = Counter(
    "invoicefin_financing_operations_total",
    "Lifecycle and pool operations by outcome",
    ["operation", "outcome"],  # outcome: ok | exception class name
)

advance_bucket_counter = Counter(
    "invoicefin_advance_bucket",
    "Advances issued by size bucket",
    ["bucket"],  # <$1k, $1k-$10k, $10k-$100k, $100k+
)

# Pool state
pool_balance_gauge = Gauge("invoicefin_pool_balance_cents", "Undeployed pool balance", ["pool"])
pool_deployed_gauge = Gauge("invoicefin_pool_deployed_cents", "Capital out on financed invoices", ["pool"])
pool_shares_gauge = Gauge("invoicefin_pool_total_shares", "Outstanding pool shares", ["pool"])

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Ledger webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook deliveries",
)

# Risk provider metrics
risk_provider_failures_counter = Counter(
    "risk_provider_failures_total",
    "Failed risk assessment provider calls",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_operation(operation: str, outcome: str) -> None:
    financing_operation_counter.labels(operation=operation, outcome=outcome).inc()


def record_advance(advance_cents: int) -> None:
    """Bucket advance sizes for distribution analysis"""
    if advance_cents < 100_000:
        bucket = "<$1k"
    elif advance_cents < 1_000_000:
        bucket = "$1k-$10k"
    elif advance_cents < 10_000_000:
        bucket = "$10k-$100k"
    else:
        bucket = "$100k+"

    advance_bucket_counter.labels(bucket=bucket).inc()


def observe_pool(pool: Pool) -> None:
    pool_balance_gauge.labels(pool=pool.name).set(pool.balance_cents)
    pool_deployed_gauge.labels(pool=pool.name).set(pool.deployed_cents)
    pool_shares_gauge.labels(pool=pool.name).set(pool.total_shares)
