"""Prometheus metrics for group lifecycle, bidding, credit and notifications"""

from prometheus_client import Counter, Histogram

# Group lifecycle
group_transition_counter = Counter(
    "groupbuy_group_transitions_total",
    "Buying group status transitions",
    ["status"],  # FORMING | CONFIRMED | ORDERED | CANCELLED
)

membership_counter = Counter(
    "groupbuy_membership_changes_total",
    "Group membership changes",
    ["change"],  # joined | left
)

# Bidding
bid_placed_counter = Counter(
    "groupbuy_bids_placed_total",
    "Bids placed by suppliers",
    ["target"],  # order | group
)

bid_outcome_counter = Counter(
    "groupbuy_bid_outcomes_total",
    "Bid resolutions",
    ["outcome"],  # accepted | rejected | expired
)

settlement_amount_histogram = Histogram(
    "groupbuy_settlement_amount_cents",
    "Accepted bid amounts",
    buckets=[10_000, 50_000, 100_000, 500_000, 1_000_000, 5_000_000],
)

# Credit
credit_repayment_counter = Counter(
    "groupbuy_credit_repayments_total",
    "Credit repayments by result",
    ["result"],  # completed | failed
)

credit_increase_counter = Counter(
    "groupbuy_credit_increase_decisions_total",
    "Credit limit increase decisions",
    ["outcome"],  # approved | rejected
)

# Infrastructure
transaction_retry_counter = Counter(
    "groupbuy_transaction_retries_total",
    "Operations replayed after a concurrent modification",
    ["operation"],
)

notification_failure_counter = Counter(
    "groupbuy_notification_failures_total",
    "Notifications that could not be delivered",
    ["event"],
)

request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_bid_outcome(outcome: str, count: int = 1) -> None:
    if count > 0:
        bid_outcome_counter.labels(outcome=outcome).inc(count)


def record_settlement(amount_cents: int) -> None:
    bid_outcome_counter.labels(outcome="accepted").inc()
    settlement_amount_histogram.observe(amount_cents)
