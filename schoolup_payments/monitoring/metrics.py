"""
Prometheus metrics for the fee collection service.

Tracks:
- Mobile-money collections initiated, by network
- Confirmations by result (settled, failed, duplicate, unknown, amount_mismatch)
- Settled amounts
- Webhook deliveries and processing time
- Transactions expired by the timeout sweeper
- Notification outbox depth and deliveries
"""
from prometheus_client import Counter, Gauge, Histogram

# Collection metrics
momo_transactions_initiated_total = Counter(
    "momo_transactions_initiated_total",
    "Total mobile-money collections initiated",
    ["network"],
)

momo_confirmations_total = Counter(
    "momo_confirmations_total",
    "Total confirmations received",
    ["result"],  # settled, failed, duplicate, unknown_transaction, amount_mismatch
)

settled_amount_zmw = Histogram(
    "settled_amount_zmw",
    "Settled payment amounts in ZMW",
    buckets=(50, 100, 250, 500, 1000, 2500, 5000, 10000, 50000, 100000),
)

manual_payments_total = Counter(
    "manual_payments_total",
    "Total payments booked by the accounts office",
    ["method"],
)

# Webhook metrics
webhook_deliveries_total = Counter(
    "webhook_deliveries_total",
    "Total network webhook deliveries",
    ["result"],
)

webhook_processing_duration_seconds = Histogram(
    "webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

# Timeout metrics
transactions_expired_total = Counter(
    "transactions_expired_total",
    "Total PENDING transactions failed by the timeout sweeper",
)

# Outbox metrics
outbox_queue_depth = Gauge(
    "outbox_queue_depth",
    "Number of undelivered notification events in the outbox",
)

notifications_delivered_total = Counter(
    "notifications_delivered_total",
    "Total notifications delivered to inboxes",
    ["event_type"],
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_initiation(network: str) -> None:
        momo_transactions_initiated_total.labels(network=network).inc()

    @staticmethod
    def record_confirmation(result: str) -> None:
        momo_confirmations_total.labels(result=result).inc()

    @staticmethod
    def record_settlement(amount: float) -> None:
        settled_amount_zmw.observe(amount)

    @staticmethod
    def record_manual_payment(method: str, amount: float) -> None:
        manual_payments_total.labels(method=method).inc()
        settled_amount_zmw.observe(amount)

    @staticmethod
    def record_webhook_delivery(result: str, duration_seconds: float) -> None:
        webhook_deliveries_total.labels(result=result).inc()
        webhook_processing_duration_seconds.observe(duration_seconds)

    @staticmethod
    def record_expired(count: int) -> None:
        if count:
            transactions_expired_total.inc(count)

    @staticmethod
    def set_outbox_queue_depth(depth: int) -> None:
        outbox_queue_depth.set(depth)

    @staticmethod
    def record_notification_delivered(event_type: str) -> None:
        notifications_delivered_total.labels(event_type=event_type).inc()


# Export singleton instance
metrics = MetricsCollector()
