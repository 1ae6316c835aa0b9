from prometheus_client import Counter, Gauge


# Outbox Metrics
outbox_messages_total = Counter(
    "notifications_outbox_messages_total", "Outbox delivery attempts by outcome", ["kind", "outcome"]
)
outbox_failed_messages = Gauge(
    "notifications_outbox_failed_messages", "Outbox messages whose attempts are exhausted"
)
notifications_created_total = Counter("notifications_created_total", "In-app notifications created", ["type"])
