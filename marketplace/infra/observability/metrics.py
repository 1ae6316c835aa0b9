from prometheus_client import Counter, Histogram


# Order Metrics
orders_placed_total = Counter("marketplace_orders_placed_total", "Total orders placed", ["status"])
order_value = Histogram(
    "marketplace_order_value",
    "Order value distribution",
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 5000, float("inf")],
)

# Ledger Metrics
order_transitions_total = Counter(
    "marketplace_order_transitions_total", "Committed order ledger changes", ["field", "new_value"]
)
order_write_conflicts_total = Counter(
    "marketplace_order_write_conflicts_total", "Ledger writes rejected for a stale version", ["operation"]
)
order_transition_rejections_total = Counter(
    "marketplace_order_transition_rejections_total", "Ledger writes refused by the transition guard", ["condition"]
)
