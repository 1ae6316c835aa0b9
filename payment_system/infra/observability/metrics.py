from prometheus_client import Counter


# Settlement Metrics
payment_releases_total = Counter("payment_releases_total", "Payment release attempts by outcome", ["outcome"])

released_seller_volume_total = Counter(
    "payment_released_seller_volume_total", "Total seller payout volume released"
)

commission_volume_total = Counter("payment_commission_volume_total", "Total platform commission earned on release")

# Admin Metrics
admin_order_commands_total = Counter(
    "payment_admin_order_commands_total", "Administrative order commands by command and result", ["command", "result"]
)
