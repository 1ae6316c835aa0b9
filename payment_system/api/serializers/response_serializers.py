from rest_framework import serializers

from marketplace.ordering.domain.models.order import Order, OrderItem


# ==============================================================================
# Order Snapshots
# ==============================================================================


class OrderItemSnapshotSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ["id", "product", "seller", "product_title", "quantity", "unit_price", "total_price"]


class OrderSnapshotSerializer(serializers.ModelSerializer):
    """Order as the admin console sees it, including the version to send back."""

    reference = serializers.CharField(read_only=True)
    buyer_username = serializers.CharField(source="buyer.username", read_only=True)
    items = OrderItemSnapshotSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "reference",
            "version",
            "buyer",
            "buyer_username",
            "seller",
            "status",
            "payment_status",
            "shipping_cost",
            "total_amount",
            "confirmed_by_buyer",
            "delivered_at",
            "payment_released",
            "payment_released_at",
            "commission_rate",
            "admin_commission",
            "seller_amount",
            "transfer_notes",
            "shipping_address",
            "tracking_number",
            "shipping_carrier",
            "admin_notes",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields


class OrderListItemSerializer(serializers.ModelSerializer):
    reference = serializers.CharField(read_only=True)
    buyer_username = serializers.CharField(source="buyer.username", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "reference",
            "version",
            "buyer_username",
            "seller",
            "status",
            "payment_status",
            "total_amount",
            "confirmed_by_buyer",
            "payment_released",
            "admin_commission",
            "seller_amount",
            "created_at",
        ]
        read_only_fields = fields


# ==============================================================================
# Settlement Responses
# ==============================================================================


class CommissionSplitSerializer(serializers.Serializer):
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    rate_percent = serializers.DecimalField(max_digits=5, decimal_places=2)
    commission = serializers.DecimalField(max_digits=12, decimal_places=2)
    seller_amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class DeliveryReportSerializer(serializers.Serializer):
    delivered = serializers.IntegerField()
    scheduled = serializers.IntegerField()
    failed = serializers.IntegerField()
    side_effects_pending = serializers.BooleanField(help_text="True if some notification must still be resent")


class ReleasePaymentResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    message = serializers.CharField()
    order = OrderSnapshotSerializer()
    split = CommissionSplitSerializer()
    delivery = DeliveryReportSerializer()


class UpdateOrderResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    message = serializers.CharField()
    order = OrderSnapshotSerializer()
    delivery = DeliveryReportSerializer()


class ResendNotificationsResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    order_id = serializers.UUIDField()
    delivery = DeliveryReportSerializer()


class SettlementSummaryResponseSerializer(serializers.Serializer):
    total_revenue = serializers.DecimalField(max_digits=14, decimal_places=2)
    pending_payouts = serializers.DecimalField(max_digits=14, decimal_places=2)
    released_to_sellers = serializers.DecimalField(max_digits=14, decimal_places=2)
    commission_earned = serializers.DecimalField(max_digits=14, decimal_places=2)
    counts = serializers.DictField(child=serializers.IntegerField())
    revenue_windows = serializers.DictField(child=serializers.DecimalField(max_digits=14, decimal_places=2))


class SettlementOrderListResponseSerializer(serializers.Serializer):
    orders = OrderListItemSerializer(many=True)
    pagination = serializers.DictField()


class ErrorResponseSerializer(serializers.Serializer):
    error = serializers.CharField(help_text="Stable error code")
    detail = serializers.CharField(help_text="Human-readable message")
    retryable = serializers.BooleanField(required=False, help_text="True if nothing changed and the action can be resent")
