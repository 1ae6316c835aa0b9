from rest_framework import serializers

from marketplace.ordering.domain.models.order import Order
from payment_system.domain.services.reporting_service import ORDER_VIEWS, VIEW_ALL


class ReleasePaymentRequestSerializer(serializers.Serializer):
    expected_version = serializers.IntegerField(min_value=1, help_text="Order version the admin is acting on")
    commission_rate = serializers.DecimalField(
        max_digits=5,
        decimal_places=2,
        min_value=0,
        max_value=100,
        required=False,
        help_text="Commission percentage; defaults to the platform fee",
    )
    transfer_notes = serializers.CharField(
        required=False, allow_blank=True, max_length=2000, help_text="Optional note about the bank transfer"
    )


class UpdateOrderRequestSerializer(serializers.Serializer):
    expected_version = serializers.IntegerField(min_value=1, help_text="Order version the admin is acting on")
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES, required=False, help_text="New order status")
    payment_status = serializers.ChoiceField(
        choices=Order.PAYMENT_STATUS_CHOICES, required=False, help_text="New payment status"
    )
    override_reason = serializers.CharField(
        required=False,
        allow_blank=True,
        max_length=1000,
        help_text="Required when marking a paid order as failed",
    )

    def validate(self, attrs):
        if "status" not in attrs and "payment_status" not in attrs:
            raise serializers.ValidationError("Provide status and/or payment_status.")
        return attrs


class SettlementFilterSerializer(serializers.Serializer):
    seller_id = serializers.IntegerField(required=False, help_text="Only orders involving this seller")
    from_date = serializers.DateTimeField(required=False, help_text="Orders created at or after")
    to_date = serializers.DateTimeField(required=False, help_text="Orders created at or before")


class SettlementOrdersQuerySerializer(SettlementFilterSerializer):
    view = serializers.ChoiceField(choices=ORDER_VIEWS, default=VIEW_ALL, help_text="Dashboard tab")
    page_size = serializers.IntegerField(required=False, default=50, min_value=1, max_value=200)
    offset = serializers.IntegerField(required=False, default=0, min_value=0)
