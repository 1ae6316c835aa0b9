"""Fixed notification texts keyed by the new status value."""

from decimal import Decimal


ORDER_STATUS_TITLE = "Order Status Updated"
PAYMENT_STATUS_TITLE = "Payment Status Updated"
PAYMENT_TRANSFERRED_TITLE = "Payment Transferred"
ORDER_DELIVERED_TITLE = "Order Delivered Successfully"

ORDER_STATUS_MESSAGES = {
    "pending": "Your order status is now pending",
    "processing": "Your order is being processed",
    "completed": "Your order has been completed",
    "cancelled": "Your order has been cancelled",
}
DEFAULT_ORDER_STATUS_MESSAGE = "Your order status has been updated"

PAYMENT_STATUS_MESSAGES = {
    "pending": "Your payment is pending",
    "paid": "Your payment has been confirmed",
    "failed": "Your payment has failed",
}
DEFAULT_PAYMENT_STATUS_MESSAGE = "Your payment status has been updated"


def order_status_message(new_status: str) -> str:
    return ORDER_STATUS_MESSAGES.get(new_status, DEFAULT_ORDER_STATUS_MESSAGE)


def payment_status_message(new_payment_status: str) -> str:
    return PAYMENT_STATUS_MESSAGES.get(new_payment_status, DEFAULT_PAYMENT_STATUS_MESSAGE)


def payment_transferred_message(amount: Decimal, reference: str) -> str:
    return f"Payment of ${amount:.2f} has been transferred to your account for order #{reference}"


def order_delivered_message(reference: str) -> str:
    return (
        f"Order #{reference} has been confirmed as delivered by the buyer. "
        "Payment will be transferred soon."
    )
