"""
Transition Guard

Decides whether a requested change is legal from an order's current state.
The guard only reads the order it is given; it never writes.
"""

import logging

from marketplace.ordering.domain.models.order import Order
from payment_system.domain.exceptions import InvalidStateError, ValidationError


logger = logging.getLogger(__name__)


class TransitionGuard:
    """
    Legal transitions for the two independent order dimensions.

    Status:   pending -> processing -> completed, any non-terminal -> cancelled
    Payment:  pending -> paid, pending -> failed, paid -> failed (override only)
    """

    STATUS_TRANSITIONS = {
        Order.STATUS_PENDING: {Order.STATUS_PROCESSING, Order.STATUS_CANCELLED},
        Order.STATUS_PROCESSING: {Order.STATUS_COMPLETED, Order.STATUS_CANCELLED},
        Order.STATUS_COMPLETED: set(),
        Order.STATUS_CANCELLED: set(),
    }

    PAYMENT_TRANSITIONS = {
        Order.PAYMENT_PENDING: {Order.PAYMENT_PAID, Order.PAYMENT_FAILED},
        Order.PAYMENT_PAID: {Order.PAYMENT_FAILED},
        Order.PAYMENT_FAILED: set(),
    }

    # Allowed only with a written justification
    PAYMENT_OVERRIDES = {(Order.PAYMENT_PAID, Order.PAYMENT_FAILED)}

    # Release completes the order from any of these
    RELEASABLE_STATUSES = (Order.STATUS_PENDING, Order.STATUS_PROCESSING, Order.STATUS_COMPLETED)

    def check_status_change(self, order: Order, new_status: str) -> None:
        if new_status not in self.STATUS_TRANSITIONS:
            raise ValidationError(f"Unknown order status: {new_status!r}")
        if new_status == order.status:
            raise InvalidStateError("status unchanged", f"order is already {order.status}")
        if new_status not in self.STATUS_TRANSITIONS[order.status]:
            raise InvalidStateError("illegal status transition", f"{order.status} -> {new_status}")

    def is_override(self, order: Order, new_payment_status: str) -> bool:
        return (order.payment_status, new_payment_status) in self.PAYMENT_OVERRIDES

    def check_payment_status_change(self, order: Order, new_payment_status: str, override_reason: str = "") -> None:
        """
        Raises:
            ValidationError: unknown value, or an override without a reason
            InvalidStateError: unchanged value, illegal transition, or an
                override attempted on an order whose payment was released
        """
        if new_payment_status not in self.PAYMENT_TRANSITIONS:
            raise ValidationError(f"Unknown payment status: {new_payment_status!r}")
        if new_payment_status == order.payment_status:
            raise InvalidStateError("payment status unchanged", f"payment is already {order.payment_status}")
        if new_payment_status not in self.PAYMENT_TRANSITIONS[order.payment_status]:
            raise InvalidStateError("illegal payment status transition", f"{order.payment_status} -> {new_payment_status}")

        if self.is_override(order, new_payment_status):
            if order.payment_released:
                raise InvalidStateError("payment already released", "a settled payout cannot be reversed here")
            if not (override_reason or "").strip():
                raise ValidationError(
                    f"Changing payment status from {order.payment_status} to {new_payment_status} "
                    "requires an override reason"
                )
            logger.warning(
                f"Payment status override requested for order {order.id}: "
                f"{order.payment_status} -> {new_payment_status}"
            )

    def check_not_released(self, order: Order) -> None:
        if order.payment_released:
            raise InvalidStateError("already released", f"released at {order.payment_released_at}")

    def check_release(self, order: Order) -> None:
        """All release preconditions; the first unmet one is reported."""
        self.check_not_released(order)
        if order.status not in self.RELEASABLE_STATUSES:
            raise InvalidStateError("order cancelled")
        if order.payment_status != Order.PAYMENT_PAID:
            raise InvalidStateError("payment not confirmed paid", f"payment status is {order.payment_status}")
        if not order.confirmed_by_buyer:
            raise InvalidStateError("buyer has not confirmed receipt")

    def check_buyer_confirmation(self, order: Order) -> None:
        if order.confirmed_by_buyer:
            raise InvalidStateError("already confirmed")
        if order.status == Order.STATUS_CANCELLED:
            raise InvalidStateError("order cancelled")
