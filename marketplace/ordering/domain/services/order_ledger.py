"""
OrderLedger - Authoritative Order and Payment State

Every write is a compare-and-set against the version the caller last saw:
the row is locked, the version compared, the change applied with
``version = version + 1`` and the matching outbox messages written, all in
one transaction. A stale version fails with ConcurrentModificationError and
nothing is written.
"""

import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from marketplace.catalog.domain.models.catalog import Product
from marketplace.infra.observability.metrics import (
    order_transition_rejections_total,
    order_transitions_total,
    order_value,
    order_write_conflicts_total,
    orders_placed_total,
)
from marketplace.ordering.domain.models.order import Order, OrderItem
from marketplace.ordering.domain.services.transition_guard import TransitionGuard
from notifications.services.fan_out import NotificationFanOut
from payment_system.domain.events.definitions import (
    OrderDelivered,
    OrderStatusChanged,
    PaymentReleased,
    PaymentStatusChanged,
)
from payment_system.domain.exceptions import (
    ConcurrentModificationError,
    InvalidStateError,
    OrderNotFoundError,
    ValidationError,
)
from payment_system.domain.services.commission import CommissionSplit, allocate, to_decimal
from utils.service_base import BaseService
from utils.transaction_utils import ledger_transaction


logger = logging.getLogger(__name__)


class OrderLedger(BaseService):
    """
    Guarded read/write access to orders.

    Side effects are never performed here: the ledger hands each committed
    change to the notification fan-out, which only records outbox messages in
    the current transaction.
    """

    def __init__(self, guard: TransitionGuard = None, fan_out=None):
        super().__init__()
        self.guard = guard or TransitionGuard()
        self.fan_out = fan_out or NotificationFanOut()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_order(self, order_id) -> Order:
        """
        Current snapshot of an order.

        Raises:
            OrderNotFoundError: unknown or malformed id
        """
        try:
            return Order.objects.select_related("buyer", "seller").get(pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError, ValueError):
            raise OrderNotFoundError(order_id)

    def _lock(self, order_id) -> Order:
        try:
            return Order.objects.select_for_update().get(pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError, ValueError):
            raise OrderNotFoundError(order_id)

    # ------------------------------------------------------------------
    # Compare-and-set
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_version(expected_version) -> int:
        if isinstance(expected_version, bool) or not isinstance(expected_version, int) or expected_version < 1:
            raise ValidationError(f"expected_version must be a positive integer, got {expected_version!r}")
        return expected_version

    def _check_version(self, order: Order, expected_version: int, operation: str) -> None:
        if order.version != expected_version:
            order_write_conflicts_total.labels(operation=operation).inc()
            raise ConcurrentModificationError(order.id, expected_version, order.version)

    def _check(self, check, *args) -> None:
        try:
            check(*args)
        except InvalidStateError as e:
            order_transition_rejections_total.labels(condition=e.condition).inc()
            raise

    def _commit(self, order: Order, expected_version: int, operation: str, **changes) -> Order:
        """
        Apply ``changes`` only if the stored version still equals ``expected_version``.

        The locked row already matched, but the filtered UPDATE keeps the
        guarantee on databases where SELECT ... FOR UPDATE is a no-op.
        """
        now = timezone.now()
        updated = Order.objects.filter(pk=order.pk, version=expected_version).update(
            version=F("version") + 1, updated_at=now, **changes
        )
        if updated != 1:
            actual = Order.objects.filter(pk=order.pk).values_list("version", flat=True).first()
            order_write_conflicts_total.labels(operation=operation).inc()
            raise ConcurrentModificationError(order.id, expected_version, actual)

        for field_name, value in changes.items():
            setattr(order, field_name, value)
        order.version = expected_version + 1
        order.updated_at = now
        return order

    # ------------------------------------------------------------------
    # Admin writes
    # ------------------------------------------------------------------

    @BaseService.log_performance
    @ledger_transaction
    def update_status(self, order_id, expected_version: int, new_status: str) -> Order:
        """
        Move the order's fulfillment status.

        Raises:
            OrderNotFoundError, ValidationError, ConcurrentModificationError,
            InvalidStateError ("status unchanged", "illegal status transition")
        """
        expected_version = self._validate_version(expected_version)
        order = self._lock(order_id)
        self._check_version(order, expected_version, "update_status")
        self._check(self.guard.check_status_change, order, new_status)

        old_status = order.status
        order = self._commit(order, expected_version, "update_status", status=new_status)

        self.fan_out.publish(
            order,
            OrderStatusChanged(
                order_id=str(order.id),
                buyer_id=order.buyer_id,
                old_status=old_status,
                new_status=new_status,
                amount=order.total_amount,
                occurred_at=order.updated_at,
            ),
        )
        order_transitions_total.labels(field="status", new_value=new_status).inc()
        self.logger.info(f"Order {order.id} status {old_status} -> {new_status} (version {order.version})")
        return order

    @BaseService.log_performance
    @ledger_transaction
    def update_payment_status(
        self, order_id, expected_version: int, new_payment_status: str, override_reason: str = ""
    ) -> Order:
        """
        Move the order's payment status.

        ``paid -> failed`` is an administrative override: it needs a reason,
        which is appended to the order's admin notes, and it is refused once
        the payment has been released.
        """
        expected_version = self._validate_version(expected_version)
        order = self._lock(order_id)
        self._check_version(order, expected_version, "update_payment_status")
        self._check(self.guard.check_payment_status_change, order, new_payment_status, override_reason)

        old_payment_status = order.payment_status
        changes = {"payment_status": new_payment_status}
        reason = ""
        if self.guard.is_override(order, new_payment_status):
            reason = override_reason.strip()
            stamp = timezone.now().strftime("%Y-%m-%d %H:%M")
            note = f"[{stamp}] Payment status override {old_payment_status} -> {new_payment_status}: {reason}"
            changes["admin_notes"] = f"{order.admin_notes}\n{note}" if order.admin_notes else note

        order = self._commit(order, expected_version, "update_payment_status", **changes)

        self.fan_out.publish(
            order,
            PaymentStatusChanged(
                order_id=str(order.id),
                buyer_id=order.buyer_id,
                old_payment_status=old_payment_status,
                new_payment_status=new_payment_status,
                amount=order.total_amount,
                occurred_at=order.updated_at,
                override_reason=reason,
            ),
        )
        order_transitions_total.labels(field="payment_status", new_value=new_payment_status).inc()
        self.logger.info(
            f"Order {order.id} payment status {old_payment_status} -> {new_payment_status} (version {order.version})"
        )
        return order

    # ------------------------------------------------------------------
    # Release (driven by the settlement coordinator inside its transaction)
    # ------------------------------------------------------------------

    def prepare_release(self, order_id, expected_version: int) -> Order:
        """
        Lock the order and verify it can be released.

        Must run inside the caller's transaction. A released order is reported
        as "already released" even when the version is also stale, so a
        repeated release always fails the same way.
        """
        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError("prepare_release must run inside a ledger transaction")

        expected_version = self._validate_version(expected_version)
        order = self._lock(order_id)
        self._check(self.guard.check_not_released, order)
        self._check_version(order, expected_version, "release_payment")
        self._check(self.guard.check_release, order)
        return order

    def commit_release(self, order: Order, expected_version: int, split: CommissionSplit, transfer_notes: str = "") -> Order:
        """Persist the release of an order returned by ``prepare_release``."""
        if split.total != order.total_amount:
            raise ValidationError(f"Split total {split.total} does not match order total {order.total_amount}")

        old_status = order.status
        released_at = timezone.now()
        order = self._commit(
            order,
            expected_version,
            "release_payment",
            payment_released=True,
            payment_released_at=released_at,
            admin_commission=split.commission,
            seller_amount=split.seller_amount,
            commission_rate=split.rate_percent,
            transfer_notes=transfer_notes or "",
            status=Order.STATUS_COMPLETED,
        )

        self.fan_out.publish(
            order,
            PaymentReleased(
                order_id=str(order.id),
                reference=order.reference,
                seller_shares=allocate(split.seller_amount, order.seller_line_totals()),
                total_amount=order.total_amount,
                commission=split.commission,
                seller_amount=split.seller_amount,
                commission_rate=split.rate_percent,
                released_at=released_at,
            ),
        )
        if old_status != Order.STATUS_COMPLETED:
            self.fan_out.publish(
                order,
                OrderStatusChanged(
                    order_id=str(order.id),
                    buyer_id=order.buyer_id,
                    old_status=old_status,
                    new_status=Order.STATUS_COMPLETED,
                    amount=order.total_amount,
                    occurred_at=released_at,
                ),
            )
            order_transitions_total.labels(field="status", new_value=Order.STATUS_COMPLETED).inc()

        order_transitions_total.labels(field="payment_released", new_value="true").inc()
        return order

    # ------------------------------------------------------------------
    # Collaborator hooks
    # ------------------------------------------------------------------

    @BaseService.log_performance
    @ledger_transaction
    def confirm_receipt(self, order_id) -> Order:
        """
        Buyer confirms the order arrived.

        Unlike admin writes this takes no expected version: the buyer's action
        is valid against whatever the current version is.
        """
        order = self._lock(order_id)
        self._check(self.guard.check_buyer_confirmation, order)

        delivered_at = timezone.now()
        order = self._commit(order, order.version, "confirm_receipt", confirmed_by_buyer=True, delivered_at=delivered_at)

        self.fan_out.publish(
            order,
            OrderDelivered(
                order_id=str(order.id),
                reference=order.reference,
                total_amount=order.total_amount,
                occurred_at=delivered_at,
                seller_ids=order.seller_ids(),
            ),
        )
        order_transitions_total.labels(field="confirmed_by_buyer", new_value="true").inc()
        self.logger.info(f"Order {order.id} confirmed as received by buyer {order.buyer_id}")
        return order

    @BaseService.log_performance
    @transaction.atomic
    def place_order(
        self,
        buyer,
        items: Iterable[Tuple[Product, int]],
        seller=None,
        shipping_cost=Decimal("0.00"),
        shipping_address: Optional[dict] = None,
    ) -> Order:
        """
        Create an order the way checkout does: everything pending, one line
        per (product, quantity) with the product's current price snapshotted.

        When no seller is given and every line has the same seller, that
        seller is recorded on the order; otherwise the order stays multi-seller.
        """
        lines: List[Tuple[Product, int]] = list(items)
        if not lines:
            raise ValidationError("Cannot place an order without items")

        shipping_cost = to_decimal(shipping_cost, "shipping_cost")
        if shipping_cost < 0:
            raise ValidationError(f"shipping_cost must not be negative, got {shipping_cost}")

        subtotal = Decimal("0.00")
        for product, quantity in lines:
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
                raise ValidationError(f"Quantity for product {product.id} must be a positive integer")
            if not product.is_active:
                raise ValidationError(f"Product {product.id} is not available")
            subtotal += product.price * quantity

        if seller is None:
            seller_ids = {product.seller_id for product, _ in lines}
            if len(seller_ids) == 1:
                seller = lines[0][0].seller

        order = Order.objects.create(
            buyer=buyer,
            seller=seller,
            shipping_cost=shipping_cost,
            total_amount=subtotal + shipping_cost,
            shipping_address=shipping_address or {},
        )
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product=product,
                    seller_id=product.seller_id,
                    quantity=quantity,
                    unit_price=product.price,
                    total_price=product.price * quantity,
                    product_title=product.title,
                )
                for product, quantity in lines
            ]
        )

        orders_placed_total.labels(status=order.status).inc()
        order_value.observe(float(order.total_amount))
        self.logger.info(f"Order {order.id} placed by buyer {buyer.id} with {len(lines)} items, total {order.total_amount}")
        return order
