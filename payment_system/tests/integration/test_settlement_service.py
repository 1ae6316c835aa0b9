from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError, transaction
from django.db.models import F
from django.test import TestCase, TransactionTestCase
from kombu.exceptions import OperationalError as KombuOperationalError

from infrastructure.container import container
from marketplace.models import Order
from marketplace.ordering.domain.services.order_ledger import OrderLedger
from marketplace.tests.factories import OrderFactory, OrderItemFactory, ProductFactory, SellerFactory
from notifications.models import Notification, OutboxMessage
from payment_system.domain.exceptions import (
    ConcurrentModificationError,
    InvalidStateError,
    OrderNotFoundError,
    ValidationError,
)
from payment_system.domain.services.commission import compute_split
from payment_system.domain.services.settlement_service import SettlementService


class SettlementTestCase(TestCase):
    def setUp(self):
        container.configure_for_testing()
        self.email = container.email_dispatcher()
        self.service = SettlementService(ledger=OrderLedger())

    def tearDown(self):
        container.reset()

    def release(self, order, rate=10, version=None, **kwargs):
        with self.captureOnCommitCallbacks(execute=True):
            return self.service.release_payment(order.id, version or order.version, rate, **kwargs)


class ReleasePaymentTest(SettlementTestCase):
    def test_release_splits_and_completes_order(self):
        order = OrderFactory(paid=True, confirmed=True, total_amount=Decimal("100.00"))

        outcome = self.release(order, rate=10, transfer_notes="Wire ref 4471")

        self.assertEqual(outcome.split.commission, Decimal("10.00"))
        self.assertEqual(outcome.split.seller_amount, Decimal("90.00"))

        stored = Order.objects.get(pk=order.pk)
        self.assertEqual(stored.status, Order.STATUS_COMPLETED)
        self.assertTrue(stored.payment_released)
        self.assertIsNotNone(stored.payment_released_at)
        self.assertEqual(stored.admin_commission, Decimal("10.00"))
        self.assertEqual(stored.seller_amount, Decimal("90.00"))
        self.assertEqual(stored.commission_rate, Decimal("10.00"))
        self.assertEqual(stored.transfer_notes, "Wire ref 4471")
        self.assertEqual(stored.version, 2)

    def test_zero_rate_pays_total_to_seller(self):
        order = OrderFactory(paid=True, confirmed=True, total_amount=Decimal("57.31"))

        outcome = self.release(order, rate=0)

        self.assertEqual(outcome.split.commission, Decimal("0.00"))
        self.assertEqual(outcome.split.seller_amount, Decimal("57.31"))
        stored = Order.objects.get(pk=order.pk)
        self.assertEqual(stored.admin_commission + stored.seller_amount, stored.total_amount)

    def test_seller_and_buyer_are_notified(self):
        order = OrderFactory(paid=True, confirmed=True, status=Order.STATUS_PROCESSING)

        outcome = self.release(order)

        seller_notification = Notification.objects.get(user=order.seller)
        self.assertEqual(seller_notification.type, Notification.TYPE_PAYMENT_TRANSFERRED)
        self.assertEqual(seller_notification.title, "Payment Transferred")
        self.assertEqual(
            seller_notification.message,
            f"Payment of $90.00 has been transferred to your account for order #{order.reference}",
        )
        self.assertEqual(seller_notification.data["commission"], "10.00")

        buyer_notification = Notification.objects.get(user=order.buyer)
        self.assertEqual(buyer_notification.type, Notification.TYPE_ORDER_STATUS_CHANGED)
        self.assertEqual(buyer_notification.message, "Your order has been completed")

        self.assertEqual(outcome.delivery.delivered, 2)
        self.assertFalse(outcome.delivery.side_effects_pending)

    def test_release_email_is_sent_after_commit(self):
        order = OrderFactory(paid=True, confirmed=True)

        outcome = self.release(order)

        self.assertEqual(outcome.delivery.scheduled, 2)
        payloads = [request.to_payload() for request in self.email.sent_requests]
        self.assertIn({"orderId": str(order.id), "updateType": "payment_released", "amount": "90.00"}, payloads)
        self.assertIn({"orderId": str(order.id), "updateType": "order_status", "newStatus": "completed"}, payloads)
        self.assertFalse(OutboxMessage.objects.exclude(status=OutboxMessage.STATUS_DISPATCHED).exists())

    def test_completed_order_gets_no_second_status_notification(self):
        order = OrderFactory(paid=True, confirmed=True, status=Order.STATUS_COMPLETED)

        self.release(order)

        self.assertFalse(Notification.objects.filter(user=order.buyer).exists())
        self.assertEqual(Notification.objects.filter(user=order.seller).count(), 1)

    def test_multi_seller_order_notifies_every_item_seller(self):
        order = OrderFactory(paid=True, confirmed=True, seller=None, total_amount=Decimal("100.00"))
        first, second = SellerFactory(), SellerFactory()
        OrderItemFactory(order=order, product=ProductFactory(seller=first, price=Decimal("80.00")))
        OrderItemFactory(order=order, product=ProductFactory(seller=second, price=Decimal("20.00")))

        outcome = self.release(order, rate=10)

        transferred = Notification.objects.filter(type=Notification.TYPE_PAYMENT_TRANSFERRED)
        self.assertEqual(sorted(transferred.values_list("user_id", flat=True)), sorted([first.id, second.id]))

        amounts = {n.user_id: Decimal(n.data["amount"]) for n in transferred}
        self.assertEqual(amounts, {first.id: Decimal("72.00"), second.id: Decimal("18.00")})
        self.assertEqual(sum(amounts.values()), outcome.split.seller_amount)
        self.assertEqual(
            transferred.get(user=second).message,
            f"Payment of $18.00 has been transferred to your account for order #{order.reference}",
        )
        self.assertEqual(transferred.get(user=first).data["seller_amount"], "90.00")

    def test_multi_seller_shares_absorb_rounding(self):
        order = OrderFactory(paid=True, confirmed=True, seller=None, total_amount=Decimal("100.00"))
        sellers = [SellerFactory() for _ in range(3)]
        for seller in sellers:
            OrderItemFactory(order=order, product=ProductFactory(seller=seller, price=Decimal("5.00")))

        outcome = self.release(order, rate=0)

        transferred = Notification.objects.filter(type=Notification.TYPE_PAYMENT_TRANSFERRED)
        amounts = [Decimal(n.data["amount"]) for n in transferred]
        self.assertEqual(sorted(amounts), [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")])
        self.assertEqual(sum(amounts), outcome.split.seller_amount)

    def test_rate_is_snapshotted(self):
        order = OrderFactory(paid=True, confirmed=True, total_amount=Decimal("200.00"))

        self.release(order, rate=Decimal("12.50"))

        stored = Order.objects.get(pk=order.pk)
        self.assertEqual(stored.commission_rate, Decimal("12.50"))
        self.assertEqual(stored.admin_commission, Decimal("25.00"))


class ReleasePreconditionTest(SettlementTestCase):
    def assertNothingReleased(self, order):
        stored = Order.objects.get(pk=order.pk)
        self.assertFalse(stored.payment_released)
        self.assertIsNone(stored.admin_commission)
        self.assertIsNone(stored.seller_amount)
        self.assertEqual(stored.version, order.version)
        self.assertFalse(OutboxMessage.objects.filter(order=order).exists())

    def test_pending_payment_is_rejected(self):
        order = OrderFactory(confirmed=True)

        with self.assertRaises(InvalidStateError) as ctx:
            self.release(order)

        self.assertEqual(ctx.exception.condition, "payment not confirmed paid")
        self.assertNothingReleased(order)

    def test_unconfirmed_order_is_rejected_whatever_the_payment_status(self):
        for payment_status in (Order.PAYMENT_PENDING, Order.PAYMENT_PAID, Order.PAYMENT_FAILED):
            order = OrderFactory(payment_status=payment_status)
            with self.assertRaises(InvalidStateError):
                self.release(order)
            self.assertNothingReleased(order)

    def test_cancelled_order_is_rejected(self):
        order = OrderFactory(paid=True, confirmed=True, status=Order.STATUS_CANCELLED)

        with self.assertRaises(InvalidStateError) as ctx:
            self.release(order)

        self.assertEqual(ctx.exception.condition, "order cancelled")
        self.assertNothingReleased(order)

    def test_invalid_rate_touches_nothing(self):
        order = OrderFactory(paid=True, confirmed=True)

        with self.assertRaises(ValidationError):
            self.release(order, rate=-5)

        self.assertNothingReleased(order)

    def test_stale_version_is_rejected(self):
        order = OrderFactory(paid=True, confirmed=True)
        Order.objects.filter(pk=order.pk).update(version=F("version") + 1)

        with self.assertRaises(ConcurrentModificationError):
            self.release(order, version=1)

        self.assertFalse(Order.objects.get(pk=order.pk).payment_released)

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFoundError):
            self.service.release_payment("5b0c3f7e-0000-4000-8000-000000000000", 1, 10)


class ReleaseIdempotencyTest(SettlementTestCase):
    def test_second_release_fails_and_changes_nothing(self):
        order = OrderFactory(paid=True, confirmed=True, total_amount=Decimal("100.00"))
        self.release(order)
        first = Order.objects.get(pk=order.pk)

        for version, rate in ((1, 10), (first.version, 50), (first.version + 3, 0)):
            with self.assertRaises(InvalidStateError) as ctx:
                self.release(order, rate=rate, version=version)
            self.assertEqual(ctx.exception.condition, "already released")

        stored = Order.objects.get(pk=order.pk)
        self.assertEqual(stored.admin_commission, Decimal("10.00"))
        self.assertEqual(stored.seller_amount, Decimal("90.00"))
        self.assertEqual(stored.version, first.version)
        self.assertEqual(Notification.objects.filter(type=Notification.TYPE_PAYMENT_TRANSFERRED).count(), 1)

    def test_two_admins_with_the_same_version(self):
        order = OrderFactory(paid=True, confirmed=True)

        self.release(order, version=1)
        with self.assertRaises((ConcurrentModificationError, InvalidStateError)):
            self.release(order, version=1)

        self.assertEqual(Order.objects.filter(pk=order.pk, payment_released=True).count(), 1)

    def test_version_changed_between_check_and_write(self):
        order = OrderFactory(paid=True, confirmed=True)
        ledger = OrderLedger()

        with self.assertRaises(ConcurrentModificationError):
            with transaction.atomic():
                locked = ledger.prepare_release(order.id, 1)
                # Another writer got in without taking the row lock
                Order.objects.filter(pk=order.pk).update(version=F("version") + 1)
                ledger.commit_release(locked, 1, compute_split(locked.total_amount, 10))

        stored = Order.objects.get(pk=order.pk)
        self.assertFalse(stored.payment_released)
        self.assertFalse(OutboxMessage.objects.filter(order=order).exists())

    def test_prepare_release_needs_a_transaction(self):
        order = OrderFactory(paid=True, confirmed=True)
        with patch.object(transaction.get_connection(), "in_atomic_block", False):
            with self.assertRaises(RuntimeError):
                OrderLedger().prepare_release(order.id, 1)


class ReleaseSideEffectFailureTest(SettlementTestCase):
    def test_notification_failure_does_not_undo_release(self):
        order = OrderFactory(paid=True, confirmed=True)

        with patch("notifications.services.outbox.Notification.objects.create", side_effect=DatabaseError("down")):
            outcome = self.release(order)

        self.assertTrue(outcome.delivery.side_effects_pending)
        self.assertEqual(outcome.delivery.failed, 2)
        stored = Order.objects.get(pk=order.pk)
        self.assertTrue(stored.payment_released)
        self.assertFalse(Notification.objects.exists())

        pending = OutboxMessage.objects.filter(order=order, kind=OutboxMessage.KIND_NOTIFICATION)
        self.assertTrue(all(m.status == OutboxMessage.STATUS_PENDING and m.attempts == 1 for m in pending))
        self.assertTrue(all(m.next_attempt_at is not None for m in pending))

        # Resending delivers the notifications without releasing again
        with self.captureOnCommitCallbacks(execute=True):
            report = container.outbox_dispatcher().retry_for_order(order.id)
        self.assertEqual(report.delivered, 2)
        self.assertEqual(Notification.objects.filter(type=Notification.TYPE_PAYMENT_TRANSFERRED).count(), 1)
        self.assertEqual(Order.objects.get(pk=order.pk).version, stored.version)

    def test_email_failure_does_not_undo_release(self):
        order = OrderFactory(paid=True, confirmed=True)
        self.email.fail_always = True

        self.release(order)

        self.assertTrue(Order.objects.get(pk=order.pk).payment_released)
        emails = OutboxMessage.objects.filter(order=order, kind=OutboxMessage.KIND_EMAIL)
        self.assertEqual(emails.count(), 2)
        for message in emails:
            self.assertEqual(message.status, OutboxMessage.STATUS_PENDING)
            self.assertEqual(message.attempts, 1)
            self.assertIn("email dispatch unavailable", message.last_error)


class ReleaseAtTopLevelTest(TransactionTestCase):
    """Release called outside any transaction, the way the admin API calls it."""

    def setUp(self):
        container.configure_for_testing()
        self.email = container.email_dispatcher()
        self.service = SettlementService(ledger=OrderLedger())

    def tearDown(self):
        container.reset()

    def test_emails_are_queued_once_the_release_commits(self):
        order = OrderFactory(paid=True, confirmed=True)

        outcome = self.service.release_payment(order.id, order.version, 10)

        self.assertEqual(outcome.delivery.scheduled, 2)
        self.assertFalse(outcome.delivery.side_effects_pending)
        self.assertEqual(self.email.get_sent_count(), 2)

    def test_broker_outage_is_reported_as_pending(self):
        order = OrderFactory(paid=True, confirmed=True)

        with patch(
            "payment_system.Tasks.outbox_tasks.dispatch_outbox_message_task.delay",
            side_effect=KombuOperationalError("broker down"),
        ):
            outcome = self.service.release_payment(order.id, order.version, 10)

        self.assertTrue(outcome.delivery.side_effects_pending)
        self.assertEqual(outcome.delivery.failed, 2)
        self.assertEqual(outcome.delivery.scheduled, 0)
        self.assertTrue(Order.objects.get(pk=order.pk).payment_released)
        self.assertEqual(self.email.get_sent_count(), 0)

        emails = OutboxMessage.objects.filter(order=order, kind=OutboxMessage.KIND_EMAIL)
        self.assertTrue(all(m.status == OutboxMessage.STATUS_PENDING and m.attempts == 0 for m in emails))
