"""
Outbox Dispatcher

Delivers the side effects recorded by the notification fan-out once the
ledger transaction that wrote them has committed.

- Notification messages are delivered inline. The Notification insert and the
  message's ``dispatched`` mark share one transaction, so each message yields
  exactly one Notification.
- Email messages are handed to Celery after commit and sent by a worker
  (at-least-once). The worker claims the message, sends with no transaction
  open and then records the result, so no row lock is held across the HTTP
  call.
- A failed attempt is recorded on the message with exponential backoff; after
  ``OUTBOX_MAX_ATTEMPTS`` the message is marked ``failed`` and only an explicit
  resend picks it up again.

Failures never propagate to the caller: the ledger change is already durable.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction
from django.db.models import Q
from django.utils import timezone
from kombu.exceptions import KombuError

from infrastructure.email.interface import EmailDispatcherInterface, StatusEmailRequest
from notifications.infra.observability.metrics import (
    notifications_created_total,
    outbox_failed_messages,
    outbox_messages_total,
)
from notifications.models import Notification, OutboxMessage
from payment_system.domain.exceptions import DownstreamUnavailable
from utils.service_base import BaseService


logger = logging.getLogger(__name__)

User = get_user_model()


@dataclass
class DeliveryReport:
    """
    Outcome of one dispatch pass.

    Attributes:
        delivered: Messages delivered in this pass
        scheduled: Email messages handed to the task queue
        failed: Messages whose attempt failed; they stay in the outbox
    """

    delivered: int = 0
    scheduled: int = 0
    failed: int = 0

    @property
    def side_effects_pending(self) -> bool:
        return self.failed > 0

    def merge(self, other: "DeliveryReport") -> "DeliveryReport":
        return DeliveryReport(
            delivered=self.delivered + other.delivered,
            scheduled=self.scheduled + other.scheduled,
            failed=self.failed + other.failed,
        )

    def to_dict(self) -> dict:
        return {
            "delivered": self.delivered,
            "scheduled": self.scheduled,
            "failed": self.failed,
            "side_effects_pending": self.side_effects_pending,
        }


class OutboxDispatcher(BaseService):
    def __init__(
        self,
        email_dispatcher: EmailDispatcherInterface,
        max_attempts: int = None,
        backoff_seconds: float = None,
        claim_seconds: float = None,
    ):
        super().__init__()
        self.email_dispatcher = email_dispatcher
        self.max_attempts = max_attempts or getattr(settings, "OUTBOX_MAX_ATTEMPTS", 5)
        self.backoff_seconds = backoff_seconds or getattr(settings, "OUTBOX_RETRY_BACKOFF_SECONDS", 30)
        self.claim_seconds = claim_seconds or getattr(settings, "OUTBOX_CLAIM_SECONDS", 60)

    @staticmethod
    def _due(queryset):
        return queryset.filter(status=OutboxMessage.STATUS_PENDING).filter(
            Q(next_attempt_at__isnull=True) | Q(next_attempt_at__lte=timezone.now())
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    @BaseService.log_performance
    def dispatch_for_order(self, order_id) -> DeliveryReport:
        """
        Deliver what a just-committed ledger change queued for ``order_id``.

        Called by the coordinators after their transaction; never raises for
        delivery problems. Emails are queued right away when no transaction is
        open (a broker outage counts as failed), otherwise on commit.
        """
        report = DeliveryReport()
        message_ids = list(
            self._due(OutboxMessage.objects.filter(order_id=order_id)).values_list("id", "kind").order_by("created_at")
        )

        for message_id, kind in message_ids:
            if kind == OutboxMessage.KIND_EMAIL:
                if transaction.get_connection().in_atomic_block:
                    transaction.on_commit(lambda message_id=message_id: self.schedule_email(message_id))
                    report.scheduled += 1
                elif self.schedule_email(message_id):
                    report.scheduled += 1
                else:
                    report.failed += 1
            elif self.dispatch(message_id):
                report.delivered += 1
            else:
                report.failed += 1

        if report.failed:
            self.logger.warning(f"Order {order_id}: {report.failed} side effects left in the outbox for retry")
        return report

    def schedule_email(self, message_id) -> bool:
        """Queue the email task; a broker outage leaves the message for the drain."""
        from payment_system.Tasks.outbox_tasks import dispatch_outbox_message_task

        try:
            dispatch_outbox_message_task.delay(str(message_id))
        except (KombuError, OSError) as e:
            self.logger.warning(f"Could not queue email outbox message {message_id}, drain will retry: {e}")
            outbox_messages_total.labels(kind=OutboxMessage.KIND_EMAIL, outcome="queue_error").inc()
            return False
        outbox_messages_total.labels(kind=OutboxMessage.KIND_EMAIL, outcome="scheduled").inc()
        return True

    def dispatch(self, message_id) -> bool:
        """
        Make one delivery attempt for a message.

        Notifications are created under the message's row lock. Emails are
        claimed first (attempt counted, message leased away from the drain),
        sent with no transaction open, then the result is recorded.

        Returns:
            True if the message is (now or already) dispatched, False if the
            attempt failed or the message is marked failed
        """
        with transaction.atomic():
            try:
                message = OutboxMessage.objects.select_for_update().get(pk=message_id)
            except OutboxMessage.DoesNotExist:
                self.logger.error(f"Outbox message {message_id} does not exist")
                return False

            if message.status != OutboxMessage.STATUS_PENDING:
                self.logger.debug(f"Outbox message {message_id} already {message.status}, skipping")
                return message.status == OutboxMessage.STATUS_DISPATCHED

            message.attempts += 1
            if message.kind == OutboxMessage.KIND_NOTIFICATION:
                try:
                    message.notification = self._deliver_notification(message)
                except DownstreamUnavailable as e:
                    self._record_failure(message, e)
                    return False
                self._mark_dispatched(message)
            else:
                message.next_attempt_at = timezone.now() + timedelta(seconds=self.claim_seconds)
                message.save(update_fields=["attempts", "next_attempt_at"])

        if message.kind == OutboxMessage.KIND_EMAIL:
            try:
                self._deliver_email(message)
            except DownstreamUnavailable as e:
                self._record_failure(message, e)
                return False
            self._mark_dispatched(message)

        outbox_messages_total.labels(kind=message.kind, outcome="delivered").inc()
        self.logger.info(f"Outbox message {message.id} ({message.kind}) for order {message.order_id} delivered")
        return True

    @BaseService.log_performance
    def drain(self, limit: int = None) -> DeliveryReport:
        """Retry every pending message that is due, oldest first."""
        limit = limit or getattr(settings, "OUTBOX_DRAIN_BATCH_SIZE", 100)
        report = DeliveryReport()
        message_ids = list(self._due(OutboxMessage.objects.all()).order_by("created_at").values_list("id", flat=True)[:limit])

        for message_id in message_ids:
            if self.dispatch(message_id):
                report.delivered += 1
            else:
                report.failed += 1

        outbox_failed_messages.set(OutboxMessage.objects.filter(status=OutboxMessage.STATUS_FAILED).count())
        if message_ids:
            self.logger.info(f"Outbox drain: {report.delivered} delivered, {report.failed} failed of {len(message_ids)}")
        return report

    @BaseService.log_performance
    def retry_for_order(self, order_id) -> DeliveryReport:
        """
        Resend an order's undelivered side effects.

        Failed messages get a fresh set of attempts and backed-off ones become
        due immediately. The ledger is not touched.
        """
        with transaction.atomic():
            revived = OutboxMessage.objects.filter(order_id=order_id, status=OutboxMessage.STATUS_FAILED).update(
                status=OutboxMessage.STATUS_PENDING, attempts=0, next_attempt_at=None, last_error=""
            )
            OutboxMessage.objects.filter(order_id=order_id, status=OutboxMessage.STATUS_PENDING).update(
                next_attempt_at=None
            )
        self.logger.info(f"Resending side effects for order {order_id} ({revived} previously failed)")
        return self.dispatch_for_order(order_id)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _deliver_notification(self, message: OutboxMessage) -> Notification:
        payload = message.payload
        if not User.objects.filter(pk=payload["user_id"]).exists():
            raise DownstreamUnavailable("notification store", f"recipient {payload['user_id']} no longer exists")

        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    user_id=payload["user_id"],
                    type=payload["type"],
                    title=payload["title"],
                    message=payload["message"],
                    data=payload.get("data", {}),
                )
        except DatabaseError as e:
            raise DownstreamUnavailable("notification store", str(e)) from e

        notifications_created_total.labels(type=notification.type).inc()
        return notification

    def _deliver_email(self, message: OutboxMessage) -> None:
        self.email_dispatcher.dispatch(StatusEmailRequest.from_payload(message.payload))

    def _mark_dispatched(self, message: OutboxMessage) -> None:
        message.status = OutboxMessage.STATUS_DISPATCHED
        message.dispatched_at = timezone.now()
        message.last_error = ""
        message.next_attempt_at = None
        message.save(
            update_fields=["status", "attempts", "notification", "dispatched_at", "last_error", "next_attempt_at"]
        )

    def _record_failure(self, message: OutboxMessage, error: Exception) -> None:
        message.last_error = str(error)[:1000]
        if message.attempts >= self.max_attempts:
            message.status = OutboxMessage.STATUS_FAILED
            message.next_attempt_at = None
            outbox_messages_total.labels(kind=message.kind, outcome="failed").inc()
            self.logger.error(
                f"Outbox message {message.id} ({message.kind}) for order {message.order_id} "
                f"failed after {message.attempts} attempts: {error}"
            )
        else:
            delay = self.backoff_seconds * (2 ** (message.attempts - 1))
            message.next_attempt_at = timezone.now() + timedelta(seconds=delay)
            outbox_messages_total.labels(kind=message.kind, outcome="retry").inc()
            self.logger.warning(
                f"Outbox message {message.id} ({message.kind}) for order {message.order_id} "
                f"attempt {message.attempts} failed, retrying in {delay:.0f}s: {error}"
            )
        message.save(update_fields=["status", "attempts", "last_error", "next_attempt_at"])
