"""
Notification Fan-out

Turns a committed ledger change into outbox messages: one in-app
notification per affected user and, where the storefront sends one, a status
email request. Messages are only recorded here; delivery happens after the
surrounding transaction commits.
"""

import logging
from typing import List

from infrastructure.email.interface import (
    UPDATE_ORDER_STATUS,
    UPDATE_PAYMENT_RELEASED,
    UPDATE_PAYMENT_STATUS,
    StatusEmailRequest,
)
from notifications import message_templates as templates
from notifications.models import Notification, OutboxMessage
from payment_system.domain.events.definitions import (
    OrderDelivered,
    OrderStatusChanged,
    PaymentReleased,
    PaymentStatusChanged,
)


logger = logging.getLogger(__name__)


def notification_payload(user_id, notification_type, title, message, data) -> dict:
    return {"user_id": user_id, "type": notification_type, "title": title, "message": message, "data": data}


class NotificationFanOut:
    def publish(self, order, event) -> List[OutboxMessage]:
        """
        Record the outbox messages for ``event`` in the current transaction.

        Returns:
            The created OutboxMessage rows
        """
        messages = [
            OutboxMessage(order=order, kind=kind, payload=payload) for kind, payload in self._messages_for(event)
        ]
        OutboxMessage.objects.bulk_create(messages)
        logger.debug(f"Queued {len(messages)} side effects for {type(event).__name__} on order {order.id}")
        return messages

    def _messages_for(self, event):
        if isinstance(event, OrderStatusChanged):
            return self._order_status_messages(event)
        if isinstance(event, PaymentStatusChanged):
            return self._payment_status_messages(event)
        if isinstance(event, PaymentReleased):
            return self._payment_released_messages(event)
        if isinstance(event, OrderDelivered):
            return self._order_delivered_messages(event)
        raise TypeError(f"No fan-out defined for {type(event).__name__}")

    def _order_status_messages(self, event: OrderStatusChanged):
        data = {
            "order_id": event.order_id,
            "old_status": event.old_status,
            "new_status": event.new_status,
            "amount": str(event.amount),
        }
        yield OutboxMessage.KIND_NOTIFICATION, notification_payload(
            event.buyer_id,
            Notification.TYPE_ORDER_STATUS_CHANGED,
            templates.ORDER_STATUS_TITLE,
            templates.order_status_message(event.new_status),
            data,
        )
        yield OutboxMessage.KIND_EMAIL, StatusEmailRequest(
            order_id=event.order_id, update_type=UPDATE_ORDER_STATUS, new_status=event.new_status
        ).to_payload()

    def _payment_status_messages(self, event: PaymentStatusChanged):
        data = {
            "order_id": event.order_id,
            "old_payment_status": event.old_payment_status,
            "new_payment_status": event.new_payment_status,
            "amount": str(event.amount),
        }
        if event.override_reason:
            data["override_reason"] = event.override_reason
        yield OutboxMessage.KIND_NOTIFICATION, notification_payload(
            event.buyer_id,
            Notification.TYPE_PAYMENT_STATUS_CHANGED,
            templates.PAYMENT_STATUS_TITLE,
            templates.payment_status_message(event.new_payment_status),
            data,
        )
        yield OutboxMessage.KIND_EMAIL, StatusEmailRequest(
            order_id=event.order_id,
            update_type=UPDATE_PAYMENT_STATUS,
            new_payment_status=event.new_payment_status,
        ).to_payload()

    def _payment_released_messages(self, event: PaymentReleased):
        for seller_id, share in event.seller_shares:
            data = {
                "order_id": event.order_id,
                "reference": event.reference,
                "amount": str(share),
                "seller_amount": str(event.seller_amount),
                "commission": str(event.commission),
                "commission_rate": str(event.commission_rate),
                "total_amount": str(event.total_amount),
            }
            yield OutboxMessage.KIND_NOTIFICATION, notification_payload(
                seller_id,
                Notification.TYPE_PAYMENT_TRANSFERRED,
                templates.PAYMENT_TRANSFERRED_TITLE,
                templates.payment_transferred_message(share, event.reference),
                data,
            )
        yield OutboxMessage.KIND_EMAIL, StatusEmailRequest(
            order_id=event.order_id, update_type=UPDATE_PAYMENT_RELEASED, amount=str(event.seller_amount)
        ).to_payload()

    def _order_delivered_messages(self, event: OrderDelivered):
        data = {"order_id": event.order_id, "reference": event.reference, "total_amount": str(event.total_amount)}
        for seller_id in event.seller_ids:
            yield OutboxMessage.KIND_NOTIFICATION, notification_payload(
                seller_id,
                Notification.TYPE_ORDER_DELIVERED,
                templates.ORDER_DELIVERED_TITLE,
                templates.order_delivered_message(event.reference),
                data,
            )
