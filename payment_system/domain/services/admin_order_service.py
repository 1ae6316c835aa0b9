"""
Administrative order commands.

Each command carries the order version the admin was looking at; the service
runs it against the ledger and reports the result as a ServiceResult whose
error code tells "nothing happened" (retryable) apart from a committed change
with side effects still pending.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.db import DatabaseError, transaction

from notifications.services.outbox import DeliveryReport
from payment_system.domain.exceptions import (
    ConcurrentModificationError,
    InvalidStateError,
    OrderNotFoundError,
    SettlementError,
    ValidationError,
)
from payment_system.infra.observability.metrics import admin_order_commands_total
from utils.service_base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok
from utils.transaction_utils import TransactionError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateOrderCommand:
    order_id: str
    expected_version: int
    status: Optional[str] = None
    payment_status: Optional[str] = None
    override_reason: str = ""


@dataclass(frozen=True)
class ReleasePaymentCommand:
    order_id: str
    expected_version: int
    rate_percent: object
    transfer_notes: str = ""


def error_result(error: Exception) -> ServiceResult:
    """Map a settlement exception onto a failed ServiceResult."""
    if isinstance(error, OrderNotFoundError):
        return service_err(ErrorCodes.ORDER_NOT_FOUND, str(error), retryable=True)
    if isinstance(error, ValidationError):
        return service_err(ErrorCodes.VALIDATION_ERROR, str(error), retryable=True)
    if isinstance(error, InvalidStateError):
        return service_err(ErrorCodes.INVALID_ORDER_STATE, str(error), retryable=True)
    if isinstance(error, ConcurrentModificationError):
        return service_err(ErrorCodes.CONCURRENT_MODIFICATION, str(error), retryable=True)
    if isinstance(error, TransactionError):
        return service_err(ErrorCodes.INTERNAL_ERROR, str(error), retryable=True)
    return service_err(ErrorCodes.INTERNAL_ERROR, str(error))


class AdminOrderService(BaseService):
    def __init__(self, ledger=None, settlement_service=None, outbox=None):
        super().__init__()
        if ledger is None:
            from marketplace.ordering.domain.services.order_ledger import OrderLedger

            ledger = OrderLedger()
        if settlement_service is None:
            from payment_system.domain.services.settlement_service import SettlementService

            settlement_service = SettlementService(ledger=ledger, outbox=outbox)
        self.ledger = ledger
        self.settlement_service = settlement_service
        self._outbox = outbox

    @property
    def outbox(self):
        if self._outbox is not None:
            return self._outbox
        from infrastructure.container import container

        return container.outbox_dispatcher()

    @BaseService.log_performance
    def get_order(self, order_id) -> ServiceResult:
        try:
            return service_ok(self.ledger.get_order(order_id))
        except OrderNotFoundError as e:
            return error_result(e)

    @BaseService.log_performance
    def release_payment(self, command: ReleasePaymentCommand) -> ServiceResult:
        """
        Returns:
            ServiceResult with {"order", "split", "delivery"} on success
        """
        try:
            outcome = self.settlement_service.release_payment(
                command.order_id, command.expected_version, command.rate_percent, command.transfer_notes
            )
        except SettlementError as e:
            admin_order_commands_total.labels(command="release_payment", result="rejected").inc()
            return error_result(e)
        except (DatabaseError, TransactionError) as e:
            self.logger.exception(f"Database error releasing order {command.order_id}")
            admin_order_commands_total.labels(command="release_payment", result="error").inc()
            return error_result(e)

        admin_order_commands_total.labels(command="release_payment", result="ok").inc()
        return service_ok({"order": outcome.order, "split": outcome.split, "delivery": outcome.delivery})

    @BaseService.log_performance
    def update_order(self, command: UpdateOrderCommand) -> ServiceResult:
        """
        Apply a status and/or payment-status change in one action.

        Both changes commit together or not at all; each produces its own
        notification.

        Returns:
            ServiceResult with {"order", "delivery"} on success
        """
        if command.status is None and command.payment_status is None:
            return error_result(ValidationError("Nothing to update: provide status and/or payment_status"))

        try:
            with transaction.atomic():
                version = command.expected_version
                order = None
                if command.status is not None:
                    order = self.ledger.update_status(command.order_id, version, command.status)
                    version = order.version
                if command.payment_status is not None:
                    order = self.ledger.update_payment_status(
                        command.order_id, version, command.payment_status, command.override_reason
                    )
        except SettlementError as e:
            admin_order_commands_total.labels(command="update_order", result="rejected").inc()
            return error_result(e)
        except (DatabaseError, TransactionError) as e:
            self.logger.exception(f"Database error updating order {command.order_id}")
            admin_order_commands_total.labels(command="update_order", result="error").inc()
            return error_result(e)

        admin_order_commands_total.labels(command="update_order", result="ok").inc()
        delivery = self._deliver_side_effects(order.id)
        return service_ok({"order": order, "delivery": delivery})

    @BaseService.log_performance
    def resend_notifications(self, order_id) -> ServiceResult:
        """Redeliver an order's undelivered side effects without touching the ledger."""
        try:
            order = self.ledger.get_order(order_id)
        except OrderNotFoundError as e:
            return error_result(e)

        report = self.outbox.retry_for_order(order.id)
        admin_order_commands_total.labels(command="resend_notifications", result="ok").inc()
        return service_ok({"order": order, "delivery": report})

    def _deliver_side_effects(self, order_id) -> DeliveryReport:
        try:
            return self.outbox.dispatch_for_order(order_id)
        except DatabaseError:
            self.logger.exception(f"Side-effect dispatch for order {order_id} failed, left to the drain")
            return DeliveryReport(failed=1)
