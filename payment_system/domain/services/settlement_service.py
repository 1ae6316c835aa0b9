"""
Settlement Coordinator

Releases an order's payment exactly once: precondition check, commission
split, one ledger transaction, then best-effort delivery of the queued side
effects. Once the ledger transaction commits the order is released, whatever
happens to the seller notification or the email afterwards.
"""

import logging
from dataclasses import dataclass

from django.db import DatabaseError

from marketplace.ordering.domain.models.order import Order
from notifications.services.outbox import DeliveryReport
from payment_system.domain.exceptions import ConcurrentModificationError, InvalidStateError, ValidationError
from payment_system.domain.services.commission import CommissionSplit, compute_split, validate_rate
from payment_system.infra.observability.metrics import (
    commission_volume_total,
    payment_releases_total,
    released_seller_volume_total,
)
from utils.service_base import BaseService
from utils.transaction_utils import ledger_transaction


logger = logging.getLogger(__name__)


@dataclass
class SettlementOutcome:
    order: Order
    split: CommissionSplit
    delivery: DeliveryReport


class SettlementService(BaseService):
    def __init__(self, ledger=None, outbox=None):
        super().__init__()
        if ledger is None:
            from marketplace.ordering.domain.services.order_ledger import OrderLedger

            ledger = OrderLedger()
        self.ledger = ledger
        self._outbox = outbox

    @property
    def outbox(self):
        if self._outbox is not None:
            return self._outbox
        from infrastructure.container import container

        return container.outbox_dispatcher()

    @BaseService.log_performance
    def release_payment(self, order_id, expected_version: int, rate_percent, transfer_notes: str = "") -> SettlementOutcome:
        """
        Release the payment of a paid, buyer-confirmed order.

        Args:
            order_id: Order to release
            expected_version: Order version the admin decided on
            rate_percent: Commission rate to apply and snapshot on the order
            transfer_notes: Free-text note about the bank transfer

        Raises:
            ValidationError: malformed rate or version
            OrderNotFoundError: unknown order
            InvalidStateError: "already released", "order cancelled",
                "payment not confirmed paid", "buyer has not confirmed receipt"
            ConcurrentModificationError: the order changed since ``expected_version``
        """
        try:
            rate = validate_rate(rate_percent)
            order, split = self._record_release(order_id, expected_version, rate, transfer_notes)
        except InvalidStateError as e:
            payment_releases_total.labels(outcome=e.condition.replace(" ", "_")).inc()
            raise
        except ConcurrentModificationError:
            payment_releases_total.labels(outcome="conflict").inc()
            raise
        except ValidationError:
            payment_releases_total.labels(outcome="invalid").inc()
            raise

        payment_releases_total.labels(outcome="released").inc()
        released_seller_volume_total.inc(float(split.seller_amount))
        commission_volume_total.inc(float(split.commission))
        self.logger.info(
            f"Released order {order.id}: commission {split.commission} at {split.rate_percent}%, "
            f"seller amount {split.seller_amount}"
        )

        delivery = self._deliver_side_effects(order.id)
        return SettlementOutcome(order=order, split=split, delivery=delivery)

    @ledger_transaction
    def _record_release(self, order_id, expected_version, rate, transfer_notes):
        order = self.ledger.prepare_release(order_id, expected_version)
        split = compute_split(order.total_amount, rate)
        order = self.ledger.commit_release(order, expected_version, split, transfer_notes)
        return order, split

    def _deliver_side_effects(self, order_id) -> DeliveryReport:
        try:
            return self.outbox.dispatch_for_order(order_id)
        except DatabaseError:
            # Messages are already committed; the periodic drain delivers them
            self.logger.exception(f"Side-effect dispatch for released order {order_id} failed, left to the drain")
            return DeliveryReport(failed=1)
