"""
Order settlement events handed to the notification fan-out.

Each event describes one committed ledger change; the fan-out turns it into
outbox messages inside the same transaction.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Tuple


@dataclass
class OrderStatusChanged:
    order_id: str
    buyer_id: int
    old_status: str
    new_status: str
    amount: Decimal
    occurred_at: datetime


@dataclass
class PaymentStatusChanged:
    order_id: str
    buyer_id: int
    old_payment_status: str
    new_payment_status: str
    amount: Decimal
    occurred_at: datetime
    override_reason: str = ""


@dataclass
class PaymentReleased:
    order_id: str
    reference: str
    seller_shares: List[Tuple[int, Decimal]]
    total_amount: Decimal
    commission: Decimal
    seller_amount: Decimal
    commission_rate: Decimal
    released_at: datetime


@dataclass
class OrderDelivered:
    order_id: str
    reference: str
    total_amount: Decimal
    occurred_at: datetime
    seller_ids: List[int] = field(default_factory=list)
