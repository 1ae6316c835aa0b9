"""
Email Dispatch Interface
========================

Abstract base class defining the contract for the external email dispatch
collaborator that sends order and payment status emails.
Implements the Interface Segregation Principle.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


UPDATE_ORDER_STATUS = "order_status"
UPDATE_PAYMENT_STATUS = "payment_status"
UPDATE_PAYMENT_RELEASED = "payment_released"

UPDATE_TYPES = (UPDATE_ORDER_STATUS, UPDATE_PAYMENT_STATUS, UPDATE_PAYMENT_RELEASED)


@dataclass(frozen=True)
class StatusEmailRequest:
    """
    Represents one status email to dispatch.

    Attributes:
        order_id: Order the email is about
        update_type: 'order_status', 'payment_status' or 'payment_released'
        new_status: New order status (order_status updates)
        new_payment_status: New payment status (payment_status updates)
        amount: Seller amount as a string (payment_released updates)
    """

    order_id: str
    update_type: str
    new_status: Optional[str] = None
    new_payment_status: Optional[str] = None
    amount: Optional[str] = None

    def __post_init__(self):
        if self.update_type not in UPDATE_TYPES:
            raise ValueError(f"Invalid update type: {self.update_type}. Must be one of {UPDATE_TYPES}")

    def to_payload(self) -> dict:
        """Wire body expected by the dispatch endpoint."""
        payload = {"orderId": self.order_id, "updateType": self.update_type}
        if self.new_status is not None:
            payload["newStatus"] = self.new_status
        if self.new_payment_status is not None:
            payload["newPaymentStatus"] = self.new_payment_status
        if self.amount is not None:
            payload["amount"] = self.amount
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> "StatusEmailRequest":
        return cls(
            order_id=payload["orderId"],
            update_type=payload["updateType"],
            new_status=payload.get("newStatus"),
            new_payment_status=payload.get("newPaymentStatus"),
            amount=payload.get("amount"),
        )


class EmailDispatcherInterface(ABC):
    """
    Abstract interface for status email dispatch.

    Concrete implementations:
        - HttpEmailDispatcher: Production dispatch through the authenticated HTTP endpoint
        - MockEmailDispatcher: Testing dispatcher that records instead of sending
    """

    @abstractmethod
    def dispatch(self, request: StatusEmailRequest) -> None:
        """
        Send one status email.

        Args:
            request: StatusEmailRequest to deliver

        Raises:
            DownstreamUnavailable: If the collaborator could not be reached
                or rejected the request
        """
        pass
