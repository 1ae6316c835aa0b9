"""
Email Dispatch Abstraction Layer
================================

Provides a unified interface for the external status email collaborator.
"""

from .factory import EmailDispatcherFactory
from .http_service import HttpEmailDispatcher
from .interface import (
    UPDATE_ORDER_STATUS,
    UPDATE_PAYMENT_RELEASED,
    UPDATE_PAYMENT_STATUS,
    EmailDispatcherInterface,
    StatusEmailRequest,
)
from .mock_service import MockEmailDispatcher


__all__ = [
    "EmailDispatcherInterface",
    "StatusEmailRequest",
    "HttpEmailDispatcher",
    "MockEmailDispatcher",
    "EmailDispatcherFactory",
    "UPDATE_ORDER_STATUS",
    "UPDATE_PAYMENT_STATUS",
    "UPDATE_PAYMENT_RELEASED",
]
