"""
Dependency Injection Container
================================

Simple service locator pattern for managing infrastructure dependencies.
Implements the Dependency Inversion Principle by providing centralized access
to infrastructure services through their abstract interfaces.

Usage:
    from infrastructure.container import container

    # In your service
    dispatcher = container.email_dispatcher()
    settlement = container.settlement_service()
"""

import logging
from typing import Optional

from .email import EmailDispatcherFactory, EmailDispatcherInterface


logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Service container for infrastructure dependencies.

    Implements lazy initialization and caching of service instances.
    Thread-safe singleton pattern.
    """

    _instance: Optional["ServiceContainer"] = None
    _initialized: bool = False

    def __new__(cls):
        """Ensure only one instance exists (singleton pattern)."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize container (only once)."""
        if not self._initialized:
            self._email_dispatcher: Optional[EmailDispatcherInterface] = None

            # Domain Services
            self._order_ledger = None
            self._outbox_dispatcher = None
            self._settlement_service = None
            self._admin_order_service = None
            self._reporting_service = None

            self._initialized = True
            logger.info("Service container initialized")

    def email_dispatcher(self, backend: Optional[str] = None) -> EmailDispatcherInterface:
        """
        Get email dispatcher instance.

        Args:
            backend: Dispatch backend type ('http' or 'mock')
                    If None, uses configuration from settings

        Returns:
            EmailDispatcherInterface implementation (cached)
        """
        if self._email_dispatcher is None or backend is not None:
            self._email_dispatcher = EmailDispatcherFactory.create(backend)
            self._outbox_dispatcher = None
            logger.debug(f"Created email dispatcher: {type(self._email_dispatcher).__name__}")

        return self._email_dispatcher

    def order_ledger(self):
        """Get OrderLedger instance."""
        if self._order_ledger is None:
            from marketplace.ordering.domain.services.order_ledger import OrderLedger

            self._order_ledger = OrderLedger()
            logger.debug("Created OrderLedger")
        return self._order_ledger

    def outbox_dispatcher(self):
        """Get OutboxDispatcher instance."""
        if self._outbox_dispatcher is None:
            from notifications.services.outbox import OutboxDispatcher

            self._outbox_dispatcher = OutboxDispatcher(email_dispatcher=self.email_dispatcher())
            logger.debug("Created OutboxDispatcher")
        return self._outbox_dispatcher

    def settlement_service(self):
        """Get SettlementService instance."""
        if self._settlement_service is None:
            from payment_system.domain.services.settlement_service import SettlementService

            # Resolves the outbox lazily so a swapped email dispatcher is honoured
            self._settlement_service = SettlementService(ledger=self.order_ledger(), outbox=None)
            logger.debug("Created SettlementService")
        return self._settlement_service

    def admin_order_service(self):
        """Get AdminOrderService instance."""
        if self._admin_order_service is None:
            from payment_system.domain.services.admin_order_service import AdminOrderService

            self._admin_order_service = AdminOrderService(
                ledger=self.order_ledger(), settlement_service=self.settlement_service()
            )
            logger.debug("Created AdminOrderService")
        return self._admin_order_service

    def reporting_service(self):
        """Get ReportingService instance."""
        if self._reporting_service is None:
            from payment_system.domain.services.reporting_service import ReportingService

            self._reporting_service = ReportingService()
            logger.debug("Created ReportingService")
        return self._reporting_service

    def reset(self):
        """
        Reset all cached service instances.

        Useful for testing or when switching between environments.
        """
        self._email_dispatcher = None
        self._order_ledger = None
        self._outbox_dispatcher = None
        self._settlement_service = None
        self._admin_order_service = None
        self._reporting_service = None
        logger.info("Service container reset")

    def configure_for_testing(self):
        """
        Configure container with mock services for testing.

        Sets up:
            - Mock email dispatcher (instead of the HTTP endpoint)
        """
        self.reset()
        self._email_dispatcher = EmailDispatcherFactory.create("mock")
        logger.info("Service container configured for testing")


# Global singleton instance
container = ServiceContainer()
