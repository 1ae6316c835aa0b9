"""
Email Dispatcher Factory
========================

Factory pattern for creating email dispatcher instances based on configuration.
"""

import logging
from typing import Literal

from django.conf import settings

from .http_service import HttpEmailDispatcher
from .interface import EmailDispatcherInterface
from .mock_service import MockEmailDispatcher


logger = logging.getLogger(__name__)

EmailDispatchBackend = Literal["http", "mock"]


class EmailDispatcherFactory:
    """
    Factory for creating email dispatcher instances.

    Usage:
        # In settings.py
        INFRASTRUCTURE = {"EMAIL_DISPATCH_BACKEND": "http"}  # or 'mock' for testing

        # In your code
        dispatcher = EmailDispatcherFactory.create()
    """

    @staticmethod
    def create(backend: EmailDispatchBackend | None = None) -> EmailDispatcherInterface:
        """
        Create an email dispatcher instance.

        Args:
            backend: 'http' or 'mock'. If None, reads
                settings.INFRASTRUCTURE["EMAIL_DISPATCH_BACKEND"]

        Raises:
            ValueError: If backend type is invalid
        """
        is_testing = getattr(settings, "TESTING", False)
        default_backend = "mock" if is_testing else "http"

        configured = getattr(settings, "INFRASTRUCTURE", {}).get("EMAIL_DISPATCH_BACKEND")
        backend_type = backend or configured or default_backend

        logger.info(f"Creating email dispatch backend: {backend_type}")

        if backend_type == "http":
            return HttpEmailDispatcher()
        elif backend_type == "mock":
            return MockEmailDispatcher()
        else:
            raise ValueError(f"Invalid email dispatch backend: {backend_type}. Must be 'http' or 'mock'")
