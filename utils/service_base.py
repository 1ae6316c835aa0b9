"""
Base classes and utilities for the service layer.

This module provides the ServiceResult pattern (inspired by Rust's Result type)
and the BaseService class shared by the marketplace and payment services.
"""

import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    A result type that encapsulates success or failure from service operations.

    Attributes:
        ok: True if operation succeeded, False otherwise
        value: The success value (present if ok=True)
        error: Error code (present if ok=False)
        error_detail: Human-readable error message (present if ok=False)
        retryable: True when the failed operation changed nothing and the same
            action can safely be submitted again

    Examples:
        >>> result = service_ok(order)
        >>> if result.ok:
        ...     return Response({"order": result.value}, 200)

        >>> result = service_err("order_not_found", "Order 123 does not exist", retryable=True)
        >>> print(result.error)  # "order_not_found"
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_detail: Optional[str] = None
    retryable: bool = False


def service_ok(value: T) -> ServiceResult[T]:
    """
    Create a successful ServiceResult.

    Args:
        value: The success value

    Returns:
        ServiceResult with ok=True and the value
    """
    return ServiceResult(ok=True, value=value)


def service_err(error: str, error_detail: str = "", retryable: bool = False) -> ServiceResult:
    """
    Create a failed ServiceResult.

    Args:
        error: Error code (e.g., "order_not_found", "invalid_order_state")
        error_detail: Human-readable error message
        retryable: Whether the caller may resubmit the same action unchanged

    Returns:
        ServiceResult with ok=False and error information
    """
    return ServiceResult(ok=False, error=error, error_detail=error_detail or error, retryable=retryable)


class BaseService:
    """
    Base class for all services providing common functionality.

    Provides:
    - Logging with class name
    - Performance timing decorator

    Usage:
        class SettlementService(BaseService):
            def __init__(self, ledger):
                super().__init__()
                self.ledger = ledger

            @BaseService.log_performance
            def release_payment(self, order_id, expected_version, rate_percent):
                self.logger.info(f"Releasing payment for order {order_id}")
    """

    def __init__(self):
        """Initialize base service with logger."""
        self.logger = logging.getLogger(self.__class__.__module__ + "." + self.__class__.__name__)

    @staticmethod
    def log_performance(func: Callable) -> Callable:
        """
        Decorator to log performance of service methods.

        Logs execution time and any errors that occur. Exceptions are re-raised.
        """

        @wraps(func)
        def wrapper(self, *args, **kwargs):
            start_time = time.time()
            method_name = f"{self.__class__.__name__}.{func.__name__}"

            try:
                self.logger.debug(f"{method_name} started")
                result = func(self, *args, **kwargs)
                elapsed_time = (time.time() - start_time) * 1000  # Convert to ms

                if isinstance(result, ServiceResult):
                    if result.ok:
                        self.logger.info(f"{method_name} completed successfully in {elapsed_time:.2f}ms")
                    else:
                        self.logger.warning(
                            f"{method_name} failed with error '{result.error}' in {elapsed_time:.2f}ms"
                        )
                else:
                    self.logger.info(f"{method_name} completed in {elapsed_time:.2f}ms")

                return result

            except Exception as e:
                elapsed_time = (time.time() - start_time) * 1000
                self.logger.warning(f"{method_name} raised {type(e).__name__} after {elapsed_time:.2f}ms: {e}")
                raise

        return wrapper


class ErrorCodes:
    """Standard error codes used by the settlement services."""

    # Order errors
    ORDER_NOT_FOUND = "order_not_found"
    INVALID_ORDER_STATE = "invalid_order_state"
    CONCURRENT_MODIFICATION = "concurrent_modification"

    # Permission errors
    PERMISSION_DENIED = "permission_denied"

    # Validation errors
    VALIDATION_ERROR = "validation_error"

    # Internal errors
    INTERNAL_ERROR = "internal_error"
