"""
Ledger Transaction Utilities for Beckah Backend
===============================================

Transaction helpers for order ledger writes: bounded lock waits per database
vendor, deadlock retry with backoff, and performance logging.

Usage Examples:
    # Context manager
    with atomic_with_lock_timeout(5):
        order = Order.objects.select_for_update().get(id=order_id)
        ...

    # Function decorator
    @ledger_transaction
    def record_release(order_id, expected_version, split):
        ...
"""

import logging
import time
from contextlib import contextmanager
from functools import wraps

from django.conf import settings
from django.db import OperationalError, connections, transaction


logger = logging.getLogger(__name__)

DEADLOCK_MARKERS = ("Deadlock found", "1213", "deadlock detected", "database is locked")


class TransactionError(Exception):
    """Custom exception for transaction-related errors"""

    pass


class DeadlockError(TransactionError):
    """Exception raised when a deadlock is detected"""

    pass


def default_lock_timeout():
    return getattr(settings, "LEDGER_LOCK_TIMEOUT_SECONDS", 5)


def set_lock_timeout(seconds, using="default"):
    """
    Bound how long the current transaction waits for row locks.

    PostgreSQL and MySQL get a session/transaction level setting; SQLite
    already waits at most its connection ``timeout`` and needs nothing here.

    Args:
        seconds (int): Maximum wait for a row lock
        using (str): Database alias to use
    """
    connection = connections[using]
    vendor = connection.vendor

    if vendor == "postgresql":
        statement = f"SET LOCAL lock_timeout = '{int(seconds * 1000)}ms'"
    elif vendor == "mysql":
        statement = f"SET SESSION innodb_lock_wait_timeout = {max(1, int(seconds))}"
    else:
        return

    with connection.cursor() as cursor:
        cursor.execute(statement)
    logger.debug(f"Set {vendor} lock timeout to {seconds}s")


@contextmanager
def atomic_with_lock_timeout(seconds=None, using="default"):
    """
    Context manager for atomic transactions with a bounded lock wait.

    Args:
        seconds (int): Lock timeout; defaults to settings.LEDGER_LOCK_TIMEOUT_SECONDS
        using (str): Database alias

    Usage:
        with atomic_with_lock_timeout():
            order = Order.objects.select_for_update().get(id=order_id)
    """
    timeout = default_lock_timeout() if seconds is None else seconds
    with transaction.atomic(using=using):
        set_lock_timeout(timeout, using=using)
        yield


def is_deadlock(error):
    message = str(error)
    return any(marker in message for marker in DEADLOCK_MARKERS)


def retry_on_deadlock(max_retries=3, delay=0.1, backoff=2.0):
    """
    Decorator to retry operations on deadlock with exponential backoff.

    Only deadlock-shaped OperationalErrors are retried, and only when the call
    opened the outermost transaction: inside an enclosing atomic block the
    whole transaction is already lost and the error propagates to its owner.

    Args:
        max_retries (int): Maximum number of retry attempts
        delay (float): Initial delay between retries in seconds
        backoff (float): Backoff multiplier for delay
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay
            retries = max_retries if not transaction.get_connection().in_atomic_block else 0

            for attempt in range(retries + 1):
                try:
                    return func(*args, **kwargs)
                except OperationalError as e:
                    if not is_deadlock(e):
                        raise
                    if attempt >= retries:
                        raise DeadlockError(f"Deadlock persisted after {retries} retries: {e}") from e
                    logger.warning(
                        f"Deadlock detected in {func.__name__}, retrying in {current_delay}s "
                        f"(attempt {attempt + 1}/{retries})"
                    )
                    time.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator


def log_transaction_performance(func):
    """
    Decorator to log transaction performance metrics.

    Usage:
        @log_transaction_performance
        def my_database_operation():
            pass
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
            elapsed = time.time() - start_time
            logger.info(f"Transaction {func.__name__} completed in {elapsed:.3f}s")
            return result
        except Exception as e:
            elapsed = time.time() - start_time
            logger.info(f"Transaction {func.__name__} aborted after {elapsed:.3f}s: {type(e).__name__}: {e}")
            raise

    return wrapper


def ledger_transaction(func):
    """
    Convenience decorator for order ledger writes.

    Runs the function in one atomic transaction with a bounded lock wait,
    retries deadlocks and logs timing. Retries re-run the whole function so
    each attempt re-reads the current order version.

    Usage:
        @ledger_transaction
        def update_status(self, order_id, expected_version, new_status):
            ...
    """

    @wraps(func)
    def atomic_wrapper(*args, **kwargs):
        with atomic_with_lock_timeout():
            return func(*args, **kwargs)

    return log_transaction_performance(retry_on_deadlock()(atomic_wrapper))
