"""
Payment System Tasks Package

Celery task definitions for delivering order side effects from the outbox.
"""

# Import tasks to ensure they are registered with Celery
from .outbox_tasks import dispatch_outbox_message_task, drain_outbox_task


# Export tasks for easy importing
__all__ = [
    "dispatch_outbox_message_task",
    "drain_outbox_task",
]
