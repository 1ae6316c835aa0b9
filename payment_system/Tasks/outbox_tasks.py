"""
Outbox Celery Tasks

Delivers side effects recorded by ledger changes:
- Single email message delivery, queued right after the ledger commit
- Periodic drain of due messages (retries with backoff)
"""

import logging

from celery import shared_task


logger = logging.getLogger(__name__)


@shared_task(bind=True, queue="outbox_tasks")
def dispatch_outbox_message_task(self, message_id):
    """
    Make one delivery attempt for an outbox message.

    A failed attempt is recorded on the message itself; the periodic drain
    retries it, so the task does not retry on its own.

    Args:
        message_id (str): The UUID of the OutboxMessage

    Returns:
        dict: Delivery result
    """
    from infrastructure.container import container

    logger.info(f"Dispatching outbox message {message_id}")
    delivered = container.outbox_dispatcher().dispatch(message_id)
    if not delivered:
        logger.warning(f"Outbox message {message_id} not delivered, left for the drain")
    return {"success": delivered, "message_id": message_id}


@shared_task(bind=True, queue="outbox_tasks")
def drain_outbox_task(self, limit=None):
    """
    Periodic task that retries every due pending outbox message.

    Returns:
        dict: Counts of delivered and failed messages
    """
    from infrastructure.container import container

    report = container.outbox_dispatcher().drain(limit=limit)
    if report.delivered or report.failed:
        logger.info(f"Outbox drain finished: {report.delivered} delivered, {report.failed} failed")
    return {"success": True, **report.to_dict()}
