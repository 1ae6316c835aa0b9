"""
Celery Configuration for Beckah Backend

Runs the side-effect outbox: single-message email deliveries scheduled right
after a ledger commit, and a periodic drain that retries anything still pending.
"""

import os

from celery import Celery


# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "beckahBackend.settings")

app = Celery("beckahBackend")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks(["payment_system.Tasks"], related_name="outbox_tasks")

app.conf.beat_schedule = {
    # Retry pending notification/email side effects
    "drain-side-effect-outbox": {
        "task": "payment_system.Tasks.outbox_tasks.drain_outbox_task",
        "schedule": 60.0,  # Every minute
        "options": {"expires": 50.0, "queue": "outbox_tasks"},
    },
}

app.conf.update(
    task_routes={
        "payment_system.Tasks.outbox_tasks.*": {"queue": "outbox_tasks"},
    },
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=60 * 60 * 24,  # Results expire after 24 hours
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # An outbound email call must never hold a worker for long
    task_time_limit=2 * 60,
    task_soft_time_limit=90,
)
