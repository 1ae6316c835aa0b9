"""
Deliver pending order side effects from the outbox.

Usage:
    python manage.py drain_outbox
    python manage.py drain_outbox --limit 500
    python manage.py drain_outbox --order <order-uuid>   # also revives failed messages
"""

from django.core.management.base import BaseCommand

from infrastructure.container import container


class Command(BaseCommand):
    help = "Deliver pending notification and email side effects from the outbox"

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=None, help="Maximum number of messages to process")
        parser.add_argument("--order", dest="order_id", default=None, help="Resend everything pending for one order")

    def handle(self, *args, **options):
        outbox = container.outbox_dispatcher()

        if options["order_id"]:
            report = outbox.retry_for_order(options["order_id"])
        else:
            report = outbox.drain(limit=options["limit"])

        style = self.style.WARNING if report.failed else self.style.SUCCESS
        self.stdout.write(
            style(f"Delivered: {report.delivered}, scheduled: {report.scheduled}, failed: {report.failed}")
        )
