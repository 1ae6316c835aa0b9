import uuid

from django.contrib.auth import get_user_model
from django.db import models


User = get_user_model()


class Notification(models.Model):
    """In-app notification shown in a user's notification dropdown."""

    TYPE_ORDER_STATUS_CHANGED = "order_status_changed"
    TYPE_PAYMENT_STATUS_CHANGED = "payment_status_changed"
    TYPE_PAYMENT_TRANSFERRED = "payment_transferred"
    TYPE_ORDER_DELIVERED = "order_delivered"

    TYPE_CHOICES = [
        (TYPE_ORDER_STATUS_CHANGED, "Order Status Changed"),
        (TYPE_PAYMENT_STATUS_CHANGED, "Payment Status Changed"),
        (TYPE_PAYMENT_TRANSFERRED, "Payment Transferred"),
        (TYPE_ORDER_DELIVERED, "Order Delivered"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="notifications")
    type = models.CharField(max_length=40, choices=TYPE_CHOICES)
    title = models.CharField(max_length=200)
    message = models.TextField()
    data = models.JSONField(default=dict, blank=True)
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "read", "-created_at"], name="notif_user_read_idx"),
        ]

    def __str__(self):
        return f"{self.type} for {self.user_id}: {self.title}"


class OutboxMessage(models.Model):
    """
    Pending side effect written in the same transaction as the ledger change
    that caused it, delivered afterwards by the outbox dispatcher.
    """

    KIND_NOTIFICATION = "notification"
    KIND_EMAIL = "email"

    KIND_CHOICES = [
        (KIND_NOTIFICATION, "In-app Notification"),
        (KIND_EMAIL, "Email Dispatch"),
    ]

    STATUS_PENDING = "pending"
    STATUS_DISPATCHED = "dispatched"
    STATUS_FAILED = "failed"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_DISPATCHED, "Dispatched"),
        (STATUS_FAILED, "Failed"),  # Attempts exhausted, needs a manual resend
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey("marketplace.Order", on_delete=models.CASCADE, related_name="outbox_messages")
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    payload = models.JSONField(default=dict)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    next_attempt_at = models.DateTimeField(null=True, blank=True)

    # Set once a notification message has produced its Notification row
    notification = models.OneToOneField(
        Notification, on_delete=models.SET_NULL, null=True, blank=True, related_name="outbox_message"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    dispatched_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["status", "next_attempt_at"], name="outbox_status_due_idx"),
            models.Index(fields=["order", "status"], name="outbox_order_status_idx"),
        ]

    def __str__(self):
        return f"{self.kind} message {str(self.id)[:8]} for order {str(self.order_id)[:8]} ({self.status})"
