from .fan_out import NotificationFanOut
from .notification_service import NotificationService
from .outbox import DeliveryReport, OutboxDispatcher


__all__ = ["NotificationFanOut", "NotificationService", "OutboxDispatcher", "DeliveryReport"]
