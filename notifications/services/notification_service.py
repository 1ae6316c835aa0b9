"""Buyer- and seller-facing access to in-app notifications."""

from typing import Iterable, List

from django.utils import timezone

from notifications.models import Notification
from utils.service_base import BaseService, ServiceResult, service_ok


class NotificationService(BaseService):
    @BaseService.log_performance
    def list_for_user(self, user, unread_only: bool = False, limit: int = 50) -> ServiceResult[List[Notification]]:
        queryset = Notification.objects.filter(user=user)
        if unread_only:
            queryset = queryset.filter(read=False)
        return service_ok(list(queryset.order_by("-created_at")[:limit]))

    def unread_count(self, user) -> int:
        return Notification.objects.filter(user=user, read=False).count()

    @BaseService.log_performance
    def mark_read(self, user, notification_ids: Iterable = None) -> ServiceResult[int]:
        """
        Mark the given notifications (or all of the user's) as read.

        Ids belonging to other users are ignored.
        """
        queryset = Notification.objects.filter(user=user, read=False)
        if notification_ids is not None:
            queryset = queryset.filter(id__in=list(notification_ids))
        updated = queryset.update(read=True)
        self.logger.info(f"Marked {updated} notifications read for user {user.id} at {timezone.now().isoformat()}")
        return service_ok(updated)
