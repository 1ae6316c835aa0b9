"""Notification dropdown endpoints for the signed-in user."""

import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiTypes, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from notifications.api.serializers import (
    MarkReadRequestSerializer,
    MarkReadResponseSerializer,
    NotificationListResponseSerializer,
    NotificationSerializer,
)
from notifications.services.notification_service import NotificationService


logger = logging.getLogger(__name__)


@extend_schema(
    operation_id="notification_list",
    summary="List My Notifications",
    parameters=[
        OpenApiParameter(
            name="unread",
            type=OpenApiTypes.BOOL,
            location=OpenApiParameter.QUERY,
            description="Only unread notifications",
        ),
    ],
    responses={200: NotificationListResponseSerializer},
    tags=["Notifications"],
)
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def notification_list(request):
    service = NotificationService()
    unread_only = request.GET.get("unread", "").lower() in ("1", "true", "yes")

    result = service.list_for_user(request.user, unread_only=unread_only)
    return Response(
        {
            "notifications": NotificationSerializer(result.value, many=True).data,
            "unread_count": service.unread_count(request.user),
        },
        status=status.HTTP_200_OK,
    )


@extend_schema(
    operation_id="notification_mark_read",
    summary="Mark Notifications Read",
    request=MarkReadRequestSerializer,
    responses={200: MarkReadResponseSerializer},
    tags=["Notifications"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def notification_mark_read(request):
    serializer = MarkReadRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({"error": "validation_error", "detail": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

    service = NotificationService()
    result = service.mark_read(request.user, serializer.validated_data.get("ids"))
    return Response(
        {"updated": result.value, "unread_count": service.unread_count(request.user)}, status=status.HTTP_200_OK
    )
