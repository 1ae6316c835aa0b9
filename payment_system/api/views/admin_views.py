"""
admin_views.py - Admin-only views for order settlement

This file contains all admin-specific order and settlement views:
- View an order snapshot (with the version to send back)
- Update order status / payment status
- Release an order's payment to its seller(s)
- Resend an order's pending notifications
- Settlement dashboard totals and order lists

Security: All endpoints verify admin role from database (never trust token)
"""

import logging

from django.conf import settings
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, OpenApiTypes, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from infrastructure.container import container
from payment_system.api.serializers.request_serializers import (
    ReleasePaymentRequestSerializer,
    SettlementFilterSerializer,
    SettlementOrdersQuerySerializer,
    UpdateOrderRequestSerializer,
)
from payment_system.api.serializers.response_serializers import (
    CommissionSplitSerializer,
    ErrorResponseSerializer,
    OrderListItemSerializer,
    OrderSnapshotSerializer,
    ReleasePaymentResponseSerializer,
    ResendNotificationsResponseSerializer,
    SettlementOrderListResponseSerializer,
    SettlementSummaryResponseSerializer,
    UpdateOrderResponseSerializer,
)
from payment_system.domain.services.admin_order_service import ReleasePaymentCommand, UpdateOrderCommand
from utils.rbac import is_admin
from utils.service_base import ErrorCodes


# Initialize logger
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorCodes.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.ORDER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCodes.INVALID_ORDER_STATE: status.HTTP_409_CONFLICT,
    ErrorCodes.CONCURRENT_MODIFICATION: status.HTTP_409_CONFLICT,
    ErrorCodes.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
}

ORDER_ID_PARAMETER = OpenApiParameter(
    name="order_id", type=OpenApiTypes.UUID, location=OpenApiParameter.PATH, description="Order ID"
)

ERROR_RESPONSES = {
    400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid request"),
    403: OpenApiResponse(response=ErrorResponseSerializer, description="Not authorized"),
    404: OpenApiResponse(response=ErrorResponseSerializer, description="Order not found"),
    409: OpenApiResponse(
        response=ErrorResponseSerializer, description="Order state does not allow this, or it changed meanwhile"
    ),
}


def _forbidden(request, action):
    logger.warning(f"Non-admin user {request.user.username} (ID: {request.user.id}) attempted to {action}")
    return Response(
        {
            "error": ErrorCodes.PERMISSION_DENIED,
            "detail": "Permission denied. Only administrators can manage order settlement.",
        },
        status=status.HTTP_403_FORBIDDEN,
    )


def _invalid_request(serializer):
    return Response(
        {"error": ErrorCodes.VALIDATION_ERROR, "detail": serializer.errors, "retryable": True},
        status=status.HTTP_400_BAD_REQUEST,
    )


def _error_response(result):
    return Response(
        {"error": result.error, "detail": result.error_detail, "retryable": result.retryable},
        status=ERROR_STATUS.get(result.error, status.HTTP_500_INTERNAL_SERVER_ERROR),
    )


def _internal_error(name, error):
    logger.error(f"Error in {name}: {str(error)}", exc_info=True)
    return Response(
        {"error": ErrorCodes.INTERNAL_ERROR, "detail": "Unexpected error, the order may need to be reloaded."},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


# ===============================================================================
# ADMIN ORDER ENDPOINTS
# ===============================================================================


@extend_schema(
    operation_id="admin_order_detail",
    summary="Admin: Order Snapshot",
    description="Current order state, including the version to send with the next command (Admin only).",
    parameters=[ORDER_ID_PARAMETER],
    responses={200: OrderSnapshotSerializer, 403: ERROR_RESPONSES[403], 404: ERROR_RESPONSES[404]},
    tags=["Admin"],
)
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def admin_order_detail(request, order_id):
    if not is_admin(request.user):
        return _forbidden(request, "view order settlement details")

    result = container.admin_order_service().get_order(order_id)
    if not result.ok:
        return _error_response(result)
    return Response(OrderSnapshotSerializer(result.value).data, status=status.HTTP_200_OK)


@extend_schema(
    operation_id="admin_order_update",
    summary="Admin: Update Order Status",
    description=(
        "Change the order status and/or payment status. The change is rejected with 409 if the order "
        "changed since `expected_version`. Each changed field notifies the buyer separately (Admin only)."
    ),
    parameters=[ORDER_ID_PARAMETER],
    request=UpdateOrderRequestSerializer,
    responses={200: UpdateOrderResponseSerializer, **ERROR_RESPONSES},
    tags=["Admin"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def admin_update_order(request, order_id):
    if not is_admin(request.user):
        return _forbidden(request, "update an order")

    serializer = UpdateOrderRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    try:
        result = container.admin_order_service().update_order(
            UpdateOrderCommand(
                order_id=str(order_id),
                expected_version=data["expected_version"],
                status=data.get("status"),
                payment_status=data.get("payment_status"),
                override_reason=data.get("override_reason", ""),
            )
        )
    except Exception as e:
        return _internal_error("admin_update_order", e)

    if not result.ok:
        return _error_response(result)

    order = result.value["order"]
    delivery = result.value["delivery"]
    logger.info(f"Admin {request.user.username} updated order {order.id} to version {order.version}")
    return Response(
        {
            "success": True,
            "message": "Order updated successfully",
            "order": OrderSnapshotSerializer(order).data,
            "delivery": delivery.to_dict(),
        },
        status=status.HTTP_200_OK,
    )


@extend_schema(
    operation_id="admin_release_payment",
    summary="Admin: Release Payment",
    description=(
        "Release the payment of a paid, buyer-confirmed order to its seller(s), splitting off the platform "
        "commission. A released order cannot be released again; if `delivery.side_effects_pending` is true "
        "use resend-notifications, never repeat the release (Admin only)."
    ),
    parameters=[ORDER_ID_PARAMETER],
    request=ReleasePaymentRequestSerializer,
    responses={200: ReleasePaymentResponseSerializer, **ERROR_RESPONSES},
    tags=["Admin"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def admin_release_payment(request, order_id):
    if not is_admin(request.user):
        return _forbidden(request, "release a payment")

    serializer = ReleasePaymentRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    data = serializer.validated_data

    # Resolved once here and passed down; the domain never reads the setting
    rate_percent = data.get("commission_rate", settings.PLATFORM_FEE_PERCENT)

    try:
        result = container.admin_order_service().release_payment(
            ReleasePaymentCommand(
                order_id=str(order_id),
                expected_version=data["expected_version"],
                rate_percent=rate_percent,
                transfer_notes=data.get("transfer_notes", ""),
            )
        )
    except Exception as e:
        return _internal_error("admin_release_payment", e)

    if not result.ok:
        return _error_response(result)

    order = result.value["order"]
    delivery = result.value["delivery"]
    if delivery.side_effects_pending:
        message = "Payment released. Seller notification is delayed and will be retried."
    else:
        message = "Payment released successfully"

    logger.info(f"Admin {request.user.username} released payment for order {order.id}")
    return Response(
        {
            "success": True,
            "message": message,
            "order": OrderSnapshotSerializer(order).data,
            "split": CommissionSplitSerializer(result.value["split"]).data,
            "delivery": delivery.to_dict(),
        },
        status=status.HTTP_200_OK,
    )


@extend_schema(
    operation_id="admin_resend_notifications",
    summary="Admin: Resend Order Notifications",
    description="Redeliver notifications and emails of an order that are still pending or failed (Admin only).",
    parameters=[ORDER_ID_PARAMETER],
    request=None,
    responses={200: ResendNotificationsResponseSerializer, 403: ERROR_RESPONSES[403], 404: ERROR_RESPONSES[404]},
    tags=["Admin"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def admin_resend_notifications(request, order_id):
    if not is_admin(request.user):
        return _forbidden(request, "resend order notifications")

    result = container.admin_order_service().resend_notifications(order_id)
    if not result.ok:
        return _error_response(result)

    return Response(
        {"success": True, "order_id": str(result.value["order"].id), "delivery": result.value["delivery"].to_dict()},
        status=status.HTTP_200_OK,
    )


# ===============================================================================
# ADMIN SETTLEMENT OVERVIEW ENDPOINTS
# ===============================================================================

FILTER_PARAMETERS = [
    OpenApiParameter(
        name="seller_id", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, description="Filter by seller ID"
    ),
    OpenApiParameter(
        name="from_date",
        type=OpenApiTypes.DATETIME,
        location=OpenApiParameter.QUERY,
        description="Orders created at or after",
    ),
    OpenApiParameter(
        name="to_date",
        type=OpenApiTypes.DATETIME,
        location=OpenApiParameter.QUERY,
        description="Orders created at or before",
    ),
]


@extend_schema(
    operation_id="admin_settlement_summary",
    summary="Admin: Settlement Summary",
    description="Revenue, pending payouts, released totals and commission, computed live (Admin only).",
    parameters=FILTER_PARAMETERS,
    responses={200: SettlementSummaryResponseSerializer, 400: ERROR_RESPONSES[400], 403: ERROR_RESPONSES[403]},
    tags=["Admin"],
)
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def admin_settlement_summary(request):
    if not is_admin(request.user):
        return _forbidden(request, "view the settlement summary")

    serializer = SettlementFilterSerializer(data=request.query_params)
    if not serializer.is_valid():
        return _invalid_request(serializer)

    summary = container.reporting_service().get_settlement_summary(dict(serializer.validated_data))
    return Response(SettlementSummaryResponseSerializer(summary).data, status=status.HTTP_200_OK)


@extend_schema(
    operation_id="admin_settlement_orders",
    summary="Admin: Settlement Orders",
    description="Orders for the payments dashboard tabs: all, pending payouts, completed payouts (Admin only).",
    parameters=[
        OpenApiParameter(
            name="view",
            type=OpenApiTypes.STR,
            location=OpenApiParameter.QUERY,
            description="all | pending_payouts | completed_payouts",
        ),
        *FILTER_PARAMETERS,
        OpenApiParameter(
            name="page_size",
            type=OpenApiTypes.INT,
            location=OpenApiParameter.QUERY,
            description="Results per page (default 50)",
        ),
        OpenApiParameter(
            name="offset", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, description="Pagination offset"
        ),
    ],
    responses={200: SettlementOrderListResponseSerializer, 400: ERROR_RESPONSES[400], 403: ERROR_RESPONSES[403]},
    tags=["Admin"],
)
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def admin_settlement_orders(request):
    if not is_admin(request.user):
        return _forbidden(request, "list settlement orders")

    serializer = SettlementOrdersQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return _invalid_request(serializer)
    params = dict(serializer.validated_data)

    view = params.pop("view")
    page_size = params.pop("page_size")
    offset = params.pop("offset")

    orders = container.reporting_service().list_orders(view, params)
    total_count = orders.count()
    page = orders[offset : offset + page_size]

    return Response(
        {
            "orders": OrderListItemSerializer(page, many=True).data,
            "pagination": {
                "total_count": total_count,
                "offset": offset,
                "page_size": page_size,
                "has_next": (offset + page_size) < total_count,
                "has_previous": offset > 0,
            },
        },
        status=status.HTTP_200_OK,
    )
