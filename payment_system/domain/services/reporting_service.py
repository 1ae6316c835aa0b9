import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict

from django.db.models import Count, Q, Sum
from django.utils import timezone

from marketplace.ordering.domain.models.order import Order, OrderItem
from payment_system.domain.exceptions import ValidationError


logger = logging.getLogger(__name__)

VIEW_ALL = "all"
VIEW_PENDING_PAYOUTS = "pending_payouts"
VIEW_COMPLETED_PAYOUTS = "completed_payouts"
ORDER_VIEWS = (VIEW_ALL, VIEW_PENDING_PAYOUTS, VIEW_COMPLETED_PAYOUTS)

PAID = Q(payment_status=Order.PAYMENT_PAID)
PENDING_PAYOUT = Q(payment_released=False, confirmed_by_buyer=True)
RELEASED = Q(payment_released=True)


class ReportingService:
    """
    Read-time projections over the order ledger.

    Nothing is cached or materialized: every figure is a database aggregate
    evaluated when asked for.
    """

    @staticmethod
    def _filtered_orders(filters: Dict[str, Any]):
        orders = Order.objects.all()

        if filters.get("seller_id"):
            seller_id = filters["seller_id"]
            orders = orders.filter(
                Q(seller_id=seller_id) | Q(id__in=OrderItem.objects.filter(seller_id=seller_id).values("order_id"))
            )
        if filters.get("from_date"):
            orders = orders.filter(created_at__gte=filters["from_date"])
        if filters.get("to_date"):
            orders = orders.filter(created_at__lte=filters["to_date"])

        return orders

    @staticmethod
    def get_settlement_summary(filters: Dict[str, Any] = None) -> Dict[str, Any]:
        """
        Settlement totals for the payments dashboard.

        Returns: { 'total_revenue', 'pending_payouts', 'released_to_sellers',
        'commission_earned', 'counts': {...}, 'revenue_windows': {...} }
        """
        filters = filters or {}
        logger.info(f"ReportingService: Getting settlement summary with filters: {filters}")

        orders = ReportingService._filtered_orders(filters)

        now = timezone.now()
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        week_start = now - timedelta(days=7)
        month_start = now - timedelta(days=30)

        totals = orders.aggregate(
            total_revenue=Sum("total_amount", filter=PAID),
            pending_payouts=Sum("total_amount", filter=PENDING_PAYOUT),
            released_to_sellers=Sum("seller_amount", filter=RELEASED),
            commission_earned=Sum("admin_commission", filter=RELEASED),
            pending_payout_count=Count("id", filter=PENDING_PAYOUT),
            completed_payout_count=Count("id", filter=RELEASED),
            order_count=Count("id"),
            revenue_today=Sum("total_amount", filter=PAID & Q(created_at__gte=today_start)),
            revenue_last_7_days=Sum("total_amount", filter=PAID & Q(created_at__gte=week_start)),
            revenue_last_30_days=Sum("total_amount", filter=PAID & Q(created_at__gte=month_start)),
        )

        return {
            "total_revenue": totals["total_revenue"] or Decimal("0.00"),
            "pending_payouts": totals["pending_payouts"] or Decimal("0.00"),
            "released_to_sellers": totals["released_to_sellers"] or Decimal("0.00"),
            "commission_earned": totals["commission_earned"] or Decimal("0.00"),
            "counts": {
                "orders": totals["order_count"],
                "pending_payouts": totals["pending_payout_count"],
                "completed_payouts": totals["completed_payout_count"],
            },
            "revenue_windows": {
                "today": totals["revenue_today"] or Decimal("0.00"),
                "last_7_days": totals["revenue_last_7_days"] or Decimal("0.00"),
                "last_30_days": totals["revenue_last_30_days"] or Decimal("0.00"),
            },
        }

    @staticmethod
    def list_orders(view: str = VIEW_ALL, filters: Dict[str, Any] = None):
        """
        Orders for one of the dashboard tabs, most recent first.

        Returns the queryset; pagination and serialization are left to the view.
        """
        if view not in ORDER_VIEWS:
            raise ValidationError(f"Unknown order view: {view!r}. Must be one of {ORDER_VIEWS}")

        orders = ReportingService._filtered_orders(filters or {}).select_related("buyer", "seller")
        if view == VIEW_PENDING_PAYOUTS:
            orders = orders.filter(PENDING_PAYOUT)
        elif view == VIEW_COMPLETED_PAYOUTS:
            orders = orders.filter(RELEASED)

        return orders.order_by("-created_at")
