from django.urls import path

from payment_system.api.views import admin_views, prometheus_metrics


app_name = "payment_system"

urlpatterns = [
    # Admin order commands
    path("admin/orders/<uuid:order_id>/", admin_views.admin_order_detail, name="admin_order_detail"),
    path("admin/orders/<uuid:order_id>/update/", admin_views.admin_update_order, name="admin_update_order"),
    path("admin/orders/<uuid:order_id>/release/", admin_views.admin_release_payment, name="admin_release_payment"),
    path(
        "admin/orders/<uuid:order_id>/resend-notifications/",
        admin_views.admin_resend_notifications,
        name="admin_resend_notifications",
    ),
    # Admin settlement overview
    path("admin/settlements/summary/", admin_views.admin_settlement_summary, name="admin_settlement_summary"),
    path("admin/settlements/orders/", admin_views.admin_settlement_orders, name="admin_settlement_orders"),
    # Prometheus metrics endpoint
    path("metrics/", prometheus_metrics.settlement_prometheus_metrics, name="settlement-metrics"),
]
