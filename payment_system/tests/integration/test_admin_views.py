from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from infrastructure.container import container
from marketplace.models import Order
from marketplace.tests.factories import AdminFactory, OrderFactory, UserFactory
from notifications.models import Notification


class AdminViewTestCase(TestCase):
    def setUp(self):
        container.configure_for_testing()
        self.client = APIClient()
        self.admin = AdminFactory()
        self.client.force_authenticate(user=self.admin)

    def tearDown(self):
        container.reset()

    def post(self, url, data=None):
        with self.captureOnCommitCallbacks(execute=True):
            return self.client.post(url, data or {}, format="json")


class AdminOrderViewsTest(AdminViewTestCase):
    def test_order_detail_includes_version(self):
        order = OrderFactory()

        response = self.client.get(reverse("payment_system:admin_order_detail", args=[order.id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["version"], 1)
        self.assertEqual(response.data["reference"], order.reference)
        self.assertEqual(response.data["total_amount"], "100.00")

    def test_order_detail_not_found(self):
        response = self.client.get(
            reverse("payment_system:admin_order_detail", args=["5b0c3f7e-0000-4000-8000-000000000000"])
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"], "order_not_found")

    def test_update_status(self):
        order = OrderFactory()

        response = self.post(
            reverse("payment_system:admin_update_order", args=[order.id]),
            {"expected_version": 1, "status": "processing"},
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["order"]["status"], "processing")
        self.assertEqual(response.data["order"]["version"], 2)
        self.assertEqual(Notification.objects.filter(user=order.buyer).count(), 1)

    def test_update_with_stale_version_conflicts(self):
        order = OrderFactory(version=4)

        response = self.post(
            reverse("payment_system:admin_update_order", args=[order.id]),
            {"expected_version": 3, "status": "processing"},
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"], "concurrent_modification")
        self.assertTrue(response.data["retryable"])

    def test_update_rejects_unknown_status(self):
        order = OrderFactory()

        response = self.post(
            reverse("payment_system:admin_update_order", args=[order.id]),
            {"expected_version": 1, "status": "shipped"},
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_requires_a_field(self):
        order = OrderFactory()

        response = self.post(reverse("payment_system:admin_update_order", args=[order.id]), {"expected_version": 1})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @override_settings(PLATFORM_FEE_PERCENT=Decimal("15"))
    def test_release_uses_platform_fee_by_default(self):
        order = OrderFactory(paid=True, confirmed=True, total_amount=Decimal("100.00"))

        response = self.post(
            reverse("payment_system:admin_release_payment", args=[order.id]),
            {"expected_version": 1, "transfer_notes": "Batch 12"},
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["split"]["commission"], "15.00")
        self.assertEqual(response.data["split"]["seller_amount"], "85.00")
        self.assertTrue(response.data["order"]["payment_released"])
        self.assertEqual(response.data["order"]["transfer_notes"], "Batch 12")
        self.assertFalse(response.data["delivery"]["side_effects_pending"])

    def test_release_with_explicit_rate(self):
        order = OrderFactory(paid=True, confirmed=True, total_amount=Decimal("100.00"))

        response = self.post(
            reverse("payment_system:admin_release_payment", args=[order.id]),
            {"expected_version": 1, "commission_rate": "0"},
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["split"]["seller_amount"], "100.00")

    def test_release_before_payment_conflicts(self):
        order = OrderFactory(confirmed=True)

        response = self.post(
            reverse("payment_system:admin_release_payment", args=[order.id]), {"expected_version": 1}
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"], "invalid_order_state")
        self.assertIn("payment not confirmed paid", response.data["detail"])
        self.assertFalse(Order.objects.get(pk=order.pk).payment_released)

    def test_release_rejects_bad_rate(self):
        order = OrderFactory(paid=True, confirmed=True)

        response = self.post(
            reverse("payment_system:admin_release_payment", args=[order.id]),
            {"expected_version": 1, "commission_rate": "120"},
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_resend_notifications(self):
        order = OrderFactory()

        response = self.post(reverse("payment_system:admin_resend_notifications", args=[order.id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["delivery"]["delivered"], 0)


class AdminSettlementViewsTest(AdminViewTestCase):
    def test_summary(self):
        OrderFactory(released=True, total_amount=Decimal("200.00"))
        OrderFactory(paid=True, confirmed=True, total_amount=Decimal("50.00"))

        response = self.client.get(reverse("payment_system:admin_settlement_summary"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total_revenue"], "250.00")
        self.assertEqual(response.data["pending_payouts"], "50.00")
        self.assertEqual(response.data["released_to_sellers"], "180.00")
        self.assertEqual(response.data["commission_earned"], "20.00")

    def test_order_list_view(self):
        OrderFactory(released=True)
        awaiting = OrderFactory(paid=True, confirmed=True)

        response = self.client.get(reverse("payment_system:admin_settlement_orders"), {"view": "pending_payouts"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["pagination"]["total_count"], 1)
        self.assertEqual(response.data["orders"][0]["id"], str(awaiting.id))

    def test_order_list_rejects_unknown_view(self):
        response = self.client.get(reverse("payment_system:admin_settlement_orders"), {"view": "refunds"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reports_use_the_container_service(self):
        OrderFactory(paid=True, confirmed=True)

        with patch.object(container, "reporting_service", wraps=container.reporting_service) as reporting:
            self.client.get(reverse("payment_system:admin_settlement_summary"))
            self.client.get(reverse("payment_system:admin_settlement_orders"), {"view": "pending_payouts"})

        self.assertEqual(reporting.call_count, 2)


class AdminPermissionTest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.order = OrderFactory(paid=True, confirmed=True)

    def test_non_admin_is_forbidden(self):
        self.client.force_authenticate(user=UserFactory())

        response = self.client.post(
            reverse("payment_system:admin_release_payment", args=[self.order.id]),
            {"expected_version": 1},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Order.objects.get(pk=self.order.pk).payment_released)

    def test_anonymous_is_rejected(self):
        response = self.client.get(reverse("payment_system:admin_settlement_summary"))
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))


class SettlementMetricsViewTest(TestCase):
    def test_metrics_are_public_text(self):
        response = APIClient().get(reverse("payment_system:settlement-metrics"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn(b"payment_releases_total", response.content)


class AdminTokenAuthenticationTest(TestCase):
    def test_bearer_token_authenticates_admin(self):
        admin = AdminFactory()
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {AccessToken.for_user(admin)}")

        response = client.get(reverse("payment_system:admin_settlement_summary"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
