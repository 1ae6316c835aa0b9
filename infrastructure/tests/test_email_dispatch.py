"""
Email Dispatch Infrastructure Tests
===================================

Unit tests for the status email dispatch abstraction layer.
"""

from unittest.mock import MagicMock, patch

import requests
from django.test import SimpleTestCase, override_settings

from infrastructure.email import (
    UPDATE_ORDER_STATUS,
    UPDATE_PAYMENT_RELEASED,
    EmailDispatcherFactory,
    EmailDispatcherInterface,
    HttpEmailDispatcher,
    MockEmailDispatcher,
    StatusEmailRequest,
)
from payment_system.domain.exceptions import DownstreamUnavailable


class StatusEmailRequestTest(SimpleTestCase):
    """Test the request value object and its wire format."""

    def test_payload_omits_unset_fields(self):
        request = StatusEmailRequest(order_id="abc", update_type=UPDATE_ORDER_STATUS, new_status="processing")

        self.assertEqual(request.to_payload(), {"orderId": "abc", "updateType": "order_status", "newStatus": "processing"})

    def test_payload_is_read_back(self):
        payload = {"orderId": "abc", "updateType": "payment_released", "amount": "85.00"}

        request = StatusEmailRequest.from_payload(payload)

        self.assertEqual(request.update_type, UPDATE_PAYMENT_RELEASED)
        self.assertEqual(request.amount, "85.00")
        self.assertIsNone(request.new_status)

    def test_unknown_update_type_is_rejected(self):
        with self.assertRaises(ValueError):
            StatusEmailRequest(order_id="abc", update_type="refund")


class EmailDispatcherInterfaceTest(SimpleTestCase):
    def test_interface_is_abstract(self):
        """EmailDispatcherInterface should not be instantiable."""
        with self.assertRaises(TypeError):
            EmailDispatcherInterface()


@override_settings(EMAIL_DISPATCH_URL="https://dispatch.example/send", EMAIL_DISPATCH_TOKEN="secret-token")
class HttpEmailDispatcherTest(SimpleTestCase):
    """Test HttpEmailDispatcher against a fake HTTP session."""

    def setUp(self):
        self.session = MagicMock()
        self.session.post.return_value = MagicMock(ok=True, status_code=200, text="")
        self.dispatcher = HttpEmailDispatcher(session=self.session)
        self.request = StatusEmailRequest(order_id="abc", update_type=UPDATE_ORDER_STATUS, new_status="completed")

    def test_posts_json_with_bearer_token(self):
        self.dispatcher.dispatch(self.request)

        self.session.post.assert_called_once_with(
            "https://dispatch.example/send",
            json={"orderId": "abc", "updateType": "order_status", "newStatus": "completed"},
            headers={"Content-Type": "application/json", "Authorization": "Bearer secret-token"},
            timeout=5.0,
        )

    def test_rejected_request_is_downstream_failure(self):
        self.session.post.return_value = MagicMock(ok=False, status_code=502, text="bad gateway")

        with self.assertRaises(DownstreamUnavailable) as ctx:
            self.dispatcher.dispatch(self.request)

        self.assertEqual(str(ctx.exception), "email dispatch unavailable: HTTP 502")

    def test_transport_error_is_downstream_failure(self):
        self.session.post.side_effect = requests.ConnectionError("connection refused")

        with self.assertRaises(DownstreamUnavailable) as ctx:
            self.dispatcher.dispatch(self.request)

        self.assertEqual(ctx.exception.target, "email dispatch")

    def test_logs_full_order_id_but_never_the_token(self):
        order_id = "3f2a9c1e-0000-4000-8000-aaaaaaaaaaaa"
        request = StatusEmailRequest(order_id=order_id, update_type=UPDATE_ORDER_STATUS, new_status="completed")
        self.session.post.return_value = MagicMock(ok=False, status_code=503, text="")

        with self.assertLogs("infrastructure.email.http_service", level="DEBUG") as logs:
            with self.assertRaises(DownstreamUnavailable):
                self.dispatcher.dispatch(request)

        output = "\n".join(logs.output)
        self.assertIn(order_id, output)
        self.assertIn("'newStatus': 'completed'", output)
        self.assertIn("Bearer ***", output)
        self.assertNotIn("secret-token", output)

    @patch("infrastructure.email.http_service.requests.post")
    def test_default_session_is_requests(self, mock_post):
        mock_post.return_value = MagicMock(ok=True, status_code=204, text="")

        HttpEmailDispatcher().dispatch(self.request)

        self.assertEqual(mock_post.call_args.kwargs["json"]["orderId"], "abc")
        self.assertEqual(mock_post.call_args.kwargs["headers"]["Authorization"], "Bearer secret-token")

    @override_settings(EMAIL_DISPATCH_URL="")
    def test_missing_url(self):
        dispatcher = HttpEmailDispatcher(session=self.session)

        with self.assertRaises(DownstreamUnavailable):
            dispatcher.dispatch(self.request)
        self.session.post.assert_not_called()


class MockEmailDispatcherTest(SimpleTestCase):
    """Test MockEmailDispatcher implementation."""

    def setUp(self):
        self.dispatcher = MockEmailDispatcher()
        self.request = StatusEmailRequest(order_id="abc", update_type=UPDATE_ORDER_STATUS, new_status="completed")

    def test_records_requests(self):
        self.dispatcher.dispatch(self.request)

        self.assertEqual(self.dispatcher.get_sent_count(), 1)
        self.assertEqual(self.dispatcher.get_last_request(), self.request)

    def test_fail_next(self):
        self.dispatcher.fail_next = 1

        with self.assertRaises(DownstreamUnavailable):
            self.dispatcher.dispatch(self.request)
        self.dispatcher.dispatch(self.request)

        self.assertEqual(self.dispatcher.get_sent_count(), 1)

    def test_clear(self):
        self.dispatcher.dispatch(self.request)
        self.dispatcher.fail_always = True

        self.dispatcher.clear_sent_requests()

        self.assertEqual(self.dispatcher.get_sent_count(), 0)
        self.assertIsNone(self.dispatcher.get_last_request())
        self.assertFalse(self.dispatcher.fail_always)


class EmailDispatcherFactoryTest(SimpleTestCase):
    """Test EmailDispatcherFactory."""

    def test_explicit_backends(self):
        self.assertIsInstance(EmailDispatcherFactory.create("mock"), MockEmailDispatcher)
        self.assertIsInstance(EmailDispatcherFactory.create("http"), HttpEmailDispatcher)

    @override_settings(INFRASTRUCTURE={"EMAIL_DISPATCH_BACKEND": "http"})
    def test_backend_from_settings(self):
        self.assertIsInstance(EmailDispatcherFactory.create(), HttpEmailDispatcher)

    @override_settings(INFRASTRUCTURE={}, TESTING=True)
    def test_defaults_to_mock_when_testing(self):
        self.assertIsInstance(EmailDispatcherFactory.create(), MockEmailDispatcher)

    def test_invalid_backend(self):
        with self.assertRaises(ValueError):
            EmailDispatcherFactory.create("smtp")
