"""
HTTP Email Dispatcher
=====================

Concrete implementation of EmailDispatcherInterface that calls the external
send-order-status-update endpoint with a bearer token.
"""

import logging

import requests
from django.conf import settings

from payment_system.domain.exceptions import DownstreamUnavailable
from utils.logging_utils import sanitize_payload

from .interface import EmailDispatcherInterface, StatusEmailRequest


logger = logging.getLogger(__name__)

# Logged as-is; the amount and the bearer token never are.
LOGGED_KEYS = ("orderId", "updateType", "newStatus", "newPaymentStatus")


class HttpEmailDispatcher(EmailDispatcherInterface):
    """
    Email dispatcher backed by an authenticated HTTP endpoint.

    Configuration (in settings.py):
        EMAIL_DISPATCH_URL: Endpoint receiving the JSON request
        EMAIL_DISPATCH_TOKEN: Bearer token sent in the Authorization header
        EMAIL_DISPATCH_TIMEOUT: Request timeout in seconds
    """

    def __init__(self, url: str = None, token: str = None, timeout: float = None, session=None):
        self.url = url or getattr(settings, "EMAIL_DISPATCH_URL", "")
        self.token = token or getattr(settings, "EMAIL_DISPATCH_TOKEN", "")
        self.timeout = timeout or getattr(settings, "EMAIL_DISPATCH_TIMEOUT", 5)
        self.session = session or requests

    def dispatch(self, request: StatusEmailRequest) -> None:
        if not self.url:
            raise DownstreamUnavailable("email dispatch", "EMAIL_DISPATCH_URL is not configured")

        payload = request.to_payload()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.token}",
        }
        summary = {key: payload[key] for key in LOGGED_KEYS if key in payload}
        logger.debug(f"POST {self.url} {summary} headers={sanitize_payload(headers, ('Authorization',))}")

        try:
            response = self.session.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Email dispatch transport error for {summary}: {e}")
            raise DownstreamUnavailable("email dispatch", str(e)) from e

        if not response.ok:
            logger.warning(
                f"Email dispatch rejected with HTTP {response.status_code} for {summary}: {response.text[:200]}"
            )
            raise DownstreamUnavailable("email dispatch", f"HTTP {response.status_code}")

        logger.info(f"Status email dispatched: {summary}")
