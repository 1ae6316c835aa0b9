"""
Mock Email Dispatcher
=====================

Mock implementation of EmailDispatcherInterface for testing.
Logs dispatch requests instead of calling the external endpoint.
"""

import logging
from typing import List, Optional

from payment_system.domain.exceptions import DownstreamUnavailable

from .interface import EmailDispatcherInterface, StatusEmailRequest


logger = logging.getLogger(__name__)


class MockEmailDispatcher(EmailDispatcherInterface):
    """
    Mock email dispatcher for testing and development.

    Instead of sending emails, this dispatcher:
        - Logs all dispatch requests
        - Stores sent requests in memory for verification
        - Fails on demand (``fail_next`` / ``fail_always``) to exercise retries
    """

    def __init__(self):
        self.sent_requests: List[StatusEmailRequest] = []
        self.fail_next = 0
        self.fail_always = False

    def dispatch(self, request: StatusEmailRequest) -> None:
        if self.fail_always or self.fail_next > 0:
            if self.fail_next > 0:
                self.fail_next -= 1
            logger.info(f"[MOCK EMAIL] Simulated failure for {request.to_payload()}")
            raise DownstreamUnavailable("email dispatch", "simulated failure")

        logger.info(f"[MOCK EMAIL] {request.to_payload()}")
        self.sent_requests.append(request)

    def clear_sent_requests(self):
        """Clear recorded requests and failure switches (useful between tests)."""
        self.sent_requests.clear()
        self.fail_next = 0
        self.fail_always = False

    def get_sent_count(self) -> int:
        return len(self.sent_requests)

    def get_last_request(self) -> Optional[StatusEmailRequest]:
        return self.sent_requests[-1] if self.sent_requests else None
