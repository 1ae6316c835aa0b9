class SettlementError(Exception):
    """Base class for order settlement exceptions."""

    pass


class ValidationError(SettlementError):
    """Raised when input is malformed (negative rate, unknown status value...)."""

    pass


class OrderNotFoundError(SettlementError):
    """Raised when the requested order does not exist."""

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class InvalidStateError(SettlementError):
    """
    Raised when a precondition is unmet: release before confirmation, double
    release, illegal status transition. ``condition`` names the unmet condition.
    """

    def __init__(self, condition: str, detail: str = ""):
        self.condition = condition
        self.detail = detail
        super().__init__(f"{condition}: {detail}" if detail else condition)


class ConcurrentModificationError(SettlementError):
    """Raised when a write carries a stale order version."""

    def __init__(self, order_id, expected_version: int, actual_version: int):
        self.order_id = order_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Order {order_id} was modified concurrently: "
            f"expected version {expected_version}, but current version is {actual_version}"
        )


class DownstreamUnavailable(SettlementError):
    """
    Raised when a notification or email side effect could not be delivered.

    Never aborts a ledger mutation that already committed.
    """

    def __init__(self, target: str, message: str):
        self.target = target
        super().__init__(f"{target} unavailable: {message}")
