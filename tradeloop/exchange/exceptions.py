"""Typed exception hierarchy for exchange gateway operations.

Lets the trading cycle tell transient failures (retry or skip the tick)
from permanent ones (report and move on).
"""


class GatewayError(Exception):
    """Base class for all exchange gateway errors."""


class GatewayUnavailable(GatewayError):
    """Temporary failure that may succeed later (network, 5xx, 429, timeout)."""


class OrderRejected(GatewayError):
    """The venue refused the order (bad symbol, size, funds or auth)."""
