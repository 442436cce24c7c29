"""Error kinds raised by the decision core.

Gateway failures live in :mod:`tradeloop.exchange.exceptions`.
"""


class TradeLoopError(Exception):
    """Base class for decision-core errors."""


class InsufficientData(TradeLoopError, ValueError):
    """Fewer candles than a strategy needs. The symbol is skipped."""

    def __init__(self, required: int, received: int) -> None:
        super().__init__(
            f"Need at least {required} candles, got {received}"
        )
        self.required = required
        self.received = received


class UnsupportedStrategy(TradeLoopError, ValueError):
    """The configured strategy has no signal implementation."""

    def __init__(self, strategy) -> None:
        super().__init__(f"Unsupported strategy: {strategy}")
        self.strategy = strategy


class InvalidConfiguration(TradeLoopError, ValueError):
    """Account settings are missing or unusable."""
