"""TradeLoop — Trading cycle (one tick for one account).

Connects settings, pair selection, signal generation, risk sizing and the
exchange gateway. Strategy evaluates → cycle handles gating, position sizing,
order placement and bookkeeping.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Optional, TypeVar

from tradeloop.config import Config
from tradeloop.controls import TradingControls
from tradeloop.exceptions import InsufficientData, UnsupportedStrategy
from tradeloop.exchange.exceptions import GatewayError, GatewayUnavailable
from tradeloop.exchange.gateway import ExchangeGateway
from tradeloop.exchange.models import Balance, OrderResult
from tradeloop.models.account_config import AccountTradingConfig
from tradeloop.models.records import BalanceSnapshot, TradeRecord
from tradeloop.risk.position_sizer import calculate_position_size
from tradeloop.selection.pair_selector import PairSelector
from tradeloop.selection.performance import PerformanceTracker
from tradeloop.strategy.indicators import calculate_volatility, closes_of
from tradeloop.strategy.models import Signal
from tradeloop.strategy.signal_engine import generate_signal

logger = logging.getLogger("tradeloop.engine")

T = TypeVar("T")


class TradingCycle:
    """Runs the decision pipeline for one account per call.

    Args:
        gateway: An ``ExchangeGateway`` (or compatible duck-type / mock).
        store: A ``TradingStore`` (or duck-type exposing the same methods).
        selector: ``PairSelector`` used in ENSEMBLE mode.
        tracker: Shared ``PerformanceTracker``.
        controls: Shared ``TradingControls`` (threshold, cap, no-signal policy).
        candle_limit: Candles requested per symbol.
        auto_pair_count: Symbols evaluated per tick in ENSEMBLE mode.
        gateway_timeout: Seconds allowed for each gateway call.
        order_retry_attempts: Submission attempts on transient failures.
        order_retry_delay: Initial backoff between attempts; doubles each time.
    """

    def __init__(
        self,
        gateway: ExchangeGateway,
        store,
        selector: PairSelector,
        tracker: PerformanceTracker,
        controls: TradingControls,
        candle_limit: int = 100,
        auto_pair_count: int = 3,
        gateway_timeout: float = 30.0,
        order_retry_attempts: int = 3,
        order_retry_delay: float = 1.0,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._selector = selector
        self._tracker = tracker
        self._controls = controls
        self._candle_limit = candle_limit
        self._auto_pair_count = auto_pair_count
        self._gateway_timeout = gateway_timeout
        self._order_retry_attempts = max(1, order_retry_attempts)
        self._order_retry_delay = order_retry_delay

    @classmethod
    def from_config(
        cls,
        config: Config,
        gateway: ExchangeGateway,
        store,
        selector: PairSelector,
        tracker: PerformanceTracker,
        controls: TradingControls,
    ) -> "TradingCycle":
        return cls(
            gateway=gateway,
            store=store,
            selector=selector,
            tracker=tracker,
            controls=controls,
            candle_limit=config.candle_limit,
            auto_pair_count=config.auto_pair_count,
            gateway_timeout=config.gateway_timeout_seconds,
            order_retry_attempts=config.order_retry_attempts,
            order_retry_delay=config.order_retry_delay_seconds,
        )

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _call(self, awaitable: Awaitable[T]) -> T:
        """Await a gateway call, bounded by the gateway timeout."""
        return await asyncio.wait_for(awaitable, timeout=self._gateway_timeout)

    def _at_capacity(self, account_id: int) -> bool:
        open_trades = self._store.count_open_trades(account_id)
        return open_trades >= self._controls.max_concurrent_trades

    def candidate_symbols(self, config: AccountTradingConfig) -> list[str]:
        """Configured symbol, or the top-ranked pairs in ENSEMBLE mode."""
        if config.is_auto:
            return self._selector.rank(self._auto_pair_count)
        return [config.symbol]

    # ── Single tick ──────────────────────────────────────────────────────

    async def run_once(self, account_id: int) -> dict:
        """Execute one trading cycle for *account_id*.

        Returns a dict describing the action taken:

        - ``{"action": "skipped", "reason": "trading_disabled" | ...}``
        - ``{"action": "error", "reason": "unsupported_strategy", ...}``
        - ``{"action": "cycle_complete", "results": [...], ...}``

        Gateway failures and timeouts abort the tick and are reported as
        ``{"action": "skipped", "reason": "gateway_unavailable"}``.
        """
        # 1 ── Fresh settings
        config = self._store.get_account_config(account_id)
        if config is None or not config.enabled:
            logger.info("Account %s: trading disabled, skipping tick.", account_id)
            return {"action": "skipped", "reason": "trading_disabled"}

        try:
            config.strategy_selector
        except UnsupportedStrategy as exc:
            logger.error("Account %s: %s — tick skipped.", account_id, exc)
            return {"action": "error", "reason": "unsupported_strategy", "detail": str(exc)}

        # 2 ── Concurrency cap
        if self._at_capacity(account_id):
            logger.info(
                "Account %s: maximum concurrent trades (%d) reached, skipping tick.",
                account_id, self._controls.max_concurrent_trades,
            )
            return {"action": "skipped", "reason": "max_concurrent_trades"}

        # 3 ── Candidate symbols
        symbols = self.candidate_symbols(config)
        if config.is_auto:
            logger.info(
                "Account %s: auto-selected pairs %s", account_id, ", ".join(symbols),
            )

        # 4-6 ── Evaluate each symbol in turn
        results: list[dict] = []
        try:
            for symbol in symbols:
                results.append(await self._evaluate_symbol(config, symbol))
        except (GatewayError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Account %s: gateway unavailable (%s), tick aborted.",
                account_id, exc or type(exc).__name__,
            )
            return {
                "action": "skipped",
                "reason": "gateway_unavailable",
                "detail": str(exc),
                "results": results,
            }

        return {
            "action": "cycle_complete",
            "account_id": account_id,
            "symbols": symbols,
            "orders_placed": sum(1 for r in results if r["action"] == "order_placed"),
            "results": results,
        }

    async def _evaluate_symbol(self, config: AccountTradingConfig, symbol: str) -> dict:
        """Fetch, evaluate and (maybe) trade one symbol."""
        account_id = config.account_id

        candles = await self._call(
            self._gateway.get_candles(symbol, config.timeframe, self._candle_limit)
        )
        volatility = calculate_volatility(closes_of(candles))

        try:
            signal = generate_signal(candles, config.strategy_for(symbol), symbol)
        except InsufficientData as exc:
            logger.warning("Account %s %s: %s — symbol skipped.", account_id, symbol, exc)
            return {"symbol": symbol, "action": "skipped", "reason": "insufficient_data"}
        except UnsupportedStrategy as exc:
            logger.error("Account %s %s: %s — symbol skipped.", account_id, symbol, exc)
            return {"symbol": symbol, "action": "error", "reason": "unsupported_strategy"}

        threshold = self._controls.confidence_threshold
        if signal is None or signal.confidence < threshold:
            self._tracker.update(symbol, self._controls.no_signal_success(), volatility)
            if signal is None:
                return {"symbol": symbol, "action": "skipped", "reason": "no_signal"}
            logger.info(
                "Account %s %s: %s signal confidence %.1f below threshold %.1f.",
                account_id, symbol, signal.side, signal.confidence, threshold,
            )
            return {
                "symbol": symbol,
                "action": "skipped",
                "reason": "below_threshold",
                "confidence": signal.confidence,
            }

        # Another account tick or a manual trade may have opened a position
        if self._at_capacity(account_id):
            logger.info(
                "Account %s %s: maximum concurrent trades reached, signal not executed.",
                account_id, symbol,
            )
            return {"symbol": symbol, "action": "skipped", "reason": "max_concurrent_trades"}

        balance = await self._call(self._gateway.get_balance())
        size = calculate_position_size(balance.available, config.risk_per_trade, signal.price)
        if size <= 0:
            logger.info(
                "Account %s %s: position size below minimum (available %s), not trading.",
                account_id, symbol, balance.available,
            )
            return {"symbol": symbol, "action": "skipped", "reason": "size_below_minimum"}

        try:
            order = await self._submit_with_retry(signal, size)
        except GatewayError as exc:
            logger.error(
                "Account %s %s: order submission failed: %s", account_id, symbol, exc,
            )
            self._tracker.update(symbol, False, volatility)
            return {
                "symbol": symbol,
                "action": "error",
                "reason": "order_failed",
                "detail": str(exc),
            }

        trade_id = self._record_trade(config, signal, size, order, balance)
        self._tracker.update(symbol, True, volatility)
        logger.info(
            "Account %s: %s %s %s @ %s (confidence %.1f) — order %s",
            account_id, signal.side, size, symbol, signal.price,
            signal.confidence, order.order_id,
        )
        return {
            "symbol": symbol,
            "action": "order_placed",
            "order_id": order.order_id,
            "trade_id": trade_id,
            "side": signal.side,
            "size": str(size),
            "price": signal.price,
            "confidence": signal.confidence,
            "strategy": signal.strategy.value,
        }

    # ── Execution ────────────────────────────────────────────────────────

    async def _submit_with_retry(self, signal: Signal, size: Decimal) -> OrderResult:
        """Submit a market order, retrying transient failures.

        ``OrderRejected`` is raised immediately; ``GatewayUnavailable`` is
        raised once every attempt has failed.
        """
        last_exc: Optional[Exception] = None
        for attempt in range(self._order_retry_attempts):
            try:
                return await self._call(
                    self._gateway.submit_order(signal.symbol, signal.side, size, "market")
                )
            except (GatewayUnavailable, asyncio.TimeoutError) as exc:
                last_exc = exc
                logger.warning(
                    "Order %s %s %s failed (%s) — attempt %d/%d",
                    signal.side, size, signal.symbol, exc or type(exc).__name__,
                    attempt + 1, self._order_retry_attempts,
                )
                if attempt + 1 < self._order_retry_attempts:
                    await asyncio.sleep(self._order_retry_delay * (2 ** attempt))

        raise GatewayUnavailable(
            f"order submission failed after {self._order_retry_attempts} attempts: "
            f"{last_exc or type(last_exc).__name__}"
        ) from last_exc

    def _record_trade(
        self,
        config: AccountTradingConfig,
        signal: Signal,
        size: Decimal,
        order: OrderResult,
        balance: Balance,
    ) -> int:
        """Persist the trade and the balance it was sized from."""
        now = datetime.now(timezone.utc).isoformat()
        trade_id = self._store.save_trade(
            TradeRecord(
                account_id=config.account_id,
                symbol=signal.symbol,
                side=signal.side,
                entry_price=Decimal(str(signal.price)),
                quantity=size,
                status="OPEN",
                strategy=signal.strategy.value,
                order_id=order.order_id,
                trade_data={
                    "confidence": signal.confidence,
                    "indicators": signal.indicators,
                    "timestamp": signal.time,
                    "order_status": order.status,
                },
                opened_at=now,
            )
        )
        self._store.save_balance_snapshot(
            BalanceSnapshot(
                account_id=config.account_id,
                total=balance.total,
                available=balance.available,
                frozen=balance.frozen,
                balance_data={"order_id": order.order_id, "timestamp": now},
                recorded_at=now,
            )
        )
        return trade_id
