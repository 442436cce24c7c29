"""CycleScheduler — one fixed-rate trading loop per account.

Each started account gets its own ``asyncio`` task that fires
``TradingCycle.run_once`` every timeframe period. Loops can be started and
stopped individually at runtime; ticks of one account never overlap and a
crash in one account's tick never reaches another account.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from tradeloop.controls import TradingControls
from tradeloop.engine import TradingCycle
from tradeloop.exceptions import InvalidConfiguration
from tradeloop.models.account_config import timeframe_to_seconds

logger = logging.getLogger("tradeloop.scheduler")


@dataclass
class _AccountLoop:
    account_id: int
    interval: float
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    tick_task: Optional[asyncio.Task] = None
    tick_count: int = 0
    skipped_ticks: int = 0
    last_result: Optional[dict] = None
    last_tick_at: Optional[str] = None
    started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def tick_in_progress(self) -> bool:
        return self.tick_task is not None and not self.tick_task.done()


class CycleScheduler:
    """Registry of per-account trading loops.

    Args:
        cycle: The ``TradingCycle`` every loop ticks.
        store: A ``TradingStore`` used to validate settings on start.
        controls: Shared ``TradingControls``.
        interval_resolver: Maps a timeframe string to a period in seconds.
    """

    def __init__(
        self,
        cycle: TradingCycle,
        store,
        controls: TradingControls,
        interval_resolver: Callable[[str], float] = timeframe_to_seconds,
    ) -> None:
        self._cycle = cycle
        self._store = store
        self._controls = controls
        self._interval_resolver = interval_resolver
        self._loops: dict[int, _AccountLoop] = {}

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self, account_id: int) -> bool:
        """Arm the account's loop.

        Returns ``True`` when a loop was armed, ``False`` when trading is
        disabled or the loop is already running.

        Raises:
            InvalidConfiguration: The account has no settings.
            UnsupportedStrategy: The configured strategy is unknown.
        """
        if self.is_running(account_id):
            logger.info("Account %s: trading loop already running.", account_id)
            return False

        config = self._store.get_account_config(account_id)
        if config is None:
            raise InvalidConfiguration(f"No trading settings for account {account_id}")
        config.strategy_selector
        if not config.enabled:
            logger.info("Account %s: trading disabled, loop not started.", account_id)
            return False

        loop = _AccountLoop(
            account_id=account_id,
            interval=self._interval_resolver(config.timeframe),
        )
        loop.task = asyncio.create_task(
            self._run_timer(loop), name=f"tradeloop-account-{account_id}"
        )
        self._loops[account_id] = loop
        logger.info(
            "Account %s: trading loop started (%s, %s, every %ss).",
            account_id, config.symbol, config.strategy, loop.interval,
        )
        return True

    async def stop(self, account_id: int) -> bool:
        """Stop the account's loop and wait for its in-flight tick.

        Returns ``False`` when no loop was running.
        """
        loop = self._loops.pop(account_id, None)
        if loop is None:
            return False

        loop.stop_event.set()
        if loop.task is not None:
            await loop.task
        if loop.tick_task is not None:
            await loop.tick_task
        logger.info("Account %s: trading loop stopped.", account_id)
        return True

    async def stop_all(self) -> None:
        for account_id in list(self._loops):
            await self.stop(account_id)

    def is_running(self, account_id: Optional[int] = None) -> bool:
        """Whether the given account (or any account) has a live loop."""
        if account_id is None:
            return any(self.is_running(a) for a in list(self._loops))
        loop = self._loops.get(account_id)
        return loop is not None and loop.task is not None and not loop.task.done()

    # ── Timer ────────────────────────────────────────────────────────────

    async def _run_timer(self, loop: _AccountLoop) -> None:
        """Fire a tick every ``loop.interval`` seconds until stopped.

        The first tick fires one interval after start.
        """
        next_fire = time.monotonic() + loop.interval
        while not loop.stop_event.is_set():
            delay = max(0.0, next_fire - time.monotonic())
            try:
                await asyncio.wait_for(loop.stop_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass
            if loop.stop_event.is_set():
                break

            next_fire += loop.interval
            now = time.monotonic()
            if next_fire <= now:
                next_fire = now + loop.interval

            if loop.tick_in_progress:
                loop.skipped_ticks += 1
                logger.warning(
                    "Account %s: previous tick still running, tick skipped.",
                    loop.account_id,
                )
                continue

            loop.tick_task = asyncio.create_task(self._guarded_tick(loop))

    async def _safe_run_once(self, account_id: int) -> dict:
        try:
            return await self._cycle.run_once(account_id)
        except Exception as exc:
            logger.exception("Account %s: tick crashed: %s", account_id, exc)
            return {"action": "error", "reason": str(exc)}

    async def _guarded_tick(self, loop: _AccountLoop) -> dict:
        result = await self._safe_run_once(loop.account_id)
        loop.tick_count += 1
        loop.last_result = result
        loop.last_tick_at = datetime.now(timezone.utc).isoformat()
        return result

    async def run_tick(self, account_id: int) -> dict:
        """Run one tick immediately, outside the timer.

        Refused when the account's previous tick is still in flight.
        """
        loop = self._loops.get(account_id)
        if loop is None:
            return await self._safe_run_once(account_id)
        if loop.tick_in_progress:
            return {"action": "skipped", "reason": "tick_in_progress"}
        loop.tick_task = asyncio.create_task(self._guarded_tick(loop))
        return await loop.tick_task

    # ── Admin ────────────────────────────────────────────────────────────

    def get_confidence_threshold(self) -> float:
        return self._controls.confidence_threshold

    def set_confidence_threshold(self, value: float) -> None:
        """Raises ``ValueError`` outside 0–100."""
        self._controls.set_confidence_threshold(value)
        logger.info("Confidence threshold set to %.1f", self._controls.confidence_threshold)

    def list_active_pairs(self, account_id: int) -> list[str]:
        """Symbols the account's next tick would evaluate."""
        config = self._store.get_account_config(account_id)
        if config is None:
            raise InvalidConfiguration(f"No trading settings for account {account_id}")
        return self._cycle.candidate_symbols(config)

    def status(self, account_id: Optional[int] = None) -> dict:
        """Per-account loop metadata, or one account's when given."""
        def _describe(loop: _AccountLoop) -> dict:
            return {
                "account_id": loop.account_id,
                "running": self.is_running(loop.account_id),
                "interval_seconds": loop.interval,
                "started_at": loop.started_at,
                "tick_count": loop.tick_count,
                "skipped_ticks": loop.skipped_ticks,
                "tick_in_progress": loop.tick_in_progress,
                "last_tick_at": loop.last_tick_at,
                "last_result": loop.last_result,
            }

        if account_id is not None:
            loop = self._loops.get(account_id)
            if loop is None:
                return {"account_id": account_id, "running": False}
            return _describe(loop)

        return {
            "confidence_threshold": self._controls.confidence_threshold,
            "max_concurrent_trades": self._controls.max_concurrent_trades,
            "accounts": {str(a): _describe(loop) for a, loop in self._loops.items()},
        }
