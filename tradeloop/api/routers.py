"""Admin API routers — account loops, settings, trades, balances and market data.

No trading logic here. Delegates to the scheduler, store, tracker and gateway
injected via ``configure_routers``.
"""

import logging
from dataclasses import asdict
from decimal import Decimal, InvalidOperation
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from tradeloop.exceptions import InvalidConfiguration, UnsupportedStrategy
from tradeloop.exchange.exceptions import GatewayError, GatewayUnavailable
from tradeloop.models.records import CLOSING_STATUSES, BalanceSnapshot, TradeRecord
from tradeloop.strategy.analysis import CHUNK_SIZE, HISTORY_LIMIT, fetch_history_analysis
from tradeloop.strategy.models import Strategy

logger = logging.getLogger("tradeloop.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_scheduler = None  # Set via configure_routers()
_store = None      # Set via configure_routers()
_tracker = None    # Set via configure_routers()
_selector = None   # Set via configure_routers()
_gateway = None    # Set via configure_routers()


def configure_routers(scheduler, store, tracker=None, selector=None, gateway=None) -> None:
    """Inject dependencies from the application startup.

    Args:
        scheduler: A ``CycleScheduler`` (or duck-type for tests).
        store: A ``TradingStore`` (or duck-type for tests).
        tracker: The shared ``PerformanceTracker``.
        selector: The ``PairSelector`` used for pair scores.
        gateway: The ``ExchangeGateway`` used for market analysis.
    """
    global _scheduler, _store, _tracker, _selector, _gateway  # noqa: PLW0603
    _scheduler = scheduler
    _store = store
    _tracker = tracker
    _selector = selector
    _gateway = gateway


def _require_scheduler():
    if _scheduler is None or _store is None:
        raise HTTPException(status_code=503, detail="Trading core not configured")
    return _scheduler


def _jsonable(record) -> dict:
    return {
        k: str(v) if isinstance(v, Decimal) else v
        for k, v in asdict(record).items()
    }


def _plain(value):
    """Recursively render Decimals as strings for JSON responses."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _trade_to_dict(trade: TradeRecord) -> dict:
    return _jsonable(trade)


def _snapshot_to_dict(snapshot: Optional[BalanceSnapshot]) -> Optional[dict]:
    return _jsonable(snapshot) if snapshot is not None else None


# ── Settings validation ──────────────────────────────────────────────────


def _validate_settings_patch(body: dict) -> tuple[dict, list[str]]:
    """Normalise a settings patch. Returns ``(patch, errors)``."""
    patch: dict = {}
    errors: list[str] = []

    if "symbol" in body:
        symbol = str(body["symbol"]).strip().upper()
        if not symbol:
            errors.append("symbol must not be empty")
        else:
            patch["symbol"] = symbol

    if "timeframe" in body:
        patch["timeframe"] = str(body["timeframe"]).strip()

    if "strategy" in body:
        try:
            Strategy.parse(body["strategy"])
            patch["strategy"] = str(body["strategy"]).strip().upper()
        except UnsupportedStrategy as exc:
            errors.append(str(exc))

    if "risk_per_trade" in body:
        try:
            risk = Decimal(str(body["risk_per_trade"]))
        except InvalidOperation:
            errors.append("risk_per_trade must be a number")
        else:
            if not risk.is_finite():
                errors.append("risk_per_trade must be a finite number")
            elif not Decimal("0") < risk <= Decimal("100"):
                errors.append("risk_per_trade must be within (0, 100]")
            else:
                patch["risk_per_trade"] = risk

    if "leverage" in body:
        try:
            leverage = int(body["leverage"])
        except (TypeError, ValueError):
            leverage = 0
        if not 1 <= leverage <= 125:
            errors.append("leverage must be 1–125")
        else:
            patch["leverage"] = leverage

    if "enabled" in body:
        if isinstance(body["enabled"], bool):
            patch["enabled"] = body["enabled"]
        else:
            errors.append("enabled must be true or false")

    if "trading_params" in body:
        if not isinstance(body["trading_params"], dict):
            errors.append("trading_params must be an object")
        else:
            patch["trading_params"] = body["trading_params"]

    unknown = sorted(set(body) - {
        "symbol", "timeframe", "strategy", "risk_per_trade",
        "leverage", "enabled", "trading_params",
    })
    if unknown:
        errors.append(f"Unknown settings field(s): {', '.join(unknown)}")

    return patch, errors


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Return every running account loop and the global controls."""
    if _scheduler is None:
        return {"accounts": {}}
    return _scheduler.status()


@router.post("/accounts/{account_id}/start")
async def start_account(account_id: int):
    """Arm the account's trading loop."""
    scheduler = _require_scheduler()
    try:
        started = await scheduler.start(account_id)
    except InvalidConfiguration as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except UnsupportedStrategy as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {
        "account_id": account_id,
        "started": started,
        "running": scheduler.is_running(account_id),
    }


@router.post("/accounts/{account_id}/stop")
async def stop_account(account_id: int):
    """Stop the account's loop after its in-flight tick completes."""
    scheduler = _require_scheduler()
    stopped = await scheduler.stop(account_id)
    return {"account_id": account_id, "stopped": stopped, "running": False}


@router.post("/accounts/{account_id}/tick")
async def tick_account(account_id: int):
    """Run one trading cycle now, outside the timer."""
    scheduler = _require_scheduler()
    result = await scheduler.run_tick(account_id)
    return {"account_id": account_id, "result": _plain(result)}


@router.get("/accounts/{account_id}/pairs")
async def get_active_pairs(account_id: int):
    """Return the symbols the account's next tick will evaluate."""
    scheduler = _require_scheduler()
    try:
        pairs = scheduler.list_active_pairs(account_id)
    except InvalidConfiguration as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except UnsupportedStrategy as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"account_id": account_id, "pairs": pairs}


@router.get("/accounts/{account_id}/settings")
async def get_account_settings(account_id: int):
    """Return the account's trading settings."""
    _require_scheduler()
    config = _store.get_account_config(account_id)
    if config is None:
        raise HTTPException(
            status_code=404, detail=f"No trading settings for account {account_id}",
        )
    return config.to_dict()


@router.put("/accounts/{account_id}/settings")
async def put_account_settings(account_id: int, body: dict):
    """Create or partially update the account's trading settings.

    Validates every field before applying. Takes effect on the next tick.
    """
    _require_scheduler()
    patch, errors = _validate_settings_patch(body)
    if errors:
        raise HTTPException(status_code=422, detail=errors)

    try:
        if _store.get_account_config(account_id) is None:
            config = _store.create_account_config(account_id, **patch)
        else:
            config = _store.update_account_config(account_id, patch)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    logger.info("Account %s settings updated: %s", account_id, sorted(patch))
    return config.to_dict()


@router.get("/accounts/{account_id}/trades")
async def get_account_trades(
    account_id: int,
    limit: int = Query(default=20, ge=1, le=100),
    status: Optional[str] = Query(default=None),
):
    """Return the account's recent trades, newest first."""
    _require_scheduler()
    trades = _store.get_trades(account_id, limit=limit, status=status)
    return {
        "account_id": account_id,
        "trades": [_trade_to_dict(t) for t in trades],
        "total": len(trades),
        "open_trades": _store.count_open_trades(account_id),
    }


@router.post("/accounts/{account_id}/trades/{trade_id}/close")
async def close_account_trade(account_id: int, trade_id: int, body: dict):
    """Close or cancel an open trade, releasing a concurrency slot.

    Body: ``{"exit_price": ..., "pnl": ..., "status": "CLOSED"}``; ``pnl``
    is optional and ``exit_price`` may be omitted for ``CANCELLED``.
    """
    _require_scheduler()
    errors: list[str] = []
    status = str(body.get("status", "CLOSED")).strip().upper()
    if status not in CLOSING_STATUSES:
        errors.append(f"status must be one of {', '.join(CLOSING_STATUSES)}")

    amounts: dict[str, Optional[Decimal]] = {}
    for key in ("exit_price", "pnl"):
        amounts[key] = None
        if body.get(key) is None:
            continue
        try:
            value = Decimal(str(body[key]))
        except InvalidOperation:
            value = None
        if value is None or not value.is_finite():
            errors.append(f"{key} must be a finite number")
        elif key == "exit_price" and value <= 0:
            errors.append("exit_price must be positive")
        else:
            amounts[key] = value
    if status == "CLOSED" and body.get("exit_price") is None:
        errors.append("exit_price is required to close a trade")
    if errors:
        raise HTTPException(status_code=422, detail=errors)

    trade = _store.get_trade(trade_id)
    if trade is None or trade.account_id != account_id:
        raise HTTPException(
            status_code=404, detail=f"No trade {trade_id} for account {account_id}",
        )
    closed = _store.close_trade(trade_id, status=status, **amounts)
    if closed is None:
        raise HTTPException(
            status_code=409, detail=f"Trade {trade_id} is already {trade.status}",
        )

    logger.info("Account %s: trade %s marked %s.", account_id, trade_id, status)
    return _trade_to_dict(closed)


@router.get("/accounts/{account_id}/balance")
async def get_account_balance(
    account_id: int,
    history: int = Query(default=0, ge=0, le=500),
):
    """Return the latest recorded balance and optionally recent history."""
    _require_scheduler()
    result = {
        "account_id": account_id,
        "latest": _snapshot_to_dict(_store.get_latest_balance(account_id)),
    }
    if history:
        result["history"] = [
            _snapshot_to_dict(s)
            for s in _store.get_balance_history(account_id, limit=history)
        ]
    return result


@router.get("/settings/confidence-threshold")
async def get_confidence_threshold():
    scheduler = _require_scheduler()
    return {"confidence_threshold": scheduler.get_confidence_threshold()}


@router.put("/settings/confidence-threshold")
async def put_confidence_threshold(body: dict):
    """Set the process-wide confidence threshold (0–100)."""
    scheduler = _require_scheduler()
    if "confidence_threshold" not in body:
        raise HTTPException(status_code=422, detail="confidence_threshold is required")
    try:
        scheduler.set_confidence_threshold(float(body["confidence_threshold"]))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"confidence_threshold": scheduler.get_confidence_threshold()}


@router.get("/pairs/performance")
async def get_pair_performance():
    """Return tracked metrics per pair, with selection scores when known."""
    if _tracker is None:
        return {"pairs": []}
    scores: dict = {}
    weights: dict = {}
    if _selector is not None:
        scores = dict(_selector.scores())
        weights = {p.symbol: p.weight for p in _selector.pairs}
    snapshot = _tracker.snapshot()
    pairs = [
        {**asdict(perf), "weight": weights.get(symbol), "score": scores.get(symbol)}
        for symbol, perf in snapshot.items()
    ]
    pairs.sort(key=lambda p: p["score"] if p["score"] is not None else -1.0, reverse=True)
    return {"pairs": pairs}


@router.get("/market/{symbol}/analysis")
async def get_market_analysis(
    symbol: str,
    timeframe: str = Query(default="1h"),
    limit: int = Query(default=HISTORY_LIMIT, ge=1, le=1000),
    chunk_size: int = Query(default=CHUNK_SIZE, ge=1, le=1000),
):
    """Summarise recent history in fixed-size chunks with latest indicators."""
    if _gateway is None:
        raise HTTPException(status_code=503, detail="Exchange gateway not configured")
    symbol = symbol.strip().upper()
    try:
        chunks = await fetch_history_analysis(_gateway, symbol, timeframe, limit, chunk_size)
    except GatewayUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except GatewayError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return {
        "symbol": symbol,
        "timeframe": timeframe,
        "chunk_size": chunk_size,
        "chunks": [asdict(c) for c in chunks],
    }
