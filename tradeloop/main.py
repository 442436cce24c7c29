"""TradeLoop — application entry point.

Boots the FastAPI admin server and provides the CLI entry point that runs
the per-account trading loops.
"""

import logging

from fastapi import FastAPI

from tradeloop.api.routers import router

app = FastAPI(title="TradeLoop Admin API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("tradeloop")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


def build_components(config):
    """Wire the trading core. Returns ``(scheduler, store, tracker, selector, gateway)``."""
    from tradeloop.config import load_pairs
    from tradeloop.controls import TradingControls
    from tradeloop.engine import TradingCycle
    from tradeloop.exchange.bitget_client import BitgetClient
    from tradeloop.repos.store import TradingStore
    from tradeloop.scheduler import CycleScheduler
    from tradeloop.selection.pair_selector import PairSelector
    from tradeloop.selection.performance import PerformanceTracker

    pairs = load_pairs()
    gateway = BitgetClient(config)
    store = TradingStore(config.db_path)
    tracker = PerformanceTracker(p.symbol for p in pairs)
    selector = PairSelector(pairs, tracker)
    controls = TradingControls.from_config(config)
    cycle = TradingCycle.from_config(
        config,
        gateway=gateway,
        store=store,
        selector=selector,
        tracker=tracker,
        controls=controls,
    )
    scheduler = CycleScheduler(cycle=cycle, store=store, controls=controls)
    return scheduler, store, tracker, selector, gateway


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments, wire the trading core and run it."""
    import argparse
    import asyncio

    from tradeloop.api.routers import configure_routers
    from tradeloop.config import load_config
    from tradeloop.repos.db import init_db

    parser = argparse.ArgumentParser(description="TradeLoop automated trading service")
    parser.add_argument(
        "--accounts",
        type=int,
        nargs="*",
        default=None,
        help="Account ids to start (default: every account with trading enabled)",
    )
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run trading loops without the admin API server",
    )
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    init_db(config.db_path)
    scheduler, store, tracker, selector, gateway = build_components(config)
    configure_routers(scheduler, store, tracker=tracker, selector=selector, gateway=gateway)

    accounts = args.accounts if args.accounts is not None else store.list_enabled_accounts()
    asyncio.run(_run_service(scheduler, accounts, config.api_port, args.engine_only))


async def _start_accounts(scheduler, accounts: list[int]) -> None:
    from tradeloop.exceptions import TradeLoopError

    for account_id in accounts:
        try:
            if await scheduler.start(account_id):
                continue
            logger.info("Account %s not started (disabled or already running).", account_id)
        except TradeLoopError as exc:
            logger.error("Account %s could not be started: %s", account_id, exc)


async def _run_service(scheduler, accounts: list[int], port: int, engine_only: bool) -> None:
    """Start the account loops and (unless engine-only) the admin API.

    With the API, uvicorn owns SIGINT and the loops stop once it exits.
    Engine-only runs stop on SIGINT / SIGTERM.
    """
    import asyncio
    import signal

    import uvicorn

    await _start_accounts(scheduler, accounts)
    logger.info("Starting TradeLoop with %d account loop(s).", len(accounts))

    try:
        if engine_only:
            stop_requested = asyncio.Event()

            def handle_shutdown() -> None:
                logger.info("Shutdown signal received — stopping gracefully.")
                stop_requested.set()

            loop = asyncio.get_running_loop()
            loop.add_signal_handler(signal.SIGINT, handle_shutdown)
            loop.add_signal_handler(signal.SIGTERM, handle_shutdown)
            await stop_requested.wait()
        else:
            uvi_config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info")
            server = uvicorn.Server(uvi_config)
            logger.info("Admin API available at http://localhost:%d", port)
            await server.serve()
    finally:
        await scheduler.stop_all()
        logger.info("TradeLoop stopped.")


if __name__ == "__main__":
    _run_cli()
