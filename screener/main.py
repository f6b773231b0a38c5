"""NSE Screener — application entry point.

Boots the FastAPI server and provides the CLI entry point for serve,
scan and backtest modes.
"""

import logging

from fastapi import FastAPI

from screener.api.routers import router

app = FastAPI(title="NSE Screener API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("screener")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


def build_services(config):
    """Wire the market client, store and services for *config*."""
    from screener.backtest.service import BacktestService
    from screener.market.yahoo_client import YahooClient
    from screener.repos.store import SignalStore
    from screener.scan.service import ScanService

    client = YahooClient(config)
    store = SignalStore(config)
    scan_service = ScanService(client, config, store)
    backtest_service = BacktestService(client, store, config)
    return scan_service, backtest_service, store


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse
    import asyncio
    import json

    from screener.api.routers import configure_routers
    from screener.backtest.service import BacktestRequestError
    from screener.config import load_config

    parser = argparse.ArgumentParser(description="NSE equity screener and intraday backtester")
    parser.add_argument(
        "--mode",
        choices=["serve", "scan-intraday", "scan-swing", "backtest"],
        default="serve",
        help="Run mode (default: serve)",
    )
    parser.add_argument("--symbols", help="Comma-separated symbols (default: configured universe)")
    parser.add_argument("--date", help="Backtest trade date (YYYY-MM-DD, default: today IST)")
    parser.add_argument("--capital", type=float, default=100000.0, help="Backtest capital")
    parser.add_argument(
        "--allocation",
        choices=["per_pick", "split_across_picks"],
        default="per_pick",
        help="Backtest capital allocation mode",
    )
    parser.add_argument(
        "--snapshot-mode",
        choices=["latest", "earliest"],
        default="latest",
    )
    parser.add_argument("--snapshot-id", help="Backtest a specific snapshot")
    parser.add_argument(
        "--exact",
        action="store_true",
        help="Only backtest snapshots captured live during the session",
    )
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    scan_service, backtest_service, store = build_services(config)
    symbols = [s.strip() for s in args.symbols.split(",")] if args.symbols else None

    if args.mode == "serve":
        configure_routers(
            scan_service=scan_service,
            backtest_service=backtest_service,
            store=store,
        )
        _serve(config.api_port)
        return

    if args.mode == "scan-intraday":
        result = asyncio.run(scan_service.scan_intraday(symbols))
    elif args.mode == "scan-swing":
        result = asyncio.run(scan_service.scan_swing(symbols))
    else:
        try:
            result = asyncio.run(
                backtest_service.run(
                    date=args.date,
                    capital=args.capital,
                    allocation_mode=args.allocation,
                    snapshot_mode=args.snapshot_mode,
                    snapshot_id=args.snapshot_id,
                    require_exact_snapshot=args.exact,
                )
            )
        except BacktestRequestError as exc:
            logger.error("Backtest rejected: %s", exc)
            raise SystemExit(2) from exc
    print(json.dumps(result, indent=2, default=str))


def _serve(port: int) -> None:
    """Run the API server until interrupted."""
    import uvicorn

    logger.info("Starting NSE Screener API on port %d", port)
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")


if __name__ == "__main__":
    _run_cli()
