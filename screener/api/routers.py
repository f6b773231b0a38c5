"""Screener API routers — /scan, /intraday/snapshots, /intraday/backtest endpoints.

No business logic, no DB access. Delegates to the scan and backtest
services and the signal store.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from screener.backtest.service import BacktestRequestError

logger = logging.getLogger("screener")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_scan_service = None      # Set via configure_routers()
_backtest_service = None  # Set via configure_routers()
_store = None             # Set via configure_routers()


def configure_routers(scan_service=None, backtest_service=None, store=None) -> None:
    """Inject dependencies from the application startup.

    Args:
        scan_service: A ``ScanService`` instance (or duck-type for tests).
        backtest_service: A ``BacktestService`` instance.
        store: A ``SignalStore`` instance for the history endpoints.
    """
    global _scan_service, _backtest_service, _store  # noqa: PLW0603
    _scan_service = scan_service
    _backtest_service = backtest_service
    _store = store


def _require(service, name: str):
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name} not configured")
    return service


def _symbols(body: Optional[dict]) -> Optional[list[str]]:
    symbols = (body or {}).get("symbols")
    if symbols is None:
        return None
    if isinstance(symbols, str):
        symbols = symbols.split(",")
    if not isinstance(symbols, list):
        raise HTTPException(status_code=400, detail="symbols must be a list")
    return [str(s) for s in symbols]


# ── Scans ────────────────────────────────────────────────────────────────


@router.post("/scan/intraday")
async def post_scan_intraday(body: Optional[dict] = None):
    """Intraday scan; saves the day's signal snapshot."""
    service = _require(_scan_service, "Scan service")
    return await service.scan_intraday(_symbols(body))


@router.post("/scan/swing")
async def post_scan_swing(body: Optional[dict] = None):
    """Swing scan ranked by adaptive quality score."""
    service = _require(_scan_service, "Scan service")
    return await service.scan_swing(_symbols(body))


@router.post("/scan")
async def post_scan(body: Optional[dict] = None):
    """Gap decision with swing and long-term views per symbol.

    ``fundamentals`` may map a symbol to its fundamentals dict.
    """
    service = _require(_scan_service, "Scan service")
    return await service.scan(_symbols(body), (body or {}).get("fundamentals"))


# ── Snapshots & backtests ────────────────────────────────────────────────


@router.get("/intraday/snapshots")
async def get_snapshots(
    date: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
):
    """Best stored intraday snapshot per date, newest first."""
    store = _require(_store, "Signal store")
    snapshots = store.list_snapshots(date=date, limit=limit)
    return {"snapshots": snapshots, "total": len(snapshots)}


@router.post("/intraday/backtest")
async def post_backtest(body: Optional[dict] = None):
    """Replay a stored snapshot against the trade date's intraday bars."""
    service = _require(_backtest_service, "Backtest service")
    body = body or {}
    try:
        return await service.run(
            date=body.get("date"),
            capital=body.get("capital"),
            allocation_mode=body.get("allocation_mode"),
            snapshot_mode=body.get("snapshot_mode"),
            snapshot_id=body.get("snapshot_id"),
            require_exact_snapshot=bool(body.get("require_exact_snapshot", False)),
        )
    except BacktestRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/intraday/backtest/runs")
async def get_backtest_runs(
    date: Optional[str] = Query(default=None),
    limit: int = Query(default=30, ge=1, le=500),
):
    """Stored backtest runs, newest first."""
    store = _require(_store, "Signal store")
    runs = store.list_backtest_runs(date=date, limit=limit)
    return {"runs": runs, "total": len(runs)}
