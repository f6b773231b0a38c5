"""Tests for the screener API — scan, snapshot and backtest endpoints."""

from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from screener.api.routers import configure_routers
from screener.backtest.service import BacktestRequestError
from screener.main import app

client = TestClient(app)


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_scan_service():
    """Return a mock ScanService with canned scan responses."""
    service = AsyncMock()
    service.scan_intraday.return_value = {
        "positive_stocks": [],
        "total_scanned": 2,
        "positive_count": 0,
        "snapshot_id": "intraday-signal-1",
        "meta": {},
        "results": [],
    }
    service.scan_swing.return_value = {"positive_stocks": [], "quality_threshold": 40}
    service.scan.return_value = {"results": [], "total_scanned": 0}
    return service


def _make_store(snapshots=None, runs=None):
    """Return a mock SignalStore with canned list responses."""
    store = MagicMock()
    store.list_snapshots.return_value = snapshots or []
    store.list_backtest_runs.return_value = runs or []
    return store


# ── Tests ────────────────────────────────────────────────────────────────


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


class TestScanEndpoints:
    def test_intraday_scan_with_symbol_list(self):
        service = _make_scan_service()
        configure_routers(scan_service=service)
        resp = client.post("/scan/intraday", json={"symbols": ["TCS", "INFY"]})
        assert resp.status_code == 200
        assert resp.json()["snapshot_id"] == "intraday-signal-1"
        service.scan_intraday.assert_awaited_once_with(["TCS", "INFY"])

    def test_comma_separated_symbols(self):
        service = _make_scan_service()
        configure_routers(scan_service=service)
        resp = client.post("/scan/swing", json={"symbols": "TCS,INFY"})
        assert resp.status_code == 200
        assert resp.json()["quality_threshold"] == 40
        service.scan_swing.assert_awaited_once_with(["TCS", "INFY"])

    def test_no_body_scans_default_universe(self):
        service = _make_scan_service()
        configure_routers(scan_service=service)
        resp = client.post("/scan/intraday")
        assert resp.status_code == 200
        service.scan_intraday.assert_awaited_once_with(None)

    def test_bad_symbols_type(self):
        configure_routers(scan_service=_make_scan_service())
        resp = client.post("/scan/intraday", json={"symbols": 42})
        assert resp.status_code == 400

    def test_overview_passes_fundamentals(self):
        service = _make_scan_service()
        configure_routers(scan_service=service)
        fundamentals = {"TCS": {"roe": 40}}
        resp = client.post("/scan", json={"symbols": ["TCS"], "fundamentals": fundamentals})
        assert resp.status_code == 200
        service.scan.assert_awaited_once_with(["TCS"], fundamentals)

    def test_scan_not_configured(self):
        configure_routers()
        resp = client.post("/scan/intraday", json={})
        assert resp.status_code == 503


class TestHistoryEndpoints:
    def test_snapshots(self):
        store = _make_store(snapshots=[{"id": "intraday-signal-1", "ist_date": "2025-01-10"}])
        configure_routers(store=store)
        resp = client.get("/intraday/snapshots", params={"date": "2025-01-10", "limit": 5})
        assert resp.status_code == 200
        assert resp.json()["total"] == 1
        store.list_snapshots.assert_called_once_with(date="2025-01-10", limit=5)

    def test_snapshot_limit_is_bounded(self):
        configure_routers(store=_make_store())
        assert client.get("/intraday/snapshots", params={"limit": 0}).status_code == 422
        assert client.get("/intraday/snapshots", params={"limit": 501}).status_code == 422

    def test_backtest_runs(self):
        store = _make_store(runs=[{"id": "intraday-backtest-1"}, {"id": "intraday-backtest-2"}])
        configure_routers(store=store)
        resp = client.get("/intraday/backtest/runs")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 2
        assert data["runs"][0]["id"] == "intraday-backtest-1"
        store.list_backtest_runs.assert_called_once_with(date=None, limit=30)

    def test_store_not_configured(self):
        configure_routers()
        assert client.get("/intraday/backtest/runs").status_code == 503


class TestBacktestEndpoint:
    def test_run(self):
        service = AsyncMock()
        service.run.return_value = {"id": "intraday-backtest-1", "persisted": True}
        configure_routers(backtest_service=service)
        resp = client.post(
            "/intraday/backtest",
            json={
                "date": "2025-01-10",
                "capital": 50000,
                "allocation_mode": "split_across_picks",
                "require_exact_snapshot": True,
            },
        )
        assert resp.status_code == 200
        assert resp.json()["persisted"] is True
        service.run.assert_awaited_once_with(
            date="2025-01-10",
            capital=50000,
            allocation_mode="split_across_picks",
            snapshot_mode=None,
            snapshot_id=None,
            require_exact_snapshot=True,
        )

    def test_request_error_is_400(self):
        service = AsyncMock()
        service.run.side_effect = BacktestRequestError(
            "No intraday signal snapshots found for 2025-01-10"
        )
        configure_routers(backtest_service=service)
        resp = client.post("/intraday/backtest", json={"date": "2025-01-10", "capital": 1000})
        assert resp.status_code == 400
        assert "No intraday signal snapshots" in resp.json()["detail"]
