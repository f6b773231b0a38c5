"""Tests for screener.market.yahoo_client — Yahoo client with mocked HTTP responses."""

import httpx
import pytest

from screener.config import Config
from screener.market import yahoo_client
from screener.market.models import Candle, PriceContext
from screener.market.yahoo_client import (
    InsufficientDataError,
    YahooClient,
    base_symbol,
    is_likely_invalid_symbol,
    normalize_symbol,
)


def _make_config() -> Config:
    return Config(yahoo_base_url="https://yahoo.test/")


# 2025-01-10, 2025-01-11 and 2025-01-12 at 03:45 UTC (09:15 IST)
_T0 = 1736480700
_DAY = 86400


def _chart(meta=None, opens=(100.0, 101.0, None), closes=(100.5, 102.0, 103.0)) -> dict:
    return {
        "chart": {
            "result": [
                {
                    "meta": meta or {},
                    "timestamp": [_T0, _T0 + _DAY, _T0 + 2 * _DAY],
                    "indicators": {
                        "quote": [
                            {
                                "open": list(opens),
                                "high": [101.0, 102.5, 103.5],
                                "low": [99.5, 100.5, 102.0],
                                "close": list(closes),
                                "volume": [1000, 1500, 1200],
                            }
                        ]
                    },
                }
            ],
            "error": None,
        }
    }


MOCK_QUOTE_RESPONSE = {"quoteResponse": {"result": [{"symbol": "RELIANCE.NS", "marketCap": 2e13}]}}


# ── Symbols ──────────────────────────────────────────────────────────────


def test_normalize_symbol():
    assert normalize_symbol("reliance") == "RELIANCE.NS"
    assert normalize_symbol(" TCS.NS ") == "TCS.NS"
    assert normalize_symbol("infy.bo") == "INFY.BO"


@pytest.mark.parametrize("bad", ["", "X", "TATA MOTORS", None])
def test_invalid_symbols(bad):
    assert is_likely_invalid_symbol(bad)
    with pytest.raises(ValueError, match="Invalid NSE symbol"):
        normalize_symbol(bad)


def test_base_symbol():
    assert base_symbol("RELIANCE.NS") == "RELIANCE"
    assert base_symbol("infy.bo") == "INFY"
    assert base_symbol("TCS") == "TCS"


# ── Candles ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_fetch_daily_candles(monkeypatch):
    """Null-padded bars are skipped; daily bars carry a bare date."""
    client = YahooClient(_make_config())
    captured = {}

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        captured.update(url=url, params=params, headers=headers)
        return httpx.Response(200, json=_chart(), request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    candles = await client.fetch_candles("reliance", min_periods=2)
    assert captured["url"] == "https://yahoo.test/v8/finance/chart/RELIANCE.NS"
    assert captured["params"] == {"interval": "1d", "range": "6mo"}
    assert "User-Agent" in captured["headers"]
    assert len(candles) == 2
    c = candles[0]
    assert isinstance(c, Candle)
    assert c.time == "2025-01-10"
    assert c.open == pytest.approx(100.0)
    assert c.close == pytest.approx(100.5)
    assert c.volume == 1000
    assert candles[1].time == "2025-01-11"


@pytest.mark.asyncio
async def test_fetch_intraday_candles(monkeypatch):
    """Intraday bars carry a UTC timestamp and default to a 5d range."""
    client = YahooClient(_make_config())
    captured = {}

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        captured.update(params=params)
        return httpx.Response(200, json=_chart(), request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    candles = await client.fetch_candles("RELIANCE", 1, interval="5m")
    assert captured["params"] == {"interval": "5m", "range": "5d"}
    assert candles[0].time == "2025-01-10T03:45:00+00:00"


@pytest.mark.asyncio
async def test_insufficient_candles(monkeypatch):
    client = YahooClient(_make_config())

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        return httpx.Response(200, json=_chart(), request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(InsufficientDataError, match="2 < 3"):
        await client.fetch_candles("RELIANCE", min_periods=3)


@pytest.mark.asyncio
async def test_empty_chart(monkeypatch):
    client = YahooClient(_make_config())

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        body = {"chart": {"result": None, "error": {"code": "Not Found"}}}
        return httpx.Response(200, json=body, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(InsufficientDataError):
        await client.fetch_candles("NOSUCH", min_periods=1)


# ── Price context ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_price_context(monkeypatch):
    """Gaps from the chart meta, market cap from the quote endpoint."""
    client = YahooClient(_make_config())
    meta = {
        "regularMarketPrice": 102.0,
        "previousClose": 100.0,
        "regularMarketOpen": 101.0,
        "longName": "Reliance Industries Limited",
    }

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        body = MOCK_QUOTE_RESPONSE if "/v7/finance/quote" in url else _chart(meta)
        return httpx.Response(200, json=body, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    ctx = await client.fetch_price_context("RELIANCE")
    assert isinstance(ctx, PriceContext)
    assert ctx.symbol == "RELIANCE.NS"
    assert ctx.company_name == "Reliance Industries Limited"
    assert ctx.current_price == pytest.approx(102.0)
    assert ctx.gap_open_pct == pytest.approx(1.0)
    assert ctx.gap_now_pct == pytest.approx(2.0)
    assert ctx.market_cap == pytest.approx(2e13)


@pytest.mark.asyncio
async def test_price_context_falls_back_to_bars(monkeypatch):
    """Without meta prices the last bars are used; a failed quote leaves market cap unset."""
    client = YahooClient(_make_config())

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        if "/v7/finance/quote" in url:
            return httpx.Response(404, request=httpx.Request("GET", url))
        body = _chart(opens=(99.0, 101.0, None), closes=(100.0, 102.0, None))
        return httpx.Response(200, json=body, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    ctx = await client.fetch_price_context("RELIANCE")
    assert ctx.current_price == pytest.approx(102.0)
    assert ctx.prev_close == pytest.approx(100.0)
    assert ctx.open == pytest.approx(101.0)
    assert ctx.market_cap is None
    assert ctx.company_name == "RELIANCE"


# ── Retry ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_retries_transient_status(monkeypatch):
    client = YahooClient(_make_config())
    monkeypatch.setattr(yahoo_client, "_RETRY_BASE_DELAY", 0.0)
    statuses = [503, 200]

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        status = statuses.pop(0)
        body = _chart() if status == 200 else {}
        return httpx.Response(status, json=body, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    candles = await client.fetch_candles("RELIANCE", min_periods=2)
    assert len(candles) == 2
    assert statuses == []


@pytest.mark.asyncio
async def test_gives_up_after_max_retries(monkeypatch):
    client = YahooClient(_make_config())
    monkeypatch.setattr(yahoo_client, "_RETRY_BASE_DELAY", 0.0)
    calls = []

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        calls.append(url)
        raise httpx.ConnectError("connection refused", request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(httpx.ConnectError):
        await client.fetch_candles("RELIANCE", min_periods=1)
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_client_error_is_not_retried(monkeypatch):
    client = YahooClient(_make_config())
    calls = []

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        calls.append(url)
        return httpx.Response(404, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(httpx.HTTPStatusError):
        await client.fetch_candles("RELIANCE", min_periods=1)
    assert len(calls) == 1


def test_base_url_is_normalised():
    assert YahooClient(_make_config())._base_url == "https://yahoo.test"
