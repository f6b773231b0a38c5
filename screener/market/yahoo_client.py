"""Yahoo Finance async client.

Handles the market-data side of the screener: OHLCV candles from the v8
chart endpoint and the day's price/gap context for NSE symbols.
"""

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Optional

import httpx

from screener.config import Config
from screener.market.models import Candle, PriceContext, gap_pct

logger = logging.getLogger("screener")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}

_EXCHANGE_SUFFIXES = (".NS", ".BO")


class InsufficientDataError(ValueError):
    """The provider returned fewer usable bars than the caller requires."""


# ── Symbol hygiene ───────────────────────────────────────────────────────


def is_likely_invalid_symbol(symbol: Optional[str]) -> bool:
    """Free-text names (spaces) and one-letter tickers are not NSE symbols."""
    value = str(symbol or "").strip()
    return len(value) < 2 or " " in value


def normalize_symbol(symbol: str) -> str:
    """Upper-case and add the ``.NS`` suffix unless an exchange suffix is present.

    Raises:
        ValueError: The symbol cannot be an NSE ticker.
    """
    if is_likely_invalid_symbol(symbol):
        raise ValueError(f"Invalid NSE symbol: {symbol!r}")
    value = symbol.strip().upper()
    if value.endswith(_EXCHANGE_SUFFIXES):
        return value
    return f"{value}.NS"


def base_symbol(symbol: str) -> str:
    value = symbol.strip().upper()
    for suffix in _EXCHANGE_SUFFIXES:
        if value.endswith(suffix):
            return value[: -len(suffix)]
    return value


def _finite(value) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class YahooClient:
    """Async client wrapping the Yahoo Finance chart and quote endpoints."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._base_url = config.yahoo_base_url.rstrip("/")
        self._headers = {
            "User-Agent": "Mozilla/5.0 (compatible; nse-screener)",
            "Accept": "application/json",
        }

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504) and rate-limits
        (429).  Non-retryable errors are raised immediately.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await getattr(client, method)(
                        url,
                        headers=self._headers,
                        timeout=30.0,
                        **kwargs,
                    )

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    delay = _RETRY_BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        "Yahoo %s %s returned %d, retry %d/%d in %.1fs",
                        method.upper(), url, resp.status_code,
                        attempt + 1, _MAX_RETRIES, delay,
                    )
                    await asyncio.sleep(delay)
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                delay = _RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "Yahoo %s %s transport error (%s), retry %d/%d in %.1fs",
                    method.upper(), url, exc,
                    attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    # ── Chart ────────────────────────────────────────────────────────────

    async def _chart(self, symbol: str, interval: str, range_: str) -> dict:
        url = f"{self._base_url}/v8/finance/chart/{symbol}"
        resp = await self._request_with_retry(
            "get", url, params={"interval": interval, "range": range_},
        )
        results = (resp.json().get("chart") or {}).get("result") or []
        if not results:
            raise InsufficientDataError(f"No chart data for {symbol}")
        return results[0]

    async def fetch_candles(
        self,
        symbol: str,
        min_periods: int = 60,
        interval: str = "1d",
        range_: Optional[str] = None,
    ) -> list[Candle]:
        """Fetch OHLCV candles from Yahoo.

        Args:
            symbol: NSE symbol, with or without the ``.NS`` suffix.
            min_periods: Minimum number of complete bars required.
            interval: e.g. ``"1d"``, ``"5m"``, ``"1m"``.
            range_: Chart range; defaults to ``"6mo"`` for daily bars and
                ``"5d"`` otherwise.

        Returns:
            List of ``Candle`` objects ordered oldest-first.  Daily bars
            carry a bare date, intraday bars a UTC timestamp.

        Raises:
            InsufficientDataError: Fewer than *min_periods* complete bars.
        """
        norm = normalize_symbol(symbol)
        range_ = range_ or ("6mo" if interval == "1d" else "5d")
        result = await self._chart(norm, interval, range_)

        quotes = (result.get("indicators") or {}).get("quote") or []
        timestamps = result.get("timestamp") or []
        if not quotes:
            raise InsufficientDataError(f"No OHLC data for {symbol}")
        q = quotes[0]

        series = [q.get(key) or [] for key in ("open", "high", "low", "close", "volume")]
        candles: list[Candle] = []
        for i, ts in enumerate(timestamps):
            # Yahoo pads halted minutes with nulls
            values = [_finite(s[i]) if i < len(s) else None for s in series]
            if None in values:
                continue
            dt = datetime.fromtimestamp(ts, tz=timezone.utc)
            time_str = dt.strftime("%Y-%m-%d") if interval == "1d" else dt.isoformat()
            o, h, low, c, v = values
            candles.append(Candle(time=time_str, open=o, high=h, low=low, close=c, volume=v))

        if len(candles) < min_periods:
            raise InsufficientDataError(
                f"Insufficient OHLC data for {symbol}: {len(candles)} < {min_periods}"
            )
        return candles

    # ── Quote ────────────────────────────────────────────────────────────

    async def _fetch_market_cap(self, symbol: str) -> Optional[float]:
        url = f"{self._base_url}/v7/finance/quote"
        try:
            resp = await self._request_with_retry("get", url, params={"symbols": symbol})
            results = (resp.json().get("quoteResponse") or {}).get("result") or []
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Market cap lookup for %s failed: %s", symbol, exc)
            return None
        if not results:
            return None
        return _finite(results[0].get("marketCap"))

    async def fetch_price_context(self, symbol: str) -> PriceContext:
        """Today's open, previous close, last price and gaps for *symbol*.

        Market cap comes from the quote endpoint and is ``None`` when that
        lookup fails.
        """
        norm = normalize_symbol(symbol)
        result = await self._chart(norm, "1d", "5d")
        meta = result.get("meta") or {}
        q = ((result.get("indicators") or {}).get("quote") or [{}])[0]
        opens = [v for v in (q.get("open") or []) if v is not None]
        closes = [v for v in (q.get("close") or []) if v is not None]

        current = _finite(meta.get("regularMarketPrice"))
        if current is None and closes:
            current = _finite(closes[-1])
        prev_close = _finite(meta.get("previousClose"))
        if prev_close is None and len(closes) >= 2:
            prev_close = _finite(closes[-2])
        if prev_close is None:
            prev_close = _finite(meta.get("chartPreviousClose"))
        day_open = _finite(meta.get("regularMarketOpen"))
        if day_open is None and opens:
            day_open = _finite(opens[-1])

        if prev_close is None or day_open is None:
            raise InsufficientDataError(f"Missing price fields for {symbol}")

        return PriceContext(
            symbol=norm,
            open=day_open,
            prev_close=prev_close,
            current_price=current,
            market_cap=await self._fetch_market_cap(norm),
            company_name=meta.get("longName") or meta.get("shortName") or base_symbol(norm),
            gap_open_pct=gap_pct(day_open, prev_close),
            gap_now_pct=gap_pct(current, prev_close),
        )
