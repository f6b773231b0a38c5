"""Market data models — typed representations of quote and chart payloads."""

from dataclasses import dataclass
from datetime import timedelta, timezone
from typing import Optional


IST = timezone(timedelta(hours=5, minutes=30))


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar.

    ``time`` is an ISO-8601 string: a bare date (``"2025-01-10"``) for daily
    bars, a UTC timestamp for intraday bars.
    """

    time: str
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class PriceContext:
    """Opening gap and liquidity context for one symbol on the current day."""

    symbol: str
    open: Optional[float]
    prev_close: Optional[float]
    current_price: Optional[float]
    market_cap: Optional[float]
    company_name: str
    gap_open_pct: Optional[float]
    gap_now_pct: Optional[float]


def gap_pct(price: Optional[float], prev_close: Optional[float]) -> Optional[float]:
    """Percentage move of *price* relative to *prev_close*, or ``None``."""
    if price is None or prev_close is None or prev_close == 0:
        return None
    return (price - prev_close) / prev_close * 100
