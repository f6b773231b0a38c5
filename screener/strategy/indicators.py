"""Technical indicators — RSI, VWAP, volume spikes, ranges, ATR%. Pure functions, no I/O.

Every function returns a sentinel (``None`` or ``False``) when there is
not enough data; none of them raise on short input.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

import numpy as np

from screener.market.models import IST, Candle


# Volatility clamps per horizon: (floor, ceiling, default when unknown)
_VOLATILITY_BANDS: dict[str, tuple[float, float, float]] = {
    "intraday": (0.45, 3.8, 1.2),
    "swing": (1.0, 7.5, 2.5),
}


@dataclass(frozen=True)
class VolumeSnapshot:
    """Latest bar volume relative to its trailing average."""

    volume_spike: bool
    avg_volume: float
    latest_volume: float


# ── Candle hygiene ───────────────────────────────────────────────────────


def _is_finite_ohlc(candle: Candle) -> bool:
    values = (candle.open, candle.high, candle.low, candle.close)
    return (
        all(v is not None and math.isfinite(v) for v in values)
        and candle.high >= candle.low
    )


def select_candles_for_technicals(
    candles: list[Candle], min_count: int = 20,
) -> list[Candle]:
    """Prefer bars that actually traded; fall back to any well-formed bars.

    A bar is *tradable* when its OHLC values are finite, ``high >= low`` and
    its volume is positive.  When at least *min_count* tradable bars exist
    they are returned; otherwise all OHLC-consistent bars are returned.
    """
    if not candles:
        return []

    tradable = [
        c for c in candles
        if _is_finite_ohlc(c)
        and c.volume is not None
        and math.isfinite(c.volume)
        and c.volume > 0
    ]
    if len(tradable) >= min_count:
        return tradable
    return [c for c in candles if _is_finite_ohlc(c)]


def candle_color(candle: Optional[Candle]) -> str:
    """``"green"`` when close > open, ``"red"`` when close < open."""
    if candle is None:
        return "neutral"
    if candle.close > candle.open:
        return "green"
    if candle.close < candle.open:
        return "red"
    return "neutral"


# ── Momentum ─────────────────────────────────────────────────────────────


def compute_rsi(closes: list[float], period: int = 14) -> Optional[float]:
    """Wilder-smoothed Relative Strength Index, rounded to one decimal.

    The first average gain/loss is the simple mean of the first *period*
    changes; each later change is folded in with Wilder's smoothing.

    Returns ``None`` when ``len(closes) <= period``.  A series with no losses
    yields 100.0, one with no gains yields 0.0.
    """
    if len(closes) <= period:
        return None

    gains: list[float] = []
    losses: list[float] = []
    for i in range(1, len(closes)):
        change = closes[i] - closes[i - 1]
        gains.append(max(0.0, change))
        losses.append(max(0.0, -change))

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    for i in range(period, len(gains)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return round(100 - 100 / (1 + rs), 1)


def categorize_rsi(rsi: Optional[float]) -> str:
    """Bucket an RSI reading into a coarse zone."""
    if rsi is None:
        return "unknown"
    if rsi < 30:
        return "oversold"
    if rsi < 40:
        return "bearish"
    if rsi <= 60:
        return "neutral"
    if rsi <= 70:
        return "bullish"
    return "overbought"


# ── Volume ───────────────────────────────────────────────────────────────


def detect_volume_spike(
    candles: list[Candle],
    lookback: int = 20,
    multiplier: float = 1.5,
) -> VolumeSnapshot:
    """Compare the latest bar's volume with the mean of the *lookback* bars before it."""
    if not candles:
        return VolumeSnapshot(volume_spike=False, avg_volume=0.0, latest_volume=0.0)

    latest = float(candles[-1].volume or 0.0)
    history = [float(c.volume or 0.0) for c in candles[-lookback - 1:-1]]
    if not history:
        return VolumeSnapshot(volume_spike=False, avg_volume=0.0, latest_volume=latest)

    avg = float(np.mean(history))
    return VolumeSnapshot(
        volume_spike=avg > 0 and latest > avg * multiplier,
        avg_volume=round(avg),
        latest_volume=latest,
    )


# ── VWAP ─────────────────────────────────────────────────────────────────


def calculate_vwap(candles: list[Candle]) -> Optional[float]:
    """Volume-weighted typical price ``(H + L + C) / 3`` over the whole slice.

    Returns ``None`` when the slice is empty or carries no volume.
    """
    pv = 0.0
    vol = 0.0
    for c in candles:
        typical = (c.high + c.low + c.close) / 3
        pv += typical * c.volume
        vol += c.volume
    if vol == 0:
        return None
    return round(pv / vol, 2)


def ist_trade_date(timestamp: str) -> Optional[date]:
    """Calendar day of *timestamp* on the exchange clock (IST).

    Bare dates are taken as already being exchange days.
    """
    if not timestamp:
        return None
    try:
        if len(timestamp) == 10:
            return date.fromisoformat(timestamp)
        dt = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(IST).date()


def calculate_intraday_vwap(
    candles: list[Candle], today: Optional[date] = None,
) -> Optional[float]:
    """VWAP of the current exchange day's bars.

    Falls back to the last five bars when none belong to *today* (defaults
    to the current IST date).
    """
    if today is None:
        today = datetime.now(IST).date()
    todays = [c for c in candles if ist_trade_date(c.time) == today]
    return calculate_vwap(todays if todays else candles[-5:])


def calculate_swing_vwap(candles: list[Candle], days: int = 5) -> Optional[float]:
    """VWAP over the last *days* daily bars."""
    return calculate_vwap(candles[-days:])


# ── Structure ────────────────────────────────────────────────────────────


def support_resistance(
    candles: list[Candle], lookback: int = 20,
) -> tuple[Optional[float], Optional[float]]:
    """Lowest low and highest high of the trailing *lookback* bars."""
    recent = candles[-lookback:]
    if not recent:
        return None, None
    return min(c.low for c in recent), max(c.high for c in recent)


def is_breakout_confirmed(
    price: Optional[float],
    resistance: Optional[float],
    volume_spike: bool,
    acceptance_pct: float = 0.2,
) -> bool:
    """Price accepted above resistance AND the move carries a volume spike."""
    if price is None or not resistance:
        return False
    return price > resistance * (1 + acceptance_pct / 100) and bool(volume_spike)


def detect_breakout(
    price: Optional[float], resistance: Optional[float], buffer_pct: float = 0.3,
) -> bool:
    """Price-only breakout test (no volume requirement)."""
    if price is None or not resistance:
        return False
    return price > resistance * (1 + buffer_pct / 100)


# ── Volatility ───────────────────────────────────────────────────────────


def estimate_atr_percent(candles: list[Candle], period: int = 14) -> Optional[float]:
    """Mean true range of the last *period* bars as a percentage of last close.

    Uses whatever history is available when fewer than *period* true ranges
    exist.  Returns ``None`` for fewer than two bars or a non-positive close.
    """
    if len(candles) < 2:
        return None

    true_ranges: list[float] = []
    for i in range(1, len(candles)):
        high = candles[i].high
        low = candles[i].low
        prev_close = candles[i - 1].close
        true_ranges.append(
            max(high - low, abs(high - prev_close), abs(low - prev_close))
        )

    last_close = candles[-1].close
    if not last_close or last_close <= 0:
        return None
    atr = float(np.mean(true_ranges[-period:]))
    return atr / last_close * 100


def clamp_volatility(value: Optional[float], horizon: str = "intraday") -> float:
    """Clamp an ATR% reading into the band used by the entry calculators."""
    floor, ceiling, default = _VOLATILITY_BANDS[horizon]
    if value is None or not math.isfinite(value):
        return default
    return min(max(value, floor), ceiling)
