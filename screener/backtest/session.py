"""Exchange session helpers — IST calendar, session window, market state. Pure functions."""

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from screener.market.models import IST, Candle


SESSION_OPEN_MINUTE = 9 * 60 + 15
SESSION_CLOSE_MINUTE = 15 * 60 + 30

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class SessionCandle:
    """An intraday bar placed on the exchange clock."""

    timestamp: str
    ist_date: str
    ist_time: str  # "HH:MM"
    minute: int  # minutes since IST midnight
    open: float
    high: float
    low: float
    close: float


def now_ist(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(IST)


def current_ist_date(now: Optional[datetime] = None) -> str:
    return now_ist(now).strftime("%Y-%m-%d")


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_ist_time(value: Optional[str]) -> Optional[int]:
    """``"HH:MM"`` to minutes since midnight, or ``None`` if malformed."""
    if not isinstance(value, str) or ":" not in value:
        return None
    hours, _, minutes = value.partition(":")
    try:
        return int(hours) * 60 + int(minutes[:2])
    except ValueError:
        return None


def sanitize_trade_date(value: Optional[str], now: Optional[datetime] = None) -> str:
    """Accept ``YYYY-MM-DD``; anything else means today (IST)."""
    if isinstance(value, str) and _DATE_RE.match(value.strip()):
        return value.strip()
    return current_ist_date(now)


def in_session(minute: int, open_minute: int = SESSION_OPEN_MINUTE, close_minute: int = SESSION_CLOSE_MINUTE) -> bool:
    """Session window is inclusive on both ends."""
    return open_minute <= minute <= close_minute


def market_state(now: Optional[datetime] = None) -> dict:
    """Open/closed state of the cash market at *now* (defaults to the wall clock).

    Exchange holidays are not modelled; weekdays inside the session window
    count as open.
    """
    ist = now_ist(now)
    minute = ist.hour * 60 + ist.minute
    if ist.weekday() >= 5:
        reason = "weekend"
    elif minute < SESSION_OPEN_MINUTE:
        reason = "pre_open"
    elif minute > SESSION_CLOSE_MINUTE:
        reason = "post_close"
    else:
        reason = "market_open"
    return {
        "is_open": reason == "market_open",
        "ist_date": ist.strftime("%Y-%m-%d"),
        "ist_time": ist.strftime("%H:%M"),
        "reason": reason,
    }


def normalize_day_candles(
    candles: list[Candle],
    trade_date: str,
    open_minute: int = SESSION_OPEN_MINUTE,
    close_minute: int = SESSION_CLOSE_MINUTE,
) -> list[SessionCandle]:
    """Keep *trade_date*'s in-session bars, on the IST clock, sorted by minute.

    Bars with unparseable timestamps or missing prices are dropped.
    """
    out: list[SessionCandle] = []
    for c in candles:
        dt = parse_timestamp(c.time)
        if dt is None:
            continue
        if None in (c.open, c.high, c.low, c.close):
            continue
        ist = dt.astimezone(IST)
        minute = ist.hour * 60 + ist.minute
        ist_date = ist.strftime("%Y-%m-%d")
        if ist_date != trade_date or not in_session(minute, open_minute, close_minute):
            continue
        out.append(
            SessionCandle(
                timestamp=c.time,
                ist_date=ist_date,
                ist_time=ist.strftime("%H:%M"),
                minute=minute,
                open=float(c.open),
                high=float(c.high),
                low=float(c.low),
                close=float(c.close),
            )
        )
    out.sort(key=lambda sc: sc.minute)
    return out


def range_for_date(trade_date: str, today: Optional[date] = None) -> str:
    """Chart range wide enough to contain *trade_date*'s intraday bars."""
    today = today or now_ist().date()
    try:
        target = date.fromisoformat(trade_date)
    except ValueError:
        return "5d"
    age_days = max(0, (today - target).days)
    if age_days <= 7:
        return "5d"
    if age_days <= 30:
        return "1mo"
    return "3mo"
