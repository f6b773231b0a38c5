"""Backtest simulator — replays one snapshot pick against the trade date's intraday bars.

Per-pick state machine:

    awaiting entry ──(bar range contains entry)──▶ open ──(SL / T1 / T2)──▶ closed
          │                                          │
          └──────────── no_trade ◀───────────────────┘ (session ends first)

No orders are placed and no exit is ever assumed: a position still open at
the close is reported as ``no_trade``, not marked to market.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Optional

from screener.backtest.session import (
    SESSION_OPEN_MINUTE,
    SessionCandle,
    normalize_day_candles,
    range_for_date,
)
from screener.market.models import Candle

logger = logging.getLogger("screener")

CandleFetcher = Callable[..., Awaitable[list[Candle]]]


@dataclass(frozen=True)
class Pick:
    """A validated intraday pick taken from a signal snapshot."""

    symbol: str
    entry_price: float
    stop_loss: float
    target1: float
    target2: float
    resolved_symbol: Optional[str] = None
    company_name: Optional[str] = None
    entry_type: Optional[str] = None
    entry_reason: Optional[str] = None
    risk_reward_after_costs: Optional[float] = None
    risk_reward: Optional[float] = None


@dataclass(frozen=True)
class TradeOutcome:
    """Result of simulating one pick."""

    symbol: str
    resolved_symbol: Optional[str]
    company_name: Optional[str]
    entry_type: Optional[str]
    entry_reason: Optional[str]
    entry_price: float
    stop_loss: float
    target1: float
    target2: float
    capital_configured: float
    status: str  # "no_data", "no_trade", "closed" or "error"
    outcome: str  # "win", "loss" or "no_trade"
    reason: str
    candle_interval: Optional[str] = None
    quantity: int = 0
    invested_amount: float = 0.0
    gross_pnl: float = 0.0
    net_pnl: float = 0.0
    round_trip_cost: float = 0.0
    exit_type: Optional[str] = None  # "stop_loss", "target1_hit" or "target2_hit"
    exit_price: Optional[float] = None
    entry_triggered_at: Optional[str] = None
    exit_triggered_at: Optional[str] = None
    evaluated_from_time: Optional[str] = None
    last_checked_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _round2(value: float) -> float:
    return round(value, 2)


def check_exit(candle: SessionCandle, pick: Pick) -> Optional[tuple[str, float, str]]:
    """Check if *candle* triggers a stop or target exit.

    Returns ``(exit_type, exit_price, reason)`` or ``None``.  When the bar
    contains both the stop and any target, the stop is assumed first
    (conservative).  Target2 beats target1 when both are reached.
    """
    sl_hit = candle.low <= pick.stop_loss
    t1_hit = candle.high >= pick.target1
    t2_hit = candle.high >= pick.target2

    if sl_hit and (t1_hit or t2_hit):
        return "stop_loss", pick.stop_loss, "sl_and_target_same_candle_stop_priority"
    if sl_hit:
        return "stop_loss", pick.stop_loss, "stop_loss_hit"
    if t2_hit:
        return "target2_hit", pick.target2, "target2_hit"
    if t1_hit:
        return "target1_hit", pick.target1, "target1_hit"
    return None


def simulate_pick(
    pick: Pick,
    day_candles: list[SessionCandle],
    capital_per_pick: float,
    signal_start_minute: Optional[int],
    cost_bps: float,
    interval: Optional[str] = None,
) -> TradeOutcome:
    """Run the entry/exit state machine for one pick over one session.

    Args:
        pick: Planned levels.
        day_candles: Session bars of the trade date, sorted by minute.
        capital_per_pick: Capital allocated to this pick.
        signal_start_minute: IST minute the signal was generated; bars
            before it are ignored.  ``None`` means the session open.
        cost_bps: Round-trip cost in basis points of entry notional.
        interval: Bar interval the candles were fetched at (reporting only).
    """
    base = dict(
        symbol=pick.symbol,
        resolved_symbol=pick.resolved_symbol or pick.symbol,
        company_name=pick.company_name,
        entry_type=pick.entry_type,
        entry_reason=pick.entry_reason,
        entry_price=pick.entry_price,
        stop_loss=pick.stop_loss,
        target1=pick.target1,
        target2=pick.target2,
        candle_interval=interval,
        capital_configured=_round2(capital_per_pick),
    )

    if not day_candles:
        return TradeOutcome(
            **base, status="no_data", outcome="no_trade",
            reason="no_intraday_candles_for_date",
        )

    start_minute = max(
        signal_start_minute if signal_start_minute is not None else SESSION_OPEN_MINUTE,
        SESSION_OPEN_MINUTE,
    )
    tradable = [c for c in day_candles if c.minute >= start_minute]
    if not tradable:
        return TradeOutcome(
            **base, status="no_trade", outcome="no_trade",
            reason="no_candles_after_signal_time",
        )

    quantity = math.floor(capital_per_pick / pick.entry_price)
    if quantity < 1:
        return TradeOutcome(
            **base, status="no_trade", outcome="no_trade",
            reason="capital_too_low_for_one_share",
        )

    # Awaiting entry
    entry_idx = next(
        (
            i for i, c in enumerate(tradable)
            if c.low <= pick.entry_price <= c.high
        ),
        None,
    )
    if entry_idx is None:
        return TradeOutcome(
            **base, status="no_trade", outcome="no_trade",
            reason="entry_not_triggered",
            evaluated_from_time=tradable[0].ist_time,
        )
    entry_candle = tradable[entry_idx]

    # Position open: the entry bar itself is checked for exits
    for candle in tradable[entry_idx:]:
        exit_ = check_exit(candle, pick)
        if exit_ is not None:
            break
    else:
        return TradeOutcome(
            **base, status="no_trade", outcome="no_trade",
            reason="no_exit_level_hit_by_close",
            entry_triggered_at=entry_candle.ist_time,
            last_checked_at=tradable[-1].ist_time,
        )

    exit_type, exit_price, reason = exit_
    invested = pick.entry_price * quantity
    gross_pnl = (exit_price - pick.entry_price) * quantity
    cost = invested * cost_bps / 10_000
    return TradeOutcome(
        **base,
        status="closed",
        outcome="loss" if exit_type == "stop_loss" else "win",
        reason=reason,
        quantity=quantity,
        invested_amount=_round2(invested),
        gross_pnl=_round2(gross_pnl),
        net_pnl=_round2(gross_pnl - cost),
        round_trip_cost=_round2(cost),
        exit_type=exit_type,
        exit_price=_round2(exit_price),
        entry_triggered_at=entry_candle.ist_time,
        exit_triggered_at=candle.ist_time,
    )


async def fetch_best_granularity_candles(
    fetch_candles: CandleFetcher,
    symbol: str,
    trade_date: str,
    intervals: tuple[str, ...] = ("1m", "2m", "5m"),
) -> tuple[str, list[SessionCandle]]:
    """Return the finest interval that yields session bars for *trade_date*.

    *fetch_candles* is awaited as ``fetch_candles(symbol, 1, interval=...,
    range_=...)``.  An interval whose fetch fails is logged and skipped; if
    every interval fails the last error is raised.
    """
    data_range = range_for_date(trade_date)
    last_exc: Optional[Exception] = None
    failures = 0

    for interval in intervals:
        try:
            candles = await fetch_candles(symbol, 1, interval=interval, range_=data_range)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Candle fetch %s %s (%s) failed, trying next interval: %s",
                symbol, interval, data_range, exc,
            )
            last_exc = exc
            failures += 1
            continue
        day_candles = normalize_day_candles(candles, trade_date)
        if day_candles:
            return interval, day_candles

    if failures == len(intervals) and last_exc is not None:
        raise last_exc
    return (intervals[-1] if intervals else "5m"), []
