"""Swing entry calculator — wider stops and runners for multi-day holds."""

from typing import Optional

from screener.risk.costs import DEFAULT_SWING_COST_BPS
from screener.risk.entry import (
    EntryPlan,
    EntryProfile,
    StrategyChoice,
    build_entry_plan,
    nearest_level_below,
)
from screener.strategy.models import IndicatorContext


SWING_PROFILE = EntryProfile(
    horizon="swing",
    structure_attr="swing_vwap",
    breakout_types=frozenset({"swing_breakout"}),
    pullback_bias=(0.1, 0.1, 0.5),
    structure_buffer_pct=0.5,
    structure_proximity=(0.9, 2.0, 5.0),
    min_stop=(1.2, 0.45),
    max_stop=(6.0, 3.0, 1.1),
    stop_factor={
        "swing_vwap": 0.8,
        "swing_support": 0.9,
        "swing_breakout": 0.7,
        "swing_consolidation": 0.75,
        "swing_momentum": 0.85,
        "swing_market": 0.9,
    },
    rr_multiple={
        "swing_vwap": 2.2,
        "swing_support": 2.5,
        "swing_breakout": 2.4,
        "swing_consolidation": 2.0,
        "swing_momentum": 1.8,
        "swing_market": 1.6,
    },
    rsi_adjustments=((65, 0.8), (60, 0.9)),
    gap_adjustment=(3.0, 0.85),
    volume_boost=1.1,
    target1_max_ext=(2.5, 5.0, 15.0),
    resistance_buffer_pct=0.5,
    breakout_ext=(1.2, 2.0, 8.0),
    target2_step=(0.75, 1.0),
    target2_extra_rr=1.2,
    target2_max_ext=(3.5, 6.0, 22.0),
)


def choose_swing_strategy(ctx: IndicatorContext) -> StrategyChoice:
    price = ctx.price
    rsi = ctx.rsi
    swing_vwap = ctx.swing_vwap
    support = ctx.support
    resistance = ctx.resistance

    if swing_vwap and price > swing_vwap and 50 <= rsi <= 75:
        return StrategyChoice(
            "swing_vwap", min(swing_vwap * 1.015, price),
            "Swing VWAP level - trend following",
        )
    if support and price <= support * 1.03 and 35 <= rsi <= 60:
        return StrategyChoice(
            "swing_support", min(support * 1.002, price),
            "Swing support level - accumulation zone",
        )
    if resistance and resistance <= price and price >= resistance * 0.98 and rsi >= 55:
        return StrategyChoice(
            "swing_breakout", min(resistance * 1.002, price),
            "Swing breakout - momentum entry",
        )
    if 45 <= rsi <= 65 and abs(ctx.effective_gap) <= 1.0:
        return StrategyChoice(
            "swing_consolidation", price,
            "Swing consolidation - position building",
        )
    if 50 <= rsi <= 70 and ctx.candle_color == "green":
        floor = nearest_level_below(price, swing_vwap, support)
        return StrategyChoice(
            "swing_momentum", min(max(floor, price * 0.998), price),
            "Swing momentum - volume confirmed position",
        )
    return StrategyChoice("swing_market", price, "Swing market entry")


def calculate_swing_entry(
    ctx: IndicatorContext,
    cost_bps: float = DEFAULT_SWING_COST_BPS,
) -> Optional[EntryPlan]:
    """Plan a swing long entry for *ctx*, or ``None`` without price/RSI."""
    if not ctx.has_price or ctx.rsi is None:
        return None
    return build_entry_plan(ctx, SWING_PROFILE, choose_swing_strategy(ctx), cost_bps)
