"""Intraday entry calculator — entry, stop, targets and net RR for same-day trades."""

from typing import Optional

from screener.risk.costs import DEFAULT_INTRADAY_COST_BPS
from screener.risk.entry import (
    SCALP_ONLY,
    EntryPlan,
    EntryProfile,
    StrategyChoice,
    build_entry_plan,
    finalize_plan,
    nearest_level_below,
    round2,
    round_not_above,
    scaled,
)
from screener.strategy.indicators import clamp_volatility
from screener.strategy.models import IndicatorContext


INTRADAY_PROFILE = EntryProfile(
    horizon="intraday",
    structure_attr="vwap",
    breakout_types=frozenset({"resistance_breakout", "orb_breakout"}),
    pullback_bias=(0.08, 0.05, 0.25),
    structure_buffer_pct=0.15,
    structure_proximity=(1.2, 1.0, 3.0),
    min_stop=(0.35, 0.3),
    max_stop=(2.5, 1.0, 0.9),
    stop_factor={
        "vwap_pullback": 0.55,
        "trend_continuation": 0.7,
        "support_level": 0.7,
        "resistance_breakout": 0.5,
        "orb_breakout": 0.45,
        "consolidation_level": 0.5,
        "volume_confirmed_level": 0.6,
        "market_level": 0.6,
    },
    rr_multiple={
        "vwap_pullback": 2.0,
        "trend_continuation": 1.6,
        "support_level": 2.2,
        "resistance_breakout": 2.0,
        "orb_breakout": 1.8,
        "consolidation_level": 1.9,
        "volume_confirmed_level": 1.7,
        "market_level": 1.5,
    },
    rsi_adjustments=((65, 0.85), (60, 0.92)),
    gap_adjustment=(2.5, 0.85),
    volume_boost=1.1,
    target1_max_ext=(1.5, 1.2, 4.5),
    resistance_buffer_pct=0.15,
    breakout_ext=(0.9, 0.8, 3.0),
    target2_step=(0.5, 0.3),
    target2_extra_rr=1.0,
    target2_max_ext=(2.0, 1.5, 6.0),
)

# Scalp profile: stop distance band, then targets as fractions of it
_SCALP_STOP: tuple[float, float, float] = (0.35, 0.35, 0.8)
_SCALP_TARGET1_RATIO = 0.65
_SCALP_TARGET2_RATIO = 1.0
_OVEREXTENSION_LIMIT: tuple[float, float, float] = (1.8, 2.0, 4.5)


def is_overextended(ctx: IndicatorContext, volatility: float) -> bool:
    """Price stretched too far above VWAP without volume to justify it."""
    if not ctx.vwap or ctx.volume_spike:
        return False
    extension_pct = (ctx.price - ctx.vwap) / ctx.vwap * 100
    return extension_pct > scaled(volatility, _OVEREXTENSION_LIMIT)


def choose_intraday_strategy(ctx: IndicatorContext, volatility: float) -> StrategyChoice:
    """Pick the first structural setup that applies, in priority order."""
    price = ctx.price
    rsi = ctx.rsi
    vwap = ctx.vwap
    support = ctx.support
    resistance = ctx.resistance
    gap = ctx.effective_gap

    if vwap and price > vwap and 45 <= rsi <= 80:
        pullback_band = scaled(volatility, (0.8, 0.8, 2.0))
        if price <= vwap * (1 + pullback_band / 100):
            return StrategyChoice(
                "vwap_pullback", min(vwap * 1.001, price),
                "VWAP pullback - institutional entry zone",
            )
        return StrategyChoice(
            "trend_continuation", price,
            "Trend continuation above VWAP - buy a shallow pullback",
        )

    if support and price <= support * 1.02 and 35 <= rsi <= 60:
        return StrategyChoice(
            "support_level", min(support * 1.001, price),
            "Support level - accumulation zone",
        )

    if resistance and resistance <= price and price >= resistance * 0.995:
        return StrategyChoice(
            "resistance_breakout", min(resistance * 1.001, price),
            "Resistance breakout - momentum entry",
        )

    if 1.0 < gap < 5.0 and ctx.candle_color == "green":
        return StrategyChoice(
            "orb_breakout", price, "Opening range breakout after gap up",
        )

    if 45 <= rsi <= 65 and abs(gap) <= 0.5:
        return StrategyChoice(
            "consolidation_level", price, "Consolidation range - position building",
        )

    if 50 <= rsi <= 70:
        floor = nearest_level_below(price, vwap, support)
        return StrategyChoice(
            "volume_confirmed_level", min(max(floor, price * 0.999), price),
            "Volume-confirmed level - momentum entry",
        )

    return StrategyChoice("market_level", price, "Market level entry")


def _scalp_plan(
    ctx: IndicatorContext, volatility: float, cost_bps: float, setup_type: str,
) -> EntryPlan:
    price = ctx.price
    entry = round_not_above(price, price)
    stop_pct = scaled(volatility, _SCALP_STOP)
    stop = min(round2(entry * (1 - stop_pct / 100)), round2(entry - 0.01))
    target1 = max(
        round2(entry * (1 + stop_pct * _SCALP_TARGET1_RATIO / 100)),
        round2(price + 0.01),
    )
    target2 = max(
        round2(entry * (1 + stop_pct * _SCALP_TARGET2_RATIO / 100)),
        round2(target1 + 0.01),
    )
    return finalize_plan(
        entry=entry,
        stop=stop,
        target1=target1,
        target2=target2,
        price=price,
        entry_type=SCALP_ONLY,
        reason="Extended above VWAP - scalp only with tight stop",
        cost_bps=cost_bps,
        volatility=volatility,
        setup_type=setup_type,
    )


def calculate_intraday_entry(
    ctx: IndicatorContext,
    cost_bps: float = DEFAULT_INTRADAY_COST_BPS,
    force_scalp: bool = False,
) -> Optional[EntryPlan]:
    """Plan an intraday long entry for *ctx*.

    Args:
        ctx: Indicator context; ``price`` and ``rsi`` are required.
        cost_bps: Round-trip cost in basis points of entry price.
        force_scalp: Use the tight scalp profile regardless of structure
            (set when the verdict is the stretch zone).

    Returns:
        An ``EntryPlan`` (possibly relabelled ``rr_weak`` or
        ``scalp_only``), or ``None`` when price or RSI is unavailable.
    """
    if not ctx.has_price or ctx.rsi is None:
        return None

    volatility = clamp_volatility(ctx.volatility_pct, "intraday")
    if force_scalp:
        return _scalp_plan(ctx, volatility, cost_bps, "stretch_zone")
    if is_overextended(ctx, volatility):
        return _scalp_plan(ctx, volatility, cost_bps, "vwap_extension")

    choice = choose_intraday_strategy(ctx, volatility)
    return build_entry_plan(ctx, INTRADAY_PROFILE, choice, cost_bps)
