"""Swing evaluator — multi-day setups anchored on the 5-day swing VWAP.

Gap risk is a hard blocker: the capitulation and sharp-gap rules sit ahead
of every opportunity rule.
"""

import math
from dataclasses import dataclass

from screener.strategy.indicators import is_breakout_confirmed
from screener.strategy.models import (
    NEGATIVE,
    NEUTRAL,
    POSITIVE,
    IndicatorContext,
    Verdict,
)
from screener.strategy.rules import Rule, run_cascade


@dataclass(frozen=True)
class SwingFacts:
    ctx: IndicatorContext
    rsi: float
    gap: float
    above_structure: bool
    breakout: bool
    near_support: bool
    volume_ok: bool


def _has_structure(ctx: IndicatorContext) -> bool:
    return (
        ctx.swing_vwap is not None
        and math.isfinite(ctx.swing_vwap)
        and ctx.swing_vwap > 0
    )


def build_swing_facts(ctx: IndicatorContext) -> SwingFacts:
    price = ctx.price
    above = price > ctx.swing_vwap
    return SwingFacts(
        ctx=ctx,
        rsi=ctx.rsi,
        gap=ctx.effective_gap,
        above_structure=above,
        breakout=is_breakout_confirmed(price, ctx.resistance, ctx.volume_spike),
        near_support=bool(ctx.support) and price <= ctx.support * 1.05,
        volume_ok=ctx.volume_spike or (above and ctx.rsi > 50),
    )


SWING_RULES: tuple[Rule, ...] = (
    Rule(
        "capitulation_gap",
        lambda f: f.gap <= -4.0,
        "Capitulation Gap Risk – Avoid Swing", NEGATIVE,
        lambda f: [
            f"Deep gap down ({f.gap:.2f}%) signals capitulation risk",
            "Wait for the gap to stabilise before building a swing position",
        ],
    ),
    Rule(
        "sharp_gap_down",
        lambda f: f.gap <= -2.8 and not f.near_support,
        "Sharp Gap Down – Avoid Swing", NEGATIVE,
        lambda f: [
            f"Sharp gap down ({f.gap:.2f}%) away from support",
            "No structural floor nearby to lean on",
        ],
    ),
    Rule(
        "weak_structure",
        lambda f: not f.above_structure and f.rsi < 40 and f.gap <= -1.5,
        "Weak Structure – Avoid Swing", NEGATIVE,
        lambda f: [
            "Price below swing VWAP with weak RSI",
            "Negative gap confirms distribution",
        ],
    ),
    Rule(
        "high_quality",
        lambda f: (
            45 <= f.rsi <= 65
            and -1.0 <= f.gap <= 5.5
            and f.volume_ok
            and f.above_structure
            and not f.breakout
        ),
        "High-Quality Swing Setup", POSITIVE,
        lambda f: [
            "Momentum in favorable RSI zone",
            "Price above swing VWAP indicates bullish structure",
            "Volume confirms participation" if f.ctx.volume_spike else "Building momentum",
        ],
    ),
    Rule(
        "potential",
        lambda f: 35 <= f.rsi < 50 and f.volume_ok and not f.breakout,
        "Potential Swing – Needs Confirmation", POSITIVE,
        lambda f: [
            "Early momentum emerging",
            "Price above swing VWAP is bullish" if f.above_structure else "Building base below swing VWAP",
            "Volume pickup suggests accumulation" if f.ctx.volume_spike else "Watch for volume confirmation",
        ],
    ),
    Rule(
        "support_bounce",
        lambda f: (
            30 <= f.rsi <= 55
            and f.near_support
            and (f.above_structure or f.ctx.volume_spike)
        ),
        "Support-Based Swing Attempt", POSITIVE,
        lambda f: [
            "Price reacting near support zone",
            "Volume confirms institutional interest" if f.ctx.volume_spike else "Watch for volume confirmation",
            "Suitable for tactical swing entry",
        ],
    ),
    Rule(
        "breakout",
        lambda f: f.breakout and 45 <= f.rsi <= 68 and f.gap <= 5.0,
        "Breakout Swing Setup", POSITIVE,
        lambda f: [
            "Breaking resistance with volume confirmation",
            "Breakout accepted above prior range",
        ],
    ),
    Rule(
        "consolidation",
        lambda f: (
            40 <= f.rsi <= 60
            and abs(f.gap) <= 1.0
            and not f.breakout
            and not f.near_support
        ),
        "Consolidation Watch", POSITIVE,
        lambda f: [
            "Stock in consolidation phase",
            "Awaiting breakout direction",
            "Volume suggests impending move" if f.ctx.volume_spike else "Add to watchlist",
        ],
    ),
    Rule(
        "late_move",
        lambda f: f.rsi > 75,
        "Late Move – Avoid Fresh Entry", NEGATIVE,
        lambda f: [
            "Momentum is overheated and crowded",
            "Risk of sharp profit booking",
        ],
    ),
    Rule(
        "gap_risk",
        lambda f: f.gap < -2.0,
        "High Gap Risk – Avoid Swing Trade", NEGATIVE,
        lambda f: ["Large overnight gap down increases volatility risk"],
    ),
)

NO_SWING_OPPORTUNITY = Rule(
    "default",
    lambda f: True,
    "No Swing Opportunity", NEGATIVE,
    lambda f: [
        "Momentum, liquidity, or structure not aligned",
        "No swing edge visible",
    ],
)


def evaluate_swing(ctx: IndicatorContext) -> Verdict:
    """Classify *ctx* for a multi-day swing trade.

    Without a usable swing VWAP (or price/RSI) nothing else is evaluated:
    the verdict is ``Insufficient Structure Data`` (neutral).
    """
    if not _has_structure(ctx):
        return Verdict(
            "Insufficient Structure Data", NEUTRAL, ("Swing VWAP unavailable",),
        )
    if not ctx.has_price or ctx.rsi is None:
        return Verdict(
            "Insufficient Structure Data", NEUTRAL, ("Price or RSI unavailable",),
        )
    return run_cascade(SWING_RULES, build_swing_facts(ctx), NO_SWING_OPPORTUNITY)
