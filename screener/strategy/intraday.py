"""Intraday evaluator — classifies a symbol for same-day trading.

Risk-averse exclusions (liquidity, chop) come before the opportunity rules,
and the first matching rule wins.
"""

import math
from dataclasses import dataclass
from typing import Optional

from screener.strategy.indicators import is_breakout_confirmed
from screener.strategy.models import (
    NEGATIVE,
    NEUTRAL,
    POSITIVE,
    IndicatorContext,
    Verdict,
)
from screener.strategy.rules import Rule, run_cascade


MIN_INTRADAY_MARKET_CAP = 1e10  # ₹1000 Cr
STRETCH_ZONE_LABEL = "Stretch Zone - Scalp Only"


@dataclass(frozen=True)
class IntradayFacts:
    """Derived booleans the intraday rules are written against."""

    ctx: IndicatorContext
    rsi: float
    gap: float
    above_vwap: bool
    below_vwap: bool
    breakout: bool
    near_support: bool
    volume_ok: bool
    vwap_distance: float  # fraction of VWAP

    @property
    def green(self) -> bool:
        return self.ctx.candle_color == "green"


def build_intraday_facts(ctx: IndicatorContext) -> Optional[IntradayFacts]:
    """Return ``None`` when price, VWAP or RSI are unusable."""
    if not ctx.has_price or ctx.rsi is None:
        return None
    if ctx.vwap is None or not math.isfinite(ctx.vwap) or ctx.vwap <= 0:
        return None

    price = ctx.price
    above = price > ctx.vwap
    return IntradayFacts(
        ctx=ctx,
        rsi=ctx.rsi,
        gap=ctx.effective_gap,
        above_vwap=above,
        below_vwap=price < ctx.vwap,
        breakout=is_breakout_confirmed(price, ctx.resistance, ctx.volume_spike),
        near_support=bool(ctx.support) and price <= ctx.support * 1.02,
        volume_ok=ctx.volume_spike or (above and ctx.rsi > 50),
        vwap_distance=abs(price - ctx.vwap) / ctx.vwap,
    )


# ── Reasons ──────────────────────────────────────────────────────────────


def _strong_buy_reasons(f: IntradayFacts) -> list[str]:
    return [
        "Gap up with momentum" if f.gap > 0.5 else "Positive price action",
        "Price above VWAP shows bullish structure",
        "RSI in optimal intraday zone",
        "Green candle confirms buying pressure" if f.green else "Building momentum",
    ]


def _continuation_reasons(f: IntradayFacts) -> list[str]:
    return [
        "Momentum continuation pattern",
        "Trading above key VWAP level",
        "Volume supports the move" if f.ctx.volume_spike else "Watch for volume confirmation",
        "Bullish candle pattern" if f.green else "Consolidating with upside bias",
    ]


def _breakout_reasons(f: IntradayFacts) -> list[str]:
    return [
        "Breakout accepted above resistance",
        "Volume confirms resistance break",
        "Bullish momentum through resistance" if f.green else "Holding above broken resistance",
    ]


def _moderate_reasons(f: IntradayFacts) -> list[str]:
    return [
        "Moderate momentum with VWAP support",
        "Volume confirms interest" if f.ctx.volume_spike else "Awaiting volume confirmation",
        "Bullish bias" if f.green else "Consolidating with upside potential",
    ]


def _consolidation_reasons(f: IntradayFacts) -> list[str]:
    return [
        "Consolidation phase - watch for breakout",
        "Volume suggests impending move" if f.ctx.volume_spike else "Low volatility - add to watchlist",
        "Above VWAP provides support" if f.above_vwap else "Below VWAP - needs confirmation",
    ]


# ── Cascade ──────────────────────────────────────────────────────────────


INTRADAY_RULES: tuple[Rule, ...] = (
    Rule(
        "low_liquidity",
        lambda f: not f.ctx.market_cap or f.ctx.market_cap < MIN_INTRADAY_MARKET_CAP,
        "Low Liquidity - Avoid", NEGATIVE,
        lambda f: ["Insufficient liquidity for intraday trading"],
    ),
    Rule(
        "chop",
        lambda f: abs(f.gap) < 0.2 and not f.ctx.volume_spike and f.vwap_distance < 0.002,
        "Choppy Market – Avoid", NEUTRAL,
        lambda f: ["Low volatility chop – intraday edge absent"],
    ),
    Rule(
        "strong_buy",
        lambda f: (
            40 <= f.rsi <= 65
            and 0.2 <= f.gap < 3.5
            and f.volume_ok
            and f.above_vwap
            and not f.breakout
        ),
        "Strong Intraday Buy", POSITIVE, _strong_buy_reasons,
    ),
    Rule(
        "momentum_continuation",
        lambda f: 45 <= f.rsi <= 65 and f.above_vwap and f.gap >= -0.2,
        "Momentum Continuation", POSITIVE, _continuation_reasons,
    ),
    Rule(
        "stretch_zone",
        lambda f: 65 < f.rsi <= 70 and f.ctx.volume_spike and f.above_vwap,
        STRETCH_ZONE_LABEL, POSITIVE,
        lambda f: [
            "Momentum in stretch zone - volume required",
            "Trading above VWAP with volume confirmation",
            "Suitable for scalp/quick trades only",
        ],
    ),
    Rule(
        "breakout",
        lambda f: f.breakout and 50 <= f.rsi <= 70,
        "Breakout Candidate", POSITIVE, _breakout_reasons,
    ),
    Rule(
        "moderate_momentum",
        lambda f: 45 <= f.rsi <= 70 and f.above_vwap and f.gap >= -0.3,
        "Moderate Momentum - Watch", POSITIVE, _moderate_reasons,
    ),
    Rule(
        "consolidation",
        lambda f: (
            40 <= f.rsi <= 60
            and abs(f.gap) <= 0.5
            and not f.breakout
            and not f.near_support
        ),
        "Consolidation Watch", POSITIVE, _consolidation_reasons,
    ),
    Rule(
        "overbought",
        lambda f: f.rsi > 70,
        "Overbought - Avoid Fresh Entry", NEGATIVE,
        lambda f: [
            "RSI in distribution zone (>70)",
            "High risk of reversal or profit booking",
            "Unfavorable risk-reward for fresh entries",
        ],
    ),
    Rule(
        "bearish",
        lambda f: f.below_vwap and f.ctx.candle_color == "red" and f.gap < -0.5,
        "Bearish Momentum - Avoid", NEGATIVE,
        lambda f: [
            "Trading below VWAP with bearish momentum",
            "Gap down indicates weakness",
            "Red candle confirms selling pressure",
        ],
    ),
)

NO_INTRADAY_SIGNAL = Rule(
    "default",
    lambda f: True,
    "No Clear Intraday Signal", NEUTRAL,
    lambda f: [
        "No clear intraday signal detected",
        "Insufficient momentum or volume confirmation",
    ],
)


def evaluate_intraday(ctx: IndicatorContext) -> Verdict:
    """Classify *ctx* for intraday trading.

    Returns an ``Insufficient Data`` verdict (neutral) when price, VWAP or
    RSI is unavailable instead of raising.
    """
    facts = build_intraday_facts(ctx)
    if facts is None:
        return Verdict(
            "Insufficient Data", NEUTRAL,
            ("Price, VWAP or RSI unavailable for intraday evaluation",),
        )
    return run_cascade(INTRADAY_RULES, facts, NO_INTRADAY_SIGNAL)
