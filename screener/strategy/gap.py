"""Gap decision — opening-gap classification used by the multi-horizon scan."""

from dataclasses import dataclass
from typing import Optional

from screener.strategy.indicators import categorize_rsi
from screener.strategy.models import NEGATIVE, NEUTRAL, POSITIVE, Verdict
from screener.strategy.rules import Rule, run_cascade


GAP_WEAK = 0.8
GAP_STRONG = 2.0


@dataclass(frozen=True)
class GapFacts:
    gap: float
    rsi: Optional[float]
    confirmation: bool
    candle_color: str

    @property
    def rsi_zone(self) -> str:
        return categorize_rsi(self.rsi)

    @property
    def bullish_bias(self) -> bool:
        return self.rsi is not None and self.rsi > 50

    @property
    def confirmed_bullish(self) -> bool:
        return self.confirmation and self.bullish_bias and self.candle_color == "green"


GAP_RULES: tuple[Rule, ...] = (
    Rule(
        "gap_too_small",
        lambda f: abs(f.gap) < GAP_WEAK,
        "No Trade", NEUTRAL, lambda f: ["Gap too small - market noise"],
    ),
    Rule(
        "weak_gap_momentum",
        lambda f: GAP_WEAK <= abs(f.gap) < GAP_STRONG and f.confirmed_bullish,
        "Tradeable", POSITIVE,
        lambda f: ["Weak gap with strong momentum continuation"],
    ),
    Rule(
        "gap_up_overbought",
        lambda f: f.gap >= GAP_STRONG and f.rsi_zone == "overbought",
        "Cautious", NEUTRAL,
        lambda f: [f"Strong gap up but RSI high ({f.rsi})"],
    ),
    Rule(
        "gap_up_confirmed",
        lambda f: f.gap >= GAP_STRONG and f.confirmed_bullish,
        "Tradeable", POSITIVE,
        lambda f: ["Strong gap up with volume, VWAP & bullish structure"],
    ),
    Rule(
        "gap_up_unconfirmed",
        lambda f: f.gap >= GAP_STRONG,
        "Cautious", NEUTRAL, lambda f: ["Gap up but confirmation weak"],
    ),
    Rule(
        "gap_down_reversal",
        lambda f: (
            f.gap <= -GAP_STRONG
            and f.rsi_zone == "oversold"
            and f.candle_color == "green"
        ),
        "Cautious", NEUTRAL,
        lambda f: ["Gap down with oversold RSI and reversal attempt"],
    ),
    Rule(
        "gap_down",
        lambda f: f.gap <= -GAP_STRONG,
        "Avoid", NEGATIVE, lambda f: ["Strong gap down with bearish structure"],
    ),
)

UNCLEAR_GAP = Rule(
    "default", lambda f: True, "No Trade", NEUTRAL, lambda f: ["Unclear structure"],
)


def evaluate_gap(
    gap_pct: Optional[float],
    rsi: Optional[float],
    confirmation: bool,
    candle_color: str,
    gap_threshold: float = GAP_WEAK,
) -> Verdict:
    """Classify the opening gap.

    *confirmation* is the caller's "volume spike AND breakout AND above
    VWAP" read.  Gaps smaller than *gap_threshold* short-circuit to
    ``No Gap``.
    """
    if gap_pct is None or abs(gap_pct) < gap_threshold:
        return Verdict("No Gap", NEUTRAL, ("Gap below threshold",))
    facts = GapFacts(gap=gap_pct, rsi=rsi, confirmation=confirmation, candle_color=candle_color)
    return run_cascade(GAP_RULES, facts, UNCLEAR_GAP)
