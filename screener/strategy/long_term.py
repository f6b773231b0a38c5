"""Long-term evaluator — fundamentals score crossed with an RSI timing band."""

from dataclasses import dataclass
from typing import Optional

from screener.strategy.models import (
    NEGATIVE,
    NEUTRAL,
    POSITIVE,
    Fundamentals,
    Verdict,
)
from screener.strategy.rules import Rule, run_cascade


MAX_FUNDAMENTAL_SCORE = 8


def evaluate_fundamentals(
    fundamentals: Fundamentals, market_cap: float,
) -> tuple[int, list[str]]:
    """Score business quality from growth, leverage, returns, position and size.

    Returns ``(score, reasons)``; the score is capped at 8 and may be
    negative.  ``None`` fields contribute nothing.
    """
    score = 0
    reasons: list[str] = []
    f = fundamentals

    if f.revenue_growth is not None and f.profit_growth is not None:
        if f.revenue_growth > 15 and f.profit_growth > 20:
            score += 3
            reasons.append("Exceptional earnings growth with strong profitability")
        elif f.revenue_growth > 10 and f.profit_growth > 10:
            score += 2
            reasons.append("Consistent double-digit earnings growth")
        elif f.revenue_growth > 5 and f.profit_growth > 5:
            score += 1
            reasons.append("Moderate earnings growth trajectory")
        elif f.revenue_growth < 0 or f.profit_growth < 0:
            score -= 1
            reasons.append("Declining earnings trend concerns")

    if f.debt_to_equity is not None:
        if f.debt_to_equity < 0.3:
            score += 2
            reasons.append("Conservative debt structure with strong balance sheet")
        elif f.debt_to_equity < 0.6:
            score += 1
            reasons.append("Manageable debt levels")
        elif f.debt_to_equity > 1.5:
            score -= 2
            reasons.append("High leverage raises financial risk concerns")

    if f.roe is not None:
        if f.roe > 25:
            score += 2
            reasons.append("Exceptional return on equity generation")
        elif f.roe > 18:
            score += 1
            reasons.append("Strong shareholder returns")
        elif f.roe < 8:
            score -= 1
            reasons.append("Below-average return on equity")

    if f.market_position == "leader":
        score += 3
        reasons.append("Dominant market leader with competitive moat")
    elif f.market_position == "challenger":
        score += 2
        reasons.append("Strong market position with growth potential")
    elif f.market_position == "emerging":
        score += 1
        reasons.append("Emerging player with market opportunity")
        if market_cap > 1e11:
            score -= 1
            reasons.append("Scale present but competitive advantage still unproven")

    if f.analyst_sentiment == "positive":
        score += 1
        reasons.append("Positive analyst consensus and brokerage coverage")
    elif f.analyst_sentiment == "negative":
        score -= 1
        reasons.append("Cautious analyst outlook presents headwinds")

    if market_cap > 1e12:
        score += 1
        reasons.append("Large-cap stability with institutional backing")
    elif market_cap < 5e10:
        score -= 1
        reasons.append("Small-cap volatility and liquidity risks")

    return min(score, MAX_FUNDAMENTAL_SCORE), reasons


@dataclass(frozen=True)
class LongTermFacts:
    score: int
    rsi: float
    reasons: tuple[str, ...]

    @property
    def good_timing(self) -> bool:
        return 38 <= self.rsi <= 45

    @property
    def neutral_timing(self) -> bool:
        return 45 < self.rsi <= 60


def _fundamental_reasons(f: LongTermFacts) -> list[str]:
    return list(f.reasons)


LONG_TERM_RULES: tuple[Rule, ...] = (
    Rule(
        "high_conviction",
        lambda f: f.score >= 5 and f.good_timing,
        "High-Conviction Long-Term Accumulation", POSITIVE, _fundamental_reasons,
    ),
    Rule(
        "accumulate_on_dips",
        lambda f: f.score >= 4 and f.neutral_timing,
        "Quality Business – Accumulate on Dips", NEUTRAL, _fundamental_reasons,
    ),
    Rule(
        "capitulation_zone",
        lambda f: f.rsi < 30 and f.score >= 4,
        "High-Quality Business – Capitulation Zone", NEUTRAL, _fundamental_reasons,
    ),
    Rule(
        "timing_risky",
        lambda f: f.rsi < 38 and f.score >= 3,
        "Fundamentals Good, Timing Risky", NEUTRAL, _fundamental_reasons,
    ),
    Rule(
        "overheated",
        lambda f: f.rsi > 65 and f.score >= 4,
        "Strong Business, Overheated Zone", NEUTRAL, _fundamental_reasons,
    ),
)

WEAK_LONG_TERM = Rule(
    "default", lambda f: True,
    "Weak Long-Term Setup", NEGATIVE, _fundamental_reasons,
)


def evaluate_long_term(
    rsi: Optional[float],
    market_cap: Optional[float],
    fundamentals: Optional[Fundamentals],
) -> Verdict:
    """Classify a symbol as a long-term accumulation candidate."""
    if not market_cap or fundamentals is None or rsi is None:
        return Verdict(
            "Insufficient Data", NEUTRAL,
            ("Market cap, fundamentals or RSI unavailable",),
        )

    score, reasons = evaluate_fundamentals(fundamentals, market_cap)
    facts = LongTermFacts(score=score, rsi=rsi, reasons=tuple(reasons))
    return run_cascade(LONG_TERM_RULES, facts, WEAK_LONG_TERM)
