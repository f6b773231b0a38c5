"""Strategy data models — typed representations for evaluator inputs and outputs."""

import math
from dataclasses import dataclass, field
from typing import Optional


POSITIVE = "positive"
NEUTRAL = "neutral"
NEGATIVE = "negative"


@dataclass(frozen=True)
class IndicatorContext:
    """Everything an evaluator or entry calculator may look at for one symbol."""

    price: Optional[float]
    rsi: Optional[float]
    vwap: Optional[float] = None
    swing_vwap: Optional[float] = None
    support: Optional[float] = None
    resistance: Optional[float] = None
    volume_spike: bool = False
    volatility_pct: Optional[float] = None
    candle_color: str = "neutral"  # "green", "red" or "neutral"
    gap_open_pct: Optional[float] = None
    gap_now_pct: Optional[float] = None
    market_cap: Optional[float] = None

    @property
    def effective_gap(self) -> float:
        """Live gap when known (zero included), else the opening gap, else 0."""
        if self.gap_now_pct is not None:
            return self.gap_now_pct
        if self.gap_open_pct is not None:
            return self.gap_open_pct
        return 0.0

    @property
    def has_price(self) -> bool:
        return (
            self.price is not None
            and math.isfinite(self.price)
            and self.price > 0
        )


@dataclass(frozen=True)
class Verdict:
    """Classification of a symbol by one evaluator."""

    label: str
    sentiment: str  # "positive", "neutral" or "negative"
    reasons: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "sentiment": self.sentiment,
            "reasons": list(self.reasons),
        }


@dataclass(frozen=True)
class Fundamentals:
    """Company fundamentals consumed by the long-term evaluator.

    Growth and return figures are percentages.  ``market_position`` is one
    of ``"leader"``, ``"challenger"`` or ``"emerging"``.
    """

    revenue_growth: Optional[float] = None
    profit_growth: Optional[float] = None
    debt_to_equity: Optional[float] = None
    roe: Optional[float] = None
    market_position: Optional[str] = None
    analyst_sentiment: Optional[str] = None  # "positive" / "negative"

    @classmethod
    def from_dict(cls, data: dict) -> "Fundamentals":
        return cls(
            revenue_growth=data.get("revenue_growth"),
            profit_growth=data.get("profit_growth"),
            debt_to_equity=data.get("debt_to_equity"),
            roe=data.get("roe"),
            market_position=data.get("market_position"),
            analyst_sentiment=data.get("analyst_sentiment"),
        )
