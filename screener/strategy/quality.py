"""Swing quality scorer — ranks positive swing candidates within one scan batch.

The cut-off is adaptive: it is blended from the batch's own score
distribution, so the bar rises on strong days and falls on weak ones.
"""

import math
from typing import Optional

import numpy as np


DEFAULT_QUALITY_THRESHOLD = 40
THRESHOLD_FLOOR = 34
THRESHOLD_CEILING = 56
UPPER_PERCENTILE = 60
MEDIAN_PERCENTILE = 50
UPPER_WEIGHT = 0.6
MEDIAN_WEIGHT = 0.4
MIN_NET_RR = 1.0

_LABEL_POINTS = {
    "High-Quality Swing Setup": 30,
    "Breakout Swing Setup": 26,
    "Support-Based Swing Attempt": 22,
    "Potential Swing – Needs Confirmation": 18,
    "Consolidation Watch": 15,
}

_ENTRY_TYPE_POINTS = {
    "swing_vwap": 15,
    "swing_breakout": 13,
    "swing_support": 12,
    "swing_consolidation": 8,
    "swing_momentum": 6,
    "swing_market": 2,
}

# (net RR at least, points); anything below the last bucket is penalised
_RR_BUCKETS = ((2.0, 22), (1.7, 18), (1.5, 14), (1.3, 10), (1.1, 6), (1.0, 3))
_RR_PENALTY = -20


def _finite(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def candidate_net_rr(candidate: dict) -> Optional[float]:
    """Net RR of a scan result, falling back to the plain RR field."""
    rr = _finite(candidate.get("risk_reward_after_costs"))
    if rr is None:
        rr = _finite(candidate.get("risk_reward"))
    return rr


def _volume_spike(candidate: dict) -> bool:
    return bool((candidate.get("volume") or {}).get("volume_spike"))


def compute_swing_quality_score(candidate: dict) -> int:
    """Integer quality score of one swing scan result."""
    rr = candidate_net_rr(candidate) or 0.0
    rsi = _finite(candidate.get("rsi"))
    gap_now = _finite(candidate.get("gap_now_pct"))
    volatility = _finite(candidate.get("volatility_pct"))
    price = _finite(candidate.get("current_price"))
    structure = _finite(candidate.get("swing_vwap"))
    if structure is None:
        structure = _finite(candidate.get("vwap"))
    label = (candidate.get("swing_view") or {}).get("label", "")

    score = 0
    score += _LABEL_POINTS.get(label, 0)
    score += _ENTRY_TYPE_POINTS.get(str(candidate.get("entry_type") or ""), 0)

    for floor, points in _RR_BUCKETS:
        if rr >= floor:
            score += points
            break
    else:
        score += _RR_PENALTY

    score += 8 if _volume_spike(candidate) else 3
    if price is not None and structure is not None and price >= structure:
        score += 6

    if rsi is not None:
        if 45 <= rsi <= 62:
            score += 8
        elif 40 <= rsi <= 66:
            score += 4
        elif rsi < 35 or rsi > 70:
            score -= 5

    if gap_now is not None:
        if gap_now < -2.0:
            score -= 18
        elif gap_now > 7.0:
            score -= 5
        elif -0.5 <= gap_now <= 5.5:
            score += 4

    if volatility is not None:
        if volatility > 6.2:
            score -= 6
        elif 2.0 <= volatility <= 4.8:
            score += 3

    return round(score)


def derive_adaptive_threshold(scores: list[float]) -> int:
    """Blend the batch's 60th percentile and median into a cut-off in [34, 56].

    Percentiles use the lower-index convention (element
    ``floor((n - 1) * q)`` of the sorted batch).  An empty batch yields 40.
    """
    values = [s for s in (_finite(v) for v in scores) if s is not None]
    if not values:
        return DEFAULT_QUALITY_THRESHOLD

    upper = float(np.percentile(values, UPPER_PERCENTILE, method="lower"))
    median = float(np.percentile(values, MEDIAN_PERCENTILE, method="lower"))
    raw = math.floor(upper * UPPER_WEIGHT + median * MEDIAN_WEIGHT + 0.5)
    return min(max(raw, THRESHOLD_FLOOR), THRESHOLD_CEILING)


def _passes_hard_filters(candidate: dict) -> bool:
    rr = candidate_net_rr(candidate)
    if rr is None or rr < MIN_NET_RR:
        return False
    if candidate.get("entry_type") == "swing_market":
        rsi = _finite(candidate.get("rsi"))
        gap_now = _finite(candidate.get("gap_now_pct"))
        if not _volume_spike(candidate):
            return False
        if rsi is not None and (rsi < 38 or rsi > 64):
            return False
        if gap_now is not None and gap_now < -1.8:
            return False
    return True


def build_quality_swing_list(results: list[dict]) -> dict:
    """Score, filter and rank swing scan results.

    Returns ``{"quality_threshold": int, "stocks": [...]}`` where each kept
    stock carries a ``quality_score`` key.
    """
    base = []
    for stock in results:
        if stock.get("error") or (stock.get("swing_view") or {}).get("sentiment") != "positive":
            continue
        scored = {**stock, "quality_score": compute_swing_quality_score(stock)}
        if _passes_hard_filters(scored):
            base.append(scored)

    threshold = derive_adaptive_threshold([s["quality_score"] for s in base])
    kept = [s for s in base if s["quality_score"] >= threshold]
    kept.sort(
        key=lambda s: (s["quality_score"], candidate_net_rr(s) or 0.0),
        reverse=True,
    )
    return {"quality_threshold": threshold, "stocks": kept}
