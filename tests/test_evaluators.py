"""Tests for the rule-cascade evaluators — intraday, swing, gap and long-term."""

from datetime import date

import pytest

from screener.market.models import Candle
from screener.strategy import indicators as ind
from screener.strategy.gap import evaluate_gap
from screener.strategy.intraday import STRETCH_ZONE_LABEL, evaluate_intraday
from screener.strategy.long_term import evaluate_fundamentals, evaluate_long_term
from screener.strategy.models import (
    NEGATIVE,
    NEUTRAL,
    POSITIVE,
    Fundamentals,
    IndicatorContext,
)
from screener.strategy.rules import Rule, match_rule, run_cascade
from screener.strategy.swing import evaluate_swing


def _intraday_ctx(**overrides) -> IndicatorContext:
    values = dict(
        price=100.0,
        rsi=55.0,
        vwap=98.0,
        support=96.0,
        resistance=103.0,
        volume_spike=True,
        candle_color="green",
        gap_now_pct=1.0,
        market_cap=2e11,
    )
    values.update(overrides)
    return IndicatorContext(**values)


def _swing_ctx(**overrides) -> IndicatorContext:
    values = dict(
        price=500.0,
        rsi=58.0,
        swing_vwap=490.0,
        support=470.0,
        resistance=540.0,
        volume_spike=False,
        gap_now_pct=0.5,
        market_cap=5e11,
    )
    values.update(overrides)
    return IndicatorContext(**values)


# ── Rule cascade ─────────────────────────────────────────────────────────


class TestRuleCascade:
    def test_first_match_wins(self):
        rules = (
            Rule("small", lambda n: n < 10, "Small", NEUTRAL),
            Rule("tiny", lambda n: n < 5, "Tiny", NEUTRAL),
        )
        default = Rule("default", lambda n: True, "Big", NEGATIVE)
        assert run_cascade(rules, 3, default).label == "Small"
        assert match_rule(rules, 3, default).name == "small"

    def test_default_when_nothing_matches(self):
        default = Rule("default", lambda n: True, "Big", NEGATIVE, lambda n: [f"n={n}"])
        verdict = run_cascade((), 42, default)
        assert verdict.label == "Big"
        assert verdict.reasons == ("n=42",)


# ── Intraday ─────────────────────────────────────────────────────────────


class TestIntradayEvaluator:
    def test_strong_buy(self):
        verdict = evaluate_intraday(_intraday_ctx())
        assert verdict.label == "Strong Intraday Buy"
        assert verdict.sentiment == POSITIVE
        assert verdict.reasons[0] == "Gap up with momentum"
        assert verdict.reasons[-1] == "Green candle confirms buying pressure"

    def test_low_liquidity_beats_everything(self):
        verdict = evaluate_intraday(_intraday_ctx(market_cap=5e9))
        assert verdict.label == "Low Liquidity - Avoid"
        assert verdict.sentiment == NEGATIVE

    def test_missing_market_cap_is_low_liquidity(self):
        assert evaluate_intraday(_intraday_ctx(market_cap=None)).label == "Low Liquidity - Avoid"

    def test_chop(self):
        verdict = evaluate_intraday(
            _intraday_ctx(gap_now_pct=0.1, volume_spike=False, vwap=99.9)
        )
        assert verdict.label == "Choppy Market – Avoid"
        assert verdict.sentiment == NEUTRAL

    def test_flat_series_is_chop(self):
        """A constant price and volume series carries no edge."""
        candles = [
            Candle(time=f"2025-01-{day:02d}", open=100.0, high=100.0, low=100.0, close=100.0, volume=1000.0)
            for day in range(1, 31)
        ]
        volume = ind.detect_volume_spike(candles)
        support, resistance = ind.support_resistance(candles)
        vwap = ind.calculate_intraday_vwap(candles, today=date(2025, 1, 30))

        assert volume.volume_spike is False
        assert support == resistance == 100.0
        assert vwap == 100.0

        ctx = IndicatorContext(
            price=100.0,
            rsi=ind.compute_rsi([c.close for c in candles]),
            vwap=vwap,
            support=support,
            resistance=resistance,
            volume_spike=volume.volume_spike,
            candle_color=ind.candle_color(candles[-1]),
            gap_now_pct=0.0,
            market_cap=2e11,
        )
        verdict = evaluate_intraday(ctx)
        assert verdict.label == "Choppy Market – Avoid"
        assert verdict.sentiment == NEUTRAL

    def test_strong_buy_gap_lower_bound_is_inclusive(self):
        assert evaluate_intraday(_intraday_ctx(gap_now_pct=0.2)).label == "Strong Intraday Buy"
        assert evaluate_intraday(_intraday_ctx(gap_now_pct=0.19)).label != "Strong Intraday Buy"

    def test_strong_buy_gap_upper_bound_is_exclusive(self):
        assert evaluate_intraday(_intraday_ctx(gap_now_pct=3.49)).label == "Strong Intraday Buy"
        assert evaluate_intraday(_intraday_ctx(gap_now_pct=3.5)).label != "Strong Intraday Buy"

    def test_zero_live_gap_is_not_replaced_by_opening_gap(self):
        verdict = evaluate_intraday(
            _intraday_ctx(gap_now_pct=0.0, gap_open_pct=2.0, volume_spike=False, vwap=99.9)
        )
        assert verdict.label == "Choppy Market – Avoid"

    def test_momentum_continuation(self):
        verdict = evaluate_intraday(_intraday_ctx(rsi=50.0, gap_now_pct=-0.1))
        assert verdict.label == "Momentum Continuation"
        assert "Volume supports the move" in verdict.reasons

    def test_stretch_zone(self):
        verdict = evaluate_intraday(_intraday_ctx(rsi=68.0))
        assert verdict.label == STRETCH_ZONE_LABEL
        assert verdict.sentiment == POSITIVE

    def test_breakout_below_vwap(self):
        verdict = evaluate_intraday(
            _intraday_ctx(price=101.0, vwap=102.0, resistance=100.0)
        )
        assert verdict.label == "Breakout Candidate"

    def test_overbought(self):
        verdict = evaluate_intraday(_intraday_ctx(rsi=75.0, volume_spike=False))
        assert verdict.label == "Overbought - Avoid Fresh Entry"
        assert verdict.sentiment == NEGATIVE

    def test_bearish(self):
        verdict = evaluate_intraday(
            _intraday_ctx(price=95.0, vwap=100.0, rsi=35.0, candle_color="red", gap_now_pct=-1.0)
        )
        assert verdict.label == "Bearish Momentum - Avoid"

    def test_default_no_signal(self):
        verdict = evaluate_intraday(
            _intraday_ctx(price=95.0, vwap=100.0, rsi=35.0, gap_now_pct=-1.0)
        )
        assert verdict.label == "No Clear Intraday Signal"
        assert verdict.sentiment == NEUTRAL

    @pytest.mark.parametrize(
        "overrides",
        [{"vwap": None}, {"rsi": None}, {"price": None}, {"price": 0.0}],
    )
    def test_insufficient_data(self, overrides):
        verdict = evaluate_intraday(_intraday_ctx(**overrides))
        assert verdict.label == "Insufficient Data"
        assert verdict.sentiment == NEUTRAL


# ── Swing ────────────────────────────────────────────────────────────────


class TestSwingEvaluator:
    def test_high_quality(self):
        verdict = evaluate_swing(_swing_ctx())
        assert verdict.label == "High-Quality Swing Setup"
        assert verdict.sentiment == POSITIVE
        assert "Building momentum" in verdict.reasons

    def test_capitulation_gap_is_a_hard_block(self):
        verdict = evaluate_swing(_swing_ctx(gap_now_pct=-4.5))
        assert verdict.label == "Capitulation Gap Risk – Avoid Swing"
        assert verdict.sentiment == NEGATIVE
        assert "-4.50%" in verdict.reasons[0]

    def test_sharp_gap_down_away_from_support(self):
        verdict = evaluate_swing(_swing_ctx(gap_now_pct=-3.0, support=400.0))
        assert verdict.label == "Sharp Gap Down – Avoid Swing"

    def test_late_move(self):
        verdict = evaluate_swing(_swing_ctx(rsi=80.0))
        assert verdict.label == "Late Move – Avoid Fresh Entry"

    def test_default_is_negative(self):
        verdict = evaluate_swing(
            _swing_ctx(price=480.0, rsi=30.0, gap_now_pct=0.0, support=None)
        )
        assert verdict.label == "No Swing Opportunity"
        assert verdict.sentiment == NEGATIVE

    def test_missing_swing_vwap(self):
        verdict = evaluate_swing(_swing_ctx(swing_vwap=None))
        assert verdict.label == "Insufficient Structure Data"
        assert verdict.sentiment == NEUTRAL

    def test_missing_rsi(self):
        assert evaluate_swing(_swing_ctx(rsi=None)).label == "Insufficient Structure Data"


# ── Gap ──────────────────────────────────────────────────────────────────


class TestGapDecision:
    @pytest.mark.parametrize(
        "gap, rsi, confirmation, color, label",
        [
            (0.5, 55, True, "green", "No Gap"),
            (None, 55, True, "green", "No Gap"),
            (1.0, 55, True, "green", "Tradeable"),
            (2.5, 75, True, "green", "Cautious"),
            (2.5, 55, True, "green", "Tradeable"),
            (2.5, 55, False, "green", "Cautious"),
            (-2.5, 25, False, "green", "Cautious"),
            (-2.5, 45, False, "red", "Avoid"),
            (1.0, 45, False, "red", "No Trade"),
        ],
    )
    def test_labels(self, gap, rsi, confirmation, color, label):
        assert evaluate_gap(gap, rsi, confirmation, color).label == label

    def test_gap_down_is_negative(self):
        assert evaluate_gap(-3.0, 50, False, "red").sentiment == NEGATIVE

    def test_custom_threshold(self):
        assert evaluate_gap(1.0, 55, True, "green", gap_threshold=1.5).label == "No Gap"


# ── Long-term ────────────────────────────────────────────────────────────


_STRONG = Fundamentals(
    revenue_growth=20,
    profit_growth=25,
    debt_to_equity=0.2,
    roe=26,
    market_position="leader",
    analyst_sentiment="positive",
)


class TestLongTermEvaluator:
    def test_score_is_capped(self):
        score, reasons = evaluate_fundamentals(_STRONG, 2e12)
        assert score == 8
        assert "Dominant market leader with competitive moat" in reasons

    def test_emerging_large_cap_penalty(self):
        score, reasons = evaluate_fundamentals(Fundamentals(market_position="emerging"), 2e11)
        assert score == 0
        assert "Scale present but competitive advantage still unproven" in reasons

    @pytest.mark.parametrize(
        "rsi, label, sentiment",
        [
            (40, "High-Conviction Long-Term Accumulation", POSITIVE),
            (50, "Quality Business – Accumulate on Dips", NEUTRAL),
            (25, "High-Quality Business – Capitulation Zone", NEUTRAL),
            (35, "Fundamentals Good, Timing Risky", NEUTRAL),
            (70, "Strong Business, Overheated Zone", NEUTRAL),
        ],
    )
    def test_timing_bands(self, rsi, label, sentiment):
        verdict = evaluate_long_term(rsi, 2e12, _STRONG)
        assert verdict.label == label
        assert verdict.sentiment == sentiment

    def test_weak_default(self):
        verdict = evaluate_long_term(50, 6e10, Fundamentals())
        assert verdict.label == "Weak Long-Term Setup"
        assert verdict.sentiment == NEGATIVE

    def test_missing_inputs(self):
        assert evaluate_long_term(50, None, _STRONG).label == "Insufficient Data"
        assert evaluate_long_term(None, 2e12, _STRONG).label == "Insufficient Data"
        assert evaluate_long_term(50, 2e12, None).label == "Insufficient Data"

    def test_fundamentals_from_dict(self):
        f = Fundamentals.from_dict({"roe": 20, "market_position": "challenger"})
        assert f.roe == 20
        assert f.market_position == "challenger"
        assert f.revenue_growth is None
