"""Tests for screener.strategy.quality — swing quality score and adaptive threshold."""

from screener.strategy.quality import (
    DEFAULT_QUALITY_THRESHOLD,
    build_quality_swing_list,
    candidate_net_rr,
    compute_swing_quality_score,
    derive_adaptive_threshold,
)


def _candidate(**overrides) -> dict:
    values = {
        "symbol": "TCS",
        "swing_view": {"label": "High-Quality Swing Setup", "sentiment": "positive"},
        "entry_type": "swing_vwap",
        "risk_reward_after_costs": "1.78",
        "rsi": 58.0,
        "gap_now_pct": 0.5,
        "volatility_pct": 3.0,
        "current_price": 500.0,
        "swing_vwap": 490.0,
        "volume": {"volume_spike": False},
    }
    values.update(overrides)
    return values


class TestQualityScore:
    def test_reference_candidate(self):
        # label 30 + type 15 + rr 18 + volume 3 + structure 6 + rsi 8 + gap 4 + vol 3
        assert compute_swing_quality_score(_candidate()) == 87

    def test_weak_rr_is_penalised(self):
        low = compute_swing_quality_score(_candidate(risk_reward_after_costs="0.80"))
        assert low == 87 - 18 - 20

    def test_deep_gap_down_is_penalised(self):
        assert compute_swing_quality_score(_candidate(gap_now_pct=-3.0)) == 87 - 4 - 18

    def test_volume_spike_bonus(self):
        spiked = _candidate(volume={"volume_spike": True})
        assert compute_swing_quality_score(spiked) == 92

    def test_net_rr_falls_back_to_plain_rr(self):
        assert candidate_net_rr({"risk_reward": "1.50"}) == 1.5
        assert candidate_net_rr({"risk_reward_after_costs": "n/a"}) is None


class TestAdaptiveThreshold:
    def test_empty_batch(self):
        assert derive_adaptive_threshold([]) == DEFAULT_QUALITY_THRESHOLD

    def test_blend_of_percentiles(self):
        assert derive_adaptive_threshold([30, 40, 50, 60, 70]) == 50

    def test_clamped_high(self):
        assert derive_adaptive_threshold([100] * 5) == 56

    def test_clamped_low(self):
        assert derive_adaptive_threshold([10, 20]) == 34


class TestQualitySwingList:
    def test_filters_and_ranks(self):
        results = [
            _candidate(symbol="A"),
            _candidate(symbol="B", volume={"volume_spike": True}),
            _candidate(symbol="C", risk_reward_after_costs="0.80"),
            _candidate(symbol="D", swing_view={"label": "No Swing Opportunity", "sentiment": "negative"}),
            {"symbol": "E", "error": "boom"},
        ]
        ranked = build_quality_swing_list(results)
        assert [s["symbol"] for s in ranked["stocks"]] == ["B", "A"]
        assert ranked["stocks"][0]["quality_score"] == 92
        assert 34 <= ranked["quality_threshold"] <= 56

    def test_market_entry_needs_volume_spike(self):
        results = [_candidate(entry_type="swing_market")]
        assert build_quality_swing_list(results)["stocks"] == []
