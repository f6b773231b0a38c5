"""Entry plan construction — shared level math for the intraday and swing calculators.

Both calculators pick a strategy (entry type + raw entry level) and hand it
to :func:`build_entry_plan`, which:

    1. Pins the entry at or below market, nudged under market for
       non-breakout strategies.
    2. Places the stop at the tighter of a structure level (VWAP/support,
       when close enough) and an ATR-scaled band, then clamps the stop
       distance into ``[min_stop_pct, max_stop_pct]``.
    3. Projects target1 from risk × an entry-type RR multiple and caps it
       under resistance (or a bounded extension past it for breakouts).
    4. Projects target2 at least one step past target1, capped by a
       market-cap/volatility-scaled extension.
    5. Prices the round-trip cost into the RR and relabels weak plans.
"""

from dataclasses import dataclass, field
from typing import Optional

from screener.risk.costs import format_rr, risk_reward
from screener.strategy.indicators import clamp_volatility
from screener.strategy.models import IndicatorContext


RR_WEAK = "rr_weak"
SCALP_ONLY = "scalp_only"
REJECTED_ENTRY_TYPES = frozenset({RR_WEAK, SCALP_ONLY})
MIN_NET_RR = 1.0
RR_WEAK_SUFFIX = " (RR weak – wait for better location)"

Band = tuple[float, float, float]  # (multiplier on volatility %, floor, ceiling)


@dataclass(frozen=True)
class EntryPlan:
    """Planned long entry with stop, two targets and cost-aware RR."""

    entry_price: float
    stop_loss: float
    target1: float
    target2: float
    entry_reason: str
    entry_type: str
    setup_type: str
    risk_reward: str
    risk_reward_after_costs: str
    risk_reward_gross: str
    estimated_round_trip_cost_per_share: float
    estimated_round_trip_cost_pct: float
    volatility_pct: float

    @property
    def rejected(self) -> bool:
        return self.entry_type in REJECTED_ENTRY_TYPES

    @property
    def net_rr(self) -> float:
        return float(self.risk_reward_after_costs)

    def to_dict(self) -> dict:
        return {
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "target1": self.target1,
            "target2": self.target2,
            "entry_reason": self.entry_reason,
            "entry_type": self.entry_type,
            "setup_type": self.setup_type,
            "risk_reward": self.risk_reward,
            "risk_reward_after_costs": self.risk_reward_after_costs,
            "risk_reward_gross": self.risk_reward_gross,
            "estimated_round_trip_cost_per_share": self.estimated_round_trip_cost_per_share,
            "estimated_round_trip_cost_pct": self.estimated_round_trip_cost_pct,
            "volatility_pct": self.volatility_pct,
        }


@dataclass(frozen=True)
class StrategyChoice:
    """Output of a calculator's strategy selection step."""

    entry_type: str
    entry: float
    reason: str


@dataclass(frozen=True)
class EntryProfile:
    """Horizon-specific constants for :func:`build_entry_plan`.

    All percentages are in percent units (``0.15`` means 0.15%).
    """

    horizon: str  # "intraday" or "swing"; selects the volatility clamp
    structure_attr: str  # IndicatorContext attribute holding the VWAP anchor
    breakout_types: frozenset
    pullback_bias: Band
    structure_buffer_pct: float
    structure_proximity: Band
    min_stop: tuple[float, float]  # (floor, multiplier)
    max_stop: tuple[float, float, float]  # (cap, floor, multiplier)
    stop_factor: dict
    rr_multiple: dict
    rsi_adjustments: tuple[tuple[float, float], ...]  # (rsi above, factor), first match
    gap_adjustment: tuple[float, float]  # (|gap| above, factor)
    volume_boost: float
    target1_max_ext: Band
    resistance_buffer_pct: float
    breakout_ext: Band
    target2_step: tuple[float, float]  # (risk multiple, % of entry)
    target2_extra_rr: float
    target2_max_ext: Band
    cap_factors: tuple[tuple[float, float], ...] = field(
        default=((2e11, 1.0), (5e10, 1.15)),
    )
    small_cap_factor: float = 1.3


# ── Rounding helpers ─────────────────────────────────────────────────────


def round2(value: float) -> float:
    return round(value, 2)


def round_not_above(value: float, ceiling: float) -> float:
    """Round to paise without crossing *ceiling*."""
    rounded = round(value, 2)
    if rounded > ceiling:
        rounded = round(rounded - 0.01, 2)
    return rounded


def scaled(volatility: float, band: Band) -> float:
    multiplier, floor, ceiling = band
    return min(max(volatility * multiplier, floor), ceiling)


def market_cap_factor(profile: EntryProfile, market_cap: Optional[float]) -> float:
    """Smaller companies are allowed proportionally longer runners."""
    if market_cap:
        for threshold, factor in profile.cap_factors:
            if market_cap >= threshold:
                return factor
    return profile.small_cap_factor


def nearest_level_below(price: float, *levels: Optional[float]) -> float:
    """Highest of *levels* strictly below *price*, or 0."""
    below = [lvl for lvl in levels if lvl and lvl < price]
    return max(below) if below else 0.0


# ── Level construction ───────────────────────────────────────────────────


def _stop_bounds(profile: EntryProfile, volatility: float) -> tuple[float, float]:
    floor, k = profile.min_stop
    cap, max_floor, max_k = profile.max_stop
    min_stop = max(floor, volatility * k)
    max_stop = min(cap, max(max_floor, volatility * max_k))
    return min_stop, max(min_stop, max_stop)


def _structure_stop(
    ctx: IndicatorContext,
    profile: EntryProfile,
    entry: float,
    proximity_pct: float,
) -> Optional[float]:
    anchors = (getattr(ctx, profile.structure_attr), ctx.support)
    candidates = [
        level for level in anchors
        if level and level < entry and (entry - level) / entry * 100 <= proximity_pct
    ]
    if not candidates:
        return None
    return max(candidates) * (1 - profile.structure_buffer_pct / 100)


def _rr_multiple(profile: EntryProfile, ctx: IndicatorContext, entry_type: str) -> float:
    multiple = profile.rr_multiple[entry_type]
    for rsi_above, factor in profile.rsi_adjustments:
        if ctx.rsi is not None and ctx.rsi > rsi_above:
            multiple *= factor
            break
    gap_above, gap_factor = profile.gap_adjustment
    if abs(ctx.effective_gap) > gap_above:
        multiple *= gap_factor
    if ctx.volume_spike:
        multiple *= profile.volume_boost
    return multiple


def build_entry_plan(
    ctx: IndicatorContext,
    profile: EntryProfile,
    choice: StrategyChoice,
    cost_bps: float,
) -> EntryPlan:
    """Turn a strategy choice into a fully priced :class:`EntryPlan`."""
    price = ctx.price
    volatility = clamp_volatility(ctx.volatility_pct, profile.horizon)
    breakout = choice.entry_type in profile.breakout_types

    # Entry
    raw_entry = min(choice.entry, price)
    if not breakout:
        raw_entry = min(raw_entry, price * (1 - scaled(volatility, profile.pullback_bias) / 100))
    entry = round_not_above(raw_entry, price)

    # Stop
    min_stop, max_stop = _stop_bounds(profile, volatility)
    band_pct = min(max(volatility * profile.stop_factor[choice.entry_type], min_stop), max_stop)
    stop = entry * (1 - band_pct / 100)
    structure = _structure_stop(
        ctx, profile, entry, scaled(volatility, profile.structure_proximity),
    )
    if structure is not None:
        stop = max(stop, structure)
    distance_pct = min(max((entry - stop) / entry * 100, min_stop), max_stop)
    stop = round2(entry * (1 - distance_pct / 100))
    risk = entry - stop

    # Target 1
    multiple = _rr_multiple(profile, ctx, choice.entry_type)
    target1_cap = entry * (1 + scaled(volatility, profile.target1_max_ext) / 100)
    resistance = ctx.resistance
    if breakout and resistance:
        target1_cap = min(
            target1_cap,
            max(resistance, entry) * (1 + scaled(volatility, profile.breakout_ext) / 100),
        )
    elif resistance and resistance > entry:
        target1_cap = min(target1_cap, resistance * (1 - profile.resistance_buffer_pct / 100))
    target1 = round_not_above(min(entry + risk * multiple, target1_cap), target1_cap)

    # Target 2
    step_rr, step_pct = profile.target2_step
    step = max(risk * step_rr, entry * step_pct / 100)
    cap_factor = market_cap_factor(profile, ctx.market_cap)
    target2_cap = entry * (1 + scaled(volatility * cap_factor, profile.target2_max_ext) / 100)
    target2 = min(entry + risk * (multiple + profile.target2_extra_rr), target2_cap)
    target2 = round2(max(target2, target1 + step))

    return finalize_plan(
        entry=entry,
        stop=stop,
        target1=target1,
        target2=target2,
        price=price,
        entry_type=choice.entry_type,
        reason=choice.reason,
        cost_bps=cost_bps,
        volatility=volatility,
    )


def finalize_plan(
    *,
    entry: float,
    stop: float,
    target1: float,
    target2: float,
    price: float,
    entry_type: str,
    reason: str,
    cost_bps: float,
    volatility: float,
    setup_type: Optional[str] = None,
) -> EntryPlan:
    """Price the costs and relabel plans that break ordering or net RR < 1."""
    rr = risk_reward(entry, stop, target1, cost_bps)
    ordered = 0 < stop < entry <= price < target1 < target2
    final_type = entry_type
    final_reason = reason
    if entry_type not in REJECTED_ENTRY_TYPES and (not ordered or rr.net < MIN_NET_RR):
        final_type = RR_WEAK
        final_reason = reason + RR_WEAK_SUFFIX

    return EntryPlan(
        entry_price=entry,
        stop_loss=stop,
        target1=target1,
        target2=target2,
        entry_reason=final_reason,
        entry_type=final_type,
        setup_type=setup_type or entry_type,
        risk_reward=format_rr(rr.net),
        risk_reward_after_costs=format_rr(rr.net),
        risk_reward_gross=format_rr(rr.gross),
        estimated_round_trip_cost_per_share=round2(rr.cost_per_share),
        estimated_round_trip_cost_pct=round2(rr.cost_pct),
        volatility_pct=round2(volatility),
    )
