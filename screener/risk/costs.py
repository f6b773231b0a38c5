"""Round-trip cost model — price-based basis points, pure math.

The defaults are configuration values (see ``Config.intraday_cost_bps`` and
``Config.swing_cost_bps``), not derived constants.
"""

from dataclasses import dataclass


DEFAULT_INTRADAY_COST_BPS = 18.0
DEFAULT_SWING_COST_BPS = 30.0


@dataclass(frozen=True)
class RiskReward:
    """Gross and cost-adjusted risk-reward for one planned trade."""

    gross: float
    net: float
    cost_per_share: float
    cost_pct: float


def round_trip_cost(entry_price: float, cost_bps: float) -> float:
    """Estimated brokerage + taxes + slippage per share for a full round trip."""
    return entry_price * cost_bps / 10_000


def risk_reward(
    entry_price: float,
    stop_loss: float,
    target: float,
    cost_bps: float,
) -> RiskReward:
    """Gross and net RR of a long trade from *entry_price* to *target*.

    Net RR takes the round-trip cost off the reward leg and adds it to the
    risk leg.  It is never reported above the gross figure.  A trade with
    no risk (stop at or above entry) yields zero for both.
    """
    cost = round_trip_cost(entry_price, cost_bps)
    cost_pct = cost_bps / 100
    risk = entry_price - stop_loss
    reward = target - entry_price
    if risk <= 0:
        return RiskReward(gross=0.0, net=0.0, cost_per_share=cost, cost_pct=cost_pct)

    gross = reward / risk
    net = min((reward - cost) / (risk + cost), gross)
    return RiskReward(gross=gross, net=net, cost_per_share=cost, cost_pct=cost_pct)


def format_rr(value: float) -> str:
    """Risk-reward as the fixed two-decimal string used in payloads."""
    return f"{value:.2f}"
