"""Backtest statistics — pure aggregation of one run's trade outcomes."""

from typing import Iterable

from screener.backtest.simulator import TradeOutcome


SPLIT_ACROSS_PICKS = "split_across_picks"
PER_PICK = "per_pick"

MIN_DECISIVE_TRADES = 3
WORKING_ACCURACY_PCT = 55.0
MIXED_ACCURACY_PCT = 45.0


def _pct(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def recommendation_verdict(wins: int, losses: int, net_pnl: float) -> str:
    """Classify a run's hit rate.

    Fewer than three decisive (won or lost) trades is ``insufficient_data``.
    """
    decisive = wins + losses
    if decisive < MIN_DECISIVE_TRADES:
        return "insufficient_data"
    accuracy = _pct(wins, decisive)
    if accuracy >= WORKING_ACCURACY_PCT and net_pnl > 0:
        return "working"
    if accuracy >= MIXED_ACCURACY_PCT:
        return "mixed_refine"
    return "needs_refinement"


def _setup_performance(trades: Iterable[TradeOutcome]) -> list[dict]:
    slots: dict[str, dict] = {}
    for t in trades:
        entry_type = t.entry_type or "unknown"
        slot = slots.setdefault(
            entry_type,
            {"entry_type": entry_type, "total": 0, "wins": 0, "losses": 0, "no_trade": 0, "net_pnl": 0.0},
        )
        slot["total"] += 1
        if t.outcome == "win":
            slot["wins"] += 1
        elif t.outcome == "loss":
            slot["losses"] += 1
        else:
            slot["no_trade"] += 1
        slot["net_pnl"] += t.net_pnl or 0.0

    out = []
    for slot in slots.values():
        out.append({
            **slot,
            "win_rate": round(_pct(slot["wins"], slot["wins"] + slot["losses"]), 2),
            "net_pnl": round(slot["net_pnl"], 2),
        })
    out.sort(key=lambda s: s["total"], reverse=True)
    return out


def _loss_reasons(trades: Iterable[TradeOutcome]) -> list[dict]:
    counts: dict[str, int] = {}
    for t in trades:
        if t.outcome == "loss":
            reason = t.reason or "unknown_loss_reason"
            counts[reason] = counts.get(reason, 0) + 1
    return [
        {"reason": reason, "count": count}
        for reason, count in sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    ]


def build_summary(
    trades: list[TradeOutcome],
    capital: float,
    allocation_mode: str,
    cost_bps: float,
) -> dict:
    """Aggregate a run's outcomes into the stored ``summary`` document.

    Configured exposure is *capital* when it is split across picks, and
    *capital* per pick otherwise.  P&L and deployed capital only count
    closed trades.
    """
    wins = sum(1 for t in trades if t.outcome == "win")
    losses = sum(1 for t in trades if t.outcome == "loss")
    no_trade = sum(1 for t in trades if t.outcome == "no_trade")
    closed = [t for t in trades if t.status == "closed"]

    gross_pnl = sum(t.gross_pnl for t in closed)
    net_pnl = sum(t.net_pnl for t in closed)
    deployed = sum(t.invested_amount for t in closed)
    configured = capital if allocation_mode == SPLIT_ACROSS_PICKS else capital * len(trades)
    decisive = wins + losses
    accuracy = _pct(wins, decisive)

    return {
        "total_signals": len(trades),
        "trades_closed": len(closed),
        "wins": wins,
        "losses": losses,
        "no_trade": no_trade,
        "target1_hits": sum(1 for t in trades if t.exit_type == "target1_hit"),
        "target2_hits": sum(1 for t in trades if t.exit_type == "target2_hit"),
        "stop_loss_hits": sum(1 for t in trades if t.exit_type == "stop_loss"),
        "decisive_trades": decisive,
        "win_rate": round(accuracy, 2),
        "recommendation_accuracy_pct": round(accuracy, 2),
        "recommendation_verdict": recommendation_verdict(wins, losses, net_pnl),
        "gross_pnl": round(gross_pnl, 2),
        "net_pnl": round(net_pnl, 2),
        "deployed_capital": round(deployed, 2),
        "configured_exposure": round(configured, 2),
        "roi_on_configured_exposure_pct": round(_pct(net_pnl, configured), 2),
        "roi_on_deployed_capital_pct": round(_pct(net_pnl, deployed), 2),
        "setup_performance": _setup_performance(trades),
        "loss_reasons": _loss_reasons(trades),
        "cost_model": {"round_trip_cost_bps": cost_bps},
    }
