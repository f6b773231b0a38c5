"""Intraday backtest service — picks a stored signal snapshot and replays it.

Flow of :meth:`BacktestService.run`::

    validate request ─▶ load snapshots for date ─▶ (exactness filter)
        ─▶ select snapshot ─▶ sanitize picks ─▶ simulate each pick
        ─▶ summarise ─▶ persist with dedup
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from screener.backtest.session import (
    SESSION_CLOSE_MINUTE,
    SESSION_OPEN_MINUTE,
    now_ist,
    parse_ist_time,
    sanitize_trade_date,
)
from screener.backtest.simulator import (
    Pick,
    TradeOutcome,
    fetch_best_granularity_candles,
    simulate_pick,
)
from screener.backtest.stats import PER_PICK, SPLIT_ACROSS_PICKS, build_summary
from screener.config import Config
from screener.repos.records import finite_or_none, snapshot_quality_from_picks
from screener.repos.store import SignalStore

logger = logging.getLogger("screener")

_EXACTNESS_MESSAGES = {
    "missing_snapshot": "No snapshot available",
    "snapshot_date_mismatch": "Snapshot date does not match selected trade date",
    "invalid_snapshot_time": "Snapshot time is invalid",
    "snapshot_time_outside_market_session": "Snapshot captured outside market session (09:15-15:30 IST)",
    "snapshot_date_overridden": "Snapshot date was manually overridden",
    "captured_when_market_closed": "Snapshot captured when market was closed",
}

_PICK_FIELDS = (
    "entry_price", "stop_loss", "target1", "target2", "current_price",
    "risk_reward", "risk_reward_after_costs", "risk_reward_gross",
    "estimated_round_trip_cost_pct", "volatility_pct",
)


class BacktestRequestError(ValueError):
    """The request cannot be served as asked (bad input or no usable snapshot)."""


# ── Picks and snapshots ──────────────────────────────────────────────────


def sanitize_picks(picks) -> list[dict]:
    """Keep picks whose levels form a valid long plan.

    A valid pick has a symbol and finite ``0 < stop_loss < entry_price <
    target1 < target2``.  Numeric fields are coerced to floats (RR values
    arrive as formatted strings from the scanner).
    """
    if not isinstance(picks, list):
        return []
    out = []
    for pick in picks:
        if not isinstance(pick, dict):
            continue
        symbol = str(pick.get("symbol") or "").strip()
        clean = {
            "symbol": symbol,
            "resolved_symbol": pick.get("resolved_symbol") or symbol or None,
            "company_name": pick.get("company_name") or symbol or None,
            "entry_type": pick.get("entry_type"),
            "entry_reason": pick.get("entry_reason"),
        }
        for key in _PICK_FIELDS:
            clean[key] = finite_or_none(pick.get(key))

        entry, stop = clean["entry_price"], clean["stop_loss"]
        t1, t2 = clean["target1"], clean["target2"]
        if not symbol or None in (entry, stop, t1, t2):
            continue
        if 0 < stop < entry < t1 < t2:
            out.append(clean)
    return out


def to_pick(clean: dict) -> Pick:
    return Pick(
        symbol=clean["symbol"],
        entry_price=clean["entry_price"],
        stop_loss=clean["stop_loss"],
        target1=clean["target1"],
        target2=clean["target2"],
        resolved_symbol=clean.get("resolved_symbol"),
        company_name=clean.get("company_name"),
        entry_type=clean.get("entry_type"),
        entry_reason=clean.get("entry_reason"),
        risk_reward_after_costs=clean.get("risk_reward_after_costs"),
        risk_reward=clean.get("risk_reward"),
    )


def build_snapshot(
    positive_stocks: list[dict],
    total_scanned: int,
    meta: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Assemble a signal snapshot document from an intraday scan's positives.

    The IST date and time come from ``meta["market_state"]`` when present,
    otherwise from *now*.
    """
    meta = meta or {}
    now = now or datetime.now(timezone.utc)
    ist = now_ist(now)
    market = meta.get("market_state") or {}
    picks = sanitize_picks(positive_stocks)
    return {
        "id": f"intraday-signal-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}",
        "created_at": now.astimezone(timezone.utc).isoformat(),
        "ist_date": market.get("ist_date") or ist.strftime("%Y-%m-%d"),
        "ist_time": market.get("ist_time") or ist.strftime("%H:%M"),
        "total_scanned": int(total_scanned or 0),
        "positive_count": len(positive_stocks or []) or len(picks),
        "quality_score": snapshot_quality_from_picks(picks),
        "picks": picks,
        "meta": meta,
    }


def evaluate_snapshot_exactness(snapshot: Optional[dict], trade_date: str) -> dict:
    """Check whether *snapshot* was genuinely captured live on *trade_date*.

    Returns ``{"exact": bool, "reasons": [...], "snapshot_ist_date",
    "snapshot_ist_time", "market_state_reason"}``.
    """
    if not snapshot:
        return {"exact": False, "reasons": ["missing_snapshot"]}

    reasons = []
    if snapshot.get("ist_date") != trade_date:
        reasons.append("snapshot_date_mismatch")

    minute = parse_ist_time(snapshot.get("ist_time"))
    if minute is None:
        reasons.append("invalid_snapshot_time")
    elif not SESSION_OPEN_MINUTE <= minute <= SESSION_CLOSE_MINUTE:
        reasons.append("snapshot_time_outside_market_session")

    meta = snapshot.get("meta") or {}
    market = meta.get("market_state") or {}
    if meta.get("snapshot_date_override"):
        reasons.append("snapshot_date_overridden")
    if market.get("is_open") is False:
        reasons.append("captured_when_market_closed")

    return {
        "exact": not reasons,
        "reasons": reasons,
        "snapshot_ist_date": snapshot.get("ist_date"),
        "snapshot_ist_time": snapshot.get("ist_time"),
        "market_state_reason": market.get("reason"),
    }


def humanize_exactness_reason(reason: str) -> str:
    return _EXACTNESS_MESSAGES.get(reason, reason)


def normalize_snapshot_mode(mode) -> str:
    return "earliest" if str(mode or "").lower() == "earliest" else "latest"


def normalize_allocation_mode(mode) -> str:
    if str(mode or "").lower() == SPLIT_ACROSS_PICKS:
        return SPLIT_ACROSS_PICKS
    return PER_PICK


def sanitize_capital(value) -> float:
    capital = finite_or_none(value)
    if capital is None or capital <= 0:
        raise BacktestRequestError("Capital must be a positive number")
    return capital


# ── Service ──────────────────────────────────────────────────────────────


class BacktestService:
    """Replays stored intraday snapshots against realised intraday bars.

    Args:
        client: Market-data client exposing ``fetch_candles``.
        store: Snapshot/run persistence.
        config: Application config (cost model, bar intervals).
    """

    def __init__(self, client, store: SignalStore, config: Config) -> None:
        self._client = client
        self._store = store
        self._config = config

    def _select_snapshot(
        self,
        trade_date: str,
        snapshot_mode: str,
        snapshot_id: Optional[str],
        require_exact: bool,
    ) -> dict:
        snapshots = self._store.list_snapshots(date=trade_date, limit=500)
        if not snapshots:
            raise BacktestRequestError(f"No intraday signal snapshots found for {trade_date}")

        source = snapshots
        if require_exact:
            source = [s for s in snapshots if evaluate_snapshot_exactness(s, trade_date)["exact"]]
        if not source:
            details = evaluate_snapshot_exactness(snapshots[0], trade_date)
            issues = "; ".join(humanize_exactness_reason(r) for r in details["reasons"])
            raise BacktestRequestError(
                f"No exact intraday snapshot for {trade_date}. "
                f"Closest snapshot: {details.get('snapshot_ist_date') or 'unknown'} "
                f"{details.get('snapshot_ist_time') or 'unknown'}. Issues: {issues}"
            )

        if snapshot_id:
            match = next((s for s in source if s.get("id") == snapshot_id), None)
            if match is None:
                raise BacktestRequestError(f"Snapshot not found: {snapshot_id}")
            return match
        # Store lists newest first
        return source[-1] if snapshot_mode == "earliest" else source[0]

    async def _run_pick(
        self,
        pick: Pick,
        trade_date: str,
        capital_per_pick: float,
        signal_start_minute: Optional[int],
        cost_bps: float,
    ) -> TradeOutcome:
        try:
            interval, day_candles = await fetch_best_granularity_candles(
                self._client.fetch_candles,
                pick.resolved_symbol or pick.symbol,
                trade_date,
                self._config.backtest_intervals,
            )
            return simulate_pick(
                pick, day_candles, capital_per_pick, signal_start_minute, cost_bps, interval,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Backtest of %s on %s failed: %s", pick.symbol, trade_date, exc)
            return TradeOutcome(
                symbol=pick.symbol,
                resolved_symbol=pick.resolved_symbol or pick.symbol,
                company_name=pick.company_name,
                entry_type=pick.entry_type,
                entry_reason=pick.entry_reason,
                entry_price=pick.entry_price,
                stop_loss=pick.stop_loss,
                target1=pick.target1,
                target2=pick.target2,
                capital_configured=round(capital_per_pick, 2),
                status="error",
                outcome="no_trade",
                reason=str(exc) or "backtest_failed",
            )

    async def run(
        self,
        date: Optional[str] = None,
        capital=None,
        allocation_mode: Optional[str] = None,
        snapshot_mode: Optional[str] = None,
        snapshot_id: Optional[str] = None,
        require_exact_snapshot: bool = False,
    ) -> dict:
        """Backtest one stored snapshot for *date* (default: today, IST).

        Raises:
            BacktestRequestError: Invalid capital, no usable snapshot, or a
                snapshot without valid picks.
        """
        trade_date = sanitize_trade_date(date)
        parsed_capital = sanitize_capital(capital)
        allocation = normalize_allocation_mode(allocation_mode)
        mode = normalize_snapshot_mode(snapshot_mode)
        cost_bps = self._config.intraday_cost_bps

        snapshot = self._select_snapshot(trade_date, mode, snapshot_id, require_exact_snapshot)
        validation = evaluate_snapshot_exactness(snapshot, trade_date)

        picks = [to_pick(p) for p in sanitize_picks(snapshot.get("picks") or [])]
        if not picks:
            raise BacktestRequestError(f"No valid picks in snapshot {snapshot.get('id')}")

        per_pick = parsed_capital / len(picks) if allocation == SPLIT_ACROSS_PICKS else parsed_capital
        start_minute = parse_ist_time(snapshot.get("ist_time"))

        trades = []
        for pick in picks:
            trades.append(
                await self._run_pick(pick, trade_date, per_pick, start_minute, cost_bps)
            )

        summary = build_summary(trades, parsed_capital, allocation, cost_bps)
        run = {
            "id": f"intraday-backtest-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}",
            "created_at": datetime.now(timezone.utc).isoformat(),
            "trade_date": trade_date,
            "capital": round(parsed_capital, 2),
            "allocation_mode": allocation,
            "snapshot_mode": mode,
            "snapshot_id": snapshot.get("id"),
            "snapshot_created_at": snapshot.get("created_at"),
            "snapshot_validation": validation,
            "summary": summary,
            "trades": [t.to_dict() for t in trades],
        }

        result = self._store.save_backtest_run(run)
        logger.info(
            "Backtest %s: %d picks, %d closed, net P&L %.2f (%s, persisted=%s)",
            trade_date, len(trades), summary["trades_closed"], summary["net_pnl"],
            result.storage, result.saved,
        )
        return {
            **run,
            "id": run["id"] if result.saved else (result.existing_run_id or run["id"]),
            "persisted": result.saved,
            "duplicate_of_run_id": None if result.saved else result.existing_run_id,
            "storage": result.storage,
        }
