"""Record helpers shared by the SQLite and file stores.

Snapshots and backtest runs are stored as plain JSON-compatible dicts.
These functions hold the selection rules both backends must agree on:
which snapshot is canonical for a date, and when two runs are the same.
"""

import json
import math
from typing import Iterable, Optional


MAX_LIST_LIMIT = 500


def finite_or_none(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_limit(value, fallback: int) -> int:
    """Clamp a caller-supplied list limit into ``[1, 500]``."""
    try:
        limit = int(value) if value else fallback
    except (TypeError, ValueError):
        limit = fallback
    return max(1, min(MAX_LIST_LIMIT, limit))


# ── Snapshots ────────────────────────────────────────────────────────────


def snapshot_quality_from_picks(picks: Iterable[dict]) -> float:
    """Average net RR (each clamped to [0, 5]) plus 0.1 per pick, up to 20 picks."""
    picks = list(picks or [])
    if not picks:
        return 0.0
    rr_sum = 0.0
    for pick in picks:
        rr = finite_or_none(pick.get("risk_reward_after_costs"))
        if rr is None:
            rr = finite_or_none(pick.get("risk_reward"))
        rr_sum += max(0.0, min(5.0, rr or 0.0))
    return round(rr_sum / len(picks) + min(len(picks), 20) * 0.1, 2)


def snapshot_quality(snapshot: dict) -> float:
    explicit = finite_or_none(snapshot.get("quality_score"))
    if explicit is not None:
        return explicit
    return snapshot_quality_from_picks(snapshot.get("picks") or [])


def best_snapshot(snapshots: Iterable[dict]) -> Optional[dict]:
    """Highest quality first, newest ``created_at`` breaking ties."""
    ranked = sorted(
        snapshots,
        key=lambda s: (snapshot_quality(s), str(s.get("created_at") or "")),
        reverse=True,
    )
    return ranked[0] if ranked else None


def collapse_to_best_by_date(snapshots: Iterable[dict]) -> list[dict]:
    """Keep the best snapshot per ``ist_date``, newest first."""
    by_date: dict[str, list[dict]] = {}
    for snapshot in snapshots:
        key = str(snapshot.get("ist_date") or "")
        if key:
            by_date.setdefault(key, []).append(snapshot)
    best = [best_snapshot(group) for group in by_date.values()]
    return sorted(best, key=lambda s: str(s.get("created_at") or ""), reverse=True)


def replaces_existing(candidate: dict, existing: Optional[dict]) -> bool:
    """A newer snapshot replaces the stored one unless its quality is lower."""
    return existing is None or snapshot_quality(candidate) >= snapshot_quality(existing)


# ── Backtest runs ────────────────────────────────────────────────────────


def comparable_run_payload(run: dict) -> str:
    """Canonical JSON of the fields that make two runs the same outcome."""
    return json.dumps(
        {
            "trade_date": run.get("trade_date") or "",
            "capital": finite_or_none(run.get("capital")) or 0.0,
            "allocation_mode": run.get("allocation_mode") or "",
            "snapshot_id": run.get("snapshot_id") or "",
            "summary": run.get("summary") or {},
            "trades": run.get("trades") or [],
        },
        sort_keys=True,
    )


def is_same_run(a: Optional[dict], b: Optional[dict]) -> bool:
    if not a or not b:
        return False
    return comparable_run_payload(a) == comparable_run_payload(b)


def run_matches(run: dict, other: dict) -> bool:
    """Same (trade_date, capital, allocation_mode, snapshot_id) key."""
    return (
        other.get("trade_date") == run.get("trade_date")
        and finite_or_none(other.get("capital")) == finite_or_none(run.get("capital"))
        and other.get("allocation_mode") == run.get("allocation_mode")
        and other.get("snapshot_id") == run.get("snapshot_id")
    )
