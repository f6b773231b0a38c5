"""JSON-file store — fallback persistence when SQLite is unavailable.

Two documents live under the data directory::

    intraday_signal_history.json    {"version": 1, "snapshots": [...]}
    intraday_backtest_history.json  {"version": 1, "runs": [...]}
"""

import json
import logging
import pathlib
from typing import Optional

from screener.repos.records import collapse_to_best_by_date, run_matches

logger = logging.getLogger("screener")

SIGNAL_HISTORY_FILE = "intraday_signal_history.json"
BACKTEST_HISTORY_FILE = "intraday_backtest_history.json"


class FileStore:
    """Snapshot and backtest-run history kept in two JSON files.

    Args:
        data_dir: Directory holding the history files (created on write).
        signal_history_limit: Snapshots kept after each write.
        backtest_history_limit: Runs kept after each write.
    """

    def __init__(
        self,
        data_dir: str,
        signal_history_limit: int = 500,
        backtest_history_limit: int = 1000,
    ) -> None:
        self._dir = pathlib.Path(data_dir)
        self._signal_limit = signal_history_limit
        self._backtest_limit = backtest_history_limit

    # ── I/O ──────────────────────────────────────────────────────────────

    def _read(self, name: str, key: str) -> list[dict]:
        path = self._dir / name
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Unreadable history file %s, starting empty: %s", path, exc)
            return []
        items = data.get(key) if isinstance(data, dict) else None
        return items if isinstance(items, list) else []

    def _write(self, name: str, key: str, items: list[dict]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._dir / name
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps({"version": 1, key: items}, indent=2), encoding="utf-8")
        tmp.replace(path)

    # ── Snapshots ────────────────────────────────────────────────────────

    def get_snapshots_for_date(self, ist_date: str) -> list[dict]:
        return [
            s for s in self._read(SIGNAL_HISTORY_FILE, "snapshots")
            if s.get("ist_date") == ist_date
        ]

    def replace_snapshot_for_date(self, snapshot: dict) -> None:
        snapshots = [
            s for s in self._read(SIGNAL_HISTORY_FILE, "snapshots")
            if s.get("ist_date") != snapshot["ist_date"]
        ]
        snapshots.append(snapshot)
        # Stored oldest first so trimming drops the oldest dates
        snapshots = list(reversed(collapse_to_best_by_date(snapshots)))
        self._write(SIGNAL_HISTORY_FILE, "snapshots", snapshots[-self._signal_limit:])

    def list_snapshots(self, ist_date: Optional[str] = None) -> list[dict]:
        snapshots = self._read(SIGNAL_HISTORY_FILE, "snapshots")
        if ist_date:
            snapshots = [s for s in snapshots if s.get("ist_date") == ist_date]
        return snapshots

    # ── Backtest runs ────────────────────────────────────────────────────

    def insert_run(self, run: dict) -> None:
        runs = self._read(BACKTEST_HISTORY_FILE, "runs")
        runs.append(run)
        self._write(BACKTEST_HISTORY_FILE, "runs", runs[-self._backtest_limit:])

    def latest_comparable_run(self, run: dict) -> Optional[dict]:
        matches = [r for r in self._read(BACKTEST_HISTORY_FILE, "runs") if run_matches(run, r)]
        matches.sort(key=lambda r: str(r.get("created_at") or ""), reverse=True)
        return matches[0] if matches else None

    def list_runs(self, trade_date: Optional[str] = None) -> list[dict]:
        runs = self._read(BACKTEST_HISTORY_FILE, "runs")
        if trade_date:
            runs = [r for r in runs if r.get("trade_date") == trade_date]
        return sorted(runs, key=lambda r: str(r.get("created_at") or ""), reverse=True)
