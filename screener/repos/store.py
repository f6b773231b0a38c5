"""Signal store — SQLite persistence with a JSON-file fallback.

Every operation is tried against SQLite first.  A ``sqlite3.Error`` is
logged and the same operation is repeated against the file store, so a
computed scan or backtest is never lost to a storage failure.  Listings
read both backends so records that landed in the file store stay visible
once SQLite recovers.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from screener.config import Config
from screener.repos.backtest_repo import BacktestRepo
from screener.repos.db import init_db
from screener.repos.file_store import FileStore
from screener.repos.records import (
    best_snapshot,
    collapse_to_best_by_date,
    is_same_run,
    normalize_limit,
    replaces_existing,
)
from screener.repos.snapshot_repo import SnapshotRepo

logger = logging.getLogger("screener")

T = TypeVar("T")

SQLITE = "sqlite"
FILE = "file"


@dataclass(frozen=True)
class SaveResult:
    """Outcome of persisting a backtest run."""

    saved: bool
    existing_run_id: Optional[str]
    storage: str


class SignalStore:
    """Snapshot and backtest-run persistence used by the scan and backtest services."""

    def __init__(self, config: Config) -> None:
        self._snapshots = SnapshotRepo(config.db_path, config.signal_history_limit)
        self._runs = BacktestRepo(config.db_path, config.backtest_history_limit)
        self._files = FileStore(
            config.data_dir,
            config.signal_history_limit,
            config.backtest_history_limit,
        )
        self._sqlite_ok = True
        try:
            init_db(config.db_path)
        except (sqlite3.Error, OSError) as exc:
            logger.error("SQLite unavailable at %s, using file store: %s", config.db_path, exc)
            self._sqlite_ok = False

    def _with_fallback(
        self, action: str, primary: Callable[[], T], fallback: Callable[[], T],
    ) -> T:
        if self._sqlite_ok:
            try:
                return primary()
            except sqlite3.Error as exc:
                logger.error("Failed to %s in SQLite, falling back to file: %s", action, exc)
        return fallback()

    def _read_merged(
        self, action: str, primary: Callable[[], list[dict]], files: Callable[[], list[dict]],
    ) -> list[dict]:
        """SQLite rows plus any records written to the file store after a failed write."""
        from_files = files()
        if not self._sqlite_ok:
            return from_files
        try:
            rows = primary()
        except sqlite3.Error as exc:
            logger.error("Failed to %s in SQLite, falling back to file: %s", action, exc)
            return from_files
        seen = {row.get("id") for row in rows}
        return rows + [item for item in from_files if item.get("id") not in seen]

    # ── Snapshots ────────────────────────────────────────────────────────

    def save_snapshot(self, snapshot: dict) -> dict:
        """Store *snapshot* unless the date already has one of higher quality.

        Returns the date's canonical snapshot after the save.
        """

        def _save(get_for_date, replace_for_date) -> dict:
            existing = best_snapshot(get_for_date(snapshot["ist_date"]))
            if not replaces_existing(snapshot, existing):
                return existing
            replace_for_date(snapshot)
            return snapshot

        return self._with_fallback(
            "save snapshot",
            lambda: _save(self._snapshots.get_for_date, self._snapshots.replace_for_date),
            lambda: _save(self._files.get_snapshots_for_date, self._files.replace_snapshot_for_date),
        )

    def list_snapshots(self, date: Optional[str] = None, limit=50) -> list[dict]:
        """Best snapshot per date, newest first; a single item when *date* is given."""
        limit = normalize_limit(limit, 50)
        snapshots = self._read_merged(
            "list snapshots",
            lambda: self._snapshots.list_snapshots(date, limit),
            lambda: self._files.list_snapshots(date),
        )
        collapsed = collapse_to_best_by_date(snapshots)
        return collapsed[:1] if date else collapsed[:limit]

    # ── Backtest runs ────────────────────────────────────────────────────

    def save_backtest_run(self, run: dict) -> SaveResult:
        """Insert *run* unless the latest comparable run has the identical outcome."""

        def _save(latest_comparable, insert_run, storage: str) -> SaveResult:
            latest = latest_comparable(run)
            if is_same_run(run, latest):
                return SaveResult(saved=False, existing_run_id=latest.get("id"), storage=storage)
            insert_run(run)
            return SaveResult(saved=True, existing_run_id=None, storage=storage)

        return self._with_fallback(
            "save backtest run",
            lambda: _save(self._runs.latest_comparable, self._runs.insert_run, SQLITE),
            lambda: _save(self._files.latest_comparable_run, self._files.insert_run, FILE),
        )

    def list_backtest_runs(self, date: Optional[str] = None, limit=30) -> list[dict]:
        limit = normalize_limit(limit, 30)
        runs = self._read_merged(
            "list backtest runs",
            lambda: self._runs.get_runs(date, limit),
            lambda: self._files.list_runs(date),
        )
        runs.sort(key=lambda r: str(r.get("created_at") or ""), reverse=True)
        return runs[:limit]
