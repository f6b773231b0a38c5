"""Backtest run repository — persists intraday backtest runs to SQLite."""

import json
import sqlite3
from typing import Optional

from screener.repos.db import get_connection


_JSON_COLUMNS = ("snapshot_validation", "summary", "trades")


def _row_to_run(row: sqlite3.Row) -> dict:
    run = dict(row)
    for column in _JSON_COLUMNS:
        default = "[]" if column == "trades" else "{}"
        run[column] = json.loads(run[column] or default)
    return run


class BacktestRepo:
    """Data access layer for the ``backtest_runs`` table.

    Args:
        db_path: Path to the SQLite database file.
        history_limit: Rows kept after each insert; oldest runs are pruned.
    """

    def __init__(self, db_path: str, history_limit: int = 1000) -> None:
        self._db_path = db_path
        self._history_limit = history_limit

    def insert_run(self, run: dict) -> None:
        """Persist a backtest run document."""
        conn = get_connection(self._db_path)
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO backtest_runs
                        (id, created_at, trade_date, capital, allocation_mode,
                         snapshot_mode, snapshot_id, snapshot_created_at,
                         snapshot_validation, summary, trades)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        run["id"],
                        run["created_at"],
                        run["trade_date"],
                        run["capital"],
                        run["allocation_mode"],
                        run["snapshot_mode"],
                        run["snapshot_id"],
                        run.get("snapshot_created_at"),
                        json.dumps(run.get("snapshot_validation") or {}),
                        json.dumps(run.get("summary") or {}),
                        json.dumps(run.get("trades") or []),
                    ),
                )
                conn.execute(
                    """
                    DELETE FROM backtest_runs WHERE id NOT IN (
                        SELECT id FROM backtest_runs
                        ORDER BY created_at DESC LIMIT ?
                    )
                    """,
                    (self._history_limit,),
                )
        finally:
            conn.close()

    def latest_comparable(self, run: dict) -> Optional[dict]:
        """Newest stored run with the same date, capital, allocation and snapshot."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                """
                SELECT * FROM backtest_runs
                WHERE trade_date = ? AND capital = ? AND allocation_mode = ?
                  AND snapshot_id = ?
                ORDER BY created_at DESC LIMIT 1
                """,
                (
                    run["trade_date"],
                    run["capital"],
                    run["allocation_mode"],
                    run["snapshot_id"],
                ),
            ).fetchone()
            return _row_to_run(row) if row is not None else None
        finally:
            conn.close()

    def get_runs(self, trade_date: Optional[str] = None, limit: int = 30) -> list[dict]:
        """Return recent backtest runs, newest first."""
        conn = get_connection(self._db_path)
        try:
            if trade_date:
                rows = conn.execute(
                    "SELECT * FROM backtest_runs WHERE trade_date = ? "
                    "ORDER BY created_at DESC LIMIT ?",
                    (trade_date, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM backtest_runs ORDER BY created_at DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            return [_row_to_run(r) for r in rows]
        finally:
            conn.close()
