"""Signal snapshot repository — one canonical scan snapshot per IST date in SQLite."""

import json
import sqlite3
from typing import Optional

from screener.repos.db import get_connection


_COLUMNS = (
    "id", "created_at", "ist_date", "ist_time", "total_scanned",
    "positive_count", "quality_score", "picks", "meta",
)


def _row_to_snapshot(row: sqlite3.Row) -> dict:
    snapshot = dict(row)
    snapshot["picks"] = json.loads(snapshot["picks"] or "[]")
    snapshot["meta"] = json.loads(snapshot["meta"] or "{}")
    return snapshot


class SnapshotRepo:
    """Data access layer for the ``signal_snapshots`` table.

    Args:
        db_path: Path to the SQLite database file.
        history_limit: Rows kept after each write; oldest dates are pruned.
    """

    def __init__(self, db_path: str, history_limit: int = 500) -> None:
        self._db_path = db_path
        self._history_limit = history_limit

    def get_for_date(self, ist_date: str) -> list[dict]:
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM signal_snapshots WHERE ist_date = ? ORDER BY created_at DESC",
                (ist_date,),
            ).fetchall()
            return [_row_to_snapshot(r) for r in rows]
        finally:
            conn.close()

    def replace_for_date(self, snapshot: dict) -> None:
        """Delete the date's stored snapshots and insert *snapshot*, atomically."""
        conn = get_connection(self._db_path)
        try:
            with conn:
                conn.execute(
                    "DELETE FROM signal_snapshots WHERE ist_date = ?",
                    (snapshot["ist_date"],),
                )
                conn.execute(
                    f"INSERT INTO signal_snapshots ({', '.join(_COLUMNS)}) "
                    f"VALUES ({', '.join('?' * len(_COLUMNS))})",
                    (
                        snapshot["id"],
                        snapshot["created_at"],
                        snapshot["ist_date"],
                        snapshot["ist_time"],
                        snapshot.get("total_scanned", 0),
                        snapshot.get("positive_count", 0),
                        snapshot.get("quality_score", 0.0),
                        json.dumps(snapshot.get("picks") or []),
                        json.dumps(snapshot.get("meta") or {}),
                    ),
                )
                conn.execute(
                    """
                    DELETE FROM signal_snapshots WHERE id NOT IN (
                        SELECT id FROM signal_snapshots
                        ORDER BY created_at DESC LIMIT ?
                    )
                    """,
                    (self._history_limit,),
                )
        finally:
            conn.close()

    def list_snapshots(self, ist_date: Optional[str] = None, limit: int = 50) -> list[dict]:
        """Return snapshots newest first, optionally for one date."""
        conn = get_connection(self._db_path)
        try:
            if ist_date:
                rows = conn.execute(
                    "SELECT * FROM signal_snapshots WHERE ist_date = ? "
                    "ORDER BY created_at DESC, quality_score DESC LIMIT ?",
                    (ist_date, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM signal_snapshots "
                    "ORDER BY created_at DESC, quality_score DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            return [_row_to_snapshot(r) for r in rows]
        finally:
            conn.close()
