from __future__ import annotations

import json
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from tracegrid.core.state.models import Record
from tracegrid.utils.format import to_epoch_ms
from tracegrid.utils.hashing import sha256_canonical_json

DEFAULT_DB_PATH = Path(".runtime/tracegrid.sqlite")


def _utc_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS records (
  record_id TEXT PRIMARY KEY,
  trace_id TEXT,
  created_at_ms REAL,
  data_json TEXT NOT NULL,
  data_hash TEXT NOT NULL,
  ingested_at_utc TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS records_trace_time ON records(trace_id, created_at_ms);
CREATE INDEX IF NOT EXISTS records_time ON records(created_at_ms);
"""


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    # busy_timeout is per-connection, so set it on every connect.
    conn.execute("PRAGMA busy_timeout = 5000;")
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")


def ensure_db_initialized(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    try:
        _apply_pragmas(conn)
        conn.executescript(SCHEMA_SQL)
        conn.execute("INSERT OR IGNORE INTO meta(key,value) VALUES(?,?)", ("schema_version", "1"))
        conn.commit()
    finally:
        conn.close()


def _row_to_record(row: sqlite3.Row) -> Record:
    return Record.from_dict(json.loads(row["data_json"]))


@dataclass
class Db:
    db_path: Path
    conn: sqlite3.Connection | None = None

    def __enter__(self) -> "Db":
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        _apply_pragmas(self.conn)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        if not self.conn:
            return
        try:
            if exc is None:
                self.conn.commit()
            else:
                self.conn.rollback()
        finally:
            self.conn.close()
            self.conn = None

    def upsert_record(self, record: Record) -> str:
        """
        Insert or replace a record. Returns "inserted", "updated" or "unchanged".
        """
        assert self.conn is not None
        data = record.to_dict()
        data_hash = sha256_canonical_json(data)

        row = self.conn.execute("SELECT data_hash FROM records WHERE record_id=?", (record.id,)).fetchone()
        if row and row["data_hash"] == data_hash:
            return "unchanged"

        self.conn.execute(
            """
            INSERT INTO records(record_id,trace_id,created_at_ms,data_json,data_hash,ingested_at_utc)
            VALUES(?,?,?,?,?,?)
            ON CONFLICT(record_id) DO UPDATE SET
              trace_id=excluded.trace_id,
              created_at_ms=excluded.created_at_ms,
              data_json=excluded.data_json,
              data_hash=excluded.data_hash,
              ingested_at_utc=excluded.ingested_at_utc
            """,
            (
                record.id,
                record.trace_id,
                to_epoch_ms(record.created_at),
                json.dumps(data, ensure_ascii=False, default=str),
                data_hash,
                _utc_iso(),
            ),
        )
        return "updated" if row else "inserted"

    def get_record(self, record_id: str) -> Optional[Record]:
        assert self.conn is not None
        row = self.conn.execute("SELECT data_json FROM records WHERE record_id=?", (record_id,)).fetchone()
        return _row_to_record(row) if row else None

    def list_records(self, limit: Optional[int] = None) -> List[Record]:
        """Newest first."""
        assert self.conn is not None
        q = "SELECT data_json FROM records ORDER BY created_at_ms DESC, record_id DESC"
        args: List[Any] = []
        if limit is not None:
            q += " LIMIT ?"
            args.append(int(limit))
        rows = self.conn.execute(q, args).fetchall()
        return [_row_to_record(r) for r in rows]

    def get_related_records(self, record_id: str) -> List[Record]:
        """
        Records sharing the trace of record_id (excluding it), oldest first.
        A record without a trace has no related records.
        """
        assert self.conn is not None
        row = self.conn.execute("SELECT trace_id FROM records WHERE record_id=?", (record_id,)).fetchone()
        if not row or not row["trace_id"]:
            return []
        rows = self.conn.execute(
            """
            SELECT data_json FROM records
            WHERE trace_id=? AND record_id<>?
            ORDER BY created_at_ms ASC, record_id ASC
            """,
            (row["trace_id"], record_id),
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    def count_records(self) -> int:
        assert self.conn is not None
        row = self.conn.execute("SELECT COUNT(*) AS n FROM records").fetchone()
        return int(row["n"])


@dataclass(frozen=True)
class SqliteRelatedSource:
    """
    Related-records source backed by the local store. Opens one connection
    per read so it can be called from executor threads.
    """

    db_path: Path

    def fetch_related(self, record_id: str) -> Sequence[Record]:
        with Db(self.db_path) as db:
            return db.get_related_records(record_id)


def summarize_ingest(outcomes: Sequence[str]) -> Dict[str, int]:
    out = {"inserted": 0, "updated": 0, "unchanged": 0}
    for o in outcomes:
        out[o] = out.get(o, 0) + 1
    return out
