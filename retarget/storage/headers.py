"""
SQLite-backed header store used as the chain view for difficulty validation.
"""

from __future__ import annotations

import contextlib
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from pathlib import Path

from ..core.chainview import StoredHeader, StoreIOError

__all__ = [
    "HeaderStore",
]

_COLUMNS = "hash, prev_hash, height, timestamp, bits"


class HeaderStore:
    """Wraps a SQLite DB of block headers keyed by hash.

    Lookups of unknown hashes return None, matching a chain view whose history
    starts at a checkpoint. Storage faults are raised as StoreIOError.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._lock = threading.RLock()
        self._closed = False
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(db_path, timeout=30, isolation_level=None, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=FULL")
            self._conn.row_factory = sqlite3.Row
        except (OSError, sqlite3.Error) as exc:
            raise StoreIOError(f"Cannot open header store {db_path}: {exc}") from exc
        self._init_schema()

    def close(self) -> None:
        with self._lock:
            if not self._closed:
                self._conn.close()
                self._closed = True

    def __enter__(self) -> HeaderStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def _init_schema(self) -> None:
        with self._lock:
            try:
                self._conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS headers (
                        hash TEXT PRIMARY KEY,
                        prev_hash TEXT,
                        height INTEGER NOT NULL,
                        timestamp INTEGER NOT NULL,
                        bits INTEGER NOT NULL
                    );
                    CREATE INDEX IF NOT EXISTS headers_height_idx ON headers(height);
                    """
                )
            except sqlite3.Error as exc:
                raise StoreIOError(f"Cannot initialize header store {self.db_path}: {exc}") from exc

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreIOError("Header store is closed")

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self._ensure_open()
            try:
                self._conn.execute("BEGIN")
                try:
                    yield self._conn
                except BaseException:
                    self._conn.execute("ROLLBACK")
                    raise
                self._conn.execute("COMMIT")
            except sqlite3.Error as exc:
                raise StoreIOError(f"Header store write failed: {exc}") from exc

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            self._ensure_open()
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise StoreIOError(f"Header store read failed: {exc}") from exc

    def store_header(self, header: StoredHeader) -> None:
        self.store_headers([header])

    def store_headers(self, headers: Iterable[StoredHeader]) -> None:
        rows = [(h.hash, h.prev_hash, h.height, h.timestamp, h.bits) for h in headers]
        with self.transaction() as conn:
            conn.executemany(
                f"""
                INSERT INTO headers({_COLUMNS})
                VALUES(?, ?, ?, ?, ?)
                ON CONFLICT(hash) DO UPDATE SET
                    prev_hash=excluded.prev_hash,
                    height=excluded.height,
                    timestamp=excluded.timestamp,
                    bits=excluded.bits
                """,
                rows,
            )

    def get_header(self, block_hash: str) -> StoredHeader | None:
        rows = self._query(f"SELECT {_COLUMNS} FROM headers WHERE hash=?", (block_hash,))
        if not rows:
            return None
        return self._row_to_header(rows[0])

    def get_header_by_height(self, height: int) -> StoredHeader | None:
        rows = self._query(f"SELECT {_COLUMNS} FROM headers WHERE height=? LIMIT 1", (height,))
        if not rows:
            return None
        return self._row_to_header(rows[0])

    def get_headers_range(self, start_height: int, end_height: int) -> list[StoredHeader]:
        """Get headers for heights [start_height, end_height] inclusive."""
        if end_height < start_height:
            return []
        rows = self._query(
            f"SELECT {_COLUMNS} FROM headers WHERE height BETWEEN ? AND ? ORDER BY height ASC",
            (start_height, end_height),
        )
        return [self._row_to_header(row) for row in rows]

    def iter_headers_range(self, start_height: int, end_height: int, *, batch_size: int = 2000) -> Iterator[StoredHeader]:
        """Yield headers for heights [start_height, end_height], reading ``batch_size`` heights per query."""
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        lower = start_height
        while lower <= end_height:
            upper = min(lower + batch_size - 1, end_height)
            yield from self.get_headers_range(lower, upper)
            lower = upper + 1

    def get_min_height(self) -> int | None:
        rows = self._query("SELECT MIN(height) AS min_height FROM headers")
        return rows[0]["min_height"] if rows else None

    def get_max_height(self) -> int | None:
        rows = self._query("SELECT MAX(height) AS max_height FROM headers")
        return rows[0]["max_height"] if rows else None

    def count(self) -> int:
        rows = self._query("SELECT COUNT(*) AS total FROM headers")
        return int(rows[0]["total"])

    @staticmethod
    def _row_to_header(row: sqlite3.Row) -> StoredHeader:
        return StoredHeader(
            hash=row["hash"],
            prev_hash=row["prev_hash"],
            height=row["height"],
            timestamp=row["timestamp"],
            bits=row["bits"],
        )
