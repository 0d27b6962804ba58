"""
Event Log Store — append-only, hash-chained record of every ingested event.

Behavioral Contract:
- Append-only. No record is ever modified or deleted (except clear() on reset).
- seq is 1-based and dense; timestamps never decrease.
- Each record is hashed and chained to the previous record (tamper-evident).
- Queryable by sequence number and by log-time range.
"""

import hashlib
import json
import sqlite3
import threading
from typing import Iterable, List, Optional, Tuple

from hive_kernel.models.history import AnyEvent, LogRecord


class LogIntegrityError(Exception):
    """Raised by check_integrity() when the chain does not verify."""

    def __init__(self, seq: int, reason: str):
        super().__init__(f"record {seq}: {reason}")
        self.seq = seq
        self.reason = reason


def _sign(record: LogRecord) -> str:
    body = record.model_dump(mode="json", by_alias=True)
    # Zero out signature before hashing (it's what we're computing)
    body["signature"] = ""
    return hashlib.sha256(json.dumps(body, sort_keys=True).encode()).hexdigest()


class EventLogStore:
    """
    Append-only event log.
    SQLite; ":memory:" for a session-only log, a file path to persist across runs.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()
        self._tail = self._load_tail()

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS event_log (
                seq INTEGER PRIMARY KEY,
                timestamp REAL NOT NULL,
                event_type TEXT NOT NULL,
                signature TEXT NOT NULL,
                prior_signature TEXT,
                record_json TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_event_log_timestamp ON event_log(timestamp)
        """)
        self._conn.commit()

    def _load_tail(self) -> Tuple[int, float, Optional[str]]:
        row = self._conn.execute(
            "SELECT seq, timestamp, signature FROM event_log ORDER BY seq DESC LIMIT 1"
        ).fetchone()
        if row is None:
            return 0, 0.0, None
        return row["seq"], row["timestamp"], row["signature"]

    def append(self, event: AnyEvent, timestamp: Optional[float] = None) -> LogRecord:
        with self._lock:
            record = self._build(event, timestamp)
            self._insert(record)
            self._conn.commit()
        return record

    def append_many(self, items: Iterable[Tuple[AnyEvent, Optional[float]]]) -> List[LogRecord]:
        """Append in order within a single transaction."""
        records = []
        with self._lock:
            for event, timestamp in items:
                record = self._build(event, timestamp)
                self._insert(record)
                records.append(record)
            self._conn.commit()
        return records

    def _build(self, event: AnyEvent, timestamp: Optional[float]) -> LogRecord:
        last_seq, last_ts, last_sig = self._tail
        ts = event.timestamp if timestamp is None else timestamp
        # Log time never goes backwards; seq orders records sharing a timestamp
        if last_seq and ts < last_ts:
            ts = last_ts
        record = LogRecord(
            seq=last_seq + 1,
            timestamp=ts,
            event=event,
            prior_signature=last_sig,
        )
        record.signature = _sign(record)
        self._tail = (record.seq, record.timestamp, record.signature)
        return record

    def _insert(self, record: LogRecord) -> None:
        self._conn.execute(
            """
            INSERT INTO event_log (
                seq, timestamp, event_type, signature, prior_signature, record_json
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.seq,
                record.timestamp,
                record.event.type,
                record.signature,
                record.prior_signature,
                json.dumps(record.model_dump(mode="json", by_alias=True)),
            ),
        )

    def _deserialize(self, row: sqlite3.Row) -> LogRecord:
        return LogRecord.model_validate_json(row["record_json"])

    def _select(self, sql: str, params: tuple = ()) -> List[LogRecord]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [self._deserialize(r) for r in rows]

    def get(self, seq: int) -> Optional[LogRecord]:
        records = self._select("SELECT record_json FROM event_log WHERE seq = ?", (seq,))
        return records[0] if records else None

    def range(
        self,
        start: Optional[float] = None,
        end: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[LogRecord]:
        """Records with start <= timestamp <= end, in seq order."""
        clauses = []
        params: list = []
        if start is not None:
            clauses.append("timestamp >= ?")
            params.append(start)
        if end is not None:
            clauses.append("timestamp <= ?")
            params.append(end)
        sql = "SELECT record_json FROM event_log"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY seq"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return self._select(sql, tuple(params))

    def after(self, seq: int) -> List[LogRecord]:
        """Records with a sequence number greater than seq."""
        return self._select(
            "SELECT record_json FROM event_log WHERE seq > ? ORDER BY seq", (seq,)
        )

    def span(self, after_seq: int, through_seq: int) -> List[LogRecord]:
        """Records with after_seq < seq <= through_seq."""
        return self._select(
            "SELECT record_json FROM event_log WHERE seq > ? AND seq <= ? ORDER BY seq",
            (after_seq, through_seq),
        )

    def all(self) -> List[LogRecord]:
        return self._select("SELECT record_json FROM event_log ORDER BY seq")

    def last(self) -> Optional[LogRecord]:
        records = self._select(
            "SELECT record_json FROM event_log ORDER BY seq DESC LIMIT 1"
        )
        return records[0] if records else None

    def first(self) -> Optional[LogRecord]:
        records = self._select(
            "SELECT record_json FROM event_log ORDER BY seq LIMIT 1"
        )
        return records[0] if records else None

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) AS cnt FROM event_log").fetchone()
        return row["cnt"]

    def check_integrity(self) -> None:
        """Walk the chain. Raises LogIntegrityError at the first bad record."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT seq, signature, prior_signature, record_json FROM event_log ORDER BY seq"
            ).fetchall()

        prior_sig = None
        prior_ts = None
        for expected_seq, row in enumerate(rows, start=1):
            record = self._deserialize(row)
            if record.seq != expected_seq or row["seq"] != expected_seq:
                raise LogIntegrityError(row["seq"], "sequence gap")
            if record.signature != row["signature"] or _sign(record) != record.signature:
                raise LogIntegrityError(record.seq, "signature mismatch")
            if record.prior_signature != prior_sig:
                raise LogIntegrityError(record.seq, "broken chain link")
            if prior_ts is not None and record.timestamp < prior_ts:
                raise LogIntegrityError(record.seq, "timestamp went backwards")
            prior_sig = record.signature
            prior_ts = record.timestamp

    def verify_chain_integrity(self) -> bool:
        """Verify no records have been tampered with."""
        try:
            self.check_integrity()
        except LogIntegrityError:
            return False
        return True

    def clear(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM event_log")
            self._conn.commit()
            self._tail = (0, 0.0, None)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
