# src/locker/runtime/sqlite_db.py
from __future__ import annotations

import itertools
import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

Json = Dict[str, Any]

_SYNCHRONOUS_LEVELS = ("OFF", "NORMAL", "FULL", "EXTRA")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS meta (
      key TEXT PRIMARY KEY,
      value TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS ledger_state (
      id INTEGER PRIMARY KEY CHECK (id = 1),
      seq INTEGER NOT NULL,
      state_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS receipts (
      request_id TEXT PRIMARY KEY,
      seq INTEGER NOT NULL,
      caller TEXT NOT NULL,
      action TEXT NOT NULL,
      nonce INTEGER NOT NULL,
      result_json TEXT NOT NULL,
      created_ts_ms INTEGER NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_receipts_caller ON receipts(caller);",
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def canon_json(obj: Any) -> str:
    """Canonical JSON encoding for persisted snapshots and receipts."""
    # Unknown types must fail here rather than be coerced (no default=str).
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


def _synchronous_level() -> str:
    """FULL in prod, NORMAL elsewhere; LOCKER_SQLITE_SYNCHRONOUS overrides."""
    prod = (os.environ.get("LOCKER_MODE") or "prod").strip().lower() == "prod"
    default = "FULL" if prod else "NORMAL"
    want = (os.environ.get("LOCKER_SQLITE_SYNCHRONOUS") or default).strip().upper()
    return want if want in _SYNCHRONOUS_LEVELS else default


def _is_contention(e: sqlite3.OperationalError) -> bool:
    msg = str(e).lower()
    return "database is locked" in msg or "database is busy" in msg


class SqliteDB:
    """Single-file SQLite database for the ledger snapshot and request receipts.

    Every call opens its own connection. SQLite admits one writer at a time,
    so write_tx() retries BEGIN IMMEDIATE with jittered exponential backoff
    until LOCKER_SQLITE_WRITE_DEADLINE_MS runs out.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    def _pragmas(self, connect_timeout_ms: int) -> List[str]:
        busy_ms = max(0, _env_int("LOCKER_SQLITE_BUSY_TIMEOUT_MS", connect_timeout_ms))
        return [
            "journal_mode=WAL",
            f"synchronous={_synchronous_level()}",
            "foreign_keys=ON",
            "temp_store=MEMORY",
            f"busy_timeout={busy_ms}",
        ]

    def _connect(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        timeout_ms = _env_int("LOCKER_SQLITE_CONNECT_TIMEOUT_MS", 30_000)

        # isolation_level=None: transactions are opened explicitly in write_tx().
        con = sqlite3.connect(self.path, timeout=timeout_ms / 1000.0, isolation_level=None, check_same_thread=False)
        con.row_factory = sqlite3.Row
        for pragma in self._pragmas(timeout_ms):
            con.execute(f"PRAGMA {pragma};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            for stmt in _SCHEMA:
                con.execute(stmt)

            row = con.execute("SELECT value FROM meta WHERE key='schema_version';").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
                return
            have = str(row["value"])
            if have != str(self.SCHEMA_VERSION):
                raise RuntimeError(f"sqlite schema_version is {have}, expected {self.SCHEMA_VERSION}; refusing to open")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    def _begin_immediate(self, con: sqlite3.Connection) -> None:
        deadline = _now_ms() + max(250, _env_int("LOCKER_SQLITE_WRITE_DEADLINE_MS", 30_000))
        base_s = max(1, _env_int("LOCKER_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0
        cap_s = max(base_s, _env_int("LOCKER_SQLITE_WRITE_BACKOFF_MAX_MS", 250) / 1000.0)

        for attempt in itertools.count():
            try:
                con.execute("BEGIN IMMEDIATE;")
                return
            except sqlite3.OperationalError as e:
                if not _is_contention(e) or _now_ms() >= deadline:
                    raise
                delay = min(cap_s, base_s * 2 ** min(attempt, 8))
                time.sleep(delay * random.uniform(0.5, 1.5))

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT, rolled back if the body raises."""
        with self.connection() as con:
            self._begin_immediate(con)
            try:
                yield con
            except BaseException:
                con.execute("ROLLBACK;")
                raise
            con.execute("COMMIT;")


class SqliteLockerStore:
    """Ledger snapshot store persisted in SQLite.

    The authoritative snapshot is a single row. Accepted requests also leave a
    receipt row, written in the same transaction as the snapshot.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone()
            if row is None:
                raise FileNotFoundError("sqlite ledger_state is missing")
            st = json.loads(str(row["state_json"]))
            if not isinstance(st, dict):
                raise ValueError("ledger_state is not a JSON object")
            return st

    def write(self, st: Json, *, receipt: Optional[Json] = None) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")
        seq = int(st.get("seq", 0))
        now = _now_ms()
        payload = canon_json(st)
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO ledger_state(id, seq, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  seq=excluded.seq,
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (seq, payload, now),
            )
            if receipt is not None:
                con.execute(
                    """
                    INSERT INTO receipts(request_id, seq, caller, action, nonce, result_json, created_ts_ms)
                    VALUES(?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        str(receipt["request_id"]),
                        seq,
                        str(receipt["caller"]),
                        str(receipt["action"]),
                        int(receipt["nonce"]),
                        canon_json(receipt.get("result") or {}),
                        now,
                    ),
                )

    def get_receipt(self, request_id: str) -> Optional[Json]:
        with self._db.connection() as con:
            row = con.execute(
                "SELECT request_id, seq, caller, action, nonce, result_json FROM receipts WHERE request_id=? LIMIT 1;",
                (str(request_id),),
            ).fetchone()
            if row is None:
                return None
            return {
                "request_id": str(row["request_id"]),
                "seq": int(row["seq"]),
                "caller": str(row["caller"]),
                "action": str(row["action"]),
                "nonce": int(row["nonce"]),
                "result": json.loads(str(row["result_json"])),
            }
