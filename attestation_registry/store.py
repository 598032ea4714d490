"""
Record store for the attestation registry.

The store stands in for the hosting ledger's account storage. It offers
create-if-absent, read, and update per address (there is no delete), a
nonce table for replay protection, and the hash-chained event log. Every
operation runs inside ``transaction()``; an exception anywhere inside it
discards all of its writes, events included.

Two implementations:
    InMemoryRecordStore  dict-backed, for tests and embedding
    SqliteRecordStore    durable, thread-local connections, WAL
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .errors import DuplicateRecord, RecordNotFound, ReplayedRequest
from .events import LogEntry


class RecordStore(ABC):
    """
    Abstract account store.

    Implementations must be:
    - Atomic (a transaction commits entirely or not at all)
    - Serialized (one mutating transaction at a time)
    - Append-only for accounts (create once, update in place, never delete)
    """

    @abstractmethod
    def transaction(self):
        """Context manager grouping all calls made inside it into one atomic unit."""

    @abstractmethod
    def get(self, address: bytes) -> Optional[bytes]:
        pass

    @abstractmethod
    def create(self, address: bytes, data: bytes) -> None:
        """Store ``data`` at a fresh address. Raises DuplicateRecord if occupied."""

    @abstractmethod
    def put(self, address: bytes, data: bytes) -> None:
        """Overwrite an existing account. Raises RecordNotFound if absent."""

    @abstractmethod
    def scan(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        """Yield (address, data) for accounts whose data starts with ``prefix``."""

    @abstractmethod
    def consume_nonce(self, nonce: str, expires_at: int, now: int) -> None:
        """Record a request nonce. Raises ReplayedRequest if still remembered."""

    @abstractmethod
    def latest_entry_hash(self) -> Optional[str]:
        pass

    @abstractmethod
    def append_log_entry(
        self,
        event_type: str,
        slot_time: int,
        payload_json: str,
        payload_hash: str,
        prev_entry_hash: Optional[str],
        entry_hash: str,
    ) -> LogEntry:
        pass

    @abstractmethod
    def log_entries(self, after_seq: int = 0, limit: Optional[int] = None) -> List[LogEntry]:
        pass

    def exists(self, address: bytes) -> bool:
        return self.get(address) is not None


# ============================================================
# In-memory store
# ============================================================

class InMemoryRecordStore(RecordStore):
    """
    In-memory store for development/testing.

    Transactions hold a re-entrant lock for their whole duration and
    snapshot state on entry; on error the snapshot is restored.
    """

    def __init__(self):
        self._accounts: Dict[bytes, bytes] = {}
        self._nonces: Dict[str, int] = {}
        self._log: List[LogEntry] = []
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self):
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                snapshot = (dict(self._accounts), dict(self._nonces), list(self._log))
            self._depth += 1
            try:
                yield self
            except BaseException:
                if outermost:
                    self._accounts, self._nonces, self._log = snapshot
                raise
            finally:
                self._depth -= 1

    def get(self, address: bytes) -> Optional[bytes]:
        with self._lock:
            return self._accounts.get(bytes(address))

    def create(self, address: bytes, data: bytes) -> None:
        with self._lock:
            if bytes(address) in self._accounts:
                raise DuplicateRecord()
            self._accounts[bytes(address)] = bytes(data)

    def put(self, address: bytes, data: bytes) -> None:
        with self._lock:
            if bytes(address) not in self._accounts:
                raise RecordNotFound()
            self._accounts[bytes(address)] = bytes(data)

    def scan(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        with self._lock:
            items = sorted(self._accounts.items())
        for address, data in items:
            if data.startswith(prefix):
                yield address, data

    def consume_nonce(self, nonce: str, expires_at: int, now: int) -> None:
        with self._lock:
            for stale in [n for n, exp in self._nonces.items() if exp < now]:
                del self._nonces[stale]
            if nonce in self._nonces:
                raise ReplayedRequest()
            self._nonces[nonce] = expires_at

    def latest_entry_hash(self) -> Optional[str]:
        with self._lock:
            return self._log[-1].entry_hash if self._log else None

    def append_log_entry(self, event_type, slot_time, payload_json, payload_hash,
                         prev_entry_hash, entry_hash) -> LogEntry:
        with self._lock:
            entry = LogEntry(
                seq=len(self._log) + 1,
                event_type=event_type,
                slot_time=slot_time,
                payload_json=payload_json,
                payload_hash=payload_hash,
                prev_entry_hash=prev_entry_hash,
                entry_hash=entry_hash,
            )
            self._log.append(entry)
            return entry

    def log_entries(self, after_seq: int = 0, limit: Optional[int] = None) -> List[LogEntry]:
        with self._lock:
            entries = [e for e in self._log if e.seq > after_seq]
        return entries[:limit] if limit is not None else entries


# ============================================================
# SQLite store
# ============================================================

class SqliteRecordStore(RecordStore):
    """
    SQLite-backed store.

    Connections are thread-local and reused. Transactions use
    BEGIN IMMEDIATE so that mutating operations are serialized across
    threads and processes sharing the file.
    """

    def __init__(self, db_path: Union[str, Path]):
        self._db_path = Path(db_path)
        self._local = threading.local()
        self.init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._db_path), check_same_thread=False,
                                   isolation_level=None, timeout=30)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA temp_store=MEMORY;")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            self._local.depth = 0
        return conn

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions.
        Commits on success, rolls back on failure. Nested use joins the
        outer transaction.
        """
        conn = self._get_connection()
        if self._local.depth > 0:
            self._local.depth += 1
            try:
                yield self
            finally:
                self._local.depth -= 1
            return

        conn.execute("BEGIN IMMEDIATE")
        self._local.depth = 1
        try:
            yield self
            conn.execute("COMMIT")
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        finally:
            self._local.depth = 0

    def init_db(self) -> None:
        """
        Initialize database schema.
        Safe to call multiple times (uses IF NOT EXISTS).
        """
        with self.transaction():
            conn = self._get_connection()
            conn.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                address BLOB PRIMARY KEY,
                data BLOB NOT NULL
            );""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS nonces (
                nonce TEXT PRIMARY KEY,
                expires_at INTEGER NOT NULL
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_nonces_expires
            ON nonces(expires_at);""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS event_log (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                event_type TEXT NOT NULL,
                slot_time INTEGER NOT NULL,
                payload_json TEXT NOT NULL,
                payload_hash TEXT NOT NULL,
                prev_entry_hash TEXT,
                entry_hash TEXT NOT NULL
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_event_log_type
            ON event_log(event_type);""")

    def get(self, address: bytes) -> Optional[bytes]:
        cur = self._get_connection().execute(
            "SELECT data FROM accounts WHERE address=?", (bytes(address),)
        )
        row = cur.fetchone()
        return bytes(row["data"]) if row else None

    def create(self, address: bytes, data: bytes) -> None:
        with self.transaction():
            try:
                self._get_connection().execute(
                    "INSERT INTO accounts(address, data) VALUES(?,?)",
                    (bytes(address), bytes(data)),
                )
            except sqlite3.IntegrityError:
                raise DuplicateRecord()

    def put(self, address: bytes, data: bytes) -> None:
        with self.transaction():
            cur = self._get_connection().execute(
                "UPDATE accounts SET data=? WHERE address=?",
                (bytes(data), bytes(address)),
            )
            if cur.rowcount != 1:
                raise RecordNotFound()

    def scan(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        cur = self._get_connection().execute(
            "SELECT address, data FROM accounts ORDER BY address ASC"
        )
        for row in cur.fetchall():
            data = bytes(row["data"])
            if data.startswith(prefix):
                yield bytes(row["address"]), data

    def consume_nonce(self, nonce: str, expires_at: int, now: int) -> None:
        with self.transaction():
            conn = self._get_connection()
            conn.execute("DELETE FROM nonces WHERE expires_at < ?", (now,))
            try:
                conn.execute("INSERT INTO nonces(nonce, expires_at) VALUES(?,?)", (nonce, expires_at))
            except sqlite3.IntegrityError:
                raise ReplayedRequest()

    def latest_entry_hash(self) -> Optional[str]:
        cur = self._get_connection().execute(
            "SELECT entry_hash FROM event_log ORDER BY seq DESC LIMIT 1"
        )
        row = cur.fetchone()
        return row["entry_hash"] if row else None

    def append_log_entry(self, event_type, slot_time, payload_json, payload_hash,
                         prev_entry_hash, entry_hash) -> LogEntry:
        with self.transaction():
            cur = self._get_connection().execute(
                "INSERT INTO event_log(event_type, slot_time, payload_json, payload_hash, "
                "prev_entry_hash, entry_hash) VALUES(?,?,?,?,?,?)",
                (event_type, slot_time, payload_json, payload_hash, prev_entry_hash, entry_hash),
            )
            return LogEntry(
                seq=cur.lastrowid,
                event_type=event_type,
                slot_time=slot_time,
                payload_json=payload_json,
                payload_hash=payload_hash,
                prev_entry_hash=prev_entry_hash,
                entry_hash=entry_hash,
            )

    def log_entries(self, after_seq: int = 0, limit: Optional[int] = None) -> List[LogEntry]:
        sql = ("SELECT seq, event_type, slot_time, payload_json, payload_hash, "
               "prev_entry_hash, entry_hash FROM event_log WHERE seq > ? ORDER BY seq ASC")
        params = [after_seq]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        cur = self._get_connection().execute(sql, params)
        return [LogEntry(**dict(row)) for row in cur.fetchall()]

    def get_stats(self) -> Dict[str, int]:
        """Row counts per table, for health checks."""
        conn = self._get_connection()
        stats = {}
        for table in ["accounts", "nonces", "event_log"]:
            cur = conn.execute(f"SELECT COUNT(*) as cnt FROM {table}")
            stats[f"{table}_count"] = cur.fetchone()["cnt"]
        return stats

    def reset(self) -> None:
        """
        Reset the database for test isolation.
        Clears all tables but preserves schema.
        """
        with self.transaction():
            conn = self._get_connection()
            conn.execute("DELETE FROM accounts")
            conn.execute("DELETE FROM nonces")
            conn.execute("DELETE FROM event_log")
            conn.execute("DELETE FROM sqlite_sequence WHERE name='event_log'")

    def close(self) -> None:
        """Close the thread-local connection (for cleanup)."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None
