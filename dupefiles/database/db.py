"""
Database connection management.
"""
import sqlite3
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..exceptions import StoreUnavailable, TransactionFailure
from .schema import init_schema

BUSY_TIMEOUT_MS = 5000

class DBManager:
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        # SQLite WAL mode allows multiple readers, but writes need serialization
        self._write_lock = threading.Lock()

    def connect(self) -> sqlite3.Connection:
        """
        Connects to the SQLite database, configures pragmas and ensures the schema.
        Raises StoreUnavailable if any of that fails.
        """
        if self._conn:
            return self._conn

        logging.info(f"Connecting to database: {self.db_path}")
        conn = None
        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Scanner threads write membership rows through this connection
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=BUSY_TIMEOUT_MS / 1000)

            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS};")
            conn.execute("PRAGMA temp_store=MEMORY;")
            conn.execute("PRAGMA foreign_keys=ON;")

            init_schema(conn)
        except (sqlite3.Error, OSError) as e:
            if conn is not None:
                conn.close()
            raise StoreUnavailable(f"Cannot open catalog database {self.db_path}: {e}") from e

        self._conn = conn
        return self._conn

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreUnavailable("Database is not open.")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Runs the enclosed statements as one transaction under the write lock.
        Commits on success; rolls back and raises TransactionFailure on a
        database error. Other exceptions roll back and propagate unchanged.
        """
        conn = self.conn
        with self._write_lock:
            try:
                with conn:
                    yield conn
            except sqlite3.Error as e:
                raise TransactionFailure(f"Transaction rolled back: {e}") from e
