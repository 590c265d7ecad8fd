"""Persistent path -> digest index.

``IndexStore`` is the protocol the reconciler talks to; ``SQLiteIndexStore``
is the shipped implementation. The table keeps the column layout the asset
service has always used::

    id    INTEGER PRIMARY KEY AUTOINCREMENT
    path  TEXT
    hash  TEXT

Writes are not atomic across a batch: every upsert commits on its own, so a
crash halfway through a plan leaves the index partially updated. The next
pass picks up whatever was missed.
"""

import logging
import re
import sqlite3
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Union

from .constants import DEFAULT_POOL_SIZE, DEFAULT_TABLE
from .core import IndexEntry, RawRow, entry_from_row
from .errors import ConfigError, StoreError, UpsertFailed
from .pool import ConnectionPool

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class IndexStore(Protocol):
    """
    Protocol for index store implementations.

    Implementations own identifier assignment: entries handed to ``upsert``
    without an id are inserted and come back with one.
    """

    def fetch_all(self) -> List[IndexEntry]:
        """
        Return every recorded entry.

        Raises:
            StoreUnavailable: If no connection can be obtained
        """
        ...

    def upsert(self, entry: IndexEntry) -> IndexEntry:
        """
        Update the digest for ``entry.id``, or insert when there is no id.

        Returns:
            The entry as stored, with its id

        Raises:
            UpsertFailed: If the write was rejected
            StoreUnavailable: If no connection can be obtained
        """
        ...

    def delete(self, ids: Iterable[int]) -> int:
        """Delete entries by id and return how many rows went away."""
        ...

    def lookup(self, path: str) -> Optional[IndexEntry]:
        """Return the entry recorded for ``path``, if any."""
        ...


def validate_table_name(table: str) -> str:
    """Table names are interpolated into SQL, so only plain identifiers pass."""
    if not _IDENTIFIER.match(table or ""):
        raise ConfigError(f"Invalid index table name: {table!r}")
    return table


class SQLiteIndexStore:
    """
    Index store backed by a SQLite table.

    Connections come from a bounded ``ConnectionPool`` shared by every call
    for the lifetime of the store.
    """

    def __init__(
        self,
        database: Union[str, Path],
        table: str = DEFAULT_TABLE,
        pool_size: int = DEFAULT_POOL_SIZE,
        timeout: float = 30.0,
    ):
        """
        Args:
            database: SQLite database file (or ":memory:")
            table: Name of the index table
            pool_size: Maximum concurrent connections
            timeout: Seconds to wait for a connection or a database lock
        """
        self.database = str(database)
        self.table = validate_table_name(table)
        self.timeout = timeout
        # Every :memory: connection is a separate database
        if self.database == ":memory:":
            pool_size = 1
        self.pool = ConnectionPool(self._connect, size=pool_size, timeout=timeout)

    def _connect(self) -> sqlite3.Connection:
        if self.database != ":memory:":
            parent = Path(self.database).parent
            if not parent.is_dir():
                raise FileNotFoundError(f"Database directory does not exist: {parent}")
        return sqlite3.connect(self.database, timeout=self.timeout, check_same_thread=False)

    def ensure_schema(self) -> None:
        """Create the index table and its path index if missing."""
        with self.pool.connection() as conn:
            try:
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {self.table} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        path TEXT,
                        hash TEXT
                    )
                """)
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{self.table}_path ON {self.table}(path)"
                )
                conn.commit()
            except sqlite3.Error as e:
                raise StoreError(f"Could not create table {self.table}: {e}") from e

    def fetch_rows(self) -> List[RawRow]:
        """Read every row as stored, NULLs included."""
        with self.pool.connection() as conn:
            try:
                cursor = conn.execute(f"SELECT id, path, hash FROM {self.table} ORDER BY id")
                rows = cursor.fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Could not read table {self.table}: {e}") from e
        return [RawRow(id=row[0], path=row[1], hash=row[2]) for row in rows]

    def fetch_all(self) -> List[IndexEntry]:
        entries = []
        for row in self.fetch_rows():
            entry = entry_from_row(row)
            if entry is None:
                logger.debug("Ignoring index row %s without a path", row.id)
                continue
            entries.append(entry)
        return entries

    def upsert(self, entry: IndexEntry) -> IndexEntry:
        with self.pool.connection() as conn:
            try:
                if entry.id is not None:
                    cursor = conn.execute(
                        f"UPDATE {self.table} SET hash = ? WHERE id = ?",
                        (entry.digest, entry.id),
                    )
                    if cursor.rowcount == 0:
                        conn.rollback()
                        raise UpsertFailed(entry.path, entry.id, "no row with that id")
                    conn.commit()
                    logger.debug("Updated %s (id %s)", entry.path, entry.id)
                    return entry

                cursor = conn.execute(
                    f"INSERT INTO {self.table} (path, hash) VALUES (?, ?)",
                    (entry.path, entry.digest),
                )
                conn.commit()
                logger.debug("Inserted %s (id %s)", entry.path, cursor.lastrowid)
                return entry.model_copy(update={"id": cursor.lastrowid})
            except (sqlite3.Error, UnicodeEncodeError) as e:
                # Undecodable filenames cannot be bound as TEXT
                conn.rollback()
                raise UpsertFailed(entry.path, entry.id, str(e)) from e

    def upsert_many(self, entries: Iterable[IndexEntry]) -> List[IndexEntry]:
        """Upsert entries one by one; stops at the first failure."""
        return [self.upsert(entry) for entry in entries]

    def delete(self, ids: Iterable[int]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        placeholders = ",".join("?" * len(ids))
        with self.pool.connection() as conn:
            try:
                cursor = conn.execute(
                    f"DELETE FROM {self.table} WHERE id IN ({placeholders})", ids
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(f"Could not delete from {self.table}: {e}") from e
        return cursor.rowcount

    def lookup(self, path: str) -> Optional[IndexEntry]:
        # Highest id wins, matching how fetch_all resolves duplicates
        with self.pool.connection() as conn:
            try:
                row = conn.execute(
                    f"SELECT id, path, hash FROM {self.table} WHERE path = ? "
                    "ORDER BY id DESC LIMIT 1",
                    (path,),
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"Could not read table {self.table}: {e}") from e
        if row is None:
            return None
        return entry_from_row(RawRow(id=row[0], path=row[1], hash=row[2]))

    def count(self) -> int:
        with self.pool.connection() as conn:
            try:
                return conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]
            except sqlite3.Error as e:
                raise StoreError(f"Could not read table {self.table}: {e}") from e

    def has_table(self) -> bool:
        """True if the index table exists. Never creates the database file."""
        if self.database != ":memory:" and not Path(self.database).is_file():
            return False
        with self.pool.connection() as conn:
            try:
                row = conn.execute(
                    "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                    (self.table,),
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"Could not read schema of {self.database}: {e}") from e
        return row is not None

    def close(self) -> None:
        self.pool.close()
