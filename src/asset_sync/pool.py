"""Bounded connection pool for the index store.

At most ``size`` connections exist at any time. A caller that finds every
connection checked out waits for one to come back instead of failing; only a
timeout while waiting, or a connection that cannot be opened at all, is
reported as ``StoreUnavailable``.
"""

import contextlib
import logging
import queue
import sqlite3
import threading
from typing import Callable, Iterator, List

from .errors import AssetSyncError, StoreUnavailable

logger = logging.getLogger(__name__)


class ConnectionPool:
    """Lazily-filled pool of DB-API connections."""

    def __init__(
        self,
        factory: Callable[[], sqlite3.Connection],
        size: int = 5,
        timeout: float = 30.0,
    ):
        """
        Args:
            factory: Opens a new connection
            size: Maximum number of open connections
            timeout: Seconds to wait for a free connection
        """
        if size < 1:
            raise ValueError("Pool size must be at least 1")
        self._factory = factory
        self.size = size
        self.timeout = timeout
        self._idle: "queue.LifoQueue[sqlite3.Connection]" = queue.LifoQueue()
        self._slots = threading.BoundedSemaphore(size)
        self._lock = threading.Lock()
        self._all: List[sqlite3.Connection] = []
        self._closed = False

    def acquire(self) -> sqlite3.Connection:
        """Check out a connection, blocking while the pool is exhausted."""
        if self._closed:
            raise StoreUnavailable("Connection pool is closed")
        if not self._slots.acquire(timeout=self.timeout):
            raise StoreUnavailable(
                f"Timed out after {self.timeout}s waiting for a store connection"
            )
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass

        try:
            conn = self._factory()
        except Exception as e:
            self._slots.release()
            raise StoreUnavailable(f"Could not connect to index store: {e}") from e

        with self._lock:
            self._all.append(conn)
        logger.debug("Opened store connection %d/%d", len(self._all), self.size)
        return conn

    def release(self, conn: sqlite3.Connection, discard: bool = False) -> None:
        """Return a connection to the pool (or close it if ``discard``)."""
        if discard or self._closed:
            with self._lock:
                if conn in self._all:
                    self._all.remove(conn)
            with contextlib.suppress(sqlite3.Error):
                conn.close()
        else:
            self._idle.put(conn)
        self._slots.release()

    @contextlib.contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager around acquire/release.

        A connection that raised a driver-level error is discarded rather than
        handed to the next caller, including when the store has already
        wrapped that error in one of its own.
        """
        conn = self.acquire()
        broken = False
        try:
            yield conn
        except sqlite3.OperationalError:
            broken = True
            raise
        except AssetSyncError as e:
            broken = isinstance(e.__cause__, sqlite3.OperationalError)
            raise
        finally:
            self.release(conn, discard=broken)

    def close(self) -> None:
        """Close every idle connection and refuse new checkouts."""
        self._closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            with contextlib.suppress(sqlite3.Error):
                conn.close()
        with self._lock:
            self._all.clear()
