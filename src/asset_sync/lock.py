"""Cross-process run lock so two passes never reconcile one index at once."""

import contextlib
import logging
from pathlib import Path
from typing import Iterator, Optional, Union

import portalocker

from .errors import RunLocked

logger = logging.getLogger(__name__)


def default_lock_path(database: Union[str, Path]) -> Path:
    """Lock file next to the database: ``asset-index.db`` -> ``asset-index.db.lock``."""
    database = Path(database)
    return database.with_name(database.name + ".lock")


@contextlib.contextmanager
def run_lock(path: Union[str, Path], timeout: Optional[float] = 0) -> Iterator[Path]:
    """Hold an exclusive file lock for the duration of a pass.

    The lock file is left in place afterwards; the OS releases the lock if
    the process dies.

    Args:
        path: Lock file path
        timeout: Seconds to wait for the lock (0 = fail immediately)

    Raises:
        RunLocked: If another process holds the lock
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with portalocker.Lock(str(path), "a", timeout=timeout or 0, fail_when_locked=not timeout):
            logger.debug("Acquired run lock %s", path)
            yield path
    except portalocker.LockException as e:
        raise RunLocked(path) from e
