"""Diff computation between the scanned tree and the recorded index."""

import logging
from typing import Dict, List, Mapping, Sequence

from .core import IndexEntry, PlanEntry, UpdatePlan

logger = logging.getLogger(__name__)


def index_by_path(entries: Sequence[IndexEntry]) -> Dict[str, IndexEntry]:
    """
    Build a path -> entry mapping from recorded entries.

    The store should never hold two entries for one path, but if it does the
    last one observed wins.
    """
    by_path: Dict[str, IndexEntry] = {}
    for entry in entries:
        previous = by_path.get(entry.path)
        if previous is not None:
            logger.warning(
                "Duplicate index entries for %s (ids %s and %s), using id %s",
                entry.path, previous.id, entry.id, entry.id,
            )
        by_path[entry.path] = entry
    return by_path


def compute_plan(
    local: Mapping[str, str],
    recorded: Sequence[IndexEntry],
) -> UpdatePlan:
    """
    Compute the writes needed to bring the index in line with the disk.

    Args:
        local: Scanned path -> digest.
        recorded: Entries currently in the index.

    Returns:
        UpdatePlan in sorted path order where:
        - paths missing from the index become inserts (id None)
        - paths whose digest changed become updates (original id kept)
        - paths with an equal digest are left out

    Note:
        Paths that are only in the index (files deleted from disk) are not
        planned. Removing them is a separate, explicit prune.
    """
    recorded_by_path = index_by_path(recorded)
    entries = []

    for path in sorted(local):
        digest = local[path]
        existing = recorded_by_path.get(path)

        if existing is None:
            logger.debug("Hash of %s is not stored in the index", path)
            entries.append(PlanEntry(id=None, path=path, digest=digest))
        elif existing.digest != digest:
            logger.debug("Hash of %s is out of date", path)
            entries.append(PlanEntry(id=existing.id, path=path, digest=digest))

    return UpdatePlan(entries=entries)


def find_stale(
    local: Mapping[str, str],
    recorded: Sequence[IndexEntry],
    unreadable: Sequence[str] = (),
) -> List[IndexEntry]:
    """
    Recorded entries whose path no longer exists on disk, in id order.

    Args:
        local: Scanned path -> digest.
        recorded: Entries currently in the index.
        unreadable: Paths the scan skipped. A trailing slash marks a whole
            directory. These exist on disk, so their entries are never stale.
    """
    skipped_files = {p for p in unreadable if not p.endswith("/")}
    skipped_dirs = tuple(p for p in unreadable if p.endswith("/"))

    stale = [
        entry for entry in recorded
        if entry.path not in local
        and entry.path not in skipped_files
        and not entry.path.startswith(skipped_dirs)
    ]
    return sorted(stale, key=lambda e: (e.id is None, e.id or 0))
