"""Core data models for asset-sync.

Three record shapes take part in a reconciliation pass and are kept apart on
purpose:

1. ``FileRecord``  - what the scanner saw on disk (never persisted)
2. ``RawRow``      - a row exactly as the store returned it (NULLs allowed)
3. ``IndexEntry``  - the domain view of one persisted path -> digest pair

``PlanEntry`` items collected in an ``UpdatePlan`` describe the writes needed
to bring the index in line with the disk. Conversions between the shapes go
through the explicit functions at the bottom of this module.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .errors import FileUnreadable, UpsertFailed


# ============= Scan Results =============

class FileRecord(BaseModel):
    """A file observed during a scan."""

    path: str  # POSIX relative path, unique within one scan
    digest: str  # hex
    size: int = 0


class SkippedFile(BaseModel):
    """A file the scanner could not read."""

    path: str
    reason: str

    @classmethod
    def from_error(cls, error: FileUnreadable) -> "SkippedFile":
        return cls(path=error.path, reason=error.reason)


class ScanResult(BaseModel):
    """Flat mapping of relative path to file record, plus what was skipped."""

    files: Dict[str, FileRecord] = Field(default_factory=dict)
    skipped: List[SkippedFile] = Field(default_factory=list)

    @property
    def digests(self) -> Dict[str, str]:
        """path -> digest view used for diffing."""
        return {path: record.digest for path, record in self.files.items()}

    @property
    def total_size(self) -> int:
        return sum(record.size for record in self.files.values())


# ============= Index =============

class RawRow(BaseModel):
    """One row of the index table as read from the store."""

    id: int
    path: Optional[str] = None
    hash: Optional[str] = None


class IndexEntry(BaseModel):
    """A persisted (or about to be persisted) path -> digest pair.

    ``id`` is assigned by the store on first insert and never changes.
    """

    id: Optional[int] = None
    path: str
    digest: str

    @property
    def is_persisted(self) -> bool:
        return self.id is not None


# ============= Update Plan =============

class PlanAction(str, Enum):
    """Kind of write a plan entry needs."""

    INSERT = "insert"
    UPDATE = "update"


class PlanEntry(BaseModel):
    """One pending write against the index."""

    id: Optional[int] = None
    path: str
    digest: str

    @property
    def action(self) -> PlanAction:
        return PlanAction.INSERT if self.id is None else PlanAction.UPDATE


class UpdatePlan(BaseModel):
    """Ordered writes for one reconciliation pass."""

    entries: List[PlanEntry] = Field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def inserts(self) -> List[PlanEntry]:
        return [e for e in self.entries if e.action == PlanAction.INSERT]

    @property
    def updates(self) -> List[PlanEntry]:
        return [e for e in self.entries if e.action == PlanAction.UPDATE]

    def summary(self) -> str:
        """Get human-readable summary."""
        if self.is_empty:
            return "Index is up to date"
        return f"{len(self.inserts)} to insert, {len(self.updates)} to update"


# ============= Run Report =============

class UpsertFailure(BaseModel):
    """A plan entry that could not be written."""

    path: str
    id: Optional[int] = None
    message: str

    @classmethod
    def from_error(cls, error: UpsertFailed) -> "UpsertFailure":
        return cls(path=error.path, id=error.entry_id, message=error.reason)


class ReconcileReport(BaseModel):
    """Outcome of one reconciliation pass."""

    root: str
    files_scanned: int = 0
    bytes_scanned: int = 0
    entries_loaded: int = 0
    plan: UpdatePlan = Field(default_factory=UpdatePlan)
    applied: List[IndexEntry] = Field(default_factory=list)
    failures: List[UpsertFailure] = Field(default_factory=list)
    skipped: List[SkippedFile] = Field(default_factory=list)
    stale: List[str] = Field(default_factory=list)
    dry_run: bool = False
    duration: float = 0.0

    @property
    def inserted(self) -> int:
        if self.dry_run:
            return 0
        return len(self.plan.inserts) - sum(1 for f in self.failures if f.id is None)

    @property
    def updated(self) -> int:
        if self.dry_run:
            return 0
        return len(self.plan.updates) - sum(1 for f in self.failures if f.id is not None)

    @property
    def succeeded(self) -> bool:
        """True when every planned write landed."""
        return not self.failures

    def summary(self) -> str:
        """Get human-readable summary."""
        parts = [f"{self.files_scanned} files scanned"]
        if self.dry_run:
            parts.append(f"plan: {self.plan.summary()}")
        else:
            parts.append(f"{self.inserted} inserted")
            parts.append(f"{self.updated} updated")
        if self.failures:
            parts.append(f"{len(self.failures)} failed")
        if self.skipped:
            parts.append(f"{len(self.skipped)} unreadable")
        if self.stale:
            parts.append(f"{len(self.stale)} stale")
        return ", ".join(parts)


# ============= Conversions =============

def entry_from_row(row: RawRow) -> Optional[IndexEntry]:
    """Convert a store row to an entry; rows without a path are dropped."""
    if row.path is None:
        return None
    return IndexEntry(id=row.id, path=row.path, digest=row.hash or "")


def entry_from_plan(item: PlanEntry) -> IndexEntry:
    """Build the entry an upsert should write for a plan item."""
    return IndexEntry(id=item.id, path=item.path, digest=item.digest)
