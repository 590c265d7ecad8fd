"""Custom exceptions for asset-sync.

Fatal errors abort a reconciliation pass and propagate to whoever started it.
Non-fatal errors (``FileUnreadable``, ``UpsertFailed``) are collected in the
run report while the pass carries on.
"""


class AssetSyncError(RuntimeError):
    """Base class for all asset-sync errors."""
    pass


# Store Errors
class StoreError(AssetSyncError):
    """Base class for index store errors."""
    pass


class StoreUnavailable(StoreError):
    """A connection to the index store could not be obtained."""
    pass


class UpsertFailed(StoreError):
    """A single insert or update against the index failed."""

    def __init__(self, path: str, entry_id, reason: str):
        self.path = path
        self.entry_id = entry_id
        self.reason = reason
        action = "insert" if entry_id is None else f"update of id {entry_id}"
        super().__init__(f"Failed {action} for '{path}': {reason}")


class FileNotIndexed(StoreError):
    """A path was looked up that the index has no entry for."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"The file '{path}' was not found in the index.")


# Scan Errors
class ScanError(AssetSyncError):
    """Base class for filesystem scan errors."""
    pass


class ScanRootMissing(ScanError):
    """Configured root does not exist or is not a directory."""

    def __init__(self, root):
        self.root = root
        super().__init__(f"Scan root does not exist or is not a directory: {root}")


class FileUnreadable(ScanError):
    """A single file could not be read or hashed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not read '{path}': {reason}")


# Run Control Errors
class ReconciliationCancelled(AssetSyncError):
    """The pass was cancelled or ran past its deadline."""
    pass


class RunLocked(AssetSyncError):
    """Another reconciliation pass holds the run lock."""

    def __init__(self, lock_path):
        self.lock_path = lock_path
        super().__init__(
            f"Another reconciliation is already running (lock held on {lock_path})"
        )


# Configuration Errors
class ConfigError(AssetSyncError):
    """Invalid or unreadable configuration."""
    pass
