"""Reconciliation of the asset index against the filesystem.

One pass walks through ``SCANNING -> LOADING -> DIFFING -> APPLYING`` and
returns to ``IDLE``:

1. Scanning: hash every file under the configured root
2. Loading: fetch every recorded entry from the index
3. Diffing: plan an insert for each new path and an update for each changed
   digest; unchanged paths and paths only present in the index are left alone
4. Applying: upsert each plan entry, best effort

A pass never retries. Fatal errors (missing root, unreachable store,
cancellation) propagate; per-file read errors and per-entry write errors are
collected in the report and the pass carries on. Running the pass again
converges whatever was missed.
"""

import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from enum import Enum
from typing import List, Mapping, Optional, Sequence, Tuple, Union

from .cancel import CancelToken, check
from .config import SyncConfig
from .core import (
    IndexEntry,
    PlanEntry,
    ReconcileReport,
    UpdatePlan,
    UpsertFailure,
    entry_from_plan,
)
from .diffing import compute_plan, find_stale
from .errors import FileNotIndexed, StoreUnavailable, UpsertFailed
from .lock import default_lock_path, run_lock
from .scanner import TreeScanner
from .store import IndexStore, SQLiteIndexStore

logger = logging.getLogger(__name__)


class ReconcileState(str, Enum):
    """Phase of the current pass."""

    IDLE = "idle"
    SCANNING = "scanning"
    LOADING = "loading"
    DIFFING = "diffing"
    APPLYING = "applying"


class Reconciler:
    """Brings an IndexStore in line with a directory tree."""

    def __init__(
        self,
        config: SyncConfig,
        scanner: Optional[TreeScanner] = None,
        store: Optional[IndexStore] = None,
    ):
        """
        Args:
            config: Pass configuration
            scanner: Tree scanner (built from config when omitted)
            store: Index store (a SQLiteIndexStore on config.database when
                omitted; closed again by ``close()``)
        """
        self.config = config
        self.scanner = scanner or TreeScanner(
            algorithm=config.hash_algorithm,
            ignore=config.ignore,
            symlinks=config.symlinks,
            max_workers=config.scan_workers,
            key_prefix=config.key_prefix,
        )
        self._owns_store = store is None
        self.store = store or SQLiteIndexStore(
            config.database, table=config.table, pool_size=config.pool_size
        )
        self.state = ReconcileState.IDLE

    def __enter__(self) -> "Reconciler":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    def close(self) -> None:
        if self._owns_store:
            self.store.close()

    def _enter(self, state: ReconcileState) -> None:
        logger.debug("Reconciler %s -> %s", self.state.value, state.value)
        self.state = state

    def _token(self, cancel: Optional[CancelToken]) -> Optional[CancelToken]:
        if cancel is None and self.config.timeout:
            return CancelToken(deadline=self.config.timeout)
        return cancel

    # ============= Pass =============

    def run(self, cancel: Optional[CancelToken] = None, dry_run: bool = False) -> ReconcileReport:
        """Run one reconciliation pass.

        Args:
            cancel: Cancellation token (defaults to one armed with
                config.timeout, if set)
            dry_run: Stop after diffing and return the plan unapplied

        Returns:
            ReconcileReport describing what was planned and written

        Raises:
            ScanRootMissing: If the root is missing
            StoreUnavailable: If the index cannot be read
            ReconciliationCancelled: If cancelled or past the deadline
        """
        cancel = self._token(cancel)
        started = time.monotonic()
        try:
            self._enter(ReconcileState.SCANNING)
            logger.info("Running asset digest checks on %s...", self.config.root)
            scan = self.scanner.scan(self.config.root, cancel)

            self._enter(ReconcileState.LOADING)
            logger.info("Fetching index hashes...")
            recorded = self.store.fetch_all()
            logger.info("Got %d hashes from the index", len(recorded))
            check(cancel)

            self._enter(ReconcileState.DIFFING)
            local = scan.digests
            plan = compute_plan(local, recorded)
            stale = find_stale(local, recorded, unreadable=[s.path for s in scan.skipped])
            logger.info("Got %d hashes to update", plan.size)

            report = ReconcileReport(
                root=str(self.config.root),
                files_scanned=len(scan.files),
                bytes_scanned=scan.total_size,
                entries_loaded=len(recorded),
                plan=plan,
                skipped=scan.skipped,
                stale=[entry.path for entry in stale],
                dry_run=dry_run,
            )

            if not dry_run and not plan.is_empty:
                self._enter(ReconcileState.APPLYING)
                report.applied, report.failures = self.apply(plan, cancel)
                if report.failures:
                    logger.warning(
                        "%d of %d index writes failed", len(report.failures), plan.size
                    )

            report.duration = time.monotonic() - started
            logger.info("Reconciliation finished: %s", report.summary())
            return report
        finally:
            self._enter(ReconcileState.IDLE)

    def plan(self, cancel: Optional[CancelToken] = None) -> ReconcileReport:
        """Scan and diff without writing anything."""
        return self.run(cancel=cancel, dry_run=True)

    def apply(
        self, plan: UpdatePlan, cancel: Optional[CancelToken] = None
    ) -> Tuple[List[IndexEntry], List[UpsertFailure]]:
        """Upsert every plan entry; failures are collected, not raised.

        With ``apply_workers == 1`` writes are strictly sequential in plan
        order. More workers run writes concurrently, capped at the pool size;
        results are still reported in plan order.
        """
        workers = min(self.config.apply_workers, self.config.pool_size)
        results: List[Union[IndexEntry, UpsertFailure]] = []

        if workers <= 1:
            for item in plan.entries:
                check(cancel)
                results.append(self._upsert_one(item))
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(self._upsert_one, item) for item in plan.entries]
                try:
                    for future in futures:
                        check(cancel)
                        results.append(future.result())
                except BaseException:
                    for future in futures:
                        future.cancel()
                    raise

        applied = [r for r in results if isinstance(r, IndexEntry)]
        failures = [r for r in results if isinstance(r, UpsertFailure)]
        return applied, failures

    def _upsert_one(self, item: PlanEntry) -> Union[IndexEntry, UpsertFailure]:
        try:
            return self.store.upsert(entry_from_plan(item))
        except UpsertFailed as e:
            logger.warning("%s", e)
            return UpsertFailure.from_error(e)
        except StoreUnavailable as e:
            logger.error("Could not write %s: %s", item.path, e)
            return UpsertFailure(path=item.path, id=item.id, message=str(e))

    def submit(self, executor: Executor, cancel: Optional[CancelToken] = None) -> "Future[ReconcileReport]":
        """Start a pass on ``executor``; wait on the future before serving."""
        return executor.submit(self.run, cancel)

    # ============= Maintenance =============

    def stale_entries(self, cancel: Optional[CancelToken] = None) -> List[IndexEntry]:
        """Index entries whose files are gone from disk.

        Entries for files that exist but could not be read are not stale.
        """
        cancel = self._token(cancel)
        try:
            self._enter(ReconcileState.SCANNING)
            scan = self.scanner.scan(self.config.root, cancel)
            self._enter(ReconcileState.LOADING)
            recorded = self.store.fetch_all()
            check(cancel)
            self._enter(ReconcileState.DIFFING)
            return find_stale(scan.digests, recorded, unreadable=[s.path for s in scan.skipped])
        finally:
            self._enter(ReconcileState.IDLE)

    def prune(
        self,
        cancel: Optional[CancelToken] = None,
        entries: Optional[Sequence[IndexEntry]] = None,
    ) -> List[IndexEntry]:
        """Delete index entries whose files are gone from disk.

        Never part of ``run()``; stale entries stay until this is invoked.

        Args:
            cancel: Cancellation token
            entries: Entries already shown to and confirmed by the caller.
                Exactly these are deleted, without scanning again. When
                omitted, ``stale_entries()`` decides.

        Returns:
            The entries that were removed
        """
        stale = list(entries) if entries is not None else self.stale_entries(cancel)
        if not stale:
            logger.info("No stale index entries")
            return []
        try:
            self._enter(ReconcileState.APPLYING)
            removed = self.store.delete(entry.id for entry in stale if entry.id is not None)
            logger.info("Pruned %d stale index entries", removed)
            return stale
        finally:
            self._enter(ReconcileState.IDLE)

    def expired_paths(self, pairs: Mapping[str, str]) -> List[str]:
        """Paths whose client-held digest no longer matches the index.

        Args:
            pairs: path -> digest as known by a client

        Raises:
            FileNotIndexed: If a path has no index entry
        """
        expired = []
        for path, digest in pairs.items():
            entry = self.store.lookup(path)
            if entry is None:
                raise FileNotIndexed(path)
            if entry.digest != digest:
                expired.append(path)
        return expired


def _open_store(config: SyncConfig, create: bool) -> SQLiteIndexStore:
    store = SQLiteIndexStore(config.database, table=config.table, pool_size=config.pool_size)
    try:
        if create:
            store.ensure_schema()
            return store
        if store.has_table():
            return store
    except BaseException:
        store.close()
        raise
    store.close()
    logger.info(
        "No %s table in %s yet, planning against an empty index", config.table, config.database
    )
    empty = SQLiteIndexStore(":memory:", table=config.table)
    empty.ensure_schema()
    return empty


def reconcile(
    config: SyncConfig,
    cancel: Optional[CancelToken] = None,
    dry_run: bool = False,
    lock_timeout: Optional[float] = 0,
) -> ReconcileReport:
    """Run one locked pass against the configured SQLite index.

    Creates the index table if it does not exist yet. A dry run never
    creates the database or the table; a missing table plans every file as
    an insert.

    Raises:
        RunLocked: If another pass holds the lock
    """
    lock_path = config.lock_path or default_lock_path(config.database)
    with run_lock(lock_path, timeout=lock_timeout):
        store = _open_store(config, create=not dry_run)
        try:
            with Reconciler(config, store=store) as reconciler:
                return reconciler.run(cancel=cancel, dry_run=dry_run)
        finally:
            store.close()
