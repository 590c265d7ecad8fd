"""Recursive tree scanning with per-file content digests.

The walk itself is single-threaded and visits entries in sorted order; file
digests are computed on a bounded thread pool and merged back on the calling
thread, so the resulting mapping does not depend on completion order.

A file that cannot be read is skipped and reported, never fatal: one bad
asset must not keep the rest of the tree out of the index.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set, Tuple, Union

from .cancel import CancelToken, check
from .constants import DEFAULT_HASH_ALGORITHM
from .core import FileRecord, ScanResult, SkippedFile
from .errors import FileUnreadable, ScanError, ScanRootMissing
from .hashing import compute_file_digest, validate_algorithm
from .ignore import IgnoreSpec
from .utils import is_utf8, printable_path

logger = logging.getLogger(__name__)


class SymlinkPolicy(str, Enum):
    """Policy for handling symbolic links."""

    SKIP = "skip"  # Leave links out of the index
    FOLLOW = "follow"  # Hash the target file / descend into the target dir


class TreeScanner:
    """Produces a flat ``path -> FileRecord`` mapping for a directory tree."""

    def __init__(
        self,
        algorithm: str = DEFAULT_HASH_ALGORITHM,
        ignore: Iterable[str] = (),
        symlinks: Union[SymlinkPolicy, str] = SymlinkPolicy.SKIP,
        max_workers: int = 4,
        key_prefix: str = "",
        use_default_ignores: bool = True,
    ):
        """
        Args:
            algorithm: hashlib algorithm for file digests
            ignore: Extra gitignore-style patterns to exclude
            symlinks: What to do with symbolic links
            max_workers: Files hashed concurrently
            key_prefix: Prepended to every relative path key (e.g. "images/")
            use_default_ignores: Whether built-in ignore patterns apply
        """
        self.algorithm = validate_algorithm(algorithm)
        self.ignore_patterns = list(ignore)
        self.symlinks = SymlinkPolicy(symlinks)
        self.max_workers = max(1, max_workers)
        self.key_prefix = key_prefix
        self.use_default_ignores = use_default_ignores

    def scan(self, root: Union[str, Path], cancel: Optional[CancelToken] = None) -> ScanResult:
        """Scan ``root`` and hash every regular file below it.

        Raises:
            ScanRootMissing: If root does not exist or is not a directory
            ReconciliationCancelled: If the token fires mid-scan
        """
        root = Path(root)
        if not root.is_dir():
            raise ScanRootMissing(root)

        logger.info("Getting contents of %s...", root)
        ignore = IgnoreSpec(root, self.ignore_patterns, use_defaults=self.use_default_ignores)
        skipped: List[SkippedFile] = []
        visited: Set[Path] = {root.resolve()}
        candidates = list(self._walk(root, "", ignore, skipped, visited, cancel))

        files = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures: List[Tuple[str, Future]] = [
                (relpath, executor.submit(self._hash_one, relpath, path))
                for relpath, path in candidates
            ]
            try:
                for relpath, future in futures:
                    check(cancel)
                    result = future.result()
                    if isinstance(result, FileUnreadable):
                        logger.warning("Skipping unreadable file %s: %s", result.path, result.reason)
                        skipped.append(SkippedFile.from_error(result))
                    else:
                        files[result.path] = result
            except BaseException:
                for _, future in futures:
                    future.cancel()
                raise

        logger.info("Got %d hashes (%d skipped)", len(files), len(skipped))
        return ScanResult(files=files, skipped=skipped)

    def _key(self, relpath: str) -> str:
        return f"{self.key_prefix}{relpath}"

    def _walk(
        self,
        directory: Path,
        rel: str,
        ignore: IgnoreSpec,
        skipped: List[SkippedFile],
        visited: Set[Path],
        cancel: Optional[CancelToken],
    ) -> Iterator[Tuple[str, Path]]:
        """Yield (relative path, absolute path) for every file to hash."""
        try:
            children = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            if not rel:
                raise ScanError(f"Cannot list scan root {directory}: {e}") from e
            logger.warning("Skipping unreadable directory %s: %s", rel, e)
            skipped.append(SkippedFile(path=self._key(rel) + "/", reason=str(e)))
            return

        for child in children:
            check(cancel)
            child_rel = f"{rel}/{child.name}" if rel else child.name
            if not is_utf8(child_rel):
                shown = printable_path(child_rel)
                logger.warning("Skipping %s: name is not valid UTF-8", shown)
                skipped.append(SkippedFile(path=self._key(shown), reason="name is not valid UTF-8"))
                continue

            try:
                is_link = child.is_symlink()
                if is_link and self.symlinks == SymlinkPolicy.SKIP:
                    logger.debug("Skipping symlink %s", child_rel)
                    continue
                is_dir = child.is_dir()
                is_file = not is_dir and child.is_file()
            except OSError as e:
                logger.warning("Skipping %s: %s", child_rel, e)
                skipped.append(SkippedFile(path=self._key(child_rel), reason=str(e)))
                continue

            if is_dir:
                if not ignore.should_traverse(child_rel):
                    continue
                if is_link:
                    # Followed links may loop back into the tree
                    target = child.resolve()
                    if target in visited:
                        logger.debug("Skipping symlink loop %s -> %s", child_rel, target)
                        continue
                    visited.add(target)
                yield from self._walk(child, child_rel, ignore, skipped, visited, cancel)
            elif is_file:
                if ignore.is_ignored(child_rel):
                    continue
                yield child_rel, child
            else:
                # Broken link, socket, FIFO, device
                logger.debug("Skipping non-regular file %s", child_rel)

    def _hash_one(self, relpath: str, path: Path) -> Union[FileRecord, FileUnreadable]:
        key = self._key(relpath)
        try:
            size = path.stat().st_size
            digest = compute_file_digest(path, self.algorithm)
        except OSError as e:
            return FileUnreadable(key, e.strerror or str(e))
        return FileRecord(path=key, digest=digest, size=size)
