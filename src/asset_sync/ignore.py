"""Gitignore-style pattern matching for asset scans."""

from pathlib import Path
from typing import Iterable

from pathspec import GitIgnoreSpec

from .constants import IGNORE_FILE
from .errors import ScanError


# Default patterns to always ignore
DEFAULTS = [
    # Version control
    ".git/",
    ".svn/",
    ".hg/",

    # The ignore file itself
    IGNORE_FILE,

    # IDE and editors
    ".idea/",
    ".vscode/",
    "*.swp",
    "*.swo",
    "*~",
    ".*.swp",

    # OS files
    ".DS_Store",
    "Thumbs.db",
    "desktop.ini",

    # Partial downloads and uploads
    "*.part",
    "*.crdownload",
]


class IgnoreSpec:
    """Manages gitignore-style patterns for file exclusion."""

    def __init__(self, root: Path, extra: Iterable[str] = (), use_defaults: bool = True):
        """Initialize ignore spec with default and custom patterns.

        Args:
            root: Root of the scanned tree
            extra: Additional patterns to include
            use_defaults: Whether to start from DEFAULTS

        Raises:
            ScanError: If the tree has an .assetignore that cannot be read
        """
        self.root = Path(root)
        patterns = list(DEFAULTS) if use_defaults else []

        # Tree-specific .assetignore
        ignore_file = self.root / IGNORE_FILE
        if ignore_file.is_file():
            try:
                content = ignore_file.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                raise ScanError(f"Cannot read ignore file {ignore_file}: {e}") from e
            for line in content.splitlines():
                line = line.strip()
                if line and not line.startswith("#"):
                    patterns.append(line)

        patterns.extend(extra)
        self.patterns = patterns
        self.spec = GitIgnoreSpec.from_lines(patterns)

    def is_ignored(self, relpath: str) -> bool:
        """Check if a root-relative POSIX path should be ignored."""
        return self.spec.match_file(relpath)

    def should_traverse(self, dirpath: str) -> bool:
        """Check if a directory should be descended into during scanning.

        Args:
            dirpath: Root-relative directory path in POSIX format

        Returns:
            True if the directory should be traversed
        """
        # Directory patterns only match with a trailing slash
        if not dirpath.endswith("/"):
            dirpath = dirpath + "/"
        return not self.spec.match_file(dirpath)
