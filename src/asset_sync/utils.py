"""Utility functions for asset-sync."""

from pathlib import Path
from typing import Dict, Iterable, Union


def humanize_size(size: float) -> str:
    """Convert bytes to human-readable format."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def to_posix(path: Union[str, Path]) -> str:
    """Normalize a relative path to POSIX form (forward slashes)."""
    return Path(path).as_posix()


def parse_pairs(items: Iterable[str]) -> Dict[str, str]:
    """Parse ``PATH=DIGEST`` items into a mapping.

    The digest is everything after the last ``=`` so paths may contain ``=``.

    Raises:
        ValueError: If an item has no ``=`` or an empty side
    """
    pairs = {}
    for item in items:
        path, sep, digest = item.rpartition("=")
        if not sep or not path or not digest:
            raise ValueError(f"Expected PATH=DIGEST, got {item!r}")
        pairs[to_posix(path)] = digest.strip().lower()
    return pairs


def is_utf8(name: str) -> bool:
    """False for names carrying surrogate-escaped bytes from the filesystem."""
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def printable_path(name: str) -> str:
    """Render undecodable filename bytes as ``\\xNN`` escapes."""
    return name.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace")
