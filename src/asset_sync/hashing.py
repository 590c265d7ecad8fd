"""Content digests for change detection.

Digests are plain lowercase hex strings. MD5 is the default because it is what
the index has always stored and what clients compare against; any algorithm
``hashlib`` knows can be configured instead.
"""

from pathlib import Path
import hashlib

from .constants import DEFAULT_HASH_ALGORITHM, READ_CHUNK_SIZE
from .errors import ConfigError


def validate_algorithm(algorithm: str) -> str:
    """Return the normalized algorithm name or raise ConfigError."""
    name = algorithm.strip().lower()
    try:
        # Variable-length digests (shake_*) have no plain hexdigest()
        hashlib.new(name).hexdigest()
    except (ValueError, TypeError):
        raise ConfigError(f"Unsupported hash algorithm: {algorithm!r}")
    return name


def _new_hash(algorithm: str):
    try:
        return hashlib.new(algorithm)
    except (ValueError, TypeError):
        raise ConfigError(f"Unsupported hash algorithm: {algorithm!r}")


def digest_bytes(data: bytes, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """Compute the hex digest of in-memory bytes.

    Args:
        data: Content to hash (not modified)
        algorithm: hashlib algorithm name

    Returns:
        Hex-encoded digest
    """
    h = _new_hash(algorithm)
    h.update(data)
    return h.hexdigest()


def compute_file_digest(path: Path, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """Compute the hex digest of a file's contents.

    Streams the file so large assets are never loaded whole. I/O errors
    propagate to the caller.

    Args:
        path: File to hash
        algorithm: hashlib algorithm name

    Returns:
        Hex-encoded digest, identical to ``digest_bytes(path.read_bytes())``
    """
    h = _new_hash(algorithm)
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(READ_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


__all__ = [
    "compute_file_digest",
    "digest_bytes",
    "validate_algorithm",
]
