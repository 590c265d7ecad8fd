"""Test helpers shared across modules."""

import hashlib


def md5(content: str) -> str:
    """Digest the way the scanner does by default."""
    return hashlib.md5(content.encode()).hexdigest()
