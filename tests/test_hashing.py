"""Tests for hashing module."""

import pytest

from asset_sync.errors import ConfigError
from asset_sync.hashing import compute_file_digest, digest_bytes, validate_algorithm


class TestDigestBytes:
    """Test in-memory digests."""

    def test_known_md5(self):
        """Default algorithm is MD5, hex encoded."""
        assert digest_bytes(b"hello") == "5d41402abc4b2a76b9719d911017c592"

    def test_deterministic(self):
        assert digest_bytes(b"same bytes") == digest_bytes(b"same bytes")

    def test_detects_single_byte_change(self):
        assert digest_bytes(b"return 42") != digest_bytes(b"return 43")

    def test_does_not_mutate_input(self):
        data = bytearray(b"payload")
        digest_bytes(bytes(data))
        assert data == bytearray(b"payload")

    def test_other_algorithm(self):
        digest = digest_bytes(b"hello", "sha256")
        assert len(digest) == 64
        assert digest != digest_bytes(b"hello")

    def test_unknown_algorithm(self):
        with pytest.raises(ConfigError, match="Unsupported hash algorithm"):
            digest_bytes(b"hello", "nope")


class TestFileDigest:
    """Test file-based hashing."""

    def test_matches_in_memory_digest(self, tmp_path):
        """Streaming a file must give the same digest as hashing its bytes."""
        f = tmp_path / "data.bin"
        content = bytes(range(256)) * 100  # spans several read chunks
        f.write_bytes(content)

        assert compute_file_digest(f) == digest_bytes(content)

    def test_empty_file(self, tmp_path):
        f = tmp_path / "empty"
        f.write_bytes(b"")
        assert compute_file_digest(f) == digest_bytes(b"")

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            compute_file_digest(tmp_path / "missing.txt")


class TestValidateAlgorithm:
    """Test algorithm validation."""

    def test_normalizes_name(self):
        assert validate_algorithm(" SHA256 ") == "sha256"

    def test_rejects_variable_length(self):
        with pytest.raises(ConfigError):
            validate_algorithm("shake_128")
