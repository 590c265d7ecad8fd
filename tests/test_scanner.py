"""Tests for tree scanning."""

import os
import socket
import sys
from unittest.mock import patch

import pytest

from asset_sync.cancel import CancelToken
from asset_sync.errors import ReconciliationCancelled, ScanRootMissing
from asset_sync.hashing import compute_file_digest
from asset_sync.scanner import SymlinkPolicy, TreeScanner

from tests.helpers import md5


class TestScanBasics:
    """Test the flat path -> record mapping."""

    def test_flat_mapping_with_full_ancestry(self, asset_root, write_file):
        write_file("a.txt", "hello")
        write_file("images/areas/cover.png", "png-bytes")
        write_file("images/zones/z1/map.kmz", "kmz-bytes")

        result = TreeScanner().scan(asset_root)

        assert set(result.files) == {
            "a.txt",
            "images/areas/cover.png",
            "images/zones/z1/map.kmz",
        }
        assert result.files["a.txt"].digest == md5("hello")
        assert result.files["images/zones/z1/map.kmz"].digest == md5("kmz-bytes")
        assert result.files["a.txt"].size == 5
        assert result.skipped == []

    def test_same_leaf_name_in_different_dirs(self, asset_root, write_file):
        """Keys keep the directory, so equal leaf names do not collide."""
        write_file("zone1/image.jpg", "one")
        write_file("zone2/image.jpg", "two")

        result = TreeScanner().scan(asset_root)

        assert result.files["zone1/image.jpg"].digest == md5("one")
        assert result.files["zone2/image.jpg"].digest == md5("two")

    def test_deterministic_across_worker_counts(self, asset_root, write_file):
        for i in range(30):
            write_file(f"d{i % 4}/file{i}.txt", f"content {i}")

        single = TreeScanner(max_workers=1).scan(asset_root)
        many = TreeScanner(max_workers=8).scan(asset_root)

        assert single.digests == many.digests
        assert list(single.files) == list(many.files)

    def test_empty_root(self, asset_root):
        result = TreeScanner().scan(asset_root)
        assert result.files == {}

    def test_key_prefix(self, asset_root, write_file):
        write_file("logo.png", "logo")
        result = TreeScanner(key_prefix="images/").scan(asset_root)
        assert set(result.files) == {"images/logo.png"}

    def test_algorithm_is_configurable(self, asset_root, write_file):
        path = write_file("a.txt", "hello")
        result = TreeScanner(algorithm="sha256").scan(asset_root)
        assert result.files["a.txt"].digest == compute_file_digest(path, "sha256")

    def test_ignored_files_and_dirs(self, asset_root, write_file):
        write_file("keep.png", "keep")
        write_file(".DS_Store", "junk")
        write_file("cache/thumb.png", "thumb")
        write_file("draft.tmp", "tmp")

        result = TreeScanner(ignore=["cache/", "*.tmp"]).scan(asset_root)

        assert set(result.files) == {"keep.png"}


class TestScanFailures:
    """Test fatal and non-fatal scan errors."""

    def test_missing_root_is_fatal(self, tmp_path):
        with pytest.raises(ScanRootMissing):
            TreeScanner().scan(tmp_path / "does-not-exist")

    def test_root_that_is_a_file_is_fatal(self, tmp_path):
        f = tmp_path / "file.txt"
        f.write_text("x")
        with pytest.raises(ScanRootMissing):
            TreeScanner().scan(f)

    def test_unreadable_file_is_skipped(self, asset_root, write_file):
        """One bad file must not stop the rest of the tree being indexed."""
        write_file("good.txt", "good")
        bad = write_file("bad.txt", "bad")
        write_file("sub/also-good.txt", "also good")

        real = compute_file_digest

        def flaky(path, algorithm="md5"):
            if path == bad:
                raise PermissionError(13, "Permission denied")
            return real(path, algorithm)

        with patch("asset_sync.scanner.compute_file_digest", side_effect=flaky):
            result = TreeScanner().scan(asset_root)

        assert set(result.files) == {"good.txt", "sub/also-good.txt"}
        assert [s.path for s in result.skipped] == ["bad.txt"]
        assert result.skipped[0].reason == "Permission denied"

    @pytest.mark.skipif(not hasattr(os, "geteuid") or os.geteuid() == 0,
                        reason="permissions are not enforced for root")
    def test_unreadable_directory_is_skipped(self, asset_root, write_file):
        write_file("good.txt", "good")
        locked = asset_root / "locked"
        write_file("locked/secret.txt", "secret")
        locked.chmod(0o000)
        try:
            result = TreeScanner().scan(asset_root)
        finally:
            locked.chmod(0o755)

        assert set(result.files) == {"good.txt"}
        assert [s.path for s in result.skipped] == ["locked/"]


@pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
class TestSymlinks:
    """Test symlink policies."""

    def test_symlinks_skipped_by_default(self, asset_root, write_file):
        target = write_file("real.txt", "real")
        (asset_root / "link.txt").symlink_to(target)

        result = TreeScanner().scan(asset_root)

        assert set(result.files) == {"real.txt"}

    def test_follow_symlinks(self, asset_root, write_file, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "shared.png").write_text("shared")
        (asset_root / "shared").symlink_to(outside, target_is_directory=True)

        result = TreeScanner(symlinks=SymlinkPolicy.FOLLOW).scan(asset_root)

        assert result.files["shared/shared.png"].digest == md5("shared")

    def test_follow_skips_broken_links_and_loops(self, asset_root, write_file):
        write_file("sub/a.txt", "a")
        (asset_root / "broken").symlink_to(asset_root / "nowhere")
        (asset_root / "sub" / "loop").symlink_to(asset_root, target_is_directory=True)

        result = TreeScanner(symlinks="follow").scan(asset_root)

        assert set(result.files) == {"sub/a.txt"}


@pytest.mark.skipif(not hasattr(socket, "AF_UNIX"), reason="needs unix sockets")
def test_non_regular_files_are_skipped(asset_root, write_file):
    write_file("a.txt", "a")
    sock_path = asset_root / "s.sock"
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.bind(str(sock_path))
    except OSError:
        sock.close()
        pytest.skip("cannot bind unix socket here")
    try:
        result = TreeScanner().scan(asset_root)
    finally:
        sock.close()

    assert set(result.files) == {"a.txt"}


def test_cancelled_scan_raises(asset_root, write_file):
    write_file("a.txt", "a")
    token = CancelToken()
    token.cancel()

    with pytest.raises(ReconciliationCancelled):
        TreeScanner().scan(asset_root, cancel=token)


@pytest.mark.skipif(sys.platform != "linux", reason="needs a filesystem that stores raw bytes")
def test_non_utf8_name_is_skipped(asset_root, write_file):
    """Undecodable names are reported instead of reaching the index."""
    write_file("good.txt", "good")
    with open(os.path.join(os.fsencode(asset_root), b"bad-\xff.txt"), "wb") as f:
        f.write(b"bad")

    result = TreeScanner().scan(asset_root)

    assert set(result.files) == {"good.txt"}
    assert [s.path for s in result.skipped] == ["bad-\\xff.txt"]
    assert result.skipped[0].reason == "name is not valid UTF-8"
