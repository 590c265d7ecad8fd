"""Shared test fixtures and utilities."""

import os
from pathlib import Path

import pytest

from asset_sync.config import SyncConfig
from asset_sync.store import SQLiteIndexStore


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep stray config files and ASSET_SYNC_* variables out of tests."""
    for key in list(os.environ):
        if key.startswith("ASSET_SYNC_"):
            monkeypatch.delenv(key)
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return work


@pytest.fixture
def asset_root(tmp_path):
    """Empty asset directory."""
    root = tmp_path / "files"
    root.mkdir()
    return root


@pytest.fixture
def write_file(asset_root):
    """Factory fixture to write files relative to asset_root."""
    def _write(path: str, content: str = "test content") -> Path:
        file_path = asset_root / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content)
        return file_path
    return _write


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "index.db"


@pytest.fixture
def store(db_path):
    """Index store with the table created."""
    s = SQLiteIndexStore(db_path)
    s.ensure_schema()
    yield s
    s.close()


@pytest.fixture
def config(asset_root, db_path):
    """Config pointing at asset_root and db_path."""
    return SyncConfig(root=asset_root, database=db_path)
