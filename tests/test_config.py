"""Tests for configuration loading."""

from pathlib import Path

import pytest

from asset_sync.config import SyncConfig, load_config, save_config
from asset_sync.errors import ConfigError


class TestDefaults:

    def test_defaults(self):
        cfg = load_config()

        assert cfg.root == Path("./files")
        assert cfg.database == Path("asset-index.db")
        assert cfg.table == "Hashes"
        assert cfg.hash_algorithm == "md5"
        assert cfg.pool_size == 5
        assert cfg.apply_workers == 1
        assert cfg.symlinks == "skip"
        assert cfg.timeout is None

    def test_algorithm_is_normalized(self):
        assert SyncConfig(hash_algorithm="SHA256").hash_algorithm == "sha256"


class TestLoading:
    """Test the YAML file, environment and override layers."""

    def test_reads_default_file_from_working_directory(self, isolated_env):
        (isolated_env / "asset-sync.yaml").write_text(
            "root: /srv/assets\ntable: AssetHashes\nignore:\n  - '*.tmp'\n"
        )

        cfg = load_config()

        assert cfg.root == Path("/srv/assets")
        assert cfg.table == "AssetHashes"
        assert cfg.ignore == ["*.tmp"]

    def test_explicit_file(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("pool_size: 2\nkey_prefix: images/\n")

        cfg = load_config(path)

        assert cfg.pool_size == 2
        assert cfg.key_prefix == "images/"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_env_overrides_file(self, isolated_env, monkeypatch):
        (isolated_env / "asset-sync.yaml").write_text("pool_size: 2\ntable: FromFile\n")
        monkeypatch.setenv("ASSET_SYNC_POOL_SIZE", "8")
        monkeypatch.setenv("ASSET_SYNC_ROOT", "/data/files")
        monkeypatch.setenv("ASSET_SYNC_TIMEOUT", "")

        cfg = load_config()

        assert cfg.pool_size == 8
        assert cfg.root == Path("/data/files")
        assert cfg.table == "FromFile"
        assert cfg.timeout is None

    def test_overrides_win_and_none_is_ignored(self, monkeypatch):
        monkeypatch.setenv("ASSET_SYNC_TABLE", "FromEnv")

        cfg = load_config(table="FromCli", root=None)

        assert cfg.table == "FromCli"
        assert cfg.root == Path("./files")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("root: [unclosed\n")
        with pytest.raises(ConfigError, match="Malformed"):
            load_config(path)

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path).table == "Hashes"


class TestValidation:

    @pytest.mark.parametrize("field,value", [
        ("hash_algorithm", "not-a-hash"),
        ("hash_algorithm", "shake_128"),
        ("table", "Hashes; DROP TABLE Hashes"),
        ("pool_size", 0),
        ("symlinks", "sometimes"),
        ("timeout", -1),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(**{field: value})

    def test_invalid_env_value(self, monkeypatch):
        monkeypatch.setenv("ASSET_SYNC_POOL_SIZE", "many")
        with pytest.raises(ConfigError):
            load_config()


def test_save_and_reload(tmp_path):
    cfg = SyncConfig(root=tmp_path / "files", table="Assets", ignore=["*.bak"], timeout=60)
    path = tmp_path / "out" / "asset-sync.yaml"

    save_config(cfg, path)

    assert load_config(path) == cfg
