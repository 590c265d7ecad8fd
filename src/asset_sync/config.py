"""Configuration for asset-sync.

Settings come from, in increasing precedence:

1. ``SyncConfig`` defaults
2. a YAML file (``--config`` or ``asset-sync.yaml`` in the working directory)
3. ``ASSET_SYNC_*`` environment variables
4. explicit CLI options
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import (
    DEFAULT_DATABASE,
    DEFAULT_HASH_ALGORITHM,
    DEFAULT_POOL_SIZE,
    DEFAULT_ROOT,
    DEFAULT_TABLE,
    ENV_PREFIX,
)
from .errors import ConfigError
from .hashing import validate_algorithm
from .store import validate_table_name

DEFAULT_CONFIG_FILE = "asset-sync.yaml"

# Environment variable -> config field
ENV_OVERRIDES = {
    "ROOT": "root",
    "DATABASE": "database",
    "TABLE": "table",
    "POOL_SIZE": "pool_size",
    "HASH_ALGORITHM": "hash_algorithm",
    "KEY_PREFIX": "key_prefix",
    "TIMEOUT": "timeout",
}


class SyncConfig(BaseModel):
    """Everything a reconciliation pass needs to know."""

    root: Path = Path(DEFAULT_ROOT)
    database: Path = Path(DEFAULT_DATABASE)
    table: str = DEFAULT_TABLE
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    key_prefix: str = ""
    pool_size: int = Field(default=DEFAULT_POOL_SIZE, ge=1)
    scan_workers: int = Field(default=4, ge=1)
    apply_workers: int = Field(default=1, ge=1)
    symlinks: Literal["skip", "follow"] = "skip"
    ignore: List[str] = Field(default_factory=list)
    timeout: Optional[float] = Field(default=None, gt=0)  # seconds per pass
    lock_path: Optional[Path] = None

    @field_validator("hash_algorithm")
    @classmethod
    def _check_algorithm(cls, value: str) -> str:
        try:
            return validate_algorithm(value)
        except ConfigError as e:
            raise ValueError(str(e))

    @field_validator("table")
    @classmethod
    def _check_table(cls, value: str) -> str:
        try:
            return validate_table_name(value)
        except ConfigError as e:
            raise ValueError(str(e))


def _validate(data: Dict[str, Any]) -> SyncConfig:
    try:
        return SyncConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply ASSET_SYNC_* environment variables on top of file settings."""
    data = dict(data)
    for suffix, field_name in ENV_OVERRIDES.items():
        value = os.environ.get(f"{ENV_PREFIX}{suffix}")
        if value is not None and value != "":
            data[field_name] = value
    return data


def load_config(path: Optional[Union[str, Path]] = None, **overrides: Any) -> SyncConfig:
    """Load configuration from YAML, the environment and explicit overrides.

    Args:
        path: YAML file. When None, ``asset-sync.yaml`` in the working
            directory is used if it exists.
        **overrides: Field values that win over everything else (None values
            are ignored so CLI options can be passed straight through)

    Raises:
        ConfigError: If an explicit file is missing, YAML is malformed, or a
            value is invalid
    """
    data: Dict[str, Any] = {}

    if path is not None:
        cfg_path = Path(path)
        if not cfg_path.exists():
            raise ConfigError(f"Config file not found: {cfg_path}")
    else:
        cfg_path = Path(DEFAULT_CONFIG_FILE)

    if cfg_path.exists():
        try:
            loaded = yaml.safe_load(cfg_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed config file {cfg_path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file {cfg_path} must contain a mapping")
        data.update(loaded)

    data = _apply_env_overrides(data)
    data.update({k: v for k, v in overrides.items() if v is not None})
    return _validate(data)


def save_config(config: SyncConfig, path: Union[str, Path]) -> None:
    """Write configuration as YAML."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False))
