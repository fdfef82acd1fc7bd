"""
LocalSafe configuration: defaults, JSON config file and environment.

Resolution order (later wins):
    1. Built-in defaults
    2. JSON config file (``--config`` or ``LOCALSAFE_CONFIG``), merged per section
    3. Environment variables (a ``.env`` file in the working directory is loaded first)
    4. Explicit overrides passed by the caller

Config file keys may use either snake_case or the camelCase spelling of
earlier releases (``auditLog``, ``keySize``, ``trashOlderThan``).

Environment:
    LOCALSAFE_CONFIG              = path to JSON config file
    LOCALSAFE_VAULT_PATH          = vault document location
    LOCALSAFE_AUDIT_LOG           = activity log location
    LOCALSAFE_KDF_ITERATIONS      = PBKDF2 iteration count
    LOCALSAFE_TRASH_OLDER_THAN    = automatic trash retention (e.g. 30d)
    LOCALSAFE_OPTIMISTIC_LOCKING  = "0"/"false" for last-writer-wins
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..vault.encryption import (
    DEFAULT_ALGORITHM,
    DEFAULT_ITERATIONS,
    DEFAULT_KEY_SIZE,
    MAX_ITERATIONS,
    SUPPORTED_ALGORITHMS,
)
from ..vault.errors import InvalidDurationFormat
from ..vault.retention import parse_duration

logger = logging.getLogger(__name__)

_CAMEL_ALIASES = {
    "auditLog": "audit_log",
    "keySize": "key_size",
    "trashOlderThan": "trash_older_than",
    "optimisticLocking": "optimistic_locking",
}


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or fails validation."""


class PathsConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    vault: Path = Field(default_factory=lambda: Path.cwd() / "data" / "vault.json")
    audit_log: Path = Field(default_factory=lambda: Path.cwd() / "logs" / "activity.log")


class CryptoConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    algorithm: str = DEFAULT_ALGORITHM
    iterations: int = Field(default=DEFAULT_ITERATIONS, ge=1, le=MAX_ITERATIONS)
    key_size: int = DEFAULT_KEY_SIZE

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        """Only one authenticated cipher family is supported."""
        if v.lower() not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported cipher algorithm: {v}")
        return v.lower()

    @field_validator("key_size")
    @classmethod
    def validate_key_size(cls, v: int) -> int:
        if v != DEFAULT_KEY_SIZE:
            raise ValueError(f"key_size must be {DEFAULT_KEY_SIZE} bytes for AES-256-GCM")
        return v


class RetentionConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    trash_older_than: Optional[str] = None

    @field_validator("trash_older_than")
    @classmethod
    def validate_duration(cls, v: Optional[str]) -> Optional[str]:
        if v in (None, ""):
            return None
        try:
            parse_duration(v)
        except InvalidDurationFormat as exc:
            raise ValueError(exc.message) from exc
        return v


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    optimistic_locking: bool = True


class LocalSafeConfig(BaseModel):
    """Validated LocalSafe configuration."""

    model_config = ConfigDict(extra="ignore")

    paths: PathsConfig = Field(default_factory=PathsConfig)
    crypto: CryptoConfig = Field(default_factory=CryptoConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def _normalize_keys(section: Dict[str, Any]) -> Dict[str, Any]:
    return {_CAMEL_ALIASES.get(key, key): value for key, value in section.items()}


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Merge one level deep: each section dict is merged key by key."""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **_normalize_keys(value)}
        elif isinstance(value, dict):
            merged[key] = _normalize_keys(value)
        else:
            merged[key] = value
    return merged


def _read_config_file(config_path: Union[Path, str]) -> Dict[str, Any]:
    path = Path(config_path).expanduser()
    if not path.exists():
        logger.debug("Config file %s not found, using defaults", path)
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Unable to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Dict[str, Any]] = {}

    def put(section: str, key: str, value: Any) -> None:
        overrides.setdefault(section, {})[key] = value

    if os.environ.get("LOCALSAFE_VAULT_PATH"):
        put("paths", "vault", os.environ["LOCALSAFE_VAULT_PATH"])
    if os.environ.get("LOCALSAFE_AUDIT_LOG"):
        put("paths", "audit_log", os.environ["LOCALSAFE_AUDIT_LOG"])
    if os.environ.get("LOCALSAFE_KDF_ITERATIONS"):
        put("crypto", "iterations", os.environ["LOCALSAFE_KDF_ITERATIONS"])
    if os.environ.get("LOCALSAFE_TRASH_OLDER_THAN"):
        put("retention", "trash_older_than", os.environ["LOCALSAFE_TRASH_OLDER_THAN"])
    raw_locking = os.environ.get("LOCALSAFE_OPTIMISTIC_LOCKING")
    if raw_locking:
        put("storage", "optimistic_locking", raw_locking.strip().lower() not in ("0", "false", "no", "off"))
    return overrides


def load_config(
    config_path: Optional[Union[Path, str]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    use_env: bool = True,
) -> LocalSafeConfig:
    """
    Build the effective configuration.

    Args:
        config_path: JSON config file; falls back to ``LOCALSAFE_CONFIG``
        overrides: Section dicts applied last (e.g. ``{"paths": {"vault": ...}}``)
        use_env: Read ./.env and ``LOCALSAFE_*`` variables

    Raises:
        ConfigError: Unreadable config file or invalid values
    """
    data: Dict[str, Any] = {}
    if use_env:
        env_path = Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
        config_path = config_path or os.environ.get("LOCALSAFE_CONFIG")

    if config_path:
        data = _merge(data, _read_config_file(config_path))
    if use_env:
        data = _merge(data, _env_overrides())
    if overrides:
        data = _merge(data, overrides)

    try:
        return LocalSafeConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
