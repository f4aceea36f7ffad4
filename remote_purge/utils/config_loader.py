# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Purge engine configuration: YAML files in ``config/`` plus secrets from ``.env``.

Files merge in this order, later keys winning (nested mappings merge, lists
and scalars are replaced):

    settings.yaml -> destinations.yaml -> retry_policy.yaml -> other *.yaml (by name)

String values may reference the environment as ``${VAR}`` or
``${VAR:-fallback}``; mount points and storage credentials normally come in
that way.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Iterator

import yaml
from dotenv import load_dotenv

BASE_FILES = ("settings.yaml", "destinations.yaml", "retry_policy.yaml")

# purge.* settings that must be strictly positive numbers when present
POSITIVE_PURGE_KEYS = (
    "max_attempts",
    "max_entries_per_run",
    "backoff_base_seconds",
    "backoff_cap_seconds",
    "lock_ttl_seconds",
    "schedule_interval_seconds",
    "alert_threshold_seconds",
)

_ENV_REFERENCE = re.compile(r"\$\{(?P<name>[^}:]+)(?::-(?P<fallback>[^}]*))?\}")


class ConfigError(Exception):
    """Raised for configuration validation failures."""
    pass


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return *base* updated with *override*, merging nested mappings."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def expand_env(value: Any) -> Any:
    """Resolve ``${VAR}`` references in every string inside *value*.

    Raises:
        ConfigError: A referenced variable is unset and has no fallback.
    """
    if isinstance(value, dict):
        return {key: expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    if not isinstance(value, str):
        return value

    def lookup(match: re.Match) -> str:
        name = match.group("name")
        resolved = os.environ.get(name, match.group("fallback"))
        if resolved is None:
            raise ConfigError(f"Environment variable '{name}' not set")
        return resolved

    return _ENV_REFERENCE.sub(lookup, value)


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    # Empty files parse to None
    return data if isinstance(data, dict) else {}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigLoader:
    """
    Load, merge and validate the purge engine configuration.

    Usage::

        config = ConfigLoader("config").load()
        service = PurgeService.from_config(config)
    """

    def __init__(self, config_dir: str = "config", env_file: str = ".env"):
        """
        Args:
            config_dir: Directory holding the YAML files.
            env_file: ``.env`` file loaded into the environment before expansion.

        Raises:
            FileNotFoundError: If config_dir does not exist.
        """
        self.config_dir = Path(config_dir)
        self.env_file = Path(env_file)
        self.config: dict = {}

        if not self.config_dir.is_dir():
            raise FileNotFoundError(
                f"Configuration directory not found: {self.config_dir}"
            )

    def load(self) -> dict:
        """
        Read every config file, expand environment references and validate.

        Raises:
            FileNotFoundError: If one of the base files is missing.
            yaml.YAMLError: If a file is not valid YAML.
            ConfigError: If a variable is unset or a setting is invalid.
        """
        if self.env_file.exists():
            load_dotenv(self.env_file, override=True)

        merged: Dict[str, Any] = {}
        for path in self._config_files():
            merged = deep_merge(merged, _read_yaml(path))
        merged = expand_env(merged)

        self._check_destinations(merged.get("destinations"))
        self._check_purge(merged.get("purge"))

        self.config = merged
        return self.config

    def reload(self) -> dict:
        """Read the files again; the previous config is kept if this raises."""
        return self.load()

    def _config_files(self) -> Iterator[Path]:
        for name in BASE_FILES:
            yield self.config_dir / name
        for path in sorted(self.config_dir.glob("*.yaml")):
            if path.name not in BASE_FILES:
                yield path

    @staticmethod
    def _check_destinations(destinations: Any) -> None:
        if destinations is None:
            return
        if not isinstance(destinations, dict):
            raise ConfigError("'destinations' must be a mapping of id -> settings")
        for destination_id, settings in destinations.items():
            if not isinstance(settings, dict):
                raise ConfigError(
                    f"Destination '{destination_id}' must be a mapping, "
                    f"got {type(settings).__name__}"
                )
            if not settings.get("type"):
                raise ConfigError(f"Destination '{destination_id}' has no 'type'")

    @staticmethod
    def _check_purge(purge: Any) -> None:
        """Positive tunables, and a lock lease longer than one adapter call."""
        purge = purge or {}
        if not isinstance(purge, dict):
            raise ConfigError("'purge' must be a mapping")

        for key in POSITIVE_PURGE_KEYS:
            if key in purge and not (_is_number(purge[key]) and purge[key] > 0):
                raise ConfigError(f"purge.{key} must be a positive number, got {purge[key]!r}")

        timeout = purge.get("adapter_timeout_seconds", 30.0)
        if not (_is_number(timeout) and timeout >= 0):
            raise ConfigError(
                f"purge.adapter_timeout_seconds must be a non-negative number, got {timeout!r}"
            )
        ttl = purge.get("lock_ttl_seconds", 60.0)
        # One destination call must fit inside a freshly renewed lease
        if timeout > 0 and ttl <= timeout:
            raise ConfigError(
                f"purge.lock_ttl_seconds ({ttl}) must exceed "
                f"purge.adapter_timeout_seconds ({timeout})"
            )

    def __repr__(self) -> str:
        """Never shows config values, which may hold expanded secrets."""
        return f"ConfigLoader(config_dir='{self.config_dir}', loaded={bool(self.config)})"
