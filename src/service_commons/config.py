"""
Shared YAML configuration loading.

Services describe their configuration as pydantic models with no
defaults; these helpers locate the YAML file, validate it, and cache
the result.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable

REDACTION_MARKER = "***REDACTED***"

_SENSITIVE_KEY_PARTS: tuple[str, ...] = ("password", "secret", "token", "private_key", "api_key")

SettingsT = TypeVar("SettingsT", bound=BaseModel)


class ConfigurationError(Exception):
    """Raised when the configuration file is missing or invalid."""


def get_config_path(env_var_name: str, default_filename: str) -> Path:
    """
    Resolve the configuration file path.

    The environment variable wins; otherwise the default filename is
    resolved against the current working directory.
    """
    override = os.environ.get(env_var_name)
    if override:
        return Path(override)
    return Path.cwd() / default_filename


def load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Read a YAML mapping from disk."""
    if not config_path.is_file():
        msg = f"Configuration file not found: {config_path}"
        raise ConfigurationError(msg)

    try:
        raw = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as exc:
        msg = f"Configuration file is not valid YAML: {config_path}"
        raise ConfigurationError(msg) from exc

    if not isinstance(raw, dict):
        msg = f"Configuration file must contain a mapping: {config_path}"
        raise ConfigurationError(msg)
    return raw


def create_settings_loader(
    settings_cls: type[SettingsT],
    path_resolver: Callable[[], Path],
) -> tuple[Callable[[], SettingsT], Callable[[], None]]:
    """
    Build a cached settings getter and its cache-clearing companion.

    Returns:
        (get_settings, clear_settings_cache)
    """

    @lru_cache(maxsize=1)
    def get_settings() -> SettingsT:
        config_path = path_resolver()
        raw = load_yaml_config(config_path)
        try:
            return settings_cls.model_validate(raw)
        except ValidationError as exc:
            msg = f"Invalid configuration in {config_path}: {exc}"
            raise ConfigurationError(msg) from exc

    def clear_settings_cache() -> None:
        get_settings.cache_clear()

    return get_settings, clear_settings_cache


def _redact(value: Any, marker: str) -> Any:
    if isinstance(value, dict):
        return {
            key: marker
            if any(part in key.lower() for part in _SENSITIVE_KEY_PARTS) and val is not None
            else _redact(val, marker)
            for key, val in value.items()
        }
    if isinstance(value, list):
        return [_redact(item, marker) for item in value]
    return value


def get_safe_model_config(settings: BaseModel, marker: str) -> dict[str, Any]:
    """Dump settings with sensitive-looking values replaced by the marker."""
    return _redact(settings.model_dump(mode="json"), marker)  # type: ignore[no-any-return]
