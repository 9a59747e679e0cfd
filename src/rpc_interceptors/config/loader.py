from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .models import ChainConfig

__all__ = ["ConfigError", "load_config", "load_config_from_string"]


class ConfigError(RuntimeError):
    """Raised when configuration loading fails."""


_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-(.*?))?\}")
_ROOT_KEY = "rpc_interceptors"


def load_config(path: str | Path) -> ChainConfig:
    """Load a YAML config file into ChainConfig."""
    config_path = Path(path).expanduser()
    if config_path.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError(f"Unsupported config file type: {config_path.suffix}")
    if not config_path.is_file():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read config file: {config_path}") from exc
    return load_config_from_string(content, source=str(config_path))


def load_config_from_string(content: str, *, source: str = "<string>") -> ChainConfig:
    """Parse YAML text (with ``${VAR:-default}`` substitution) into ChainConfig."""
    try:
        parsed = yaml.safe_load(content) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {source}") from exc
    if not isinstance(parsed, Mapping):
        raise ConfigError("Config file must parse to a mapping")

    data = _normalize_config_root(_expand_env_in_data(parsed))
    try:
        return ChainConfig.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config in {source}: {exc}") from exc


def _expand_env_in_data(value: Any) -> Any:
    if isinstance(value, str):
        return _expand_env_value(value)
    if isinstance(value, Mapping):
        return {key: _expand_env_in_data(val) for key, val in value.items()}
    if isinstance(value, list):
        return [_expand_env_in_data(item) for item in value]
    return value


def _expand_env_value(value: str) -> str:
    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        default = match.group(2)
        env_value = os.getenv(name)
        if env_value is None or env_value == "":
            if default is None:
                raise ConfigError(f"Environment variable '{name}' is not set and no default provided")
            return default
        return env_value

    return _ENV_PATTERN.sub(replace, value)


def _normalize_config_root(data: Mapping[str, Any]) -> dict[str, Any]:
    if _ROOT_KEY not in data:
        return dict(data)
    nested = data[_ROOT_KEY]
    if not isinstance(nested, Mapping):
        raise ConfigError(f"{_ROOT_KEY} section must be a mapping")
    return dict(nested)
