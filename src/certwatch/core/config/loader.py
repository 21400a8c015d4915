"""
YAML configuration loading.

``configs/app.yaml`` holds the application settings and
``configs/sources.yaml`` the operator-declared sources. String values
in either file may reference environment variables as ``${VAR}`` or
``${VAR:-default}``.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from .models import AppConfig, SourceConfig

DEFAULT_APP_CONFIG = Path("configs/app.yaml")

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

M = TypeVar("M", bound=BaseModel)


class ConfigError(Exception):
    """Configuration loading or validation error."""

    def __init__(self, message: str, path: Path | None = None, details: str | None = None):
        self.path = path
        self.details = details
        super().__init__(message)


def substitute_env(data: Any) -> Any:
    """Substitute environment variables in every string of a YAML tree."""
    if isinstance(data, str):
        return ENV_VAR_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(2) or ""), data)
    if isinstance(data, dict):
        return {key: substitute_env(value) for key, value in data.items()}
    if isinstance(data, list):
        return [substitute_env(item) for item in data]
    return data


def read_yaml(path: Path, *, expand: bool = True) -> Any:
    """Parse a YAML file; an empty file reads as ``{}``.

    Raises:
        ConfigError: Missing, unreadable or malformed file
    """
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}", path=path)

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}", path=path, details=str(e)) from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}", path=path, details=str(e)) from e

    if data is None:
        data = {}
    return substitute_env(data) if expand else data


def _validate(model: type[M], data: Any, path: Path, what: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid {what} in {path}", path=path, details=str(e)) from e


def load_app_config(path: Path | str | None = None, expand_env: bool = True) -> AppConfig:
    """Load app.yaml.

    Args:
        path: Config file (default: configs/app.yaml). A missing default
            file yields the built-in defaults; a missing explicit file
            does too.
        expand_env: Substitute environment variables

    Raises:
        ConfigError: Malformed YAML or invalid settings
    """
    path = Path(path) if path is not None else DEFAULT_APP_CONFIG
    if not path.exists():
        return AppConfig()

    data = read_yaml(path, expand=expand_env)
    return _validate(AppConfig, data, path, "app configuration")


def load_source_configs(path: Path | str, expand_env: bool = True) -> list[SourceConfig]:
    """Load declared sources, in file order.

    The file is either a bare list or a mapping with a ``sources`` list.
    Names must be unique since they key the upsert into the store.

    Raises:
        ConfigError: Missing file, invalid entry or duplicate name
    """
    path = Path(path)
    data = read_yaml(path, expand=expand_env)
    entries = data.get("sources", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ConfigError(f"Expected a list of sources in {path}", path=path)

    sources = [
        _validate(SourceConfig, entry, path, f"source #{number}")
        for number, entry in enumerate(entries, start=1)
    ]

    names = [source.name for source in sources]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate source name '{duplicates[0]}' in {path}", path=path)
    return sources
