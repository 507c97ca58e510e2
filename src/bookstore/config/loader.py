"""Configuration loader with file + environment merge and validation."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from bookstore.config.errors import (
    ConfigFileFormatError,
    ConfigFileNotFoundError,
    ConfigValidationError,
)
from bookstore.config.models import AppSettings

ENV_PREFIX = "BOOKSTORE_"
ENV_NESTING = "__"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries. Override values take precedence.

    Args:
        base: Base dictionary.
        override: Override dictionary (values take precedence).

    Returns:
        New merged dictionary.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any]:
    """Load and parse a JSON configuration file.

    Raises:
        ConfigFileNotFoundError: If the file does not exist.
        ConfigFileFormatError: If it cannot be read or is not a JSON object.
    """
    if not path.exists():
        raise ConfigFileNotFoundError(path)

    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigFileFormatError(path, str(exc)) from exc

    if not isinstance(data, dict):
        raise ConfigFileFormatError(path, f"expected a JSON object, got {type(data).__name__}")
    return data


def env_overrides(
    environ: Mapping[str, str] | None = None,
    *,
    prefix: str = ENV_PREFIX,
) -> dict[str, Any]:
    """Collect ``<PREFIX><SECTION>__<FIELD>`` variables into a nested mapping.

    ``BOOKSTORE_MONGODB__HOST=db`` becomes ``{"mongodb": {"host": "db"}}`` and
    ``BOOKSTORE_SERVICE_NAME=x`` becomes ``{"service_name": "x"}``.
    """
    source = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    for name, value in source.items():
        if not name.startswith(prefix):
            continue
        path = [part.lower() for part in name[len(prefix) :].split(ENV_NESTING) if part]
        if not path:
            continue

        node = overrides
        for part in path[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[path[-1]] = value

    return overrides


def load_config(
    config_path: Path | str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    prefix: str = ENV_PREFIX,
) -> AppSettings:
    """Load application configuration.

    Sources, later ones overriding earlier ones:
    1. model defaults
    2. the JSON file at ``config_path`` (when given)
    3. ``BOOKSTORE_*`` environment variables

    Raises:
        ConfigFileNotFoundError: If ``config_path`` does not exist.
        ConfigFileFormatError: If the file is not a JSON object.
        ConfigValidationError: If the merged configuration is invalid.
    """
    config: dict[str, Any] = {}
    if config_path is not None:
        config = load_json_file(Path(config_path))

    config = deep_merge(config, env_overrides(environ, prefix=prefix))

    try:
        return AppSettings.model_validate(config)
    except ValidationError as e:
        raise ConfigValidationError.from_validation_error(e) from e
