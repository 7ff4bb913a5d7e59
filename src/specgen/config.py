"""Configuration resolution for a generation run.

A run is described by a single frozen :class:`~specgen.models.GeneratorConfig`.
:func:`resolve_config` builds it from four layers:

* **CLI flags** -- passed in by :mod:`specgen.app`; ``None`` means "not given".
* **Environment variables** -- ``SPECGEN_INPUT``, ``SPECGEN_OUTPUT``,
  ``SPECGEN_PACKAGE``, ``SPECGEN_STRICT``, ``SPECGEN_FORCE_VALIDATION``.
* **Project config** -- ``./specgen.json`` in the current directory, using the
  same keys as the model (``input``, ``output_dir``, ``package``, ...).
* **Defaults** -- the field defaults on the model.

The config is read once, before the input document is loaded, and is never
mutated afterwards.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from specgen.exceptions import ConfigError, InvalidUsageError
from specgen.models import GeneratorConfig

_PROJECT_CONFIG_FILENAME = "specgen.json"

_ENV_VARS = {
    "input": "SPECGEN_INPUT",
    "output_dir": "SPECGEN_OUTPUT",
    "package": "SPECGEN_PACKAGE",
    "strict_objects": "SPECGEN_STRICT",
    "force_validation": "SPECGEN_FORCE_VALIDATION",
}

_BOOL_FIELDS = {"client", "server", "strict_objects", "force_validation"}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./specgen.json``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


# --- Environment ---


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigError(f"Environment variable {name} must be a boolean, got {raw!r}")


def load_env_config() -> dict[str, Any]:
    """Collect the ``SPECGEN_*`` variables that are set."""
    values: dict[str, Any] = {}
    for field, env_name in _ENV_VARS.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        values[field] = _parse_bool(env_name, raw) if field in _BOOL_FIELDS else raw
    return values


# --- Precedence resolution ---


def resolve_config(
    cli_input: Optional[str] = None,
    cli_output: Optional[Path] = None,
    cli_package: Optional[str] = None,
    cli_client: Optional[bool] = None,
    cli_server: Optional[bool] = None,
    cli_strict: Optional[bool] = None,
    cli_force_validation: Optional[bool] = None,
    cli_timeout: Optional[float] = None,
) -> GeneratorConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``SPECGEN_*``)
        3. Project config (``./specgen.json``)
        4. Defaults

    Returns:
        The frozen :class:`~specgen.models.GeneratorConfig`.

    Raises:
        ConfigError: If a layer holds an invalid value or the input or
            output directory is missing from every layer.
        InvalidUsageError: If neither client nor server generation is
            selected.
    """
    merged: dict[str, Any] = {}

    # 3. Project-local config
    project = load_project_config()
    if project is not None:
        merged.update(project)

    # 2. Environment variables
    merged.update(load_env_config())

    # 1. CLI flags (highest precedence)
    cli = {
        "input": cli_input,
        "output_dir": cli_output,
        "package": cli_package,
        "client": cli_client,
        "server": cli_server,
        "strict_objects": cli_strict,
        "force_validation": cli_force_validation,
        "fetch_timeout": cli_timeout,
    }
    merged.update({k: v for k, v in cli.items() if v is not None})

    for required, hint in (("input", "INPUT argument"), ("output_dir", "--output")):
        if not merged.get(required):
            raise ConfigError(
                f"No {required.replace('_', ' ')} configured; pass {hint}, set "
                f"{_ENV_VARS[required]}, or add '{required}' to {_PROJECT_CONFIG_FILENAME}"
            )

    try:
        config = GeneratorConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

    if not config.client and not config.server:
        raise InvalidUsageError(
            "Nothing to generate: enable at least one of --client or --server"
        )
    return config
