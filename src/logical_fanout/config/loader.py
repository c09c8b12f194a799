"""YAML + environment variable config loader."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, cast

import structlog
import yaml
from pydantic import ValidationError

from logical_fanout.config.defaults import build_replication_config
from logical_fanout.config.models import ReplicationConfig
from logical_fanout.errors import ConfigError

logger = structlog.get_logger()

CONFIG_ENV_VAR = "REPLICATION_CONFIG_FILE"
DEFAULT_CONFIG_PATH = "/app/replication-config.yml"

# Matches ${VAR} or ${VAR:-default}
_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-((?:[^}\\]|\\.)*))?}")


def _resolve_env_str(value: str) -> str:
    """Replace all ${VAR} / ${VAR:-default} references in a string."""

    def _replace(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_val = os.environ.get(var_name)
        if env_val is not None:
            return env_val
        if default is not None:
            return default.replace("\\}", "}")
        msg = f"Environment variable '{var_name}' is not set and no default provided"
        raise ConfigError(msg)

    return _ENV_PATTERN.sub(_replace, value)


def resolve_env_vars(data: Any) -> Any:
    """Recursively resolve ${VAR} and ${VAR:-default} in parsed YAML data."""
    if isinstance(data, str):
        return _resolve_env_str(data)
    if isinstance(data, dict):
        return {k: resolve_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [resolve_env_vars(item) for item in data]
    return data


def resolve_config_path(path: str | Path | None = None) -> Path:
    """Pick the config path: explicit argument, then env var, then default."""
    if path is not None:
        return Path(path)
    return Path(os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH))


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping from *path* with env references resolved.

    A missing or unreadable file, a parse error, a non-mapping document and
    an unset env var without a default are all raised as ConfigError.
    """
    p = Path(path)
    if not p.is_file():
        msg = f"Config file not found: {p}"
        raise ConfigError(msg)
    try:
        with p.open() as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        msg = f"Cannot read config file {p}: {exc}"
        raise ConfigError(msg) from exc
    except yaml.YAMLError as exc:
        msg = f"Failed to parse YAML in {p}"
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            msg += f" at line {mark.line + 1}, column {mark.column + 1}"
        raise ConfigError(f"{msg}: {exc}") from exc
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping at top level in {p}, got {type(data).__name__}"
        raise ConfigError(msg)
    return cast(dict[str, Any], resolve_env_vars(data))


def parse_config(
    data: dict[str, Any], *, source: str = "<memory>"
) -> ReplicationConfig:
    """Validate already-parsed config data.

    Accepts either the bare document or one nested under a top-level
    ``replication`` key.
    """
    if set(data) == {"replication"} and isinstance(data["replication"], dict):
        data = data["replication"]
    try:
        return build_replication_config(data)
    except ValidationError as exc:
        msg = f"Invalid replication config ({source}):\n{exc}"
        raise ConfigError(msg) from exc


def load_replication_config(path: str | Path | None = None) -> ReplicationConfig:
    """Load, env-resolve and validate a replication config file.

    Every failure (missing file, bad YAML, unset env var, schema violation)
    is raised as ConfigError.
    """
    p = resolve_config_path(path)
    data = load_yaml(p)
    config = parse_config(data, source=str(p))
    logger.info(
        "config.loaded",
        path=str(p),
        source=config.source.label,
        targets=[t.name for t in config.targets],
        publication_prefix=config.settings.publication_name,
    )
    return config
