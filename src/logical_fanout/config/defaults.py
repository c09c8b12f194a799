"""Built-in replication defaults and how they combine with a user document."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from logical_fanout.config.models import ReplicationConfig

DEFAULTS_DIR = Path(__file__).parent / "defaults"


def load_defaults(name: str = "replication") -> dict[str, Any]:
    """Read ``defaults/<name>.yaml`` shipped with the package."""
    path = DEFAULTS_DIR / f"{name}.yaml"
    if not path.is_file():
        msg = f"No built-in defaults named '{name}' ({path})"
        raise FileNotFoundError(msg)
    with path.open() as f:
        return yaml.safe_load(f) or {}  # type: ignore[no-any-return]


def merge_configs(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Layer *overrides* over *base* without mutating either.

    Mappings merge key by key. Lists and scalars replace the default, so a
    user ``tables`` list is never appended to the built-in one. A key left
    empty in YAML (null) keeps the default instead of erasing it.
    """
    merged = dict(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if value is None and current is not None:
            continue
        if isinstance(current, dict) and isinstance(value, dict):
            value = merge_configs(current, value)
        merged[key] = value
    return merged


def build_replication_config(
    overrides: dict[str, Any],
    *,
    defaults: str = "replication",
) -> ReplicationConfig:
    """Validate *overrides* on top of the named built-in defaults."""
    return ReplicationConfig.model_validate(
        merge_configs(load_defaults(defaults), overrides)
    )
