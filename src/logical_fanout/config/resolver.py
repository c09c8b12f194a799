"""Per-target setting and table-set resolution with global fallback."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from logical_fanout.errors import ConfigError

if TYPE_CHECKING:
    from logical_fanout.config.models import ReplicationConfig, TargetConfig

T = TypeVar("T")


def resolve_setting(target: TargetConfig, key: str, global_value: T) -> T:
    """Return the target's own setting under *key*, else *global_value*.

    Only an absent or null override falls back; falsy values such as ``0``
    or ``False`` are honoured.
    """
    if target.settings is None:
        return global_value
    value: Any = getattr(target.settings, key, None)
    return global_value if value is None else value


def resolve_tables(target: TargetConfig, global_tables: list[str]) -> list[str]:
    """Return the target's own tables if non-empty, else the global list."""
    tables = target.tables if target.tables else global_tables
    tables = [t for t in tables if t]
    if not tables:
        msg = f"no tables resolved for target {target.name}"
        raise ConfigError(msg)
    return list(tables)


@dataclass(frozen=True)
class ResolvedTarget:
    """A target with every setting and its table set resolved."""

    name: str
    connection: TargetConfig
    tables: tuple[str, ...]
    publication: str
    subscription: str
    max_wait_attempts: int
    wait_interval_seconds: int
    copy_data: bool

    @property
    def label(self) -> str:
        return f"target database ({self.name})"


def resolve_target(config: ReplicationConfig, index: int) -> ResolvedTarget:
    """Resolve the target at *index* against the global settings and tables."""
    target = config.targets[index]
    settings = config.settings
    return ResolvedTarget(
        name=target.name,
        connection=target,
        tables=tuple(resolve_tables(target, config.tables)),
        publication=config.publication_for(target),
        subscription=config.subscription_for(target),
        max_wait_attempts=resolve_setting(
            target, "max_wait_attempts", settings.max_wait_attempts
        ),
        wait_interval_seconds=resolve_setting(
            target, "wait_interval_seconds", settings.wait_interval_seconds
        ),
        copy_data=resolve_setting(target, "copy_data", settings.copy_data),
    )


def resolve_targets(config: ReplicationConfig) -> list[ResolvedTarget]:
    """Resolve every target in configuration order.

    Raises ConfigError on the first target without a usable table set, so a
    bad target aborts the run before any database is contacted.
    """
    return [resolve_target(config, i) for i in range(len(config.targets))]


def resolve_source_tables(
    config: ReplicationConfig, targets: list[ResolvedTarget] | None = None
) -> list[str]:
    """Tables the source must expose before anything is provisioned.

    The global list when it is set; otherwise every target's resolved tables,
    in first-seen order.
    """
    if config.tables:
        return list(config.tables)
    resolved = resolve_targets(config) if targets is None else targets
    return list(dict.fromkeys(t for target in resolved for t in target.tables))
