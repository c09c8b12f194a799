"""Pydantic configuration models for multi-target logical replication."""

from __future__ import annotations

from typing import Annotated, Self

from psycopg.conninfo import make_conninfo
from pydantic import (
    BaseModel,
    Field,
    PositiveInt,
    SecretStr,
    field_validator,
    model_validator,
)

from logical_fanout.config.resolver import resolve_tables
from logical_fanout.errors import ConfigError
from logical_fanout.replication.naming import (
    MAX_IDENTIFIER_LENGTH,
    publication_name,
    subscription_name,
)

# Bare identifier: used for target names and the publication prefix so that
# derived object names never need quoting surprises.
Identifier = Annotated[str, Field(pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")]

_TABLE_PART = r"[A-Za-z_][A-Za-z0-9_$]*"
TableName = Annotated[
    str,
    Field(pattern=rf"^{_TABLE_PART}(\.{_TABLE_PART})?$"),
]


def _dedupe(tables: list[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for table in tables:
        if table not in seen:
            seen.add(table)
            ordered.append(table)
    return ordered


class ConnectionConfig(BaseModel, frozen=True, extra="forbid"):
    """Connection descriptor for one PostgreSQL database."""

    host: str = "localhost"
    port: int = Field(default=5432, ge=1, le=65535)
    user: str
    password: SecretStr = SecretStr("")
    database: str

    @field_validator("user", "password", "database", mode="before")
    @classmethod
    def _numbers_as_text(cls, value: object) -> object:
        # YAML reads `password: 12345` as an int.
        if isinstance(value, int | float) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def label(self) -> str:
        return f"{self.host}:{self.port}/{self.database}"

    def conninfo(self) -> str:
        """Return a libpq connection string, password included."""
        return make_conninfo(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password.get_secret_value() or None,
            dbname=self.database,
        )

    def redacted_conninfo(self) -> str:
        """Return the connection string with the password masked."""
        return make_conninfo(
            host=self.host,
            port=self.port,
            user=self.user,
            password="***" if self.password.get_secret_value() else None,
            dbname=self.database,
        )


class SettingsOverride(BaseModel, frozen=True, extra="forbid"):
    """Per-target overrides; unset keys fall back to the global settings."""

    max_wait_attempts: PositiveInt | None = None
    wait_interval_seconds: PositiveInt | None = None
    copy_data: bool | None = None


class ReplicationSettings(BaseModel, frozen=True, extra="forbid"):
    """Global settings shared by every target unless overridden."""

    publication_name: Identifier
    max_wait_attempts: PositiveInt = 30
    wait_interval_seconds: PositiveInt = 2
    copy_data: bool = True
    # Run-wide only; not overridable per target.
    fail_on_unhealthy: bool = False
    max_parallel_targets: PositiveInt = 1


class TargetConfig(ConnectionConfig, frozen=True, extra="forbid"):
    """One destination database and its optional table/settings overrides."""

    name: Identifier
    tables: list[TableName] | None = None
    settings: SettingsOverride | None = None

    @field_validator("tables")
    @classmethod
    def dedupe_tables(cls, v: list[str] | None) -> list[str] | None:
        return _dedupe(v) if v is not None else None


class ReplicationConfig(BaseModel, frozen=True, extra="forbid"):
    """Source database, target databases, global tables and settings."""

    source: ConnectionConfig
    targets: list[TargetConfig] = Field(min_length=1)
    tables: list[TableName] = Field(default_factory=list)
    settings: ReplicationSettings

    @field_validator("tables")
    @classmethod
    def dedupe_tables(cls, v: list[str]) -> list[str]:
        return _dedupe(v)

    @model_validator(mode="after")
    def check_targets(self) -> Self:
        """Reject duplicate names, unresolvable tables and overlong names."""
        seen: set[str] = set()
        for target in self.targets:
            if target.name in seen:
                msg = (
                    f"duplicate target name '{target.name}': publication and "
                    "subscription names would collide"
                )
                raise ValueError(msg)
            seen.add(target.name)

            try:
                resolve_tables(target, self.tables)
            except ConfigError as exc:
                raise ValueError(str(exc)) from exc

            longest = subscription_name(self.settings.publication_name, target.name)
            if len(longest.encode()) > MAX_IDENTIFIER_LENGTH:
                msg = (
                    f"subscription name '{longest}' exceeds "
                    f"{MAX_IDENTIFIER_LENGTH} bytes; shorten the target name "
                    "or publication_name"
                )
                raise ValueError(msg)
        return self

    def publication_for(self, target: TargetConfig) -> str:
        return publication_name(self.settings.publication_name, target.name)

    def subscription_for(self, target: TargetConfig) -> str:
        return subscription_name(self.settings.publication_name, target.name)
