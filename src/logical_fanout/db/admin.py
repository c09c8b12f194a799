"""DatabaseAdmin protocol: the catalog and DDL access the orchestrator needs."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

from psycopg import sql

from logical_fanout.config.models import ConnectionConfig

# Plain SQL text or a psycopg.sql composition.
Statement = str | sql.Composable


@runtime_checkable
class DatabaseAdmin(Protocol):
    """Runs catalog queries and administrative statements against one database.

    Implementations: PostgresAdmin. Tests use in-memory fakes.
    """

    label: str

    def list_tables(self) -> set[str]:
        """Return existing user tables, both bare and schema-qualified."""
        ...

    def fetch_all(
        self, query: Statement, params: Sequence[Any] | None = None
    ) -> list[tuple[Any, ...]]:
        """Run a query and return every row."""
        ...

    def execute(
        self, statement: Statement, params: Sequence[Any] | None = None
    ) -> None:
        """Run a statement outside of any transaction block."""
        ...

    def close(self) -> None:
        """Release the underlying connection."""
        ...


AdminFactory = Callable[[ConnectionConfig], DatabaseAdmin]
