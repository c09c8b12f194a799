"""psycopg-backed DatabaseAdmin for PostgreSQL."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import psycopg
import structlog

from logical_fanout.config.models import ConnectionConfig
from logical_fanout.db.admin import Statement
from logical_fanout.errors import DatabaseError, DatabaseUnavailable

logger = structlog.get_logger()

LIST_TABLES_SQL = """
    SELECT n.nspname, c.relname
    FROM pg_catalog.pg_class c
    JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
    WHERE c.relkind IN ('r', 'p')
      AND n.nspname NOT IN ('pg_catalog', 'information_schema')
      AND n.nspname !~ '^pg_toast'
"""


class PostgresAdmin:
    """Lazily connected, autocommit PostgreSQL session.

    Autocommit is required: CREATE/DROP SUBSCRIPTION refuse to run inside a
    transaction block. A lost connection is discarded and reopened on the
    next call.
    """

    def __init__(
        self, connection: ConnectionConfig, *, connect_timeout: int = 10
    ) -> None:
        self._connection = connection
        self._connect_timeout = connect_timeout
        self._conn: psycopg.Connection[Any] | None = None
        self.label = connection.label

    def __enter__(self) -> PostgresAdmin:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _connect(self) -> psycopg.Connection[Any]:
        if self._conn is not None and not self._conn.closed:
            return self._conn
        try:
            self._conn = psycopg.connect(
                self._connection.conninfo(),
                autocommit=True,
                connect_timeout=self._connect_timeout,
            )
        except psycopg.OperationalError as exc:
            msg = f"Cannot connect to {self.label}: {exc}"
            raise DatabaseUnavailable(msg) from exc
        logger.debug("db.connected", database=self.label)
        return self._conn

    def _translate(self, exc: psycopg.Error) -> DatabaseError:
        conn = self._conn
        if conn is not None and (conn.broken or conn.closed):
            self._conn = None
            return DatabaseUnavailable(
                f"Connection to {self.label} lost: {exc}", sqlstate=exc.sqlstate
            )
        return DatabaseError(f"{self.label}: {exc}", sqlstate=exc.sqlstate)

    def list_tables(self) -> set[str]:
        tables: set[str] = set()
        for schema, name in self.fetch_all(LIST_TABLES_SQL):
            tables.add(name)
            tables.add(f"{schema}.{name}")
        return tables

    def fetch_all(
        self, query: Statement, params: Sequence[Any] | None = None
    ) -> list[tuple[Any, ...]]:
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(query, params)  # type: ignore[arg-type]
                return cur.fetchall()
        except psycopg.Error as exc:
            raise self._translate(exc) from exc

    def execute(
        self, statement: Statement, params: Sequence[Any] | None = None
    ) -> None:
        conn = self._connect()
        try:
            conn.execute(statement, params)  # type: ignore[arg-type]
        except psycopg.Error as exc:
            raise self._translate(exc) from exc

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("db.closed", database=self.label)
