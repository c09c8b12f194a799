"""Source-side publication lifecycle: one publication per target."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from psycopg import sql

from logical_fanout.db.admin import DatabaseAdmin
from logical_fanout.errors import DatabaseError, ProvisioningError
from logical_fanout.replication.naming import publication_name

logger = structlog.get_logger()

LIST_PUBLICATIONS_SQL = """
    SELECT p.pubname, t.schemaname, t.tablename
    FROM pg_catalog.pg_publication p
    LEFT JOIN pg_catalog.pg_publication_tables t ON t.pubname = p.pubname
    WHERE starts_with(p.pubname, %s)
    ORDER BY p.pubname, t.schemaname, t.tablename
"""


@dataclass(frozen=True)
class PublicationRef:
    """A publication that exists on the source database."""

    name: str
    tables: tuple[str, ...]


class PublicationManager:
    """Creates and drops per-target publications on the source database.

    Every ensure() is drop-then-create, so the publication's table scope
    always matches the latest call.
    """

    def __init__(self, admin: DatabaseAdmin, prefix: str) -> None:
        self._admin = admin
        self._prefix = prefix

    def name_for(self, target_name: str) -> str:
        return publication_name(self._prefix, target_name)

    def drop(self, target_name: str) -> bool:
        """Drop the target's publication if it exists.

        Failures are logged and swallowed; returns False when the drop failed.
        """
        name = self.name_for(target_name)
        try:
            self._admin.execute(
                sql.SQL("DROP PUBLICATION IF EXISTS {}").format(sql.Identifier(name))
            )
        except DatabaseError as exc:
            logger.warning("publication.drop_failed", name=name, error=str(exc))
            return False
        logger.info("publication.dropped", name=name, target=target_name)
        return True

    def ensure(self, target_name: str, tables: Sequence[str]) -> PublicationRef:
        """Recreate the target's publication scoped exactly to *tables*."""
        name = self.name_for(target_name)
        if not tables:
            msg = f"No tables to publish for target {target_name}"
            raise ProvisioningError(msg, target=target_name)

        self.drop(target_name)
        statement = sql.SQL("CREATE PUBLICATION {} FOR TABLE {}").format(
            sql.Identifier(name),
            sql.SQL(", ").join(_table_identifier(t) for t in tables),
        )
        try:
            self._admin.execute(statement)
        except DatabaseError as exc:
            msg = (
                f"Failed to create publication {name} "
                f"for target {target_name}: {exc}"
            )
            raise ProvisioningError(msg, target=target_name) from exc

        logger.info(
            "publication.created", name=name, target=target_name, tables=list(tables)
        )
        return PublicationRef(name=name, tables=tuple(tables))

    def list_existing(self) -> list[PublicationRef]:
        """Return publications on the source whose name starts with the prefix."""
        rows = self._admin.fetch_all(LIST_PUBLICATIONS_SQL, (self._prefix,))
        tables_by_pub: dict[str, list[str]] = defaultdict(list)
        for pubname, schema, table in rows:
            entries = tables_by_pub[pubname]
            if table is not None:
                entries.append(f"{schema}.{table}")
        return [
            PublicationRef(name=name, tables=tuple(tables))
            for name, tables in tables_by_pub.items()
        ]


def _table_identifier(table: str) -> sql.Identifier:
    # "schema.table" becomes "schema"."table"; a bare name stays unqualified.
    return sql.Identifier(*table.split("."))
