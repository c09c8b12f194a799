"""Target-side subscription lifecycle: one subscription per target."""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from psycopg import sql

from logical_fanout.config.models import ConnectionConfig
from logical_fanout.db.admin import DatabaseAdmin
from logical_fanout.errors import DatabaseError, ProvisioningError

logger = structlog.get_logger()


@dataclass(frozen=True)
class SubscriptionRef:
    """A subscription that exists on a target database."""

    name: str
    publication: str
    target: str
    copy_data: bool


class SubscriptionManager:
    """Creates and drops the subscription on one target database.

    The CONNECTION clause carries the source password. It is only ever
    logged in redacted form.
    """

    def __init__(self, admin: DatabaseAdmin, target_name: str) -> None:
        self._admin = admin
        self._target = target_name

    def drop(self, subscription: str) -> bool:
        """Drop *subscription* if it exists; failures are logged and swallowed."""
        try:
            self._admin.execute(
                sql.SQL("DROP SUBSCRIPTION IF EXISTS {}").format(
                    sql.Identifier(subscription)
                )
            )
        except DatabaseError as exc:
            logger.warning(
                "subscription.drop_failed",
                name=subscription,
                target=self._target,
                error=str(exc),
            )
            return False
        logger.info("subscription.dropped", name=subscription, target=self._target)
        return True

    def ensure(
        self,
        subscription: str,
        source: ConnectionConfig,
        publication: str,
        *,
        copy_data: bool = True,
    ) -> SubscriptionRef:
        """Recreate *subscription* bound to *publication* on the source."""
        self.drop(subscription)
        statement = sql.SQL(
            "CREATE SUBSCRIPTION {} CONNECTION {} PUBLICATION {} "
            "WITH (copy_data = {})"
        ).format(
            sql.Identifier(subscription),
            sql.Literal(source.conninfo()),
            sql.Identifier(publication),
            sql.SQL("true" if copy_data else "false"),
        )
        try:
            self._admin.execute(statement)
        except DatabaseError as exc:
            msg = (
                f"Failed to create subscription {subscription} "
                f"for target {self._target}: {_scrub(str(exc), source)}"
            )
            # The chained error may echo the connection string.
            raise ProvisioningError(msg, target=self._target) from None

        logger.info(
            "subscription.created",
            name=subscription,
            target=self._target,
            publication=publication,
            conninfo=source.redacted_conninfo(),
            copy_data=copy_data,
        )
        return SubscriptionRef(
            name=subscription,
            publication=publication,
            target=self._target,
            copy_data=copy_data,
        )


def _scrub(message: str, source: ConnectionConfig) -> str:
    secret = source.password.get_secret_value()
    return message.replace(secret, "***") if secret else message
