"""Remove every subscription and publication a config would create."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from logical_fanout.config.models import ReplicationConfig
from logical_fanout.config.resolver import resolve_targets
from logical_fanout.db.admin import AdminFactory
from logical_fanout.replication.publications import PublicationManager
from logical_fanout.replication.subscriptions import SubscriptionManager

logger = structlog.get_logger()


@dataclass
class TeardownResult:
    dropped_subscriptions: list[str] = field(default_factory=list)
    dropped_publications: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def teardown(config: ReplicationConfig, admin_factory: AdminFactory) -> TeardownResult:
    """Drop subscriptions on every target, then publications on the source.

    Subscriptions go first because dropping one also removes its replication
    slot on the source. A failing target is recorded and skipped.
    """
    result = TeardownResult()
    targets = resolve_targets(config)

    for target in targets:
        admin = admin_factory(target.connection)
        try:
            if SubscriptionManager(admin, target.name).drop(target.subscription):
                result.dropped_subscriptions.append(target.subscription)
            else:
                result.failures[target.subscription] = "drop failed"
        finally:
            admin.close()

    source = admin_factory(config.source)
    try:
        publications = PublicationManager(source, config.settings.publication_name)
        for target in targets:
            if publications.drop(target.name):
                result.dropped_publications.append(target.publication)
            else:
                result.failures[target.publication] = "drop failed"
    finally:
        source.close()

    logger.info(
        "teardown.completed",
        subscriptions=result.dropped_subscriptions,
        publications=result.dropped_publications,
        failures=list(result.failures),
    )
    return result
