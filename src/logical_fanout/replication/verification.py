"""Replication status checks and per-target classification."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

import structlog

from logical_fanout.config.resolver import ResolvedTarget
from logical_fanout.db.admin import AdminFactory, DatabaseAdmin
from logical_fanout.errors import DatabaseError, VerificationWarning
from logical_fanout.replication.publications import PublicationManager, PublicationRef

logger = structlog.get_logger()

SUBSCRIPTION_SQL = """
    SELECT subenabled FROM pg_catalog.pg_subscription WHERE subname = %s
"""

SUBSCRIPTION_REL_SQL = """
    SELECT sr.srsubstate
    FROM pg_catalog.pg_subscription_rel sr
    JOIN pg_catalog.pg_subscription s ON s.oid = sr.srsubid
    WHERE s.subname = %s
"""

# pg_subscription_rel states that mean the initial copy is still running.
_COPYING_STATES = frozenset({"i", "d", "f", "s"})


class SyncClassification(StrEnum):
    READY = "ready"
    SYNCING = "syncing"
    UNEXPECTED = "unexpected"
    UNKNOWN = "unknown"
    FAILED = "failed"


def classify(code: str | None) -> SyncClassification:
    """Map a subscription sync-state code to a classification."""
    if not code:
        return SyncClassification.UNKNOWN
    if code == "r":
        return SyncClassification.READY
    if code == "s":
        return SyncClassification.SYNCING
    return SyncClassification.UNEXPECTED


def reduce_states(states: Sequence[str]) -> str | None:
    """Collapse per-table states into one subscription-level code."""
    if not states:
        return None
    if any(s in _COPYING_STATES for s in states):
        return "s"
    for state in states:
        if state != "r":
            return state
    return "r"


@dataclass
class TargetStatus:
    target: str
    subscription: str
    classification: SyncClassification
    state_code: str | None = None
    enabled: bool | None = None
    detail: str = ""
    warning: VerificationWarning | None = None

    @property
    def healthy(self) -> bool:
        return self.enabled is not False and self.classification in (
            SyncClassification.READY,
            SyncClassification.SYNCING,
        )


@dataclass
class VerificationReport:
    publications: list[PublicationRef] = field(default_factory=list)
    missing_publications: list[str] = field(default_factory=list)
    publication_error: str | None = None
    targets: list[TargetStatus] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return (
            self.publication_error is None
            and not self.missing_publications
            and all(t.healthy for t in self.targets)
        )

    @property
    def warnings(self) -> list[VerificationWarning]:
        found = [t.warning for t in self.targets if t.warning is not None]
        if self.publication_error is not None:
            found.insert(0, VerificationWarning(self.publication_error))
        found[:0] = [
            VerificationWarning(f"publication {name} not found on source")
            for name in self.missing_publications
        ]
        return found

    @property
    def summary(self) -> dict[str, str]:
        return {t.target: t.classification.value for t in self.targets}


def check_subscription(admin: DatabaseAdmin, target: ResolvedTarget) -> TargetStatus:
    """Query one target's subscription and classify its sync state."""
    rows = admin.fetch_all(SUBSCRIPTION_SQL, (target.subscription,))
    if not rows:
        return TargetStatus(
            target=target.name,
            subscription=target.subscription,
            classification=SyncClassification.UNKNOWN,
            detail="subscription not found",
            warning=VerificationWarning(
                f"subscription {target.subscription} not found on {target.name}"
            ),
        )
    enabled = bool(rows[0][0])
    rel_rows = admin.fetch_all(SUBSCRIPTION_REL_SQL, (target.subscription,))
    states = [row[0] for row in rel_rows]
    code = reduce_states(states)
    classification = classify(code)

    warning = None
    if classification == SyncClassification.READY:
        detail = "ready and replicating"
    elif classification == SyncClassification.SYNCING:
        detail = "initial copy in progress"
    elif classification == SyncClassification.UNKNOWN:
        detail = "no sync status available (may be initializing)"
    else:
        detail = f"unexpected sync state {code!r}"
        warning = VerificationWarning(f"target {target.name}: {detail}")
    if not enabled:
        detail += "; subscription disabled"
        warning = warning or VerificationWarning(
            f"subscription {target.subscription} on {target.name} is disabled"
        )
    return TargetStatus(
        target=target.name,
        subscription=target.subscription,
        classification=classification,
        state_code=code,
        enabled=enabled,
        detail=detail,
        warning=warning,
    )


def _verify_target(target: ResolvedTarget, admin_factory: AdminFactory) -> TargetStatus:
    admin = admin_factory(target.connection)
    try:
        return check_subscription(admin, target)
    except DatabaseError as exc:
        return TargetStatus(
            target=target.name,
            subscription=target.subscription,
            classification=SyncClassification.FAILED,
            detail=f"status query failed: {exc}",
            warning=VerificationWarning(
                f"could not query subscription status on {target.name}: {exc}"
            ),
        )
    finally:
        admin.close()


def verify(
    source_admin: DatabaseAdmin,
    targets: Sequence[ResolvedTarget],
    *,
    prefix: str,
    admin_factory: AdminFactory,
) -> VerificationReport:
    """Check source publications and every target's subscription state.

    Never raises for database failures; each one becomes a warning on the
    report.
    """
    report = VerificationReport()
    try:
        report.publications = PublicationManager(source_admin, prefix).list_existing()
    except DatabaseError as exc:
        report.publication_error = f"could not query publications: {exc}"
        logger.warning("verify.publications_failed", error=str(exc))
    else:
        existing = {p.name for p in report.publications}
        report.missing_publications = [
            t.publication for t in targets if t.publication not in existing
        ]
        logger.info(
            "verify.publications",
            found=sorted(existing),
            missing=report.missing_publications,
        )

    for target in targets:
        status = _verify_target(target, admin_factory)
        report.targets.append(status)
        log = logger.info if status.healthy else logger.warning
        log(
            "verify.target",
            target=status.target,
            subscription=status.subscription,
            classification=status.classification.value,
            state=status.state_code,
            detail=status.detail,
        )

    logger.info("verify.completed", healthy=report.healthy, summary=report.summary)
    return report
