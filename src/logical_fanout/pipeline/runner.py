"""Replication setup orchestrator: readiness, provisioning and verification."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TypeVar

import structlog

from logical_fanout.config.loader import load_replication_config
from logical_fanout.config.models import ReplicationConfig
from logical_fanout.config.resolver import (
    ResolvedTarget,
    resolve_source_tables,
    resolve_targets,
)
from logical_fanout.db.admin import AdminFactory, DatabaseAdmin
from logical_fanout.db.postgres import PostgresAdmin
from logical_fanout.errors import ReplicationError, TargetErrors, VerificationError
from logical_fanout.replication.publications import PublicationManager, PublicationRef
from logical_fanout.replication.readiness import wait_for_tables
from logical_fanout.replication.subscriptions import (
    SubscriptionManager,
    SubscriptionRef,
)
from logical_fanout.replication.verification import VerificationReport, verify

logger = structlog.get_logger()

R = TypeVar("R")


class RunState(StrEnum):
    INIT = "init"
    CONFIG_LOADED = "config_loaded"
    SOURCE_READY = "source_ready"
    TARGETS_READY = "targets_ready"
    PUBLICATIONS_PROVISIONED = "publications_provisioned"
    SUBSCRIPTIONS_PROVISIONED = "subscriptions_provisioned"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class RunResult:
    state: RunState
    publications: list[PublicationRef] = field(default_factory=list)
    subscriptions: list[SubscriptionRef] = field(default_factory=list)
    report: VerificationReport | None = None


class ReplicationPipeline:
    """Runs one replication setup pass for every configured target.

    Steps before verification fail fast: the first error moves the run to
    FAILED and is re-raised. Verification problems are only reported unless
    ``fail_on_unhealthy`` is set.

    With ``max_parallel_targets > 1`` the per-target steps run on a bounded
    thread pool; every target still finishes the step before errors are
    raised together as TargetErrors.
    """

    def __init__(
        self,
        config: ReplicationConfig,
        *,
        admin_factory: AdminFactory = PostgresAdmin,
        sleep: Callable[[float], None] = time.sleep,
        fail_on_unhealthy: bool | None = None,
    ) -> None:
        self._config = config
        self._admin_factory = admin_factory
        self._sleep = sleep
        self._fail_on_unhealthy = (
            config.settings.fail_on_unhealthy
            if fail_on_unhealthy is None
            else fail_on_unhealthy
        )
        self._state = RunState.CONFIG_LOADED
        self._failure: ReplicationError | None = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def failure(self) -> ReplicationError | None:
        return self._failure

    def _advance(self, state: RunState) -> None:
        self._state = state
        logger.info("pipeline.state", state=state.value)

    def run(self) -> RunResult:
        """Wait, provision and verify; raise on the first fatal error."""
        try:
            return self._run()
        except ReplicationError as exc:
            failed_at = self._state
            self._failure = exc
            self._state = RunState.FAILED
            logger.error(
                "pipeline.failed",
                failed_after=failed_at.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise

    def _run(self) -> RunResult:
        config = self._config
        # Resolving every target up front turns a bad table list into a
        # ConfigError before any database is contacted.
        targets = resolve_targets(config)
        source_tables = resolve_source_tables(config, targets)
        result = RunResult(state=self._state)
        logger.info(
            "pipeline.started",
            source=config.source.label,
            targets=[t.name for t in targets],
            parallelism=config.settings.max_parallel_targets,
        )

        source = self._admin_factory(config.source)
        target_admins = {t.name: self._admin_factory(t.connection) for t in targets}
        try:
            wait_for_tables(
                source,
                source_tables,
                config.settings.max_wait_attempts,
                config.settings.wait_interval_seconds,
                label=f"source database ({config.source.host})",
                sleep=self._sleep,
            )
            self._advance(RunState.SOURCE_READY)

            self._for_each_target(
                "readiness",
                targets,
                lambda t: wait_for_tables(
                    target_admins[t.name],
                    t.tables,
                    t.max_wait_attempts,
                    t.wait_interval_seconds,
                    label=t.label,
                    sleep=self._sleep,
                ),
            )
            self._advance(RunState.TARGETS_READY)

            publications = PublicationManager(source, config.settings.publication_name)
            result.publications = self._for_each_target(
                "publication",
                targets,
                lambda t: publications.ensure(t.name, t.tables),
            )
            self._advance(RunState.PUBLICATIONS_PROVISIONED)

            result.subscriptions = self._for_each_target(
                "subscription",
                targets,
                lambda t: SubscriptionManager(target_admins[t.name], t.name).ensure(
                    t.subscription,
                    config.source,
                    t.publication,
                    copy_data=t.copy_data,
                ),
            )
            self._advance(RunState.SUBSCRIPTIONS_PROVISIONED)

            result.report = verify(
                source,
                targets,
                prefix=config.settings.publication_name,
                admin_factory=self._admin_factory,
            )
        finally:
            _close_all([source, *target_admins.values()])

        assert result.report is not None
        if self._fail_on_unhealthy and not result.report.healthy:
            unhealthy = [t.target for t in result.report.targets if not t.healthy]
            msg = (
                "Replication verification found unhealthy targets: "
                + (", ".join(unhealthy) or "(publications missing on source)")
            )
            raise VerificationError(msg)

        self._advance(RunState.VERIFIED)
        result.state = self._state
        logger.info(
            "pipeline.completed",
            targets=len(targets),
            healthy=result.report.healthy,
            summary=result.report.summary,
        )
        return result

    def _for_each_target(
        self,
        step: str,
        targets: Sequence[ResolvedTarget],
        fn: Callable[[ResolvedTarget], R],
    ) -> list[R]:
        workers = min(self._config.settings.max_parallel_targets, len(targets))
        if workers <= 1:
            return [fn(t) for t in targets]

        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=f"fanout-{step}"
        ) as pool:
            futures = [(t, pool.submit(fn, t)) for t in targets]

        results: list[R] = []
        errors: dict[str, ReplicationError] = {}
        for target, future in futures:
            exc = future.exception()
            if exc is None:
                results.append(future.result())
            elif isinstance(exc, ReplicationError):
                errors[target.name] = exc
            else:
                raise exc
        if len(errors) == 1:
            raise next(iter(errors.values()))
        if errors:
            raise TargetErrors(step, errors)
        return results


def _close_all(admins: Sequence[DatabaseAdmin]) -> None:
    for admin in admins:
        try:
            admin.close()
        except Exception as exc:
            logger.warning(
                "pipeline.close_failed", database=admin.label, error=str(exc)
            )


def run_setup(
    path: str | Path | None = None,
    *,
    admin_factory: AdminFactory = PostgresAdmin,
    sleep: Callable[[float], None] = time.sleep,
    fail_on_unhealthy: bool | None = None,
) -> RunResult:
    """Load the configuration (step 1) and run the full setup pipeline."""
    config = load_replication_config(path)
    pipeline = ReplicationPipeline(
        config,
        admin_factory=admin_factory,
        sleep=sleep,
        fail_on_unhealthy=fail_on_unhealthy,
    )
    return pipeline.run()
