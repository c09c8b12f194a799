"""Bounded polling until a database exposes at least one expected table."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from logical_fanout.db.admin import DatabaseAdmin
from logical_fanout.errors import ConfigError, DatabaseError, ReadinessTimeoutError

logger = structlog.get_logger()


@dataclass(frozen=True)
class Ready:
    """Outcome of a successful readiness wait."""

    label: str
    attempts: int
    found: tuple[str, ...]


def _poll(
    admin: DatabaseAdmin, expected: tuple[str, ...], label: str
) -> tuple[str, ...]:
    try:
        existing = admin.list_tables()
    except DatabaseError as exc:
        logger.debug("readiness.poll_failed", database=label, error=str(exc))
        return ()
    return tuple(t for t in expected if t in existing)


def wait_for_tables(
    admin: DatabaseAdmin,
    expected_tables: Iterable[str],
    max_attempts: int,
    interval_seconds: float,
    *,
    label: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Ready:
    """Poll *admin* until any of *expected_tables* exists.

    Success needs only one expected table to be present. Connection or query
    failures count as an unsuccessful poll. Polls are separated by
    *interval_seconds*; after *max_attempts* polls without success a
    ReadinessTimeoutError is raised. An empty *expected_tables* is a
    ConfigError.
    """
    expected = tuple(expected_tables)
    db_label = label or admin.label
    if not expected:
        msg = f"No tables to wait for in {db_label}"
        raise ConfigError(msg)

    def _log_retry(state: RetryCallState) -> None:
        logger.info(
            "readiness.waiting",
            database=db_label,
            attempt=state.attempt_number,
            max_attempts=max_attempts,
            retry_in_seconds=interval_seconds,
        )

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval_seconds),
        retry=retry_if_result(lambda found: not found),
        before_sleep=_log_retry,
        sleep=sleep,
    )
    logger.info("readiness.started", database=db_label, tables=list(expected))
    try:
        found = retrying(_poll, admin, expected, db_label)
    except RetryError as exc:
        attempts = exc.last_attempt.attempt_number
        logger.error("readiness.timeout", database=db_label, attempts=attempts)
        raise ReadinessTimeoutError(db_label, attempts) from None

    attempts = retrying.statistics.get("attempt_number", 1)
    logger.info(
        "readiness.ready", database=db_label, attempts=attempts, found=list(found)
    )
    return Ready(label=db_label, attempts=attempts, found=found)
