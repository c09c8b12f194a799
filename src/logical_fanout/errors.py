"""Exception hierarchy for replication setup runs."""

from __future__ import annotations


class ReplicationError(Exception):
    """Base class for every failure that aborts a replication run."""


class ConfigError(ReplicationError):
    """Raised when the configuration file is missing, unparsable, or invalid."""


class DatabaseError(ReplicationError):
    """Raised when a statement sent to a database fails."""

    def __init__(self, message: str, *, sqlstate: str | None = None) -> None:
        self.sqlstate = sqlstate
        super().__init__(message)


class DatabaseUnavailable(DatabaseError):
    """Raised when a database connection cannot be opened or is lost."""


class ReadinessTimeoutError(ReplicationError, TimeoutError):
    """Raised when a database never exposes any expected table."""

    def __init__(self, label: str, attempts: int) -> None:
        self.label = label
        self.attempts = attempts
        super().__init__(
            f"Timed out waiting for tables in {label} after {attempts} attempt(s)"
        )


class ProvisioningError(ReplicationError):
    """Raised when a publication or subscription cannot be created."""

    def __init__(self, message: str, *, target: str | None = None) -> None:
        self.target = target
        super().__init__(message)


class VerificationError(ReplicationError):
    """Raised after verification when unhealthy targets are configured as fatal."""


class VerificationWarning(Warning):
    """A non-fatal problem observed while verifying a target."""


class TargetErrors(ReplicationError):
    """Raised when several targets fail the same step in a parallel run."""

    def __init__(self, step: str, errors: dict[str, ReplicationError]) -> None:
        self.step = step
        self.errors = errors
        detail = "; ".join(f"{name}: {exc}" for name, exc in errors.items())
        super().__init__(f"{step} failed for {len(errors)} target(s): {detail}")
