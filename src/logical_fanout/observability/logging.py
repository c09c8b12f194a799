"""structlog configuration for CLI runs."""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

_SENSITIVE_KEYS = frozenset({"password", "secret", "token"})
_CONNINFO_PASSWORD = re.compile(r"(password\s*=\s*)('(?:[^'\\]|\\.)*'|\S+)")


def redact_conninfo(value: str) -> str:
    """Mask the password in a libpq ``key=value`` connection string."""
    return _CONNINFO_PASSWORD.sub(r"\1***", value)


def redact_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor: mask secret-looking keys and inline passwords."""
    for key, value in event_dict.items():
        if key in _SENSITIVE_KEYS and value:
            event_dict[key] = "***"
        elif isinstance(value, str) and "password" in value:
            event_dict[key] = redact_conninfo(value)
    return event_dict


def configure_logging(level: str = "info", *, json_logs: bool = False) -> None:
    """Configure structlog (and stdlib logging) for the process."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)

    processors: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
    ]
    if json_logs:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
