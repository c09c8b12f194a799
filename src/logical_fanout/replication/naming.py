"""Publication and subscription naming conventions."""

from __future__ import annotations

# PostgreSQL truncates identifiers longer than NAMEDATALEN - 1 bytes.
MAX_IDENTIFIER_LENGTH = 63


def publication_name(prefix: str, target_name: str) -> str:
    """Build the source-side publication name for a target."""
    return f"{prefix}_{target_name}"


def subscription_name(prefix: str, target_name: str) -> str:
    """Build the target-side subscription name for a target."""
    return f"{publication_name(prefix, target_name)}_subscription"
