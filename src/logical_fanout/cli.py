"""Typer CLI for multi-target logical replication setup."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from logical_fanout.config.loader import CONFIG_ENV_VAR, load_replication_config
from logical_fanout.config.models import ReplicationConfig
from logical_fanout.config.resolver import resolve_targets
from logical_fanout.db.postgres import PostgresAdmin
from logical_fanout.errors import ConfigError, ReplicationError
from logical_fanout.observability.logging import configure_logging
from logical_fanout.pipeline.runner import ReplicationPipeline
from logical_fanout.replication.teardown import teardown as run_teardown
from logical_fanout.replication.verification import (
    SyncClassification,
    VerificationReport,
    verify,
)

console = Console()
app = typer.Typer(name="logical-fanout", help="Multi-target logical replication")

_STYLES = {
    SyncClassification.READY: "green",
    SyncClassification.SYNCING: "yellow",
    SyncClassification.UNKNOWN: "dim",
    SyncClassification.UNEXPECTED: "red",
    SyncClassification.FAILED: "red",
}


def _config_arg() -> Any:
    return typer.Argument(
        None,
        envvar=CONFIG_ENV_VAR,
        help="Path to replication YAML (default: /app/replication-config.yml)",
        show_default=False,
    )


@app.callback()
def main(
    log_level: str = typer.Option("info", "--log-level", help="Log level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON logs"),
) -> None:
    """Configure logging for every command."""
    configure_logging(log_level, json_logs=json_logs)


def _load(config_path: str | None) -> ReplicationConfig:
    try:
        return load_replication_config(Path(config_path) if config_path else None)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc


def _print_report(report: VerificationReport) -> None:
    if report.publication_error:
        console.print(f"[red]{escape(report.publication_error)}[/red]")
    else:
        pubs = Table(title="Publications on source")
        pubs.add_column("Publication", style="cyan")
        pubs.add_column("Tables")
        for pub in report.publications:
            pubs.add_row(pub.name, ", ".join(pub.tables))
        for name in report.missing_publications:
            pubs.add_row(name, "[red]missing[/red]")
        console.print(pubs)

    table = Table(title="Subscriptions")
    table.add_column("Target", style="cyan")
    table.add_column("Subscription")
    table.add_column("Status")
    table.add_column("Detail")
    for status in report.targets:
        style = _STYLES[status.classification]
        table.add_row(
            status.target,
            status.subscription,
            f"[{style}]{status.classification}[/{style}]",
            escape(status.detail),
        )
    console.print(table)

    for warning in report.warnings:
        console.print(f"[yellow]Warning: {escape(str(warning))}[/yellow]")

    if report.healthy:
        console.print("[green]All targets are replicating or syncing[/green]")
    else:
        console.print(
            "[yellow]Some targets may need more time to sync "
            "or have unknown states[/yellow]"
        )


@app.command()
def validate(config_path: str | None = _config_arg()) -> None:
    """Validate a replication config and show per-target resolution."""
    config = _load(config_path)
    console.print(
        f"[green]Valid[/green]: source {config.source.label}, "
        f"publication prefix {config.settings.publication_name}"
    )
    table = Table(title="Targets")
    table.add_column("Target", style="cyan")
    table.add_column("Database")
    table.add_column("Tables")
    table.add_column("Wait")
    table.add_column("Publication / Subscription")
    for target in resolve_targets(config):
        table.add_row(
            target.name,
            target.connection.label,
            ", ".join(target.tables),
            f"{target.max_wait_attempts} x {target.wait_interval_seconds}s",
            f"{target.publication} / {target.subscription}",
        )
    console.print(table)


@app.command()
def setup(
    config_path: str | None = _config_arg(),
    strict: bool = typer.Option(
        False, "--strict", help="Exit non-zero when verification finds problems"
    ),
) -> None:
    """Provision publications and subscriptions for every target."""
    config = _load(config_path)
    pipeline = ReplicationPipeline(config, fail_on_unhealthy=strict or None)
    console.print(
        f"[yellow]Setting up replication[/yellow] from {config.source.label} "
        f"to {len(config.targets)} target(s)"
    )
    try:
        result = pipeline.run()
    except ReplicationError as exc:
        console.print(f"[red]Replication setup failed:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc

    assert result.report is not None
    _print_report(result.report)
    console.print("[green]Replication setup completed successfully[/green]")


@app.command()
def status(
    config_path: str | None = _config_arg(),
    strict: bool = typer.Option(
        False, "--strict", help="Exit non-zero when any target is unhealthy"
    ),
) -> None:
    """Report publication and subscription status without changing anything."""
    config = _load(config_path)
    targets = resolve_targets(config)
    with PostgresAdmin(config.source) as source:
        report = verify(
            source,
            targets,
            prefix=config.settings.publication_name,
            admin_factory=PostgresAdmin,
        )
    _print_report(report)
    if strict and not report.healthy:
        raise typer.Exit(1)


@app.command()
def teardown(
    config_path: str | None = _config_arg(),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Drop every subscription and publication this config manages."""
    config = _load(config_path)
    if not yes:
        confirm = typer.confirm(
            f"Drop replication for {len(config.targets)} target(s) "
            f"from {config.source.label}?"
        )
        if not confirm:
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    result = run_teardown(config, PostgresAdmin)
    for name in result.dropped_subscriptions:
        console.print(f"  dropped subscription {name}")
    for name in result.dropped_publications:
        console.print(f"  dropped publication {name}")
    if not result.ok:
        for name, reason in result.failures.items():
            console.print(f"[red]  {name}: {reason}[/red]")
        raise typer.Exit(1)
    console.print("[green]Teardown complete[/green]")
