"""CLI UI components (Rich).

Why separate components:
- Keeps command logic free of visual details.
- Lets several commands reuse the same tables, message lines and summary.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Iterable

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from core.domain.models import KVKey, KVNamespace, Zone
from core.services.kv_pipeline import NamespaceScan
from core.services.purge_pipeline import PipelineHooks, Summary


def configure_logging(level: str, console: Console | None = None) -> None:
    """Route library log records through Rich on stderr."""

    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console or Console(stderr=True), show_path=False)],
        force=True,
    )


def success(console: Console, message: str) -> None:
    console.print(f"[green]✔[/green] {escape(message)}")


def error(console: Console, message: str) -> None:
    console.print(f"[red]✘[/red] {escape(message)}")


def warning(console: Console, message: str) -> None:
    console.print(f"[yellow]![/yellow] {escape(message)}")


def info(console: Console, message: str) -> None:
    console.print(f"[cyan]i[/cyan] {escape(message)}")


def build_console_hooks(console: Console, *, quiet: bool = False) -> PipelineHooks:
    """Hooks printing pipeline events; `quiet` drops success and info lines."""

    return PipelineHooks(
        info=None if quiet else (lambda m: info(console, m)),
        success=None if quiet else (lambda m: success(console, m)),
        warning=lambda m: warning(console, m),
        error=lambda m: error(console, m),
    )


def print_summary(console: Console, summary: Summary, *, title: str = "Summary") -> None:
    console.print(
        f"\n[bold]{escape(title)}:[/bold] "
        f"{summary.success_count} successful, {summary.failure_count} failed"
    )
    if summary.failure_count:
        error(console, "Some operations failed")
    else:
        success(console, "All operations completed successfully")


def build_zones_table(zones: Iterable[Zone]) -> Table:
    table = Table(title="Zones")
    table.add_column("Domain", style="cyan", no_wrap=True)
    table.add_column("Zone ID", style="white")
    table.add_column("Status", style="green")
    for zone in zones:
        table.add_row(zone.name, zone.id, zone.status)
    return table


def build_namespaces_table(namespaces: Iterable[KVNamespace]) -> Table:
    table = Table(title="KV namespaces")
    table.add_column("Title", style="cyan")
    table.add_column("Namespace ID", style="white", no_wrap=True)
    for ns in namespaces:
        table.add_row(ns.title, ns.id)
    return table


def _format_expiration(expiration: int | None) -> str:
    if not expiration:
        return "Never"
    return datetime.fromtimestamp(expiration, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def build_keys_table(namespace_id: str, keys: Iterable[KVKey], *, verbose: bool) -> Table:
    table = Table(title=f"Keys in namespace {namespace_id}")
    table.add_column("Key", style="cyan")
    if verbose:
        table.add_column("Expiration", style="white")
        table.add_column("Metadata", style="dim")
    for key in keys:
        if verbose:
            metadata = "None" if key.metadata is None else json.dumps(key.metadata, indent=2)
            table.add_row(key.name, _format_expiration(key.expiration), metadata)
        else:
            table.add_row(key.name)
    return table


def build_preview_table(scans: Iterable[NamespaceScan]) -> Table:
    """Dry-run preview of the keys that would be deleted."""

    table = Table(title="Dry run: keys that would be deleted")
    table.add_column("Namespace", style="white", no_wrap=True)
    table.add_column("Key", style="cyan")
    table.add_column("Cache tag", style="magenta")
    for scan in scans:
        for key, tag in scan.matches.pairs():
            table.add_row(scan.namespace_id, key, tag)
    return table
