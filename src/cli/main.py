"""cfpurge command-line interface (Typer).

Commands only parse flags, build `AppSettings` once and render results; every
purge/delete decision lives in `core.services`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, NoReturn, TypeVar

import httpx
import typer
from pydantic import ValidationError
from rich.console import Console

from adapters.cloudflare_client import CloudflareAPIError, CloudflareClient
from cli import __version__
from cli.doctor import app as doctor_app
from cli.ui_components import (
    build_console_hooks,
    build_keys_table,
    build_namespaces_table,
    build_preview_table,
    build_zones_table,
    configure_logging,
    error,
    info,
    print_summary,
    success,
)
from core.config import AppSettings, ConfigurationError
from core.services.kv_pipeline import KVPurgeOptions, purge_kv_by_tag
from core.services.purge_pipeline import PurgeOptions, purge_zones
from core.services.zone_resolver import split_comma_list

T = TypeVar("T")

app = typer.Typer(
    no_args_is_help=True,
    help="Cloudflare cache purge and Workers KV management.",
)
kv_app = typer.Typer(no_args_is_help=True, help="Manage Workers KV namespaces and entries.")
app.add_typer(kv_app, name="kv")
app.add_typer(doctor_app, name="doctor")

_console = Console()


def _version_callback(value: bool) -> None:
    if value:
        _console.print(f"cfpurge {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    token: str | None = typer.Option(None, "--token", help="API token (CLOUDFLARE_API_TOKEN)."),
    key: str | None = typer.Option(None, "--key", help="Global API key (CLOUDFLARE_API_KEY)."),
    email: str | None = typer.Option(None, "--email", help="Account e-mail (CLOUDFLARE_EMAIL)."),
    account: str | None = typer.Option(None, "--account", help="Account id (CLOUDFLARE_ACCOUNT_ID)."),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level (CFPURGE_LOG_LEVEL)."),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Global options shared by every command."""

    overrides: dict[str, Any] = {
        "api_token": token,
        "api_key": key,
        "email": email,
        "account_id": account,
        "log_level": log_level,
    }
    try:
        settings = AppSettings(**{k: v for k, v in overrides.items() if v})
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        _fail(f"Invalid configuration: {details}")
    configure_logging(settings.log_level)
    ctx.obj = settings


def _settings(ctx: typer.Context, *, account: bool = False) -> AppSettings:
    settings = ctx.obj if isinstance(ctx.obj, AppSettings) else AppSettings()
    try:
        settings.require_auth()
        if account:
            settings.require_account_id()
    except ConfigurationError as exc:
        error(_console, str(exc))
        raise typer.Exit(code=1) from exc
    return settings


def _run(settings: AppSettings, action: Callable[[CloudflareClient], Awaitable[T]]) -> T:
    """Run `action` with a fresh client; fatal errors exit with code 1."""

    async def runner() -> T:
        async with CloudflareClient(settings) as client:
            return await action(client)

    try:
        return asyncio.run(runner())
    except ConfigurationError as exc:
        error(_console, str(exc))
        raise typer.Exit(code=1) from exc
    except (CloudflareAPIError, httpx.HTTPError) as exc:
        error(_console, f"API request failed: {exc}")
        raise typer.Exit(code=1) from exc


def _fail(message: str) -> NoReturn:
    error(_console, message)
    raise typer.Exit(code=1)


@app.command("list")
def list_zones(ctx: typer.Context) -> None:
    """List the zones of the account."""

    settings = _settings(ctx)
    zones = _run(settings, lambda client: client.list_zones())
    _console.print(build_zones_table(zones))


@app.command()
def purge(
    ctx: typer.Context,
    zones: list[str] | None = typer.Argument(None, help="Zone names or ids to purge."),
    hosts: str | None = typer.Option(None, "--hosts", help="Comma separated hosts to purge."),
    urls: str | None = typer.Option(None, "--urls", help="Comma separated URLs to purge."),
    tags: str | None = typer.Option(None, "--tags", help="Comma separated cache tags to purge."),
    all_zones: bool = typer.Option(False, "--all", help="Apply to every zone."),
    everything: bool = typer.Option(False, "--everything", help="Purge everything from the cache."),
    quiet: bool = typer.Option(False, "--quiet", help="Suppress success messages."),
) -> None:
    """Purge cache by hosts, URLs, tags or everything.

    Examples:

      cfpurge purge --everything example.com

      cfpurge purge --all --hosts api.example.com,www.example.com

      cfpurge purge --urls https://example.com/page1 example.com
    """

    settings = _settings(ctx)
    options = PurgeOptions.from_flags(
        zones=zones or [],
        hosts=hosts,
        urls=urls,
        tags=tags,
        all_zones=all_zones,
        everything=everything,
        quiet=quiet,
    )
    try:
        options.validate()
    except ConfigurationError as exc:
        _fail(str(exc))

    hooks = build_console_hooks(_console, quiet=quiet)
    result = _run(
        settings,
        lambda client: purge_zones(client=client, settings=settings, options=options, hooks=hooks),
    )
    print_summary(_console, result.summary)
    if result.summary.exit_code:
        raise typer.Exit(code=result.summary.exit_code)


@kv_app.command("list")
def kv_list(
    ctx: typer.Context,
    namespace: str | None = typer.Option(None, "--namespace", help="Namespace id to list keys from."),
    verbose: bool = typer.Option(False, "--verbose", help="Show expiration and metadata."),
    prefix: str | None = typer.Option(None, "--filter", help="Only keys starting with this prefix."),
    limit: int = typer.Option(1000, "--limit", min=1, max=1000, help="Maximum keys to return."),
    cursor: str | None = typer.Option(None, "--cursor", help="Cursor of the page to fetch."),
) -> None:
    """List KV namespaces, or the keys of one namespace."""

    settings = _settings(ctx, account=True)

    if not namespace:
        namespaces = _run(settings, lambda client: client.list_kv_namespaces())
        _console.print(build_namespaces_table(namespaces))
        return

    keys, next_cursor = _run(
        settings,
        lambda client: client.list_kv_keys(
            namespace, prefix=prefix, cursor=cursor, limit=limit, with_metadata=verbose
        ),
    )
    _console.print(build_keys_table(namespace, keys, verbose=verbose))
    if next_cursor:
        info(_console, f"More keys available. Next page: --cursor={next_cursor}")
    _console.print(f"Showing {len(keys)} key(s)")


@kv_app.command("create")
def kv_create(
    ctx: typer.Context,
    title: str = typer.Option(..., "--title", help="Title of the new namespace."),
) -> None:
    """Create a KV namespace."""

    settings = _settings(ctx, account=True)
    if not title.strip():
        _fail("Namespace title is required.")
    namespace = _run(settings, lambda client: client.create_kv_namespace(title.strip()))
    success(_console, f"Created KV namespace: {namespace.title or title}")
    _console.print(f"   Namespace ID: {namespace.id}")


@kv_app.command("rename")
def kv_rename(
    ctx: typer.Context,
    namespace: str = typer.Option(..., "--namespace", help="Namespace id to rename."),
    title: str = typer.Option(..., "--title", help="New title."),
) -> None:
    """Rename a KV namespace."""

    settings = _settings(ctx, account=True)
    if not title.strip():
        _fail("New title is required.")
    _run(settings, lambda client: client.rename_kv_namespace(namespace, title.strip()))
    success(_console, f"Renamed namespace to: {title.strip()}")


@kv_app.command("delete")
def kv_delete(
    ctx: typer.Context,
    namespace: str | None = typer.Option(None, "--namespace", help="Comma separated namespace ids."),
    all_namespaces: bool = typer.Option(False, "--all-namespaces", help="Apply to every namespace."),
    key: str | None = typer.Option(None, "--key", help="Delete this single key."),
    tag: str | None = typer.Option(None, "--tag", help="Delete keys whose cache-tag contains this value."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be deleted."),
) -> None:
    """Delete KV entries by key or by cache-tag metadata."""

    settings = _settings(ctx, account=True)
    if not namespace and not all_namespaces:
        _fail("Either --namespace or --all-namespaces is required.")
    if not tag and not key:
        _fail("Either --tag or --key is required.")

    if key:
        namespaces = split_comma_list(namespace)
        if all_namespaces:
            _fail("Cannot use --all-namespaces with --key; specify a single namespace.")
        if len(namespaces) != 1:
            _fail("Cannot use multiple namespaces with --key; specify a single namespace.")
        if dry_run:
            info(_console, f"Dry run: would delete key '{key}' from namespace {namespaces[0]}")
            return
        _run(settings, lambda client: client.delete_kv_entry(namespaces[0], key))
        success(_console, f"Deleted key: {key}")
        return

    options = KVPurgeOptions.from_flags(
        tag=tag,
        namespace=namespace,
        all_namespaces=all_namespaces,
        dry_run=dry_run,
        purge_cache=False,
    )
    _run_kv_purge(settings, options)


@kv_app.command("purge")
def kv_purge(
    ctx: typer.Context,
    tag: str = typer.Option(..., "--tag", help="Cache tag to match (substring)."),
    namespace: str | None = typer.Option(None, "--namespace", help="Comma separated namespace ids."),
    all_namespaces: bool = typer.Option(False, "--all-namespaces", help="Apply to every namespace."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be deleted and purged."),
) -> None:
    """Delete KV entries by cache-tag and purge those tags from every zone.

    Examples:

      cfpurge kv purge --namespace <id> --tag product-123

      cfpurge kv purge --all-namespaces --tag product-123 --dry-run
    """

    settings = _settings(ctx, account=True)
    options = KVPurgeOptions.from_flags(
        tag=tag,
        namespace=namespace,
        all_namespaces=all_namespaces,
        dry_run=dry_run,
    )
    _run_kv_purge(settings, options)


def _run_kv_purge(settings: AppSettings, options: KVPurgeOptions) -> None:
    try:
        options.validate()
    except ConfigurationError as exc:
        _fail(str(exc))

    hooks = build_console_hooks(_console)
    result = _run(
        settings,
        lambda client: purge_kv_by_tag(
            client=client, settings=settings, options=options, hooks=hooks
        ),
    )

    if result.dry_run:
        if result.keys_to_delete:
            _console.print(build_preview_table(result.scans))
            if options.purge_cache:
                info(_console, f"Would purge {len(result.tags)} unique cache tag(s): {', '.join(result.tags)}")
        print_summary(_console, result.deletions, title="Dry run")
    else:
        print_summary(_console, result.deletions, title="KV deletion")
        if options.purge_cache and result.tags:
            print_summary(_console, result.purge, title="Cache purge")

    if result.exit_code:
        raise typer.Exit(code=result.exit_code)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
