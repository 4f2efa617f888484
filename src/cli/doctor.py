"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from adapters.cloudflare_client import CloudflareClient
from core.config import AppSettings, get_user_env_file

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_api(settings: AppSettings) -> tuple[bool, str]:
    try:
        async with CloudflareClient(settings) as client:
            principal = await client.verify_credentials()
            zones = await client.list_zones()
        return True, f"{principal}, {len(zones)} zone(s) visible"
    except Exception as exc:
        return False, str(exc)


async def _check_kv(settings: AppSettings) -> tuple[bool, str]:
    try:
        async with CloudflareClient(settings) as client:
            namespaces = await client.list_kv_namespaces()
        return True, f"{len(namespaces)} namespace(s) visible"
    except Exception as exc:
        return False, str(exc)


@app.command()
def run(ctx: typer.Context) -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = ctx.obj if isinstance(ctx.obj, AppSettings) else AppSettings()

    table = Table(title="cfpurge Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    if settings.api_token:
        table.add_row("Credentials", "OK", "API token")
    elif settings.has_auth():
        table.add_row("Credentials", "OK", "Global API key + e-mail (consider a scoped token)")
    else:
        table.add_row("Credentials", "FAIL", "Set CLOUDFLARE_API_TOKEN or CLOUDFLARE_API_KEY + CLOUDFLARE_EMAIL")
    if settings.account_id:
        table.add_row("Account id", "OK", settings.account_id)
    else:
        table.add_row("Account id", "OPTIONAL", "Required only for `kv` commands")
    table.add_row("API base_url", "OK", settings.api_base_url)
    table.add_row("User config", "INFO", str(get_user_env_file()))

    ok_api = False
    if settings.has_auth():
        ok_api, detail_api = asyncio.run(_check_api(settings))
        table.add_row("API connectivity", "OK" if ok_api else "FAIL", detail_api)
        if settings.account_id:
            ok_kv, detail_kv = asyncio.run(_check_kv(settings))
            table.add_row("Workers KV", "OK" if ok_kv else "FAIL", detail_kv)
    else:
        table.add_row("API connectivity", "SKIPPED", "No credentials")

    _console.print(table)

    if not ok_api:
        _console.print(
            "\n[yellow]Note:[/yellow] purge and kv commands need working credentials; "
            "see the rows above."
        )
        raise typer.Exit(code=1)
