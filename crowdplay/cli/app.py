"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
from pathlib import Path

import aiohttp
import typer
from rich.console import Console
from rich.logging import RichHandler

from crowdplay import __version__
from crowdplay.api.client import CounterStoreClient
from crowdplay.core.vote_ledger import VoteLedger
from crowdplay.exceptions import CrowdplayError
from crowdplay.models.config import ClientConfig
from crowdplay.storage.config_manager import ConfigManager, env_overrides
from crowdplay.storage.local_storage import LocalStorage

from .formatters import (
    print_config,
    print_counts_table,
    print_ledger,
    print_validation_table,
    print_vote_result,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("crowdplay")

app = typer.Typer(
    name="crowdplay",
    help="Inspect and cast anonymous upvotes on tracks from the terminal.",
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "crowdplay"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config() -> ClientConfig:
    return ConfigManager(CONFIG_FILE).load_config(env_overrides())


def _open_ledger(config: ClientConfig) -> tuple[CounterStoreClient, VoteLedger]:
    client = CounterStoreClient.from_config(config)
    ledger = VoteLedger(client, LocalStorage(Path(config.config_path)))
    return client, ledger


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """crowdplay vote client"""
    if version:
        console.print(f"[bold]crowdplay[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("crowdplay").setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]crowdplay init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        print_config(CONFIG_FILE, config_manager.get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    store_url: str = typer.Argument(..., help="Base URL of the counter store."),
    api_key: str = typer.Argument(..., help="Shared API key of the counter store."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Initialize configuration with the counter store's URL and key."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ClientConfig(store_url=store_url, api_key=api_key, config_path=str(CONFIG_DIR))
    except ValueError as e:
        console.print(f"[red]✗ Invalid settings: {e}[/red]")
        raise typer.Exit(code=1) from e

    ConfigManager(CONFIG_FILE).save_new_config(
        {"store_url": store_url.rstrip("/"), "api_key": api_key}
    )
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Try: [cyan]crowdplay counts <TRACK_ID>[/cyan]")


@app.command()
def counts(
    track_ids: list[str] = typer.Argument(  # noqa: B008
        ..., help="One or more track identifiers."
    ),
):
    """Show upvote counts for tracks."""

    async def _counts_async():
        config = _load_config()
        client, ledger = _open_ledger(config)
        async with client:
            result = await ledger.bulk_initialize(track_ids)
        print_counts_table(track_ids, result, ledger.voted_tracks)

    try:
        asyncio.run(_counts_async())
    except CrowdplayError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e


@app.command()
def vote(
    track_id: str = typer.Argument(..., help="The track to upvote or un-vote."),
):
    """Toggle your upvote on a track."""

    async def _vote_async() -> bool:
        config = _load_config()
        client, ledger = _open_ledger(config)
        async with client:
            result = await ledger.toggle_vote(track_id)
        print_vote_result(track_id, result, ledger.has_voted(track_id))
        return result.applied

    try:
        applied = asyncio.run(_vote_async())
    except CrowdplayError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e
    if not applied:
        raise typer.Exit(code=1)


@app.command()
def ledger():
    """List the tracks voted on from this profile."""
    print_ledger(VoteLedger.read_voted(LocalStorage(CONFIG_DIR)))


@app.command(name="clear-ledger")
def clear_ledger(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Bypass the confirmation prompt.",
    ),
):
    """Forget all local votes (remote counts are not changed)."""
    if not force and not typer.confirm(
        "Forget every local vote? Tracks will be up-voted again on the next toggle."
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()

    if VoteLedger.clear_stored(LocalStorage(CONFIG_DIR)):
        console.print("[green]✓ Local votes cleared.[/green]")
    else:
        console.print("[red]✗ Failed to clear local votes.[/red]")
        raise typer.Exit(code=1)


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        print_validation_table(_load_config())
    except CrowdplayError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


@app.command()
def diagnose():
    """Diagnose common configuration and connectivity issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False
    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print(
            "[red]✗ Config file not found.[/] Run [cyan]crowdplay init[/cyan]."
        )
        raise typer.Exit(code=1)
    try:
        config = _load_config()
        console.print("[green]✓[/] Configuration file is valid and can be loaded.")
    except CrowdplayError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print("\n[dim]Testing connectivity to the counter store...[/dim]")

    async def test_connection() -> bool:
        try:
            timeout = aiohttp.ClientTimeout(total=10)
            async with (
                aiohttp.ClientSession(
                    timeout=timeout,
                    headers={
                        "apikey": config.api_key,
                        "Authorization": f"Bearer {config.api_key}",
                    },
                ) as session,
                session.get(config.rest_url, params={"select": "id", "limit": "1"}) as resp,
            ):
                if resp.status == 200:
                    console.print("[green]✓[/] Successfully queried the counter store.")
                    return True
                console.print(
                    f"[red]✗ Counter store answered with status {resp.status}.[/red]"
                )
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            console.print(f"[red]✗ Connection test failed: {e}[/red]")
            return False

    if not asyncio.run(test_connection()):
        issues_found = True
    console.print()
    if not issues_found:
        console.print(
            "[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n"
        )
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
        raise typer.Exit(code=1)
