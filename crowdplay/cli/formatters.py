"""
Functions for formatting and displaying data in the console using Rich.
"""

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from crowdplay.models.config import ClientConfig
from crowdplay.models.records import VoteResult

HIDDEN_KEYS = ("api_key",)


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `crowdplay init <STORE_URL> <API_KEY>` to create a configuration.",
            "• Check the values shown by `crowdplay --show-config`.",
        ],
        "RemoteUnavailableError": [
            "• Check your internet connection.",
            "• Verify the store URL with `crowdplay diagnose`.",
        ],
        "CircuitBreakerError": [
            "• Too many requests to the counter store failed in a row.",
            "• Wait a minute and try again.",
        ],
        "RemoteError": [
            "• The counter store rejected the request.",
            "• Verify that the API key is valid and the table exists.",
        ],
        "SessionError": [
            "• Only one playback session can be open per process.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding sensitive data."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if key in HIDDEN_KEYS and value:
            value = "[hidden]"
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            escape(content.strip()),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: ClientConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    timeout = (
        f"{config.request_timeout:g}s" if config.request_timeout else "[dim]none[/dim]"
    )
    table.add_row("Store URL:", config.store_url)
    table.add_row("Collection:", config.table)
    table.add_row("Request Timeout:", timeout)
    table.add_row("Bulk Chunk Size:", str(config.bulk_chunk_size))
    table.add_row(
        "Circuit Breaker:",
        f"{config.circuit_failure_threshold} failures / "
        f"{config.circuit_recovery_timeout}s cool-down",
    )
    table.add_row("Default Volume:", str(config.default_volume))

    console.print(
        Panel(
            table,
            title="[bold green]✓ Configuration is valid[/bold green]",
            border_style="green",
            expand=False,
        )
    )


def print_counts_table(
    track_ids: Iterable[str], counts: dict[str, int], voted: Iterable[str]
):
    """Shows upvote counts for the given tracks; tracks without a record count as 0."""
    console = Console()
    voted_set = set(voted)
    table = Table(box=box.ROUNDED, title="Upvotes")
    table.add_column("Track", style="cyan")
    table.add_column("Upvotes", justify="right", style="bold")
    table.add_column("Voted", justify="center")

    for track_id in dict.fromkeys(track_ids):
        table.add_row(
            escape(track_id),
            str(counts.get(track_id, 0)),
            "[green]♥[/green]" if track_id in voted_set else "[dim]·[/dim]",
        )
    console.print(table)


def print_vote_result(track_id: str, result: VoteResult, voted: bool):
    """Reports the outcome of a vote toggle."""
    console = Console()
    if not result.applied:
        console.print(
            f"[red]✗ Could not update the vote for [cyan]{escape(track_id)}[/cyan]. "
            "The count is unchanged.[/red]"
        )
        return
    action = "Upvoted" if voted else "Removed your vote for"
    console.print(
        f"[green]✓ {action} [cyan]{escape(track_id)}[/cyan] "
        f"([bold]{result.new_count}[/bold] upvotes).[/green]"
    )


def print_ledger(voted: Iterable[str]):
    """Lists the tracks this profile has voted on."""
    console = Console()
    voted = sorted(voted)
    if not voted:
        console.print("[dim]No local votes recorded.[/dim]")
        return
    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column(style="cyan")
    for track_id in voted:
        table.add_row(escape(track_id))
    console.print(
        Panel(table, title=f"Local votes ({len(voted)})", border_style="cyan", expand=False)
    )
