"""
Rich renderables for the CLI: error panels, config and stats tables, and the
end-of-run summary.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from soundrelay.exceptions import (
    ConfigurationError,
    LinkResolutionError,
    PersistenceError,
    QueueFullError,
    RetrievalError,
    UserFacingRetrievalError,
)
from soundrelay.models.download import RelayStats
from soundrelay.utils.formatting import format_duration, format_size

SENSITIVE_KEYS = ("soundcloud_oauth_token", "access_passwords")

# Looked up along the exception's MRO, so subclasses inherit their parent's tips.
SUGGESTIONS: dict[type[Exception], list[str]] = {
    ConfigurationError: [
        "Check the values in your configuration file.",
        "Run `soundrelay init --force` to write a fresh one.",
        "Environment overrides such as MAX_CONCURRENT_DOWNLOADS win over the file.",
    ],
    PersistenceError: [
        "Check that `data_dir` exists, is writable and has free space.",
    ],
    UserFacingRetrievalError: [
        "SoundCloud refused this particular track; other links may still work.",
    ],
    RetrievalError: [
        "SoundCloud may be rate-limiting you. Wait 30-60 minutes.",
        "Your OAuth token may have expired. Run `soundrelay init --force`.",
        "Make sure yt-dlp and ffmpeg are up to date.",
    ],
    LinkResolutionError: [
        "The link resolver service did not answer in time.",
        "Check `link_resolver_base_url` in your configuration.",
    ],
    QueueFullError: [
        "Raise `max_pending_downloads` or pass fewer URLs at once.",
    ],
}
DEFAULT_SUGGESTION = "Run the command again with -vv for detailed logs."


def suggestions_for(error: BaseException) -> list[str]:
    for cls in type(error).__mro__:
        if cls in SUGGESTIONS:
            return SUGGESTIONS[cls]
    return [DEFAULT_SUGGESTION]


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Renders `error` with the suggestions registered for its type."""
    headline = Text.assemble(
        (f"{type(error).__name__}: ", "bold red"), str(error) or "(no details)"
    )
    tips = Text("\n".join(f"• {tip}" for tip in suggestions_for(error)))
    parts: list[Any] = [headline, Text(""), Text("Suggestions", style="bold yellow"), tips]
    if context:
        details = ", ".join(f"{key}={value}" for key, value in context.items())
        parts += [Text(""), Text(details, style="dim")]

    return Panel(
        Group(*parts),
        title="[bold red]soundrelay failed[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding sensitive data."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if key in SENSITIVE_KEYS and value:
            value = "[hidden]"
        elif isinstance(value, list):
            value = ", ".join(map(str, value))
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip() or "[dim]No settings (defaults in use).[/dim]",
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_stats_table(stats_data: dict[str, Any]):
    """Displays the persisted counters."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Tracks Downloaded:", f"[green]{stats_data['downloads']}[/green]")
    table.add_row(
        "Authorized Users:",
        f"{stats_data['authorized_users']} / {stats_data['capacity']}",
    )
    table.add_row("Data Directory:", f"[dim]{stats_data['data_dir']}[/dim]")

    console.print(
        Panel(table, title="[bold]soundrelay statistics[/bold]", border_style="cyan")
    )


def print_summary_panel(stats: RelayStats, duration_s: float):
    """Displays the final summary of a fetch session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Delivered:", f"[bold green]{stats.tracks_delivered}[/bold green]"
    )
    if stats.tracks_degraded > 0:
        stats_table.add_row(
            "⚠ Degraded (192k):", f"[yellow]{stats.tracks_degraded}[/yellow]"
        )
    if stats.tracks_too_large > 0:
        stats_table.add_row("○ Too Large:", f"[yellow]{stats.tracks_too_large}[/yellow]")
    if stats.tracks_failed > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.tracks_failed}[/bold red]")
    if stats.playlists_started > 0:
        stats_table.add_row("Playlists:", str(stats.playlists_started))

    stats_table.add_row("", "")
    stats_table.add_row(
        "Total Size:", f"[cyan]{format_size(stats.total_size_delivered)}[/cyan]"
    )
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    console.print()
    console.print(
        Panel(
            stats_table,
            title="🎵 [bold]Fetch Complete![/bold]",
            border_style="green" if not stats.tracks_failed else "yellow",
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )

    if stats.failures:
        console.print("[bold red]Failures:[/bold red]")
        for failure in stats.failures:
            console.print(f"  [red]•[/red] {escape(failure)}", highlight=False)
    console.print()
