"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import sys
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from soundrelay import __version__
from soundrelay.api.link_resolver import LinkResolver
from soundrelay.core.access import AccessGate
from soundrelay.core.notifier import Notifier
from soundrelay.core.playlist import SessionCoordinator
from soundrelay.core.request_handler import RequestHandler
from soundrelay.core.retrieval import RetrievalOrchestrator
from soundrelay.core.task_queue import TaskQueue
from soundrelay.core.track_processor import TrackProcessor
from soundrelay.exceptions import PersistenceError, SoundRelayError
from soundrelay.media.engine import YtDlpEngine
from soundrelay.media.quality import QualityProbe
from soundrelay.models.config import RelayConfig
from soundrelay.models.download import RelayStats
from soundrelay.storage.config_manager import ConfigManager
from soundrelay.storage.counter_store import DurableCounterStore

from .console_transport import ConsoleTransport
from .formatters import print_config, print_stats_table, print_summary_panel

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
log = logging.getLogger("soundrelay")

# The terminal user stands in for a chat user; it is trusted, never persisted.
LOCAL_USER_ID = 0

app = typer.Typer(
    name="soundrelay",
    help=(
        "Fetch SoundCloud tracks and playlists with rate-limit fallback. Use"
        " 'soundrelay <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "soundrelay"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config(cli_options: dict | None = None) -> RelayConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config(cli_options)
    except SoundRelayError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e


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
    """SoundCloud relay CLI"""
    if version:
        console.print(f"[bold]soundrelay[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("soundrelay").setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]soundrelay init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        print_config(CONFIG_FILE, config_manager.read_file_settings())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    token: str | None = typer.Option(
        None, "--token", "-t", help="SoundCloud OAuth token for full-fidelity downloads."
    ),
    passwords: list[str] | None = typer.Option(  # noqa: B008
        None, "--password", "-p", help="Access password (repeat for more segments)."
    ),
    admins: list[int] | None = typer.Option(  # noqa: B008
        None, "--admin", help="Admin user id (repeatable)."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Write a configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {}
    if token:
        settings["soundcloud_oauth_token"] = token
        console.print("[green]✓ Using OAuth token for premium quality.[/green]")
    else:
        console.print(
            "[yellow]⚠️  No OAuth token given; downloads will use public quality.[/yellow]"
        )
    if passwords:
        settings["access_passwords"] = passwords
    if admins:
        settings["admin_user_ids"] = admins

    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready! Try: [cyan]soundrelay fetch <URL>[/cyan]")


@app.command(name="fetch")
def fetch_command(
    urls: list[str] = typer.Argument(  # noqa: B008
        ..., help="SoundCloud links (tracks or sets), or links from other platforms."
    ),
    output_dir: str | None = typer.Option(
        None, "-o", "--output", help="Directory delivered files are copied into."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of simultaneous downloads (default 3)."
    ),
    auto_continue: bool | None = typer.Option(
        None,
        "--yes/--no",
        "-y/-n",
        help="Continue (or stop) playlists at every chunk prompt without asking.",
    ),
    no_quality: bool = typer.Option(
        False, "--no-quality", help="Skip the bitrate probe."
    ),
):
    """Fetch tracks and playlists into a local directory."""
    cli_options = {
        key: value
        for key, value in {
            "output_dir": output_dir,
            "max_concurrent_downloads": workers,
            "enable_quality_analysis": False if no_quality else None,
        }.items()
        if value is not None
    }
    config = _load_config(cli_options)
    if auto_continue is None and not sys.stdin.isatty():
        auto_continue = False

    async def _fetch_async() -> tuple[RelayStats, float]:
        store = DurableCounterStore(Path(config.data_dir))
        await store.load()

        transport = ConsoleTransport(
            console, Path(config.output_dir), LOCAL_USER_ID, auto_continue
        )
        engine = YtDlpEngine(config.soundcloud_oauth_token, config.skip_cert_check)
        stats = RelayStats()
        processor = TrackProcessor(
            config,
            RetrievalOrchestrator(engine),
            QualityProbe.from_config(config),
            transport,
            store,
            stats,
        )
        queue = TaskQueue(config.max_concurrent_downloads, config.max_pending_downloads)
        notifier = Notifier(transport, config.admin_user_ids)
        coordinator = SessionCoordinator(
            queue,
            processor,
            transport,
            engine,
            notifier,
            chunk_size=config.playlist_chunk_size,
            max_items=config.playlist_max_items,
        )
        access = AccessGate(
            config.access_passwords,
            store.authorized_users,
            config.password_segment_size,
            trusted_ids={LOCAL_USER_ID},
        )
        resolver = LinkResolver.from_config(config)
        handler = RequestHandler(
            transport, queue, processor, coordinator, access, store, notifier, resolver
        )
        transport.on_signal = handler.handle_signal

        console.print("[bold cyan]🎵 Starting fetch session...[/bold cyan]")
        start_time = time.monotonic()
        try:
            await asyncio.gather(
                *(handler.handle_text(LOCAL_USER_ID, LOCAL_USER_ID, url) for url in urls)
            )
            while coordinator.has_background_work or transport.has_pending_prompts:
                await coordinator.join()
                await transport.join()
            await queue.join()
        finally:
            await resolver.close()
            try:
                await store.flush()
            except PersistenceError as e:
                log.error(f"[red]Failed to save counters: {e}[/red]")
        return stats, time.monotonic() - start_time

    stats, duration = asyncio.run(_fetch_async())
    print_summary_panel(stats, duration)
    if stats.tracks_failed and not stats.tracks_delivered:
        raise typer.Exit(code=1)


@app.command(name="stats")
def stats_command():
    """Show the persisted download counter and authorized users."""
    config = _load_config()

    async def _stats_async():
        store = DurableCounterStore(Path(config.data_dir))
        await store.load()
        print_stats_table(
            {
                "downloads": store.downloads.get(),
                "authorized_users": len(store.authorized_users),
                "capacity": config.max_authorized_users,
                "data_dir": config.data_dir,
            }
        )

    asyncio.run(_stats_async())


@app.command(name="authorize")
def authorize_command(
    user_ids: list[int] = typer.Argument(..., help="Chat user ids to authorize."),  # noqa: B008
):
    """Add users to the authorized set without a password."""
    config = _load_config()

    async def _authorize_async():
        store = DurableCounterStore(Path(config.data_dir))
        await store.load()
        for user_id in user_ids:
            if user_id in store.authorized_users:
                console.print(f"[dim]User {user_id} is already authorized.[/dim]")
                continue
            store.authorized_users.add(user_id)
            console.print(f"[green]✓ Authorized user {user_id}.[/green]")
        await store.flush()
        console.print(
            f"[bold]{len(store.authorized_users)}[/bold] authorized user(s) in total."
        )

    asyncio.run(_authorize_async())
