"""
A `ChatTransport` for the terminal: messages are printed with Rich and
delivered documents are copied into the output directory.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

import aiofiles
import aiofiles.os
import typer
from pathvalidate import sanitize_filename
from rich.console import Console
from rich.markup import escape

from soundrelay.core.transport import PromptAction

log = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024

SignalHandler = Callable[[int, str], Awaitable[object]]


class ConsoleTransport:
    """
    Prints outgoing messages and answers playlist prompts for the local
    user, either automatically or through `typer.confirm`.
    """

    def __init__(
        self,
        console: Console,
        output_dir: Path,
        user_id: int,
        auto_continue: bool | None = None,
    ):
        """
        Args:
            auto_continue: True continues every playlist without asking,
                False stops at the first prompt, None asks interactively.
        """
        self.console = console
        self.output_dir = output_dir
        self.user_id = user_id
        self.auto_continue = auto_continue
        self.on_signal: SignalHandler | None = None
        self.delivered: list[Path] = []
        self._next_message_id = 0
        self._prompts: set[asyncio.Task] = set()

    @property
    def has_pending_prompts(self) -> bool:
        return bool(self._prompts)

    async def send_text(
        self,
        chat_id: int,
        text: str,
        actions: list[PromptAction] | None = None,
    ) -> int:
        self._next_message_id += 1
        prefix = "[bold cyan]›[/bold cyan]" if chat_id == self.user_id else f"[dim]→ {chat_id}[/dim]"
        self.console.print(f"{prefix} {escape(text)}")
        if actions:
            task = asyncio.create_task(self._answer_prompt(text, actions))
            self._prompts.add(task)
            task.add_done_callback(self._prompts.discard)
        return self._next_message_id

    async def edit_text(self, chat_id: int, message_id: int, text: str) -> None:
        self.console.print(f"[bold cyan]›[/bold cyan] [dim](#{message_id})[/dim] {escape(text)}")

    async def send_document(
        self, chat_id: int, path: Path, filename: str, caption: str
    ) -> None:
        target = self.output_dir / sanitize_filename(filename, replacement_text="_")
        await aiofiles.os.makedirs(self.output_dir, exist_ok=True)
        async with aiofiles.open(path, "rb") as src, aiofiles.open(target, "wb") as dst:
            while chunk := await src.read(COPY_CHUNK_SIZE):
                await dst.write(chunk)
        self.delivered.append(target)
        log.debug(f"Copied '{path}' to '{target}'")
        self.console.print(f"[green]✓[/green] [bold]{escape(caption)}[/bold]")
        self.console.print(f"  [dim]{escape(str(target))}[/dim]")

    async def join(self) -> None:
        while self._prompts:
            await asyncio.gather(*list(self._prompts), return_exceptions=True)

    async def _answer_prompt(self, text: str, actions: list[PromptAction]) -> None:
        if self.auto_continue is None:
            proceed = await asyncio.to_thread(typer.confirm, text, default=True)
        else:
            proceed = self.auto_continue
        action = actions[0] if proceed else actions[-1]
        if self.on_signal is None:
            log.warning(f"[yellow]No handler for prompt action '{action.data}'.[/yellow]")
            return
        await self.on_signal(self.user_id, action.data)
