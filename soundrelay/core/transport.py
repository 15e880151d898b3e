"""
The chat-platform boundary. Everything that talks to requesters goes through
a `ChatTransport`.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class PromptAction:
    """An inline action attached to a message, e.g. a Continue button."""

    label: str
    data: str


class ChatTransport(Protocol):
    async def send_text(
        self,
        chat_id: int,
        text: str,
        actions: list[PromptAction] | None = None,
    ) -> int:
        """Sends a message and returns its message id."""
        ...

    async def edit_text(self, chat_id: int, message_id: int, text: str) -> None: ...

    async def send_document(
        self, chat_id: int, path: Path, filename: str, caption: str
    ) -> None: ...
