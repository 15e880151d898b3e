"""
Playlist sessions: a playlist is retrieved chunk by chunk, with an explicit
continue/stop confirmation from its owner between chunks.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from soundrelay import messages
from soundrelay.core.notifier import Notifier
from soundrelay.core.task_queue import TaskQueue
from soundrelay.core.track_processor import TrackProcessor
from soundrelay.core.transport import ChatTransport, PromptAction
from soundrelay.exceptions import QueueFullError
from soundrelay.models.download import DeliveryItem
from soundrelay.utils.errors import extract_readable_error_text, format_user_facing_error

log = logging.getLogger(__name__)

CALLBACK_PREFIX = "pl"
ACTION_CONTINUE = "cont"
ACTION_STOP = "stop"


class SessionState(Enum):
    FETCHING = "fetching"
    STREAMING = "streaming"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DONE = "done"
    STOPPED = "stopped"


class SignalOutcome(Enum):
    EXPIRED = "expired"
    NOT_OWNER = "not_owner"
    STOPPED = "stopped"
    CONTINUED = "continued"
    IGNORED = "ignored"


class PlaylistSource(Protocol):
    async def fetch_playlist_entries(self, url: str, limit: int) -> list[str]: ...


@dataclass
class PlaylistSession:
    id: str
    owner_id: int
    chat_id: int
    tracks: tuple[str, ...]
    cursor: int = 0
    buffer: list[DeliveryItem] = field(default_factory=list)
    awaiting_confirmation: bool = False
    prompt_message_id: int | None = None
    state: SessionState = SessionState.FETCHING
    delivery_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def remaining(self) -> int:
        return len(self.tracks) - self.cursor


def callback_data(action: str, session_id: str) -> str:
    return f"{CALLBACK_PREFIX}:{action}:{session_id}"


def parse_callback_data(data: str) -> tuple[str, str] | None:
    """Decodes `pl:<action>:<session id>` into `(action, session_id)`."""
    parts = (data or "").split(":", 2)
    if len(parts) != 3 or parts[0] != CALLBACK_PREFIX or not parts[2]:
        return None
    return parts[1], parts[2]


class SessionCoordinator:
    """
    Owns every live playlist session.

    Each session keeps at most `window` items in the shared `TaskQueue`
    (the queue's concurrency limit, capped by the chunk size) and submits
    the next item as one settles, so a playlist never fills the backlog on
    its own. Retrieved items are delivered as soon as they complete
    (completion order, not playlist order), one at a time per session.
    After a full chunk has settled the owner is asked whether to continue.
    """

    def __init__(
        self,
        queue: TaskQueue,
        processor: TrackProcessor,
        transport: ChatTransport,
        playlist_source: PlaylistSource,
        notifier: Notifier | None = None,
        chunk_size: int = 10,
        max_items: int = 100,
    ):
        self.queue = queue
        self.processor = processor
        self.transport = transport
        self.playlist_source = playlist_source
        self.notifier = notifier
        self.chunk_size = chunk_size
        self.max_items = max_items
        self.sessions: dict[str, PlaylistSession] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def has_background_work(self) -> bool:
        return bool(self._tasks)

    def is_active(self, session: PlaylistSession) -> bool:
        return self.sessions.get(session.id) is session

    async def start(self, owner_id: int, chat_id: int, url: str) -> PlaylistSession | None:
        """
        Fetches the playlist entries and starts streaming the first chunk in
        the background.

        Returns:
            The new session, or None if the playlist had no usable entries.
        """
        entries = await self.playlist_source.fetch_playlist_entries(url, self.max_items)
        entries = [entry for entry in entries if entry][: self.max_items]
        if not entries:
            log.warning(f"[yellow]No playlist entries found for {url}[/yellow]")
            await self.transport.send_text(chat_id, messages.PLAYLIST_NO_ENTRIES)
            return None

        session = PlaylistSession(
            id=self._new_session_id(owner_id),
            owner_id=owner_id,
            chat_id=chat_id,
            tracks=tuple(entries),
        )
        self.sessions[session.id] = session
        self.processor.stats.playlists_started += 1
        log.info(f"Playlist session {session.id} started with {len(entries)} tracks.")

        await self.transport.send_text(
            chat_id,
            messages.playlist_detected(len(entries), self.chunk_size, self.max_items),
        )
        session.state = SessionState.STREAMING
        self._spawn(self._run_chunk(session))
        return session

    async def handle_signal(
        self, session_id: str, requester_id: int, action: str
    ) -> SignalOutcome:
        """Applies a continue/stop signal sent by `requester_id`."""
        session = self.sessions.get(session_id)
        if session is None:
            return SignalOutcome.EXPIRED
        if requester_id != session.owner_id:
            log.info(f"User {requester_id} tried to control playlist {session_id}.")
            return SignalOutcome.NOT_OWNER

        if action == ACTION_STOP:
            self._discard(session, SessionState.STOPPED)
            await self._drop_buffer(session)
            log.info(f"Playlist session {session_id} stopped at {session.cursor}/{len(session.tracks)}.")
            if session.prompt_message_id is not None:
                await self.transport.edit_text(
                    session.chat_id, session.prompt_message_id, messages.PLAYLIST_STOPPED
                )
            else:
                await self.transport.send_text(session.chat_id, messages.PLAYLIST_STOPPED)
            return SignalOutcome.STOPPED

        if action == ACTION_CONTINUE and session.awaiting_confirmation:
            session.awaiting_confirmation = False
            session.state = SessionState.STREAMING
            self._spawn(self._run_chunk(session))
            return SignalOutcome.CONTINUED

        return SignalOutcome.IGNORED

    async def join(self) -> None:
        """Waits for all background streaming work, including chunks started meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _new_session_id(self, owner_id: int) -> str:
        stamp = int(time.time() * 1000)
        while f"{owner_id}-{stamp}" in self.sessions:
            stamp += 1
        return f"{owner_id}-{stamp}"

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _discard(self, session: PlaylistSession, state: SessionState) -> None:
        if self.is_active(session):
            del self.sessions[session.id]
        session.state = state

    async def _run_chunk(self, session: PlaylistSession) -> None:
        try:
            await self._stream_chunk(session)
        except Exception as e:
            log.error(f"[red]Playlist session {session.id} failed:[/red] {e!r}")
            self._discard(session, SessionState.STOPPED)
            await self._drop_buffer(session)
            if self.notifier:
                await self.notifier.report(e)

    @property
    def window(self) -> int:
        """How many items of one session may sit in the queue at once."""
        limit = self.queue.concurrency_limit
        return max(1, min(limit, self.chunk_size) if limit else self.chunk_size)

    async def _stream_chunk(self, session: PlaylistSession) -> None:
        chunk_end = min(
            len(session.tracks), (session.cursor // self.chunk_size + 1) * self.chunk_size
        )
        in_flight: set[asyncio.Future] = set()
        while self.is_active(session):
            while (
                session.cursor < chunk_end
                and len(in_flight) < self.window
                and self.is_active(session)
            ):
                url = session.tracks[session.cursor]
                try:
                    in_flight.add(self.queue.submit(self._item_job(session, url)))
                except QueueFullError as e:
                    await self._abort_on_full_queue(session, e)
                    break
                session.cursor += 1
            if not in_flight or not self.is_active(session):
                break
            _, in_flight = await asyncio.wait(
                in_flight, return_when=asyncio.FIRST_COMPLETED
            )

        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)

        if self.is_active(session):
            await self._advance(session)

    async def _abort_on_full_queue(
        self, session: PlaylistSession, error: QueueFullError
    ) -> None:
        log.warning(f"[yellow]Queue full, aborting playlist session {session.id}.[/yellow]")
        self._discard(session, SessionState.STOPPED)
        await self._drop_buffer(session)
        await self.transport.send_text(session.chat_id, format_user_facing_error(error))

    def _item_job(self, session: PlaylistSession, url: str):
        async def job() -> None:
            await self._retrieve_item(session, url)

        return job

    async def _retrieve_item(self, session: PlaylistSession, url: str) -> None:
        if not self.is_active(session):
            return
        try:
            item = await self.processor.prepare(url)
        except Exception as e:
            await self._report_item_failure(session, url, e)
            return

        if not self.is_active(session):
            log.debug(f"Discarding late result for closed session {session.id}")
            await item.download.cleanup()
            return

        session.buffer.append(item)
        async with session.delivery_lock:
            await self._flush(session)

    async def _flush(self, session: PlaylistSession) -> None:
        """Delivers buffered items. Callers hold `session.delivery_lock`."""
        while session.buffer and self.is_active(session):
            item = session.buffer.pop(0)
            try:
                await self.processor.deliver(session.chat_id, item)
            except Exception as e:
                await self._report_item_failure(session, item.download.filename, e)

    async def _advance(self, session: PlaylistSession) -> None:
        if session.cursor >= len(session.tracks):
            async with session.delivery_lock:
                await self._flush(session)
            self._discard(session, SessionState.DONE)
            log.info(f"Playlist session {session.id} finished.")
            await self.transport.send_text(session.chat_id, messages.PLAYLIST_DONE)
            return

        if session.cursor % self.chunk_size == 0 and not session.awaiting_confirmation:
            session.awaiting_confirmation = True
            session.state = SessionState.AWAITING_CONFIRMATION
            session.prompt_message_id = await self.transport.send_text(
                session.chat_id,
                messages.playlist_chunk_prompt(
                    session.cursor, len(session.tracks), self.chunk_size
                ),
                actions=[
                    PromptAction(messages.CONTINUE_LABEL, callback_data(ACTION_CONTINUE, session.id)),
                    PromptAction(messages.STOP_LABEL, callback_data(ACTION_STOP, session.id)),
                ],
            )

    async def _drop_buffer(self, session: PlaylistSession) -> None:
        dropped, session.buffer = session.buffer, []
        for item in dropped:
            await item.download.cleanup()

    async def _report_item_failure(
        self, session: PlaylistSession, label: str, error: Exception
    ) -> None:
        self.processor.stats.tracks_failed += 1
        self.processor.stats.failures.append(f"{label}: {error}")
        if not self.is_active(session):
            log.debug(f"Ignoring failure for closed session {session.id}: {error!r}")
            return
        reason = extract_readable_error_text(error) or error
        log.error(f"[red]Playlist track failed ({label}):[/red] {reason}")
        await self.transport.send_text(session.chat_id, format_user_facing_error(error))
        if self.notifier:
            await self.notifier.report(error)
