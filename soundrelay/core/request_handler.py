"""
Entry point for incoming chat messages and commands.
"""

import logging

from soundrelay import messages
from soundrelay.api.link_resolver import LinkResolver
from soundrelay.core.access import AccessGate, AccessOutcome
from soundrelay.core.notifier import Notifier
from soundrelay.core.playlist import SessionCoordinator, SignalOutcome, parse_callback_data
from soundrelay.core.task_queue import TaskQueue
from soundrelay.core.track_processor import TrackProcessor
from soundrelay.core.transport import ChatTransport
from soundrelay.exceptions import QueueFullError
from soundrelay.storage.counter_store import DurableCounterStore
from soundrelay.utils.errors import extract_readable_error_text, format_user_facing_error
from soundrelay.utils.urls import (
    extract_first_url,
    extract_soundcloud_url,
    is_resolvable_link,
    is_soundcloud_playlist,
)

log = logging.getLogger(__name__)

__all__ = ["RequestHandler"]


class RequestHandler:
    """
    Routes one requester message: access check, link extraction or
    resolution, then either a playlist session or a single queued track.
    """

    def __init__(
        self,
        transport: ChatTransport,
        queue: TaskQueue,
        processor: TrackProcessor,
        coordinator: SessionCoordinator,
        access: AccessGate,
        store: DurableCounterStore,
        notifier: Notifier,
        resolver: LinkResolver | None = None,
    ):
        self.transport = transport
        self.queue = queue
        self.processor = processor
        self.coordinator = coordinator
        self.access = access
        self.store = store
        self.notifier = notifier
        self.resolver = resolver

    async def handle_start(self, user_id: int | None, chat_id: int) -> None:
        await self.transport.send_text(chat_id, messages.START_INTRO)
        if user_id is None:
            await self.transport.send_text(chat_id, messages.USER_ID_MISSING)
            return
        if self.access.is_authorized(user_id):
            await self.transport.send_text(chat_id, messages.ALREADY_AUTHORIZED)
            return
        outcome = self.access.prompt(user_id)
        await self.transport.send_text(chat_id, outcome.reply)

    async def download_count(self, chat_id: int) -> None:
        await self.transport.send_text(
            chat_id, messages.download_count(self.store.downloads.get())
        )

    async def user_id(self, user_id: int | None, chat_id: int) -> None:
        if user_id is None:
            await self.transport.send_text(chat_id, messages.USER_ID_MISSING)
            return
        log.info(f"User ID request: {user_id}")
        await self.transport.send_text(chat_id, messages.user_id_response(user_id))

    async def broadcast(self, sender_id: int | None, chat_id: int, text: str) -> None:
        """Sends `text` to every authorized user on behalf of an admin."""
        if sender_id is None:
            await self.transport.send_text(chat_id, messages.USER_ID_MISSING)
            return
        if not self.notifier.is_admin(sender_id):
            await self.transport.send_text(chat_id, messages.NOT_ADMIN)
            return
        text = (text or "").strip()
        if not text:
            await self.transport.send_text(chat_id, messages.BROADCAST_USAGE)
            return
        if not len(self.access.authorized):
            await self.transport.send_text(chat_id, messages.BROADCAST_NO_USERS)
            return

        sent = failed = 0
        for target_id in list(self.access.authorized):
            try:
                await self.transport.send_text(target_id, text)
                sent += 1
            except Exception as e:
                failed += 1
                log.warning(f"[yellow]Broadcast to {target_id} failed:[/yellow] {e}")
        await self.transport.send_text(chat_id, messages.broadcast_result(sent, failed))

    async def handle_signal(self, requester_id: int, data: str) -> SignalOutcome | None:
        """Decodes inline-action data and forwards it to the playlist sessions."""
        parsed = parse_callback_data(data)
        if parsed is None:
            return None
        action, session_id = parsed
        return await self.coordinator.handle_signal(session_id, requester_id, action)

    async def handle_text(self, user_id: int | None, chat_id: int, text: str) -> None:
        if user_id is None:
            await self.transport.send_text(chat_id, messages.USER_ID_MISSING)
            return

        if not self.access.is_authorized(user_id):
            outcome = self.access.check_password(user_id, text)
            if outcome is not AccessOutcome.AUTHORIZED:
                await self.transport.send_text(chat_id, outcome.reply)
                return

        url = extract_soundcloud_url(text)
        if not url:
            candidate = extract_first_url(text)
            if candidate and is_resolvable_link(candidate) and self.resolver:
                await self.transport.send_text(chat_id, messages.CONVERSION_IN_PROGRESS)
                try:
                    url = await self.resolver.resolve(candidate)
                except Exception as e:
                    log.error(f"[red]Link resolution failed:[/red] {e}")
                    await self.notifier.report(e)
                    await self.transport.send_text(chat_id, messages.GENERIC_ERROR)
                    return
                if not url:
                    await self.transport.send_text(chat_id, messages.CONVERSION_NOT_FOUND)
                    return

        if not url:
            await self.transport.send_text(chat_id, messages.INVALID_LINK)
            return

        if is_soundcloud_playlist(url):
            await self.coordinator.start(user_id, chat_id, url)
            return

        await self.transport.send_text(chat_id, messages.DOWNLOAD_PREP)
        try:
            await self.queue.submit(lambda: self.processor.process(chat_id, url))
        except Exception as e:
            if isinstance(e, QueueFullError):
                log.warning(f"[yellow]Rejected {url}: queue full.[/yellow]")
            else:
                reason = extract_readable_error_text(e) or e
                log.error(f"[red]Download failed for {url}:[/red] {reason}")
                self.processor.stats.tracks_failed += 1
                self.processor.stats.failures.append(f"{url}: {e}")
            await self.notifier.report(e)
            await self.transport.send_text(chat_id, format_user_facing_error(e))
