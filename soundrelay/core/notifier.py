"""
Best-effort operator notifications.
"""

import asyncio
import logging

from soundrelay import messages
from soundrelay.core.transport import ChatTransport
from soundrelay.utils.errors import describe_error, should_notify_admin

log = logging.getLogger(__name__)


class Notifier:
    def __init__(self, transport: ChatTransport, admin_user_ids: list[int]):
        self.transport = transport
        self.admin_user_ids = list(dict.fromkeys(admin_user_ids))

    def is_admin(self, user_id: int | None) -> bool:
        return user_id is not None and user_id in self.admin_user_ids

    async def notify_admins(self, text: str) -> None:
        """Sends `text` to every admin. A failed send is logged and skipped."""
        if not self.admin_user_ids:
            return
        results = await asyncio.gather(
            *(self.transport.send_text(admin_id, text) for admin_id in self.admin_user_ids),
            return_exceptions=True,
        )
        for admin_id, result in zip(self.admin_user_ids, results):
            if isinstance(result, Exception):
                log.warning(f"[yellow]Failed to notify admin {admin_id}:[/yellow] {result}")

    async def report(self, error: BaseException) -> None:
        """Forwards an unclassified failure to the admins."""
        if should_notify_admin(error):
            await self.notify_admins(messages.admin_error_notice(describe_error(error)))
