"""
Password-gated access. Passwords are handed out in segments: the first
`segment_size` users join with the first password, the next ones with the
second, and so on.
"""

import logging
from enum import Enum

from soundrelay import messages
from soundrelay.storage.counter_store import PersistentSet

log = logging.getLogger(__name__)


class AccessOutcome(Enum):
    AUTHORIZED = "authorized"
    PROMPTED = "prompted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CAPACITY_REACHED = "capacity_reached"

    @property
    def reply(self) -> str | None:
        return {
            AccessOutcome.AUTHORIZED: None,
            AccessOutcome.PROMPTED: messages.PROMPT_PASSWORD,
            AccessOutcome.ACCEPTED: messages.PASSWORD_ACCEPTED,
            AccessOutcome.REJECTED: messages.PASSWORD_REJECTED,
            AccessOutcome.CAPACITY_REACHED: messages.AUTH_LIMIT_REACHED,
        }[self]


class AccessGate:
    def __init__(
        self,
        passwords: list[str],
        authorized: PersistentSet,
        segment_size: int = 25,
        trusted_ids: set[int] | None = None,
    ):
        """
        Args:
            trusted_ids: Users that are always authorized without being
                persisted or counted against capacity.
        """
        self.passwords = list(passwords)
        self.authorized = authorized
        self.segment_size = segment_size
        self.trusted_ids = set(trusted_ids or ())
        self._awaiting_password: set[int] = set()

    @property
    def capacity(self) -> int:
        return len(self.passwords) * self.segment_size

    def is_authorized(self, user_id: int) -> bool:
        return user_id in self.trusted_ids or user_id in self.authorized

    def is_capacity_reached(self) -> bool:
        return not self.passwords or len(self.authorized) >= self.capacity

    def password_for_next_user(self) -> str | None:
        index = len(self.authorized) // self.segment_size
        if index >= len(self.passwords):
            return None
        return self.passwords[index]

    def authorize(self, user_id: int) -> None:
        self._awaiting_password.discard(user_id)
        self.authorized.add(user_id)

    def prompt(self, user_id: int) -> AccessOutcome:
        """Puts the user in the awaiting-password state, capacity permitting."""
        if self.is_capacity_reached():
            self._awaiting_password.discard(user_id)
            return AccessOutcome.CAPACITY_REACHED
        self._awaiting_password.add(user_id)
        return AccessOutcome.PROMPTED

    def check_password(self, user_id: int, text: str) -> AccessOutcome:
        """
        Runs one step of the password flow for a message from `user_id`.

        A user who was never prompted gets prompted, whatever they sent. A
        prompted user's message is compared against the password of the
        segment the next user falls into.
        """
        if self.is_authorized(user_id):
            return AccessOutcome.AUTHORIZED

        expected = self.password_for_next_user()
        if self.is_capacity_reached() or expected is None:
            self._awaiting_password.discard(user_id)
            return AccessOutcome.CAPACITY_REACHED

        text = (text or "").strip()
        if user_id not in self._awaiting_password or not text:
            return self.prompt(user_id)

        if text == expected:
            self.authorize(user_id)
            log.info(f"[green]User {user_id} authorized ({len(self.authorized)}/{self.capacity}).[/green]")
            return AccessOutcome.ACCEPTED

        log.info(f"User {user_id} sent a wrong password.")
        return AccessOutcome.REJECTED
