"""
In-memory authoritative counters and sets with debounced, coalesced,
crash-safe persistence to JSON files.
"""

import asyncio
import json
import logging
import math
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiofiles

from soundrelay.exceptions import PersistenceError
from soundrelay.storage.atomic import atomic_write_json
from soundrelay.utils.scheduling import ScheduledTask

log = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.25


@dataclass(frozen=True)
class BareCount:
    """Counter file holding a plain JSON number (current format)."""

    value: int


@dataclass(frozen=True)
class CountEnvelope:
    """Counter file holding `{"count": n}` (legacy format)."""

    value: int


@dataclass(frozen=True)
class UnrecognizedPayload:
    raw: Any


CounterPayload = BareCount | CountEnvelope | UnrecognizedPayload


def _as_count(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return None


def decode_counter_payload(data: Any) -> CounterPayload:
    """Classifies a decoded counter file into one of its known shapes."""
    if (count := _as_count(data)) is not None:
        return BareCount(count)
    if isinstance(data, dict) and (count := _as_count(data.get("count"))) is not None:
        return CountEnvelope(count)
    return UnrecognizedPayload(data)


def decode_member_list(data: Any) -> list[int]:
    """
    Decodes a JSON array of integer identities. Entries that are not integers
    (or integer strings) are skipped.
    """
    if not isinstance(data, list):
        raise ValueError(f"expected a JSON array, got {type(data).__name__}")
    members = []
    for value in data:
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            members.append(value)
        elif isinstance(value, float) and value.is_integer():
            members.append(int(value))
        elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
            members.append(int(value.strip()))
    return members


class _PersistentValue:
    """
    Shared debounce / flush machinery. Subclasses provide `_serialize()` and
    `_restore()`.
    """

    def __init__(self, path: Path, debounce_seconds: float = DEBOUNCE_SECONDS):
        self.path = Path(path)
        self.debounce_seconds = debounce_seconds
        self.dirty = False
        self._timer = ScheduledTask(name=f"persist:{self.path.name}")
        self._write_lock = asyncio.Lock()

    def _serialize(self) -> Any:
        raise NotImplementedError

    def _restore(self, data: Any) -> None:
        raise NotImplementedError

    @property
    def persist_pending(self) -> bool:
        return self._timer.is_pending

    async def load(self) -> None:
        """
        Loads the persisted value. A missing file means "no prior state";
        any other failure is logged and the defaults are kept.
        """
        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            return
        except OSError as e:
            log.warning(f"[yellow]Unable to read {self.path.name}:[/] {e}")
            return

        try:
            self._restore(json.loads(raw))
        except (json.JSONDecodeError, ValueError) as e:
            log.warning(f"[yellow]Unable to parse {self.path.name}:[/] {e}")

    def _mark_dirty(self) -> None:
        self.dirty = True
        self._timer.schedule(self.debounce_seconds, self._persist_in_background)

    async def _persist_in_background(self) -> None:
        try:
            await self._persist()
        except PersistenceError as e:
            log.error(f"[red]{e}[/red]")

    async def _persist(self) -> None:
        async with self._write_lock:
            if not self.dirty:
                return
            # Cleared before the write so mutations during the await re-mark it.
            self.dirty = False
            payload = self._serialize()
            try:
                await atomic_write_json(self.path, payload)
            except OSError as e:
                self.dirty = True
                raise PersistenceError(
                    f"Failed to persist {self.path.name}: {e}"
                ) from e

    async def flush(self) -> None:
        """
        Cancels any pending debounced write and, if dirty, writes now.

        Raises:
            PersistenceError: If the write fails. The value stays dirty.
        """
        self._timer.cancel()
        await self._timer.wait()
        await self._persist()


class PersistentCounter(_PersistentValue):
    """A monotonically increasing counter stored as a JSON number."""

    def __init__(
        self, path: Path, debounce_seconds: float = DEBOUNCE_SECONDS, initial: int = 0
    ):
        super().__init__(path, debounce_seconds)
        self._value = initial

    def get(self) -> int:
        return self._value

    def increment(self, amount: int = 1) -> int:
        self._value += amount
        self._mark_dirty()
        return self._value

    def _serialize(self) -> Any:
        return self._value

    def _restore(self, data: Any) -> None:
        payload = decode_counter_payload(data)
        if isinstance(payload, (BareCount, CountEnvelope)):
            self._value = payload.value
        else:
            log.warning(
                f"[yellow]Ignoring unrecognized content in {self.path.name}.[/yellow]"
            )


class PersistentSet(_PersistentValue):
    """A set of integer identities stored as a JSON array."""

    def __init__(self, path: Path, debounce_seconds: float = DEBOUNCE_SECONDS):
        super().__init__(path, debounce_seconds)
        self._members: set[int] = set()

    def add(self, member: int) -> None:
        self._members.add(member)
        self._mark_dirty()

    def __contains__(self, member: object) -> bool:
        return member in self._members

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._members))

    def _serialize(self) -> Any:
        return sorted(self._members)

    def _restore(self, data: Any) -> None:
        self._members.update(decode_member_list(data))


class DurableCounterStore:
    """
    The relay's durable state: the historical download counter and the set of
    authorized users.
    """

    DOWNLOAD_COUNT_FILE = "download-count.json"
    AUTHORIZED_USERS_FILE = "authorized-users.json"

    def __init__(self, data_dir: Path, debounce_seconds: float = DEBOUNCE_SECONDS):
        self.data_dir = Path(data_dir)
        self.downloads = PersistentCounter(
            self.data_dir / self.DOWNLOAD_COUNT_FILE, debounce_seconds
        )
        self.authorized_users = PersistentSet(
            self.data_dir / self.AUTHORIZED_USERS_FILE, debounce_seconds
        )

    async def load(self) -> None:
        await self.authorized_users.load()
        await self.downloads.load()
        log.info(
            f"Loaded {len(self.authorized_users)} authorized users, "
            f"{self.downloads.get()} historical downloads."
        )

    async def flush(self) -> None:
        """
        Persists every dirty value. Used at shutdown.

        Raises:
            PersistenceError: If any value failed to persist.
        """
        results = await asyncio.gather(
            self.authorized_users.flush(),
            self.downloads.flush(),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors:
            log.error(f"[red]Failed to persist state during shutdown: {error}[/red]")
        if errors:
            raise errors[0]
