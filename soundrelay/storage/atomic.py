"""
Crash-safe JSON file replacement: write and fsync a sibling temporary file,
then rename it over the canonical path. The rename is the only commit point.
"""

import asyncio
import json
import logging
import os
import uuid
from contextlib import suppress
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

log = logging.getLogger(__name__)


def temp_path_for(path: Path) -> Path:
    """A unique sibling path, so the final rename stays on the same filesystem."""
    return path.with_name(f"{path.name}.tmp-{uuid.uuid4().hex}")


async def atomic_write_json(path: Path, payload: Any) -> None:
    """
    Serializes `payload` and atomically replaces `path` with it.

    Raises:
        OSError: If the directory, the temporary file, or the rename fails.
            The previous content of `path` is left untouched in that case.
    """
    path = Path(path)
    serialized = json.dumps(payload)
    await aiofiles.os.makedirs(path.parent, exist_ok=True)
    temp_path = temp_path_for(path)
    try:
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(serialized)
            await f.flush()
            await asyncio.to_thread(os.fsync, f.fileno())
        await aiofiles.os.replace(temp_path, path)
    except Exception:
        with suppress(OSError):
            await aiofiles.os.remove(temp_path)
        raise
    log.debug(f"Persisted {path.name} ({len(serialized)} bytes)")
