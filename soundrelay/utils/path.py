"""
Utilities for handling directories and attempt-scoped temporary storage.
"""

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path

log = logging.getLogger(__name__)


async def remove_dir(directory_path: Path | None) -> None:
    """Removes a directory tree without raising if it is already gone."""
    if directory_path is None:
        return
    await asyncio.to_thread(shutil.rmtree, directory_path, ignore_errors=True)


class ScopedTempDir:
    """
    A temporary working directory tied to one retrieval attempt.

    The directory is removed when the `async with` block exits, unless
    `detach()` was called, in which case ownership passes to the caller.

    Usage:
        async with ScopedTempDir() as scope:
            ...write into scope.path...
            keep = scope.detach()
    """

    def __init__(self, prefix: str = "sc-dl-", base_dir: Path | None = None):
        self.prefix = prefix
        self.base_dir = base_dir
        self.path: Path | None = None
        self._detached = False

    async def __aenter__(self) -> "ScopedTempDir":
        raw = await asyncio.to_thread(
            tempfile.mkdtemp, prefix=self.prefix, dir=self.base_dir
        )
        self.path = Path(raw)
        return self

    def detach(self) -> Path:
        """Hands the directory over to the caller; it will no longer be removed here."""
        if self.path is None:
            raise RuntimeError("ScopedTempDir.detach() called outside its context.")
        self._detached = True
        return self.path

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if not self._detached:
            await remove_dir(self.path)
            log.debug(f"Released temporary directory {self.path}")
        return False
