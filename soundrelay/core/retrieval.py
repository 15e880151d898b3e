"""
Runs one retrieval as a credentialed attempt plus, on upstream rate limiting,
a single degraded fallback attempt.
"""

import logging
from pathlib import Path
from typing import Protocol

from soundrelay.models.download import (
    EngineDownload,
    RetrievalResult,
    RetrievalStrategy,
)
from soundrelay.utils.path import ScopedTempDir

log = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("429", "too many requests", "rate limit", "temporarily blocked")


class RetrievalEngine(Protocol):
    """Turns a URL into a local audio file inside `work_dir`."""

    async def attempt(
        self, url: str, strategy: RetrievalStrategy, work_dir: Path
    ) -> EngineDownload: ...


def failure_text(error: BaseException) -> str:
    """The message plus any captured stdout/stderr, lower-cased."""
    parts = [str(error), getattr(error, "stderr", None), getattr(error, "stdout", None)]
    return "\n".join(p for p in parts if isinstance(p, str) and p).lower()


def is_rate_limit_error(error: BaseException) -> bool:
    """Whether a failed attempt hit SoundCloud's (premium) rate limiting."""
    text = failure_text(error)
    if not text:
        return False
    return any(marker in text for marker in RATE_LIMIT_MARKERS)


class RetrievalOrchestrator:
    """
    Retrieves a track with the full-fidelity strategy and falls back, exactly
    once and without delay, to the degraded strategy when the failure looks
    like rate limiting. Any other failure is propagated unchanged.
    """

    def __init__(self, engine: RetrievalEngine, temp_root: Path | None = None):
        self.engine = engine
        self.temp_root = temp_root

    async def retrieve(self, url: str) -> RetrievalResult:
        """
        Returns:
            The retrieved track. `rate_limited` is True when it came from the
            degraded fallback. The caller owns `temp_dir`.
        """
        try:
            return await self._attempt(url, RetrievalStrategy.full_fidelity())
        except Exception as e:
            if not is_rate_limit_error(e):
                raise
            log.warning(
                "[yellow]SoundCloud premium rate limit hit; retrying without "
                "credentials...[/yellow]"
            )

        result = await self._attempt(url, RetrievalStrategy.degraded())
        result.rate_limited = True
        return result

    async def _attempt(self, url: str, strategy: RetrievalStrategy) -> RetrievalResult:
        async with ScopedTempDir(base_dir=self.temp_root) as scope:
            log.debug(f"Retrieval attempt ({strategy.name}) for {url}")
            download = await self.engine.attempt(url, strategy, scope.path)
            temp_dir = scope.detach()
        return RetrievalResult(
            location=download.location,
            filename=download.filename,
            metadata=download.metadata,
            temp_dir=temp_dir,
        )
