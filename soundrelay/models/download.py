"""
Data structures exchanged between the retrieval engine, the orchestrator,
and the delivery side.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from soundrelay.utils.path import remove_dir

FULL_FIDELITY_FORMAT = "bestaudio[ext!=opus][acodec!=opus]/http_aac_1_0/bestaudio/best"
DEGRADED_FORMAT = (
    "bestaudio[abr<=192][acodec^=mp4a]/"
    "bestaudio[abr<=192][ext!=opus][acodec!=opus]/bestaudio"
)


@dataclass(frozen=True)
class RetrievalStrategy:
    """How one retrieval attempt talks to SoundCloud."""

    name: str
    use_credentials: bool
    format: str
    max_abr_kbps: int | None = None

    @classmethod
    def full_fidelity(cls) -> "RetrievalStrategy":
        return cls(name="full", use_credentials=True, format=FULL_FIDELITY_FORMAT)

    @classmethod
    def degraded(cls) -> "RetrievalStrategy":
        return cls(
            name="degraded",
            use_credentials=False,
            format=DEGRADED_FORMAT,
            max_abr_kbps=192,
        )


@dataclass
class EngineDownload:
    """What the retrieval engine produced inside an attempt's working directory."""

    location: Path
    filename: str
    metadata: dict[str, Any] | None


@dataclass
class RetrievalResult:
    """
    A successful retrieval. The caller owns `temp_dir` and must call
    `cleanup()` once the file has been delivered or discarded.
    """

    location: Path
    filename: str
    metadata: dict[str, Any] | None
    temp_dir: Path
    rate_limited: bool = False

    async def cleanup(self) -> None:
        await remove_dir(self.temp_dir)


@dataclass
class QualityInfo:
    """Outcome of the best-effort bitrate probe."""

    measured_kbps: int
    source_kbps: int | None = None
    warning: str | None = None

    @property
    def text(self) -> str:
        return self.warning or f"~{self.measured_kbps} kbps"


@dataclass
class DeliveryItem:
    """A retrieved track ready to be sent to a chat."""

    download: RetrievalResult
    quality: QualityInfo | None = None
    size: int = 0


@dataclass
class RelayStats:
    """Counts what happened during one run of the relay."""

    tracks_delivered: int = 0
    tracks_failed: int = 0
    tracks_degraded: int = 0
    tracks_too_large: int = 0
    total_size_delivered: int = 0
    playlists_started: int = 0
    failures: list[str] = field(default_factory=list, repr=False)
