"""
Best-effort bitrate analysis of a retrieved file, compared against what the
source advertised.
"""

import asyncio
import json
import logging
import math
import re
import sys
from pathlib import Path
from typing import Any

from mutagen import File as MutagenFile
from mutagen import MutagenError

from soundrelay import messages
from soundrelay.exceptions import QualityProbeError
from soundrelay.models.config import RelayConfig
from soundrelay.models.download import QualityInfo

log = logging.getLogger(__name__)

LOW_BITRATE_THRESHOLD = 256
DROP_TOLERANCE_KBPS = 5
SOURCE_BITRATE_KEYS = (
    "abr",
    "tbr",
    "bitrate",
    "audio_bitrate",
    "audio_bitrate_kbps",
    "bit_rate",
    "vbr",
)
KBPS_OBJECT_FIELDS = (
    "kbps",
    "bitrate",
    "bitRate",
    "audioBitrate",
    "audio_bitrate",
    "bit_rate",
    "averageBitrate",
    "avgBitrate",
    "bit_rate_numeric",
    "bit_rate_numeric_kbps",
)
_KBPS_TEXT = re.compile(r"(\d+(?:\.\d+)?)\s*k(?:bit|b)ps", re.IGNORECASE)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    return None


def pick_source_bitrate(metadata: dict[str, Any] | None) -> int | None:
    """The bitrate (kbps) the source advertises in its yt-dlp info JSON."""
    if not isinstance(metadata, dict):
        return None
    for key in SOURCE_BITRATE_KEYS:
        number = _as_number(metadata.get(key))
        if number is not None and number > 0:
            return round(number)
    return None


def describe_track(metadata: dict[str, Any] | None) -> str:
    if not isinstance(metadata, dict):
        return "this track"
    title = metadata.get("title") or metadata.get("fulltitle") or metadata.get("track")
    artist = metadata.get("uploader") or metadata.get("artist")
    if title and artist:
        return f"{artist} – {title}"
    return title or "this track"


def extract_kbps(value: Any) -> int | None:
    """Reads a kbps figure out of a number, a '320 kbps' string, or a dict."""
    if not value:
        return None
    if isinstance(value, str):
        if match := _KBPS_TEXT.search(value):
            return round(float(match.group(1)))
        number = _as_number(value)
        return round(number) if number is not None else None
    if isinstance(value, dict):
        for key in KBPS_OBJECT_FIELDS:
            number = _as_number(value.get(key))
            if number is not None:
                return round(number)
        return None
    number = _as_number(value)
    return round(number) if number is not None else None


async def run_collect(command: str, *args: str) -> str:
    """
    Runs a command and returns its stdout.

    Raises:
        QualityProbeError: On a non-zero exit status.
        OSError: If the command cannot be started.
    """
    process = await asyncio.create_subprocess_exec(
        command,
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    out = stdout.decode("utf-8", errors="replace")
    err = stderr.decode("utf-8", errors="replace")
    if process.returncode != 0:
        raise QualityProbeError(
            f"{command} exited with {process.returncode}", stdout=out, stderr=err
        )
    return out


class QualityProbe:
    """
    Measures the real bitrate of a file. Measurement sources, in order: an
    optional external bitrate script printing JSON, ffprobe, then the
    container header read by mutagen.
    """

    def __init__(
        self,
        enabled: bool = True,
        ffprobe_path: str = "ffprobe",
        bitrate_script_path: str = "",
        debug: bool = False,
    ):
        self.enabled = enabled
        self.ffprobe_path = ffprobe_path
        self.bitrate_script_path = bitrate_script_path
        self.debug = debug

    @classmethod
    def from_config(cls, config: RelayConfig) -> "QualityProbe":
        return cls(
            enabled=config.enable_quality_analysis,
            ffprobe_path=config.ffprobe_path,
            bitrate_script_path=config.bitrate_script_path,
            debug=config.quality_analysis_debug,
        )

    def _trace(self, message: str) -> None:
        if self.debug:
            log.debug(f"[quality] {message}")

    async def probe(
        self, location: Path, metadata: dict[str, Any] | None
    ) -> QualityInfo | None:
        """Returns the measured/source bitrates and an optional warning, or None."""
        if not self.enabled:
            self._trace("Quality analysis disabled; skipping probe.")
            return None

        measured = await self.measure_bitrate_kbps(location)
        if not measured:
            self._trace("No bitrate measurement available.")
            return None

        source = pick_source_bitrate(metadata)
        label = describe_track(metadata)

        warning = None
        if source and measured + DROP_TOLERANCE_KBPS < source:
            warning = messages.bitrate_drop_warning(label, measured, source)
        elif measured < LOW_BITRATE_THRESHOLD:
            warning = messages.low_bitrate_warning(
                label, measured, LOW_BITRATE_THRESHOLD
            )

        info = QualityInfo(measured_kbps=measured, source_kbps=source, warning=warning)
        self._trace(f"Bitrate analysis finished: {info}")
        return info

    async def measure_bitrate_kbps(self, location: Path) -> int | None:
        if self.bitrate_script_path:
            if kbps := await self._run_bitrate_script(location):
                return kbps
        if kbps := await self._probe_with_ffprobe(location):
            return kbps
        return await self._read_header_bitrate(location)

    async def _run_bitrate_script(self, location: Path) -> int | None:
        try:
            stdout = await run_collect(
                sys.executable, self.bitrate_script_path, str(location)
            )
            parsed = json.loads(stdout) if stdout.strip() else None
        except (OSError, QualityProbeError, json.JSONDecodeError) as e:
            self._trace(f"bitrate script failed: {e}")
            return None
        if not isinstance(parsed, dict):
            return None
        return (
            extract_kbps(parsed.get("estimated_bitrate_numeric"))
            or extract_kbps(parsed.get("estimated_bitrate"))
            or extract_kbps(parsed.get("bit_rate"))
        )

    async def _probe_with_ffprobe(self, location: Path) -> int | None:
        try:
            stdout = await run_collect(
                self.ffprobe_path,
                "-v",
                "error",
                "-show_entries",
                "format=bit_rate",
                "-of",
                "default=nk=1:nw=1",
                str(location),
            )
        except (OSError, QualityProbeError) as e:
            self._trace(f"ffprobe bitrate fallback failed: {e}")
            return None
        value = _as_number(stdout.strip())
        if value is not None and value > 0:
            return round(value / 1000)
        return None

    async def _read_header_bitrate(self, location: Path) -> int | None:
        def _read() -> int | None:
            audio = MutagenFile(location)
            bitrate = getattr(getattr(audio, "info", None), "bitrate", 0)
            return round(bitrate / 1000) if bitrate else None

        try:
            return await asyncio.to_thread(_read)
        except (MutagenError, OSError) as e:
            self._trace(f"mutagen header read failed: {e}")
            return None
