"""
yt-dlp backed retrieval engine: downloads one SoundCloud track into a working
directory and lists playlist entries.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
from yt_dlp import YoutubeDL
from yt_dlp.utils import YoutubeDLError

from soundrelay import messages
from soundrelay.exceptions import RetrievalError, UserFacingRetrievalError
from soundrelay.models.download import EngineDownload, RetrievalStrategy

log = logging.getLogger(__name__)

INFO_SUFFIX = ".info.json"
THUMB_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp"})


class _CapturingLogger:
    """
    Logger handed to yt-dlp. Keeps its output so a failure can carry the same
    diagnostics the command line tool would print.
    """

    def __init__(self) -> None:
        self._stdout: list[str] = []
        self._stderr: list[str] = []

    def debug(self, msg: str) -> None:
        if msg.startswith("[debug] "):
            return
        self._stdout.append(msg)

    def info(self, msg: str) -> None:
        self._stdout.append(msg)

    def warning(self, msg: str) -> None:
        self._stderr.append(msg)
        log.debug(f"yt-dlp: {msg}")

    def error(self, msg: str) -> None:
        self._stderr.append(msg)

    @property
    def stdout(self) -> str:
        return "\n".join(self._stdout)

    @property
    def stderr(self) -> str:
        return "\n".join(self._stderr)


class YtDlpEngine:
    """Retrieval engine backed by the yt-dlp Python API."""

    def __init__(self, oauth_token: str = "", skip_cert_check: bool = False, retries: int = 3):
        self.oauth_token = oauth_token
        self.skip_cert_check = skip_cert_check
        self.retries = retries

    def build_options(
        self, strategy: RetrievalStrategy, work_dir: Path, logger: Any = None
    ) -> dict[str, Any]:
        """Translates a strategy into YoutubeDL options for one attempt."""
        options: dict[str, Any] = {
            "outtmpl": str(work_dir / "%(title)s.%(ext)s"),
            "format": strategy.format,
            "noplaylist": True,
            "retries": self.retries,
            "nopart": True,
            "quiet": True,
            "writeinfojson": True,
            "writethumbnail": True,
            "postprocessors": [
                {"key": "FFmpegThumbnailsConvertor", "format": "jpg", "when": "before_dl"},
                {"key": "FFmpegMetadata", "add_metadata": True},
                {"key": "EmbedThumbnail", "already_have_thumbnail": False},
            ],
        }
        if logger is not None:
            options["logger"] = logger
        if strategy.use_credentials and self.oauth_token:
            options["http_headers"] = {"Authorization": f"OAuth {self.oauth_token}"}
        if self.skip_cert_check:
            options["nocheckcertificate"] = True
        return options

    @staticmethod
    def _download_sync(url: str, options: dict[str, Any]) -> int:
        with YoutubeDL(options) as ydl:
            return ydl.download([url])

    @staticmethod
    def _extract_sync(url: str, options: dict[str, Any]) -> dict[str, Any] | None:
        with YoutubeDL(options) as ydl:
            return ydl.extract_info(url, download=False)

    async def attempt(
        self, url: str, strategy: RetrievalStrategy, work_dir: Path
    ) -> EngineDownload:
        """
        Downloads `url` into `work_dir` using `strategy`.

        Raises:
            RetrievalError: yt-dlp failed; carries its captured output.
            UserFacingRetrievalError: The run finished but left no usable audio.
        """
        logger = _CapturingLogger()
        options = self.build_options(strategy, work_dir, logger)
        try:
            return_code = await asyncio.to_thread(self._download_sync, url, options)
        except YoutubeDLError as e:
            raise RetrievalError(str(e), stdout=logger.stdout, stderr=logger.stderr) from e
        if return_code:
            raise RetrievalError(
                f"yt-dlp exited with {return_code}",
                stdout=logger.stdout,
                stderr=logger.stderr,
            )
        return await pick_audio_file(work_dir)

    async def fetch_playlist_entries(self, url: str, limit: int = 100) -> list[str]:
        """Returns up to `limit` entry URLs of a playlist, or [] on any failure."""
        options: dict[str, Any] = {
            "extract_flat": "in_playlist",
            "skip_download": True,
            "playlistend": limit,
            "quiet": True,
            "logger": _CapturingLogger(),
        }
        if self.skip_cert_check:
            options["nocheckcertificate"] = True
        try:
            info = await asyncio.to_thread(self._extract_sync, url, options)
        except Exception as e:
            log.warning(f"[yellow]Unable to fetch playlist entries:[/] {e}")
            return []

        entries = (info or {}).get("entries") or []
        urls = [
            entry["url"]
            for entry in entries
            if isinstance(entry, dict) and isinstance(entry.get("url"), str)
        ]
        return urls[:limit]


async def pick_audio_file(work_dir: Path) -> EngineDownload:
    """
    Finds the audio file (and its info JSON) yt-dlp left in `work_dir`.

    Raises:
        UserFacingRetrievalError: If nothing, or nothing but thumbnails/opus,
            was produced.
    """
    names = sorted(await aiofiles.os.listdir(work_dir))
    if not names:
        raise UserFacingRetrievalError(
            "SoundCloud returned no downloadable audio for this link.",
            messages.MISSING_AUDIO_FILE,
        )

    info_path = None
    candidates = []
    for name in names:
        if name.endswith(INFO_SUFFIX):
            info_path = work_dir / name
            continue
        ext = Path(name).suffix.lower()
        if ext in THUMB_EXTENSIONS or ext == ".opus":
            continue
        candidates.append(name)

    if not candidates:
        raise UserFacingRetrievalError(
            "Download finished but no audio file was located.", messages.OPUS_ONLY
        )

    metadata = None
    if info_path is not None:
        try:
            async with aiofiles.open(info_path, encoding="utf-8") as f:
                metadata = json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            log.warning(f"[yellow]Failed to parse SoundCloud metadata JSON:[/] {e}")

    filename = candidates[0]
    return EngineDownload(location=work_dir / filename, filename=filename, metadata=metadata)
