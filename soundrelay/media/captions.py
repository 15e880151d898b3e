"""
Builds the caption sent along with a delivered track.
"""

from typing import Any

from soundrelay import messages
from soundrelay.models.download import QualityInfo


def build_caption(metadata: dict[str, Any] | None, quality: QualityInfo | None) -> str:
    if not metadata:
        return append_quality(messages.CAPTION_DEFAULT, quality)
    title = metadata.get("title") or metadata.get("fulltitle")
    artist = metadata.get("uploader") or metadata.get("artist")
    if title and artist:
        return append_quality(f"{artist} – {title}", quality)
    if title:
        return append_quality(title, quality)
    return append_quality(messages.CAPTION_FALLBACK, quality)


def append_quality(caption: str, quality: QualityInfo | None) -> str:
    # Warnings are sent as their own message.
    if quality is None or quality.warning:
        return caption
    return f"{caption}\n{messages.quality_line(quality.text)}"
