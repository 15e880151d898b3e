"""
Media Layer.

This package is responsible for everything that touches audio files:
retrieval through yt-dlp, bitrate analysis, and captions.
"""

from .captions import build_caption
from .engine import YtDlpEngine
from .quality import QualityProbe

__all__ = ["QualityProbe", "YtDlpEngine", "build_caption"]
