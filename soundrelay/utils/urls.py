"""
Utilities for locating and classifying links inside free-form message text.
"""

import re
from urllib.parse import urlparse

SOUNDCLOUD_REGEX = re.compile(
    r"(https?://(?:[\w-]+\.)?soundcloud\.com/[\w\-./?=&%+#]+)", re.IGNORECASE
)
_ANY_URL_REGEX = re.compile(r"https?://[^\s]+", re.IGNORECASE)
_TRAILING_JUNK = re.compile(r"[\])>,\s]+$")

# Hosts the link-resolution service knows how to map onto SoundCloud
RESOLVABLE_HOST_PATTERNS = (
    re.compile(r"spotify\.com", re.IGNORECASE),
    re.compile(r"music\.apple\.com", re.IGNORECASE),
    re.compile(r"deezer\.com", re.IGNORECASE),
    re.compile(r"tidal\.com", re.IGNORECASE),
    re.compile(r"youtube\.com", re.IGNORECASE),
    re.compile(r"youtu\.be", re.IGNORECASE),
)


def extract_soundcloud_url(text: str | None) -> str | None:
    """Returns the first SoundCloud URL found in `text`, without trailing punctuation."""
    if not text:
        return None
    match = SOUNDCLOUD_REGEX.search(text)
    if not match:
        return None
    return _TRAILING_JUNK.sub("", match.group(1))


def extract_first_url(text: str | None) -> str | None:
    """Returns the first http(s) URL found in `text`."""
    if not text:
        return None
    match = _ANY_URL_REGEX.search(text)
    if not match:
        return None
    return _TRAILING_JUNK.sub("", match.group(0))


def is_soundcloud_playlist(url: str) -> bool:
    """SoundCloud playlists ("sets") live under /sets/ on a soundcloud.com host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    host = parsed.hostname or ""
    return "soundcloud.com" in host.lower() and "/sets/" in parsed.path.lower()


def is_resolvable_link(url: str) -> bool:
    """Whether the link-resolution service supports the host of `url`."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return False
    if not host:
        return False
    return any(pattern.search(host) for pattern in RESOLVABLE_HOST_PATTERNS)
