"""
Client for the link-resolution service, which maps links from other
streaming platforms to their SoundCloud equivalent.
"""

import asyncio
import json
import logging
from typing import Any

import aiohttp

from soundrelay.exceptions import LinkResolutionError
from soundrelay.models.config import RelayConfig
from soundrelay.utils.urls import SOUNDCLOUD_REGEX, extract_soundcloud_url

log = logging.getLogger(__name__)


def _is_usable_soundcloud_entry(entry: Any) -> bool:
    if not isinstance(entry, dict) or entry.get("notAvailable"):
        return False
    if not isinstance(entry.get("url"), str):
        return False
    kind = entry.get("type")
    return isinstance(kind, str) and kind.lower() == "soundcloud"


def pick_soundcloud_link(result: Any) -> str | None:
    """
    Finds the SoundCloud URL in a resolution response. Supports the `links`
    list format, a bare array of strings, and a `source` string.
    """
    if isinstance(result, dict) and isinstance(result.get("links"), list):
        for entry in result["links"]:
            if _is_usable_soundcloud_entry(entry):
                return entry["url"]

    if isinstance(result, list):
        for item in result:
            if isinstance(item, str) and SOUNDCLOUD_REGEX.search(item):
                return extract_soundcloud_url(item)

    if isinstance(result, dict):
        source = result.get("source")
        if isinstance(source, str) and SOUNDCLOUD_REGEX.search(source):
            return extract_soundcloud_url(source)

    return None


class LinkResolver:
    """Async client for the resolution service's search endpoint."""

    SEARCH_PATH = "/api/search"

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 15.0,
        session: aiohttp.ClientSession | None = None,
    ):
        """
        Args:
            base_url: Root URL of the resolution service.
            timeout_s: Hard deadline for one resolution request.
            session: Optional externally managed session (not closed by `close()`).
        """
        self.base_url = base_url
        self.timeout_s = timeout_s
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_config(cls, config: RelayConfig) -> "LinkResolver":
        return cls(config.link_resolver_base_url, config.link_resolver_timeout_s)

    def _endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.SEARCH_PATH}?v=1"

    async def _initialize_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def resolve(self, original_link: str) -> str | None:
        """
        Resolves `original_link` to a SoundCloud URL.

        Returns:
            The SoundCloud URL, or None when the service answered with a
            non-2xx status, a malformed body, an error, or no match.

        Raises:
            LinkResolutionError: On connection failures or when the deadline
                expires.
        """
        if not self.base_url:
            return None
        endpoint = self._endpoint()
        session = await self._initialize_session()
        payload = {"link": original_link, "adapters": ["soundCloud"]}
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)

        try:
            async with session.post(endpoint, json=payload, timeout=timeout) as r:
                status = r.status
                body = await r.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.error(f"[red]Failed to resolve link via resolver service: {e!r}[/red]")
            raise LinkResolutionError(f"Link resolution failed: {e!r}") from e

        if status < 200 or status >= 300:
            log.warning(
                f"[yellow]Link resolver request failed with status {status}:[/] {body[:200]}"
            )
            return None

        try:
            parsed = json.loads(body)
        except json.JSONDecodeError as e:
            log.warning(f"[yellow]Unable to parse link resolver response:[/] {e}")
            return None

        if isinstance(parsed, dict) and parsed.get("error"):
            log.warning(f"[yellow]Link resolver responded with an error:[/] {parsed['error']}")
            return None

        return pick_soundcloud_link(parsed)
