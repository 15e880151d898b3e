"""
Retrieves a single track, probes its quality, and delivers it to a chat.
"""

import logging

import aiofiles.os

from soundrelay import messages
from soundrelay.core.retrieval import RetrievalOrchestrator
from soundrelay.core.transport import ChatTransport
from soundrelay.exceptions import UserFacingRetrievalError
from soundrelay.media.captions import build_caption
from soundrelay.media.quality import QualityProbe
from soundrelay.models.config import RelayConfig
from soundrelay.models.download import DeliveryItem, RelayStats
from soundrelay.storage.counter_store import DurableCounterStore
from soundrelay.utils.formatting import format_size

log = logging.getLogger(__name__)


class TrackProcessor:
    """
    Splits the handling of one track into `prepare()` (retrieve, size check,
    probe) and `deliver()` (send and release), so playlists can buffer
    prepared items between the two.
    """

    def __init__(
        self,
        config: RelayConfig,
        orchestrator: RetrievalOrchestrator,
        probe: QualityProbe,
        transport: ChatTransport,
        store: DurableCounterStore,
        stats: RelayStats | None = None,
    ):
        self.config = config
        self.orchestrator = orchestrator
        self.probe = probe
        self.transport = transport
        self.store = store
        self.stats = stats or RelayStats()

    async def prepare(self, url: str) -> DeliveryItem:
        """
        Returns:
            A `DeliveryItem` whose temp dir the caller must release, either
            through `deliver()` or `item.download.cleanup()`.

        Raises:
            UserFacingRetrievalError: If the file exceeds `max_file_bytes`.
        """
        download = await self.orchestrator.retrieve(url)
        try:
            size = (await aiofiles.os.stat(download.location)).st_size
            if size > self.config.max_file_bytes:
                log.warning(
                    f"[yellow]Skipping '{download.filename}': {format_size(size)} "
                    f"exceeds the {format_size(self.config.max_file_bytes)} limit.[/yellow]"
                )
                self.stats.tracks_too_large += 1
                raise UserFacingRetrievalError(
                    f"File too large: {size} bytes", messages.FILE_TOO_LARGE
                )
        except BaseException:
            await download.cleanup()
            raise

        quality = None
        try:
            quality = await self.probe.probe(download.location, download.metadata)
        except Exception as e:
            log.warning(f"[yellow]Bitrate analysis failed:[/yellow] {e}")

        return DeliveryItem(download=download, quality=quality, size=size)

    async def deliver(self, chat_id: int, item: DeliveryItem) -> None:
        """Sends a prepared item. Its temp dir is released in every case."""
        download = item.download
        try:
            if download.rate_limited:
                self.stats.tracks_degraded += 1
                await self.transport.send_text(chat_id, messages.PREMIUM_RATE_LIMITED)
            caption = build_caption(download.metadata, item.quality)
            await self.transport.send_document(
                chat_id, download.location, download.filename, caption
            )
            if item.quality and item.quality.warning:
                await self.transport.send_text(chat_id, item.quality.warning)
            self.store.downloads.increment()
            self.stats.tracks_delivered += 1
            self.stats.total_size_delivered += item.size
            log.info(f"Delivered '{download.filename}' ({format_size(item.size)})")
        finally:
            await download.cleanup()

    async def process(self, chat_id: int, url: str) -> None:
        """Prepares and immediately delivers a single track."""
        item = await self.prepare(url)
        await self.deliver(chat_id, item)
