"""Tests for single-track preparation and delivery."""

import pytest

from soundrelay import messages
from soundrelay.core.retrieval import RetrievalOrchestrator
from soundrelay.core.track_processor import TrackProcessor
from soundrelay.exceptions import RetrievalError, UserFacingRetrievalError
from soundrelay.models.config import RelayConfig
from soundrelay.models.download import QualityInfo

CHAT = 5


class FakeProbe:
    def __init__(self, result=None, error=None) -> None:
        self.result = result
        self.error = error

    async def probe(self, location, metadata):
        if self.error:
            raise self.error
        return self.result


def make_processor(engine, transport, store, tmp_path, probe=None, **config):
    return TrackProcessor(
        RelayConfig(**config),
        RetrievalOrchestrator(engine, temp_root=tmp_path),
        probe or FakeProbe(),
        transport,
        store,
    )


@pytest.mark.asyncio
async def test_process_delivers_and_counts(engine, transport, store, tmp_path) -> None:
    processor = make_processor(
        engine, transport, store, tmp_path, FakeProbe(QualityInfo(measured_kbps=320))
    )

    await processor.process(CHAT, "https://soundcloud.com/artist/song")

    (chat, path, filename, caption) = transport.documents[0]
    assert chat == CHAT
    assert filename == "track.m4a"
    assert caption == f"Artist – song\n{messages.quality_line('~320 kbps')}"
    assert store.downloads.get() == 1
    assert processor.stats.tracks_delivered == 1
    assert not path.parent.exists()


@pytest.mark.asyncio
async def test_rate_limited_delivery_warns_first(engine, transport, store, tmp_path) -> None:
    engine.failures["full"] = [RetrievalError("HTTP Error 429")]
    processor = make_processor(engine, transport, store, tmp_path)

    await processor.process(CHAT, "https://soundcloud.com/artist/song")

    assert transport.texts(CHAT) == [messages.PREMIUM_RATE_LIMITED]
    assert len(transport.documents) == 1
    assert processor.stats.tracks_degraded == 1


@pytest.mark.asyncio
async def test_quality_warning_is_sent_after_document(engine, transport, store, tmp_path) -> None:
    quality = QualityInfo(measured_kbps=128, source_kbps=256, warning="dropped!")
    processor = make_processor(engine, transport, store, tmp_path, FakeProbe(quality))

    await processor.process(CHAT, "https://soundcloud.com/artist/song")

    assert transport.texts(CHAT) == ["dropped!"]
    assert transport.documents[0][3] == "Artist – song"


@pytest.mark.asyncio
async def test_probe_failure_is_not_fatal(engine, transport, store, tmp_path) -> None:
    processor = make_processor(
        engine, transport, store, tmp_path, FakeProbe(error=RuntimeError("ffprobe gone"))
    )

    item = await processor.prepare("https://soundcloud.com/artist/song")

    assert item.quality is None
    await item.download.cleanup()


@pytest.mark.asyncio
async def test_oversized_file_is_rejected_and_released(engine, transport, store, tmp_path) -> None:
    engine.payload = b"x" * 100
    processor = make_processor(engine, transport, store, tmp_path, max_file_bytes=10)

    with pytest.raises(UserFacingRetrievalError) as excinfo:
        await processor.prepare("https://soundcloud.com/artist/song")

    assert excinfo.value.user_message == messages.FILE_TOO_LARGE
    assert list(tmp_path.iterdir()) == []
    assert processor.stats.tracks_too_large == 1
    assert store.downloads.get() == 0


@pytest.mark.asyncio
async def test_failed_send_still_releases_temp_dir(engine, transport, store, tmp_path) -> None:
    processor = make_processor(engine, transport, store, tmp_path)
    item = await processor.prepare("https://soundcloud.com/artist/song")

    async def broken_send(*args, **kwargs):
        raise ConnectionError("upload failed")

    transport.send_document = broken_send

    with pytest.raises(ConnectionError):
        await processor.deliver(CHAT, item)
    assert not item.download.temp_dir.exists()
    assert store.downloads.get() == 0
