"""End-to-end routing tests for incoming messages."""

import pytest

from soundrelay import messages
from soundrelay.core import request_handler
from soundrelay.core.access import AccessGate
from soundrelay.core.notifier import Notifier
from soundrelay.core.playlist import SessionCoordinator, SignalOutcome
from soundrelay.core.request_handler import RequestHandler
from soundrelay.core.retrieval import RetrievalOrchestrator
from soundrelay.core.task_queue import TaskQueue
from soundrelay.core.track_processor import TrackProcessor
from soundrelay.exceptions import LinkResolutionError, UserFacingRetrievalError
from soundrelay.media.quality import QualityProbe
from soundrelay.models.config import RelayConfig
from tests.fakes import tracks, wait_until

USER = 42
ADMIN = 1
PASSWORD = "open-sesame"
TRACK = "https://soundcloud.com/artist/song"


class FakeResolver:
    def __init__(self, result=None, error=None) -> None:
        self.result = result
        self.error = error
        self.calls = []

    async def resolve(self, url):
        self.calls.append(url)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def build(transport, engine, store, tmp_path):
    def _build(*, backlog=25, resolver=None, authorized=(USER,)):
        config = RelayConfig(access_passwords=[PASSWORD], admin_user_ids=[ADMIN])
        queue = TaskQueue(2, backlog)
        processor = TrackProcessor(
            config,
            RetrievalOrchestrator(engine, temp_root=tmp_path),
            QualityProbe(enabled=False),
            transport,
            store,
        )
        notifier = Notifier(transport, config.admin_user_ids)
        coordinator = SessionCoordinator(queue, processor, transport, engine, notifier)
        access = AccessGate(config.access_passwords, store.authorized_users)
        for user_id in authorized:
            access.authorize(user_id)
        return RequestHandler(
            transport, queue, processor, coordinator, access, store, notifier, resolver
        )

    return _build


@pytest.mark.asyncio
async def test_single_track_is_delivered(build, transport, store) -> None:
    handler = build()

    await handler.handle_text(USER, USER, f"listen: {TRACK}")

    assert transport.texts(USER) == [messages.DOWNLOAD_PREP]
    assert len(transport.documents) == 1
    assert store.downloads.get() == 1


@pytest.mark.asyncio
async def test_password_flow_then_download(build, transport) -> None:
    handler = build(authorized=())

    await handler.handle_text(USER, USER, TRACK)
    await handler.handle_text(USER, USER, "nope")
    await handler.handle_text(USER, USER, PASSWORD)
    await handler.handle_text(USER, USER, TRACK)

    assert transport.texts(USER)[:3] == [
        messages.PROMPT_PASSWORD,
        messages.PASSWORD_REJECTED,
        messages.PASSWORD_ACCEPTED,
    ]
    assert len(transport.documents) == 1


@pytest.mark.asyncio
async def test_text_without_link(build, transport) -> None:
    await build().handle_text(USER, USER, "hello there")
    assert transport.texts(USER) == [messages.INVALID_LINK]


@pytest.mark.asyncio
async def test_missing_user_id(build, transport) -> None:
    await build().handle_text(None, 9, TRACK)
    assert transport.texts(9) == [messages.USER_ID_MISSING]


@pytest.mark.asyncio
async def test_foreign_link_is_resolved(build, transport) -> None:
    resolver = FakeResolver(result=TRACK)
    handler = build(resolver=resolver)

    await handler.handle_text(USER, USER, "https://open.spotify.com/track/abc")

    assert resolver.calls == ["https://open.spotify.com/track/abc"]
    assert transport.texts(USER) == [messages.CONVERSION_IN_PROGRESS, messages.DOWNLOAD_PREP]
    assert len(transport.documents) == 1


@pytest.mark.asyncio
async def test_foreign_link_not_found(build, transport) -> None:
    handler = build(resolver=FakeResolver(result=None))
    await handler.handle_text(USER, USER, "https://www.deezer.com/track/1")
    assert transport.texts(USER)[-1] == messages.CONVERSION_NOT_FOUND


@pytest.mark.asyncio
async def test_resolver_failure_notifies_admins(build, transport) -> None:
    handler = build(resolver=FakeResolver(error=LinkResolutionError("timed out")))

    await handler.handle_text(USER, USER, "https://youtu.be/xyz")

    assert transport.texts(USER)[-1] == messages.GENERIC_ERROR
    assert len(transport.texts(ADMIN)) == 1
    assert "timed out" in transport.texts(ADMIN)[0]


@pytest.mark.asyncio
async def test_unsupported_foreign_link_is_invalid(build, transport) -> None:
    resolver = FakeResolver(result=TRACK)
    await build(resolver=resolver).handle_text(USER, USER, "https://bandcamp.com/x")
    assert resolver.calls == []
    assert transport.texts(USER) == [messages.INVALID_LINK]


@pytest.mark.asyncio
async def test_queue_full_is_reported_without_admin_notice(build, transport) -> None:
    handler = build(backlog=0)

    await handler.handle_text(USER, USER, TRACK)

    assert transport.texts(USER) == [messages.DOWNLOAD_PREP, messages.QUEUE_FULL]
    assert transport.texts(ADMIN) == []


@pytest.mark.asyncio
async def test_user_facing_failure_uses_its_message(build, engine, transport) -> None:
    engine.failures["full"] = [UserFacingRetrievalError("opus", messages.OPUS_ONLY)]

    await build().handle_text(USER, USER, TRACK)

    assert transport.texts(USER)[-1] == messages.OPUS_ONLY
    assert transport.texts(ADMIN) == []


@pytest.mark.asyncio
async def test_playlist_link_starts_session(build, engine, transport) -> None:
    engine.playlist = tracks(3)
    handler = build()

    await handler.handle_text(USER, USER, "https://soundcloud.com/artist/sets/mix")
    await handler.coordinator.join()

    assert transport.texts(USER)[0] == messages.playlist_detected(3, 10, 100)
    assert transport.texts(USER)[-1] == messages.PLAYLIST_DONE
    assert len(transport.documents) == 3


@pytest.mark.asyncio
async def test_callback_data_is_routed_to_sessions(build, engine, transport) -> None:
    engine.playlist = tracks(12)
    handler = build()

    await handler.handle_text(USER, USER, "https://soundcloud.com/artist/sets/mix")
    await wait_until(lambda: len(transport.prompts) == 1)
    stop_data = transport.prompts[0].actions[1].data

    assert await handler.handle_signal(USER + 1, stop_data) is SignalOutcome.NOT_OWNER
    assert await handler.handle_signal(USER, stop_data) is SignalOutcome.STOPPED
    assert await handler.handle_signal(USER, "unrelated") is None


@pytest.mark.asyncio
async def test_start_command(build, transport) -> None:
    handler = build(authorized=())

    await handler.handle_start(USER, USER)
    await handler.handle_text(USER, USER, PASSWORD)
    await handler.handle_start(USER, USER)

    assert transport.texts(USER) == [
        messages.START_INTRO,
        messages.PROMPT_PASSWORD,
        messages.PASSWORD_ACCEPTED,
        messages.START_INTRO,
        messages.ALREADY_AUTHORIZED,
    ]


@pytest.mark.asyncio
async def test_download_count_command(build, transport, store) -> None:
    store.downloads.increment(4)
    await build().download_count(USER)
    assert transport.texts(USER) == [messages.download_count(4)]


@pytest.mark.asyncio
async def test_broadcast_is_admin_only(build, transport) -> None:
    handler = build()
    await handler.broadcast(USER, USER, "hi all")
    assert transport.texts(USER) == [messages.NOT_ADMIN]


@pytest.mark.asyncio
async def test_broadcast_reports_sent_and_failed(build, transport) -> None:
    handler = build(authorized=(USER, 43))
    transport.failing_chats.add(43)

    await handler.broadcast(ADMIN, ADMIN, "  ")
    await handler.broadcast(ADMIN, ADMIN, "maintenance tonight")

    assert transport.texts(USER) == ["maintenance tonight"]
    assert transport.texts(ADMIN) == [
        messages.BROADCAST_USAGE,
        messages.broadcast_result(1, 1),
    ]


@pytest.mark.asyncio
async def test_broadcast_without_users(build, transport) -> None:
    await build(authorized=()).broadcast(ADMIN, ADMIN, "hello")
    assert transport.texts(ADMIN) == [messages.BROADCAST_NO_USERS]


def test_module_exports_only_what_it_defines() -> None:
    for name in request_handler.__all__:
        assert getattr(request_handler, name).__module__ == request_handler.__name__
