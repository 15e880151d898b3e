"""Tests for rate-limit classification and the single degraded fallback."""

import pytest

from soundrelay.core.retrieval import RetrievalOrchestrator, is_rate_limit_error
from soundrelay.exceptions import RetrievalError, UserFacingRetrievalError


@pytest.mark.parametrize(
    "error",
    [
        RetrievalError("HTTP Error 429"),
        RetrievalError("failed", stderr="ERROR: Too Many Requests"),
        RetrievalError("failed", stdout="You hit the RATE LIMIT, slow down"),
        RuntimeError("Temporarily Blocked by upstream"),
    ],
)
def test_rate_limit_markers_are_detected_case_insensitively(error) -> None:
    assert is_rate_limit_error(error)


@pytest.mark.parametrize(
    "error",
    [
        RetrievalError("HTTP Error 404: Not Found"),
        RetrievalError("failed", stderr="ERROR: Unable to extract track"),
        RuntimeError(""),
    ],
)
def test_other_failures_are_terminal(error) -> None:
    assert not is_rate_limit_error(error)


@pytest.mark.asyncio
async def test_success_on_first_attempt_is_not_rate_limited(engine, tmp_path) -> None:
    orchestrator = RetrievalOrchestrator(engine, temp_root=tmp_path)

    result = await orchestrator.retrieve("https://soundcloud.com/a/b")

    assert engine.calls == [("https://soundcloud.com/a/b", "full")]
    assert result.rate_limited is False
    assert result.location.read_bytes() == b"audio"
    assert result.temp_dir.is_dir()

    await result.cleanup()
    assert not result.temp_dir.exists()


@pytest.mark.asyncio
async def test_rate_limit_triggers_exactly_one_degraded_attempt(engine, tmp_path) -> None:
    engine.failures["full"] = [RetrievalError("boom", stderr="HTTP Error 429")]
    orchestrator = RetrievalOrchestrator(engine, temp_root=tmp_path)

    result = await orchestrator.retrieve("https://soundcloud.com/a/b")

    assert [strategy for _, strategy in engine.calls] == ["full", "degraded"]
    assert result.rate_limited is True
    # The failed attempt's working directory is gone, the successful one is kept.
    assert not engine.work_dirs[0].exists()
    assert result.temp_dir == engine.work_dirs[1]
    assert result.temp_dir.exists()
    await result.cleanup()


@pytest.mark.asyncio
async def test_fallback_failure_propagates_without_third_attempt(engine, tmp_path) -> None:
    engine.failures["full"] = [RetrievalError("429 Too Many Requests")]
    engine.failures["degraded"] = [RetrievalError("rate limit again")]
    orchestrator = RetrievalOrchestrator(engine, temp_root=tmp_path)

    with pytest.raises(RetrievalError, match="rate limit again"):
        await orchestrator.retrieve("https://soundcloud.com/a/b")

    assert len(engine.calls) == 2
    assert not any(d.exists() for d in engine.work_dirs)


@pytest.mark.asyncio
async def test_terminal_failure_is_not_retried(engine, tmp_path) -> None:
    error = UserFacingRetrievalError("opus only", "Only opus")
    engine.failures["full"] = [error]
    orchestrator = RetrievalOrchestrator(engine, temp_root=tmp_path)

    with pytest.raises(UserFacingRetrievalError) as excinfo:
        await orchestrator.retrieve("https://soundcloud.com/a/b")

    assert excinfo.value is error
    assert engine.calls == [("https://soundcloud.com/a/b", "full")]
    assert not engine.work_dirs[0].exists()
    assert list(tmp_path.iterdir()) == []
