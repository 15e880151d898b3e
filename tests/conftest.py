from pathlib import Path

import pytest

from soundrelay.storage.counter_store import DurableCounterStore
from tests.fakes import FakeEngine, FakeTransport


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def store(tmp_path: Path) -> DurableCounterStore:
    return DurableCounterStore(tmp_path / "data", debounce_seconds=60)
