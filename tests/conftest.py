from __future__ import annotations

import os
from pathlib import Path

import pytest

from sawchain.config import SawchainSettings
from sawchain.core import Sawchain
from sawchain.repositories.memory_store import InMemoryStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolated_sawchain_env(  # pyright: ignore[reportUnusedFunction]
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    for name in list(os.environ):
        if name.startswith("SAWCHAIN_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sc(store: InMemoryStore, clock: FakeClock) -> Sawchain:
    return Sawchain(
        store,
        {"namespace": "default"},
        settings=SawchainSettings(),
        sleep=clock.sleep,
        monotonic=clock.monotonic,
    )
