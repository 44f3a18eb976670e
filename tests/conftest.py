from __future__ import annotations

from pathlib import Path

import pytest

from simpletimer.settings import SettingsStore


class FakeTickSource:
    def __init__(self, callback) -> None:
        self.callback = callback
        self.active = False
        self.started = 0
        self.stopped = 0

    def start(self) -> None:
        self.active = True
        self.started += 1

    def stop(self) -> None:
        self.active = False
        self.stopped += 1

    def fire(self) -> None:
        self.callback()


class FakeTickFactory:
    def __init__(self) -> None:
        self.sources: list[FakeTickSource] = []

    def __call__(self, callback) -> FakeTickSource:
        source = FakeTickSource(callback)
        self.sources.append(source)
        return source

    @property
    def active(self) -> list[FakeTickSource]:
        return [s for s in self.sources if s.active]

    def fire(self, times: int = 1) -> None:
        for _ in range(times):
            for source in self.active:
                source.fire()


@pytest.fixture
def ticks() -> FakeTickFactory:
    return FakeTickFactory()


@pytest.fixture
def settings_path(tmp_path: Path) -> Path:
    return tmp_path / "settings.json"


@pytest.fixture
def store(settings_path: Path) -> SettingsStore:
    return SettingsStore(settings_path)
