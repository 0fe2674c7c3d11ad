"""Shared fixtures for flowserver tests."""

import pytest

from flowserver.runtime import Engine


class RecordingEngine(Engine):
    """Engine that records hook calls into a shared list."""

    def __init__(self, label: str, calls: list[tuple[str, str]], fail_on: str | None = None):
        super().__init__()
        self.label = label
        self.calls = calls
        self.fail_on = fail_on

    async def _record(self, phase: str) -> None:
        self.calls.append((self.label, phase))
        if self.fail_on == phase:
            raise RuntimeError(f"{self.label} failed to {phase}")

    async def _do_init(self) -> None:
        await self._record("init")

    async def _do_start(self) -> None:
        await self._record("start")

    async def _do_stop(self) -> None:
        await self._record("stop")


@pytest.fixture
def calls() -> list[tuple[str, str]]:
    return []


@pytest.fixture
def make_engine(calls):
    """Factory for RecordingEngine instances sharing the calls list."""

    def factory(label: str, fail_on: str | None = None) -> RecordingEngine:
        return RecordingEngine(label, calls, fail_on=fail_on)

    return factory
