"""Test fixtures for GitStatusStore."""

import asyncio
import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from git_status_store.config import Config
from git_status_store.signals import InvalidationChannel, VisibilitySignal
from git_status_store.store.status_store import GitStatusStore


class FakeProvider:
    """Status provider returning canned results, optionally held open."""

    def __init__(self, result: dict[str, Any] | Exception | None = None) -> None:
        self.result: dict[str, Any] | Exception = (
            result if result is not None else {"success": True, "changes": []}
        )
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    def hold(self) -> None:
        """Make subsequent calls wait until release() is called."""
        self.gate = asyncio.Event()

    def release(self) -> None:
        if self.gate is not None:
            self.gate.set()
            self.gate = None

    async def get_status(self, workspace_path: str) -> dict[str, Any]:
        self.calls.append(workspace_path)
        gate = self.gate
        if gate is not None:
            await gate.wait()
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class ManualTimer:
    """Poll timer whose ticks are fired by the test."""

    def __init__(self, interval_ms: int, on_tick: Callable[[], None]) -> None:
        self.interval_ms = interval_ms
        self.on_tick = on_tick
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.on_tick()


class ManualTimerFactory:
    """Records every timer the scheduler creates."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, interval_ms: int, on_tick: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(interval_ms, on_tick)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]


@pytest.fixture
def provider() -> FakeProvider:
    """Provider returning an empty successful status."""
    return FakeProvider()


@pytest.fixture
def timers() -> ManualTimerFactory:
    """Manual timer factory."""
    return ManualTimerFactory()


@pytest.fixture
def visibility() -> VisibilitySignal:
    """Visible surface."""
    return VisibilitySignal(visible=True)


@pytest.fixture
def invalidations() -> InvalidationChannel:
    """Invalidation channel."""
    return InvalidationChannel()


@pytest.fixture
def config() -> Config:
    """Config with reserved paths matching the fixtures below."""
    return Config(internal_dir=".internal", planning_file="PLAN.md")


@pytest.fixture
def store(
    provider: FakeProvider,
    visibility: VisibilitySignal,
    invalidations: InvalidationChannel,
    config: Config,
    timers: ManualTimerFactory,
) -> GitStatusStore:
    """Store wired to fakes."""
    return GitStatusStore(
        provider=provider,
        visibility=visibility,
        invalidations=invalidations,
        config=config,
        timer_factory=timers,
    )


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True)


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a git repository with one committed file."""
    if shutil.which("git") is None:
        pytest.skip("git binary not available")

    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    _git(repo, "config", "user.email", "test@example.com")
    _git(repo, "config", "user.name", "Test")
    _git(repo, "config", "commit.gpgsign", "false")
    (repo / "a.txt").write_text("one\ntwo\nthree\n")
    _git(repo, "add", "a.txt")
    _git(repo, "commit", "-q", "-m", "init")
    return repo
