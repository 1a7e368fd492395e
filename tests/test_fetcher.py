"""Tests for FetchCoordinator and ReservedPathFilter."""

import pytest

from conftest import FakeProvider
from git_status_store.models import GitStatusSnapshot
from git_status_store.store.entry import StoreEntry, SubscriberRecord
from git_status_store.store.fetcher import FetchCoordinator
from git_status_store.store.paths import ReservedPathFilter


def _entry(received: list[GitStatusSnapshot]) -> StoreEntry:
    entry = StoreEntry(workspace_path="/repo", snapshot=GitStatusSnapshot.empty("/repo"))
    entry.subscribers[1] = SubscriberRecord(
        id=1, callback=received.append, is_active=True, poll_interval_ms=1000
    )
    return entry


def _coordinator(provider: FakeProvider) -> FetchCoordinator:
    return FetchCoordinator(
        provider=provider,
        path_filter=ReservedPathFilter(".emdash", "PLANNING.md"),
        should_poll=lambda entry: True,
    )


@pytest.mark.asyncio
async def test_normalizes_change_records() -> None:
    """Test missing or invalid counts default to 0 and flags are read."""
    provider = FakeProvider(
        {
            "success": True,
            "changes": [
                {"path": "a.py", "status": "modified", "additions": None, "isStaged": True},
                {"path": "b.py", "status": "added", "additions": "7", "deletions": -2},
                {"path": "c.py", "additions": True, "is_staged": True, "diff": "@@ -1 +1 @@"},
                {"path": "a.py", "status": "deleted"},
            ],
        }
    )
    received: list[GitStatusSnapshot] = []
    entry = _entry(received)

    await _coordinator(provider).fetch_and_apply(entry)

    changes = entry.snapshot.changes
    assert [c.path for c in changes] == ["a.py", "b.py", "c.py"]
    assert (changes[0].additions, changes[0].deletions, changes[0].is_staged) == (0, 0, True)
    assert (changes[1].additions, changes[1].deletions, changes[1].is_staged) == (7, 0, False)
    assert changes[2].status == "unknown"
    assert changes[2].additions == 0
    assert changes[2].is_staged
    assert changes[2].diff == "@@ -1 +1 @@"
    assert changes[0].status == "modified"


@pytest.mark.asyncio
async def test_record_without_path_is_malformed() -> None:
    """Test a change without a string path fails the whole response."""
    provider = FakeProvider({"success": True, "changes": [{"status": "added"}]})
    received: list[GitStatusSnapshot] = []
    entry = _entry(received)

    await _coordinator(provider).fetch_and_apply(entry)

    assert entry.snapshot.error == "Failed to fetch git status"
    assert entry.snapshot.changes == ()


@pytest.mark.asyncio
async def test_non_mapping_result_is_failure() -> None:
    """Test a provider returning garbage is reported with the generic message."""
    provider = FakeProvider()
    provider.result = ["not", "a", "mapping"]  # type: ignore[assignment]
    received: list[GitStatusSnapshot] = []
    entry = _entry(received)

    await _coordinator(provider).fetch_and_apply(entry)

    assert entry.snapshot.error == "Failed to fetch git status"


@pytest.mark.asyncio
async def test_exception_without_message_uses_class_name() -> None:
    """Test an empty exception message falls back to the exception type."""
    provider = FakeProvider(TimeoutError())
    received: list[GitStatusSnapshot] = []
    entry = _entry(received)

    await _coordinator(provider).fetch_and_apply(entry)

    assert entry.snapshot.error == "TimeoutError"
    assert not entry.in_flight


@pytest.mark.asyncio
async def test_loading_snapshot_keeps_changes_and_clears_error() -> None:
    """Test the loading publish keeps the previous change list."""
    provider = FakeProvider({"success": True, "changes": [{"path": "x", "status": "added"}]})
    received: list[GitStatusSnapshot] = []
    entry = _entry(received)
    coordinator = _coordinator(provider)
    await coordinator.fetch_and_apply(entry)

    provider.result = {"success": False, "error": "broken"}
    await coordinator.fetch_and_apply(entry)
    assert entry.snapshot.error == "broken"

    provider.result = {"success": True, "changes": []}
    await coordinator.fetch_and_apply(entry, show_loading=True)

    loading = received[-2]
    assert loading.is_loading
    assert loading.error is None
    assert received[-1].changes == ()
    assert not received[-1].is_loading


@pytest.mark.asyncio
async def test_each_publish_notifies_every_subscriber_once() -> None:
    """Test one publish reaches every subscriber exactly once."""
    provider = FakeProvider()
    first: list[GitStatusSnapshot] = []
    second: list[GitStatusSnapshot] = []
    entry = _entry(first)
    entry.subscribers[2] = SubscriberRecord(
        id=2, callback=second.append, is_active=False, poll_interval_ms=1000
    )

    await _coordinator(provider).fetch_and_apply(entry)

    assert len(first) == 1
    assert first == second


@pytest.mark.parametrize(
    ("path", "reserved"),
    [
        (".emdash", True),
        (".emdash/.planlock.json", True),
        ("./.emdash/logs/run.log", True),
        (".emdash\\state.json", True),
        ("PLANNING.md", True),
        ("docs/PLANNING.md", False),
        (".emdashrc", False),
        ("src/.emdash/x", False),
        ("main.py", False),
    ],
)
def test_reserved_path_filter(path: str, reserved: bool) -> None:
    """Test which workspace paths count as internal bookkeeping."""
    assert ReservedPathFilter(".emdash", "PLANNING.md").is_reserved(path) is reserved
