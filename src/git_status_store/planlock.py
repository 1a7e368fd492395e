"""Read-only lock for a workspace while a plan is being reviewed.

Previous permission bits are recorded in the reserved internal directory so
the lock can be released later. That directory is never locked itself.
"""

import asyncio
import json
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

LOCK_STATE_FILE = ".planlock.json"
WRITE_BITS = stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH
EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


@dataclass
class LockResult:
    """Outcome of a lock or unlock operation."""

    success: bool
    changed: int = 0  # Entries whose mode was changed or restored
    error: str | None = None


def _collect_paths(root: Path, internal_dir: str) -> list[str]:
    """Relative paths of every directory and file under root, symlinks skipped."""
    result: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = os.path.relpath(dirpath, root)
        if rel_dir == ".":
            dirnames[:] = [d for d in dirnames if d != internal_dir]
        result.append(rel_dir)
        # Don't descend into symlinked directories
        dirnames[:] = [d for d in dirnames if not os.path.islink(os.path.join(dirpath, d))]
        for name in filenames:
            full = os.path.join(dirpath, name)
            if os.path.islink(full):
                continue
            result.append(os.path.normpath(os.path.join(rel_dir, name)))
    return result


def _no_write_mode(mode: int, is_dir: bool) -> int:
    """Clear write bits; directories keep their traverse bits."""
    no_write = mode & ~WRITE_BITS
    if is_dir:
        return (no_write | EXEC_BITS) & 0o7777
    return no_write & 0o7777


def apply_lock(root: Path, internal_dir: str = ".emdash") -> LockResult:
    """Make everything under root read-only and remember the previous modes.

    Args:
        root: Workspace root
        internal_dir: Reserved directory that receives the lock state

    Returns:
        LockResult with the number of entries changed
    """
    try:
        state_dir = root / internal_dir
        state_dir.mkdir(parents=True, exist_ok=True)
        state_path = state_dir / LOCK_STATE_FILE

        # Re-locking keeps the modes recorded by the first lock
        state = _read_state(state_path)
        recorded = {entry.get("p") for entry in state}
        changed = 0
        for rel in _collect_paths(root, internal_dir):
            path = root / rel
            try:
                st = path.stat()
            except OSError:
                continue
            prev_mode = st.st_mode & 0o7777
            next_mode = _no_write_mode(prev_mode, stat.S_ISDIR(st.st_mode))
            if next_mode == prev_mode:
                continue
            try:
                path.chmod(next_mode)
            except OSError as e:
                logger.debug(f"[PlanLock] Cannot chmod {rel}: {e}")
                continue
            changed += 1
            if rel not in recorded:
                state.append({"p": rel, "m": prev_mode})

        state_path.write_text(json.dumps(state), encoding="utf-8")
        logger.info(f"[PlanLock] Locked {root} ({changed} changed, {len(state)} recorded)")
        return LockResult(success=True, changed=changed)
    except OSError as e:
        logger.error(f"[PlanLock] Failed to lock {root}: {e}")
        return LockResult(success=False, error=str(e))


def release_lock(root: Path, internal_dir: str = ".emdash") -> LockResult:
    """Restore the modes recorded by apply_lock and remove the lock state.

    Releasing a workspace that is not locked succeeds with nothing restored.
    """
    state_path = root / internal_dir / LOCK_STATE_FILE
    if not state_path.exists():
        return LockResult(success=True)

    try:
        restored = 0
        for entry in _read_state(state_path):
            try:
                (root / entry["p"]).chmod(int(entry["m"]))
                restored += 1
            except (OSError, KeyError, TypeError, ValueError) as e:
                logger.debug(f"[PlanLock] Cannot restore {entry}: {e}")

        state_path.unlink(missing_ok=True)
        logger.info(f"[PlanLock] Unlocked {root} ({restored} entries restored)")
        return LockResult(success=True, changed=restored)
    except OSError as e:
        logger.error(f"[PlanLock] Failed to unlock {root}: {e}")
        return LockResult(success=False, error=str(e))


def _read_state(state_path: Path) -> list[dict[str, Any]]:
    """Recorded {"p": path, "m": mode} entries; empty when missing or corrupt."""
    if not state_path.exists():
        return []
    try:
        entries = json.loads(state_path.read_text(encoding="utf-8") or "[]")
    except json.JSONDecodeError as e:
        logger.warning(f"[PlanLock] Corrupt lock state in {state_path}: {e}")
        return []
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


async def apply_lock_async(root: Path, internal_dir: str = ".emdash") -> LockResult:
    """Run apply_lock off the event loop."""
    return await asyncio.to_thread(apply_lock, root, internal_dir)


async def release_lock_async(root: Path, internal_dir: str = ".emdash") -> LockResult:
    """Run release_lock off the event loop."""
    return await asyncio.to_thread(release_lock, root, internal_dir)
