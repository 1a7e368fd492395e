"""Git working tree status provider."""

import asyncio
import logging
from contextlib import suppress
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Untracked files larger than this are reported without line counts
MAX_UNTRACKED_COUNT_BYTES = 512 * 1024


class StatusProvider(Protocol):
    """Protocol for fetching a workspace's working tree status."""

    async def get_status(self, workspace_path: str) -> dict[str, Any]:
        """Return {"success": bool, "changes": [...], "error": str}."""
        ...


class GitCliStatusProvider:
    """Status provider backed by the git CLI."""

    def __init__(self, git_cli: str = "git", include_diffs: bool = False) -> None:
        """Initialize with git CLI command path.

        Args:
            git_cli: Git executable
            include_diffs: Attach a per-file patch to every tracked change
        """
        self._git_cli = git_cli
        self._include_diffs = include_diffs

    async def get_status(self, workspace_path: str) -> dict[str, Any]:
        """Collect status and line counts for a workspace.

        Args:
            workspace_path: Root of the git working tree

        Returns:
            Provider result with camelCase change records
        """
        if not Path(workspace_path).is_dir():
            return {"success": False, "error": f"Workspace not found: {workspace_path}"}

        try:
            code, out, err = await self._git(
                workspace_path, "status", "--porcelain=v1", "-z", "--untracked-files=all"
            )
            if code != 0:
                return {"success": False, "error": err.strip() or f"git status exited {code}"}
            entries = parse_porcelain(out)

            _, unstaged_out, _ = await self._git(workspace_path, "diff", "--numstat", "-z")
            _, staged_out, _ = await self._git(
                workspace_path, "diff", "--numstat", "-z", "--cached"
            )
        except FileNotFoundError:
            logger.error(f"[GitCliStatusProvider] Git CLI not found: {self._git_cli}")
            return {"success": False, "error": f"git CLI not found: {self._git_cli}"}

        counts = parse_numstat(unstaged_out)
        for path, (added, deleted) in parse_numstat(staged_out).items():
            prev_added, prev_deleted = counts.get(path, (0, 0))
            counts[path] = (prev_added + added, prev_deleted + deleted)

        changes: list[dict[str, Any]] = []
        for path, index_code, worktree_code in entries:
            status = _status_name(index_code, worktree_code)
            if index_code == "?":
                additions = await asyncio.to_thread(_count_lines, Path(workspace_path) / path)
                deletions = 0
            else:
                additions, deletions = counts.get(path, (0, 0))

            change: dict[str, Any] = {
                "path": path,
                "status": status,
                "additions": additions,
                "deletions": deletions,
                "isStaged": index_code not in (" ", "?"),
            }
            if self._include_diffs and index_code != "?":
                change["diff"] = await self._diff(workspace_path, path, staged=index_code != " ")
            changes.append(change)

        logger.debug(f"[GitCliStatusProvider] {workspace_path}: {len(changes)} changes")
        return {"success": True, "changes": changes}

    async def _diff(self, workspace_path: str, path: str, staged: bool) -> str | None:
        args = ["diff", "--cached", "--", path] if staged else ["diff", "--", path]
        code, out, _ = await self._git(workspace_path, *args)
        return out if code == 0 and out else None

    async def _git(self, cwd: str, *args: str) -> tuple[int, str, str]:
        """Run git, return (returncode, stdout, stderr)."""
        process = await asyncio.create_subprocess_exec(
            self._git_cli,
            *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        return (
            process.returncode or 0,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )


def parse_porcelain(output: str) -> list[tuple[str, str, str]]:
    """Parse `git status --porcelain=v1 -z` output.

    Returns:
        List of (path, index_code, worktree_code); renames report the new path
    """
    entries: list[tuple[str, str, str]] = []
    fields = output.split("\0")
    i = 0
    while i < len(fields):
        field = fields[i]
        i += 1
        if len(field) < 4:
            continue
        index_code, worktree_code, path = field[0], field[1], field[3:]
        if index_code in ("R", "C"):
            i += 1  # Skip the original path
        entries.append((path, index_code, worktree_code))
    return entries


def parse_numstat(output: str) -> dict[str, tuple[int, int]]:
    """Parse `git diff --numstat -z` output into {path: (additions, deletions)}.

    Binary files report 0 for both counts.
    """
    counts: dict[str, tuple[int, int]] = {}
    fields = output.split("\0")
    i = 0
    while i < len(fields):
        field = fields[i]
        i += 1
        parts = field.split("\t")
        if len(parts) != 3:
            continue
        added, deleted, path = parts
        if not path:
            # Rename: old and new path follow as separate fields
            if i + 1 >= len(fields):
                break
            path = fields[i + 1]
            i += 2
        counts[path] = (_to_int(added), _to_int(deleted))
    return counts


def _to_int(value: str) -> int:
    with suppress(ValueError):
        return int(value)
    return 0


def _status_name(index_code: str, worktree_code: str) -> str:
    codes = {index_code, worktree_code}
    if "?" in codes or "A" in codes:
        return "added"
    if "R" in codes:
        return "renamed"
    if "D" in codes:
        return "deleted"
    return "modified"


def _count_lines(file_path: Path) -> int:
    """Count lines of an untracked file, 0 for directories, binaries and large files."""
    try:
        if not file_path.is_file() or file_path.stat().st_size > MAX_UNTRACKED_COUNT_BYTES:
            return 0
        data = file_path.read_bytes()
    except OSError as e:
        logger.debug(f"[GitCliStatusProvider] Cannot read {file_path.name}: {e}")
        return 0
    if b"\0" in data:
        return 0
    if not data:
        return 0
    return data.count(b"\n") + (0 if data.endswith(b"\n") else 1)
