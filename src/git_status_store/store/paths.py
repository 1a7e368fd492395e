"""Filter for internal bookkeeping paths."""


class ReservedPathFilter:
    """Decides which change paths must never be published."""

    def __init__(self, internal_dir: str, planning_file: str) -> None:
        """Initialize filter.

        Args:
            internal_dir: Reserved directory at the workspace root (e.g. ".emdash")
            planning_file: Reserved planning file at the workspace root
        """
        self._internal_dir = internal_dir.strip("/\\")
        self._planning_file = planning_file

    def is_reserved(self, path: str) -> bool:
        """Check whether a workspace-relative path is internal bookkeeping."""
        normalized = path.replace("\\", "/")
        while normalized.startswith("./"):
            normalized = normalized[2:]
        normalized = normalized.rstrip("/")

        if self._internal_dir and (
            normalized == self._internal_dir or normalized.startswith(self._internal_dir + "/")
        ):
            return True
        return normalized == self._planning_file
