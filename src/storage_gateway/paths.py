import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from src.shared.exceptions import PathRejectedError


_DRIVE_MARKER = re.compile(r"^[A-Za-z]:")


class ResolvedPath(BaseModel):
    """A logical path that has been accepted and joined onto the storage root."""

    model_config = ConfigDict(frozen=True)

    logical: str
    absolute: Path

    def parent(self) -> "ResolvedPath | None":
        """Return the containing directory, or None when it is the storage root."""
        if "/" not in self.logical:
            return None
        return ResolvedPath(
            logical=self.logical.rsplit("/", 1)[0],
            absolute=self.absolute.parent,
        )


def is_strictly_within(candidate: Path, root: Path) -> bool:
    """Check that `candidate` is a descendant of `root`, comparing whole segments."""
    root_parts = root.parts
    candidate_parts = candidate.parts
    if len(candidate_parts) <= len(root_parts):
        return False
    return candidate_parts[: len(root_parts)] == root_parts


def normalize_segments(logical_path: str) -> list[str]:
    """Split a logical path into segments, collapsing `.`, `..` and empty parts.

    Raises:
        PathRejectedError: If a `..` segment climbs above the starting point.
    """
    segments: list[str] = []
    for segment in logical_path.replace("\\", "/").split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not segments:
                raise PathRejectedError("Path escapes storage root")
            segments.pop()
            continue
        segments.append(segment)
    return segments


class PathResolver:
    """Turns untrusted logical paths into absolute paths under a fixed root.

    Resolution is lexical: nothing on disk is touched per call, so a rejected
    path never reaches the storage backend.
    """

    def __init__(self, storage_root: Path | str) -> None:
        self._root = Path(storage_root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, logical_path: str | None) -> ResolvedPath:
        """Resolve `logical_path` under the storage root.

        Args:
            logical_path: Caller-supplied relative path, e.g. "clients/7/contract.pdf".

        Returns:
            The accepted ResolvedPath.

        Raises:
            PathRejectedError: If the path is empty, carries a drive marker or a
                NUL byte, or normalizes to the root or outside of it.
        """
        if not logical_path or not logical_path.strip():
            raise PathRejectedError("Path is empty")
        if "\x00" in logical_path:
            raise PathRejectedError("Path contains a NUL byte")
        if _DRIVE_MARKER.match(logical_path.lstrip("/\\")):
            raise PathRejectedError("Path contains a drive marker")

        segments = normalize_segments(logical_path)
        if not segments:
            raise PathRejectedError("Path resolves to the storage root")

        absolute = self._root.joinpath(*segments)
        if not is_strictly_within(absolute, self._root):
            raise PathRejectedError("Path escapes storage root")

        return ResolvedPath(logical="/".join(segments), absolute=absolute)
