"""Source access interface.

The pipeline treats repository access as a synchronous capability and runs
every call in a worker thread. Implementations must be safe to call from
several threads at once for different checkouts.
"""

import fnmatch
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import PurePosixPath

from repolens.models.repository import CloneResult, DirectoryNode, FileInfo, RepositoryMetadata


def is_ignored(relative_path: str, patterns: Iterable[str], is_dir: bool = False) -> bool:
    """Check a path against gitignore-style patterns.

    Supported forms:
    - ``name/``: any directory segment named ``name`` (also excludes everything below it)
    - ``*.ext`` or ``name``: matched against the basename
    - ``dir/*.ext``: matched against the full relative path

    Args:
        relative_path: Path relative to the checkout root, forward slashes
        patterns: Ignore patterns
        is_dir: Whether the path itself is a directory

    Returns:
        True if any pattern matches
    """
    parts = PurePosixPath(relative_path).parts
    if not parts:
        return False
    dir_parts = parts if is_dir else parts[:-1]
    basename = parts[-1]

    for pattern in patterns:
        if pattern.endswith("/"):
            dir_pattern = pattern.rstrip("/")
            if any(fnmatch.fnmatch(part, dir_pattern) for part in dir_parts):
                return True
        elif "/" in pattern:
            if fnmatch.fnmatch(relative_path, pattern):
                return True
        elif fnmatch.fnmatch(basename, pattern):
            return True
    return False


class SourceAccess(ABC):
    """Capability interface over repository checkouts.

    All paths returned to callers are relative to the checkout root and use
    forward slashes.
    """

    @abstractmethod
    def clone(self, url: str, branch: str | None = None) -> CloneResult:
        """Obtain a local checkout.

        Args:
            url: Repository URL
            branch: Branch to check out (remote default when None)

        Returns:
            CloneResult with the local path and resolved commit

        Raises:
            CloneError: If the checkout cannot be obtained
        """

    @abstractmethod
    def list_files(
        self, local_path: str, ignore_patterns: Iterable[str] | None = None
    ) -> list[FileInfo]:
        """List files in a checkout, skipping ignored paths."""

    @abstractmethod
    def read_file(self, local_path: str, relative_path: str) -> str | None:
        """Read a text file.

        Returns:
            File content, or None if the file is missing, unreadable or too large
        """

    @abstractmethod
    def directory_tree(
        self,
        local_path: str,
        max_depth: int = 5,
        ignore_patterns: Iterable[str] | None = None,
    ) -> DirectoryNode:
        """Build the directory tree of a checkout."""

    @abstractmethod
    def metadata(self, local_path: str) -> RepositoryMetadata:
        """Compute size and history statistics for a checkout."""

    @abstractmethod
    def release(self, local_path: str) -> None:
        """Delete a checkout. Must never raise."""

    def read_files(self, local_path: str, relative_paths: Iterable[str]) -> dict[str, str]:
        """Read several files, dropping the unavailable ones."""
        contents: dict[str, str] = {}
        for relative_path in relative_paths:
            content = self.read_file(local_path, relative_path)
            if content is not None:
                contents[relative_path] = content
        return contents
