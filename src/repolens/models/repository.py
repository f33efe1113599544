"""Repository entities.

Describes the repository being analyzed and the raw material the source
access layer hands to the rest of the system:
- RepositoryRef: Parsed repository URL (platform, owner, name, branch)
- FileInfo: Single file in a checkout
- DirectoryNode: Directory tree node
- RepositoryMetadata: Size and history statistics
- CloneResult: Outcome of a successful clone
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlparse

from repolens.errors import InvalidRepositoryError


class GitPlatform(Enum):
    """Hosting platform of a repository."""

    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    LOCAL = "local"


# File extension to language name, used for FileInfo.language
LANGUAGE_BY_EXTENSION: dict[str, str] = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
    ".java": "java",
    ".kt": "kotlin",
    ".go": "go",
    ".rs": "rust",
    ".rb": "ruby",
    ".php": "php",
    ".cs": "csharp",
    ".swift": "swift",
    ".m": "objective-c",
    ".c": "c",
    ".cpp": "cpp",
    ".h": "c",
    ".hpp": "cpp",
    ".vue": "vue",
    ".svelte": "svelte",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".xml": "xml",
    ".md": "markdown",
    ".sql": "sql",
    ".sh": "bash",
    ".tf": "terraform",
    ".proto": "protobuf",
    ".graphql": "graphql",
    ".gql": "graphql",
}

LANGUAGE_BY_FILENAME: dict[str, str] = {
    "dockerfile": "dockerfile",
    "makefile": "makefile",
    "gemfile": "ruby",
    "rakefile": "ruby",
    "vagrantfile": "ruby",
}


def detect_language(path: str) -> str | None:
    """Detect programming language from a file path.

    Args:
        path: Relative file path

    Returns:
        Language name or None if unknown
    """
    pure = PurePosixPath(path)
    by_name = LANGUAGE_BY_FILENAME.get(pure.name.lower())
    if by_name:
        return by_name
    return LANGUAGE_BY_EXTENSION.get(pure.suffix.lower())


@dataclass
class RepositoryRef:
    """Parsed repository reference.

    Attributes:
        url: Original URL as supplied by the caller
        platform: Hosting platform
        owner: Owner or organisation (empty for local repositories)
        name: Repository name
        branch: Branch embedded in the URL (``/tree/<branch>``), if any
    """

    url: str
    platform: GitPlatform
    owner: str
    name: str
    branch: str | None = None

    @property
    def full_name(self) -> str:
        """Return ``owner/name`` (or just name for local repositories)."""
        if self.owner:
            return f"{self.owner}/{self.name}"
        return self.name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "url": self.url,
            "platform": self.platform.value,
            "owner": self.owner,
            "name": self.name,
            "branch": self.branch,
        }


_PLATFORM_HOSTS = (
    ("github", GitPlatform.GITHUB),
    ("gitlab", GitPlatform.GITLAB),
    ("bitbucket", GitPlatform.BITBUCKET),
)


def parse_repo_url(url: str) -> RepositoryRef:
    """Parse a repository URL into a RepositoryRef.

    Accepts HTTPS and SSH (``git@host:owner/name``) URLs for GitHub, GitLab
    and Bitbucket, plus ``file://`` URLs and absolute local paths.

    Args:
        url: Repository URL

    Returns:
        Parsed RepositoryRef

    Raises:
        InvalidRepositoryError: If the URL cannot be parsed or the host is unsupported
    """
    normalized = url.strip()
    if not normalized:
        raise InvalidRepositoryError(url, "empty URL")

    # Local checkouts (used by the CLI and tests)
    if normalized.startswith("file://") or normalized.startswith("/"):
        local_path = normalized.removeprefix("file://").rstrip("/")
        name = PurePosixPath(local_path).name.removesuffix(".git")
        if not name:
            raise InvalidRepositoryError(url, "local path has no name")
        return RepositoryRef(url=url, platform=GitPlatform.LOCAL, owner="", name=name)

    if normalized.startswith("git@"):
        host, _, path = normalized[len("git@"):].partition(":")
        normalized = f"https://{host}/{path}"

    normalized = normalized.removesuffix("/").removesuffix(".git")

    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise InvalidRepositoryError(url, "invalid repository URL format")

    hostname = parsed.hostname.lower()
    platform = None
    for marker, candidate in _PLATFORM_HOSTS:
        if marker in hostname:
            platform = candidate
            break
    if platform is None:
        raise InvalidRepositoryError(url, f"unsupported git platform: {hostname}")

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        raise InvalidRepositoryError(url, "invalid repository URL format")

    branch = None
    if "tree" in parts:
        tree_index = parts.index("tree")
        if tree_index + 1 < len(parts):
            branch = parts[tree_index + 1]

    return RepositoryRef(
        url=url,
        platform=platform,
        owner=parts[0],
        name=parts[1],
        branch=branch,
    )


@dataclass
class FileInfo:
    """A file inside a checkout.

    Attributes:
        path: Path relative to the checkout root, using forward slashes
        size: Size in bytes
        extension: Lowercase extension including the dot ("" if none)
        language: Detected language, if known
    """

    path: str
    size: int = 0
    extension: str = ""
    language: str | None = None

    @property
    def name(self) -> str:
        """Return the file's basename."""
        return PurePosixPath(self.path).name

    @property
    def depth(self) -> int:
        """Return the number of path segments."""
        return len(PurePosixPath(self.path).parts)

    @classmethod
    def from_path(cls, path: str, size: int = 0) -> "FileInfo":
        """Create a FileInfo from a relative path."""
        return cls(
            path=path,
            size=size,
            extension=PurePosixPath(path).suffix.lower(),
            language=detect_language(path),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "path": self.path,
            "size": self.size,
            "extension": self.extension,
            "language": self.language,
        }


@dataclass
class DirectoryNode:
    """A node in a repository directory tree.

    Attributes:
        path: Path relative to the root ("" for the root itself)
        name: Entry name
        is_dir: Whether the node is a directory
        size: File size in bytes (files only)
        children: Child nodes (directories first, then files, alphabetical)
    """

    path: str
    name: str
    is_dir: bool = True
    size: int | None = None
    children: list["DirectoryNode"] = field(default_factory=list)

    def child(self, name: str) -> "DirectoryNode | None":
        """Find a direct child directory by case-insensitive name."""
        lowered = name.lower()
        for node in self.children:
            if node.is_dir and node.name.lower() == lowered:
                return node
        return None

    def child_dirs(self) -> list["DirectoryNode"]:
        """Return direct child directories."""
        return [node for node in self.children if node.is_dir]

    def iter_dirs(self):
        """Yield every directory node below this one (depth-first)."""
        for node in self.children:
            if node.is_dir:
                yield node
                yield from node.iter_dirs()

    def render(self, max_depth: int = 4, max_children: int = 50) -> str:
        """Render the tree as indented text for prompt inclusion.

        Args:
            max_depth: Deepest level to include
            max_children: Maximum children listed per directory

        Returns:
            Indented tree, one entry per line
        """
        lines: list[str] = []
        self._render_into(lines, 0, max_depth, max_children)
        return "\n".join(lines)

    def _render_into(
        self,
        lines: list[str],
        depth: int,
        max_depth: int,
        max_children: int,
    ) -> None:
        indent = "  " * depth
        suffix = "/" if self.is_dir else ""
        lines.append(f"{indent}{self.name}{suffix}")
        if depth >= max_depth:
            return
        for node in self.children[:max_children]:
            node._render_into(lines, depth + 1, max_depth, max_children)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "path": self.path,
            "name": self.name,
            "type": "directory" if self.is_dir else "file",
        }
        if self.size is not None:
            data["size"] = self.size
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DirectoryNode":
        """Create a DirectoryNode from a dictionary."""
        return cls(
            path=data.get("path", ""),
            name=data.get("name", ""),
            is_dir=data.get("type", "directory") == "directory",
            size=data.get("size"),
            children=[cls.from_dict(child) for child in data.get("children", [])],
        )


@dataclass
class RepositoryMetadata:
    """Statistics about a checkout.

    Attributes:
        size_bytes: Total size of tracked files
        file_count: Number of files
        directory_count: Number of directories
        last_commit_date: Date of the most recent commit
        contributors: Number of distinct commit authors (may be limited by shallow clones)
    """

    size_bytes: int = 0
    file_count: int = 0
    directory_count: int = 0
    last_commit_date: datetime | None = None
    contributors: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "size_bytes": self.size_bytes,
            "file_count": self.file_count,
            "directory_count": self.directory_count,
            "last_commit_date": (
                self.last_commit_date.isoformat() if self.last_commit_date else None
            ),
            "contributors": self.contributors,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RepositoryMetadata":
        """Create RepositoryMetadata from a dictionary."""
        last_commit = data.get("last_commit_date")
        return cls(
            size_bytes=int(data.get("size_bytes", 0)),
            file_count=int(data.get("file_count", 0)),
            directory_count=int(data.get("directory_count", 0)),
            last_commit_date=datetime.fromisoformat(last_commit) if last_commit else None,
            contributors=data.get("contributors"),
        )


@dataclass
class CloneResult:
    """Outcome of a successful clone.

    Attributes:
        local_path: Checkout directory (released by SourceAccess.release)
        commit_hash: Resolved HEAD commit
        branch: Checked-out branch name
        duration_ms: Clone wall time in milliseconds
    """

    local_path: str
    commit_hash: str
    branch: str
    duration_ms: int = 0
