"""Git-backed source access.

Clones with the ``git`` executable (shallow, single branch) into a private
temporary directory per job and reads the checkout from disk.
"""

import logging
import os
import shutil
import subprocess
import tempfile
import time
import uuid
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from repolens.config import DEFAULT_IGNORE_PATTERNS
from repolens.errors import CloneError
from repolens.models.repository import (
    CloneResult,
    DirectoryNode,
    FileInfo,
    GitPlatform,
    RepositoryMetadata,
    RepositoryRef,
    parse_repo_url,
)
from repolens.source.base import SourceAccess, is_ignored

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 1024 * 1024
CLONE_TIMEOUT = 300.0
GIT_TIMEOUT = 30.0

_PLATFORM_HOSTS = {
    GitPlatform.GITHUB: "github.com",
    GitPlatform.GITLAB: "gitlab.com",
    GitPlatform.BITBUCKET: "bitbucket.org",
}

# Username used with a token, per platform (None: token is the username)
_TOKEN_USERS = {
    GitPlatform.GITHUB: None,
    GitPlatform.GITLAB: "oauth2",
    GitPlatform.BITBUCKET: "x-token-auth",
}

# Directories never counted in metadata
_METADATA_SKIP_DIRS = frozenset({".git", "node_modules"})


def build_clone_url(ref: RepositoryRef, tokens: dict[str, str] | None = None) -> str:
    """Build the URL passed to ``git clone``.

    Args:
        ref: Parsed repository reference
        tokens: Access tokens keyed by platform name

    Returns:
        Clone URL, with credentials embedded when a token is configured
    """
    if ref.platform == GitPlatform.LOCAL:
        local_path = ref.url.removeprefix("file://")
        return f"file://{local_path}"

    host = _PLATFORM_HOSTS[ref.platform]
    token = (tokens or {}).get(ref.platform.value)
    if token:
        user = _TOKEN_USERS[ref.platform]
        credentials = f"{user}:{token}" if user else token
        return f"https://{credentials}@{host}/{ref.owner}/{ref.name}.git"
    return f"https://{host}/{ref.owner}/{ref.name}.git"


class GitSourceAccess(SourceAccess):
    """Source access using the git CLI and the local filesystem.

    Usage:
        source = GitSourceAccess(tokens={"github": "ghp_..."})
        clone = source.clone("https://github.com/owner/repo")
        try:
            files = source.list_files(clone.local_path)
        finally:
            source.release(clone.local_path)
    """

    def __init__(
        self,
        temp_dir: str | None = None,
        tokens: dict[str, str] | None = None,
        clone_timeout: float = CLONE_TIMEOUT,
        max_file_bytes: int = MAX_FILE_BYTES,
        ignore_patterns: Iterable[str] | None = None,
    ) -> None:
        """Initialize git source access.

        Args:
            temp_dir: Parent directory for checkouts (system temp dir when None)
            tokens: Access tokens keyed by platform (github, gitlab, bitbucket)
            clone_timeout: Clone timeout in seconds
            max_file_bytes: Files above this size are never read
            ignore_patterns: Default ignore patterns for listings
        """
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir()) / "repolens"
        self.tokens = dict(tokens or {})
        self.clone_timeout = clone_timeout
        self.max_file_bytes = max_file_bytes
        self.ignore_patterns = list(
            ignore_patterns if ignore_patterns is not None else DEFAULT_IGNORE_PATTERNS
        )

    # =========================================================================
    # Cloning
    # =========================================================================

    def _redact(self, text: str) -> str:
        for token in self.tokens.values():
            if token:
                text = text.replace(token, "***")
        return text

    def _git(self, args: list[str], cwd: str | None = None, timeout: float = GIT_TIMEOUT) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
        )
        if result.returncode != 0:
            raise subprocess.CalledProcessError(
                result.returncode, ["git", args[0]], result.stdout, result.stderr
            )
        return result.stdout.strip()

    def clone(self, url: str, branch: str | None = None) -> CloneResult:
        """Shallow-clone a repository into a fresh directory.

        Args:
            url: Repository URL
            branch: Branch to clone (URL ``/tree/<branch>`` or remote default when None)

        Returns:
            CloneResult for the new checkout

        Raises:
            CloneError: If git is missing, the clone fails or times out
        """
        ref = parse_repo_url(url)
        target_branch = branch or ref.branch
        clone_url = build_clone_url(ref, self.tokens)

        self.temp_dir.mkdir(parents=True, exist_ok=True)
        local_path = self.temp_dir / str(uuid.uuid4())

        args = ["clone", "--depth", "1", "--single-branch"]
        if target_branch:
            args.extend(["--branch", target_branch])
        args.extend([clone_url, str(local_path)])

        logger.info("Cloning %s%s", ref.full_name, f" ({target_branch})" if target_branch else "")
        start = time.monotonic()
        try:
            self._git(args, timeout=self.clone_timeout)
            commit_hash = self._git(["rev-parse", "HEAD"], cwd=str(local_path))
            actual_branch = self._git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=str(local_path))
        except FileNotFoundError as e:
            self.release(str(local_path))
            raise CloneError(url, "git executable not found") from e
        except subprocess.TimeoutExpired as e:
            self.release(str(local_path))
            raise CloneError(url, f"clone timed out after {self.clone_timeout:.0f}s") from e
        except subprocess.CalledProcessError as e:
            self.release(str(local_path))
            stderr = self._redact(e.stderr or "").strip()
            raise CloneError(
                url, stderr.splitlines()[-1] if stderr else "git failed", e.returncode, stderr
            ) from e

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.debug("Cloned %s at %s in %dms", ref.full_name, commit_hash[:12], duration_ms)
        return CloneResult(
            local_path=str(local_path),
            commit_hash=commit_hash,
            branch=actual_branch or target_branch or "HEAD",
            duration_ms=duration_ms,
        )

    # =========================================================================
    # Reading
    # =========================================================================

    def list_files(
        self, local_path: str, ignore_patterns: Iterable[str] | None = None
    ) -> list[FileInfo]:
        """List files below a checkout, sorted by path."""
        patterns = list(ignore_patterns) if ignore_patterns is not None else self.ignore_patterns
        root = Path(local_path)
        files: list[FileInfo] = []

        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir
            # Prune ignored directories in place
            dirnames[:] = sorted(
                d
                for d in dirnames
                if not is_ignored(f"{rel_dir}/{d}" if rel_dir else d, patterns, is_dir=True)
            )
            for filename in filenames:
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if is_ignored(rel_path, patterns):
                    continue
                try:
                    size = (Path(dirpath) / filename).stat().st_size
                except OSError:
                    continue
                files.append(FileInfo.from_path(rel_path, size))

        files.sort(key=lambda f: f.path)
        return files

    def read_file(self, local_path: str, relative_path: str) -> str | None:
        """Read a UTF-8 text file, or None when unavailable or above the size ceiling."""
        root = Path(local_path).resolve()
        full_path = (root / relative_path).resolve()
        if not full_path.is_relative_to(root):
            logger.warning("Refusing to read path outside checkout: %s", relative_path)
            return None
        try:
            if full_path.stat().st_size > self.max_file_bytes:
                return None
            return full_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None

    def directory_tree(
        self,
        local_path: str,
        max_depth: int = 5,
        ignore_patterns: Iterable[str] | None = None,
    ) -> DirectoryNode:
        """Build the directory tree; directories first, then files, alphabetical."""
        patterns = list(ignore_patterns) if ignore_patterns is not None else self.ignore_patterns
        root = Path(local_path)
        return self._build_tree(root, "", root.name, 0, max_depth, patterns)

    def _build_tree(
        self,
        current: Path,
        relative: str,
        name: str,
        depth: int,
        max_depth: int,
        patterns: list[str],
    ) -> DirectoryNode:
        node = DirectoryNode(path=relative, name=name, is_dir=True)
        if depth >= max_depth:
            return node

        try:
            entries = list(os.scandir(current))
        except OSError:
            return node

        dirs: list[DirectoryNode] = []
        files: list[DirectoryNode] = []
        for entry in entries:
            entry_rel = f"{relative}/{entry.name}" if relative else entry.name
            try:
                if entry.is_dir(follow_symlinks=False):
                    if is_ignored(entry_rel, patterns, is_dir=True):
                        continue
                    dirs.append(
                        self._build_tree(
                            Path(entry.path), entry_rel, entry.name, depth + 1, max_depth, patterns
                        )
                    )
                elif entry.is_file(follow_symlinks=False):
                    if is_ignored(entry_rel, patterns):
                        continue
                    files.append(
                        DirectoryNode(
                            path=entry_rel,
                            name=entry.name,
                            is_dir=False,
                            size=entry.stat().st_size,
                        )
                    )
            except OSError:
                continue

        node.children = sorted(dirs, key=lambda n: n.name) + sorted(files, key=lambda n: n.name)
        return node

    def metadata(self, local_path: str) -> RepositoryMetadata:
        """Compute size, counts and (best-effort) commit history statistics."""
        size_bytes = 0
        file_count = 0
        directory_count = 0

        for dirpath, dirnames, filenames in os.walk(local_path):
            dirnames[:] = [d for d in dirnames if d not in _METADATA_SKIP_DIRS]
            directory_count += len(dirnames)
            for filename in filenames:
                try:
                    size_bytes += os.stat(os.path.join(dirpath, filename)).st_size
                    file_count += 1
                except OSError:
                    continue

        last_commit_date = None
        contributors = None
        try:
            date_text = self._git(["log", "-1", "--format=%cI"], cwd=local_path)
            if date_text:
                last_commit_date = datetime.fromisoformat(date_text)
            # Shallow clones only see the fetched history
            emails = self._git(["log", "--format=%ae"], cwd=local_path)
            contributors = len({line for line in emails.splitlines() if line})
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            logger.debug("Could not read commit history for %s: %s", local_path, e)

        return RepositoryMetadata(
            size_bytes=size_bytes,
            file_count=file_count,
            directory_count=directory_count,
            last_commit_date=last_commit_date,
            contributors=contributors,
        )

    def release(self, local_path: str) -> None:
        """Remove a checkout directory."""
        if not local_path:
            return
        shutil.rmtree(local_path, ignore_errors=True)
        logger.debug("Released checkout %s", local_path)
