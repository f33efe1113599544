"""Test doubles for RepoLens.

- FakeSourceAccess: In-memory repository checkouts
- ScriptedReasoningService: Reasoning service answering from a script
"""

import asyncio
import json
import threading
from pathlib import PurePosixPath

from repolens.errors import CloneError, ReasoningError
from repolens.llm import ReasoningRequest, ReasoningResponse, ReasoningService
from repolens.models.repository import CloneResult, DirectoryNode, FileInfo, RepositoryMetadata
from repolens.source import SourceAccess

FAKE_COMMIT = "0123456789abcdef0123456789abcdef01234567"

# A small Express backend
BACKEND_FILES: dict[str, str] = {
    "package.json": json.dumps(
        {"name": "api", "dependencies": {"express": "^4.18.0", "pg": "^8.0.0"}}
    ),
    "README.md": "# API\n\nOrders service.\n",
    "src/index.js": "const express = require('express');\nconst app = express();\n",
    "src/routes/orders.js": "module.exports = (router) => router.get('/orders');\n",
    "src/controllers/orders.js": "exports.list = async (req, res) => res.json([]);\n",
    "tests/orders.test.js": "test('lists orders', () => {});\n",
}


def build_tree(paths: list[str], name: str = "repo") -> DirectoryNode:
    """Build a directory tree from relative file paths."""
    root = DirectoryNode(path="", name=name)
    for path in sorted(paths):
        node = root
        parts = PurePosixPath(path).parts
        for depth, part in enumerate(parts[:-1]):
            child = node.child(part)
            if child is None:
                child = DirectoryNode(path="/".join(parts[: depth + 1]), name=part)
                node.children.append(child)
            node = child
        node.children.append(DirectoryNode(path=path, name=parts[-1], is_dir=False))
    return root


class FakeSourceAccess(SourceAccess):
    """Serves one in-memory repository for every clone."""

    def __init__(
        self,
        files: dict[str, str] | None = None,
        commit_hash: str = FAKE_COMMIT,
        clone_error: Exception | None = None,
    ) -> None:
        self.files = dict(BACKEND_FILES if files is None else files)
        self.commit_hash = commit_hash
        self.clone_error = clone_error
        self.clone_calls: list[tuple[str, str | None]] = []
        self.released: list[str] = []
        self._lock = threading.Lock()

    def clone(self, url: str, branch: str | None = None) -> CloneResult:
        with self._lock:
            self.clone_calls.append((url, branch))
            count = len(self.clone_calls)
        if self.clone_error is not None:
            raise self.clone_error
        return CloneResult(
            local_path=f"/checkouts/{count}",
            commit_hash=self.commit_hash,
            branch=branch or "main",
        )

    def list_files(self, local_path, ignore_patterns=None) -> list[FileInfo]:
        return [
            FileInfo.from_path(path, len(content.encode()))
            for path, content in sorted(self.files.items())
        ]

    def read_file(self, local_path: str, relative_path: str) -> str | None:
        return self.files.get(relative_path)

    def directory_tree(self, local_path, max_depth=5, ignore_patterns=None) -> DirectoryNode:
        return build_tree(list(self.files))

    def metadata(self, local_path: str) -> RepositoryMetadata:
        return RepositoryMetadata(
            size_bytes=sum(len(c.encode()) for c in self.files.values()),
            file_count=len(self.files),
        )

    def release(self, local_path: str) -> None:
        with self._lock:
            self.released.append(local_path)


class ScriptedReasoningService(ReasoningService):
    """Answers reasoning calls from a per-task script.

    Script values are response text, or an exception to raise. Tasks
    without a script entry get ``default``.
    """

    def __init__(
        self,
        script: dict[str, str | Exception] | None = None,
        default: str = '{"findings": []}',
        tokens_per_call: int = 100,
        delay: float = 0.0,
    ) -> None:
        self.script = dict(script or {})
        self.default = default
        self.tokens_per_call = tokens_per_call
        self.delay = delay
        self.requests: list[ReasoningRequest] = []

    @property
    def task_ids(self) -> list[str]:
        return [request.task_id for request in self.requests]

    async def complete(self, request: ReasoningRequest) -> ReasoningResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        answer = self.script.get(request.task_id, self.default)
        if isinstance(answer, Exception):
            raise answer
        return ReasoningResponse(output=answer, tokens_used=self.tokens_per_call, model="fake")


def failing_clone(url: str = "https://github.com/acme/api") -> CloneError:
    """Return the error a clone of a missing repository raises."""
    return CloneError(url, "Repository not found", exit_code=128)


def reasoning_failure(task_id: str) -> ReasoningError:
    """Return a provider failure for a task."""
    return ReasoningError(f"Reasoning call for {task_id} failed: upstream 500")
