"""Analysis result cache.

Results are cached per (repository url, branch) and record the commit they
were computed at. Two backends:

- InMemoryResultCache: process-local dict, used by the CLI and tests
- HttpResultCache: remote memory service with recall/store/delete endpoints

Backends raise CacheError; callers treat caching as best-effort.
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from repolens.config import CacheConfig
from repolens.errors import CacheError
from repolens.models.analysis import AnalysisResult

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0.0"
DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60
CACHE_TAGS = ("repolens", "analysis-cache")


def normalize_repo_url(url: str) -> str:
    """Lowercase a repository URL and strip a trailing ``.git``."""
    return re.sub(r"\.git$", "", url.strip().lower())


def build_cache_key(url: str, branch: str | None) -> str:
    """Build the cache key for a repository and branch."""
    return f"repolens:cache:{normalize_repo_url(url)}:{branch or 'default'}"


def _sanitize_tag(value: str) -> str:
    return re.sub(r"-+", "-", re.sub(r"[^a-z0-9-]", "-", value.lower()))[:50]


@dataclass
class CacheEntry:
    """A cached analysis result.

    Attributes:
        repo_url: Repository URL as requested
        branch: Requested branch (None for the default branch)
        commit_hash: Commit the result was computed at
        result: Cached result
        created_at: When the entry was stored
        expires_at: When the entry stops being served
        version: Cache format version
    """

    repo_url: str
    branch: str | None
    commit_hash: str
    result: AnalysisResult
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime = field(
        default_factory=lambda: datetime.now(UTC) + timedelta(seconds=DEFAULT_TTL_SECONDS)
    )
    version: str = CACHE_VERSION

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the entry has passed its expiry time."""
        return (now or datetime.now(UTC)) >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "repo_url": self.repo_url,
            "branch": self.branch,
            "commit_hash": self.commit_hash,
            "result": self.result.to_dict(),
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        """Create a CacheEntry from a dictionary."""
        return cls(
            repo_url=data["repo_url"],
            branch=data.get("branch"),
            commit_hash=data["commit_hash"],
            result=AnalysisResult.from_dict(data["result"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            version=data.get("version", CACHE_VERSION),
        )


class ResultCache(ABC):
    """Interface of the analysis result cache."""

    @abstractmethod
    async def get(self, url: str, branch: str | None) -> CacheEntry | None:
        """Return the live entry for a repository and branch, if any."""

    @abstractmethod
    async def get_by_commit(self, url: str, commit_hash: str) -> CacheEntry | None:
        """Return a live entry computed at an exact commit, if any."""

    @abstractmethod
    async def put(
        self,
        url: str,
        branch: str | None,
        commit_hash: str,
        result: AnalysisResult,
        ttl_seconds: int | None = None,
    ) -> None:
        """Store a result."""

    @abstractmethod
    async def invalidate(self, url: str, branch: str | None = None) -> int:
        """Drop entries for a repository (one branch, or every branch when None).

        Returns:
            Number of entries removed
        """


# =============================================================================
# In-memory backend
# =============================================================================


class InMemoryResultCache(ResultCache):
    """Process-local cache keyed by :func:`build_cache_key`."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: Default entry lifetime
            clock: Returns the current UTC time (``datetime.now(UTC)`` when None)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock or (lambda: datetime.now(UTC))
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, url: str, branch: str | None) -> CacheEntry | None:
        key = build_cache_key(url, branch)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            logger.debug("Cache entry expired: %s", key)
            return None
        return entry

    async def get_by_commit(self, url: str, commit_hash: str) -> CacheEntry | None:
        normalized = normalize_repo_url(url)
        now = self._clock()
        for entry in self._entries.values():
            if (
                normalize_repo_url(entry.repo_url) == normalized
                and entry.commit_hash == commit_hash
                and not entry.is_expired(now)
            ):
                return entry
        return None

    async def put(
        self,
        url: str,
        branch: str | None,
        commit_hash: str,
        result: AnalysisResult,
        ttl_seconds: int | None = None,
    ) -> None:
        now = self._clock()
        self._entries[build_cache_key(url, branch)] = CacheEntry(
            repo_url=url,
            branch=branch,
            commit_hash=commit_hash,
            result=result,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds or self.ttl_seconds),
        )

    async def invalidate(self, url: str, branch: str | None = None) -> int:
        if branch is not None:
            return 1 if self._entries.pop(build_cache_key(url, branch), None) else 0
        prefix = f"repolens:cache:{normalize_repo_url(url)}:"
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)


# =============================================================================
# HTTP backend
# =============================================================================


class HttpResultCache(ResultCache):
    """Cache stored in a remote memory service.

    The service exposes:
    - ``POST /v1/memory/recall`` {query, limit, tags, score_threshold} -> {memories: [...]}
    - ``POST /v1/memory/store`` {content, tags, metadata, ttl}
    - ``DELETE /v1/memory/{id}``

    Each memory's ``content`` is a JSON-encoded CacheEntry.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 5.0,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP cache.

        Args:
            base_url: Service base URL
            api_key: Bearer token, if the service requires one
            timeout: Per-request timeout in seconds
            ttl_seconds: Default entry lifetime
            transport: Custom httpx transport
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.ttl_seconds = ttl_seconds
        self._transport = transport
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _recall(
        self, query: str, tags: list[str], limit: int, threshold: float | None
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {"query": query, "limit": limit, "tags": tags}
        if threshold is not None:
            body["score_threshold"] = threshold
        try:
            async with self._client() as client:
                response = await client.post("/v1/memory/recall", json=body)
                response.raise_for_status()
                memories = response.json().get("memories") or []
        except (httpx.HTTPError, ValueError) as e:
            raise CacheError(f"Cache recall failed: {e}") from e
        return [m for m in memories if isinstance(m, dict)]

    async def _delete(self, memory_id: str) -> None:
        try:
            async with self._client() as client:
                response = await client.delete(f"/v1/memory/{memory_id}")
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise CacheError(f"Cache delete of {memory_id} failed: {e}") from e

    @staticmethod
    def _entry(memory: dict[str, Any]) -> CacheEntry | None:
        try:
            return CacheEntry.from_dict(json.loads(memory.get("content", "")))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring malformed cache entry %s: %s", memory.get("id"), e)
            return None

    async def get(self, url: str, branch: str | None) -> CacheEntry | None:
        memories = await self._recall(build_cache_key(url, branch), list(CACHE_TAGS), 1, 0.95)
        if not memories:
            return None
        entry = self._entry(memories[0])
        if entry is None:
            return None
        if entry.is_expired():
            memory_id = memories[0].get("id")
            if memory_id:
                try:
                    await self._delete(str(memory_id))
                except CacheError as e:
                    logger.warning("%s", e)
            return None
        return entry

    async def get_by_commit(self, url: str, commit_hash: str) -> CacheEntry | None:
        memories = await self._recall(
            f"repolens analysis {normalize_repo_url(url)} commit:{commit_hash}",
            [*CACHE_TAGS, f"commit:{commit_hash}"],
            1,
            0.99,
        )
        for memory in memories:
            entry = self._entry(memory)
            if entry is not None and entry.commit_hash == commit_hash and not entry.is_expired():
                return entry
        return None

    async def put(
        self,
        url: str,
        branch: str | None,
        commit_hash: str,
        result: AnalysisResult,
        ttl_seconds: int | None = None,
    ) -> None:
        ttl = ttl_seconds or self.ttl_seconds
        now = datetime.now(UTC)
        entry = CacheEntry(
            repo_url=url,
            branch=branch,
            commit_hash=commit_hash,
            result=result,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )
        body = {
            "content": json.dumps(entry.to_dict()),
            "tags": [
                *CACHE_TAGS,
                f"repo:{_sanitize_tag(normalize_repo_url(url))}",
                f"branch:{branch or 'default'}",
                f"commit:{commit_hash}",
                f"type:{result.project_type.value}",
                *(f"tech:{tech}" for tech in result.tech_stack),
            ],
            "metadata": {
                "cache_key": build_cache_key(url, branch),
                "repo_url": url,
                "branch": branch,
                "commit_hash": commit_hash,
                "project_type": result.project_type.value,
                "version": CACHE_VERSION,
                "expires_at": entry.expires_at.isoformat(),
            },
            "ttl": ttl,
        }
        start = time.monotonic()
        try:
            async with self._client() as client:
                response = await client.post("/v1/memory/store", json=body)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise CacheError(f"Cache store failed: {e}") from e
        logger.debug(
            "Stored cache entry %s in %dms",
            build_cache_key(url, branch),
            int((time.monotonic() - start) * 1000),
        )

    async def invalidate(self, url: str, branch: str | None = None) -> int:
        tags = [*CACHE_TAGS, f"repo:{_sanitize_tag(normalize_repo_url(url))}"]
        if branch is not None:
            tags.append(f"branch:{branch}")
        memories = await self._recall(f"repolens analysis {normalize_repo_url(url)}", tags, 100, None)
        removed = 0
        for memory in memories:
            memory_id = memory.get("id")
            if memory_id:
                await self._delete(str(memory_id))
                removed += 1
        return removed


def create_cache(config: CacheConfig) -> ResultCache | None:
    """Create the configured cache backend.

    Args:
        config: Cache configuration

    Returns:
        Cache backend, or None when caching is disabled
    """
    if not config.enabled:
        return None
    if config.backend == "http":
        return HttpResultCache(
            base_url=config.url or "",
            api_key=config.api_key,
            timeout=config.timeout,
            ttl_seconds=config.ttl_seconds,
        )
    return InMemoryResultCache(ttl_seconds=config.ttl_seconds)
