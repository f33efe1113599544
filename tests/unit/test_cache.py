"""Unit tests for the analysis result cache."""

import asyncio
import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from repolens.cache import (
    CacheEntry,
    HttpResultCache,
    InMemoryResultCache,
    build_cache_key,
    create_cache,
    normalize_repo_url,
)
from repolens.config import CacheConfig
from repolens.errors import CacheError
from repolens.models.analysis import AnalysisResult

URL = "https://github.com/acme/api"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class TestCacheKeys:
    """Tests for key construction."""

    def test_normalize(self) -> None:
        """Test URLs are lowercased and lose a trailing .git."""
        assert normalize_repo_url(" https://GitHub.com/Acme/API.git ") == URL

    def test_key_default_branch(self) -> None:
        """Test a missing branch keys as default."""
        assert build_cache_key(URL, None) == f"repolens:cache:{URL}:default"
        assert build_cache_key(URL + ".git", "dev") == f"repolens:cache:{URL}:dev"


class TestInMemoryResultCache:
    """Tests for InMemoryResultCache."""

    def test_put_then_get(self, sample_result: AnalysisResult) -> None:
        """Test a stored result is served for the same url and branch."""
        cache = InMemoryResultCache()

        async def scenario() -> CacheEntry | None:
            await cache.put(URL, "main", "abc", sample_result)
            return await cache.get(URL.upper(), "main")

        entry = asyncio.run(scenario())

        assert entry is not None
        assert entry.commit_hash == "abc"
        assert entry.result is sample_result

    def test_branches_are_separate(self, sample_result: AnalysisResult) -> None:
        """Test entries for different branches do not collide."""
        cache = InMemoryResultCache()

        async def scenario() -> tuple[CacheEntry | None, CacheEntry | None]:
            await cache.put(URL, "main", "abc", sample_result)
            return await cache.get(URL, "dev"), await cache.get(URL, None)

        assert asyncio.run(scenario()) == (None, None)

    def test_expired_entry_is_dropped(self, sample_result: AnalysisResult) -> None:
        """Test entries past their ttl are not served and are removed."""
        clock = FakeClock()
        cache = InMemoryResultCache(ttl_seconds=60, clock=clock)

        async def scenario() -> CacheEntry | None:
            await cache.put(URL, None, "abc", sample_result)
            clock.advance(61)
            return await cache.get(URL, None)

        assert asyncio.run(scenario()) is None
        assert len(cache) == 0

    def test_per_entry_ttl(self, sample_result: AnalysisResult) -> None:
        """Test an explicit ttl overrides the default."""
        clock = FakeClock()
        cache = InMemoryResultCache(ttl_seconds=10, clock=clock)

        async def scenario() -> CacheEntry | None:
            await cache.put(URL, None, "abc", sample_result, ttl_seconds=3600)
            clock.advance(600)
            return await cache.get(URL, None)

        assert asyncio.run(scenario()) is not None

    def test_get_by_commit(self, sample_result: AnalysisResult) -> None:
        """Test lookup by exact commit."""
        cache = InMemoryResultCache()

        async def scenario() -> tuple[CacheEntry | None, CacheEntry | None]:
            await cache.put(URL, "main", "abc", sample_result)
            return await cache.get_by_commit(URL, "abc"), await cache.get_by_commit(URL, "def")

        hit, miss = asyncio.run(scenario())

        assert hit is not None and hit.branch == "main"
        assert miss is None

    def test_invalidate(self, sample_result: AnalysisResult) -> None:
        """Test invalidating one branch or every branch."""
        cache = InMemoryResultCache()

        async def scenario() -> tuple[int, int]:
            await cache.put(URL, "main", "a", sample_result)
            await cache.put(URL, "dev", "b", sample_result)
            await cache.put("https://github.com/acme/web", "main", "c", sample_result)
            one = await cache.invalidate(URL, "dev")
            rest = await cache.invalidate(URL)
            return one, rest

        assert asyncio.run(scenario()) == (1, 1)
        assert len(cache) == 1


class TestCacheEntry:
    """Tests for CacheEntry serialization."""

    def test_round_trip(self, sample_result: AnalysisResult) -> None:
        """Test an entry survives to_dict/from_dict with its result intact."""
        entry = CacheEntry(repo_url=URL, branch=None, commit_hash="abc", result=sample_result)

        restored = CacheEntry.from_dict(json.loads(json.dumps(entry.to_dict())))

        assert restored.branch is None
        assert restored.expires_at == entry.expires_at
        assert restored.result.to_dict() == sample_result.to_dict()


class TestHttpResultCache:
    """Tests for HttpResultCache against a mock transport."""

    def make_cache(self, handler) -> HttpResultCache:
        return HttpResultCache(
            "https://memory.example.com/",
            api_key="secret",
            transport=httpx.MockTransport(handler),
        )

    def test_put_sends_tags_and_ttl(self, sample_result: AnalysisResult) -> None:
        """Test stores carry the entry, its tags and the ttl."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": "m1"})

        cache = self.make_cache(handler)
        asyncio.run(cache.put(URL, "main", "abc", sample_result, ttl_seconds=120))

        [request] = seen
        body = json.loads(request.content)
        assert request.url.path == "/v1/memory/store"
        assert request.headers["Authorization"] == "Bearer secret"
        assert body["ttl"] == 120
        assert "commit:abc" in body["tags"]
        assert "branch:main" in body["tags"]
        assert "type:backend" in body["tags"]
        assert json.loads(body["content"])["commit_hash"] == "abc"

    def test_get_hit(self, sample_result: AnalysisResult) -> None:
        """Test a recalled entry is decoded."""
        entry = CacheEntry(repo_url=URL, branch="main", commit_hash="abc", result=sample_result)

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/memory/recall"
            assert json.loads(request.content)["query"] == build_cache_key(URL, "main")
            return httpx.Response(
                200, json={"memories": [{"id": "m1", "content": json.dumps(entry.to_dict())}]}
            )

        found = asyncio.run(self.make_cache(handler).get(URL, "main"))

        assert found is not None
        assert found.commit_hash == "abc"

    def test_expired_entry_deleted(self, sample_result: AnalysisResult) -> None:
        """Test an expired recalled entry is deleted and reported as a miss."""
        past = datetime.now(UTC) - timedelta(days=30)
        entry = CacheEntry(
            repo_url=URL,
            branch=None,
            commit_hash="abc",
            result=sample_result,
            created_at=past,
            expires_at=past + timedelta(days=1),
        )
        deleted: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "DELETE":
                deleted.append(request.url.path)
                return httpx.Response(204)
            return httpx.Response(
                200, json={"memories": [{"id": "m9", "content": json.dumps(entry.to_dict())}]}
            )

        assert asyncio.run(self.make_cache(handler).get(URL, None)) is None
        assert deleted == ["/v1/memory/m9"]

    def test_malformed_entry_is_a_miss(self) -> None:
        """Test undecodable content is ignored."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"memories": [{"id": "m1", "content": "{oops"}]})

        assert asyncio.run(self.make_cache(handler).get(URL, None)) is None

    def test_server_error_raises_cache_error(self) -> None:
        """Test HTTP failures surface as CacheError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"error": "down"})

        with pytest.raises(CacheError, match="recall failed"):
            asyncio.run(self.make_cache(handler).get(URL, None))

    def test_invalidate_deletes_each_memory(self) -> None:
        """Test invalidation deletes every recalled memory."""
        deleted: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "DELETE":
                deleted.append(request.url.path.rsplit("/", 1)[-1])
                return httpx.Response(204)
            return httpx.Response(200, json={"memories": [{"id": "a"}, {"id": "b"}, {}]})

        assert asyncio.run(self.make_cache(handler).invalidate(URL)) == 2
        assert deleted == ["a", "b"]


class TestCreateCache:
    """Tests for create_cache."""

    def test_disabled(self) -> None:
        """Test a disabled cache creates nothing."""
        assert create_cache(CacheConfig(enabled=False)) is None

    def test_memory_backend(self) -> None:
        """Test the memory backend uses the configured ttl."""
        cache = create_cache(CacheConfig(backend="memory", ttl_days=2))

        assert isinstance(cache, InMemoryResultCache)
        assert cache.ttl_seconds == 2 * 24 * 60 * 60

    def test_http_backend(self) -> None:
        """Test the http backend is built from url and key."""
        cache = create_cache(CacheConfig(backend="http", url="https://mem.example.com", api_key="k"))

        assert isinstance(cache, HttpResultCache)
        assert cache.base_url == "https://mem.example.com"
