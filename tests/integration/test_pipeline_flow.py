"""Integration tests for the analysis pipeline.

Runs whole jobs through PipelineCoordinator with in-memory source access
and a scripted reasoning service.
"""

import asyncio
import json
import logging
import time

import pytest

from repolens.cache import CacheEntry, InMemoryResultCache
from repolens.config import PipelineConfig
from repolens.errors import CacheError, InvalidRepositoryError, NotificationError
from repolens.models.analysis import AnalysisResult
from repolens.models.classification import ProjectType
from repolens.models.job import (
    AnalysisJob,
    AnalysisRequest,
    EventType,
    JobEvent,
    JobStatus,
    ProgressSnapshot,
    TenantContext,
)
from repolens.models.repository import CloneResult
from repolens.models.tasks import TaskCategory
from repolens.notifications import Notifier
from repolens.pipeline import PipelineCoordinator
from repolens.tasks import TaskCatalogue
from tests.fixtures import (
    FAKE_COMMIT,
    FakeSourceAccess,
    ScriptedReasoningService,
    failing_clone,
    reasoning_failure,
)

URL = "https://github.com/acme/api"
CALLBACK = "https://hooks.example.com/done"

OVERVIEW = """```json
{"pattern": "layered", "confidence": 0.9, "layers": [{"name": "HTTP"}, {"name": "Data"}]}
```"""


# =============================================================================
# Helpers
# =============================================================================


class RecordingNotifier(Notifier):
    """Collects delivered events, optionally failing every delivery."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.events: list[tuple[str, JobEvent]] = []

    async def notify(self, callback_url: str, event: JobEvent) -> None:
        self.events.append((callback_url, event))
        if self.fail:
            raise NotificationError("receiver down")


class BrokenCache(InMemoryResultCache):
    """Cache whose every call fails."""

    async def get(self, url, branch):
        raise CacheError("recall failed: HTTP 503")

    async def put(self, url, branch, commit_hash, result, ttl_seconds=None):
        raise CacheError("store failed: HTTP 503")


class SelectiveSource(FakeSourceAccess):
    """Fails clones of URLs containing 'broken'."""

    def clone(self, url: str, branch: str | None = None) -> CloneResult:
        if "broken" in url:
            raise failing_clone(url)
        return super().clone(url, branch)


class SlowListingSource(FakeSourceAccess):
    """Blocks while listing files."""

    def list_files(self, local_path, ignore_patterns=None):
        time.sleep(0.3)
        return super().list_files(local_path, ignore_patterns)


class ExplodingTreeSource(FakeSourceAccess):
    """Raises an unexpected error while building the tree."""

    def directory_tree(self, local_path, max_depth=5, ignore_patterns=None):
        raise RuntimeError("disk on fire")


def drain(queue: asyncio.Queue[ProgressSnapshot]) -> list[ProgressSnapshot]:
    snapshots = []
    while not queue.empty():
        snapshots.append(queue.get_nowait())
    return snapshots


def status_path(snapshots: list[ProgressSnapshot], job_id: str) -> list[JobStatus]:
    """Return the distinct statuses a job went through, in order."""
    path: list[JobStatus] = []
    for snapshot in snapshots:
        if snapshot.job_id == job_id and (not path or path[-1] != snapshot.status):
            path.append(snapshot.status)
    return path


def run_one(
    coordinator: PipelineCoordinator, request: AnalysisRequest
) -> tuple[AnalysisJob, list[ProgressSnapshot]]:
    """Run a job to completion and return it with every published snapshot."""

    async def scenario() -> tuple[AnalysisJob, list[ProgressSnapshot]]:
        queue = coordinator.subscribe()
        job = await coordinator.run_job(request)
        coordinator.unsubscribe(queue)
        return job, drain(queue)

    return asyncio.run(scenario())


def backend_plan_size(request: AnalysisRequest) -> int:
    catalogue = TaskCatalogue()
    return sum(
        len(catalogue.get_plan(ProjectType.BACKEND, category))
        for category in request.requested_categories()
    )


# =============================================================================
# Successful runs
# =============================================================================


class TestSuccessfulJob:
    """Tests for jobs that run every stage."""

    def test_completes_with_report(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        """Test a job walks every stage and ends completed at 100%."""
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)
        request = AnalysisRequest(repo_url=URL)

        job, snapshots = run_one(coordinator, request)

        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.error_message is None
        assert job.commit_hash == FAKE_COMMIT
        assert status_path(snapshots, job.job_id) == [
            JobStatus.QUEUED,
            JobStatus.CLONING,
            JobStatus.DETECTING,
            JobStatus.ANALYZING,
            JobStatus.SYNTHESIZING,
            JobStatus.GENERATING,
            JobStatus.COMPLETED,
        ]
        progress = [s.progress for s in snapshots]
        assert progress == sorted(progress)
        assert snapshots[-1].progress == 100

        result = job.result
        assert result is not None
        assert result.project_type == ProjectType.BACKEND
        assert "express" in result.tech_stack
        assert result.report.startswith("# acme/api Architecture Report")
        assert result.repository["owner"] == "acme"
        assert result.metadata.file_count == 6

    def test_usage_accounting(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        """Test usage totals match the reasoning calls made."""
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)
        request = AnalysisRequest(repo_url=URL)

        job, _ = run_one(coordinator, request)

        assert len(reasoning.requests) == backend_plan_size(request)
        assert job.usage.tasks_run == len(reasoning.requests)
        assert job.usage.tokens_used == 100 * len(reasoning.requests)
        assert job.usage.files_analyzed > 0
        assert job.usage.cache_hit is False
        assert job.result.usage.tasks_run == job.usage.tasks_run

    def test_checkout_released(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)

        run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert fake_source.released == ["/checkouts/1"]

    def test_tasks_run_in_plan_order(
        self, fake_source: FakeSourceAccess, pipeline_config: PipelineConfig
    ) -> None:
        """Test categories run in order and each task sees earlier outputs."""
        reasoning = ScriptedReasoningService({"arch-overview": OVERVIEW})
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL))

        ids = reasoning.task_ids
        assert ids[0] == "arch-overview"
        assert ids.index("arch-overview") < ids.index("arch-components") < ids.index("arch-dependencies")
        assert ids.index("arch-dependencies") < ids.index("security-secrets") < ids.index("test-analysis")

        components_prompt = reasoning.requests[ids.index("arch-components")].prompt
        assert '"pattern": "layered"' in components_prompt
        assert job.result.architecture.pattern == "layered"
        assert [layer.name for layer in job.result.architecture.layers] == ["HTTP", "Data"]

    def test_branch_is_passed_to_clone(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL, branch="dev"))

        assert fake_source.clone_calls == [(URL, "dev")]
        assert job.result.branch == "dev"

    def test_category_selection(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)

        run_one(coordinator, AnalysisRequest(repo_url=URL, categories=[TaskCategory.TESTING]))

        assert reasoning.task_ids == ["test-analysis"]

    def test_security_excluded(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        """Test no security task runs and the result has no security section."""
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL, include_security=False))

        assert all(r.category != TaskCategory.SECURITY for r in reasoning.requests)
        assert job.result.security_findings is None
        assert "## Security" not in job.result.report

    def test_security_findings_collected(
        self, fake_source: FakeSourceAccess, pipeline_config: PipelineConfig
    ) -> None:
        reasoning = ScriptedReasoningService(
            {
                "security-secrets": (
                    '{"findings": [{"title": "Hardcoded DB password", "severity": "critical", '
                    '"cwe": "CWE-798"}]}'
                )
            }
        )
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL))

        [finding] = job.result.security_findings
        assert finding.cwe == "CWE-798"
        assert finding.task_id == "security-secrets"

    def test_tenant_recorded(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)

        async def scenario() -> AnalysisJob:
            return await coordinator.run_job(
                AnalysisRequest(repo_url=URL), TenantContext(user_id="u1", tenant_id="acme")
            )

        job = asyncio.run(scenario())

        assert coordinator.registry.list("acme") == [job]
        assert coordinator.registry.list("other") == []


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    """Tests for failure handling."""

    def test_clone_failure(
        self, reasoning: ScriptedReasoningService, pipeline_config: PipelineConfig
    ) -> None:
        """Test a failed clone fails the job before detection."""
        source = FakeSourceAccess(clone_error=failing_clone())
        coordinator = PipelineCoordinator(source, reasoning, config=pipeline_config)

        job, snapshots = run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert job.status == JobStatus.FAILED
        assert "Failed to clone repository" in job.error_message
        assert status_path(snapshots, job.job_id) == [
            JobStatus.QUEUED,
            JobStatus.CLONING,
            JobStatus.FAILED,
        ]
        assert reasoning.requests == []
        assert source.released == []
        assert job.result is None

    def test_failed_task_does_not_fail_job(
        self, fake_source: FakeSourceAccess, pipeline_config: PipelineConfig
    ) -> None:
        """Test one of five finding tasks failing leaves only the other four's findings."""
        finding_tasks = [
            "backend-api-design",
            "perf-analysis",
            "docs-analysis",
            "test-analysis",
            "maintain-analysis",
        ]
        script: dict[str, str | Exception] = {
            task_id: json.dumps({"findings": [{"title": f"{task_id} finding", "severity": "low"}]})
            for task_id in finding_tasks
        }
        script["perf-analysis"] = reasoning_failure("perf-analysis")
        reasoning = ScriptedReasoningService(script)
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert job.status == JobStatus.COMPLETED
        [failed] = [t for t in job.task_results if not t.success]
        assert failed.task_id == "perf-analysis"
        assert "upstream 500" in failed.error
        assert "perf-analysis" not in job.result.contributing_tasks
        assert sorted(f.title for f in job.result.findings) == sorted(
            f"{task_id} finding" for task_id in finding_tasks if task_id != "perf-analysis"
        )
        assert {f.task_id for f in job.result.findings} == set(finding_tasks) - {"perf-analysis"}

    def test_oddly_shaped_output_does_not_fail_job(
        self, fake_source: FakeSourceAccess, pipeline_config: PipelineConfig
    ) -> None:
        """Test valid JSON with unexpected field types still completes the job."""
        reasoning = ScriptedReasoningService(
            {
                "arch-overview": '{"pattern": "layered", "layers": [{"name": "HTTP", "components": 3}]}',
                "arch-components": '{"components": [{"name": "api", "dependencies": "express"}]}',
            }
        )
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert job.status == JobStatus.COMPLETED
        architecture = job.result.architecture
        assert architecture.pattern == "layered"
        assert architecture.layers[0].components == []
        assert architecture.components[0].dependencies == []
        assert {"arch-overview", "arch-components"} <= set(job.result.contributing_tasks)

    def test_failed_dependency_renders_marker(
        self, fake_source: FakeSourceAccess, pipeline_config: PipelineConfig
    ) -> None:
        """Test dependents of a failed task still run, without its output."""
        reasoning = ScriptedReasoningService({"arch-overview": reasoning_failure("arch-overview")})
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert job.status == JobStatus.COMPLETED
        prompt = reasoning.requests[reasoning.task_ids.index("arch-components")].prompt
        assert "[No output available from arch-overview]" in prompt

    def test_stage_timeout(
        self, reasoning: ScriptedReasoningService
    ) -> None:
        """Test a stage exceeding its timeout fails the job and still releases the checkout."""
        source = SlowListingSource()
        config = PipelineConfig(task_timeout=5.0, stage_timeout=0.05)
        coordinator = PipelineCoordinator(source, reasoning, config=config)

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert job.status == JobStatus.FAILED
        assert job.error_message == "Stage 'detecting' timed out"
        assert source.released == ["/checkouts/1"]

    def test_unexpected_error(
        self, reasoning: ScriptedReasoningService, pipeline_config: PipelineConfig
    ) -> None:
        """Test an error outside the known hierarchy fails the job with its message."""
        source = ExplodingTreeSource()
        coordinator = PipelineCoordinator(source, reasoning, config=pipeline_config)

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert job.status == JobStatus.FAILED
        assert job.error_message == "Unexpected error: disk on fire"
        assert source.released == ["/checkouts/1"]

    def test_report_generation_failure(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        """Test a failing report generator is reported as a generation failure."""
        def broken_report(result: AnalysisResult) -> str:
            raise ValueError("template exploded")

        coordinator = PipelineCoordinator(
            fake_source, reasoning, config=pipeline_config, report_generator=broken_report
        )

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert job.status == JobStatus.FAILED
        assert job.error_message == "Report generation failed: template exploded"


# =============================================================================
# Cancellation
# =============================================================================


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_cancel_before_start(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        """Test a job cancelled while queued never clones."""
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)

        async def scenario() -> AnalysisJob:
            job = coordinator.start_job(AnalysisRequest(repo_url=URL))
            assert coordinator.cancel_job(job.job_id) is True
            await coordinator.wait_for(job.job_id)
            return job

        job = asyncio.run(scenario())

        assert job.status == JobStatus.FAILED
        assert job.error_message == "Job cancelled"
        assert fake_source.clone_calls == []

    def test_cancel_between_tasks(
        self, fake_source: FakeSourceAccess, pipeline_config: PipelineConfig
    ) -> None:
        """Test a running job stops at the next task boundary."""
        reasoning = ScriptedReasoningService(delay=0.02)
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)
        request = AnalysisRequest(repo_url=URL)

        async def scenario() -> AnalysisJob:
            job = coordinator.start_job(request)
            while len(reasoning.requests) < 2 and not job.is_terminal:
                await asyncio.sleep(0.005)
            coordinator.cancel_job(job.job_id)
            await coordinator.wait_for(job.job_id, timeout=5)
            return job

        job = asyncio.run(scenario())

        assert job.status == JobStatus.FAILED
        assert job.error_message == "Job cancelled"
        assert len(reasoning.requests) < backend_plan_size(request)
        assert fake_source.released == ["/checkouts/1"]
        assert coordinator.cancel_job(job.job_id) is False


# =============================================================================
# Cache and notifications
# =============================================================================


class TestCaching:
    """Tests for result caching."""

    def test_cache_hit_skips_analysis(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
        sample_result: AnalysisResult,
    ) -> None:
        """Test a cached result completes the job straight from queued."""
        cache = InMemoryResultCache()
        asyncio.run(cache.put(URL, None, "cafebabe", sample_result))
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config, cache=cache)

        job, snapshots = run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert job.status == JobStatus.COMPLETED
        assert job.usage.cache_hit is True
        assert job.commit_hash == "cafebabe"
        assert job.result is not None
        assert job.result.findings == sample_result.findings
        assert job.current_step == "Served from cache"
        assert status_path(snapshots, job.job_id) == [JobStatus.QUEUED, JobStatus.COMPLETED]
        assert fake_source.clone_calls == []
        assert reasoning.requests == []

    def test_cache_hit_reports_its_own_usage(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
        sample_result: AnalysisResult,
    ) -> None:
        """Test the served result carries the hit's usage and the cached entry is untouched."""
        cache = InMemoryResultCache()
        asyncio.run(cache.put(URL, None, "cafebabe", sample_result))
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config, cache=cache)

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert job.result is not sample_result
        assert job.result.usage.cache_hit is True
        assert job.result.to_dict()["usage"]["cache_hit"] is True
        assert job.result.usage == job.usage
        assert sample_result.usage.cache_hit is False

    def test_result_is_stored_then_served(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        cache = InMemoryResultCache()
        coordinator = PipelineCoordinator(
            fake_source, reasoning, config=pipeline_config, cache=cache, cache_ttl_seconds=60
        )

        async def scenario() -> tuple[AnalysisJob, AnalysisJob, CacheEntry | None]:
            first = await coordinator.run_job(AnalysisRequest(repo_url=URL))
            second = await coordinator.run_job(AnalysisRequest(repo_url=URL))
            return first, second, await cache.get_by_commit(URL, FAKE_COMMIT)

        first, second, entry = asyncio.run(scenario())

        assert first.usage.cache_hit is False
        assert second.usage.cache_hit is True
        assert entry is not None
        assert len(fake_source.clone_calls) == 1

    def test_force_refresh_bypasses_cache(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
        sample_result: AnalysisResult,
    ) -> None:
        cache = InMemoryResultCache()
        asyncio.run(cache.put(URL, None, "cafebabe", sample_result))
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config, cache=cache)

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL, force_refresh=True))

        assert job.usage.cache_hit is False
        assert len(fake_source.clone_calls) == 1

    def test_cache_errors_are_ignored(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test cache failures are logged and the job still completes."""
        coordinator = PipelineCoordinator(
            fake_source, reasoning, config=pipeline_config, cache=BrokenCache()
        )

        with caplog.at_level(logging.WARNING, logger="repolens"):
            job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert job.status == JobStatus.COMPLETED
        assert "Cache lookup failed" in caplog.text
        assert "Could not cache result" in caplog.text


class TestNotifications:
    """Tests for completion callbacks."""

    def test_completed_event_delivered(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        notifier = RecordingNotifier()
        coordinator = PipelineCoordinator(
            fake_source, reasoning, config=pipeline_config, notifier=notifier
        )

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL, callback_url=CALLBACK))

        [(url, event)] = notifier.events
        assert url == CALLBACK
        assert event.event_type == EventType.JOB_COMPLETED
        assert event.job_id == job.job_id
        assert event.payload["project_type"] == "backend"

    def test_failed_event_delivered(
        self, reasoning: ScriptedReasoningService, pipeline_config: PipelineConfig
    ) -> None:
        notifier = RecordingNotifier()
        coordinator = PipelineCoordinator(
            FakeSourceAccess(clone_error=failing_clone()),
            reasoning,
            config=pipeline_config,
            notifier=notifier,
        )

        run_one(coordinator, AnalysisRequest(repo_url=URL, callback_url=CALLBACK))

        [(_, event)] = notifier.events
        assert event.event_type == EventType.JOB_FAILED
        assert "Failed to clone" in event.payload["error"]

    def test_no_callback_no_event(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        notifier = RecordingNotifier()
        coordinator = PipelineCoordinator(
            fake_source, reasoning, config=pipeline_config, notifier=notifier
        )

        run_one(coordinator, AnalysisRequest(repo_url=URL))

        assert notifier.events == []

    def test_delivery_failure_keeps_outcome(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        coordinator = PipelineCoordinator(
            fake_source, reasoning, config=pipeline_config, notifier=RecordingNotifier(fail=True)
        )

        job, _ = run_one(coordinator, AnalysisRequest(repo_url=URL, callback_url=CALLBACK))

        assert job.status == JobStatus.COMPLETED


# =============================================================================
# Batches
# =============================================================================


class TestBatch:
    """Tests for batch submission."""

    def test_batch_mixed_outcomes(
        self, reasoning: ScriptedReasoningService
    ) -> None:
        """Test each job finishes on its own and order is preserved."""
        source = SelectiveSource()
        config = PipelineConfig(task_timeout=5.0, stage_timeout=5.0, batch_concurrency=2)
        coordinator = PipelineCoordinator(source, reasoning, config=config)
        urls = [URL, "https://github.com/acme/broken", "https://gitlab.com/acme/web"]

        batch = asyncio.run(coordinator.run_batch([AnalysisRequest(repo_url=u) for u in urls]))

        assert [job.repo_url for job in batch.jobs] == urls
        assert [job.status for job in batch.jobs] == [
            JobStatus.COMPLETED,
            JobStatus.FAILED,
            JobStatus.COMPLETED,
        ]
        assert batch.to_dict()["failed"] == 1

    def test_batch_too_large(
        self, fake_source: FakeSourceAccess, reasoning: ScriptedReasoningService
    ) -> None:
        coordinator = PipelineCoordinator(
            fake_source, reasoning, config=PipelineConfig(max_batch_size=2)
        )
        requests = [AnalysisRequest(repo_url=URL) for _ in range(3)]

        with pytest.raises(ValueError, match="max_batch_size"):
            asyncio.run(coordinator.run_batch(requests))

    def test_batch_validates_every_url_first(
        self,
        fake_source: FakeSourceAccess,
        reasoning: ScriptedReasoningService,
        pipeline_config: PipelineConfig,
    ) -> None:
        """Test one invalid URL rejects the batch before any job starts."""
        coordinator = PipelineCoordinator(fake_source, reasoning, config=pipeline_config)
        requests = [AnalysisRequest(repo_url=URL), AnalysisRequest(repo_url="ftp://nowhere")]

        with pytest.raises(InvalidRepositoryError):
            asyncio.run(coordinator.run_batch(requests))

        assert len(coordinator.registry) == 0
        assert fake_source.clone_calls == []
