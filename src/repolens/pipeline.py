"""Analysis pipeline coordinator.

Drives each job through its stages:

    queued -> cloning -> detecting -> analyzing -> synthesizing -> generating -> completed

with ``failed`` reachable from any non-terminal stage and a cache hit moving
``queued -> completed`` directly. Each job runs as its own asyncio task;
blocking source access runs in worker threads. Within a job, tasks execute
strictly in plan order so later tasks can read earlier outputs.

Caching and notifications are best-effort: their failures are logged and
never change a job's outcome. The local checkout is released on every exit
path.
"""

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import replace
from pathlib import PurePosixPath

from repolens.cache import ResultCache, create_cache
from repolens.classifier import RepositoryClassifier
from repolens.config import PipelineConfig, RepoLensConfig
from repolens.errors import (
    CacheError,
    JobCancelledError,
    NotificationError,
    ReasoningError,
    RegistryFullError,
    RepoLensError,
    ReportGenerationError,
    SynthesisError,
)
from repolens.llm import (
    ReasoningRequest,
    ReasoningService,
    create_client,
    get_system_prompt,
    parse_structured_output,
)
from repolens.models.analysis import AnalysisResult
from repolens.models.classification import ClassificationResult
from repolens.models.job import (
    AnalysisJob,
    AnalysisRequest,
    BatchResult,
    JobEvent,
    JobStatus,
    ProgressSnapshot,
    TenantContext,
)
from repolens.models.repository import CloneResult, FileInfo, RepositoryRef, parse_repo_url
from repolens.models.tasks import (
    ExecutionContext,
    OutputShape,
    TaskDefinition,
    TaskResult,
)
from repolens.notifications import Notifier, WebhookNotifier
from repolens.source import GitSourceAccess, SourceAccess
from repolens.synthesis import ResultSynthesizer
from repolens.tasks import ExecutionOptions, TaskCatalogue, execution_options, render_task
from repolens.tasks.renderer import (
    API_SPEC_NAMES,
    LOCK_FILE_NAMES,
    PACKAGE_FILE_NAMES,
    TEST_CONFIG_NAMES,
)
from repolens.templates import ReportRenderer
from repolens.utils.logging import JobLogAdapter

logger = logging.getLogger(__name__)

ReportGenerator = Callable[[AnalysisResult], str]

# Progress milestones (percent)
PROGRESS_CLONING = 10
PROGRESS_DETECTING = 20
PROGRESS_ANALYZING_START = 30
PROGRESS_ANALYZING_END = 80
PROGRESS_SYNTHESIZING = 80
PROGRESS_GENERATING = 90

# Root-level files always read into the context, whatever the file budget
CONFIG_FILE_NAMES: tuple[str, ...] = (
    "tsconfig.json",
    "webpack.config.js",
    "vite.config.ts",
    "next.config.js",
    ".eslintrc.json",
    "docker-compose.yml",
    "Dockerfile",
    "README.md",
    "readme.md",
    *sorted(PACKAGE_FILE_NAMES),
    *sorted(LOCK_FILE_NAMES),
    *sorted(TEST_CONFIG_NAMES),
    *API_SPEC_NAMES,
)

PRIORITY_EXTENSIONS = frozenset({".ts", ".tsx", ".js", ".jsx", ".py", ".go", ".rs", ".java"})
PRIORITY_NAMES = ("index", "main", "app", "server", "api", "routes", "controller")


# =============================================================================
# File selection
# =============================================================================


def score_file(file: FileInfo) -> int:
    """Score a file's value for inspection.

    Code extensions score highest, then entry-point-like basenames, then
    root-level files; every directory level costs a point.
    """
    score = 0
    if file.extension in PRIORITY_EXTENSIONS:
        score += 10
    stem = PurePosixPath(file.path).stem.lower()
    if any(name in stem for name in PRIORITY_NAMES):
        score += 5
    if "/" not in file.path:
        score += 3
    score -= file.path.count("/") + 1
    return score


def select_files_for_analysis(
    files: Iterable[FileInfo],
    limit: int,
    max_file_bytes: int = 500_000,
) -> list[str]:
    """Pick the files whose contents are sent to analysis tasks.

    Args:
        files: All files in the checkout
        limit: Maximum number of files
        max_file_bytes: Files at or above this size are skipped

    Returns:
        Selected relative paths, best first (ties broken by path)
    """
    candidates = [f for f in files if f.size < max_file_bytes]
    candidates.sort(key=lambda f: (-score_file(f), f.path))
    return [f.path for f in candidates[:limit]]


# =============================================================================
# Registry and progress broadcasting
# =============================================================================


class JobRegistry:
    """Bounded, thread-safe map of jobs by id.

    When full, the oldest finished job is evicted; if every slot holds an
    active job, adding raises RegistryFullError.
    """

    def __init__(self, max_size: int = 1000) -> None:
        self.max_size = max_size
        self._jobs: OrderedDict[str, AnalysisJob] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def add(self, job: AnalysisJob) -> None:
        """Register a job.

        Raises:
            RegistryFullError: If no finished job can be evicted
        """
        with self._lock:
            if len(self._jobs) >= self.max_size:
                evicted = next((jid for jid, j in self._jobs.items() if j.is_terminal), None)
                if evicted is None:
                    raise RegistryFullError(
                        f"Job registry is full ({self.max_size} active jobs)"
                    )
                del self._jobs[evicted]
                logger.debug("Evicted finished job %s from registry", evicted)
            self._jobs[job.job_id] = job

    def get(self, job_id: str) -> AnalysisJob | None:
        """Return a job by id."""
        with self._lock:
            return self._jobs.get(job_id)

    def remove(self, job_id: str) -> AnalysisJob | None:
        """Remove and return a job."""
        with self._lock:
            return self._jobs.pop(job_id, None)

    def list(self, tenant_id: str | None = None) -> list[AnalysisJob]:
        """Return jobs oldest first, optionally for one tenant."""
        with self._lock:
            jobs = list(self._jobs.values())
        if tenant_id is None:
            return jobs
        return [job for job in jobs if job.tenant.tenant_id == tenant_id]


class ProgressBroadcaster:
    """Fans progress snapshots out to subscriber queues.

    Each subscriber gets a bounded queue; when it is full the oldest
    snapshot is dropped to make room.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._queues: list[asyncio.Queue[ProgressSnapshot]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def subscribe(self) -> asyncio.Queue[ProgressSnapshot]:
        """Open a subscription."""
        queue: asyncio.Queue[ProgressSnapshot] = asyncio.Queue(maxsize=self.queue_size)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ProgressSnapshot]) -> None:
        """Close a subscription."""
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, snapshot: ProgressSnapshot) -> None:
        """Deliver a snapshot to every subscriber."""
        for queue in self._queues:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(snapshot)


# =============================================================================
# Coordinator
# =============================================================================


class PipelineCoordinator:
    """Runs analysis jobs.

    Usage:
        coordinator = create_coordinator(config)
        job = coordinator.start_job(AnalysisRequest(repo_url="https://github.com/o/r"))
        job = await coordinator.wait_for(job.job_id)
    """

    def __init__(
        self,
        source: SourceAccess,
        reasoning: ReasoningService,
        config: PipelineConfig | None = None,
        cache: ResultCache | None = None,
        notifier: Notifier | None = None,
        classifier: RepositoryClassifier | None = None,
        catalogue: TaskCatalogue | None = None,
        synthesizer: ResultSynthesizer | None = None,
        report_generator: ReportGenerator | None = None,
        tree_depth: int = 5,
        cache_ttl_seconds: int | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            source: Source access layer
            reasoning: Reasoning service for analysis tasks
            config: Pipeline settings (defaults when None)
            cache: Result cache (no caching when None)
            notifier: Callback notifier (no notifications when None)
            classifier: Repository classifier
            catalogue: Task catalogue
            synthesizer: Result synthesizer
            report_generator: Turns a result into report text (markdown renderer when None)
            tree_depth: Directory tree depth for detection
            cache_ttl_seconds: Entry lifetime passed to the cache (backend default when None)
        """
        self.source = source
        self.reasoning = reasoning
        self.config = config or PipelineConfig()
        self.cache = cache
        self.notifier = notifier
        self.classifier = classifier or RepositoryClassifier()
        self.catalogue = catalogue or TaskCatalogue()
        self.synthesizer = synthesizer or ResultSynthesizer()
        self.report_generator = report_generator or ReportRenderer()
        self.tree_depth = tree_depth
        self.cache_ttl_seconds = cache_ttl_seconds

        self.registry = JobRegistry(self.config.registry_size)
        self.broadcaster = ProgressBroadcaster(self.config.subscriber_queue_size)
        self._tasks: dict[str, asyncio.Task[None]] = {}

    # =========================================================================
    # Public operations
    # =========================================================================

    def start_job(
        self, request: AnalysisRequest, tenant: TenantContext | None = None
    ) -> AnalysisJob:
        """Register a job and schedule its pipeline; returns while still queued.

        Must be called from a running event loop.

        Args:
            request: What to analyze
            tenant: Owning user and tenant

        Returns:
            The queued job

        Raises:
            InvalidRepositoryError: If the repository URL cannot be parsed
            RegistryFullError: If the registry has no room
        """
        ref = parse_repo_url(request.repo_url)
        job = AnalysisJob(
            request=request,
            tenant=tenant or TenantContext(),
            repo_name=ref.full_name,
            branch=request.branch or ref.branch,
        )
        self.registry.add(job)
        self._publish(job)

        task = asyncio.create_task(self._run(job, ref), name=f"repolens-job-{job.job_id}")
        self._tasks[job.job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.job_id, None))

        logger.info("Queued job %s for %s", job.job_id, job.repo_name)
        return job

    def get_job(self, job_id: str) -> AnalysisJob | None:
        """Return a job by id, or None if unknown or evicted."""
        return self.registry.get(job_id)

    async def wait_for(self, job_id: str, timeout: float | None = None) -> AnalysisJob | None:
        """Wait until a job finishes.

        Raises:
            TimeoutError: If the job is still running after ``timeout`` seconds
        """
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        return self.registry.get(job_id)

    async def run_job(
        self, request: AnalysisRequest, tenant: TenantContext | None = None
    ) -> AnalysisJob:
        """Start a job and wait for it to finish."""
        job = self.start_job(request, tenant)
        await self.wait_for(job.job_id)
        return job

    def cancel_job(self, job_id: str) -> bool:
        """Request cooperative cancellation.

        The job stops at its next checkpoint (between stages or tasks) and
        fails with "Job cancelled".

        Returns:
            False if the job is unknown or already finished
        """
        job = self.registry.get(job_id)
        if job is None:
            return False
        requested = job.request_cancel()
        if requested:
            logger.info("Cancellation requested for job %s", job_id)
        return requested

    async def run_batch(
        self, requests: list[AnalysisRequest], tenant: TenantContext | None = None
    ) -> BatchResult:
        """Run several jobs, at most ``batch_concurrency`` at a time.

        Every URL is validated before any job starts.

        Raises:
            ValueError: If the batch exceeds ``max_batch_size``
            InvalidRepositoryError: If any repository URL cannot be parsed
        """
        if len(requests) > self.config.max_batch_size:
            raise ValueError(
                f"Batch of {len(requests)} exceeds max_batch_size ({self.config.max_batch_size})"
            )
        for request in requests:
            parse_repo_url(request.repo_url)

        jobs: list[AnalysisJob] = []
        window = self.config.batch_concurrency
        for start in range(0, len(requests), window):
            started = [self.start_job(request, tenant) for request in requests[start : start + window]]
            await asyncio.gather(*(self.wait_for(job.job_id) for job in started))
            jobs.extend(started)

        batch = BatchResult(jobs)
        logger.info(
            "Batch finished: %d completed, %d failed", len(batch.completed), len(batch.failed)
        )
        return batch

    def subscribe(self) -> asyncio.Queue[ProgressSnapshot]:
        """Subscribe to progress snapshots of every job."""
        return self.broadcaster.subscribe()

    def unsubscribe(self, queue: asyncio.Queue[ProgressSnapshot]) -> None:
        """Stop receiving progress snapshots."""
        self.broadcaster.unsubscribe(queue)

    # =========================================================================
    # Job lifecycle
    # =========================================================================

    def _publish(self, job: AnalysisJob) -> None:
        self.broadcaster.publish(job.snapshot())

    def _advance(self, job: AnalysisJob, status: JobStatus, progress: int, step: str) -> None:
        job.transition(status, step)
        job.update_progress(progress)
        self._publish(job)

    @staticmethod
    def _checkpoint(job: AnalysisJob) -> None:
        if job.cancel_requested:
            raise JobCancelledError()

    async def _run(self, job: AnalysisJob, ref: RepositoryRef) -> None:
        log = JobLogAdapter(logger, job.job_id)
        started = time.monotonic()
        checkouts: list[str] = []

        try:
            await self._execute(job, ref, checkouts, started, log)
        except RepoLensError as e:
            self._fail(job, str(e), started, log)
        except TimeoutError:
            self._fail(job, f"Stage '{job.status.value}' timed out", started, log)
        except Exception as e:
            log.exception("Unexpected error in stage %s", job.status.value)
            self._fail(job, f"Unexpected error: {e}", started, log)
        finally:
            for path in checkouts:
                await asyncio.to_thread(self.source.release, path)

        if job.status == JobStatus.COMPLETED and not job.usage.cache_hit and job.result:
            await self._store(job, job.result, log)
        await self._notify(job, log)

    def _fail(self, job: AnalysisJob, message: str, started: float, log: JobLogAdapter) -> None:
        if job.is_terminal:
            return
        job.usage.elapsed_ms = int((time.monotonic() - started) * 1000)
        job.fail(message)
        self._publish(job)
        log.error("Job failed: %s", message)

    async def _execute(
        self,
        job: AnalysisJob,
        ref: RepositoryRef,
        checkouts: list[str],
        started: float,
        log: JobLogAdapter,
    ) -> None:
        request = job.request

        if not request.force_refresh and await self._serve_from_cache(job, started, log):
            return

        # Cloning
        self._checkpoint(job)
        self._advance(job, JobStatus.CLONING, PROGRESS_CLONING, "Cloning repository")
        clone: CloneResult = await asyncio.to_thread(self.source.clone, job.repo_url, request.branch)
        checkouts.append(clone.local_path)
        job.commit_hash = clone.commit_hash
        job.branch = clone.branch
        log.info("Cloned %s at %s", job.repo_name, clone.commit_hash[:12])

        # Detecting
        self._checkpoint(job)
        self._advance(job, JobStatus.DETECTING, PROGRESS_DETECTING, "Analyzing project structure")
        files, tree, metadata, classification = await asyncio.wait_for(
            asyncio.to_thread(self._detect, clone.local_path), self.config.stage_timeout
        )
        job.usage.repository_bytes = metadata.size_bytes
        log.info(
            "Detected %s (confidence %.2f): %s",
            classification.primary_type.value,
            classification.confidence,
            ", ".join(classification.sorted_tech_stack()) or "no known technologies",
        )

        # Analyzing
        self._checkpoint(job)
        self._advance(job, JobStatus.ANALYZING, PROGRESS_ANALYZING_START, "Running analysis")
        context = await asyncio.wait_for(
            asyncio.to_thread(self._build_context, job, clone, files, tree, classification),
            self.config.stage_timeout,
        )
        job.usage.files_analyzed = len(context.file_contents)
        await self._run_tasks(job, context, classification, log)

        # Synthesizing
        self._checkpoint(job)
        self._advance(job, JobStatus.SYNTHESIZING, PROGRESS_SYNTHESIZING, "Synthesizing findings")
        try:
            result = self.synthesizer.synthesize(
                repo_url=job.repo_url,
                branch=clone.branch,
                commit_hash=clone.commit_hash,
                classification=classification,
                task_results=job.task_results,
                include_security=request.include_security,
            )
        except SynthesisError:
            raise
        except Exception as e:
            raise SynthesisError(f"Synthesis failed: {e}") from e

        # Generating
        self._checkpoint(job)
        self._advance(job, JobStatus.GENERATING, PROGRESS_GENERATING, "Generating report")
        result.repository = ref.to_dict()
        result.metadata = metadata
        try:
            result.report = self.report_generator(result)
        except ReportGenerationError:
            raise
        except Exception as e:
            raise ReportGenerationError(f"Report generation failed: {e}") from e

        job.usage.elapsed_ms = int((time.monotonic() - started) * 1000)
        result.usage = replace(job.usage)
        job.complete(result)
        self._publish(job)
        log.info(
            "Job completed in %dms: %d tasks, %d tokens",
            job.usage.elapsed_ms,
            job.usage.tasks_run,
            job.usage.tokens_used,
        )

    def _detect(self, local_path: str):
        files = self.source.list_files(local_path)
        tree = self.source.directory_tree(local_path, self.tree_depth)
        metadata = self.source.metadata(local_path)
        classification = self.classifier.classify(
            files, tree, lambda path: self.source.read_file(local_path, path)
        )
        return files, tree, metadata, classification

    def _build_context(
        self,
        job: AnalysisJob,
        clone: CloneResult,
        files: list[FileInfo],
        tree,
        classification: ClassificationResult,
    ) -> ExecutionContext:
        limit = self.config.file_limit(job.request.depth)
        selected = select_files_for_analysis(files, limit, self.config.max_analysis_file_bytes)
        root_files = {f.path for f in files if "/" not in f.path}
        return ExecutionContext(
            repo_url=job.repo_url,
            repo_name=job.repo_name,
            branch=clone.branch,
            commit_hash=clone.commit_hash,
            repo_type=classification.primary_type,
            tech_stack=classification.sorted_tech_stack(),
            directory_structure=tree.render() if tree is not None else "",
            file_list=[f.path for f in files],
            file_contents=self.source.read_files(clone.local_path, selected),
            config_files=self.source.read_files(
                clone.local_path, [name for name in CONFIG_FILE_NAMES if name in root_files]
            ),
        )

    # =========================================================================
    # Tasks
    # =========================================================================

    async def _run_tasks(
        self,
        job: AnalysisJob,
        context: ExecutionContext,
        classification: ClassificationResult,
        log: JobLogAdapter,
    ) -> None:
        project_type = classification.primary_type
        categories = [
            category
            for category in job.request.requested_categories()
            if self.catalogue.get_tasks(project_type, category)
        ]
        if not categories:
            return

        span = (PROGRESS_ANALYZING_END - PROGRESS_ANALYZING_START) / len(categories)
        for index, category in enumerate(categories):
            base = PROGRESS_ANALYZING_START + index * span
            job.update_progress(int(base), f"Analyzing {category.value}")
            self._publish(job)

            plan = self.catalogue.get_plan(project_type, category)
            options = execution_options(category)
            for position, task in enumerate(plan, start=1):
                self._checkpoint(job)
                task_result = await self._run_task(task, context, options, log)
                job.record_task(task_result)
                if task_result.success:
                    context.record_output(task.id, task_result.raw_output)
                job.update_progress(int(base + span * position / len(plan)))
                self._publish(job)

    async def _run_task(
        self,
        task: TaskDefinition,
        context: ExecutionContext,
        options: ExecutionOptions,
        log: JobLogAdapter,
    ) -> TaskResult:
        rendered = render_task(task, context)
        timeout = max(options.timeout, self.config.task_timeout)
        request = ReasoningRequest(
            task_id=task.id,
            category=task.category,
            prompt=rendered.content,
            system_prompt=get_system_prompt(task.category, task.output_shape),
            max_output_tokens=options.max_output_tokens,
            timeout=timeout,
            temperature=options.temperature,
            output_shape=task.output_shape,
        )

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(self.reasoning.complete(request), timeout)
        except (ReasoningError, TimeoutError) as e:
            message = str(e) or f"Task {task.id} timed out after {timeout:.0f}s"
            log.warning("Task %s failed: %s", task.id, message)
            return TaskResult(
                task_id=task.id,
                category=task.category,
                success=False,
                duration_ms=int((time.monotonic() - started) * 1000),
                error=message,
            )

        output = response.output
        if task.output_shape == OutputShape.STRUCTURED:
            parsed = parse_structured_output(response.output)
            if parsed is not None:
                output = parsed
            else:
                log.debug("Task %s returned unstructured output", task.id)

        duration_ms = int((time.monotonic() - started) * 1000)
        log.debug("Task %s succeeded (%d tokens, %dms)", task.id, response.tokens_used, duration_ms)
        return TaskResult(
            task_id=task.id,
            category=task.category,
            success=True,
            output=output,
            raw_output=response.output,
            tokens_used=response.tokens_used,
            duration_ms=duration_ms,
        )

    # =========================================================================
    # Best-effort collaborators
    # =========================================================================

    async def _serve_from_cache(self, job: AnalysisJob, started: float, log: JobLogAdapter) -> bool:
        if self.cache is None:
            return False
        try:
            entry = await asyncio.wait_for(
                self.cache.get(job.repo_url, job.request.branch), self.config.stage_timeout
            )
        except (CacheError, TimeoutError) as e:
            log.warning("Cache lookup failed, analyzing anyway: %s", e)
            return False
        if entry is None:
            return False

        job.commit_hash = entry.commit_hash
        job.branch = entry.result.branch or job.branch
        job.usage.cache_hit = True
        job.usage.elapsed_ms = int((time.monotonic() - started) * 1000)
        # The cached entry keeps the usage of the run that produced it
        job.complete(replace(entry.result, usage=replace(job.usage)), "Served from cache")
        self._publish(job)
        log.info("Served %s from cache (commit %s)", job.repo_name, entry.commit_hash[:12])
        return True

    async def _store(self, job: AnalysisJob, result: AnalysisResult, log: JobLogAdapter) -> None:
        if self.cache is None or not job.commit_hash:
            return
        try:
            await asyncio.wait_for(
                self.cache.put(
                    job.repo_url,
                    job.request.branch,
                    job.commit_hash,
                    result,
                    self.cache_ttl_seconds,
                ),
                self.config.stage_timeout,
            )
        except (CacheError, TimeoutError) as e:
            log.warning("Could not cache result: %s", e)

    async def _notify(self, job: AnalysisJob, log: JobLogAdapter) -> None:
        callback_url = job.request.callback_url
        if self.notifier is None or not callback_url:
            return
        event = JobEvent.for_job(job)
        try:
            await asyncio.wait_for(
                self.notifier.notify(callback_url, event), self.config.stage_timeout
            )
        except (NotificationError, TimeoutError) as e:
            log.warning("Notification failed: %s", e)


def create_coordinator(config: RepoLensConfig) -> PipelineCoordinator:
    """Build a coordinator from configuration.

    Args:
        config: Loaded configuration

    Returns:
        Coordinator using git source access, LiteLLM and the configured cache

    Raises:
        ValueError: If the LLM is disabled in config
    """
    source = GitSourceAccess(
        temp_dir=config.source.temp_dir,
        tokens=config.source.tokens,
        clone_timeout=config.source.clone_timeout,
        max_file_bytes=config.source.max_file_bytes,
        ignore_patterns=config.source.ignore_patterns,
    )
    return PipelineCoordinator(
        source=source,
        reasoning=create_client(config.llm),
        config=config.pipeline,
        cache=create_cache(config.cache),
        notifier=WebhookNotifier(
            timeout=config.notifications.timeout,
            user_agent=config.notifications.user_agent,
        ),
        tree_depth=config.source.tree_depth,
        cache_ttl_seconds=config.cache.ttl_seconds,
    )
