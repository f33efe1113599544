"""Analysis job entities.

- JobStatus: Job state machine states and legal transitions
- AnalysisDepth: Requested analysis depth
- AnalysisRequest / TenantContext: What to analyze, and for whom
- AnalysisJob: One job, owned and mutated by the pipeline coordinator
- ProgressSnapshot: Immutable copy of a job's progress for observers
- JobEvent: Lifecycle event delivered to notification callbacks
- BatchResult: Outcome of a batch submission
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from repolens.errors import JobStateError
from repolens.models.analysis import AnalysisResult, Usage
from repolens.models.tasks import TaskCategory, TaskResult


class JobStatus(Enum):
    """State of an analysis job."""

    QUEUED = "queued"
    CLONING = "cloning"
    DETECTING = "detecting"
    ANALYZING = "analyzing"
    SYNTHESIZING = "synthesizing"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check whether no further transition is possible."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    def can_transition_to(self, target: "JobStatus") -> bool:
        """Check whether moving to ``target`` is a legal transition."""
        if self.is_terminal:
            return False
        if target == JobStatus.FAILED:
            return True
        return target in _FORWARD_TRANSITIONS[self]


# Strictly linear, plus the cache-hit shortcut from queued
_FORWARD_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.CLONING, JobStatus.COMPLETED}),
    JobStatus.CLONING: frozenset({JobStatus.DETECTING}),
    JobStatus.DETECTING: frozenset({JobStatus.ANALYZING}),
    JobStatus.ANALYZING: frozenset({JobStatus.SYNTHESIZING}),
    JobStatus.SYNTHESIZING: frozenset({JobStatus.GENERATING}),
    JobStatus.GENERATING: frozenset({JobStatus.COMPLETED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class AnalysisDepth(Enum):
    """Requested depth; controls how many files are inspected."""

    QUICK = "quick"
    STANDARD = "standard"
    DEEP = "deep"


# Categories run in this order
CATEGORY_ORDER: tuple[TaskCategory, ...] = (
    TaskCategory.ARCHITECTURE,
    TaskCategory.SECURITY,
    TaskCategory.PERFORMANCE,
    TaskCategory.DOCUMENTATION,
    TaskCategory.TESTING,
    TaskCategory.MAINTAINABILITY,
)


@dataclass
class AnalysisRequest:
    """A request to analyze one repository.

    Attributes:
        repo_url: Repository URL
        branch: Branch to analyze (default branch when None)
        depth: Analysis depth
        categories: Categories to run (all when empty)
        include_security: Whether security tasks run
        force_refresh: Skip the cache lookup
        callback_url: Webhook to notify on completion or failure
    """

    repo_url: str
    branch: str | None = None
    depth: AnalysisDepth = AnalysisDepth.STANDARD
    categories: list[TaskCategory] = field(default_factory=list)
    include_security: bool = True
    force_refresh: bool = False
    callback_url: str | None = None

    def requested_categories(self) -> list[TaskCategory]:
        """Return the categories to run, in execution order."""
        wanted = set(self.categories) if self.categories else set(CATEGORY_ORDER)
        if not self.include_security:
            wanted.discard(TaskCategory.SECURITY)
        return [category for category in CATEGORY_ORDER if category in wanted]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "repo_url": self.repo_url,
            "branch": self.branch,
            "depth": self.depth.value,
            "categories": [c.value for c in self.categories],
            "include_security": self.include_security,
            "force_refresh": self.force_refresh,
            "callback_url": self.callback_url,
        }


@dataclass(frozen=True)
class TenantContext:
    """Identity of the caller that owns a job."""

    user_id: str = "local"
    tenant_id: str = "default"


@dataclass
class ProgressSnapshot:
    """Point-in-time copy of a job's progress.

    Attributes:
        job_id: Job id
        status: Status at the time of the snapshot
        progress: Progress percentage (0-100)
        current_step: Human-readable step label
        timestamp: When the snapshot was taken
    """

    job_id: str
    status: JobStatus
    progress: int
    current_step: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "progress": self.progress,
            "current_step": self.current_step,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class AnalysisJob:
    """One analysis job.

    Mutated only through transition(), update_progress() and the record
    helpers. Once the status is terminal every mutation raises JobStateError.
    """

    request: AnalysisRequest
    tenant: TenantContext = field(default_factory=TenantContext)
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    repo_name: str = ""
    branch: str | None = None
    commit_hash: str | None = None
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    current_step: str = "Queued"
    usage: Usage = field(default_factory=Usage)
    result: AnalysisResult | None = None
    error_message: str | None = None
    task_results: list[TaskResult] = field(default_factory=list)
    cancel_requested: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.branch is None:
            self.branch = self.request.branch

    @property
    def repo_url(self) -> str:
        """Return the repository URL."""
        return self.request.repo_url

    @property
    def is_terminal(self) -> bool:
        """Check whether the job has finished."""
        return self.status.is_terminal

    def _ensure_mutable(self) -> None:
        if self.status.is_terminal:
            raise JobStateError(f"Job {self.job_id} is {self.status.value} and cannot change")

    def transition(self, status: JobStatus, step: str | None = None) -> None:
        """Move the job to a new status.

        Args:
            status: Target status
            step: Optional step label

        Raises:
            JobStateError: If the job is terminal or the transition is illegal
        """
        self._ensure_mutable()
        if not self.status.can_transition_to(status):
            raise JobStateError(
                f"Illegal transition {self.status.value} -> {status.value} for job {self.job_id}"
            )
        now = datetime.now(UTC)
        if self.status == JobStatus.QUEUED and self.started_at is None:
            self.started_at = now
        self.status = status
        if step is not None:
            self.current_step = step
        if status.is_terminal:
            self.completed_at = now
            if status == JobStatus.COMPLETED:
                self.progress = 100
        self.updated_at = now

    def update_progress(self, progress: int, step: str | None = None) -> None:
        """Advance progress; it never moves backwards.

        Raises:
            JobStateError: If the job is terminal
        """
        self._ensure_mutable()
        self.progress = max(self.progress, min(100, max(0, int(progress))))
        if step is not None:
            self.current_step = step
        self.updated_at = datetime.now(UTC)

    def record_task(self, task_result: TaskResult) -> None:
        """Record a finished task and fold its usage into the totals."""
        self._ensure_mutable()
        self.task_results.append(task_result)
        self.usage.tasks_run += 1
        self.usage.tokens_used += task_result.tokens_used

    def complete(self, result: AnalysisResult, step: str = "Completed") -> None:
        """Attach the result and move to completed."""
        self._ensure_mutable()
        self.result = result
        self.transition(JobStatus.COMPLETED, step)

    def fail(self, message: str) -> None:
        """Record an error message and move to failed."""
        self._ensure_mutable()
        self.error_message = message
        self.transition(JobStatus.FAILED, "Failed")

    def request_cancel(self) -> bool:
        """Ask the coordinator to stop at the next checkpoint.

        Returns:
            False if the job had already finished
        """
        if self.status.is_terminal:
            return False
        self.cancel_requested = True
        return True

    def snapshot(self) -> ProgressSnapshot:
        """Return an immutable copy of the current progress."""
        return ProgressSnapshot(
            job_id=self.job_id,
            status=self.status,
            progress=self.progress,
            current_step=self.current_step,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "user_id": self.tenant.user_id,
            "tenant_id": self.tenant.tenant_id,
            "repo_url": self.repo_url,
            "repo_name": self.repo_name,
            "branch": self.branch,
            "commit_hash": self.commit_hash,
            "request": self.request.to_dict(),
            "status": self.status.value,
            "progress": self.progress,
            "current_step": self.current_step,
            "usage": self.usage.to_dict(),
            "result": self.result.to_dict() if self.result else None,
            "error_message": self.error_message,
            "task_results": [t.to_dict() for t in self.task_results],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class EventType(Enum):
    """Notification event types."""

    JOB_COMPLETED = "job.completed"
    JOB_FAILED = "job.failed"


@dataclass
class JobEvent:
    """Lifecycle event delivered to a notification callback.

    Attributes:
        event_type: What happened
        job_id: Job the event is about
        payload: Event body
        timestamp: When the event was created
    """

    event_type: EventType
    job_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def for_job(cls, job: AnalysisJob) -> "JobEvent":
        """Build the completion or failure event for a finished job."""
        if job.status == JobStatus.COMPLETED:
            payload: dict[str, Any] = {
                "repo_url": job.repo_url,
                "branch": job.branch,
                "commit_hash": job.commit_hash,
                "status": job.status.value,
                "usage": job.usage.to_dict(),
            }
            if job.result is not None:
                payload["project_type"] = job.result.project_type.value
                payload["finding_count"] = len(job.result.all_findings())
            return cls(EventType.JOB_COMPLETED, job.job_id, payload)
        return cls(
            EventType.JOB_FAILED,
            job.job_id,
            {
                "repo_url": job.repo_url,
                "branch": job.branch,
                "status": job.status.value,
                "error": job.error_message,
            },
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event": self.event_type.value,
            "job_id": self.job_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.payload,
        }


@dataclass
class BatchResult:
    """Outcome of a batch submission.

    Attributes:
        jobs: Finished jobs, in request order
    """

    jobs: list[AnalysisJob] = field(default_factory=list)

    @property
    def completed(self) -> list[AnalysisJob]:
        """Return jobs that completed."""
        return [job for job in self.jobs if job.status == JobStatus.COMPLETED]

    @property
    def failed(self) -> list[AnalysisJob]:
        """Return jobs that failed."""
        return [job for job in self.jobs if job.status == JobStatus.FAILED]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total": len(self.jobs),
            "completed": len(self.completed),
            "failed": len(self.failed),
            "jobs": [
                {
                    "job_id": job.job_id,
                    "repo_url": job.repo_url,
                    "status": job.status.value,
                    "error_message": job.error_message,
                }
                for job in self.jobs
            ],
        }
