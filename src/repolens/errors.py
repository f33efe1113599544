"""Exception hierarchy for RepoLens.

Errors are grouped by how the pipeline treats them:
- Fatal to the job: CloneError, SynthesisError, ReportGenerationError, JobCancelledError
- Fatal to a single task: ReasoningError
- Best-effort (logged, never fail a job): CacheError, NotificationError
"""


class RepoLensError(Exception):
    """Base class for all RepoLens errors."""


class InvalidRepositoryError(RepoLensError):
    """Raised when a repository reference cannot be parsed."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid repository URL '{url}': {reason}")


class CloneError(RepoLensError):
    """Raised when a repository cannot be cloned."""

    def __init__(
        self,
        url: str,
        message: str,
        exit_code: int | None = None,
        stderr: str | None = None,
    ) -> None:
        self.url = url
        self.exit_code = exit_code
        self.stderr = stderr
        full_message = f"Failed to clone repository {url}: {message}"
        if exit_code is not None:
            full_message += f" (exit code: {exit_code})"
        super().__init__(full_message)


class ReasoningError(RepoLensError):
    """Raised when a call to the reasoning service fails or times out."""


class SynthesisError(RepoLensError):
    """Raised when task results cannot be merged into an analysis result."""


class ReportGenerationError(RepoLensError):
    """Raised when the report generator fails."""


class JobStateError(RepoLensError):
    """Raised on an illegal job state transition or mutation of a finished job."""


class RegistryFullError(RepoLensError):
    """Raised when the job registry has no room for another active job."""


class CacheError(RepoLensError):
    """Raised by cache backends; callers treat it as best-effort."""


class NotificationError(RepoLensError):
    """Raised by notifiers; callers treat it as best-effort."""


class JobCancelledError(RepoLensError):
    """Raised at a pipeline checkpoint once cancellation was requested."""

    def __init__(self, message: str = "Job cancelled") -> None:
        super().__init__(message)
