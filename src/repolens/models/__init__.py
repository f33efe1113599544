"""RepoLens data models.

This module exports the core entities used throughout the application:
- RepositoryRef, FileInfo, DirectoryNode: Repository being analyzed
- ClassificationResult, Indicator, ProjectType: Classifier verdict
- TaskDefinition, ExecutionContext, TaskResult: Analysis tasks
- AnalysisResult and its parts: Synthesized result
- AnalysisJob, AnalysisRequest, JobStatus: Job state machine
"""

from repolens.models.analysis import (
    AnalysisResult,
    ArchitectureModel,
    Component,
    Finding,
    Recommendation,
    SecurityFinding,
    Severity,
    Usage,
)
from repolens.models.classification import (
    ClassificationResult,
    Indicator,
    ProjectType,
    SignalKind,
)
from repolens.models.job import (
    AnalysisDepth,
    AnalysisJob,
    AnalysisRequest,
    BatchResult,
    JobEvent,
    JobStatus,
    ProgressSnapshot,
    TenantContext,
)
from repolens.models.llm_config import LLMConfig
from repolens.models.repository import (
    CloneResult,
    DirectoryNode,
    FileInfo,
    GitPlatform,
    RepositoryMetadata,
    RepositoryRef,
    parse_repo_url,
)
from repolens.models.tasks import (
    ExecutionContext,
    OutputShape,
    RenderedTask,
    TaskCategory,
    TaskDefinition,
    TaskResult,
    TaskVariable,
    VariableKind,
)

__all__ = [
    "AnalysisDepth",
    "AnalysisJob",
    "AnalysisRequest",
    "AnalysisResult",
    "ArchitectureModel",
    "BatchResult",
    "ClassificationResult",
    "CloneResult",
    "Component",
    "DirectoryNode",
    "ExecutionContext",
    "FileInfo",
    "Finding",
    "GitPlatform",
    "Indicator",
    "JobEvent",
    "JobStatus",
    "LLMConfig",
    "OutputShape",
    "ProgressSnapshot",
    "ProjectType",
    "Recommendation",
    "RenderedTask",
    "RepositoryMetadata",
    "RepositoryRef",
    "SecurityFinding",
    "Severity",
    "SignalKind",
    "TaskCategory",
    "TaskDefinition",
    "TaskResult",
    "TaskVariable",
    "TenantContext",
    "Usage",
    "VariableKind",
    "parse_repo_url",
]
