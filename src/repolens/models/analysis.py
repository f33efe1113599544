"""Analysis result entities.

This module contains the synthesized artifact of a job:
- Severity / Priority / Effort: Finding and recommendation scales
- Layer, Component, DependencyGraph: Architecture model parts
- ArchitectureModel: Evolving architecture description
- Finding / SecurityFinding: Issues reported by analysis tasks
- Recommendation: Suggested improvement
- Usage: Resource accounting for one job
- AnalysisResult: Final merged result (cached and returned)
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from repolens.models.classification import ProjectType
from repolens.models.repository import RepositoryMetadata


class Severity(Enum):
    """Severity of a finding."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @classmethod
    def parse(cls, value: Any, default: "Severity") -> "Severity":
        """Parse a loosely formatted severity, falling back to a default."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return default
        return default


class Priority(Enum):
    """Priority of a recommendation."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Level(Enum):
    """Effort or impact estimate of a recommendation."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def _parse_level(enum_cls: type[Enum], value: Any, default: Enum) -> Any:
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            return default
    return default


def _str_list(value: Any) -> list[str]:
    """Coerce a list field to strings; anything but a list reads as empty."""
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def _dict_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


# =============================================================================
# Architecture model
# =============================================================================


@dataclass
class Layer:
    """A logical architecture layer.

    Attributes:
        name: Layer name (e.g. "presentation")
        description: What the layer is responsible for
        components: Component names in this layer
    """

    name: str
    description: str = ""
    components: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "components": list(self.components),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Layer":
        """Create a Layer from a dictionary."""
        return cls(
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            components=_str_list(data.get("components")),
        )


@dataclass
class Component:
    """A component of the analyzed system.

    Attributes:
        name: Component name
        type: Component kind (service, module, library ...)
        path: Location in the repository
        description: What the component does
        dependencies: Names of components it depends on
        responsibilities: Responsibilities it carries
    """

    name: str
    type: str = "module"
    path: str = ""
    description: str = ""
    dependencies: list[str] = field(default_factory=list)
    responsibilities: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "type": self.type,
            "path": self.path,
            "description": self.description,
            "dependencies": list(self.dependencies),
            "responsibilities": list(self.responsibilities),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Component":
        """Create a Component from a dictionary."""
        return cls(
            name=str(data.get("name", "")),
            type=str(data.get("type", "module")),
            path=str(data.get("path", "")),
            description=str(data.get("description", "")),
            dependencies=_str_list(data.get("dependencies")),
            responsibilities=_str_list(data.get("responsibilities")),
        )


@dataclass
class DependencyGraph:
    """Component dependency graph.

    Attributes:
        nodes: Node records (id, name, type)
        edges: Edge records (source, target, type)
        external_dependencies: Third-party dependency records
    """

    nodes: list[dict[str, Any]] = field(default_factory=list)
    edges: list[dict[str, Any]] = field(default_factory=list)
    external_dependencies: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "nodes": list(self.nodes),
            "edges": list(self.edges),
            "external_dependencies": list(self.external_dependencies),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DependencyGraph":
        """Create a DependencyGraph from a dictionary."""
        return cls(
            nodes=_dict_list(data.get("nodes")),
            edges=_dict_list(data.get("edges")),
            external_dependencies=_dict_list(data.get("external_dependencies")),
        )


@dataclass
class ArchitectureModel:
    """Architecture description merged from architecture tasks.

    An unknown repository keeps the empty defaults, which is still a valid model.

    Attributes:
        pattern: Architectural pattern name
        pattern_confidence: Confidence in the pattern, in [0, 1]
        description: Free-form architecture summary
        layers: Logical layers
        components: Identified components
        dependency_graph: Component dependency graph
    """

    pattern: str = "unknown"
    pattern_confidence: float = 0.0
    description: str = ""
    layers: list[Layer] = field(default_factory=list)
    components: list[Component] = field(default_factory=list)
    dependency_graph: DependencyGraph = field(default_factory=DependencyGraph)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "pattern": self.pattern,
            "pattern_confidence": self.pattern_confidence,
            "description": self.description,
            "layers": [layer.to_dict() for layer in self.layers],
            "components": [component.to_dict() for component in self.components],
            "dependency_graph": self.dependency_graph.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArchitectureModel":
        """Create an ArchitectureModel from a dictionary."""
        return cls(
            pattern=str(data.get("pattern", "unknown")),
            pattern_confidence=float(data.get("pattern_confidence", 0.0)),
            description=str(data.get("description", "")),
            layers=[Layer.from_dict(layer) for layer in _dict_list(data.get("layers"))],
            components=[Component.from_dict(c) for c in _dict_list(data.get("components"))],
            dependency_graph=DependencyGraph.from_dict(data.get("dependency_graph", {})),
        )


# =============================================================================
# Findings and recommendations
# =============================================================================


@dataclass
class Finding:
    """An issue reported by a non-security analysis task.

    Attributes:
        category: Task category that reported it
        severity: Severity
        title: Short title (used to match findings across runs)
        description: Details
        file_path: Affected file, if any
        line: Affected line, if any
        task_id: Task that reported it
    """

    category: str
    severity: Severity
    title: str
    description: str = ""
    file_path: str | None = None
    line: int | None = None
    task_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "category": self.category,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "file_path": self.file_path,
            "line": self.line,
            "task_id": self.task_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Finding":
        """Create a Finding from a dictionary."""
        return cls(
            category=str(data.get("category", "")),
            severity=Severity.parse(data.get("severity"), Severity.INFO),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            file_path=data.get("file_path"),
            line=data.get("line"),
            task_id=data.get("task_id"),
        )


@dataclass
class SecurityFinding(Finding):
    """A security issue with classification fields.

    Attributes:
        cwe: CWE identifier (e.g. "CWE-798")
        owasp: OWASP Top 10 category
        cvss: CVSS base score
        remediation: Suggested fix
    """

    cwe: str | None = None
    owasp: str | None = None
    cvss: float | None = None
    remediation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = super().to_dict()
        data.update(
            {
                "cwe": self.cwe,
                "owasp": self.owasp,
                "cvss": self.cvss,
                "remediation": self.remediation,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SecurityFinding":
        """Create a SecurityFinding from a dictionary."""
        cvss = data.get("cvss")
        return cls(
            category=str(data.get("category", "security")),
            severity=Severity.parse(data.get("severity"), Severity.MEDIUM),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            file_path=data.get("file_path"),
            line=data.get("line"),
            task_id=data.get("task_id"),
            cwe=data.get("cwe"),
            owasp=data.get("owasp"),
            cvss=float(cvss) if isinstance(cvss, int | float) else None,
            remediation=data.get("remediation"),
        )


@dataclass
class Recommendation:
    """A suggested improvement.

    Attributes:
        category: Task category that produced it
        priority: How urgent it is
        title: Short title
        description: Details
        effort: Estimated effort
        impact: Estimated impact
    """

    category: str
    title: str
    description: str = ""
    priority: Priority = Priority.MEDIUM
    effort: Level = Level.MEDIUM
    impact: Level = Level.MEDIUM

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "category": self.category,
            "priority": self.priority.value,
            "title": self.title,
            "description": self.description,
            "effort": self.effort.value,
            "impact": self.impact.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Recommendation":
        """Create a Recommendation from a dictionary."""
        return cls(
            category=str(data.get("category", "")),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            priority=_parse_level(Priority, data.get("priority"), Priority.MEDIUM),
            effort=_parse_level(Level, data.get("effort"), Level.MEDIUM),
            impact=_parse_level(Level, data.get("impact"), Level.MEDIUM),
        )


# =============================================================================
# Usage and result
# =============================================================================


@dataclass
class Usage:
    """Resource accounting for one job.

    Attributes:
        tokens_used: Tokens consumed across all reasoning calls
        tasks_run: Number of reasoning calls made
        files_analyzed: Number of files whose contents were read
        repository_bytes: Total repository size in bytes
        elapsed_ms: Wall time of the job
        cache_hit: Whether the result came from the cache
    """

    tokens_used: int = 0
    tasks_run: int = 0
    files_analyzed: int = 0
    repository_bytes: int = 0
    elapsed_ms: int = 0
    cache_hit: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "tokens_used": self.tokens_used,
            "tasks_run": self.tasks_run,
            "files_analyzed": self.files_analyzed,
            "repository_bytes": self.repository_bytes,
            "elapsed_ms": self.elapsed_ms,
            "cache_hit": self.cache_hit,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Usage":
        """Create Usage from a dictionary."""
        return cls(
            tokens_used=int(data.get("tokens_used", 0)),
            tasks_run=int(data.get("tasks_run", 0)),
            files_analyzed=int(data.get("files_analyzed", 0)),
            repository_bytes=int(data.get("repository_bytes", 0)),
            elapsed_ms=int(data.get("elapsed_ms", 0)),
            cache_hit=bool(data.get("cache_hit", False)),
        )


@dataclass
class AnalysisResult:
    """Synthesized result of analyzing one repository.

    Attributes:
        repo_url: Repository URL
        branch: Analyzed branch
        commit_hash: Analyzed commit
        project_type: Detected primary project type
        tech_stack: Detected technology tags (sorted)
        classification_confidence: Classifier confidence
        architecture: Merged architecture model
        findings: General findings
        security_findings: Security findings (None when security was not requested)
        recommendations: Recommendations from any task
        usage: Usage totals
        repository: Repository reference information
        metadata: Repository statistics
        report: Generated report text
        contributing_tasks: Ids of tasks whose output was merged
        created_at: When the result was synthesized
    """

    repo_url: str
    branch: str
    commit_hash: str
    project_type: ProjectType = ProjectType.UNKNOWN
    tech_stack: list[str] = field(default_factory=list)
    classification_confidence: float = 0.0
    architecture: ArchitectureModel = field(default_factory=ArchitectureModel)
    findings: list[Finding] = field(default_factory=list)
    security_findings: list[SecurityFinding] | None = None
    recommendations: list[Recommendation] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    repository: dict[str, Any] = field(default_factory=dict)
    metadata: RepositoryMetadata | None = None
    report: str | None = None
    contributing_tasks: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def all_findings(self) -> list[Finding]:
        """Return general and security findings together."""
        return [*self.findings, *(self.security_findings or [])]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "repo_url": self.repo_url,
            "branch": self.branch,
            "commit_hash": self.commit_hash,
            "project_type": self.project_type.value,
            "tech_stack": list(self.tech_stack),
            "classification_confidence": self.classification_confidence,
            "architecture": self.architecture.to_dict(),
            "findings": [f.to_dict() for f in self.findings],
            "security_findings": (
                [f.to_dict() for f in self.security_findings]
                if self.security_findings is not None
                else None
            ),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "usage": self.usage.to_dict(),
            "repository": dict(self.repository),
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "report": self.report,
            "contributing_tasks": list(self.contributing_tasks),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalysisResult":
        """Create an AnalysisResult from a dictionary."""
        security = data.get("security_findings")
        metadata = data.get("metadata")
        created_at = data.get("created_at")
        return cls(
            repo_url=str(data.get("repo_url", "")),
            branch=str(data.get("branch", "")),
            commit_hash=str(data.get("commit_hash", "")),
            project_type=ProjectType(data.get("project_type", "unknown")),
            tech_stack=_str_list(data.get("tech_stack")),
            classification_confidence=float(data.get("classification_confidence", 0.0)),
            architecture=ArchitectureModel.from_dict(data.get("architecture", {})),
            findings=[Finding.from_dict(f) for f in _dict_list(data.get("findings"))],
            security_findings=(
                [SecurityFinding.from_dict(f) for f in _dict_list(security)]
                if security is not None
                else None
            ),
            recommendations=[
                Recommendation.from_dict(r) for r in _dict_list(data.get("recommendations"))
            ],
            usage=Usage.from_dict(data.get("usage", {})),
            repository=dict(data.get("repository", {})),
            metadata=RepositoryMetadata.from_dict(metadata) if metadata else None,
            report=data.get("report"),
            contributing_tasks=_str_list(data.get("contributing_tasks")),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(UTC),
        )
