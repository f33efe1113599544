"""Analysis task entities.

- TaskCategory: Analysis category (architecture, security, ...)
- VariableKind: How a template variable is rendered
- OutputShape: Expected shape of a task's output
- TaskVariable / TaskDefinition: Declarative task catalogue entries
- ExecutionContext: Rendering environment for one job
- RenderedTask: Result of rendering a task against a context
- TaskResult: Outcome of one reasoning-service call
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from repolens.models.classification import ProjectType


class TaskCategory(Enum):
    """Analysis category, in pipeline execution order."""

    ARCHITECTURE = "architecture"
    SECURITY = "security"
    PERFORMANCE = "performance"
    DOCUMENTATION = "documentation"
    TESTING = "testing"
    MAINTAINABILITY = "maintainability"


class VariableKind(Enum):
    """Rendering kind of a template variable."""

    TEXT = "text"
    LIST = "list"
    MAP = "map"
    TASK_OUTPUT = "task_output"


class OutputShape(Enum):
    """Expected output shape from the reasoning service."""

    TEXT = "text"
    STRUCTURED = "structured"


@dataclass(frozen=True)
class TaskVariable:
    """A declared template input.

    Attributes:
        name: Placeholder name (``{{name}}`` in the template)
        kind: How the resolved value is rendered
        required: Whether the task is meaningful without it
        description: Human-readable description
    """

    name: str
    kind: VariableKind = VariableKind.TEXT
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class TaskDefinition:
    """A declarative analysis task.

    Attributes:
        id: Unique task identifier
        name: Display name
        category: Analysis category
        template: Template text with ``{{name}}`` and ``{{output.<task-id>}}`` placeholders
        order: Execution order hint within the category
        applies_to: Project type this task targets (None for any type)
        variables: Declared template variables
        depends_on: Ids of tasks that must run first
        output_shape: Expected output shape
        description: What the task analyzes
    """

    id: str
    name: str
    category: TaskCategory
    template: str
    order: int = 1
    applies_to: ProjectType | None = None
    variables: tuple[TaskVariable, ...] = ()
    depends_on: tuple[str, ...] = ()
    output_shape: OutputShape = OutputShape.STRUCTURED
    description: str = ""

    def applies(self, project_type: ProjectType) -> bool:
        """Check whether this task applies to a project type."""
        return self.applies_to is None or self.applies_to == project_type

    def variable(self, name: str) -> TaskVariable | None:
        """Find a declared variable by name."""
        for variable in self.variables:
            if variable.name == name:
                return variable
        return None


@dataclass
class ExecutionContext:
    """Rendering environment for one job.

    Built once per job after classification and extended as each task
    succeeds: its output is recorded in ``chain`` before later tasks render.

    Attributes:
        repo_url: Repository URL
        repo_name: Repository display name
        branch: Checked-out branch
        commit_hash: Resolved commit
        repo_type: Classifier's primary type
        tech_stack: Detected technology tags (sorted)
        directory_structure: Rendered directory tree
        file_list: All file paths in the checkout
        file_contents: Contents of the selected files, keyed by path
        config_files: Contents of well-known config files, keyed by name
        chain: Outputs of completed tasks, keyed by task id
    """

    repo_url: str
    repo_name: str
    branch: str
    commit_hash: str
    repo_type: ProjectType = ProjectType.UNKNOWN
    tech_stack: list[str] = field(default_factory=list)
    directory_structure: str = ""
    file_list: list[str] = field(default_factory=list)
    file_contents: dict[str, str] = field(default_factory=dict)
    config_files: dict[str, str] = field(default_factory=dict)
    chain: dict[str, str] = field(default_factory=dict)

    def record_output(self, task_id: str, output: str) -> None:
        """Append a task's output to the dependency chain."""
        self.chain[task_id] = output


@dataclass
class RenderedTask:
    """A task template rendered against an execution context.

    Attributes:
        task_id: Rendered task id
        content: Final text sent to the reasoning service
        variables: Resolved values by placeholder name
        missing: Placeholders that rendered as a not-available marker
        output_shape: Expected output shape
    """

    task_id: str
    content: str
    variables: dict[str, Any] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)
    output_shape: OutputShape = OutputShape.STRUCTURED


@dataclass
class TaskResult:
    """Outcome of running one analysis task.

    Attributes:
        task_id: Task id
        category: Task category
        success: Whether the reasoning call succeeded
        output: Parsed structure or raw text
        raw_output: Response text exactly as returned
        tokens_used: Tokens consumed by the call
        duration_ms: Call wall time in milliseconds
        error: Error message for failed tasks
    """

    task_id: str
    category: TaskCategory
    success: bool
    output: Any = None
    raw_output: str = ""
    tokens_used: int = 0
    duration_ms: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "task_id": self.task_id,
            "category": self.category.value,
            "success": self.success,
            "tokens_used": self.tokens_used,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }
