"""Analysis task catalogue.

The catalogue is a static table over the fixed category and project-type
enumerations:

- DEFAULT_TASKS: tasks per category, each applicable to any type or one type
- TYPE_SPECIFIC_TASKS: per-type additions that replace defaults by id

``TaskCatalogue.get_tasks`` merges the two with a plain dict override and
sorts by ``order``.
"""

import logging
from dataclasses import dataclass

from repolens.models.classification import ProjectType
from repolens.models.tasks import (
    TaskCategory,
    TaskDefinition,
    TaskVariable,
    VariableKind,
)
from repolens.tasks.resolver import build_execution_plan, find_cycles

logger = logging.getLogger(__name__)

TaskTable = dict[TaskCategory, tuple[TaskDefinition, ...]]

# =============================================================================
# Shared variables and output formats
# =============================================================================

_REPO_NAME = TaskVariable("repo_name", VariableKind.TEXT, True, "Repository name")
_REPO_TYPE = TaskVariable("repo_type", VariableKind.TEXT, True, "Detected project type")
_TECH_STACK = TaskVariable("tech_stack", VariableKind.LIST, True, "Detected technologies")
_STRUCTURE = TaskVariable("directory_structure", VariableKind.TEXT, True, "Directory tree")
_CONFIG_FILES = TaskVariable("config_files", VariableKind.MAP, False, "Configuration files")
_SOURCE_FILES = TaskVariable("source_files", VariableKind.MAP, True, "Selected source files")
_FILE_CONTENTS = TaskVariable("file_contents", VariableKind.MAP, True, "Selected file contents")
_PACKAGE_FILES = TaskVariable("package_files", VariableKind.MAP, False, "Dependency manifests")
_LOCK_FILES = TaskVariable("lock_files", VariableKind.MAP, False, "Dependency lock files")

_FINDINGS_FORMAT = """Respond with JSON in this format:
```json
{
  "summary": "One paragraph assessment",
  "score": 0,
  "findings": [
    {
      "title": "Short title",
      "description": "What is wrong and where",
      "severity": "critical|high|medium|low|info",
      "file_path": "path/to/file",
      "line": 0
    }
  ],
  "recommendations": [
    {
      "title": "Short title",
      "description": "What to change",
      "priority": "high|medium|low",
      "effort": "high|medium|low",
      "impact": "high|medium|low"
    }
  ]
}
```"""

_SECURITY_FORMAT = """Respond with JSON in this format:
```json
{
  "findings": [
    {
      "title": "Short title",
      "description": "What is vulnerable and how it can be exploited",
      "severity": "critical|high|medium|low|info",
      "file_path": "path/to/file",
      "line": 0,
      "cwe": "CWE-000",
      "owasp": "A00:2021 - Category",
      "cvss": 0.0,
      "remediation": "How to fix it"
    }
  ],
  "recommendations": []
}
```"""

# =============================================================================
# Architecture
# =============================================================================

ARCH_OVERVIEW = TaskDefinition(
    id="arch-overview",
    name="Architecture Overview",
    category=TaskCategory.ARCHITECTURE,
    order=1,
    description="Identify the architectural pattern and main layers",
    variables=(_REPO_NAME, _REPO_TYPE, _TECH_STACK, _STRUCTURE, _CONFIG_FILES),
    template="""Analyze the architecture of the repository "{{repo_name}}".

Project type: {{repo_type}}
Technology stack: {{tech_stack}}

## Directory structure
```
{{directory_structure}}
```

## Configuration files
{{config_files}}

Identify:
1. The overall architectural pattern (layered, hexagonal, microservices, MVC, serverless ...)
2. The main layers and what each is responsible for
3. The main components and where they live
4. How data moves through the system

Respond with JSON in this format:
```json
{
  "pattern": "pattern name",
  "confidence": 0.0,
  "description": "Two or three sentence summary",
  "layers": [{"name": "layer", "description": "responsibility", "components": ["name"]}],
  "components": [{"name": "name", "type": "service|module|library", "path": "dir/", "description": "what it does"}],
  "recommendations": []
}
```""",
)

ARCH_COMPONENTS = TaskDefinition(
    id="arch-components",
    name="Component Analysis",
    category=TaskCategory.ARCHITECTURE,
    order=2,
    description="Describe components, their responsibilities and interfaces",
    depends_on=("arch-overview",),
    variables=(
        _SOURCE_FILES,
        TaskVariable("arch-overview", VariableKind.TASK_OUTPUT, False, "Architecture overview"),
    ),
    template="""Building on this architecture overview:
{{arch-overview}}

Analyze the components in these source files:
{{source_files}}

For each component describe its responsibilities, the components it depends on,
and its public interface.

Respond with JSON in this format:
```json
{
  "components": [
    {
      "name": "name",
      "type": "service|module|library|controller|model",
      "path": "path/",
      "description": "what it does",
      "dependencies": ["other component"],
      "responsibilities": ["responsibility"]
    }
  ],
  "recommendations": []
}
```""",
)

ARCH_DEPENDENCIES = TaskDefinition(
    id="arch-dependencies",
    name="Dependency Analysis",
    category=TaskCategory.ARCHITECTURE,
    order=3,
    description="Map internal and external dependencies",
    depends_on=("arch-components",),
    variables=(_PACKAGE_FILES, _SOURCE_FILES),
    template="""Map the dependencies of this codebase.

Known components:
{{output.arch-components}}

## Dependency manifests
{{package_files}}

## Source files
{{source_files}}

Report internal dependencies between components, external libraries and what
they are used for, and any circular dependencies.

Respond with JSON in this format:
```json
{
  "nodes": [{"id": "component", "name": "component", "type": "internal|external"}],
  "edges": [{"source": "component", "target": "component", "type": "imports|calls|extends"}],
  "external_dependencies": [{"name": "library", "version": "1.0", "purpose": "usage"}],
  "findings": [],
  "recommendations": []
}
```""",
)

# =============================================================================
# Security
# =============================================================================

SECURITY_SECRETS = TaskDefinition(
    id="security-secrets",
    name="Secret Detection",
    category=TaskCategory.SECURITY,
    order=1,
    description="Find hardcoded credentials and keys",
    variables=(_FILE_CONTENTS,),
    template="""Scan these files for hardcoded secrets: API keys, passwords, tokens,
private keys, connection strings with credentials and cloud provider credentials.

{{file_contents}}

Ignore obvious placeholders and test fixtures. """
    + _SECURITY_FORMAT,
)

SECURITY_VULNERABILITIES = TaskDefinition(
    id="security-vulnerabilities",
    name="Vulnerability Analysis",
    category=TaskCategory.SECURITY,
    order=2,
    description="Find injection, auth and data exposure flaws",
    variables=(_TECH_STACK, _SOURCE_FILES),
    template="""Review this code for security vulnerabilities.

Technology stack: {{tech_stack}}

{{source_files}}

Look for injection (SQL, command, template), broken authentication and
authorization, sensitive data exposure, insecure deserialization, SSRF and
missing input validation. Classify each finding with its CWE identifier,
OWASP Top 10 category and a CVSS base score. """
    + _SECURITY_FORMAT,
)

SECURITY_DEPENDENCIES = TaskDefinition(
    id="security-dependencies",
    name="Dependency Security",
    category=TaskCategory.SECURITY,
    order=3,
    description="Flag vulnerable or risky third-party dependencies",
    variables=(_PACKAGE_FILES, _LOCK_FILES),
    template="""Review these dependency manifests for known-vulnerable, unmaintained
or unpinned packages.

## Manifests
{{package_files}}

## Lock files
{{lock_files}}

"""
    + _SECURITY_FORMAT,
)

# =============================================================================
# Other categories
# =============================================================================

PERF_ANALYSIS = TaskDefinition(
    id="perf-analysis",
    name="Performance Analysis",
    category=TaskCategory.PERFORMANCE,
    description="Find performance bottlenecks",
    variables=(_TECH_STACK, _REPO_TYPE, _SOURCE_FILES),
    template="""Review this {{repo_type}} codebase ({{tech_stack}}) for performance problems:
N+1 queries, blocking I/O on hot paths, missing caching, unbounded memory growth,
inefficient algorithms and missing pagination.

{{source_files}}

"""
    + _FINDINGS_FORMAT,
)

DOCS_ANALYSIS = TaskDefinition(
    id="docs-analysis",
    name="Documentation Analysis",
    category=TaskCategory.DOCUMENTATION,
    description="Assess README, docs and code comments",
    variables=(
        TaskVariable("readme", VariableKind.TEXT, False, "README contents"),
        TaskVariable("docs", VariableKind.MAP, False, "Documentation files"),
        TaskVariable("code_comments", VariableKind.MAP, False, "Source files with comments"),
    ),
    template="""Assess the documentation of this repository.

## README
{{readme}}

## Documentation files
{{docs}}

## Code comment samples
{{code_comments}}

Judge completeness of setup instructions, API documentation, architecture
documentation and inline comments. """
    + _FINDINGS_FORMAT,
)

TEST_ANALYSIS = TaskDefinition(
    id="test-analysis",
    name="Test Analysis",
    category=TaskCategory.TESTING,
    description="Assess test coverage and quality",
    variables=(
        TaskVariable("test_files", VariableKind.MAP, False, "Test files"),
        _SOURCE_FILES,
        TaskVariable("test_config", VariableKind.MAP, False, "Test runner configuration"),
    ),
    template="""Assess the test suite of this repository.

## Test files
{{test_files}}

## Test configuration
{{test_config}}

## Source files
{{source_files}}

Identify untested critical paths, weak assertions, flaky patterns and missing
test types (unit, integration, end-to-end). """
    + _FINDINGS_FORMAT,
)

MAINTAIN_ANALYSIS = TaskDefinition(
    id="maintain-analysis",
    name="Maintainability Analysis",
    category=TaskCategory.MAINTAINABILITY,
    description="Assess complexity, duplication and code smells",
    depends_on=("arch-overview",),
    variables=(_SOURCE_FILES,),
    template="""Assess the maintainability of this code.

Architecture context:
{{output.arch-overview}}

{{source_files}}

Look for high complexity, duplication, long functions, tight coupling, dead code
and inconsistent naming. """
    + _FINDINGS_FORMAT,
)

# =============================================================================
# Type-specific tasks
# =============================================================================

BACKEND_API_DESIGN = TaskDefinition(
    id="backend-api-design",
    name="API Design Analysis",
    category=TaskCategory.ARCHITECTURE,
    order=4,
    applies_to=ProjectType.BACKEND,
    description="Review API endpoints and contracts",
    depends_on=("arch-overview",),
    variables=(
        TaskVariable("route_files", VariableKind.MAP, False, "Route and controller files"),
        TaskVariable("api_spec", VariableKind.TEXT, False, "OpenAPI document"),
    ),
    template="""Review the API design of this backend.

Architecture context:
{{output.arch-overview}}

## Routes and controllers
{{route_files}}

## API specification
{{api_spec}}

Check resource naming, HTTP method usage, status codes, error format,
versioning, pagination and authentication. """
    + _FINDINGS_FORMAT,
)

FRONTEND_COMPONENT_ANALYSIS = TaskDefinition(
    id="frontend-component-analysis",
    name="UI Component Analysis",
    category=TaskCategory.ARCHITECTURE,
    order=4,
    applies_to=ProjectType.FRONTEND,
    description="Review UI component structure and state management",
    depends_on=("arch-overview",),
    variables=(
        TaskVariable("component_files", VariableKind.MAP, False, "UI component files"),
        TaskVariable("state_files", VariableKind.MAP, False, "State management files"),
    ),
    template="""Review the UI components of this frontend.

Architecture context:
{{output.arch-overview}}

## Components
{{component_files}}

## State management
{{state_files}}

Check component composition, prop drilling, state placement, re-render
hotspots and accessibility. """
    + _FINDINGS_FORMAT,
)

DEFAULT_TASKS: TaskTable = {
    TaskCategory.ARCHITECTURE: (ARCH_OVERVIEW, ARCH_COMPONENTS, ARCH_DEPENDENCIES),
    TaskCategory.SECURITY: (SECURITY_SECRETS, SECURITY_VULNERABILITIES, SECURITY_DEPENDENCIES),
    TaskCategory.PERFORMANCE: (PERF_ANALYSIS,),
    TaskCategory.DOCUMENTATION: (DOCS_ANALYSIS,),
    TaskCategory.TESTING: (TEST_ANALYSIS,),
    TaskCategory.MAINTAINABILITY: (MAINTAIN_ANALYSIS,),
}

TYPE_SPECIFIC_TASKS: dict[ProjectType, TaskTable] = {
    ProjectType.BACKEND: {TaskCategory.ARCHITECTURE: (BACKEND_API_DESIGN,)},
    ProjectType.FRONTEND: {TaskCategory.ARCHITECTURE: (FRONTEND_COMPONENT_ANALYSIS,)},
}

# =============================================================================
# Execution options
# =============================================================================


@dataclass(frozen=True)
class ExecutionOptions:
    """Reasoning call limits for a category.

    Attributes:
        max_output_tokens: Output token ceiling
        temperature: Sampling temperature
        timeout: Call timeout in seconds
    """

    max_output_tokens: int = 4096
    temperature: float = 0.3
    timeout: float = 60.0


DEFAULT_EXECUTION_OPTIONS = ExecutionOptions()

CATEGORY_EXECUTION_OPTIONS: dict[TaskCategory, ExecutionOptions] = {
    TaskCategory.ARCHITECTURE: ExecutionOptions(max_output_tokens=8192, timeout=120.0),
    TaskCategory.SECURITY: ExecutionOptions(max_output_tokens=8192, temperature=0.1),
    TaskCategory.MAINTAINABILITY: ExecutionOptions(max_output_tokens=8192),
}


def execution_options(category: TaskCategory) -> ExecutionOptions:
    """Return reasoning call limits for a category."""
    return CATEGORY_EXECUTION_OPTIONS.get(category, DEFAULT_EXECUTION_OPTIONS)


# =============================================================================
# Catalogue
# =============================================================================


class TaskCatalogue:
    """Lookup over the default and type-specific task tables.

    Usage:
        catalogue = TaskCatalogue()
        tasks = catalogue.get_tasks(ProjectType.BACKEND, TaskCategory.ARCHITECTURE)
        plan = build_execution_plan(tasks)
    """

    def __init__(
        self,
        defaults: TaskTable | None = None,
        overrides: dict[ProjectType, TaskTable] | None = None,
    ) -> None:
        """Initialize the catalogue and check it for dependency cycles.

        Args:
            defaults: Tasks per category (DEFAULT_TASKS when None)
            overrides: Type-specific tasks per category (TYPE_SPECIFIC_TASKS when None)
        """
        self.defaults = DEFAULT_TASKS if defaults is None else defaults
        self.overrides = TYPE_SPECIFIC_TASKS if overrides is None else overrides
        self.cycles = self._validate()

    def _validate(self) -> list[list[str]]:
        cycles: list[list[str]] = []
        for project_type in ProjectType:
            for cycle in find_cycles(self.all_tasks(project_type)):
                if cycle not in cycles:
                    cycles.append(cycle)
        for cycle in cycles:
            logger.warning(
                "Task catalogue has a dependency cycle: %s (the closing edge is dropped at run time)",
                " -> ".join(cycle),
            )
        return cycles

    def get_tasks(self, project_type: ProjectType, category: TaskCategory) -> list[TaskDefinition]:
        """Return the tasks of a category for a project type, sorted by order.

        Args:
            project_type: Detected project type
            category: Analysis category

        Returns:
            Applicable defaults, with type-specific tasks replacing by id
        """
        merged = {
            task.id: task
            for task in self.defaults.get(category, ())
            if task.applies(project_type)
        }
        for task in self.overrides.get(project_type, {}).get(category, ()):
            merged[task.id] = task
        return sorted(merged.values(), key=lambda t: t.order)

    def get_plan(self, project_type: ProjectType, category: TaskCategory) -> list[TaskDefinition]:
        """Return a category's tasks in execution order."""
        return build_execution_plan(self.get_tasks(project_type, category))

    def available_categories(self, project_type: ProjectType) -> list[TaskCategory]:
        """Return the categories with at least one task for a project type."""
        return [c for c in TaskCategory if self.get_tasks(project_type, c)]

    def all_tasks(self, project_type: ProjectType) -> list[TaskDefinition]:
        """Return every task applicable to a project type, category by category."""
        tasks: list[TaskDefinition] = []
        for category in TaskCategory:
            tasks.extend(self.get_tasks(project_type, category))
        return tasks

    def get_task(self, task_id: str) -> TaskDefinition | None:
        """Find a task by id in either table."""
        for tasks in self.defaults.values():
            for task in tasks:
                if task.id == task_id:
                    return task
        for table in self.overrides.values():
            for tasks in table.values():
                for task in tasks:
                    if task.id == task_id:
                        return task
        return None
