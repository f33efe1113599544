"""Task template rendering.

Templates use two kinds of placeholders:

- ``{{name}}``: resolved against the execution context (direct fields first,
  then derived file views) and formatted by the variable's kind
- ``{{output.<task-id>}}``: the recorded output of an earlier task

The template is tokenized once, so text inserted by the first pass (file
contents, for instance) is never scanned for placeholders by the second.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Any

from repolens.models.tasks import (
    ExecutionContext,
    RenderedTask,
    TaskDefinition,
    VariableKind,
)

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "[Not available]"
OUTPUT_PREFIX = "output."

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][\w.-]*)\s*\}\}")


def missing_output_marker(task_id: str) -> str:
    """Marker rendered in place of a task output that is not in the chain."""
    return f"[No output available from {task_id}]"


# =============================================================================
# Derived views
# =============================================================================

PACKAGE_FILE_NAMES = frozenset(
    {
        "package.json",
        "requirements.txt",
        "Pipfile",
        "pyproject.toml",
        "go.mod",
        "Cargo.toml",
        "pom.xml",
        "build.gradle",
        "Gemfile",
        "composer.json",
    }
)

LOCK_FILE_NAMES = frozenset(
    {
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "Pipfile.lock",
        "poetry.lock",
        "go.sum",
        "Cargo.lock",
        "Gemfile.lock",
        "composer.lock",
    }
)

TEST_CONFIG_NAMES = frozenset(
    {
        "jest.config.js",
        "jest.config.ts",
        "vitest.config.ts",
        "karma.conf.js",
        "pytest.ini",
        "setup.cfg",
        "tox.ini",
        ".mocharc.json",
        "ava.config.js",
    }
)

API_SPEC_NAMES = (
    "openapi.yaml",
    "openapi.json",
    "swagger.yaml",
    "swagger.json",
    "api.yaml",
    "api.json",
)

_TEST_FILE = re.compile(
    r"(\.test\.[jt]sx?$|\.spec\.[jt]sx?$|_test\.go$|_test\.py$|(^|/)test_[^/]*\.py$"
    r"|Test\.java$|\.test\.rs$)"
)
_ROUTE_FILE = re.compile(r"(^|/)(routes?|controllers?|handlers?|api|endpoints?)/", re.IGNORECASE)
_COMPONENT_FILE = re.compile(r"((^|/)components?/|\.vue$|\.tsx$|\.component\.ts$)")
_STATE_FILE = re.compile(r"(store/|redux|context|state|vuex|pinia|zustand|recoil|jotai)", re.I)
_DOC_FILE = re.compile(r"((^|/)docs?/|\.md$|(^|/)documentation/|(^|/)wiki/)", re.IGNORECASE)
_COMMENT_SOURCE = re.compile(r"\.([jt]sx?|py|go|java|rs)$")
_COMMENT_MARKERS = ("//", "/*", "#", '"""', "'''")

MAX_COMMENT_SAMPLES = 5
COMMENT_SAMPLE_LINES = 100


def _basename(path: str) -> str:
    return PurePosixPath(path).name


def _filter_contents(context: ExecutionContext, keep: Callable[[str], bool]) -> dict[str, str]:
    return {path: content for path, content in context.file_contents.items() if keep(path)}


def _package_files(context: ExecutionContext) -> dict[str, str]:
    found = _filter_contents(context, lambda p: _basename(p) in PACKAGE_FILE_NAMES)
    for name, content in context.config_files.items():
        if _basename(name) in PACKAGE_FILE_NAMES:
            found.setdefault(name, content)
    return found


def _lock_files(context: ExecutionContext) -> dict[str, str]:
    found = _filter_contents(context, lambda p: _basename(p) in LOCK_FILE_NAMES)
    for name, content in context.config_files.items():
        if _basename(name) in LOCK_FILE_NAMES:
            found.setdefault(name, content)
    return found


def _readme(context: ExecutionContext) -> str | None:
    for name in ("README.md", "readme.md"):
        content = context.file_contents.get(name) or context.config_files.get(name)
        if content:
            return content
    return None


def _code_comments(context: ExecutionContext) -> dict[str, str]:
    samples: dict[str, str] = {}
    for path, content in context.file_contents.items():
        if len(samples) >= MAX_COMMENT_SAMPLES:
            break
        if not _COMMENT_SOURCE.search(path):
            continue
        head = "\n".join(content.splitlines()[:COMMENT_SAMPLE_LINES])
        if any(marker in head for marker in _COMMENT_MARKERS):
            samples[path] = head
    return samples


def _test_config(context: ExecutionContext) -> dict[str, str]:
    found = _filter_contents(context, lambda p: _basename(p) in TEST_CONFIG_NAMES)
    for name, content in context.config_files.items():
        if _basename(name) in TEST_CONFIG_NAMES:
            found.setdefault(name, content)
    return found


def _api_spec(context: ExecutionContext) -> str | None:
    for path, content in context.file_contents.items():
        if _basename(path).lower() in API_SPEC_NAMES:
            return content
    for name in API_SPEC_NAMES:
        if name in context.config_files:
            return context.config_files[name]
    return None


DERIVED_VIEWS: dict[str, Callable[[ExecutionContext], Any]] = {
    "source_files": lambda c: c.file_contents,
    "package_files": _package_files,
    "lock_files": _lock_files,
    "test_files": lambda c: _filter_contents(c, lambda p: bool(_TEST_FILE.search(p))),
    "route_files": lambda c: _filter_contents(c, lambda p: bool(_ROUTE_FILE.search(p))),
    "component_files": lambda c: _filter_contents(c, lambda p: bool(_COMPONENT_FILE.search(p))),
    "state_files": lambda c: _filter_contents(c, lambda p: bool(_STATE_FILE.search(p))),
    "readme": _readme,
    "docs": lambda c: _filter_contents(c, lambda p: bool(_DOC_FILE.search(p))),
    "code_comments": _code_comments,
    "test_config": _test_config,
    "api_spec": _api_spec,
}

_CONTEXT_FIELDS = frozenset(
    {
        "repo_url",
        "repo_name",
        "branch",
        "commit_hash",
        "repo_type",
        "tech_stack",
        "directory_structure",
        "file_list",
        "file_contents",
        "config_files",
    }
)


def resolve_variable(name: str, context: ExecutionContext) -> Any:
    """Resolve a placeholder name against the context.

    Args:
        name: Placeholder name
        context: Execution context

    Returns:
        Raw value, or None when the context has nothing under this name
    """
    if name in _CONTEXT_FIELDS:
        return getattr(context, name)
    view = DERIVED_VIEWS.get(name)
    if view is not None:
        return view(context)
    return None


# =============================================================================
# Formatting
# =============================================================================


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def infer_kind(value: Any) -> VariableKind:
    """Infer a variable kind from a value's type."""
    if isinstance(value, dict):
        return VariableKind.MAP
    if isinstance(value, (list, tuple, set, frozenset)):
        return VariableKind.LIST
    return VariableKind.TEXT


def _format_text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _format_list(value: Any) -> str:
    if isinstance(value, (set, frozenset)):
        value = sorted(value, key=str)
    if isinstance(value, (list, tuple)):
        return ", ".join(_format_text(item) for item in value)
    return _format_text(value)


def _format_map(value: Any) -> str:
    if not isinstance(value, dict):
        return _format_text(value)
    blocks = []
    for key, item in value.items():
        if isinstance(item, str):
            blocks.append(f"### {key}\n```\n{item}\n```")
        elif isinstance(item, (dict, list)):
            blocks.append(f"### {key}\n```json\n{json.dumps(item, indent=2, default=str)}\n```")
        else:
            blocks.append(f"### {key}\n{_format_text(item)}")
    return "\n\n".join(blocks)


def format_value(value: Any, kind: VariableKind | None = None) -> str:
    """Format a resolved value for insertion into a template.

    Args:
        value: Resolved value (must not be empty)
        kind: Declared kind, inferred from the value when None

    Returns:
        Text to insert
    """
    kind = kind or infer_kind(value)
    if kind == VariableKind.LIST:
        return _format_list(value)
    if kind == VariableKind.MAP:
        return _format_map(value)
    return _format_text(value)


# =============================================================================
# Rendering
# =============================================================================


@dataclass
class _Placeholder:
    name: str

    @property
    def is_output_ref(self) -> bool:
        return self.name.startswith(OUTPUT_PREFIX)


def _tokenize(template: str) -> list[str | _Placeholder]:
    tokens: list[str | _Placeholder] = []
    position = 0
    for match in _PLACEHOLDER.finditer(template):
        if match.start() > position:
            tokens.append(template[position : match.start()])
        tokens.append(_Placeholder(match.group(1)))
        position = match.end()
    if position < len(template):
        tokens.append(template[position:])
    return tokens


def render_task(task: TaskDefinition, context: ExecutionContext) -> RenderedTask:
    """Render a task's template against an execution context.

    Never raises for missing data: unknown or empty variables render as
    ``[Not available]`` and absent task outputs as
    ``[No output available from <task-id>]``.

    Args:
        task: Task to render
        context: Execution context for the job

    Returns:
        RenderedTask with the final content and what was resolved or missing
    """
    tokens = _tokenize(task.template)
    parts: list[str | _Placeholder] = list(tokens)
    rendered = RenderedTask(task_id=task.id, content="", output_shape=task.output_shape)

    # Pass 1: context variables
    for index, token in enumerate(parts):
        if not isinstance(token, _Placeholder) or token.is_output_ref:
            continue
        declared = task.variable(token.name)
        if declared is not None and declared.kind == VariableKind.TASK_OUTPUT:
            parts[index] = _Placeholder(f"{OUTPUT_PREFIX}{token.name}")
            continue

        value = resolve_variable(token.name, context)
        if _is_empty(value):
            parts[index] = NOT_AVAILABLE
            if token.name not in rendered.missing:
                rendered.missing.append(token.name)
            continue

        rendered.variables[token.name] = value
        parts[index] = format_value(value, declared.kind if declared else None)

    # Pass 2: outputs of earlier tasks
    for index, token in enumerate(parts):
        if not isinstance(token, _Placeholder):
            continue
        task_id = token.name.removeprefix(OUTPUT_PREFIX)
        output = context.chain.get(task_id)
        if output is None:
            parts[index] = missing_output_marker(task_id)
            if token.name not in rendered.missing:
                rendered.missing.append(token.name)
            continue
        rendered.variables[token.name] = output
        parts[index] = output

    rendered.content = "".join(part for part in parts if isinstance(part, str))

    if rendered.missing:
        logger.debug("Task %s rendered with missing inputs: %s", task.id, rendered.missing)
    return rendered
