"""Analysis task catalogue, dependency resolution and template rendering."""

from repolens.tasks.catalogue import (
    DEFAULT_TASKS,
    TYPE_SPECIFIC_TASKS,
    ExecutionOptions,
    TaskCatalogue,
    execution_options,
)
from repolens.tasks.renderer import NOT_AVAILABLE, missing_output_marker, render_task
from repolens.tasks.resolver import build_execution_plan, find_cycles

__all__ = [
    "DEFAULT_TASKS",
    "NOT_AVAILABLE",
    "TYPE_SPECIFIC_TASKS",
    "ExecutionOptions",
    "TaskCatalogue",
    "build_execution_plan",
    "execution_options",
    "find_cycles",
    "missing_output_marker",
    "render_task",
]
