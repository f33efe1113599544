"""Dependency ordering for analysis tasks.

Tasks are ordered depth-first: a task's dependencies are emitted before the
task itself. Dependencies outside the requested set are ignored (their output
may already be in the chain from an earlier category). A dependency that
closes a cycle is logged and dropped so the plan stays total.
"""

import logging
from collections.abc import Iterable

from repolens.models.tasks import TaskDefinition

logger = logging.getLogger(__name__)


def build_execution_plan(tasks: Iterable[TaskDefinition]) -> list[TaskDefinition]:
    """Order tasks so every task follows the tasks it depends on.

    Args:
        tasks: Requested tasks (first occurrence wins for duplicate ids)

    Returns:
        Every requested task exactly once, in dependency order
    """
    by_id: dict[str, TaskDefinition] = {}
    for task in tasks:
        by_id.setdefault(task.id, task)

    plan: list[TaskDefinition] = []
    emitted: set[str] = set()
    in_progress: set[str] = set()

    def visit(task_id: str, path: list[str]) -> None:
        if task_id in emitted:
            return
        if task_id in in_progress:
            cycle = path[path.index(task_id) :] + [task_id]
            logger.warning(
                "Dependency cycle detected: %s; dropping edge %s -> %s",
                " -> ".join(cycle),
                path[-1],
                task_id,
            )
            return

        in_progress.add(task_id)
        task = by_id[task_id]
        for dependency in task.depends_on:
            if dependency in by_id:
                visit(dependency, path + [task_id])
        in_progress.discard(task_id)

        emitted.add(task_id)
        plan.append(task)

    for task_id in by_id:
        visit(task_id, [])

    return plan


def find_cycles(tasks: Iterable[TaskDefinition]) -> list[list[str]]:
    """Find dependency cycles among a set of tasks.

    Args:
        tasks: Tasks to check

    Returns:
        Each distinct cycle as a list of task ids, first id repeated at the end
    """
    by_id = {task.id: task for task in tasks}
    cycles: list[list[str]] = []
    seen: set[frozenset[str]] = set()
    done: set[str] = set()

    def visit(task_id: str, path: list[str]) -> None:
        if task_id in path:
            cycle = path[path.index(task_id) :] + [task_id]
            members = frozenset(cycle)
            if members not in seen:
                seen.add(members)
                cycles.append(cycle)
            return
        if task_id in done:
            return
        for dependency in by_id[task_id].depends_on:
            if dependency in by_id:
                visit(dependency, path + [task_id])
        done.add(task_id)

    for task_id in by_id:
        visit(task_id, [])

    return cycles
