"""Priority assignment stage: critical path and dependency-based priorities."""

from collections import deque
from typing import Any

import structlog

from project_planner.models.enums import Priority
from project_planner.models.task import PriorityAssignments, Subtask, Task

logger = structlog.get_logger()

CRITICAL_PATH_SCORE = 100
DEPENDENT_SCORE = 10
EARLY_SPRINT_SCORE = 5


class DependencyGraph:
    """Task dependency graph restricted to known task ids."""

    def __init__(self, tasks: list[Task]):
        self.order = [task.id for task in tasks]
        self.depends_on: dict[str, list[str]] = {task.id: [] for task in tasks}
        self.dependents: dict[str, list[str]] = {task.id: [] for task in tasks}
        for task in tasks:
            for dep in task.dependencies:
                if dep not in self.depends_on or dep == task.id:
                    continue
                if dep not in self.depends_on[task.id]:
                    self.depends_on[task.id].append(dep)
                    self.dependents[dep].append(task.id)

    def topological_order(self) -> list[str]:
        """Kahn's order; tasks on a dependency cycle are left out."""
        pending = {task_id: len(deps) for task_id, deps in self.depends_on.items()}
        ready = deque(task_id for task_id in self.order if pending[task_id] == 0)
        ordered = []
        while ready:
            task_id = ready.popleft()
            ordered.append(task_id)
            for dependent in self.dependents[task_id]:
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    ready.append(dependent)
        return ordered


def critical_path(tasks: list[Task], graph: DependencyGraph) -> list[str]:
    """Dependency chain with the most estimated hours.

    Returns an empty path when no chain has positive hours.
    """
    hours = {task.id: task.estimated_hours for task in tasks}
    best: dict[str, float] = {}
    previous: dict[str, str | None] = {}

    for task_id in graph.topological_order():
        before = None
        longest = 0.0
        for dep in graph.depends_on[task_id]:
            if dep in best and (before is None or best[dep] > longest):
                before, longest = dep, best[dep]
        best[task_id] = longest + hours[task_id]
        previous[task_id] = before

    end = None
    for task_id in graph.order:
        if task_id in best and best[task_id] > 0 and (end is None or best[task_id] > best[end]):
            end = task_id
    if end is None:
        return []

    path = []
    node: str | None = end
    while node is not None:
        path.append(node)
        node = previous[node]
    return list(reversed(path))


def score_to_priority(score: float) -> Priority:
    if score >= 100:
        return Priority.CRITICAL
    if score >= 70:
        return Priority.HIGH
    if score >= 40:
        return Priority.MEDIUM
    return Priority.LOW


def task_priorities(
    tasks: list[Task],
    graph: DependencyGraph,
    path: list[str],
) -> dict[str, Priority]:
    on_path = set(path)
    priorities = {}
    for task in tasks:
        score = CRITICAL_PATH_SCORE if task.id in on_path else 0
        score += len(graph.dependents[task.id]) * DEPENDENT_SCORE
        if task.sprint_number:
            score += (10 - min(task.sprint_number, 10)) * EARLY_SPRINT_SCORE
        priorities[task.id] = score_to_priority(score)
    return priorities


def subtask_priorities(
    subtasks: list[Subtask],
    parents: dict[str, Priority],
) -> dict[str, Priority]:
    """Subtasks inherit the parent's level, one higher when they depend on siblings."""
    priorities = {}
    for subtask in subtasks:
        level = parents.get(subtask.parent_task_id, Priority.MEDIUM)
        if subtask.depends_on:
            level = level.bumped()
        priorities[subtask.id] = level
    return priorities


async def assign_priorities(
    tasks: list[dict[str, Any]],
    subtasks: list[dict[str, Any]],
) -> dict[str, Any]:
    """Stage entry point."""
    parsed_tasks = [Task.model_validate(task) for task in tasks or []]
    parsed_subtasks = [Subtask.model_validate(subtask) for subtask in subtasks or []]

    graph = DependencyGraph(parsed_tasks)
    path = critical_path(parsed_tasks, graph)
    levels = task_priorities(parsed_tasks, graph, path)

    assignments = PriorityAssignments(
        tasks=levels,
        subtasks=subtask_priorities(parsed_subtasks, levels),
        critical_path=path,
    )
    logger.info(
        "priorities_assigned",
        tasks=len(parsed_tasks),
        subtasks=len(parsed_subtasks),
        critical_path_length=len(path),
    )
    return assignments.model_dump(mode="json")
