"""Greedy skill-based assignment of tasks and subtasks to workers."""

import math
from datetime import datetime
from typing import Any

import structlog

from project_planner.models.assignment import (
    AssignmentResult,
    SchedulingWarning,
    WorkerStats,
    WorkloadSummary,
)
from project_planner.models.enums import Priority
from project_planner.models.project import TeamMember
from project_planner.models.task import PriorityAssignments, Subtask, Task
from project_planner.scheduler.config import SchedulerConfig
from project_planner.scheduler.profiles import build_profile
from project_planner.scheduler.rebalance import RebalanceReport, rebalance_workload
from project_planner.scheduler.scoring import (
    MatchScore,
    extract_task_skills,
    infer_required_role,
    score_worker,
)
from project_planner.scheduler.workload import WorkloadEntry

logger = structlog.get_logger()


def _coerce(items: list[Any], model: type) -> list[Any]:
    return [item if isinstance(item, model) else model.model_validate(item) for item in items]


def priority_order(
    items: list[Task],
    levels: dict[str, Priority],
) -> list[Task]:
    """Order items for assignment.

    Priority first (Critical to Low, default Medium), then sprint number with
    missing sprints last, then estimated hours descending, then input order.
    """

    def key(indexed: tuple[int, Task]):
        index, item = indexed
        level = levels.get(item.id) or item.priority or Priority.MEDIUM
        sprint = item.sprint_number if item.sprint_number is not None else math.inf
        return (level.rank, sprint, -item.estimated_hours, index)

    return [item for _, item in sorted(enumerate(items), key=key)]


def utilization(assigned: float, available: float) -> int:
    """Assigned share of available hours as a whole percentage, capped at 100."""
    if available <= 0:
        return 100 if assigned > 0 else 0
    return min(100, math.floor(assigned / available * 100 + 0.5))


class ResourceScheduler:
    """Assigns tasks and subtasks to team members.

    Each call to :meth:`assign` is an independent pass with fresh workload
    entries, so a scheduler can be reused across projects.
    """

    def __init__(self, config: SchedulerConfig | None = None):
        self.config = config or SchedulerConfig()

    def assign(
        self,
        tasks: list[Task | dict],
        subtasks: list[Subtask | dict],
        priorities: PriorityAssignments | dict | None,
        members: list[TeamMember | dict],
        as_of: datetime | None = None,
    ) -> AssignmentResult:
        """Assign every task and subtask to at most one worker.

        Args:
            tasks: Tasks to assign
            subtasks: Subtasks to assign; each names its parent task
            priorities: Priority level per task and subtask id
            members: Team roster, in tie-break order
            as_of: Moment used to evaluate time off and allocation changes

        Returns:
            AssignmentResult with worker names per item and a workload summary
        """
        tasks = _coerce(tasks, Task)
        subtasks = _coerce(subtasks, Subtask)
        members = _coerce(members, TeamMember)
        if priorities is None:
            priorities = PriorityAssignments()
        elif not isinstance(priorities, PriorityAssignments):
            priorities = PriorityAssignments.model_validate(priorities)
        as_of = as_of or datetime.now()

        entries: dict[str, WorkloadEntry] = {}
        for member in members:
            entries[member.id] = WorkloadEntry.for_profile(build_profile(member, as_of))

        task_owner: dict[str, str] = {}
        subtask_owner: dict[str, str] = {}
        warnings: list[SchedulingWarning] = []

        for task in priority_order(tasks, priorities.tasks):
            worker_id = self._place(task, "task", entries)
            if worker_id is None:
                warnings.append(self._unassigned(task, "task"))
            else:
                task_owner[task.id] = worker_id

        for subtask in priority_order(subtasks, priorities.subtasks):
            worker_id = self._place_subtask(subtask, entries, task_owner)
            if worker_id is None:
                warnings.append(self._unassigned(subtask, "subtask"))
            else:
                subtask_owner[subtask.id] = worker_id

        report = rebalance_workload(
            entries, tasks, subtasks, task_owner, subtask_owner, priorities, self.config
        )

        names = {worker_id: entry.profile.name for worker_id, entry in entries.items()}
        summary = self._summarize(entries, warnings, report)

        logger.info(
            "assignment_completed",
            tasks=len(tasks),
            subtasks=len(subtasks),
            workers=len(entries),
            unassigned=len(warnings),
            rebalanced=report.rebalanced,
        )

        return AssignmentResult(
            task_assignments={
                task.id: names[task_owner[task.id]] for task in tasks if task.id in task_owner
            },
            subtask_assignments={
                subtask.id: names[subtask_owner[subtask.id]]
                for subtask in subtasks
                if subtask.id in subtask_owner
            },
            workload_summary=summary,
        )

    def rank_workers(
        self,
        item: Task,
        entries: dict[str, WorkloadEntry],
    ) -> list[MatchScore]:
        """Score every worker able to absorb the item, best first.

        Ties keep roster order.
        """
        skills = extract_task_skills(item)
        role = infer_required_role(item)
        scores = [
            score_worker(skills, role, entry, self.config)
            for entry in entries.values()
            if entry.can_absorb(item.estimated_hours)
        ]
        return sorted(scores, key=lambda score: -score.total)

    def _place(self, item: Task, kind: str, entries: dict[str, WorkloadEntry]) -> str | None:
        ranked = self.rank_workers(item, entries)
        if not ranked:
            return None

        best = ranked[0]
        entries[best.worker_id].assign(
            item.id, item.estimated_hours, kind, extract_task_skills(item)
        )
        return best.worker_id

    def _place_subtask(
        self,
        subtask: Subtask,
        entries: dict[str, WorkloadEntry],
        task_owner: dict[str, str],
    ) -> str | None:
        parent_owner = task_owner.get(subtask.parent_task_id)
        if parent_owner is not None:
            entry = entries[parent_owner]
            if entry.can_absorb(subtask.estimated_hours):
                entry.assign(
                    subtask.id,
                    subtask.estimated_hours,
                    "subtask",
                    extract_task_skills(subtask),
                )
                return parent_owner
        return self._place(subtask, "subtask", entries)

    def _unassigned(self, item: Task, kind: str) -> SchedulingWarning:
        logger.warning(
            f"{kind}_unassigned",
            item_id=item.id,
            estimated_hours=item.estimated_hours,
        )
        return SchedulingWarning(item_id=item.id, kind=kind, estimated_hours=item.estimated_hours)

    def _summarize(
        self,
        entries: dict[str, WorkloadEntry],
        warnings: list[SchedulingWarning],
        report: RebalanceReport,
    ) -> WorkloadSummary:
        worker_stats = []
        for entry in entries.values():
            pct = utilization(entry.assigned_hours, entry.total_available_hours)
            worker_stats.append(
                WorkerStats(
                    worker_id=entry.worker_id,
                    name=entry.profile.name,
                    role=entry.profile.role,
                    assigned_hours=entry.assigned_hours,
                    available_hours=entry.total_available_hours,
                    remaining_hours=entry.remaining_hours,
                    utilization_percentage=pct,
                    assigned_task_count=len(entry.assigned_task_ids),
                    assigned_subtask_count=len(entry.assigned_subtask_ids),
                    is_overallocated=pct > self.config.overallocated_pct,
                    is_underallocated=pct < self.config.underallocated_pct,
                )
            )

        return WorkloadSummary(
            worker_stats=worker_stats,
            overallocated_workers=sum(1 for s in worker_stats if s.is_overallocated),
            underallocated_workers=sum(1 for s in worker_stats if s.is_underallocated),
            unassigned_tasks=[w.item_id for w in warnings if w.kind == "task"],
            unassigned_subtasks=[w.item_id for w in warnings if w.kind == "subtask"],
            warnings=warnings,
            stats_before_rebalance=report.stats_before,
            stats_after_rebalance=report.stats_after,
            rebalanced=report.rebalanced,
        )
