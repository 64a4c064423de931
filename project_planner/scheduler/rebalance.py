"""Workload rebalancing after the greedy assignment pass."""

from dataclasses import dataclass, field

import structlog

from project_planner.models.assignment import WorkloadStats
from project_planner.models.task import PriorityAssignments, Subtask, Task
from project_planner.scheduler.config import SchedulerConfig
from project_planner.scheduler.scoring import (
    extract_task_skills,
    is_task_critical,
    skill_match,
    specialty_match,
)
from project_planner.scheduler.workload import EPSILON, WorkloadEntry, workload_stats

logger = structlog.get_logger()


@dataclass
class RebalanceMove:
    """One item moved from an overloaded worker."""

    item_id: str
    kind: str
    source_id: str
    target_id: str
    hours: float


@dataclass
class RebalanceReport:
    """Spread before and after the pass, and the moves it made."""

    stats_before: WorkloadStats
    stats_after: WorkloadStats
    moves: list[RebalanceMove] = field(default_factory=list)

    @property
    def rebalanced(self) -> bool:
        return bool(self.moves)


def needs_rebalancing(stats: WorkloadStats, config: SchedulerConfig) -> bool:
    """Check whether the spread of assigned hours is wide enough to act on."""
    return stats.mean > 0 and stats.std_dev > config.std_ratio * stats.mean


def _fair_share(entry: WorkloadEntry, mean: float) -> float:
    return mean * entry.allocation_percentage / 100


def _candidate_score(skills: list[str], entry: WorkloadEntry) -> float:
    profile = entry.profile
    return (
        skill_match(skills, profile.skills) * 0.6
        + specialty_match(skills, profile.specialties) * 0.2
        + entry.availability_ratio * 0.2
    )


class _Rebalancer:
    """Single rebalancing pass over a set of workload entries.

    Entries and owner maps are mutated in place. Owner maps are keyed by item
    id and hold worker ids.
    """

    def __init__(
        self,
        entries: dict[str, WorkloadEntry],
        tasks: list[Task],
        subtasks: list[Subtask],
        task_owner: dict[str, str],
        subtask_owner: dict[str, str],
        priorities: PriorityAssignments,
        config: SchedulerConfig,
    ):
        self.entries = entries
        self.tasks = {task.id: task for task in tasks}
        self.subtasks = subtasks
        self.subtasks_by_id = {subtask.id: subtask for subtask in subtasks}
        self.task_owner = task_owner
        self.subtask_owner = subtask_owner
        self.priorities = priorities
        self.config = config
        self.moves: list[RebalanceMove] = []

    def run(self, stats: WorkloadStats) -> None:
        mean = stats.mean
        overloaded = [
            entry
            for entry in self.entries.values()
            if entry.assigned_hours > self.config.overload_factor * _fair_share(entry, mean)
        ]
        underloaded = [
            entry
            for entry in self.entries.values()
            if entry.assigned_hours < self.config.underload_factor * _fair_share(entry, mean)
            and entry.remaining_hours > EPSILON
        ]
        if not overloaded or not underloaded:
            return

        overloaded.sort(key=lambda e: -(e.assigned_hours - _fair_share(e, mean)))

        for source in overloaded:
            overload = source.assigned_hours - _fair_share(source, mean)
            target = overload * self.config.recovery_ratio
            recovered = self._move_tasks(source, underloaded, target)
            if recovered < target * self.config.subtask_fallback_ratio:
                self._move_subtasks(source, underloaded, target, recovered)

    def _held_subtasks(self, task_id: str, worker_id: str) -> list[Subtask]:
        return [
            subtask
            for subtask in self.subtasks
            if subtask.parent_task_id == task_id
            and self.subtask_owner.get(subtask.id) == worker_id
        ]

    def _movable_tasks(self, source: WorkloadEntry) -> list[Task]:
        movable = []
        for task_id in list(source.assigned_task_ids):
            task = self.tasks.get(task_id)
            if task is None:
                continue
            if is_task_critical(task, self.priorities.tasks.get(task_id)):
                continue
            movable.append(task)

        movable.sort(
            key=lambda t: (len(self._held_subtasks(t.id, source.worker_id)), t.estimated_hours)
        )
        return movable

    def _pick_target(
        self,
        skills: list[str],
        hours: float,
        source: WorkloadEntry,
        candidates: list[WorkloadEntry],
        min_score: float,
        scorer,
    ) -> WorkloadEntry | None:
        best = None
        best_score = min_score
        for candidate in candidates:
            if candidate is source or not candidate.can_absorb(hours):
                continue
            # A move must narrow the gap between the two workers.
            if hours >= source.assigned_hours - candidate.assigned_hours:
                continue
            score = scorer(skills, candidate)
            if score > best_score:
                best, best_score = candidate, score
        return best

    def _move_tasks(
        self,
        source: WorkloadEntry,
        candidates: list[WorkloadEntry],
        target: float,
    ) -> float:
        recovered = 0.0
        for task in self._movable_tasks(source):
            if recovered >= target:
                break

            cascaded = self._held_subtasks(task.id, source.worker_id)
            hours = task.estimated_hours + sum(s.estimated_hours for s in cascaded)
            if hours <= 0:
                continue

            skills = extract_task_skills(task)
            receiver = self._pick_target(
                skills,
                hours,
                source,
                candidates,
                self.config.min_match_score,
                _candidate_score,
            )
            if receiver is None:
                continue

            self._transfer(task.id, "task", task.estimated_hours, skills, source, receiver)
            for subtask in cascaded:
                self._transfer(
                    subtask.id,
                    "subtask",
                    subtask.estimated_hours,
                    extract_task_skills(subtask),
                    source,
                    receiver,
                )
            recovered += hours
        return recovered

    def _move_subtasks(
        self,
        source: WorkloadEntry,
        candidates: list[WorkloadEntry],
        target: float,
        recovered: float,
    ) -> float:
        movable = []
        for subtask_id in list(source.assigned_subtask_ids):
            subtask = self.subtasks_by_id.get(subtask_id)
            if subtask is None or subtask.estimated_hours < self.config.min_subtask_hours:
                continue
            if is_task_critical(subtask, self.priorities.subtasks.get(subtask_id)):
                continue
            movable.append(subtask)
        movable.sort(key=lambda s: s.estimated_hours)

        for subtask in movable:
            if recovered >= target:
                break

            skills = extract_task_skills(subtask)
            receiver = self._pick_target(
                skills,
                subtask.estimated_hours,
                source,
                candidates,
                self.config.min_match_score,
                lambda s, entry: skill_match(s, entry.profile.skills),
            )
            if receiver is None:
                continue

            self._transfer(
                subtask.id, "subtask", subtask.estimated_hours, skills, source, receiver
            )
            recovered += subtask.estimated_hours
        return recovered

    def _transfer(
        self,
        item_id: str,
        kind: str,
        hours: float,
        skills: list[str],
        source: WorkloadEntry,
        receiver: WorkloadEntry,
    ) -> None:
        source.release(item_id, hours, kind, skills)
        receiver.assign(item_id, hours, kind, skills)
        owners = self.task_owner if kind == "task" else self.subtask_owner
        owners[item_id] = receiver.worker_id
        self.moves.append(
            RebalanceMove(
                item_id=item_id,
                kind=kind,
                source_id=source.worker_id,
                target_id=receiver.worker_id,
                hours=hours,
            )
        )
        logger.debug(
            "item_reassigned",
            item_id=item_id,
            kind=kind,
            source=source.worker_id,
            target=receiver.worker_id,
            hours=hours,
        )


def rebalance_workload(
    entries: dict[str, WorkloadEntry],
    tasks: list[Task],
    subtasks: list[Subtask],
    task_owner: dict[str, str],
    subtask_owner: dict[str, str],
    priorities: PriorityAssignments,
    config: SchedulerConfig,
) -> RebalanceReport:
    """Move non-critical work from overloaded to underloaded workers.

    Runs only when the standard deviation of assigned hours exceeds
    ``config.std_ratio`` of the mean. Every move keeps the receiver within
    capacity and strictly narrows the gap between source and receiver, so the
    spread never grows.

    Args:
        entries: Workload entries keyed by worker id, in roster order
        tasks: Tasks of the pass
        subtasks: Subtasks of the pass
        task_owner: Task id to worker id, updated in place
        subtask_owner: Subtask id to worker id, updated in place
        priorities: Priority levels used to protect critical work
        config: Thresholds of the pass

    Returns:
        RebalanceReport with the stats before and after and the moves made
    """
    before = workload_stats(entries.values())
    report = RebalanceReport(stats_before=before, stats_after=before)

    if not config.rebalance_enabled or len(entries) < 2:
        return report
    if not needs_rebalancing(before, config):
        return report

    rebalancer = _Rebalancer(
        entries, tasks, subtasks, task_owner, subtask_owner, priorities, config
    )
    rebalancer.run(before)

    report.moves = rebalancer.moves
    report.stats_after = workload_stats(entries.values())

    logger.info(
        "workload_rebalanced",
        moves=len(report.moves),
        std_dev_before=round(before.std_dev, 2),
        std_dev_after=round(report.stats_after.std_dev, 2),
    )
    return report
