"""Per-pass workload tracking."""

import math
from dataclasses import dataclass, field
from typing import Iterable

from project_planner.models.assignment import WorkloadStats
from project_planner.scheduler.profiles import WorkerProfile

# Float slack when comparing hour totals.
EPSILON = 1e-9


@dataclass
class WorkRecord:
    """One assignment event in a worker's history for this pass."""

    item_id: str
    kind: str
    action: str
    hours: float
    skills: list[str] = field(default_factory=list)


@dataclass
class WorkloadEntry:
    """Hours and items held by one worker during a scheduling pass.

    ``remaining_hours`` is always ``total_available_hours - assigned_hours``;
    an assignment that would make it negative is rejected.
    """

    profile: WorkerProfile
    total_available_hours: float
    assigned_hours: float = 0.0
    assigned_task_ids: list[str] = field(default_factory=list)
    assigned_subtask_ids: list[str] = field(default_factory=list)
    work_history: list[WorkRecord] = field(default_factory=list)

    @classmethod
    def for_profile(cls, profile: WorkerProfile) -> "WorkloadEntry":
        return cls(profile=profile, total_available_hours=profile.weekly_available_hours)

    @property
    def worker_id(self) -> str:
        return self.profile.id

    @property
    def remaining_hours(self) -> float:
        return self.total_available_hours - self.assigned_hours

    @property
    def allocation_percentage(self) -> float:
        return self.profile.allocation_percentage

    @property
    def availability_ratio(self) -> float:
        if self.total_available_hours <= 0:
            return 0.0
        return max(0.0, self.remaining_hours / self.total_available_hours)

    def can_absorb(self, hours: float) -> bool:
        """Check whether the worker has capacity left for ``hours``."""
        return self.remaining_hours > EPSILON and self.remaining_hours + EPSILON >= hours

    def assign(self, item_id: str, hours: float, kind: str, skills: Iterable[str] = ()) -> None:
        """Debit hours for a task or subtask.

        Raises:
            ValueError: If the worker does not have the hours left
        """
        if hours > self.remaining_hours + EPSILON:
            raise ValueError(
                f"Assigning {hours}h of {kind} {item_id} to {self.worker_id} "
                f"exceeds remaining {self.remaining_hours}h"
            )
        self.assigned_hours += hours
        self._items(kind).append(item_id)
        self.work_history.append(WorkRecord(item_id, kind, "assigned", hours, list(skills)))

    def release(self, item_id: str, hours: float, kind: str, skills: Iterable[str] = ()) -> None:
        """Credit hours back when an item moves to another worker."""
        self.assigned_hours = max(0.0, self.assigned_hours - hours)
        items = self._items(kind)
        if item_id in items:
            items.remove(item_id)
        self.work_history.append(WorkRecord(item_id, kind, "reassigned", hours, list(skills)))

    def _items(self, kind: str) -> list[str]:
        return self.assigned_task_ids if kind == "task" else self.assigned_subtask_ids


def workload_stats(entries: Iterable[WorkloadEntry]) -> WorkloadStats:
    """Mean, population standard deviation, min and max of assigned hours."""
    hours = [entry.assigned_hours for entry in entries]
    if not hours:
        return WorkloadStats()

    mean = sum(hours) / len(hours)
    variance = sum((h - mean) ** 2 for h in hours) / len(hours)
    return WorkloadStats(
        mean=mean,
        std_dev=math.sqrt(variance),
        min=min(hours),
        max=max(hours),
    )
