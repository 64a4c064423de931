"""Worker assignment output models."""

from pydantic import BaseModel, Field


class WorkloadStats(BaseModel):
    """Spread of assigned hours across workers."""

    mean: float = 0.0
    std_dev: float = 0.0
    min: float = 0.0
    max: float = 0.0


class WorkerStats(BaseModel):
    """Per-worker line of the workload summary."""

    worker_id: str
    name: str
    role: str = ""
    assigned_hours: float
    available_hours: float
    remaining_hours: float
    utilization_percentage: int
    assigned_task_count: int = 0
    assigned_subtask_count: int = 0
    is_overallocated: bool = False
    is_underallocated: bool = False


class SchedulingWarning(BaseModel):
    """An item the scheduler could not place."""

    item_id: str
    kind: str = Field(..., description="'task' or 'subtask'")
    estimated_hours: float = 0.0
    reason: str = "no worker with enough remaining capacity"


class WorkloadSummary(BaseModel):
    """Outcome of a scheduling pass."""

    worker_stats: list[WorkerStats] = Field(default_factory=list)
    overallocated_workers: int = 0
    underallocated_workers: int = 0
    unassigned_tasks: list[str] = Field(default_factory=list)
    unassigned_subtasks: list[str] = Field(default_factory=list)
    warnings: list[SchedulingWarning] = Field(default_factory=list)
    stats_before_rebalance: WorkloadStats | None = None
    stats_after_rebalance: WorkloadStats | None = None
    rebalanced: bool = False


class AssignmentResult(BaseModel):
    """Worker name per task and subtask id, plus the workload summary."""

    task_assignments: dict[str, str] = Field(default_factory=dict)
    subtask_assignments: dict[str, str] = Field(default_factory=dict)
    workload_summary: WorkloadSummary = Field(default_factory=WorkloadSummary)
