"""Data models for the planner."""

from project_planner.models.enums import EventLevel, PipelineStatus, Priority
from project_planner.models.state import (
    PROJECT_INPUT_SLOT,
    ErrorLogEntry,
    PipelineState,
    PlanResult,
    ProcessingMetadata,
    StageTiming,
)
from project_planner.models.checkpoint import (
    Checkpoint,
    CheckpointHandle,
    CheckpointMetadata,
    CheckpointSummary,
    LatestPointer,
)
from project_planner.models.project import (
    Availability,
    ProjectDetails,
    Skill,
    TeamMember,
)
from project_planner.models.task import (
    PriorityAssignments,
    ProjectOverview,
    Sprint,
    SprintPlan,
    Subtask,
    Task,
)
from project_planner.models.assignment import (
    AssignmentResult,
    SchedulingWarning,
    WorkerStats,
    WorkloadStats,
    WorkloadSummary,
)
from project_planner.models.plan import (
    CompiledPlan,
    EngineeredPrompt,
    ResourceAnalysis,
    VerificationIssue,
    VerificationResult,
)

__all__ = [
    # Enums
    "EventLevel",
    "PipelineStatus",
    "Priority",
    # State
    "PROJECT_INPUT_SLOT",
    "ErrorLogEntry",
    "PipelineState",
    "PlanResult",
    "ProcessingMetadata",
    "StageTiming",
    # Checkpoints
    "Checkpoint",
    "CheckpointHandle",
    "CheckpointMetadata",
    "CheckpointSummary",
    "LatestPointer",
    # Project
    "Availability",
    "ProjectDetails",
    "Skill",
    "TeamMember",
    # Tasks
    "PriorityAssignments",
    "ProjectOverview",
    "Sprint",
    "SprintPlan",
    "Subtask",
    "Task",
    # Assignment
    "AssignmentResult",
    "SchedulingWarning",
    "WorkerStats",
    "WorkloadStats",
    "WorkloadSummary",
    # Plan
    "CompiledPlan",
    "EngineeredPrompt",
    "ResourceAnalysis",
    "VerificationIssue",
    "VerificationResult",
]
