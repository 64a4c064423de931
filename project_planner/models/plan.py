"""Intermediate and final plan models produced by the planning stages."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from project_planner.models.assignment import WorkloadSummary
from project_planner.models.project import PlannerModel, Risk, TeamMember
from project_planner.models.task import Sprint, Subtask, Task


class EngineeredPrompt(BaseModel):
    """Prompt handed to the overview generator."""

    project_id: str
    overview_prompt: str
    total_man_hours: int = 0
    prompt_version: str = "2.0"
    engineered_at: datetime = Field(default_factory=datetime.now)


class MemberCapacity(BaseModel):
    """Sprint capacity of one team member."""

    name: str
    roles: list[str] = Field(default_factory=list)
    experience: str = "Unknown"
    efficiency_factor: float
    capacity_per_sprint: int
    skills: list[str] = Field(default_factory=list)


class TeamCapacity(BaseModel):
    total_members: int = 0
    total_capacity_per_sprint: int = 0
    member_capacities: list[MemberCapacity] = Field(default_factory=list)
    hours_per_day: int = 6
    days_per_sprint: int = 10


class SprintAnalysis(BaseModel):
    """Estimated effort of one sprint against team capacity."""

    sprint_number: int
    sprint_name: str = ""
    estimated_hours: int
    available_capacity: int
    utilization_percentage: int
    is_overallocated: bool
    remaining_capacity: int


class SkillGap(BaseModel):
    skill: str
    source: str = Field(..., description="Tech stack entry that requires the skill")
    mitigation: str = ""


class ResourceAnalysis(BaseModel):
    """Team capacity, sprint feasibility and skill gaps."""

    team_capacity: TeamCapacity
    sprint_analysis: list[SprintAnalysis] = Field(default_factory=list)
    skill_gaps: list[SkillGap] = Field(default_factory=list)
    skill_coverage: int = 100
    is_overallocated: bool = False


class PlannedTask(Task):
    """Task as it appears in the compiled plan."""

    assigned_to: str | None = None
    subtasks: list[Subtask] = Field(default_factory=list)


class PlannedSprint(Sprint):
    estimated_effort: int | None = None
    resource_utilization: int | None = None
    is_overallocated: bool = False


class PlanSummary(BaseModel):
    """Project section of the compiled plan."""

    project_id: str
    name: str
    type: str
    description: str
    timeline: str
    duration_days: int
    priority: str
    tech_stack: list[str] = Field(default_factory=list)
    team_members: list[TeamMember] = Field(default_factory=list)
    summary: str = ""
    objectives: list[str] = Field(default_factory=list)
    scope: list[str] = Field(default_factory=list)
    milestones: list[str] = Field(default_factory=list)


class TimelineEvent(BaseModel):
    week: float
    type: Literal["sprint_start", "sprint_end"]
    title: str
    sprint_number: int


class PlanTimeline(BaseModel):
    total_weeks: float = 0.0
    events: list[TimelineEvent] = Field(default_factory=list)


class ResourceAllocation(BaseModel):
    average_sprint_utilization: int = 0
    overallocated_sprints: int = 0
    total_sprints: int = 0
    skill_gaps: list[SkillGap] = Field(default_factory=list)
    workload: WorkloadSummary = Field(default_factory=WorkloadSummary)


class CompiledPlan(PlannerModel):
    """The final project plan."""

    project: PlanSummary
    sprints: list[PlannedSprint] = Field(default_factory=list)
    tasks: list[PlannedTask] = Field(default_factory=list)
    risks: list[Risk] = Field(default_factory=list)
    timeline: PlanTimeline = Field(default_factory=PlanTimeline)
    resource_allocation: ResourceAllocation = Field(default_factory=ResourceAllocation)
    critical_path: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class VerificationIssue(BaseModel):
    check: str
    field: str
    severity: Literal["critical", "high", "medium", "low"]
    message: str


class VerificationResult(BaseModel):
    """Outcome of the plan consistency checks."""

    is_valid: bool
    score: int
    issue_counts: dict[str, int] = Field(default_factory=dict)
    issues: list[VerificationIssue] = Field(default_factory=list)
    verified_at: datetime = Field(default_factory=datetime.now)
