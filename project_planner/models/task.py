"""Sprint, task and subtask models."""

from pydantic import Field, field_validator

from project_planner.models.enums import Priority
from project_planner.models.project import PlannerModel


class Sprint(PlannerModel):
    """A sprint in the plan."""

    sprint_number: int
    name: str = ""
    goal: str = ""
    duration_weeks: float = 2.0
    deliverables: list[str] = Field(default_factory=list)
    focus_areas: list[str] = Field(default_factory=list)


class SprintPlan(PlannerModel):
    """Sprint breakdown of the project."""

    sprints: list[Sprint] = Field(default_factory=list)
    total_sprints: int = 0
    sprint_duration_weeks: float = 2.0


class ProjectOverview(PlannerModel):
    """High level overview of the project."""

    summary: str
    objectives: list[str] = Field(default_factory=list)
    scope: list[str] = Field(default_factory=list)
    milestones: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)


class Task(PlannerModel):
    """A unit of work that can be assigned to one worker."""

    id: str
    title: str
    description: str = ""
    estimated_hours: float = Field(default=0.0, ge=0)
    priority: Priority | None = None
    category: str = ""
    dependencies: list[str] = Field(default_factory=list)
    sprint_number: int | None = None
    required_role: str | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def parse_priority(cls, value):
        if value is None or isinstance(value, Priority):
            return value
        return Priority.parse(value)

    @property
    def text(self) -> str:
        """Title and description, lowercased, for keyword matching."""
        return f"{self.title} {self.description}".lower()


class Subtask(Task):
    """A part of a task, assigned independently."""

    parent_task_id: str
    depends_on: list[str] = Field(default_factory=list)


class PriorityAssignments(PlannerModel):
    """Priority level per task and subtask id."""

    tasks: dict[str, Priority] = Field(default_factory=dict)
    subtasks: dict[str, Priority] = Field(default_factory=dict)
    critical_path: list[str] = Field(default_factory=list)
