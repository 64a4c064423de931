"""Project and team member models."""

from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

WEEKDAYS = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]
WORKING_DAYS = WEEKDAYS[:5]


def _to_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# Dates are compared against local naive "now", so offsets are folded into UTC.
NaiveDatetime = Annotated[datetime, AfterValidator(_to_naive)]


class PlannerModel(BaseModel):
    """Base model accepting both snake_case and camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Skill(PlannerModel):
    """A named skill with a proficiency level."""

    name: str
    level: str = "Medium"
    count: int = Field(default=0, description="Past projects that used the skill")
    projects: list[str] = Field(default_factory=list)

    @classmethod
    def coerce(cls, value: "str | dict[str, Any] | Skill") -> "Skill":
        """Build a skill from a plain name or a mapping."""
        if isinstance(value, Skill):
            return value
        if isinstance(value, str):
            return cls(name=value)
        return cls.model_validate(value)


class DaySchedule(PlannerModel):
    """Availability for one weekday."""

    available: bool = True
    hours: float = 0.0


class TimeOff(PlannerModel):
    """A period of leave."""

    start: NaiveDatetime
    end: NaiveDatetime
    type: str = "vacation"
    description: str = ""
    full_day: bool = True

    def covers(self, moment: datetime) -> bool:
        """Check whether the period includes ``moment``."""
        return self.start <= moment <= self.end


class AllocationChange(PlannerModel):
    """Change of project allocation from a given date."""

    effective_date: NaiveDatetime
    allocation_percentage: float = 100.0
    reason: str = "Unknown"

    @field_validator("allocation_percentage")
    @classmethod
    def clamp_percentage(cls, value: float) -> float:
        return min(100.0, max(0.0, value))


class ProjectHistoryEntry(PlannerModel):
    """A past project the member worked on."""

    project_name: str = "Unknown Project"
    role: str = "Team Member"
    start_date: NaiveDatetime
    end_date: NaiveDatetime | None = None
    skills: list[str] = Field(default_factory=list)
    description: str = ""
    performance_rating: float | None = None


def default_schedule(hours_per_week: float) -> dict[str, DaySchedule]:
    """Spread weekly hours evenly across the working days."""
    per_day = hours_per_week / len(WORKING_DAYS)
    return {
        day: DaySchedule(available=day in WORKING_DAYS, hours=per_day if day in WORKING_DAYS else 0.0)
        for day in WEEKDAYS
    }


class Availability(PlannerModel):
    """Normalized availability of a team member."""

    base_hours_per_week: float = 40.0
    schedule: dict[str, DaySchedule] = Field(default_factory=dict)
    time_off: list[TimeOff] = Field(default_factory=list)
    allocation_changes: list[AllocationChange] = Field(default_factory=list)
    project_history: list[ProjectHistoryEntry] = Field(default_factory=list)


class TeamMember(PlannerModel):
    """A normalized team member."""

    id: str
    name: str
    roles: list[str] = Field(default_factory=list)
    experience: str = "Not specified"
    skills: list[Skill] = Field(default_factory=list)
    availability: Availability = Field(default_factory=Availability)
    hourly_rate: float | None = None

    @property
    def role(self) -> str:
        """Primary role."""
        return self.roles[0] if self.roles else ""


class Risk(PlannerModel):
    """A project risk."""

    category: str
    title: str
    description: str
    mitigation: str = ""
    impact: str = "Medium"
    probability: str = "Medium"


class Timeline(PlannerModel):
    """Parsed project timeline."""

    value: int
    unit: str
    duration_days: int


class ProjectMetadata(PlannerModel):
    """Bookkeeping attached to project details."""

    created_at: datetime = Field(default_factory=datetime.now)
    created_by: str = "system"
    complexity_score: float | None = None
    recommended_team_size: int | None = None


class ProjectDetails(PlannerModel):
    """Validated project description produced by project initialisation."""

    project_id: str
    project_name: str
    project_type: str = "Not specified"
    project_description: str = "Not specified"
    project_timeline: str
    timeline: Timeline
    team_size: int = 0
    team_members: list[TeamMember] = Field(default_factory=list)
    tech_stack: list[str] = Field(default_factory=list)
    priority: str = "Medium"
    constraints: list[Any] = Field(default_factory=list)
    risks: list[Risk] = Field(default_factory=list)
    metadata: ProjectMetadata = Field(default_factory=ProjectMetadata)
