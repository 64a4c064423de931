"""Worker skill profiles and effective availability."""

from dataclasses import dataclass, field
from datetime import datetime

from project_planner.models.project import Skill, TeamMember

PROFICIENCY_SCORES = {
    "beginner": 0.3,
    "low": 0.4,
    "medium": 0.7,
    "intermediate": 0.7,
    "high": 0.9,
    "expert": 1.0,
}
DEFAULT_PROFICIENCY = 0.7

ROLE_SKILLS = {
    "project manager": ["Planning", "Coordination", "Documentation", "Risk Management"],
    "frontend developer": ["JavaScript", "HTML", "CSS", "React", "UI/UX"],
    "backend developer": ["Node.js", "Database", "API", "Server Architecture"],
    "full stack developer": [
        "JavaScript",
        "HTML",
        "CSS",
        "React",
        "Node.js",
        "Database",
        "API",
    ],
    "ui/ux designer": ["Design", "Wireframing", "Prototyping", "User Research"],
    "qa engineer": ["Testing", "Test Automation", "QA", "Bug Reporting"],
    "devops engineer": ["DevOps", "CI/CD", "Docker", "Kubernetes", "Cloud Services"],
}

SPECIALTY_COUNT = 3


def proficiency_score(level: str | None) -> float:
    """Map a proficiency label to a score in [0, 1]."""
    if not level:
        return DEFAULT_PROFICIENCY
    return PROFICIENCY_SCORES.get(level.strip().lower(), DEFAULT_PROFICIENCY)


def infer_skills_from_role(role: str) -> list[Skill]:
    """Default skills for a role when a member lists none."""
    names = ROLE_SKILLS.get(role.strip().lower(), ["General"])
    return [Skill(name=name) for name in names]


@dataclass
class SkillProficiency:
    """How well a worker knows one skill."""

    level: str
    score: float
    count: int = 0
    projects: list[str] = field(default_factory=list)


@dataclass
class HistoricalPerformance:
    """Aggregate of a worker's rated past projects."""

    average_rating: float
    completed_projects: int
    total_projects: int


@dataclass
class WorkerProfile:
    """Everything the scheduler knows about one worker."""

    id: str
    name: str
    roles: list[str]
    skills: dict[str, SkillProficiency]
    specialties: list[str]
    weekly_available_hours: float
    allocation_percentage: float = 100.0
    historical_performance: HistoricalPerformance | None = None

    @property
    def role(self) -> str:
        return self.roles[0] if self.roles else ""


def determine_specialties(skills: dict[str, SkillProficiency]) -> list[str]:
    """Top skills by proficiency, ties kept in listed order."""
    ranked = sorted(skills.items(), key=lambda item: -item[1].score)
    return [name for name, _ in ranked[:SPECIALTY_COUNT]] or ["General"]


def historical_performance(member: TeamMember, as_of: datetime) -> HistoricalPerformance | None:
    """Summarize rated project history, None when nothing is rated."""
    history = member.availability.project_history
    ratings = [p.performance_rating for p in history if p.performance_rating is not None]
    if not ratings:
        return None

    return HistoricalPerformance(
        average_rating=sum(ratings) / len(ratings),
        completed_projects=sum(1 for p in history if p.end_date and p.end_date < as_of),
        total_projects=len(history),
    )


def effective_availability(
    member: TeamMember,
    as_of: datetime,
) -> tuple[float, float]:
    """Weekly hours a member can give the project on ``as_of``.

    The day schedule, when present, defines the weekly hours. Any active
    full-day time off drops them to zero, and the most recent allocation
    change in effect scales them by its percentage.

    Returns:
        (available_hours, allocation_percentage)
    """
    availability = member.availability

    if availability.schedule:
        hours = sum(day.hours for day in availability.schedule.values() if day.available)
    else:
        hours = availability.base_hours_per_week

    if any(period.full_day and period.covers(as_of) for period in availability.time_off):
        hours = 0.0

    allocation = 100.0
    in_effect = [c for c in availability.allocation_changes if c.effective_date <= as_of]
    if in_effect:
        latest = max(in_effect, key=lambda c: c.effective_date)
        allocation = latest.allocation_percentage
        hours = hours * allocation / 100

    return max(0.0, hours), allocation


def build_profile(
    member: TeamMember,
    as_of: datetime,
) -> WorkerProfile:
    """Build a worker profile from a normalized team member."""
    skills = member.skills or infer_skills_from_role(member.role)
    proficiencies = {
        skill.name: SkillProficiency(
            level=skill.level,
            score=proficiency_score(skill.level),
            count=skill.count,
            projects=list(skill.projects),
        )
        for skill in skills
    }
    hours, allocation = effective_availability(member, as_of)

    return WorkerProfile(
        id=member.id,
        name=member.name,
        roles=list(member.roles),
        skills=proficiencies,
        specialties=determine_specialties(proficiencies),
        weekly_available_hours=hours,
        allocation_percentage=allocation,
        historical_performance=historical_performance(member, as_of),
    )
