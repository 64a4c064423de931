"""Resource analysis stage: team capacity, sprint feasibility and skill gaps."""

import math
import re
from typing import Any

import structlog

from project_planner.models.plan import (
    MemberCapacity,
    ResourceAnalysis,
    SkillGap,
    SprintAnalysis,
    TeamCapacity,
)
from project_planner.models.project import ProjectDetails, TeamMember
from project_planner.models.task import Sprint, SprintPlan
from project_planner.scheduler.profiles import infer_skills_from_role

logger = structlog.get_logger()

HOURS_PER_DAY = 6
DAYS_PER_SPRINT = 10
DEFAULT_EFFICIENCY = 0.8
HOURS_PER_DELIVERABLE = 8
SPRINT_OVERHEAD_HOURS = 16
DEFAULT_SPRINT_HOURS = 40
# Share of capacity above which a sprint counts as full
FULL_CAPACITY_RATIO = 0.8

YEARS_PATTERN = re.compile(r"(\d+)\s*(?:years?|yrs?)", re.IGNORECASE)

DELIVERABLE_COMPLEXITY_KEYWORDS = (
    "complex",
    "difficult",
    "challenging",
    "integration",
    "security",
    "performance",
    "scale",
    "optimize",
    "refactor",
    "architecture",
)

TECH_SKILLS = {
    "react": ["JavaScript", "React", "Frontend"],
    "react native": ["JavaScript", "React Native", "Mobile Development"],
    "angular": ["TypeScript", "Angular", "Frontend"],
    "vue": ["JavaScript", "Vue", "Frontend"],
    "node.js": ["JavaScript", "Node.js", "Backend"],
    "express": ["JavaScript", "Express", "API"],
    "python": ["Python", "Backend"],
    "django": ["Python", "Django", "Backend"],
    "typescript": ["TypeScript"],
    "mongodb": ["MongoDB", "NoSQL", "Database"],
    "postgresql": ["PostgreSQL", "SQL", "Database"],
    "mysql": ["MySQL", "SQL", "Database"],
    "aws": ["AWS", "Cloud Services", "DevOps"],
    "docker": ["Docker", "DevOps"],
    "kubernetes": ["Kubernetes", "DevOps"],
}


def efficiency_factor(experience: str) -> float:
    """Efficiency by years of experience, 0.8 when unknown."""
    match = YEARS_PATTERN.search(experience or "")
    if not match:
        return DEFAULT_EFFICIENCY
    years = int(match.group(1))
    if years < 2:
        return 0.6
    if years < 4:
        return 0.8
    if years < 8:
        return 0.9
    return 1.0


def team_capacity(members: list[TeamMember]) -> TeamCapacity:
    capacities = []
    for member in members:
        factor = efficiency_factor(member.experience)
        capacities.append(
            MemberCapacity(
                name=member.name,
                roles=list(member.roles),
                experience=member.experience,
                efficiency_factor=factor,
                capacity_per_sprint=math.floor(HOURS_PER_DAY * DAYS_PER_SPRINT * factor),
                skills=[skill.name for skill in member.skills],
            )
        )
    return TeamCapacity(
        total_members=len(members),
        total_capacity_per_sprint=sum(c.capacity_per_sprint for c in capacities),
        member_capacities=capacities,
        hours_per_day=HOURS_PER_DAY,
        days_per_sprint=DAYS_PER_SPRINT,
    )


def estimate_sprint_effort(sprint: Sprint) -> int:
    """Hours a sprint needs, from its deliverables."""
    if not sprint.deliverables:
        return DEFAULT_SPRINT_HOURS

    total = 0.0
    for deliverable in sprint.deliverables:
        text = deliverable.lower()
        complexity = 1.0 + 0.2 * sum(1 for k in DELIVERABLE_COMPLEXITY_KEYWORDS if k in text)
        total += HOURS_PER_DELIVERABLE * min(2.5, complexity)
    return round(total + SPRINT_OVERHEAD_HOURS)


def analyze_sprints(plan: SprintPlan, capacity: TeamCapacity) -> list[SprintAnalysis]:
    available = capacity.total_capacity_per_sprint
    analyses = []
    for sprint in plan.sprints:
        hours = estimate_sprint_effort(sprint)
        utilization = round(hours / available * 100) if available > 0 else 0
        analyses.append(
            SprintAnalysis(
                sprint_number=sprint.sprint_number,
                sprint_name=sprint.name,
                estimated_hours=hours,
                available_capacity=available,
                utilization_percentage=utilization,
                is_overallocated=hours > available * FULL_CAPACITY_RATIO,
                remaining_capacity=max(0, available - hours),
            )
        )
    return analyses


def _covered(skill: str, team_skills: list[str]) -> bool:
    wanted = skill.lower()
    return any(have in wanted or wanted in have for have in team_skills)


def skill_gaps(tech_stack: list[str], members: list[TeamMember]) -> tuple[list[SkillGap], int]:
    """Skills the tech stack needs that nobody on the team has.

    Returns:
        (gaps, coverage percentage)
    """
    team_skills = []
    for member in members:
        skills = member.skills or infer_skills_from_role(member.role)
        team_skills.extend(skill.name.lower() for skill in skills)

    required: dict[str, str] = {}
    for tech in tech_stack:
        for skill in TECH_SKILLS.get(tech.strip().lower(), [tech]):
            required.setdefault(skill, tech)

    gaps = [
        SkillGap(
            skill=skill,
            source=tech,
            mitigation=(
                f"Provide training in {skill} or bring in a contractor with {skill} expertise."
            ),
        )
        for skill, tech in required.items()
        if not _covered(skill, team_skills)
    ]
    coverage = 100 if not required else round((len(required) - len(gaps)) / len(required) * 100)
    return gaps, coverage


async def analyze_resources(
    sprint_plan: dict[str, Any],
    project_details: dict[str, Any],
) -> dict[str, Any]:
    """Stage entry point."""
    plan = SprintPlan.model_validate(sprint_plan)
    details = ProjectDetails.model_validate(project_details)

    capacity = team_capacity(details.team_members)
    sprints = analyze_sprints(plan, capacity)
    gaps, coverage = skill_gaps(details.tech_stack, details.team_members)

    analysis = ResourceAnalysis(
        team_capacity=capacity,
        sprint_analysis=sprints,
        skill_gaps=gaps,
        skill_coverage=coverage,
        is_overallocated=any(s.is_overallocated for s in sprints),
    )
    logger.info(
        "resources_analyzed",
        project_id=details.project_id,
        capacity_per_sprint=capacity.total_capacity_per_sprint,
        overallocated_sprints=sum(1 for s in sprints if s.is_overallocated),
        skill_gaps=len(gaps),
    )
    return analysis.model_dump(mode="json")
