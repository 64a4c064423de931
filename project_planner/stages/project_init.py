"""Project initialisation stage: validate and normalise the raw project input."""

import hashlib
import re
from typing import Any

import structlog
from pydantic import ValidationError

from project_planner.errors import FatalStageError
from project_planner.models.project import (
    Availability,
    ProjectDetails,
    ProjectHistoryEntry,
    ProjectMetadata,
    Risk,
    Skill,
    TeamMember,
    Timeline,
    default_schedule,
)

logger = structlog.get_logger()

STAGE_NAME = "project_init"

TIMELINE_PATTERN = re.compile(r"^(\d+)\s*(day|week|month|year)s?$", re.IGNORECASE)
DAYS_PER_UNIT = {"day": 1, "week": 7, "month": 30, "year": 365}
MIN_DURATION_DAYS = 7
MAX_DURATION_DAYS = 730

COMPLEX_TECH = (
    "ai",
    "machine learning",
    "blockchain",
    "microservices",
    "kubernetes",
    "distributed systems",
    "real-time",
)
COMPLEXITY_KEYWORDS = (
    "complex",
    "integration",
    "multiple",
    "secure",
    "scalable",
    "high performance",
    "distributed",
)


def _value(data: dict[str, Any], name: str, default: Any = None) -> Any:
    """Read a field given either in snake_case or camelCase."""
    if name in data:
        return data[name]
    head, *rest = name.split("_")
    camel = head + "".join(part.title() for part in rest)
    return data.get(camel, default)


def parse_timeline(timeline: str) -> Timeline:
    """Parse ``N day|week|month|year[s]`` into a duration.

    Raises:
        FatalStageError: If the format is wrong or the duration is outside
            one week to two years
    """
    match = TIMELINE_PATTERN.match(timeline.strip())
    if not match:
        raise FatalStageError(
            f'Invalid project timeline format: "{timeline}". '
            'Expected format: "X days/weeks/months/years"',
            stage=STAGE_NAME,
        )

    value = int(match.group(1))
    unit = match.group(2).lower()
    days = value * DAYS_PER_UNIT[unit]

    if days < MIN_DURATION_DAYS:
        raise FatalStageError(
            f"Project duration too short: {timeline}. Minimum duration is 1 week.",
            stage=STAGE_NAME,
        )
    if days > MAX_DURATION_DAYS:
        raise FatalStageError(
            f"Project duration too long: {timeline}. Maximum duration is 2 years.",
            stage=STAGE_NAME,
        )

    return Timeline(value=value, unit=unit, duration_days=days)


def member_id(name: str, index: int) -> str:
    """Stable id for a member that was given without one."""
    normalized = re.sub(r"[^a-z0-9]", "", name.lower())
    digest = hashlib.md5(f"{name}_{index}".encode()).hexdigest()[:4]
    return f"user-{normalized[:5]}-{digest}"


def skills_from_history(
    skills: list[Skill],
    history: list[ProjectHistoryEntry],
) -> list[Skill]:
    """Merge listed skills with those used in past projects.

    Skills used in more than three past projects become Expert, in more than
    one High.
    """
    merged = {skill.name: skill.model_copy(deep=True) for skill in skills}

    for project in history:
        for name in project.skills:
            skill = merged.setdefault(name, Skill(name=name))
            skill.count += 1
            skill.projects.append(project.project_name)
            if skill.count > 3:
                skill.level = "Expert"
            elif skill.count > 1:
                skill.level = "High"

    return list(merged.values())


def _dated(entries: Any, *required: str) -> list[dict[str, Any]]:
    if not isinstance(entries, list):
        return []
    return [
        entry
        for entry in entries
        if isinstance(entry, dict) and all(_value(entry, key) for key in required)
    ]


def normalize_availability(raw: dict[str, Any], default_hours: float) -> Availability:
    """Build availability from a number of weekly hours or a full mapping."""
    given = raw.get("availability")

    if isinstance(given, dict):
        source = {**raw, **given}
        hours = _value(given, "base_hours_per_week", default_hours)
        schedule = given.get("schedule") or default_schedule(hours)
    else:
        source = raw
        hours = given if isinstance(given, (int, float)) and given >= 0 else default_hours
        schedule = default_schedule(hours)

    return Availability.model_validate(
        {
            "base_hours_per_week": hours,
            "schedule": schedule,
            "time_off": _dated(_value(source, "time_off"), "start", "end"),
            "allocation_changes": _dated(
                _value(source, "allocation_changes"), "effective_date"
            ),
            "project_history": _dated(_value(source, "project_history"), "start_date"),
        }
    )


def normalize_member(raw: dict[str, Any], index: int, default_hours: float) -> TeamMember:
    """Turn one raw team member into a :class:`TeamMember`."""
    name = raw.get("name") or f"Member {index + 1}"
    roles = raw.get("roles") or raw.get("role") or []
    if isinstance(roles, str):
        roles = [roles]

    availability = normalize_availability(raw, default_hours)
    skills = [Skill.coerce(skill) for skill in raw.get("skills") or []]

    return TeamMember(
        id=raw.get("id") or member_id(name, index),
        name=name,
        roles=[role for role in roles if role],
        experience=raw.get("experience") or "Not specified",
        skills=skills_from_history(skills, availability.project_history),
        availability=availability,
        hourly_rate=_value(raw, "hourly_rate"),
    )


def complexity_score(details: ProjectDetails) -> float:
    """Project complexity on a 1-10 scale."""
    score = 0.0

    months = details.timeline.duration_days / 30
    if months <= 1:
        score += 1
    elif months <= 3:
        score += 2
    elif months <= 6:
        score += 3
    elif months <= 12:
        score += 4
    else:
        score += 5

    stack = [tech.lower() for tech in details.tech_stack]
    score += min(3, len(stack) / 2)
    if any(complex_tech in tech for tech in stack for complex_tech in COMPLEX_TECH):
        score += 1

    description = details.project_description.lower()
    hits = sum(1 for keyword in COMPLEXITY_KEYWORDS if keyword in description)
    score += min(2, hits / 2)

    return max(1.0, min(10.0, score))


def recommended_team_size(score: float) -> int:
    if score <= 2:
        return 1
    if score <= 4:
        return 2
    if score <= 6:
        return 3
    if score <= 8:
        return 5
    return 7


async def initialize_project(
    project_input: dict[str, Any],
    default_weekly_hours: float = 40.0,
) -> dict[str, Any]:
    """Validate the raw project input and produce project details.

    Args:
        project_input: Raw project mapping, snake_case or camelCase keys
        default_weekly_hours: Weekly hours for members without availability

    Returns:
        ProjectDetails as a JSON-compatible dict

    Raises:
        FatalStageError: If required fields are missing or malformed
    """
    if not isinstance(project_input, dict):
        raise FatalStageError("Project input must be a mapping", stage=STAGE_NAME)

    missing = [
        field
        for field in ("project_name", "project_timeline")
        if not _value(project_input, field)
    ]
    if missing:
        raise FatalStageError(
            f"Missing required project information: {', '.join(missing)}",
            stage=STAGE_NAME,
            details={"missing": missing},
        )

    raw_members = _value(project_input, "team_members")
    if raw_members is not None and (not isinstance(raw_members, list) or not raw_members):
        raise FatalStageError("Team members must be a non-empty list", stage=STAGE_NAME)
    if raw_members and not all(isinstance(member, dict) for member in raw_members):
        raise FatalStageError("Each team member must be a mapping", stage=STAGE_NAME)

    timeline_text = str(_value(project_input, "project_timeline"))
    timeline = parse_timeline(timeline_text)

    tech_stack = _value(project_input, "tech_stack") or []
    if isinstance(tech_stack, str):
        tech_stack = [tech_stack]

    try:
        members = [
            normalize_member(raw, index, default_weekly_hours)
            for index, raw in enumerate(raw_members or [])
        ]
        details = ProjectDetails(
            project_id=_value(project_input, "project_id") or project_input.get("id"),
            project_name=_value(project_input, "project_name"),
            project_type=_value(project_input, "project_type") or "Not specified",
            project_description=_value(project_input, "project_description")
            or "Not specified",
            project_timeline=timeline_text,
            timeline=timeline,
            team_size=len(members),
            team_members=members,
            tech_stack=[tech for tech in tech_stack if tech],
            priority=project_input.get("priority") or "Medium",
            constraints=project_input.get("constraints") or [],
            metadata=ProjectMetadata(created_by=_value(project_input, "user_id") or "system"),
        )
    except ValidationError as e:
        raise FatalStageError(
            f"Invalid project input: {e.error_count()} validation errors",
            stage=STAGE_NAME,
            details={
                "errors": e.errors(include_url=False, include_context=False, include_input=False)
            },
        ) from e

    if members:
        score = complexity_score(details)
        recommended = recommended_team_size(score)
        details.metadata.complexity_score = score
        details.metadata.recommended_team_size = recommended

        if len(members) < recommended:
            logger.warning(
                "team_size_below_recommended",
                project_id=details.project_id,
                team_size=len(members),
                recommended=recommended,
                complexity_score=score,
            )
            details.risks.append(
                Risk(
                    category="Resource",
                    title="Inadequate Team Size",
                    description=(
                        f"Current team size ({len(members)}) is below the recommended "
                        f"minimum ({recommended}) for a project of this complexity."
                    ),
                    mitigation="Consider adding more team members or reducing project scope.",
                    impact="High",
                    probability="High",
                )
            )

    logger.info(
        "project_initialized",
        project_id=details.project_id,
        team_size=details.team_size,
        duration_days=timeline.duration_days,
    )
    return details.model_dump(mode="json")
