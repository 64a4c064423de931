"""Prompt engineering stage: build the overview prompt from project details."""

from datetime import datetime
from typing import Any

import structlog

from project_planner.models.plan import EngineeredPrompt
from project_planner.models.project import ProjectDetails
from project_planner.scheduler.profiles import effective_availability

logger = structlog.get_logger()

WEEKS_PER_UNIT = {"day": 1 / 7, "week": 1.0, "month": 4.33, "year": 52.0}

OVERVIEW_PROMPT = """You are an expert project manager with years of experience running software projects.

# PROJECT DETAILS
- Project Name: {project_name}
- Project ID: {project_id}
- Project Type: {project_type}
- Project Timeline: {project_timeline}
- Project Priority: {priority}
- Tech Stack: {tech_stack}

# TEAM COMPOSITION
Total Team Size: {team_size}
Total Available Man-Hours: {total_man_hours} hours
{team_section}

# PROJECT DESCRIPTION
{project_description}
{constraints_section}
# TASK
Write a high level overview of this project for the team: a short summary,
the main objectives, what is in scope, the key milestones that fit the
{project_timeline} timeline, and the main risks.

Respond with ONLY valid JSON, no other text:
{{
  "summary": "...",
  "objectives": ["...", "..."],
  "scope": ["...", "..."],
  "milestones": ["...", "..."],
  "risks": ["...", "..."]
}}"""


def total_man_hours(details: ProjectDetails, as_of: datetime | None = None) -> int:
    """Available hours of the whole team over the project timeline."""
    as_of = as_of or datetime.now()
    weeks = details.timeline.value * WEEKS_PER_UNIT[details.timeline.unit]
    weekly = sum(effective_availability(member, as_of)[0] for member in details.team_members)
    return round(weekly * weeks)


def _team_section(details: ProjectDetails, as_of: datetime) -> str:
    lines = []
    for member in details.team_members:
        hours, allocation = effective_availability(member, as_of)
        skills = ", ".join(skill.name for skill in member.skills) or "Not specified"
        lines.append(
            f"- {member.name}\n"
            f"  - Roles: {', '.join(member.roles) or 'Not specified'}\n"
            f"  - Experience: {member.experience}\n"
            f"  - Skills: {skills}\n"
            f"  - Availability: {hours:g} hours/week, {allocation:g}% allocated to this project"
        )
    return "\n".join(lines)


def build_overview_prompt(details: ProjectDetails, as_of: datetime | None = None) -> EngineeredPrompt:
    as_of = as_of or datetime.now()
    man_hours = total_man_hours(details, as_of)

    constraints = ""
    if details.constraints:
        constraints = "\n# CONSTRAINTS\n" + "\n".join(f"- {c}" for c in details.constraints) + "\n"

    prompt = OVERVIEW_PROMPT.format(
        project_name=details.project_name,
        project_id=details.project_id,
        project_type=details.project_type,
        project_timeline=details.project_timeline,
        priority=details.priority,
        tech_stack=", ".join(details.tech_stack) or "Not specified",
        team_size=details.team_size,
        total_man_hours=man_hours,
        team_section=_team_section(details, as_of),
        project_description=details.project_description,
        constraints_section=constraints,
    )
    return EngineeredPrompt(
        project_id=details.project_id,
        overview_prompt=prompt,
        total_man_hours=man_hours,
    )


async def engineer_prompt(project_details: dict[str, Any]) -> dict[str, Any]:
    """Stage entry point."""
    details = ProjectDetails.model_validate(project_details)
    engineered = build_overview_prompt(details)
    logger.info(
        "prompt_engineered",
        project_id=details.project_id,
        prompt_chars=len(engineered.overview_prompt),
        total_man_hours=engineered.total_man_hours,
    )
    return engineered.model_dump(mode="json")
