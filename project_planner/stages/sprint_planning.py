"""Sprint planning stage."""

import math
from typing import Any

import structlog

from project_planner.clients.base import GenerationOptions, TextGenerator
from project_planner.errors import ResponseParseError
from project_planner.models.project import ProjectDetails
from project_planner.models.task import ProjectOverview, SprintPlan
from project_planner.stages.generation import generate_model

logger = structlog.get_logger()

STAGE_NAME = "sprint_planning"
SPRINT_WEEKS = 2

SPRINT_PROMPT = """You are an expert sprint planner for agile software development projects.

Create a sprint plan for the following project.

PROJECT: {project_name}
DURATION: {project_timeline} ({sprint_count} sprints of {sprint_weeks} weeks)

SUMMARY:
{summary}

OBJECTIVES:
{objectives}

MILESTONES:
{milestones}

TEAM:
{team}

TECHNOLOGY STACK:
{tech_stack}

REQUIREMENTS:
1. Cover the whole project duration with {sprint_weeks}-week sprints
2. Start with a kickoff sprint and end with a review sprint
3. Give every sprint a goal, key deliverables and focus areas
4. Order the work by dependencies and team skills

Respond with ONLY valid JSON, no other text:
{{
  "sprints": [
    {{
      "sprintNumber": 1,
      "name": "...",
      "goal": "...",
      "durationWeeks": {sprint_weeks},
      "deliverables": ["...", "..."],
      "focusAreas": ["...", "..."]
    }}
  ]
}}"""


def _bullets(items: list[str], empty: str) -> str:
    return "\n".join(f"- {item}" for item in items) if items else empty


def build_sprint_prompt(overview: ProjectOverview, details: ProjectDetails) -> str:
    sprint_count = max(1, math.ceil(details.timeline.duration_days / (SPRINT_WEEKS * 7)))
    team = [
        f"{member.name}: {', '.join(member.roles) or 'Unspecified role'} "
        f"({member.experience} experience)"
        for member in details.team_members
    ]
    return SPRINT_PROMPT.format(
        project_name=details.project_name,
        project_timeline=details.project_timeline,
        sprint_count=sprint_count,
        sprint_weeks=SPRINT_WEEKS,
        summary=overview.summary,
        objectives=_bullets(overview.objectives, "Not specified"),
        milestones=_bullets(overview.milestones, "Not specified"),
        team=_bullets(team, "No team members provided"),
        tech_stack=_bullets(details.tech_stack, "Not specified"),
    )


async def plan_sprints(
    generator: TextGenerator,
    options: GenerationOptions,
    project_overview: dict[str, Any],
    project_details: dict[str, Any],
) -> dict[str, Any]:
    """Generate the sprint plan.

    Raises:
        ResponseParseError: If the reply holds no sprints
    """
    overview = ProjectOverview.model_validate(project_overview)
    details = ProjectDetails.model_validate(project_details)

    plan = await generate_model(
        generator, build_sprint_prompt(overview, details), SprintPlan, options, STAGE_NAME
    )
    if not plan.sprints:
        raise ResponseParseError(
            "Sprint plan reply contains no sprints", details={"stage": STAGE_NAME}
        )

    plan.sprints.sort(key=lambda sprint: sprint.sprint_number)
    plan.total_sprints = len(plan.sprints)
    plan.sprint_duration_weeks = plan.sprints[0].duration_weeks

    logger.info(
        "sprints_planned",
        project_id=details.project_id,
        total_sprints=plan.total_sprints,
    )
    return plan.model_dump(mode="json")
