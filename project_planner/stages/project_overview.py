"""Project overview stage."""

from typing import Any

import structlog

from project_planner.clients.base import GenerationOptions, TextGenerator
from project_planner.models.plan import EngineeredPrompt
from project_planner.models.task import ProjectOverview
from project_planner.stages.generation import generate_model

logger = structlog.get_logger()

STAGE_NAME = "project_overview"


async def generate_overview(
    generator: TextGenerator,
    options: GenerationOptions,
    engineered_prompt: dict[str, Any],
) -> dict[str, Any]:
    """Generate the project overview from the engineered prompt."""
    prompt = EngineeredPrompt.model_validate(engineered_prompt)
    overview = await generate_model(
        generator, prompt.overview_prompt, ProjectOverview, options, STAGE_NAME
    )
    logger.info(
        "overview_generated",
        project_id=prompt.project_id,
        objectives=len(overview.objectives),
        milestones=len(overview.milestones),
    )
    return overview.model_dump(mode="json")
