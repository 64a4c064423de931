"""Structured generation helper shared by the LLM-backed stages."""

import re
from typing import TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from project_planner.clients.base import GenerationOptions, TextGenerator
from project_planner.errors import ResponseParseError

logger = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)

JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


async def generate_model(
    generator: TextGenerator,
    prompt: str,
    model: type[M],
    options: GenerationOptions,
    stage: str,
) -> M:
    """Ask the generator for JSON and validate it into ``model``.

    Raises:
        ResponseParseError: If the reply holds no JSON object matching ``model``
    """
    reply = await generator.generate(prompt, options)

    match = JSON_BLOCK.search(reply)
    if not match:
        logger.warning("no_json_in_response", stage=stage, response_preview=reply[:200])
        raise ResponseParseError(
            f"Reply for stage '{stage}' contains no JSON object",
            details={"stage": stage},
        )

    try:
        return model.model_validate_json(match.group())
    except ValidationError as e:
        logger.warning(
            "json_parse_failed",
            stage=stage,
            errors=e.error_count(),
            response_preview=reply[:200],
        )
        raise ResponseParseError(
            f"Reply for stage '{stage}' does not match {model.__name__}",
            details={"stage": stage, "errors": e.error_count()},
        ) from e
