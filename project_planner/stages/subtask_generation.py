"""Subtask generation stage: break large tasks into subtasks."""

from typing import Any

import structlog
from pydantic import Field

from project_planner.clients.base import GenerationOptions, TextGenerator
from project_planner.models.project import PlannerModel
from project_planner.models.task import Subtask, Task
from project_planner.stages.generation import generate_model

logger = structlog.get_logger()

STAGE_NAME = "subtask_generation"

# Tasks shorter than this are not broken down
MIN_TASK_HOURS = 8

SUBTASK_PROMPT = """As a technical project manager, break down the following task into smaller subtasks.

TASK:
Title: {title}
Description: {description}
Category: {category}
Estimated Hours: {hours:g}
Priority: {priority}

REQUIREMENTS:
1. Break the task into 3-7 clearly defined subtasks of 1-4 hours each
2. The subtask hours should add up to roughly the task's hours
3. Give each subtask a category
4. List dependencies by the titles of other subtasks of this task

Respond with ONLY valid JSON, no other text:
{{
  "subtasks": [
    {{
      "title": "...",
      "description": "...",
      "category": "...",
      "estimatedHours": 2,
      "priority": "High|Medium|Low",
      "dependsOn": ["..."]
    }}
  ]
}}"""


class GeneratedSubtask(PlannerModel):
    title: str
    description: str = ""
    category: str = ""
    estimated_hours: float = Field(default=0.0, ge=0)
    priority: str | None = None
    depends_on: list[str] = Field(default_factory=list)


class GeneratedSubtasks(PlannerModel):
    subtasks: list[GeneratedSubtask] = Field(default_factory=list)


def build_subtask_prompt(task: Task) -> str:
    return SUBTASK_PROMPT.format(
        title=task.title,
        description=task.description or "Not specified",
        category=task.category or "Not specified",
        hours=task.estimated_hours,
        priority=task.priority.value if task.priority else "Medium",
    )


def to_subtasks(task: Task, generated: list[GeneratedSubtask]) -> list[Subtask]:
    """Number subtasks ``<task id>.<n>`` and resolve sibling dependencies."""
    ids = [f"{task.id}.{index + 1}" for index in range(len(generated))]
    titles: dict[str, str] = {}
    for item, subtask_id in zip(generated, ids):
        titles.setdefault(item.title.strip().lower(), subtask_id)

    subtasks = []
    for item, subtask_id in zip(generated, ids):
        depends_on = []
        for dep in item.depends_on:
            dep_id = titles.get(dep.strip().lower())
            if dep_id and dep_id != subtask_id and dep_id not in depends_on:
                depends_on.append(dep_id)
        subtasks.append(
            Subtask(
                id=subtask_id,
                parent_task_id=task.id,
                title=item.title,
                description=item.description,
                category=item.category or task.category,
                estimated_hours=item.estimated_hours,
                priority=item.priority,
                sprint_number=task.sprint_number,
                required_role=task.required_role,
                depends_on=depends_on,
            )
        )
    return subtasks


async def generate_subtasks(
    generator: TextGenerator,
    options: GenerationOptions,
    tasks: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Generate subtasks for every task of at least eight hours."""
    parsed = [Task.model_validate(task) for task in tasks or []]
    large = [task for task in parsed if task.estimated_hours >= MIN_TASK_HOURS]

    subtasks: list[Subtask] = []
    for task in large:
        batch = await generate_model(
            generator, build_subtask_prompt(task), GeneratedSubtasks, options, STAGE_NAME
        )
        subtasks.extend(to_subtasks(task, batch.subtasks))

    logger.info("subtasks_generated", tasks_broken_down=len(large), subtasks=len(subtasks))
    return [subtask.model_dump(mode="json") for subtask in subtasks]
