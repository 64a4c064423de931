"""Task generation stage: one generation call per sprint."""

from typing import Any

import structlog
from pydantic import Field

from project_planner.clients.base import GenerationOptions, TextGenerator
from project_planner.models.plan import ResourceAnalysis, SprintAnalysis
from project_planner.models.project import PlannerModel
from project_planner.models.task import Sprint, SprintPlan, Task
from project_planner.stages.generation import generate_model

logger = structlog.get_logger()

STAGE_NAME = "task_generation"

TASK_PROMPT = """As a technical project manager, generate detailed tasks for the following sprint.

SPRINT {sprint_number}: {sprint_name}
Goal: {goal}

KEY DELIVERABLES:
{deliverables}

TEAM CAPACITY:
{capacity}

RESOURCE CONSTRAINTS:
{constraints}

REQUIREMENTS:
1. Create tasks that achieve the sprint goal and deliverables
2. Include development, testing and documentation work
3. Estimate hours for each task (most tasks between 2 and 16 hours)
4. Give each task a category (Frontend, Backend, Design, Testing, DevOps, Documentation)
5. List dependencies by the titles of other tasks in this sprint

Respond with ONLY valid JSON, no other text:
{{
  "tasks": [
    {{
      "title": "...",
      "description": "...",
      "category": "...",
      "estimatedHours": 8,
      "priority": "High|Medium|Low",
      "requiredRole": "...",
      "dependencies": ["..."]
    }}
  ]
}}"""


class GeneratedTask(PlannerModel):
    title: str
    description: str = ""
    category: str = ""
    estimated_hours: float = Field(default=0.0, ge=0)
    priority: str | None = None
    required_role: str | None = None
    dependencies: list[str] = Field(default_factory=list)


class GeneratedTasks(PlannerModel):
    tasks: list[GeneratedTask] = Field(default_factory=list)


def build_task_prompt(
    sprint: Sprint,
    analysis: ResourceAnalysis,
    sprint_analysis: SprintAnalysis | None,
) -> str:
    deliverables = "\n".join(f"- {d}" for d in sprint.deliverables) or "Not specified"
    capacity = "\n".join(
        f"- {member.name}: {member.capacity_per_sprint} hours "
        f"({', '.join(member.roles) or 'Unspecified role'})"
        for member in analysis.team_capacity.member_capacities
    ) or "Not specified"

    if sprint_analysis and sprint_analysis.is_overallocated:
        constraints = (
            f"This sprint is overallocated at {sprint_analysis.utilization_percentage}% utilization."
        )
    else:
        constraints = "This sprint has adequate resources."

    return TASK_PROMPT.format(
        sprint_number=sprint.sprint_number,
        sprint_name=sprint.name,
        goal=sprint.goal or "Not specified",
        deliverables=deliverables,
        capacity=capacity,
        constraints=constraints,
    )


def _resolve_dependencies(
    generated: list[GeneratedTask],
    ids: list[str],
    known: dict[str, str],
) -> list[list[str]]:
    """Map dependency titles (or ids) onto task ids, dropping unknown ones."""
    resolved = []
    for task, task_id in zip(generated, ids):
        deps = []
        for dep in task.dependencies:
            dep_id = known.get(dep.strip().lower()) or (dep if dep in ids else None)
            if dep_id and dep_id != task_id and dep_id not in deps:
                deps.append(dep_id)
        resolved.append(deps)
    return resolved


async def generate_tasks(
    generator: TextGenerator,
    options: GenerationOptions,
    sprint_plan: dict[str, Any],
    resource_analysis: dict[str, Any],
) -> list[dict[str, Any]]:
    """Generate tasks for every sprint, numbered ``T1``, ``T2``, ..."""
    plan = SprintPlan.model_validate(sprint_plan)
    analysis = ResourceAnalysis.model_validate(resource_analysis)
    by_sprint = {a.sprint_number: a for a in analysis.sprint_analysis}

    generated: list[GeneratedTask] = []
    sprint_numbers: list[int] = []
    for sprint in plan.sprints:
        prompt = build_task_prompt(sprint, analysis, by_sprint.get(sprint.sprint_number))
        batch = await generate_model(generator, prompt, GeneratedTasks, options, STAGE_NAME)
        generated.extend(batch.tasks)
        sprint_numbers.extend([sprint.sprint_number] * len(batch.tasks))
        logger.debug(
            "sprint_tasks_generated",
            sprint_number=sprint.sprint_number,
            tasks=len(batch.tasks),
        )

    ids = [f"T{index + 1}" for index in range(len(generated))]
    titles: dict[str, str] = {}
    for task, task_id in zip(generated, ids):
        titles.setdefault(task.title.strip().lower(), task_id)
    dependencies = _resolve_dependencies(generated, ids, titles)

    tasks = [
        Task(
            id=task_id,
            title=task.title,
            description=task.description,
            estimated_hours=task.estimated_hours,
            priority=task.priority,
            category=task.category,
            dependencies=deps,
            sprint_number=sprint_number,
            required_role=task.required_role,
        )
        for task, task_id, deps, sprint_number in zip(generated, ids, dependencies, sprint_numbers)
    ]

    logger.info(
        "tasks_generated",
        tasks=len(tasks),
        sprints=len(plan.sprints),
        total_hours=sum(t.estimated_hours for t in tasks),
    )
    return [task.model_dump(mode="json") for task in tasks]
