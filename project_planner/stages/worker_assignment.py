"""Worker assignment stage."""

from typing import Any

import structlog

from project_planner.models.project import ProjectDetails
from project_planner.scheduler.assigner import ResourceScheduler

logger = structlog.get_logger()


async def assign_workers(
    scheduler: ResourceScheduler,
    tasks: list[dict[str, Any]],
    subtasks: list[dict[str, Any]],
    priorities: dict[str, Any],
    project_details: dict[str, Any],
) -> dict[str, Any]:
    """Run the scheduler over the generated work and the project team."""
    details = ProjectDetails.model_validate(project_details)
    result = scheduler.assign(tasks or [], subtasks or [], priorities, details.team_members)

    summary = result.workload_summary
    logger.info(
        "workers_assigned",
        project_id=details.project_id,
        tasks_assigned=len(result.task_assignments),
        subtasks_assigned=len(result.subtask_assignments),
        unassigned_tasks=len(summary.unassigned_tasks),
        unassigned_subtasks=len(summary.unassigned_subtasks),
    )
    return result.model_dump(mode="json")
