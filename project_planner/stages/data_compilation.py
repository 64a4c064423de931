"""Data compilation stage: assemble the final plan."""

from datetime import datetime
from typing import Any

import structlog

from project_planner.models.assignment import AssignmentResult
from project_planner.models.plan import (
    CompiledPlan,
    PlannedSprint,
    PlannedTask,
    PlanSummary,
    PlanTimeline,
    ResourceAllocation,
    ResourceAnalysis,
    TimelineEvent,
)
from project_planner.models.project import ProjectDetails, Risk
from project_planner.models.task import (
    PriorityAssignments,
    ProjectOverview,
    SprintPlan,
    Subtask,
    Task,
)

logger = structlog.get_logger()

PLAN_VERSION = "1.0.0"


def compile_sprints(plan: SprintPlan, analysis: ResourceAnalysis) -> list[PlannedSprint]:
    by_number = {a.sprint_number: a for a in analysis.sprint_analysis}
    sprints = []
    for sprint in plan.sprints:
        sprint_analysis = by_number.get(sprint.sprint_number)
        sprints.append(
            PlannedSprint(
                **sprint.model_dump(),
                estimated_effort=sprint_analysis.estimated_hours if sprint_analysis else None,
                resource_utilization=(
                    sprint_analysis.utilization_percentage if sprint_analysis else None
                ),
                is_overallocated=sprint_analysis.is_overallocated if sprint_analysis else False,
            )
        )
    return sprints


def compile_tasks(
    tasks: list[Task],
    subtasks: list[Subtask],
    priorities: PriorityAssignments,
    assignments: AssignmentResult,
) -> list[PlannedTask]:
    """Tasks with their final priority, assignee and nested subtasks."""
    compiled = []
    for task in tasks:
        children = [
            subtask.model_copy(
                update={
                    "priority": priorities.subtasks.get(subtask.id, subtask.priority),
                }
            )
            for subtask in subtasks
            if subtask.parent_task_id == task.id
        ]
        compiled.append(
            PlannedTask(
                **task.model_dump(exclude={"priority"}),
                priority=priorities.tasks.get(task.id, task.priority),
                assigned_to=assignments.task_assignments.get(task.id),
                subtasks=children,
            )
        )
    return compiled


def compile_risks(
    details: ProjectDetails,
    overview: ProjectOverview,
    analysis: ResourceAnalysis,
) -> list[Risk]:
    risks = list(details.risks)
    for text in overview.risks:
        risks.append(Risk(category="Project", title=text, description=text))
    for gap in analysis.skill_gaps:
        risks.append(
            Risk(
                category="Skill Gap",
                title=f"Missing skill: {gap.skill}",
                description=f"{gap.source} requires {gap.skill}, which no team member lists.",
                mitigation=gap.mitigation,
                probability="High",
            )
        )
    for sprint in analysis.sprint_analysis:
        if sprint.is_overallocated:
            risks.append(
                Risk(
                    category="Resource",
                    title=f"Sprint {sprint.sprint_number} overallocated",
                    description=(
                        f"Estimated effort is {sprint.utilization_percentage}% of team capacity."
                    ),
                    mitigation="Move deliverables to a later sprint or add capacity.",
                )
            )
    return risks


def compile_timeline(plan: SprintPlan) -> PlanTimeline:
    events = []
    week = 0.0
    for sprint in plan.sprints:
        events.append(
            TimelineEvent(
                week=week,
                type="sprint_start",
                title=f"{sprint.name or f'Sprint {sprint.sprint_number}'} Start",
                sprint_number=sprint.sprint_number,
            )
        )
        week += sprint.duration_weeks
        events.append(
            TimelineEvent(
                week=week,
                type="sprint_end",
                title=f"{sprint.name or f'Sprint {sprint.sprint_number}'} End",
                sprint_number=sprint.sprint_number,
            )
        )
    return PlanTimeline(total_weeks=week, events=events)


async def compile_plan(
    project_details: dict[str, Any],
    project_overview: dict[str, Any],
    sprint_plan: dict[str, Any],
    resource_analysis: dict[str, Any],
    tasks: list[dict[str, Any]],
    subtasks: list[dict[str, Any]],
    priorities: dict[str, Any],
    assignments: dict[str, Any],
) -> dict[str, Any]:
    """Stage entry point."""
    details = ProjectDetails.model_validate(project_details)
    overview = ProjectOverview.model_validate(project_overview)
    plan = SprintPlan.model_validate(sprint_plan)
    analysis = ResourceAnalysis.model_validate(resource_analysis)
    parsed_tasks = [Task.model_validate(task) for task in tasks or []]
    parsed_subtasks = [Subtask.model_validate(subtask) for subtask in subtasks or []]
    levels = PriorityAssignments.model_validate(priorities or {})
    assigned = AssignmentResult.model_validate(assignments or {})

    utilizations = [s.utilization_percentage for s in analysis.sprint_analysis]
    compiled = CompiledPlan(
        project=PlanSummary(
            project_id=details.project_id,
            name=details.project_name,
            type=details.project_type,
            description=details.project_description,
            timeline=details.project_timeline,
            duration_days=details.timeline.duration_days,
            priority=details.priority,
            tech_stack=details.tech_stack,
            team_members=details.team_members,
            summary=overview.summary,
            objectives=overview.objectives,
            scope=overview.scope,
            milestones=overview.milestones,
        ),
        sprints=compile_sprints(plan, analysis),
        tasks=compile_tasks(parsed_tasks, parsed_subtasks, levels, assigned),
        risks=compile_risks(details, overview, analysis),
        timeline=compile_timeline(plan),
        resource_allocation=ResourceAllocation(
            average_sprint_utilization=(
                round(sum(utilizations) / len(utilizations)) if utilizations else 0
            ),
            overallocated_sprints=sum(1 for s in analysis.sprint_analysis if s.is_overallocated),
            total_sprints=len(analysis.sprint_analysis),
            skill_gaps=analysis.skill_gaps,
            workload=assigned.workload_summary,
        ),
        critical_path=levels.critical_path,
        metadata={
            "generated_at": datetime.now().isoformat(),
            "plan_version": PLAN_VERSION,
        },
    )

    logger.info(
        "plan_compiled",
        project_id=details.project_id,
        sprints=len(compiled.sprints),
        tasks=len(compiled.tasks),
        risks=len(compiled.risks),
    )
    return compiled.model_dump(mode="json")
