"""Verification stage: deterministic consistency checks of the compiled plan."""

from typing import Any

import structlog

from project_planner.models.plan import CompiledPlan, VerificationIssue, VerificationResult

logger = structlog.get_logger()

SEVERITY_PENALTY = {"critical": 25, "high": 10, "medium": 5, "low": 1}
SEVERITY_ORDER = ["critical", "high", "medium", "low"]
# Tasks above this many hours should be broken down
MAX_TASK_HOURS = 80


class _Checks:
    def __init__(self):
        self.issues: list[VerificationIssue] = []

    def add(self, check: str, field: str, severity: str, message: str) -> None:
        self.issues.append(
            VerificationIssue(check=check, field=field, severity=severity, message=message)
        )


def check_project(plan: CompiledPlan, checks: _Checks) -> None:
    project = plan.project
    for field in ("name", "description", "timeline"):
        if not getattr(project, field):
            checks.add("project", field, "high", f"Project {field} is missing")
    if not project.tech_stack:
        checks.add("project", "tech_stack", "medium", "No tech stack specified")
    if not project.team_members:
        checks.add("project", "team_members", "high", "No team members specified")
    for index, member in enumerate(project.team_members):
        if not member.roles:
            checks.add(
                "project",
                f"team_members[{index}].roles",
                "medium",
                f"Team member {member.name} is missing roles",
            )


def check_sprints(plan: CompiledPlan, checks: _Checks) -> None:
    if not plan.sprints:
        checks.add("sprints", "sprints", "critical", "No sprints defined in the project plan")
        return

    seen = set()
    for index, sprint in enumerate(plan.sprints):
        if sprint.sprint_number in seen:
            checks.add(
                "sprints",
                f"sprints[{index}].sprint_number",
                "high",
                f"Sprint number {sprint.sprint_number} is used more than once",
            )
        seen.add(sprint.sprint_number)
        if not sprint.goal:
            checks.add(
                "sprints",
                f"sprints[{index}].goal",
                "medium",
                f"Sprint {sprint.sprint_number} has no goal",
            )
        if sprint.is_overallocated:
            checks.add(
                "sprints",
                f"sprints[{index}]",
                "low",
                f"Sprint {sprint.sprint_number} is overallocated",
            )

    planned_days = plan.timeline.total_weeks * 7
    if planned_days > plan.project.duration_days * 1.1:
        checks.add(
            "sprints",
            "timeline",
            "medium",
            f"Sprints span {planned_days:g} days, beyond the "
            f"{plan.project.duration_days} day timeline",
        )


def check_tasks(plan: CompiledPlan, checks: _Checks) -> None:
    if not plan.tasks:
        checks.add("tasks", "tasks", "critical", "No tasks defined in the project plan")
        return

    sprint_numbers = {sprint.sprint_number for sprint in plan.sprints}
    task_ids = {task.id for task in plan.tasks}

    for index, task in enumerate(plan.tasks):
        field = f"tasks[{index}]"
        if not task.title:
            checks.add("tasks", f"{field}.title", "high", f"Task {task.id} is missing a title")
        if task.sprint_number is not None and task.sprint_number not in sprint_numbers:
            checks.add(
                "tasks",
                f"{field}.sprint_number",
                "high",
                f"Task {task.id} references non-existent sprint {task.sprint_number}",
            )
        if task.estimated_hours <= 0:
            checks.add(
                "tasks",
                f"{field}.estimated_hours",
                "medium",
                f"Task {task.id} has invalid estimated hours ({task.estimated_hours:g})",
            )
        elif task.estimated_hours > MAX_TASK_HOURS:
            checks.add(
                "tasks",
                f"{field}.estimated_hours",
                "low",
                f"Task {task.id} has high estimated hours ({task.estimated_hours:g}), "
                "consider breaking it down",
            )
        for dep in task.dependencies:
            if dep not in task_ids:
                checks.add(
                    "tasks",
                    f"{field}.dependencies",
                    "medium",
                    f"Task {task.id} depends on unknown task {dep}",
                )


def check_resources(plan: CompiledPlan, checks: _Checks) -> None:
    workload = plan.resource_allocation.workload
    for task_id in workload.unassigned_tasks:
        checks.add("resources", "unassigned_tasks", "high", f"Task {task_id} has no assignee")
    for subtask_id in workload.unassigned_subtasks:
        checks.add(
            "resources", "unassigned_subtasks", "medium", f"Subtask {subtask_id} has no assignee"
        )
    for stats in workload.worker_stats:
        if stats.is_overallocated:
            checks.add(
                "resources",
                "worker_stats",
                "low",
                f"{stats.name} is at {stats.utilization_percentage}% utilization",
            )
    for gap in plan.resource_allocation.skill_gaps:
        checks.add("resources", "skill_gaps", "low", f"No team member has {gap.skill}")


def verify(plan: CompiledPlan) -> VerificationResult:
    checks = _Checks()
    check_project(plan, checks)
    check_sprints(plan, checks)
    check_tasks(plan, checks)
    check_resources(plan, checks)

    issues = sorted(checks.issues, key=lambda issue: SEVERITY_ORDER.index(issue.severity))
    counts = {severity: 0 for severity in SEVERITY_ORDER}
    for issue in issues:
        counts[issue.severity] += 1

    score = max(0, 100 - sum(SEVERITY_PENALTY[issue.severity] for issue in issues))
    return VerificationResult(
        is_valid=counts["critical"] == 0 and counts["high"] == 0,
        score=score,
        issue_counts=counts,
        issues=issues,
    )


async def verify_plan(compiled_plan: dict[str, Any]) -> dict[str, Any]:
    """Stage entry point."""
    plan = CompiledPlan.model_validate(compiled_plan)
    result = verify(plan)
    logger.info(
        "plan_verified",
        project_id=plan.project.project_id,
        is_valid=result.is_valid,
        score=result.score,
        issues=len(result.issues),
    )
    return result.model_dump(mode="json")
