"""The planning pipeline: stage order, slots and per-stage policies."""

from functools import partial

from project_planner.clients.base import GenerationOptions, TextGenerator
from project_planner.config import Settings, get_settings
from project_planner.models.state import PROJECT_INPUT_SLOT
from project_planner.pipeline.config import PlannerConfig
from project_planner.scheduler.assigner import ResourceScheduler
from project_planner.scheduler.config import SchedulerConfig
from project_planner.stages.base import Stage
from project_planner.stages.data_compilation import compile_plan
from project_planner.stages.priority_assignment import assign_priorities
from project_planner.stages.project_init import initialize_project
from project_planner.stages.project_overview import generate_overview
from project_planner.stages.prompt_engineering import engineer_prompt
from project_planner.stages.resource_analysis import analyze_resources
from project_planner.stages.sprint_planning import plan_sprints
from project_planner.stages.subtask_generation import generate_subtasks
from project_planner.stages.task_generation import generate_tasks
from project_planner.stages.verification import verify_plan
from project_planner.stages.worker_assignment import assign_workers

# Default temperature per generation stage
STAGE_TEMPERATURES = {
    "project_overview": 0.5,
    "sprint_planning": 0.5,
    "task_generation": 0.6,
    "subtask_generation": 0.7,
}


def generation_options(
    stage: str,
    settings: Settings,
    config: PlannerConfig,
) -> GenerationOptions:
    """Generation options for a stage, YAML overrides first."""
    override = config.stage(stage)
    temperature = STAGE_TEMPERATURES.get(stage, settings.llm_temperature)
    max_tokens = settings.llm_max_tokens
    if override is not None:
        if override.temperature is not None:
            temperature = override.temperature
        if override.max_tokens is not None:
            max_tokens = override.max_tokens
    return GenerationOptions(
        temperature=temperature,
        max_tokens=max_tokens,
        response_format="json",
    )


def default_stages(
    generator: TextGenerator,
    settings: Settings | None = None,
    config: PlannerConfig | None = None,
) -> list[Stage]:
    """Build the eleven planning stages in declared order.

    Args:
        generator: Text generator used by the overview, sprint, task and
            subtask stages
        settings: Application settings (cached settings when omitted)
        config: Optional YAML planner config with stage overrides and
            scheduler tuning

    Returns:
        Stages ready for a PipelineCoordinator
    """
    settings = settings or get_settings()
    if config is None:
        config = PlannerConfig(scheduler=SchedulerConfig.from_settings(settings))

    scheduler = ResourceScheduler(config.scheduler)

    def options(stage: str) -> GenerationOptions:
        return generation_options(stage, settings, config)

    def retry(stage: str):
        override = config.stage(stage)
        return override.to_retry_config() if override else None

    definitions = [
        (
            "project_init",
            "project_details",
            partial(initialize_project, default_weekly_hours=settings.default_weekly_hours),
            (PROJECT_INPUT_SLOT,),
            "Validate and normalise the project input",
        ),
        (
            "prompt_engineering",
            "engineered_prompt",
            engineer_prompt,
            ("project_details",),
            "Build the overview prompt",
        ),
        (
            "project_overview",
            "project_overview",
            partial(generate_overview, generator, options("project_overview")),
            ("engineered_prompt",),
            "Generate the project overview",
        ),
        (
            "sprint_planning",
            "sprint_plan",
            partial(plan_sprints, generator, options("sprint_planning")),
            ("project_overview", "project_details"),
            "Generate the sprint plan",
        ),
        (
            "resource_analysis",
            "resource_analysis",
            analyze_resources,
            ("sprint_plan", "project_details"),
            "Check team capacity and skill coverage",
        ),
        (
            "task_generation",
            "tasks",
            partial(generate_tasks, generator, options("task_generation")),
            ("sprint_plan", "resource_analysis"),
            "Generate tasks per sprint",
        ),
        (
            "subtask_generation",
            "subtasks",
            partial(generate_subtasks, generator, options("subtask_generation")),
            ("tasks",),
            "Break large tasks into subtasks",
        ),
        (
            "priority_assignment",
            "priorities",
            assign_priorities,
            ("tasks", "subtasks"),
            "Assign priorities from the dependency graph",
        ),
        (
            "worker_assignment",
            "assignments",
            partial(assign_workers, scheduler),
            ("tasks", "subtasks", "priorities", "project_details"),
            "Assign tasks and subtasks to team members",
        ),
        (
            "data_compilation",
            "compiled_plan",
            compile_plan,
            (
                "project_details",
                "project_overview",
                "sprint_plan",
                "resource_analysis",
                "tasks",
                "subtasks",
                "priorities",
                "assignments",
            ),
            "Compile the final plan",
        ),
        (
            "verification",
            "verification_result",
            verify_plan,
            ("compiled_plan",),
            "Check the plan for consistency",
        ),
    ]

    return [
        Stage(
            name=name,
            output_slot=slot,
            run=run,
            inputs=inputs,
            retry_config=retry(name),
            description=description,
        )
        for name, slot, run, inputs, description in definitions
    ]
