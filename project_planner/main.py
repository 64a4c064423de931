"""Project Planner - command line entry point."""

import asyncio
import json
import logging
import sys

import click
import structlog

from project_planner.clients.base import TextGenerator
from project_planner.clients.ollama_client import OllamaClient
from project_planner.config import Settings, get_settings
from project_planner.models.state import PlanResult
from project_planner.pipeline.config import PlannerConfig, create_example_config, load_config
from project_planner.pipeline.context import RecoveryContext
from project_planner.pipeline.coordinator import PipelineCoordinator
from project_planner.stages.registry import default_stages


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on top of the standard library."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_coordinator(
    generator: TextGenerator,
    settings: Settings,
    config: PlannerConfig | None = None,
    recovery: RecoveryContext | None = None,
) -> PipelineCoordinator:
    """Wire the default stages to a coordinator."""
    if config is None and settings.planner_config_path:
        config = load_config(settings.planner_config_path)
    return PipelineCoordinator(
        stages=default_stages(generator, settings, config),
        recovery=recovery or RecoveryContext.from_settings(settings),
        settings=settings,
    )


async def plan_project(
    project_data: dict,
    settings: Settings | None = None,
    generator: TextGenerator | None = None,
    config: PlannerConfig | None = None,
    resume: bool = True,
) -> PlanResult:
    """Run the planning pipeline once for a project.

    Args:
        project_data: Raw project input
        settings: Application settings (cached settings when omitted)
        generator: Text generator; an Ollama client is created when omitted
        config: YAML planner config; loaded from ``PLANNER_CONFIG`` when omitted
        resume: Continue from a saved checkpoint when one exists

    Returns:
        PlanResult of the run
    """
    settings = settings or get_settings()
    client = None
    if generator is None:
        client = generator = OllamaClient(settings)

    try:
        async with RecoveryContext.from_settings(settings) as recovery:
            coordinator = build_coordinator(generator, settings, config, recovery)
            return await coordinator.process_project(project_data, check_resumable=resume)
    finally:
        if client is not None:
            await client.close()


async def resume_project(project_id: str, settings: Settings | None = None) -> PlanResult:
    """Resume a project's run from its latest checkpoint."""
    settings = settings or get_settings()
    async with OllamaClient(settings) as client:
        async with RecoveryContext.from_settings(settings) as recovery:
            coordinator = build_coordinator(client, settings, recovery=recovery)
            return await coordinator.resume_project(project_id)


async def list_checkpoints(project_id: str, settings: Settings | None = None) -> list[dict]:
    settings = settings or get_settings()
    async with RecoveryContext.from_settings(settings) as recovery:
        summaries = await recovery.store.list_states(project_id)
    return [summary.model_dump(mode="json") for summary in summaries]


@click.group()
def cli():
    """Resumable project planning."""
    configure_logging(get_settings().log_level)


@cli.command()
@click.argument("input_file", type=click.File("r"), default="-")
@click.option("--fresh", is_flag=True, help="Ignore saved checkpoints and start over")
def plan(input_file, fresh: bool):
    """Plan the project described by INPUT_FILE (JSON, '-' for stdin)."""
    try:
        project_data = json.load(input_file)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Input is not valid JSON: {e}") from e

    result = asyncio.run(plan_project(project_data, resume=not fresh))
    click.echo(result.model_dump_json(indent=2))
    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("project_id")
def resume(project_id: str):
    """Resume PROJECT_ID from its latest checkpoint."""
    result = asyncio.run(resume_project(project_id))
    click.echo(result.model_dump_json(indent=2))
    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("project_id")
def checkpoints(project_id: str):
    """List saved checkpoints of PROJECT_ID, newest first."""
    click.echo(json.dumps(asyncio.run(list_checkpoints(project_id)), indent=2))


@cli.command("init-config")
@click.argument("path", type=click.Path(dir_okay=False))
def init_config(path: str):
    """Write an example planner config to PATH."""
    create_example_config(path)
    click.echo(f"Example config written to {path}")


if __name__ == "__main__":
    cli()
