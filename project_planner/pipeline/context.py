"""Recovery context - retry, checkpoint and error reporting services for a run."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

import structlog

from project_planner.config import Settings, get_settings
from project_planner.errors import (
    OperationFailedError,
    PersistenceError,
    RunInProgressError,
    StageExecutionError,
)
from project_planner.models.checkpoint import CheckpointHandle
from project_planner.models.state import PipelineState
from project_planner.pipeline.checkpoint import CheckpointStore, create_checkpoint_store
from project_planner.pipeline.reporter import ErrorReporter
from project_planner.utils.retry import RetryConfig, RetryExecutor

logger = structlog.get_logger()

T = TypeVar("T")


class ProjectRunRegistry:
    """Per-project run locks for this process.

    A project may have at most one active run. Locks are not shared between
    processes.
    """

    def __init__(self):
        self._active: set[str] = set()

    @asynccontextmanager
    async def hold(self, project_id: str) -> AsyncIterator[None]:
        """Hold the run lock for a project.

        Raises:
            RunInProgressError: If another run already holds it
        """
        if project_id in self._active:
            raise RunInProgressError(project_id)
        self._active.add(project_id)
        try:
            yield
        finally:
            self._active.discard(project_id)


class RecoveryContext:
    """Bundle of the services a pipeline run needs to survive failures.

    Built once and passed to every coordinator that should share the same
    checkpoint store and run locks.
    """

    def __init__(
        self,
        store: CheckpointStore,
        reporter: ErrorReporter,
        executor: RetryExecutor | None = None,
        runs: ProjectRunRegistry | None = None,
    ):
        self.store = store
        self.reporter = reporter
        self.executor = executor or RetryExecutor()
        self.runs = runs or ProjectRunRegistry()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> "RecoveryContext":
        """Create a context from application settings."""
        settings = settings or get_settings()
        return cls(
            store=create_checkpoint_store(settings),
            reporter=ErrorReporter(settings.log_dir, settings.event_log_level),
            executor=RetryExecutor(RetryConfig.from_settings(settings), sleep=sleep),
        )

    async def close(self) -> None:
        await self.store.close()

    async def __aenter__(self) -> "RecoveryContext":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def execute_stage(
        self,
        operation: Callable[[], Awaitable[T]],
        stage_name: str,
        state: PipelineState,
        retry_config: RetryConfig | None = None,
    ) -> T:
        """Run a stage operation with retry.

        When the operation fails for good, the error is reported, recorded in
        ``state`` and a ``<stage>_failed`` checkpoint is written before a
        ``StageExecutionError`` is raised.

        Args:
            operation: Zero-argument coroutine function running the stage
            stage_name: Stage name, used as retry context and checkpoint tag
            state: Pipeline state of the run
            retry_config: Stage specific retry policy

        Returns:
            The operation's result

        Raises:
            StageExecutionError: After retries are exhausted or on a fatal error
        """
        try:
            return await self.executor.execute(operation, stage_name, retry_config)
        except OperationFailedError as e:
            error_id = await self.reporter.log_error(
                e.cause,
                stage_name,
                {
                    "project_id": state.project_id,
                    "retries_attempted": e.retries_attempted,
                    "retryable": e.retryable,
                },
            )
            state.fail_stage(stage_name, e.message, error_id)
            state.fail()
            await self.checkpoint(state, f"{stage_name}_failed")
            raise StageExecutionError(
                stage_name, error_id, e.cause, e.retries_attempted
            ) from e.cause

    async def checkpoint(
        self,
        state: PipelineState,
        stage_name: str,
    ) -> CheckpointHandle | None:
        """Save a checkpoint, reporting instead of raising on failure."""
        try:
            return await self.store.save_state(state.project_id, state, stage_name)
        except PersistenceError as e:
            logger.warning(
                "checkpoint_save_failed",
                project_id=state.project_id,
                stage=stage_name,
                error=str(e),
            )
            await self.reporter.log_error(
                e,
                f"checkpoint:{stage_name}",
                {"project_id": state.project_id},
            )
            return None
