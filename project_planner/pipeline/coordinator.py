"""Pipeline coordinator - runs stages in order with checkpointing and resume."""

import asyncio
import copy
import hashlib
import time
from typing import Any, Sequence

import structlog

from project_planner.config import Settings, get_settings
from project_planner.errors import (
    PersistenceError,
    PlannerError,
    RunCancelledError,
    RunInProgressError,
    StageExecutionError,
    UnknownResumeStageError,
)
from project_planner.models.checkpoint import CheckpointSummary
from project_planner.models.enums import EventLevel
from project_planner.models.state import ErrorLogEntry, PipelineState, PlanResult
from project_planner.pipeline.context import RecoveryContext
from project_planner.stages.base import Stage, validate_stages

logger = structlog.get_logger()

_ID_KEYS = ("project_id", "projectId", "id")
_NAME_KEYS = ("project_name", "projectName")


def derive_project_id(project_data: dict[str, Any], now_ms: int | None = None) -> str:
    """Reuse the input's id, or mint one from the project name and time."""
    for key in _ID_KEYS:
        value = project_data.get(key)
        if value:
            return str(value)

    name = next((project_data[k] for k in _NAME_KEYS if project_data.get(k)), "project")
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    digest = hashlib.md5(f"{name}_{now_ms}".encode("utf-8")).hexdigest()
    return f"proj_{digest[:10]}"


class PipelineCoordinator:
    """Orchestrates a fixed list of stages for one project at a time.

    State machine per run::

        not_started -> processing -> completed | failed
        failed -> resuming -> processing -> completed | failed

    Public entry points never raise; failures come back as a ``PlanResult``
    with ``success=False``, an ``error_id`` and a ``resumable`` flag.
    """

    def __init__(
        self,
        stages: Sequence[Stage],
        recovery: RecoveryContext,
        settings: Settings | None = None,
        plan_slot: str = "compiled_plan",
        verification_slot: str = "verification_result",
    ):
        validate_stages(stages)
        self.stages = list(stages)
        self.recovery = recovery
        self.settings = settings or get_settings()
        self.plan_slot = plan_slot
        self.verification_slot = verification_slot

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    # =========================================================================
    # Public entry points
    # =========================================================================

    async def process_project(
        self,
        project_data: dict[str, Any],
        check_resumable: bool = True,
        cancel_event: asyncio.Event | None = None,
    ) -> PlanResult:
        """Plan a project, resuming from a checkpoint when one exists.

        Args:
            project_data: Raw project input
            check_resumable: Set False to always start fresh
            cancel_event: Checked between stages; when set the run stops

        Returns:
            PlanResult describing success or failure
        """
        project_id = None
        try:
            project_id = derive_project_id(project_data)
            async with self.recovery.runs.hold(project_id):
                if check_resumable and await self.recovery.store.has_resumable_state(project_id):
                    logger.info("resumable_state_found", project_id=project_id)
                    return await self._resume(project_id, cancel_event)

                project_input = copy.deepcopy(project_data)
                if not any(project_input.get(k) for k in _ID_KEYS):
                    project_input["project_id"] = project_id

                state = PipelineState(project_id=project_id, project_input=project_input)
                return await self._run(state, 0, cancel_event)
        except Exception as e:
            return await self._failure(project_id, e)

    async def resume_project(
        self,
        project_id: str,
        cancel_event: asyncio.Event | None = None,
    ) -> PlanResult:
        """Continue a project's run from its latest checkpoint."""
        try:
            async with self.recovery.runs.hold(project_id):
                return await self._resume(project_id, cancel_event)
        except Exception as e:
            return await self._failure(project_id, e)

    async def has_resumable_state(self, project_id: str) -> bool:
        """Check whether a project has an unfinished run to resume."""
        return await self.recovery.store.has_resumable_state(project_id)

    async def list_saved_states(self, project_id: str) -> list[CheckpointSummary]:
        """List a project's checkpoints, newest first."""
        try:
            return await self.recovery.store.list_states(project_id)
        except PersistenceError as e:
            await self.recovery.reporter.log_error(e, "list_saved_states", {"project_id": project_id})
            return []

    # =========================================================================
    # Run loop
    # =========================================================================

    async def _resume(
        self,
        project_id: str,
        cancel_event: asyncio.Event | None,
    ) -> PlanResult:
        checkpoint = await self.recovery.store.load_latest_checkpoint(project_id)
        if checkpoint is None:
            raise PersistenceError(
                f"No saved state for project '{project_id}'",
                error_code="NO_SAVED_STATE",
                details={"project_id": project_id},
            )

        state = checkpoint.state
        start_index = self._resume_index(state)
        state.begin_resume()

        logger.info(
            "pipeline_resuming",
            project_id=project_id,
            checkpoint_id=checkpoint.metadata.id,
            last_stage_completed=state.metadata.last_stage_completed,
            start_stage=self.stages[start_index].name if start_index < len(self.stages) else None,
            resume_count=state.metadata.resume_count,
        )
        await self.recovery.reporter.record_event(
            EventLevel.INFO,
            "pipeline resuming",
            {"project_id": project_id, "checkpoint": checkpoint.metadata.id},
        )
        return await self._run(state, start_index, cancel_event)

    def _resume_index(self, state: PipelineState) -> int:
        last = state.metadata.last_stage_completed
        if last is None:
            return 0

        names = self.stage_names
        if last in names:
            return names.index(last) + 1

        if self.settings.resume_unknown_stage == "fail":
            raise UnknownResumeStageError(last)

        logger.warning(
            "resume_stage_unknown",
            project_id=state.project_id,
            stage=last,
            action="restart",
        )
        return 0

    async def _run(
        self,
        state: PipelineState,
        start_index: int,
        cancel_event: asyncio.Event | None,
    ) -> PlanResult:
        state.start()
        logger.info(
            "pipeline_started",
            project_id=state.project_id,
            start_index=start_index,
            stage_count=len(self.stages),
            resume_count=state.metadata.resume_count,
        )

        for stage in self.stages[start_index:]:
            if cancel_event is not None and cancel_event.is_set():
                return await self._cancelled(state, stage.name)

            state.start_stage(stage.name)
            logger.info("stage_started", project_id=state.project_id, stage=stage.name)

            try:
                output = await self.recovery.execute_stage(
                    lambda stage=stage: stage.invoke(state),
                    stage.name,
                    state,
                    stage.retry_config,
                )
            except StageExecutionError as e:
                logger.error(
                    "pipeline_failed",
                    project_id=state.project_id,
                    stage=e.stage,
                    error_id=e.error_id,
                    error=e.message,
                )
                return PlanResult(
                    success=False,
                    project_id=state.project_id,
                    error=e.message,
                    error_code=getattr(e.cause, "error_code", e.error_code),
                    error_id=e.error_id,
                    stage_failed=e.stage,
                    resumable=await self.has_resumable_state(state.project_id),
                )

            state.complete_stage(stage.name, stage.output_slot, output)
            logger.info(
                "stage_completed",
                project_id=state.project_id,
                stage=stage.name,
                duration_ms=state.metadata.stage_timings[stage.name].duration_ms,
            )
            await self.recovery.checkpoint(state, stage.name)

        state.complete()
        await self.recovery.checkpoint(state, "completed")

        logger.info(
            "pipeline_completed",
            project_id=state.project_id,
            resume_count=state.metadata.resume_count,
        )
        return PlanResult(
            success=True,
            project_id=state.project_id,
            plan=state.get(self.plan_slot),
            verification=state.get(self.verification_slot),
            processing_metadata=state.metadata.model_copy(deep=True),
        )

    async def _cancelled(self, state: PipelineState, next_stage: str) -> PlanResult:
        error = RunCancelledError(state.project_id, next_stage)
        error_id = await self.recovery.reporter.log_error(
            error, next_stage, {"project_id": state.project_id}
        )
        state.error_log.append(
            ErrorLogEntry(message=error.message, stage=next_stage, error_id=error_id)
        )
        state.fail()
        await self.recovery.checkpoint(state, "cancelled")

        logger.warning("pipeline_cancelled", project_id=state.project_id, next_stage=next_stage)
        return PlanResult(
            success=False,
            project_id=state.project_id,
            error=error.message,
            error_code=error.error_code,
            error_id=error_id,
            stage_failed=next_stage,
            resumable=await self.has_resumable_state(state.project_id),
        )

    async def _failure(self, project_id: str | None, error: Exception) -> PlanResult:
        if isinstance(error, RunInProgressError):
            logger.warning("pipeline_run_refused", project_id=project_id)
        else:
            logger.error("pipeline_error", project_id=project_id, error=str(error))

        error_id = await self.recovery.reporter.log_error(
            error, "pipeline", {"project_id": project_id}
        )

        resumable = False
        if project_id is not None:
            resumable = await self.has_resumable_state(project_id)

        return PlanResult(
            success=False,
            project_id=project_id,
            error=str(error) or type(error).__name__,
            error_code=error.error_code if isinstance(error, PlannerError) else "INTERNAL_ERROR",
            error_id=error_id,
            resumable=resumable,
        )
