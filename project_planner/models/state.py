"""Pipeline state and run result models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python

from project_planner.models.enums import PipelineStatus

PROJECT_INPUT_SLOT = "project_input"


class StageTiming(BaseModel):
    """Timing for one stage execution."""

    start_time: datetime
    end_time: datetime | None = None
    duration_ms: int | None = None
    failed: bool = False


class ErrorLogEntry(BaseModel):
    """One entry in the run's error log."""

    timestamp: datetime = Field(default_factory=datetime.now)
    message: str
    stage: str | None = None
    error_id: str | None = None


class ProcessingMetadata(BaseModel):
    """Run bookkeeping that survives a resume."""

    start_time: datetime | None = None
    end_time: datetime | None = None
    last_stage_completed: str | None = None
    stage_timings: dict[str, StageTiming] = Field(default_factory=dict)
    resume_count: int = 0


class PipelineState(BaseModel):
    """Accumulated state of a single project's pipeline run.

    ``values`` maps each stage's output slot to the JSON-compatible value it
    produced. The raw input is kept separately in ``project_input`` and is
    addressed by stages through the reserved ``project_input`` slot.
    """

    project_id: str
    status: PipelineStatus = Field(default=PipelineStatus.NOT_STARTED)
    project_input: dict[str, Any] = Field(default_factory=dict)
    values: dict[str, Any] = Field(default_factory=dict)
    error_log: list[ErrorLogEntry] = Field(default_factory=list)
    metadata: ProcessingMetadata = Field(default_factory=ProcessingMetadata)

    def get(self, slot: str) -> Any:
        """Read a slot, ``None`` when nothing has been stored yet."""
        if slot == PROJECT_INPUT_SLOT:
            return self.project_input
        return self.values.get(slot)

    def start(self) -> None:
        """Mark run as processing."""
        self.status = PipelineStatus.PROCESSING
        if self.metadata.start_time is None:
            self.metadata.start_time = datetime.now()
        self.metadata.end_time = None

    def begin_resume(self) -> None:
        """Mark a restored state as resuming."""
        self.status = PipelineStatus.RESUMING
        self.metadata.resume_count += 1
        self.metadata.end_time = None

    def start_stage(self, stage: str) -> None:
        """Open a timing record for a stage."""
        self.metadata.stage_timings[stage] = StageTiming(start_time=datetime.now())

    def complete_stage(self, stage: str, slot: str, output: Any) -> None:
        """Store a stage's output and close its timing record."""
        self.values[slot] = to_jsonable_python(output)
        self.metadata.last_stage_completed = stage
        self._close_timing(stage, failed=False)

    def fail_stage(self, stage: str, message: str, error_id: str | None) -> None:
        """Record a stage failure in the error log and timings."""
        self.error_log.append(
            ErrorLogEntry(message=message, stage=stage, error_id=error_id)
        )
        self._close_timing(stage, failed=True)

    def complete(self) -> None:
        """Mark run as completed."""
        self.status = PipelineStatus.COMPLETED
        self.metadata.end_time = datetime.now()

    def fail(self) -> None:
        """Mark run as failed."""
        self.status = PipelineStatus.FAILED
        self.metadata.end_time = datetime.now()

    def _close_timing(self, stage: str, failed: bool) -> None:
        timing = self.metadata.stage_timings.get(stage)
        if timing is None:
            timing = StageTiming(start_time=datetime.now())
            self.metadata.stage_timings[stage] = timing
        timing.end_time = datetime.now()
        timing.duration_ms = int(
            (timing.end_time - timing.start_time).total_seconds() * 1000
        )
        timing.failed = failed


class PlanResult(BaseModel):
    """Outcome of a pipeline run as returned to callers."""

    success: bool
    project_id: str | None = None

    # Success
    plan: dict[str, Any] | None = None
    verification: dict[str, Any] | None = None
    processing_metadata: ProcessingMetadata | None = None

    # Failure
    error: str | None = None
    error_code: str | None = None
    error_id: str | None = None
    stage_failed: str | None = None
    resumable: bool = False
