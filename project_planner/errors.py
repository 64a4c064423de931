"""Error types for the planning pipeline.

Every error raised by the planner derives from ``PlannerError`` and carries an
``error_code`` plus a ``details`` mapping. ``retryable`` is read by the retry
executor when classifying a failure.
"""

from typing import Any


class PlannerError(Exception):
    """Base planner error."""

    error_code: str = "PLANNER_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        if retryable is not None:
            self.retryable = retryable
        self.details = details or {}


class TransientExternalError(PlannerError):
    """Failure of an external collaborator that is worth retrying."""

    error_code = "TRANSIENT_EXTERNAL"
    retryable = True


# =============================================================================
# Text generation
# =============================================================================


class TextGenerationError(PlannerError):
    """Base error for the text-generation service."""

    error_code = "GENERATION_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        provider: str = "ollama",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details=details)
        self.status_code = status_code
        self.provider = provider


class GenerationNetworkError(TextGenerationError, TransientExternalError):
    """Could not reach the text-generation service."""

    error_code = "NETWORK_ERROR"


class GenerationTimeoutError(TextGenerationError, TransientExternalError):
    """Generation did not finish before the call deadline."""

    error_code = "TIMEOUT"


class ServiceUnavailableError(TextGenerationError, TransientExternalError):
    """Service answered with a 5xx or 429 status."""

    error_code = "SERVER_ERROR"


class EmptyResponseError(TextGenerationError, TransientExternalError):
    """Service answered without any generated text."""

    error_code = "EMPTY_RESPONSE"


class ModelNotFoundError(TextGenerationError):
    """Requested model is not available on the service."""

    error_code = "MODEL_NOT_FOUND"

    def __init__(self, message: str, model: str, status_code: int | None = 404):
        super().__init__(message, status_code=status_code, details={"model": model})
        self.model = model


class MalformedRequestError(TextGenerationError):
    """Service rejected the request as invalid."""

    error_code = "MALFORMED_REQUEST"


class ResponseParseError(TransientExternalError):
    """Generated text could not be parsed into the expected structure."""

    error_code = "RESPONSE_PARSE_ERROR"


# =============================================================================
# Pipeline
# =============================================================================


class FatalStageError(PlannerError):
    """A stage found its input unusable. Never retried."""

    error_code = "FATAL_STAGE_ERROR"

    def __init__(self, message: str, stage: str, details: dict[str, Any] | None = None):
        super().__init__(message, details=details)
        self.stage = stage


class PersistenceError(PlannerError):
    """Checkpoint could not be read or written."""

    error_code = "PERSISTENCE_ERROR"


class PipelineDefinitionError(PlannerError):
    """Stage list is inconsistent (duplicate names or forward references)."""

    error_code = "PIPELINE_DEFINITION_ERROR"


class UnknownResumeStageError(PlannerError):
    """Checkpoint names a stage that is not part of the pipeline."""

    error_code = "UNKNOWN_RESUME_STAGE"

    def __init__(self, stage_name: str):
        super().__init__(
            f"Checkpoint refers to unknown stage '{stage_name}'",
            details={"stage": stage_name},
        )
        self.stage_name = stage_name


class OperationFailedError(PlannerError):
    """An operation failed after the retry executor gave up.

    The original exception is kept in ``cause`` and chained as ``__cause__``.
    """

    error_code = "OPERATION_FAILED"

    def __init__(
        self,
        cause: BaseException,
        retries_attempted: int,
        retry_context: str,
        retryable: bool,
    ):
        super().__init__(
            str(cause) or type(cause).__name__,
            details={"context": retry_context, "retries_attempted": retries_attempted},
            retryable=retryable,
        )
        self.cause = cause
        self.retries_attempted = retries_attempted
        self.retry_context = retry_context


class StageExecutionError(PlannerError):
    """A stage failed for good. Carries the reporter's error id."""

    error_code = "STAGE_FAILED"

    def __init__(
        self,
        stage: str,
        error_id: str,
        cause: BaseException,
        retries_attempted: int = 0,
    ):
        super().__init__(
            str(cause) or type(cause).__name__,
            details={"stage": stage, "error_id": error_id},
        )
        self.stage = stage
        self.error_id = error_id
        self.cause = cause
        self.retries_attempted = retries_attempted


class RunInProgressError(PlannerError):
    """Another run already holds the lock for this project."""

    error_code = "RUN_IN_PROGRESS"

    def __init__(self, project_id: str):
        super().__init__(
            f"A pipeline run for project '{project_id}' is already in progress",
            details={"project_id": project_id},
        )
        self.project_id = project_id


class RunCancelledError(PlannerError):
    """The run was cancelled between stages."""

    error_code = "RUN_CANCELLED"

    def __init__(self, project_id: str, next_stage: str):
        super().__init__(
            f"Run for project '{project_id}' cancelled before stage '{next_stage}'",
            details={"project_id": project_id, "next_stage": next_stage},
        )
        self.project_id = project_id
        self.next_stage = next_stage
