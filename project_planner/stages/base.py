"""Stage descriptor for pipeline stages."""

import copy
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from project_planner.errors import FatalStageError, PipelineDefinitionError
from project_planner.models.state import PROJECT_INPUT_SLOT, PipelineState
from project_planner.utils.retry import RetryConfig


@dataclass(frozen=True)
class Stage:
    """One named step of the pipeline.

    ``run`` receives the values of ``inputs`` as positional arguments, in
    order, and returns the value stored under ``output_slot``. Inputs are deep
    copies, so a stage cannot alter what earlier stages produced.
    """

    name: str
    output_slot: str
    run: Callable[..., Awaitable[Any]]
    inputs: tuple[str, ...] = ()
    retry_config: RetryConfig | None = None
    description: str = ""

    def select_inputs(self, state: PipelineState) -> list[Any]:
        """Resolve this stage's inputs from accumulated state."""
        return [copy.deepcopy(state.get(slot)) for slot in self.inputs]

    async def invoke(self, state: PipelineState) -> Any:
        """Run the stage against the current state.

        Raises:
            FatalStageError: If the stage produced no output
        """
        output = await self.run(*self.select_inputs(state))
        if output is None:
            raise FatalStageError(
                f"Stage '{self.name}' produced no value for slot '{self.output_slot}'",
                stage=self.name,
                details={"slot": self.output_slot},
            )
        return output


def validate_stages(stages: Sequence[Stage]) -> None:
    """Check that stage names and slots are unique and inputs look backwards.

    Raises:
        PipelineDefinitionError: If the stage list is inconsistent
    """
    if not stages:
        raise PipelineDefinitionError("Pipeline needs at least one stage")

    names: set[str] = set()
    available = {PROJECT_INPUT_SLOT}

    for stage in stages:
        if stage.name in names:
            raise PipelineDefinitionError(
                f"Duplicate stage name '{stage.name}'",
                details={"stage": stage.name},
            )
        if stage.output_slot in available:
            raise PipelineDefinitionError(
                f"Output slot '{stage.output_slot}' of stage '{stage.name}' is already produced",
                details={"stage": stage.name, "slot": stage.output_slot},
            )
        missing = [slot for slot in stage.inputs if slot not in available]
        if missing:
            raise PipelineDefinitionError(
                f"Stage '{stage.name}' reads slots not produced by earlier stages: {missing}",
                details={"stage": stage.name, "slots": missing},
            )
        names.add(stage.name)
        available.add(stage.output_slot)
