"""Tests for the pipeline coordinator: runs, failures and resumes."""

import asyncio

import pytest

from project_planner.config import Settings
from project_planner.errors import (
    FatalStageError,
    GenerationNetworkError,
    PersistenceError,
    PipelineDefinitionError,
)
from project_planner.models.enums import PipelineStatus
from project_planner.models.state import PipelineState
from project_planner.pipeline.checkpoint import FileCheckpointStore
from project_planner.pipeline.coordinator import PipelineCoordinator, derive_project_id
from project_planner.stages.base import Stage


class StepRecorder:
    """Builds stage functions that count calls and can fail on demand."""

    def __init__(self):
        self.calls: dict[str, int] = {}
        self.failures: dict[str, list[Exception]] = {}

    def step(self, name, produce):
        async def run(*inputs):
            self.calls[name] = self.calls.get(name, 0) + 1
            pending = self.failures.get(name)
            if pending:
                raise pending.pop(0)
            return produce(*inputs)

        return run


def _stages(recorder):
    return [
        Stage(
            name="load",
            output_slot="loaded",
            run=recorder.step("load", lambda project: {"name": project["project_name"]}),
            inputs=("project_input",),
        ),
        Stage(
            name="expand",
            output_slot="expanded",
            run=recorder.step("expand", lambda loaded: {**loaded, "size": 3}),
            inputs=("loaded",),
        ),
        Stage(
            name="finish",
            output_slot="plan",
            run=recorder.step("finish", lambda loaded, expanded: {"plan": [loaded, expanded]}),
            inputs=("loaded", "expanded"),
        ),
    ]


def _coordinator(recovery, recorder, settings=None, stages=None):
    return PipelineCoordinator(
        stages or _stages(recorder),
        recovery,
        settings=settings or Settings(),
        plan_slot="plan",
        verification_slot="expanded",
    )


PROJECT = {"project_id": "proj-1", "project_name": "Demo"}


def test_derive_project_id():
    assert derive_project_id({"id": 42}) == "42"
    assert derive_project_id({"projectId": "abc"}) == "abc"

    minted = derive_project_id({"projectName": "Demo"}, now_ms=1700000000000)
    assert minted.startswith("proj_")
    assert minted == derive_project_id({"project_name": "Demo"}, now_ms=1700000000000)


def test_stage_definitions_are_validated():
    recorder = StepRecorder()
    stages = _stages(recorder)
    with pytest.raises(PipelineDefinitionError):
        PipelineCoordinator(list(reversed(stages)), recovery=None)
    with pytest.raises(PipelineDefinitionError):
        PipelineCoordinator(stages + [stages[0]], recovery=None)


def test_successful_run(recovery):
    recorder = StepRecorder()
    coordinator = _coordinator(recovery, recorder)

    result = asyncio.run(coordinator.process_project(PROJECT))

    assert result.success
    assert result.project_id == "proj-1"
    assert result.plan == {"plan": [{"name": "Demo"}, {"name": "Demo", "size": 3}]}
    assert result.verification == {"name": "Demo", "size": 3}
    assert set(result.processing_metadata.stage_timings) == {"load", "expand", "finish"}
    assert asyncio.run(coordinator.has_resumable_state("proj-1")) is False

    summaries = asyncio.run(coordinator.list_saved_states("proj-1"))
    assert [s.stage_name for s in summaries] == ["completed", "finish", "expand", "load"]


def test_retryable_failure_recovers_within_stage(recovery, sleep):
    recorder = StepRecorder()
    recorder.failures["expand"] = [GenerationNetworkError("down"), GenerationNetworkError("down")]
    coordinator = _coordinator(recovery, recorder)

    result = asyncio.run(coordinator.process_project(PROJECT))

    assert result.success
    assert recorder.calls["expand"] == 3
    assert result.processing_metadata.stage_timings["expand"].failed is False
    assert result.processing_metadata.resume_count == 0
    assert sleep.delays == [1.0, 1.5]


def test_fatal_failure_stops_with_failed_checkpoint(recovery):
    recorder = StepRecorder()
    recorder.failures["expand"] = [FatalStageError("bad input", stage="expand")]
    coordinator = _coordinator(recovery, recorder)

    result = asyncio.run(coordinator.process_project(PROJECT))

    assert not result.success
    assert result.stage_failed == "expand"
    assert result.error_code == "FATAL_STAGE_ERROR"
    assert result.error_id.startswith("err_")
    assert result.resumable is True
    assert recorder.calls == {"load": 1, "expand": 1}

    checkpoint = asyncio.run(recovery.store.load_latest_checkpoint("proj-1"))
    assert checkpoint.metadata.stage_name == "expand_failed"
    assert checkpoint.state.status == PipelineStatus.FAILED
    assert checkpoint.state.error_log[-1].error_id == result.error_id
    assert checkpoint.state.metadata.stage_timings["expand"].failed is True


def test_stage_without_output_fails_the_run(recovery):
    recorder = StepRecorder()
    stages = _stages(recorder)
    stages[1] = Stage(
        name="expand",
        output_slot="expanded",
        run=recorder.step("expand", lambda loaded: None),
        inputs=("loaded",),
    )
    coordinator = _coordinator(recovery, recorder, stages=stages)

    result = asyncio.run(coordinator.process_project(PROJECT))

    assert not result.success
    assert result.stage_failed == "expand"
    assert result.error_code == "FATAL_STAGE_ERROR"
    assert result.resumable is True
    assert recorder.calls == {"load": 1, "expand": 1}

    checkpoint = asyncio.run(recovery.store.load_latest_checkpoint("proj-1"))
    assert checkpoint.metadata.stage_name == "expand_failed"
    assert checkpoint.state.status == PipelineStatus.FAILED
    assert checkpoint.state.get("expanded") is None
    assert checkpoint.state.metadata.last_stage_completed == "load"


def test_completed_run_has_every_slot_filled(recovery):
    recorder = StepRecorder()
    coordinator = _coordinator(recovery, recorder)

    asyncio.run(coordinator.process_project(PROJECT))

    checkpoint = asyncio.run(recovery.store.load_latest_checkpoint("proj-1"))
    assert checkpoint.state.status == PipelineStatus.COMPLETED
    for stage in coordinator.stages:
        assert checkpoint.state.get(stage.output_slot) is not None


def test_resume_continues_after_last_completed_stage(recovery):
    recorder = StepRecorder()
    recorder.failures["finish"] = [FatalStageError("not yet", stage="finish")]
    coordinator = _coordinator(recovery, recorder)

    first = asyncio.run(coordinator.process_project(PROJECT))
    second = asyncio.run(coordinator.process_project(PROJECT))

    assert not first.success and first.resumable
    assert second.success
    assert recorder.calls == {"load": 1, "expand": 1, "finish": 2}
    assert second.processing_metadata.resume_count == 1
    assert second.plan == {"plan": [{"name": "Demo"}, {"name": "Demo", "size": 3}]}


def test_fresh_run_ignores_checkpoint(recovery):
    recorder = StepRecorder()
    recorder.failures["finish"] = [FatalStageError("not yet", stage="finish")]
    coordinator = _coordinator(recovery, recorder)

    asyncio.run(coordinator.process_project(PROJECT))
    result = asyncio.run(coordinator.process_project(PROJECT, check_resumable=False))

    assert result.success
    assert recorder.calls["load"] == 2
    assert result.processing_metadata.resume_count == 0


def test_resume_without_checkpoint_fails_cleanly(recovery):
    result = asyncio.run(_coordinator(recovery, StepRecorder()).resume_project("ghost"))

    assert not result.success
    assert result.error_code == "NO_SAVED_STATE"
    assert result.resumable is False


def _save_unknown_stage_checkpoint(recovery):
    state = PipelineState(project_id="proj-1", project_input=dict(PROJECT))
    state.start()
    state.complete_stage("retired_stage", "loaded", {"name": "Old"})
    state.fail()
    asyncio.run(recovery.store.save_state("proj-1", state, "retired_stage"))


def test_unknown_resume_stage_restarts_by_default(recovery):
    _save_unknown_stage_checkpoint(recovery)
    recorder = StepRecorder()

    result = asyncio.run(_coordinator(recovery, recorder).resume_project("proj-1"))

    assert result.success
    assert recorder.calls == {"load": 1, "expand": 1, "finish": 1}
    assert result.plan["plan"][0] == {"name": "Demo"}


def test_unknown_resume_stage_can_fail(recovery):
    _save_unknown_stage_checkpoint(recovery)
    recorder = StepRecorder()
    settings = Settings(resume_unknown_stage="fail")

    result = asyncio.run(_coordinator(recovery, recorder, settings).resume_project("proj-1"))

    assert not result.success
    assert result.error_code == "UNKNOWN_RESUME_STAGE"
    assert recorder.calls == {}


def test_concurrent_run_for_same_project_is_refused(recovery):
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_load(project):
        started.set()
        await release.wait()
        return {"name": project["project_name"]}

    recorder = StepRecorder()
    stages = _stages(recorder)
    stages[0] = Stage(
        name="load", output_slot="loaded", run=slow_load, inputs=("project_input",)
    )
    coordinator = _coordinator(recovery, recorder, stages=stages)

    async def scenario():
        first = asyncio.create_task(coordinator.process_project(PROJECT))
        await started.wait()
        second = await coordinator.process_project(PROJECT)
        release.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert first.success
    assert not second.success
    assert second.error_code == "RUN_IN_PROGRESS"
    assert second.error_id


def test_cancel_between_stages_keeps_run_resumable(recovery):
    cancel = asyncio.Event()
    recorder = StepRecorder()
    stages = _stages(recorder)

    async def load_then_cancel(project):
        cancel.set()
        return {"name": project["project_name"]}

    stages[0] = Stage(
        name="load", output_slot="loaded", run=load_then_cancel, inputs=("project_input",)
    )
    coordinator = _coordinator(recovery, recorder, stages=stages)

    result = asyncio.run(coordinator.process_project(PROJECT, cancel_event=cancel))

    assert not result.success
    assert result.error_code == "RUN_CANCELLED"
    assert result.stage_failed == "expand"
    assert result.resumable is True
    assert "expand" not in recorder.calls

    resumed = asyncio.run(coordinator.process_project(PROJECT))
    assert resumed.success
    assert recorder.calls == {"expand": 1, "finish": 1}


class BrokenStore(FileCheckpointStore):
    async def save_state(self, project_id, state, stage_name):
        raise PersistenceError("disk unavailable")


def test_persistence_failure_does_not_fail_the_run(tmp_path, recovery):
    recovery.store = BrokenStore(tmp_path / "state")
    recorder = StepRecorder()

    result = asyncio.run(_coordinator(recovery, recorder).process_project(PROJECT))

    assert result.success
    assert list((tmp_path / "logs").glob("error_*.log"))


def test_stage_inputs_are_copies(recovery):
    async def mutate(loaded):
        loaded["name"] = "changed"
        return {"ok": True}

    recorder = StepRecorder()
    stages = _stages(recorder)
    stages[1] = Stage(name="expand", output_slot="expanded", run=mutate, inputs=("loaded",))

    result = asyncio.run(_coordinator(recovery, recorder, stages=stages).process_project(PROJECT))

    assert result.plan == {"plan": [{"name": "Demo"}, {"ok": True}]}
