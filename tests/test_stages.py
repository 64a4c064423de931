"""Tests for the planning stages and the full default pipeline."""

import asyncio

import pytest

from project_planner.clients.base import GenerationOptions
from project_planner.config import Settings
from project_planner.errors import FatalStageError, ModelNotFoundError, ResponseParseError
from project_planner.main import plan_project
from project_planner.models.enums import Priority
from project_planner.models.task import ProjectOverview, Sprint, Subtask, Task
from project_planner.stages import default_stages
from project_planner.stages.generation import generate_model
from project_planner.stages.priority_assignment import (
    DependencyGraph,
    assign_priorities,
    critical_path,
)
from project_planner.stages.project_init import initialize_project, member_id, parse_timeline
from project_planner.stages.resource_analysis import efficiency_factor, estimate_sprint_effort

from conftest import FakeGenerator


class CannedGenerator:
    def __init__(self, reply):
        self.reply = reply

    async def generate(self, prompt, options=None):
        return self.reply


# =============================================================================
# project_init
# =============================================================================


@pytest.mark.parametrize(
    "text, unit, days",
    [("3 months", "month", 90), ("2 Weeks", "week", 14), ("1 year", "year", 365)],
)
def test_parse_timeline(text, unit, days):
    timeline = parse_timeline(text)
    assert timeline.unit == unit
    assert timeline.duration_days == days


@pytest.mark.parametrize("text", ["soon", "3 days", "3 years", "weeks 2"])
def test_parse_timeline_rejects(text):
    with pytest.raises(FatalStageError) as exc_info:
        parse_timeline(text)
    assert exc_info.value.stage == "project_init"


def test_initialize_normalizes_camel_case_input(project_input):
    details = asyncio.run(initialize_project(project_input))

    assert details["project_id"] == "proj-inventory"
    assert details["timeline"] == {"value": 4, "unit": "week", "duration_days": 28}
    assert details["team_size"] == 2
    alice = details["team_members"][0]
    assert alice["id"] == member_id("Alice Chen", 0)
    assert alice["id"].startswith("user-alice-")
    assert [skill["name"] for skill in alice["skills"]] == ["React", "JavaScript", "CSS"]
    assert alice["availability"]["base_hours_per_week"] == 40
    assert details["risks"] == []


@pytest.mark.parametrize(
    "change",
    [
        {"projectName": None},
        {"projectTimeline": ""},
        {"teamMembers": []},
        {"teamMembers": "Alice"},
        {"teamMembers": ["Alice"]},
    ],
)
def test_initialize_rejects_bad_input(project_input, change):
    project_input.update(change)
    with pytest.raises(FatalStageError):
        asyncio.run(initialize_project(project_input))


def test_project_history_raises_skill_levels(project_input):
    member = project_input["teamMembers"][1]
    member["projectHistory"] = [
        {"projectName": f"Shop {n}", "startDate": "2023-01-01T00:00:00", "skills": ["Node.js"]}
        for n in range(4)
    ] + [{"projectName": "Undated", "skills": ["Go"]}]

    details = asyncio.run(initialize_project(project_input))

    skills = {s["name"]: s for s in details["team_members"][1]["skills"]}
    assert skills["Node.js"]["level"] == "Expert"
    assert skills["Node.js"]["count"] == 4
    assert "Go" not in skills


def test_small_team_for_complex_project_adds_risk(project_input):
    project_input.update(
        projectTimeline="12 months",
        techStack=["React", "Node.js", "Kubernetes", "Kafka", "Redis", "PostgreSQL"],
        projectDescription="Complex integration of secure, scalable services",
        teamMembers=project_input["teamMembers"][:1],
    )

    details = asyncio.run(initialize_project(project_input))

    assert details["metadata"]["recommended_team_size"] > 1
    assert [risk["title"] for risk in details["risks"]] == ["Inadequate Team Size"]


# =============================================================================
# priority_assignment
# =============================================================================


def _tasks():
    return [
        Task(id="T1", title="Schema", estimated_hours=10, sprint_number=1),
        Task(id="T2", title="Handlers", estimated_hours=5, dependencies=["T1"]),
        Task(id="T3", title="Routes", estimated_hours=4, dependencies=["T2", "T9"]),
        Task(id="T4", title="Styles", estimated_hours=8, sprint_number=1),
        Task(id="T5", title="Loop a", estimated_hours=30, dependencies=["T6"]),
        Task(id="T6", title="Loop b", estimated_hours=30, dependencies=["T5"]),
    ]


def test_critical_path_follows_longest_chain():
    tasks = _tasks()
    graph = DependencyGraph(tasks)

    assert graph.depends_on["T3"] == ["T2"]
    assert critical_path(tasks, graph) == ["T1", "T2", "T3"]


def test_critical_path_empty_without_hours():
    tasks = [Task(id="T1", title="Idle"), Task(id="T2", title="Idle", dependencies=["T1"])]
    assert critical_path(tasks, DependencyGraph(tasks)) == []


def test_assign_priorities():
    tasks = [task.model_dump(mode="json") for task in _tasks()]
    subtasks = [
        Subtask(id="T4.1", parent_task_id="T4", title="Palette", estimated_hours=2),
        Subtask(
            id="T4.2",
            parent_task_id="T4",
            title="Buttons",
            estimated_hours=2,
            depends_on=["T4.1"],
        ),
    ]

    result = asyncio.run(
        assign_priorities(tasks, [s.model_dump(mode="json") for s in subtasks])
    )

    assert result["critical_path"] == ["T1", "T2", "T3"]
    assert result["tasks"]["T1"] == Priority.CRITICAL
    assert result["tasks"]["T4"] == Priority.MEDIUM
    assert result["tasks"]["T5"] == Priority.LOW
    assert result["subtasks"] == {"T4.1": "Medium", "T4.2": "High"}


# =============================================================================
# resource_analysis and generation helpers
# =============================================================================


@pytest.mark.parametrize(
    "experience, factor",
    [("1 year", 0.6), ("3 years", 0.8), ("5 yrs", 0.9), ("10 years", 1.0), ("senior", 0.8)],
)
def test_efficiency_factor(experience, factor):
    assert efficiency_factor(experience) == factor


def test_generate_model_extracts_json_from_prose():
    generator = CannedGenerator('Sure! {"summary": "A portal"} Hope this helps.')

    overview = asyncio.run(
        generate_model(generator, "prompt", ProjectOverview, GenerationOptions(), "project_overview")
    )

    assert overview.summary == "A portal"


@pytest.mark.parametrize("reply", ["no json here", '{"objectives": "not a list"}'])
def test_generate_model_rejects_unusable_reply(reply):
    with pytest.raises(ResponseParseError) as exc_info:
        asyncio.run(
            generate_model(
                CannedGenerator(reply), "prompt", ProjectOverview, GenerationOptions(), "overview"
            )
        )
    assert exc_info.value.retryable


def test_default_stages_are_consistent():
    stages = default_stages(FakeGenerator(), Settings())

    assert [stage.name for stage in stages] == [
        "project_init",
        "prompt_engineering",
        "project_overview",
        "sprint_planning",
        "resource_analysis",
        "task_generation",
        "subtask_generation",
        "priority_assignment",
        "worker_assignment",
        "data_compilation",
        "verification",
    ]
    assert stages[-1].output_slot == "verification_result"


def test_sprint_effort_has_overhead():
    assert estimate_sprint_effort(Sprint(sprint_number=1)) == 40
    assert estimate_sprint_effort(Sprint(sprint_number=1, deliverables=["Login"])) == 24


# =============================================================================
# Full pipeline
# =============================================================================


@pytest.fixture
def fast_settings(tmp_path):
    return Settings(data_dir_path=str(tmp_path / "data"), retry_initial_delay=0.0)


def test_plan_project_end_to_end(project_input, fast_settings):
    generator = FakeGenerator()

    result = asyncio.run(plan_project(project_input, settings=fast_settings, generator=generator))

    assert result.success, result.error
    assert generator.calls == [
        "project_overview",
        "sprint_planning",
        "task_generation",
        "task_generation",
        "subtask_generation",
    ]

    plan = result.plan
    assert [sprint["sprint_number"] for sprint in plan["sprints"]] == [1, 2]
    tasks = {task["id"]: task for task in plan["tasks"]}
    assert set(tasks) == {"T1", "T2", "T3"}
    assert tasks["T2"]["dependencies"] == ["T1"]
    assert [s["id"] for s in tasks["T1"]["subtasks"]] == ["T1.1", "T1.2", "T1.3"]
    assert tasks["T1"]["assigned_to"] == "Bob Diaz"
    assert tasks["T2"]["assigned_to"] == "Alice Chen"
    assert plan["critical_path"][0] == "T1"
    assert plan["resource_allocation"]["workload"]["unassigned_tasks"] == []

    verification = result.verification
    assert 0 <= verification["score"] <= 100
    assert set(verification["issue_counts"]) == {"critical", "high", "medium", "low"}


def test_plan_project_retries_unparsable_reply(project_input, fast_settings):
    generator = FakeGenerator({"task_generation": [ResponseParseError("garbled")]})

    result = asyncio.run(plan_project(project_input, settings=fast_settings, generator=generator))

    assert result.success
    assert generator.calls.count("task_generation") == 3


def test_plan_project_resumes_after_fatal_generation_error(project_input, fast_settings):
    failing = FakeGenerator({"sprint_planning": [ModelNotFoundError("gone", model="llama")]})

    first = asyncio.run(plan_project(project_input, settings=fast_settings, generator=failing))

    assert not first.success
    assert first.stage_failed == "sprint_planning"
    assert first.error_code == "MODEL_NOT_FOUND"
    assert first.resumable

    healthy = FakeGenerator()
    second = asyncio.run(plan_project(project_input, settings=fast_settings, generator=healthy))

    assert second.success
    assert "project_overview" not in healthy.calls
    assert second.processing_metadata.resume_count == 1
