"""Tests for the resource assignment scheduler."""

from datetime import datetime

import pytest

from project_planner.models.enums import Priority
from project_planner.models.project import TeamMember
from project_planner.models.task import PriorityAssignments, Subtask, Task
from project_planner.scheduler import (
    ResourceScheduler,
    SchedulerConfig,
    WorkerProfile,
    WorkloadEntry,
    effective_availability,
    priority_order,
    rebalance_workload,
    utilization,
    workload_stats,
)
from project_planner.scheduler.profiles import SkillProficiency

AS_OF = datetime(2025, 3, 3, 9, 0)


def _member(member_id, name, role, skills, hours=40, **availability):
    return {
        "id": member_id,
        "name": name,
        "roles": [role],
        "skills": [{"name": skill} for skill in skills],
        "availability": {"baseHoursPerWeek": hours, **availability},
    }


TEAM = [
    _member("w1", "Ada", "Backend Developer", ["Node.js", "Database", "API"]),
    _member("w2", "Grace", "Frontend Developer", ["React", "JavaScript", "CSS"]),
]


def _scenario_a():
    hours = [16, 12, 8, 8, 6]
    levels = ["Critical", "High", "Medium", "Medium", "Low"]
    tasks = [
        {"id": f"T{i + 1}", "title": f"Piece {i + 1}", "estimatedHours": h, "sprintNumber": 1}
        for i, h in enumerate(hours)
    ]
    priorities = {"tasks": {f"T{i + 1}": level for i, level in enumerate(levels)}}
    return tasks, priorities


def test_two_workers_five_tasks_all_assigned():
    tasks, priorities = _scenario_a()

    result = ResourceScheduler().assign(tasks, [], priorities, TEAM, as_of=AS_OF)

    summary = result.workload_summary
    assert set(result.task_assignments) == {"T1", "T2", "T3", "T4", "T5"}
    assert summary.unassigned_tasks == []
    assert all(stats.remaining_hours >= 0 for stats in summary.worker_stats)
    assert sum(stats.assigned_hours for stats in summary.worker_stats) == 50


def test_assignment_is_deterministic():
    tasks, priorities = _scenario_a()
    scheduler = ResourceScheduler()

    first = scheduler.assign(tasks, [], priorities, TEAM, as_of=AS_OF)
    second = scheduler.assign(tasks, [], priorities, TEAM, as_of=AS_OF)

    assert first.task_assignments == second.task_assignments
    assert first.workload_summary == second.workload_summary


def test_skills_steer_assignment():
    tasks = [
        {"id": "T1", "title": "Orders api", "category": "Backend", "estimatedHours": 8},
        {"id": "T2", "title": "Checkout page", "category": "Frontend", "estimatedHours": 8},
    ]
    config = SchedulerConfig(rebalance_enabled=False)

    result = ResourceScheduler(config).assign(tasks, [], None, TEAM, as_of=AS_OF)

    assert result.task_assignments == {"T1": "Ada", "T2": "Grace"}


def test_capacity_is_never_exceeded():
    tasks = [
        {"id": f"T{i}", "title": f"Piece {i}", "estimatedHours": 15} for i in range(1, 8)
    ]

    result = ResourceScheduler().assign(tasks, [], None, TEAM, as_of=AS_OF)

    summary = result.workload_summary
    for stats in summary.worker_stats:
        assert stats.assigned_hours <= stats.available_hours
        assert stats.remaining_hours >= 0
    assert len(result.task_assignments) + len(summary.unassigned_tasks) == 7
    assert len(summary.unassigned_tasks) == 3
    assert [w.kind for w in summary.warnings] == ["task"] * 3


def test_oversized_task_is_reported_unassigned():
    tasks = [{"id": "T1", "title": "Huge piece", "estimatedHours": 50}]

    result = ResourceScheduler().assign(tasks, [], None, TEAM, as_of=AS_OF)

    assert result.task_assignments == {}
    assert result.workload_summary.unassigned_tasks == ["T1"]
    assert result.workload_summary.warnings[0].estimated_hours == 50


def test_subtasks_stay_with_parent_assignee():
    tasks = [{"id": "T1", "title": "Orders api", "category": "Backend", "estimatedHours": 8}]
    subtasks = [
        {"id": "T1.1", "parentTaskId": "T1", "title": "Schema", "estimatedHours": 2},
        {"id": "T1.2", "parentTaskId": "T1", "title": "Handlers", "estimatedHours": 2},
    ]
    config = SchedulerConfig(rebalance_enabled=False)

    result = ResourceScheduler(config).assign(tasks, subtasks, None, TEAM, as_of=AS_OF)

    owner = result.task_assignments["T1"]
    assert result.subtask_assignments == {"T1.1": owner, "T1.2": owner}


def test_subtask_moves_on_when_parent_owner_is_full():
    team = [TEAM[0], _member("w2", "Grace", "Backend Developer", ["Node.js"], hours=40)]
    tasks = [{"id": "T1", "title": "Orders api", "category": "Backend", "estimatedHours": 40}]
    subtasks = [{"id": "T1.1", "parentTaskId": "T1", "title": "Schema", "estimatedHours": 4}]
    config = SchedulerConfig(rebalance_enabled=False)

    result = ResourceScheduler(config).assign(tasks, subtasks, None, team, as_of=AS_OF)

    assert result.task_assignments["T1"] != result.subtask_assignments["T1.1"]


def test_worker_on_leave_gets_nothing():
    team = [
        TEAM[0],
        _member(
            "w2",
            "Grace",
            "Backend Developer",
            ["Node.js", "Database", "API"],
            timeOff=[{"start": "2025-03-01T00:00:00", "end": "2025-03-10T00:00:00"}],
        ),
    ]
    tasks = [
        {"id": f"T{i}", "title": "Orders api", "category": "Backend", "estimatedHours": 4}
        for i in range(1, 4)
    ]

    result = ResourceScheduler().assign(tasks, [], None, team, as_of=AS_OF)

    assert set(result.task_assignments.values()) == {"Ada"}
    grace = result.workload_summary.worker_stats[1]
    assert grace.available_hours == 0
    assert grace.utilization_percentage == 0


def test_effective_availability_applies_latest_allocation_change():
    member = TeamMember.model_validate(
        _member(
            "w1",
            "Ada",
            "Backend Developer",
            [],
            allocationChanges=[
                {"effectiveDate": "2025-01-01T00:00:00", "allocationPercentage": 75},
                {"effectiveDate": "2025-02-01T00:00:00", "allocationPercentage": 50},
                {"effectiveDate": "2025-06-01T00:00:00", "allocationPercentage": 10},
            ],
        )
    )

    assert effective_availability(member, AS_OF) == (20.0, 50.0)


def test_priority_order():
    tasks = [
        Task(id="a", title="a", estimated_hours=2, sprint_number=2),
        Task(id="b", title="b", estimated_hours=2),
        Task(id="c", title="c", estimated_hours=8, sprint_number=2),
        Task(id="d", title="d", estimated_hours=1, sprint_number=1),
        Task(id="e", title="e", estimated_hours=3, sprint_number=1, priority="High"),
    ]
    levels = {"a": Priority.CRITICAL}

    ordered = priority_order(tasks, levels)

    assert [t.id for t in ordered] == ["a", "e", "d", "c", "b"]


@pytest.mark.parametrize(
    "assigned, available, expected",
    [(20, 40, 50), (50, 40, 100), (0, 0, 0), (5, 0, 100), (1, 3, 33)],
)
def test_utilization(assigned, available, expected):
    assert utilization(assigned, available) == expected


def _entry(worker_id, items, capacity=60.0, subtasks=()):
    profile = WorkerProfile(
        id=worker_id,
        name=worker_id.upper(),
        roles=["Developer"],
        skills={"General": SkillProficiency(level="Medium", score=0.7)},
        specialties=["General"],
        weekly_available_hours=capacity,
    )
    entry = WorkloadEntry.for_profile(profile)
    for item_id, hours in items:
        entry.assign(item_id, hours, "task")
    for item_id, hours in subtasks:
        entry.assign(item_id, hours, "subtask")
    return entry


def test_rebalancing_narrows_the_spread():
    entries = {
        "a": _entry("a", [(f"A{i}", 10.0) for i in range(1, 5)]),
        "b": _entry("b", [("B1", 4.0)]),
        "c": _entry("c", [("C1", 16.0)]),
    }
    held = [(f"A{i}", 10.0) for i in range(1, 5)] + [("B1", 4.0), ("C1", 16.0)]
    tasks = [
        Task(id=item_id, title=f"Work item {item_id.lower()}", estimated_hours=hours)
        for item_id, hours in held
    ]
    task_owner = {
        item_id: worker_id
        for worker_id, entry in entries.items()
        for item_id in entry.assigned_task_ids
    }
    priorities = PriorityAssignments(tasks={task.id: Priority.LOW for task in tasks})
    before = workload_stats(entries.values())

    report = rebalance_workload(
        entries, tasks, [], task_owner, {}, priorities, SchedulerConfig()
    )

    assert report.rebalanced
    assert report.stats_after.std_dev < before.std_dev
    assert [entries[w].assigned_hours for w in "abc"] == [20.0, 24.0, 16.0]
    assert task_owner["A1"] == "b" and task_owner["A2"] == "b"
    for entry in entries.values():
        assert entry.remaining_hours >= 0


def test_moved_task_takes_its_held_subtasks_along():
    entries = {
        "a": _entry("a", [("A1", 10.0), ("A2", 12.0)], subtasks=[("A1.1", 4.0), ("A1.2", 4.0)]),
        "b": _entry("b", [("B1", 4.0)], subtasks=[("A1.3", 2.0)]),
    }
    tasks = [
        Task(id="A1", title="Work item a1", estimated_hours=10),
        Task(id="A2", title="Work item a2", estimated_hours=12),
        Task(id="B1", title="Work item b1", estimated_hours=4),
    ]
    subtasks = [
        Subtask(id=f"A1.{n}", parent_task_id="A1", title=f"Part {n}", estimated_hours=hours)
        for n, hours in ((1, 4), (2, 4), (3, 2))
    ]
    task_owner = {"A1": "a", "A2": "a", "B1": "b"}
    subtask_owner = {"A1.1": "a", "A1.2": "a", "A1.3": "b"}
    priorities = PriorityAssignments(
        tasks={"A1": Priority.LOW, "A2": Priority.HIGH, "B1": Priority.LOW}
    )
    before = workload_stats(entries.values())

    report = rebalance_workload(
        entries, tasks, subtasks, task_owner, subtask_owner, priorities, SchedulerConfig()
    )

    assert task_owner == {"A1": "b", "A2": "a", "B1": "b"}
    assert subtask_owner == {"A1.1": "b", "A1.2": "b", "A1.3": "b"}
    assert [(m.item_id, m.kind) for m in report.moves] == [
        ("A1", "task"),
        ("A1.1", "subtask"),
        ("A1.2", "subtask"),
    ]
    assert [entries[w].assigned_hours for w in "ab"] == [12.0, 24.0]
    assert entries["b"].assigned_subtask_ids == ["A1.3", "A1.1", "A1.2"]
    assert report.stats_after.std_dev < before.std_dev
    for entry in entries.values():
        assert entry.remaining_hours >= 0


def test_single_subtasks_move_when_tasks_cannot():
    held = [("S1", 1.0), ("S2", 3.0), ("S3", 5.0), ("S4", 4.0)]
    entries = {
        "a": _entry("a", [("A1", 20.0)], subtasks=held),
        "b": _entry("b", [("B1", 3.0)]),
    }
    tasks = [
        Task(id="A1", title="Work item a1", estimated_hours=20),
        Task(id="B1", title="Work item b1", estimated_hours=3),
    ]
    titles = {"S1": "Fix typo", "S2": "Add index", "S3": "Write migration", "S4": "Core schema"}
    subtasks = [
        Subtask(id=sid, parent_task_id="A1", title=titles[sid], estimated_hours=hours)
        for sid, hours in held
    ]
    task_owner = {"A1": "a", "B1": "b"}
    subtask_owner = {sid: "a" for sid, _ in held}
    priorities = PriorityAssignments(tasks={"A1": Priority.HIGH, "B1": Priority.LOW})
    before = workload_stats(entries.values())

    report = rebalance_workload(
        entries, tasks, subtasks, task_owner, subtask_owner, priorities, SchedulerConfig()
    )

    # S1 is under the two hour minimum and S4 is core work
    assert subtask_owner == {"S1": "a", "S2": "b", "S3": "b", "S4": "a"}
    assert task_owner == {"A1": "a", "B1": "b"}
    assert [m.kind for m in report.moves] == ["subtask", "subtask"]
    assert [entries[w].assigned_hours for w in "ab"] == [25.0, 11.0]
    assert report.stats_after.std_dev < before.std_dev
    for entry in entries.values():
        assert entry.remaining_hours >= 0


def test_critical_work_is_not_rebalanced():
    entries = {
        "a": _entry("a", [(f"A{i}", 10.0) for i in range(1, 5)]),
        "b": _entry("b", [("B1", 4.0)]),
    }
    tasks = [Task(id=f"A{i}", title=f"Work item a{i}", estimated_hours=10) for i in range(1, 5)]
    tasks.append(Task(id="B1", title="Work item b1", estimated_hours=4))
    priorities = PriorityAssignments(tasks={task.id: Priority.HIGH for task in tasks})
    task_owner = {f"A{i}": "a" for i in range(1, 5)} | {"B1": "b"}

    report = rebalance_workload(
        entries, tasks, [], task_owner, {}, priorities, SchedulerConfig()
    )

    assert not report.rebalanced
    assert entries["a"].assigned_hours == 40


def test_rebalancing_can_be_disabled():
    tasks, priorities = _scenario_a()
    config = SchedulerConfig(rebalance_enabled=False)

    result = ResourceScheduler(config).assign(tasks, [], priorities, TEAM, as_of=AS_OF)

    assert result.workload_summary.rebalanced is False
    assert result.workload_summary.stats_before_rebalance == result.workload_summary.stats_after_rebalance
