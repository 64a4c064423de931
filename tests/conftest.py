"""Shared test fixtures."""

import json
import re

import pytest

from project_planner.config import Settings
from project_planner.pipeline.checkpoint import FileCheckpointStore
from project_planner.pipeline.context import RecoveryContext
from project_planner.pipeline.reporter import ErrorReporter
from project_planner.utils.retry import RetryConfig, RetryExecutor


class RecordingSleep:
    """Stands in for asyncio.sleep and keeps the requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


OVERVIEW_REPLY = {
    "summary": "Internal portal for tracking warehouse stock.",
    "objectives": ["Track stock levels", "Alert on shortages"],
    "scope": ["Stock dashboard", "Alerts"],
    "milestones": ["Dashboard ready", "Alerts live"],
    "risks": ["Supplier data arrives late"],
}

SPRINT_REPLY = {
    "sprints": [
        {
            "sprintNumber": 2,
            "name": "Alerts",
            "goal": "Notify buyers of shortages",
            "durationWeeks": 2,
            "deliverables": ["Shortage alerts"],
            "focusAreas": ["Backend"],
        },
        {
            "sprintNumber": 1,
            "name": "Dashboard",
            "goal": "Show stock levels",
            "durationWeeks": 2,
            "deliverables": ["Stock dashboard", "Server integration"],
            "focusAreas": ["Frontend", "Backend"],
        },
    ]
}

TASK_REPLIES = {
    1: {
        "tasks": [
            {
                "title": "Set up server routes",
                "description": "Backend api for stock levels",
                "category": "Backend",
                "estimatedHours": 12,
                "priority": "High",
                "requiredRole": "Backend Developer",
            },
            {
                "title": "Stock page",
                "description": "React frontend page listing stock",
                "category": "Frontend",
                "estimatedHours": 6,
                "priority": "Medium",
                "requiredRole": "Frontend Developer",
                "dependencies": ["Set up server routes"],
            },
        ]
    },
    2: {
        "tasks": [
            {
                "title": "Shortage alerts",
                "description": "Send alerts when stock runs low",
                "category": "Backend",
                "estimatedHours": 4,
                "priority": "Low",
                "dependencies": ["Set up server routes"],
            }
        ]
    },
}

SUBTASK_REPLY = {
    "subtasks": [
        {"title": "Define schema", "category": "Backend", "estimatedHours": 4},
        {
            "title": "Write handlers",
            "category": "Backend",
            "estimatedHours": 4,
            "dependsOn": ["Define schema"],
        },
        {
            "title": "Wire routes",
            "category": "Backend",
            "estimatedHours": 4,
            "dependsOn": ["Write handlers"],
        },
    ]
}


class FakeGenerator:
    """Text generator answering each planning prompt with canned JSON.

    ``failures`` maps a stage name to exceptions raised, in order, before the
    canned reply is returned.
    """

    def __init__(self, failures: dict[str, list[Exception]] | None = None):
        self.failures = {stage: list(errors) for stage, errors in (failures or {}).items()}
        self.calls: list[str] = []

    def _stage(self, prompt: str) -> str:
        if "expert project manager" in prompt:
            return "project_overview"
        if "expert sprint planner" in prompt:
            return "sprint_planning"
        if "generate detailed tasks" in prompt:
            return "task_generation"
        return "subtask_generation"

    async def generate(self, prompt: str, options=None) -> str:
        stage = self._stage(prompt)
        self.calls.append(stage)

        pending = self.failures.get(stage)
        if pending:
            raise pending.pop(0)

        if stage == "project_overview":
            reply = OVERVIEW_REPLY
        elif stage == "sprint_planning":
            reply = SPRINT_REPLY
        elif stage == "task_generation":
            sprint = int(re.search(r"SPRINT (\d+):", prompt).group(1))
            reply = TASK_REPLIES[sprint]
        else:
            reply = SUBTASK_REPLY
        return "Here is the plan:\n" + json.dumps(reply)


@pytest.fixture
def project_input():
    return {
        "projectId": "proj-inventory",
        "projectName": "Inventory Portal",
        "projectTimeline": "4 weeks",
        "projectType": "Web Application",
        "projectDescription": "Internal portal for tracking warehouse stock",
        "techStack": ["React", "Node.js", "PostgreSQL"],
        "teamMembers": [
            {
                "name": "Alice Chen",
                "roles": ["Frontend Developer"],
                "experience": "5 years",
                "skills": [{"name": "React", "level": "Expert"}, "JavaScript", "CSS"],
                "availability": 40,
            },
            {
                "name": "Bob Diaz",
                "roles": ["Backend Developer"],
                "experience": "3 years",
                "skills": ["Node.js", "Database", "API", "PostgreSQL"],
                "availability": 40,
            },
        ],
    }


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir_path=str(tmp_path / "data"))


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def recovery(tmp_path, sleep):
    return RecoveryContext(
        store=FileCheckpointStore(tmp_path / "state"),
        reporter=ErrorReporter(tmp_path / "logs"),
        executor=RetryExecutor(RetryConfig(max_retries=3), sleep=sleep),
    )
