"""Worker-to-task match scoring."""

from dataclasses import dataclass

from project_planner.models.enums import Priority
from project_planner.models.task import Task
from project_planner.scheduler.config import SchedulerConfig
from project_planner.scheduler.profiles import HistoricalPerformance, SkillProficiency
from project_planner.scheduler.workload import WorkloadEntry, WorkRecord

TASK_SKILL_KEYWORDS = {
    "frontend": ["JavaScript", "HTML", "CSS", "React", "UI/UX"],
    "backend": ["Node.js", "Database", "API", "Server Architecture"],
    "database": ["Database", "SQL", "NoSQL", "Data Modeling"],
    "ui": ["UI/UX", "Design", "CSS"],
    "ux": ["UI/UX", "User Research", "Design"],
    "api": ["API", "REST", "GraphQL", "Backend"],
    "test": ["Testing", "QA", "Test Automation"],
    "devops": ["DevOps", "CI/CD", "Docker", "Kubernetes"],
    "documentation": ["Documentation", "Technical Writing"],
    "research": ["Research", "Analysis"],
    "security": ["Security", "Authentication", "Authorization"],
}

ROLE_KEYWORDS = {
    "frontend developer": [
        "frontend",
        "ui",
        "interface",
        "react",
        "angular",
        "vue",
        "javascript",
        "css",
        "html",
    ],
    "backend developer": [
        "backend",
        "server",
        "api",
        "database",
        "node",
        "express",
        "django",
        "flask",
    ],
    "full stack developer": ["full stack", "fullstack", "end-to-end", "frontend and backend"],
    "ui/ux designer": [
        "design",
        "ui/ux",
        "wireframe",
        "prototype",
        "user experience",
        "user interface",
    ],
    "devops engineer": ["devops", "ci/cd", "docker", "kubernetes", "deployment", "pipeline"],
    "qa engineer": ["testing", "qa", "quality assurance", "test automation"],
    "project manager": ["management", "coordination", "planning", "schedule", "risk assessment"],
}

CRITICAL_SKILLS = (
    "security",
    "authentication",
    "encryption",
    "architecture",
    "devops",
    "ci/cd",
    "database",
    "backend",
    "api",
    "performance",
    "optimization",
    "testing",
)

CRITICAL_TASK_KEYWORDS = ("critical", "urgent", "essential", "core", "key", "foundation")


@dataclass(frozen=True)
class MatchScore:
    """Score of one worker for one task, with its components."""

    worker_id: str
    total: float
    skill: float
    role: float
    availability: float
    workload: float
    history: float
    specialty: float


def extract_task_skills(task: Task) -> list[str]:
    """Skills a task calls for: its category plus keyword hits in its text."""
    skills = [task.category] if task.category else []
    text = task.text
    for keyword, related in TASK_SKILL_KEYWORDS.items():
        if keyword in text:
            skills.extend(related)
    return list(dict.fromkeys(skills))


def infer_required_role(task: Task) -> str | None:
    """Role suggested by the task's text, first match wins."""
    if task.required_role:
        return task.required_role
    text = task.text
    for role, keywords in ROLE_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return role
    return None


def is_critical_skill(skill: str) -> bool:
    lowered = skill.lower()
    return any(critical in lowered for critical in CRITICAL_SKILLS)


def is_task_critical(task: Task, priority: Priority | None = None) -> bool:
    """Critical tasks stay with their assignee during rebalancing."""
    if any(keyword in task.text for keyword in CRITICAL_TASK_KEYWORDS):
        return True
    priority = priority or task.priority
    return priority in (Priority.CRITICAL, Priority.HIGH)


def _find_match(task_skill: str, worker_skills: list[str]) -> str | None:
    wanted = task_skill.lower()
    for skill in worker_skills:
        have = skill.lower()
        if have in wanted or wanted in have:
            return skill
    return None


def skill_match(
    task_skills: list[str],
    proficiencies: dict[str, SkillProficiency],
) -> float:
    """Proficiency-weighted skill match in [0, 1].

    Matched critical skills count 50% more. Missing critical skills scale the
    score by ``coverage * 0.5 + 0.5``. The score never drops below 0.3 before
    that penalty.
    """
    if not task_skills or not proficiencies:
        return 0.5

    worker_skills = list(proficiencies)
    critical_total = sum(
        1 for s in task_skills if "critical" in s.lower() or is_critical_skill(s)
    )
    critical_matched = 0
    total = 0.0
    matched = 0

    for task_skill in task_skills:
        match = _find_match(task_skill, worker_skills)
        if match is None:
            continue

        matched += 1
        critical = is_critical_skill(task_skill)
        if critical:
            critical_matched += 1

        proficiency = proficiencies[match]
        score = proficiency.score
        if proficiency.count > 3:
            score = min(1.0, score + 0.2)
        if proficiency.projects:
            score = min(1.0, score + 0.1)
        if critical:
            score *= 1.5
        total += score

    final = 0.3
    if matched:
        final = max(final, total / (len(task_skills) * 1.5))

    if critical_total and critical_matched < critical_total:
        coverage = critical_matched / critical_total
        final *= coverage * 0.5 + 0.5

    return min(1.0, final)


def specialty_match(task_skills: list[str], specialties: list[str]) -> float:
    """0.7 to 1.0 when a task skill is a specialty, 0.5 otherwise."""
    if not task_skills or not specialties:
        return 0.5

    hits = sum(1 for skill in task_skills if _find_match(skill, specialties))
    if hits:
        return min(1.0, 0.7 + hits / len(task_skills) * 0.3)
    return 0.5


def history_score(
    task_skills: list[str],
    performance: HistoricalPerformance | None,
    work_history: list[WorkRecord],
) -> float:
    """Past ratings plus experience with similar work in this pass."""
    if performance is None:
        return 0.5

    score = 0.5 + performance.average_rating / 10
    if performance.completed_projects > 5:
        score += 0.1
    elif performance.completed_projects > 2:
        score += 0.05

    similar = sum(
        1
        for record in work_history
        if record.action == "assigned" and any(s in record.skills for s in task_skills)
    )
    if similar:
        score += min(0.2, similar * 0.05)

    return min(1.0, score)


def role_match(required_role: str | None, roles: list[str]) -> float:
    if required_role:
        wanted = required_role.lower()
        if any(wanted in role.lower() for role in roles):
            return 1.0
    return 0.5


def score_worker(
    task_skills: list[str],
    required_role: str | None,
    entry: WorkloadEntry,
    config: SchedulerConfig,
) -> MatchScore:
    """Weighted suitability of one worker for one task."""
    profile = entry.profile
    skill = skill_match(task_skills, profile.skills)
    role = role_match(required_role, profile.roles)
    availability = entry.availability_ratio
    workload = max(0.0, 1 - len(entry.assigned_task_ids) / 10)
    history = history_score(task_skills, profile.historical_performance, entry.work_history)
    specialty = specialty_match(task_skills, profile.specialties)

    total = (
        skill * config.skill_weight
        + role * config.role_weight
        + availability * config.availability_weight
        + workload * config.workload_weight
        + history * config.history_weight
        + specialty * config.specialty_weight
    )
    return MatchScore(
        worker_id=profile.id,
        total=total,
        skill=skill,
        role=role,
        availability=availability,
        workload=workload,
        history=history,
        specialty=specialty,
    )
