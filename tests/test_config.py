"""Tests for settings and the YAML planner config."""

import pytest

from project_planner.config import Settings
from project_planner.pipeline.config import (
    PlannerConfig,
    StageConfig,
    create_example_config,
    load_config,
    save_config,
)
from project_planner.scheduler.config import SchedulerConfig
from project_planner.stages.registry import default_stages, generation_options


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("MAX_RETRIES", "5")
    monkeypatch.setenv("RESUME_UNKNOWN_STAGE", "fail")

    settings = Settings()

    assert settings.checkpoint_dir == tmp_path / "state"
    assert settings.log_dir == tmp_path / "logs"
    assert settings.max_retries == 5
    assert settings.resume_unknown_stage == "fail"


def test_example_config_loads(tmp_path):
    path = tmp_path / "planner.yaml"
    create_example_config(path)

    config = load_config(path)

    assert config.name == "default-planner"
    assert config.stage("task_generation").retry_count == 5
    assert config.stage("verification") is None
    assert config.scheduler.min_match_score == 0.4


def test_save_and_load_round_trip(tmp_path):
    config = PlannerConfig(
        name="tight",
        stages={"sprint_planning": StageConfig(retry_count=1, temperature=0.1)},
        scheduler=SchedulerConfig(std_ratio=0.3, rebalance_enabled=False),
    )
    path = tmp_path / "nested" / "planner.yaml"

    save_config(config, path)

    assert load_config(path) == config


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")

    assert load_config(path) == PlannerConfig()


@pytest.mark.parametrize(
    "content",
    ["stages:\n  task_generation:\n    retry_count: 99\n", "- just\n- a list\n"],
)
def test_invalid_config_raises_value_error(tmp_path, content):
    path = tmp_path / "bad.yaml"
    path.write_text(content)

    with pytest.raises(ValueError):
        load_config(path)


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


def test_stage_overrides_reach_the_pipeline():
    settings = Settings()
    config = PlannerConfig(
        stages={"task_generation": StageConfig(retry_count=7, temperature=0.1, max_tokens=900)}
    )

    stages = {stage.name: stage for stage in default_stages(None, settings, config)}
    options = generation_options("task_generation", settings, config)

    assert stages["task_generation"].retry_config.max_retries == 7
    assert stages["sprint_planning"].retry_config is None
    assert (options.temperature, options.max_tokens, options.response_format) == (0.1, 900, "json")
    assert generation_options("sprint_planning", settings, config).temperature == 0.5
