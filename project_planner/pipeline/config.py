"""Planner configuration with YAML support and schema validation."""

from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

from project_planner.scheduler.config import SchedulerConfig
from project_planner.utils.retry import RetryConfig

logger = structlog.get_logger()


class StageConfig(BaseModel):
    """Per-stage overrides of retry and generation behavior."""

    retry_count: int = Field(default=3, ge=0, le=10)
    retry_delay_seconds: float = Field(default=1.0, ge=0.0, le=60.0)
    backoff_factor: float = Field(default=1.5, ge=1.0, le=10.0)
    max_delay_seconds: float = Field(default=30.0, ge=0.0, le=600.0)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=100, le=32000)

    def to_retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.retry_count,
            initial_delay=self.retry_delay_seconds,
            backoff_factor=self.backoff_factor,
            max_delay=self.max_delay_seconds,
        )


class PlannerConfig(BaseModel):
    """Complete planner configuration."""

    name: str = "default"
    description: str = ""

    # Stage overrides keyed by stage name; stages not listed use settings
    stages: dict[str, StageConfig] = Field(default_factory=dict)

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    def stage(self, name: str) -> StageConfig | None:
        return self.stages.get(name)


def load_config(config_path: str | Path) -> PlannerConfig:
    """Load planner configuration from a YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated PlannerConfig

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        config_dict = yaml.safe_load(f)

    if config_dict is None:
        config_dict = {}

    try:
        config = PlannerConfig(**config_dict)
    except (TypeError, ValidationError) as e:
        logger.error("config_validation_failed", path=str(config_path), error=str(e))
        raise ValueError(f"Invalid configuration: {e}") from e

    logger.info(
        "config_loaded",
        path=str(config_path),
        name=config.name,
        stage_overrides=sorted(config.stages),
    )
    return config


def save_config(config: PlannerConfig, config_path: str | Path) -> None:
    """Save planner configuration to a YAML file.

    Args:
        config: PlannerConfig to save
        config_path: Path to save configuration
    """
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    config_dict = config.model_dump(exclude_none=True)

    with open(path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)

    logger.info("config_saved", path=str(config_path))


# Example configuration template
EXAMPLE_CONFIG = """
# Planner Configuration
name: default-planner
description: Plan software projects with a local Ollama model

# Stage overrides (stages not listed use the environment settings)
stages:
  project_overview:
    retry_count: 3
    retry_delay_seconds: 1.0
    temperature: 0.7
    max_tokens: 4000

  task_generation:
    retry_count: 5
    retry_delay_seconds: 2.0
    max_delay_seconds: 30.0
    temperature: 0.5

# Scheduler tuning
scheduler:
  skill_weight: 0.35
  role_weight: 0.20
  availability_weight: 0.15
  workload_weight: 0.10
  history_weight: 0.10
  specialty_weight: 0.10
  rebalance_enabled: true
  std_ratio: 0.15
  overload_factor: 1.2
  underload_factor: 0.8
  recovery_ratio: 0.8
  min_match_score: 0.4
"""


def create_example_config(output_path: str | Path) -> None:
    """Create an example configuration file.

    Args:
        output_path: Path to save example configuration
    """
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        f.write(EXAMPLE_CONFIG)

    logger.info("example_config_created", path=str(output_path))
