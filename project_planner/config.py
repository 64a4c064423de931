"""Configuration for the Project Planner."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Service settings
    service_name: str = "project-planner"
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    event_log_level: Literal["debug", "info", "warn", "error"] = Field(
        default="info",
        alias="EVENT_LOG_LEVEL",
        description="Minimum level for events written to the event log",
    )

    # Data directory paths
    data_dir_path: str = Field(
        default="data",
        alias="DATA_DIR",
        description="Base directory for checkpoints and logs",
    )

    @property
    def data_dir(self) -> Path:
        """Get base data directory."""
        return Path(self.data_dir_path)

    @property
    def checkpoint_dir(self) -> Path:
        """Get checkpoint directory."""
        return self.data_dir / "state"

    @property
    def log_dir(self) -> Path:
        """Get error and event log directory."""
        return self.data_dir / "logs"

    # Checkpoint storage
    checkpoint_backend: Literal["file", "redis"] = Field(
        default="file",
        alias="CHECKPOINT_BACKEND",
    )
    checkpoint_prefix: str = "planner:checkpoint:"
    checkpoint_ttl_hours: int = Field(
        default=0,
        alias="CHECKPOINT_TTL_HOURS",
        description="Expiry for redis checkpoints (0 keeps them forever)",
    )

    # Redis (for checkpoint storage)
    redis_host: str = Field(default="redis", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_db: int = Field(default=0, alias="REDIS_DB")

    @property
    def redis_url(self) -> str:
        """Get Redis connection URL."""
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Ollama (text generation)
    ollama_service_url: str = Field(
        default="http://localhost:11434",
        alias="OLLAMA_SERVICE_URL",
    )
    llm_model: str = Field(
        default="llama3.2:3b",
        alias="LLM_MODEL",
        description="Model used for plan generation",
    )
    llm_temperature: float = Field(
        default=0.7,
        alias="LLM_TEMPERATURE",
        description="Temperature for LLM generation",
    )
    llm_max_tokens: int = Field(
        default=4000,
        alias="LLM_MAX_TOKENS",
        description="Maximum tokens for LLM response",
    )

    # Timeouts
    connect_timeout: float = 10.0
    read_timeout: float = Field(
        default=120.0,
        alias="LLM_TIMEOUT",
        description="Ceiling for a single generation call in seconds",
    )

    # Retry settings
    max_retries: int = Field(default=3, alias="MAX_RETRIES")
    retry_initial_delay: float = 1.0
    retry_backoff: float = 1.5
    retry_max_delay: float = 30.0

    # Optional YAML file with stage overrides and scheduler tuning
    planner_config_path: str | None = Field(default=None, alias="PLANNER_CONFIG")

    # Resume behaviour
    resume_unknown_stage: Literal["restart", "fail"] = Field(
        default="restart",
        alias="RESUME_UNKNOWN_STAGE",
        description="What to do when a checkpoint names a stage that no longer exists",
    )

    # Scheduler tuning
    default_weekly_hours: float = 40.0
    rebalance_std_ratio: float = 0.15
    rebalance_overload_factor: float = 1.2
    rebalance_underload_factor: float = 0.8
    rebalance_recovery_ratio: float = Field(
        default=0.8,
        description="Share of a worker's overload the rebalancer tries to move",
    )
    rebalance_min_match_score: float = Field(
        default=0.4,
        description="Minimum suitability for a rebalance target",
    )

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
