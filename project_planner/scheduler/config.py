"""Scheduler tuning."""

from pydantic import BaseModel, Field


class SchedulerConfig(BaseModel):
    """Weights and thresholds of the assignment and rebalancing passes."""

    # Match score weights
    skill_weight: float = Field(default=0.35, ge=0.0, le=1.0)
    role_weight: float = Field(default=0.20, ge=0.0, le=1.0)
    availability_weight: float = Field(default=0.15, ge=0.0, le=1.0)
    workload_weight: float = Field(default=0.10, ge=0.0, le=1.0)
    history_weight: float = Field(default=0.10, ge=0.0, le=1.0)
    specialty_weight: float = Field(default=0.10, ge=0.0, le=1.0)

    # Rebalancing
    rebalance_enabled: bool = True
    std_ratio: float = Field(
        default=0.15,
        ge=0.0,
        description="Rebalance when std dev of assigned hours exceeds this share of the mean",
    )
    overload_factor: float = Field(default=1.2, ge=1.0)
    underload_factor: float = Field(default=0.8, ge=0.0, le=1.0)
    recovery_ratio: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Share of each worker's overload to move",
    )
    min_match_score: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Minimum suitability of a rebalance target",
    )
    subtask_fallback_ratio: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Move single subtasks when less than this share of the target was recovered",
    )
    min_subtask_hours: float = Field(default=2.0, ge=0.0)

    # Summary flags
    overallocated_pct: int = Field(default=95, ge=0, le=100)
    underallocated_pct: int = Field(default=50, ge=0, le=100)

    @classmethod
    def from_settings(cls, settings) -> "SchedulerConfig":
        """Pick up the tunables exposed through environment settings."""
        return cls(
            std_ratio=settings.rebalance_std_ratio,
            overload_factor=settings.rebalance_overload_factor,
            underload_factor=settings.rebalance_underload_factor,
            recovery_ratio=settings.rebalance_recovery_ratio,
            min_match_score=settings.rebalance_min_match_score,
        )
