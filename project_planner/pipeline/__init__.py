"""Pipeline orchestration."""

from project_planner.pipeline.config import PlannerConfig, StageConfig, load_config, save_config
from project_planner.pipeline.checkpoint import (
    CheckpointStore,
    FileCheckpointStore,
    RedisCheckpointStore,
    create_checkpoint_store,
)
from project_planner.pipeline.reporter import ErrorReporter
from project_planner.pipeline.context import ProjectRunRegistry, RecoveryContext
from project_planner.pipeline.coordinator import PipelineCoordinator, derive_project_id

__all__ = [
    "PlannerConfig",
    "StageConfig",
    "load_config",
    "save_config",
    "CheckpointStore",
    "FileCheckpointStore",
    "RedisCheckpointStore",
    "create_checkpoint_store",
    "ErrorReporter",
    "ProjectRunRegistry",
    "RecoveryContext",
    "PipelineCoordinator",
    "derive_project_id",
]
