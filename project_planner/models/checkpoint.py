"""Checkpoint records."""

from datetime import datetime

from pydantic import BaseModel, Field

from project_planner.models.state import PipelineState

CHECKPOINT_VERSION = "1.0"


class CheckpointMetadata(BaseModel):
    """Identity of a stored snapshot."""

    id: str
    project_id: str
    stage_name: str
    timestamp: datetime
    version: str = CHECKPOINT_VERSION


class Checkpoint(BaseModel):
    """An immutable snapshot of pipeline state."""

    metadata: CheckpointMetadata
    state: PipelineState


class LatestPointer(BaseModel):
    """Per-project reference to the newest checkpoint."""

    id: str
    project_id: str
    latest_checkpoint: str
    stage_name: str
    timestamp: datetime


class CheckpointHandle(BaseModel):
    """Returned from a save."""

    checkpoint_id: str
    project_id: str
    stage_name: str
    timestamp: datetime
    location: str = Field(default="", description="Path or key of the snapshot")


class CheckpointSummary(BaseModel):
    """Listing entry for saved checkpoints."""

    checkpoint_id: str
    stage_name: str
    timestamp: datetime
