"""Planning pipeline stages."""

from project_planner.stages.base import Stage, validate_stages
from project_planner.stages.registry import default_stages

__all__ = [
    "Stage",
    "validate_stages",
    "default_stages",
]
