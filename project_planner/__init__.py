"""Project Planner - resumable planning pipeline and resource scheduler."""

__version__ = "0.1.0"
