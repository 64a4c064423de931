"""Service clients for the planner."""

from project_planner.clients.base import GenerationOptions, TextGenerator
from project_planner.clients.ollama_client import OllamaClient

__all__ = [
    "GenerationOptions",
    "TextGenerator",
    "OllamaClient",
]
