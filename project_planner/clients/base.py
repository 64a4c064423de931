"""Text-generation interface used by the planning stages."""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class GenerationOptions:
    """Options for a single generation call."""

    temperature: float = 0.7
    max_tokens: int | None = None
    response_format: str | None = None  # "json" for structured output
    extra: dict[str, Any] = field(default_factory=dict)


class TextGenerator(Protocol):
    """Anything that turns a prompt into text.

    Implementations raise the typed errors from ``project_planner.errors``:
    network, timeout, service-unavailable and empty-response failures are
    retryable, model-not-found and malformed-request failures are not.
    """

    async def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        ...
