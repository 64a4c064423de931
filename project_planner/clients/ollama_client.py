"""Ollama text-generation client."""

import time
from typing import Any

import httpx
import structlog

from project_planner.clients.base import GenerationOptions
from project_planner.config import Settings, get_settings
from project_planner.errors import (
    EmptyResponseError,
    GenerationNetworkError,
    GenerationTimeoutError,
    MalformedRequestError,
    ModelNotFoundError,
    ServiceUnavailableError,
    TextGenerationError,
)

logger = structlog.get_logger()


class OllamaClient:
    """Client for the Ollama ``/api/generate`` endpoint."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is not None and not self._client.is_closed:
            return

        self._client = httpx.AsyncClient(
            base_url=self.settings.ollama_service_url,
            timeout=httpx.Timeout(
                connect=self.settings.connect_timeout,
                read=self.settings.read_timeout,
                write=30.0,
                pool=30.0,
            ),
            transport=self._transport,
        )
        logger.info("ollama_client_connected", url=self.settings.ollama_service_url)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("ollama_client_disconnected")

    async def __aenter__(self) -> "OllamaClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
        model: str | None = None,
    ) -> str:
        """Generate text for a prompt.

        Args:
            prompt: Prompt text
            options: Temperature, token limit and response format
            model: Model to use (default from settings)

        Returns:
            Generated text

        Raises:
            TextGenerationError: Typed by cause, see ``project_planner.errors``
        """
        if self._client is None:
            await self.connect()

        options = options or GenerationOptions(
            temperature=self.settings.llm_temperature,
            max_tokens=self.settings.llm_max_tokens,
        )
        model = model or self.settings.llm_model

        body: dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": options.temperature, **options.extra},
        }
        if options.max_tokens:
            body["options"]["num_predict"] = options.max_tokens
        if options.response_format == "json":
            body["format"] = "json"

        start_time = time.time()
        try:
            response = await self._client.post("/api/generate", json=body)
        except httpx.TimeoutException as e:
            raise GenerationTimeoutError(f"Ollama request timed out: {e}") from e
        except httpx.TransportError as e:
            raise GenerationNetworkError(f"Cannot connect to Ollama: {e}") from e

        self._raise_for_status(response, model)

        try:
            data = response.json()
        except ValueError as e:
            raise TextGenerationError(
                f"Ollama returned invalid JSON: {e}",
                status_code=response.status_code,
            ) from e

        text = (data.get("response") or "").strip()
        if not text:
            raise EmptyResponseError("Ollama returned an empty response", status_code=response.status_code)

        logger.debug(
            "generation_completed",
            model=model,
            latency_ms=round((time.time() - start_time) * 1000, 1),
            prompt_tokens=data.get("prompt_eval_count", 0),
            completion_tokens=data.get("eval_count", 0),
        )
        return text

    @staticmethod
    def _raise_for_status(response: httpx.Response, model: str) -> None:
        status = response.status_code
        if status < 400:
            return

        error_text = response.text[:500]
        if status == 404:
            raise ModelNotFoundError(f"Model {model} not found in Ollama", model, status)
        if status >= 500 or status == 429:
            raise ServiceUnavailableError(
                f"Ollama unavailable (HTTP {status}): {error_text}",
                status_code=status,
            )
        raise MalformedRequestError(
            f"Ollama rejected the request (HTTP {status}): {error_text}",
            status_code=status,
        )

    async def health_check(self) -> dict[str, Any]:
        """Check Ollama service health."""
        try:
            if self._client is None:
                await self.connect()

            response = await self._client.get("/api/tags")

            if response.status_code == 200:
                data = response.json()
                return {
                    "status": "healthy",
                    "models": [m.get("name") for m in data.get("models", [])],
                }
            return {
                "status": "unhealthy",
                "error": f"HTTP {response.status_code}",
            }
        except httpx.HTTPError as e:
            logger.error("ollama_health_check_failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
            }
