"""Ollama /api/generate client used for RSS article summaries."""

import logging

import httpx

from agent_pulse.config.settings import Settings, get_settings
from agent_pulse.enrichment.circuit_breaker import CircuitOpenError, GenericCircuitBreaker
from agent_pulse.enrichment.errors import (
    EnrichmentServiceError,
    ErrorCode,
    code_for_status,
    is_service_fault,
)
from agent_pulse.enrichment.schemas import ModelResponse

logger = logging.getLogger(__name__)

GENERATE_OPTIONS = {
    "temperature": 0.3,
    "num_predict": 256,
    "top_p": 0.9,
    "top_k": 40,
}


class OllamaClient:
    """Async client for a local or remote Ollama host.

    A refused connection means the host is not running, which retrying
    within the batch will not fix, so it is raised as terminal
    CONNECTION_REFUSED. 503/504 and other transport errors are retryable.
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 30.0,
        breaker: GenericCircuitBreaker | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self.model = model or settings.ollama_model
        self._timeout = timeout
        self._breaker = breaker or GenericCircuitBreaker(
            name="ollama", should_trip=is_service_fault
        )
        self._client: httpx.AsyncClient | None = None

    @property
    def model_version(self) -> str:
        return self.model

    @property
    def breaker(self) -> GenericCircuitBreaker:
        return self._breaker

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def generate(self, prompt: str) -> ModelResponse:
        """
        Run one non-streaming generation.

        Raises:
            EnrichmentServiceError: On any HTTP, transport, or payload failure.
        """
        try:
            return await self._breaker.call(self._post_generate, prompt)
        except CircuitOpenError as e:
            raise EnrichmentServiceError(ErrorCode.CIRCUIT_OPEN, str(e)) from e

    async def _post_generate(self, prompt: str) -> ModelResponse:
        body = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": GENERATE_OPTIONS,
        }
        try:
            response = await self._get_client().post(f"{self._base_url}/api/generate", json=body)
        except httpx.TimeoutException as e:
            raise EnrichmentServiceError(
                ErrorCode.TIMEOUT, f"Ollama request timed out after {self._timeout}s"
            ) from e
        except httpx.ConnectError as e:
            raise EnrichmentServiceError(
                ErrorCode.CONNECTION_REFUSED,
                f"Cannot connect to Ollama at {self._base_url}. Is Ollama running?",
            ) from e
        except httpx.TransportError as e:
            raise EnrichmentServiceError(
                ErrorCode.CONNECTION_ERROR, f"Ollama connection failed: {e}"
            ) from e

        if response.status_code >= 400:
            logger.error(
                "Ollama HTTP error %d: %s", response.status_code, response.text[:400]
            )
            raise EnrichmentServiceError(
                code_for_status(response.status_code),
                f"Ollama API error ({response.status_code}): {response.text[:400]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise EnrichmentServiceError(
                ErrorCode.INVALID_RESPONSE, "Ollama API returned a non-JSON body"
            ) from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise EnrichmentServiceError(
                ErrorCode.EMPTY_RESPONSE, "Ollama API returned empty response"
            )

        tokens = int(data.get("prompt_eval_count") or 0) + int(data.get("eval_count") or 0)
        return ModelResponse(
            text=text.strip(),
            model=data.get("model") or self.model,
            token_usage=tokens,
            raw=data,
        )
