"""Gemini generateContent client used for tweet sentiment.

The client makes exactly one HTTP call per generate(); retries belong to
the processor's RetryPolicy. Every failure is raised as an
EnrichmentServiceError so the retry policy can classify it.
"""

import logging
from typing import Any

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

GENERATION_CONFIG = {
    "temperature": 0.2,
    "topP": 0.95,
    "topK": 40,
    "maxOutputTokens": 256,
    "responseMimeType": "application/json",
}


class GeminiClient:
    """Async client for ``POST /v1beta/models/{model}:generateContent``.

    Args:
        api_key: Gemini API key (defaults to GEMINI_API_KEY).
        model: Model name (defaults to GEMINI_MODEL).
        base_url: API host (defaults to GEMINI_BASE_URL).
        timeout: Per-request timeout in seconds.
        breaker: Circuit breaker; one is created when omitted.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        breaker: GenericCircuitBreaker | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._api_key = api_key or settings.gemini_api_key
        self.model = model or settings.gemini_model
        self._base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self._timeout = timeout
        self._breaker = breaker or GenericCircuitBreaker(
            name="gemini", should_trip=is_service_fault
        )
        self._client: httpx.AsyncClient | None = None

    @property
    def model_version(self) -> str:
        return self.model

    @property
    def breaker(self) -> GenericCircuitBreaker:
        return self._breaker

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-initialize the httpx client."""
        if self._client is None:
            if not self._api_key:
                raise EnrichmentServiceError(
                    ErrorCode.API_ERROR, "GEMINI_API_KEY is not configured"
                )
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def generate(self, prompt: str, system_instruction: str | None = None) -> ModelResponse:
        """
        Run one generateContent call.

        Raises:
            EnrichmentServiceError: On any HTTP, transport, or payload failure,
                or CIRCUIT_OPEN while the breaker is open.
        """
        try:
            return await self._breaker.call(self._post_generate, prompt, system_instruction)
        except CircuitOpenError as e:
            raise EnrichmentServiceError(ErrorCode.CIRCUIT_OPEN, str(e)) from e

    async def _post_generate(self, prompt: str, system_instruction: str | None) -> ModelResponse:
        body: dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": GENERATION_CONFIG,
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        url = f"{self._base_url}/v1beta/models/{self.model}:generateContent"
        try:
            response = await self._get_client().post(
                url, params={"key": self._api_key}, json=body
            )
        except httpx.TimeoutException as e:
            raise EnrichmentServiceError(
                ErrorCode.TIMEOUT, f"Gemini request timed out after {self._timeout}s"
            ) from e
        except httpx.TransportError as e:
            raise EnrichmentServiceError(
                ErrorCode.CONNECTION_ERROR, f"Gemini connection failed: {e}"
            ) from e

        if response.status_code >= 400:
            raise EnrichmentServiceError(
                code_for_status(response.status_code),
                f"Gemini API error ({response.status_code}): {response.text[:400]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EnrichmentServiceError(
                ErrorCode.INVALID_RESPONSE, "Gemini API returned empty or invalid response"
            ) from e
        if not isinstance(text, str) or not text.strip():
            raise EnrichmentServiceError(
                ErrorCode.INVALID_RESPONSE, "Gemini API returned empty or invalid response"
            )

        usage = data.get("usageMetadata") or {}
        return ModelResponse(
            text=text,
            model=self.model,
            token_usage=int(usage.get("totalTokenCount") or 0),
            raw=data,
        )
