"""OpenRouter chat-completions client for story text generation."""

from typing import Any, Sequence

import httpx
import structlog

from bedtime.services.exceptions import (
    GenerationAuthError,
    GenerationRateLimitError,
    GenerationRequestError,
    GenerationTimeoutError,
    GenerationUnavailableError,
    MalformedGenerationResponseError,
    PermanentError,
)
from bedtime.services.generation.retry import retry_transient

logger = structlog.get_logger(__name__)


class OpenRouterTextClient:
    """Text generation capability: prompt messages in, raw model text out."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout_seconds: float = 60.0,
        max_retries: int = 3,
        retry_delays: Sequence[float] = (1.0, 2.0, 4.0),
        http_referer: str = "",
        app_title: str = "",
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key (from OPENROUTER_API_KEY env var)
            model: Model identifier used for story text
            base_url: API base URL
            timeout_seconds: Per-request timeout
            max_retries: Retries on 429/5xx/timeouts within a single call
            retry_delays: Backoff delays in seconds between retries
            http_referer: Optional attribution header
            app_title: Optional attribution header
            http_client: Optional shared client; a short-lived client is used per call otherwise
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_delays = tuple(retry_delays)
        self._http_client = http_client
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        if http_referer:
            self.headers["HTTP-Referer"] = http_referer
        if app_title:
            self.headers["X-Title"] = app_title

    async def generate_text(
        self,
        messages: list[dict[str, Any]],
        temperature: float = 0.8,
        max_tokens: int = 512,
        json_mode: bool = True,
    ) -> str:
        """Generate a chat completion and return the message content.

        Args:
            messages: Chat messages ({"role": ..., "content": ...})
            temperature: Sampling temperature
            max_tokens: Completion token limit
            json_mode: Ask the provider for a JSON object response

        Returns:
            Raw content string of the first choice (validation is the caller's job)

        Raises:
            TransientError: Timeout, rate limit (429), service unavailable (5xx),
                after in-call retries are exhausted
            PermanentError: Missing key, auth failure, rejected request, empty content
        """
        if not self.api_key:
            raise GenerationAuthError("OPENROUTER_API_KEY not configured")

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        body = await retry_transient(
            lambda: self._post("/chat/completions", payload),
            max_retries=self.max_retries,
            delays=self.retry_delays,
            operation="openrouter.chat",
        )

        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedGenerationResponseError(
                f"Unexpected chat completion payload: {str(body)[:300]}"
            ) from e
        if not content or not isinstance(content, str):
            raise MalformedGenerationResponseError("No content in chat completion response")

        logger.info(
            "openrouter.chat.completed",
            model=self.model,
            total_tokens=(body.get("usage") or {}).get("total_tokens"),
        )
        return content

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    url, headers=self.headers, json=payload, timeout=self.timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(url, headers=self.headers, json=payload)
        except httpx.TimeoutException as e:
            raise GenerationTimeoutError(
                f"OpenRouter request timed out after {self.timeout_seconds}s"
            ) from e
        except httpx.HTTPError as e:
            raise GenerationUnavailableError(f"OpenRouter network error: {e}") from e

        code = response.status_code
        if code == 429:
            raise GenerationRateLimitError(f"OpenRouter rate limit exceeded: {response.text}")
        if code >= 500:
            raise GenerationUnavailableError(f"OpenRouter unavailable ({code}): {response.text}")
        if code in (401, 402, 403):
            raise GenerationAuthError(
                f"OpenRouter rejected credentials ({code}). Check OPENROUTER_API_KEY and credits."
            )
        if code in (400, 404, 422):
            raise GenerationRequestError(f"OpenRouter bad request ({code}): {response.text}")
        if code >= 400:
            raise PermanentError(f"OpenRouter error ({code}): {response.text}")

        try:
            return response.json()
        except ValueError as e:
            raise MalformedGenerationResponseError("OpenRouter returned non-JSON body") from e
