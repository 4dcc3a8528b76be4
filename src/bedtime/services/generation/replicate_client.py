"""Replicate API client for image generation with error classification."""

import asyncio
import io
import time
from typing import Any, Sequence

import httpx
import replicate
import structlog
from replicate.exceptions import ModelError
from replicate.exceptions import ReplicateError as ReplicateAPIError

from bedtime.services.exceptions import (
    GenerationAuthError,
    GenerationRateLimitError,
    GenerationRequestError,
    GenerationTimeoutError,
    GenerationUnavailableError,
    MalformedGenerationResponseError,
    ServiceError,
)
from bedtime.services.generation.retry import retry_transient

logger = structlog.get_logger(__name__)


def classify_error(exception: Exception) -> ServiceError:
    """Classify exception into retry category.

    Args:
        exception: Original exception from Replicate SDK or network layer

    Returns:
        Classified ServiceError subclass instance

    Classification rules:
        - Timeout errors -> GenerationTimeoutError (transient)
        - 429 (rate limit) -> GenerationRateLimitError (transient)
        - 5xx / service unavailable / connection errors -> GenerationUnavailableError (transient)
        - 401/403 (authentication) -> GenerationAuthError (permanent)
        - Content policy violations -> GenerationRequestError (permanent)
        - Other errors -> GenerationRequestError (permanent)
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()
    status = getattr(exception, "status", None)

    if isinstance(exception, (TimeoutError, httpx.TimeoutException)) or "timeout" in error_message_lower:
        return GenerationTimeoutError(f"Image generation timeout: {error_message}")

    if status == 429 or "429" in error_message or "rate limit" in error_message_lower:
        return GenerationRateLimitError(f"Rate limit exceeded: {error_message}")

    if (
        (isinstance(status, int) and status >= 500)
        or "503" in error_message
        or "service unavailable" in error_message_lower
    ):
        return GenerationUnavailableError(f"Service unavailable: {error_message}")

    if (
        status in (401, 403)
        or "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "forbidden" in error_message_lower
        or "authentication" in error_message_lower
        or "invalid api token" in error_message_lower
    ):
        return GenerationAuthError(f"Authentication failed: {error_message}")

    if (
        "content policy" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
        or "inappropriate" in error_message_lower
    ):
        return GenerationRequestError(f"Content policy violation: {error_message}")

    if isinstance(exception, (ConnectionError, OSError, httpx.TransportError)):
        return GenerationUnavailableError(f"Connection error: {error_message}")

    return GenerationRequestError(f"Image generation failed: {error_message}")


class ReplicateImageClient:
    """Image generation capability: prompt plus optional reference image in, PNG bytes out."""

    def __init__(
        self,
        api_token: str,
        model: str = "black-forest-labs/flux-kontext-pro",
        timeout_seconds: float = 120.0,
        output_format: str = "png",
        max_retries: int = 3,
        retry_delays: Sequence[float] = (1.0, 2.0, 4.0),
        reference_image_input: str = "input_image",
    ):
        """Initialize Replicate client.

        Args:
            api_token: Replicate API token (from REPLICATE_API_TOKEN env var)
            model: Image model identifier supporting image-to-image transformation
            timeout_seconds: Wall-clock budget for one prediction including download
            output_format: Requested output encoding
            max_retries: Retries on transient errors within a single call
            retry_delays: Backoff delays in seconds between retries
            reference_image_input: Model input name carrying the reference image
        """
        self.api_token = api_token
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.output_format = output_format
        self.max_retries = max_retries
        self.retry_delays = tuple(retry_delays)
        self.reference_image_input = reference_image_input

    async def generate_image(self, prompt: str, reference_image: bytes | None = None) -> bytes:
        """Generate an image, transforming `reference_image` when one is given.

        Args:
            prompt: Text prompt describing the target image
            reference_image: Raw bytes of the reference image ("transform" mode)

        Returns:
            Raw bytes of the generated image

        Raises:
            TransientError: Timeout, rate limit, service unavailable (after in-call retries)
            PermanentError: Missing token, auth failure, rejected input, unusable output
        """
        if not self.api_token:
            raise GenerationAuthError("REPLICATE_API_TOKEN not configured")

        start_time = time.time()
        image = await retry_transient(
            lambda: self._run_once(prompt, reference_image),
            max_retries=self.max_retries,
            delays=self.retry_delays,
            operation="replicate.run",
        )
        logger.info(
            "replicate.image.generated",
            model=self.model,
            transform=reference_image is not None,
            size_bytes=len(image),
            duration_seconds=round(time.time() - start_time, 2),
        )
        return image

    async def _run_once(self, prompt: str, reference_image: bytes | None) -> bytes:
        model_input: dict[str, Any] = {"prompt": prompt, "output_format": self.output_format}
        if reference_image is not None:
            model_input[self.reference_image_input] = io.BytesIO(reference_image)

        # SDK is synchronous; run prediction and output download in a worker thread
        def _run_replicate() -> bytes:
            client = replicate.Client(api_token=self.api_token)
            output = client.run(self.model, input=model_input)
            return _read_output(output, self.timeout_seconds)

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(_run_replicate), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise GenerationTimeoutError(
                f"Image generation exceeded {self.timeout_seconds}s"
            ) from e
        except ServiceError:
            raise
        except (ReplicateAPIError, ModelError) as e:
            raise classify_error(e) from e
        except (ConnectionError, OSError, httpx.HTTPError) as e:
            raise classify_error(e) from e
        except Exception as e:
            # Unexpected errors - treat as permanent to avoid burning attempts
            raise GenerationRequestError(f"Unexpected error: {e}") from e


def _read_output(output: Any, timeout_seconds: float) -> bytes:
    """Extract image bytes from a Replicate output (format varies by model and SDK version)."""
    if isinstance(output, (list, tuple)):
        if not output:
            raise MalformedGenerationResponseError("Replicate returned an empty output list")
        output = output[0]

    if isinstance(output, bytes):
        data = output
    elif hasattr(output, "read"):
        data = output.read()
    elif isinstance(output, str) and output.startswith(("http://", "https://")):
        response = httpx.get(output, timeout=timeout_seconds)
        response.raise_for_status()
        data = response.content
    else:
        raise MalformedGenerationResponseError(
            f"Unexpected output format from Replicate: {type(output).__name__}"
        )

    if not data:
        raise MalformedGenerationResponseError("Replicate returned an empty image")
    return data
