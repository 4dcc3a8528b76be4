"""Generation capability provider injected into the job processor."""

from dataclasses import dataclass
from typing import Any, Protocol

from bedtime.core.config import Settings
from bedtime.services.generation.openrouter_client import OpenRouterTextClient
from bedtime.services.generation.replicate_client import ReplicateImageClient


class TextGenerator(Protocol):
    async def generate_text(
        self,
        messages: list[dict[str, Any]],
        temperature: float = 0.8,
        max_tokens: int = 512,
        json_mode: bool = True,
    ) -> str: ...


class ImageGenerator(Protocol):
    async def generate_image(self, prompt: str, reference_image: bytes | None = None) -> bytes: ...


@dataclass(frozen=True)
class GenerationCapabilities:
    """The two external generation capabilities plus text sampling settings."""

    text: TextGenerator
    image: ImageGenerator
    text_temperature: float = 0.8
    text_max_tokens: int = 512


def build_capabilities(settings: Settings) -> GenerationCapabilities:
    """Create production capability clients from settings.

    Credentials are read here once; step functions never touch the environment.
    """
    text_client = OpenRouterTextClient(
        api_key=settings.openrouter_api_key,
        model=settings.openrouter_text_model,
        base_url=settings.openrouter_base_url,
        timeout_seconds=settings.text_timeout_seconds,
        max_retries=settings.generation_max_retries,
        retry_delays=settings.generation_retry_delays,
        http_referer=settings.openrouter_http_referer,
        app_title=settings.openrouter_title,
    )
    image_client = ReplicateImageClient(
        api_token=settings.replicate_api_token,
        model=settings.replicate_image_model,
        timeout_seconds=settings.image_timeout_seconds,
        output_format=settings.image_output_format,
        max_retries=settings.generation_max_retries,
        retry_delays=settings.generation_retry_delays,
    )
    return GenerationCapabilities(
        text=text_client,
        image=image_client,
        text_temperature=settings.text_temperature,
        text_max_tokens=settings.text_max_tokens,
    )
