"""Generation adapter tests.

Tests focus on error classification at the provider boundary:
- OpenRouter HTTP statuses mapped to transient/permanent errors
- In-call retry only on transient errors
- Replicate SDK exceptions classified by status and message
"""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from bedtime.services.exceptions import (
    GenerationAuthError,
    GenerationRateLimitError,
    GenerationRequestError,
    GenerationTimeoutError,
    GenerationUnavailableError,
    MalformedGenerationResponseError,
    PermanentError,
    TransientError,
)
from bedtime.services.generation.openrouter_client import OpenRouterTextClient
from bedtime.services.generation.replicate_client import ReplicateImageClient, classify_error
from bedtime.services.generation.retry import retry_transient

MESSAGES = [{"role": "user", "content": "Write a story"}]


def make_openrouter(handler, api_key: str = "or-test-key", max_retries: int = 0):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenRouterTextClient(
        api_key=api_key,
        model="test/model",
        max_retries=max_retries,
        retry_delays=(0,),
        http_client=http_client,
    )


def completion(content):
    return httpx.Response(
        200,
        json={"choices": [{"message": {"content": content}}], "usage": {"total_tokens": 42}},
    )


class TestOpenRouterTextClient:
    @pytest.mark.asyncio
    async def test_returns_message_content(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return completion('{"title": "Moon"}')

        client = make_openrouter(handler)

        content = await client.generate_text(MESSAGES, temperature=0.5, max_tokens=300)

        assert content == '{"title": "Moon"}'
        assert seen["auth"] == "Bearer or-test-key"
        assert seen["body"]["model"] == "test/model"
        assert seen["body"]["temperature"] == 0.5
        assert seen["body"]["max_tokens"] == 300
        assert seen["body"]["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_missing_key_is_permanent(self):
        client = make_openrouter(lambda request: completion("unused"), api_key="")

        with pytest.raises(GenerationAuthError, match="OPENROUTER_API_KEY"):
            await client.generate_text(MESSAGES)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, error_type",
        [
            (429, GenerationRateLimitError),
            (500, GenerationUnavailableError),
            (503, GenerationUnavailableError),
            (401, GenerationAuthError),
            (402, GenerationAuthError),
            (403, GenerationAuthError),
            (400, GenerationRequestError),
            (422, GenerationRequestError),
        ],
    )
    async def test_status_classification(self, status, error_type):
        client = make_openrouter(lambda request: httpx.Response(status, text="nope"))

        with pytest.raises(error_type):
            await client.generate_text(MESSAGES)

    @pytest.mark.asyncio
    async def test_missing_content_is_malformed(self):
        client = make_openrouter(lambda request: httpx.Response(200, json={"choices": []}))

        with pytest.raises(MalformedGenerationResponseError):
            await client.generate_text(MESSAGES)

    @pytest.mark.asyncio
    async def test_empty_content_is_malformed(self):
        client = make_openrouter(lambda request: completion(""))

        with pytest.raises(MalformedGenerationResponseError, match="No content"):
            await client.generate_text(MESSAGES)

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = make_openrouter(handler)

        with pytest.raises(GenerationTimeoutError):
            await client.generate_text(MESSAGES)

    @pytest.mark.asyncio
    async def test_retries_rate_limit_then_succeeds(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, text="slow down")
            return completion("ok")

        client = make_openrouter(handler, max_retries=2)

        assert await client.generate_text(MESSAGES) == "ok"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_does_not_retry_auth_failure(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(401)

        client = make_openrouter(handler, max_retries=3)

        with pytest.raises(GenerationAuthError):
            await client.generate_text(MESSAGES)
        assert len(calls) == 1


class TestRetryTransient:
    @pytest.mark.asyncio
    async def test_reraises_after_max_retries(self):
        calls = 0

        async def always_unavailable():
            nonlocal calls
            calls += 1
            raise GenerationUnavailableError("503")

        with pytest.raises(GenerationUnavailableError):
            await retry_transient(always_unavailable, max_retries=2, delays=(0,), operation="test")
        assert calls == 3

    @pytest.mark.asyncio
    async def test_permanent_error_propagates_immediately(self):
        calls = 0

        async def rejected():
            nonlocal calls
            calls += 1
            raise GenerationRequestError("bad prompt")

        with pytest.raises(GenerationRequestError):
            await retry_transient(rejected, max_retries=5, delays=(0,), operation="test")
        assert calls == 1


class TestClassifyError:
    @pytest.mark.parametrize(
        "exception, error_type",
        [
            (TimeoutError("Request timeout"), GenerationTimeoutError),
            (Exception("HTTP 429: rate limit exceeded"), GenerationRateLimitError),
            (Exception("503 Service Unavailable"), GenerationUnavailableError),
            (Exception("401 Unauthorized"), GenerationAuthError),
            (Exception("Invalid API token"), GenerationAuthError),
            (Exception("Output flagged as NSFW"), GenerationRequestError),
            (ConnectionError("connection reset by peer"), GenerationUnavailableError),
            (ValueError("Something odd"), GenerationRequestError),
        ],
    )
    def test_classification(self, exception, error_type):
        classified = classify_error(exception)

        assert isinstance(classified, error_type)
        assert str(exception) in str(classified)

    def test_status_attribute_wins(self):
        error = Exception("prediction failed")
        error.status = 500  # type: ignore[attr-defined]

        assert isinstance(classify_error(error), TransientError)

    def test_content_policy_is_permanent(self):
        classified = classify_error(Exception("Blocked by content policy"))

        assert isinstance(classified, PermanentError)
        assert "Content policy violation" in str(classified)


class TestReplicateImageClient:
    @pytest.mark.asyncio
    async def test_missing_token_is_permanent(self):
        client = ReplicateImageClient(api_token="")

        with pytest.raises(GenerationAuthError, match="REPLICATE_API_TOKEN"):
            await client.generate_image("A cat")

    @pytest.mark.asyncio
    async def test_transform_passes_reference_image(self):
        client = ReplicateImageClient(api_token="r8-test", retry_delays=(0,))
        sdk = MagicMock()
        sdk.run.return_value = [b"png-bytes"]

        with patch("replicate.Client", return_value=sdk):
            image = await client.generate_image("A cat", reference_image=b"photo")

        assert image == b"png-bytes"
        model, kwargs = sdk.run.call_args.args[0], sdk.run.call_args.kwargs
        assert model == client.model
        assert kwargs["input"]["prompt"] == "A cat"
        assert kwargs["input"]["input_image"].read() == b"photo"

    @pytest.mark.asyncio
    async def test_empty_output_is_malformed(self):
        client = ReplicateImageClient(api_token="r8-test", retry_delays=(0,))
        sdk = MagicMock()
        sdk.run.return_value = []

        with patch("replicate.Client", return_value=sdk):
            with pytest.raises(MalformedGenerationResponseError):
                await client.generate_image("A cat")
