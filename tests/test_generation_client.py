"""Tests for the generation client and the Gemini provider."""

import asyncio
import json

import httpx
import pytest

from roadmapflow.core.cancellation import CancellationToken
from roadmapflow.core.exceptions import ProviderError, RateLimitError
from roadmapflow.core.generation_client import (
    TIMEOUT_MESSAGE,
    GeminiProvider,
    GenerationClient,
    GenerationProvider,
)
from roadmapflow.models.core import ContentPart, GenerationRequest, GenerationResult, MediaPart

from .helpers import FakeProvider


def make_request(**overrides) -> GenerationRequest:
    values = {"model_name": "test-model", "content_parts": [ContentPart(text="hello")]}
    values.update(overrides)
    return GenerationRequest(**values)


def make_client(provider, base_delay: float = 0.001) -> GenerationClient:
    return GenerationClient(provider, retry_base_delay=base_delay, retry_max_delay=base_delay * 5)


class HangingProvider(GenerationProvider):
    """Provider that never answers and counts how often it was cancelled."""

    def __init__(self):
        self.unwound = 0

    async def generate_content(self, request: GenerationRequest) -> GenerationResult:
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            self.unwound += 1
            raise
        return GenerationResult(text="late")


class TestRetryPolicy:
    """Test cases for rate-limit retries."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self):
        provider = FakeProvider(["generated"])
        result = await make_client(provider).generate(make_request())

        assert result.ok
        assert result.text == "generated"
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_rate_limit_retried_exactly_max_retries_times(self):
        """Test that persistent 429s make 1 + max_retries calls, then fail."""
        provider = FakeProvider([RateLimitError("quota exhausted") for _ in range(10)])
        result = await make_client(provider).generate(make_request(max_retries=3))

        assert provider.call_count == 4
        assert result.attempts == 4
        assert result.error_kind == "rate_limit"
        assert result.error == "quota exhausted"

    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self):
        provider = FakeProvider([RateLimitError("slow down"), RateLimitError("slow down"), "finally"])
        result = await make_client(provider).generate(make_request(max_retries=3))

        assert result.ok
        assert result.text == "finally"
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_zero_retries_means_single_call(self):
        provider = FakeProvider([RateLimitError("quota"), "unused"])
        result = await make_client(provider).generate(make_request(max_retries=0))

        assert provider.call_count == 1
        assert result.error_kind == "rate_limit"

    @pytest.mark.asyncio
    async def test_other_provider_errors_are_not_retried(self):
        provider = FakeProvider([ProviderError("bad request", status_code=400), "unused"])
        result = await make_client(provider).generate(make_request())

        assert provider.call_count == 1
        assert result.error_kind == "provider"
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_unexpected_exceptions_become_provider_errors(self):
        provider = FakeProvider([ValueError("boom")])
        result = await make_client(provider).generate(make_request())

        assert result.error == "boom"
        assert result.error_kind == "provider"


class TestTimeoutAndCancellation:
    """Test cases for per-attempt timeouts and cancellation."""

    @pytest.mark.asyncio
    async def test_slow_call_times_out_with_guidance(self):
        provider = FakeProvider(delay=1.0)
        result = await make_client(provider).generate(make_request(timeout_ms=20))

        assert result.error_kind == "timeout"
        assert result.error == TIMEOUT_MESSAGE
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_cancel_during_call(self):
        """Test that an in-flight call is abandoned when the token fires."""
        provider = FakeProvider(delay=5.0)
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel)

        result = await make_client(provider).generate(make_request(), token)

        assert result.error_kind == "cancelled"
        assert result.error == "Execution cancelled"

    @pytest.mark.asyncio
    async def test_cancel_during_backoff(self):
        provider = FakeProvider([RateLimitError("quota") for _ in range(5)])
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)

        result = await make_client(provider, base_delay=10.0).generate(make_request(max_retries=3), token)

        assert result.error_kind == "cancelled"
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_already_cancelled_token_makes_no_call(self):
        provider = FakeProvider()
        token = CancellationToken()
        token.cancel()

        result = await make_client(provider).generate(make_request(), token)

        assert result.error_kind == "cancelled"
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_abandoned_call_is_cancelled_before_returning(self):
        """Test that the provider call has finished unwinding when generate returns."""
        provider = HangingProvider()

        timed_out = await make_client(provider).generate(make_request(timeout_ms=20))
        assert timed_out.error_kind == "timeout"
        assert provider.unwound == 1

        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel)
        cancelled = await make_client(provider).generate(make_request(), token)
        assert cancelled.error_kind == "cancelled"
        assert provider.unwound == 2


def gemini_provider(handler, api_key: str = "test-key") -> GeminiProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiProvider(api_key, base_url="https://gemini.test/v1beta", client=client)


def reply(text: str, **candidate) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}, **candidate}]}


class TestGeminiProvider:
    """Test cases for the REST provider."""

    def test_request_body_shape(self):
        """Test that all request options map onto the REST body."""
        request = make_request(
            content_parts=[
                ContentPart(text="Transcribe"),
                ContentPart(inline_data=MediaPart(mime_type="audio/webm", data="QUJD")),
            ],
            system_instruction="Be brief",
            use_search=True,
            thinking_budget=0,
        )
        body = GeminiProvider.build_body(request)

        assert body["contents"] == [{
            "role": "user",
            "parts": [{"text": "Transcribe"}, {"inlineData": {"mimeType": "audio/webm", "data": "QUJD"}}],
        }]
        assert body["systemInstruction"] == {"parts": [{"text": "Be brief"}]}
        assert body["tools"] == [{"google_search": {}}]
        assert body["generationConfig"] == {"thinkingConfig": {"thinkingBudget": 0}}

    def test_minimal_body_omits_options(self):
        body = GeminiProvider.build_body(make_request())
        assert set(body) == {"contents"}

    @pytest.mark.asyncio
    async def test_posts_to_model_endpoint(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=reply("hi", groundingMetadata={"webSearchQueries": ["q"]}))

        provider = gemini_provider(handler)
        result = await provider.generate_content(make_request())
        await provider.aclose()

        assert seen["url"] == "https://gemini.test/v1beta/models/test-model:generateContent"
        assert seen["key"] == "test-key"
        assert seen["body"]["contents"][0]["parts"] == [{"text": "hello"}]
        assert result.text == "hi"
        assert result.grounding_metadata == {"webSearchQueries": ["q"]}

    @pytest.mark.asyncio
    async def test_http_429_is_rate_limit(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"code": 429, "message": "Quota exceeded"}})

        with pytest.raises(RateLimitError) as exc_info:
            await gemini_provider(handler).generate_content(make_request())
        assert exc_info.value.message == "Quota exceeded"

    @pytest.mark.asyncio
    async def test_resource_exhausted_status_is_rate_limit(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"status": "RESOURCE_EXHAUSTED", "message": "Out of quota"}})

        with pytest.raises(RateLimitError):
            await gemini_provider(handler).generate_content(make_request())

    @pytest.mark.asyncio
    async def test_server_error_is_provider_error(self):
        def handler(request):
            return httpx.Response(500, text="internal")

        with pytest.raises(ProviderError) as exc_info:
            await gemini_provider(handler).generate_content(make_request())
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        client = make_client(GeminiProvider(None))
        result = await client.generate(make_request())

        assert result.error_kind == "provider"
        assert "API key" in result.error

    def test_thought_parts_are_skipped(self):
        payload = {"candidates": [{"content": {"parts": [
            {"text": "thinking...", "thought": True},
            {"text": "answer"},
        ]}}]}
        assert GeminiProvider.parse_response(payload).text == "answer"

    def test_blocked_prompt_raises(self):
        with pytest.raises(ProviderError):
            GeminiProvider.parse_response({"promptFeedback": {"blockReason": "SAFETY"}})

    @pytest.mark.asyncio
    async def test_client_retries_http_429(self):
        """Test the full path: two 429 responses, then success."""
        responses = [
            httpx.Response(429, json={"error": {"message": "Quota"}}),
            httpx.Response(429, json={"error": {"message": "Quota"}}),
            httpx.Response(200, json=reply("done")),
        ]

        def handler(request):
            return responses.pop(0)

        result = await make_client(gemini_provider(handler)).generate(make_request(max_retries=3))

        assert result.text == "done"
        assert result.attempts == 3
