"""Client for the external text generation service."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ..models.core import GenerationRequest, GenerationResult
from .cancellation import CancellationToken
from .error_recovery import RetryConfig, execute_async_with_retry
from .exceptions import (
    GenerationCancelledError,
    GenerationError,
    GenerationTimeoutError,
    ProviderError,
    RateLimitError,
)
from .logging import get_logger, RetryLogger

logger = get_logger(__name__)

TIMEOUT_MESSAGE = (
    "The request timed out. Try reducing the complexity of the prompt or using a faster model."
)
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GenerationProvider(ABC):
    """One request/response exchange with a generation backend.

    Implementations raise RateLimitError for quota responses and
    ProviderError for anything else; they never retry themselves.
    """

    @abstractmethod
    async def generate_content(self, request: GenerationRequest) -> GenerationResult:
        ...

    async def aclose(self):
        return None


class GeminiProvider(GenerationProvider):
    """Provider for the Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = GEMINI_API_BASE,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(None, connect=10.0))
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def build_body(request: GenerationRequest) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = []
        for part in request.content_parts:
            if part.inline_data is not None:
                parts.append({"inlineData": {"mimeType": part.inline_data.mime_type, "data": part.inline_data.data}})
            else:
                parts.append({"text": part.text})

        body: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        if request.system_instruction:
            body["systemInstruction"] = {"parts": [{"text": request.system_instruction}]}
        if request.use_search:
            body["tools"] = [{"google_search": {}}]
        if request.thinking_budget is not None:
            body["generationConfig"] = {"thinkingConfig": {"thinkingBudget": request.thinking_budget}}
        return body

    async def generate_content(self, request: GenerationRequest) -> GenerationResult:
        if not self.is_configured:
            raise ProviderError("Generation API key is not configured")

        url = f"{self.base_url}/models/{request.model_name}:generateContent"
        try:
            response = await self._get_client().post(
                url,
                json=self.build_body(request),
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.TimeoutException as e:
            raise GenerationTimeoutError(TIMEOUT_MESSAGE) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Failed to reach generation service: {e}") from e

        if response.status_code >= 400:
            self._raise_for_error(response)

        return self.parse_response(response.json())

    @staticmethod
    def _raise_for_error(response: httpx.Response):
        status = None
        message = response.text or f"HTTP {response.status_code}"
        try:
            payload = response.json()
            error = (payload.get("error") or {}) if isinstance(payload, dict) else {}
            status = error.get("status")
            message = error.get("message") or message
        except ValueError:
            pass

        if response.status_code == 429 or status == "RESOURCE_EXHAUSTED":
            raise RateLimitError(message, status_code=response.status_code)
        raise ProviderError(message, status_code=response.status_code)

    @staticmethod
    def parse_response(payload: Dict[str, Any]) -> GenerationResult:
        candidates = payload.get("candidates") or []
        if not candidates:
            reason = (payload.get("promptFeedback") or {}).get("blockReason")
            if reason:
                raise ProviderError(f"Prompt blocked: {reason}")
            return GenerationResult(text="")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if not part.get("thought"))
        return GenerationResult(text=text, grounding_metadata=candidate.get("groundingMetadata"))


class GenerationClient:
    """Runs one generation call with timeout, rate-limit retry and cancellation.

    ``generate`` never raises for provider failures; the returned
    GenerationResult carries ``error`` and ``error_kind`` instead.
    """

    def __init__(
        self,
        provider: GenerationProvider,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0
    ):
        self.provider = provider
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.retry_logger = RetryLogger("generation")

    async def generate(
        self,
        request: GenerationRequest,
        token: Optional[CancellationToken] = None
    ) -> GenerationResult:
        """
        Generate text for one request.

        Args:
            request: Model, content parts and call options
            token: Optional cancellation token

        Returns:
            GenerationResult: text on success, or error details
        """
        config = RetryConfig(
            max_retries=request.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )
        operation = f"generate:{request.model_name}"

        try:
            result, attempts = await execute_async_with_retry(
                lambda: self._call_with_timeout(request, token),
                config,
                operation,
                token=token,
                retry_logger=self.retry_logger,
            )
        except GenerationError as e:
            logger.warning(f"{operation} failed ({e.kind}): {e.message}")
            return GenerationResult(error=e.message, error_kind=e.kind, attempts=e.details.get("attempts", 0))
        except Exception as e:
            logger.exception(f"Unexpected error from generation provider: {e}")
            return GenerationResult(error=str(e) or type(e).__name__, error_kind="provider", attempts=1)

        result.attempts = attempts
        return result

    async def _call_with_timeout(
        self,
        request: GenerationRequest,
        token: Optional[CancellationToken]
    ) -> GenerationResult:
        call = asyncio.ensure_future(self.provider.generate_content(request))
        waiters = {call}
        cancel_wait = None
        if token is not None:
            cancel_wait = asyncio.ensure_future(token.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=request.timeout_ms / 1000,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if call in done:
            return call.result()

        call.cancel()
        await asyncio.gather(call, return_exceptions=True)
        if cancel_wait is not None and cancel_wait in done:
            raise GenerationCancelledError(token.reason or "Execution cancelled")
        raise GenerationTimeoutError(TIMEOUT_MESSAGE, timeout_ms=request.timeout_ms)

    async def aclose(self):
        await self.provider.aclose()
