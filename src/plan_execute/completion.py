# completion.py
# Completion engine: one resilient LLM call.
#
# Each attempt races the provider call against a timer and a cancellation
# token. Failures are classified into an ErrorKind:
#   CONTENT_POLICY, CANCELLED  → raised immediately
#   TIMEOUT, PROVIDER, UNKNOWN → retried with exponential backoff + jitter
#
# Retry and completion notifications go through per-call callbacks, never
# through shared subscriber lists.

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict

from plan_execute.config import AiConfig
from plan_execute.errors import CompletionError, ErrorKind
from plan_execute.models import RetryNotification, TokenUsage

logger = logging.getLogger(__name__)

BASE_BACKOFF_MS = 1000
MAX_JITTER_MS = 1000
MAX_BACKOFF_MS = 10000

CONTENT_POLICY_MARKERS = (
    "content management policy",
    "violates OpenAI",
    "content policy",
    "content_filter",
    "flagged",
    "moderation",
)


# ---------------------------------------------------------------------------
# Request / callbacks / cancellation
# ---------------------------------------------------------------------------


class CompletionRequest(BaseModel):
    """Everything sent to the provider for one attempt. Immutable."""

    model_config = ConfigDict(frozen=True)

    messages: list[dict[str, str]]
    model: str
    max_tokens: int
    temperature: float
    response_format: dict[str, Any] | None = None


@dataclass
class CompletionCallbacks:
    """Optional observers for a single get_completion() call."""

    on_retry: Callable[[RetryNotification], None] | None = None
    on_completion: Callable[[Any], None] | None = None


class CancellationToken:
    """Cooperative cancellation signal for one in-flight provider call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


# ---------------------------------------------------------------------------
# Provider seam
# ---------------------------------------------------------------------------


class CompletionProvider(Protocol):
    async def create(self, request: CompletionRequest, token: CancellationToken) -> Any:
        """Return a chat completion exposing `.choices` and optional `.usage`."""
        ...


class OpenAIProvider:
    """Any OpenAI-compatible chat completions endpoint."""

    def __init__(self, config: AiConfig) -> None:
        self._client = AsyncOpenAI(base_url=config.base_url, api_key=config.api_key or None)

    async def create(self, request: CompletionRequest, token: CancellationToken) -> Any:
        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.response_format is not None:
            kwargs["response_format"] = request.response_format
        return await self._client.chat.completions.create(**kwargs)

    async def aclose(self) -> None:
        await self._client.close()


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class ContentPolicyClassifier(Protocol):
    def is_content_policy(self, error: Exception) -> bool: ...


class SubstringContentPolicyClassifier:
    """
    Heuristic: provider error code `content_filter`, or a known phrase in the
    error message. Not a guaranteed classifier; swap it out per provider.
    """

    def __init__(self, markers: tuple[str, ...] = CONTENT_POLICY_MARKERS) -> None:
        self._markers = markers

    def is_content_policy(self, error: Exception) -> bool:
        if getattr(error, "code", None) == "content_filter":
            return True
        message = getattr(error, "message", None) or str(error)
        return any(marker in message for marker in self._markers)


def compute_backoff_ms(attempt: int) -> float:
    """min(1000 * 2^attempt + jitter[0, 1000), 10000) milliseconds."""
    return min(BASE_BACKOFF_MS * 2**attempt + random.uniform(0, MAX_JITTER_MS), MAX_BACKOFF_MS)


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


def _discard_result(task: asyncio.Future) -> None:
    # Abandoned race losers must not log "exception was never retrieved".
    if not task.cancelled():
        task.exception()


def usage_of(response: Any) -> TokenUsage | None:
    """Token usage reported on a raw completion, if the provider sent any."""
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    return TokenUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        total_tokens=getattr(usage, "total_tokens", 0) or 0,
    )


def _extract_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None) or ""


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class CompletionEngine:
    """
    Wraps a single chat completion with timeout, cancellation and retry.

    Example:
        engine = CompletionEngine(AiConfig(model="gpt-4o-mini", api_key="..."))
        text = await engine.get_completion(
            [{"role": "user", "content": "Say hi"}],
            callbacks=CompletionCallbacks(on_retry=print),
        )
    """

    def __init__(
        self,
        config: AiConfig,
        provider: CompletionProvider | None = None,
        classifier: ContentPolicyClassifier | None = None,
    ) -> None:
        self.config = config
        self._provider = provider if provider is not None else OpenAIProvider(config)
        self._classifier = classifier or SubstringContentPolicyClassifier()
        self._cancel_token: CancellationToken | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_completion(
        self,
        messages: list[dict[str, str]],
        response_format: dict[str, Any] | None = None,
        callbacks: CompletionCallbacks | None = None,
    ) -> str:
        """
        Return the text of the first successful completion.

        Raises CompletionError: immediately for CONTENT_POLICY and CANCELLED,
        otherwise once `max_retries` attempts have failed.
        """
        callbacks = callbacks or CompletionCallbacks()
        request = CompletionRequest(
            messages=list(messages),
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            response_format=response_format,
        )

        attempt = 0
        while True:
            try:
                response = await self._execute_with_timeout(request)
            except Exception as exc:
                error = self.classify(exc, attempt + 1)
                if not error.kind.retryable:
                    logger.warning("Completion not retried (%s): %s", error.kind.value, error.message)
                    if error is exc:
                        raise
                    raise error from exc

                attempt += 1
                if attempt >= self.config.max_retries:
                    logger.error("Completion failed after %d attempts: %s", attempt, error.message)
                    if error is exc:
                        raise
                    raise error from exc

                await self._handle_retry(attempt, error, callbacks)
                continue

            if callbacks.on_completion is not None:
                callbacks.on_completion(response)
            return _extract_text(response)

    def abort(self) -> None:
        """Cancel the in-flight provider call, if any. Does not consume a retry."""
        if self._cancel_token is not None:
            self._cancel_token.cancel()

    async def aclose(self) -> None:
        self.abort()
        close = getattr(self._provider, "aclose", None)
        if close is not None:
            await close()

    def classify(self, exc: Exception, attempt: int) -> CompletionError:
        """Reduce any exception raised by an attempt to a CompletionError."""
        if isinstance(exc, CompletionError):
            if exc.attempt is None:
                exc.attempt = attempt
            return exc

        if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
            return CompletionError(str(exc) or "Request timed out", ErrorKind.TIMEOUT, attempt=attempt)

        if isinstance(exc, openai.APIError):
            response = getattr(exc, "response", None)
            kind = ErrorKind.CONTENT_POLICY if self._classifier.is_content_policy(exc) else ErrorKind.PROVIDER
            return CompletionError(
                exc.message,
                kind,
                attempt=attempt,
                status=getattr(exc, "status_code", None),
                headers=dict(response.headers) if response is not None else None,
                details={"type": exc.type, "code": exc.code, "param": exc.param, "message": exc.message},
            )

        return CompletionError(str(exc) or type(exc).__name__, ErrorKind.UNKNOWN, attempt=attempt)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _execute_with_timeout(self, request: CompletionRequest) -> Any:
        """One attempt: provider call vs. cancellation token vs. timer."""
        token = CancellationToken()
        self._cancel_token = token

        call = asyncio.ensure_future(self._provider.create(request, token))
        aborted = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {call, aborted},
                timeout=self.config.timeout_ms / 1000,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if call in done:
                return call.result()
            if aborted in done:
                raise CompletionError("Request was aborted", ErrorKind.CANCELLED)
            raise CompletionError(f"Request timed out after {self.config.timeout_ms}ms", ErrorKind.TIMEOUT)
        finally:
            for task in (call, aborted):
                if not task.done():
                    task.add_done_callback(_discard_result)
                    task.cancel()
            self._cancel_token = None

    async def _handle_retry(self, attempt: int, error: CompletionError, callbacks: CompletionCallbacks) -> None:
        backoff_ms = compute_backoff_ms(attempt)
        notification = RetryNotification(
            attempt=attempt,
            backoff_ms=backoff_ms,
            error=error.message,
            status=error.status,
            headers=error.headers,
            error_details=error.details,
        )
        logger.info("Retrying completion (attempt %d) in %.0fms: %s", attempt, backoff_ms, error.message)
        if callbacks.on_retry is not None:
            callbacks.on_retry(notification)
        await _sleep(backoff_ms / 1000)
