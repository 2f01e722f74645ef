"""Shared fakes and fixtures. No test ever reaches a real provider or the network."""

import json

import httpx
import pytest
from openai.types.chat import ChatCompletion, ChatCompletionMessage
from openai.types.chat.chat_completion import Choice
from openai.types.completion_usage import CompletionUsage

from plan_execute import completion
from plan_execute.completion import CompletionEngine
from plan_execute.config import AiConfig
from plan_execute.models import ToolResult, TokenUsage
from plan_execute.registry import BaseTool, ToolRegistry


def make_completion(content, prompt_tokens=10, completion_tokens=5) -> ChatCompletion:
    if not isinstance(content, str):
        content = json.dumps(content)
    return ChatCompletion(
        id="chatcmpl-test",
        object="chat.completion",
        created=0,
        model="test-model",
        choices=[
            Choice(
                index=0,
                finish_reason="stop",
                message=ChatCompletionMessage(role="assistant", content=content),
            )
        ],
        usage=CompletionUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        ),
    )


def api_error(cls, status: int, message: str, code: str | None = None):
    request = httpx.Request("POST", "https://api.test/v1/chat/completions")
    response = httpx.Response(status, request=request, headers={"x-request-id": "req_123"})
    body = {"code": code, "message": message, "type": "invalid_request_error"} if code else None
    return cls(message, response=response, body=body)


class FakeProvider:
    """
    Plays back outcomes in order. Strings and dicts become completions,
    exceptions are raised, coroutine functions are awaited. The last
    outcome repeats once the list is exhausted.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    async def create(self, request, token):
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome(request, token)
        if isinstance(outcome, ChatCompletion):
            return outcome
        return make_completion(outcome)


class StaticTool(BaseTool):
    """Returns a fixed ToolResult and records every input it was given."""

    input_schema = str

    def __init__(self, name: str, result: ToolResult, accepts_context: bool = False) -> None:
        self.name = name
        self.description = f"{name} test tool"
        self.result = result
        self.accepts_context = accepts_context
        self.inputs: list[str] = []

    async def execute_validated(self, params: str) -> ToolResult:
        self.inputs.append(params)
        return self.result


@pytest.fixture(autouse=True)
def no_backoff_sleep(monkeypatch):
    """Retry backoff sleeps are recorded instead of slept."""
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    monkeypatch.setattr(completion, "_sleep", fake_sleep)
    return slept


@pytest.fixture
def ai_config():
    return AiConfig(model="test-model", api_key="test-key", timeout_ms=1000, max_retries=3)


@pytest.fixture
def make_engine(ai_config):
    def factory(*outcomes, **overrides):
        config = ai_config.model_copy(update=overrides)
        provider = FakeProvider(*outcomes)
        return CompletionEngine(config, provider=provider), provider

    return factory


@pytest.fixture
def calculator_result():
    return ToolResult(
        status="success",
        data={"result": "4"},
        tokens=TokenUsage(prompt_tokens=3, completion_tokens=2, total_tokens=5),
    )


@pytest.fixture
def registry(calculator_result):
    return ToolRegistry([StaticTool("calculator", calculator_result)])
