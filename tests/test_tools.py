from unittest.mock import patch

import httpx
import pytest

from plan_execute.models import TokenUsage
from plan_execute.tools import (
    CalculatorTool,
    LlmTool,
    SearchTool,
    WikipediaTool,
    default_registry,
    normalize_expression,
)

# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, normalized",
    [
        ("2^10", "2**10"),
        ("3 x 4", "3*4"),
        ("1,000 + .5", "1000 + 0.5"),
        ("50%", "(50/100)"),
        ("\\[2 \\times 3\\]", "2 * 3"),
        ("$4 \\cdot 5$", "4 * 5"),
    ],
)
def test_normalize_expression(raw, normalized):
    assert normalize_expression(raw) == normalized


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("2+2", "4"),
        ("(3 + 4) * 2", "14"),
        ("50% * 80", "40"),
        ("sqrt(16)", "4"),
        ("7 / 2", "3.5"),
        ("-3 + 1", "-2"),
    ],
)
async def test_calculator_evaluates(expression, expected):
    result = await CalculatorTool().execute(expression)

    assert result.status == "success"
    assert result.data["result"] == expected
    assert result.data["expression"] == expression


async def test_calculator_reports_normalized_expression():
    result = await CalculatorTool().execute("2^3")
    assert result.data == {"expression": "2^3", "normalized_expression": "2**3", "result": "8"}


async def test_calculator_rejects_code():
    result = await CalculatorTool().execute("__import__('os').system('ls')")

    assert result.status == "error"
    assert "Unsupported expression element" in result.error


async def test_calculator_refuses_huge_exponents():
    result = await CalculatorTool().execute("2 ** 100000")

    assert result.status == "error"
    assert "too large" in result.error


async def test_calculator_refuses_nested_powers():
    result = await CalculatorTool().execute("((9**999)**999)**40")

    assert result.status == "error"
    assert result.error == "Result is too large"


async def test_calculator_refuses_huge_products():
    result = await CalculatorTool().execute("9**999 * 9**999 * 9**999 * 9**999 * 9**999")

    assert result.status == "error"
    assert result.error == "Result is too large"


async def test_calculator_division_by_zero_is_an_error_result():
    result = await CalculatorTool().execute("1/0")

    assert result.status == "error"
    assert "division by zero" in result.error


async def test_calculator_rejects_empty_input():
    result = await CalculatorTool().execute("")

    assert result.status == "error"
    assert result.error.startswith("Invalid parameters for tool calculator")


async def test_calculator_syntax_error():
    result = await CalculatorTool().execute("2 +* ")

    assert result.status == "error"
    assert "Invalid expression" in result.error


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


@patch("ddgs.DDGS")
async def test_search_success(mock_ddgs_cls):
    mock_instance = mock_ddgs_cls.return_value
    mock_instance.text.return_value = [{"title": "Result 1", "body": "Body 1", "href": "http://1.com"}]

    result = await SearchTool(max_results=3).execute("  test  ")

    assert result.status == "success"
    assert result.data == [{"title": "Result 1", "description": "Body 1", "url": "http://1.com"}]
    mock_instance.text.assert_called_once_with("test", max_results=3)


@patch("ddgs.DDGS")
async def test_search_missing_fields_get_defaults(mock_ddgs_cls):
    mock_ddgs_cls.return_value.text.return_value = [{}]

    result = await SearchTool().execute("test")

    assert result.data == [{"title": "No Title", "description": "", "url": ""}]


@patch("ddgs.DDGS")
async def test_search_no_results(mock_ddgs_cls):
    mock_ddgs_cls.return_value.text.return_value = []

    result = await SearchTool().execute("ghost")

    assert result.status == "error"
    assert "No search results found for query: 'ghost'" == result.error


@patch("ddgs.DDGS")
async def test_search_exception(mock_ddgs_cls):
    mock_ddgs_cls.return_value.text.side_effect = Exception("Network timeout")

    result = await SearchTool().execute("crash")

    assert result.status == "error"
    assert result.error == "Network timeout"


# ---------------------------------------------------------------------------
# Wikipedia
# ---------------------------------------------------------------------------

WIKI_PAYLOAD = {
    "query": {
        "pages": {
            "2": {"pageid": 2, "title": "Mercury (disambiguation)", "index": 2, "extract": "Mercury may refer to:"},
            "1": {"pageid": 1, "title": "Mercury (planet)", "index": 1, "extract": "Mercury is the first planet."},
        }
    }
}


async def test_wikipedia_splits_disambiguation_pages():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=WIKI_PAYLOAD)

    tool = WikipediaTool(transport=httpx.MockTransport(handler))
    result = await tool.execute("mercury")

    assert result.status == "success"
    assert result.data["total_hits"] == 2
    direct = result.data["results"]["direct_matches"]
    assert [page["title"] for page in direct] == ["Mercury (planet)"]
    assert result.data["results"]["disambiguation_pages"][0]["page_id"] == 2
    assert seen[0].url.params["gsrsearch"] == "mercury"


async def test_wikipedia_retries_server_errors():
    responses = [httpx.Response(503), httpx.Response(200, json=WIKI_PAYLOAD)]

    tool = WikipediaTool(retry_delay=0, transport=httpx.MockTransport(lambda request: responses.pop(0)))
    result = await tool.execute("mercury")

    assert result.status == "success"
    assert responses == []


async def test_wikipedia_gives_up_after_max_retries():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    tool = WikipediaTool(max_retries=1, retry_delay=0, transport=httpx.MockTransport(handler))
    result = await tool.execute("mercury")

    assert result.status == "error"
    assert "503" in result.error
    assert len(calls) == 2


async def test_wikipedia_no_results():
    tool = WikipediaTool(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"batchcomplete": ""})))

    result = await tool.execute("qwertyuiop")

    assert result.status == "error"
    assert result.error == 'No results found for query: "qwertyuiop"'


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------


async def test_llm_tool_returns_text_and_usage(make_engine):
    engine, provider = make_engine("The capital of France is Paris.")
    tool = LlmTool(engine)

    result = await tool.execute("What is the capital of France?")

    assert result.status == "success"
    assert result.data == "The capital of France is Paris."
    assert result.tokens == TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15)
    assert provider.requests[0].messages[-1] == {"role": "user", "content": "What is the capital of France?"}
    assert tool.accepts_context is True


def test_default_registry(make_engine):
    engine, _ = make_engine("unused")

    assert default_registry().get_tool_names() == ["calculator", "search", "wikipedia"]
    assert "llm" in default_registry(engine)
