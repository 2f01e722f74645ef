# tools.py
# Built-in tools. Each one takes a single string input and returns a
# ToolResult; the worker never calls these classes directly, only through
# the registry built by default_registry().

import ast
import asyncio
import math
import operator
import re
from typing import Annotated, Any

import httpx
from pydantic import BaseModel, Field

from plan_execute.completion import CompletionCallbacks, CompletionEngine, usage_of
from plan_execute.models import TokenUsage, ToolResult
from plan_execute.registry import BaseTool, ToolRegistry

ToolInput = Annotated[str, Field(min_length=1)]


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}
_FUNCTIONS = {
    "sqrt": math.sqrt,
    "abs": abs,
    "round": round,
    "floor": math.floor,
    "ceil": math.ceil,
    "exp": math.exp,
    "log": math.log,
    "log10": math.log10,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
}
_CONSTANTS = {"pi": math.pi, "e": math.e}
_MAX_EXPONENT = 1000
# str() of an int refuses more than 4300 digits, roughly 14000 bits.
_MAX_RESULT_BITS = 14000


def normalize_expression(expr: str) -> str:
    """Strip LaTeX noise and rewrite everyday notation into Python arithmetic."""
    expr = expr.replace("\\times", "*").replace("\\cdot", "*")
    expr = re.sub(r"[\[\]\\$]", "", expr)
    expr = re.sub(r"\s+", " ", expr).strip()
    expr = re.sub(r"([0-9])\s*[xX×]\s*([0-9])", r"\1*\2", expr)
    expr = re.sub(r"(^|[^0-9])\.([0-9])", r"\g<1>0.\2", expr)
    expr = re.sub(r"(\d),(\d)", r"\1\2", expr)
    expr = re.sub(r"(\d+(?:\.\d+)?)%", r"(\1/100)", expr)
    return expr.replace("^", "**")


def _check_size(op: ast.operator, left: Any, right: Any) -> None:
    """Refuse operations whose integer result would be unreasonably large."""
    if isinstance(op, ast.Pow):
        if abs(right) > _MAX_EXPONENT:
            raise ValueError(f"Exponent {right} is too large")
        if isinstance(left, int) and isinstance(right, int) and left.bit_length() * abs(right) > _MAX_RESULT_BITS:
            raise ValueError("Result is too large")
    elif isinstance(op, ast.Mult) and isinstance(left, int) and isinstance(right, int):
        if left.bit_length() + right.bit_length() > _MAX_RESULT_BITS:
            raise ValueError("Result is too large")


def _evaluate(node: ast.AST) -> Any:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left, right = _evaluate(node.left), _evaluate(node.right)
        _check_size(node.op, left, right)
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand))
    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id in _FUNCTIONS and not node.keywords:
        return _FUNCTIONS[node.func.id](*(_evaluate(arg) for arg in node.args))
    raise ValueError(f"Unsupported expression element: {ast.dump(node)[:60]}")


def evaluate_expression(expr: str) -> str:
    try:
        tree = ast.parse(expr, mode="eval")
    except SyntaxError as exc:
        raise ValueError(f"Invalid expression '{expr}': {exc.msg}") from exc
    value = _evaluate(tree)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


class CalculatorTool(BaseTool):
    name = "calculator"
    description = "Evaluate an arithmetic expression, e.g. '(3 + 4) * 2' or '15% of 80' written as '15% * 80'."
    input_schema = ToolInput

    async def execute_validated(self, params: str) -> ToolResult:
        normalized = normalize_expression(params)
        return ToolResult(
            status="success",
            data={
                "expression": params,
                "normalized_expression": normalized,
                "result": await asyncio.to_thread(evaluate_expression, normalized),
            },
        )


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------


class SearchTool(BaseTool):
    name = "search"
    description = "Search the open web for practical, up-to-date information."
    input_schema = ToolInput

    def __init__(self, max_results: int = 5) -> None:
        self.max_results = max_results

    def _search(self, query: str) -> list[dict]:
        from ddgs import DDGS

        # Coerce the generator to a list to ensure actual execution
        return list(DDGS().text(query, max_results=self.max_results))

    async def execute_validated(self, params: str) -> ToolResult:
        query = params.strip()
        results = await asyncio.to_thread(self._search, query)
        if not results:
            return ToolResult(status="error", error=f"No search results found for query: '{query}'")
        return ToolResult(
            status="success",
            data=[
                {
                    "title": r.get("title", "No Title"),
                    "description": r.get("body", ""),
                    "url": r.get("href", ""),
                }
                for r in results
            ],
        )


# ---------------------------------------------------------------------------
# Wikipedia
# ---------------------------------------------------------------------------

WIKIPEDIA_API = "https://en.wikipedia.org/w/api.php"


class _WikiPage(BaseModel):
    pageid: int
    title: str
    index: int = 0
    extract: str = ""


class _WikiQuery(BaseModel):
    pages: dict[str, _WikiPage]


class _WikiResponse(BaseModel):
    query: _WikiQuery | None = None


class WikipediaTool(BaseTool):
    name = "wikipedia"
    description = "Search Wikipedia articles and return a set of ranked results."
    input_schema = ToolInput

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport

    async def _fetch(self, client: httpx.AsyncClient, params: dict) -> httpx.Response:
        retries = self.max_retries
        while True:
            try:
                response = await client.get(WIKIPEDIA_API, params=params)
                response.raise_for_status()
                return response
            except httpx.HTTPError:
                if retries <= 0:
                    raise
                retries -= 1
                await asyncio.sleep(self.retry_delay)

    async def execute_validated(self, params: str) -> ToolResult:
        query = {
            "action": "query",
            "format": "json",
            "generator": "search",
            "gsrsearch": params,
            "gsrlimit": "5",
            "prop": "extracts",
            "exintro": "1",
            "explaintext": "1",
            "exsentences": "10",
            "origin": "*",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await self._fetch(client, query)

        parsed = _WikiResponse.model_validate(response.json())
        if parsed.query is None or not parsed.query.pages:
            return ToolResult(status="error", error=f'No results found for query: "{params}"')

        results = [
            {
                "title": page.title,
                "extract": page.extract,
                "page_id": page.pageid,
                "is_disambiguation": "may refer to:" in page.extract.lower(),
            }
            for page in sorted(parsed.query.pages.values(), key=lambda p: p.index)
        ]
        return ToolResult(
            status="success",
            data={
                "total_hits": len(results),
                "results": {
                    "direct_matches": [r for r in results if not r["is_disambiguation"]],
                    "disambiguation_pages": [r for r in results if r["is_disambiguation"]],
                },
            },
        )


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------

LLM_TOOL_PROMPT = (
    "You are a helpful assistant that is able to consolidate and synthesize information "
    "from multiple sources, maintaining a high factual accuracy."
)


class LlmTool(BaseTool):
    name = "llm"
    description = (
        "A pretrained LLM for general knowledge and reasoning. "
        "Prioritize when confident in solving the problem."
    )
    input_schema = ToolInput
    accepts_context = True

    def __init__(self, engine: CompletionEngine) -> None:
        self._engine = engine

    async def execute_validated(self, params: str) -> ToolResult:
        usage = TokenUsage()

        def record_usage(completion: Any) -> None:
            usage.add(usage_of(completion))

        text = await self._engine.get_completion(
            [
                {"role": "system", "content": LLM_TOOL_PROMPT},
                {"role": "user", "content": params},
            ],
            callbacks=CompletionCallbacks(on_completion=record_usage),
        )
        return ToolResult(status="success", data=text, tokens=usage)


def default_registry(llm_engine: CompletionEngine | None = None) -> ToolRegistry:
    registry = ToolRegistry([CalculatorTool(), SearchTool(), WikipediaTool()])
    if llm_engine is not None:
        registry.register(LlmTool(llm_engine))
    return registry
