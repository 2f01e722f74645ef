# registry.py
# Tool contract and the name-keyed registry the planner and worker share.

import logging
from typing import Any, Protocol, runtime_checkable

from pydantic import TypeAdapter, ValidationError

from plan_execute.models import ToolResult

logger = logging.getLogger(__name__)

# Separates a tool input from the block of prior evidence appended after it.
CONTEXT_MARKER = "\n\nContext:\n"


def strip_context(params: Any) -> Any:
    """Drop an appended evidence context block, leaving the primary input."""
    if isinstance(params, str):
        return params.split(CONTEXT_MARKER, 1)[0]
    return params


@runtime_checkable
class Tool(Protocol):
    name: str
    description: str
    input_schema: Any
    # False when the tool only reads the input before the appended context block.
    accepts_context: bool

    async def execute(self, params: Any) -> ToolResult: ...


class BaseTool:
    """
    Template for tools: validate input against `input_schema`, then run
    execute_validated(). Tools that do not accept context see the input with
    the evidence context block removed. Any exception becomes an error
    ToolResult.
    """

    name: str = ""
    description: str = ""
    input_schema: Any = str
    accepts_context: bool = False

    async def execute(self, params: Any) -> ToolResult:
        try:
            if not self.accepts_context:
                params = strip_context(params)
            validated = self.validate_input(params)
            return await self.execute_validated(validated)
        except Exception as exc:
            logger.debug("Tool %s failed: %s", self.name, exc)
            return ToolResult(status="error", error=str(exc) or type(exc).__name__)

    def validate_input(self, params: Any) -> Any:
        try:
            return TypeAdapter(self.input_schema).validate_python(params)
        except ValidationError as exc:
            problems = ", ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" if err["loc"] else err["msg"]
                for err in exc.errors()
            )
            raise ValueError(f"Invalid parameters for tool {self.name}: {problems}") from exc

    async def execute_validated(self, params: Any) -> ToolResult:
        raise NotImplementedError


class ToolRegistry:
    """Name-keyed lookup. No versioning, no permissions."""

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_all(self) -> dict[str, Tool]:
        return dict(self._tools)

    def get_tool_names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
