# worker.py
# Tool invoker. Executes one action against the registry and always
# returns Evidence: unknown tools, timeouts, tool crashes and malformed tool
# results become status="error" evidence instead of exceptions.

import asyncio
import json
import logging
from typing import Any, Mapping

from pydantic import ValidationError

from plan_execute.config import WorkerConfig
from plan_execute.models import Action, Evidence, ToolResult
from plan_execute.registry import CONTEXT_MARKER, Tool, ToolRegistry

logger = logging.getLogger(__name__)


def _render_value(data: Any) -> str:
    if isinstance(data, (dict, list)):
        return json.dumps(data, ensure_ascii=False)
    return str(data)


def _resolved(evidence_map: Mapping[str, Evidence]) -> list[Evidence]:
    return [e for e in evidence_map.values() if e.status == "success" and e.data is not None]


def substitute_variables(text: str, evidence_map: Mapping[str, Evidence]) -> str:
    """
    Replace every occurrence of each successful evidence variable in `text`.
    Failed or unknown variables stay as literal tokens.
    """
    # Longest names first so #E1 never clobbers part of #E10.
    for evidence in sorted(_resolved(evidence_map), key=lambda e: len(e.var_name), reverse=True):
        text = text.replace(evidence.var_name, _render_value(evidence.data))
    return text


def render_context(evidence_map: Mapping[str, Evidence]) -> str:
    """`name: value` lines for all successful evidence, in insertion order."""
    return "\n".join(f"{e.var_name}: {_render_value(e.data)}" for e in _resolved(evidence_map))


class Worker:
    """
    Runs plan actions one at a time.

    Example:
        worker = Worker(default_registry())
        evidence = await worker.execute_action(action, evidence_map)
    """

    def __init__(
        self,
        tools: ToolRegistry | Mapping[str, Tool] | None = None,
        max_execution_time_ms: int | None = None,
    ) -> None:
        if isinstance(tools, ToolRegistry):
            tools = tools.get_all()
        self._tools: dict[str, Tool] = dict(tools or {})
        self.max_execution_time_ms = max_execution_time_ms or WorkerConfig().max_execution_time_ms

    @classmethod
    def from_config(cls, tools: ToolRegistry | Mapping[str, Tool], config: WorkerConfig) -> "Worker":
        return cls(tools, config.max_execution_time_ms)

    def build_input(self, action: Action, evidence_map: Mapping[str, Evidence]) -> str:
        """Substituted input followed by the context block of prior successful evidence."""
        text = substitute_variables(action.input, evidence_map)
        context = render_context(evidence_map)
        if context:
            text = f"{text}{CONTEXT_MARKER}{context}"
        return text

    async def execute_action(self, action: Action, evidence_map: Mapping[str, Evidence]) -> Evidence:
        tool = self._tools.get(action.tool)
        if tool is None:
            return self._failed(action, f'Tool "{action.tool}" not found')

        try:
            processed_input = self.build_input(action, evidence_map)
            raw = await asyncio.wait_for(tool.execute(processed_input), timeout=self.max_execution_time_ms / 1000)
            result = ToolResult.model_validate(raw)
        except asyncio.TimeoutError:
            return self._failed(action, f"Tool execution timed out after {self.max_execution_time_ms}ms")
        except ValidationError as exc:
            return self._failed(action, f"Tool returned an invalid result: {exc.error_count()} validation error(s)")
        except Exception as exc:
            return self._failed(action, str(exc) or type(exc).__name__)

        if result.status == "success":
            return Evidence(
                var_name=action.evidence_var,
                action_id=action.id,
                status="success",
                data=result.data,
                tokens=result.tokens,
            )
        return Evidence(
            var_name=action.evidence_var,
            action_id=action.id,
            status="error",
            error=result.error or "Unknown error occurred",
            tokens=result.tokens,
        )

    def _failed(self, action: Action, message: str) -> Evidence:
        logger.warning("Action %d (%s) failed: %s", action.id, action.tool, message)
        return Evidence(var_name=action.evidence_var, action_id=action.id, status="error", error=message)
