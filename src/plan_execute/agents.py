# agents.py
# LLM-backed agent roles.
#
# BaseAgent owns one conversation and implements the schema-validated
# generator: ask for JSON, parse, validate, and on failure feed the error
# back to the model as a corrective user message. Planner and Solver differ
# only in how they build the prompt and which schema they target.

import json
import logging
from typing import Any, Callable, TypeVar

from pydantic import BaseModel

from plan_execute.completion import CompletionCallbacks, CompletionEngine
from plan_execute.conversation import Conversation
from plan_execute.errors import AgentError, CompletionError, ErrorKind, StructuredOutputError
from plan_execute.models import Evidence, Plan, Solution
from plan_execute.prompts import render_planner_prompt, render_solver_prompt
from plan_execute.registry import ToolRegistry
from plan_execute.validation import Valid, validate_structure

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
LogHandler = Callable[[str, str, Any], None]

JSON_RESPONSE_FORMAT = {"type": "json_object"}
EVIDENCE_PREVIEW_CHARS = 500

_LOG_LEVELS = {"debug": logging.DEBUG, "info": logging.INFO, "warn": logging.WARNING, "error": logging.ERROR}


class BaseAgent:
    """One agent role: a completion engine plus its own conversation buffer."""

    def __init__(self, engine: CompletionEngine, system_prompt: str | None = None, max_attempts: int = 3) -> None:
        self.engine = engine
        self.conversation = Conversation(system_prompt)
        self.max_attempts = max_attempts
        self._log_handlers: list[LogHandler] = []

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def add_log_handler(self, handler: LogHandler) -> None:
        """Receive (level, message, data) for every parse/validation problem."""
        self._log_handlers.append(handler)

    def _log(self, level: str, message: str, data: Any = None) -> None:
        logger.log(_LOG_LEVELS[level], "[%s] %s", type(self).__name__, message)
        for handler in self._log_handlers:
            handler(level, message, data)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def get_json_completion(self, callbacks: CompletionCallbacks | None = None) -> str:
        return await self.engine.get_completion(self.conversation.messages, JSON_RESPONSE_FORMAT, callbacks)

    async def create_structured(
        self,
        context: str,
        schema: type[T],
        max_attempts: int = 3,
        callbacks: CompletionCallbacks | None = None,
        validation_context: dict[str, Any] | None = None,
    ) -> T:
        """
        Request JSON from the model until it validates against `schema`.

        Each failed parse or validation appends one corrective user message
        and re-requests a completion. Raises StructuredOutputError once
        `max_attempts` completions have failed. CompletionError from the
        engine propagates unchanged.
        """
        last_error = ""
        for attempt in range(1, max_attempts + 1):
            text = await self.get_json_completion(callbacks)

            try:
                data = json.loads(text)
            except json.JSONDecodeError as exc:
                last_error = f"Response was not valid JSON: {exc}"
                self._log(
                    "error",
                    f"Attempt {attempt}: JSON Parse Error",
                    {"error": str(exc), "json_str": text[:100] + "...", "context": context},
                )
                if attempt < max_attempts:
                    self.conversation.add_user(
                        f"Your last response was not valid JSON. Error: {exc}\n"
                        f"Context: {context}\n"
                        "Please respond ONLY with a valid JSON object that matches the required schema."
                    )
                continue

            outcome = validate_structure(schema, data, validation_context)
            if isinstance(outcome, Valid):
                return outcome.value

            last_error = f"Schema validation failed:\n{outcome.describe()}"
            self._log(
                "error",
                f"Attempt {attempt}: Schema Validation Error",
                {"errors": [str(issue) for issue in outcome.issues], "context": context},
            )
            if attempt < max_attempts:
                self.conversation.add_user(
                    f"Your last response was invalid. Error: {last_error}\n"
                    f"Context: {context}\n"
                    "Please provide a corrected response that matches the required schema."
                )

        self._log(
            "error",
            "Max Retries Exceeded",
            {"attempts": max_attempts, "last_error": last_error, "context": context},
        )
        raise StructuredOutputError(
            f"Failed to parse and validate JSON after {max_attempts} attempts. Last error: {last_error}"
        )


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


def safe_plan(query: str) -> Plan:
    """Empty plan used when the provider blocks planning on content policy."""
    return Plan(query=query, actions=[])


class Planner(BaseAgent):
    """Turns a query into a validated Plan."""

    def __init__(
        self,
        engine: CompletionEngine,
        registry: ToolRegistry,
        system_prompt: str | None = None,
        max_attempts: int = 3,
    ) -> None:
        super().__init__(engine, system_prompt or render_planner_prompt(registry), max_attempts)
        self.registry = registry

    async def create_plan(self, query: str, callbacks: CompletionCallbacks | None = None) -> Plan:
        self.conversation.reset()
        self.conversation.add_user(f'Create a detailed plan to answer the following query: "{query}"')

        try:
            plan = await self.create_structured(
                f"Creating plan for query: {query}",
                Plan,
                self.max_attempts,
                callbacks,
                {"query": query},
            )
        except CompletionError as exc:
            if exc.kind is ErrorKind.CONTENT_POLICY:
                self._log("warn", "Content policy triggered while planning. Returning safe plan.", {"error": exc.message})
                self.conversation.reset()
                return safe_plan(query)
            raise AgentError(f"Failed to create plan: {exc}") from exc
        except Exception as exc:
            raise AgentError(f"Failed to create plan: {exc}") from exc

        unknown = [action.tool for action in plan.actions if action.tool not in self.registry]
        if unknown:
            # The worker records these steps as error evidence.
            self._log("warn", "Plan references unregistered tools", {"tools": unknown})
        return plan


# ---------------------------------------------------------------------------
# Solver
# ---------------------------------------------------------------------------


def _preview(data: Any) -> str:
    text = json.dumps(data, default=str, ensure_ascii=False)
    if len(text) > EVIDENCE_PREVIEW_CHARS:
        return text[:EVIDENCE_PREVIEW_CHARS] + "... (truncated)"
    return text


def format_solver_context(query: str, plan: Plan, evidence_map: dict[str, Evidence]) -> str:
    """Render query, plan and evidence as the solver's user message."""
    lines = [f"QUERY: {query}", "", "PLAN AND EVIDENCE:"]
    for action in plan.actions:
        lines.append("")
        lines.append(f"Plan: {action.reasoning}")
        lines.append(f"Tool: {action.tool}")
        lines.append(f"Input: {action.input}")
        evidence = evidence_map.get(action.evidence_var)
        if evidence is None:
            lines.append("Evidence: No evidence collected for this step")
        elif evidence.status == "success":
            lines.append(f"Evidence ({action.evidence_var}): {_preview(evidence.data)}")
        else:
            lines.append(f"Evidence ({action.evidence_var}): ERROR: {evidence.error}")
    lines.append("")
    lines.append("Based on the above plan and evidence, create a solution for the query.")
    return "\n".join(lines)


class Solver(BaseAgent):
    """Combines plan and evidence into a Solution."""

    def __init__(
        self,
        engine: CompletionEngine,
        system_prompt: str | None = None,
        max_attempts: int = 3,
    ) -> None:
        super().__init__(engine, system_prompt or render_solver_prompt(), max_attempts)

    async def create_solution(
        self,
        query: str,
        plan: Plan,
        evidence_map: dict[str, Evidence],
        callbacks: CompletionCallbacks | None = None,
    ) -> Solution:
        self.conversation.reset()
        self.conversation.add_user(format_solver_context(query, plan, evidence_map))

        try:
            return await self.create_structured(
                f"Creating solution for query: {query}",
                Solution,
                self.max_attempts,
                callbacks,
                {"query": query},
            )
        except CompletionError as exc:
            if exc.kind is ErrorKind.CONTENT_POLICY:
                self._log("warn", "Content policy triggered while solving. Returning blocked message.", {"error": exc.message})
                self.conversation.reset()
                return Solution(query=query, answer=self.engine.config.blocked_message)
            raise AgentError(f"Failed to create solution: {exc}") from exc
        except Exception as exc:
            raise AgentError(f"Failed to create solution: {exc}") from exc
