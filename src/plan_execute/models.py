# models.py
# Data contracts for the plan-execute runtime.
# Schema, defaulting and validation only; no business logic lives here.

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, model_validator

DEFAULT_REASONING = "No reasoning provided"

LogLevel = Literal["debug", "info", "warn", "error"]
Component = Literal["planner", "worker", "solver", "system"]


# ---------------------------------------------------------------------------
# Usage telemetry
# ---------------------------------------------------------------------------


class TokenUsage(BaseModel):
    """Prompt/completion token counters for one call or a whole run."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: "TokenUsage | None") -> None:
        if other is None:
            return
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


class Action(BaseModel):
    """A single planned tool invocation."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=1, description="1-based action sequence number.")
    tool: str = Field(..., description="Tool name, looked up in the tool registry at execution time.")
    input: str = Field(..., description="Tool input, may reference evidence variables such as #E1.")
    reasoning: str = Field(default=DEFAULT_REASONING, description="Why this action is needed.")
    evidence_var: str = Field(..., description="Variable the evidence is stored under, e.g. #E1.")


class Plan(BaseModel):
    """Ordered actions produced by the planner for one query."""

    model_config = ConfigDict(frozen=True)

    query: str = Field(..., description="The original user query.")
    actions: list[Action] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        query = (info.context or {}).get("query")
        if not data.get("query") and query:
            data["query"] = query

        actions = data.get("actions")
        if isinstance(actions, list):
            filled = []
            for position, action in enumerate(actions, start=1):
                if isinstance(action, dict):
                    action = dict(action)
                    if not action.get("id"):
                        action["id"] = position
                    if not action.get("reasoning"):
                        action["reasoning"] = DEFAULT_REASONING
                    if not action.get("evidence_var"):
                        action["evidence_var"] = f"#E{position}"
                filled.append(action)
            data["actions"] = filled
        return data

    @model_validator(mode="after")
    def _evidence_vars_unique(self) -> "Plan":
        seen: set[str] = set()
        for action in self.actions:
            if action.evidence_var in seen:
                raise ValueError(f"Duplicate evidence_var '{action.evidence_var}'")
            seen.add(action.evidence_var)
        return self


# ---------------------------------------------------------------------------
# Execution results
# ---------------------------------------------------------------------------


class ToolResult(BaseModel):
    """What a tool returns from execute()."""

    status: Literal["success", "error"]
    data: Any = None
    error: str | None = None
    tokens: TokenUsage | None = None


class Evidence(BaseModel):
    """Outcome of one executed action, keyed by its evidence variable."""

    model_config = ConfigDict(frozen=True)

    var_name: str
    action_id: int
    status: Literal["success", "error"]
    data: Any = None
    error: str | None = None
    tokens: TokenUsage | None = None


class Solution(BaseModel):
    """The final answer synthesised from query, plan and evidence."""

    query: str
    answer: str = Field(..., min_length=1)
    reasoning: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_query(cls, data: Any, info: ValidationInfo) -> Any:
        if isinstance(data, dict) and not data.get("query"):
            query = (info.context or {}).get("query")
            if query:
                data = {**data, "query": query}
        return data


# ---------------------------------------------------------------------------
# Completion telemetry
# ---------------------------------------------------------------------------


class RetryNotification(BaseModel):
    """Emitted once before every completion retry. Never stored."""

    type: Literal["retry"] = "retry"
    attempt: int
    backoff_ms: float
    error: str
    status: int | None = None
    headers: dict[str, str] | None = None
    error_details: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Orchestrator state
# ---------------------------------------------------------------------------


class RunStage(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    SOLVING = "solving"
    DONE = "done"
    FAILED = "failed"


class ExecutionLog(BaseModel):
    """One append-only entry in a run's log sequence."""

    timestamp: datetime
    level: LogLevel
    message: str
    data: Any = None
    component: Component | None = None


class ExecutionState(BaseModel):
    """Everything one process() call produced. Owned by the orchestrator."""

    query: str = ""
    stage: RunStage = RunStage.IDLE
    plan: Plan | None = None
    current_action_index: int = 0
    evidence_map: dict[str, Evidence] = Field(default_factory=dict)
    solution: Solution | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    logs: list[ExecutionLog] = Field(default_factory=list)

    @property
    def duration_ms(self) -> float | None:
        """Wall-clock run time, available once the run has finished."""
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds() * 1000
