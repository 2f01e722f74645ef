# orchestrator.py
# Plan-Execute orchestrator.
#
# The Orchestrator is the only owner of run state. Agents and the worker
# are passive: it calls them in a fixed order and records what they return.
#
# Control flow:
#   idle → (moderation?) → planning → executing(0..N-1) → solving → done
#   any uncaught error in planning/solving → failed (logged, re-raised)
#
# Actions run strictly one after another; action k+1 only starts after the
# evidence for action k is stored, because its input may reference it.

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from plan_execute.agents import Planner, Solver
from plan_execute.completion import CompletionCallbacks, usage_of
from plan_execute.models import Component, ExecutionLog, ExecutionState, LogLevel, RetryNotification, RunStage, Solution
from plan_execute.moderation import Moderator
from plan_execute.worker import Worker

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"debug": logging.DEBUG, "info": logging.INFO, "warn": logging.WARNING, "error": logging.ERROR}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Orchestrator:
    """
    Runs one query through planner, worker and solver.

    Example:
        orchestrator = Orchestrator(planner, worker, solver)
        solution = await orchestrator.process("What is 2+2?")
        state = orchestrator.get_state()
    """

    def __init__(
        self,
        planner: Planner,
        worker: Worker,
        solver: Solver,
        moderator: Moderator | None = None,
        on_retry: Callable[[RetryNotification], None] | None = None,
    ) -> None:
        self.planner = planner
        self.worker = worker
        self.solver = solver
        self.moderator = moderator
        self._on_retry = on_retry
        self._state = ExecutionState()

        planner.add_log_handler(self._agent_log_handler("planner"))
        solver.add_log_handler(self._agent_log_handler("solver"))

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def process(self, query: str) -> Solution:
        """
        Plan, execute every action, then solve.

        Returns the Solution. Planning or solving failures are logged, the run
        is marked FAILED and the error is re-raised; the partial state stays
        available through get_state().
        """
        self._state = ExecutionState(query=query, start_time=_now())
        self.log("info", f"Processing query: {query}", {"query": query}, "system")

        try:
            if self.moderator is not None and await self._blocked_by_moderation(query):
                self._state.solution = Solution(query=query, answer=self.solver.engine.config.blocked_message)
                self._transition(RunStage.DONE)
                return self._state.solution

            # ── Planning ──────────────────────────────────────────────
            self._transition(RunStage.PLANNING)
            self.log("info", "Creating plan", None, "planner")
            plan = await self.planner.create_plan(query, callbacks=self._callbacks("planner"))
            self._state.plan = plan
            self.log("info", "Plan created", {"plan": plan.model_dump()}, "planner")

            # ── Execution ─────────────────────────────────────────────
            self._transition(RunStage.EXECUTING)
            for index, action in enumerate(plan.actions):
                self._state.current_action_index = index
                self.log("info", f"Executing action {index + 1}: {action.tool}", {"action": action.model_dump()}, "worker")

                evidence = await self.worker.execute_action(action, dict(self._state.evidence_map))
                self._state.evidence_map[action.evidence_var] = evidence
                self._state.tokens.add(evidence.tokens)

                self.log(
                    "info" if evidence.status == "success" else "error",
                    f"Action {index + 1} {evidence.status}",
                    {"evidence": evidence.model_dump()},
                    "worker",
                )

            # ── Solving ───────────────────────────────────────────────
            self._transition(RunStage.SOLVING)
            self.log("info", "Creating solution", None, "solver")
            self._state.solution = await self.solver.create_solution(
                query,
                plan,
                dict(self._state.evidence_map),
                callbacks=self._callbacks("solver"),
            )
            self.log("info", "Solution created", {"solution": self._state.solution.model_dump()}, "solver")
            self._transition(RunStage.DONE)
        except Exception as exc:
            self._state.stage = RunStage.FAILED
            self.log("error", f"Error in processing: {exc}", {"error": str(exc), "type": type(exc).__name__}, "system")
            raise
        finally:
            self._state.end_time = _now()

        return self._state.solution

    def get_state(self) -> ExecutionState:
        """Read-only snapshot of the current or last run."""
        return self._state.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def log(self, level: LogLevel, message: str, data: Any = None, component: Component | None = None) -> None:
        self._state.logs.append(
            ExecutionLog(timestamp=_now(), level=level, message=message, data=data, component=component)
        )
        logger.log(_LOG_LEVELS[level], "[%s] %s", component or "system", message)

    def _agent_log_handler(self, component: Component):
        def handle(level: str, message: str, data: Any = None) -> None:
            self.log(level, message, data, component)

        return handle

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, stage: RunStage) -> None:
        self.log("debug", f"Stage {self._state.stage.value} -> {stage.value}", {"stage": stage.value}, "system")
        self._state.stage = stage

    def _callbacks(self, component: Component) -> CompletionCallbacks:
        def on_retry(notification: RetryNotification) -> None:
            self.log(
                "warn",
                f"Completion retry {notification.attempt} in {notification.backoff_ms:.0f}ms",
                notification.model_dump(exclude_none=True),
                component,
            )
            if self._on_retry is not None:
                self._on_retry(notification)

        def on_completion(completion: Any) -> None:
            self._state.tokens.add(usage_of(completion))

        return CompletionCallbacks(on_retry=on_retry, on_completion=on_completion)

    async def _blocked_by_moderation(self, query: str) -> bool:
        result = await self.moderator.moderate(query)
        if result.flagged:
            flagged = [name for name, hit in result.categories.items() if hit]
            self.log("warn", "Query flagged by moderation", {"categories": flagged}, "system")
        return result.flagged
