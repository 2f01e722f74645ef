# run.py
# Entry point. Config and wiring only, no logic lives here.
#
# Any OpenAI-compatible endpoint works. Set PLANNER_API_KEY / PLANNER_BASE_URL /
# PLANNER_MODEL (and the SOLVER_* and TOOL_LLM_* equivalents) in the
# environment or a .env file; unset SOLVER_* / TOOL_LLM_* values fall back to
# the planner's.

import asyncio
import logging
import os
import sys

from rich.logging import RichHandler

from plan_execute import display
from plan_execute.agents import Planner, Solver
from plan_execute.completion import CompletionEngine
from plan_execute.config import AiConfig, WorkerConfig
from plan_execute.errors import AgentError
from plan_execute.moderation import Moderator
from plan_execute.orchestrator import Orchestrator
from plan_execute.run_log import RunLogWriter
from plan_execute.tools import default_registry
from plan_execute.worker import Worker

DEFAULT_MODEL = "gpt-4o-mini"
LOG_DIR = os.getenv("PLAN_EXECUTE_LOG_DIR", "logs")

# Demo queries: arithmetic, lookup, chained.
PROMPTS = [
    "What is 2+2?",
    "Who wrote the novel Dune, and in what year was it first published?",
    "Find the height of the Eiffel Tower in metres and convert it to feet.",
]


def build_orchestrator() -> tuple[Orchestrator, list[CompletionEngine]]:
    planner_config = AiConfig.from_env("PLANNER", model=DEFAULT_MODEL)
    shared = planner_config.model_dump(include={"model", "api_key", "base_url"})
    solver_config = AiConfig.from_env("SOLVER", **shared)
    tool_config = AiConfig.from_env("TOOL_LLM", **shared, max_tokens=1024, temperature=0.7)

    engines = [CompletionEngine(planner_config), CompletionEngine(solver_config), CompletionEngine(tool_config)]
    registry = default_registry(engines[2])
    worker = Worker.from_config(registry, WorkerConfig())
    moderator = Moderator(api_key=os.getenv("OPENAI_API_KEY")) if os.getenv("MODERATION_ENABLED") else None

    display.banner(planner_config.model, solver_config.model, registry.get_tool_names())
    orchestrator = Orchestrator(
        Planner(engines[0], registry),
        worker,
        Solver(engines[1]),
        moderator=moderator,
        on_retry=display.retry_notice,
    )
    return orchestrator, engines


async def run_query(orchestrator: Orchestrator, query: str, writer: RunLogWriter) -> None:
    display.prompt_received(query)
    try:
        solution = await orchestrator.process(query)
    except AgentError as exc:
        display.halt(str(exc))
    else:
        state = orchestrator.get_state()
        if state.plan is not None:
            display.plan_table(state.plan)
        display.evidence_table(state)
        display.final_result(solution)
    finally:
        state = orchestrator.get_state()
        display.run_summary(state)
        display.log_saved(str(writer.save(state)))


async def amain(queries: list[str]) -> None:
    orchestrator, engines = build_orchestrator()
    writer = RunLogWriter(LOG_DIR)
    try:
        for query in queries:
            await run_query(orchestrator, query, writer)
    finally:
        for engine in engines:
            await engine.aclose()


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "WARNING"),
        format="%(message)s",
        handlers=[RichHandler(console=display.console, show_path=False)],
    )
    queries = [" ".join(sys.argv[1:])] if len(sys.argv) > 1 else PROMPTS
    asyncio.run(amain(queries))


if __name__ == "__main__":
    main()
