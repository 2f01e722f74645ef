# display.py
# All terminal output for the plan-execute runtime.
#
# This module owns presentation entirely. The orchestrator and agents never
# format strings for the terminal; run.py calls named functions here.
#
# Colour language:
#   cyan    : pipeline stages and routing
#   yellow  : retries and warnings
#   green   : success / final answer
#   red     : failures and halts
#   magenta : per-action tool calls and evidence

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from plan_execute.models import ExecutionState, Plan, RetryNotification, Solution

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: Any, max_len: int = 120) -> str:
    if not isinstance(value, str):
        value = json.dumps(value, default=str, ensure_ascii=False)
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Pipeline entry
# ---------------------------------------------------------------------------


def banner(planner_model: str, solver_model: str, tool_names: list[str]) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Plan-Execute Agent Runtime[/bold cyan]\n"
            "[dim]Plan → execute every step → solve from the collected evidence[/dim]\n\n"
            f"[dim]Planner model :[/dim] [white]{planner_model}[/white]\n"
            f"[dim]Solver model  :[/dim] [white]{solver_model}[/white]\n"
            f"[dim]Tools         :[/dim] [white]{', '.join(tool_names)}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def prompt_received(query: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW QUERY[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{query}[/white]",
            title=_label("QUERY", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def retry_notice(notification: RetryNotification) -> None:
    status = f" status={notification.status}" if notification.status is not None else ""
    console.print(
        f"  [yellow]↻ Retry {notification.attempt}[/yellow] "
        f"[dim]in {notification.backoff_ms:.0f}ms{status}[/dim]  [white]{_mono(notification.error, 100)}[/white]"
    )


# ---------------------------------------------------------------------------
# Plan and evidence
# ---------------------------------------------------------------------------


def plan_table(plan: Plan) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("ID", justify="center", width=4)
    table.add_column("Var", style="magenta", width=5)
    table.add_column("Tool", style="bold white", width=12)
    table.add_column("Input", style="dim white", width=32)
    table.add_column("Reasoning", style="white")

    for action in plan.actions:
        table.add_row(
            str(action.id),
            action.evidence_var,
            action.tool,
            _mono(action.input, 30),
            action.reasoning,
        )

    console.print(
        Panel(
            table,
            title=_label("PLAN", "cyan"),
            subtitle=f"[dim]{len(plan.actions)} action(s)[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


def evidence_table(state: ExecutionState) -> None:
    if state.plan is None:
        return
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Var", justify="center", width=6)
    table.add_column("Tool", width=12)
    table.add_column("Status", justify="center", width=8)
    table.add_column("Result", style="dim white")

    for action in state.plan.actions:
        evidence = state.evidence_map.get(action.evidence_var)
        if evidence is None:
            table.add_row(action.evidence_var, action.tool, "[dim]—[/dim]", "[dim]not executed[/dim]")
        elif evidence.status == "success":
            table.add_row(action.evidence_var, action.tool, "[bold green]✓[/bold green]", _mono(evidence.data, 60))
        else:
            table.add_row(action.evidence_var, action.tool, "[bold red]✗[/bold red]", f"[red]{_mono(evidence.error, 60)}[/red]")

    console.print(
        Panel(
            table,
            title="[dim]EVIDENCE[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )


def run_summary(state: ExecutionState) -> None:
    duration = f"{state.duration_ms:.0f}ms" if state.duration_ms is not None else "—"
    console.print(
        f"[dim]  stage={state.stage.value}  duration={duration}  "
        f"tokens={state.tokens.total_tokens} "
        f"(prompt {state.tokens.prompt_tokens} / completion {state.tokens.completion_tokens})[/dim]"
    )


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


def final_result(solution: Solution) -> None:
    body = f"[white]{solution.answer}[/white]"
    if solution.reasoning:
        body += f"\n\n[dim]{solution.reasoning}[/dim]"
    console.print()
    console.print(
        Panel(
            body,
            title=_label("ANSWER", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{reason}[/bold white]",
            title=_label("FAILED", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


def log_saved(path: str) -> None:
    console.print(f"[dim]  Run log written to {path}[/dim]")
