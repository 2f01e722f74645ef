# prompts.py
# System prompts for the planner and solver roles. Agents treat the
# rendered strings as opaque.

import json

from plan_execute.registry import ToolRegistry

PLANNER_EXAMPLES = [
    {
        "query": "What is 15% of the population of France?",
        "plan": {
            "query": "What is 15% of the population of France?",
            "actions": [
                {
                    "id": 1,
                    "tool": "search",
                    "input": "current population of France",
                    "reasoning": "Find the latest population figure.",
                    "evidence_var": "#E1",
                },
                {
                    "id": 2,
                    "tool": "llm",
                    "input": "Extract the population of France as a plain number from: #E1",
                    "reasoning": "Turn the search results into a single number.",
                    "evidence_var": "#E2",
                },
                {
                    "id": 3,
                    "tool": "calculator",
                    "input": "#E2 * 15%",
                    "reasoning": "Compute 15% of that number.",
                    "evidence_var": "#E3",
                },
            ],
        },
    },
    {
        "query": "Who wrote the novel Dune?",
        "plan": {
            "query": "Who wrote the novel Dune?",
            "actions": [
                {
                    "id": 1,
                    "tool": "wikipedia",
                    "input": "Dune novel",
                    "reasoning": "Wikipedia states the author of well-known novels.",
                    "evidence_var": "#E1",
                }
            ],
        },
    },
]

PLANNER_PROMPT = """\
You are a planner. For the user's query, write a step-by-step plan in which
every step calls exactly one tool. Later steps may use the result of an
earlier step by writing its evidence variable (#E1, #E2, ...) inside their input.

Respond ONLY with a JSON object of this shape:
{{
  "query": "the original query",
  "actions": [
    {{
      "id": 1,
      "tool": "tool_name",
      "input": "input for the tool, may contain #E variables",
      "reasoning": "why this step is needed",
      "evidence_var": "#E1"
    }}
  ]
}}

Available tools:
{tools}

Use only the tools listed above. Keep plans short: use the fewest steps that
answer the query.

Examples:
{examples}\
"""

SOLVER_PROMPT = """\
You are a solver. You receive a query, the plan that was executed for it and
the evidence each step produced. Some steps may have failed; say so when it
matters and answer from the evidence that is available.

Respond ONLY with a JSON object of this shape:
{
  "query": "the original query",
  "answer": "a direct, complete answer to the query",
  "reasoning": "short explanation of how the evidence supports the answer"
}\
"""


def render_tool_catalog(registry: ToolRegistry) -> str:
    return "\n".join(f"- {name}: {tool.description}" for name, tool in registry.get_all().items())


def examples_for(registry: ToolRegistry) -> list[dict]:
    """Worked examples whose every action uses a registered tool."""
    return [
        example
        for example in PLANNER_EXAMPLES
        if all(action["tool"] in registry for action in example["plan"]["actions"])
    ]


def render_planner_prompt(registry: ToolRegistry) -> str:
    examples = "\n\n".join(
        f"Query: {example['query']}\nPlan: {json.dumps(example['plan'], indent=2)}"
        for example in examples_for(registry)
    )
    return PLANNER_PROMPT.format(tools=render_tool_catalog(registry), examples=examples)


def render_solver_prompt() -> str:
    return SOLVER_PROMPT
