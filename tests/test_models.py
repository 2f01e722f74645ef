from datetime import datetime, timedelta, timezone

from plan_execute.models import ExecutionState, Plan, Solution, TokenUsage
from plan_execute.validation import Invalid, Valid, validate_structure

# ---------------------------------------------------------------------------
# Plan defaulting
# ---------------------------------------------------------------------------


def test_action_defaults_are_filled_from_position():
    outcome = validate_structure(Plan, {"actions": [{"tool": "x", "input": "y"}]}, {"query": "q"})

    assert isinstance(outcome, Valid)
    action = outcome.value.actions[0]
    assert action.model_dump() == {
        "id": 1,
        "tool": "x",
        "input": "y",
        "reasoning": "No reasoning provided",
        "evidence_var": "#E1",
    }
    assert outcome.value.query == "q"


def test_explicit_fields_are_kept():
    data = {
        "query": "from model",
        "actions": [
            {"tool": "a", "input": "1"},
            {"id": 7, "tool": "b", "input": "#E1", "reasoning": "because", "evidence_var": "#RESULT"},
        ],
    }
    plan = Plan.model_validate(data, context={"query": "ignored"})

    assert plan.query == "from model"
    assert plan.actions[1].id == 7
    assert plan.actions[1].evidence_var == "#RESULT"
    assert plan.actions[0].evidence_var == "#E1"


def test_missing_required_field_reports_path():
    outcome = validate_structure(Plan, {"query": "q", "actions": [{"input": "2+2"}]})

    assert isinstance(outcome, Invalid)
    assert any(issue.path == "actions.0.tool" for issue in outcome.issues)
    assert "actions.0.tool" in outcome.describe()


def test_tool_names_are_not_checked_by_the_schema():
    outcome = validate_structure(
        Plan,
        {"query": "q", "actions": [{"tool": "teleport", "input": "mars"}]},
        {"query": "q"},
    )

    assert isinstance(outcome, Valid)
    assert outcome.value.actions[0].tool == "teleport"


def test_duplicate_evidence_vars_are_invalid():
    outcome = validate_structure(
        Plan,
        {
            "query": "q",
            "actions": [
                {"tool": "a", "input": "1", "evidence_var": "#E1"},
                {"tool": "b", "input": "2", "evidence_var": "#E1"},
            ],
        },
    )

    assert isinstance(outcome, Invalid)
    assert "Duplicate evidence_var '#E1'" in outcome.describe()


def test_non_object_payload_is_invalid():
    assert isinstance(validate_structure(Plan, ["not", "a", "plan"]), Invalid)


# ---------------------------------------------------------------------------
# Solution
# ---------------------------------------------------------------------------


def test_solution_query_defaults_to_input_query():
    solution = Solution.model_validate({"answer": "4"}, context={"query": "2+2"})
    assert solution.query == "2+2"
    assert solution.reasoning is None


def test_solution_requires_answer():
    outcome = validate_structure(Solution, {"query": "q", "answer": ""})
    assert isinstance(outcome, Invalid)
    assert outcome.issues[0].path == "answer"


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


def test_duration_only_after_run_finished():
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    state = ExecutionState(start_time=start)
    assert state.duration_ms is None

    state.end_time = start + timedelta(milliseconds=1500)
    assert state.duration_ms == 1500


def test_token_usage_add_ignores_none():
    usage = TokenUsage(prompt_tokens=1, completion_tokens=2, total_tokens=3)
    usage.add(None)
    usage.add(TokenUsage(prompt_tokens=10, completion_tokens=20, total_tokens=30))
    assert usage == TokenUsage(prompt_tokens=11, completion_tokens=22, total_tokens=33)
