from datetime import datetime, timezone
from types import SimpleNamespace

from pydantic import BaseModel

from plan_execute.models import ExecutionLog, ExecutionState
from plan_execute.moderation import MODERATION_MODEL, Moderator
from plan_execute.run_log import RunLogWriter, format_entry

STAMP = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Run log
# ---------------------------------------------------------------------------


def test_entry_without_data_is_one_line():
    entry = ExecutionLog(timestamp=STAMP, level="warn", message="Completion retry 1 in 2500ms")
    assert format_entry(entry) == "2024-01-01T00:00:00+00:00 WARN  Completion retry 1 in 2500ms\n"


def test_entry_data_is_indented_json():
    entry = ExecutionLog(timestamp=STAMP, level="info", message="Plan created", data={"a": 1}, component="planner")
    assert format_entry(entry) == ('2024-01-01T00:00:00+00:00 INFO  Plan created\n  {\n    "a": 1\n  }\n')


def test_string_data_is_written_verbatim():
    entry = ExecutionLog(timestamp=STAMP, level="error", message="boom", data="line one\nline two")
    assert format_entry(entry).endswith("  line one\n  line two\n")


def test_save_appends_to_session_file(tmp_path):
    writer = RunLogWriter(tmp_path / "logs", session_id="session-1")
    first = ExecutionState(logs=[ExecutionLog(timestamp=STAMP, level="info", message="first run")])
    second = ExecutionState(logs=[ExecutionLog(timestamp=STAMP, level="info", message="second run")])

    path = writer.save(first)
    writer.save(second)

    assert path == tmp_path / "logs" / "session-1.log"
    content = path.read_text(encoding="utf-8")
    assert content.index("first run") < content.index("second run")
    assert "first run\n\n2024-01-01T00:00:00+00:00 INFO  second run" in content


def test_saving_the_same_state_twice_writes_entries_once(tmp_path):
    writer = RunLogWriter(tmp_path, session_id="session-2")
    state = ExecutionState(
        logs=[
            ExecutionLog(timestamp=STAMP, level="info", message="Processing query: q"),
            ExecutionLog(timestamp=STAMP, level="info", message="Creating plan"),
        ]
    )

    writer.save(state)
    state.logs.append(ExecutionLog(timestamp=STAMP, level="info", message="Plan created"))
    writer.save(state)

    content = writer.path.read_text(encoding="utf-8")
    assert content.count("Processing query: q") == 1
    assert content.count("Creating plan") == 1
    assert content.endswith("Creating plan\n\n2024-01-01T00:00:00+00:00 INFO  Plan created\n")


def test_default_session_id_is_filename_safe(tmp_path):
    writer = RunLogWriter(tmp_path)
    assert ":" not in writer.path.name
    assert writer.path.suffix == ".log"


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------


class _Categories(BaseModel):
    violence: bool
    hate: bool


class _Scores(BaseModel):
    violence: float
    hate: float


def _client(create):
    return SimpleNamespace(moderations=SimpleNamespace(create=create))


async def test_moderation_reports_flagged_categories():
    calls = []

    async def create(**kwargs):
        calls.append(kwargs)
        result = SimpleNamespace(
            flagged=True,
            categories=_Categories(violence=True, hate=False),
            category_scores=_Scores(violence=0.97, hate=0.01),
        )
        return SimpleNamespace(results=[result])

    result = await Moderator(client=_client(create)).moderate("text")

    assert result.flagged is True
    assert result.categories == {"violence": True, "hate": False}
    assert result.category_scores["violence"] == 0.97
    assert calls == [{"model": MODERATION_MODEL, "input": "text"}]


async def test_moderation_fails_open():
    async def create(**kwargs):
        raise ConnectionError("moderation endpoint unreachable")

    result = await Moderator(client=_client(create)).moderate("text")

    assert result.flagged is False
    assert result.categories == {}
