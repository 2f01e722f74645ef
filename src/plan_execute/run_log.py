# run_log.py
# Persists an orchestrator run's log sequence as a human-readable,
# append-only text file: one block per entry, data indented beneath.

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from plan_execute.models import ExecutionLog, ExecutionState


def _format_data(data: Any) -> str:
    if isinstance(data, str):
        return data
    return json.dumps(data, indent=2, default=str, ensure_ascii=False)


def format_entry(entry: ExecutionLog) -> str:
    line = f"{entry.timestamp.isoformat()} {entry.level.upper():<5} {entry.message}\n"
    if entry.data is not None:
        line += "\n".join(f"  {row}" for row in _format_data(entry.data).splitlines()) + "\n"
    return line


class RunLogWriter:
    def __init__(self, log_dir: str | Path, session_id: str | None = None) -> None:
        self.log_dir = Path(log_dir)
        started = datetime.now(timezone.utc).isoformat()
        self.session_id = session_id or started.replace(":", "-").replace(".", "-")
        self._written: set[str] = set()

    @property
    def path(self) -> Path:
        return self.log_dir / f"{self.session_id}.log"

    def save(self, state: ExecutionState) -> Path:
        """
        Append the entries of `state.logs` not yet written by this writer.
        Entries, including those of consecutive runs, are separated by a blank line.
        """
        blocks = [format_entry(entry) for entry in state.logs]
        blocks = [block for block in blocks if block not in self._written]
        if not blocks:
            return self.path

        self.log_dir.mkdir(parents=True, exist_ok=True)
        separator = "\n" if self.path.exists() and self.path.stat().st_size > 0 else ""
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(separator + "\n".join(blocks))
        self._written.update(blocks)
        return self.path
