# conversation.py
# Per-role message buffer. Append-only, with one explicit truncation:
# reset() keeps at most the first message (the system prompt).

from typing import Literal

Role = Literal["system", "user", "assistant"]


class Conversation:
    def __init__(self, system_prompt: str | None = None) -> None:
        self._messages: list[dict[str, str]] = []
        if system_prompt:
            self.append("system", system_prompt)

    def append(self, role: Role, content: str) -> None:
        self._messages.append({"role": role, "content": content})

    def add_user(self, content: str) -> None:
        self.append("user", content)

    def add_assistant(self, content: str) -> None:
        self.append("assistant", content)

    @property
    def messages(self) -> list[dict[str, str]]:
        """Shallow copy, safe to hand to a provider."""
        return [dict(message) for message in self._messages]

    def reset(self) -> None:
        self._messages = self._messages[:1]

    def clear(self) -> None:
        self._messages = []

    def __len__(self) -> int:
        return len(self._messages)
