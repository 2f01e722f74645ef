# validation.py
# Structural validation as a result type.
#
# validate_structure() never raises on bad data: it returns Valid(value) or
# Invalid(issues) so the corrective-retry loop can branch on the outcome.

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class FieldIssue:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    issues: list[FieldIssue]

    def describe(self) -> str:
        return "\n".join(f"- {issue}" for issue in self.issues)


ValidationOutcome = Union[Valid[T], Invalid]


def _path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc)


def validate_structure(schema: type[T], data: Any, context: dict[str, Any] | None = None) -> ValidationOutcome:
    try:
        return Valid(schema.model_validate(data, context=context))
    except ValidationError as exc:
        return Invalid([FieldIssue(_path(err["loc"]), err["msg"]) for err in exc.errors()])
