"""Pydantic schemas for TALON inputs and results.

Inputs handed over by external collaborators (event contexts, predefined
variable files) are validated here before they reach the core; results leave
the core only in these shapes.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel, computed_field, field_validator, model_validator

from .environment import is_persistent
from .errors import TalonError
from .types import TypedValue, from_python

_VAR_NAME = re.compile(r"^\$[A-Za-z_][A-Za-z0-9_]*$")


class ErrorInfo(BaseModel):
    """Structured description of the error that stopped an evaluation."""
    kind: str
    message: str
    line: Optional[int] = None
    column: Optional[int] = None

    @classmethod
    def from_exception(cls, e: TalonError) -> "ErrorInfo":
        return cls(
            kind=e.kind,
            message=str(e),
            line=getattr(e, "line", None),
            column=getattr(e, "column", None),
        )


class EvaluationResult(BaseModel):
    """Exactly one of ``decision`` or ``error`` is set.

    An error is never a denial: callers must treat "could not evaluate"
    separately from ``decision=False``.
    """
    decision: Optional[bool] = None
    error: Optional[ErrorInfo] = None
    duration_ms: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def _exactly_one(self) -> "EvaluationResult":
        if (self.decision is None) == (self.error is None):
            raise ValueError("an evaluation result carries either a decision or an error")
        return self

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def allowed(self) -> bool:
        return self.decision is True


class EventContext(BaseModel):
    """Read-only per-event variables supplied by a chain adapter."""
    model_config = ConfigDict(frozen=True)

    variables: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("variables")
    @classmethod
    def check_names(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        for name in v:
            if not isinstance(name, str) or not _VAR_NAME.match(name):
                raise ValueError(f"context key {name!r} is not a $variable name")
            if is_persistent(name):
                raise ValueError(f"context key {name} would shadow a persistent variable")
        return v

    def has_chain_fields(self) -> bool:
        names = self.variables.keys()
        return (any(n.endswith("_block_number") for n in names)
                and any(n.endswith("_contract") for n in names))

    def to_scope(self) -> Dict[str, TypedValue]:
        return {name: from_python(value) for name, value in self.variables.items()}


class PredefinedFile(RootModel[List[str]]):
    """A predefined-variable document: a JSON array of statement strings."""

    def __iter__(self):
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)


class PredefinedOutcome(BaseModel):
    index: int
    statement: str
    ok: bool
    value: Optional[str] = None
    error: Optional[ErrorInfo] = None


class RuleVerdict(BaseModel):
    name: str
    result: EvaluationResult


class EventVerdict(BaseModel):
    """Aggregate over every rule file that matched one event."""
    event: str
    verdicts: List[RuleVerdict] = Field(default_factory=list)

    @computed_field
    @property
    def allowed(self) -> bool:
        return all(v.result.decision is True for v in self.verdicts)

    @property
    def checked(self) -> List[str]:
        return [v.name for v in self.verdicts]

    @property
    def denied(self) -> List[str]:
        return [v.name for v in self.verdicts if v.result.decision is False]

    @property
    def errored(self) -> Dict[str, ErrorInfo]:
        return {v.name: v.result.error for v in self.verdicts if v.result.error is not None}
