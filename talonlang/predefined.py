"""Startup replay of predefined-variable statements against Persistent scope."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List, Optional

from loguru import logger
from pydantic import ValidationError

from .config import PredefinedPolicy
from .environment import Environment, LocalScope, PersistentStore
from .errors import PredefinedLoadError, TalonError
from .evaluator import Evaluator
from .parser import parse
from .schemas import ErrorInfo, PredefinedFile, PredefinedOutcome
from .types import render


def load_predefined_file(path: str | Path) -> PredefinedFile:
    """Read a JSON document whose root is an array of statement strings."""
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
        return PredefinedFile.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise PredefinedLoadError(-1, str(p), TalonError(f"wrong file format: {e}")) from e


class PredefinedLoader:
    """Parses and evaluates statements strictly in order, once, before any event.

    All statements share one throwaway Local scope so later statements can read
    earlier local assignments; only Persistent effects survive the load.
    """

    def __init__(self, store: PersistentStore, policy: PredefinedPolicy = PredefinedPolicy.FAIL_CLOSED):
        self.store = store
        self.policy = policy

    def load(self, statements: Iterable[str]) -> List[PredefinedOutcome]:
        evaluator = Evaluator(Environment(LocalScope(), self.store))
        outcomes: List[PredefinedOutcome] = []
        for index, statement in enumerate(statements):
            try:
                values = evaluator.run(parse(statement))
            except TalonError as e:
                if self.policy == PredefinedPolicy.FAIL_CLOSED:
                    logger.error("[predefined] #{} {!r} failed: {}", index, statement, e)
                    raise PredefinedLoadError(index, statement, e) from e
                logger.warning("[predefined] #{} {!r} skipped: {}", index, statement, e)
                outcomes.append(PredefinedOutcome(
                    index=index, statement=statement, ok=False, error=ErrorInfo.from_exception(e)
                ))
                continue
            last: Optional[str] = render(values[-1]) if values else None
            logger.info("[predefined] {}: {}", statement, last)
            outcomes.append(PredefinedOutcome(index=index, statement=statement, ok=True, value=last))
        return outcomes
