from __future__ import annotations

import time
from functools import lru_cache
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from loguru import logger
from opentelemetry import trace
from pydantic import ValidationError

from . import ast
from .config import RuntimeConfig
from .environment import Environment, LocalScope, PersistentStore
from .errors import ContextValidationError, RuntimeStateError, TalonError
from .evaluator import Evaluator
from .parser import parse
from .predefined import PredefinedLoader
from .schemas import ErrorInfo, EvaluationResult, EventContext, EventVerdict, PredefinedOutcome, RuleVerdict
from .types import TypedValue, truthy

_tracer = trace.get_tracer(__name__)

Rule = Union[str, ast.Program]


class Runtime:
    """Owns the Persistent scope and evaluates rules against per-event contexts.

    One Runtime is shared by every evaluation in a process; each call builds its
    own Local scope, so concurrent calls only meet at the persistent store.
    """

    def __init__(self, config: Optional[RuntimeConfig] = None, store: Optional[PersistentStore] = None):
        self.config = config or RuntimeConfig()
        self.store = store or PersistentStore()
        self.console: List[str] = []
        self.predefined: List[PredefinedOutcome] = []
        self._loaded = False
        self._started = False
        if self.config.parse_cache_size > 0:
            self._parse = lru_cache(maxsize=self.config.parse_cache_size)(parse)
        else:
            self._parse = parse

    def log(self, msg: str):
        self.console.append(msg)
        logger.info(msg)

    # ---------- Startup ----------
    def load_predefined(self, statements: Iterable[str]) -> List[PredefinedOutcome]:
        if self._loaded:
            raise RuntimeStateError("predefined variables were already loaded")
        if self._started:
            raise RuntimeStateError("predefined variables must be loaded before the first evaluation")
        with _tracer.start_as_current_span("talon:predefined"):
            loader = PredefinedLoader(self.store, self.config.predefined_policy)
            self.predefined = loader.load(statements)
        self._loaded = True
        failed = sum(1 for o in self.predefined if not o.ok)
        self.log(f"[predefined] loaded {len(self.predefined) - failed} statements, skipped {failed}")
        return self.predefined

    # ---------- Evaluation ----------
    def _program(self, rule: Rule) -> ast.Program:
        if isinstance(rule, ast.Program):
            return rule
        return self._parse(rule)

    def _context(self, event_context: Union[None, EventContext, Mapping[str, Any]]) -> EventContext:
        if isinstance(event_context, EventContext):
            ctx = event_context
        else:
            try:
                ctx = EventContext(variables=dict(event_context or {}))
            except ValidationError as e:
                raise ContextValidationError(str(e)) from e
        if self.config.require_chain_fields and not ctx.has_chain_fields():
            raise ContextValidationError("event context lacks $<chain>_block_number or $<chain>_contract")
        return ctx

    def _run(self, rule: Rule, event_context) -> List[TypedValue]:
        self._started = True
        try:
            ctx = self._context(event_context)
            local = LocalScope(ctx.to_scope())
        except RecursionError:
            raise ContextValidationError("event context nested too deeply") from None
        program = self._program(rule)
        return Evaluator(Environment(local, self.store)).run(program)

    def evaluate(self, rule: Rule, event_context=None) -> EvaluationResult:
        """Evaluate a rule and return its decision, or the error that stopped it.

        Rule errors never escape: they come back in ``EvaluationResult.error``,
        which callers must keep apart from ``decision=False``. Persistent writes
        made before the failing statement stay in place.
        """
        start = time.perf_counter()
        with _tracer.start_as_current_span("talon:evaluate") as span:
            try:
                values = self._run(rule, event_context)
            except TalonError as e:
                elapsed = (time.perf_counter() - start) * 1000.0
                span.set_attribute("talon.error", e.kind)
                logger.debug("[evaluate] {}: {}", e.kind, e)
                return EvaluationResult(error=ErrorInfo.from_exception(e), duration_ms=elapsed)
            decision = all(truthy(v) for v in values)
            span.set_attribute("talon.decision", decision)
        elapsed = (time.perf_counter() - start) * 1000.0
        logger.debug("[evaluate] decision={} in {:.3f}ms", decision, elapsed)
        return EvaluationResult(decision=decision, duration_ms=elapsed)

    def evaluate_value(self, rule: Rule, event_context=None) -> TypedValue:
        """Return the value of the last statement; errors propagate."""
        with _tracer.start_as_current_span("talon:evaluate_value"):
            values = self._run(rule, event_context)
        if not values:
            raise RuntimeStateError("rule has no statements")
        return values[-1]

    def evaluate_event(self, event: str, event_context, rule_files: Iterable[Any],
                       topic_hasher: Optional[Callable[[str], str]] = None) -> EventVerdict:
        """Evaluate every rule file subscribed to ``event`` and aggregate the verdicts."""
        verdict = EventVerdict(event=event)
        with _tracer.start_as_current_span(f"talon:event:{event}"):
            for rule_file in rule_files:
                if not rule_file.matches(event, topic_hasher):
                    continue
                result = self.evaluate(rule_file.rules, event_context)
                verdict.verdicts.append(RuleVerdict(name=rule_file.name, result=result))
                if result.failed:
                    self.log(f"[{rule_file.name}] error {result.error.kind}: {result.error.message}")
                else:
                    self.log(f"[{rule_file.name}] {'allow' if result.decision else 'deny'}")
        return verdict
