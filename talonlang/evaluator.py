from __future__ import annotations

from typing import List

from loguru import logger

from . import ast, dispatch
from .environment import Environment
from .errors import NESTED_TOO_DEEPLY, ArithmeticEvaluationError, EvaluationError, TalonTypeError
from .types import (
    FALSE,
    I256_MAX,
    I256_MIN,
    TRUE,
    U256_MAX,
    TypedValue,
    ValueTag,
    truthy,
    values_equal,
)

ORDERING = frozenset({"<", ">", "<=", ">="})
ARITHMETIC = frozenset({"+", "-", "*", "/", "%"})


class Evaluator:
    """Walks an expression tree bottom-up against one Environment."""

    def __init__(self, env: Environment):
        self.env = env

    def run(self, program: ast.Program) -> List[TypedValue]:
        """Evaluate every statement in order; the first error aborts the rest."""
        try:
            return [self.evaluate(stmt) for stmt in program.statements]
        except RecursionError:
            raise EvaluationError(NESTED_TOO_DEEPLY) from None

    # ---------- Expressions ----------
    def evaluate(self, node: ast.Node) -> TypedValue:
        match node:
            case ast.Literal(value=value):
                return value
            case ast.Name(name=name):
                return TypedValue.string(name)
            case ast.Variable():
                try:
                    return self.env.get(node.name)
                except EvaluationError as e:
                    raise e.at(node.line, node.column)
            case ast.ArrayLiteral(items=items):
                return TypedValue.array(self.evaluate(x) for x in items)
            case ast.MapLiteral(entries=entries):
                return TypedValue.map({key: self.evaluate(v) for key, v in entries})
            case ast.MethodCall():
                return self._eval_method_call(node)
            case ast.BinaryOp():
                return self._eval_binary(node)
            case ast.UnaryOp():
                operand = self.evaluate(node.operand)
                try:
                    return self._unary(node.op, operand)
                except EvaluationError as e:
                    raise e.at(node.line, node.column)
            case ast.Assign():
                value = self.evaluate(node.value)
                try:
                    self.env.set(node.name, value)
                except EvaluationError as e:
                    raise e.at(node.line, node.column)
                logger.debug("[set] {} = {!r}", node.name, value)
                return value
            case ast.Try():
                return self._eval_try(node)
        raise TalonTypeError(f"unsupported expression node: {node!r}")

    def _eval_method_call(self, node: ast.MethodCall) -> TypedValue:
        receiver = self.evaluate(node.receiver)
        args = tuple(self.evaluate(a) for a in node.args)
        try:
            if node.method in dispatch.MUTATING and isinstance(node.receiver, ast.Variable):
                return self.env.mutate(node.receiver.name, node.method, args)
            return dispatch.call(receiver, node.method, args)
        except EvaluationError as e:
            raise e.at(node.line, node.column)

    def _eval_try(self, node: ast.Try) -> TypedValue:
        try:
            result = self.evaluate(node.body)
        except EvaluationError as e:
            logger.debug("[try] caught {}: {}", e.kind, e)
            if node.fallback is None:
                return FALSE
            return self.evaluate(node.fallback)
        if node.fallback is None:
            return TypedValue.boolean(truthy(result))
        return result

    def _eval_binary(self, node: ast.BinaryOp) -> TypedValue:
        op = node.op
        if op == "&&":
            if not truthy(self.evaluate(node.left)):
                return FALSE
            return TypedValue.boolean(truthy(self.evaluate(node.right)))
        if op == "||":
            if truthy(self.evaluate(node.left)):
                return TRUE
            return TypedValue.boolean(truthy(self.evaluate(node.right)))
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)
        try:
            return self._apply_bin_op(op, left, right)
        except EvaluationError as e:
            raise e.at(node.line, node.column)

    # ---------- Operators ----------
    def _apply_bin_op(self, op: str, a: TypedValue, b: TypedValue) -> TypedValue:
        a_arr = a.tag == ValueTag.Array
        b_arr = b.tag == ValueTag.Array
        if a_arr and not b_arr:
            return TypedValue.array(self._apply_bin_op(op, x, b) for x in a.value)
        if b_arr and not a_arr:
            return TypedValue.array(self._apply_bin_op(op, a, y) for y in b.value)
        if op == "==":
            return TypedValue.boolean(values_equal(a, b))
        if op == "!=":
            return TypedValue.boolean(not values_equal(a, b))
        if op in ORDERING:
            return self._compare(op, a, b)
        if op in ARITHMETIC:
            return self._arithmetic(op, a, b)
        raise TalonTypeError(f"unknown operator {op}")

    def _compare(self, op: str, a: TypedValue, b: TypedValue) -> TypedValue:
        if not ((a.is_numeric and b.is_numeric) or (a.tag == b.tag == ValueTag.String)):
            raise TalonTypeError(f"can't use operator {op} on type {a.tag.value} and type {b.tag.value}")
        x, y = a.value, b.value
        if op == "<":
            return TypedValue.boolean(x < y)
        if op == ">":
            return TypedValue.boolean(x > y)
        if op == "<=":
            return TypedValue.boolean(x <= y)
        return TypedValue.boolean(x >= y)

    def _arithmetic(self, op: str, a: TypedValue, b: TypedValue) -> TypedValue:
        if not (a.is_numeric and b.is_numeric):
            raise TalonTypeError(f"can't use operator {op} on type {a.tag.value} and type {b.tag.value}")
        x, y = a.value, b.value
        if op == "+":
            n = x + y
        elif op == "-":
            n = x - y
        elif op == "*":
            n = x * y
        else:
            if y == 0:
                raise ArithmeticEvaluationError(f"division by zero in {x} {op} {y}")
            # truncate toward zero, remainder takes the sign of the dividend
            q = abs(x) // abs(y)
            if (x < 0) != (y < 0):
                q = -q
            n = q if op == "/" else x - y * q
        signed = ValueTag.SignedNumber in (a.tag, b.tag)
        return self._checked(n, signed, f"{x} {op} {y}")

    def _checked(self, n: int, signed: bool, what: str) -> TypedValue:
        if signed:
            if n < I256_MIN or n > I256_MAX:
                raise ArithmeticEvaluationError(f"i256 overflow in {what}")
            return TypedValue.signed(n)
        if n < 0:
            raise ArithmeticEvaluationError(f"u256 underflow in {what}")
        if n > U256_MAX:
            raise ArithmeticEvaluationError(f"u256 overflow in {what}")
        return TypedValue.number(n)

    def _unary(self, op: str, v: TypedValue) -> TypedValue:
        if op == "!":
            return TypedValue.boolean(not truthy(v))
        if v.tag == ValueTag.Array:
            return TypedValue.array(self._unary(op, x) for x in v.value)
        if not v.is_numeric:
            raise TalonTypeError(f"can't use unary operator {op} on type {v.tag.value}")
        return self._checked(-v.value, True, f"{op}{v.value}")
