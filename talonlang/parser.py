from pathlib import Path
import re
from typing import List, Optional

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedEOF, UnexpectedInput, VisitError

from . import ast
from .errors import NESTED_TOO_DEEPLY, ConversionError, ParseError
from .types import FALSE, MAX_DECIMAL_DIGITS, TRUE, TypedValue

GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")

_parser = None

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'"}
_ESCAPE_RE = re.compile(r"\\(.)")


def _load_parser() -> Lark:
    global _parser
    if _parser is None:
        grammar = GRAMMAR_PATH.read_text(encoding="utf-8")
        _parser = Lark(grammar, start="start", parser="lalr", maybe_placeholders=True)
    return _parser


def _unquote(token: Token) -> str:
    body = str(token)[1:-1]
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def _pos(token: Token):
    return getattr(token, "line", None), getattr(token, "column", None)


@v_args(inline=True)
class _ToAst(Transformer):
    """Turns the lark parse tree into the immutable nodes of ``talonlang.ast``."""

    def start(self, *statements):
        return tuple(statements)

    def binary(self, left, op, right):
        line, column = _pos(op)
        return ast.BinaryOp(str(op), left, right, line, column)

    def unary_op(self, op, operand):
        line, column = _pos(op)
        return ast.UnaryOp(str(op), operand, line, column)

    def method_call(self, receiver, name, args):
        line, column = _pos(name)
        return ast.MethodCall(receiver, str(name), tuple(args or ()), line, column)

    def args(self, *items):
        return list(items)

    def variable(self, token):
        line, column = _pos(token)
        return ast.Variable(str(token), line, column)

    def integer(self, token):
        digits = str(token).lstrip("0") or "0"
        if len(digits) > MAX_DECIMAL_DIGITS:
            raise ParseError(f"integer literal {str(token)[:20]}... too large", *_pos(token), token.start_pos)
        try:
            return ast.Literal(TypedValue.number(int(digits)))
        except ConversionError as e:
            raise ParseError(f"integer literal {token} too large: {e}", *_pos(token), token.start_pos)

    def hex_string(self, token):
        return ast.Literal(TypedValue.string(str(token)))

    def string(self, token):
        return ast.Literal(TypedValue.string(_unquote(token)))

    def true(self, _token):
        return ast.Literal(TRUE)

    def false(self, _token):
        return ast.Literal(FALSE)

    def array(self, items):
        return ast.ArrayLiteral(tuple(items or ()))

    def map(self, pairs):
        return ast.MapLiteral(tuple(pairs or ()))

    def pairs(self, *items):
        return list(items)

    def pair(self, key, value):
        text = _unquote(key) if key.type == "STRING" else str(key)
        return (text, value)

    def assign(self, keyword, target, value):
        line, column = _pos(keyword)
        return ast.Assign(str(target), value, line, column)

    def try_expr(self, _keyword, body, fallback):
        return ast.Try(body, fallback)

    def name(self, token):
        return ast.Name(str(token))


def _to_parse_error(e: UnexpectedInput, text: str) -> ParseError:
    if isinstance(e, UnexpectedEOF):
        lines = text.splitlines() or [""]
        return ParseError("unexpected end of rule text", len(lines), len(lines[-1]) + 1, len(text))
    line: Optional[int] = getattr(e, "line", None)
    column: Optional[int] = getattr(e, "column", None)
    if line is not None and line < 1:
        line = column = None
    offset: Optional[int] = getattr(e, "pos_in_stream", None)
    reason = str(e).strip().splitlines()[0] if str(e).strip() else "malformed rule text"
    return ParseError(reason, line, column, offset)


def parse(text: str) -> ast.Program:
    """Parse TALON rule text into a Program. Raises ParseError on malformed input."""
    if not isinstance(text, str):
        raise ParseError(f"rule text must be a string, got {type(text).__name__}")
    parser = _load_parser()
    try:
        tree = parser.parse(text)
    except UnexpectedInput as e:
        raise _to_parse_error(e, text) from e
    try:
        statements: List[ast.Node] = _ToAst().transform(tree)
    except RecursionError:
        raise ParseError(NESTED_TOO_DEEPLY) from None
    except VisitError as e:
        if isinstance(e.orig_exc, ParseError):
            raise e.orig_exc from None
        if isinstance(e.orig_exc, RecursionError):
            raise ParseError(NESTED_TOO_DEEPLY) from None
        raise
    return ast.Program(tuple(statements), text)
