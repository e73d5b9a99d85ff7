# Expression tree produced by the parser. Nodes are immutable so parsed
# programs can be cached and shared between concurrent evaluations.
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .types import TypedValue


@dataclass(frozen=True)
class Literal:
    value: TypedValue


@dataclass(frozen=True)
class Name:
    """Bare identifier such as the ``u256`` in ``as(u256)``; evaluates to a String."""
    name: str


@dataclass(frozen=True)
class Variable:
    name: str  # includes the leading '$'
    line: Optional[int] = None
    column: Optional[int] = None


@dataclass(frozen=True)
class ArrayLiteral:
    items: Tuple["Node", ...]


@dataclass(frozen=True)
class MapLiteral:
    entries: Tuple[Tuple[str, "Node"], ...]


@dataclass(frozen=True)
class MethodCall:
    receiver: "Node"
    method: str
    args: Tuple["Node", ...]
    line: Optional[int] = None
    column: Optional[int] = None


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"
    line: Optional[int] = None
    column: Optional[int] = None


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"
    line: Optional[int] = None
    column: Optional[int] = None


@dataclass(frozen=True)
class Assign:
    name: str
    value: "Node"
    line: Optional[int] = None
    column: Optional[int] = None


@dataclass(frozen=True)
class Try:
    body: "Node"
    fallback: Optional["Node"] = None


Node = Union[Literal, Name, Variable, ArrayLiteral, MapLiteral, MethodCall, BinaryOp, UnaryOp, Assign, Try]


@dataclass(frozen=True)
class Program:
    statements: Tuple[Node, ...]
    source: str = ""
