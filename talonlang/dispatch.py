"""Built-in method dispatch table and the array broadcast rule.

Every built-in is looked up statically by ``(receiver kind, method name)``.
Handlers return ``(result, updated)`` where ``updated`` is the receiver
collection after the call; callers that hold the receiver in a variable write
``updated`` back, all others discard it.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, Sequence, Tuple

from .errors import (
    ConversionError,
    EmptyCollectionError,
    TalonIndexError,
    TalonKeyError,
    TalonTypeError,
)
from .types import FALSE, TRUE, ConversionTarget, TypedValue, ValueTag, convert, render, values_equal

Outcome = Tuple[TypedValue, Optional[TypedValue]]
Handler = Callable[[TypedValue, Sequence[TypedValue]], Outcome]

# Structural methods act on the array itself; element-wise methods broadcast
# over the elements of an Array receiver.
STRUCTURAL = frozenset({"at", "slice", "push", "pop", "insert", "remove", "get"})
ELEMENT_WISE = frozenset({"contains", "as"})
MUTATING = frozenset({"push", "pop", "insert", "remove"})

ARITY: Dict[str, int] = {
    "contains": 1,
    "at": 1,
    "slice": 2,
    "push": 1,
    "pop": 0,
    "insert": 2,
    "remove": 1,
    "get": 1,
    "as": 1,
}


# ---------- argument helpers ----------
def _index(arg: TypedValue, method: str) -> int:
    if not arg.is_numeric:
        raise TalonTypeError(f"{method} expects a numeric index, got {arg.tag.value}")
    if arg.value < 0:
        raise TalonIndexError(f"{method} index {arg.value} is negative")
    return arg.value


def _key(arg: TypedValue) -> str:
    if arg.tag == ValueTag.String:
        return arg.value
    if arg.is_numeric:
        return str(arg.value)
    raise TalonTypeError(f"map keys must be strings, got {arg.tag.value}")


def _bounds(receiver: TypedValue, args: Sequence[TypedValue]) -> Tuple[int, int]:
    start = _index(args[0], "slice")
    end = _index(args[1], "slice")
    length = len(receiver.value)
    if start > end or end > length:
        raise TalonIndexError(
            f"can't slice out of bounds for {receiver.tag.value} from {start} to {end} for length {length}"
        )
    return start, end


# ---------- Array ----------
def _array_contains(receiver, args) -> Outcome:
    return TypedValue.boolean(any(values_equal(x, args[0]) for x in receiver.value)), None


def _array_at(receiver, args) -> Outcome:
    i = _index(args[0], "at")
    if i >= len(receiver.value):
        raise TalonIndexError(f"index {i} out of bounds for Array of length {len(receiver.value)}")
    return receiver.value[i], None


def _array_slice(receiver, args) -> Outcome:
    start, end = _bounds(receiver, args)
    return TypedValue.array(receiver.value[start:end]), None


def _array_push(receiver, args) -> Outcome:
    updated = TypedValue.array(receiver.value + (args[0],))
    return updated, updated


def _array_pop(receiver, args) -> Outcome:
    if not receiver.value:
        raise EmptyCollectionError("the array is empty")
    return receiver.value[-1], TypedValue.array(receiver.value[:-1])


# ---------- String ----------
def _string_contains(receiver, args) -> Outcome:
    return TypedValue.boolean(render(args[0]) in receiver.value), None


def _string_slice(receiver, args) -> Outcome:
    start, end = _bounds(receiver, args)
    return TypedValue.string(receiver.value[start:end]), None


def _string_push(receiver, args) -> Outcome:
    updated = TypedValue.string(receiver.value + render(args[0]))
    return updated, updated


def _string_pop(receiver, args) -> Outcome:
    if not receiver.value:
        raise EmptyCollectionError("the string is empty")
    return TypedValue.string(receiver.value[-1]), TypedValue.string(receiver.value[:-1])


# ---------- Map ----------
def _map_insert(receiver, args) -> Outcome:
    entries = dict(receiver.value)
    entries[_key(args[0])] = args[1]
    return TRUE, TypedValue.map(entries)


def _map_remove(receiver, args) -> Outcome:
    key = _key(args[0])
    if key not in receiver.value:
        return FALSE, receiver
    entries = dict(receiver.value)
    del entries[key]
    return TRUE, TypedValue.map(entries)


def _map_get(receiver, args) -> Outcome:
    key = _key(args[0])
    if key not in receiver.value:
        raise TalonKeyError(f"unknown key {key}. key not found")
    return receiver.value[key], None


def _map_contains(receiver, args) -> Outcome:
    raise TalonTypeError("contains is not supported on Map; use get and handle the missing key")


# ---------- any ----------
def _as(receiver, args) -> Outcome:
    target = args[0]
    if target.tag != ValueTag.String:
        raise ConversionError(
            f"can't use function as with parameter {render(target)}. Use only the conversion target"
        )
    return convert(receiver, ConversionTarget.parse(target.value)), None


DISPATCH: Dict[Tuple[ValueTag, str], Handler] = {
    (ValueTag.Array, "contains"): _array_contains,
    (ValueTag.Array, "at"): _array_at,
    (ValueTag.Array, "slice"): _array_slice,
    (ValueTag.Array, "push"): _array_push,
    (ValueTag.Array, "pop"): _array_pop,
    (ValueTag.String, "contains"): _string_contains,
    (ValueTag.String, "slice"): _string_slice,
    (ValueTag.String, "push"): _string_push,
    (ValueTag.String, "pop"): _string_pop,
    (ValueTag.Map, "insert"): _map_insert,
    (ValueTag.Map, "remove"): _map_remove,
    (ValueTag.Map, "get"): _map_get,
    (ValueTag.Map, "contains"): _map_contains,
}
for _tag in ValueTag:
    DISPATCH[(_tag, "as")] = _as


def _lookup(receiver: TypedValue, method: str, args: Sequence[TypedValue]) -> Handler:
    handler = DISPATCH.get((receiver.tag, method))
    if handler is None:
        if method not in ARITY:
            raise TalonTypeError(f"invalid function called {method}")
        raise TalonTypeError(f"can't call {method} on {receiver.tag.value}")
    expected = ARITY[method]
    if len(args) != expected:
        raise TalonTypeError(f"{method} expects {expected} argument(s), got {len(args)}")
    return handler


def broadcasts(receiver: TypedValue, method: str) -> bool:
    """True when ``method`` is applied element by element to an Array receiver.

    ``as`` always broadcasts. ``contains`` broadcasts only over an array of
    arrays; on a flat array it is the membership test.
    """
    if receiver.tag != ValueTag.Array or method not in ELEMENT_WISE:
        return False
    if method == "as":
        return True
    return bool(receiver.value) and all(x.tag == ValueTag.Array for x in receiver.value)


def call(receiver: TypedValue, method: str, args: Sequence[TypedValue]) -> TypedValue:
    """Invoke a built-in without writing anything back (temporary receivers)."""
    if broadcasts(receiver, method):
        return TypedValue.array(call(x, method, args) for x in receiver.value)
    result, _ = _lookup(receiver, method, args)(receiver, args)
    return result


def call_mutating(receiver: TypedValue, method: str, args: Sequence[TypedValue]) -> Outcome:
    """Invoke a structural mutating built-in and return ``(result, updated receiver)``."""
    result, updated = _lookup(receiver, method, args)(receiver, args)
    return result, (updated if updated is not None else receiver)
