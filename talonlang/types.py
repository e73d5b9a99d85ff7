from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Mapping

from .errors import ConversionError

U256_MAX = 2 ** 256 - 1
I256_MIN = -(2 ** 255)
I256_MAX = 2 ** 255 - 1

_HEX_RE = re.compile(r"^0[xX][0-9a-fA-F]+$")
_DEC_RE = re.compile(r"^[0-9]+$")
_SIGNED_DEC_RE = re.compile(r"^-?[0-9]+$")

# decimal digits in U256_MAX; longer decimal text can never be in range
MAX_DECIMAL_DIGITS = len(str(U256_MAX))


class ValueTag(str, Enum):
    String = "String"
    Number = "Number"
    SignedNumber = "SignedNumber"
    Bool = "Bool"
    Array = "Array"
    Map = "Map"


class ConversionTarget(str, Enum):
    """Destination type accepted by the as() built-in."""
    u256 = "u256"
    i256 = "i256"
    string = "string"
    hex = "hex"

    @classmethod
    def parse(cls, raw: str) -> "ConversionTarget":
        try:
            return cls(raw)
        except ValueError:
            raise ConversionError(f"unknown conversion target {raw!r}") from None


NUMERIC_TAGS = frozenset({ValueTag.Number, ValueTag.SignedNumber})


@dataclass(frozen=True)
class TypedValue:
    """A TALON value: one of the six closed kinds plus its Python payload.

    Payloads are ``str`` for String, ``int`` for Number and SignedNumber,
    ``bool`` for Bool, a tuple of TypedValue for Array and a dict of
    ``str -> TypedValue`` for Map. Maps are never mutated in place; every
    operation builds a new dict.
    """
    tag: ValueTag
    value: Any = None

    # ---------- constructors ----------
    @classmethod
    def string(cls, s: str) -> "TypedValue":
        return cls(ValueTag.String, str(s))

    @classmethod
    def number(cls, n: int) -> "TypedValue":
        if n < 0 or n > U256_MAX:
            raise ConversionError(f"{n} is outside the u256 range")
        return cls(ValueTag.Number, int(n))

    @classmethod
    def signed(cls, n: int) -> "TypedValue":
        if n < I256_MIN or n > I256_MAX:
            raise ConversionError(f"{n} is outside the i256 range")
        return cls(ValueTag.SignedNumber, int(n))

    @classmethod
    def boolean(cls, b: bool) -> "TypedValue":
        return cls(ValueTag.Bool, bool(b))

    @classmethod
    def array(cls, items: Iterable["TypedValue"]) -> "TypedValue":
        return cls(ValueTag.Array, tuple(items))

    @classmethod
    def map(cls, entries: Mapping[str, "TypedValue"]) -> "TypedValue":
        return cls(ValueTag.Map, dict(entries))

    # ---------- helpers ----------
    @property
    def is_numeric(self) -> bool:
        return self.tag in NUMERIC_TAGS

    def __repr__(self) -> str:
        return f"{self.tag.value}({render(self)})"


TRUE = TypedValue.boolean(True)
FALSE = TypedValue.boolean(False)


def from_python(raw: Any) -> TypedValue:
    """Lift a plain Python value (as handed over by a chain adapter) into a TypedValue."""
    if isinstance(raw, TypedValue):
        return raw
    if isinstance(raw, bool):
        return TypedValue.boolean(raw)
    if isinstance(raw, int):
        return TypedValue.number(raw) if raw >= 0 else TypedValue.signed(raw)
    if isinstance(raw, str):
        if raw.startswith("u256:"):
            return TypedValue.number(_parse_int(raw[5:], raw))
        if raw.startswith("i256:"):
            return TypedValue.signed(_parse_int(raw[5:], raw))
        return TypedValue.string(raw)
    if isinstance(raw, (list, tuple)):
        return TypedValue.array(from_python(x) for x in raw)
    if isinstance(raw, dict):
        return TypedValue.map({str(k): from_python(v) for k, v in raw.items()})
    raise ConversionError(f"cannot represent {type(raw).__name__} value {raw!r} in TALON")


def to_python(value: TypedValue) -> Any:
    if value.tag == ValueTag.Array:
        return [to_python(x) for x in value.value]
    if value.tag == ValueTag.Map:
        return {k: to_python(v) for k, v in value.value.items()}
    return value.value


def render(value: TypedValue) -> str:
    """Canonical textual form, used by as(string) and string push."""
    tag = value.tag
    if tag == ValueTag.Bool:
        return "true" if value.value else "false"
    if tag == ValueTag.Array:
        return "[" + ",".join(render(x) for x in value.value) + "]"
    if tag == ValueTag.Map:
        return "{" + ",".join(f"{k}:{render(value.value[k])}" for k in sorted(value.value)) + "}"
    return str(value.value)


def truthy(value: TypedValue) -> bool:
    """Bool is itself, an Array reduces by AND over its elements, any other value is true.

    A successfully returned String, Number or Map (for example the collection
    returned by a push) counts as true, so an Array is false exactly when it
    holds a ``Bool(false)`` at any depth.
    """
    if value.tag == ValueTag.Bool:
        return value.value
    if value.tag == ValueTag.Array:
        return all(truthy(x) for x in value.value)
    return True


# ---------- conversions ----------
def _decimal(text: str, original: str) -> int:
    negative = text.startswith("-")
    digits = text.lstrip("-").lstrip("0") or "0"
    if len(digits) > MAX_DECIMAL_DIGITS:
        raise ConversionError(f"can't convert {original[:20]!r}... to a number: too many digits")
    n = int(digits, 10)
    return -n if negative else n


def _parse_int(text: str, original: str) -> int:
    text = text.strip()
    if text[:5] in ("u256:", "i256:"):
        text = text[5:]
    if _HEX_RE.match(text):
        return int(text, 16)
    if _SIGNED_DEC_RE.match(text):
        return _decimal(text, original)
    raise ConversionError(f"can't convert {original!r} to a number")


def convert(value: TypedValue, target: ConversionTarget) -> TypedValue:
    """Apply a single (non-broadcast) as() conversion."""
    tag = value.tag
    if target == ConversionTarget.string:
        return TypedValue.string(render(value))

    if tag in (ValueTag.Bool, ValueTag.Array, ValueTag.Map):
        raise ConversionError(f"can't convert {tag.value} to {target.value}")

    if target == ConversionTarget.u256:
        n = value.value if value.is_numeric else _parse_int(value.value, value.value)
        if n < 0 or n > U256_MAX:
            raise ConversionError(f"can't convert {render(value)} to u256: out of range")
        return TypedValue.number(n)

    if target == ConversionTarget.i256:
        n = value.value if value.is_numeric else _parse_int(value.value, value.value)
        if n < I256_MIN or n > I256_MAX:
            raise ConversionError(f"can't convert {render(value)} to i256: out of range")
        return TypedValue.signed(n)

    # hex
    if tag == ValueTag.String:
        text = value.value.strip()
        if _HEX_RE.match(text):
            return TypedValue.string("0x" + text[2:].lower())
        if _DEC_RE.match(text):
            n = _decimal(text, text)
            if n > U256_MAX:
                raise ConversionError(f"can't convert {text!r} to hex: out of range")
            return TypedValue.string(hex(n))
        raise ConversionError(f"can't convert {value.value!r} to hex")
    n = value.value
    if n < 0:
        # two's complement over 256 bits
        n += 2 ** 256
    return TypedValue.string(hex(n))


# ---------- JSON encoding (state snapshots) ----------
def encode_json(value: TypedValue) -> Dict[str, Any]:
    tag = value.tag
    if tag in NUMERIC_TAGS:
        payload: Any = str(value.value)
    elif tag == ValueTag.Array:
        payload = [encode_json(x) for x in value.value]
    elif tag == ValueTag.Map:
        payload = {k: encode_json(v) for k, v in value.value.items()}
    else:
        payload = value.value
    return {"tag": tag.value, "value": payload}


def decode_json(data: Mapping[str, Any]) -> TypedValue:
    try:
        tag = ValueTag(data["tag"])
        payload = data["value"]
    except (KeyError, ValueError, TypeError) as e:
        raise ConversionError(f"malformed encoded value {data!r}") from e
    if tag == ValueTag.Number:
        return TypedValue.number(int(payload))
    if tag == ValueTag.SignedNumber:
        return TypedValue.signed(int(payload))
    if tag == ValueTag.Array:
        return TypedValue.array(decode_json(x) for x in payload)
    if tag == ValueTag.Map:
        return TypedValue.map({k: decode_json(v) for k, v in payload.items()})
    if tag == ValueTag.Bool:
        return TypedValue.boolean(payload)
    return TypedValue.string(payload)


def values_equal(a: TypedValue, b: TypedValue) -> bool:
    """Structural equality; Number and SignedNumber compare by numeric value."""
    if a.is_numeric and b.is_numeric:
        return a.value == b.value
    if a.tag != b.tag:
        return False
    if a.tag == ValueTag.Array:
        return len(a.value) == len(b.value) and all(values_equal(x, y) for x, y in zip(a.value, b.value))
    if a.tag == ValueTag.Map:
        return a.value.keys() == b.value.keys() and all(values_equal(a.value[k], b.value[k]) for k in a.value)
    return a.value == b.value


