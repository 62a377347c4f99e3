"""
Typed column values.

Every value read from the database is decoded into exactly one
``TypedValue`` variant. Each variant knows how to render itself as a SQL
literal (for INSERT statements) and as a short display label (for graph
node labels), and how to turn itself back into a driver parameter so it
can be used as a filter when fetching related rows.

Column types that have no dedicated variant decode to ``UnknownValue``,
which keeps the raw bytes and the declared type name instead of failing.
"""

import json
import math
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from cherrypick.constants import DISPLAY_LABEL_MAX_LENGTH

__all__ = [
    "TypedValue",
    "NullValue",
    "BoolValue",
    "IntegerValue",
    "DecimalValue",
    "TextValue",
    "UuidValue",
    "TimestampValue",
    "DateValue",
    "UnknownValue",
    "NULL",
    "decode",
    "render_sql_literal",
    "render_display_label",
]


def _quote(text: str) -> str:
    """Quote text as a standard SQL string literal."""
    return "'" + text.replace("'", "''") + "'"


def _truncate(text: str, max_length: int = DISPLAY_LABEL_MAX_LENGTH) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


class TypedValue(ABC):
    """Base class for all decoded column values."""

    @abstractmethod
    def sql_literal(self) -> str:
        """Render as a literal usable inside an INSERT statement."""

    @abstractmethod
    def display_label(self) -> str:
        """Render as a short human-oriented label."""

    @abstractmethod
    def to_param(self) -> Any:
        """Convert back to a value the database driver can bind as a parameter."""

    @property
    def is_null(self) -> bool:
        return False


@dataclass(frozen=True)
class NullValue(TypedValue):
    def sql_literal(self) -> str:
        return "NULL"

    def display_label(self) -> str:
        return "null"

    def to_param(self) -> Any:
        return None

    @property
    def is_null(self) -> bool:
        return True


NULL = NullValue()


@dataclass(frozen=True)
class BoolValue(TypedValue):
    value: bool

    def sql_literal(self) -> str:
        return "TRUE" if self.value else "FALSE"

    def display_label(self) -> str:
        return "true" if self.value else "false"

    def to_param(self) -> Any:
        return self.value


@dataclass(frozen=True)
class IntegerValue(TypedValue):
    value: int

    def sql_literal(self) -> str:
        return str(self.value)

    def display_label(self) -> str:
        return str(self.value)

    def to_param(self) -> Any:
        return self.value


@dataclass(frozen=True)
class DecimalValue(TypedValue):
    """
    Exact decimal stored as sign, unscaled integer and scale.

    The represented number is ``(-1 ** sign) * unscaled * 10 ** -scale``.
    A negative scale means trailing zeros before the decimal point.
    """

    sign: int
    unscaled: int
    scale: int

    def __post_init__(self):
        if self.sign not in (0, 1):
            raise ValueError(f"sign must be 0 or 1, got {self.sign}")
        if self.unscaled < 0:
            raise ValueError("unscaled digits must be non-negative")

    @classmethod
    def from_decimal(cls, value: Decimal) -> "DecimalValue":
        if not value.is_finite():
            raise ValueError(f"Cannot represent non-finite decimal {value}")
        sign, digits, exponent = value.as_tuple()
        unscaled = int("".join(str(d) for d in digits)) if digits else 0
        return cls(sign=sign, unscaled=unscaled, scale=-exponent)

    def to_decimal(self) -> Decimal:
        return Decimal((self.sign, tuple(int(d) for d in str(self.unscaled)), -self.scale))

    def sql_literal(self) -> str:
        text = str(self.unscaled)
        if self.scale > 0:
            text = text.rjust(self.scale + 1, "0")
            text = f"{text[: -self.scale]}.{text[-self.scale :]}"
        elif self.scale < 0:
            text += "0" * -self.scale
        return f"-{text}" if self.sign else text

    def display_label(self) -> str:
        return self.sql_literal()

    def to_param(self) -> Any:
        return self.to_decimal()


@dataclass(frozen=True)
class TextValue(TypedValue):
    value: str

    def sql_literal(self) -> str:
        return _quote(self.value)

    def display_label(self) -> str:
        return _truncate(self.value)

    def to_param(self) -> Any:
        return self.value


@dataclass(frozen=True)
class UuidValue(TypedValue):
    raw: bytes

    def __post_init__(self):
        if len(self.raw) != 16:
            raise ValueError(f"UUID must be 16 bytes, got {len(self.raw)}")

    @property
    def canonical(self) -> str:
        return str(uuid.UUID(bytes=self.raw))

    def sql_literal(self) -> str:
        return _quote(self.canonical)

    def display_label(self) -> str:
        return self.canonical

    def to_param(self) -> Any:
        return uuid.UUID(bytes=self.raw)


@dataclass(frozen=True)
class TimestampValue(TypedValue):
    """Civil date and time, with an optional zone (tzinfo)."""

    value: datetime

    def sql_literal(self) -> str:
        return _quote(self.value.isoformat())

    def display_label(self) -> str:
        return self.value.isoformat(sep=" ")

    def to_param(self) -> Any:
        return self.value


@dataclass(frozen=True)
class DateValue(TypedValue):
    value: date

    def sql_literal(self) -> str:
        return _quote(self.value.isoformat())

    def display_label(self) -> str:
        return self.value.isoformat()

    def to_param(self) -> Any:
        return self.value


@dataclass(frozen=True)
class UnknownValue(TypedValue):
    """Value of a column type without a dedicated variant."""

    raw: bytes
    type_name: str

    @classmethod
    def from_raw(cls, raw: Any, type_name: str) -> "UnknownValue":
        if isinstance(raw, (bytes, bytearray, memoryview)):
            data = bytes(raw)
        elif isinstance(raw, str):
            data = raw.encode("utf-8")
        else:
            data = str(raw).encode("utf-8")
        return cls(raw=data, type_name=type_name)

    def _is_binary(self) -> bool:
        if self.type_name.lower() == "bytea":
            return True
        try:
            self.raw.decode("utf-8")
        except UnicodeDecodeError:
            return True
        return False

    def _text(self) -> str:
        if self._is_binary():
            return "\\x" + self.raw.hex()
        return self.raw.decode("utf-8")

    def sql_literal(self) -> str:
        marker = self.type_name.replace("*/", "* /")
        return f"{_quote(self._text())} /* unknown type: {marker} */"

    def display_label(self) -> str:
        return f"<{self.type_name}>"

    def to_param(self) -> Any:
        if self._is_binary():
            return self.raw
        return self.raw.decode("utf-8")


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

_TRUE_STRINGS = {"t", "true", "1", "y", "yes", "on"}
_FALSE_STRINGS = {"f", "false", "0", "n", "no", "off"}


def _as_text(raw: Any) -> str:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw).decode("utf-8")
    if isinstance(raw, str):
        return raw
    raise TypeError(f"Expected text, got {type(raw).__name__}")


def _decode_bool(raw: Any) -> TypedValue:
    if isinstance(raw, bool):
        return BoolValue(raw)
    if isinstance(raw, int) and raw in (0, 1):
        return BoolValue(bool(raw))
    text = _as_text(raw).strip().lower()
    if text in _TRUE_STRINGS:
        return BoolValue(True)
    if text in _FALSE_STRINGS:
        return BoolValue(False)
    raise ValueError(f"Not a boolean: {raw!r}")


def _decode_integer(raw: Any) -> TypedValue:
    if isinstance(raw, bool):
        raise TypeError("Boolean is not an integer")
    if isinstance(raw, int):
        return IntegerValue(raw)
    if isinstance(raw, Decimal):
        if raw != raw.to_integral_value():
            raise ValueError(f"Not an integer: {raw}")
        return IntegerValue(int(raw))
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ValueError(f"Not an integer: {raw}")
        return IntegerValue(int(raw))
    return IntegerValue(int(_as_text(raw).strip()))


def _decode_decimal(raw: Any) -> TypedValue:
    if isinstance(raw, bool):
        raise TypeError("Boolean is not a decimal")
    if isinstance(raw, Decimal):
        return DecimalValue.from_decimal(raw)
    if isinstance(raw, int):
        return DecimalValue.from_decimal(Decimal(raw))
    if isinstance(raw, float):
        return _decode_float(raw)
    try:
        return DecimalValue.from_decimal(Decimal(_as_text(raw).strip()))
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal: {raw!r}") from e


def _decode_float(raw: Any) -> TypedValue:
    if isinstance(raw, float):
        if not math.isfinite(raw):
            raise ValueError(f"Non-finite float {raw}")
        # repr() is the shortest text that reads back as the same float
        return DecimalValue.from_decimal(Decimal(repr(raw)))
    return _decode_decimal(raw)


def _decode_text(raw: Any) -> TypedValue:
    return TextValue(_as_text(raw))


def _decode_json(raw: Any) -> TypedValue:
    # Drivers hand back parsed JSON; raw bytes are taken to be the document text
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return TextValue(_as_text(raw))
    return TextValue(json.dumps(raw))


def _decode_uuid(raw: Any) -> TypedValue:
    if isinstance(raw, uuid.UUID):
        return UuidValue(raw.bytes)
    if isinstance(raw, (bytes, bytearray, memoryview)) and len(bytes(raw)) == 16:
        return UuidValue(bytes(raw))
    return UuidValue(uuid.UUID(_as_text(raw).strip()).bytes)


def _decode_timestamp(raw: Any) -> TypedValue:
    if isinstance(raw, datetime):
        return TimestampValue(raw)
    if isinstance(raw, date):
        raise TypeError("Date without time is not a timestamp")
    return TimestampValue(datetime.fromisoformat(_as_text(raw).strip()))


def _decode_date(raw: Any) -> TypedValue:
    if isinstance(raw, datetime):
        raise TypeError("Timestamp is not a date")
    if isinstance(raw, date):
        return DateValue(raw)
    return DateValue(date.fromisoformat(_as_text(raw).strip()))


_DECODERS: dict[str, Callable[[Any], TypedValue]] = {
    "boolean": _decode_bool,
    "bool": _decode_bool,
    "smallint": _decode_integer,
    "integer": _decode_integer,
    "bigint": _decode_integer,
    "int": _decode_integer,
    "int2": _decode_integer,
    "int4": _decode_integer,
    "int8": _decode_integer,
    "smallserial": _decode_integer,
    "serial": _decode_integer,
    "bigserial": _decode_integer,
    "numeric": _decode_decimal,
    "decimal": _decode_decimal,
    "real": _decode_float,
    "double precision": _decode_float,
    "float4": _decode_float,
    "float8": _decode_float,
    "character varying": _decode_text,
    "varchar": _decode_text,
    "character": _decode_text,
    "char": _decode_text,
    "bpchar": _decode_text,
    "text": _decode_text,
    "citext": _decode_text,
    "name": _decode_text,
    "xml": _decode_text,
    "json": _decode_json,
    "jsonb": _decode_json,
    "uuid": _decode_uuid,
    "timestamp without time zone": _decode_timestamp,
    "timestamp with time zone": _decode_timestamp,
    "timestamp": _decode_timestamp,
    "timestamptz": _decode_timestamp,
    "date": _decode_date,
}


def _normalize_type_name(declared_type: str) -> str:
    """Lowercase, drop type modifiers like (255) or (10,2), collapse whitespace."""
    name = re.sub(r"\([^)]*\)", "", declared_type.lower())
    return " ".join(name.split())


def is_text_form_type(declared_type: str) -> bool:
    """
    True for types that decode to ``UnknownValue`` from their server text form.

    These are the types without a decoder, except bytea, whose driver value
    is the raw bytes.
    """
    name = _normalize_type_name(declared_type or "")
    return name not in _DECODERS and name != "bytea"


def decode(raw: Any, declared_type: str) -> TypedValue:
    """
    Decode a raw column value into a TypedValue.

    Never raises: values of unsupported types, or values that cannot be
    coerced to their declared type, become ``UnknownValue``.

    Args:
        raw: Value as returned by the database driver (Python object, bytes or text)
        declared_type: SQL type name of the column (e.g. 'integer', 'numeric(10,2)')

    Returns:
        The decoded TypedValue
    """
    if raw is None:
        return NULL

    decoder = _DECODERS.get(_normalize_type_name(declared_type or ""))
    if decoder is None:
        return UnknownValue.from_raw(raw, declared_type or "unknown")

    try:
        return decoder(raw)
    except (TypeError, ValueError, ArithmeticError, UnicodeDecodeError):
        return UnknownValue.from_raw(raw, declared_type)


def render_sql_literal(value: TypedValue) -> str:
    """Render a TypedValue as a SQL literal."""
    return value.sql_literal()


def render_display_label(value: TypedValue) -> str:
    """Render a TypedValue as a short display label."""
    return value.display_label()
