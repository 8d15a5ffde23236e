r"""
Commandeer typed value adapters.

Overview
- Each adapter wraps a single storage cell of one primitive type and knows how
  to parse a textual argument into it (set) and how to render it back (str).
- Cells
  • Box: private storage owned by the adapter (used by FlagSet.int_flag & co).
  • Ref: an attribute of another object (used by the dataclass binder, so the
    parsed value lands directly on the user's option object).

Adapters
- BoolValue      → bool       (the only boolean-like adapter, see is_bool_flag)
- IntValue       → int        (signed, 64-bit range)
- Int64Value     → Int64      (signed, 64-bit range)
- UintValue      → Uint       (unsigned, 64-bit range)
- Uint64Value    → Uint64     (unsigned, 64-bit range)
- Float64Value   → float
- StringValue    → str
- DurationValue  → timedelta  (human duration grammar, e.g. "1h30m")

Grammar notes
- Integers accept base prefixes (0x, 0o, 0b, and a leading 0 for octal) and
  underscores between digits. Unsigned adapters reject any sign.
- Booleans accept 1, t, T, TRUE, true, True, 0, f, F, FALSE, false, False.
- Floats accept ASCII decimal forms, hexadecimal forms with a p exponent
  (underscores only after 0x) and Inf/Infinity/NaN in any case, and render
  in the shortest form that parses back to the same value.
- Durations are sequences of <number><unit> with units ns, us, µs, μs, ms,
  s, m, h, an optional leading sign, or the bare "0". The resolution of a
  timedelta is one microsecond; finer parts are rounded.

Errors
- set() raises ValueError with a short reason ("parse error", "value out of
  range", or the duration grammar message). The flag layer wraps the reason
  into its own position-aware message.
- No adapter validates ranges beyond what the numeric parse enforces.

Round trip
    >>> value = DurationValue()
    >>> value.set("90m")
    >>> str(value)
    '1h30m0s'
"""
import decimal
import math
import re
from datetime import timedelta
from fractions import Fraction
from typing import NewType

from .utils import *

# Typing markers selecting the adapter for a dataclass field; at runtime they
# are plain ints.
Int64 = NewType("Int64", int)
Uint = NewType("Uint", int)
Uint64 = NewType("Uint64", int)


class Box:
    """Private storage cell."""
    __slots__ = ("_value",)

    def __init__(self, value=None, /):
        self._value = value

    def get(self):
        return self._value

    def set(self, value, /):
        self._value = value

    def __repr__(self):
        return f"box({self._value!r})"


class Ref:
    """
    Storage cell bound to an attribute of an owner object.

    Reads of a missing attribute yield None, which the adapters render as the
    zero value of their type.
    """
    __slots__ = ("_owner", "_attr")

    def __init__(self, owner, attr, /):
        if not isinstance(attr, str):
            raise TypeError("ref() attribute name must be a string")
        self._owner = owner
        self._attr = attr

    def get(self):
        return getattr(self._owner, self._attr, None)

    def set(self, value, /):
        setattr(self._owner, self._attr, value)

    def __repr__(self):
        return f"ref({type(self._owner).__name__}.{self._attr})"


class Value:
    """
    Base class for typed adapters.

    Subclasses define
    - kind: the Python type(s) accepted as a default.
    - zero: the value rendered when the cell is uninitialized.
    - metavar: the type label shown by FlagSet.print_defaults ("" hides it).
    - parse(text) / render(value): the conversion pair.

    Construction
    - Value(default, cell=...) stores default into the cell. With a Ref cell
      and no default, the owner's current attribute value is kept as-is.
    """
    kind = object
    zero = None
    metavar = "value"

    def __init__(self, default=Unset, /, cell=Unset):
        self._cell = Box(self.zero) if cell is Unset else cell
        if not hasattr(self._cell, "get") or not hasattr(self._cell, "set"):
            raise TypeError(f"{type(self).__name__} 'cell' must provide get() and set()")
        if default is not Unset:
            if not isinstance(default, self.kind):
                raise TypeError(f"{type(self).__name__} default must be {self._describe()}, got {type(default).__name__}")
            self._cell.set(default)
        elif self._cell.get() is None:
            self._cell.set(self.zero)

    @classmethod
    def _describe(cls):
        if isinstance(cls.kind, tuple):
            return " or ".join(kind.__name__ for kind in cls.kind)
        return cls.kind.__name__

    @property
    def cell(self):
        return self._cell

    def get(self):
        """Return the current value; an uninitialized cell yields the zero value."""
        value = self._cell.get()
        return self.zero if value is None else value

    def set(self, text, /):
        """Parse text and store the result; raise ValueError on malformed text."""
        if not isinstance(text, str):
            raise TypeError(f"{type(self).__name__}.set() argument must be a string")
        self._cell.set(self.parse(text))

    def is_bool_flag(self):
        return False

    def parse(self, text, /):
        raise NotImplementedError

    def render(self, value, /):
        return str(value)

    def __str__(self):
        return self.render(self.get())

    def __repr__(self):
        return f"{type(self).__name__}({self.get()!r})"


def _parse_bool(text, /):
    match text:
        case "1" | "t" | "T" | "TRUE" | "true" | "True":
            return True
        case "0" | "f" | "F" | "FALSE" | "false" | "False":
            return False
    raise ValueError("parse error")


def _parse_integer(text, /, *, signed):
    """
    Parse an integer with base-prefix grammar and 64-bit range checks.

    - "0x1f", "0o17", "0b101", "017" (octal), "1_000" are accepted.
    - signed=False rejects any sign, including "+".
    """
    if not re.fullmatch(r"[+-]?[0-9A-Za-z_]+", text, re.ASCII):
        raise ValueError("parse error")

    negative = False
    body = text
    if body[0] in "+-":
        if not signed:
            raise ValueError("parse error")
        negative = body[0] == "-"
        body = body[1:]

    match body[:2].lower():
        case "0x":
            base, digits = 16, body[2:]
        case "0o":
            base, digits = 8, body[2:]
        case "0b":
            base, digits = 2, body[2:]
        case _:
            if len(body) > 1 and body[0] == "0":
                base, digits = 8, body[1:]
            else:
                base, digits = 10, body

    # an underscore may sit between the base prefix and the first digit
    if base != 10 and digits.startswith("_"):
        digits = digits[1:]
    if not digits or digits.startswith("_"):
        raise ValueError("parse error")

    try:
        number = int(digits, base)
    except ValueError:
        raise ValueError("parse error") from None

    if negative:
        number = -number
    if signed and not -(1 << 63) <= number < (1 << 63):
        raise ValueError("value out of range")
    if not signed and number >= (1 << 64):
        raise ValueError("value out of range")
    return number


_DECIMAL_FLOAT = re.compile(r"(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?", re.ASCII)
# underscores only after the base prefix; the binary exponent is mandatory
_HEX_FLOAT = re.compile(r"0[xX][0-9A-Fa-f_.]+[pP][+-]?[0-9]+", re.ASCII)


def _parse_float(text, /):
    """
    Parse a decimal or hexadecimal float.

    - "1.5", ".5", "2e3", "0x1p-2", "0x_1.8p1" and Inf/Infinity/NaN are accepted.
    - Only ASCII digits are accepted; underscores require the 0x prefix.
    """
    negative = text[:1] == "-"
    body = text[1:] if text[:1] in ("+", "-") else text

    lowered = body.lower()
    if lowered in ("inf", "infinity"):
        return -math.inf if negative else math.inf
    if lowered == "nan":
        return math.nan

    try:
        if _HEX_FLOAT.fullmatch(body):
            number = float.fromhex(body.replace("_", ""))
        elif _DECIMAL_FLOAT.fullmatch(body):
            number = float(body)
        else:
            raise ValueError(body)
    except ValueError:
        raise ValueError("parse error") from None

    if math.isinf(number):
        raise ValueError("value out of range")
    return -number if negative else number


def _format_float(number, /):
    """
    Render a float in the shortest 'g' form that parses back to the same value.

    The exponent form is used when the decimal exponent is below -4 or at
    least 6, with a signed exponent of at least two digits (1e+06, 1.5e-07).
    """
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "+Inf" if number > 0 else "-Inf"
    if number == 0:
        return "-0" if math.copysign(1.0, number) < 0 else "0"

    sign, digits, exponent = decimal.Decimal(repr(abs(number))).normalize().as_tuple()
    digits = "".join(map(str, digits))
    point = len(digits) + exponent  # decimal point position relative to digits
    exp = point - 1
    prefix = "-" if number < 0 else ""

    if exp < -4 or exp >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        return f"{prefix}{mantissa}e{'-' if exp < 0 else '+'}{abs(exp):02d}"
    if point <= 0:
        return f"{prefix}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return f"{prefix}{digits}{'0' * (point - len(digits))}"
    return f"{prefix}{digits[:point]}.{digits[point:]}"


_UNITS = {
    "ns": Fraction(1),
    "us": Fraction(1_000),
    "µs": Fraction(1_000),  # U+00B5 micro sign
    "μs": Fraction(1_000),  # U+03BC greek small letter mu
    "ms": Fraction(1_000_000),
    "s": Fraction(1_000_000_000),
    "m": Fraction(60_000_000_000),
    "h": Fraction(3_600_000_000_000),
}


def parse_duration(text, /):
    """
    Parse a human duration such as "300ms", "-1.5h" or "2h45m" into a timedelta.

    Raises
    - ValueError: 'time: invalid duration "..."', 'time: missing unit in
      duration "..."' or 'time: unknown unit "..." in duration "..."'.
    """
    if not isinstance(text, str):
        raise TypeError("parse_duration() argument must be a string")

    original = text
    negative = False
    if text and text[0] in "+-":
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return timedelta()
    if not text:
        raise ValueError(f'time: invalid duration "{original}"')

    total = Fraction(0)
    while text:
        match = re.match(r"(?P<whole>[0-9]*)(\.(?P<fraction>[0-9]*))?", text)
        whole, fraction = match["whole"], match["fraction"]
        if not whole and not fraction:
            raise ValueError(f'time: invalid duration "{original}"')
        text = text[match.end():]

        unit = re.match(r"[^0-9.]*", text).group()
        if not unit:
            raise ValueError(f'time: missing unit in duration "{original}"')
        if unit not in _UNITS:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{original}"')
        text = text[len(unit):]

        amount = Fraction(int(whole or "0"))
        if fraction:
            amount += Fraction(int(fraction), 10 ** len(fraction))
        total += amount * _UNITS[unit]
        if total > (1 << 63) - (not negative):
            raise ValueError(f'time: invalid duration "{original}"')

    return timedelta(microseconds=round((-total if negative else total) / 1000))


def _fixed(value, unit, /):
    whole, rest = divmod(value, unit)
    if not rest:
        return str(whole)
    return f"{whole}.{rest:0{len(str(unit)) - 1}d}".rstrip("0")


def format_duration(delta, /):
    """
    Render a timedelta canonically: "0s", "250µs", "1.5ms", "45s", "1m0s", "1h30m0s".
    """
    if not isinstance(delta, timedelta):
        raise TypeError("format_duration() argument must be a timedelta")

    micros = (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)

    if micros < 1_000:
        return f"{sign}{micros}µs"
    if micros < 1_000_000:
        return f"{sign}{_fixed(micros, 1_000)}ms"

    seconds, fraction = divmod(micros, 1_000_000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    text = _fixed(seconds * 1_000_000 + fraction, 1_000_000) + "s"
    if minutes or hours:
        text = f"{minutes}m" + text
    if hours:
        text = f"{hours}h" + text
    return sign + text


class BoolValue(Value):
    kind = bool
    zero = False
    metavar = ""

    def is_bool_flag(self):
        return True

    def parse(self, text, /):
        return _parse_bool(text)

    def render(self, value, /):
        return "true" if value else "false"


class IntValue(Value):
    kind = int
    zero = 0
    metavar = "int"

    def parse(self, text, /):
        return _parse_integer(text, signed=True)


class Int64Value(IntValue):
    pass


class UintValue(Value):
    kind = int
    zero = 0
    metavar = "uint"

    def __init__(self, default=Unset, /, cell=Unset):
        if isinstance(default, int) and default < 0:
            raise ValueError(f"{type(self).__name__} default cannot be negative")
        super().__init__(default, cell)

    def parse(self, text, /):
        return _parse_integer(text, signed=False)


class Uint64Value(UintValue):
    pass


class Float64Value(Value):
    kind = (float, int)
    zero = 0.0
    metavar = "float"

    def parse(self, text, /):
        return _parse_float(text)

    def render(self, value, /):
        return _format_float(float(value))


class StringValue(Value):
    kind = str
    zero = ""
    metavar = "string"

    def parse(self, text, /):
        return text


class DurationValue(Value):
    kind = timedelta
    zero = timedelta()
    metavar = "duration"

    def parse(self, text, /):
        return parse_duration(text)

    def render(self, value, /):
        return format_duration(value)


__all__ = (
    # Cells
    "Box",
    "Ref",

    # Adapters
    "Value",
    "BoolValue",
    "IntValue",
    "Int64Value",
    "UintValue",
    "Uint64Value",
    "Float64Value",
    "StringValue",
    "DurationValue",

    # Typing markers
    "Int64",
    "Uint",
    "Uint64",

    # Duration helpers
    "parse_duration",
    "format_duration",
)
