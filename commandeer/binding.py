"""
Commandeer dataclass binder.

Overview
- struct_vars(flagset, object) walks the fields of a dataclass instance once
  and registers one flag (or positional) per tagged field, bound directly to
  the instance attribute through a Ref cell.
- flag(tag, ...) is a thin dataclasses.field() wrapper that stores the tag in
  the field metadata under the "flag" key.

Tag grammar
- "name"                  → named flag -name
- "name;usage=text"       → named flag with usage text (the text may contain ';')
- "?N" / "?N;usage=text"  → positional entry at index N

Field types (from the annotations)
- bool, int, Int64, Uint, Uint64, float, str, timedelta.
- The field's current value is the default shown in the usage.

Rules
- Untagged fields are ignored. Only top-level fields are considered; a tagged
  field annotated with a dataclass is rejected.
- A non-dataclass input (or a dataclass type instead of an instance) raises
  TypeError; a malformed tag raises ValueError.

Example
    >>> @dataclass
    ... class Options:
    ...     level: int = flag("level;usage=verbosity level", default=1)
    ...     target: str = flag("?0;usage=target name", default="")
"""
import dataclasses
import re
import typing
from datetime import timedelta

from .values import *

_ADAPTERS = {
    bool: BoolValue,
    int: IntValue,
    Int64: Int64Value,
    Uint: UintValue,
    Uint64: Uint64Value,
    float: Float64Value,
    str: StringValue,
    timedelta: DurationValue,
}


def parse_tag(tag, /):
    """
    Split a tag into (name, index, usage).

    Exactly one of name/index is meaningful: index is None for named flags and
    name is None for positional entries.
    """
    if not isinstance(tag, str):
        raise TypeError("flag tag must be a string")

    name, separator, rest = tag.partition(";")
    name = name.strip()
    usage = ""
    if separator:
        key, equals, usage = rest.partition("=")
        if key.strip() != "usage" or not equals:
            raise ValueError(f"flag tag {tag!r} has an unknown option {rest!r}")

    if not name:
        raise ValueError(f"flag tag {tag!r} has an empty name")
    if name.startswith("?"):
        if not re.fullmatch(r"\?[0-9]+", name):
            raise ValueError(f"flag tag {tag!r} has an invalid positional index")
        return None, int(name[1:]), usage
    return name, None, usage


def flag(tag, /, *, default=dataclasses.MISSING, factory=dataclasses.MISSING, **options):
    """Declare a dataclass field bound to a flag described by tag."""
    parse_tag(tag)
    metadata = dict(options.pop("metadata", None) or {}) | {"flag": tag}
    return dataclasses.field(default=default, default_factory=factory, metadata=metadata, **options)


def struct_vars(flagset, object, /):
    """
    Register the tagged fields of a dataclass instance on flagset.

    Raises
    - TypeError: object is not a dataclass instance, or a tagged field has an
      unsupported type or a default of the wrong type.
    - ValueError: malformed tag, or a name/index already registered on flagset.
    """
    if not dataclasses.is_dataclass(object) or isinstance(object, type):
        raise TypeError(f"struct_vars() expects a dataclass instance, got {type(object).__name__}")

    try:
        hints = typing.get_type_hints(type(object))
    except NameError as error:
        raise TypeError(f"struct_vars() cannot resolve annotations of {type(object).__name__}: {error}") from None

    for field in dataclasses.fields(object):
        if (tag := field.metadata.get("flag")) is None:
            continue
        name, index, usage = parse_tag(tag)
        kind = hints.get(field.name, field.type)

        if dataclasses.is_dataclass(kind):
            raise TypeError(f"{type(object).__name__}.{field.name} is a nested dataclass and cannot be bound")
        if (adapter := _ADAPTERS.get(kind)) is None:
            raise TypeError(f"{type(object).__name__}.{field.name} has unsupported flag type {kind!r}")

        cell = Ref(object, field.name)
        current = cell.get()
        value = adapter(cell=cell) if current is None else adapter(current, cell=cell)
        if index is None:
            flagset.var(value, name, usage)
        else:
            flagset.positional_var(value, index, usage)


__all__ = (
    # Functions
    "flag",
    "parse_tag",
    "struct_vars",
)
