"""
Commandeer utilities (internal helpers)

Scope
- Small building blocks shared by the value, flag, status and command layers.

Overview
- UnsetType / Unset
  • Marks an omitted argument (a flag default, the argument list of
    FlagSet.parse or App.exec) where None already means something.

- rename(callable, name)
  • Gives the links of an assembled filter chain the name of the filter they
    wrap, so tracebacks read as the filters themselves.

- palette(defaults)
  • Style lookup for rich renderers; __main__.__styles__ overrides entries.

- make_console(file)
  • A rich Console writing plain, unwrapped lines to file; colors only when
    file is a terminal.
"""
import functools
from collections import defaultdict
from typing import final

from rich.console import Console


@final
class UnsetType:
    """Singleton marker for an omitted argument; falsey and printed as "Unset"."""

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


def rename(function, name, /):
    """Set __name__ and __qualname__ of function to name and return it."""
    if not callable(function):
        raise TypeError("rename() first argument must be callable")
    if not isinstance(name, str):
        raise TypeError("rename() second argument must be a string")
    function.__name__ = function.__qualname__ = name
    return function


def palette(defaults, /):
    """
    Build a style lookup for rich renderers.

    The host application may define a mapping named __styles__ in __main__;
    its entries override the given defaults. Unknown keys resolve to the
    empty style so renderers never fail on a missing palette entry.
    """
    return defaultdict(str, defaults | getattr(__import__("__main__"), "__styles__", {}))


def make_console(file, /):
    """
    Build a rich console for diagnostic output on file.

    Markup, emoji and highlighting are off so user text is printed verbatim,
    and soft wrapping keeps long lines intact.
    """
    return Console(
        file=file,
        force_terminal=getattr(file, "isatty", bool)(),
        highlight=False,
        soft_wrap=True,
        markup=False,
        emoji=False,
    )


Unset = UnsetType()


__all__ = (
    # Functions
    "rename",
    "palette",
    "make_console",

    # Types
    "UnsetType",

    # Constants
    "Unset",
)
