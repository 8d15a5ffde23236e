"""
Commandeer parse faults and rendering.

Scope
- FaultCode: stable numeric identifiers for every flag-set parse failure.
- ParseError: the recoverable failure raised under CONTINUE_ON_ERROR; carries
  the plain message plus structured options (code, flag name, positional
  index, offending value, flag-set name).
- HelpRequested: raised when -h/-help is given but not defined.
- ParseFault: the irrecoverable form raised under PANIC_ON_ERROR; wraps the
  ParseError it was promoted from.

Messages
- The message of a ParseError is the exact line written to the flag set's
  output (e.g. "flag provided but not defined: -x"), so str(error) is stable
  and suitable for assertions and logs.
- __rich__ adds a header with the set name, the normalized code and a title,
  styled through the palette (overridable via __styles__ in __main__).
"""
from enum import IntEnum
from types import MappingProxyType

from rich.console import Group
from rich.text import Text

from .utils import *


class FaultCode(IntEnum):
    """
    canonical parse fault codes (stable identifiers).

    grouping
    - named flags (1111x)
      • BAD_FLAG_SYNTAX, UNDEFINED_FLAG, MISSING_ARGUMENT, INVALID_BOOLEAN,
        INVALID_VALUE
    - positionals (1112x)
      • INVALID_POSITIONAL, TERMINATED_POSITIONAL
    - help (1119x)
      • HELP_REQUESTED
    """
    # --- named flag errors (1111x) ---
    BAD_FLAG_SYNTAX       = 11111
    UNDEFINED_FLAG        = 11112
    MISSING_ARGUMENT      = 11113
    INVALID_BOOLEAN       = 11114
    INVALID_VALUE         = 11115

    # --- positional errors (1112x) ---
    INVALID_POSITIONAL    = 11121
    TERMINATED_POSITIONAL = 11122

    # --- help (1119x) ---
    HELP_REQUESTED        = 11190

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))

    @property
    def title(self):
        return self.name.replace("_", " ").lower()


class ParseError(Exception):
    def __init__(self, message, /, **options):
        if not isinstance(message, str):
            raise TypeError("ParseError message must be a string")
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    @property
    def code(self):
        return self.options.get("code")

    def __str__(self):
        return self.message

    def __rich__(self):
        styles = palette({
            "prog-name": "bold #E6E6F0",
            "code": "bold #00E5FF",
            "error-title": "bold #FF4DA6",
            "error-message": "#C8C8D0",
        })

        header = Text("[ ")
        if name := self.options.get("flagset"):
            header.append(name, styles["prog-name"])
            header.append(" | ")
        if (code := self.code) is not None:
            header.append(code.normalize(), styles["code"])
            header.append(" | ")
            header.append(code.title, styles["error-title"])
        else:
            header.append("parse error", styles["error-title"])
        header.append(" ]")

        return Group(header, Text(self.message, styles["error-message"]))


class HelpRequested(ParseError):
    pass


class ParseFault(RuntimeError):
    """Irrecoverable parse failure; the original ParseError is kept on .error."""

    def __init__(self, error, /):
        if not isinstance(error, ParseError):
            raise TypeError("ParseFault expects a ParseError")
        super().__init__(error.message)
        self.error = error

    def __rich__(self):
        return self.error.__rich__()


__all__ = (
    # Codes
    "FaultCode",

    # Exceptions
    "ParseError",
    "HelpRequested",
    "ParseFault",
)
