"""
Commandeer dispatch status.

Scope
- StatusCode: the stable result codes returned by App.exec.
- Status: an immutable result value (code, message, cause, optional stack).
- StatusError: the single exception type used to carry a Status out of a
  handler; App.exec converts it back into the returned Status.
- throw_status() / check_status(): raise a StatusError from handler code.

Codes
- OK (0) success
- BAD_ARGS (1) the argument list itself is unusable
- NOT_FOUND (2) no command matched and no not-found handler is configured
- PARSE_FAILED (3) a filter or action flag set rejected the arguments
- VALIDATE_FAILED (4) the validator rejected a populated option object
- UNCAUGHT (-1) a handler raised something other than StatusError

Rendering
- str(status) is a single plain line; __rich__ renders a header, the message
  and, when captured, the stack (palette overridable via __styles__).
"""
import traceback
from enum import IntEnum

from rich.console import Group
from rich.text import Text

from .utils import *


class StatusCode(IntEnum):
    UNCAUGHT = -1
    OK = 0
    BAD_ARGS = 1
    NOT_FOUND = 2
    PARSE_FAILED = 3
    VALIDATE_FAILED = 4

    def normalize(self):
        """Host-normalized label; see __codes__ in __main__."""
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


STATUS_UNCAUGHT = StatusCode.UNCAUGHT
STATUS_OK = StatusCode.OK
STATUS_BAD_ARGS = StatusCode.BAD_ARGS
STATUS_NOT_FOUND = StatusCode.NOT_FOUND
STATUS_PARSE_FAILED = StatusCode.PARSE_FAILED
STATUS_VALIDATE_FAILED = StatusCode.VALIDATE_FAILED


class Status:
    __slots__ = ("_code", "_msg", "_cause", "_stack")

    def __init__(self, code=0, msg="", cause=None, stack=None):
        if not isinstance(code, int) or isinstance(code, bool):
            raise TypeError("Status code must be an integer")
        if not isinstance(msg, str):
            raise TypeError("Status msg must be a string")
        if stack is not None and not isinstance(stack, str):
            raise TypeError("Status stack must be a string or None")
        try:
            code = StatusCode(code)
        except ValueError:
            pass
        self._code = code
        self._msg = msg
        self._cause = cause
        self._stack = stack

    @classmethod
    def from_exception(cls, error, /, code=StatusCode.UNCAUGHT, msg=""):
        """Build a status whose cause is error and whose stack is its formatted traceback."""
        if isinstance(error, StatusError):
            return error.status
        return cls(code, msg, error, "".join(traceback.format_exception(error)))

    @property
    def ok(self):
        return self._code == 0

    @property
    def code(self):
        return self._code

    @property
    def msg(self):
        return self._msg

    @property
    def cause(self):
        return self._cause

    @property
    def stack(self):
        return self._stack

    def with_stack(self):
        """Return a copy carrying the caller's stack (kept if already present)."""
        if self._stack is not None:
            return self
        return type(self)(self._code, self._msg, self._cause, "".join(traceback.format_stack()[:-1]))

    def __str__(self):
        if self.ok:
            return "ok"
        label = self._code.name.lower().replace("_", " ") if isinstance(self._code, StatusCode) else "status"
        text = ": ".join(str(part) for part in (self._msg, self._cause) if part not in ("", None))
        return f"{label} ({int(self._code)})" + (f": {text}" if text else "")

    def __repr__(self):
        return f"Status(code={int(self._code)}, msg={self._msg!r}, cause={self._cause!r})"

    def __eq__(self, other):
        if not isinstance(other, Status):
            return NotImplemented
        return (self._code, self._msg, self._cause) == (other._code, other._msg, other._cause)

    def __hash__(self):
        return hash((self._code, self._msg))

    def __rich__(self):
        styles = palette({
            "code": "bold #00E5FF",
            "error-title": "bold #FF4DA6",
            "ok-title": "bold #9CE19C",
            "error-message": "#C8C8D0",
            "stack": "dim",
        })

        title = str(self).partition(":")[0]
        header = Text("[ ")
        if isinstance(self._code, StatusCode):
            header.append(self._code.normalize(), styles["code"])
        else:
            header.append(str(self._code), styles["code"])
        header.append(" | ")
        header.append(title, styles["ok-title" if self.ok else "error-title"])
        header.append(" ]")

        parts = [header]
        if text := ": ".join(str(part) for part in (self._msg, self._cause) if part not in ("", None)):
            parts.append(Text(text, styles["error-message"]))
        if self._stack:
            parts.append(Text(self._stack.rstrip("\n"), styles["stack"]))
        return Group(*parts)


class StatusError(Exception):
    """Carries a failing Status across the dispatch boundary."""

    def __init__(self, status, /):
        if not isinstance(status, Status):
            raise TypeError("StatusError expects a Status")
        super().__init__(str(status))
        self.status = status


def throw_status(code, msg="", cause=None, /):
    """Raise a StatusError for the given code, message and cause."""
    raise StatusError(Status(code, msg, cause))


def check_status(error, code, msg="", /, *callbacks):
    """
    Raise a StatusError with error as the cause, unless error is None.

    The callbacks run, in order, before raising.
    """
    if error is None:
        return
    for callback in callbacks:
        callback()
    throw_status(code, msg, error)


__all__ = (
    # Codes
    "StatusCode",
    "STATUS_UNCAUGHT",
    "STATUS_OK",
    "STATUS_BAD_ARGS",
    "STATUS_NOT_FOUND",
    "STATUS_PARSE_FAILED",
    "STATUS_VALIDATE_FAILED",

    # Types
    "Status",
    "StatusError",

    # Functions
    "throw_status",
    "check_status",
)
