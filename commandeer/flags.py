r"""
Commandeer extended flag set.

Scope
- FlagSet: a named-flag table (the classic single-dash/double-dash grammar)
  plus a positional table keyed by index, a terminator-aware scanner and an
  optional "ignore undefined named flags" mode.
- Flag: one registered entry (named or positional).
- ErrorHandling: the failure policy, combinable with CONTINUE_ON_UNDEFINED.
- split_args(): peel a leading bare token (a command name) off a list.

Token grammar
- A token is a flag when it starts with '-' and is at least two characters
  long; '--name' is the same flag as '-name'.
- A bare '--' is the terminator: nothing after it is flag-scanned again.
- 'name=value' carries an inline value; otherwise the following token is the
  value (boolean flags never take the following token).
- An empty name, or one starting with '-' or '=', is "bad flag syntax".

Parsing (parse)
1) A leading token equal to the program path is dropped.
2) Strict mode (default): named flags are scanned from the front and the scan
   stops at the first bare token or after a '--'. An undefined flag fails,
   except -h/-help which prints the usage and raises HelpRequested.
3) Tolerant mode (CONTINUE_ON_UNDEFINED): the whole list is pre-scanned.
   Defined flags are applied wherever they occur; undefined flags (with the
   bare token that follows them) and bare tokens are left in place; a '--'
   ends the pre-scan and switches the set into terminated mode.
4) Positional walk (skipped once terminated): the remaining bare tokens are
   indexed from 0. A declared index binds; an undeclared index stops the walk
   in strict mode and is skipped in tolerant mode. In strict mode a '--'
   terminates the walk, and fails when a positional is declared at its index.

Failures
- The message and the usage are written to output, then the policy applies:
  CONTINUE_ON_ERROR raises ParseError, EXIT_ON_ERROR exits with status 2 (0
  for help), PANIC_ON_ERROR raises ParseFault.
- Configuration mistakes (bad names, redefinition, negative indices) raise
  ValueError/TypeError at registration time.

Example
    >>> flags = FlagSet("demo", ErrorHandling.CONTINUE_ON_UNDEFINED)
    >>> level = flags.int_flag("level", 1, "verbosity level")
    >>> target = flags.string_positional(0, "", "target name")
    >>> flags.parse(["build", "-x", "-level", "3"])
    >>> level.get(), target.get(), flags.next_args()
    (3, 'build', ['-x'])
"""
import json
import re
import sys
from dataclasses import dataclass
from enum import IntFlag

from rich.text import Text

from .binding import struct_vars
from .faults import *
from .utils import *
from .values import *


class ErrorHandling(IntFlag):
    CONTINUE_ON_ERROR = 0
    EXIT_ON_ERROR = 1
    PANIC_ON_ERROR = 2
    CONTINUE_ON_UNDEFINED = 1 << 30


@dataclass(slots=True)
class Flag:
    """A registered entry; positional entries are named "?<index>"."""
    name: str
    usage: str
    value: object
    default: str


def split_args(arguments, /):
    """
    Split a leading bare token off the list.

    Returns (name, rest): name is the first token when it does not start with
    '-', otherwise "" and the list is returned unchanged.
    """
    arguments = list(arguments)
    if arguments and not arguments[0].startswith("-"):
        return arguments[0], arguments[1:]
    return "", arguments


def _unquote_usage(flag, /):
    """
    Extract a back-quoted name from the usage text, else derive one from the value type.

    "a `file` to read" -> ("file", "a file to read")
    """
    if match := re.search(r"`([^`]*)`", flag.usage):
        name = match.group(1)
        return name, flag.usage[:match.start()] + name + flag.usage[match.end():]
    return getattr(flag.value, "metavar", "value"), flag.usage


def _is_bool(value, /):
    return bool(getattr(value, "is_bool_flag", lambda: False)())


def _is_zero_value(flag, /):
    try:
        zero = type(flag.value)()
    except TypeError:
        return False
    return flag.default == str(zero)


class FlagSet:
    def __init__(self, name="", policy=ErrorHandling.CONTINUE_ON_ERROR, /, *, program=Unset):
        if not isinstance(name, str):
            raise TypeError(f"{type(self).__name__} name must be a string")
        if not isinstance(policy, int) or isinstance(policy, bool):
            raise TypeError(f"{type(self).__name__} policy must be an ErrorHandling value")
        if program is not Unset and program is not None and not isinstance(program, str):
            raise TypeError(f"{type(self).__name__} program must be a string or None")

        self._name = name
        self._policy = ErrorHandling(policy)
        self._program = program
        self._output = None
        self._usage = None

        self._formal = {}
        self._actual = {}
        self._positional_formal = {}
        self._positional_actual = {}

        self._parsed = False
        self._terminated = False
        self._arguments = []
        self._args = []
        self._consumed = set()
        self._terminator = None

    # ── Introspection ───────────────────────────────────────────────────────
    @property
    def name(self):
        return self._name

    @property
    def policy(self):
        return self._policy

    @property
    def error_handling(self):
        """The failure policy without the CONTINUE_ON_UNDEFINED bit."""
        return ErrorHandling(self._policy & ~ErrorHandling.CONTINUE_ON_UNDEFINED)

    @property
    def continue_on_undefined(self):
        return bool(self._policy & ErrorHandling.CONTINUE_ON_UNDEFINED)

    @property
    def parsed(self):
        return self._parsed

    @property
    def terminated(self):
        return self._terminated

    @property
    def output(self):
        """The sink for usage and error messages; sys.stderr unless set."""
        return sys.stderr if self._output is None else self._output

    @output.setter
    def output(self, stream):
        if stream is not None and not callable(getattr(stream, "write", None)):
            raise TypeError(f"{type(self).__name__} output must be a writable stream")
        self._output = stream

    @property
    def usage(self):
        """Custom usage callback; None selects the default usage."""
        return self._usage

    @usage.setter
    def usage(self, callback):
        if callback is not None and not callable(callback):
            raise TypeError(f"{type(self).__name__} usage must be callable")
        self._usage = callback

    # ── Registration ────────────────────────────────────────────────────────
    def var(self, value, name, usage="", /):
        """
        Register a named flag backed by a value adapter.

        Raises
        - TypeError: value lacks set(), or name/usage are not strings.
        - ValueError: name is empty, starts with '-', contains '=', or is
          already registered.
        """
        self._check_value(value, usage)
        if not isinstance(name, str):
            raise TypeError(f"{type(self).__name__} flag name must be a string")
        if not name:
            raise ValueError(f"{type(self).__name__} flag name cannot be empty")
        if name.startswith("-"):
            raise ValueError(f"flag {name!r} begins with -")
        if "=" in name:
            raise ValueError(f"flag {name!r} contains =")
        if name in self._formal:
            self._redefined(name)
        self._formal[name] = Flag(name, usage, value, str(value))
        return value

    def positional_var(self, value, index, usage="", /):
        """Register a positional entry bound by its 0-based index among bare tokens."""
        self._check_value(value, usage)
        if not isinstance(index, int) or isinstance(index, bool):
            raise TypeError(f"{type(self).__name__} positional index must be an integer")
        if index < 0:
            raise ValueError(f"{type(self).__name__} positional index must be non-negative, got {index}")
        if index in self._positional_formal:
            self._redefined("?%d" % index)
        self._positional_formal[index] = Flag("?%d" % index, usage, value, str(value))
        return value

    def struct_vars(self, object, /):
        """Register every tagged field of a dataclass instance."""
        struct_vars(self, object)

    def _check_value(self, value, usage):
        if not callable(getattr(value, "set", None)):
            raise TypeError(f"{type(self).__name__} value must provide set(text)")
        if not isinstance(usage, str):
            raise TypeError(f"{type(self).__name__} usage must be a string")

    def _redefined(self, name):
        message = f"flag redefined: {name}" if not self._name else f"{self._name} flag redefined: {name}"
        self._print(Text(message))
        raise ValueError(message)

    def bool_flag(self, name, default=False, usage="", /):
        return self.var(BoolValue(default), name, usage)

    def int_flag(self, name, default=0, usage="", /):
        return self.var(IntValue(default), name, usage)

    def int64_flag(self, name, default=0, usage="", /):
        return self.var(Int64Value(default), name, usage)

    def uint_flag(self, name, default=0, usage="", /):
        return self.var(UintValue(default), name, usage)

    def uint64_flag(self, name, default=0, usage="", /):
        return self.var(Uint64Value(default), name, usage)

    def float64_flag(self, name, default=0.0, usage="", /):
        return self.var(Float64Value(default), name, usage)

    def string_flag(self, name, default="", usage="", /):
        return self.var(StringValue(default), name, usage)

    def duration_flag(self, name, default=Unset, usage="", /):
        return self.var(DurationValue(default), name, usage)

    def bool_positional(self, index, default=False, usage="", /):
        return self.positional_var(BoolValue(default), index, usage)

    def int_positional(self, index, default=0, usage="", /):
        return self.positional_var(IntValue(default), index, usage)

    def int64_positional(self, index, default=0, usage="", /):
        return self.positional_var(Int64Value(default), index, usage)

    def uint_positional(self, index, default=0, usage="", /):
        return self.positional_var(UintValue(default), index, usage)

    def uint64_positional(self, index, default=0, usage="", /):
        return self.positional_var(Uint64Value(default), index, usage)

    def float64_positional(self, index, default=0.0, usage="", /):
        return self.positional_var(Float64Value(default), index, usage)

    def string_positional(self, index, default="", usage="", /):
        return self.positional_var(StringValue(default), index, usage)

    def duration_positional(self, index, default=Unset, usage="", /):
        return self.positional_var(DurationValue(default), index, usage)

    # ── Queries ─────────────────────────────────────────────────────────────
    def lookup(self, name, /):
        return self._formal.get(name)

    def lookup_positional(self, index, /):
        return self._positional_formal.get(index)

    def set(self, name, text, /):
        """Set a named flag by name as if it had been given on the command line."""
        if (flag := self._formal.get(name)) is None:
            raise ValueError(f"no such flag -{name}")
        flag.value.set(text)
        self._actual[name] = flag

    def visit(self, callback, /):
        """Call callback for every flag that was set, sorted by name."""
        for name in sorted(self._actual):
            callback(self._actual[name])

    def visit_all(self, callback, /):
        """Call callback for every registered flag, sorted by name."""
        for name in sorted(self._formal):
            callback(self._formal[name])

    def visit_positionals(self, callback, /, *, actual=False):
        """Call callback for every registered (or, with actual=True, bound) positional, by index."""
        table = self._positional_actual if actual else self._positional_formal
        for index in sorted(table):
            callback(table[index])

    @property
    def args(self):
        """Tokens left over by the named-flag scan (the terminator excluded)."""
        return list(self._args)

    def narg(self):
        return len(self._args)

    def arg(self, index, /):
        """Return the index-th leftover token, or "" when out of range."""
        if 0 <= index < len(self._args):
            return self._args[index]
        return ""

    def nflag(self):
        return len(self._actual)

    def npositional(self):
        return len(self._positional_actual)

    def next_args(self):
        """Every token that was not consumed by this set, in original order."""
        return [token for index, token in enumerate(self._arguments) if index not in self._consumed]

    def consumed_indices(self):
        """Indices (into the parsed list, after the program token is dropped) consumed by this set."""
        return frozenset(self._consumed)

    def sub_args(self):
        """The tail after the terminator; empty when there was none."""
        if self._terminator is not None:
            return self._arguments[self._terminator + 1:]
        if "--" in self._args:
            return self._args[self._args.index("--") + 1:]
        return []

    # ── Parsing ─────────────────────────────────────────────────────────────
    def parse(self, arguments=Unset, /):
        """
        Parse arguments (sys.argv when omitted) against the registered entries.

        Raises
        - TypeError: arguments is not a sequence of strings.
        - ParseError / HelpRequested / ParseFault, or SystemExit, per the policy.
        """
        arguments = list(sys.argv if arguments is Unset else arguments)
        if not all(isinstance(token, str) for token in arguments):
            raise TypeError(f"{type(self).__name__}.parse() arguments must be strings")
        program = sys.argv[0] if self._program is Unset and sys.argv else self._program
        if arguments and program is not None and arguments[0] == program:
            arguments = arguments[1:]

        self._parsed = True
        self._terminated = False
        self._arguments = arguments
        self._consumed = set()
        self._terminator = None
        self._actual = {}
        self._positional_actual = {}

        if self.continue_on_undefined:
            candidates = self._prescan()
        else:
            candidates = self._scan()

        if self._terminated:
            return
        self._walk(candidates)

    def _split(self, token):
        """Return (name, value) for a flag token; value is None without '='."""
        name = token[2:] if token.startswith("--") else token[1:]
        if not name or name[0] in "-=":
            return self._fail(f"bad flag syntax: {token}", FaultCode.BAD_FLAG_SYNTAX, value=token)
        name, equals, value = name.partition("=")
        return name, value if equals else None

    def _apply(self, flag, value):
        if _is_bool(flag.value):
            try:
                flag.value.set("true" if value is None else value)
            except ValueError as error:
                return self._fail(
                    f"invalid boolean value {_quote(value)} for -{flag.name}: {error}"
                    if value is not None else f"invalid boolean flag {flag.name}: {error}",
                    FaultCode.INVALID_BOOLEAN, name=flag.name, value=value
                )
        else:
            if value is None:
                return self._fail(f"flag needs an argument: -{flag.name}", FaultCode.MISSING_ARGUMENT, name=flag.name)
            try:
                flag.value.set(value)
            except ValueError as error:
                return self._fail(
                    f"invalid value {_quote(value)} for flag -{flag.name}: {error}",
                    FaultCode.INVALID_VALUE, name=flag.name, value=value
                )
        self._actual[flag.name] = flag

    def _scan(self):
        """Strict named-flag scan from the front; returns the candidate positionals."""
        arguments = self._arguments
        index = 0
        while index < len(arguments):
            token = arguments[index]
            if len(token) < 2 or token[0] != "-":
                break
            if token == "--":
                self._consumed.add(index)
                self._terminator = index
                self._terminated = True
                index += 1
                break

            name, value = self._split(token)
            if (flag := self._formal.get(name)) is None:
                if name in ("help", "h"):
                    return self._fail("flag: help requested", FaultCode.HELP_REQUESTED, help=True)
                return self._fail(f"flag provided but not defined: -{name}", FaultCode.UNDEFINED_FLAG, name=name)

            self._consumed.add(index)
            index += 1
            if value is None and not _is_bool(flag.value) and index < len(arguments):
                value = arguments[index]
                self._consumed.add(index)
                index += 1
            self._apply(flag, value)

        self._args = arguments[index:]
        return list(enumerate(range(index, len(arguments))))

    def _prescan(self):
        """Tolerant scan of the whole list; returns the candidate positionals."""
        arguments = self._arguments
        bare = []
        index = 0
        while index < len(arguments):
            token = arguments[index]
            if token == "--":
                self._consumed.add(index)
                self._terminator = index
                self._terminated = True
                break
            if len(token) < 2 or token[0] != "-":
                bare.append(index)
                index += 1
                continue

            name, value = self._split(token)
            following = index + 1 < len(arguments) and not arguments[index + 1].startswith("-")
            if (flag := self._formal.get(name)) is None:
                # undefined flags keep the bare token that follows them
                index += 2 if value is None and following else 1
                continue

            self._consumed.add(index)
            index += 1
            if value is None and not _is_bool(flag.value) and following:
                value = arguments[index]
                self._consumed.add(index)
                index += 1
            self._apply(flag, value)

        self._args = [token for position, token in enumerate(arguments)
                      if position not in self._consumed]
        return list(enumerate(bare))

    def _walk(self, candidates):
        for position, index in candidates:
            token = self._arguments[index]
            if token == "--" and not self.continue_on_undefined:
                if position in self._positional_formal:
                    return self._fail(
                        f"positional defined but not provided: {position}",
                        FaultCode.TERMINATED_POSITIONAL, index=position
                    )
                self._consumed.add(index)
                self._terminator = index
                self._terminated = True
                return
            if (flag := self._positional_formal.get(position)) is None:
                if self.continue_on_undefined:
                    continue
                return
            try:
                flag.value.set(token)
            except ValueError as error:
                return self._fail(
                    f"invalid value {_quote(token)} for positional {position}: {error}",
                    FaultCode.INVALID_POSITIONAL, index=position, value=token
                )
            self._consumed.add(index)
            self._positional_actual[position] = flag

    # ── Failures and output ─────────────────────────────────────────────────
    def _fail(self, message, code, /, *, help=False, **options):
        error = (HelpRequested if help else ParseError)(message, code=code, flagset=self._name, **options)
        if not help:
            self._print(Text(message))
        self.print_usage()

        match self.error_handling:
            case ErrorHandling.EXIT_ON_ERROR:
                sys.exit(0 if help else 2)
            case ErrorHandling.PANIC_ON_ERROR:
                raise ParseFault(error) from error
        raise error

    def _console(self):
        return make_console(self.output)

    def _print(self, renderable):
        self._console().print(renderable)

    def print_usage(self):
        """Run the custom usage callback, or print the default usage."""
        if self._usage is not None:
            self._usage()
            return
        self._print(Text("Usage:" if not self._name else f"Usage of {self._name}:"))
        self.print_defaults()

    def print_defaults(self):
        """
        Print every registered entry, named flags first, then positionals.

        Layout per entry
          -name type
            \tusage (default value)
        A one-letter untyped name keeps the usage on the same line.
        """
        styles = palette({"flag-name": "bold", "metavar": "italic", "default": "dim"})
        console = self._console()

        def render(flag, prefix):
            line = Text("  ")
            line.append(prefix + flag.name, styles["flag-name"])
            metavar, usage = _unquote_usage(flag)
            if metavar:
                line.append(" ")
                line.append(metavar, styles["metavar"])
            line.append("\t" if len(line.plain) <= 4 else "\n    \t")
            line.append(usage.replace("\n", "\n    \t"))
            if not _is_zero_value(flag):
                default = _quote(flag.default) if isinstance(flag.value, StringValue) else flag.default
                line.append(f" (default {default})", styles["default"])
            console.print(line)

        self.visit_all(lambda flag: render(flag, "-"))
        self.visit_positionals(lambda flag: render(flag, ""))

    def __repr__(self):
        return f"FlagSet({self._name!r}, {self._policy!r})"


def _quote(text, /):
    """Double-quoted rendering with backslash escapes, as used in error messages."""
    return json.dumps(text, ensure_ascii=False)


__all__ = (
    # Types
    "ErrorHandling",
    "Flag",
    "FlagSet",

    # Functions
    "split_args",
)
