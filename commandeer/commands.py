r"""
Commandeer command tree, filter chain and application.

Scope
- Command: a node of the command tree. It holds ordered filters and either
  one action or named children, never both.
- App: the root command plus application metadata (command name, display
  name, description, version, compiled time, authors, copyright), a
  not-found handler, a validator hook and the cached usage text.
- Context: what a handler receives (the opaque carrier, the original
  arguments and the resolved command path).
- Author: "Name <email>".

Bindings
- A filter is either a callable fn(context, next) or a dataclass (instance or
  type) with a filter(context, next) method.
- An action is either a callable fn(context) or a dataclass (instance or
  type) with a handle(context) method.
- Dataclass-backed bindings are re-created for every invocation: through
  deep_copy() when the registered instance provides it, otherwise by calling
  its class with no arguments. Their tagged fields become flags (see
  binding.flag) parsed from the arguments of their level.

Dispatch (App.exec)
1) At each level, every filter parses the joint argument list of the level
   with its own tolerant flag set; tokens consumed by any of them are removed
   from the list handed further down.
2) An action at the level wins: it is wrapped by all filters collected from
   the root down, the outermost first.
3) Otherwise the next bare token names a child and the walk recurses. With
   no matching child, the not-found handler runs unwrapped, or the result is
   a NOT_FOUND status.
4) The handler runs once. StatusError becomes the returned status; any other
   exception becomes an UNCAUGHT status carrying its traceback.

Example
    >>> app = App("tool")
    >>> @app.subaction("hello", "print a greeting")
    ... def hello(context):
    ...     print("hello from", context.cmd_path_string)
    >>> app.exec(["hello"]).ok
    hello from tool hello
    True
"""
import dataclasses
import io
import os
import sys
import threading
import weakref
from datetime import datetime
from types import MappingProxyType

from rich.text import Text

from .faults import *
from .flags import *
from .status import *
from .utils import *

_POLICY = ErrorHandling.CONTINUE_ON_ERROR | ErrorHandling.CONTINUE_ON_UNDEFINED


class Author:
    __slots__ = ("_name", "_email")

    def __init__(self, name, email="", /):
        if not isinstance(name, str) or not isinstance(email, str):
            raise TypeError("Author name and email must be strings")
        self._name = name
        self._email = email

    @property
    def name(self):
        return self._name

    @property
    def email(self):
        return self._email

    def __str__(self):
        return f"{self._name} <{self._email}>" if self._email else self._name

    def __repr__(self):
        return f"Author({self._name!r}, {self._email!r})"

    def __eq__(self, other):
        if not isinstance(other, Author):
            return NotImplemented
        return (self._name, self._email) == (other._name, other._email)

    def __hash__(self):
        return hash((self._name, self._email))


class Context:
    """Per-invocation view handed to filters and actions."""
    __slots__ = ("_carrier", "_args", "_cmd_path")

    def __init__(self, carrier, args, cmd_path, /):
        self._carrier = carrier
        self._args = tuple(args)
        self._cmd_path = tuple(cmd_path)

    @property
    def carrier(self):
        """The object given to App.exec(carrier=...), passed through untouched."""
        return self._carrier

    @property
    def args(self):
        """The original, unmodified argument list."""
        return list(self._args)

    @property
    def cmd_path(self):
        return list(self._cmd_path)

    @property
    def cmd_path_string(self):
        return " ".join(self._cmd_path)

    def throw_status(self, code, msg="", cause=None, /):
        """Abort the invocation with the given status (stack captured)."""
        raise StatusError(Status(code, msg, cause).with_stack())

    def check_status(self, error, code, msg="", /, *callbacks):
        """Abort with a status caused by error, unless error is None."""
        if error is None:
            return
        for callback in callbacks:
            callback()
        raise StatusError(Status(code, msg, error).with_stack())

    def __repr__(self):
        return f"Context(cmd_path={self.cmd_path_string!r}, args={list(self._args)!r})"


class _Binding:
    """A registered filter or action, with its per-invocation factory."""
    __slots__ = ("source", "method", "function", "factory", "flagset")

    def __init__(self, source, method, name, /):
        self.source = source
        self.method = method
        self.function = None
        self.factory = None
        self.flagset = None

        if hasattr(source, method):
            if not dataclasses.is_dataclass(source):
                raise TypeError(f"{method} object of type {_typename(source)!r} must be a dataclass")
            if isinstance(source, type):
                self.factory = source
            elif callable(getattr(source, "deep_copy", None)):
                self.factory = source.deep_copy
            else:
                self.factory = type(source)
            # template flags: validates the tags now and feeds the usage text
            self.flagset = FlagSet(name, _POLICY, program=None)
            self.flagset.struct_vars(self.create())
        elif callable(source):
            self.function = source
        else:
            raise TypeError(f"{method} must be callable or a dataclass with a {method}() method")

    def create(self):
        try:
            instance = self.factory()
        except TypeError as error:
            raise TypeError(f"{_method_label(self)} factory failed: {error}") from None
        if (isinstance(instance, type) or not dataclasses.is_dataclass(instance)
                or not callable(getattr(instance, self.method, None))):
            raise TypeError(f"{_method_label(self)} factory must produce a dataclass with a {self.method}() method")
        return instance

    def build(self, arguments, command, /):
        """Return (callable, consumed indices) for one invocation."""
        if self.function is not None:
            return self.function, frozenset()

        app = command.app
        instance = self.create()
        flagset = FlagSet(command.cmd_name, _POLICY, program=None)
        flagset.output = getattr(app, "output", None)
        flagset.struct_vars(instance)
        try:
            flagset.parse(arguments)
        except ParseError as error:
            throw_status(StatusCode.PARSE_FAILED, "", error)
        if (validator := getattr(app, "validator", None)) is not None:
            try:
                validator(instance)
            except Exception as error:
                throw_status(StatusCode.VALIDATE_FAILED, "", error)
        return getattr(instance, self.method), flagset.consumed_indices()


def _method_label(binding, /):
    return f"{_typename(binding.source)}.{binding.method}()"


def _typename(object, /):
    return (object if isinstance(object, type) else type(object)).__name__


def _options_text(flagsets, /):
    """Render print_defaults() of each flag set into one plain string."""
    buffer = io.StringIO()
    for flagset in flagsets:
        flagset.output = buffer
        try:
            flagset.print_defaults()
        finally:
            flagset.output = None
    return buffer.getvalue()


def _chain(handler, filter, /):
    def link(context):
        return filter(context, handler)

    return rename(link, getattr(filter, "__qualname__", type(filter).__qualname__))


class Command:
    def __init__(self, name, descr="", /, *, parent=None, app=None):
        if not isinstance(name, str):
            raise TypeError(f"{type(self).__name__} name must be a string")
        if not isinstance(descr, str):
            raise TypeError(f"{type(self).__name__} description must be a string")

        self._lock = threading.RLock()
        self._name = name
        self._descr = descr
        self._parent = weakref.ref(parent) if parent is not None else None
        self._app = weakref.ref(app) if app is not None else None
        self._children = {}
        self._filters = []
        self._action = None
        self._usage = ""

    # ── Tree ────────────────────────────────────────────────────────────────
    @property
    def name(self):
        return self._name

    @property
    def cmd_name(self):
        return self._name

    @property
    def descr(self):
        return self._descr

    @property
    def parent(self):
        return self._parent() if self._parent is not None else None

    @property
    def app(self):
        return self._app() if self._app is not None else None

    @property
    def children(self):
        return MappingProxyType(self._children)

    @property
    def filters(self):
        """The registered filters, in registration order."""
        return tuple(binding.source for binding in self._filters)

    @property
    def action(self):
        return self._action.source if self._action is not None else None

    @property
    def options(self):
        """The named flags of the action, by name (empty without a dataclass action)."""
        if self._action is None or self._action.flagset is None:
            return MappingProxyType({})
        flags = {}
        self._action.flagset.visit_all(lambda flag: flags.setdefault(flag.name, flag))
        return MappingProxyType(flags)

    @property
    def path(self):
        """
        Return the ancestry from the root to this command as a tuple.

        The first element is the root, the last is this command.
        """
        path = [command := self]
        while command.parent is not None:
            path.append(command := command.parent)
        return tuple(reversed(path))

    @property
    def path_string(self):
        return " ".join(command.cmd_name for command in self.path)

    # ── Registration ────────────────────────────────────────────────────────
    def add_subcommand(self, name, descr="", /, *filters):
        """
        Create, attach and return a child command.

        Raises
        - ValueError: this command has an action, or name is empty, starts
          with '-', or is already in use.
        """
        if not isinstance(name, str):
            raise TypeError(f"{type(self).__name__} subcommand name must be a string")
        with self._lock:
            if self._action is not None:
                raise ValueError(f"action has been set, no subcommand can be set: {self.path_string!r}")
            if not name:
                raise ValueError(f"{type(self).__name__} subcommand name is empty")
            if name.startswith("-"):
                raise ValueError(f"{type(self).__name__} subcommand name {name!r} cannot start with '-'")
            if name in self._children:
                raise ValueError(f"{type(self).__name__} subcommand name {name!r} is already in use")

            child = Command(name, descr, parent=self, app=self.app)
            for filter in filters:
                child.add_filter(filter)
            self._children[name] = child
            child._refresh_usage()
        self._refresh_usage()
        return child

    def add_subaction(self, name, descr, action, /, *filters):
        """Add a child command with the given action and filters; return the child."""
        child = self.add_subcommand(name, descr, *filters)
        child.set_action(action)
        return child

    def subaction(self, name, descr="", /, *filters):
        """Decorator form of add_subaction()."""
        def decorator(action):
            self.add_subaction(name, descr, action, *filters)
            return action

        return rename(decorator, "subaction")

    def add_filter(self, filter, /):
        with self._lock:
            self._filters.append(_Binding(filter, "filter", self.cmd_name))
        self._refresh_usage()
        return filter

    def set_action(self, action, /):
        with self._lock:
            if self._children:
                raise ValueError(f"some subcommands have been set, no action can be set: {self.path_string!r}")
            if self._action is not None:
                raise ValueError(f"action has already been set: {self.path_string!r}")
            self._action = _Binding(action, "handle", self.cmd_name)
        self._refresh_usage()
        return action

    # ── Usage ───────────────────────────────────────────────────────────────
    def _bindings(self):
        return [binding for binding in (*self._filters, self._action) if binding is not None]

    def _refresh_usage(self):
        with self._lock:
            header = " ".join(command.cmd_name for command in self.path[1:])
            body = _options_text(binding.flagset for binding in self._bindings() if binding.flagset is not None)
            self._usage = f"{header} # {self._descr}\n{body}"
        if (app := self.app) is not None and app is not self:
            app._refresh_usage()

    def usage_text(self, prefix="", /):
        """The cached usage text; prefix is inserted after every newline."""
        with self._lock:
            return self._usage.replace("\n", "\n" + prefix) if prefix else self._usage

    # ── Routing ─────────────────────────────────────────────────────────────
    def _resolve(self, arguments, path, /):
        """
        Return (filters, handler, path, found) for arguments at this level.

        found is False when the handler is the not-found handler; it then
        runs without the collected filters.
        """
        filters = []
        consumed = set()
        for binding in self._filters:
            handler, indices = binding.build(arguments, self)
            filters.append(handler)
            consumed |= indices
        remaining = [token for index, token in enumerate(arguments) if index not in consumed]

        if self._action is not None:
            handler, _ = self._action.build(remaining, self)
            return filters, handler, path, True

        name, remaining = split_args(remaining)
        if name:
            path = [*path, name]
        if (child := self._children.get(name) if name else None) is None:
            if (not_found := getattr(self.app, "not_found", None)) is not None:
                return [], not_found, path, False
            throw_status(StatusCode.NOT_FOUND, "", f"not found command action: {' '.join(path)!r}")

        nested, handler, path, found = child._resolve(remaining, path)
        if found:
            return filters + nested, handler, path, True
        return [], handler, path, False

    def __repr__(self):
        return f"{type(self).__name__}({self.path_string!r})"


class App(Command):
    """
    The root command with application metadata.

    Every keyword has a default derived from the running process, and every
    metadata property has a setter; each setter refreshes the usage text.
    - cmd_name: basename of sys.argv[0], leading '-' removed.
    - name: display name, cmd_name when empty.
    - version: a leading 'v'/'V' is removed; "0.0.1" when empty.
    - compiled: modification time of sys.argv[0], else now.
    """

    def __init__(
            self,
            cmd_name="",
            /,
            *,
            name="",
            description="",
            version="",
            compiled=None,
            authors=(),
            copyright="",
            not_found=None,
            validator=None,
            output=None,
    ):
        super().__init__("", "", app=self)
        self._ready = False
        self._display = ""
        self._version = ""
        self._compiled = None
        self._authors = ()
        self._copyright = ""
        self._not_found = None
        self._validator = None
        self._output = None
        self._renderable = Text()

        self.cmd_name = cmd_name
        self.name = name
        self.description = description
        self.version = version
        self.compiled = compiled
        self.authors = authors
        self.copyright = copyright
        self.not_found = not_found
        self.validator = validator
        self.output = output

        self._ready = True
        self._refresh_usage()

    # ── Metadata ────────────────────────────────────────────────────────────
    @property
    def cmd_name(self):
        with self._lock:
            return self._name

    @cmd_name.setter
    def cmd_name(self, cmd_name):
        if not isinstance(cmd_name, str):
            raise TypeError(f"{type(self).__name__} cmd_name must be a string")
        with self._lock:
            self._name = (cmd_name or os.path.basename(sys.argv[0] if sys.argv else "")).lstrip("-")
            self._refresh_usage()

    @property
    def name(self):
        with self._lock:
            return self._display or self._name

    @name.setter
    def name(self, name):
        if not isinstance(name, str):
            raise TypeError(f"{type(self).__name__} name must be a string")
        with self._lock:
            self._display = name
            self._refresh_usage()

    @property
    def description(self):
        with self._lock:
            return self._descr

    @description.setter
    def description(self, description):
        if not isinstance(description, str):
            raise TypeError(f"{type(self).__name__} description must be a string")
        with self._lock:
            self._descr = description
            self._refresh_usage()

    @property
    def version(self):
        with self._lock:
            return self._version

    @version.setter
    def version(self, version):
        if not isinstance(version, str):
            raise TypeError(f"{type(self).__name__} version must be a string")
        with self._lock:
            version = version.removeprefix("v").removeprefix("V")
            self._version = version or "0.0.1"
            self._refresh_usage()

    @property
    def compiled(self):
        with self._lock:
            return self._compiled

    @compiled.setter
    def compiled(self, compiled):
        if compiled is not None and not isinstance(compiled, datetime):
            raise TypeError(f"{type(self).__name__} compiled must be a datetime or None")
        with self._lock:
            if compiled is None:
                try:
                    compiled = datetime.fromtimestamp(os.stat(sys.argv[0]).st_mtime)
                except (OSError, IndexError, ValueError):
                    compiled = datetime.now()
            self._compiled = compiled
            self._refresh_usage()

    @property
    def authors(self):
        with self._lock:
            return list(self._authors)

    @authors.setter
    def authors(self, authors):
        authors = tuple(authors)
        if not all(isinstance(author, Author) for author in authors):
            raise TypeError(f"{type(self).__name__} authors must be Author instances")
        with self._lock:
            self._authors = authors
            self._refresh_usage()

    @property
    def copyright(self):
        with self._lock:
            return self._copyright

    @copyright.setter
    def copyright(self, copyright):
        if not isinstance(copyright, str):
            raise TypeError(f"{type(self).__name__} copyright must be a string")
        with self._lock:
            self._copyright = copyright
            self._refresh_usage()

    @property
    def not_found(self):
        """Handler fn(context) run when no command matches; None yields NOT_FOUND."""
        with self._lock:
            return self._not_found

    @not_found.setter
    def not_found(self, handler):
        if handler is not None and not callable(handler):
            raise TypeError(f"{type(self).__name__} not_found must be callable or None")
        with self._lock:
            self._not_found = handler

    @property
    def validator(self):
        """Hook fn(options) run on every populated option object; raising fails validation."""
        with self._lock:
            return self._validator

    @validator.setter
    def validator(self, validator):
        if validator is not None and not callable(validator):
            raise TypeError(f"{type(self).__name__} validator must be callable or None")
        with self._lock:
            self._validator = validator

    @property
    def output(self):
        """Sink for parse failures and usage; sys.stderr unless set."""
        return sys.stderr if self._output is None else self._output

    @output.setter
    def output(self, stream):
        if stream is not None and not callable(getattr(stream, "write", None)):
            raise TypeError(f"{type(self).__name__} output must be a writable stream")
        self._output = stream

    # ── Usage ───────────────────────────────────────────────────────────────
    def _descendants(self):
        stack = [self._children[name] for name in sorted(self._children, reverse=True)]
        while stack:
            command = stack.pop()
            yield command
            stack.extend(command._children[name] for name in sorted(command._children, reverse=True))

    def _refresh_usage(self):
        with self._lock:
            if not getattr(self, "_ready", False):
                return
            styles = palette({
                "app-name": "bold #E6E6F0",
                "version": "#00E5FF",
                "description": "#C8C8D0",
                "section": "bold #FF4DA6",
                "command": "#9CE19C",
            })

            global_options = _options_text(binding.flagset for binding in self._filters if binding.flagset is not None)
            options = _options_text([self._action.flagset] if self._action and self._action.flagset else [])

            text = Text()
            text.append(self.name, styles["app-name"])
            if self._version:
                text.append(f" - v{self._version}", styles["version"])
            if self._descr:
                text.append("\n\n")
                text.append(self._descr, styles["description"])

            text.append("\n\n")
            text.append("USAGE:", styles["section"])
            text.append(f"\n  {self._name}")
            if global_options:
                text.append(" [-globaloptions --]")
            if self._children:
                text.append(" [command] [-commandoptions]")
                text.append("\n\n")
                text.append("COMMANDS:", styles["section"])
                for command in self._descendants():
                    text.append("\n")
                    text.append(f"{self._name} {command._usage}".rstrip("\n"), styles["command"])
            if options:
                text.append("\n\n")
                text.append("OPTIONS:", styles["section"])
                text.append("\n" + options.rstrip("\n"))
            if global_options:
                text.append("\n\n")
                text.append("GLOBAL OPTIONS:", styles["section"])
                text.append("\n" + global_options.rstrip("\n"))
            if self._authors:
                text.append("\n\n")
                text.append("AUTHORS:" if len(self._authors) > 1 else "AUTHOR:", styles["section"])
                for author in self._authors:
                    text.append(f"\n  {author}")
            if self._copyright:
                text.append("\n\n")
                text.append("COPYRIGHT:", styles["section"])
                text.append(f"\n  {self._copyright}")
            text.append("\n")

            self._renderable = text
            self._usage = text.plain

    def print_usage(self):
        """Print the styled usage to the output sink."""
        with self._lock:
            make_console(self.output).print(self._renderable, end="")

    # ── Execution ───────────────────────────────────────────────────────────
    def exec(self, arguments=Unset, /, *, carrier=None):
        """
        Route arguments (sys.argv[1:] when omitted) and run the resolved handler once.

        Returns
        - Status: OK on success; BAD_ARGS, NOT_FOUND, PARSE_FAILED,
          VALIDATE_FAILED, a status thrown by the handler, or UNCAUGHT.
          No Exception escapes.
        """
        if arguments is Unset:
            arguments = sys.argv[1:]
        if isinstance(arguments, str | bytes):
            return Status(StatusCode.BAD_ARGS, "", "arguments must be a sequence of strings, not a string")
        try:
            arguments = list(arguments)
        except TypeError:
            return Status(StatusCode.BAD_ARGS, "", "arguments must be a sequence of strings")
        if not all(isinstance(argument, str) for argument in arguments):
            return Status(StatusCode.BAD_ARGS, "", "arguments must be a sequence of strings")

        try:
            with self._lock:
                filters, handler, path, found = self._resolve(arguments, [self._name])
            for filter in reversed(filters if found else []):
                handler = _chain(handler, filter)
            handler(Context(carrier, arguments, path))
        except StatusError as error:
            return error.status
        except Exception as error:
            return Status.from_exception(error)
        return Status()

    def run(self, arguments=Unset, /, *, carrier=None):
        """Run exec(), report a failing status to the output sink and exit with its code."""
        status = self.exec(arguments, carrier=carrier)
        if not status.ok:
            make_console(self.output).print(status)
            if status.code == StatusCode.NOT_FOUND:
                self.print_usage()
        sys.exit(int(status.code))


__all__ = (
    # Types
    "Author",
    "Context",
    "Command",
    "App",
)
