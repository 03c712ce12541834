r"""
Flagtree flag sets: named flag registration and Go-style token parsing.

Overview
- Flag: one named flag bound to a value. Its `value` is the variable the caller
  reads after parsing; `default` is what it holds before.
- FlagSet: a registry of flags plus the parser that consumes tokens against it.
  • Definers: boolean, integer, floating, string, duration, variable, function.
  • Parsing: parse(tokens) consumes flags until the first positional token.
  • Results: args / narg / arg(i) for the positional remainder, actual() for the
    flags that were set on the command line.
  • Help: print_usage() / print_defaults(); `usage` can be replaced.
- command_line: the process-wide default flag set (ErrorPolicy.EXIT), with
  module-level twins of the definers bound to it at call time.

Token grammar
- "-name" / "--name"           boolean flags only (sets True)
- "-name=value" / "--name=value"
- "-name value" / "--name value"  non-boolean flags only
- "--"                          terminates the flags (consumed)
- "-" or any token without a leading dash is the first positional argument:
  parsing stops there and the token is kept in args.

Error policy
- Parse failures are surfaced through faults.trigger() with the set's ErrorPolicy:
  PROPAGATE raises, EXIT prints the fault and the usage then exits with status 2,
  SILENT exits with status 2 without printing.
- "-h" and "-help", when not defined, print the usage and signal HelpRequested
  (exit status 0 under EXIT/SILENT).

Quick example:
    >>> fs = FlagSet("demo")
    >>> size = fs.integer("size", 10, "chunk `bytes`")
    >>> fs.parse(["-size", "64", "a.txt"])
    >>> size.value, fs.args
    (64, ('a.txt',))
"""
import builtins
import difflib
import json
import re
import sys
from datetime import timedelta

from rich.text import Text

from . import buildinfo
from .faults import *
from .utils import *

_TRUTHS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSES = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def parse_bool(text, /):
    """
    Convert a boolean literal ("1", "t", "true", "0", "f", "false" and their
    capitalized forms) to a bool.
    """
    if text in _TRUTHS:
        return True
    if text in _FALSES:
        return False
    raise ValueError("parse error")


# Microseconds per unit; timedelta cannot hold anything finer than a microsecond.
_UNITS = {
    "ns": 0.001,
    "us": 1,
    "µs": 1,
    "μs": 1,
    "ms": 1_000,
    "s": 1_000_000,
    "m": 60_000_000,
    "h": 3_600_000_000,
}
_DURATION = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text, /):
    """
    Convert a duration literal such as "300ms", "-1.5h" or "2h45m" to a timedelta.
    """
    sign, body = 1, text
    if body[:1] in ("-", "+"):
        sign, body = (-1 if body[0] == "-" else 1), body[1:]
    if body == "0":
        return timedelta(0)

    total = 0.0
    position = 0
    for match in _DURATION.finditer(body):
        if match.start() != position:
            break
        total += float(match[1]) * _UNITS[match[2]]
        position = match.end()
    if not body or position != len(body):
        raise ValueError("invalid duration %s" % json.dumps(text, ensure_ascii=False))
    return timedelta(microseconds=sign * total)


def format_duration(value, /):
    """
    Render a timedelta the way parse_duration() reads it back (e.g. "1h30m0s").
    """
    micros = value // timedelta(microseconds=1)
    if micros == 0:
        return "0s"
    sign, micros = ("-" if micros < 0 else ""), abs(micros)
    if micros < 1_000:
        return "%s%dµs" % (sign, micros)
    if micros < 1_000_000:
        return "%s%gms" % (sign, micros / 1_000)
    hours, micros = divmod(micros, 3_600_000_000)
    minutes, micros = divmod(micros, 60_000_000)
    seconds = ("%f" % (micros / 1_000_000)).rstrip("0").rstrip(".")
    return "%s%s%s%ss" % (sign, "%dh" % hours if hours else "", "%dm" % minutes if hours or minutes else "", seconds)


class Flag(metaclass=IntrospectableType):
    """
    Named flag bound to a value.

    Properties
    - name: flag name without the leading dash.
    - usage: help text; a back-quoted word names the value in help output.
    - default: value held before parsing.
    - value: current value (the caller's variable).
    - type: converter applied to the raw token text by set().
    - metavar: value label used in help ("" for boolean flags).
    - boolean: True when the flag may be given without a value.
    """

    __introspectable__ = (
        "name",
        "usage",
        "default",
        "value",
        "type",
        "metavar",
        "boolean",
    )
    __displayable__ = (
        "name",
        "value",
        "default",
    )

    def __init__(self, name, default, usage="", /, *, type=str, metavar="value", boolean=False, format=str):
        if not isinstance(name, str):
            raise TypeError(f"{builtins.type(self).__typename__} name must be a string")
        elif not name:
            raise ValueError(f"{builtins.type(self).__typename__} name cannot be empty")
        elif name.startswith("-"):
            raise ValueError(f"{builtins.type(self).__typename__} {name!r} begins with -")
        elif "=" in name:
            raise ValueError(f"{builtins.type(self).__typename__} {name!r} contains =")
        if not isinstance(usage, str):
            raise TypeError(f"{builtins.type(self).__typename__} usage must be a string")
        if not callable(type):
            raise TypeError(f"{builtins.type(self).__typename__} 'type' must be callable")

        self._name = name
        self._usage = usage
        self._default = default
        self._value = default
        self._type = type
        self._metavar = "" if boolean else metavar
        self._boolean = bool(boolean)
        self._format = format

    def set(self, text, /):
        """
        Convert `text` with the flag's type and store it as the current value.

        Converters signal bad input by raising ValueError or TypeError.
        """
        self._value = self._type(text)

    def reset(self):
        """
        Restore the default value.
        """
        self._value = self._default

    def unquote(self):
        """
        Return (metavar, usage) with a back-quoted word in the usage used as the metavar.
        """
        if (match := re.search(r"`([^`]*)`", self._usage)) is not None:
            return match[1], self._usage[:match.start()] + match[1] + self._usage[match.end():]
        return self._metavar, self._usage

    def stringify(self, value=Unset, /):
        """
        Format `value` (the current value when Unset) the way it is shown in help.
        """
        return self._format(coalesce(value, self._value))

    def __str__(self):
        return self.stringify()


class FlagSet:
    """
    A set of defined flags and the parser consuming tokens against them.

    Construction
    - name: label used in the default usage banner ("Usage of <name>:").
    - errors: ErrorPolicy (or its integer value) applied to parse failures.
    - output: stream receiving usage and fault output (sys.stderr when Unset,
      resolved at write time).
    - colorful: emit styles when rendering.
    """

    def __init__(self, name="", errors=ErrorPolicy.PROPAGATE, /, *, output=Unset, colorful=False):
        if not isinstance(name, str):
            raise TypeError("flag set name must be a string")
        self._name = name
        self._errors = ErrorPolicy(errors)
        self._output = output
        self._colorful = bool(colorful)
        self._formal = {}
        self._actual = {}
        self._args = ()
        self._parsed = False
        self._usage = Unset

    @property
    def name(self):
        return self._name

    @property
    def errors(self):
        return self._errors

    @property
    def colorful(self):
        return self._colorful

    @property
    def output(self):
        """
        Stream receiving usage, defaults and fault output.
        """
        return coalesce(self._output, sys.stderr)

    @output.setter
    def output(self, output):
        self._output = Unset if output is None else output

    @property
    def usage(self):
        """
        Callable printing the usage message; replaces the default banner when set.
        """
        return coalesce(self._usage)

    @usage.setter
    def usage(self, usage):
        if usage is not None and usage is not Unset and not callable(usage):
            raise TypeError("flag set usage must be callable")
        self._usage = Unset if usage is None else usage

    @property
    def parsed(self):
        return self._parsed

    @property
    def args(self):
        """
        Positional arguments left after parsing.
        """
        return self._args

    @property
    def narg(self):
        return len(self._args)

    def arg(self, index, /):
        """
        Return the index-th positional argument, or "" when there is none.
        """
        if 0 <= index < len(self._args):
            return self._args[index]
        return ""

    def lookup(self, name, /):
        """
        Return the Flag defined under `name`, or None.
        """
        return self._formal.get(name)

    def flags(self):
        """
        Return every defined flag, sorted by name.
        """
        return tuple(self._formal[name] for name in sorted(self._formal))

    def actual(self):
        """
        Return the flags that were set (on the command line or with set()), sorted by name.
        """
        return tuple(self._actual[name] for name in sorted(self._actual))

    def set(self, name, value, /):
        """
        Set the flag `name` from its textual `value` as if it were given on the command line.
        """
        if (flag := self._formal.get(name)) is None:
            raise UnknownFlagError("no such flag -%s" % name, flag=name)
        flag.set(value)
        self._actual[name] = flag

    # ── Definers ──────────────────────────────────────────────────────────────

    def define(self, flag, /):
        """
        Register an existing Flag; redefining a name is a programming error.
        """
        if not isinstance(flag, Flag):
            raise TypeError("define() argument must be a flag")
        if flag.name in self._formal:
            if self._name:
                raise ValueError(f"{self._name} flag redefined: {flag.name}")
            raise ValueError(f"flag redefined: {flag.name}")
        self._formal[flag.name] = flag
        return flag

    def boolean(self, name, default=False, usage="", /):
        return self.define(Flag(name, bool(default), usage, type=parse_bool, boolean=True, format=lambda x: str(x).lower()))

    def integer(self, name, default=0, usage="", /):
        return self.define(Flag(name, default, usage, type=lambda x: int(x, 0), metavar="int"))

    def floating(self, name, default=0.0, usage="", /):
        return self.define(Flag(name, default, usage, type=float, metavar="float"))

    def string(self, name, default="", usage="", /):
        return self.define(Flag(name, default, usage, type=str, metavar="string"))

    def duration(self, name, default=timedelta(0), usage="", /):
        return self.define(Flag(name, default, usage, type=parse_duration, metavar="duration", format=format_duration))

    def variable(self, name, default=None, usage="", /, *, type=str, metavar="value", boolean=False):
        """
        Define a flag with a custom converter (`type`) and value label (`metavar`).
        """
        return self.define(Flag(name, default, usage, type=type, metavar=metavar, boolean=boolean))

    def function(self, name, usage, callback, /):
        """
        Define a flag calling `callback(text)` each time it is given; the value is the last text.
        """
        if not callable(callback):
            raise TypeError("function() callback must be callable")

        @rename(name)
        def setter(text):
            callback(text)
            return text

        return self.define(Flag(name, None, usage, type=setter, format=lambda x: x or ""))

    # ── Parsing ───────────────────────────────────────────────────────────────

    def parse(self, tokens, /):
        """
        Parse `tokens` (without the program name) against the defined flags.

        Parsing stops at the first positional token or after "--"; the remainder is
        available through args. Failures are surfaced per the error policy.
        """
        if isinstance(tokens, str):
            raise TypeError("parse() argument must be an iterable of strings, not a string")
        tokens = tuple(tokens)
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("parse() argument must be an iterable of strings")

        self._parsed = True
        self._args = tokens
        while self._parse_one():
            pass

    def _parse_one(self):
        """
        Consume one flag from args; return False when the flags are over.
        """
        if not self._args:
            return False
        token = self._args[0]
        if len(token) < 2 or token[0] != "-":
            return False
        minuses = 1
        if token[1] == "-":
            minuses += 1
            if len(token) == 2:
                self._args = self._args[1:]
                return False

        name = token[minuses:]
        if not name or name[0] in "-=":
            self._fail(MalformedFlagError(
                "bad flag syntax: %s" % token,
                flag=token,
                hint="flags are written -name, -name=value or -name value",
            ))
            return False

        self._args = self._args[1:]
        name, assigned, value = name.partition("=")

        if (flag := self._formal.get(name)) is None:
            if name in ("help", "h"):
                self.print_usage()
                self._fail(HelpRequested("flag: help requested"), usage=False)
                return False
            suggestions = difflib.get_close_matches(name, self._formal.keys(), 1)
            if suggestions:
                hint = "did you mean -%s? run with -h to see the available flags" % suggestions[0]
            else:
                hint = "run with -h to see the available flags"
            self._fail(UnknownFlagError(
                "flag provided but not defined: -%s" % name,
                flag=name,
                suggestions=suggestions,
                hint=hint,
            ))
            return False

        if flag.boolean:
            if not assigned:
                value = "true"
        elif not assigned:
            if not self._args:
                self._fail(MissingFlagValueError(
                    "flag needs an argument: -%s" % name,
                    flag=name,
                    hint="use -%s=<%s> or -%s <%s>" % (name, flag.metavar, name, flag.metavar),
                ))
                return False
            value, self._args = self._args[0], self._args[1:]

        try:
            flag.set(value)
        except (TypeError, ValueError) as error:
            if flag.boolean:
                message = "invalid boolean value %s for -%s: %s" % (json.dumps(value, ensure_ascii=False), name, error)
            else:
                message = "invalid value %s for flag -%s: %s" % (json.dumps(value, ensure_ascii=False), name, error)
            self._fail(InvalidFlagValueError(
                message,
                flag=name,
                value=value,
                hint="run with -h to see the expected value of -%s" % name,
            ))
            return False

        self._actual[name] = flag
        return True

    def _fail(self, fault, /, *, usage=True):
        trigger(
            fault,
            policy=self._errors,
            output=self.output,
            colorful=self._colorful,
            usage=self.print_usage if usage else None,
        )

    # ── Help ──────────────────────────────────────────────────────────────────

    def print_usage(self):
        """
        Print the usage message: the custom `usage` callable when set, else the default banner.
        """
        if self._usage is not Unset:
            return self._usage()
        banner = "Usage of %s:" % self._name if self._name else "Usage:"
        console(self.output, colorful=self._colorful).print(Text(banner))
        self.print_defaults()

    def render_defaults(self):
        """
        Return the defaults listing as Text (one entry per flag, sorted by name).

        Palette keys: flag-name, metavar, flag-usage, flag-default.
        """
        styles = palette({
            "flag-name": "bold #00E6FF",  # CYAN for flag names
            "metavar": "bold #FFD600",  # AMBER for value labels
            "flag-usage": "#9CA3AF",  # Muted gray
            "flag-default": "italic #737373",  # Dim default
        })

        def text(fragment, style):
            return stylize(fragment, styles[style], self._colorful)

        lines = []
        for flag in self.flags():
            metavar, usage = flag.unquote()
            line = Text.assemble("  ", text("-" + flag.name, "flag-name"))
            if metavar:
                line.append(" ").append(text(metavar, "metavar"))
            # Short boolean flags keep the usage on the same line.
            line.append("    " if len(line) <= 4 else "\n        ")
            line.append(text(usage.replace("\n", "\n        "), "flag-usage"))
            # Zero defaults (False, 0, "", 0s, None) are not worth showing.
            if flag.default:
                if isinstance(flag.default, str):
                    default = json.dumps(flag.default, ensure_ascii=False)
                else:
                    default = flag.stringify(flag.default)
                line.append(text(" (default %s)" % default, "flag-default"))
            lines.append(line)
        return Text("\n").join(lines)

    def print_defaults(self):
        """
        Print the defaults listing of every defined flag to the output.
        """
        if self._formal:
            console(self.output, colorful=self._colorful).print(self.render_defaults())

    def __repr__(self):
        return "flag-set(name=%r, errors=%s, flags=%r)" % (self._name, self._errors.name, tuple(self._formal))


# Process-wide default flag set. Test harnesses may replace it and restore it afterwards;
# the module-level definers below always resolve it at call time.
command_line = FlagSet(buildinfo.program(), ErrorPolicy.EXIT)


def boolean(name, default=False, usage="", /):
    return command_line.boolean(name, default, usage)


def integer(name, default=0, usage="", /):
    return command_line.integer(name, default, usage)


def floating(name, default=0.0, usage="", /):
    return command_line.floating(name, default, usage)


def string(name, default="", usage="", /):
    return command_line.string(name, default, usage)


def duration(name, default=timedelta(0), usage="", /):
    return command_line.duration(name, default, usage)


def variable(name, default=None, usage="", /, *, type=str, metavar="value", boolean=False):
    return command_line.variable(name, default, usage, type=type, metavar=metavar, boolean=boolean)


def function(name, usage, callback, /):
    return command_line.function(name, usage, callback)


def parse(tokens=Unset, /):
    """
    Parse sys.argv[1:] (or `tokens`) against the process-wide flag set.
    """
    command_line.parse(sys.argv[1:] if tokens is Unset else tokens)


__all__ = (
    "ErrorPolicy",
    "Flag",
    "FlagSet",
    "command_line",
    "parse_bool",
    "parse_duration",
    "format_duration",
    "boolean",
    "integer",
    "floating",
    "string",
    "duration",
    "variable",
    "function",
    "parse",
)
