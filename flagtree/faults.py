"""
Flagtree faults (errors and policies) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every user-facing issue.
  Codes are grouped by domain to keep copy consistent and searches predictable.
- ErrorPolicy: how a flag set surfaces a parse failure (propagate, exit with a
  message, exit silently).
- CommandException: base type that carries message + options and knows how to
  render itself through rich and how to surface itself under a policy.
- trigger(): central entry point to surface any fault.
- getdoc(): optional description lookup for a code from the host application.

Integration
- Registration code raises faults directly (they are ordinary exceptions).
- Flag sets call trigger(fault, policy=..., output=..., usage=...) so the fault is
  raised, or printed before the process exits, depending on the policy.
"""
import sys
from enum import IntEnum
from types import MappingProxyType

from rich.console import Group
from rich.text import Text

from . import buildinfo
from .utils import Unset, console, palette, stylize


class FaultCode(IntEnum):
    """
    canonical fault codes used across the package (stable identifiers).

    grouping (by high-level domain)
    - registration (101xx)
      • MISSING_COMMAND_NAME, MISSING_INITIALIZER, DUPLICATE_COMMAND
    - routing (111xx)
      • NO_COMMAND, COMMAND_NOT_FOUND
    - flags (112xx)
      • UNKNOWN_FLAG, MALFORMED_FLAG, MISSING_FLAG_VALUE, INVALID_FLAG_VALUE,
        HELP_REQUESTED
    """
    # --- registration errors (101xx) ---
    MISSING_COMMAND_NAME = 10101
    MISSING_INITIALIZER  = 10102
    DUPLICATE_COMMAND    = 10103

    # --- routing errors (111xx) ---
    NO_COMMAND           = 11101
    COMMAND_NOT_FOUND    = 11102

    # --- flag errors (112xx) ---
    UNKNOWN_FLAG         = 11201
    MALFORMED_FLAG       = 11202
    MISSING_FLAG_VALUE   = 11203
    INVALID_FLAG_VALUE   = 11204
    HELP_REQUESTED       = 11220

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class ErrorPolicy(IntEnum):
    """
    how a flag set reacts to a parse failure.

    - PROPAGATE: raise the fault to the caller.
    - EXIT: print the fault and the usage, then exit (status 2, or 0 for a help request).
    - SILENT: exit with the same status without printing the fault.
    """
    PROPAGATE = 0
    EXIT = 1
    SILENT = 2


class CommandException(Exception):
    """
    base fault: a message plus read-only options.

    class attributes
    - code: the FaultCode identifying the fault (None for the abstract base).
    - title: short lowercased headline used by the renderer.
    - status: process exit status used when the policy terminates the process.
    - quiet: when True, the EXIT policy does not print the fault itself.
    """
    code = None
    title = "error"
    status = 2
    quiet = False

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(*(() if message is Unset else (message,)))
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return self.message if self.message is not Unset else ""

    def __rich__(self):
        colorful = self.options.get("colorful", False)
        styles = palette({
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
        })

        def text(fragment, style):
            return stylize(fragment, styles[style], colorful)

        program = self.options.get("program") or buildinfo.program()

        header = Text.assemble(
            "[ ",
            text(program, "prog-name"),
            " — ",
            text(self.code.normalize() if self.code else "-", "code"),
            " | ",
            text(self.title.title(), "error-title"),
            " ]"
        )
        renders = [header, text(str(self), "error-message")]
        if hint := self.options.get("hint"):
            renders.append(Text.assemble(text(" → ", "hint-arrow"), text(hint, "hint")))
        return Group(*renders)

    def __trigger__(self):
        match self.options.get("policy", ErrorPolicy.PROPAGATE):
            case ErrorPolicy.PROPAGATE:
                raise self from None
            case ErrorPolicy.EXIT:
                if not self.quiet:
                    output = self.options.get("output") or sys.stderr
                    console(output, colorful=self.options.get("colorful", False)).print(self)
                    if usage := self.options.get("usage"):
                        usage()
                sys.exit(self.status)
            case ErrorPolicy.SILENT:
                sys.exit(self.status)
            case policy:
                raise ValueError(f"unknown error policy {policy!r}")

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class MissingCommandNameError(CommandException, ValueError):
    code = FaultCode.MISSING_COMMAND_NAME
    title = "missing command name"

class MissingInitializerError(CommandException, TypeError):
    code = FaultCode.MISSING_INITIALIZER
    title = "missing command initializer"

class DuplicateCommandError(CommandException, ValueError):
    code = FaultCode.DUPLICATE_COMMAND
    title = "duplicated command"


class NoCommandError(CommandException):
    code = FaultCode.NO_COMMAND
    title = "no command specified"

class CommandNotFoundError(CommandException):
    code = FaultCode.COMMAND_NOT_FOUND
    title = "command not found"


class FlagError(CommandException):
    """
    base of the faults raised while parsing tokens against a flag set.
    """
    title = "invalid flags"

class UnknownFlagError(FlagError):
    code = FaultCode.UNKNOWN_FLAG
    title = "unknown flag"

class MalformedFlagError(FlagError):
    code = FaultCode.MALFORMED_FLAG
    title = "bad flag syntax"

class MissingFlagValueError(FlagError):
    code = FaultCode.MISSING_FLAG_VALUE
    title = "missing flag value"

class InvalidFlagValueError(FlagError):
    code = FaultCode.INVALID_FLAG_VALUE
    title = "invalid flag value"


class HelpRequested(CommandException):
    """
    signal raised when -h or -help is given without being defined.

    the usage has already been printed when this fault is triggered, so the EXIT
    policy leaves quietly with a successful status.
    """
    code = FaultCode.HELP_REQUESTED
    title = "help requested"
    status = 0
    quiet = True


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see CommandException).
    - options are merged into the fault via __replace__(**options) before triggering.

    typical options
    - policy, output, colorful, usage, program, hint.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    fault.__replace__(**options).__trigger__()


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    the host application may expose a __docs__ mapping in __main__ where keys
    are FaultCode instances and values are short documentation strings.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    return getattr(__import__("__main__"), "__docs__", {}).get(code)


__all__ = (
    "FaultCode",
    "ErrorPolicy",
    "CommandException",
    "MissingCommandNameError",
    "MissingInitializerError",
    "DuplicateCommandError",
    "NoCommandError",
    "CommandNotFoundError",
    "FlagError",
    "UnknownFlagError",
    "MalformedFlagError",
    "MissingFlagValueError",
    "InvalidFlagValueError",
    "HelpRequested",
    "trigger",
    "getdoc",
)
