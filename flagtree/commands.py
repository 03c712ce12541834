"""
Flagtree command layer: declare, compose and dispatch subcommand trees.

What this module provides
- Application: the immutable declaration of a command (name, description,
  argument hint, help text, error policy, initializer).
- Command: a node of the command tree.
  • Registration: add() / must_add() / add_help(), safe under concurrent callers.
  • Navigation: commands(), lookup(), parent, root, path.
  • Resolution: parse() / dispatch() split the tokens between the global flags,
    each matched command's flags and the remaining positional arguments, and run
    the matched handlers parent first.
- new(): build a root command around a global flag set.
- invoke(): convenience runner accepting argv, a shell-like string or tokens.

Core ideas
- Two-phase commands: an initializer binds the command flags on a fresh FlagSet
  and returns the handler; it runs only when the command is matched.
- Handlers receive the positional arguments left by their flag set and return how
  many of them they consumed; the next level is looked up right after those.
- Built-ins stay orthogonal: the "version"/"fullversion" global boolean flags and
  the "help" command only exist when the program declares them.

Quick start
    from flagtree import Application, new

    cli = new()

    def split(flagset):
        text = flagset.string("s", "", "string to be split")

        def handler(*separators):
            middle = len(text.value) // 2
            print(text.value[:middle], list(separators), text.value[middle:])
            return 1
        return handler

    cli.add(Application("split", "splits a string", "[sep ...]", init=split))
    cli.parse("split", "-s", "hello", "&", "@")   # he ['&', '@'] llo
"""
import difflib
import shlex
import sys
from collections import namedtuple
from collections.abc import Iterable
from threading import Lock

from rich.console import Group
from rich.text import Text

from . import buildinfo
from . import flags
from .faults import *
from .flags import FlagSet
from .utils import *

# Name of the command registered by Command.add_help().
HELP_COMMAND = "help"
# Global boolean flag names recognized by the root: declaring them enables version display.
VERSION_FLAG = "version"
FULL_VERSION_FLAG = "fullversion"


Application = namedtuple("Application", (
    "name",
    "descr",
    "args",
    "help",
    "errors",
    "init",
), defaults=("", "", "", "", ErrorPolicy.PROPAGATE, None))
Application.__doc__ = """
Declaration of a command.

Fields
- name: command name, non-empty and unique among its siblings.
- descr: short description (usage listings and help).
- args: description of the expected arguments, e.g. "<database url>".
- help: long help text displayed by the help command.
- errors: ErrorPolicy of the command flag set.
- init: initializer, either a callable init(flagset) -> handler or an object
  with a register(flagset) -> handler method. It is called once per match with a
  fresh FlagSet, before the command flags are parsed. The handler is called with
  the remaining positional arguments and returns how many it consumed (None
  counts as zero); a None handler does nothing.
"""


def _initializer(init):
    """
    Return the callable producing the handler, or Unset when `init` cannot produce one.
    """
    if callable(register := getattr(init, "register", None)):
        return register
    if callable(init):
        return init
    return Unset


def _enabled(flagset, name):
    """
    Return whether the boolean flag `name` is defined on the flag set and set to true.
    """
    flag = flagset.lookup(name)
    return flag is not None and flag.boolean and flag.value is True


class Command(metaclass=IntrospectableType):
    """
    Node of the command tree.

    The root carries no application: it only owns the global flag set and the
    top-level commands. Every other node wraps one Application and owns its
    children; its flag set is created anew each time the node is matched.

    Lifecycle
    - Nodes are created by add() during registration and never removed.
    - The identity of a node returned by add() is stable; use it to nest commands.
    - Resolution reads the tree without locking: registering while parsing is a misuse.
    """

    __introspectable__ = (
        "name",
        "descr",
        "args",
        "help",
        "errors",
        "parent",
        "required",
    )
    __displayable__ = (
        "name",
        "descr",
        "args",
        "errors",
    )

    def __init__(self, application=Unset, /, parent=Unset, *, flagset=Unset, required=False):
        if not isinstance(application, Application | Unset):
            raise TypeError(f"{type(self).__typename__} 'application' must be an application")
        if not isinstance(parent, Command | Unset):
            raise TypeError(f"{type(self).__typename__} 'parent' must be a command")
        if not isinstance(flagset, FlagSet | Unset):
            raise TypeError(f"{type(self).__typename__} 'flagset' must be a flag set")

        self._application = coalesce(application)
        self._parent = coalesce(parent)
        self._flagset = flagset
        self._required = bool(required)
        self._lock = Lock()
        self._children = []

        app = coalesce(application, Application())
        self._name = app.name if application else None
        self._descr = app.descr
        self._args = app.args
        self._help = app.help
        self._errors = app.errors

    @property
    def application(self):
        """
        The Application this node was registered with (None for the root).
        """
        return self._application

    @property
    def root(self):
        """
        Return the topmost command of the hierarchy.
        """
        child, parent = self, self.parent
        while parent:
            child, parent = parent, parent.parent
        return child

    @property
    def path(self):
        """
        Return the ancestry from the root to this command as a tuple.
        """
        path = [command := self]
        while command.parent:
            path.append(command := command.parent)
        return tuple(reversed(path))

    @property
    def flagset(self):
        """
        The flag set of this node.

        - root: the flag set given to new(), or the process-wide flags.command_line
          resolved at access time.
        - other nodes: the flag set created at the last match (None before any).
        """
        if self._parent is None:
            return coalesce(self._flagset, flags.command_line)
        return coalesce(self._flagset)

    # ── Registration ──────────────────────────────────────────────────────────

    def add(self, application, /):
        """
        Add a child command and return its node.

        It is safe to call from multiple threads (typically module-level
        registration code running in parallel).

        Raises
        - MissingCommandNameError: the name is empty.
        - MissingInitializerError: the initializer is missing or cannot produce a handler.
        - DuplicateCommandError: a sibling already uses the name.
        The tree is left unchanged when an error is raised.
        """
        if not isinstance(application, Application):
            raise TypeError("add() argument must be an application")
        if not isinstance(application.name, str):
            raise TypeError("application name must be a string")
        if not application.name:
            raise MissingCommandNameError(
                "missing command name",
                hint="give every application a non-empty name",
            )
        if application.init is None:
            raise MissingInitializerError(
                "missing command initializer",
                command=application.name,
                hint="set init to a callable returning the command handler",
            )
        if _initializer(application.init) is Unset:
            raise MissingInitializerError(
                "command %s initializer must be callable or provide register()" % application.name,
                command=application.name,
                hint="set init to a callable returning the command handler",
            )

        child = Command(application, self)
        with self._lock:
            for sibling in self._children:
                if sibling.name == application.name:
                    raise DuplicateCommandError(
                        "command %s redeclared" % application.name,
                        command=application.name,
                        hint="command names must be unique among siblings",
                    )
            self._children.append(child)
        return child

    def must_add(self, application, /):
        """
        Like add(), but a registration fault is printed and the process exits (status 2).

        Intended for straight-line registration code where a bad declaration is a bug.
        """
        try:
            return self.add(application)
        except CommandException as fault:
            trigger(fault, policy=ErrorPolicy.EXIT, output=sys.stderr)
            raise

    def add_help(self):
        """
        Add the "help" command to this node and return it.

        - help            print the usage of this node
        - help <command>  print the description, name, arguments and help text of a sibling
        - help <unknown>  raise CommandNotFoundError
        """
        node = self

        def init(flagset):
            def handler(*args):
                if not args:
                    node.print_usage()
                    return 0
                if (command := node.lookup(name := args[0])) is None:
                    route = " ".join(step.name for step in node.path[1:])
                    raise CommandNotFoundError(
                        "command %s not found" % name,
                        command=name,
                        suggestions=(suggestions := difflib.get_close_matches(name, node._names(), 1)),
                        hint=(
                            "did you mean %r? " % suggestions[0] if suggestions else ""
                        ) + "run '%s' to see the available commands" % " ".join(filter(None, (
                            buildinfo.program(), route, HELP_COMMAND
                        ))),
                    )
                command.print_help(flagset.output, colorful=flagset.colorful)
                return 1
            return handler

        return self.add(Application(
            HELP_COMMAND,
            "display the help for a given command",
            "command",
            "help displays the usage when called without arguments,\n"
            "or the help of the given command.",
            ErrorPolicy.PROPAGATE,
            init,
        ))

    # ── Navigation ────────────────────────────────────────────────────────────

    def commands(self):
        """
        Return the child commands in insertion order.
        """
        with self._lock:
            return tuple(self._children)

    def lookup(self, name, /):
        """
        Return the first child named `name`, or None.
        """
        for child in self.commands():
            if child.name == name:
                return child
        return None

    def _names(self):
        return [child.name for child in self.commands()]

    # ── Rendering ─────────────────────────────────────────────────────────────

    def print_usage(self):
        """
        Print the usage of this node: banner, flag defaults and subcommands.

        Palette keys
        - usage-label, program-name, command-name, arguments, description, section-label
        """
        flagset = self.flagset if self.flagset is not None else self.root.flagset
        colorful = flagset.colorful
        styles = palette({
            "usage-label": "bold #00E6FF",  # CYAN → signature info color
            "program-name": "bold #FF4D94",  # MAGENTA-PINK → brand pop
            "command-name": "bold #36C5F0",  # SKY-BLUE subcommands
            "arguments": "bold #FFD600",  # AMBER for argument hints
            "description": "italic #A3A3A3",  # Neutral gray
            "section-label": "bold #FFFFFF",  # Pure white headers
        })

        def text(fragment, style):
            return stylize(fragment, styles[style], colorful)

        renders = []
        if self._parent is None:
            renders.append(Text.assemble(text("Usage of ", "usage-label"), text(buildinfo.program(), "program-name"), ":"))
        else:
            renders.append(Text.assemble(text("Usage of command ", "usage-label"), "`", text(self.name, "command-name"), "`:"))
            renders.append(Text(""))
            if self.descr:
                renders.append(text(self.descr, "description"))
            signature = Text.assemble(text(self.name, "command-name"))
            if self.args:
                signature.append(" ").append(text(self.args, "arguments"))
            renders.append(signature)

        if flagset.flags() and (self._parent is None or self._flagset is not Unset):
            renders.append(flagset.render_defaults())

        if children := self.commands():
            renders.append(Text(""))
            renders.append(text("Subcommands:", "section-label"))
            for child in children:
                line = Text.assemble("  ", text(child.name, "command-name"))
                if child.args:
                    line.append(" ").append(text(child.args, "arguments"))
                if child.descr:
                    line.append("\n        ").append(text(child.descr, "description"))
                renders.append(line)

        console(flagset.output, colorful=colorful).print(Group(*renders))

    def print_help(self, output, /, *, colorful=False):
        """
        Print the description, the name with its argument hint, and the help text,
        one part per line (an empty part leaves an empty line).
        """
        styles = palette({
            "command-name": "bold #36C5F0",
            "arguments": "bold #FFD600",
            "description": "italic #A3A3A3",
            "help": "",
        })

        def text(fragment, style):
            return stylize(fragment, styles[style], colorful)

        signature = Text.assemble(text(self.name, "command-name"))
        if self.args:
            signature.append(" ").append(text(self.args, "arguments"))
        # Always three parts, even when empty: description, signature, help.
        renders = [text(self.descr, "description"), signature, text(self.help, "help")]
        console(output, colorful=colorful).print(Group(*renders))

    # ── Resolution ────────────────────────────────────────────────────────────

    def parse(self, *arguments):
        """
        Parse the global flags and, if any, the commands and their flags.

        Parameters
        - *arguments: the tokens to parse, without the program name; sys.argv[1:]
          when none are given.

        Returns
        - The matched commands, parent first (empty when no command ran).

        Raises
        - NoCommandError: the first positional token names no top-level command
          (or, with required=True, no command was given at all).
        - The flag faults of the flag sets whose policy is PROPAGATE.
        - Whatever a handler raises.
        """
        return self.dispatch(arguments or sys.argv[1:])

    def dispatch(self, tokens, /):
        """
        Like parse(), with the tokens given as one iterable (an empty one parses nothing).
        """
        if self._parent is not None:
            raise TypeError("dispatch() must be called on a root command")

        flagset = self.flagset
        flagset.usage = self.print_usage
        flagset.parse(tokens)

        if _enabled(flagset, VERSION_FLAG):
            buildinfo.render(flagset.output, colorful=flagset.colorful)
            return ()
        if _enabled(flagset, FULL_VERSION_FLAG):
            buildinfo.render(flagset.output, full=True, colorful=flagset.colorful)
            return ()

        if not flagset.args and self._required and self._children:
            raise NoCommandError(
                "no command specified",
                hint="run '%s -h' to see available commands" % buildinfo.program(),
            )
        return self._run(flagset.args, flagset, strict=True)

    def _run(self, tokens, flagset, /, *, strict):
        """
        Match tokens[0] against the children, run the matched command, then recurse.

        - tokens: positional arguments left at this level.
        - flagset: the flag set that produced them (output and colors are inherited).
        - strict: an unknown command name is an error (root level only); nested levels
          leave unknown tokens to the parent handler.
        """
        if not tokens or not self._children:
            return ()

        name = tokens[0]
        for child in self._children:
            if child.name == name:
                break
        else:
            if not strict:
                return ()
            suggestions = difflib.get_close_matches(name, self._names(), 1)
            try:
                hint = "did you mean %r? you can also run '%s -h' to see available commands" % (
                    suggestions[0], buildinfo.program()
                )
            except IndexError:
                hint = "run '%s -h' to see available commands" % buildinfo.program()
            raise NoCommandError(
                "%s is not a valid command" % name,
                command=name,
                suggestions=suggestions,
                hint=hint,
            )

        application = child.application
        subset = FlagSet("command `%s`" % name, application.errors, output=flagset.output, colorful=flagset.colorful)
        subset.usage = child.print_usage
        child._flagset = subset

        handler = _initializer(application.init)(subset)
        subset.parse(tokens[1:])
        residual = subset.args

        consumed = 0
        if handler is not None:
            if (consumed := handler(*residual)) is None:
                consumed = 0
            if isinstance(consumed, bool) or not isinstance(consumed, int):
                raise TypeError("command %s handler must return an integer, not %s" % (name, type(consumed).__name__))
            if not 0 <= consumed <= len(residual):
                raise ValueError("command %s handler consumed %d arguments out of %d" % (name, consumed, len(residual)))

        return (child, *child._run(residual[consumed:], subset, strict=False))


def new(flagset=Unset, /, *, required=False):
    """
    Build a root command.

    Parameters
    - flagset: FlagSet holding the global flags; when Unset, the process-wide
      flags.command_line is used (looked up at parse time).
    - required: when True, parsing without any command raises NoCommandError.
    """
    if flagset is None:
        flagset = Unset
    return Command(flagset=flagset, required=required)


def invoke(object, prompt=Unset, /):
    """
    Convenience runner for root commands.

    Parameters
    - object: a root Command.
    - prompt:
      • Unset: read sys.argv[1:].
      • str: split with shlex.split.
      • Iterable[str]: use items as tokens (each must be str).

    Returns
    - The matched commands, parent first.
    """
    if not isinstance(object, Command):
        raise TypeError("invoke() first argument must be a command")

    if prompt is Unset:
        tokens = sys.argv[1:]
    elif isinstance(prompt, str):
        tokens = shlex.split(prompt)
    elif isinstance(prompt, Iterable):
        tokens = list(prompt)
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("invoke() argument must be a string or an iterable of strings")
    else:
        raise TypeError("invoke() argument must be a string or an iterable of strings")

    return object.dispatch(tokens)


__all__ = (
    "HELP_COMMAND",
    "VERSION_FLAG",
    "FULL_VERSION_FLAG",
    "Application",
    "Command",
    "new",
    "invoke",
)
