"""
Commands module behavioral tests (registration, resolution, built-ins).

Scope
- Validate registration faults and the concurrent-safe add().
- Validate global flags, command flags and nested dispatch.
- Validate the root/nested asymmetry for unknown command names.
- Validate the built-in help command and version flags.
- Validate consumed-argument chaining and handler contracts.

Conventions
- Test method names follow CamelCase per project convention.
- Every test runs against a fresh process-wide flag set writing to a buffer;
  the original one and sys.argv are restored afterwards.
"""

from __future__ import annotations

import io
import sys
import threading
import unittest
from unittest import TestCase

from flagtree import (
    Application,
    Command,
    ErrorPolicy,
    FlagSet,
    FULL_VERSION_FLAG,
    HELP_COMMAND,
    VERSION_FLAG,
    invoke,
    new,
)
from flagtree import flags
from flagtree.faults import (
    CommandNotFoundError,
    DuplicateCommandError,
    HelpRequested,
    MissingCommandNameError,
    MissingInitializerError,
    NoCommandError,
    UnknownFlagError,
)


def noop(flagset):
    return None


def counting(counter, key, consumed=0):
    def init(flagset):
        def handler(*args):
            counter.append((key, args))
            return consumed
        return handler
    return init


class FlagTreeCase(TestCase):
    """Swap the process-wide flag set for a buffered one."""

    def setUp(self):
        self.saved = flags.command_line, sys.argv
        self.output = io.StringIO()
        flags.command_line = FlagSet("test", ErrorPolicy.PROPAGATE, output=self.output)

    def tearDown(self):
        flags.command_line, sys.argv = self.saved


class TestRegistration(FlagTreeCase):
    """Command.add()/must_add() contracts."""

    def testAddGrowsCommands(self):
        root = new()
        first = root.add(Application("cmd1", init=noop))
        second = root.add(Application("cmd2", init=noop))
        self.assertEqual(root.commands(), (first, second))
        self.assertEqual(first.name, "cmd1")
        self.assertIs(first.parent, root)

    def testMissingCommandName(self):
        root = new()
        with self.assertRaises(MissingCommandNameError):
            root.add(Application())
        self.assertEqual(root.commands(), ())

    def testMissingCommandNameIsValueError(self):
        with self.assertRaises(ValueError):
            new().add(Application(""))

    def testMissingInitializer(self):
        root = new()
        with self.assertRaises(MissingInitializerError):
            root.add(Application("test"))
        self.assertEqual(root.commands(), ())

    def testUnusableInitializer(self):
        with self.assertRaises(MissingInitializerError):
            new().add(Application("test", init=42))

    def testDuplicateCommand(self):
        root = new()
        root.add(Application("test", init=noop))
        with self.assertRaises(DuplicateCommandError):
            root.add(Application("test", init=noop))
        self.assertEqual(len(root.commands()), 1)

    def testSameNameUnderDifferentParents(self):
        root = new()
        one = root.add(Application("one", init=noop))
        two = root.add(Application("two", init=noop))
        one.add(Application("leaf", init=noop))
        two.add(Application("leaf", init=noop))
        self.assertEqual([child.name for child in one.commands()], ["leaf"])
        self.assertEqual([child.name for child in two.commands()], ["leaf"])

    def testAddRejectsNonApplication(self):
        with self.assertRaises(TypeError):
            new().add(("test", "", "", "", ErrorPolicy.PROPAGATE, noop))

    def testMustAddExitsOnInvalidApplication(self):
        stderr = io.StringIO()
        saved, sys.stderr = sys.stderr, stderr
        try:
            with self.assertRaises(SystemExit) as context:
                new().must_add(Application())
        finally:
            sys.stderr = saved
        self.assertEqual(context.exception.code, 2)
        self.assertIn("missing command name", stderr.getvalue())

    def testMustAddReturnsNode(self):
        root = new()
        node = root.must_add(Application("test", init=noop))
        self.assertIs(root.lookup("test"), node)

    def testConcurrentAdd(self):
        root = new()
        barrier = threading.Barrier(8)

        def register(index):
            barrier.wait()
            for offset in range(25):
                root.add(Application("cmd%d-%d" % (index, offset), init=noop))

        threads = [threading.Thread(target=register, args=(index,)) for index in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        names = [child.name for child in root.commands()]
        self.assertEqual(len(names), 200)
        self.assertEqual(len(set(names)), 200)

    def testConcurrentAddOfSameName(self):
        root = new()
        barrier = threading.Barrier(8)
        added, rejected = [], []

        def register():
            barrier.wait()
            try:
                added.append(root.add(Application("same", init=noop)))
            except DuplicateCommandError as fault:
                rejected.append(fault)

        threads = [threading.Thread(target=register) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(added), 1)
        self.assertEqual(len(rejected), 7)
        self.assertEqual(root.commands(), tuple(added))

    def testNavigation(self):
        root = new()
        parent = root.add(Application("parent", init=noop))
        child = parent.add(Application("child", init=noop))
        self.assertIs(child.root, root)
        self.assertEqual(child.path, (root, parent, child))
        self.assertIsNone(root.parent)
        self.assertIsNone(root.name)
        self.assertIsNone(parent.lookup("missing"))


class TestResolution(FlagTreeCase):
    """Command.parse() dispatch semantics."""

    def testGlobalFlagOnly(self):
        gv1 = flags.string("v1", "val1", "usage1")
        self.assertEqual(new().parse("-v1=gcli1"), ())
        self.assertEqual(gv1.value, "gcli1")

    def testInvalidCommand(self):
        root = new()
        root.add(Application("sub1", init=noop))
        with self.assertRaises(NoCommandError):
            root.parse("invalidsub")

    def testInvalidCommandSuggestsClosestName(self):
        root = new()
        root.add(Application("export", init=noop))
        with self.assertRaises(NoCommandError) as context:
            root.parse("exprt")
        self.assertEqual(context.exception.options["suggestions"], ["export"])

    def testNoCommandSet(self):
        self.assertEqual(new().parse("sub"), ())

    def testEmptyResidualDispatchesNothing(self):
        calls = []
        root = new()
        root.add(Application("sub1", init=counting(calls, "sub1")))
        self.assertEqual(root.dispatch([]), ())
        self.assertEqual(calls, [])

    def testRequiredCommand(self):
        root = new(required=True)
        root.add(Application("sub1", init=noop))
        with self.assertRaises(NoCommandError):
            root.dispatch([])

    def testOneCommand(self):
        calls = []
        root = new()
        sub1 = root.add(Application("sub1", errors=ErrorPolicy.EXIT, init=counting(calls, "sub1")))
        self.assertEqual(root.parse("sub1"), (sub1,))
        self.assertEqual(calls, [("sub1", ())])

    def testOneCommandOneNestedCommand(self):
        calls = []
        root = new()
        sub1 = root.add(Application("sub1", init=counting(calls, "sub1")))
        sub2 = sub1.add(Application("sub2", init=counting(calls, "sub2")))
        self.assertEqual(root.parse("sub1", "sub2"), (sub1, sub2))
        self.assertEqual(calls, [("sub1", ("sub2",)), ("sub2", ())])

    def testNestedUnknownCommandIsSwallowed(self):
        calls = []
        root = new()
        sub1 = root.add(Application("sub1", init=counting(calls, "sub1")))
        sub1.add(Application("sub2", init=counting(calls, "sub2")))
        self.assertEqual(root.parse("sub1", "other"), (sub1,))
        self.assertEqual(calls, [("sub1", ("other",))])

    def testOneCommandOneFlag(self):
        seen = []

        def init(flagset):
            seen.append("init")
            v1 = flagset.string("v1", "val1", "usage1")

            def handler(*args):
                seen.append(v1.value)
            return handler

        root = new()
        root.add(Application("sub1flag", errors=ErrorPolicy.EXIT, init=init))
        root.parse("sub1flag", "-v1=cli1")
        self.assertEqual(seen, ["init", "cli1"])

    def testGlobalFlagOneCommand(self):
        calls = []

        def init(flagset):
            calls.append("init")
            flagset.string("v1", "val1", "usage1")

        root = new()
        root.add(Application("subglobal", init=init))
        gv1 = flags.string("v1", "val1", "usage1")
        root.parse("-v1=gcli1", "subglobal")
        self.assertEqual(calls, ["init"])
        self.assertEqual(gv1.value, "gcli1")

    def testGlobalAndCommandFlagsAreSeparate(self):
        values = []

        def init(flagset):
            v1 = flagset.string("v1", "val1", "usage1")

            def handler(*args):
                values.append(v1.value)
            return handler

        root = new()
        root.add(Application("subglobal1flag", init=init))
        gv1 = flags.string("v1", "val1", "usage1")
        root.parse("subglobal1flag", "-v1=cli1")
        self.assertEqual(values, ["cli1"])
        self.assertEqual(gv1.value, "val1")

    def testInitializerRunsOncePerMatch(self):
        calls = []

        def init(flagset):
            calls.append(flagset)

        root = new()
        node = root.add(Application("sub", init=init))
        root.parse("sub")
        root.parse("sub")
        self.assertEqual(len(calls), 2)
        self.assertIsNot(calls[0], calls[1])
        self.assertIs(node.flagset, calls[1])
        self.assertEqual(node.flagset.name, "command `sub`")

    def testCommandFlagSetInheritsOutput(self):
        root = new()
        node = root.add(Application("sub", init=noop))
        root.parse("sub")
        self.assertIs(node.flagset.output, self.output)

    def testRegisterObjectInitializer(self):
        class Counter:
            def __init__(self):
                self.count = 0

            def register(self, flagset):
                step = flagset.integer("step", 1, "increment")

                def handler(*args):
                    self.count += step.value
                return handler

        counter = Counter()
        root = new()
        root.add(Application("count", init=counter))
        root.parse("count", "-step", "5")
        self.assertEqual(counter.count, 5)

    def testConsumedArgumentsChainToNestedCommand(self):
        calls = []
        root = new()
        connect = root.add(Application("connect", init=counting(calls, "connect", 1)))
        export = connect.add(Application("export", init=counting(calls, "export", 1)))
        self.assertEqual(root.parse("connect", "db.sqlite", "export", "users"), (connect, export))
        self.assertEqual(calls, [
            ("connect", ("db.sqlite", "export", "users")),
            ("export", ("users",)),
        ])

    def testSplitExample(self):
        printed = []

        def init(flagset):
            text = flagset.string("s", "", "string to be split")

            def handler(*separators):
                middle = len(text.value) // 2
                printed.append("%s %s %s" % (text.value[:middle], list(separators), text.value[middle:]))
                return 1
            return handler

        root = new(flags.command_line)
        root.add(Application("split", "splits files into fixed size chunks", "[sep ...]", init=init))
        root.parse("split", "-s", "hello", "&", "@")
        self.assertEqual(printed, ["he ['&', '@'] llo"])

    def testConsumedCountOutOfRange(self):
        root = new()
        root.add(Application("sub", init=counting([], "sub", 3)))
        with self.assertRaises(ValueError):
            root.parse("sub", "one")

    def testHandlerMustReturnInteger(self):
        def init(flagset):
            return lambda *args: "1"

        root = new()
        root.add(Application("sub", init=init))
        with self.assertRaises(TypeError):
            root.parse("sub")

    def testHandlerExceptionPropagates(self):
        def init(flagset):
            def handler(*args):
                raise RuntimeError("boom")
            return handler

        root = new()
        root.add(Application("sub", init=init))
        with self.assertRaises(RuntimeError):
            root.parse("sub")

    def testCommandFlagFaultPropagates(self):
        root = new()
        root.add(Application("sub", init=noop))
        with self.assertRaises(UnknownFlagError):
            root.parse("sub", "-missing")

    def testCommandFlagFaultExits(self):
        root = new()
        root.add(Application("sub", errors=ErrorPolicy.EXIT, init=noop))
        with self.assertRaises(SystemExit) as context:
            root.parse("sub", "-missing")
        self.assertEqual(context.exception.code, 2)
        self.assertIn("flag provided but not defined: -missing", self.output.getvalue())
        self.assertIn("Usage of command `sub`", self.output.getvalue())

    def testParseOnlyOnRoot(self):
        node = new().add(Application("sub", init=noop))
        with self.assertRaises(TypeError):
            node.parse("x")

    def testParseDefaultsToArgv(self):
        calls = []
        root = new()
        root.add(Application("sub", init=counting(calls, "sub")))
        sys.argv = ["prog", "sub", "free"]
        root.parse()
        self.assertEqual(calls, [("sub", ("free",))])


class TestVersionFlags(FlagTreeCase):
    """Built-in -version / -fullversion global flags."""

    def testVersion(self):
        flags.boolean(VERSION_FLAG, False, "print the program version")
        root = new()
        root.add(Application("sub", errors=ErrorPolicy.EXIT, init=noop))

        with self.assertRaises(NoCommandError):
            root.parse("-%s=false" % VERSION_FLAG, "dummy")
        self.assertEqual(root.parse("-%s" % VERSION_FLAG), ())
        self.assertIn("version", self.output.getvalue())

    def testFullVersion(self):
        flags.boolean(FULL_VERSION_FLAG, False, "print the program version")
        root = new()
        root.add(Application("sub", errors=ErrorPolicy.EXIT, init=noop))

        with self.assertRaises(NoCommandError):
            root.parse("-%s=false" % FULL_VERSION_FLAG, "dummy")
        self.assertEqual(root.parse("-%s" % FULL_VERSION_FLAG), ())
        self.assertIn("full version", self.output.getvalue())

    def testVersionSkipsCommands(self):
        calls = []
        flags.boolean(VERSION_FLAG, False, "print the program version")
        root = new()
        root.add(Application("sub", init=counting(calls, "sub")))
        root.parse("-%s" % VERSION_FLAG, "sub")
        self.assertEqual(calls, [])

    def testNonBooleanVersionFlagIsInert(self):
        calls = []
        flags.string(VERSION_FLAG, "", "not a switch")
        root = new()
        root.add(Application("sub", init=counting(calls, "sub")))
        root.parse("-%s" % VERSION_FLAG, "1.0", "sub")
        self.assertEqual(calls, [("sub", ())])


class TestHelp(FlagTreeCase):
    """Built-in help command and -h handling."""

    def testHelpCommand(self):
        root = new()
        root.add_help()
        application = Application("sub", help="helpcommand", errors=ErrorPolicy.EXIT, init=noop)
        root.add(application)

        root.parse(HELP_COMMAND)
        self.assertIn("Usage", self.output.getvalue())
        self.assertIn("Subcommands:", self.output.getvalue())
        self.output.truncate(0)
        self.output.seek(0)

        with self.assertRaises(CommandNotFoundError):
            root.parse(HELP_COMMAND, "dummy")

        root.parse(HELP_COMMAND, application.name)
        self.assertIn(application.help, self.output.getvalue())

    def testHelpCommandPrintsDescriptionAndArguments(self):
        root = new()
        root.add_help()
        root.add(Application("export", "print a table", "<table>", "export help", init=noop))
        root.parse(HELP_COMMAND, "export")
        self.assertEqual(self.output.getvalue().splitlines(), ["print a table", "export <table>", "export help"])

    def testHelpCommandConsumesItsArgument(self):
        calls = []
        root = new()
        helper = root.add_help()
        helper.add(Application("sub", init=counting(calls, "sub")))
        root.add(Application("sub", help="helptext", init=noop))
        root.parse(HELP_COMMAND, "sub")
        self.assertEqual(calls, [])

    def testHelpCommandKeepsLayoutWithoutDescription(self):
        root = new()
        root.add_help()
        root.add(Application("sub", help="helptext", init=noop))
        root.parse(HELP_COMMAND, "sub")
        self.assertEqual(self.output.getvalue().splitlines(), ["", "sub", "helptext"])

    def testNestedHelpCommand(self):
        root = new()
        connect = root.add(Application("connect", "open a database", "<database>", init=counting([], "connect", 1)))
        connect.add_help()
        connect.add(Application("export", "print a table", "<table>", "export help", init=noop))

        root.parse("connect", "db", HELP_COMMAND)
        usage = self.output.getvalue()
        self.assertIn("Usage of command `connect`:", usage)
        self.assertIn("export <table>", usage)
        self.output.truncate(0)
        self.output.seek(0)

        root.parse("connect", "db", HELP_COMMAND, "export")
        self.assertEqual(self.output.getvalue().splitlines(), ["print a table", "export <table>", "export help"])

        with self.assertRaises(CommandNotFoundError):
            root.parse("connect", "db", HELP_COMMAND, "import")

    def testHelpFlag(self):
        root = new()
        root.add(Application("sub", errors=ErrorPolicy.PROPAGATE, init=noop))

        with self.assertRaises(HelpRequested):
            root.parse("-h")
        self.assertIn("Usage", self.output.getvalue())
        self.output.truncate(0)
        self.output.seek(0)

        with self.assertRaises(HelpRequested):
            root.parse("sub", "-h")
        self.assertIn("Usage of command", self.output.getvalue())

    def testHelpFlagExitsSuccessfully(self):
        root = new()
        root.add(Application("sub", errors=ErrorPolicy.EXIT, init=noop))
        with self.assertRaises(SystemExit) as context:
            root.parse("sub", "-help")
        self.assertEqual(context.exception.code, 0)

    def testUsageListsFlagsAndCommands(self):
        flags.string("v1", "val1", "usage1")
        root = new()
        root.add(Application("sub", "a subcommand", "[args]", init=noop))
        root.print_usage()
        output = self.output.getvalue()
        self.assertIn("-v1 string", output)
        self.assertIn('(default "val1")', output)
        self.assertIn("sub [args]", output)
        self.assertIn("a subcommand", output)


class TestInvoke(FlagTreeCase):
    """invoke() prompt handling."""

    def testInvokeWithString(self):
        calls = []
        root = new()
        root.add(Application("sub", init=counting(calls, "sub")))
        invoke(root, "sub 'two words'")
        self.assertEqual(calls, [("sub", ("two words",))])

    def testInvokeWithIterable(self):
        calls = []
        root = new()
        root.add(Application("sub", init=counting(calls, "sub")))
        invoke(root, iter(["sub", "a"]))
        self.assertEqual(calls, [("sub", ("a",))])

    def testInvokeWithArgv(self):
        calls = []
        root = new()
        root.add(Application("sub", init=counting(calls, "sub")))
        sys.argv = ["prog", "sub"]
        invoke(root)
        self.assertEqual(calls, [("sub", ())])

    def testInvokeRejectsBadArguments(self):
        with self.assertRaises(TypeError):
            invoke(object(), "sub")
        with self.assertRaises(TypeError):
            invoke(new(), 42)
        with self.assertRaises(TypeError):
            invoke(new(), ["sub", 1])

    def testRootAcceptsExplicitFlagSet(self):
        output = io.StringIO()
        flagset = FlagSet("custom", output=output)
        verbose = flagset.boolean("verbose", False, "talk more")
        root = new(flagset)
        self.assertIsInstance(root, Command)
        invoke(root, "-verbose")
        self.assertTrue(verbose.value)
        self.assertIs(root.flagset, flagset)


if __name__ == "__main__":
    unittest.main()
