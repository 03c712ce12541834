"""
Faults module tests (codes, rendering, policies).

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import io
import sys
import unittest
from unittest import TestCase

from flagtree.faults import (
    CommandException,
    DuplicateCommandError,
    ErrorPolicy,
    FaultCode,
    HelpRequested,
    MissingInitializerError,
    NoCommandError,
    getdoc,
    trigger,
)
from flagtree.utils import console


class TestFaults(TestCase):
    """Fault identity, rendering and surfacing."""

    def setUp(self):
        self.main = sys.modules["__main__"]
        self.saved = {name: getattr(self.main, name) for name in ("__codes__", "__docs__") if hasattr(self.main, name)}

    def tearDown(self):
        for name in ("__codes__", "__docs__"):
            if name in self.saved:
                setattr(self.main, name, self.saved[name])
            elif hasattr(self.main, name):
                delattr(self.main, name)

    def testRegistrationFaultsAreBuiltinErrors(self):
        self.assertIsInstance(DuplicateCommandError("x"), ValueError)
        self.assertIsInstance(MissingInitializerError("x"), TypeError)

    def testMessageAndOptions(self):
        fault = NoCommandError("x is not a valid command", command="x")
        self.assertEqual(str(fault), "x is not a valid command")
        self.assertEqual(fault.options["command"], "x")
        with self.assertRaises(TypeError):
            fault.options["command"] = "y"

    def testReplaceMergesOptions(self):
        fault = NoCommandError("message", hint="one").__replace__(hint="two", policy=ErrorPolicy.EXIT)
        self.assertIsInstance(fault, NoCommandError)
        self.assertEqual(fault.options["hint"], "two")
        self.assertEqual(fault.options["policy"], ErrorPolicy.EXIT)

    def testRendering(self):
        output = io.StringIO()
        console(output).print(NoCommandError("x is not a valid command", program="tool", hint="run tool -h"))
        self.assertEqual(output.getvalue().splitlines(), [
            "[ tool — %d | No Command Specified ]" % FaultCode.NO_COMMAND,
            "x is not a valid command",
            " → run tool -h",
        ])

    def testCodeOverride(self):
        self.main.__codes__ = {FaultCode.NO_COMMAND: "E-ROUTE"}
        self.assertEqual(FaultCode.NO_COMMAND.normalize(), "E-ROUTE")
        self.assertEqual(FaultCode.UNKNOWN_FLAG.normalize(), str(int(FaultCode.UNKNOWN_FLAG)))

    def testGetdoc(self):
        self.main.__docs__ = {FaultCode.NO_COMMAND: "the first argument names no command"}
        self.assertEqual(getdoc(FaultCode.NO_COMMAND), "the first argument names no command")
        self.assertIsNone(getdoc(FaultCode.UNKNOWN_FLAG))
        with self.assertRaises(TypeError):
            getdoc(11101)

    def testTriggerPropagates(self):
        with self.assertRaises(NoCommandError):
            trigger(NoCommandError("message"))

    def testTriggerExits(self):
        output = io.StringIO()
        usage = []
        with self.assertRaises(SystemExit) as context:
            trigger(NoCommandError("message"), policy=ErrorPolicy.EXIT, output=output, usage=lambda: usage.append(1))
        self.assertEqual(context.exception.code, 2)
        self.assertIn("message", output.getvalue())
        self.assertEqual(usage, [1])

    def testTriggerHelpIsQuiet(self):
        output = io.StringIO()
        with self.assertRaises(SystemExit) as context:
            trigger(HelpRequested("flag: help requested"), policy=ErrorPolicy.EXIT, output=output)
        self.assertEqual(context.exception.code, 0)
        self.assertEqual(output.getvalue(), "")

    def testTriggerRejectsPlainExceptions(self):
        with self.assertRaises(TypeError):
            trigger(ValueError("x"))

    def testBaseFaultHasNoCode(self):
        output = io.StringIO()
        console(output).print(CommandException("oops", program="tool"))
        self.assertIn("[ tool — - | Error ]", output.getvalue())


if __name__ == "__main__":
    unittest.main()
