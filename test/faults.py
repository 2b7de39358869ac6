"""
Faults module behavioral tests (options, replacement, triggering, throws).

Scope
- Validate default codes/titles and option properties of every fault kind.
- Validate copy.replace() merging (cause preserved) for faults and warnings.
- Validate trigger(): raising outside shell mode, rendering inside it.
- Validate explicit throws (identity preserved, values wrapped in Thrown).
- Validate host hooks read from __main__ (__codes__, __docs__).

Conventions
- Test method names follow CamelCase per project convention.
- Rendering is captured on a recording console patched into the module.
"""
import copy
import unittest
from unittest import TestCase, mock

from rich.console import Console

from pipewright import faults
from pipewright.faults import *


class TestFaultOptions(TestCase):
    """Option properties and class defaults."""

    def testDefaultCodesAndTitles(self):
        self.assertEqual(ConstructionFault().code, FaultCode.CONSTRUCTION_FAILED)
        self.assertEqual(BindingFault().code, FaultCode.INPUT_OBJECT_NOT_BOUND)
        self.assertEqual(MandatoryMissingFault().code, FaultCode.MISSING_MANDATORY)
        self.assertEqual(CastFault().code, FaultCode.INVALID_CAST)
        self.assertEqual(PipelineStoppedFault().code, FaultCode.PIPELINE_STOPPED)
        self.assertEqual(InvocationFault().code, FaultCode.INVOCATION_FAILED)
        self.assertEqual(BindingFault().title, "parameter binding failed")

    def testExplicitOptions(self):
        cause = ValueError("bad")
        fault = BindingFault(
            "cannot bind",
            code=FaultCode.VALIDATION_FAILED,
            parameter="Path",
            target={"Path": 1},
            cause=cause,
            hint="try again",
        )
        self.assertEqual(str(fault), "cannot bind")
        self.assertEqual(fault.code, FaultCode.VALIDATION_FAILED)
        self.assertEqual(fault.parameter, "Path")
        self.assertEqual(fault.target, {"Path": 1})
        self.assertIs(fault.cause, cause)
        self.assertEqual(fault.hint, "try again")
        self.assertIsNone(fault.invocation)

    def testMandatoryMissingIsBindingFault(self):
        fault = MandatoryMissingFault("missing", missing=["A", "B"])
        self.assertIsInstance(fault, BindingFault)
        self.assertEqual(fault.missing, ("A", "B"))

    def testCastFaultProvenance(self):
        fault = CastFault("nope", source="x", type=int)
        self.assertFalse(fault.untrusted)
        self.assertTrue(copy.replace(fault, untrusted=True).untrusted)

    def testOptionsAreReadOnly(self):
        fault = PipelineFault("x", code=FaultCode.THROWN)
        with self.assertRaises(TypeError):
            fault.options["code"] = FaultCode.INVOCATION_FAILED  # type: ignore[index]


class TestFaultReplace(TestCase):
    """copy.replace() support."""

    def testReplaceMergesOptions(self):
        fault = BindingFault("x", parameter="A")
        replaced = copy.replace(fault, target=42)
        self.assertIsNot(replaced, fault)
        self.assertIs(type(replaced), BindingFault)
        self.assertEqual(replaced.parameter, "A")
        self.assertEqual(replaced.target, 42)
        self.assertIsNone(fault.target)

    def testReplaceKeepsChainedCause(self):
        try:
            try:
                raise KeyError("inner")
            except KeyError as error:
                raise InvocationFault("outer") from error
        except InvocationFault as fault:
            replaced = copy.replace(fault, hint="h")
        self.assertIsInstance(replaced.__cause__, KeyError)

    def testReplaceRejectsPositional(self):
        with self.assertRaises(AssertionError):
            BindingFault("x").__replace__(1)

    def testWarningReplace(self):
        warning = ObsoleteParameterWarning("old", parameter="P")
        replaced = copy.replace(warning, invocation="info")
        self.assertEqual(replaced.parameter, "P")
        self.assertEqual(replaced.invocation, "info")
        self.assertEqual(replaced.code, FaultCode.OBSOLETE_PARAMETER)


class TestTrigger(TestCase):
    """trigger() raises outside shell mode and renders inside it."""

    def testTriggerRaisesOutsideShell(self):
        with self.assertRaises(BindingFault) as context:
            trigger(BindingFault("no binding", parameter="A"))
        self.assertEqual(context.exception.parameter, "A")

    def testTriggerRendersInShell(self):
        console = Console(color_system=None, force_terminal=False, width=120)
        with mock.patch.object(faults, "console", console), console.capture() as capture:
            trigger(BindingFault("no binding", hint="name it"), shell=True, colorful=False)
        output = capture.get()
        self.assertIn("21111", output)
        self.assertIn("Parameter Binding Failed", output)
        self.assertIn("no binding", output)
        self.assertIn("→ name it", output)

    def testTriggerFancyRendersPanel(self):
        console = Console(color_system=None, force_terminal=False, width=80)
        with mock.patch.object(faults, "console", console), console.capture() as capture:
            trigger(InvocationFault("boom"), shell=True, fancy=True)
        self.assertIn("boom", capture.get())

    def testTriggerWarningWarnsOutsideShell(self):
        with self.assertWarns(ObsoleteCommandWarning):
            trigger(ObsoleteCommandWarning("old command"))

    def testTriggerRejectsPlainObjects(self):
        with self.assertRaises(TypeError):
            trigger(ValueError("x"))


class TestThrow(TestCase):
    """Explicit throws."""

    def testThrowExceptionKeepsIdentity(self):
        error = LookupError("missing")
        with self.assertRaises(LookupError) as context:
            throw(error)
        self.assertIs(context.exception, error)
        self.assertTrue(thrown(context.exception))

    def testThrowValueWrapsInThrown(self):
        with self.assertRaises(Thrown) as context:
            throw({"status": 3})
        self.assertEqual(context.exception.value, {"status": 3})
        self.assertEqual(context.exception.code, FaultCode.THROWN)
        self.assertTrue(thrown(context.exception))

    def testRaisedIsNotThrown(self):
        self.assertFalse(thrown(ValueError("x")))


class TestHostHooks(TestCase):
    """Host customization read from __main__."""

    def testNormalizeDefaultsToNumber(self):
        self.assertEqual(FaultCode.AMBIGUOUS_PARAMETER.normalize(), "21113")

    def testNormalizeUsesHostCodes(self):
        main = __import__("__main__")
        with mock.patch.object(main, "__codes__", {FaultCode.THROWN: "E-THROWN"}, create=True):
            self.assertEqual(FaultCode.THROWN.normalize(), "E-THROWN")

    def testGetdoc(self):
        main = __import__("__main__")
        self.assertIsNone(getdoc(FaultCode.THROWN))
        with mock.patch.object(main, "__docs__", {FaultCode.THROWN: "a throw"}, create=True):
            self.assertEqual(getdoc(FaultCode.THROWN), "a throw")
        with self.assertRaises(TypeError):
            getdoc(21152)


if __name__ == '__main__':
    unittest.main()
