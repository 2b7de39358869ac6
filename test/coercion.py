"""
Coercion chain behavioral tests.

Scope
- Validate the ordered steps of coerce(): reference look-only binding,
  script-command array-to-text refusal, boolean pre-checks, element-wise
  boolean checks, generic conversion, and the SUSPEND guard on assignment.
- Validate provenance: the untrusted marker survives success and failure.
- Validate the generic convert() rules (invariant text, numbers, enums,
  collections, unions, ISO dates, construction under language modes).

Conventions
- Test method names follow CamelCase per project convention.
- Pre-conversion rejections are asserted by patching convert() and checking
  it was never reached.
"""
import datetime
import decimal
import unittest
from enum import Enum, Flag, auto
from unittest import TestCase, mock

from pipewright import coercion
from pipewright.coercion import *
from pipewright.envelope import Envelope
from pipewright.faults import CastFault, FaultCode


class Color(Enum):
    RED = "Red"
    GREEN = "Green"


class Access(Flag):
    READ = auto()
    WRITE = auto()


class Point:
    def __init__(self, value):
        self.value = value


def binding(types, value, /, **options):
    return coerce(Coercion(types, value, binding_parameters=True, **options))


class TestBooleanSteps(TestCase):
    """Boolean-like targets accept numbers, booleans and switches only."""

    def testNumericToBooleanAccepted(self):
        self.assertEqual(binding(bool, 1), Converted(True))
        self.assertEqual(binding(bool, 0), Converted(False))
        self.assertEqual(binding(Switch, 1), Converted(Switch(True)))

    def testTextToBooleanRejectedBeforeConversion(self):
        with mock.patch.object(coercion, "convert", wraps=coercion.convert) as patched:
            result = binding(bool, "yes")
        self.assertIsInstance(result, CastFault)
        self.assertEqual(result.code, FaultCode.INVALID_BOOLEAN)
        patched.assert_not_called()

    def testNumericToBooleanReachesConversion(self):
        with mock.patch.object(coercion, "convert", wraps=coercion.convert) as patched:
            binding(bool, 1)
        patched.assert_called_once()

    def testNullToBoolean(self):
        self.assertEqual(binding(bool, None).code, FaultCode.INVALID_BOOLEAN)
        self.assertEqual(binding(bool | None, None), Converted(None))

    def testScriptBooleanElements(self):
        result = binding(list[bool], [1, "no"], binding_script_cmdlet=True)
        self.assertIsInstance(result, CastFault)
        self.assertEqual(result.code, FaultCode.INVALID_BOOLEAN)
        self.assertEqual(binding(list[bool], [1, 0], binding_script_cmdlet=True), Converted([True, False]))

    def testScriptBooleanSetElements(self):
        result = binding(set[bool], {1, "no"}, binding_script_cmdlet=True)
        self.assertIsInstance(result, CastFault)
        self.assertEqual(result.code, FaultCode.INVALID_BOOLEAN)
        self.assertEqual(binding(frozenset[bool], frozenset({1, 0}), binding_script_cmdlet=True).value, {True, False})
        self.assertEqual(binding(set[bool], {1}, binding_script_cmdlet=True), Converted({True}))


class TestTextSteps(TestCase):
    """Script commands refuse arrays for text targets."""

    def testArrayToTextRefusedForScriptCommands(self):
        result = binding(str, [1, 2], binding_script_cmdlet=True)
        self.assertIsInstance(result, CastFault)
        self.assertEqual(result.code, FaultCode.ARRAY_TO_STRING)

    def testArrayToTextJoinedOtherwise(self):
        self.assertEqual(binding(str, [1, 2]), Converted("1 2"))
        self.assertEqual(binding(str, (1.0, "x")), Converted("1 x"))


class TestProvenance(TestCase):
    """The untrusted marker flows through parameter binding."""

    def testUntrustedSuccess(self):
        result = binding(int, Envelope("42", untrusted=True))
        self.assertEqual(result, Converted(42, untrusted=True))

    def testUntrustedFailure(self):
        result = binding(int, Envelope("forty-two", untrusted=True))
        self.assertIsInstance(result, CastFault)
        self.assertTrue(result.untrusted)

    def testTrustedByDefault(self):
        self.assertFalse(binding(int, "42").untrusted)
        self.assertFalse(binding(int, "x").untrusted)

    def testNoMarkerOutsideBinding(self):
        result = coerce(Coercion(int, Envelope("42", untrusted=True)))
        self.assertEqual(result, Converted(42))


class TestReferences(TestCase):
    """Reference targets are look-only under parameter binding."""

    def testReferenceRequired(self):
        result = binding((Reference, int), 5)
        self.assertIsInstance(result, CastFault)
        self.assertEqual(result.code, FaultCode.REFERENCE_EXPECTED)

    def testReferenceContentConverted(self):
        cell = Reference("5")
        self.assertEqual(binding((Reference, int), cell), Converted(5))
        self.assertEqual(cell.value, "5")

    def testReferenceDereferencedForOtherTargets(self):
        self.assertEqual(binding(int, Reference("7")), Converted(7))

    def testReferenceConversionOutsideBinding(self):
        self.assertEqual(convert("3", Reference[int]), Reference(3))


class TestAssignment(TestCase):
    """Direct assignment rejects SUSPEND for preferences."""

    def testSuspendRejected(self):
        with self.assertRaises(CastFault) as context:
            assign("Suspend", ActionPreference)
        self.assertEqual(context.exception.code, FaultCode.DISALLOWED_PREFERENCE)

    def testSuspendAllowedWhenBinding(self):
        self.assertEqual(binding(ActionPreference, "Suspend"), Converted(ActionPreference.SUSPEND))

    def testPreferenceByValueOrName(self):
        self.assertIs(assign("stop", ActionPreference), ActionPreference.STOP)
        self.assertIs(assign("SILENTLY_CONTINUE", ActionPreference), ActionPreference.SILENTLY_CONTINUE)

    def testAssignRaisesCastFault(self):
        with self.assertRaises(CastFault):
            assign("x", int)


class TestConvert(TestCase):
    """Generic invariant conversion."""

    def testIntegers(self):
        self.assertEqual(convert("0x1F", int), 31)
        self.assertEqual(convert(" 12 ", int), 12)
        self.assertEqual(convert("", int), 0)
        self.assertEqual(convert(2.5, int), 2)
        self.assertEqual(convert(3.5, int), 4)
        self.assertEqual(convert(True, int), 1)
        self.assertEqual(convert(None, int), 0)

    def testReals(self):
        self.assertEqual(convert("1.5", float), 1.5)
        self.assertEqual(convert("0.1", decimal.Decimal), decimal.Decimal("0.1"))
        self.assertEqual(convert(0.1, decimal.Decimal), decimal.Decimal("0.1"))
        self.assertEqual(convert(decimal.Decimal("1.5"), float), 1.5)
        self.assertEqual(convert(Envelope(decimal.Decimal("-2.25")), float), -2.25)

    def testText(self):
        self.assertEqual(convert(3.0, str), "3")
        self.assertEqual(convert(None, str), "")
        self.assertEqual(convert(Color.RED, str), "Red")
        self.assertEqual(convert(datetime.date(2024, 1, 2), str), "2024-01-02")

    def testEnumerations(self):
        self.assertIs(convert("green", Color), Color.GREEN)
        self.assertIs(convert("RED", Color), Color.RED)
        self.assertEqual(convert("read, write", Access), Access.READ | Access.WRITE)
        with self.assertRaises(CastFault):
            convert("blue", Color)

    def testCollections(self):
        self.assertEqual(convert("1", list[int]), [1])
        self.assertEqual(convert(("1", "2"), list[int]), [1, 2])
        self.assertEqual(convert(["1", 2], tuple[int, str]), (1, "2"))
        self.assertEqual(convert([1, 1], set[str]), {"1"})
        with self.assertRaises(CastFault):
            convert([1, 2, 3], tuple[int, int])

    def testUnions(self):
        self.assertIsNone(convert(None, int | None))
        self.assertEqual(convert("4", int | None), 4)
        self.assertEqual(convert("x", int | str), "x")

    def testDates(self):
        self.assertEqual(convert("2024-01-02", datetime.date), datetime.date(2024, 1, 2))
        with self.assertRaises(CastFault):
            convert("yesterday", datetime.date)

    def testConstructionNeedsFullLanguage(self):
        self.assertEqual(convert(3, Point).value, 3)
        with self.assertRaises(CastFault):
            convert(3, Point, language_mode=LanguageMode.CONSTRAINED)

    def testIdentity(self):
        point = Point(1)
        self.assertIs(convert(point, Point, language_mode=LanguageMode.NO_LANGUAGE), point)
        self.assertIs(convert(point, object), point)


class TestRequest(TestCase):
    """Coercion request validation."""

    def testSingleTypeNormalized(self):
        self.assertEqual(Coercion(int, 1).types, (int,))

    def testEmptyTypesRejected(self):
        with self.assertRaises(ValueError):
            Coercion((), 1)

    def testLanguageModeChecked(self):
        with self.assertRaises(TypeError):
            Coercion(int, 1, language_mode="FullLanguage")

    def testCoerceRequiresRequest(self):
        with self.assertRaises(TypeError):
            coerce(1)


if __name__ == '__main__':
    unittest.main()
