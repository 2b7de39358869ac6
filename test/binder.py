"""
Binder behavioral tests (command line, parameter sets, pipeline tiers).

Scope
- Validate command-line binding: named (exact/alias/prefix), switches,
  "-Name:value", positional by ascending position, remaining arguments,
  defaults, help, and the friendly faults for every failure.
- Validate parameter-set resolution (single candidate, default set, conflicts).
- Validate pipeline binding precedence: by value and by property name
  without coercion, then with coercion, then remaining arguments.
- Validate provenance and restoration of pipeline-bound values per record.

Conventions
- Test method names follow CamelCase per project convention.
- Binders are built directly on command classes, without a processor.
"""
import unittest
from unittest import TestCase

from pipewright import (
    AllowEmptyString,
    Command,
    Directive,
    Member,
    Parameter,
    Reference,
    Switch,
    Transform,
    ValidateLength,
    ValidateRange,
    ValidateScript,
)
from pipewright.binder import *
from pipewright.context import ExecutionContext
from pipewright.envelope import Envelope
from pipewright.faults import *


def binder(command, /, **options):
    return Binder(command(), command.metadata, ExecutionContext(), **options)


class Copy(Command):
    Path = Parameter(str, Member(position=0, mandatory=True), aliases=("PSPath",))
    Destination = Parameter(str, Member(position=1))
    Force = Parameter(Switch)
    Depth = Parameter(int, default=1)


class Get(Command, default_set="ByName"):
    Name = Parameter(str, Member("ByName", position=0))
    Id = Parameter(int, Member("ById", mandatory=True))
    Verbose = Parameter(Switch)


class Collect(Command):
    Count = Parameter(int, Member(pipeline=True), attributes=[ValidateRange(0, 10)])
    Rest = Parameter(list, Member(remaining=True))


class Sample(Command):
    Value = Parameter(int, Member(pipeline=True, by_property_name=True), aliases=("Amount",))


class TestCommandLine(TestCase):
    """Command-line binding."""

    def testNamedPositionalAndSwitch(self):
        b = binder(Copy)
        b.bind_command_line(["a.txt", "-Force", "b.txt"])
        self.assertEqual(b.bound.values_only(), {"Force": Switch(True), "Path": "a.txt", "Destination": "b.txt"})
        self.assertIs(b.bound["path"].origin, Origin.COMMAND_LINE)

    def testAliasPrefixAndColon(self):
        b = binder(Copy)
        b.bind_command_line(["-pspath", "a", "-Dest:b", "-Depth:", "3"])
        self.assertEqual(b.bound.values_only(), {"Path": "a", "Destination": "b", "Depth": 3})

    def testSwitchWithExplicitValue(self):
        b = binder(Copy)
        b.bind_command_line(["a", "-Force:", False])
        self.assertEqual(b.bound["Force"].value, Switch(False))

        with self.assertRaises(BindingFault) as context:
            binder(Copy).bind_command_line(["a", "-Force:yes"])
        self.assertEqual(context.exception.cause.code, FaultCode.INVALID_BOOLEAN)

    def testVerbatimAfterDoubleDash(self):
        b = binder(Copy)
        b.bind_command_line(["--", "-a", "-b"])
        self.assertEqual(b.bound.values_only(), {"Path": "-a", "Destination": "-b"})

    def testMappingArguments(self):
        b = binder(Copy)
        b.bind_command_line({"Path": "a", "Force": True, "Depth": "2"})
        self.assertEqual(b.bound.values_only(), {"Path": "a", "Force": Switch(True), "Depth": 2})

    def testUnknownParameter(self):
        with self.assertRaises(BindingFault) as context:
            binder(Copy).bind_command_line(["a", "-Nope", "x"])
        self.assertEqual(context.exception.code, FaultCode.NAMED_PARAMETER_NOT_FOUND)
        self.assertEqual(context.exception.parameter, "Nope")

    def testDuplicateParameter(self):
        with self.assertRaises(BindingFault) as context:
            binder(Copy).bind_command_line(["-Path", "a", "-PSPath", "b"])
        self.assertEqual(context.exception.code, FaultCode.DUPLICATE_PARAMETER)

    def testMissingArgument(self):
        with self.assertRaises(BindingFault) as context:
            binder(Copy).bind_command_line(["a", "-Destination"])
        self.assertEqual(context.exception.code, FaultCode.MISSING_ARGUMENT)

    def testLeftoverArguments(self):
        b = binder(Copy)
        with self.assertRaises(BindingFault) as context:
            b.bind_command_line(["a", "b", "c", "d"])
        self.assertEqual(context.exception.code, FaultCode.POSITIONAL_PARAMETER_NOT_FOUND)
        self.assertEqual(context.exception.target, "c")
        self.assertEqual(b.unbound_arguments, ("c", "d"))

    def testMissingMandatory(self):
        with self.assertRaises(MandatoryMissingFault) as context:
            binder(Copy).bind_command_line(["-Force"])
        self.assertEqual(context.exception.missing, ("Path",))
        self.assertEqual(context.exception.code, FaultCode.MISSING_MANDATORY)

    def testCastFailureIsBindingFault(self):
        with self.assertRaises(BindingFault) as context:
            binder(Copy).bind_command_line(["a", "-Depth", "deep"])
        self.assertEqual(context.exception.code, FaultCode.TRANSFORMATION_FAILED)
        self.assertIsInstance(context.exception.cause, CastFault)

    def testEmptyStringRefusedForMandatory(self):
        with self.assertRaises(BindingFault) as context:
            binder(Copy).bind_command_line([""])
        self.assertEqual(context.exception.code, FaultCode.VALIDATION_FAILED)

        class Echo(Command):
            Text = Parameter(str, Member(position=0, mandatory=True), attributes=[AllowEmptyString()])

        b = binder(Echo)
        b.bind_command_line([""])
        self.assertEqual(b.bound["Text"].value, "")

    def testTransformRunsBeforeCoercion(self):
        class Upper(Command):
            Text = Parameter(str, Member(position=0), attributes=[Transform(lambda value: f"{value}!".upper())])

        b = binder(Upper)
        b.bind_command_line(["hi"])
        self.assertEqual(b.bound["Text"].value, "HI!")

    def testTransformFailure(self):
        class Broken(Command):
            Text = Parameter(str, Member(position=0), attributes=[Transform(lambda value: value.missing)])

        with self.assertRaises(BindingFault) as context:
            binder(Broken).bind_command_line(["hi"])
        self.assertEqual(context.exception.code, FaultCode.TRANSFORMATION_FAILED)

    def testDefaults(self):
        b = binder(Copy)
        b.bind_command_line(["a"], defaults={"Copy:Destination": "d", "Other:Depth": 9, "C*:Dep*": 4})
        self.assertEqual(b.bound["Destination"].value, "d")
        self.assertIs(b.bound["Destination"].origin, Origin.DEFAULT)
        self.assertEqual(b.bound["Depth"].value, 4)

    def testDefaultsNeverOverrideArguments(self):
        b = binder(Copy)
        b.bind_command_line(["a", "-Depth", "2"], defaults={"Copy:Depth": 4})
        self.assertEqual(b.bound["Depth"].value, 2)

    def testFailingDefaultSkippedWithWarning(self):
        b = binder(Copy)
        b.bind_command_line(["a"], defaults={"Copy:Depth": "deep", "C*:Dep*": "shallow", "Copy:Destination": "d"})
        self.assertNotIn("Depth", b.bound)
        self.assertEqual(b.bound["Destination"].value, "d")
        self.assertEqual(len(b.obsolete), 1)
        warning = b.obsolete[0]
        self.assertIsInstance(warning, PipelineWarning)
        self.assertEqual(warning.code, FaultCode.TRANSFORMATION_FAILED)
        self.assertEqual(warning.options["parameter"], "Depth")

    def testHelpRequested(self):
        b = binder(Copy)
        b.bind_command_line(["-?", "-Nope"])
        self.assertTrue(b.help_requested)
        self.assertEqual(len(b.bound), 0)

    def testBoundOnlyOnce(self):
        b = binder(Copy)
        b.bind_command_line(["a"])
        with self.assertRaises(RuntimeError):
            b.bind_command_line(["a"])

    def testObsoleteQueued(self):
        class Legacy(Command):
            Old = Parameter(str, obsolete="use -New")

        b = binder(Legacy)
        b.bind_command_line(["-Old", "x"])
        self.assertEqual(len(b.obsolete), 1)
        self.assertEqual(b.obsolete[0].parameter, "Old")

    def testReferenceWriteBack(self):
        class Parse(Command):
            Result = Parameter(Reference[int])

        cell = Reference("12")
        b = binder(Parse)
        b.bind_command_line({"Result": cell})
        self.assertIs(b.bound["Result"].value, cell)
        self.assertEqual(cell.value, 12)

        with self.assertRaises(BindingFault) as context:
            binder(Parse).bind_command_line({"Result": 12})
        self.assertEqual(context.exception.cause.code, FaultCode.REFERENCE_EXPECTED)

    def testScriptArrayToText(self):
        class Join(Command):
            Text = Parameter(str)

        b = binder(Join)
        b.bind_command_line({"Text": [1, 2]})
        self.assertEqual(b.bound["Text"].value, "1 2")

        with self.assertRaises(BindingFault) as context:
            binder(Join, script=True).bind_command_line({"Text": [1, 2]})
        self.assertEqual(context.exception.cause.code, FaultCode.ARRAY_TO_STRING)

    def testDynamicParameters(self):
        class Dynamic(Command):
            Path = Parameter(str, Member(position=0))

            def dynamic(self):
                return {"Encoding": Parameter(str, aliases=("Enc",))}

        b = binder(Dynamic)
        b.bind_command_line(["a", "-Enc", "utf-8"])
        self.assertEqual(b.bound.values_only(), {"Encoding": "utf-8", "Path": "a"})
        self.assertTrue(b.metadata.descriptors()["Encoding"].dynamic)
        self.assertNotIn("Encoding", Dynamic.metadata.descriptors())


class TestParameterSets(TestCase):
    """Active parameter-set resolution."""

    def testDefaultSetWhenUndecided(self):
        b = binder(Get)
        b.bind_command_line(["-Verbose"])
        self.assertEqual(b.active_set, "ByName")

    def testSingleCandidate(self):
        b = binder(Get)
        b.bind_command_line(["-Id", "5"])
        self.assertEqual(b.active_set, "ById")

    def testPositionalSelectsSet(self):
        b = binder(Get)
        b.bind_command_line(["name"])
        self.assertEqual(b.active_set, "ByName")
        self.assertEqual(b.bound["Name"].value, "name")

    def testConflictingSets(self):
        with self.assertRaises(BindingFault) as context:
            binder(Get).bind_command_line(["-Name", "a", "-Id", "1"])
        self.assertEqual(context.exception.code, FaultCode.AMBIGUOUS_PARAMETER_SET)


class TestPipeline(TestCase):
    """Per-record binding tiers."""

    def testByValueWithoutCoercion(self):
        b = binder(Sample)
        b.bind_command_line()
        self.assertTrue(b.bind_pipeline(8))
        self.assertEqual(b.bound["Value"].value, 8)
        self.assertIs(b.bound["Value"].origin, Origin.PIPELINE)

    def testByPropertyNameBeatsCoercedByValue(self):
        b = binder(Sample)
        b.bind_command_line()
        self.assertTrue(b.bind_pipeline({"Value": "7"}))
        self.assertEqual(b.bound["Value"].value, 7)

    def testByPropertyAlias(self):
        b = binder(Sample)
        b.bind_command_line()
        self.assertTrue(b.bind_pipeline({"amount": 3}))
        self.assertEqual(b.bound["Value"].value, 3)

    def testByValueWithCoercion(self):
        b = binder(Sample)
        b.bind_command_line()
        self.assertTrue(b.bind_pipeline("9"))
        self.assertEqual(b.bound["Value"].value, 9)

    def testRemainingOnlyWhenNothingBound(self):
        b = binder(Collect)
        b.bind_command_line()
        self.assertTrue(b.bind_pipeline(3))
        self.assertEqual(b.bound.values_only(), {"Count": 3})
        self.assertTrue(b.bind_pipeline("abc"))
        self.assertEqual(b.bound.values_only(), {"Rest": ["abc"]})

    def testUnboundRecord(self):
        b = binder(Sample)
        b.bind_command_line()
        self.assertFalse(b.bind_pipeline("abc"))
        self.assertNotIn("Value", b.bound)

    def testValidationFailureRaises(self):
        b = binder(Collect)
        b.bind_command_line()
        with self.assertRaises(BindingFault) as context:
            b.bind_pipeline(50)
        self.assertEqual(context.exception.code, FaultCode.VALIDATION_FAILED)

    def testValidatorTypeErrorsBecomeBindingFaults(self):
        class Ranged(Command):
            Size = Parameter(int | None, Member(by_property_name=True), attributes=(ValidateRange(1, 5),))
            Code = Parameter(object, Member(by_property_name=True), attributes=(ValidateLength(1, 3),))

        b = binder(Ranged)
        b.bind_command_line()
        with self.assertRaises(BindingFault) as context:
            b.bind_pipeline({"Size": None})
        self.assertEqual(context.exception.code, FaultCode.VALIDATION_FAILED)
        self.assertIsInstance(context.exception.cause, ValueError)
        with self.assertRaises(BindingFault) as context:
            b.bind_pipeline({"Code": 12})
        self.assertEqual(context.exception.code, FaultCode.VALIDATION_FAILED)
        self.assertTrue(b.bind_pipeline({"Size": 3, "Code": "ab"}))

    def testUnexpectedValidatorErrorWrapped(self):
        class Lookup(Directive):
            def validate(self, value, /):
                raise LookupError("broken check")

        class Checked(Command):
            Value = Parameter(int, Member(pipeline=True), attributes=(Lookup(),))

        b = binder(Checked)
        b.bind_command_line()
        with self.assertRaises(BindingFault) as context:
            b.bind_pipeline(1)
        self.assertEqual(context.exception.code, FaultCode.VALIDATION_FAILED)
        self.assertIsInstance(context.exception.cause, LookupError)

    def testThrownFromValidatorPropagates(self):
        class Refused(Exception):
            pass

        class Vetoed(Command):
            Value = Parameter(int, Member(pipeline=True), attributes=(ValidateScript(lambda value: throw(Refused())),))

        b = binder(Vetoed)
        b.bind_command_line()
        with self.assertRaises(Refused):
            b.bind_pipeline(1)

    def testRaisingPropertyGetter(self):
        class Getter:
            @property
            def Value(self):
                raise ValueError("getter failed")

        b = binder(Sample)
        b.bind_command_line()
        with self.assertRaises(BindingFault) as context:
            b.bind_pipeline(Getter())
        self.assertEqual(context.exception.code, FaultCode.INPUT_OBJECT_NOT_BOUND)
        self.assertIsInstance(context.exception.cause, ValueError)
        self.assertTrue(b.bind_pipeline({"Amount": 2}))
        self.assertEqual(b.bound["Value"].value, 2)

    def testUntrustedProvenance(self):
        b = binder(Sample)
        b.bind_command_line()
        b.bind_pipeline(Envelope({"Value": "7"}, untrusted=True))
        self.assertTrue(b.bound["Value"].untrusted)
        b.bind_pipeline(8)
        self.assertFalse(b.bound["Value"].untrusted)

    def testCommandLineValuesPersist(self):
        class Scale(Command):
            Value = Parameter(int, Member(pipeline=True, mandatory=True))
            Factor = Parameter(int)

        b = binder(Scale)
        b.bind_command_line(["-Factor", "3"])
        b.bind_pipeline(1)
        b.bind_pipeline(2)
        self.assertEqual(b.bound.values_only(), {"Factor": 3, "Value": 2})
        self.assertEqual(b.unbound_mandatory(), ())

    def testUnboundMandatory(self):
        class Show(Command):
            A = Parameter(str, Member(mandatory=True, by_property_name=True))
            B = Parameter(str, Member(mandatory=True, by_property_name=True))

        b = binder(Show)
        b.bind_command_line()
        self.assertTrue(b.bind_pipeline({"A": "x"}))
        missing = b.unbound_mandatory()
        self.assertEqual([descriptor.name for descriptor in missing], ["B"])
        self.assertEqual(Binder.missing(missing), "B")


class TestBoundArguments(TestCase):
    """Read-only, case-insensitive view."""

    def testView(self):
        table = {"Path": BoundArgument("a", Origin.COMMAND_LINE)}
        view = BoundArguments(table)
        self.assertEqual(view["path"].value, "a")
        self.assertEqual(list(view), ["Path"])
        with self.assertRaises(KeyError):
            view["nope"]
        with self.assertRaises(TypeError):
            view["Path"] = BoundArgument("b", Origin.COMMAND_LINE)  # type: ignore[index]


if __name__ == '__main__':
    unittest.main()
