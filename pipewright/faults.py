"""
pipewright faults (errors and warnings) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every fault the engine can
  surface. Codes are grouped by domain to keep logs/searches predictable.
- PipelineFault / PipelineWarning: base types that carry message + options
  (code, title, hint, target object, invocation info, cause) and know how to render
  themselves in a friendly, lowercased, and actionable way.
- Tagged fault kinds: ConstructionFault, BindingFault, MandatoryMissingFault,
  CastFault, PipelineStoppedFault, InvocationFault (plus Thrown for explicit throws).
- throw()/thrown(): explicit language-level throws whose identity must survive
  the lifecycle driver untouched.
- trigger(): central entry point to surface any fault (raise or render).
- getdoc(): optional description lookup for a code from the host application.

Propagation policy
- Isolated faults (BindingFault, MandatoryMissingFault) are written to the error
  pipe with the offending object as target; processing continues.
- Terminal faults (ConstructionFault, PipelineStoppedFault, InvocationFault) unwind
  the whole stage.
- CastFault never travels alone out of binding: it is the cause of a BindingFault.

Integration
- Sinks collect faults and, in shell mode, render them via rich.
- Outside shell mode, trigger() raises exceptions and emits warnings through `warnings`.
"""
import copy
import inspect
import warnings
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the engine (stable identifiers).

    grouping (by high-level domain)
    - construction (2110x)
      • CONSTRUCTION_FAILED, CAPABILITY_MISMATCH
    - binding (2111x)
      • INPUT_OBJECT_NOT_BOUND, NAMED_PARAMETER_NOT_FOUND, AMBIGUOUS_PARAMETER,
        POSITIONAL_PARAMETER_NOT_FOUND, DUPLICATE_PARAMETER, MISSING_ARGUMENT,
        AMBIGUOUS_PARAMETER_SET, VALIDATION_FAILED, TRANSFORMATION_FAILED
    - mandatory (2112x)
      • MISSING_MANDATORY, INPUT_OBJECT_MISSING_MANDATORY
    - casts (2113x)
      • INVALID_CAST, REFERENCE_EXPECTED, INVALID_BOOLEAN, ARRAY_TO_STRING,
        DISALLOWED_PREFERENCE
    - cancellation (2114x)
      • PIPELINE_STOPPED
    - invocation (2115x)
      • INVOCATION_FAILED, THROWN, PREFERENCE_STOP
    - warnings (221xx)
      • OBSOLETE_PARAMETER, OBSOLETE_COMMAND

    normalize() allows host remapping to custom labels while keeping code-stability.
    """
    # --- construction (21xxx) ---
    CONSTRUCTION_FAILED             = 21101
    CAPABILITY_MISMATCH             = 21102

    # --- binding (21xxx) ---
    INPUT_OBJECT_NOT_BOUND          = 21111
    NAMED_PARAMETER_NOT_FOUND       = 21112
    AMBIGUOUS_PARAMETER             = 21113
    POSITIONAL_PARAMETER_NOT_FOUND  = 21114
    DUPLICATE_PARAMETER             = 21115
    MISSING_ARGUMENT                = 21116
    AMBIGUOUS_PARAMETER_SET         = 21117
    VALIDATION_FAILED               = 21118
    TRANSFORMATION_FAILED           = 21119

    # --- mandatory (21xxx) ---
    MISSING_MANDATORY               = 21121
    INPUT_OBJECT_MISSING_MANDATORY  = 21122

    # --- casts (21xxx) ---
    INVALID_CAST                    = 21131
    REFERENCE_EXPECTED              = 21132
    INVALID_BOOLEAN                 = 21133
    ARRAY_TO_STRING                 = 21134
    DISALLOWED_PREFERENCE           = 21135

    # --- cancellation (21xxx) ---
    PIPELINE_STOPPED                = 21141

    # --- invocation (21xxx) ---
    INVOCATION_FAILED               = 21151
    THROWN                          = 21152
    PREFERENCE_STOP                 = 21153

    # --- warnings (22xxx) ---
    OBSOLETE_PARAMETER              = 22111
    OBSOLETE_COMMAND                = 22112

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _render(self, defaults, title):
    """
    shared rich renderer for faults and warnings.

    layout
    - header: [ <prog> — <code> | <Title> ]
    - body: the message, then a hint arrow when a hint is available.
    - fancy mode wraps everything in a Panel titled with the header.
    """
    main = __import__("__main__")
    styles = defaultdict(str, defaults | getattr(main, "__styles__", {}))
    colorful = self.options.get("colorful", True)

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not colorful:
            return Text(str(fragment))
        if isinstance(fragment, Text):
            return fragment
        return Text(str(fragment), styles[style])

    invocation = self.invocation
    prog = getattr(main, "__prog__", getattr(invocation, "name", None) or "pipewright")

    header = Text.assemble(
        "[ ",
        text(prog, "prog-name"),
        " — ",
        text(self.code.normalize(), "code"),
        " | ",
        text(self.title.title(), title),
        " ]"
    )
    body = [text(self.message, "message")]
    if self.hint:
        body.append(Text.assemble(text(" → ", "hint-arrow"), text(self.hint, "hint")))

    if self.options.get("fancy", False):
        width = console.width - 4
        try:
            width = int(width * self.options["ratio"])
        except KeyError:
            width = None
        return Panel(Group(*body), title=header, title_align="left", width=width)

    return Group(header, *body)


class PipelineFault(Exception):
    """
    base of every engine fault.

    options (all optional, read through properties)
    - code: FaultCode (defaults to the class-level `default_code`)
    - title: short lowercased title (defaults to `default_title`)
    - hint: one actionable sentence
    - target: the offending pipeline object, if any
    - invocation: InvocationInfo of the command that detected the fault
    - cause: the underlying fault or exception
    """
    default_code = FaultCode.INVOCATION_FAILED
    default_title = "pipeline fault"

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message if message is not Unset else "")
        self.message = message
        self.options = MappingProxyType(options)

    @property
    def code(self):
        return self.options.get("code", type(self).default_code)

    @property
    def title(self):
        return self.options.get("title", type(self).default_title)

    @property
    def hint(self):
        return self.options.get("hint")

    @property
    def target(self):
        return self.options.get("target")

    @property
    def invocation(self):
        return self.options.get("invocation")

    @property
    def cause(self):
        return self.options.get("cause")

    def __rich__(self):
        return _render(self, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
        }, "error-title")

    def __trigger__(self) -> None:
        if not self.options.get("shell", False):
            raise self from None
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        replaced = type(self)(self.message, **{**self.options, **overrides})
        replaced.__cause__ = self.__cause__
        return replaced


class ConstructionFault(PipelineFault):
    """The command could not be instantiated; aborts the stage before any record is read."""
    default_code = FaultCode.CONSTRUCTION_FAILED
    default_title = "command construction failed"


class BindingFault(PipelineFault):
    """A pipeline object or argument could not be matched/bound."""
    default_code = FaultCode.INPUT_OBJECT_NOT_BOUND
    default_title = "parameter binding failed"

    @property
    def parameter(self):
        return self.options.get("parameter")


class MandatoryMissingFault(BindingFault):
    """A bound record (or the command line) still lacks a required parameter."""
    default_code = FaultCode.MISSING_MANDATORY
    default_title = "missing mandatory parameter"

    @property
    def missing(self):
        return tuple(self.options.get("missing", ()))


class CastFault(PipelineFault):
    """
    A type-coercion step failed.

    options
    - source: the value being converted (unwrapped)
    - type: the target type of the failing step
    - untrusted: provenance marker inherited from the input
    """
    default_code = FaultCode.INVALID_CAST
    default_title = "invalid cast"

    @property
    def source(self):
        return self.options.get("source")

    @property
    def type(self):
        return self.options.get("type")

    @property
    def untrusted(self):
        return self.options.get("untrusted", False)


class PipelineStoppedFault(PipelineFault):
    """Explicit cancellation; terminal, never isolated."""
    default_code = FaultCode.PIPELINE_STOPPED
    default_title = "pipeline stopped"


class InvocationFault(PipelineFault):
    """A command hook raised something that is not an explicit throw."""
    default_code = FaultCode.INVOCATION_FAILED
    default_title = "command invocation failed"


class Thrown(PipelineFault):
    """Carrier for an explicit throw of a value that is not an exception."""
    default_code = FaultCode.THROWN
    default_title = "thrown"

    @property
    def value(self):
        return self.options.get("value")


class PipelineWarning(Warning):
    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message if message is not Unset else "")
        self.message = message
        self.options = MappingProxyType(options)

    default_code = FaultCode.OBSOLETE_COMMAND
    default_title = "warning"

    code = PipelineFault.code
    title = PipelineFault.title
    hint = PipelineFault.hint
    invocation = PipelineFault.invocation

    def __rich__(self):
        return _render(self, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #FFB400",  # amber fault code for warnings
            "warning-title": "bold #FFC2E0",  # softer pinky title for warnings

            # body
            "message": "#D6D6DE",  # slightly lighter gray body
            "hint-arrow": "#B8EFAF dim",  # softer green arrow
            "hint": "italic #B8EFAF",  # softer green hint text
        }, "warning-title")

    def __trigger__(self) -> None:
        if not self.options.get("shell", False):
            return warnings.warn(self, stacklevel=len(inspect.stack()))
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class ObsoleteParameterWarning(PipelineWarning):
    default_code = FaultCode.OBSOLETE_PARAMETER
    default_title = "obsolete parameter"

    @property
    def parameter(self):
        return self.options.get("parameter")


class ObsoleteCommandWarning(PipelineWarning):
    default_code = FaultCode.OBSOLETE_COMMAND
    default_title = "obsolete command"


def throw(x, /):
    """
    raise `x` as an explicit language-level throw.

    the lifecycle driver never re-wraps a thrown exception: user-authored handlers
    catch it by its original shape. values that are not exceptions travel inside
    a Thrown fault.
    """
    if not isinstance(x, BaseException):
        x = Thrown(str(x), value=x, title="thrown value")
    x.__thrown__ = True
    raise x


def thrown(exception, /):
    """whether `exception` was raised through throw()."""
    return getattr(exception, "__thrown__", False) is True


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see base classes).
    - options are merged into the fault via copy.replace(fault, **options) before triggering.
    - in shell mode, rendering happens via rich console; otherwise, exceptions are raised.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    copy.replace(fault, **options).__trigger__()


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    the host application may expose a __docs__ mapping in __main__ where keys
    are FaultCode instances and values are short documentation strings.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


__all__ = (
    "FaultCode",
    "PipelineFault",
    "ConstructionFault",
    "BindingFault",
    "MandatoryMissingFault",
    "CastFault",
    "PipelineStoppedFault",
    "InvocationFault",
    "Thrown",
    "PipelineWarning",
    "ObsoleteParameterWarning",
    "ObsoleteCommandWarning",
    "throw",
    "thrown",
    "trigger",
    "getdoc",
)
