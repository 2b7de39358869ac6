"""
pipewright type-coercion chain.

Converts a raw value through an ordered list of target types under the
binding-mode flags in force. The chain never raises cast problems: it returns
either a Converted result or a CastFault, and re-raises any other pipeline
fault untouched (success / classified cast fault / verbatim domain fault).

Steps, per target type
1. parameter binding: a Reference target is look-only (the value must already
   be a Reference); any other target dereferences a Reference first.
2. script-command binding: text targets refuse array-like sources.
3. boolean-like targets accept only numeric or boolean/switch sources, and
   refuse None unless declared optional.
4. script-command binding: collections of boolean-like elements apply step 3
   to every element.
5. generic invariant conversion (see convert()).
6. direct assignment: ActionPreference.SUSPEND is refused after conversion.

Provenance
- When the request comes from parameter binding, the untrusted marker of the
  input value is carried over to the result, successful or not.
"""
import builtins
import copy
import datetime
import decimal
import numbers
import types
import typing
from collections.abc import Iterable, Mapping, Sequence, Set
from enum import Enum, Flag

from .envelope import *
from .faults import *
from .utils import *


class Reference:
    """
    Reference-capture value: a mutable cell shared between caller and command.

    Declaring a parameter as Reference[X] makes the binder require a Reference
    argument (no conversion) and convert its content to X.
    """
    __slots__ = ("value",)
    __class_getitem__ = classmethod(types.GenericAlias)

    def __init__(self, value=None):
        self.value = value

    def __eq__(self, other):
        if isinstance(other, Reference):
            return self.value == other.value
        return NotImplemented

    __hash__ = None

    def __repr__(self):
        return f"ref({self.value!r})"


class Switch:
    """Presence flag: the value of a switch parameter."""
    __slots__ = ("_present",)

    def __init__(self, present=True):
        self._present = bool(present)

    present = mirror("present")

    def __bool__(self):
        return self._present

    def __eq__(self, other):
        if isinstance(other, Switch):
            return self._present == other._present
        if isinstance(other, bool):
            return self._present == other
        return NotImplemented

    def __hash__(self):
        return hash(self._present)

    def __repr__(self):
        return f"switch({self._present})"


class ActionPreference(Enum):
    SILENTLY_CONTINUE = "SilentlyContinue"
    STOP = "Stop"
    CONTINUE = "Continue"
    INQUIRE = "Inquire"
    IGNORE = "Ignore"
    SUSPEND = "Suspend"
    BREAK = "Break"


class LanguageMode(Enum):
    FULL = "FullLanguage"
    CONSTRAINED = "ConstrainedLanguage"
    RESTRICTED = "RestrictedLanguage"
    NO_LANGUAGE = "NoLanguage"


class Coercion:
    """
    One coercion request.

    Parameters
    - types: a target type, or an ordered sequence of them (multi-step
      conversions such as (Reference, int)); never empty.
    - value: the raw value, possibly wrapped in an Envelope.
    - binding_parameters: the request originates from parameter binding.
    - binding_script_cmdlet: the request binds a script command's parameter.
    - language_mode: the language mode in force for the conversion.
    """
    __slots__ = ("_types", "_value", "_binding_parameters", "_binding_script_cmdlet", "_language_mode")

    def __init__(
            self,
            types,
            value,
            /,
            *,
            binding_parameters=False,
            binding_script_cmdlet=False,
            language_mode=LanguageMode.FULL
    ):
        if not isinstance(types, tuple | list):
            types = (types,)
        if not types:
            raise ValueError("coercion requires at least one target type")
        if not isinstance(language_mode, LanguageMode):
            raise TypeError("coercion 'language_mode' must be a LanguageMode")
        self._types = tuple(types)
        self._value = value
        self._binding_parameters = bool(binding_parameters)
        self._binding_script_cmdlet = bool(binding_script_cmdlet)
        self._language_mode = language_mode

    types = mirror("types")

    @property
    def value(self):
        return self._value

    binding_parameters = mirror("binding_parameters")
    binding_script_cmdlet = mirror("binding_script_cmdlet")
    language_mode = mirror("language_mode")

    def __repr__(self):
        return f"coercion({", ".join(map(_typename, self._types))}, {self._value!r})"


class Converted:
    """Successful coercion result."""
    __slots__ = ("_value", "_untrusted")

    def __init__(self, value, untrusted=False):
        self._value = value
        self._untrusted = bool(untrusted)

    @property
    def value(self):
        return self._value

    untrusted = mirror("untrusted")

    def __eq__(self, other):
        if isinstance(other, Converted):
            return (self._value, self._untrusted) == (other._value, other._untrusted)
        return NotImplemented

    __hash__ = None

    def __repr__(self):
        return f"converted({self._value!r}, untrusted={self._untrusted})"


def _typename(type):
    if isinstance(type, types.GenericAlias | types.UnionType) or typing.get_origin(type) is not None:
        return str(type).replace("typing.", "")
    return getattr(type, "__name__", str(type))


def _cast(message, source, type, *, code=FaultCode.INVALID_CAST, hint=Unset):
    options = {"code": code, "source": source, "type": type}
    if hint is not Unset:
        options["hint"] = hint
    return CastFault(message, **options)


def _invalid(value, type):
    return _cast(
        f"cannot convert value {value!r} to type {_typename(type)!r}",
        value,
        type,
        hint=f"provide a value that can be read as {_typename(type)!r}",
    )


def _optional(type):
    """Split `X | None` into (X, True); anything else is (type, False)."""
    if typing.get_origin(type) in (types.UnionType, typing.Union):
        arguments = typing.get_args(type)
        if types.NoneType in arguments:
            rest = tuple(argument for argument in arguments if argument is not types.NoneType)
            if len(rest) == 1:
                return rest[0], True
    return type, False


def _boolean(type):
    """(boolean-like?, nullable?) for a target type."""
    base, nullable = _optional(type)
    return base in (bool, Switch), nullable


def _elements(type):
    """Element type of a collection target, or Unset for scalar targets."""
    if type in (list, tuple, set, frozenset):
        return object
    origin = typing.get_origin(type)
    if origin in (list, set, frozenset):
        return (typing.get_args(type) or (object,))[0]
    if origin is tuple:
        arguments = typing.get_args(type)
        if len(arguments) == 2 and arguments[1] is Ellipsis:
            return arguments[0]
    return Unset


def _arraylike(value):
    if isinstance(value, str | bytes | bytearray | Mapping):
        return False
    return isinstance(value, Sequence | Set)


def _check_boolean(value, type, nullable):
    value = unwrap(value)
    if value is None:
        if nullable:
            return
        raise _cast(
            f"cannot convert null to boolean type {_typename(type)!r}",
            value,
            type,
            code=FaultCode.INVALID_BOOLEAN,
            hint="boolean parameters accept only booleans, switches, or numbers ($true, $false, 1, 0)",
        )
    if not isinstance(value, bool | Switch | numbers.Number):
        raise _cast(
            f"cannot convert value {value!r} to boolean type {_typename(type)!r}",
            value,
            type,
            code=FaultCode.INVALID_BOOLEAN,
            hint="boolean parameters accept only booleans, switches, or numbers ($true, $false, 1, 0)",
        )


def _text(value):
    """Invariant text form of a scalar."""
    if value is None:
        return ""
    if isinstance(value, Switch):
        return str(value.present)
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e15:
            return str(int(value))
        return repr(value)
    if isinstance(value, Enum):
        return value.value if isinstance(value.value, str) else value.name
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, Reference):
        return _text(value.value)
    if _arraylike(value):
        return " ".join(map(_text, value))
    return str(value)


def _integer(value, type):
    if isinstance(value, bool | Switch):
        return int(bool(value))
    if isinstance(value, int):
        return value
    if isinstance(value, float | decimal.Decimal):
        try:
            # round() is round-half-to-even for float and Decimal alike
            return int(round(value))
        except (ValueError, OverflowError, decimal.InvalidOperation):
            raise _invalid(value, type) from None
    if isinstance(value, Enum) and isinstance(value.value, int):
        return value.value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            if text.lower().startswith(("0x", "-0x", "+0x")):
                return int(text, 16)
            return int(text)
        except ValueError:
            pass
        try:
            return int(round(float(text)))
        except (ValueError, OverflowError):
            raise _invalid(value, type) from None
    raise _invalid(value, type)


def _real(value, type):
    if isinstance(value, bool | Switch):
        return float(bool(value))
    if isinstance(value, numbers.Real | decimal.Decimal):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            if text.lower().startswith(("0x", "-0x", "+0x")):
                return float(int(text, 16))
            return float(text)
        except ValueError:
            raise _invalid(value, type) from None
    raise _invalid(value, type)


def _decimal(value, type):
    if isinstance(value, bool | Switch):
        return decimal.Decimal(int(bool(value)))
    if isinstance(value, numbers.Real | str):
        text = value.strip() if isinstance(value, str) else repr(value) if isinstance(value, float) else str(value)
        try:
            return decimal.Decimal(text or "0")
        except decimal.InvalidOperation:
            raise _invalid(value, type) from None
    raise _invalid(value, type)


def _enumeration(value, type):
    if isinstance(value, str):
        names = [name.strip() for name in value.split(",")] if issubclass(type, Flag) else [value.strip()]
        members = []
        for name in names:
            for member in type:
                if member.name.lower() == name.lower() or (isinstance(member.value, str) and member.value.lower() == name.lower()):
                    members.append(member)
                    break
            else:
                if name.lstrip("+-").isdigit():
                    members.append(_enumeration(int(name), type))
                    continue
                raise _cast(
                    f"cannot convert value {value!r} to type {_typename(type)!r}",
                    value,
                    type,
                    hint=f"valid values are: {", ".join(member.name for member in type)}",
                )
        result = members[0]
        for member in members[1:]:
            result |= member
        return result
    try:
        return type(value)
    except (ValueError, TypeError):
        raise _invalid(value, type) from None


def _collection(value, type, language_mode):
    if value is None:
        return None
    if isinstance(value, str | bytes | bytearray | Mapping) or not isinstance(value, Iterable):
        items = [value]
    else:
        items = list(value)

    origin = typing.get_origin(type) or type
    arguments = typing.get_args(type)
    if origin is tuple and arguments and not (len(arguments) == 2 and arguments[1] is Ellipsis):
        if len(arguments) != len(items):
            raise _invalid(value, type)
        return tuple(convert(item, argument, language_mode=language_mode) for item, argument in zip(items, arguments))

    element = _elements(type)
    return origin(convert(item, element, language_mode=language_mode) for item in items)


def convert(value, type, /, *, language_mode=LanguageMode.FULL):
    """
    Generic, invariant (locale-independent) conversion of `value` to `type`.

    Rules
    - identity when the value already is an instance of the target type;
    - bool: truthiness (switches by presence, numbers non-zero, text non-empty);
    - str: invariant text; array-like values are joined with single spaces;
    - int/float/Decimal: from numbers, booleans and text (hex "0x" prefix
      supported; floats round half to even);
    - Enum: by case-insensitive name (comma-separated for Flag enums) or value;
    - list[X], tuple[X, ...], set[X]: element-wise, scalars promoted;
    - X | None: None passes, otherwise the first alternative that converts;
    - datetime/date: from ISO text;
    - Reference / Reference[X]: wraps the (converted) value;
    - anything else: calls the type with the value, only in FULL language mode.

    Raises
    - CastFault: when no rule applies or the rule fails.
    """
    value = unwrap(value)

    if type is object or type is typing.Any:
        return value

    origin = typing.get_origin(type)
    if origin in (types.UnionType, typing.Union):
        alternatives = typing.get_args(type)
        if value is None and types.NoneType in alternatives:
            return None
        for alternative in alternatives:
            if _plain(alternative) and isinstance(value, alternative) and not _widened(value, alternative):
                return value
        for alternative in alternatives:
            if alternative is types.NoneType:
                continue
            try:
                return convert(value, alternative, language_mode=language_mode)
            except CastFault:
                continue
        raise _invalid(value, type)

    if origin is Reference:
        if isinstance(value, Reference):
            value = value.value
        return Reference(convert(value, (typing.get_args(type) or (object,))[0], language_mode=language_mode))
    if type is Reference:
        return value if isinstance(value, Reference) else Reference(value)

    if _elements(type) is not Unset or origin is tuple:
        return _collection(value, type, language_mode)

    if origin is not None:
        type = origin
    if not _plain(type):
        raise _cast(f"cannot convert to {_typename(type)!r}: not a type", value, type)

    if isinstance(value, type) and not _widened(value, type):
        return value

    if type is bool:
        return bool(value)
    if type is Switch:
        return Switch(bool(value))
    if type is str:
        return _text(value)
    if value is None:
        if type in (int, float, decimal.Decimal):
            return type(0)
        return None
    if type is int:
        return _integer(value, type)
    if type is float:
        return _real(value, type)
    if type is decimal.Decimal:
        return _decimal(value, type)
    if issubclass(type, Enum):
        return _enumeration(value, type)
    if type in (datetime.datetime, datetime.date) and isinstance(value, str):
        try:
            return type.fromisoformat(value.strip())
        except ValueError:
            raise _invalid(value, type) from None

    if language_mode is not LanguageMode.FULL:
        raise _cast(
            f"cannot convert value {value!r} to type {_typename(type)!r}: "
            f"construction is not allowed in {language_mode.value} mode",
            value,
            type,
        )
    try:
        return type(value)
    except PipelineFault:
        raise
    except Exception as exception:
        raise _invalid(value, type) from exception


def _plain(type):
    return typing.get_origin(type) is None and isinstance(type, builtins.type)


def _widened(value, type):
    """bool is an int subclass, but True is not accepted as-is for numbers."""
    return isinstance(value, bool) and type is not bool


def _preference(type):
    return _optional(type)[0] is ActionPreference


def _step(value, type, request):
    if request.binding_parameters:
        if type is Reference:
            if not isinstance(unwrap(value), Reference):
                raise _cast(
                    f"cannot bind {unwrap(value)!r}: a reference value is expected",
                    unwrap(value),
                    type,
                    code=FaultCode.REFERENCE_EXPECTED,
                    hint="pass a reference value, e.g. [ref]$variable",
                )
            return unwrap(value)
        if isinstance(unwrap(value), Reference):
            value = unwrap(value).value

    if request.binding_script_cmdlet and _optional(type)[0] is str and _arraylike(unwrap(value)):
        raise _cast(
            f"cannot convert array {unwrap(value)!r} to type 'str'",
            unwrap(value),
            type,
            code=FaultCode.ARRAY_TO_STRING,
            hint="pass a single value, or declare the parameter as a list",
        )

    boolean, nullable = _boolean(type)
    if boolean:
        _check_boolean(value, type, nullable)
    elif request.binding_script_cmdlet and (element := _elements(type)) is not Unset:
        boolean, nullable = _boolean(element)
        if boolean:
            items = unwrap(value)
            for item in items if _arraylike(items) else (items,):
                _check_boolean(item, element, nullable)

    value = convert(value, type, language_mode=request.language_mode)

    if (
        not request.binding_parameters and
        not request.binding_script_cmdlet and
        _preference(type) and
        value is ActionPreference.SUSPEND
    ):
        raise _cast(
            f"value {ActionPreference.SUSPEND.value!r} cannot be assigned to a preference variable",
            value,
            type,
            code=FaultCode.DISALLOWED_PREFERENCE,
            hint="suspend is only supported for workflows",
        )
    return value


def coerce(request, /):
    """
    Run `request` through the coercion chain.

    Returns
    - Converted: on success; `untrusted` mirrors the input's marker under parameter binding.
    - CastFault: on any conversion failure, with the same provenance rule.

    Raises
    - any PipelineFault other than CastFault, verbatim.
    """
    if not isinstance(request, Coercion):
        raise TypeError("coerce() argument must be a coercion request")
    marker = request.binding_parameters and untrusted(request.value)
    value = request.value
    try:
        for type in request.types:
            value = _step(value, type, request)
    except CastFault as fault:
        if marker:
            return copy.replace(fault, untrusted=True)
        return fault
    return Converted(unwrap(value), marker)


def assign(value, type, /, language_mode=LanguageMode.FULL):
    """
    Direct variable assignment: convert `value` to `type` outside parameter binding.

    Raises
    - CastFault: when the conversion fails (including SUSPEND on preferences).
    """
    result = coerce(Coercion(type, value, language_mode=language_mode))
    if isinstance(result, CastFault):
        raise result
    return result.value


__all__ = (
    "Reference",
    "Switch",
    "ActionPreference",
    "LanguageMode",
    "Coercion",
    "Converted",
    "coerce",
    "convert",
    "assign",
)
