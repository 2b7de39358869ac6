r"""
pipewright parameter declarations and attribute directives.

Overview
- Declarations
  • Member: per-parameter-set binding flags (position, mandatory, pipeline,
    by-property-name, remaining-arguments, help).
  • Parameter: one declared parameter: type, set memberships, aliases,
    attribute list, default, obsolete marker, description.

- Directives (operational attributes consulted by the binder)
  • Transform: argument transformation applied before coercion.
  • ValidateNotNull, ValidateNotNullOrEmpty, ValidateRange, ValidateLength,
    ValidateCount, ValidateSet, ValidatePattern, ValidateScript.
  • AllowNull, AllowEmptyString: relax the mandatory null/empty rejection.
  Any other object placed in a parameter's attribute list is display-only and
  never influences binding.

- Introspection & representation
  • ParameterType metaclass provides stable __repr__/__rich_repr__ and exposes
    selected fields via read-only properties declared in __introspectable__.

Metadata (sanitized on construction)
- Member
  • set: non-empty string; ALL ("__AllParameterSets") means every set.
  • position: Unset | int (>= 0); Unset becomes None ("unpositioned").
  • help: Unset | str, non-empty when provided.
- Parameter
  • type: a class, or a generic alias / union of classes (list[int], int | None,
    Reference[int]).
  • members: Member instances, one per set; none means ALL with default flags.
  • aliases: identifiers, unique case-insensitively.
  • attributes: any objects; Directive instances are operational.
  • obsolete: Unset | bool | str (custom message).
  • descr: Unset | str | Text, non-empty when provided.

Quick example:
    >>> from pipewright import Command, Parameter, Member, ValidateRange
    >>> class Resize(Command):
    ...     Path = Parameter(str, Member(position=0, mandatory=True, pipeline=True))
    ...     Width = Parameter(int, aliases=("W",), attributes=(ValidateRange(1, 4096),))
"""
import builtins
import functools
import operator
import re
import typing
from collections.abc import Iterable, Sized

from rich.text import Text

from .faults import PipelineFault, thrown
from .utils import *

ALL = "__AllParameterSets"


class ParameterType(type):
    """
    Metaclass that turns declarations into introspectable, read-only records.

    Responsibilities
    - Expose selected fields as read-only properties using mirror() for all
      names listed in __introspectable__.
    - Provide stable, readable __repr__/__rich_repr__ implementations.
    - Seal classes built with `sealed=True` against subclassing.

    Conventions
    - __typename__ is derived from the class name (camel-case split with hyphens)
      and used in messages.
    """
    __introspectable__ = ()

    def __new__(cls, name, bases, namespace, *, sealed=False, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
            **options
        )

        @rename("__repr__")
        def __repr__(self):
            """
            Return a concise, stable representation with key metadata.

            Example
            - member(set='__AllParameterSets', position=0, mandatory=True, ...)
            """
            return f"{type(self).__typename__}({
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            })"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in type(self).__introspectable__:
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        if sealed:
            @rename("__init_subclass__")
            def __init_subclass__(cls, **options):  # NOQA: F-841
                raise TypeError(f"type {self.__name__!r} is not an acceptable base type")
            self.__init_subclass__ = classmethod(__init_subclass__)

        return self


def _sanitize_text(cls, metadata, key, /):
    """
    Internal: validate an optional human-readable text field in place.

    Unset becomes None; strings are trimmed and must stay non-empty.
    """
    if not isinstance(text := metadata[key], str | Text | Unset):
        raise TypeError(f"{cls.__typename__} {key!r} must be a string")
    elif isinstance(text, str) and not (text := text.strip()):
        raise ValueError(f"{cls.__typename__} {key!r} cannot be empty")
    metadata[key] = coalesce(text)


def _sanitize_member_metadata(cls, metadata, /):
    """
    Internal: validate and normalize per-set binding flags.

    Responsibilities
    - set: non-empty string after trimming.
    - position: Unset or a non-negative integer (booleans rejected); Unset
      becomes None, the "unpositioned" sentinel.
    - help: optional non-empty text.

    Raises
    - TypeError: on wrongly typed fields.
    - ValueError: on empty strings or negative positions.
    """
    if not isinstance(set := metadata["set"], str):
        raise TypeError(f"{cls.__typename__} 'set' must be a string")
    elif not (set := set.strip()):
        raise ValueError(f"{cls.__typename__} 'set' cannot be empty")
    metadata["set"] = set

    if not isinstance(position := metadata["position"], int | Unset | None) or isinstance(position, bool):
        raise TypeError(f"{cls.__typename__} 'position' must be an integer")
    if isinstance(position, int) and position < 0:
        raise ValueError(f"{cls.__typename__} 'position' must be a non-negative integer")
    metadata["position"] = coalesce(position)

    _sanitize_text(cls, metadata, "help")


def _sanitize_parameter_metadata(cls, metadata, /):
    r"""
    Internal: validate and normalize a parameter declaration.

    Responsibilities
    - type: a class, or a parameterized generic / union.
    - members: Member instances; no set may appear twice. An empty collection
      becomes a single Member() (every set, default flags).
    - aliases: each alias must match r"[^\W\d]\w*"; duplicates are rejected
      case-insensitively; order is preserved.
    - attributes: iterable; normalized to a tuple.
    - obsolete: Unset | bool | str; True becomes a generic message, False/Unset
      become None.
    - descr: optional non-empty text.

    Side effects
    - Mutates the provided metadata dict in place.
    """
    type = metadata["type"]
    if not isinstance(type, builtins.type) and typing.get_origin(type) is None:
        raise TypeError(f"{cls.__typename__} 'type' must be a type")

    members = []
    for member in metadata["members"]:
        if not isinstance(member, Member):
            raise TypeError(f"{cls.__typename__} members must be member declarations")
        if any(member.set == other.set for other in members):
            raise ValueError(f"{cls.__typename__} cannot declare the set {member.set!r} twice")
        members.append(member)
    metadata["members"] = tuple(members) or (Member(),)

    if isinstance(aliases := metadata["aliases"], str) or not isinstance(aliases, Iterable):
        raise TypeError(f"{cls.__typename__} 'aliases' must be an iterable of strings")
    sanitized = []
    for alias in aliases:
        if not isinstance(alias, str):
            raise TypeError(f"{cls.__typename__} aliases must be strings")
        elif not (alias := alias.strip()):
            raise ValueError(f"{cls.__typename__} aliases cannot be empty-strings")
        elif not re.fullmatch(r"[^\W\d]\w*", alias):
            raise ValueError(f"{cls.__typename__} aliases must be valid identifiers (unicodes are allowed)")
        elif alias.lower() in map(str.lower, sanitized):
            raise ValueError(f"{cls.__typename__} aliases cannot contain duplicates")
        sanitized.append(alias)
    metadata["aliases"] = tuple(sanitized)

    if not isinstance(attributes := metadata["attributes"], Iterable):
        raise TypeError(f"{cls.__typename__} 'attributes' must be iterable")
    metadata["attributes"] = tuple(attributes)

    if (obsolete := metadata["obsolete"]) is True:
        metadata["obsolete"] = "the parameter is obsolete and may be removed in a future version"
    elif obsolete is False or obsolete is Unset:
        metadata["obsolete"] = None
    elif isinstance(obsolete, str):
        _sanitize_text(cls, metadata, "obsolete")
    else:
        raise TypeError(f"{cls.__typename__} 'obsolete' must be a boolean or a string")

    _sanitize_text(cls, metadata, "descr")


class Member(metaclass=ParameterType, sealed=True):
    """
    Per-set binding flags of a parameter (one parameter attribute).

    Properties
    - set: the parameter set this member belongs to (ALL for every set).
    - position: 0-based position for positional binding, or None.
    - mandatory: the parameter must be bound before a record is processed.
    - pipeline: binds the whole pipeline object (by value).
    - by_property_name: binds a same-named (or aliased) property of the object.
    - remaining: absorbs leftover arguments (and unmatched pipeline objects).
    - help: help message shown for mandatory parameters.
    """

    __introspectable__ = (
        "set",
        "position",
        "mandatory",
        "pipeline",
        "by_property_name",
        "remaining",
        "help",
    )

    def __new__(
            cls,
            set=ALL,
            /,
            *,
            position=Unset,
            mandatory=False,
            pipeline=False,
            by_property_name=False,
            remaining=False,
            help=Unset
    ):
        metadata = {
            "set": set,
            "position": position,
            "mandatory": bool(mandatory),
            "pipeline": bool(pipeline),
            "by_property_name": bool(by_property_name),
            "remaining": bool(remaining),
            "help": help,
        }
        _sanitize_member_metadata(cls, metadata)

        self = super().__new__(cls)
        for name, object in metadata.items():
            setattr(self, "_" + name, coalesce(object))
        return self


class Parameter(metaclass=ParameterType, sealed=True):
    """
    One declared command parameter.

    Parameters are declared as class attributes of a Command (or as defaults
    of a function decorated with @command); the attribute name becomes the
    parameter name. On a command instance, the attribute reads the bound
    value (or the declared default when unbound).

    Properties
    - name: the parameter name (None until the owning command is built).
    - type: declared type; Reference[X] declares a reference-capture parameter.
    - members: Member declarations, one per parameter set.
    - aliases: alternative names accepted on the command line and for
      by-property-name binding.
    - attributes: declared attribute list (directives and display-only objects).
    - default: value used when the parameter is left unbound.
    - obsolete: message for obsolete parameters, or None.
    - descr: short description, or None.
    """

    __introspectable__ = (
        "name",
        "type",
        "members",
        "aliases",
        "attributes",
        "default",
        "obsolete",
        "descr",
    )

    def __new__(
            cls,
            type=object,
            /,
            *members,
            aliases=(),
            attributes=(),
            default=None,
            obsolete=Unset,
            descr=Unset
    ):
        metadata = {
            "type": type,
            "members": members,
            "aliases": aliases,
            "attributes": attributes,
            "default": default,
            "obsolete": obsolete,
            "descr": descr,
        }
        _sanitize_parameter_metadata(cls, metadata)

        self = super().__new__(cls)
        self._name = None
        for name, object in metadata.items():
            setattr(self, "_" + name, object if name == "default" else coalesce(object))
        return self

    def __set_name__(self, owner, name):
        if self._name is not None and self._name != name:
            raise TypeError(f"{type(self).__typename__} {self._name!r} cannot be declared again as {name!r}")
        if any(alias.lower() == name.lower() for alias in self._aliases):
            raise ValueError(f"{type(self).__typename__} {name!r} cannot use its own name as an alias")
        self._name = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        try:
            return instance.bound[self._name].value
        except (AttributeError, KeyError, RuntimeError):
            return self._default


class Directive(metaclass=ParameterType):
    """
    Base of operational parameter attributes.

    Subclasses override transform() (argument transformation, runs before
    coercion) or validate() (runs after coercion and raises ValueError with a
    user-facing message when the value is rejected).
    """

    def transform(self, value, /):
        return value

    def validate(self, value, /):
        return None


def _each(value):
    """Validators apply element-wise to collections and once to scalars."""
    if isinstance(value, list | tuple | set | frozenset):
        return value
    return (value,)


class Transform(Directive):
    __introspectable__ = ("callable",)

    def __init__(self, callable, /):
        if not builtins.callable(callable):
            raise TypeError(f"{type(self).__typename__} argument must be callable")
        self._callable = callable

    def transform(self, value, /):
        return self._callable(value)


class AllowNull(Directive):
    """Mandatory parameters accept None."""


class AllowEmptyString(Directive):
    """Mandatory parameters accept the empty string."""


class ValidateNotNull(Directive):
    def validate(self, value, /):
        if value is None or any(item is None for item in _each(value)):
            raise ValueError("the argument is null")


class ValidateNotNullOrEmpty(Directive):
    def validate(self, value, /):
        if value is None:
            raise ValueError("the argument is null")
        if isinstance(value, Sized) and not isinstance(value, str) and not len(value):
            raise ValueError("the argument is an empty collection")
        for item in _each(value):
            if item is None or item == "":
                raise ValueError("the argument is null or empty")


class ValidateRange(Directive):
    __introspectable__ = ("minimum", "maximum")

    def __init__(self, minimum, maximum, /):
        if minimum > maximum:
            raise ValueError(f"{type(self).__typename__} minimum cannot be greater than maximum")
        self._minimum = minimum
        self._maximum = maximum

    def validate(self, value, /):
        for item in _each(value):
            if item is None:
                raise ValueError("the argument is null and cannot be compared to the allowed range")
            try:
                below, above = item < self._minimum, item > self._maximum
            except TypeError:
                raise ValueError(
                    f"the argument {item!r} cannot be compared to the range {self._minimum!r} to {self._maximum!r}"
                ) from None
            if below:
                raise ValueError(f"the argument {item!r} is less than the minimum allowed range of {self._minimum!r}")
            if above:
                raise ValueError(f"the argument {item!r} is greater than the maximum allowed range of {self._maximum!r}")


class ValidateLength(Directive):
    __introspectable__ = ("minimum", "maximum")

    def __init__(self, minimum, maximum, /):
        if not 0 <= minimum <= maximum:
            raise ValueError(f"{type(self).__typename__} requires 0 <= minimum <= maximum")
        self._minimum = minimum
        self._maximum = maximum

    def validate(self, value, /):
        for item in _each(value):
            if not isinstance(item, Sized):
                raise ValueError(f"the argument {item!r} has no length")
            if not self._minimum <= len(item) <= self._maximum:
                raise ValueError(
                    f"the length of {item!r} is outside the allowed range ({self._minimum} to {self._maximum})"
                )


class ValidateCount(Directive):
    __introspectable__ = ("minimum", "maximum")

    def __init__(self, minimum, maximum, /):
        if not 0 <= minimum <= maximum:
            raise ValueError(f"{type(self).__typename__} requires 0 <= minimum <= maximum")
        self._minimum = minimum
        self._maximum = maximum

    def validate(self, value, /):
        count = len(_each(value))
        if not self._minimum <= count <= self._maximum:
            raise ValueError(
                f"the argument count {count} is outside the allowed range ({self._minimum} to {self._maximum})"
            )


class ValidateSet(Directive):
    __introspectable__ = ("values", "ignore_case")

    def __init__(self, *values, ignore_case=True):
        if not values:
            raise TypeError(f"{type(self).__typename__} requires at least one value")
        self._values = values
        self._ignore_case = bool(ignore_case)

    def validate(self, value, /):
        for item in _each(value):
            for allowed in self._values:
                if isinstance(item, str) and isinstance(allowed, str) and self._ignore_case:
                    if item.casefold() == allowed.casefold():
                        break
                elif item == allowed:
                    break
            else:
                raise ValueError(
                    f"the argument {item!r} does not belong to the set {", ".join(map(repr, self._values))}"
                )


class ValidatePattern(Directive):
    __introspectable__ = ("pattern",)

    def __init__(self, pattern, /, flags=re.IGNORECASE):
        self._pattern = re.compile(pattern, flags)

    def validate(self, value, /):
        for item in _each(value):
            if not self._pattern.search(str(item)):
                raise ValueError(f"the argument {item!r} does not match the pattern {self._pattern.pattern!r}")


class ValidateScript(Directive):
    __introspectable__ = ("callable",)

    def __init__(self, callable, /):
        if not builtins.callable(callable):
            raise TypeError(f"{type(self).__typename__} argument must be callable")
        self._callable = callable

    def validate(self, value, /):
        for item in _each(value):
            try:
                accepted = self._callable(item)
            except PipelineFault:
                raise
            except Exception as exception:
                if thrown(exception):
                    raise
                raise ValueError(f"the validation script raised {type(exception).__name__}: {exception}") from exception
            if not accepted:
                raise ValueError(
                    f"the argument {item!r} did not pass the validation script {getattr(self._callable, "__name__", "")!r}"
                )


__all__ = (
    "ALL",
    "Member",
    "Parameter",
    "Directive",
    "Transform",
    "AllowNull",
    "AllowEmptyString",
    "ValidateNotNull",
    "ValidateNotNullOrEmpty",
    "ValidateRange",
    "ValidateLength",
    "ValidateCount",
    "ValidateSet",
    "ValidatePattern",
    "ValidateScript",
)
