"""
pipewright parameter-set descriptor model.

Overview
- ParameterDescriptor: the effective, immutable view of one parameter in one
  parameter set (position, mandatory flag, the three pipeline-binding flags,
  help text, aliases), resolved from the parameter's set-independent
  declaration plus the set's Member overrides.
- CommandMetadata: every parameter of one command, built and validated once;
  answers the binder's questions (which sets exist, which descriptors belong to
  a set, which parameter a command-line name refers to).

Static vs dynamic
- Statically declared parameters are known when the command class is built.
- Dynamic parameters are discovered at bind time through the command's
  dynamic() hook; extend() returns a new model that includes them, flagged
  dynamic. They never appear in the static model.

Display vs operation
- `attributes` is the read-only declared attribute list, for help and display.
- `directives` is the operational subset (Directive instances) that the binder
  applies; display-only attributes never influence binding.
"""
import typing
from types import MappingProxyType

from .coercion import Reference, Switch
from .faults import *
from .parameters import ALL, Directive, ParameterType
from .utils import *


class ParameterDescriptor(metaclass=ParameterType, sealed=True):
    """
    Effective view of one parameter in one parameter set.

    Properties
    - name, type, aliases, default, obsolete, descr: from the declaration.
    - set, position, mandatory, pipeline, by_property_name, remaining, help:
      from the Member matching the set (or the every-set Member).
    - dynamic: discovered at bind time.
    - types: coercion target list; (Reference, X) for Reference[X] declarations.
    - attributes: declared attribute list (display).
    - directives: operational attribute list (coercion and validation).
    - parameter: the Parameter declaration itself.
    """

    __introspectable__ = (
        "name",
        "type",
        "set",
        "position",
        "mandatory",
        "dynamic",
        "pipeline",
        "by_property_name",
        "remaining",
        "aliases",
        "help",
        "obsolete",
        "default",
        "types",
        "attributes",
        "directives",
    )

    def __new__(cls, parameter, member, /, *, set=Unset, dynamic=False):
        self = super().__new__(cls)
        self._parameter = parameter
        self._name = parameter.name
        self._type = parameter.type
        self._set = coalesce(set, member.set)
        self._position = member.position
        self._mandatory = member.mandatory
        self._dynamic = bool(dynamic)
        self._pipeline = member.pipeline
        self._by_property_name = member.by_property_name
        self._remaining = member.remaining
        self._aliases = parameter.aliases
        self._help = member.help
        self._obsolete = parameter.obsolete
        self._default = parameter.default
        self._descr = parameter.descr
        self._attributes = parameter.attributes
        self._directives = tuple(attribute for attribute in parameter.attributes if isinstance(attribute, Directive))

        if typing.get_origin(parameter.type) is Reference:
            self._types = (Reference, *(typing.get_args(parameter.type) or (object,))[:1])
        else:
            self._types = (parameter.type,)
        return self

    parameter = mirror("parameter")
    descr = mirror("descr")

    @property
    def reference(self):
        """Whether this is a reference-capture parameter."""
        return self._types[0] is Reference

    def matches(self, name, /):
        """Whether `name` is this parameter's name or one of its aliases (case-insensitive)."""
        folded = name.lower()
        return self._name.lower() == folded or any(alias.lower() == folded for alias in self._aliases)


class CommandMetadata:
    """
    Parameter metadata of one command.

    Parameters
    - name: command name (used in messages).
    - parameters: iterable of named Parameter declarations.
    - default_set: name of the set chosen when several remain candidates.
    - dynamic: names of the parameters discovered at bind time.

    Raises
    - TypeError: duplicated names or aliases, more than one remaining-arguments
      parameter in a set, duplicated positions in a set.
    - ValueError: unknown default set.
    """

    def __init__(self, name, parameters, /, *, default_set=Unset, dynamic=()):
        if not isinstance(name, str) or not name:
            raise TypeError("command metadata 'name' must be a non-empty string")
        self._name = name
        self._parameters = tuple(parameters)
        self._dynamic = frozenset(dynamic)
        self._cache = {}

        names = {}
        for parameter in self._parameters:
            if parameter.name is None:
                raise TypeError(f"command {name!r} declares an unnamed parameter")
            for label in (parameter.name, *parameter.aliases):
                if (folded := label.lower()) in names:
                    raise TypeError(
                        f"command {name!r} declares {label!r} for both {names[folded]!r} and {parameter.name!r}"
                    )
                names[folded] = parameter.name

        sets = []
        for parameter in self._parameters:
            for member in parameter.members:
                if member.set != ALL and member.set not in sets:
                    sets.append(member.set)
        self._sets = tuple(sets) or (ALL,)

        if (default_set := coalesce(default_set)) is not None and default_set not in self._sets:
            raise ValueError(f"command {name!r} default parameter set {default_set!r} is not declared")
        self._default_set = default_set

        for set in self._sets:
            descriptors = self.descriptors(set)
            remaining = [descriptor.name for descriptor in descriptors.values() if descriptor.remaining]
            if len(remaining) > 1:
                raise TypeError(
                    f"command {name!r} declares more than one remaining-arguments parameter in set {set!r}"
                )
            positions = {}
            for descriptor in descriptors.values():
                if descriptor.position is None:
                    continue
                if descriptor.position in positions:
                    raise TypeError(
                        f"command {name!r} declares position {descriptor.position} for both "
                        f"{positions[descriptor.position]!r} and {descriptor.name!r} in set {set!r}"
                    )
                positions[descriptor.position] = descriptor.name

    name = mirror("name")
    parameters = mirror("parameters")
    sets = mirror("sets")
    default_set = mirror("default_set")
    dynamic = mirror("dynamic")

    @property
    def expects_pipeline(self):
        """Whether any parameter can be bound from the pipeline."""
        return any(
            member.pipeline or member.by_property_name
            for parameter in self._parameters
            for member in parameter.members
        )

    def descriptors(self, set=ALL, /):
        """
        Effective descriptors of `set`, keyed by parameter name.

        ALL on a command with named sets yields the descriptors of parameters
        that belong to every set. The result is cached and read-only.
        """
        try:
            return self._cache[set]
        except KeyError:
            pass

        descriptors = {}
        for parameter in self._parameters:
            specific = general = None
            for member in parameter.members:
                if member.set == set:
                    specific = member
                elif member.set == ALL:
                    general = member
            if (member := specific or general) is None:
                continue
            descriptors[parameter.name] = ParameterDescriptor(
                parameter,
                member,
                set=set,
                dynamic=parameter.name in self._dynamic,
            )
        self._cache[set] = MappingProxyType(descriptors)
        return self._cache[set]

    def membership(self, name, /):
        """Sets that contain the parameter `name`, in declaration order."""
        return tuple(set for set in self._sets if name in self.descriptors(set))

    def parameter(self, name, /):
        """
        Resolve a command-line name to a Parameter.

        Resolution order: exact name, alias, unique prefix of names and aliases
        (all case-insensitive). Returns None when nothing matches.

        Raises
        - BindingFault: when a prefix matches several parameters.
        """
        folded = name.lower()
        for parameter in self._parameters:
            if parameter.name.lower() == folded:
                return parameter
        for parameter in self._parameters:
            if any(alias.lower() == folded for alias in parameter.aliases):
                return parameter
        candidates = [
            parameter for parameter in self._parameters
            if any(label.lower().startswith(folded) for label in (parameter.name, *parameter.aliases))
        ]
        if len(candidates) > 1:
            raise BindingFault(
                f"parameter name {name!r} is ambiguous; possible matches include: "
                f"{", ".join("-" + candidate.name for candidate in candidates)}",
                code=FaultCode.AMBIGUOUS_PARAMETER,
                parameter=name,
                hint="type more characters of the parameter name",
            )
        return candidates[0] if candidates else None

    def extend(self, parameters, /):
        """New metadata including dynamic `parameters` (flagged dynamic)."""
        parameters = tuple(parameters)
        return type(self)(
            self._name,
            self._parameters + parameters,
            default_set=coalesce(self._default_set, Unset),
            dynamic=self._dynamic | {parameter.name for parameter in parameters},
        )

    def syntax(self):
        """
        One usage line per parameter set, e.g. "Resize-Image [-Path] <str> [-Width <int>]".

        Positional parameters come first, by position; a switch shows no value.
        """
        lines = []
        for set in self._sets:
            parts = [self._name]
            for descriptor in sorted(
                self.descriptors(set).values(),
                key=lambda descriptor: (descriptor.position is None, descriptor.position or 0),
            ):
                label = f"[-{descriptor.name}]" if descriptor.position is not None else f"-{descriptor.name}"
                if descriptor.type is not Switch:
                    label += f" <{getattr(descriptor.type, "__name__", str(descriptor.type))}>"
                if descriptor.remaining:
                    label += "..."
                parts.append(label if descriptor.mandatory else f"[{label}]")
            lines.append(" ".join(parts))
        return tuple(lines)

    def __repr__(self):
        return f"command-metadata({self._name!r}, sets={self._sets!r})"


__all__ = (
    "ParameterDescriptor",
    "CommandMetadata",
)
