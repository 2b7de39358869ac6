"""
pipewright parameter-binder controller.

What this module provides
- Binder: matches command-line arguments and pipeline objects to the
  descriptors of a command, runs every value through transformation, the
  coercion chain and validation, tracks which parameter set is active,
  reports mandatory parameters still unbound, and queues obsolete-parameter
  warnings for the lifecycle driver.
- BoundArgument / BoundArguments: the bound-argument table (value, origin,
  provenance marker), exposed read-only and case-insensitively.

Command line (one-shot)
- Tokens: "-Name value", "-Name:value", "-Switch", positional values, "--"
  (everything after is positional), "-?" (help requested). Names resolve by
  exact name, alias, then unique prefix. Mappings bind name/value pairs.
- Order: named (static), dynamic parameters from the command's dynamic()
  hook, named (dynamic), positional by ascending position, remaining
  arguments, then default parameter values ("Command:Parameter" patterns).
  A default value that fails to bind is skipped and queues one warning.
- Leftovers are recorded and raise a BindingFault; mandatory parameters that
  cannot come from the pipeline and are still unbound raise
  MandatoryMissingFault. There is never any prompting.

Pipeline (per record)
- Values bound from the previous record are dropped first (parameters read
  their declared default again); command-line values persist.
- Tiers: by value without coercion, by property name without coercion, by
  value with coercion, by property name with coercion, and finally the record
  into the remaining-arguments parameter when nothing else bound.
- A cast failure while binding by value means "this parameter does not take
  the object"; validation failures, and cast failures by property name, raise.

Tracing
- Every binding decision is logged at debug level on this module's logger.
"""
import copy
import fnmatch
import logging
import types
import typing
from collections import deque
from collections.abc import Mapping
from enum import Enum

from .coercion import Coercion, Reference, Switch, coerce
from .envelope import *
from .faults import *
from .parameters import AllowEmptyString, AllowNull
from .utils import *

logger = logging.getLogger(__name__)


class Origin(Enum):
    COMMAND_LINE = "command-line"
    PIPELINE = "pipeline"
    DEFAULT = "default"


class BoundArgument:
    """One bound value with its origin and provenance marker."""
    __slots__ = ("_value", "_origin", "_untrusted")

    def __init__(self, value, origin, untrusted=False):
        self._value = value
        self._origin = origin
        self._untrusted = bool(untrusted)

    @property
    def value(self):
        return self._value

    origin = mirror("origin")
    untrusted = mirror("untrusted")

    def __eq__(self, other):
        if isinstance(other, BoundArgument):
            return (self._value, self._origin, self._untrusted) == (other._value, other._origin, other._untrusted)
        return NotImplemented

    __hash__ = None

    def __repr__(self):
        return f"bound-argument({self._value!r}, {self._origin.value}{", untrusted" if self._untrusted else ""})"


class BoundArguments(Mapping):
    """Read-only, case-insensitive live view of a bound-argument table."""

    def __init__(self, arguments, /):
        self._arguments = arguments

    def __getitem__(self, name):
        try:
            return self._arguments[name]
        except KeyError:
            pass
        if isinstance(name, str):
            for key, argument in self._arguments.items():
                if key.lower() == name.lower():
                    return argument
        raise KeyError(name)

    def __iter__(self):
        return iter(self._arguments)

    def __len__(self):
        return len(self._arguments)

    def values_only(self):
        """Plain {name: value} snapshot."""
        return {name: argument.value for name, argument in self._arguments.items()}

    def __repr__(self):
        return f"bound-arguments({self.values_only()!r})"


class _Named:
    __slots__ = ("token", "name", "value", "index")

    def __init__(self, token, name, value, index):
        self.token = token
        self.name = name
        self.value = value
        self.index = index


def _switch(parameter):
    type = parameter.type
    if typing.get_origin(type) in (typing.Union, types.UnionType):
        arguments = [argument for argument in typing.get_args(type) if argument is not types.NoneType]
        if len(arguments) == 1:
            type = arguments[0]
    return type is Switch


def _instance(value, type):
    """Whether `value` already is of `type` (the no-coercion tiers)."""
    if type is object or type is typing.Any:
        return True
    origin = typing.get_origin(type)
    if origin in (typing.Union, types.UnionType):
        return any(_instance(value, argument) for argument in typing.get_args(type))
    if origin is Reference:
        return isinstance(value, Reference)
    if origin in (list, set, frozenset):
        arguments = typing.get_args(type) or (object,)
        return isinstance(value, origin) and all(_instance(item, arguments[0]) for item in value)
    if origin is tuple:
        arguments = typing.get_args(type)
        if not isinstance(value, tuple):
            return False
        if len(arguments) == 2 and arguments[1] is Ellipsis:
            return all(_instance(item, arguments[0]) for item in value)
        return len(arguments) == len(value) and all(map(_instance, value, arguments))
    if origin is not None:
        type = origin
    if isinstance(value, bool) and type is not bool:
        return False
    return isinstance(value, type)


class Binder:
    """
    Parameter-binder controller of one command instance.

    Parameters
    - command: the command instance (consulted for the dynamic() hook).
    - metadata: CommandMetadata of the command.
    - context: ExecutionContext (language mode for coercion).
    - script: bind as a script command (stricter text/boolean coercion).
    - invocation: InvocationInfo receiving unbound arguments; attached to faults.
    """

    def __init__(self, command, metadata, context, /, *, script=False, invocation=None):
        self._command = command
        self._metadata = metadata
        self._context = context
        self._script = bool(script)
        self._invocation = invocation
        self._arguments = {}
        self._obsolete = deque()
        self._unbound_arguments = ()
        self._help_requested = False
        self._bound_command_line = False

    metadata = mirror("metadata")
    script = mirror("script")
    unbound_arguments = mirror("unbound_arguments")
    help_requested = mirror("help_requested")

    @property
    def bound(self):
        return BoundArguments(self._arguments)

    @property
    def obsolete(self):
        """Queue of warnings (obsolete parameters, skipped defaults) waiting to be drained."""
        return self._obsolete

    def _fault(self, type, message, /, **options):
        return type(message, invocation=self._invocation, **options)

    # --- parameter sets ---

    def _candidates(self):
        candidates = []
        for set in self._metadata.sets:
            descriptors = self._metadata.descriptors(set)
            for name, argument in self._arguments.items():
                if name not in descriptors:
                    break
                if argument.origin is Origin.PIPELINE and not (
                    descriptors[name].pipeline or descriptors[name].by_property_name
                ):
                    break
            else:
                candidates.append(set)
        return candidates

    def _satisfied(self, set):
        return all(
            descriptor.name in self._arguments
            for descriptor in self._metadata.descriptors(set).values()
            if descriptor.mandatory
        )

    @property
    def active_set(self):
        """
        The parameter set in force.

        Resolution: the single candidate; else the default set when it is a
        candidate; else the first candidate whose mandatory parameters are all
        bound; else the first candidate in declaration order.

        Raises
        - BindingFault: when no set contains every bound parameter.
        """
        candidates = self._candidates()
        if not candidates:
            raise self._fault(
                BindingFault,
                "parameter set cannot be resolved using the specified named parameters",
                code=FaultCode.AMBIGUOUS_PARAMETER_SET,
                hint=f"the parameters {", ".join(map(repr, self._arguments))} do not belong to one parameter set",
            )
        if len(candidates) == 1:
            return candidates[0]
        if self._metadata.default_set in candidates:
            return self._metadata.default_set
        for set in candidates:
            if self._satisfied(set):
                return set
        return candidates[0]

    def _descriptor(self, name):
        """Any descriptor of parameter `name`; type and directives do not depend on the set."""
        for set in self._candidates() or self._metadata.sets:
            if name in (descriptors := self._metadata.descriptors(set)):
                return descriptors[name]
        for set in self._metadata.sets:
            if name in (descriptors := self._metadata.descriptors(set)):
                return descriptors[name]
        raise KeyError(name)

    # --- single binding ---

    def _bind(self, descriptor, value, origin, /, *, swallow=False):
        """
        Transform, coerce, validate and record one value.

        Returns
        - True when bound; False when `swallow` is set and the coercion failed.

        Raises
        - BindingFault: transformation, null/empty, cast (unless swallowed) and
          validation failures.
        """
        name = descriptor.name
        logger.debug(f"BIND arg [{value!r}] to parameter [{name}] ({origin.value})")

        for directive in descriptor.directives:
            try:
                value = directive.transform(value)
            except PipelineFault:
                raise
            except Exception as exception:
                if thrown(exception):
                    raise
                raise self._fault(
                    BindingFault,
                    f"cannot process argument transformation on parameter {name!r}: {exception}",
                    code=FaultCode.TRANSFORMATION_FAILED,
                    parameter=name,
                    cause=exception,
                ) from exception

        raw = unwrap(value)
        mandatory = any(
            self._metadata.descriptors(set)[name].mandatory
            for set in self._metadata.membership(name)
        )
        if mandatory and raw is None and not any(isinstance(directive, AllowNull) for directive in descriptor.directives):
            if swallow:
                return False
            raise self._fault(
                BindingFault,
                f"cannot bind argument to parameter {name!r} because it is null",
                code=FaultCode.VALIDATION_FAILED,
                parameter=name,
            )
        if mandatory and isinstance(raw, str) and not raw and not any(
            isinstance(directive, AllowEmptyString) for directive in descriptor.directives
        ):
            raise self._fault(
                BindingFault,
                f"cannot bind argument to parameter {name!r} because it is an empty string",
                code=FaultCode.VALIDATION_FAILED,
                parameter=name,
            )

        result = coerce(Coercion(
            descriptor.types,
            value,
            binding_parameters=True,
            binding_script_cmdlet=self._script,
            language_mode=self._context.language_mode,
        ))
        if isinstance(result, CastFault):
            logger.debug(f"BIND arg [{raw!r}] to parameter [{name}] failed: {result}")
            if swallow:
                return False
            raise self._fault(
                BindingFault,
                f"cannot process argument transformation on parameter {name!r}: {result}",
                code=FaultCode.TRANSFORMATION_FAILED,
                parameter=name,
                cause=result,
                hint=result.hint,
            ) from result

        converted = result.value
        if descriptor.reference and len(descriptor.types) > 1:
            # the caller's cell is bound; its content is replaced by the converted value
            raw.value = converted
            converted = raw

        for directive in descriptor.directives:
            try:
                directive.validate(converted)
            except PipelineFault:
                raise
            except Exception as exception:
                if thrown(exception):
                    raise
                raise self._fault(
                    BindingFault,
                    f"cannot validate argument on parameter {name!r}: {exception}",
                    code=FaultCode.VALIDATION_FAILED,
                    parameter=name,
                    cause=exception,
                ) from exception

        self._arguments[name] = BoundArgument(converted, origin, result.untrusted)
        logger.debug(f"BIND parameter [{name}] = [{converted!r}] SUCCESSFUL")

        if descriptor.obsolete:
            self._obsolete.append(ObsoleteParameterWarning(
                f"the parameter {name!r} is obsolete: {descriptor.obsolete}",
                parameter=name,
                invocation=self._invocation,
            ))
        return True

    # --- command line ---

    def _tokenize(self, arguments):
        """Split arguments into named entries and positional values (with their indexes)."""
        named = []
        values = []
        if isinstance(arguments, Mapping):
            for index, (name, value) in enumerate(arguments.items()):
                named.append(_Named("-" + name, name, value, index))
            return named, values

        tokens = list(arguments)
        verbatim = False
        index = 0
        while index < len(tokens):
            token = tokens[index]
            if verbatim or not isinstance(token, str) or not token.startswith("-") or len(token) < 2:
                values.append((index, token))
            elif token == "--":
                verbatim = True
            elif token == "-?":
                self._help_requested = True
            elif (name := token[1:].partition(":")[0]) and (name[0].isalpha() or name[0] == "_"):
                name, colon, inline = token[1:].partition(":")
                if colon:
                    named.append(_Named(token, name, inline if inline else Unset, index))
                    if not inline:
                        # "-Name: value" takes the next token as the value
                        if index + 1 < len(tokens):
                            index += 1
                            named[-1].value = tokens[index]
                else:
                    named.append(_Named(token, name, Unset, index))
            else:
                values.append((index, token))
            index += 1
        return named, values

    def _bind_named(self, named, values, *, final):
        """Bind named entries; returns the entries that did not resolve (non-final pass)."""
        pending = []
        for entry in named:
            try:
                parameter = self._metadata.parameter(entry.name)
            except BindingFault as fault:
                raise copy.replace(fault, invocation=self._invocation) from None
            if parameter is None:
                if not final:
                    pending.append(entry)
                    continue
                raise self._fault(
                    BindingFault,
                    f"a parameter cannot be found that matches parameter name {entry.name!r}",
                    code=FaultCode.NAMED_PARAMETER_NOT_FOUND,
                    parameter=entry.name,
                    hint="check the parameter name, or run the command with -? to list its parameters",
                )
            if parameter.name in self._arguments:
                raise self._fault(
                    BindingFault,
                    f"cannot bind parameter because parameter {parameter.name!r} is specified more than once",
                    code=FaultCode.DUPLICATE_PARAMETER,
                    parameter=parameter.name,
                )

            value = entry.value
            if value is Unset:
                if _switch(parameter):
                    value = Switch(True)
                else:
                    following = next(((i, v) for i, v in values if i > entry.index), None)
                    if following is None or following[0] != entry.index + 1:
                        raise self._fault(
                            BindingFault,
                            f"missing an argument for parameter {parameter.name!r}",
                            code=FaultCode.MISSING_ARGUMENT,
                            parameter=parameter.name,
                            hint=f"specify a value of type {getattr(parameter.type, "__name__", parameter.type)!r} and try again",
                        )
                    values.remove(following)
                    value = following[1]
            self._bind(self._descriptor(parameter.name), value, Origin.COMMAND_LINE)
        return pending

    def _bind_dynamic(self):
        hook = getattr(self._command, "dynamic", None)
        if not callable(hook):
            return
        declared = hook()
        if not declared:
            return
        if not isinstance(declared, Mapping):
            raise TypeError("dynamic() must return a mapping of names to parameters")
        for name, parameter in declared.items():
            parameter.__set_name__(type(self._command), name)
        logger.debug(f"BIND dynamic parameters {list(declared)!r}")
        self._metadata = self._metadata.extend(declared.values())

    def _bind_positional(self, values):
        """Bind positional values by ascending position; returns the leftovers."""
        leftovers = []
        for index, value in values:
            slots = {}
            for set in self._candidates():
                for descriptor in self._metadata.descriptors(set).values():
                    if descriptor.position is not None and descriptor.name not in self._arguments:
                        slots.setdefault(descriptor.position, []).append(descriptor)
            if not slots:
                leftovers.append(value)
                continue
            descriptors = slots[min(slots)]
            preferred = [d for d in descriptors if d.set == self._metadata.default_set]
            ordered = list({d.name: d for d in [*preferred, *descriptors]}.values())
            for descriptor in ordered[:-1]:
                if self._bind(descriptor, value, Origin.COMMAND_LINE, swallow=True):
                    break
            else:
                self._bind(ordered[-1], value, Origin.COMMAND_LINE)
        return leftovers

    def _remaining(self):
        for set in self._candidates():
            for descriptor in self._metadata.descriptors(set).values():
                if descriptor.remaining and descriptor.name not in self._arguments:
                    return descriptor
        return None

    def _bind_defaults(self, defaults):
        if not defaults:
            return
        command = self._metadata.name
        skipped = []
        for pattern, value in defaults.items():
            if not isinstance(pattern, str) or ":" not in pattern:
                continue
            target, _, parameter = pattern.partition(":")
            if not fnmatch.fnmatchcase(command.lower(), target.strip().lower()):
                continue
            for set in self._candidates():
                for descriptor in self._metadata.descriptors(set).values():
                    if descriptor.name in self._arguments or descriptor.name in skipped:
                        continue
                    if not any(
                        fnmatch.fnmatchcase(label.lower(), parameter.strip().lower())
                        for label in (descriptor.name, *descriptor.aliases)
                    ):
                        continue
                    logger.debug(f"BIND default value [{value!r}] to parameter [{descriptor.name}] from {pattern!r}")
                    try:
                        self._bind(descriptor, value, Origin.DEFAULT)
                    except BindingFault as fault:
                        # one warning per command:parameter; the default is skipped
                        skipped.append(descriptor.name)
                        self._obsolete.append(PipelineWarning(
                            f"the default value {pattern!r} was not bound to parameter "
                            f"{descriptor.name!r}: {fault}",
                            code=fault.code,
                            title="default value skipped",
                            parameter=descriptor.name,
                            invocation=self._invocation,
                        ))
                        continue
                    if not self._candidates():
                        del self._arguments[descriptor.name]

    def bind_command_line(self, arguments=(), /, *, defaults=None, pipeline=True):
        """
        Bind command-line arguments (once per command instance).

        Parameters
        - arguments: token sequence, or a mapping of parameter names to values.
        - defaults: default parameter values keyed by "Command:Parameter"
          patterns (fnmatch, case-insensitive).
        - pipeline: whether pipeline input may still satisfy pipeline-capable
          mandatory parameters.

        Raises
        - BindingFault: unknown/ambiguous/duplicated names, missing values,
          leftover arguments, unresolvable parameter set, bad values.
        - MandatoryMissingFault: mandatory parameters that the pipeline cannot
          satisfy are unbound.
        """
        if self._bound_command_line:
            raise RuntimeError("command-line arguments are bound only once")
        self._bound_command_line = True

        named, values = self._tokenize(arguments)
        if self._help_requested:
            logger.debug("BIND help requested; arguments are not bound")
            return

        pending = self._bind_named(named, values, final=False)
        self._bind_dynamic()
        self._bind_named(pending, values, final=True)
        self.active_set  # raises when the named parameters span several sets

        leftovers = self._bind_positional(values)
        if leftovers and (descriptor := self._remaining()) is not None:
            self._bind(descriptor, leftovers, Origin.COMMAND_LINE)
            leftovers = []
        if leftovers:
            self._unbound_arguments = tuple(leftovers)
            if self._invocation is not None:
                self._invocation.unbound_arguments = self._unbound_arguments
            raise self._fault(
                BindingFault,
                f"a positional parameter cannot be found that accepts argument {leftovers[0]!r}",
                code=FaultCode.POSITIONAL_PARAMETER_NOT_FOUND,
                target=leftovers[0],
                hint=f"{len(leftovers)} argument(s) could not be bound; name the parameter explicitly",
            )

        self._bind_defaults(defaults)

        active = self.active_set
        missing = [
            descriptor for descriptor in self._metadata.descriptors(active).values()
            if descriptor.mandatory and descriptor.name not in self._arguments
            and not (pipeline and (descriptor.pipeline or descriptor.by_property_name))
        ]
        if missing:
            raise self._fault(
                MandatoryMissingFault,
                f"cannot process command because of one or more missing mandatory parameters: {self.missing(missing)}",
                code=FaultCode.MISSING_MANDATORY,
                missing=tuple(descriptor.name for descriptor in missing),
                hint=next((descriptor.help for descriptor in missing if descriptor.help), None),
            )
        logger.debug(f"BIND command line done; active set [{active}]")

    # --- pipeline ---

    def _restore(self):
        for name in [name for name, argument in self._arguments.items() if argument.origin is Origin.PIPELINE]:
            logger.debug(f"BIND restore default of parameter [{name}]")
            del self._arguments[name]

    def _tier(self, record, flag, convert):
        bound = False
        attempted = []
        while True:
            descriptor = next((
                descriptor
                for candidate in self._candidates()
                for descriptor in self._metadata.descriptors(candidate).values()
                if getattr(descriptor, flag) and descriptor.name not in self._arguments
                and descriptor.name not in attempted
            ), None)
            if descriptor is None:
                return bound
            attempted.append(descriptor.name)

            if flag == "pipeline":
                value = record
            else:
                source = accessor(record)
                for label in (descriptor.name, *descriptor.aliases):
                    try:
                        value = source.lookup(label)
                    except PipelineFault:
                        raise
                    except Exception as exception:
                        if thrown(exception):
                            raise
                        logger.debug(f"BIND property [{label}] of [{record!r}] raised {exception!r}")
                        raise self._fault(
                            BindingFault,
                            f"cannot read property {label!r} of the input object for parameter "
                            f"{descriptor.name!r}: {exception}",
                            code=FaultCode.INPUT_OBJECT_NOT_BOUND,
                            parameter=descriptor.name,
                            cause=exception,
                        ) from exception
                    if value is not Unset:
                        break
                else:
                    continue
                if untrusted(record):
                    value = Envelope(value, untrusted=True)

            if not convert and not _instance(unwrap(value), descriptor.types[-1] if not descriptor.reference else Reference):
                continue
            if flag == "pipeline":
                done = self._bind(descriptor, value, Origin.PIPELINE, swallow=True)
            else:
                done = self._bind(descriptor, value, Origin.PIPELINE)
            if done and not self._candidates():
                del self._arguments[descriptor.name]
                done = False
            bound |= done

    def bind_pipeline(self, record, /):
        """
        Bind one pipeline object; returns whether any parameter took it.

        Raises
        - BindingFault: validation failures, by-property-name cast failures and
          property getters that raise.
        """
        self._restore()
        logger.debug(f"BIND pipeline object [{record!r}]")

        bound = False
        for flag, convert in (
            ("pipeline", False),
            ("by_property_name", False),
            ("pipeline", True),
            ("by_property_name", True),
        ):
            bound |= self._tier(record, flag, convert)

        if not bound and (descriptor := self._remaining()) is not None:
            bound = self._bind(
                descriptor,
                Envelope([unwrap(record)], untrusted=untrusted(record)),
                Origin.PIPELINE,
                swallow=True,
            )
        return bound

    def unbound_mandatory(self):
        """Mandatory descriptors of the active set that still lack a value (never prompts)."""
        return tuple(
            descriptor for descriptor in self._metadata.descriptors(self.active_set).values()
            if descriptor.mandatory and descriptor.name not in self._arguments
        )

    @staticmethod
    def missing(descriptors, /):
        """Missing-parameters string used in messages."""
        return " ".join(descriptor.name for descriptor in descriptors)


__all__ = (
    "Origin",
    "BoundArgument",
    "BoundArguments",
    "Binder",
)
