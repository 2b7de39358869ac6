"""
pipewright command layer: declare commands that a Processor can drive.

What this module provides
- Command: base class of compiled commands. Class attributes that are
  Parameter declarations form the command's metadata (inherited declarations
  included, redefinitions override). Hooks: begin(), process(), end(), and the
  optional dynamic() returning extra parameters at bind time.
- command(...): turn a plain function into a script command. The function's
  defaults are Parameter declarations; it runs once per record, and whatever it
  returns (or yields) is written to the output pipe. Script commands bind with
  the stricter script-command coercion rules.

Class options (class keywords)
- name: command name used in messages and default-value patterns
  (defaults to the class name split as Verb-Noun).
- default_set: parameter set chosen when several remain candidates.
- language_mode: LanguageMode the command's binding runs under.
- obsolete: message warning that the command itself is obsolete.

Runtime surface (available while a Processor drives the instance)
- invocation, bound, current, context, write(), error(), warn().

Quick start
    from pipewright import Command, Parameter, Member, Pipeline

    class Greet(Command):
        Name = Parameter(str, Member(position=0, mandatory=True, pipeline=True))
        Punctuation = Parameter(str, default="!")

        def process(self):
            self.write(f"hello {self.Name}{self.Punctuation}")

    Pipeline((Greet, ["-Punctuation", "?"])).invoke(["ada", "grace"])
"""
import functools
import inspect
import operator
import re
from inspect import Parameter as Signature

from .coercion import LanguageMode
from .faults import *
from .metadata import CommandMetadata
from .parameters import Member, Parameter
from .utils import *


class CommandType(type):
    """
    Metaclass that turns Command subclasses into introspectable command types.

    Responsibilities
    - Collect Parameter class attributes (walking the MRO, subclasses override)
      into a CommandMetadata exposed as `metadata`.
    - Sanitize class options (name, default_set, language_mode, obsolete).
    - Refuse parameters that would shadow the runtime surface of Command.
    - Provide stable, readable __repr__/__rich_repr__ for instances.
    - Seal factory-built (script) command types against subclassing.

    Conventions
    - __typename__ is derived from the class name (camel-case split with hyphens)
      for consistent, human-friendly labels in logs.
    """
    __introspectable__ = ()

    def __new__(cls, name, bases, namespace, /, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        inherited = {}
        for base in reversed(self.__mro__[1:]):
            inherited |= getattr(base, "__options__", {})
        inherited.pop("name", None)
        metadata = inherited | {
            "name": options.get("name", re.sub(r"(?<!^)(?=[A-Z])", r"-", name)),
            "script": options.get("script", inherited.get("script", False)),
        } | {
            key: options[key] for key in ("default_set", "language_mode", "obsolete") if key in options
        }
        _sanitize_options(self, metadata)
        self.__options__ = metadata

        reserved = {
            attribute for base in self.__mro__
            if isinstance(base, CommandType) and vars(base).get("__reserved__", False)
            for attribute in vars(base)
        }
        parameters = {}
        for base in reversed(self.__mro__):
            for attribute, object in vars(base).items():
                if isinstance(object, Parameter):
                    if attribute in reserved:
                        raise TypeError(f"{self.__typename__} parameter {attribute!r} shadows the command interface")
                    parameters[attribute] = object
        self.__metadata__ = CommandMetadata(
            metadata["name"],
            parameters.values(),
            default_set=coalesce(metadata.get("default_set"), Unset),
        )

        @rename("__repr__")
        def __repr__(self):
            """
            Return a concise, stable representation with the bound values.

            Example
            - greet(Name='ada', Punctuation='!')
            """
            return f"{type(self).__typename__}({
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            })"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for parameter in type(self).metadata.parameters:
                yield parameter.name, getattr(self, parameter.name)
        self.__rich_repr__ = __rich_repr__

        if options.get("factory", False):
            @rename("__init_subclass__")
            def __init_subclass__(cls, **options):  # NOQA: F-841
                """
                Disallow subclassing of factory-built command types.
                """
                raise TypeError(f"type {self.__name__!r} is not an acceptable base type")
            self.__init_subclass__ = classmethod(__init_subclass__)

        return self

    @property
    def metadata(cls):
        """CommandMetadata of the command type (static parameters only)."""
        return cls.__metadata__

    @property
    def language_mode(cls):
        """Declared LanguageMode, or None to run under the ambient one."""
        return cls.__options__.get("language_mode")

    @property
    def obsolete(cls):
        return cls.__options__.get("obsolete")

    @property
    def script(cls):
        """Whether the command binds with the script-command coercion rules."""
        return cls.__options__["script"]


def _sanitize_options(cls, metadata, /):
    """
    Internal: validate command class options in place.

    Raises
    - TypeError: wrongly typed options.
    - ValueError: empty names or messages.
    """
    if not isinstance(name := metadata["name"], str):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif not (name := name.strip()):
        raise ValueError(f"{cls.__typename__} 'name' cannot be empty")
    metadata["name"] = name

    if not isinstance(default_set := metadata.get("default_set"), str | None):
        raise TypeError(f"{cls.__typename__} 'default_set' must be a string")

    if not isinstance(metadata.get("language_mode"), LanguageMode | None):
        raise TypeError(f"{cls.__typename__} 'language_mode' must be a LanguageMode")

    if not isinstance(obsolete := metadata.get("obsolete"), str | None):
        raise TypeError(f"{cls.__typename__} 'obsolete' must be a string")
    elif isinstance(obsolete, str) and not obsolete.strip():
        raise ValueError(f"{cls.__typename__} 'obsolete' cannot be empty")

    metadata["script"] = bool(metadata["script"])
    if default_set is not None:
        metadata["default_set"] = default_set.strip()


class Command(metaclass=CommandType):
    """
    Base class of commands driven by a Processor.

    Subclasses declare parameters as class attributes and override the hooks
    they need. Hooks may be generators: every yielded object is written to the
    output pipe. Instances are constructed without arguments by the registry;
    the runtime surface is attached by the processor that drives them.

    Hooks
    - begin(): once, before the first record.
    - process(): once per record (or once for commands without pipeline input).
    - end(): once, after the last record.
    - dynamic(): optional; return a mapping of names to Parameter declarations
      that become available at bind time (dynamic parameters).
    """
    __reserved__ = True

    _processor = None

    def _attach(self, processor, /):
        if self._processor is not None:
            raise RuntimeError("a command instance is driven by a single processor")
        self._processor = processor

    def _driver(self):
        if self._processor is None:
            raise RuntimeError("the command is not attached to a processor")
        return self._processor

    @property
    def invocation(self):
        return self._driver().invocation

    @property
    def bound(self):
        """Read-only view of the bound arguments."""
        return self._driver().binder.bound

    @property
    def current(self):
        """Pipeline object being processed (None outside a record)."""
        return self._driver().current

    @property
    def context(self):
        return self._driver().context

    def write(self, object, /):
        """Write `object` to the output pipe."""
        self._driver().output.add(object)

    def error(self, error, /, **options):
        """
        Write a non-terminating error for the current record.

        `error` is a PipelineFault, an exception (wrapped as its cause), or a message.
        """
        self._driver().isolate(error, self._driver().current, **options)

    def warn(self, message, /, **options):
        """Write a warning, subject to the context's warning preference."""
        self._driver().warn(PipelineWarning(message, **options))

    def begin(self):
        pass

    def process(self):
        pass

    def end(self):
        pass


def _script(function, /, **options):
    """
    Internal: build a script command type from `function`.

    Parameters of the function become command parameters:
    - a Parameter default is used as the declaration;
    - any other parameter becomes Parameter(annotation or object) positioned
      by its place in the signature, with its default (or None).
    """
    namespace = {}
    position = 0
    for parameter in inspect.signature(function).parameters.values():
        if parameter.kind in (Signature.VAR_POSITIONAL, Signature.VAR_KEYWORD):
            raise TypeError("@command() functions cannot take variadic parameters")
        if isinstance(parameter.default, Parameter):
            namespace[parameter.name] = parameter.default
            continue
        annotation = parameter.annotation if parameter.annotation is not Signature.empty else object
        if isinstance(annotation, str):
            annotation = object
        if parameter.kind is Signature.KEYWORD_ONLY:
            namespace[parameter.name] = Parameter(
                annotation,
                default=None if parameter.default is Signature.empty else parameter.default,
            )
        else:
            namespace[parameter.name] = Parameter(
                annotation,
                Member(position=position, mandatory=parameter.default is Signature.empty),
                default=None if parameter.default is Signature.empty else parameter.default,
            )
            position += 1
    names = tuple(namespace)

    def process(self):
        result = function(**{name: getattr(self, name) for name in names})
        if inspect.isgenerator(result):
            yield from result
        elif result is not None:
            yield result

    namespace |= {
        "process": rename(process, "process"),
        "__doc__": function.__doc__,
        "__module__": function.__module__,
        "__wrapped__": function,
    }
    options.setdefault("name", function.__name__.replace("_", "-"))
    return CommandType(function.__name__, (Command,), namespace, factory=True, script=True, **options)


def command(function=Unset, /, **options):
    """
    Create a script command type from a function, or return a decorator that will.

    Invocation modes
    - Direct:
        Greet = command(greet, name="Greet")
    - Decorator:
        @command(name="Greet")
        def greet(Name=Parameter(str, Member(pipeline=True))): ...

    Parameters
    - function: Unset | Callable
      When Unset, a decorator is returned.
    - **options: command class options (name, default_set, language_mode, obsolete).

    Returns
    - CommandType | Callable[[Callable], CommandType]
    """
    @rename("command")
    def wrapper(function, /):
        if not callable(function) or isinstance(function, type):
            raise TypeError("@command() must be applied to a function")
        return _script(function, **options)

    return wrapper(function) if function is not Unset else wrapper


__all__ = (
    "Command",
    "command",
)
