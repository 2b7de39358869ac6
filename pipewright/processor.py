"""
pipewright command lifecycle driver.

What this module provides
- Registry: maps a command type to a memoized construction closure, checked
  once at registration (capability check) so construction failures are
  classified up front: capability mismatch vs. constructor exception.
- InvocationInfo: what a fault needs to know about the running command.
- Processor: owns one in-flight command instance for one pipeline stage and
  sequences prepare → begin (once) → {read → bind → process}* → end.
- Pipeline: minimal outer coordinator that wires stages with pull-driven pipes.

Read state machine
- NOT_STARTED: nothing read yet.
- AWAITING_MANDATORY: pulling upstream objects until one binds and satisfies
  the mandatory parameters of the active set.
- BAILING: the command takes no pipeline input (it already ran once) or the
  upstream is exhausted; read() returns False from now on.
- STOPPED: the cooperative stop flag was observed.

Fault policy
- BindingFault / MandatoryMissingFault raised while reading a record are
  isolated: written to the error sink with the object as target, and reading
  continues with the next object.
- PipelineStoppedFault and explicit throws (faults.throw) pass through untouched.
- Anything else raised by a command hook becomes an InvocationFault carrying
  the invocation info and the original exception as cause.
"""
import builtins
import contextlib
import copy
import inspect
import logging
from enum import Enum

from .binder import Binder
from .coercion import ActionPreference
from .commands import Command
from .context import *
from .envelope import unwrap
from .eos import eos
from .faults import *
from .utils import *

logger = logging.getLogger(__name__)


class Registry:
    """
    Construction registry of command types.

    register() validates the type once and memoizes a construction closure;
    construct() registers on first use.
    """

    def __init__(self):
        self._constructors = {}

    def register(self, type, /):
        """
        Validate `type` and memoize its construction closure.

        Raises
        - ConstructionFault (CAPABILITY_MISMATCH): `type` is not a Command type.
        """
        if not isinstance(type, builtins.type) or not issubclass(type, Command):
            raise ConstructionFault(
                f"{getattr(type, "__name__", type)!r} does not derive from the command base type",
                code=FaultCode.CAPABILITY_MISMATCH,
                hint="declare the command as a Command subclass, or decorate a function with @command()",
            )
        if type in self._constructors:
            return self._constructors[type]
        logger.debug(f"REGISTER {type.metadata.name} ({type.__module__}.{type.__qualname__})")

        @rename(f"construct_{type.__name__}")
        def construct():
            try:
                return type()
            except PipelineFault:
                raise
            except Exception as exception:
                raise ConstructionFault(
                    f"cannot construct command {type.metadata.name!r}: {exception}",
                    cause=exception,
                ) from exception

        self._constructors[type] = construct
        return construct

    def construct(self, type, /):
        return self.register(type)()

    def __contains__(self, type):
        return type in self._constructors


registry = Registry()


class InvocationInfo:
    """
    Invocation details of one command in one pipeline.

    Attributes
    - name: command name.
    - command: command type.
    - position: 1-based position of the stage in its pipeline.
    - arguments: command-line arguments as given.
    - unbound_arguments: arguments that no parameter accepted.
    - records: number of records processed so far.
    """
    __slots__ = ("name", "command", "position", "arguments", "unbound_arguments", "records")

    def __init__(self, command, /, *, position=1, arguments=()):
        self.name = command.metadata.name
        self.command = command
        self.position = position
        self.arguments = arguments
        self.unbound_arguments = ()
        self.records = 0

    def __repr__(self):
        return f"invocation-info({self.name!r}, position={self.position}, records={self.records})"


class ReadState(Enum):
    NOT_STARTED = "not-started"
    AWAITING_MANDATORY = "awaiting-mandatory"
    BAILING = "bailing"
    STOPPED = "stopped"


class Processor:
    """
    Lifecycle driver of one command instance.

    Parameters
    - command_type: the Command type to run.
    - context: shared ExecutionContext (a fresh one when Unset).
    - arguments: command-line tokens, or a mapping of names to values.
    - input: Pipe, or an iterable of objects; Unset when the stage has no
      upstream (the command then runs once, on command-line arguments).
    - output: Pipe receiving written objects.
    - errors: ErrorPipe receiving isolated faults.
    - warnings: WarningPipe receiving warnings.
    - redirect: merge the error stream into the output pipe.
    - position: 1-based stage position (reported in invocation info).
    - registry: construction registry.

    Raises
    - ConstructionFault: when the command cannot be instantiated.
    """

    def __init__(
            self,
            command_type,
            /,
            *,
            context=Unset,
            arguments=(),
            input=Unset,
            output=Unset,
            errors=Unset,
            warnings=Unset,
            redirect=False,
            position=1,
            registry=registry
    ):
        self._context = context = ExecutionContext() if context is Unset else context
        self._command = registry.construct(command_type)
        self._type = command_type
        self._invocation = InvocationInfo(command_type, position=position, arguments=arguments)
        self._arguments = arguments
        self._piped = input is not Unset
        self._input = input if isinstance(input, Pipe) else Pipe(coalesce(input, ()))
        self._output = Pipe() if output is Unset else output
        self._errors = ErrorPipe(**context.options()) if errors is Unset else errors
        self._warnings = WarningPipe(**context.options()) if warnings is Unset else warnings
        self._redirect = bool(redirect)
        self._binder = Binder(
            self._command,
            command_type.metadata,
            context,
            script=command_type.script,
            invocation=self._invocation,
        )
        self._state = ReadState.NOT_STARTED
        self._prepared = False
        self._begun = False
        self._ended = False
        self._current = None
        self._command._attach(self)

    command = mirror("command")
    context = mirror("context")
    invocation = mirror("invocation")
    binder = mirror("binder")
    input = mirror("input")
    output = mirror("output")
    errors = mirror("errors")
    warnings = mirror("warnings")
    state = mirror("state")

    @property
    def current(self):
        """Pipeline object being processed, as retrieved (None outside a record)."""
        return self._current

    @property
    def help_requested(self):
        """Whether "-?" was given on the command line."""
        return self._binder.help_requested

    @property
    def _expecting(self):
        return self._piped and self._binder.metadata.expects_pipeline

    # --- sinks ---

    def _sink(self):
        if self._redirect:
            return self._output
        return self._context.error_pipe or self._errors

    def isolate(self, error, target=None, /, **options):
        """Write a non-terminating fault for `target` to the error sink."""
        if not isinstance(error, PipelineFault):
            if isinstance(error, BaseException):
                error = InvocationFault(str(error), title="command error", cause=error)
            else:
                error = InvocationFault(str(error), title="command error")
        fault = copy.replace(error, **{"target": unwrap(target), "invocation": self._invocation} | options)
        logger.debug(f"ISOLATE {type(fault).__name__} for [{target!r}]: {fault}")
        self._sink().add(fault)

    def warn(self, warning, /):
        """
        Surface a warning under the context's warning preference.

        - SILENTLY_CONTINUE / IGNORE: dropped.
        - STOP: raised as an InvocationFault (terminal).
        - anything else (INQUIRE never prompts): written to the warning pipe.
        """
        warning = copy.replace(warning, invocation=self._invocation)
        match self._context.warning_preference:
            case ActionPreference.SILENTLY_CONTINUE | ActionPreference.IGNORE:
                logger.debug(f"WARNING dropped by preference: {warning}")
            case ActionPreference.STOP:
                raise InvocationFault(
                    f"the running command stopped because the warning preference is set to stop: {warning}",
                    code=FaultCode.PREFERENCE_STOP,
                    invocation=self._invocation,
                    cause=warning,
                )
            case _:
                self._warnings.add(warning)

    def _drain(self):
        while self._binder.obsolete:
            self.warn(self._binder.obsolete.popleft())

    # --- hooks ---

    def _call(self, hook, /):
        """Run a command hook, writing yielded objects, and classify what it raises."""
        try:
            result = hook()
            if inspect.isgenerator(result):
                for object in result:
                    self._output.add(object)
        except PipelineStoppedFault:
            raise
        except Exception as exception:
            if thrown(exception):
                raise
            if isinstance(exception, InvocationFault) and exception.invocation is not None:
                raise
            logger.debug(f"INVOKE {self._invocation.name}.{hook.__name__} raised {exception!r}")
            raise InvocationFault(
                f"{self._invocation.name}: {exception}",
                invocation=self._invocation,
                target=unwrap(self._current),
                cause=exception,
            ) from exception

    # --- lifecycle ---

    def prepare(self, defaults=None):
        """
        Bind command-line arguments (exactly once).

        The command's declared language mode, when it differs from the ambient
        one, is in force during binding and always restored afterwards.

        Raises
        - BindingFault / MandatoryMissingFault: command-line binding failures.
        """
        if self._prepared:
            raise RuntimeError(f"{self._invocation.name} is already prepared")
        self._prepared = True

        mode = self._type.language_mode
        if mode is not None and mode is not self._context.language_mode:
            scope = self._context.language(mode)
        else:
            scope = contextlib.nullcontext()
        with scope:
            self._binder.bind_command_line(self._arguments, defaults=defaults, pipeline=self._expecting)

    def begin(self):
        """
        Run the begin hook (exactly once).

        Queued obsolete-parameter warnings are drained first so the warning
        preference in force now decides their visibility.
        """
        if self._begun:
            return
        if not self._prepared:
            self.prepare()
        self._begun = True
        self._context.throw_if_stopping(self._invocation)

        if self.help_requested:
            for line in self._binder.metadata.syntax():
                self._output.add(line)
            return

        if self._type.obsolete:
            self.warn(ObsoleteCommandWarning(
                f"the command {self._invocation.name!r} is obsolete: {self._type.obsolete}"
            ))
        self._drain()
        self._call(self._command.begin)

    def read(self):
        """
        Make the next record ready; returns False when there is none.

        Commands without pipeline input succeed exactly once. Otherwise upstream
        objects are pulled until one binds and satisfies the mandatory
        parameters; objects that fail are isolated and skipped.

        Raises
        - PipelineStoppedFault: the stop flag is set (checked before each pull).
        """
        if self.help_requested or self._state is ReadState.BAILING:
            return False
        if self._state is ReadState.NOT_STARTED:
            if not self._expecting:
                self._state = ReadState.BAILING
                return True
            self._state = ReadState.AWAITING_MANDATORY

        while True:
            try:
                self._context.throw_if_stopping(self._invocation)
            except PipelineStoppedFault:
                self._state = ReadState.STOPPED
                raise

            object = self._input.retrieve()
            if object is eos:
                self._state = ReadState.BAILING
                self._current = None
                return False
            self._current = object

            try:
                if not self._binder.bind_pipeline(object):
                    raise BindingFault(
                        "the input object cannot be bound to any parameters of the command, either because the "
                        "command does not take pipeline input or the input and its properties do not match any "
                        "of the parameters that take pipeline input",
                        code=FaultCode.INPUT_OBJECT_NOT_BOUND,
                    )
                if missing := self._binder.unbound_mandatory():
                    raise MandatoryMissingFault(
                        "the input object cannot be bound because it did not contain the information required "
                        f"to bind mandatory parameters: {self._binder.missing(missing)}",
                        code=FaultCode.INPUT_OBJECT_MISSING_MANDATORY,
                        missing=tuple(descriptor.name for descriptor in missing),
                    )
            except BindingFault as fault:
                self.isolate(fault, object)
                continue
            return True

    def _process(self):
        self._context.throw_if_stopping(self._invocation)
        target = self._output if self._redirect else self._context.error_pipe
        scope = self._context.redirect_errors(target) if target is not None else contextlib.nullcontext()
        with scope:
            self._drain()
            self._invocation.records += 1
            self._call(self._command.process)

    def process_record(self):
        """
        Process the next record read() admits; returns False when there is none.

        The begin hook runs first, lazily. An outer driver calls this once per
        available upstream record (once in all for commands without pipeline input).

        Raises
        - PipelineStoppedFault, explicit throws: verbatim.
        - InvocationFault: anything else raised by the process hook.
        """
        self.begin()
        if not self.read():
            return False
        self._process()
        return True

    def pump(self):
        """
        Drive one step for a pulling downstream pipe.

        Processes the next record if there is one, otherwise ends the command.
        Returns False once the command has ended.
        """
        if self._ended:
            return False
        if not self.process_record():
            self.end()
        return True

    def end(self):
        """Run the end hook (exactly once; runs begin first when needed)."""
        if self._ended:
            return
        self.begin()
        self._ended = True
        if self.help_requested:
            return
        self._context.throw_if_stopping(self._invocation)
        self._current = None
        self._drain()
        self._call(self._command.end)

    def __repr__(self):
        return f"processor({self._invocation.name!r}, state={self._state.value})"


class Pipeline:
    """
    Minimal outer coordinator: stages connected by pull-driven pipes.

    Stages are command types, or tuples (command_type, arguments) /
    (command_type, arguments, options) where options are extra Processor
    keywords (e.g. redirect=True).
    """

    def __init__(self, *stages, context=Unset, registry=registry):
        if not stages:
            raise TypeError("a pipeline requires at least one stage")
        self._stages = tuple(stage if isinstance(stage, tuple) else (stage,) for stage in stages)
        self._context = ExecutionContext() if context is Unset else context
        self._registry = registry
        self._errors = ErrorPipe(**self._context.options())
        self._warnings = WarningPipe(**self._context.options())

    context = mirror("context")
    errors = mirror("errors")
    warnings = mirror("warnings")

    def invoke(self, input=Unset, /, *, defaults=None):
        """
        Run the pipeline and return the objects written by the last stage.

        Isolated faults are collected in `errors`; terminal faults propagate.
        """
        processors = []
        upstream = Pipe(input) if input is not Unset else Unset
        for position, (command_type, *rest) in enumerate(self._stages, start=1):
            arguments = rest[0] if rest else ()
            options = rest[1] if len(rest) > 1 else {}
            output = Pipe()
            processor = Processor(
                command_type,
                context=self._context,
                arguments=arguments,
                input=upstream,
                output=output,
                errors=self._errors,
                warnings=self._warnings,
                position=position,
                registry=self._registry,
                **options
            )
            output.upstream = processor
            processors.append(processor)
            upstream = output

        for processor in processors:
            processor.prepare(defaults)
        for processor in processors:
            processor.begin()
        results = upstream.drain()
        # stages that take no pipeline input never pull their upstream dry
        for processor in processors:
            processor.end()
        return results


__all__ = (
    "Registry",
    "registry",
    "InvocationInfo",
    "ReadState",
    "Processor",
    "Pipeline",
)
