"""
Execution context and pipes.

Scope
- Pipe: ordered FIFO between two stages. An exhausted pipe returns `eos`.
  A pipe may have an upstream processor: retrieve() then drives that
  processor one step at a time until it yields an object or ends, which is a
  coroutine-like handoff inside a single thread (no blocking, no threads).
- ErrorPipe / WarningPipe: ordered sinks for isolated faults and deferred
  warnings. In shell mode every entry is also rendered on the rich stderr
  console; outside shell mode warnings are additionally issued through
  `warnings`. Sink writes never raise on their own.
- ExecutionContext: ambient language mode, warning preference, ambient error
  pipe, cooperative stop flag, and the rendering flags (shell/fancy/colorful).
"""
import contextlib
from collections import deque

from .coercion import ActionPreference, LanguageMode, assign
from .eos import eos
from .faults import *
from .utils import *


class Pipe:
    """
    Ordered FIFO of pipeline objects.

    Parameters
    - objects: initial content.
    - upstream: optional processor that feeds this pipe; pulled lazily.
    """

    def __init__(self, objects=(), /, *, upstream=None):
        self._objects = deque(objects)
        self._upstream = upstream

    @property
    def upstream(self):
        return self._upstream

    @upstream.setter
    def upstream(self, processor):
        if processor is not None and not callable(getattr(processor, "pump", None)):
            raise TypeError("pipe upstream must be a processor")
        self._upstream = processor

    @property
    def pending(self):
        """Number of buffered objects (upstream not consulted)."""
        return len(self._objects)

    def add(self, object, /):
        self._objects.append(object)

    def extend(self, objects, /):
        self._objects.extend(objects)

    def retrieve(self):
        """
        Next object, or `eos` when the pipe (and its upstream) is exhausted.

        Each upstream step may produce zero or more objects; steps are driven
        only while the buffer is empty, which preserves pull order.
        """
        while not self._objects:
            if self._upstream is None or not self._upstream.pump():
                return eos
        return self._objects.popleft()

    def drain(self):
        """Retrieve everything up to `eos` as a list."""
        return list(self)

    def __iter__(self):
        while (object := self.retrieve()) is not eos:
            yield object

    def __repr__(self):
        return f"{type(self).__name__.lower()}({list(self._objects)!r})"


class ErrorPipe(Pipe):
    """Ordered sink of isolated faults."""

    def __init__(self, objects=(), /, *, shell=False, fancy=False, colorful=True):
        super().__init__(objects)
        self._options = {"shell": shell, "fancy": fancy, "colorful": colorful}

    def add(self, fault, /):
        super().add(fault)
        if self._options["shell"] and isinstance(fault, PipelineFault):
            trigger(fault, **self._options)


class WarningPipe(Pipe):
    """Ordered sink of warnings."""

    def __init__(self, objects=(), /, *, shell=False, fancy=False, colorful=True):
        super().__init__(objects)
        self._options = {"shell": shell, "fancy": fancy, "colorful": colorful}

    def add(self, warning, /):
        super().add(warning)
        if isinstance(warning, PipelineWarning):
            trigger(warning, **self._options)


class ExecutionContext:
    """
    Ambient execution/security context shared by the stages of a pipeline.

    Parameters
    - language_mode: LanguageMode in force (FULL by default).
    - warning_preference: ActionPreference (or its name) for warnings; goes
      through the direct-assignment path, so SUSPEND is rejected.
    - shell: render faults/warnings instead of raising/warning.
    - fancy: render inside panels.
    - colorful: use styles when rendering.
    """

    def __init__(
            self,
            *,
            language_mode=LanguageMode.FULL,
            warning_preference=ActionPreference.CONTINUE,
            shell=False,
            fancy=False,
            colorful=True
    ):
        self.language_mode = language_mode
        self.warning_preference = warning_preference
        self._shell = bool(shell)
        self._fancy = bool(fancy)
        self._colorful = bool(colorful)
        self._error_pipe = None
        self._stopping = False

    shell = mirror("shell")
    fancy = mirror("fancy")
    colorful = mirror("colorful")
    stopping = mirror("stopping")

    @property
    def language_mode(self):
        return self._language_mode

    @language_mode.setter
    def language_mode(self, mode):
        if not isinstance(mode, LanguageMode):
            raise TypeError("context 'language_mode' must be a LanguageMode")
        self._language_mode = mode

    @property
    def warning_preference(self):
        return self._warning_preference

    @warning_preference.setter
    def warning_preference(self, preference):
        self._warning_preference = assign(preference, ActionPreference, self._language_mode)

    @property
    def error_pipe(self):
        """Ambient error pipe of the running stage, or None."""
        return self._error_pipe

    @error_pipe.setter
    def error_pipe(self, pipe):
        if pipe is not None and not isinstance(pipe, Pipe):
            raise TypeError("context 'error_pipe' must be a pipe")
        self._error_pipe = pipe

    def options(self):
        """Rendering options forwarded to trigger()."""
        return {"shell": self._shell, "fancy": self._fancy, "colorful": self._colorful}

    def stop(self):
        """Request a cooperative stop; observed at the next read/process boundary."""
        self._stopping = True

    def throw_if_stopping(self, invocation=None):
        if self._stopping:
            raise PipelineStoppedFault(
                "the pipeline has been stopped",
                invocation=invocation,
                hint="the stop was requested by the host; no further records are processed",
            )

    @contextlib.contextmanager
    def language(self, mode):
        """Switch the language mode for the duration of the block; always restores."""
        previous = self._language_mode
        self.language_mode = mode
        try:
            yield self
        finally:
            self._language_mode = previous

    @contextlib.contextmanager
    def redirect_errors(self, pipe):
        """Install `pipe` as the ambient error pipe for the block; always restores."""
        previous = self._error_pipe
        self.error_pipe = pipe
        try:
            yield pipe
        finally:
            self._error_pipe = previous

    def __repr__(self):
        return (
            f"execution-context(language_mode={self._language_mode.name}, "
            f"warning_preference={self._warning_preference.name}, stopping={self._stopping})"
        )


__all__ = (
    "Pipe",
    "ErrorPipe",
    "WarningPipe",
    "ExecutionContext",
)
