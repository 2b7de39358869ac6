"""
End-of-stream marker (implementation detail of the pipes).

This module defines a process-wide singleton `eos` and its type `EndOfStreamType`.
An exhausted pipe returns `eos` from retrieve(), which lets a reader distinguish
"no more input" from an upstream stage that legitimately emitted None.

Semantics
  • Falsy: bool(eos) is False.
  • Stable string form: repr(eos) == "eos" (and Rich uses a dim style).
  • Identity: EndOfStreamType() always returns the same instance per interpreter;
    copy, deepcopy and pickle preserve it.

Typical internal usage
    object = pipe.retrieve()
    if object is eos:
        return False
"""
import functools

from rich.text import Text


class EndOfStreamType:
    """
    Singleton type of the end-of-stream marker.

    Notes
    - This type is final; subclassing is blocked to preserve semantics.
    - Instances are singletons per interpreter process.
    """

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def nullify(self, object, default=None, /):
        """
        Replace the marker with a concrete default; pass through other objects.

        Returns
        - default when `object is self`, otherwise `object` unchanged (None included).
        """
        if object is self:
            return default
        return object

    def __bool__(self):
        return False

    def __rich__(self):
        return Text(repr(self), style="dim")

    def __repr__(self):
        return "eos"

    def __reduce__(self):
        return "eos"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'EndOfStreamType' is not an acceptable base type")


eos = EndOfStreamType()


__all__ = (
    "EndOfStreamType",
    "eos",
)
