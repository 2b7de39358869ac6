"""
pipewright utilities (internal helpers shared by every layer)

Scope
- The few primitives the declaration, binding and lifecycle modules agree on.
  They are exported, but their main audience is the rest of the package.

Overview
- Unset (UnsetType)
  • The "no value given" marker. None stays available as a real parameter
    value, so declarations default to Unset instead.
- coalesce(value, default=None)
  • Materialize Unset; every other value, falsey ones included, passes through.
- rename(callable, name) / @rename(name)
  • Give generated closures a readable __name__/__qualname__ for tracebacks
    and debug records.
- mirror("attr")
  • Property over self._attr that hands out a read-only view when the backing
    value is a container (tuple, MappingProxyType or frozenset).

Pipeline objects themselves are never passed through mirror(): a bound value
or a record is returned exactly as the command produced it.
"""
import builtins
from collections.abc import Sequence, Mapping, Set
from types import MappingProxyType
from typing import final


@final
class UnsetType:
    """
    Type of the Unset marker.

    One instance per process; it is falsey, prints as "Unset", survives
    copy/deepcopy/pickle as itself, and takes part in PEP 604 unions
    (``str | UnsetType``). Subclassing is refused.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __or__(self, other, /):
        try:
            return type(self) | other
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo, /):
        return self

    def __reduce__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


Unset = UnsetType()


def coalesce(object, default=None, /):
    """
    ``default`` when ``object`` is Unset, otherwise ``object`` unchanged.

    >>> coalesce(Unset, 3), coalesce(None, 3), coalesce(0, 3)
    (3, None, 0)
    """
    if object is Unset:
        return default
    return object


def _retitle(callable, name, /):
    if not builtins.callable(callable):
        raise TypeError("rename() first argument must be callable")
    if not isinstance(name, str):
        raise TypeError("rename() name must be a string")
    try:
        callable.__name__ = callable.__qualname__ = name
    except (AttributeError, TypeError):
        raise TypeError(f"cannot rename {type(callable).__name__!r} objects") from None
    return callable


def rename(*parameters):
    """
    rename(callable, name) updates the names in place and returns the callable;
    rename(name) returns a decorator doing the same.
    """
    if len(parameters) == 2:
        return _retitle(*parameters)
    if len(parameters) != 1:
        raise TypeError(f"rename() takes 1 or 2 arguments ({len(parameters)} given)")
    name, = parameters
    if not isinstance(name, str):
        raise TypeError("rename() name must be a string")
    return _retitle(lambda callable: _retitle(callable, name), "rename")


def _view(object):
    # strings and tuples are already immutable sequences
    if isinstance(object, Sequence) and not isinstance(object, (str, bytes, bytearray, tuple)):
        return tuple(object)
    if isinstance(object, Mapping) and not isinstance(object, MappingProxyType):
        return MappingProxyType(object)
    if isinstance(object, Set) and not isinstance(object, frozenset):
        return frozenset(object)
    return object


def mirror(name, /):
    """
    Read-only property exposing ``self._<name>``.

    Containers come back as views: a descriptor's aliases can be read by a
    command, but never edited in place.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")
    attribute = "_" + name

    def getter(self):
        return _view(getattr(self, attribute))

    return property(_retitle(getter, name))


__all__ = (
    "UnsetType",
    "Unset",
    "coalesce",
    "rename",
    "mirror",
)
