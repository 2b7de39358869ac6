"""
Object envelope and the property-accessor capability.

By-property-name binding only needs to enumerate and look up named properties
on an upstream object; it never assumes a concrete object shape. This module
provides that capability as a protocol, plus a light envelope that wraps any
object, carries extra note properties, and holds the provenance marker.

Lookup order (case-insensitive)
  1. note properties attached to the envelope,
  2. mapping keys, when the base object is a Mapping with string keys,
  3. public attributes of the base object.
"""
from collections.abc import Mapping
from types import MappingProxyType
from typing import Protocol, runtime_checkable

from .utils import *


@runtime_checkable
class PropertyAccessor(Protocol):
    """Capability: enumerate and look up named properties of an object."""

    def properties(self):
        ...

    def lookup(self, name, /):
        ...


class Envelope:
    """
    Wrapper around an upstream pipeline object.

    Parameters
    - base: the wrapped object (never another Envelope; nested envelopes collapse).
    - untrusted: provenance marker; values derived from this object inherit it.
    - properties: extra note properties shadowing the base's own properties.
    """
    __slots__ = ("_base", "_untrusted", "_properties")

    def __init__(self, base, /, *, untrusted=False, properties=Unset):
        if isinstance(base, Envelope):
            untrusted = untrusted or base.untrusted
            properties = dict(base.notes) | dict(coalesce(properties, {}))
            base = base.base
        if not isinstance(properties := coalesce(properties, {}), Mapping):
            raise TypeError("envelope 'properties' must be a mapping")
        self._base = base
        self._untrusted = bool(untrusted)
        self._properties = MappingProxyType(dict(properties))

    @property
    def base(self):
        """The wrapped object itself (never a read-only view)."""
        return self._base

    untrusted = mirror("untrusted")
    notes = mirror("properties")

    def properties(self):
        names = {}
        for name in self._properties:
            names.setdefault(name.lower(), name)
        if isinstance(self._base, Mapping):
            for name in self._base:
                if isinstance(name, str):
                    names.setdefault(name.lower(), name)
        for name in dir(self._base):
            if not name.startswith("_"):
                names.setdefault(name.lower(), name)
        return tuple(names.values())

    def lookup(self, name, /):
        """Return the property value for `name` (case-insensitive), or Unset."""
        folded = name.lower()
        for key, value in self._properties.items():
            if key.lower() == folded:
                return value
        if isinstance(self._base, Mapping):
            for key, value in self._base.items():
                if isinstance(key, str) and key.lower() == folded:
                    return value
            return Unset
        if folded.startswith("_"):
            return Unset
        for attribute in dir(self._base):
            if attribute.lower() == folded:
                try:
                    return getattr(self._base, attribute)
                except AttributeError:
                    return Unset
        return Unset

    def __eq__(self, other):
        if isinstance(other, Envelope):
            return self._base == other._base
        return NotImplemented

    def __hash__(self):
        return hash(self._base)

    def __repr__(self):
        flag = ", untrusted=True" if self._untrusted else ""
        return f"envelope({self._base!r}{flag})"


def accessor(object, /):
    """The property accessor of `object` (wrapping it on the fly if needed)."""
    if isinstance(object, Envelope):
        return object
    if isinstance(object, PropertyAccessor):
        return object
    return Envelope(object)


def unwrap(object, /):
    """Base object of an envelope; any other object is returned unchanged."""
    while isinstance(object, Envelope):
        object = object.base
    return object


def untrusted(object, /):
    """Whether `object` carries the untrusted provenance marker."""
    return isinstance(object, Envelope) and object.untrusted


__all__ = (
    "PropertyAccessor",
    "Envelope",
    "accessor",
    "unwrap",
    "untrusted",
)
