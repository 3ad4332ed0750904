"""
Typed parameters.

libvirt exchanges tunables (scheduler weights, memory limits, blkio
weights, ...) as arrays of virTypedParameter: a fixed-size name, a type
tag, and a union holding the value. This module provides the Python side
of that: TypedKind for the tag, TypedValue for one parameter, and
ParameterSet for an ordered collection of them.

Validation against the C layout (name length, payload types) happens in
the codec, at encode time. Values coming out of decode are always valid.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Iterator

from virtmarshal.ffi import constants


class TypedKind(IntEnum):
    """The type tag of a typed parameter, using libvirt's numbering."""

    INT32 = constants.VIR_TYPED_PARAM_INT
    UINT32 = constants.VIR_TYPED_PARAM_UINT
    INT64 = constants.VIR_TYPED_PARAM_LLONG
    UINT64 = constants.VIR_TYPED_PARAM_ULLONG
    DOUBLE = constants.VIR_TYPED_PARAM_DOUBLE
    BOOLEAN = constants.VIR_TYPED_PARAM_BOOLEAN
    STRING = constants.VIR_TYPED_PARAM_STRING

    @property
    def is_integer(self) -> bool:
        return self in _INTEGER_BITS

    @property
    def bits(self) -> int:
        """Width of an integer kind in bits."""
        return _INTEGER_BITS[self]

    @property
    def signed(self) -> bool:
        return self in (TypedKind.INT32, TypedKind.INT64)

    @classmethod
    def from_name(cls, name: str) -> "TypedKind":
        """
        Look up a kind by name, case-insensitively.

        Accepts both our names ("int32", "uint64") and libvirt's short
        names ("int", "uint", "llong", "ullong", "boolean", ...).
        """
        key = name.strip().lower()
        if key in _ALIASES:
            return _ALIASES[key]
        try:
            return cls[key.upper()]
        except KeyError:
            raise ValueError(f"Unknown typed parameter kind: {name!r}") from None


_INTEGER_BITS = {
    TypedKind.INT32: 32,
    TypedKind.UINT32: 32,
    TypedKind.INT64: 64,
    TypedKind.UINT64: 64,
}

_ALIASES = {
    "int": TypedKind.INT32,
    "uint": TypedKind.UINT32,
    "llong": TypedKind.INT64,
    "ullong": TypedKind.UINT64,
    "bool": TypedKind.BOOLEAN,
    "str": TypedKind.STRING,
}


@dataclass(frozen=True)
class TypedValue:
    """
    One named, typed parameter.

    Attributes:
        name: Parameter name (hypervisor specific, e.g. "cpu_shares")
        kind: Which union arm the payload occupies
        payload: The value: int for the integer kinds, float for DOUBLE,
                 bool for BOOLEAN, str for STRING
    """
    name: str
    kind: TypedKind
    payload: int | float | bool | str | None

    def __str__(self) -> str:
        return f"{self.name} ({self.kind.name.lower()}) = {self.payload!r}"


class ParameterSet:
    """
    An ordered collection of typed parameters, unique by name.

    Insertion order is kept; nothing is ever sorted. Adding a value whose
    name is already present replaces the old value but keeps the name's
    original position.

    Usage:
        params = ParameterSet([
            TypedValue("cpu_shares", TypedKind.UINT64, 1024),
            TypedValue("vcpu_quota", TypedKind.INT64, -1),
        ])
        params["cpu_shares"].payload  # 1024
        params.to_dict()              # {"cpu_shares": 1024, "vcpu_quota": -1}
    """

    def __init__(self, values: Iterable[TypedValue] = ()):
        self._values: dict[str, TypedValue] = {}
        for value in values:
            self.add(value)

    def add(self, value: TypedValue):
        """Add a value, replacing any earlier value with the same name."""
        self._values[value.name] = value

    def get(self, name: str, default=None) -> TypedValue | None:
        return self._values.get(name, default)

    def names(self) -> list[str]:
        return list(self._values)

    def to_dict(self) -> dict:
        """Convert to a plain name -> payload mapping, preserving order."""
        return {name: value.payload for name, value in self._values.items()}

    def __getitem__(self, name: str) -> TypedValue:
        return self._values[name]

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[TypedValue]:
        return iter(self._values.values())

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParameterSet):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self) -> str:
        return f"ParameterSet({list(self)!r})"
