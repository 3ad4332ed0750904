"""
Reading and writing typed parameter groups.

Getting a group is a two-phase query whose buffer is decoded with the
codec. Setting one needs a little more: callers hand us plain values
("cpu_shares": 2048), but libvirt needs each one tagged with the exact
kind it expects. We learn the kinds by reading the group first, then
coerce the caller's values to them and send only the names supplied.
"""

import logging
from typing import Any, Mapping

from virtmarshal.errors import InvalidValueError, SubsystemError
from virtmarshal.ffi import ffi
from virtmarshal.query.two_phase import ArrayLayout, run_two_phase
from virtmarshal.subsystem import ParameterGroup, Subsystem

from .codec import decode, encode, fits
from .typed import ParameterSet, TypedKind, TypedValue

logger = logging.getLogger(__name__)


def get_parameters(subsystem: Subsystem, handle, group: ParameterGroup,
                   flags: int = 0) -> ParameterSet:
    """
    Read a typed parameter group.

    Args:
        subsystem: Where to query.
        handle: The group's owner (domain handle, or the connection for
                node memory).
        group: Which group to read.
        flags: Passed through (VIR_DOMAIN_AFFECT_*, VIR_TYPED_PARAM_STRING_OKAY).

    Returns:
        The group's parameters, in the order libvirt reported them.

    Raises:
        QueryError: If libvirt fails either phase.
        DecodeError: If a record can't be decoded.
    """
    nparams = ffi.new("int *", 0)

    def probe() -> int:
        nparams[0] = 0
        if subsystem.get_typed_parameters(handle, group, ffi.NULL, nparams, flags) < 0:
            return -1
        return nparams[0]

    def fetch(buffer, size: int) -> int:
        nparams[0] = size
        if subsystem.get_typed_parameters(handle, group, buffer, nparams, flags) < 0:
            return -1
        return nparams[0]

    layout = ArrayLayout(
        "virTypedParameter",
        convert=decode,
        release=subsystem.release_typed_parameters,
        empty=ParameterSet,
    )
    return run_two_phase(
        f"get {group.value} parameters",
        group.owner,
        probe,
        fetch,
        layout,
        error_detail=subsystem.last_error,
    )


def coerce(name: str, kind: TypedKind, value: Any) -> TypedValue:
    """
    Convert a plain Python value to a TypedValue of the given kind.

    Strings are parsed for the numeric and boolean kinds, so values typed
    on a command line work too.

    Raises:
        InvalidValueError: If the value can't represent the kind, or an
                           integer is out of range for it.
    """
    try:
        if kind.is_integer:
            if isinstance(value, bool) or isinstance(value, float):
                raise ValueError(value)
            payload = int(value, 0) if isinstance(value, str) else int(value)
            if not fits(kind, payload):
                raise InvalidValueError(
                    f"{name!r}: {payload} is out of range for {kind.name}"
                )
        elif kind == TypedKind.DOUBLE:
            if isinstance(value, bool):
                raise ValueError(value)
            payload = float(value)
        elif kind == TypedKind.BOOLEAN:
            payload = _parse_bool(value)
        else:
            if value is None:
                raise ValueError(value)
            payload = str(value)
    except (TypeError, ValueError):
        raise InvalidValueError(
            f"{name!r}: can't use {value!r} as {kind.name}"
        ) from None

    return TypedValue(name=name, kind=kind, payload=payload)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
    raise ValueError(value)


def set_parameters(subsystem: Subsystem, handle, group: ParameterGroup,
                   values: Mapping[str, Any], flags: int = 0) -> ParameterSet:
    """
    Update some parameters of a typed parameter group.

    Only the names in values are sent. Names not present in the current
    group are rejected, since libvirt can't be told a kind for them.

    Args:
        subsystem: Where to apply the change.
        handle: The group's owner.
        group: Which group to update.
        values: name -> new value.
        flags: Passed through to both the read and the write.

    Returns:
        The ParameterSet that was sent.

    Raises:
        InvalidValueError: For unknown names or values that don't fit.
        QueryError: If reading the current group fails.
        SubsystemError: If libvirt rejects the update.
    """
    current = get_parameters(subsystem, handle, group, flags)

    update = ParameterSet()
    for name, value in values.items():
        existing = current.get(name)
        if existing is None:
            known = ", ".join(current.names()) or "none"
            raise InvalidValueError(
                f"Unknown {group.value} parameter {name!r} (known: {known})"
            )
        update.add(coerce(name, existing.kind, value))

    if len(update) == 0:
        return update

    encoded = encode(update)
    result = subsystem.set_typed_parameters(
        handle, group, encoded.array, encoded.count, flags
    )
    if result < 0:
        raise SubsystemError(
            f"set {group.value} parameters", group.owner, subsystem.last_error()
        )

    logger.info(f"Applied {len(update)} {group.value} parameters: {update.names()}")
    return update
