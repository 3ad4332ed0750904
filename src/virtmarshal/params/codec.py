"""
Typed parameter codec.

Converts between ParameterSet and arrays of the C virTypedParameter
record:

    struct virTypedParameter {       // 96 bytes on 64-bit
        char field[80];              // Offset 0:  NUL-terminated name
        int type;                    // Offset 80: VIR_TYPED_PARAM_* tag
        union { ... } value;         // Offset 88: 8-byte union
    };

Both directions are all-or-nothing. decode() builds the whole result
before returning it, so a bad record leaves nothing half-populated.
encode() validates every entry before it allocates anything.
"""

import logging
from dataclasses import dataclass, field

from virtmarshal.errors import DecodeError, InvalidValueError, NameTooLongError
from virtmarshal.ffi import ffi
from virtmarshal.ffi.constants import VIR_TYPED_PARAM_FIELD_LENGTH

from .typed import ParameterSet, TypedKind, TypedValue

logger = logging.getLogger(__name__)


@dataclass
class EncodedParameters:
    """
    A virTypedParameter array ready to hand to libvirt.

    String payloads point into buffers owned by this object, so it must
    stay alive for as long as the C side uses the array.

    Attributes:
        array: cffi "virTypedParameter[]" array
        count: Number of records in the array
    """
    array: object
    count: int
    _keepalive: list = field(default_factory=list, repr=False)

    def __len__(self) -> int:
        return self.count


def fits(kind: TypedKind, value: int) -> bool:
    """
    Check whether an integer is in range for an integer kind.

    The codec wraps out-of-range integers around (like a C cast), so
    callers that care should check with this first.
    """
    if kind.signed:
        low = -(1 << (kind.bits - 1))
        high = (1 << (kind.bits - 1)) - 1
    else:
        low = 0
        high = (1 << kind.bits) - 1
    return low <= value <= high


def wrap(kind: TypedKind, value: int) -> int:
    """Reduce an integer to a kind's width with two's-complement wraparound."""
    mask = (1 << kind.bits) - 1
    value &= mask
    if kind.signed and value >= 1 << (kind.bits - 1):
        value -= 1 << kind.bits
    return value


# ─────────────────────────────────────────────────────────────
# Decoding
# ─────────────────────────────────────────────────────────────

def decode(raw, count: int) -> ParameterSet:
    """
    Decode an array of virTypedParameter records.

    Args:
        raw: cffi array or pointer to the first record.
        count: Number of records to read.

    Returns:
        A new ParameterSet, in array order.

    Raises:
        DecodeError: If any record has an unknown type tag, a NULL string,
                     or undecodable text. Nothing is returned in that case.
    """
    values = []
    for index in range(count):
        values.append(_decode_record(raw[index], index))
    return ParameterSet(values)


def _decode_record(record, index: int) -> TypedValue:
    try:
        name = ffi.string(record.field, VIR_TYPED_PARAM_FIELD_LENGTH).decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Record {index}: name is not valid UTF-8") from e

    try:
        kind = TypedKind(record.type)
    except ValueError:
        # A tag newer than this code knows about. Reading the union
        # with a guessed arm would silently produce garbage.
        raise DecodeError(
            f"Record {index} ({name!r}): unknown typed parameter kind {record.type}"
        ) from None

    value = record.value
    if kind == TypedKind.INT32:
        payload = value.i
    elif kind == TypedKind.UINT32:
        payload = value.ui
    elif kind == TypedKind.INT64:
        payload = value.l
    elif kind == TypedKind.UINT64:
        payload = value.ul
    elif kind == TypedKind.DOUBLE:
        payload = value.d
    elif kind == TypedKind.BOOLEAN:
        # char reads back as a 1-byte bytes object
        payload = value.b != b"\x00"
    else:
        if value.s == ffi.NULL:
            raise DecodeError(f"Record {index} ({name!r}): string value is NULL")
        try:
            payload = ffi.string(value.s).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(
                f"Record {index} ({name!r}): string value is not valid UTF-8"
            ) from e

    return TypedValue(name=name, kind=kind, payload=payload)


# ─────────────────────────────────────────────────────────────
# Encoding
# ─────────────────────────────────────────────────────────────

def encode(params: ParameterSet) -> EncodedParameters:
    """
    Encode a ParameterSet into a virTypedParameter array.

    Every entry is validated before anything is allocated, so a failure
    never leaves a partially written array behind.

    Raises:
        NameTooLongError: If a name needs more than 79 bytes of UTF-8.
        InvalidValueError: If a payload doesn't match its kind (including
                           a STRING entry with no string).
    """
    values = list(params)
    for value in values:
        _validate(value)

    count = len(values)
    encoded = EncodedParameters(
        array=ffi.new("virTypedParameter[]", count),
        count=count,
    )
    for index, value in enumerate(values):
        _encode_record(encoded, encoded.array[index], value)

    logger.debug(f"Encoded {count} typed parameters")
    return encoded


def _validate(value: TypedValue):
    if not isinstance(value.name, str):
        raise InvalidValueError(f"Parameter name must be a str, got {value.name!r}")
    raw_name = value.name.encode("utf-8")
    if b"\x00" in raw_name:
        raise InvalidValueError(f"Parameter name {value.name!r} contains NUL")
    if len(raw_name) >= VIR_TYPED_PARAM_FIELD_LENGTH:
        raise NameTooLongError(value.name, VIR_TYPED_PARAM_FIELD_LENGTH)

    try:
        kind = TypedKind(value.kind)
    except ValueError:
        raise InvalidValueError(
            f"{value.name!r}: unknown typed parameter kind {value.kind!r}"
        ) from None

    payload = value.payload
    if kind.is_integer:
        # bool is an int subclass, but True as a cpu_shares is a mistake
        if not isinstance(payload, int) or isinstance(payload, bool):
            raise InvalidValueError(
                f"{value.name!r}: {kind.name} needs an int, got {payload!r}"
            )
    elif kind == TypedKind.DOUBLE:
        if not isinstance(payload, (int, float)) or isinstance(payload, bool):
            raise InvalidValueError(
                f"{value.name!r}: DOUBLE needs a float, got {payload!r}"
            )
    elif kind == TypedKind.BOOLEAN:
        if not isinstance(payload, bool):
            raise InvalidValueError(
                f"{value.name!r}: BOOLEAN needs a bool, got {payload!r}"
            )
    else:
        if payload is None:
            raise InvalidValueError(f"{value.name!r}: STRING value may not be None")
        if not isinstance(payload, str):
            raise InvalidValueError(
                f"{value.name!r}: STRING needs a str, got {payload!r}"
            )
        if "\x00" in payload:
            raise InvalidValueError(f"{value.name!r}: STRING value contains NUL")


def _encode_record(encoded: EncodedParameters, record, value: TypedValue):
    # The array comes from ffi.new, so the name field is already zeroed
    # and the terminator is in place after the copy.
    record.field = value.name.encode("utf-8")
    kind = TypedKind(value.kind)
    record.type = int(kind)

    if kind == TypedKind.INT32:
        record.value.i = wrap(kind, value.payload)
    elif kind == TypedKind.UINT32:
        record.value.ui = wrap(kind, value.payload)
    elif kind == TypedKind.INT64:
        record.value.l = wrap(kind, value.payload)
    elif kind == TypedKind.UINT64:
        record.value.ul = wrap(kind, value.payload)
    elif kind == TypedKind.DOUBLE:
        record.value.d = float(value.payload)
    elif kind == TypedKind.BOOLEAN:
        record.value.b = b"\x01" if value.payload else b"\x00"
    else:
        buf = ffi.new("char[]", value.payload.encode("utf-8"))
        encoded._keepalive.append(buf)
        record.value.s = buf
