"""
Test the typed parameter codec against the virTypedParameter layout.
"""

import pytest

from virtmarshal.errors import DecodeError, InvalidValueError, NameTooLongError
from virtmarshal.ffi import ffi
from virtmarshal.params import ParameterSet, TypedKind, TypedValue, decode, encode, fits
from virtmarshal.params.codec import wrap


def make_set(*values) -> ParameterSet:
    return ParameterSet(TypedValue(*value) for value in values)


class TestRecordLayout:
    def test_record_size(self):
        # char[80] + int + padding + 8-byte union
        assert ffi.sizeof("virTypedParameter") == 96

    def test_field_offsets(self):
        assert ffi.offsetof("virTypedParameter", "field") == 0
        assert ffi.offsetof("virTypedParameter", "type") == 80
        assert ffi.offsetof("virTypedParameter", "value") == 88


class TestRoundTrip:
    def test_every_kind(self):
        params = make_set(
            ("weight", TypedKind.INT32, -5),
            ("cap", TypedKind.UINT32, 4000000000),
            ("quota", TypedKind.INT64, -(1 << 62)),
            ("hard_limit", TypedKind.UINT64, (1 << 64) - 1),
            ("ratio", TypedKind.DOUBLE, 0.25),
            ("enabled", TypedKind.BOOLEAN, True),
            ("device_weight", TypedKind.STRING, "/dev/sda,500"),
        )

        encoded = encode(params)

        assert encoded.count == 7
        assert decode(encoded.array, encoded.count) == params

    def test_order_is_kept(self):
        params = make_set(
            ("z", TypedKind.INT32, 1),
            ("m", TypedKind.INT32, 2),
            ("a", TypedKind.INT32, 3),
        )
        encoded = encode(params)

        assert decode(encoded.array, encoded.count).names() == ["z", "m", "a"]

    def test_empty_set(self):
        encoded = encode(ParameterSet())

        assert len(encoded) == 0
        assert decode(encoded.array, 0) == ParameterSet()

    def test_unicode(self):
        params = make_set(("nom", TypedKind.STRING, "déjà vu"))
        encoded = encode(params)

        assert decode(encoded.array, 1)["nom"].payload == "déjà vu"

    def test_raw_record_contents(self):
        encoded = encode(make_set(("cpu_shares", TypedKind.UINT64, 1024)))
        record = encoded.array[0]

        assert ffi.string(record.field) == b"cpu_shares"
        assert record.type == 4
        assert record.value.ul == 1024

    def test_boolean_written_as_zero_or_one(self):
        encoded = encode(make_set(
            ("on", TypedKind.BOOLEAN, True),
            ("off", TypedKind.BOOLEAN, False),
        ))

        assert encoded.array[0].value.b == b"\x01"
        assert encoded.array[1].value.b == b"\x00"


class TestNameCapacity:
    def test_79_bytes_fit(self):
        name = "n" * 79
        encoded = encode(make_set((name, TypedKind.INT32, 1)))

        assert decode(encoded.array, 1).names() == [name]

    def test_80_bytes_rejected(self):
        with pytest.raises(NameTooLongError):
            encode(make_set(("n" * 80, TypedKind.INT32, 1)))

    def test_multibyte_name_counts_bytes(self):
        # 40 characters, 80 bytes of UTF-8
        with pytest.raises(NameTooLongError):
            encode(make_set(("é" * 40, TypedKind.INT32, 1)))

    def test_90_byte_name_allocates_nothing(self, monkeypatch):
        allocations = []
        real_new = ffi.new

        def spy_new(*args):
            allocations.append(args)
            return real_new(*args)

        monkeypatch.setattr(ffi, "new", spy_new)

        params = make_set(
            ("fine", TypedKind.STRING, "ok"),
            ("x" * 90, TypedKind.INT32, 1),
        )
        with pytest.raises(NameTooLongError) as excinfo:
            encode(params)

        assert allocations == []
        assert excinfo.value.capacity == 80
        assert excinfo.value.name == "x" * 90


class TestEncodeValidation:
    def test_none_string_rejected(self):
        with pytest.raises(InvalidValueError, match="None"):
            encode(make_set(("path", TypedKind.STRING, None)))

    def test_string_with_nul_rejected(self):
        with pytest.raises(InvalidValueError):
            encode(make_set(("path", TypedKind.STRING, "a\x00b")))

    def test_name_with_nul_rejected(self):
        with pytest.raises(InvalidValueError):
            encode(make_set(("a\x00b", TypedKind.INT32, 1)))

    def test_bool_is_not_an_integer(self):
        with pytest.raises(InvalidValueError):
            encode(make_set(("cpu_shares", TypedKind.UINT64, True)))

    def test_integer_is_not_a_boolean(self):
        with pytest.raises(InvalidValueError, match="BOOLEAN"):
            encode(make_set(("enabled", TypedKind.BOOLEAN, 2)))

    def test_string_is_not_an_integer(self):
        with pytest.raises(InvalidValueError):
            encode(make_set(("cpu_shares", TypedKind.UINT64, "1024")))

    def test_double_accepts_int(self):
        encoded = encode(make_set(("ratio", TypedKind.DOUBLE, 2)))

        assert decode(encoded.array, 1)["ratio"].payload == 2.0

    def test_unknown_kind_rejected(self):
        with pytest.raises(InvalidValueError, match="unknown typed parameter kind"):
            encode(ParameterSet([TypedValue("x", 42, 1)]))


class TestIntegerWidths:
    def test_int32_wraps(self):
        encoded = encode(make_set(("x", TypedKind.INT32, 1 << 31)))

        assert decode(encoded.array, 1)["x"].payload == -(1 << 31)

    def test_uint32_wraps(self):
        encoded = encode(make_set(("x", TypedKind.UINT32, -1)))

        assert decode(encoded.array, 1)["x"].payload == 0xFFFFFFFF

    def test_wrap(self):
        assert wrap(TypedKind.INT64, 1 << 63) == -(1 << 63)
        assert wrap(TypedKind.UINT64, 1 << 64) == 0
        assert wrap(TypedKind.INT32, -1) == -1

    def test_fits(self):
        assert fits(TypedKind.INT32, (1 << 31) - 1)
        assert not fits(TypedKind.INT32, 1 << 31)
        assert fits(TypedKind.UINT32, 0xFFFFFFFF)
        assert not fits(TypedKind.UINT32, -1)
        assert fits(TypedKind.INT64, -(1 << 63))
        assert not fits(TypedKind.UINT64, 1 << 64)


class TestDecodeErrors:
    def setup_method(self):
        self.encoded = encode(make_set(
            ("cpu_shares", TypedKind.UINT64, 1024),
            ("label", TypedKind.STRING, "gold"),
        ))

    def test_unknown_kind(self):
        self.encoded.array[1].type = 99

        with pytest.raises(DecodeError, match="99"):
            decode(self.encoded.array, 2)

    def test_null_string(self):
        self.encoded.array[1].value.s = ffi.NULL

        with pytest.raises(DecodeError, match="NULL"):
            decode(self.encoded.array, 2)

    def test_invalid_utf8_name(self):
        self.encoded.array[0].field = b"\xff\xfe"

        with pytest.raises(DecodeError, match="UTF-8"):
            decode(self.encoded.array, 2)

    def test_nonzero_boolean_byte_is_true(self):
        encoded = encode(make_set(("enabled", TypedKind.BOOLEAN, False)))
        encoded.array[0].value.b = b"\x07"

        assert decode(encoded.array, 1)["enabled"].payload is True

    def test_decodes_only_count_records(self):
        self.encoded.array[1].type = 99

        # The bad record is past the count, so it's never looked at
        assert decode(self.encoded.array, 1).names() == ["cpu_shares"]
