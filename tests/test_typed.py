"""
Tests for TypedKind, TypedValue and ParameterSet.
"""

import pytest

from virtmarshal.params import ParameterSet, TypedKind, TypedValue


class TestTypedKind:
    def test_libvirt_numbering(self):
        assert [int(kind) for kind in TypedKind] == [1, 2, 3, 4, 5, 6, 7]

    def test_integer_properties(self):
        assert TypedKind.INT32.is_integer
        assert TypedKind.INT32.bits == 32
        assert TypedKind.INT32.signed
        assert TypedKind.UINT64.bits == 64
        assert not TypedKind.UINT64.signed
        assert not TypedKind.DOUBLE.is_integer
        assert not TypedKind.STRING.is_integer

    @pytest.mark.parametrize("name,kind", [
        ("int32", TypedKind.INT32),
        ("INT", TypedKind.INT32),
        ("uint", TypedKind.UINT32),
        ("llong", TypedKind.INT64),
        ("ullong", TypedKind.UINT64),
        ("double", TypedKind.DOUBLE),
        ("bool", TypedKind.BOOLEAN),
        ("boolean", TypedKind.BOOLEAN),
        ("str", TypedKind.STRING),
    ])
    def test_from_name(self, name, kind):
        assert TypedKind.from_name(name) is kind

    def test_from_name_unknown(self):
        with pytest.raises(ValueError, match="Unknown typed parameter kind"):
            TypedKind.from_name("complex")


class TestParameterSet:
    def setup_method(self):
        self.params = ParameterSet([
            TypedValue("cpu_shares", TypedKind.UINT64, 1024),
            TypedValue("vcpu_period", TypedKind.UINT64, 100000),
            TypedValue("vcpu_quota", TypedKind.INT64, -1),
        ])

    def test_preserves_insertion_order(self):
        assert self.params.names() == ["cpu_shares", "vcpu_period", "vcpu_quota"]

    def test_never_sorted(self):
        params = ParameterSet([
            TypedValue("z", TypedKind.INT32, 1),
            TypedValue("a", TypedKind.INT32, 2),
        ])
        assert params.names() == ["z", "a"]

    def test_duplicate_name_replaces_in_place(self):
        self.params.add(TypedValue("cpu_shares", TypedKind.UINT64, 2048))

        assert len(self.params) == 3
        assert self.params.names()[0] == "cpu_shares"
        assert self.params["cpu_shares"].payload == 2048

    def test_lookup(self):
        assert "vcpu_quota" in self.params
        assert "missing" not in self.params
        assert self.params.get("missing") is None
        with pytest.raises(KeyError):
            self.params["missing"]

    def test_to_dict(self):
        assert self.params.to_dict() == {
            "cpu_shares": 1024,
            "vcpu_period": 100000,
            "vcpu_quota": -1,
        }

    def test_equality_is_order_sensitive(self):
        values = list(self.params)
        assert ParameterSet(values) == self.params
        assert ParameterSet(reversed(values)) != self.params

    def test_empty(self):
        params = ParameterSet()
        assert len(params) == 0
        assert list(params) == []
        assert params.to_dict() == {}

    def test_str(self):
        assert str(self.params["vcpu_quota"]) == "vcpu_quota (int64) = -1"
