"""
Test reading and updating typed parameter groups.
"""

import pytest

from virtmarshal.errors import InvalidValueError, QueryError, SubsystemError
from virtmarshal.params import (
    ParameterSet,
    TypedKind,
    TypedValue,
    coerce,
    get_parameters,
    set_parameters,
)
from virtmarshal.subsystem import ParameterGroup, ResourceKind

DOMAIN = object()

SCHEDULER = ParameterSet([
    TypedValue("cpu_shares", TypedKind.UINT64, 1024),
    TypedValue("vcpu_period", TypedKind.UINT64, 100000),
    TypedValue("vcpu_quota", TypedKind.INT64, -1),
])


class TestGetParameters:
    def test_reads_group_in_order(self, subsystem):
        subsystem.parameters[ParameterGroup.SCHEDULER] = SCHEDULER

        params = get_parameters(subsystem, DOMAIN, ParameterGroup.SCHEDULER)

        assert params == SCHEDULER
        assert subsystem.released == [("typed", 3)]

    def test_probe_then_fetch(self, subsystem):
        subsystem.parameters[ParameterGroup.MEMORY] = ParameterSet([
            TypedValue("hard_limit", TypedKind.UINT64, 4194304),
        ])

        get_parameters(subsystem, DOMAIN, ParameterGroup.MEMORY, flags=4)

        assert subsystem.parameter_calls == [
            (DOMAIN, ParameterGroup.MEMORY, 4, True),
            (DOMAIN, ParameterGroup.MEMORY, 4, False),
        ]

    def test_empty_group_is_not_fetched(self, subsystem):
        params = get_parameters(subsystem, DOMAIN, ParameterGroup.BLKIO)

        assert params == ParameterSet()
        assert len(subsystem.parameter_calls) == 1

    def test_failure(self, subsystem):
        subsystem.fail_get = True

        with pytest.raises(QueryError) as excinfo:
            get_parameters(subsystem, DOMAIN, ParameterGroup.SCHEDULER)

        assert excinfo.value.resource is ResourceKind.DOMAIN
        assert excinfo.value.detail == "get refused"

    def test_node_memory_belongs_to_connection(self, subsystem):
        subsystem.fail_get = True

        with pytest.raises(QueryError) as excinfo:
            get_parameters(subsystem, None, ParameterGroup.NODE_MEMORY)

        assert excinfo.value.resource is ResourceKind.CONNECTION


class TestSetParameters:
    def setup_method(self):
        self.group = ParameterGroup.SCHEDULER

    def test_sends_only_supplied_names(self, subsystem):
        subsystem.parameters[self.group] = SCHEDULER

        sent = set_parameters(subsystem, DOMAIN, self.group, {"cpu_shares": "2048"})

        expected = ParameterSet([TypedValue("cpu_shares", TypedKind.UINT64, 2048)])
        assert sent == expected
        assert subsystem.applied == [(DOMAIN, self.group, expected, 0)]

    def test_kinds_come_from_current_values(self, subsystem):
        subsystem.parameters[self.group] = SCHEDULER

        sent = set_parameters(
            subsystem, DOMAIN, self.group, {"vcpu_quota": 50000, "vcpu_period": 100000}
        )

        assert [(v.name, v.kind) for v in sent] == [
            ("vcpu_quota", TypedKind.INT64),
            ("vcpu_period", TypedKind.UINT64),
        ]

    def test_unknown_name(self, subsystem):
        subsystem.parameters[self.group] = SCHEDULER

        with pytest.raises(InvalidValueError, match="cpu_shares, vcpu_period"):
            set_parameters(subsystem, DOMAIN, self.group, {"emulator_period": 1})

        assert subsystem.applied == []

    def test_out_of_range(self, subsystem):
        subsystem.parameters[self.group] = SCHEDULER

        with pytest.raises(InvalidValueError, match="out of range"):
            set_parameters(subsystem, DOMAIN, self.group, {"cpu_shares": -1})

        assert subsystem.applied == []

    def test_rejected_by_subsystem(self, subsystem):
        subsystem.parameters[self.group] = SCHEDULER
        subsystem.fail_set = True

        with pytest.raises(SubsystemError) as excinfo:
            set_parameters(subsystem, DOMAIN, self.group, {"cpu_shares": 512})

        assert not isinstance(excinfo.value, QueryError)
        assert excinfo.value.detail == "set refused"

    def test_nothing_to_set(self, subsystem):
        subsystem.parameters[self.group] = SCHEDULER

        assert len(set_parameters(subsystem, DOMAIN, self.group, {})) == 0
        assert subsystem.applied == []


class TestCoerce:
    @pytest.mark.parametrize("kind,value,expected", [
        (TypedKind.INT32, "-12", -12),
        (TypedKind.UINT32, "0x10", 16),
        (TypedKind.UINT64, 7, 7),
        (TypedKind.DOUBLE, "1.5", 1.5),
        (TypedKind.BOOLEAN, "yes", True),
        (TypedKind.BOOLEAN, "off", False),
        (TypedKind.BOOLEAN, 0, False),
        (TypedKind.STRING, 42, "42"),
    ])
    def test_converts(self, kind, value, expected):
        assert coerce("p", kind, value) == TypedValue("p", kind, expected)

    @pytest.mark.parametrize("kind,value", [
        (TypedKind.INT32, "ten"),
        (TypedKind.INT32, 1.5),
        (TypedKind.INT64, True),
        (TypedKind.DOUBLE, "fast"),
        (TypedKind.BOOLEAN, "maybe"),
        (TypedKind.STRING, None),
    ])
    def test_rejects(self, kind, value):
        with pytest.raises(InvalidValueError):
            coerce("p", kind, value)

    def test_range(self):
        with pytest.raises(InvalidValueError, match="out of range for INT32"):
            coerce("p", TypedKind.INT32, 1 << 31)
