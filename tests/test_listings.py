"""
Test listings and statistics against the fake subsystem.
"""

import pytest

from virtmarshal.errors import QueryError
from virtmarshal.query import LISTINGS, STATISTICS, get_statistics, list_names
from virtmarshal.query.listings import format_listings
from virtmarshal.subsystem import ResourceKind


class TestListNames:
    def test_string_listing(self, subsystem):
        subsystem.listings["defined_domains"] = ["web", "db", "cache"]

        assert list_names(subsystem, "defined_domains") == ["web", "db", "cache"]
        assert subsystem.released == [("strings", 3)]

    def test_int_listing(self, subsystem):
        subsystem.listings["domains"] = [1, 4, 7]

        assert list_names(subsystem, "domains") == [1, 4, 7]
        # Ids aren't allocated by the subsystem, so nothing to release
        assert subsystem.released == []

    def test_empty_listing_never_fetches(self, subsystem):
        assert list_names(subsystem, "networks") == []
        assert subsystem.fetches == []

    def test_shrinking_listing(self, subsystem):
        subsystem.listings["storage_pools"] = ["default", "images", "iso"]
        subsystem.short_fetch["storage_pools"] = 2

        assert list_names(subsystem, "storage_pools") == ["default", "images"]
        assert subsystem.released == [("strings", 2)]

    def test_selector_and_flags_pass_through(self, subsystem):
        subsystem.listings["node_devices"] = ["pci_0000_00_00_0"]

        list_names(subsystem, "node_devices", selector="pci", flags=0)

        target = subsystem.probes[0]
        assert target.resource is ResourceKind.NODE_DEVICE
        assert target.selector == "pci"
        assert subsystem.fetches[0] == (target, 1)

    def test_snapshot_children(self, subsystem):
        snapshot = object()
        subsystem.listings["snapshot_children"] = ["after-upgrade", "nightly"]

        names = list_names(subsystem, "snapshot_children", selector=snapshot)

        assert names == ["after-upgrade", "nightly"]
        target = subsystem.fetches[0][0]
        assert target.resource is ResourceKind.SNAPSHOT
        assert target.selector is snapshot
        assert subsystem.released == [("strings", 2)]

    def test_probe_failure(self, subsystem):
        subsystem.fail_probe.add("secrets")

        with pytest.raises(QueryError) as excinfo:
            list_names(subsystem, "secrets")

        assert excinfo.value.detail == "probe refused"
        assert subsystem.fetches == []

    def test_fetch_failure(self, subsystem):
        subsystem.listings["nwfilters"] = ["clean-traffic"]
        subsystem.fail_fetch.add("nwfilters")

        with pytest.raises(QueryError, match="fetch refused"):
            list_names(subsystem, "nwfilters")

        assert subsystem.released == [("strings", 1)]

    def test_unknown_listing(self, subsystem):
        with pytest.raises(ValueError, match="Unknown listing"):
            list_names(subsystem, "toasters")


class TestStatistics:
    def test_cpu_stats(self, subsystem):
        subsystem.stats["cpu_stats"] = [
            ("kernel", 1000), ("user", 2000), ("idle", 3000), ("iowait", 40),
        ]

        stats = get_statistics(subsystem, "cpu_stats")

        assert list(stats.items()) == [
            ("kernel", 1000), ("user", 2000), ("idle", 3000), ("iowait", 40),
        ]
        assert subsystem.probes[0].selector == -1

    def test_memory_stats_for_one_cell(self, subsystem):
        subsystem.stats["memory_stats"] = [("total", 8192), ("free", 1024)]

        stats = get_statistics(subsystem, "memory_stats", selector=0)

        assert stats == {"total": 8192, "free": 1024}
        assert subsystem.probes[0].selector == 0

    def test_no_counters(self, subsystem):
        assert get_statistics(subsystem, "memory_stats") == {}
        assert subsystem.fetches == []

    def test_listing_is_not_statistics(self, subsystem):
        with pytest.raises(ValueError):
            get_statistics(subsystem, "domains")


class TestCatalog:
    def test_every_resource_kind_is_listable(self):
        listed = {listing.resource for listing in LISTINGS.values()}
        assert listed == set(ResourceKind) - {ResourceKind.CONNECTION}

    def test_statistics_catalog(self):
        assert set(STATISTICS) == {"cpu_stats", "memory_stats"}

    def test_format_listings(self):
        text = format_listings()

        for name in list(LISTINGS) + list(STATISTICS):
            assert name in text
        assert "selector: capability filter" in text
