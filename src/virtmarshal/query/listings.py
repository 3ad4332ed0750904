"""
Listings and statistics.

This module is the catalog of everything libvirt lets us enumerate with
a count/list pair (domain ids, network names, snapshot names, ...) and
of the node statistics calls, which use the same two-phase shape over
an nparams counter. Each entry says what the buffer holds; the
subsystem decides which C calls implement it.
"""

from dataclasses import dataclass

from virtmarshal.ffi import cstring, ffi
from virtmarshal.ffi.constants import VIR_TYPED_PARAM_FIELD_LENGTH
from virtmarshal.subsystem import QueryTarget, ResourceKind, Subsystem

from .two_phase import ArrayLayout, run_two_phase


@dataclass(frozen=True)
class Listing:
    """
    Describes one enumerable listing.

    Attributes:
        name: Catalog key (e.g. "defined_domains")
        resource: What kind of object is listed
        ctype: Element type of the fetch buffer
        operation: The libvirt call that fills the buffer
        description: Human-readable description
        selector: What the selector argument means, if the listing takes one
    """
    name: str
    resource: ResourceKind
    ctype: str
    operation: str
    description: str
    selector: str | None = None


_ALL_LISTINGS = [
    Listing("domains", ResourceKind.DOMAIN, "int",
            "virConnectListDomains", "IDs of running domains"),
    Listing("defined_domains", ResourceKind.DOMAIN, "char *",
            "virConnectListDefinedDomains", "Names of inactive domains"),
    Listing("networks", ResourceKind.NETWORK, "char *",
            "virConnectListNetworks", "Names of active networks"),
    Listing("defined_networks", ResourceKind.NETWORK, "char *",
            "virConnectListDefinedNetworks", "Names of inactive networks"),
    Listing("interfaces", ResourceKind.INTERFACE, "char *",
            "virConnectListInterfaces", "Names of active host interfaces"),
    Listing("defined_interfaces", ResourceKind.INTERFACE, "char *",
            "virConnectListDefinedInterfaces", "Names of inactive host interfaces"),
    Listing("storage_pools", ResourceKind.STORAGE_POOL, "char *",
            "virConnectListStoragePools", "Names of active storage pools"),
    Listing("defined_storage_pools", ResourceKind.STORAGE_POOL, "char *",
            "virConnectListDefinedStoragePools", "Names of inactive storage pools"),
    Listing("node_devices", ResourceKind.NODE_DEVICE, "char *",
            "virNodeListDevices", "Names of host devices",
            selector="capability filter (e.g. 'pci'), or none"),
    Listing("nwfilters", ResourceKind.NWFILTER, "char *",
            "virConnectListNWFilters", "Names of network filters"),
    Listing("secrets", ResourceKind.SECRET, "char *",
            "virConnectListSecrets", "UUIDs of secrets"),
    Listing("snapshots", ResourceKind.SNAPSHOT, "char *",
            "virDomainSnapshotListNames", "Names of a domain's snapshots",
            selector="domain handle"),
    Listing("snapshot_children", ResourceKind.SNAPSHOT, "char *",
            "virDomainSnapshotListChildrenNames", "Names of a snapshot's direct children",
            selector="snapshot handle"),
]

_ALL_STATISTICS = [
    Listing("cpu_stats", ResourceKind.CONNECTION, "virNodeCPUStats",
            "virNodeGetCPUStats", "Host CPU time counters (nanoseconds)",
            selector="CPU number, or -1 for the total"),
    Listing("memory_stats", ResourceKind.CONNECTION, "virNodeMemoryStats",
            "virNodeGetMemoryStats", "Host memory counters (KiB)",
            selector="NUMA cell number, or -1 for the total"),
]

LISTINGS = {listing.name: listing for listing in _ALL_LISTINGS}
STATISTICS = {listing.name: listing for listing in _ALL_STATISTICS}


# ─────────────────────────────────────────────────────────────
# Buffer conversion
# ─────────────────────────────────────────────────────────────

def _convert_ints(buffer, count: int) -> list[int]:
    return [buffer[i] for i in range(count)]


def _convert_strings(buffer, count: int) -> list[str]:
    return [cstring(buffer[i]) for i in range(count)]


def _convert_stats(buffer, count: int) -> dict[str, int]:
    # Field names are ASCII identifiers like "kernel" or "free"
    return {
        ffi.string(buffer[i].field, VIR_TYPED_PARAM_FIELD_LENGTH).decode("utf-8"):
            buffer[i].value
        for i in range(count)
    }


def _lookup(catalog: dict, name: str) -> Listing:
    try:
        return catalog[name]
    except KeyError:
        known = ", ".join(sorted(catalog))
        raise ValueError(f"Unknown listing {name!r} (known: {known})") from None


def list_names(subsystem: Subsystem, listing: str, selector=None,
               flags: int = 0) -> list:
    """
    Enumerate a listing.

    Args:
        subsystem: Where to query.
        listing: Key from LISTINGS.
        selector: Listing-specific argument (see Listing.selector).
        flags: Passed through to libvirt.

    Returns:
        A list of names (or ids, for "domains"), in the order the
        subsystem reported them. May be shorter than a count taken just
        before, if objects went away in between.

    Raises:
        ValueError: If the listing is unknown.
        QueryError: If the subsystem fails either phase.
    """
    entry = _lookup(LISTINGS, listing)
    target = QueryTarget(entry.resource, entry.name, selector, flags)

    if entry.ctype == "int":
        layout = ArrayLayout(entry.ctype, convert=_convert_ints)
    else:
        layout = ArrayLayout(
            entry.ctype,
            convert=_convert_strings,
            release=subsystem.release_strings,
        )

    return run_two_phase(
        entry.operation,
        target,
        probe=lambda: subsystem.probe_count(target),
        fetch=lambda buffer, size: subsystem.fetch_array(target, buffer, size),
        layout=layout,
        error_detail=subsystem.last_error,
    )


def get_statistics(subsystem: Subsystem, listing: str, selector: int = -1,
                   flags: int = 0) -> dict[str, int]:
    """
    Read node statistics.

    Args:
        subsystem: Where to query.
        listing: "cpu_stats" or "memory_stats".
        selector: CPU or NUMA cell number; -1 means all of them.
        flags: Passed through to libvirt.

    Returns:
        Ordered mapping of counter name to value.
    """
    entry = _lookup(STATISTICS, listing)
    target = QueryTarget(entry.resource, entry.name, selector, flags)
    layout = ArrayLayout(entry.ctype, convert=_convert_stats, empty=dict)

    return run_two_phase(
        entry.operation,
        target,
        probe=lambda: subsystem.probe_count(target),
        fetch=lambda buffer, size: subsystem.fetch_array(target, buffer, size),
        layout=layout,
        error_detail=subsystem.last_error,
    )


def format_listings() -> str:
    """
    Format the catalog for display.

    Returns:
        Formatted string suitable for printing.
    """
    lines = []
    entries = _ALL_LISTINGS + _ALL_STATISTICS

    # Find the longest name for alignment
    max_name_len = max(len(entry.name) for entry in entries)

    for entry in entries:
        name_padded = entry.name.ljust(max_name_len)
        lines.append(f"  {name_padded}  {entry.description}")
        if entry.selector:
            lines.append(f"    └─ selector: {entry.selector}")

    return "\n".join(lines)
