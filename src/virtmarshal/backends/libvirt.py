"""
libvirt-backed subsystem.

This module drives the marshaling components against a real libvirt
through the cffi declarations in virtmarshal.ffi.bindings. One
LibvirtSubsystem wraps one connection (virConnectPtr).

The class maps each QueryTarget, ParameterGroup and EventKind to the
matching C entry point and returns libvirt's int results untouched.
Turning those into Python values and exceptions is
the job of the query, params and events packages.
"""

import logging

from virtmarshal.errors import SubsystemError
from virtmarshal.events.kinds import (
    EventKind,
    graphics_address_from_raw,
    graphics_subject_from_raw,
)
from virtmarshal.ffi import cstring, ffi, libc, load_libvirt
from virtmarshal.ffi.constants import VIR_NODE_CPU_STATS_ALL_CPUS
from virtmarshal.subsystem import (
    EventAdapter,
    ParameterGroup,
    QueryTarget,
    ResourceKind,
    Subsystem,
)

logger = logging.getLogger(__name__)


# Listings that are a plain (conn) -> count / (conn, buffer, size) -> count pair
_CONNECTION_LISTINGS = {
    "domains": ("virConnectNumOfDomains", "virConnectListDomains"),
    "defined_domains": ("virConnectNumOfDefinedDomains", "virConnectListDefinedDomains"),
    "networks": ("virConnectNumOfNetworks", "virConnectListNetworks"),
    "defined_networks": ("virConnectNumOfDefinedNetworks", "virConnectListDefinedNetworks"),
    "interfaces": ("virConnectNumOfInterfaces", "virConnectListInterfaces"),
    "defined_interfaces": (
        "virConnectNumOfDefinedInterfaces", "virConnectListDefinedInterfaces",
    ),
    "storage_pools": ("virConnectNumOfStoragePools", "virConnectListStoragePools"),
    "defined_storage_pools": (
        "virConnectNumOfDefinedStoragePools", "virConnectListDefinedStoragePools",
    ),
    "nwfilters": ("virConnectNumOfNWFilters", "virConnectListNWFilters"),
    "secrets": ("virConnectNumOfSecrets", "virConnectListSecrets"),
}

# Statistics calls: (conn, index, params, int *nparams, flags)
_STATISTICS = {
    "cpu_stats": "virNodeGetCPUStats",
    "memory_stats": "virNodeGetMemoryStats",
}

_GET_PARAMETERS = {
    ParameterGroup.SCHEDULER: "virDomainGetSchedulerParametersFlags",
    ParameterGroup.MEMORY: "virDomainGetMemoryParameters",
    ParameterGroup.BLKIO: "virDomainGetBlkioParameters",
    ParameterGroup.NODE_MEMORY: "virNodeGetMemoryParameters",
}

_SET_PARAMETERS = {
    ParameterGroup.SCHEDULER: "virDomainSetSchedulerParametersFlags",
    ParameterGroup.MEMORY: "virDomainSetMemoryParameters",
    ParameterGroup.BLKIO: "virDomainSetBlkioParameters",
    ParameterGroup.NODE_MEMORY: "virNodeSetMemoryParameters",
}


# ─────────────────────────────────────────────────────────────
# Raw event argument conversion
# ─────────────────────────────────────────────────────────────
# Each entry: (C callback type, converter for the arguments between
# dom and opaque). Converters return the Python event arguments.

def _io_error(src_path, dev_alias, action):
    return (cstring(src_path), cstring(dev_alias), action)


def _io_error_reason(src_path, dev_alias, action, reason):
    return (cstring(src_path), cstring(dev_alias), action, cstring(reason))


def _graphics(phase, local, remote, auth_scheme, subject):
    return (
        phase,
        graphics_address_from_raw(local),
        graphics_address_from_raw(remote),
        cstring(auth_scheme),
        graphics_subject_from_raw(subject),
    )


_RAW_EVENTS = {
    EventKind.LIFECYCLE: (
        "virConnectDomainEventCallback", lambda event, detail: (event, detail),
    ),
    EventKind.REBOOT: ("virConnectDomainEventGenericCallback", lambda: ()),
    EventKind.RTC_CHANGE: (
        "virConnectDomainEventRTCChangeCallback", lambda offset: (offset,),
    ),
    EventKind.WATCHDOG: (
        "virConnectDomainEventWatchdogCallback", lambda action: (action,),
    ),
    EventKind.IO_ERROR: ("virConnectDomainEventIOErrorCallback", _io_error),
    EventKind.GRAPHICS: ("virConnectDomainEventGraphicsCallback", _graphics),
    EventKind.IO_ERROR_REASON: (
        "virConnectDomainEventIOErrorReasonCallback", _io_error_reason,
    ),
}


def _log_callback_error(exc_type, exc_value, traceback):
    # Exceptions can't propagate through libvirt's event loop
    logger.error(
        f"Event handler raised {exc_type.__name__}: {exc_value}",
        exc_info=(exc_type, exc_value, traceback),
    )


# ─────────────────────────────────────────────────────────────
# Event loop
# ─────────────────────────────────────────────────────────────

def event_loop_register(library_path: str | None = None):
    """
    Install libvirt's default event loop implementation.

    Must be called before opening any connection that will deliver events.
    """
    lib = _load(library_path)
    if lib.virEventRegisterDefaultImpl() < 0:
        raise SubsystemError(
            "virEventRegisterDefaultImpl", None, cstring(lib.virGetLastErrorMessage())
        )


def event_loop_iterate(library_path: str | None = None):
    """Run one iteration of the default event loop (blocks until activity)."""
    lib = _load(library_path)
    if lib.virEventRunDefaultImpl() < 0:
        raise SubsystemError(
            "virEventRunDefaultImpl", None, cstring(lib.virGetLastErrorMessage())
        )


def _load(library_path: str | None):
    try:
        return load_libvirt(library_path)
    except OSError as e:
        raise SubsystemError(
            "dlopen", "libvirt",
            f"{e}. Is libvirt installed? Set VIRTMARSHAL_LIBVIRT to its path.",
        ) from e


class Domain:
    """
    A libvirt domain handle.

    The underlying virDomainPtr is freed when this object is garbage
    collected, or earlier with close().
    """

    def __init__(self, lib, ptr):
        self._lib = lib
        self._ptr = ffi.gc(ptr, lib.virDomainFree)

    @property
    def ptr(self):
        return self._ptr

    @property
    def name(self) -> str | None:
        return cstring(self._lib.virDomainGetName(self._ptr))

    def close(self):
        """Release the handle now instead of waiting for the GC."""
        if self._ptr is not None:
            ffi.release(self._ptr)
            self._ptr = None

    def __repr__(self) -> str:
        if self._ptr is None:
            return "<Domain (closed)>"
        return f"<Domain {self.name}>"


class Snapshot:
    """A libvirt domain snapshot handle, freed like Domain."""

    def __init__(self, lib, ptr):
        self._lib = lib
        self._ptr = ffi.gc(ptr, lib.virDomainSnapshotFree)

    @property
    def ptr(self):
        return self._ptr

    @property
    def name(self) -> str | None:
        return cstring(self._lib.virDomainSnapshotGetName(self._ptr))

    def close(self):
        if self._ptr is not None:
            ffi.release(self._ptr)
            self._ptr = None

    def __repr__(self) -> str:
        if self._ptr is None:
            return "<Snapshot (closed)>"
        return f"<Snapshot {self.name}>"


class LibvirtSubsystem(Subsystem):
    """
    A connection to libvirt, exposed as a Subsystem.

    Usage:
        with LibvirtSubsystem("qemu:///system", read_only=True) as virt:
            names = list_names(virt, "defined_domains")
            dom = virt.lookup_domain("guest1")
            params = get_parameters(virt, dom, ParameterGroup.SCHEDULER)
    """

    def __init__(self, uri: str | None = None, read_only: bool = False,
                 library_path: str | None = None):
        """
        Open a connection.

        Args:
            uri: Connection URI; None lets libvirt pick its default.
            read_only: Open with virConnectOpenReadOnly.
            library_path: Explicit libvirt.so path.

        Raises:
            SubsystemError: If libvirt can't be loaded or the connection fails.
        """
        self._lib = _load(library_path)
        self._uri = uri
        self._conn = ffi.NULL
        self._callbacks: dict[int, object] = {}

        name = uri.encode() if uri else ffi.NULL
        if read_only:
            operation = "virConnectOpenReadOnly"
            self._conn = self._lib.virConnectOpenReadOnly(name)
        else:
            operation = "virConnectOpen"
            self._conn = self._lib.virConnectOpen(name)

        if self._conn == ffi.NULL:
            raise SubsystemError(operation, uri or "default URI", self.last_error())

        logger.info(f"Connected to {uri or 'default URI'}")

    def close(self):
        """Close the connection."""
        if self._conn != ffi.NULL:
            self._lib.virConnectClose(self._conn)
            self._conn = ffi.NULL
            self._callbacks.clear()

    def __enter__(self):
        """Support for 'with' statement."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Close the connection when exiting 'with' block."""
        self.close()
        return False

    def __str__(self) -> str:
        return f"libvirt connection {self._uri or '(default)'}"

    @property
    def conn(self):
        """Get the raw virConnectPtr."""
        if self._conn == ffi.NULL:
            raise SubsystemError("use connection", self._uri, "connection is closed")
        return self._conn

    def lookup_domain(self, name: str) -> Domain:
        """
        Look up a domain by name.

        Raises:
            SubsystemError: If there is no such domain.
        """
        ptr = self._lib.virDomainLookupByName(self.conn, name.encode())
        if ptr == ffi.NULL:
            raise SubsystemError(
                "virDomainLookupByName", f"{ResourceKind.DOMAIN} {name!r}",
                self.last_error(),
            )
        return Domain(self._lib, ptr)

    def lookup_snapshot(self, domain: Domain, name: str) -> Snapshot:
        """
        Look up one of a domain's snapshots by name.

        Raises:
            SubsystemError: If the domain has no such snapshot.
        """
        ptr = self._lib.virDomainSnapshotLookupByName(
            self._handle_ptr(domain), name.encode(), 0
        )
        if ptr == ffi.NULL:
            raise SubsystemError(
                "virDomainSnapshotLookupByName",
                f"{ResourceKind.SNAPSHOT} {name!r} of {domain!r}",
                self.last_error(),
            )
        return Snapshot(self._lib, ptr)

    def _borrow_domain(self, ptr) -> Domain:
        # Event callbacks only lend us the pointer; take our own reference
        self._lib.virDomainRef(ptr)
        return Domain(self._lib, ptr)

    @staticmethod
    def _handle_ptr(handle):
        if isinstance(handle, (Domain, Snapshot)):
            return handle.ptr
        return handle

    # ─────────────────────────────────────────────────────────────
    # Errors and ownership
    # ─────────────────────────────────────────────────────────────

    def last_error(self) -> str | None:
        return cstring(self._lib.virGetLastErrorMessage())

    def release_strings(self, buffer, count: int):
        # libvirt malloc()s every name it hands back
        for i in range(count):
            if buffer[i] != ffi.NULL:
                libc.free(buffer[i])
                buffer[i] = ffi.NULL

    def release_typed_parameters(self, params, count: int):
        self._lib.virTypedParamsClear(params, count)

    # ─────────────────────────────────────────────────────────────
    # Listings and statistics
    # ─────────────────────────────────────────────────────────────

    def probe_count(self, target: QueryTarget) -> int:
        listing = target.listing

        if listing in _CONNECTION_LISTINGS:
            count_fn, _ = _CONNECTION_LISTINGS[listing]
            return getattr(self._lib, count_fn)(self.conn)

        if listing == "node_devices":
            capability = _optional_cstring(target.selector)
            return self._lib.virNodeNumOfDevices(self.conn, capability, target.flags)

        if listing == "snapshots":
            return self._lib.virDomainSnapshotNum(
                self._handle_ptr(target.selector), target.flags
            )

        if listing == "snapshot_children":
            return self._lib.virDomainSnapshotNumChildren(
                self._handle_ptr(target.selector), target.flags
            )

        if listing in _STATISTICS:
            nparams = ffi.new("int *", 0)
            stats_fn = getattr(self._lib, _STATISTICS[listing])
            if stats_fn(self.conn, _stats_index(target), ffi.NULL, nparams,
                        target.flags) < 0:
                return -1
            return nparams[0]

        raise ValueError(f"libvirt backend can't list {listing!r}")

    def fetch_array(self, target: QueryTarget, buffer, size: int) -> int:
        listing = target.listing

        if listing in _CONNECTION_LISTINGS:
            _, list_fn = _CONNECTION_LISTINGS[listing]
            return getattr(self._lib, list_fn)(self.conn, buffer, size)

        if listing == "node_devices":
            capability = _optional_cstring(target.selector)
            return self._lib.virNodeListDevices(
                self.conn, capability, buffer, size, target.flags
            )

        if listing == "snapshots":
            return self._lib.virDomainSnapshotListNames(
                self._handle_ptr(target.selector), buffer, size, target.flags
            )

        if listing == "snapshot_children":
            return self._lib.virDomainSnapshotListChildrenNames(
                self._handle_ptr(target.selector), buffer, size, target.flags
            )

        if listing in _STATISTICS:
            nparams = ffi.new("int *", size)
            stats_fn = getattr(self._lib, _STATISTICS[listing])
            if stats_fn(self.conn, _stats_index(target), buffer, nparams,
                        target.flags) < 0:
                return -1
            return nparams[0]

        raise ValueError(f"libvirt backend can't list {listing!r}")

    # ─────────────────────────────────────────────────────────────
    # Typed parameters
    # ─────────────────────────────────────────────────────────────

    def _parameter_owner(self, handle, group: ParameterGroup):
        if group.owner is ResourceKind.CONNECTION:
            return self.conn
        return self._handle_ptr(handle)

    def get_typed_parameters(self, handle, group: ParameterGroup, params,
                             nparams, flags: int) -> int:
        owner = self._parameter_owner(handle, group)

        if group is ParameterGroup.SCHEDULER and params == ffi.NULL:
            # The scheduler getter has no NULL-buffer probe; the scheduler
            # type call reports the parameter count instead.
            sched_type = self._lib.virDomainGetSchedulerType(owner, nparams)
            if sched_type == ffi.NULL:
                return -1
            libc.free(sched_type)
            return 0

        return getattr(self._lib, _GET_PARAMETERS[group])(owner, params, nparams, flags)

    def set_typed_parameters(self, handle, group: ParameterGroup, params,
                             nparams: int, flags: int) -> int:
        owner = self._parameter_owner(handle, group)
        return getattr(self._lib, _SET_PARAMETERS[group])(owner, params, nparams, flags)

    # ─────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────

    def _make_callback(self, kind: EventKind, adapter: EventAdapter):
        ctype, convert = _RAW_EVENTS[kind]
        returns_int = kind is EventKind.LIFECYCLE

        def callback(conn, dom, *rest):
            # rest ends with libvirt's opaque pointer, which we don't use:
            # the adapter already carries the caller's user data.
            adapter(self, self._borrow_domain(dom), *convert(*rest[:-1]))
            return 0 if returns_int else None

        return ffi.callback(ctype, callback, onerror=_log_callback_error)

    def register_callback(self, handle, event_kind, adapter: EventAdapter,
                          opaque) -> int:
        kind = EventKind(event_kind)
        callback = self._make_callback(kind, adapter)
        dom = self._handle_ptr(handle) if handle is not None else ffi.NULL

        registration_id = self._lib.virConnectDomainEventRegisterAny(
            self.conn,
            dom,
            int(kind),
            ffi.cast("virConnectDomainEventGenericCallback", callback),
            ffi.NULL,
            ffi.NULL,
        )
        if registration_id >= 0:
            # libvirt holds a raw pointer to the callback; keep it alive
            self._callbacks[registration_id] = callback
        return registration_id

    def deregister_callback(self, registration_id: int) -> int:
        result = self._lib.virConnectDomainEventDeregisterAny(self.conn, registration_id)
        if result >= 0:
            self._callbacks.pop(registration_id, None)
        return result


def _optional_cstring(value):
    if value is None:
        return ffi.NULL
    return ffi.new("char[]", str(value).encode())


def _stats_index(target: QueryTarget) -> int:
    if target.selector is None:
        return VIR_NODE_CPU_STATS_ALL_CPUS
    return int(target.selector)
