"""
The virtualization subsystem interface.

Everything in virtmarshal talks to libvirt through the Subsystem base
class. The methods mirror libvirt's C conventions: they take
cffi buffers, fill them in place, and return an int that is negative on
failure. The same marshaling code runs against the real library and
against a scripted stand-in.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable


class ResourceKind(Enum):
    """The kinds of managed object a query or callback can target."""

    CONNECTION = "connection"
    DOMAIN = "domain"
    NETWORK = "network"
    STORAGE_POOL = "storage pool"
    NODE_DEVICE = "node device"
    INTERFACE = "interface"
    SECRET = "secret"
    NWFILTER = "nwfilter"
    SNAPSHOT = "snapshot"

    def __str__(self) -> str:
        return self.value


class ParameterGroup(Enum):
    """
    The typed-parameter groups libvirt exposes.

    Each group is a get/set call pair. The owner is a domain for the
    scheduler, memory and blkio groups, and the connection for node memory.
    """

    SCHEDULER = "scheduler"
    MEMORY = "memory"
    BLKIO = "blkio"
    NODE_MEMORY = "node_memory"

    @property
    def owner(self) -> ResourceKind:
        if self is ParameterGroup.NODE_MEMORY:
            return ResourceKind.CONNECTION
        return ResourceKind.DOMAIN


@dataclass(frozen=True)
class QueryTarget:
    """
    Names one probe/fetch pair.

    Attributes:
        resource: The resource kind being enumerated (or owning the stats)
        listing: Catalog key, e.g. "defined_domains" or "cpu_stats"
        selector: Listing-specific argument: a domain handle for snapshots,
                  a capability filter for node devices, a CPU or cell
                  number for statistics
        flags: Passed through to libvirt
    """
    resource: ResourceKind
    listing: str
    selector: Any = None
    flags: int = 0

    def __str__(self) -> str:
        return f"{self.resource} {self.listing}"


# Adapter handed to register_callback. The subsystem calls it with the
# event's arguments already converted to Python values, without opaque.
EventAdapter = Callable[..., None]


class Subsystem(ABC):
    """
    Base class for virtualization subsystems.

    Subclasses must implement:
    - probe_count() / fetch_array(): the two halves of a listing
    - get_typed_parameters() / set_typed_parameters(): typed parameter groups
    - register_callback() / deregister_callback(): domain events

    Every method returns a negative int on failure, like libvirt does.
    Details about the failure, if any, come from last_error().
    """

    @abstractmethod
    def probe_count(self, target: QueryTarget) -> int:
        """
        Return how many entries the target listing currently has.

        Returns:
            The count, or a negative number on failure.
        """
        pass

    @abstractmethod
    def fetch_array(self, target: QueryTarget, buffer, size: int) -> int:
        """
        Fill buffer with up to size entries of the target listing.

        Args:
            target: What to list.
            buffer: cffi array of the listing's element type.
            size: Number of elements in buffer (never 0).

        Returns:
            How many entries were written, or a negative number on failure.
        """
        pass

    @abstractmethod
    def get_typed_parameters(self, handle, group: ParameterGroup, params,
                             nparams, flags: int) -> int:
        """
        Read a typed parameter group.

        Args:
            handle: The group's owner (a domain handle or the connection).
            group: Which group to read.
            params: "virTypedParameter[]" buffer, or ffi.NULL to only probe.
            nparams: "int *". On input, the buffer size; on output, the
                     number of parameters (written) or available (probed).
            flags: Passed through to libvirt.

        Returns:
            0 on success, negative on failure.
        """
        pass

    @abstractmethod
    def set_typed_parameters(self, handle, group: ParameterGroup, params,
                             nparams: int, flags: int) -> int:
        """
        Apply a typed parameter group.

        Returns:
            0 on success, negative on failure.
        """
        pass

    @abstractmethod
    def register_callback(self, handle, event_kind, adapter: EventAdapter,
                          opaque) -> int:
        """
        Ask to have adapter called for events of event_kind.

        Args:
            handle: Domain to filter on, or None for all domains.
            event_kind: An EventKind.
            adapter: Called with (connection, domain, *event_args).
            opaque: The caller's user data. Informational only; the adapter
                    already knows how to deliver it.

        Returns:
            A registration id (>= 0), or a negative number on failure.
        """
        pass

    @abstractmethod
    def deregister_callback(self, registration_id: int) -> int:
        """
        Stop delivering events for a registration id.

        Returns:
            0 on success, negative on failure.
        """
        pass

    def last_error(self) -> str | None:
        """
        Get the message for the most recent failure.

        Override this if your subsystem records error details.
        """
        return None

    def release_strings(self, buffer, count: int):
        """
        Free strings the subsystem stored into a "char *[]" buffer.

        Entries may be NULL. Override this if fetch_array hands out
        strings the caller has to free.
        """
        pass

    def release_typed_parameters(self, params, count: int):
        """
        Free string payloads the subsystem stored into typed parameters.

        Override this if get_typed_parameters allocates string payloads.
        """
        pass
