"""
Domain event kinds and their argument contracts.

Each event id libvirt can deliver has a fixed callback shape. We hand
handlers the same positional arguments, converted to Python values, with
the caller's opaque user data appended last:

    LIFECYCLE        (conn, dom, event, detail, opaque)
    REBOOT           (conn, dom, opaque)
    RTC_CHANGE       (conn, dom, utc_offset, opaque)
    WATCHDOG         (conn, dom, action, opaque)
    IO_ERROR         (conn, dom, src_path, dev_alias, action, opaque)
    GRAPHICS         (conn, dom, phase, local, remote, auth_scheme, subject, opaque)
    IO_ERROR_REASON  (conn, dom, src_path, dev_alias, action, reason, opaque)

The shape is fixed by the kind; it is never negotiated at runtime.
"""

from dataclasses import dataclass
from enum import IntEnum

from virtmarshal.ffi import constants, cstring, ffi


class EventKind(IntEnum):
    """Domain event ids, using libvirt's numbering."""

    LIFECYCLE = constants.VIR_DOMAIN_EVENT_ID_LIFECYCLE
    REBOOT = constants.VIR_DOMAIN_EVENT_ID_REBOOT
    RTC_CHANGE = constants.VIR_DOMAIN_EVENT_ID_RTC_CHANGE
    WATCHDOG = constants.VIR_DOMAIN_EVENT_ID_WATCHDOG
    IO_ERROR = constants.VIR_DOMAIN_EVENT_ID_IO_ERROR
    GRAPHICS = constants.VIR_DOMAIN_EVENT_ID_GRAPHICS
    IO_ERROR_REASON = constants.VIR_DOMAIN_EVENT_ID_IO_ERROR_REASON

    @property
    def arguments(self) -> tuple[str, ...]:
        """Names of the handler's positional arguments, opaque included."""
        return EVENT_ARGUMENTS[self]

    @property
    def arity(self) -> int:
        """Number of positional arguments the handler receives."""
        return len(EVENT_ARGUMENTS[self])

    @property
    def event_arity(self) -> int:
        """Number of arguments the subsystem supplies (everything but opaque)."""
        return len(EVENT_ARGUMENTS[self]) - 1

    @classmethod
    def from_name(cls, name: str) -> "EventKind":
        """Look up a kind by name ("lifecycle", "io-error-reason", ...)."""
        key = name.strip().upper().replace("-", "_")
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown event kind: {name!r}") from None


EVENT_ARGUMENTS = {
    EventKind.LIFECYCLE: ("connection", "domain", "event", "detail", "opaque"),
    EventKind.REBOOT: ("connection", "domain", "opaque"),
    EventKind.RTC_CHANGE: ("connection", "domain", "utc_offset", "opaque"),
    EventKind.WATCHDOG: ("connection", "domain", "action", "opaque"),
    EventKind.IO_ERROR: (
        "connection", "domain", "src_path", "dev_alias", "action", "opaque",
    ),
    EventKind.GRAPHICS: (
        "connection", "domain", "phase", "local", "remote", "auth_scheme",
        "subject", "opaque",
    ),
    EventKind.IO_ERROR_REASON: (
        "connection", "domain", "src_path", "dev_alias", "action", "reason",
        "opaque",
    ),
}


@dataclass(frozen=True)
class GraphicsAddress:
    """
    One end of a graphics (VNC/SPICE) connection.

    Attributes:
        family: VIR_DOMAIN_EVENT_GRAPHICS_ADDRESS_* (IPv4, IPv6, UNIX)
        node: Address, e.g. "192.168.122.1"
        service: Port number or service name, as a string
    """
    family: int
    node: str | None
    service: str | None


# A graphics subject is the list of identities the client presented,
# each a (type, name) pair like ("x509dname", "CN=client").
GraphicsSubject = list[tuple[str, str]]


def graphics_address_from_raw(address) -> GraphicsAddress:
    """Convert a "virDomainEventGraphicsAddress *" to a GraphicsAddress."""
    return GraphicsAddress(
        family=address.family,
        node=cstring(address.node),
        service=cstring(address.service),
    )


def graphics_subject_from_raw(subject) -> GraphicsSubject:
    """
    Convert a "virDomainEventGraphicsSubject *" to a list of pairs.

    The subject carries a variable number of identities (nidentity); we
    build one (type, name) pair per identity, in order.
    """
    if subject == ffi.NULL:
        return []

    identities = []
    for i in range(subject.nidentity):
        identity = subject.identities[i]
        identities.append((cstring(identity.type), cstring(identity.name)))
    return identities
