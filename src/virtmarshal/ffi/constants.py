"""
libvirt constants.

These values come from libvirt's public headers:
- /usr/include/libvirt/libvirt-common.h
- /usr/include/libvirt/libvirt-domain.h

They are part of libvirt's stable ABI, so it's safe to hardcode them here.
"""

# ============================================================================
# Typed parameters
# ============================================================================

# Size of the name field in virTypedParameter, including the NUL terminator.
VIR_TYPED_PARAM_FIELD_LENGTH = 80

# Type tags for virTypedParameter.type
VIR_TYPED_PARAM_INT = 1         # 32-bit signed
VIR_TYPED_PARAM_UINT = 2        # 32-bit unsigned
VIR_TYPED_PARAM_LLONG = 3       # 64-bit signed
VIR_TYPED_PARAM_ULLONG = 4      # 64-bit unsigned
VIR_TYPED_PARAM_DOUBLE = 5      # IEEE-754 double
VIR_TYPED_PARAM_BOOLEAN = 6     # char, 0 or 1
VIR_TYPED_PARAM_STRING = 7      # char *, never NULL

# Flag for the get calls: the caller can handle STRING parameters.
# Without it, libvirt omits string-typed parameters from the result.
VIR_TYPED_PARAM_STRING_OKAY = 1 << 2

# Flags shared by the scheduler/memory/blkio get and set calls
VIR_DOMAIN_AFFECT_CURRENT = 0   # Running state if active, else config
VIR_DOMAIN_AFFECT_LIVE = 1 << 0
VIR_DOMAIN_AFFECT_CONFIG = 1 << 1

# Selector for "all CPUs" / "all cells" in the node statistics calls
VIR_NODE_CPU_STATS_ALL_CPUS = -1
VIR_NODE_MEMORY_STATS_ALL_CELLS = -1


# ============================================================================
# Domain event ids (virConnectDomainEventRegisterAny eventID)
# ============================================================================

VIR_DOMAIN_EVENT_ID_LIFECYCLE = 0
VIR_DOMAIN_EVENT_ID_REBOOT = 1
VIR_DOMAIN_EVENT_ID_RTC_CHANGE = 2
VIR_DOMAIN_EVENT_ID_WATCHDOG = 3
VIR_DOMAIN_EVENT_ID_IO_ERROR = 4
VIR_DOMAIN_EVENT_ID_GRAPHICS = 5
VIR_DOMAIN_EVENT_ID_IO_ERROR_REASON = 6


# ============================================================================
# Lifecycle events
# ============================================================================
# Delivered as (event, detail). The detail's meaning depends on the event.

VIR_DOMAIN_EVENT_DEFINED = 0
VIR_DOMAIN_EVENT_UNDEFINED = 1
VIR_DOMAIN_EVENT_STARTED = 2
VIR_DOMAIN_EVENT_SUSPENDED = 3
VIR_DOMAIN_EVENT_RESUMED = 4
VIR_DOMAIN_EVENT_STOPPED = 5

LIFECYCLE_EVENT_NAMES = {
    VIR_DOMAIN_EVENT_DEFINED: "DEFINED",
    VIR_DOMAIN_EVENT_UNDEFINED: "UNDEFINED",
    VIR_DOMAIN_EVENT_STARTED: "STARTED",
    VIR_DOMAIN_EVENT_SUSPENDED: "SUSPENDED",
    VIR_DOMAIN_EVENT_RESUMED: "RESUMED",
    VIR_DOMAIN_EVENT_STOPPED: "STOPPED",
}

# Detail names, keyed by (event, detail)
LIFECYCLE_DETAIL_NAMES = {
    (VIR_DOMAIN_EVENT_DEFINED, 0): "ADDED",
    (VIR_DOMAIN_EVENT_DEFINED, 1): "UPDATED",
    (VIR_DOMAIN_EVENT_UNDEFINED, 0): "REMOVED",
    (VIR_DOMAIN_EVENT_STARTED, 0): "BOOTED",
    (VIR_DOMAIN_EVENT_STARTED, 1): "MIGRATED",
    (VIR_DOMAIN_EVENT_STARTED, 2): "RESTORED",
    (VIR_DOMAIN_EVENT_STARTED, 3): "FROM_SNAPSHOT",
    (VIR_DOMAIN_EVENT_SUSPENDED, 0): "PAUSED",
    (VIR_DOMAIN_EVENT_SUSPENDED, 1): "MIGRATED",
    (VIR_DOMAIN_EVENT_SUSPENDED, 2): "IOERROR",
    (VIR_DOMAIN_EVENT_SUSPENDED, 3): "WATCHDOG",
    (VIR_DOMAIN_EVENT_RESUMED, 0): "UNPAUSED",
    (VIR_DOMAIN_EVENT_RESUMED, 1): "MIGRATED",
    (VIR_DOMAIN_EVENT_STOPPED, 0): "SHUTDOWN",
    (VIR_DOMAIN_EVENT_STOPPED, 1): "DESTROYED",
    (VIR_DOMAIN_EVENT_STOPPED, 2): "CRASHED",
    (VIR_DOMAIN_EVENT_STOPPED, 3): "MIGRATED",
    (VIR_DOMAIN_EVENT_STOPPED, 4): "SAVED",
    (VIR_DOMAIN_EVENT_STOPPED, 5): "FAILED",
    (VIR_DOMAIN_EVENT_STOPPED, 6): "FROM_SNAPSHOT",
}


# ============================================================================
# Watchdog and I/O error actions
# ============================================================================

VIR_DOMAIN_EVENT_WATCHDOG_NONE = 0
VIR_DOMAIN_EVENT_WATCHDOG_PAUSE = 1
VIR_DOMAIN_EVENT_WATCHDOG_RESET = 2
VIR_DOMAIN_EVENT_WATCHDOG_POWEROFF = 3
VIR_DOMAIN_EVENT_WATCHDOG_SHUTDOWN = 4
VIR_DOMAIN_EVENT_WATCHDOG_DEBUG = 5

WATCHDOG_ACTION_NAMES = {
    VIR_DOMAIN_EVENT_WATCHDOG_NONE: "NONE",
    VIR_DOMAIN_EVENT_WATCHDOG_PAUSE: "PAUSE",
    VIR_DOMAIN_EVENT_WATCHDOG_RESET: "RESET",
    VIR_DOMAIN_EVENT_WATCHDOG_POWEROFF: "POWEROFF",
    VIR_DOMAIN_EVENT_WATCHDOG_SHUTDOWN: "SHUTDOWN",
    VIR_DOMAIN_EVENT_WATCHDOG_DEBUG: "DEBUG",
}

VIR_DOMAIN_EVENT_IO_ERROR_NONE = 0
VIR_DOMAIN_EVENT_IO_ERROR_PAUSE = 1
VIR_DOMAIN_EVENT_IO_ERROR_REPORT = 2

IO_ERROR_ACTION_NAMES = {
    VIR_DOMAIN_EVENT_IO_ERROR_NONE: "NONE",
    VIR_DOMAIN_EVENT_IO_ERROR_PAUSE: "PAUSE",
    VIR_DOMAIN_EVENT_IO_ERROR_REPORT: "REPORT",
}


# ============================================================================
# Graphics events
# ============================================================================

VIR_DOMAIN_EVENT_GRAPHICS_CONNECT = 0      # Initial socket connection
VIR_DOMAIN_EVENT_GRAPHICS_INITIALIZE = 1   # Authentication done
VIR_DOMAIN_EVENT_GRAPHICS_DISCONNECT = 2   # Final shutdown of the session

GRAPHICS_PHASE_NAMES = {
    VIR_DOMAIN_EVENT_GRAPHICS_CONNECT: "CONNECT",
    VIR_DOMAIN_EVENT_GRAPHICS_INITIALIZE: "INITIALIZE",
    VIR_DOMAIN_EVENT_GRAPHICS_DISCONNECT: "DISCONNECT",
}

VIR_DOMAIN_EVENT_GRAPHICS_ADDRESS_IPV4 = 0
VIR_DOMAIN_EVENT_GRAPHICS_ADDRESS_IPV6 = 1
VIR_DOMAIN_EVENT_GRAPHICS_ADDRESS_UNIX = 2
