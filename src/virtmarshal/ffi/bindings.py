"""
Low-level cffi bindings for the libvirt C API.

This module declares the libvirt records we marshal (typed parameters,
node statistics, graphics event payloads) and the entry points we call.
The bindings use cffi's ABI mode: nothing is compiled, the declarations
are matched against the shared library at dlopen time.

Two libraries are involved:
- libc: for free(), which releases strings libvirt hands back to us
- libvirt: loaded lazily by load_libvirt(), since the record layouts are
  useful (and tested) on machines without libvirt installed
"""

import ctypes.util
import logging

from cffi import FFI

logger = logging.getLogger(__name__)

# Create the FFI instance that we'll use throughout
ffi = FFI()

# These come from libvirt's public headers:
# - /usr/include/libvirt/libvirt-common.h (typed parameters)
# - /usr/include/libvirt/libvirt-host.h (node stats, event loop)
# - /usr/include/libvirt/libvirt-domain.h (domains, events)
ffi.cdef("""
    // libc
    void free(void *ptr);

    // Opaque object handles. We only ever hold pointers to these.
    typedef struct _virConnect *virConnectPtr;
    typedef struct _virDomain *virDomainPtr;
    typedef struct _virDomainSnapshot *virDomainSnapshotPtr;

    // A typed parameter: a named value with a type tag.
    // Used by the scheduler/memory/blkio get/set calls.
    typedef struct _virTypedParameter {
        char field[80];     // Parameter name, NUL-terminated
        int type;           // VIR_TYPED_PARAM_* tag selecting the union arm
        union {
            int i;                      // VIR_TYPED_PARAM_INT
            unsigned int ui;            // VIR_TYPED_PARAM_UINT
            long long int l;            // VIR_TYPED_PARAM_LLONG
            unsigned long long int ul;  // VIR_TYPED_PARAM_ULLONG
            double d;                   // VIR_TYPED_PARAM_DOUBLE
            char b;                     // VIR_TYPED_PARAM_BOOLEAN
            char *s;                    // VIR_TYPED_PARAM_STRING, never NULL
        } value;
    } virTypedParameter;
    typedef virTypedParameter *virTypedParameterPtr;

    // Node statistics records (virNodeGetCPUStats / virNodeGetMemoryStats)
    typedef struct _virNodeCPUStats {
        char field[80];
        unsigned long long value;
    } virNodeCPUStats;

    typedef struct _virNodeMemoryStats {
        char field[80];
        unsigned long long value;
    } virNodeMemoryStats;

    // Graphics event payload
    typedef struct _virDomainEventGraphicsAddress {
        int family;             // VIR_DOMAIN_EVENT_GRAPHICS_ADDRESS_*
        const char *node;       // Address of the endpoint
        const char *service;    // Port or service name
    } virDomainEventGraphicsAddress;

    typedef struct _virDomainEventGraphicsSubjectIdentity {
        const char *type;       // e.g. "x509dname", "saslUsername"
        const char *name;
    } virDomainEventGraphicsSubjectIdentity;

    typedef struct _virDomainEventGraphicsSubject {
        int nidentity;                                  // Entries in identities
        virDomainEventGraphicsSubjectIdentity *identities;
    } virDomainEventGraphicsSubject;

    // Event callback shapes, one per event id.
    // Lifecycle is the only one that returns int.
    typedef int (*virConnectDomainEventCallback)(virConnectPtr conn,
        virDomainPtr dom, int event, int detail, void *opaque);
    typedef void (*virConnectDomainEventGenericCallback)(virConnectPtr conn,
        virDomainPtr dom, void *opaque);
    typedef void (*virConnectDomainEventRTCChangeCallback)(virConnectPtr conn,
        virDomainPtr dom, long long utcoffset, void *opaque);
    typedef void (*virConnectDomainEventWatchdogCallback)(virConnectPtr conn,
        virDomainPtr dom, int action, void *opaque);
    typedef void (*virConnectDomainEventIOErrorCallback)(virConnectPtr conn,
        virDomainPtr dom, const char *srcPath, const char *devAlias,
        int action, void *opaque);
    typedef void (*virConnectDomainEventIOErrorReasonCallback)(
        virConnectPtr conn, virDomainPtr dom, const char *srcPath,
        const char *devAlias, int action, const char *reason, void *opaque);
    typedef void (*virConnectDomainEventGraphicsCallback)(virConnectPtr conn,
        virDomainPtr dom, int phase,
        const virDomainEventGraphicsAddress *local,
        const virDomainEventGraphicsAddress *remote,
        const char *authScheme,
        const virDomainEventGraphicsSubject *subject,
        void *opaque);
    typedef void (*virFreeCallback)(void *opaque);

    // Connections
    virConnectPtr virConnectOpen(const char *name);
    virConnectPtr virConnectOpenReadOnly(const char *name);
    int virConnectClose(virConnectPtr conn);

    // Domains
    virDomainPtr virDomainLookupByName(virConnectPtr conn, const char *name);
    int virDomainRef(virDomainPtr domain);
    int virDomainFree(virDomainPtr domain);
    const char *virDomainGetName(virDomainPtr domain);

    // Count/list pairs (two-phase queries)
    int virConnectNumOfDomains(virConnectPtr conn);
    int virConnectListDomains(virConnectPtr conn, int *ids, int maxids);
    int virConnectNumOfDefinedDomains(virConnectPtr conn);
    int virConnectListDefinedDomains(virConnectPtr conn, char **names,
                                     int maxnames);
    int virConnectNumOfNetworks(virConnectPtr conn);
    int virConnectListNetworks(virConnectPtr conn, char **names, int maxnames);
    int virConnectNumOfDefinedNetworks(virConnectPtr conn);
    int virConnectListDefinedNetworks(virConnectPtr conn, char **names,
                                      int maxnames);
    int virConnectNumOfInterfaces(virConnectPtr conn);
    int virConnectListInterfaces(virConnectPtr conn, char **names,
                                 int maxnames);
    int virConnectNumOfDefinedInterfaces(virConnectPtr conn);
    int virConnectListDefinedInterfaces(virConnectPtr conn, char **names,
                                        int maxnames);
    int virConnectNumOfStoragePools(virConnectPtr conn);
    int virConnectListStoragePools(virConnectPtr conn, char **names,
                                   int maxnames);
    int virConnectNumOfDefinedStoragePools(virConnectPtr conn);
    int virConnectListDefinedStoragePools(virConnectPtr conn, char **names,
                                          int maxnames);
    int virConnectNumOfNWFilters(virConnectPtr conn);
    int virConnectListNWFilters(virConnectPtr conn, char **names,
                                int maxnames);
    int virConnectNumOfSecrets(virConnectPtr conn);
    int virConnectListSecrets(virConnectPtr conn, char **uuids, int maxuuids);
    int virNodeNumOfDevices(virConnectPtr conn, const char *cap,
                            unsigned int flags);
    int virNodeListDevices(virConnectPtr conn, const char *cap, char **names,
                           int maxnames, unsigned int flags);
    int virDomainSnapshotNum(virDomainPtr domain, unsigned int flags);
    int virDomainSnapshotListNames(virDomainPtr domain, char **names,
                                   int nameslen, unsigned int flags);
    virDomainSnapshotPtr virDomainSnapshotLookupByName(virDomainPtr domain,
                                                       const char *name,
                                                       unsigned int flags);
    int virDomainSnapshotFree(virDomainSnapshotPtr snapshot);
    const char *virDomainSnapshotGetName(virDomainSnapshotPtr snapshot);
    int virDomainSnapshotNumChildren(virDomainSnapshotPtr snapshot,
                                     unsigned int flags);
    int virDomainSnapshotListChildrenNames(virDomainSnapshotPtr snapshot,
                                           char **names, int nameslen,
                                           unsigned int flags);

    // Statistics (two-phase over nparams)
    int virNodeGetCPUStats(virConnectPtr conn, int cpuNum,
                           virNodeCPUStats *params, int *nparams,
                           unsigned int flags);
    int virNodeGetMemoryStats(virConnectPtr conn, int cellNum,
                              virNodeMemoryStats *params, int *nparams,
                              unsigned int flags);

    // Typed parameter groups
    char *virDomainGetSchedulerType(virDomainPtr domain, int *nparams);
    int virDomainGetSchedulerParametersFlags(virDomainPtr domain,
        virTypedParameterPtr params, int *nparams, unsigned int flags);
    int virDomainSetSchedulerParametersFlags(virDomainPtr domain,
        virTypedParameterPtr params, int nparams, unsigned int flags);
    int virDomainGetMemoryParameters(virDomainPtr domain,
        virTypedParameterPtr params, int *nparams, unsigned int flags);
    int virDomainSetMemoryParameters(virDomainPtr domain,
        virTypedParameterPtr params, int nparams, unsigned int flags);
    int virDomainGetBlkioParameters(virDomainPtr domain,
        virTypedParameterPtr params, int *nparams, unsigned int flags);
    int virDomainSetBlkioParameters(virDomainPtr domain,
        virTypedParameterPtr params, int nparams, unsigned int flags);
    int virNodeGetMemoryParameters(virConnectPtr conn,
        virTypedParameterPtr params, int *nparams, unsigned int flags);
    int virNodeSetMemoryParameters(virConnectPtr conn,
        virTypedParameterPtr params, int nparams, unsigned int flags);
    void virTypedParamsClear(virTypedParameterPtr params, int nparams);

    // Events
    int virConnectDomainEventRegisterAny(virConnectPtr conn, virDomainPtr dom,
        int eventID, virConnectDomainEventGenericCallback cb, void *opaque,
        virFreeCallback freecb);
    int virConnectDomainEventDeregisterAny(virConnectPtr conn,
                                           int callbackID);
    int virEventRegisterDefaultImpl(void);
    int virEventRunDefaultImpl(void);

    // Errors
    const char *virGetLastErrorMessage(void);
""")

# libc, for free(). None means "the C library this process already uses".
libc = ffi.dlopen(None)

_libvirt = None


def load_libvirt(path: str | None = None):
    """
    Load the libvirt shared library.

    The library is opened once per process; later calls return the same
    handle.

    Args:
        path: Explicit path to libvirt.so. When omitted we ask
              ctypes.util.find_library, then fall back to the soname.

    Returns:
        The cffi library object.

    Raises:
        OSError: If the library cannot be opened.
    """
    global _libvirt

    if _libvirt is not None:
        return _libvirt

    if path is None:
        path = ctypes.util.find_library("virt") or "libvirt.so.0"

    logger.debug(f"Loading libvirt from {path}")
    _libvirt = ffi.dlopen(path)
    return _libvirt


def cstring(ptr) -> str | None:
    """
    Convert a C string to a Python str.

    Returns None for NULL pointers.
    """
    if ptr == ffi.NULL:
        return None
    return ffi.string(ptr).decode("utf-8")
