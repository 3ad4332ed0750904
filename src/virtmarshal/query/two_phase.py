"""
Two-phase queries.

libvirt can't tell us how big an array is without being asked first, so
every listing, statistics and typed-parameter call is a pair:

    1. Probe: "how many are there?"       -> count
    2. Fetch: "fill this buffer of count" -> actual count

This module implements that protocol once, so each call site only has to
say how to probe, how to fetch, and how to turn the filled buffer into
Python objects.

The protocol has two sharp edges that are handled here rather than at
the call sites:

- A probed count of zero means the fetch is skipped entirely. Some libvirt
  calls treat a zero-sized, non-NULL buffer as an error.
- The set can change between the two calls (a snapshot gets deleted, a
  domain stops). Whatever the fetch reports is the truth; we truncate to
  it and never read past it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from virtmarshal.errors import QueryError
from virtmarshal.ffi import ffi

logger = logging.getLogger(__name__)


# Probe callback: returns the count, or a negative number on failure
Probe = Callable[[], int]

# Fetch callback: fills (buffer, size), returns the actual count or negative
Fetch = Callable[[Any, int], int]


@dataclass(frozen=True)
class ArrayLayout:
    """
    Describes the buffer a two-phase query fills and how to read it.

    Attributes:
        ctype: C element type, e.g. "char *" or "virNodeCPUStats"
        convert: Turns (buffer, count) into the Python result
        release: Frees whatever the fetch stored in (buffer, count), e.g.
                 the strings libvirt allocated. Called after convert.
        empty: Builds the result for a probed count of zero
    """
    ctype: str
    convert: Callable[[Any, int], Any]
    release: Callable[[Any, int], None] | None = None
    empty: Callable[[], Any] = list


class TwoPhaseQuery:
    """
    One probe-then-fetch exchange with the subsystem.

    Usage:
        query = TwoPhaseQuery(
            operation="virConnectListDefinedDomains",
            resource="connection",
            probe=lambda: lib.virConnectNumOfDefinedDomains(conn),
            fetch=lambda buf, n: lib.virConnectListDefinedDomains(conn, buf, n),
            layout=ArrayLayout("char *", convert=strings),
        )
        names = query.run()
    """

    def __init__(
        self,
        operation: str,
        resource: Any,
        probe: Probe,
        fetch: Fetch,
        layout: ArrayLayout,
        error_detail: Callable[[], str | None] | None = None,
    ):
        """
        Args:
            operation: Name used in errors and logs (usually the fetch call)
            resource: What is being queried, for error context
            probe: Phase 1 callback
            fetch: Phase 2 callback
            layout: Buffer type and conversion
            error_detail: Returns the subsystem's last error message, used to
                          enrich QueryError
        """
        self.operation = operation
        self.resource = resource
        self._probe = probe
        self._fetch = fetch
        self._layout = layout
        self._error_detail = error_detail

    def _error(self, phase: str) -> QueryError:
        detail = self._error_detail() if self._error_detail else None
        return QueryError(f"{self.operation} ({phase})", self.resource, detail)

    def run(self):
        """
        Execute both phases and return the converted result.

        Raises:
            QueryError: If either phase reports failure.
        """
        # Phase 1: how many?
        probed = self._probe()
        if probed < 0:
            raise self._error("probe")

        logger.debug(f"{self.operation}: probed {probed} on {self.resource}")

        if probed == 0:
            # Don't fetch into a zero-sized buffer
            return self._layout.empty()

        # Phase 2: fetch into a buffer of exactly the probed size
        # ffi.new zero-fills, so release hooks can skip untouched entries
        buffer = ffi.new(f"{self._layout.ctype}[]", probed)

        # Until the fetch tells us otherwise, anything may have been written
        filled = probed
        try:
            actual = self._fetch(buffer, probed)
            if actual < 0:
                raise self._error("fetch")

            if actual > probed:
                logger.warning(
                    f"{self.operation}: fetch reported {actual} entries for a "
                    f"buffer of {probed}; keeping {probed}"
                )
                actual = probed
            elif actual < probed:
                logger.debug(
                    f"{self.operation}: set shrank between probe and fetch "
                    f"({probed} -> {actual})"
                )

            filled = actual
            return self._layout.convert(buffer, actual)
        finally:
            if self._layout.release is not None:
                self._layout.release(buffer, filled)


def run_two_phase(operation: str, resource: Any, probe: Probe, fetch: Fetch,
                  layout: ArrayLayout, error_detail=None):
    """Shorthand for TwoPhaseQuery(...).run()."""
    return TwoPhaseQuery(operation, resource, probe, fetch, layout, error_detail).run()
