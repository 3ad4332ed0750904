"""
Shared test fixtures.

FakeSubsystem is a scripted stand-in for libvirt. It follows the same C
conventions as the real backend (fill cffi buffers, return negative on
failure) and records every call so tests can check the protocol.
"""

import pytest

from virtmarshal.ffi import ffi
from virtmarshal.params import ParameterSet, decode, encode
from virtmarshal.subsystem import Subsystem


class FakeSubsystem(Subsystem):
    """Fake libvirt for testing."""

    def __init__(self):
        # listing name -> names or ids (what probe/fetch report)
        self.listings: dict[str, list] = {}
        # statistics listing -> [(field, value), ...]
        self.stats: dict[str, list[tuple[str, int]]] = {}
        # listing name -> count fetch_array reports instead of the real one
        self.short_fetch: dict[str, int] = {}
        self.fail_probe: set[str] = set()
        self.fail_fetch: set[str] = set()

        # ParameterGroup -> ParameterSet get_typed_parameters reports
        self.parameters: dict = {}
        self.fail_get = False
        self.fail_set = False

        self.fail_register = False
        self.fail_deregister = False
        self.next_id = 0

        self.error_message: str | None = None

        # Recorded calls
        self.probes: list = []
        self.fetches: list = []
        self.parameter_calls: list = []
        self.applied: list = []
        self.released: list = []
        self.adapters: dict = {}
        self.active: set[int] = set()
        self.deregistered: list[int] = []

        self._keepalive: list = []

    def last_error(self):
        return self.error_message

    # Listings

    def _items(self, listing: str) -> list:
        if listing in self.stats:
            return self.stats[listing]
        return self.listings.get(listing, [])

    def probe_count(self, target) -> int:
        self.probes.append(target)
        if target.listing in self.fail_probe:
            self.error_message = "probe refused"
            return -1
        return len(self._items(target.listing))

    def fetch_array(self, target, buffer, size: int) -> int:
        if size == 0:
            pytest.fail(f"fetch_array called with a zero-sized buffer for {target}")
        self.fetches.append((target, size))
        if target.listing in self.fail_fetch:
            self.error_message = "fetch refused"
            return -1

        items = self._items(target.listing)
        reported = self.short_fetch.get(target.listing, min(len(items), size))

        for i, item in enumerate(items[:min(reported, size)]):
            if target.listing in self.stats:
                buffer[i].field = item[0].encode()
                buffer[i].value = item[1]
            elif isinstance(item, int):
                buffer[i] = item
            else:
                text = ffi.new("char[]", item.encode())
                self._keepalive.append(text)
                buffer[i] = text
        return reported

    def release_strings(self, buffer, count: int):
        self.released.append(("strings", count))

    # Typed parameters

    def get_typed_parameters(self, handle, group, params, nparams, flags) -> int:
        probing = params == ffi.NULL
        self.parameter_calls.append((handle, group, flags, probing))
        if self.fail_get:
            self.error_message = "get refused"
            return -1

        current = self.parameters.get(group, ParameterSet())
        if probing:
            nparams[0] = len(current)
            return 0

        encoded = encode(ParameterSet(list(current)[:nparams[0]]))
        self._keepalive.append(encoded)
        ffi.memmove(params, encoded.array, ffi.sizeof("virTypedParameter") * encoded.count)
        nparams[0] = encoded.count
        return 0

    def set_typed_parameters(self, handle, group, params, nparams, flags) -> int:
        if self.fail_set:
            self.error_message = "set refused"
            return -1
        self.applied.append((handle, group, decode(params, nparams), flags))
        return 0

    def release_typed_parameters(self, params, count: int):
        self.released.append(("typed", count))

    # Events

    def register_callback(self, handle, event_kind, adapter, opaque) -> int:
        if self.fail_register:
            self.error_message = "register refused"
            return -1
        registration_id = self.next_id
        self.next_id += 1
        self.adapters[registration_id] = adapter
        self.active.add(registration_id)
        return registration_id

    def deregister_callback(self, registration_id: int) -> int:
        if self.fail_deregister:
            self.error_message = "deregister refused"
            return -1
        self.deregistered.append(registration_id)
        self.active.discard(registration_id)
        return 0

    def fire(self, registration_id: int, *event_args):
        """Deliver an event the way libvirt's event loop would."""
        return self.adapters[registration_id](*event_args)


@pytest.fixture
def subsystem() -> FakeSubsystem:
    return FakeSubsystem()
