"""
Callback dispatch table.

The table keeps track of every event handler registered with the
subsystem. When the subsystem delivers an event, the adapter it was
given looks up the registration and invokes the handler with the
event kind's fixed argument shape.

Deliveries arrive on libvirt's event-loop thread while the application
may be registering or deregistering on another, so the table is
guarded by a reader/writer lock: lookups share it, mutations take it
exclusively. Handlers always run outside the lock.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from virtmarshal.errors import (
    HandlerContractError,
    SubsystemError,
    UnknownRegistrationError,
)
from virtmarshal.subsystem import Subsystem

from .handlers import HandlerInvoker
from .kinds import EventKind

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """
    A reader/writer lock.

    Any number of readers may hold the lock at once; a writer holds it
    alone. Waiting writers block new readers, so a steady stream of
    deliveries can't starve registrations.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            except BaseException:
                # Readers blocked on our writer preference must wake up
                self._writers_waiting -= 1
                self._cond.notify_all()
                raise
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class RegistrationState(Enum):
    PENDING = "pending"             # Subsystem registration in progress
    REGISTERED = "registered"
    DEREGISTERED = "deregistered"


@dataclass
class Registration:
    """
    One handler registration.

    Attributes:
        kind: The event kind, which fixes the handler's argument shape
        invoker: The resolved handler
        opaque: User data appended to every delivery
        resource: Domain filter passed to the subsystem, or None
        registration_id: Id from the subsystem (None until registered)
        state: Where the registration is in its lifecycle
    """
    kind: EventKind
    invoker: HandlerInvoker
    opaque: Any = None
    resource: Any = None
    registration_id: int | None = None
    state: RegistrationState = field(default=RegistrationState.PENDING)

    def __str__(self) -> str:
        return (
            f"#{self.registration_id} {self.kind.name} -> {self.invoker.name} "
            f"({self.state.value})"
        )


class CallbackDispatchTable:
    """
    Routes subsystem events to user handlers.

    Usage:
        table = CallbackDispatchTable(subsystem)

        def on_watchdog(conn, dom, action, opaque):
            print(f"{dom.name}: watchdog fired, action {action}")

        reg_id = table.register(EventKind.WATCHDOG, on_watchdog, opaque="x")
        ...
        table.deregister(reg_id)

    Delivery order across several handlers for the same event is
    whatever order the subsystem calls the adapters in.
    """

    def __init__(self, subsystem: Subsystem):
        self._subsystem = subsystem
        self._lock = ReadWriteLock()
        self._registrations: dict[int, Registration] = {}

    def register(self, kind: EventKind, handler, opaque=None, resource=None) -> int:
        """
        Register a handler for an event kind.

        Args:
            kind: Which events to receive.
            handler: A callable, (target, "method") pair, or "module:function"
                     string (see events.handlers).
            opaque: User data passed as the handler's last argument.
            resource: Domain to filter on, or None for all domains.

        Returns:
            The registration id, needed for deregister().

        Raises:
            SubsystemError: If the subsystem refuses the registration.
        """
        kind = EventKind(kind)
        registration = Registration(
            kind=kind,
            invoker=HandlerInvoker(kind, handler),
            opaque=opaque,
            resource=resource,
        )

        # The adapter closes over the registration object itself. Events
        # arriving before the id is recorded see PENDING and are dropped.
        def adapter(*event_args):
            self._deliver(registration, event_args)

        registration_id = self._subsystem.register_callback(
            resource, kind, adapter, opaque
        )
        if registration_id < 0:
            raise SubsystemError(
                f"register {kind.name} callback",
                resource,
                self._subsystem.last_error(),
            )

        with self._lock.write_locked():
            reused = registration_id in self._registrations
            if reused:
                registration.state = RegistrationState.DEREGISTERED
            else:
                registration.registration_id = registration_id
                registration.state = RegistrationState.REGISTERED
                self._registrations[registration_id] = registration

        if reused:
            # The subsystem still holds our new callback; take it back
            if self._subsystem.deregister_callback(registration_id) < 0:
                logger.warning(
                    f"Couldn't withdraw callback for reused id {registration_id}: "
                    f"{self._subsystem.last_error()}"
                )
            raise SubsystemError(
                f"register {kind.name} callback",
                resource,
                f"subsystem reused active registration id {registration_id}",
            )

        logger.info(f"Registered callback {registration}")
        return registration_id

    def deregister(self, registration_id: int):
        """
        Deregister a handler.

        Future events stop immediately; a delivery already running is
        allowed to finish.

        Raises:
            UnknownRegistrationError: If the id isn't currently registered
                                      (including a second deregister).
            SubsystemError: If the subsystem refuses. The registration stays
                            active in that case.
        """
        with self._lock.write_locked():
            registration = self._registrations.pop(registration_id, None)
            if registration is None:
                raise UnknownRegistrationError(registration_id)
            registration.state = RegistrationState.DEREGISTERED

        result = self._subsystem.deregister_callback(registration_id)
        if result < 0:
            with self._lock.write_locked():
                registration.state = RegistrationState.REGISTERED
                self._registrations[registration_id] = registration
            raise SubsystemError(
                f"deregister {registration.kind.name} callback",
                registration.resource,
                self._subsystem.last_error(),
            )

        logger.info(f"Deregistered callback {registration}")

    def deregister_all(self):
        """Deregister every active registration."""
        for registration_id in self.registration_ids():
            try:
                self.deregister(registration_id)
            except UnknownRegistrationError:
                # Already deregistered by another thread
                pass

    def dispatch(self, registration_id: int, *event_args):
        """
        Deliver an event to one registration.

        Args:
            registration_id: Which registration to deliver to.
            *event_args: The event's arguments, without opaque
                         (e.g. conn, dom, action for WATCHDOG).

        Returns:
            Whatever the handler returned.

        Raises:
            UnknownRegistrationError: If the id isn't registered.
            HandlerContractError: If the arguments don't match the kind's
                                  shape, or the handler can't take them.
        """
        with self._lock.read_locked():
            registration = self._registrations.get(registration_id)
            if registration is None:
                raise UnknownRegistrationError(registration_id)

        return self._invoke(registration, event_args)

    def _deliver(self, registration: Registration, event_args: tuple):
        """Adapter path: called by the subsystem, possibly on another thread."""
        with self._lock.read_locked():
            active = registration.state is RegistrationState.REGISTERED

        if not active:
            logger.debug(
                f"Dropping {registration.kind.name} event for inactive "
                f"registration {registration}"
            )
            return None

        return self._invoke(registration, event_args)

    def _invoke(self, registration: Registration, event_args: tuple):
        kind = registration.kind
        if len(event_args) != kind.event_arity:
            raise HandlerContractError(
                kind,
                f"{kind.name} events carry {kind.event_arity} arguments "
                f"{kind.arguments[:-1]}, got {len(event_args)}",
            )

        logger.debug(
            f"Dispatching {kind.name} event to #{registration.registration_id}"
        )
        return registration.invoker(*event_args, registration.opaque)

    def registration_ids(self) -> list[int]:
        """Get the ids of all active registrations."""
        with self._lock.read_locked():
            return list(self._registrations)

    def registrations(self) -> list[Registration]:
        """Get all active registrations (read-only snapshot)."""
        with self._lock.read_locked():
            return list(self._registrations.values())

    def is_registered(self, registration_id: int) -> bool:
        with self._lock.read_locked():
            return registration_id in self._registrations

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._registrations)
