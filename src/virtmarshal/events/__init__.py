"""
Domain events.

This package contains:
- kinds: event ids, their argument contracts, and raw payload conversion
- handlers: resolving handler references into invokers
- dispatch: the CallbackDispatchTable that routes events to handlers
"""

from .dispatch import CallbackDispatchTable, ReadWriteLock, Registration, RegistrationState
from .handlers import HandlerInvoker
from .kinds import (
    EVENT_ARGUMENTS,
    EventKind,
    GraphicsAddress,
    graphics_address_from_raw,
    graphics_subject_from_raw,
)

__all__ = [
    "CallbackDispatchTable",
    "ReadWriteLock",
    "Registration",
    "RegistrationState",
    "HandlerInvoker",
    "EventKind",
    "EVENT_ARGUMENTS",
    "GraphicsAddress",
    "graphics_address_from_raw",
    "graphics_subject_from_raw",
]
