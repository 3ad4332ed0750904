"""
Event handler resolution.

A handler can be given in three ways:

- any callable (function, closure, bound method, object with __call__)
- a (target, "method_name") pair, resolved to getattr(target, method_name)
- a "package.module:function" string, imported and looked up

Resolution happens once, at registration. A handler that can't be
resolved, or whose signature can't take the event kind's arguments, is
not rejected there: it is turned into an invoker that raises
HandlerContractError each time it is dispatched. The dispatch fails;
the table keeps working.
"""

import importlib
import inspect
import logging
from typing import Any, Callable

from virtmarshal.errors import HandlerContractError

from .kinds import EventKind

logger = logging.getLogger(__name__)


class HandlerInvoker:
    """
    A resolved handler, bound to one event kind's argument shape.

    Calling the invoker checks the arguments against the handler's
    signature first, so a TypeError raised inside the handler is never
    mistaken for a contract violation.
    """

    def __init__(self, kind: EventKind, handler: Any):
        self.kind = kind
        self.handler = handler
        self._function: Callable | None = None
        self._signature: inspect.Signature | None = None
        self._problem: str | None = None

        try:
            self._function = _resolve(handler)
        except LookupError as e:
            self._problem = str(e)
            logger.warning(f"{kind.name} handler {handler!r} is unusable: {e}")
            return

        try:
            self._signature = inspect.signature(self._function)
        except (TypeError, ValueError):
            # Some builtins have no introspectable signature; call them blind
            self._signature = None

    @property
    def name(self) -> str:
        function = self._function or self.handler
        return getattr(function, "__qualname__", repr(function))

    def __call__(self, *args):
        if self._problem is not None:
            raise HandlerContractError(
                self.kind, f"{self.kind.name} handler can't be invoked: {self._problem}"
            )

        if self._signature is not None:
            try:
                self._signature.bind(*args)
            except TypeError as e:
                raise HandlerContractError(
                    self.kind,
                    f"{self.kind.name} handler {self.name} can't accept "
                    f"{len(args)} arguments {self.kind.arguments}: {e}",
                ) from e

        return self._function(*args)


def _resolve(handler: Any) -> Callable:
    """
    Turn a handler reference into a callable.

    Raises:
        LookupError: If the reference can't be resolved.
    """
    if isinstance(handler, str):
        return _resolve_dotted(handler)

    if isinstance(handler, tuple):
        if len(handler) != 2 or not isinstance(handler[1], str):
            raise LookupError(
                f"method references must be (target, 'method_name'), got {handler!r}"
            )
        target, method_name = handler
        method = getattr(target, method_name, None)
        if method is None or not callable(method):
            raise LookupError(f"{target!r} has no callable attribute {method_name!r}")
        return method

    if callable(handler):
        return handler

    raise LookupError(
        f"expected a callable, a (target, 'method') pair or a "
        f"'module:function' string, got {type(handler).__name__}"
    )


def _resolve_dotted(reference: str) -> Callable:
    module_name, sep, attribute_path = reference.partition(":")
    if not sep or not module_name or not attribute_path:
        raise LookupError(f"symbolic handler {reference!r} is not 'module:function'")

    try:
        obj = importlib.import_module(module_name)
    except ImportError as e:
        raise LookupError(f"can't import {module_name!r}: {e}") from e

    for part in attribute_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise LookupError(f"{reference!r}: no attribute {part!r}") from None

    if not callable(obj):
        raise LookupError(f"{reference!r} is not callable")
    return obj
