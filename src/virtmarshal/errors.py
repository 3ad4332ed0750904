"""
virtmarshal exception classes.

There are two families below the base class, and they must not be
confused:

- SubsystemError: libvirt (or whatever stands in for it) rejected a
  request. These depend on the environment and may succeed on retry.
- MarshalError / RegistrationError: a local contract was violated while
  converting data or invoking callbacks. These are programming errors.
"""


class VirtMarshalError(Exception):
    """Base exception for virtmarshal."""


class SubsystemError(VirtMarshalError):
    """
    The underlying subsystem reported a failure.

    Attributes:
        operation: Name of the failing entry point (e.g. "virConnectListDomains")
        resource: The resource the call targeted, if any
        detail: The subsystem's own error message, if it provided one
    """

    def __init__(self, operation: str, resource=None, detail: str | None = None):
        self.operation = operation
        self.resource = resource
        self.detail = detail

        message = f"{operation} failed"
        if resource is not None:
            message += f" on {resource}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class QueryError(SubsystemError):
    """The probe or fetch phase of a two-phase query failed."""


class MarshalError(VirtMarshalError):
    """Typed-parameter data could not be converted."""


class DecodeError(MarshalError):
    """A raw record could not be decoded (unknown kind, NULL string, bad UTF-8)."""


class InvalidValueError(MarshalError):
    """A value doesn't match its declared kind or can't be represented."""


class NameTooLongError(MarshalError):
    """
    A parameter name doesn't fit in the fixed-size name field.

    Attributes:
        name: The offending name
        capacity: Size of the field in bytes, including the NUL terminator
    """

    def __init__(self, name: str, capacity: int):
        self.name = name
        self.capacity = capacity
        super().__init__(
            f"Parameter name {name!r} is {len(name.encode('utf-8'))} bytes; "
            f"at most {capacity - 1} bytes fit in a {capacity}-byte field"
        )


class RegistrationError(VirtMarshalError):
    """A callback registration contract was violated."""


class UnknownRegistrationError(RegistrationError):
    """The registration id is not currently registered."""

    def __init__(self, registration_id: int):
        self.registration_id = registration_id
        super().__init__(f"No active callback registration with id {registration_id}")


class HandlerContractError(RegistrationError):
    """A handler can't be invoked with its event kind's argument shape."""

    def __init__(self, event_kind, message: str):
        self.event_kind = event_kind
        super().__init__(message)
