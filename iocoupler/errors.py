# iocoupler/errors.py
"""
Error taxonomy for coupler sessions.

Every failure raised by this package derives from CouplerError so callers can
catch the whole family, and the subclasses keep "unreachable" (TransportError)
apart from "rejected" (DeviceExceptionError) and "misbehaving"
(ProtocolViolationError).
"""

__all__ = [
    "CouplerError",
    "TransportError",
    "DeviceExceptionError",
    "ProtocolViolationError",
    "DecodeError",
    "ValidationError",
    "SessionStateError",
]


class CouplerError(Exception):
    """Base class for all coupler errors."""


class TransportError(CouplerError):
    """Connection refused, reset or timed out. Fatal to the session."""


class DeviceExceptionError(CouplerError):
    """The coupler answered a register operation with a Modbus exception."""

    def __init__(self, message: str, exception_code: int | None = None, function: int | None = None):
        super().__init__(message)
        self.exception_code = exception_code
        self.function = function


class ProtocolViolationError(CouplerError):
    """A response had an unexpected shape (empty, short, wrong length)."""


class DecodeError(CouplerError):
    """Discovery data could not be turned into a consistent device model."""


class ValidationError(CouplerError):
    """An output mutation addressed a missing channel or used the wrong value type."""


class SessionStateError(CouplerError):
    """Operation is not legal in the current session state."""
