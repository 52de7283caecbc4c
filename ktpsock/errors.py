"""Error codes reported by KTP socket operations."""

from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    """Reasons a KTP operation can fail."""

    NONE = 0
    NO_SPACE = 1
    AF_NOT_SUPPORTED = 2
    SOCK_TYPE = 3
    NO_PROTO = 4
    SOCK_CREATE = 5
    BIND = 6
    NOT_BOUND = 7
    NO_MESSAGE = 8
    RECV_BUFFER_FULL = 9
    ALLOCATING = 10


_MESSAGES = {
    ErrorCode.NONE: "No error",
    ErrorCode.NO_SPACE: "No space in SHM to create a new KTP socket",
    ErrorCode.AF_NOT_SUPPORTED: "The specified address family is not supported",
    ErrorCode.SOCK_TYPE: "The specifed socket type is not supported",
    ErrorCode.NO_PROTO: "The specifed protocol type is not supported",
    ErrorCode.SOCK_CREATE: "UDP socket creation failed",
    ErrorCode.BIND: "Error binding the UDP socket",
    ErrorCode.NOT_BOUND: "Destination IP/Port not matching with Bounded IP/Port",
    ErrorCode.NO_MESSAGE: "No message in recv buffer",
    ErrorCode.RECV_BUFFER_FULL: "Enque in recv_buff not possible due to full buffer",
    ErrorCode.ALLOCATING: "Memory could not be allocated.",
}

_UNKNOWN = "Unknown error"


def error_message(code: ErrorCode | int) -> str:
    """Return the human-readable description of an error code."""
    try:
        return _MESSAGES[ErrorCode(code)]
    except (ValueError, KeyError):
        return _UNKNOWN


class KTPError(Exception):
    """Raised when a KTP socket operation fails."""

    def __init__(self, code: ErrorCode | int) -> None:
        try:
            self.code: ErrorCode | int = ErrorCode(code)
        except ValueError:
            self.code = code
        super().__init__(error_message(code))