"""Application-facing KTP socket calls."""

from __future__ import annotations

import socket
import time

from ktpsock.errors import ErrorCode, KTPError
from ktpsock.table import SocketEntry, SocketTable

SOCK_KTP = 12345
_POLL_INTERVAL = 0.01


class KTPSocket:
    """Handle on one slot of a socket table."""

    def __init__(self, table: SocketTable, index: int) -> None:
        table.entry(index)
        self.table = table
        self.index = index
        self.closed = False

    @property
    def entry(self) -> SocketEntry:
        return self.table.entry(self.index)

    def bind(self, src_ip: str, src_port: int, dest_ip: str, dest_port: int) -> None:
        """Set local and peer addresses; the daemon performs the actual bind."""
        self.table.request_bind(self.index, src_ip, src_port, dest_ip, dest_port)

    def sendto(self, message: bytes | str, address: tuple[str, int]) -> int:
        """Queue a message for the bound peer and return its length."""
        dest_ip, dest_port = address
        return self.table.enqueue_send(self.index, message, dest_ip, dest_port)

    def recvfrom(self, timeout: float | None = None) -> bytes:
        """Wait for the next in-order message; raise KTPError(NO_MESSAGE) on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            try:
                return self.table.dequeue_recv(self.index)
            except KTPError as exc:
                if exc.code is not ErrorCode.NO_MESSAGE:
                    raise
            if deadline is not None and time.monotonic() >= deadline:
                raise KTPError(ErrorCode.NO_MESSAGE)
            time.sleep(_POLL_INTERVAL)

    def close(self) -> None:
        """Release the slot; closing twice does nothing."""
        if not self.closed:
            self.table.release(self.index)
            self.closed = True

    def describe_send_buffer(self) -> str:
        return self.table.describe_send_buffer(self.index)

    def __enter__(self) -> KTPSocket:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def ktp_socket(
    table: SocketTable,
    domain: int = socket.AF_INET,
    sock_type: int = SOCK_KTP,
    protocol: int = 0,
) -> KTPSocket:
    """Open a KTP socket in the first free slot of ``table``."""
    if sock_type != SOCK_KTP:
        raise KTPError(ErrorCode.SOCK_TYPE)
    if domain != socket.AF_INET:
        raise KTPError(ErrorCode.AF_NOT_SUPPORTED)
    return KTPSocket(table, table.allocate())