"""Table of KTP socket slots shared by applications and the daemon."""

from __future__ import annotations

import os
import socket
import threading
from dataclasses import dataclass, field
from enum import IntEnum

from ktpsock.buffer import MessageBuffer
from ktpsock.errors import ErrorCode, KTPError
from ktpsock.packet import _as_message
from ktpsock.window import ReceiveWindow, SendWindow

MAX_CONC_SOCKETS = 10


class BindStatus(IntEnum):
    UNBOUND = -1
    AWAIT_BIND = -2
    BOUND = -3


class CloseStatus(IntEnum):
    OPEN = -4
    AWAIT_CLOSE = -5


@dataclass
class SocketEntry:
    """State of one KTP socket slot."""

    process_id: int = -1
    udp: socket.socket | None = None
    dest_ip: str = ""
    dest_port: int = -1
    src_ip: str = ""
    src_port: int = -1
    send_buf: MessageBuffer = field(default_factory=MessageBuffer)
    recv_buf: MessageBuffer = field(default_factory=MessageBuffer)
    swnd: SendWindow = field(default_factory=SendWindow)
    rwnd: ReceiveWindow = field(default_factory=ReceiveWindow)
    bind_status: BindStatus = BindStatus.UNBOUND
    close_status: CloseStatus = CloseStatus.OPEN

    @property
    def in_use(self) -> bool:
        return self.process_id >= 0

    def reset(self) -> None:
        """Mark the slot free and forget its addresses and buffered data."""
        self.process_id = -1
        self.udp = None
        self.dest_port = -1
        self.dest_ip = ""
        self.src_port = -1
        self.src_ip = ""
        self.send_buf.clear()
        self.recv_buf.clear()
        self.bind_status = BindStatus.UNBOUND
        self.close_status = CloseStatus.OPEN

    def open(self, owner: int) -> None:
        """Claim the slot for ``owner`` with fresh buffers and windows."""
        self.process_id = owner
        self.bind_status = BindStatus.UNBOUND
        self.send_buf.clear()
        self.recv_buf.clear()
        self.swnd.reset()
        self.rwnd.reset()


class SocketTable:
    """Fixed-size set of socket slots guarded by one lock."""

    def __init__(self, size: int = MAX_CONC_SOCKETS) -> None:
        if size <= 0:
            raise ValueError("size must be positive")
        self.lock = threading.RLock()
        self.entries = [SocketEntry() for _ in range(size)]
        self.udp_sockets: list[socket.socket | None] = [None] * size

    def __len__(self) -> int:
        return len(self.entries)

    def allocate(self, owner: int | None = None) -> int:
        """Claim the first free slot and return its index."""
        if owner is None:
            owner = os.getpid()
        with self.lock:
            for index, entry in enumerate(self.entries):
                if not entry.in_use:
                    entry.open(owner)
                    entry.udp = self.udp_sockets[index]
                    return index
        raise KTPError(ErrorCode.NO_SPACE)

    def entry(self, index: int) -> SocketEntry:
        if not 0 <= index < len(self.entries):
            raise IndexError(f"no KTP socket {index}")
        return self.entries[index]

    def request_bind(
        self, index: int, src_ip: str, src_port: int, dest_ip: str, dest_port: int
    ) -> None:
        """Record addresses and ask the daemon to bind the slot."""
        with self.lock:
            entry = self.entry(index)
            entry.src_ip = src_ip
            entry.src_port = src_port
            entry.dest_ip = dest_ip
            entry.dest_port = dest_port
            entry.bind_status = BindStatus.AWAIT_BIND

    def enqueue_send(
        self, index: int, message: bytes | str, dest_ip: str, dest_port: int
    ) -> int:
        """Queue a message for the bound peer; return its length."""
        with self.lock:
            entry = self.entry(index)
            if entry.dest_ip != dest_ip or entry.dest_port != dest_port:
                raise KTPError(ErrorCode.NOT_BOUND)
            body = _as_message(message)
            entry.send_buf.enqueue(body)
            return len(body)

    def dequeue_recv(self, index: int) -> bytes:
        """Take the oldest delivered message; raise KTPError(NO_MESSAGE) if none."""
        with self.lock:
            return self.entry(index).recv_buf.dequeue()

    def release(self, index: int) -> None:
        """Free the slot and ask the daemon to recycle its UDP socket."""
        with self.lock:
            entry = self.entry(index)
            entry.reset()
            entry.close_status = CloseStatus.AWAIT_CLOSE

    def active(self) -> list[tuple[int, SocketEntry]]:
        """Return (index, entry) for every slot that is in use."""
        with self.lock:
            return [(i, e) for i, e in enumerate(self.entries) if e.in_use]

    def describe_send_buffer(self, index: int) -> str:
        with self.lock:
            return self.entry(index).send_buf.describe()