"""Wire format of KTP packets: a 4-byte header followed by a message."""

from __future__ import annotations

import struct
from dataclasses import dataclass

MESSAGE_SIZE = 512
HEADER_SIZE = 4
PACKET_SIZE = MESSAGE_SIZE + HEADER_SIZE

_HEADER = struct.Struct("4B")


def _as_message(message: bytes | str) -> bytes:
    """Normalise a message the way a C string field holds it."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    message = bytes(message)
    end = message.find(b"\x00")
    if end != -1:
        message = message[:end]
    return message[:MESSAGE_SIZE]


@dataclass
class Header:
    """KTP packet header; every field is a single unsigned byte on the wire."""

    seq_num: int = 0
    ack_num: int = 0
    is_ack: bool = False
    rwnd_size: int = 0

    def pack(self) -> bytes:
        return _HEADER.pack(
            self.seq_num & 0xFF,
            self.ack_num & 0xFF,
            1 if self.is_ack else 0,
            self.rwnd_size & 0xFF,
        )

    @classmethod
    def unpack(cls, data: bytes) -> Header:
        if len(data) < HEADER_SIZE:
            raise ValueError(f"header needs {HEADER_SIZE} bytes, got {len(data)}")
        seq, ack, is_ack, rwnd = _HEADER.unpack_from(data)
        return cls(seq_num=seq, ack_num=ack, is_ack=bool(is_ack), rwnd_size=rwnd)


def create_packet(header: Header, message: bytes | str) -> bytes:
    """Build a full PACKET_SIZE datagram from a header and a message."""
    body = _as_message(message)
    return header.pack() + body.ljust(MESSAGE_SIZE, b"\x00")


def extract_packet(packet: bytes) -> tuple[Header, bytes]:
    """Split a datagram into its header and message."""
    header = Header.unpack(packet)
    return header, _as_message(packet[HEADER_SIZE:HEADER_SIZE + MESSAGE_SIZE])


def format_header(header: Header) -> str:
    """Return a printable description of a header."""
    return (
        "--- Header\n"
        f"\tIs Ack: {int(header.is_ack)}\n"
        f"\tAck Num: {header.ack_num}\n"
        f"\tSeq Num: {header.seq_num}\n"
        f"\trwnd size: {header.rwnd_size}\n\n"
    )