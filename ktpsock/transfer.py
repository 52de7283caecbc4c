"""Send a file over a KTP socket, or receive one, chunk by chunk."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from ktpsock.api import KTPSocket, ktp_socket
from ktpsock.daemon import DROP_PROBABILITY, TIMEOUT, KTPDaemon
from ktpsock.errors import ErrorCode, KTPError
from ktpsock.packet import MESSAGE_SIZE
from ktpsock.table import SocketTable

log = logging.getLogger(__name__)

EOF_MARKER = b"###EOF###"
_DRAIN_POLL = 0.1


def iter_chunks(stream: BinaryIO, size: int = MESSAGE_SIZE) -> Iterator[bytes]:
    """Yield ``size``-byte chunks of a binary stream, zero-padding the last one."""
    if size <= 0:
        raise ValueError("size must be positive")
    while chunk := stream.read(size):
        yield chunk.ljust(size, b"\x00")


def _send_retrying(
    sock: KTPSocket, message: bytes | str, address: tuple[str, int], retry_delay: float
) -> int:
    """Queue a message, waiting while the send buffer is full."""
    attempt = 1
    while True:
        try:
            return sock.sendto(message, address)
        except KTPError as exc:
            if exc.code is not ErrorCode.NO_SPACE:
                raise
            log.info("Send buffer full. Attempt %d: waiting for it to clear", attempt)
            attempt += 1
            time.sleep(retry_delay)


def send_file(
    sock: KTPSocket,
    path: str | Path,
    address: tuple[str, int],
    retry_delay: float = 1.0,
) -> int:
    """Send a file followed by the end-of-file marker; return the chunk count."""
    count = 0
    with open(path, "rb") as stream:
        for count, chunk in enumerate(iter_chunks(stream), start=1):
            sent = _send_retrying(sock, chunk, address, retry_delay)
            log.info("Chunk %d: queued %d bytes", count, sent)
    _send_retrying(sock, EOF_MARKER, address, retry_delay)
    log.info("File '%s' sent in %d chunks", path, count)
    return count


def receive_file(sock: KTPSocket, path: str | Path) -> int:
    """Write received chunks to ``path`` until the end-of-file marker; return the count."""
    chunks = 0
    with open(path, "wb") as out:
        while True:
            message = sock.recvfrom()
            if message == EOF_MARKER:
                log.info("Received EOF marker. Transfer complete.")
                break
            out.write(message)
            chunks += 1
            log.info("Chunk %d: received %d bytes", chunks, len(message))
    return chunks


def _wait_drained(sock: KTPSocket) -> None:
    while len(sock.entry.send_buf):
        time.sleep(_DRAIN_POLL)


def main(argv: list[str] | None = None) -> int:
    """Transfer one file between two KTP endpoints."""
    parser = argparse.ArgumentParser(
        prog="ktpsock-transfer", description="Send or receive a file over KTP."
    )
    parser.add_argument("mode", choices=("send", "receive"))
    parser.add_argument("local_ip")
    parser.add_argument("local_port", type=int)
    parser.add_argument("remote_ip")
    parser.add_argument("remote_port", type=int)
    parser.add_argument("filename")
    parser.add_argument("--drop-probability", type=float, default=DROP_PROBABILITY)
    parser.add_argument("--timeout", type=float, default=TIMEOUT)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print(
        f"Starting {'sender' if args.mode == 'send' else 'receiver'} with local "
        f"{args.local_ip}:{args.local_port} and remote {args.remote_ip}:{args.remote_port}"
    )
    table = SocketTable()
    try:
        with KTPDaemon(table, args.drop_probability, args.timeout):
            with ktp_socket(table) as sock:
                sock.bind(args.local_ip, args.local_port, args.remote_ip, args.remote_port)
                if args.mode == "send":
                    count = send_file(
                        sock, args.filename, (args.remote_ip, args.remote_port)
                    )
                    _wait_drained(sock)
                    print(f"File '{args.filename}' sent successfully in {count} chunks.")
                else:
                    count = receive_file(sock, args.filename)
                    print(
                        f"File received and saved as '{args.filename}' in {count} chunks."
                    )
    except KTPError as exc:
        print(f"KTP error: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"{args.filename}: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0