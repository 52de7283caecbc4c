"""Demonstration senders and receivers that exchange numbered messages."""

from __future__ import annotations

import argparse
import itertools
import logging
import os
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from ktpsock.api import KTPSocket, ktp_socket
from ktpsock.daemon import DROP_PROBABILITY, TIMEOUT, KTPDaemon
from ktpsock.errors import KTPError
from ktpsock.table import SocketTable
from ktpsock.transfer import _send_retrying

LOCALHOST = "127.0.0.1"


def numbered_messages(prefix: str, count: int | None = None) -> Iterator[str]:
    """Yield messages numbered from 1; endless when ``count`` is None.

    A prefix holding ``{n}`` is used as a template, otherwise the number is appended.
    """
    numbers = itertools.count(1) if count is None else range(1, count + 1)
    for n in numbers:
        yield prefix.format(n=n) if "{n}" in prefix else f"{prefix} {n}"


def run_sender(
    sock: KTPSocket,
    address: tuple[str, int],
    messages: Iterable[str | bytes],
    pause_every: int = 1,
    pause: float = 1.0,
) -> list[str | bytes]:
    """Queue each message once, reporting failures; return those queued."""
    sent = []
    for number, message in enumerate(messages, start=1):
        try:
            sock.sendto(message, address)
        except KTPError as exc:
            print(f"Error sending message: {exc}")
        else:
            print(f"Sent: {message}")
            sent.append(message)
        if pause_every > 0 and (number + 1) % pause_every == 0 and pause > 0:
            time.sleep(pause)
    return sent


def run_receiver(sock: KTPSocket, limit: int | None = None) -> list[bytes]:
    """Receive and print messages; stop after ``limit`` attempts if given."""
    received = []
    attempts = itertools.count() if limit is None else range(limit)
    for _ in attempts:
        try:
            message = sock.recvfrom()
        except KTPError as exc:
            print(f"Error receiving message: {exc}")
            continue
        print(f"Received: {message.decode('utf-8', errors='replace')}")
        received.append(message)
    return received


@dataclass(frozen=True)
class _Preset:
    role: str
    local_port: int
    remote_port: int
    prefix: str = ""
    pause_every: int = 1
    pause: float = 1.0
    count: int | None = None


PRESETS = {
    "user1": _Preset("send", 5000, 6000, "User1 Message", pause_every=3, pause=5.0),
    "user2": _Preset("receive", 6000, 5000),
    "user3": _Preset("send", 7000, 8000, "User3 Message"),
    "user4": _Preset("receive", 8000, 7000),
    "user5": _Preset("send", 9000, 10000, "User5 Message"),
    "user6": _Preset("receive", 10000, 9000),
    "usera": _Preset("batch", 5000, 6000, "Message {n}: Extra message {n}", count=30),
    "userb": _Preset("receive", 6000, 5000),
}


def _run_batch(sock: KTPSocket, address: tuple[str, int], messages: Iterable[str]) -> None:
    print(sock.describe_send_buffer(), end="")
    for number, message in enumerate(messages, start=1):
        _send_retrying(sock, message, address, 1.0)
        print(f"Sent message {number}: {message}")
    while len(sock.entry.send_buf):
        time.sleep(0.1)


def main(argv: list[str] | None = None) -> int:
    """Run one of the demonstration endpoints until interrupted."""
    parser = argparse.ArgumentParser(
        prog="ktpsock-demo", description="Exchange numbered messages over KTP."
    )
    parser.add_argument("program", choices=sorted(PRESETS))
    parser.add_argument("--count", type=int, default=None)
    parser.add_argument("--drop-probability", type=float, default=DROP_PROBABILITY)
    parser.add_argument("--timeout", type=float, default=TIMEOUT)
    args = parser.parse_args(argv)
    preset = PRESETS[args.program]
    count = args.count if args.count is not None else preset.count

    logging.basicConfig(level=logging.WARNING, format="%(message)s")
    print(f"PID: {os.getpid()}")
    table = SocketTable()
    address = (LOCALHOST, preset.remote_port)
    try:
        with KTPDaemon(table, args.drop_probability, args.timeout):
            with ktp_socket(table) as sock:
                sock.bind(LOCALHOST, preset.local_port, LOCALHOST, preset.remote_port)
                if preset.role == "receive":
                    run_receiver(sock, count)
                elif preset.role == "batch":
                    _run_batch(sock, address, numbered_messages(preset.prefix, count))
                else:
                    run_sender(
                        sock,
                        address,
                        numbered_messages(preset.prefix, count),
                        preset.pause_every,
                        preset.pause,
                    )
    except KTPError as exc:
        print(f"{args.program}: {exc}")
        return 1
    except KeyboardInterrupt:
        return 0
    return 0