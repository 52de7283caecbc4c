"""Background service that moves KTP packets between socket slots and UDP."""

from __future__ import annotations

import argparse
import logging
import os
import random
import select
import socket
import threading
import time

from ktpsock.errors import ErrorCode
from ktpsock.packet import PACKET_SIZE, Header, create_packet, extract_packet, format_header
from ktpsock.table import MAX_CONC_SOCKETS, BindStatus, CloseStatus, SocketEntry, SocketTable

log = logging.getLogger(__name__)

DROP_PROBABILITY = 0.0
TIMEOUT = 5.0
ACK_MESSAGE = b"This is an ACK mssg"
_SERVICE_INTERVAL = 0.05


def drop_message(probability: float, rng: random.Random | None = None) -> bool:
    """Return True with the given probability, to simulate a lost packet."""
    source = rng if rng is not None else random
    return source.random() < probability


def _process_alive(pid: int) -> bool:
    if pid <= 0:
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return True
    return True


def _new_udp_socket() -> socket.socket:
    return socket.socket(socket.AF_INET, socket.SOCK_DGRAM)


class KTPDaemon:
    """Receives packets, sends and retransmits data, binds and recycles sockets."""

    def __init__(
        self,
        table: SocketTable,
        drop_probability: float = DROP_PROBABILITY,
        timeout: float = TIMEOUT,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if not 0.0 <= drop_probability <= 1.0:
            raise ValueError("drop_probability must lie between 0 and 1")
        self.table = table
        self.drop_probability = drop_probability
        self.timeout = timeout
        self.rng = random.Random()
        self.dropped = 0
        self.last_error: ErrorCode = ErrorCode.NONE
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return bool(self._threads)

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Create the UDP sockets and start the worker threads."""
        if self._threads:
            raise RuntimeError("daemon is already running")
        self._stop.clear()
        with self.table.lock:
            for index in range(len(self.table)):
                if self.table.udp_sockets[index] is None:
                    self.table.udp_sockets[index] = _new_udp_socket()
            for index, entry in enumerate(self.table.entries):
                if entry.in_use and entry.udp is None:
                    entry.udp = self.table.udp_sockets[index]
        for name, target in (
            ("ktp-receive", self._receive_loop),
            ("ktp-send", self._send_loop),
            ("ktp-service", self._service_loop),
        ):
            thread = threading.Thread(target=target, name=name, daemon=True)
            self._threads.append(thread)
            thread.start()

    def stop(self) -> None:
        """Stop the worker threads and close every UDP socket."""
        self._stop.set()
        for thread in self._threads:
            thread.join()
        self._threads = []
        with self.table.lock:
            for index, udp in enumerate(self.table.udp_sockets):
                if udp is not None:
                    udp.close()
                self.table.udp_sockets[index] = None
            for entry in self.table.entries:
                entry.udp = None

    def __enter__(self) -> KTPDaemon:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _receive_loop(self) -> None:
        wait = min(1.0, self.timeout / 2)
        while not self._stop.is_set():
            try:
                self.receive_once(wait)
            except Exception:
                log.exception("receive pass failed")

    def _send_loop(self) -> None:
        while not self._stop.wait(self.timeout / 2):
            try:
                self.send_once()
            except Exception:
                log.exception("send pass failed")

    def _service_loop(self) -> None:
        while not self._stop.wait(_SERVICE_INTERVAL):
            try:
                self.service_once()
            except Exception:
                log.exception("service pass failed")

    # -- one pass of each worker ------------------------------------------

    def service_once(self) -> None:
        """Bind pending sockets, reclaim slots of dead owners, recycle closed sockets."""
        with self.table.lock:
            for index, entry in enumerate(self.table.entries):
                if entry.process_id > 0 and entry.bind_status == BindStatus.AWAIT_BIND:
                    self._bind(index, entry)
                if entry.in_use and not _process_alive(entry.process_id):
                    log.info("Owner %d of socket %d has gone; closing it", entry.process_id, index)
                    self.table.release(index)
                if entry.close_status == CloseStatus.AWAIT_CLOSE:
                    self._recycle(index, entry)

    def _bind(self, index: int, entry: SocketEntry) -> bool:
        if entry.udp is None:
            self.last_error = ErrorCode.BIND
            log.error("Error binding %d: socket %d has no UDP socket", entry.process_id, index)
            return False
        try:
            entry.udp.bind(("", entry.src_port))
        except OSError as exc:
            self.last_error = ErrorCode.BIND
            log.error(
                "Error binding %d on port %d: %s", entry.process_id, entry.src_port, exc
            )
            return False
        entry.bind_status = BindStatus.BOUND
        log.info("Process %d binded on port %d", entry.process_id, entry.src_port)
        return True

    def _recycle(self, index: int, entry: SocketEntry) -> None:
        old = self.table.udp_sockets[index]
        if old is not None:
            old.close()
        fresh = _new_udp_socket()
        self.table.udp_sockets[index] = fresh
        if entry.in_use:
            entry.udp = fresh
        entry.close_status = CloseStatus.OPEN

    def receive_once(self, wait: float = 1.0) -> int:
        """Wait up to ``wait`` seconds for packets and handle them; return how many."""
        with self.table.lock:
            targets = {
                entry.udp: index
                for index, entry in self.table.active()
                if entry.udp is not None
            }
        if not targets:
            self._stop.wait(wait)
            return 0
        try:
            ready, _, _ = select.select(list(targets), [], [], wait)
        except (OSError, ValueError):
            return 0
        if not ready:
            log.debug("select did not receive anything")
        handled = 0
        for udp in ready:
            try:
                packet, _ = udp.recvfrom(PACKET_SIZE)
            except OSError:
                continue
            if not packet:
                log.info("Socket %d: nothing received", targets[udp])
                continue
            try:
                if self.handle_packet(targets[udp], packet):
                    handled += 1
            except ValueError as exc:
                log.warning("Malformed packet on socket %d: %s", targets[udp], exc)
        return handled

    def handle_packet(self, index: int, packet: bytes) -> bool:
        """Process one received datagram; return False if it was dropped."""
        header, message = extract_packet(packet)
        if drop_message(self.drop_probability, self.rng):
            self.dropped += 1
            log.info("Packet dropped\n%s", format_header(header))
            return False
        log.debug("Message recvd: %r\n%s", message, format_header(header))
        with self.table.lock:
            entry = self.table.entry(index)
            if header.is_ack:
                if entry.swnd.handle_ack(header.ack_num, header.rwnd_size, entry.send_buf):
                    entry.rwnd.last_ack_sent = header.ack_num
                if log.isEnabledFor(logging.DEBUG):
                    log.debug("%s", entry.swnd.describe(entry.send_buf))
                return True
            free_space = entry.rwnd.accept(header.seq_num, message, entry.recv_buf)
            log.debug(
                "Data message: recv buf size %d, free space %d",
                len(entry.recv_buf),
                free_space,
            )
            ack = Header(
                seq_num=0,
                ack_num=entry.rwnd.last_ack_sent,
                is_ack=True,
                rwnd_size=free_space,
            )
            self._send(entry, create_packet(ack, ACK_MESSAGE))
        return True

    def send_once(self, now: float | None = None) -> int:
        """Retransmit timed-out packets and send new ones; return packets sent."""
        if now is None:
            now = time.time()
        sent = 0
        with self.table.lock:
            for index, entry in self.table.active():
                if entry.udp is None or entry.bind_status != BindStatus.BOUND:
                    continue
                for header, message, elapsed in entry.swnd.due_retransmissions(
                    now, entry.send_buf, self.timeout
                ):
                    if self._send(entry, create_packet(header, message)):
                        sent += 1
                        log.info(
                            "Retransmitted packet with seq %d after %.2f seconds elapsed",
                            header.seq_num,
                            elapsed,
                        )
                outgoing = entry.swnd.new_transmissions(entry.send_buf, now)
                if outgoing:
                    log.info(
                        "Attempting to send %d messages to %s:%d",
                        len(outgoing),
                        entry.dest_ip,
                        entry.dest_port,
                    )
                for header, message in outgoing:
                    if self._send(entry, create_packet(header, message)):
                        sent += 1
                        log.info("Sent seq_num: %d", header.seq_num)
        return sent

    def _send(self, entry: SocketEntry, packet: bytes) -> bool:
        if entry.udp is None or entry.dest_port < 0:
            log.warning("Cannot send: socket has no UDP socket or destination")
            return False
        try:
            entry.udp.sendto(packet, (entry.dest_ip, entry.dest_port))
        except OSError as exc:
            log.warning("Send to %s:%d failed: %s", entry.dest_ip, entry.dest_port, exc)
            return False
        return True


def main(argv: list[str] | None = None) -> int:
    """Run the KTP daemon until interrupted."""
    parser = argparse.ArgumentParser(
        prog="ktpsock-daemon", description="Run the KTP socket service."
    )
    parser.add_argument("--drop-probability", type=float, default=DROP_PROBABILITY)
    parser.add_argument("--timeout", type=float, default=TIMEOUT)
    parser.add_argument("--sockets", type=int, default=MAX_CONC_SOCKETS)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(threadName)s: %(message)s",
    )
    table = SocketTable(args.sockets)
    daemon = KTPDaemon(table, args.drop_probability, args.timeout)
    daemon.start()
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        print("\nSIGINT received. Cleaning up and terminating.")
    finally:
        daemon.stop()
    return 0