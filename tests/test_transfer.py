import io
import socket
import threading
import time

import pytest

from ktpsock.api import ktp_socket
from ktpsock.daemon import KTPDaemon
from ktpsock.errors import ErrorCode, KTPError
from ktpsock.packet import MESSAGE_SIZE
from ktpsock.table import BindStatus, SocketTable
from ktpsock.transfer import EOF_MARKER, iter_chunks, receive_file, send_file

DATA = (b"0123456789abcdef" * 70)[:1100]


class RecordingSocket:
    def __init__(self, failures=0, code=ErrorCode.NO_SPACE):
        self.failures = failures
        self.code = code
        self.sent = []

    def sendto(self, message, address):
        if self.failures:
            self.failures -= 1
            raise KTPError(self.code)
        self.sent.append((bytes(message), address))
        return len(message)


def test_iter_chunks_pads_last_chunk():
    chunks = list(iter_chunks(io.BytesIO(DATA)))
    assert all(len(c) == MESSAGE_SIZE for c in chunks)
    assert b"".join(chunks).rstrip(b"\x00") == DATA
    assert chunks[-1].endswith(b"\x00")


def test_iter_chunks_empty_stream():
    assert list(iter_chunks(io.BytesIO(b""))) == []


def test_iter_chunks_rejects_bad_size():
    with pytest.raises(ValueError):
        list(iter_chunks(io.BytesIO(DATA), 0))


def test_send_file_sends_chunks_then_marker(tmp_path):
    src = tmp_path / "in.bin"
    src.write_bytes(DATA)
    sock = RecordingSocket()
    count = send_file(sock, src, ("127.0.0.1", 6000), retry_delay=0)
    assert count == len(sock.sent) - 1
    assert sock.sent[-1][0] == EOF_MARKER
    body = b"".join(m.rstrip(b"\x00") for m, _ in sock.sent[:-1])
    assert body == DATA
    assert {addr for _, addr in sock.sent} == {("127.0.0.1", 6000)}


def test_send_file_retries_when_buffer_full(tmp_path):
    src = tmp_path / "in.bin"
    src.write_bytes(DATA)
    sock = RecordingSocket(failures=2)
    count = send_file(sock, src, ("127.0.0.1", 6000), retry_delay=0)
    assert sock.failures == 0
    assert len(sock.sent) == count + 1


def test_send_file_raises_on_wrong_peer(tmp_path):
    src = tmp_path / "in.bin"
    src.write_bytes(DATA)
    table = SocketTable()
    sock = ktp_socket(table)
    sock.bind("127.0.0.1", 5000, "127.0.0.1", 6000)
    with pytest.raises(KTPError) as info:
        send_file(sock, src, ("127.0.0.1", 6001), retry_delay=0)
    assert info.value.code is ErrorCode.NOT_BOUND


def test_receive_file_writes_until_marker(tmp_path):
    table = SocketTable()
    sock = ktp_socket(table)
    for message in (b"hello", b"world", EOF_MARKER, b"after"):
        sock.entry.recv_buf.enqueue(message)
    out = tmp_path / "out.bin"
    assert receive_file(sock, out) == 2
    assert out.read_bytes() == b"helloworld"
    assert list(sock.entry.recv_buf) == [b"after"]


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


def test_file_round_trip_through_daemon(tmp_path):
    src = tmp_path / "in.bin"
    src.write_bytes(DATA)
    out = tmp_path / "out.bin"
    p1, p2 = _free_port(), _free_port()
    table = SocketTable()
    result = []
    with KTPDaemon(table, timeout=0.4):
        sender = ktp_socket(table)
        receiver = ktp_socket(table)
        sender.bind("127.0.0.1", p1, "127.0.0.1", p2)
        receiver.bind("127.0.0.1", p2, "127.0.0.1", p1)
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline and not (
            sender.entry.bind_status == BindStatus.BOUND
            and receiver.entry.bind_status == BindStatus.BOUND
        ):
            time.sleep(0.05)
        worker = threading.Thread(
            target=lambda: result.append(receive_file(receiver, out)), daemon=True
        )
        worker.start()
        count = send_file(sender, src, ("127.0.0.1", p2), retry_delay=0.05)
        worker.join(15)
        sender.close()
        receiver.close()
    assert result == [count]
    assert out.read_bytes() == DATA