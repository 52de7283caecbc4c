"""Sliding send and receive windows of a KTP socket."""

from __future__ import annotations

from dataclasses import dataclass, field

from ktpsock.buffer import MessageBuffer
from ktpsock.packet import Header, _as_message

WINDOW_SIZE = 10
MAX_SEQ_NUM = 225
NO_ACK = 0xFF  # an unset one-byte acknowledgement number


def next_seq(seq: int) -> int:
    """Return the sequence number following ``seq`` (numbers run 1..MAX_SEQ_NUM)."""
    return seq % MAX_SEQ_NUM + 1


def _seq_at(start: int, offset: int) -> int:
    return (start - 1 + offset) % MAX_SEQ_NUM + 1


def _window_upper(base: int, size: int) -> int:
    """Last sequence number of a window, with the remainder taken as in C."""
    span = base - 1 + size - 1
    if span < 0:
        return span + 1
    return span % MAX_SEQ_NUM + 1


@dataclass
class SendWindow:
    """Sender side: which sequence numbers are in flight and when they left."""

    base: int = 0
    next_seq_num: int = 1
    window_size: int = WINDOW_SIZE
    available_rwnd: int = WINDOW_SIZE
    acked: list[bool] = field(default_factory=lambda: [True] * (MAX_SEQ_NUM + 1))
    send_times: list[float] = field(default_factory=lambda: [0.0] * (MAX_SEQ_NUM + 1))

    def reset(self) -> None:
        """Return the window to the state of a freshly opened socket."""
        self.base = 0
        self.next_seq_num = 1
        self.window_size = WINDOW_SIZE
        self.available_rwnd = WINDOW_SIZE
        self.acked = [True] * (MAX_SEQ_NUM + 1)
        self.send_times = [0.0] * (MAX_SEQ_NUM + 1)

    def _in_window(self, ack_num: int) -> bool:
        base = self.next_seq_num
        upper = _window_upper(base, self.window_size)
        if base <= upper:
            return base <= ack_num <= upper
        return ack_num >= base or ack_num <= upper

    def _acknowledge_through(self, ack_num: int, send_buf: MessageBuffer) -> None:
        seq = self.next_seq_num
        while True:
            self.send_times[seq] = 0.0
            self.acked[seq] = True
            if not send_buf.is_empty():
                send_buf.dequeue()
            if seq == ack_num:
                break
            seq = next_seq(seq)
        self.next_seq_num = next_seq(ack_num)

    def handle_ack(self, ack_num: int, rwnd_size: int, send_buf: MessageBuffer) -> bool:
        """Apply a cumulative ACK; return True if it acknowledged anything."""
        if not 1 <= ack_num <= MAX_SEQ_NUM:
            return False
        if (
            ack_num != self.next_seq_num
            and not self._in_window(ack_num)
            and self.acked[ack_num]
        ):
            return False
        self._acknowledge_through(ack_num, send_buf)
        self.available_rwnd = rwnd_size
        self.window_size = min(len(send_buf), self.available_rwnd)
        return True

    def due_retransmissions(
        self, now: float, send_buf: MessageBuffer, timeout: float
    ) -> list[tuple[Header, bytes, float]]:
        """Return (header, message, elapsed) for in-flight packets older than ``timeout``."""
        pending = send_buf.peek(self.window_size)
        due = []
        seqs = (_seq_at(self.next_seq_num, j) for j in range(self.window_size))
        for offset, seq in enumerate(seqs):
            if self.acked[seq]:
                continue
            elapsed = now - self.send_times[seq]
            if elapsed >= timeout and offset < len(pending):
                header = Header(seq_num=seq, is_ack=False, rwnd_size=self.available_rwnd)
                due.append((header, pending[offset], elapsed))
        return due

    def new_transmissions(
        self, send_buf: MessageBuffer, now: float
    ) -> list[tuple[Header, bytes]]:
        """Mark not-yet-sent messages as in flight and return them with headers."""
        self.window_size = min(len(send_buf), self.available_rwnd)
        outgoing = []
        for offset, message in enumerate(send_buf.peek(self.window_size)):
            seq = _seq_at(self.next_seq_num, offset)
            if not self.acked[seq]:
                continue
            outgoing.append((Header(seq_num=seq, is_ack=False, rwnd_size=0xFF), message))
            self.acked[seq] = False
            self.send_times[seq] = now
        return outgoing

    def describe(self, send_buf: MessageBuffer) -> str:
        """Return a printable dump of the window and its send buffer."""
        lines = [
            "----- Sender Window State -----\n",
            f"Base: {self.base}\n",
            f"Next Sequence Number: {self.next_seq_num}\n",
            f"Window Size: {self.window_size}\n",
            "\nSent Sequence Numbers:\n",
        ]
        for i, acked in enumerate(self.acked):
            lines.append(f"{int(acked):3d} ")
            if (i + 1) % 16 == 0:
                lines.append("\n")
        lines.append("\n")
        lines.append("\nSend Times (in seconds and microseconds):\n")
        for i in range(1, WINDOW_SIZE + 1):
            stamp = self.send_times[i]
            sec = int(stamp)
            usec = int(round((stamp - sec) * 1_000_000))
            lines.append(f"Packet {i}: {sec} sec, {usec} usec\n")
        lines.append(f"\nAvailable Receiver Window: {self.available_rwnd}\n")
        lines.append(send_buf.describe())
        lines.append("--------------------------------\n")
        return "".join(lines)


@dataclass
class ReceiveWindow:
    """Receiver side: in-order delivery with a stash for early packets."""

    base: int = 1
    next_expected_seq: int = 1
    window_size: int = WINDOW_SIZE
    received: list[bool] = field(default_factory=lambda: [False] * (MAX_SEQ_NUM + 1))
    stash: list[bytes] = field(default_factory=lambda: [b""] * (MAX_SEQ_NUM + 1))
    free_space: int = WINDOW_SIZE
    last_ack_sent: int = NO_ACK

    def reset(self) -> None:
        """Return the window to the state of a freshly opened socket."""
        self.base = 1
        self.next_expected_seq = 1
        self.window_size = WINDOW_SIZE
        self.received = [False] * (MAX_SEQ_NUM + 1)
        self.stash = [b""] * (MAX_SEQ_NUM + 1)
        self.free_space = WINDOW_SIZE
        self.last_ack_sent = NO_ACK

    def accept(self, seq_num: int, message: bytes | str, recv_buf: MessageBuffer) -> int:
        """Take in a data packet and return how many more packets can be stashed."""
        lower = self.next_expected_seq
        upper = lower + self.window_size - 1
        if upper > MAX_SEQ_NUM and 1 <= seq_num <= upper % MAX_SEQ_NUM:
            seq_num += MAX_SEQ_NUM

        if not lower <= seq_num <= upper:
            return self.free_space

        if seq_num == lower:
            if recv_buf.is_full():
                return self.free_space
            recv_buf.enqueue(message)
            self.received[lower] = False
            seq = next_seq(lower)
            while (
                self.received[seq]
                and seq <= upper % MAX_SEQ_NUM
                and not recv_buf.is_full()
            ):
                recv_buf.enqueue(self.stash[seq])
                self.stash[seq] = b""
                self.received[seq] = False
                self.free_space += 1
                seq = next_seq(seq)
            self.next_expected_seq = seq
            self.last_ack_sent = MAX_SEQ_NUM if seq == 1 else seq - 1
        else:
            idx = (seq_num - 1) % MAX_SEQ_NUM + 1
            if not self.received[idx]:
                self.received[idx] = True
                self.stash[idx] = _as_message(message)
                self.free_space -= 1

        return self.free_space