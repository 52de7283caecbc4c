"""Bounded FIFO of fixed-size messages."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

from ktpsock.errors import ErrorCode, KTPError
from ktpsock.packet import _as_message

BUFFER_SIZE = 10


class MessageBuffer:
    """A first-in first-out queue holding at most ``capacity`` messages."""

    def __init__(self, capacity: int = BUFFER_SIZE) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._items: deque[bytes] = deque()

    def enqueue(self, message: bytes | str) -> None:
        """Append a message; raise KTPError(NO_SPACE) if the buffer is full."""
        if self.is_full():
            raise KTPError(ErrorCode.NO_SPACE)
        self._items.append(_as_message(message))

    def dequeue(self) -> bytes:
        """Remove and return the oldest message; raise KTPError(NO_MESSAGE) if empty."""
        if self.is_empty():
            raise KTPError(ErrorCode.NO_MESSAGE)
        return self._items.popleft()

    def peek(self, k: int) -> list[bytes]:
        """Return up to ``k`` messages from the front without removing them."""
        if k <= 0:
            return []
        return list(self._items)[:k]

    def is_full(self) -> bool:
        return len(self._items) >= self.capacity

    def is_empty(self) -> bool:
        return not self._items

    def clear(self) -> None:
        self._items.clear()

    def describe(self) -> str:
        """Return a printable listing of the buffered messages."""
        if self.is_empty():
            return "Empty buffer\n"
        return "".join(
            f"Mssg {i}:\n{msg.decode('utf-8', errors='replace')}\n"
            for i, msg in enumerate(self._items)
        )

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[bytes]:
        return iter(list(self._items))