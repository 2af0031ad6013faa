# core/buffer_pool.py
from collections import deque
from contextlib import contextmanager
from typing import Deque, Iterator


class BufferPool:
    """
    Shared free-list of fixed-size bytearrays for stream forwarding.

    deque.append/pop are atomic, so borrow/return need no lock even when
    jobs run on different threads. An empty pool allocates; returns beyond
    `capacity` are dropped for the GC.

    A lease caps how much one read may pull from a pipe. It does not remove
    per-chunk allocation: the pipe read and the ASGI body each still copy.
    """

    def __init__(self, buffer_size: int = 512 * 1024, capacity: int = 16) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self.buffer_size = buffer_size
        self.capacity = max(0, capacity)
        self._free: Deque[bytearray] = deque()

    def borrow(self) -> bytearray:
        try:
            return self._free.pop()
        except IndexError:
            return bytearray(self.buffer_size)

    def give_back(self, buf: bytearray) -> None:
        if len(buf) != self.buffer_size:
            return
        if len(self._free) < self.capacity:
            self._free.append(buf)

    @contextmanager
    def lease(self) -> Iterator[bytearray]:
        buf = self.borrow()
        try:
            yield buf
        finally:
            self.give_back(buf)

    @property
    def available(self) -> int:
        return len(self._free)
