"""A thread-safe FIFO of packets."""

from __future__ import annotations

import threading
from collections import deque
from typing import Optional

from raycluster.packets import Packet


class Channel:
    """Packets queued by one thread and taken by another."""

    def __init__(self) -> None:
        self._queue: deque[Packet] = deque()
        self._lock = threading.Lock()

    def push(self, packet: Packet) -> None:
        """Append a packet at the back of the queue."""
        with self._lock:
            self._queue.append(packet)

    def pop(self) -> Optional[Packet]:
        """Take the packet at the front, or return None if there is none."""
        with self._lock:
            if not self._queue:
                return None
            return self._queue.popleft()

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def empty(self) -> bool:
        """Whether no packet is waiting."""
        with self._lock:
            return not self._queue