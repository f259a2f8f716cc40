"""
Bounded buffers for de-duplicating transport deliveries
"""

import threading
from collections import deque
from typing import Deque, Optional, Set, List


class HashRecencySet:
    """
    Remembers the last N transaction hashes.

    Ordered by admission; the oldest hash is evicted once capacity is
    exceeded. Evicted hashes may be admitted again, so consumers must
    tolerate occasional re-processing.
    """

    __slots__ = ('_order', '_members', '_capacity', '_lock')

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._order: Deque[str] = deque()
        self._members: Set[str] = set()
        self._lock = threading.Lock()

    @staticmethod
    def _normalize(tx_hash: Optional[str]) -> str:
        return (tx_hash or "").strip().lower()

    def seen(self, tx_hash: Optional[str]) -> bool:
        """
        Check-and-admit in one step.

        Returns True if the hash is already present. Otherwise admits it
        and returns False. Empty hashes are never admitted.
        """
        key = self._normalize(tx_hash)
        if not key:
            return False

        with self._lock:
            if key in self._members:
                return True
            self._order.append(key)
            self._members.add(key)
            while len(self._order) > self._capacity:
                oldest = self._order.popleft()
                self._members.discard(oldest)
        return False

    def __contains__(self, tx_hash: object) -> bool:
        if not isinstance(tx_hash, str):
            return False
        key = self._normalize(tx_hash)
        with self._lock:
            return key in self._members

    def __len__(self) -> int:
        return len(self._order)

    @property
    def capacity(self) -> int:
        return self._capacity

    def snapshot(self) -> List[str]:
        """Hashes oldest first."""
        with self._lock:
            return list(self._order)

    def clear(self) -> None:
        with self._lock:
            self._order.clear()
            self._members.clear()
