"""Bounded recent-id set used to reject redelivered events."""

from __future__ import annotations

from collections import deque


class RecentIdSet:
    """
    FIFO-bounded set of the most recent reference ids.

    Eviction is size-based: once ``capacity`` ids are held, inserting a new id
    evicts the oldest one. Lookups are O(1).
    """

    def __init__(self, capacity: int = 10000) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._order: deque[str] = deque()
        self._members: set[str] = set()
        self.evictions = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def add(self, reference_id: str) -> bool:
        """
        Insert a reference id.

        Returns:
            True if the id was new, False if it was already present.
        """
        if reference_id in self._members:
            return False

        self._order.append(reference_id)
        self._members.add(reference_id)
        if len(self._order) > self._capacity:
            oldest = self._order.popleft()
            self._members.discard(oldest)
            self.evictions += 1
        return True

    def __contains__(self, reference_id: object) -> bool:
        return reference_id in self._members

    def __len__(self) -> int:
        return len(self._order)

    def clear(self) -> None:
        self._order.clear()
        self._members.clear()
