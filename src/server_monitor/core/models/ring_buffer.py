"""
RingBuffer for trend history: fixed capacity, O(1) insertion, oldest entry
overwritten once full.
"""
from typing import List, Tuple


class RingBuffer:
    """
    Circular buffer of (timestamp, value) tuples.
    - O(1) insertion at the end
    - O(1) random access (0 = oldest)
    - Fixed capacity, evicts oldest when full
    """

    __slots__ = ('capacity', 'buffer', 'write_index', 'count')

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.buffer: List[Tuple[float, float]] = [(0.0, 0.0)] * capacity
        self.write_index = 0  # Next position to write
        self.count = 0  # Number of valid entries (0 to capacity)

    def append(self, timestamp: float, value: float) -> None:
        """Add a (timestamp, value) tuple to the buffer. O(1)."""
        self.buffer[self.write_index] = (timestamp, value)
        self.write_index = (self.write_index + 1) % self.capacity
        if self.count < self.capacity:
            self.count += 1

    def get(self, index: int) -> Tuple[float, float]:
        """Get item at logical index (0 = oldest, count-1 = newest)."""
        if index < 0 or index >= self.count:
            raise IndexError(f"Index {index} out of range [0, {self.count})")
        return self.buffer[(self.write_index - self.count + index) % self.capacity]

    def latest(self) -> Tuple[float, float]:
        return self.get(self.count - 1)

    def get_all(self) -> List[Tuple[float, float]]:
        """All valid entries in chronological order."""
        if self.count == 0:
            return []
        start = (self.write_index - self.count) % self.capacity
        end = start + self.count
        if end <= self.capacity:
            return self.buffer[start:end]
        # Wrapped: tail of the list, then the head up to write_index
        return self.buffer[start:] + self.buffer[:self.write_index]

    def get_since(self, cutoff: float) -> List[Tuple[float, float]]:
        """Entries with a timestamp strictly newer than `cutoff`. Does not mutate."""
        entries = self.get_all()
        # Timestamps arrive in order, so scan back from the newest
        first = len(entries)
        while first > 0 and entries[first - 1][0] > cutoff:
            first -= 1
        return entries[first:]

    def is_full(self) -> bool:
        """Check if buffer is at capacity."""
        return self.count == self.capacity

    def size(self) -> int:
        """Get number of valid entries."""
        return self.count

    def clear(self) -> None:
        """Clear all entries."""
        self.write_index = 0
        self.count = 0
