from collections import deque
from typing import Deque, Generic, Iterator, List, TypeVar


T = TypeVar('T')


class BoundedLedger(Generic[T]):
    """Fixed-capacity container holding the most recent items, newest first."""

    def __init__(self, name: str, capacity: int):
        if capacity <= 0:
            raise ValueError(f"Ledger '{name}' capacity must be positive, got {capacity}")
        self.name = name
        self.capacity = int(capacity)
        self._items: Deque[T] = deque()

    def push(self, item: T) -> List[T]:
        """Insert ``item`` at the head and return whatever fell off the tail, oldest last."""
        self._items.appendleft(item)
        evicted: List[T] = []
        while len(self._items) > self.capacity:
            evicted.append(self._items.pop())
        return evicted

    def clear(self) -> None:
        self._items.clear()

    def snapshot(self) -> List[T]:
        return list(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"BoundedLedger(name={self.name!r}, size={len(self._items)}, capacity={self.capacity})"
