"""Fixed-capacity history buffers used by the streaming analyzers."""
from collections import deque
from typing import Callable, Deque, Generic, Iterator, List, Optional, TypeVar

import numpy as np

T = TypeVar('T')


class RollingBuffer(Generic[T]):
    """Insertion-ordered FIFO that never holds more than ``capacity`` items.

    Pushing onto a full buffer evicts the oldest element, so memory stays
    constant no matter how long a stream runs.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"RollingBuffer capacity must be positive, got {capacity}")
        self._items: Deque[T] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen

    def push(self, item: T) -> None:
        self._items.append(item)

    def clear(self) -> None:
        self._items.clear()

    def is_full(self) -> bool:
        return len(self._items) == self.capacity

    def latest(self, n: int) -> List[T]:
        """Return the ``n`` most recent items, oldest first."""
        if n <= 0:
            return []
        items = list(self._items)
        return items[-n:]

    def values(self, key: Optional[Callable[[T], float]] = None) -> np.ndarray:
        """Project every item through ``key`` into a float array."""
        if key is None:
            return np.array(self._items, dtype=np.float64)
        return np.array([key(item) for item in self._items], dtype=np.float64)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __repr__(self) -> str:
        return f"RollingBuffer(capacity={self.capacity}, size={len(self)})"
