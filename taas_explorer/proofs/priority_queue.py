from typing import Any, List, Optional, Tuple


class PriorityQueue:
    """Highest-priority-first queue, re-sorted on every insert."""

    def __init__(self):
        self.values: List[Tuple[Any, float]] = []

    def enqueue(self, element: Any, priority: float) -> None:
        self.values.append((element, priority))
        self.values.sort(key=lambda item: item[1], reverse=True)

    def dequeue(self) -> Optional[Any]:
        """Remove and return the top element, or None when empty"""
        if not self.values:
            return None
        return self.values.pop(0)[0]

    @property
    def length(self) -> int:
        return len(self.values)

    def __len__(self) -> int:
        return len(self.values)
