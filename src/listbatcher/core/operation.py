"""
Operation queue.

Holds the serialized operation descriptors waiting to be submitted.
"""

from collections import deque
from typing import Deque, Iterable, List

# One already-serialized create/update/delete against a list item.
OperationDescriptor = str


class OperationQueue:
    """
    Ordered queue of operation descriptors.

    Descriptors are only ever removed from the front, never re-added.
    A queue belongs to a single dispatch and is not shared between them.
    """

    def __init__(self, descriptors: Iterable[OperationDescriptor] = ()):
        self._items: Deque[OperationDescriptor] = deque(descriptors)

    def pull(self, n: int) -> List[OperationDescriptor]:
        """
        Remove and return up to ``n`` descriptors from the front.

        Args:
            n: Maximum number of descriptors to take

        Returns:
            Descriptors in original order; fewer than ``n`` (possibly none)
            when the queue runs out
        """
        pulled = []
        while self._items and len(pulled) < n:
            pulled.append(self._items.popleft())
        return pulled

    def is_empty(self) -> bool:
        """Check if no descriptors remain."""
        return not self._items

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"OperationQueue(remaining={len(self._items)})"
