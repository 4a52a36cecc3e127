"""Bounded, closable queues connecting the stream reader, process and write workers."""

import threading
from collections import deque
from typing import Deque, Generic, Iterator, Optional, Tuple, TypeVar

T = TypeVar("T")


class QueueClosed(Exception):
    """Raised by ``put`` on a closed queue and by ``get`` on a closed, drained one."""
    pass


class ClosableQueue(Generic[T]):
    """FIFO queue with backpressure and an explicit end of stream.

    Queues that will be drained together with ``drain_any`` must be built on
    the same ``threading.Condition``.
    """

    def __init__(self, maxsize: int = 0, condition: Optional[threading.Condition] = None) -> None:
        self.maxsize = maxsize
        self.condition = condition or threading.Condition()
        self._items: Deque[T] = deque()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self.condition:
            return self._closed

    def __len__(self) -> int:
        with self.condition:
            return len(self._items)

    def _full(self) -> bool:
        return self.maxsize > 0 and len(self._items) >= self.maxsize

    # callers of the two helpers below must hold ``self.condition``
    def _pop_nowait(self) -> Tuple[bool, Optional[T]]:
        if not self._items:
            return False, None
        return True, self._items.popleft()

    def _drained(self) -> bool:
        return self._closed and not self._items

    def put(self, item: T) -> None:
        """Append an item, blocking while the queue is full.

        Raises:
            QueueClosed: If the queue is (or becomes) closed
        """
        with self.condition:
            while self._full() and not self._closed:
                self.condition.wait()
            if self._closed:
                raise QueueClosed("put on closed queue")
            self._items.append(item)
            self.condition.notify_all()

    def get(self) -> T:
        """Pop the oldest item, blocking until one arrives.

        Raises:
            QueueClosed: Once the queue is closed and empty
        """
        with self.condition:
            while not self._items and not self._closed:
                self.condition.wait()
            if not self._items:
                raise QueueClosed("queue closed and drained")
            item = self._items.popleft()
            self.condition.notify_all()
            return item

    def close(self) -> None:
        """Mark end of stream; queued items stay available to ``get``."""
        with self.condition:
            self._closed = True
            self.condition.notify_all()

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except QueueClosed:
                return


def drain_any(*queues: ClosableQueue) -> Iterator[Tuple[int, object]]:
    """Yield ``(queue_index, item)`` from whichever queue has data.

    The scan starts after the queue served last, so a busy queue cannot starve
    the others. Ends when every queue is closed and drained.
    """
    if not queues:
        return
    condition = queues[0].condition
    if any(q.condition is not condition for q in queues):
        raise ValueError("queues drained together must share one condition")

    start = 0
    while True:
        with condition:
            while True:
                found = None
                for offset in range(len(queues)):
                    index = (start + offset) % len(queues)
                    popped, item = queues[index]._pop_nowait()
                    if popped:
                        found = (index, item)
                        break
                if found is not None:
                    condition.notify_all()
                    break
                if all(q._drained() for q in queues):
                    return
                condition.wait()
        start = (found[0] + 1) % len(queues)
        yield found
