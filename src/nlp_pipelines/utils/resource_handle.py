"""Reference-counted ownership of engine sessions and tokenizers."""

import threading
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class ResourceHandle(Generic[T]):
    """Shares one resource between several holders.

    The destroy callable is supplied by the owner and runs exactly once:
    when the last holder releases the handle, or on ``close()``.
    """

    def __init__(self, resource: T, destroy: Callable[[T], Any], name: str = "") -> None:
        self._resource: Optional[T] = resource
        self._destroy = destroy
        self._references = 1
        self._lock = threading.Lock()
        self.name = name

    @property
    def closed(self) -> bool:
        return self._resource is None

    @property
    def references(self) -> int:
        return self._references

    def get(self) -> T:
        if self._resource is None:
            raise RuntimeError(f"resource {self.name} has already been destroyed")
        return self._resource

    def acquire(self) -> 'ResourceHandle[T]':
        with self._lock:
            if self._resource is None:
                raise RuntimeError(f"resource {self.name} has already been destroyed")
            self._references += 1
        return self

    def release(self) -> None:
        """Drop one reference, destroying the resource when none are left."""
        with self._lock:
            if self._resource is None:
                return
            self._references -= 1
            if self._references > 0:
                return
        self.close()

    def close(self) -> None:
        """Destroy the resource now, regardless of outstanding references."""
        with self._lock:
            resource, self._resource = self._resource, None
            self._references = 0
        if resource is not None:
            self._destroy(resource)
