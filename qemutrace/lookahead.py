"""An iterator that can buffer items ahead of the one it yields next."""

from __future__ import annotations

from collections import deque
from typing import Generic, Iterable, Iterator, TypeVar

T = TypeVar("T")


class LookaheadIterator(Generic[T]):
    """Wrap an iterable so that upcoming items can be inspected without consuming them."""

    def __init__(self, iterable: Iterable[T]) -> None:
        self._iter = iter(iterable)
        self._buffer: deque[T] = deque()

    def peek_n(self, n: int) -> list[T]:
        """Buffer at least ``n`` items, if available, and return everything buffered."""
        while len(self._buffer) < n:
            try:
                self._buffer.append(next(self._iter))
            except StopIteration:
                break
        return list(self._buffer)

    def __iter__(self) -> Iterator[T]:
        return self

    def __next__(self) -> T:
        if self._buffer:
            return self._buffer.popleft()
        return next(self._iter)