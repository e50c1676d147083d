"""Ordered callback registry with identity-based removal.

Each registration gets its own token, so registering the same function twice
yields two independent entries and unregistering one leaves the other.
"""

from collections.abc import Callable, Iterator
from itertools import count
from typing import Generic, TypeVar

C = TypeVar("C", bound=Callable[..., object])


class CallbackRegistry(Generic[C]):
    """Insertion-ordered collection of callbacks."""

    def __init__(self) -> None:
        self._callbacks: dict[int, C] = {}
        self._tokens = count()

    def add(self, callback: C) -> Callable[[], None]:
        """Register a callback.

        Returns:
            A function that removes exactly this registration. Calling it
            more than once is harmless.
        """
        token = next(self._tokens)
        self._callbacks[token] = callback

        def remove() -> None:
            self._callbacks.pop(token, None)

        return remove

    def snapshot(self) -> list[C]:
        """Callbacks in registration order, safe to iterate while mutating."""
        return list(self._callbacks.values())

    def clear(self) -> None:
        self._callbacks.clear()

    def __len__(self) -> int:
        return len(self._callbacks)

    def __iter__(self) -> Iterator[C]:
        return iter(self.snapshot())
