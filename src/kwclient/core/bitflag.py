"""Thread-safe bit-set used for transfer state flags."""

from __future__ import annotations

import threading
from enum import IntFlag
from typing import Generic, TypeVar

F = TypeVar("F", bound=IntFlag)


class BitFlag(Generic[F]):
    """A set of IntFlag bits that may be shared between threads.

    Usage:
        flags = BitFlag(TransferState.ACTIVE)
        flags.set(TransferState.CLOSED)
        if flags.has(TransferState.CLOSED):
            ...
    """

    def __init__(self, initial: F) -> None:
        self._value = initial
        self._lock = threading.Lock()

    @property
    def value(self) -> F:
        """Current bits."""
        with self._lock:
            return self._value

    def has(self, mask: F) -> bool:
        """Check whether any bit of mask is set."""
        with self._lock:
            return bool(self._value & mask)

    def set(self, mask: F) -> None:
        """Set the bits in mask."""
        with self._lock:
            self._value |= mask

    def unset(self, mask: F) -> None:
        """Clear the bits in mask."""
        with self._lock:
            self._value &= ~mask

    def set_if_unset(self, mask: F) -> bool:
        """Set mask unless already set.

        Returns:
            True if this call set the bits, False if they were already set.
        """
        with self._lock:
            if self._value & mask:
                return False
            self._value |= mask
            return True

    def __repr__(self) -> str:
        return f"BitFlag({self.value!r})"
