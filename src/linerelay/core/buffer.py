"""
=============================================================================
GROWABLE BYTE BUFFER
=============================================================================

Every connection owns two of these: one for bytes received from the client
(waiting to be framed into lines) and one for bytes queued for the client
(waiting for the socket to become writable).

=============================================================================
SIZE VS LENGTH
=============================================================================

The buffer separates how much storage it HAS from how much of it is USED:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  h e l l o \n w o r │ . . . . . . . . . . . . . . . . . . . . . .  │
    │ ◄──── length ─────► │ ◄──────────────── free ───────────────────►  │
    │ ◄────────────────────────────── size ─────────────────────────────► │
    └─────────────────────────────────────────────────────────────────────┘

    length  bytes that hold real data (always at the front)
    free    size - length, room for the next recv() or broadcast
    size    capacity of the backing bytearray

Invariant: 0 <= length <= size.

A buffer with size == 0 holds no storage at all. The event loop uses that
to tell live connection slots from empty ones.

=============================================================================
RESIZING
=============================================================================

All capacity changes go through resize():

    resize(size)        no-op, returns True
    resize(bigger)      storage grows, data kept
    resize(smaller)     storage shrinks, length truncated if needed
    resize(failure)     storage released, size = length = 0, returns False

A failure is either a real MemoryError or the optional `limit` being
exceeded. The limit is how the relay bounds the output queue of a slow
reader.

=============================================================================
"""

import logging
from typing import Optional


logger = logging.getLogger(__name__)


class Buffer:
    """
    Byte accumulator with a used region at the front and a free tail.

    Attributes:
        size: Capacity of the backing storage in bytes.
        length: Number of valid bytes currently held.
        limit: Optional hard cap on size. Growing past it counts as an
               allocation failure.
    """

    def __init__(self, limit: Optional[int] = None):
        self.size = 0
        self.length = 0
        self.limit = limit
        self._data = bytearray()

    def __len__(self) -> int:
        return self.length

    def __repr__(self) -> str:
        return f"Buffer(length={self.length}, size={self.size})"

    @property
    def free(self) -> int:
        """Bytes available at the tail."""
        return self.size - self.length

    # =========================================================================
    # CAPACITY
    # =========================================================================

    def resize(self, capacity: int) -> bool:
        """
        Change the capacity of the buffer.

        Args:
            capacity: New size in bytes.

        Returns:
            True on success. False if the storage could not be allocated,
            in which case the buffer is left empty with size 0.
        """
        if capacity == self.size:
            return True

        if self.limit is not None and capacity > self.limit:
            logger.debug(f"Resize to {capacity} exceeds limit {self.limit}")
            self.clear()
            return False

        if capacity < self.length:
            self.length = capacity

        try:
            if capacity < self.size:
                del self._data[capacity:]
            else:
                self._data.extend(bytes(capacity - self.size))
        except MemoryError:
            logger.debug(f"Allocation of {capacity} bytes failed")
            self.clear()
            return False

        self.size = capacity
        return True

    def reserve(self, extra: int) -> bool:
        """
        Make sure at least `extra` bytes are free at the tail.

        Grows geometrically so that a stream of small broadcasts does not
        reallocate on every message. The limit, when set, is never
        exceeded by the growth policy itself.
        """
        needed = self.length + extra
        if needed <= self.size:
            return True

        capacity = max(self.size * 2, needed)
        if self.limit is not None and needed <= self.limit:
            capacity = min(capacity, self.limit)
        return self.resize(capacity)

    def clear(self):
        """Release the storage and zero every field."""
        self._data = bytearray()
        self.size = 0
        self.length = 0

    # =========================================================================
    # DATA
    # =========================================================================

    def append(self, data: bytes):
        """
        Copy `data` into the free tail.

        Raises:
            BufferError: If the tail is too small. Callers reserve first.
        """
        n = len(data)
        if n > self.free:
            raise BufferError(f"Need {n} bytes, only {self.free} free")
        self._data[self.length:self.length + n] = data
        self.length += n

    def consume(self, n: int):
        """Drop the first `n` bytes, shifting the rest to the front."""
        n = min(n, self.length)
        remaining = self.length - n
        # Keep the storage size stable; only the used region moves.
        self._data[:remaining] = self._data[n:self.length]
        self.length = remaining

    def peek(self, n: Optional[int] = None) -> bytes:
        """Return a copy of the first `n` valid bytes (all by default)."""
        if n is None or n > self.length:
            n = self.length
        return bytes(self._data[:n])

    def find(self, sub: bytes, start: int = 0, end: Optional[int] = None) -> int:
        """Index of `sub` within the valid region, or -1."""
        if end is None or end > self.length:
            end = self.length
        return self._data.find(sub, start, end)
