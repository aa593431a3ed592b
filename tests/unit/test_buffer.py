"""
Unit tests for the growable byte buffer.
"""

import pytest

from linerelay.core.buffer import Buffer


class ExplodingStorage(bytearray):
    """Storage whose growth always fails, like an exhausted allocator."""

    def extend(self, data):
        raise MemoryError


def filled(data: bytes, size: int = 16) -> Buffer:
    buf = Buffer()
    assert buf.resize(size)
    buf.append(data)
    return buf


class TestResize:
    """Tests for Buffer.resize()."""

    def test_new_buffer_is_empty(self):
        """A fresh buffer holds no storage."""
        buf = Buffer()

        assert buf.size == 0
        assert buf.length == 0
        assert buf.free == 0
        assert len(buf) == 0

    def test_grow_keeps_data(self):
        """Growing preserves the valid bytes."""
        buf = filled(b"hello", size=8)

        assert buf.resize(64)
        assert buf.size == 64
        assert buf.peek() == b"hello"
        assert buf.free == 59

    def test_same_size_is_noop(self):
        """Resizing to the current size does not reallocate."""
        buf = filled(b"hello", size=8)
        storage = buf._data

        assert buf.resize(8)
        assert buf._data is storage
        assert buf.peek() == b"hello"

    def test_shrink_below_length_truncates(self):
        """Shrinking under the valid length clamps it to the new size."""
        buf = filled(b"hello world", size=16)

        assert buf.resize(5)
        assert buf.size == 5
        assert buf.length == 5
        assert buf.peek() == b"hello"

    def test_shrink_above_length_keeps_data(self):
        """Shrinking but staying above length loses nothing."""
        buf = filled(b"abc", size=16)

        assert buf.resize(4)
        assert buf.peek() == b"abc"
        assert buf.free == 1

    def test_allocation_failure_empties_buffer(self):
        """A failed allocation releases storage and reports failure."""
        buf = Buffer()
        buf._data = ExplodingStorage()

        assert buf.resize(32) is False
        assert buf.size == 0
        assert buf.length == 0

    def test_limit_counts_as_allocation_failure(self):
        """Growing past the limit fails and leaves the buffer empty."""
        buf = Buffer(limit=10)
        buf.resize(8)
        buf.append(b"data")

        assert buf.resize(11) is False
        assert buf.size == 0
        assert buf.length == 0

    def test_usable_again_after_failure(self):
        """A buffer recovers with the next successful resize."""
        buf = Buffer(limit=10)
        assert buf.resize(100) is False

        assert buf.resize(10)
        buf.append(b"ok")
        assert buf.peek() == b"ok"


class TestReserve:
    """Tests for Buffer.reserve()."""

    def test_reserve_within_capacity(self):
        """No growth needed when the tail is already big enough."""
        buf = filled(b"abc", size=16)

        assert buf.reserve(13)
        assert buf.size == 16

    def test_reserve_grows_geometrically(self):
        """Growth at least doubles the capacity."""
        buf = filled(b"12345678", size=8)

        assert buf.reserve(1)
        assert buf.size == 16
        assert buf.peek() == b"12345678"

    def test_reserve_large_request(self):
        """A request larger than double the size gets exactly what it needs."""
        buf = filled(b"ab", size=4)

        assert buf.reserve(100)
        assert buf.size == 102

    def test_reserve_from_empty(self):
        """An unallocated buffer can be reserved into."""
        buf = Buffer()

        assert buf.reserve(20)
        assert buf.free >= 20

    def test_reserve_clamps_to_limit(self):
        """Doubling is capped at the limit when the request fits."""
        buf = Buffer(limit=20)
        buf.resize(16)
        buf.append(b"x" * 16)

        assert buf.reserve(4)
        assert buf.size == 20

    def test_reserve_past_limit_fails(self):
        """A request that cannot fit under the limit fails."""
        buf = Buffer(limit=20)
        buf.resize(16)
        buf.append(b"x" * 16)

        assert buf.reserve(5) is False
        assert buf.size == 0


class TestData:
    """Tests for append/consume/peek/find."""

    def test_append_without_room_raises(self):
        """Appending more than the free tail is an error."""
        buf = filled(b"abc", size=4)

        with pytest.raises(BufferError):
            buf.append(b"de")
        assert buf.peek() == b"abc"

    def test_consume_shifts_remaining_bytes(self):
        """Consuming drops bytes from the front only."""
        buf = filled(b"abcdef", size=8)

        buf.consume(2)

        assert buf.peek() == b"cdef"
        assert buf.size == 8
        assert buf.free == 4

    def test_consume_everything(self):
        """Consuming more than held empties the buffer."""
        buf = filled(b"abc", size=8)

        buf.consume(10)

        assert buf.length == 0
        assert buf.peek() == b""

    def test_append_after_consume(self):
        """Freed space at the tail is reused."""
        buf = filled(b"abcd", size=4)
        buf.consume(3)
        buf.append(b"xyz")

        assert buf.peek() == b"dxyz"

    def test_peek_prefix(self):
        """peek(n) returns only the first n bytes."""
        buf = filled(b"hello\nworld")

        assert buf.peek(6) == b"hello\n"
        assert buf.length == 11

    def test_find_ignores_stale_bytes(self):
        """Bytes past length are never matched, even if still in storage."""
        buf = filled(b"ab\n", size=8)
        buf.consume(3)

        assert buf.find(b"\n") == -1

    def test_find_with_bounds(self):
        """find() honours start and end offsets."""
        buf = filled(b"a\nb\nc")

        assert buf.find(b"\n") == 1
        assert buf.find(b"\n", 2) == 3
        assert buf.find(b"\n", 2, 3) == -1

    def test_clear(self):
        """clear() releases storage and zeroes every field."""
        buf = filled(b"abc")

        buf.clear()

        assert buf.size == 0
        assert buf.length == 0
        assert buf.free == 0
