"""
=============================================================================
CONNECTION SLOTS
=============================================================================

A Connection is one entry in the relay's fixed-size connection table. It
pairs a client socket with two buffers and performs exactly ONE non-blocking
read or write attempt per call. The event loop decides when to call.

=============================================================================
WHY NON-BLOCKING?
=============================================================================

The relay serves every client from a single thread. A blocking recv() on
one quiet client would freeze everyone else:

    ┌─────────────────────────────────────────────────────────────────┐
    │                    Blocking (one thread)                         │
    ├─────────────────────────────────────────────────────────────────┤
    │   recv(client 0)  ──── waits forever, client 0 is idle ────►    │
    │   client 1 sends "hi\\n"  → nobody reads it                      │
    └─────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────┐
    │                    Non-blocking + select()                       │
    ├─────────────────────────────────────────────────────────────────┤
    │   select() → "client 1 is readable"                              │
    │   recv(client 1) → returns immediately with "hi\\n"              │
    │   client 0 is never touched until it has something to say       │
    └─────────────────────────────────────────────────────────────────┘

select() only says a socket is READY. The attempt itself must still not
block, which is why every client socket is put in non-blocking mode.

=============================================================================
SLOT LIFECYCLE
=============================================================================

    EMPTY ──── open() ────► LIVE ──── close() ────► EMPTY
                              │
                              ├── read_attempt()   recv into input
                              └── write_attempt()  send from output

A slot is LIVE exactly while its input buffer has storage (size != 0).
There is no separate state flag: close() releases the input buffer and the
slot becomes EMPTY in the same step.

=============================================================================
"""

import socket
import logging
from enum import Enum
from typing import Optional, Tuple

from .buffer import Buffer
from .framer import LineFramer


logger = logging.getLogger(__name__)


class WriteStatus(Enum):
    """Outcome of a single write attempt."""
    DRAINED = "drained"  # Output buffer is empty
    MORE = "more"        # Bytes remain, wait for the next write readiness
    FAILED = "failed"    # Socket error, caller tears the connection down


class Connection:
    """
    One slot of the connection table.

    Attributes:
        id: Slot index. Stable for the lifetime of the client and reused
            once the slot is freed.
        socket: Client socket, or None while the slot is empty.
        address: Peer (ip, port), or None while the slot is empty.
        input: Bytes received and not yet framed into a line.
        output: Bytes queued for the client.
    """

    def __init__(self, id: int, output_limit: Optional[int] = None):
        self.id = id
        self.socket: Optional[socket.socket] = None
        self.address: Optional[Tuple[str, int]] = None
        self.input = Buffer()
        self.output = Buffer(limit=output_limit)
        self._framer = LineFramer()

    def __repr__(self) -> str:
        return f"Connection(id={self.id}, live={self.is_live}, address={self.address})"

    @property
    def is_live(self) -> bool:
        return self.input.size != 0

    @property
    def wants_write(self) -> bool:
        return self.output.length != 0

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def open(self, sock: socket.socket, address: Tuple[str, int], input_capacity: int) -> bool:
        """
        Populate this slot with a freshly accepted socket.

        Any stale state from a previous occupant is overwritten.

        Returns:
            False if the input buffer could not be allocated. The slot then
            stays empty and the caller owns (and must close) the socket.
        """
        self.input.clear()
        self.output.clear()
        self._framer.reset()

        if not self.input.resize(input_capacity):
            return False

        sock.setblocking(False)
        self.socket = sock
        self.address = address
        return True

    def close(self):
        """Close the socket and release both buffers."""
        if self.socket is not None:
            try:
                self.socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # Peer already gone
            self.socket.close()

        self.socket = None
        self.address = None
        self.input.clear()
        self.output.clear()
        self._framer.reset()

    # =========================================================================
    # I/O ATTEMPTS
    # =========================================================================

    def write_attempt(self) -> WriteStatus:
        """
        Send as much of the output buffer as the socket takes right now.

        Sent bytes are removed from the front of the buffer.
        """
        if not self.output.length:
            return WriteStatus.DRAINED

        try:
            sent = self.socket.send(self.output.peek())
        except BlockingIOError:
            return WriteStatus.MORE
        except OSError as e:
            logger.debug(f"[client {self.id}] Send failed: {e}")
            return WriteStatus.FAILED

        if sent <= 0:
            return WriteStatus.FAILED

        self.output.consume(sent)
        return WriteStatus.MORE if self.output.length else WriteStatus.DRAINED

    def read_attempt(self) -> Optional[int]:
        """
        Receive once into the free tail of the input buffer.

        The input buffer is never grown here. With no room left the attempt
        is not made and the framed length is reported as-is, so a caller
        can detect a line that will never fit.

        Returns:
            None if the peer closed the connection or the read failed.
            Otherwise the byte length of the first complete line in the
            input buffer, or 0 if no line is complete yet.
        """
        if self.input.free:
            try:
                data = self.socket.recv(self.input.free)
            except BlockingIOError:
                return self._framer.scan(self.input)
            except OSError as e:
                logger.debug(f"[client {self.id}] Receive failed: {e}")
                return None

            if not data:
                return None

            self.input.append(data)

        return self._framer.scan(self.input)

    # =========================================================================
    # FRAMED LINES
    # =========================================================================

    def take_line(self, n: int) -> bytes:
        """Remove and return the first `n` bytes of the input buffer."""
        line = self.input.peek(n)
        self.input.consume(n)
        self._framer.consumed(n)
        return line

    def next_line(self) -> int:
        """Length of the next complete line already buffered, or 0."""
        return self._framer.scan(self.input)

    @property
    def input_full(self) -> bool:
        return self.is_live and self.input.free == 0
