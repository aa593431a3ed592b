"""
=============================================================================
SELECT-BASED EVENT LOOP
=============================================================================

The event loop is the relay. It owns every connection slot, waits for the
operating system to report which sockets are ready, and drives the buffers,
the framer and the broadcast router from a single thread.

=============================================================================
ONE ITERATION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   WAIT      selector.select()                                        │
    │     │         readers = listener + wake-up socket + live clients     │
    │     │         writers = live clients with queued output              │
    │     ▼                                                                │
    │   ACCEPT    listener ready? accept ONE client, take the lowest       │
    │     │         free slot, broadcast "just arrived"                    │
    │     ▼                                                                │
    │   SERVICE   1. every ready writer: one send()                        │
    │     │       2. every ready reader: one recv(), then broadcast each   │
    │     │          complete line and remove it from the input buffer     │
    │     ▼                                                                │
    │   (back to WAIT)                                                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The waiting is done by selectors.DefaultSelector (epoll on Linux, kqueue on
BSD and macOS), so descriptor numbers are not capped at FD_SETSIZE the way
they are with plain select(). Each client socket stays registered while its
slot is live. Before every wait the registrations are synced with the
table: freed slots are dropped, and WRITE interest follows queued output.

Writes run before reads. A client's queue gets a chance to drain before
fresh input from anyone can add to it.

Suspension happens only in WAIT. Everything else is bounded: at most one
recv() and one send() per client per iteration.

=============================================================================
EVICTION
=============================================================================

A connection is torn down when:

    - the peer closes (recv() returns b"")
    - recv() or send() fails
    - its input buffer is full and still holds no line-feed
    - its output queue cannot grow (allocation failure or queue limit)

Teardown closes the socket, releases both buffers (the slot is free again)
and tells everyone else: "server: client <id> just left".

=============================================================================
SHUTDOWN
=============================================================================

The wait has no timeout and blocks until a socket is ready. To stop the loop
from a signal handler or another thread, stop() writes one byte to a
socketpair whose read end is always in the reader set:

    stop()  ──► wake_w.send(b"\\0") ──► wait returns ──► loop exits

Any wait failure other than EINTR is fatal: every connection is torn
down and the error propagates to the caller.

=============================================================================
"""

import selectors
import socket
import logging
from collections import deque
from typing import Dict, Iterator, Optional, Set, Tuple

from ..config import RelayConfig
from .connection import Connection, WriteStatus
from .router import (
    ARRIVAL,
    DEPARTURE,
    BroadcastError,
    BroadcastRouter,
    Origin,
)


logger = logging.getLogger(__name__)


REJECT_NOTICE = b"server: too many clients\n"


class ConnectionTable:
    """
    Fixed number of connection slots, indexed by client id.

    Ids are slot indices. A new client always gets the lowest free slot,
    so ids stay small and a freed id is handed out again.
    """

    def __init__(self, capacity: int, output_limit: Optional[int] = None):
        self._slots = [Connection(i, output_limit=output_limit) for i in range(capacity)]

    def __iter__(self) -> Iterator[Connection]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __getitem__(self, id: int) -> Connection:
        return self._slots[id]

    @property
    def live_count(self) -> int:
        return sum(1 for conn in self._slots if conn.is_live)

    def free_slot(self) -> Optional[Connection]:
        for conn in self._slots:
            if not conn.is_live:
                return conn
        return None

    def close_all(self):
        for conn in self._slots:
            if conn.is_live:
                conn.close()


class EventLoop:
    """
    Single-threaded relay loop over a listening socket.

    Usage:
        loop = EventLoop(listener, config)
        loop.run()          # Blocks until stop() or a fatal error

    Args:
        listener: A bound, listening TCP socket.
        config: Relay configuration (slots, buffer sizes, policy).
    """

    def __init__(self, listener: socket.socket, config: RelayConfig):
        self.config = config
        self.listener = listener
        self.listener.setblocking(False)

        self.connections = ConnectionTable(config.max_clients, output_limit=config.max_queued_bytes)
        self.router = BroadcastRouter(exclude_sender=config.exclude_sender)

        self._wake_r, self._wake_w = socket.socketpair()
        self._wake_r.setblocking(False)
        self._wake_w.setblocking(False)

        self._selector = selectors.DefaultSelector()
        self._selector.register(self.listener, selectors.EVENT_READ)
        self._selector.register(self._wake_r, selectors.EVENT_READ)
        # slot id -> (registered socket, registered events)
        self._watched: Dict[int, Tuple[socket.socket, int]] = {}

        self._stop_requested = False
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    def run(self):
        """
        Run until stop() is called.

        Raises:
            OSError: If the wait fails for a reason other than EINTR.
                     All connections are closed before it propagates.
        """
        self._running = True
        try:
            while not self._stop_requested:
                readable, writable = self._wait()

                if self._wake_r in readable:
                    self._drain_wakeup()
                    continue

                if self.listener in readable:
                    self._accept()

                self._service(readable, writable)
        except OSError as e:
            logger.error(f"Event loop failed: {e}")
            raise
        finally:
            self._running = False
            self.close()
            logger.info("Event loop stopped")

    def stop(self):
        """Ask the loop to exit. Safe from signal handlers and other threads."""
        self._stop_requested = True
        try:
            self._wake_w.send(b"\0")
        except OSError:
            pass  # Already woken, or the loop has finished

    def close(self):
        """Close every connection and the wake-up sockets."""
        self.connections.close_all()
        self._watched.clear()
        self._selector.close()
        self._wake_r.close()
        self._wake_w.close()

    def _wait(self) -> Tuple[Set[socket.socket], Set[socket.socket]]:
        self._sync_registrations()

        try:
            events = self._selector.select()
        except InterruptedError:
            return set(), set()

        readable, writable = set(), set()
        for key, mask in events:
            if mask & selectors.EVENT_READ:
                readable.add(key.fileobj)
            if mask & selectors.EVENT_WRITE:
                writable.add(key.fileobj)
        return readable, writable

    def _sync_registrations(self):
        """Match the selector's client registrations to the connection table."""
        # Stale entries go first: a new socket may reuse a closed one's fd
        for conn in self.connections:
            watched = self._watched.get(conn.id)
            if watched is not None and (not conn.is_live or watched[0] is not conn.socket):
                del self._watched[conn.id]
                self._selector.unregister(watched[0])

        for conn in self.connections:
            if not conn.is_live:
                continue

            events = selectors.EVENT_READ
            if conn.wants_write:
                events |= selectors.EVENT_WRITE

            watched = self._watched.get(conn.id)
            if watched is None:
                self._selector.register(conn.socket, events, conn)
            elif watched[1] != events:
                self._selector.modify(conn.socket, events, conn)
            else:
                continue
            self._watched[conn.id] = (conn.socket, events)

    def _drain_wakeup(self):
        try:
            while self._wake_r.recv(64):
                pass
        except BlockingIOError:
            pass

    # =========================================================================
    # ACCEPT
    # =========================================================================

    def _accept(self):
        try:
            sock, address = self.listener.accept()
        except BlockingIOError:
            return
        except OSError as e:
            logger.debug(f"Accept failed, dropping connection: {e}")
            return

        conn = self.connections.free_slot()
        if conn is None:
            logger.warning(f"Rejecting {address[0]}:{address[1]}: all {len(self.connections)} slots in use")
            self._reject(sock)
            return

        if not conn.open(sock, address, self.config.input_capacity):
            logger.warning(f"Could not allocate buffers for {address[0]}:{address[1]}")
            sock.close()
            return

        logger.debug(f"[client {conn.id}] Connected from {address[0]}:{address[1]}")
        self.broadcast(conn.id, ARRIVAL, Origin.SERVER)

    def _reject(self, sock: socket.socket):
        try:
            sock.setblocking(False)
            sock.send(REJECT_NOTICE)
        except OSError:
            pass  # Best effort; the peer may already be gone
        finally:
            sock.close()

    # =========================================================================
    # SERVICE
    # =========================================================================

    def _service(self, readable: set, writable: set):
        for conn in self.connections:
            if conn.is_live and conn.socket in writable:
                if conn.write_attempt() is WriteStatus.FAILED:
                    self.evict(conn, "write failed")

        for conn in self.connections:
            if conn.is_live and conn.socket in readable:
                self._read(conn)

    def _read(self, conn: Connection):
        line_length = conn.read_attempt()
        if line_length is None:
            self.evict(conn)
            return

        while line_length:
            line = conn.take_line(line_length)
            self.broadcast(conn.id, line, Origin.CLIENT)
            if not conn.is_live:
                return
            line_length = conn.next_line()

        if conn.input_full:
            self.evict(conn, "line exceeds input capacity")

    # =========================================================================
    # BROADCAST AND EVICTION
    # =========================================================================

    def broadcast(self, sender_id: int, message: bytes, origin: Origin = Origin.CLIENT):
        """
        Queue a message for every recipient, evicting any that cannot take it.

        A recipient whose output queue cannot grow is disconnected, which
        produces a departure notice of its own. Notices are processed from
        a queue rather than recursively, and every failure removes one live
        connection, so this always terminates.
        """
        pending = deque([(sender_id, message, origin)])
        while pending:
            sender_id, message, origin = pending.popleft()
            while True:
                try:
                    self.router.broadcast(self.connections, sender_id, message, origin)
                    break
                except BroadcastError as e:
                    for failed_id in e.failed:
                        logger.warning(f"[client {failed_id}] Output queue full, disconnecting")
                        self.connections[failed_id].close()
                        pending.append((failed_id, DEPARTURE, Origin.SERVER))

    def evict(self, conn: Connection, reason: Optional[str] = None):
        """
        Tear down a live connection and announce its departure.

        Args:
            conn: The connection to close.
            reason: Why it is being dropped. None for an orderly close by
                    the peer.
        """
        client_id = conn.id
        if reason is None:
            logger.debug(f"[client {client_id}] Connection closed by peer")
        else:
            logger.warning(f"[client {client_id}] Disconnecting: {reason}")
        conn.close()
        self.broadcast(client_id, DEPARTURE, Origin.SERVER)
