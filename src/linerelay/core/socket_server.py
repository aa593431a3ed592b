"""
=============================================================================
LISTENING SOCKET
=============================================================================

This module creates the relay's listening socket and hands it to whoever
serves connections on it (the event loop). It owns the socket lifecycle and
the process signal handlers, nothing else.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create an IPv4 TCP socket
    2. bind()      Associate it with HOST:PORT (loopback by default)
    3. listen()    Let the OS queue incoming connections
    4. serve()     Event loop runs select()/accept() until shutdown
    5. close()     Release the descriptor

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
─────────────
Without it a restarted relay fails with "Address already in use" for as
long as the previous socket lingers in TIME_WAIT.

Non-blocking:
─────────────
select() may report the listener readable for a client that has already
given up. A blocking accept() would then hang the whole relay, so the
listener never blocks.

=============================================================================
SIGNAL HANDLING FOR GRACEFUL SHUTDOWN
=============================================================================

SIGINT (2):   Sent when user presses Ctrl+C
SIGTERM (15): Sent by systemd stop, kill command

Both trigger shutdown(), which asks the event loop to stop. Handlers can
only be installed from the main thread; a relay started from another
thread (as the tests do) is stopped by calling shutdown() directly.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import RelayConfig


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Owns the listening socket.

    Usage:
        server = SocketServer(config, on_shutdown=loop.stop)
        server.start(serve)     # Blocks until serve() returns
    """

    def __init__(self, config: RelayConfig, on_shutdown: Optional[Callable[[], None]] = None):
        self.config = config
        self.on_shutdown = on_shutdown

        self._socket: Optional[socket.socket] = None
        self._listening_event = threading.Event()
        self._original_handlers: dict = {}

    @property
    def address(self) -> Tuple[str, int]:
        """The bound address. Reports the real port when port 0 was requested."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setblocking(False)
        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def open(self) -> socket.socket:
        """
        Create, bind and listen.

        Raises:
            OSError: If the socket cannot be created or bound.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        host, port = self.address
        logger.info(f"Relay listening on {host}:{port}")
        return self._socket

    def start(self, serve: Callable[[socket.socket], None]):
        """
        Open the listener (if not already open) and serve on it.

        Blocks until `serve` returns; the socket is closed afterwards.
        """
        if self._socket is None:
            self.open()

        self._setup_signals()
        self._listening_event.set()

        try:
            serve(self._socket)
        finally:
            self._cleanup()

    def shutdown(self):
        """Initiate graceful shutdown. Safe to call more than once."""
        logger.info("Shutting down relay...")
        if self.on_shutdown is not None:
            self.on_shutdown()

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        logger.info("Listener closed")

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket accepts connections. Used by tests."""
        return self._listening_event.wait(timeout)
