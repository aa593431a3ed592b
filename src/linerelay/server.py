"""
=============================================================================
RELAY SERVER
=============================================================================

Ties the listening socket and the event loop together and configures
logging.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   RelayServer   │                          │
    │                        │  (Orchestrator) │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │                ┌────────────────┴────────────────┐                  │
    │                ▼                                 ▼                  │
    │        ┌──────────────┐                  ┌──────────────┐           │
    │        │ SocketServer │ ── listener ───► │  EventLoop   │           │
    │        │ (bind/listen)│                  │ (selectors)  │           │
    │        └──────────────┘                  └──────┬───────┘           │
    │                                                 │                    │
    │                          ┌──────────────────────┼─────────────┐     │
    │                          ▼                      ▼             ▼     │
    │                  ┌──────────────┐      ┌─────────────┐ ┌──────────┐ │
    │                  │ Connection × │      │ LineFramer  │ │ Broadcast│ │
    │                  │  max_clients │      │             │ │  Router  │ │
    │                  └──────────────┘      └─────────────┘ └──────────┘ │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import logging
import socket
from typing import Optional, Tuple

from .config import RelayConfig
from .core import SocketServer, EventLoop


logger = logging.getLogger(__name__)


class RelayServer:
    """
    Line-oriented TCP broadcast relay.

    Usage:
        server = RelayServer(RelayConfig(port=4242))
        server.run()    # Blocks until SIGINT/SIGTERM or shutdown()
    """

    def __init__(self, config: Optional[RelayConfig] = None):
        self.config = config or RelayConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config, on_shutdown=self._stop_loop)
        self._loop: Optional[EventLoop] = None
        self._shutdown_requested = False

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    @property
    def loop(self) -> Optional[EventLoop]:
        return self._loop

    def run(self):
        """
        Bind, listen and relay until shutdown.

        Raises:
            OSError: If binding fails or the event loop hits a fatal error.
        """
        self._setup_logging()

        listener = self._socket_server.open()
        self._loop = EventLoop(listener, self.config)
        if self._shutdown_requested:
            # shutdown() arrived before the loop existed
            self._loop.stop()

        policy = "excluded from" if self.config.exclude_sender else "included in"
        logger.info(
            f"Relaying for up to {self.config.max_clients} clients "
            f"(sender {policy} its own broadcasts)"
        )

        self._socket_server.start(self._serve)
        logger.info("Relay stopped")

    def _serve(self, listener: socket.socket):
        self._loop.run()

    def shutdown(self):
        """Stop the relay. Safe from another thread."""
        self._socket_server.shutdown()

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_listening(timeout)

    def _stop_loop(self):
        self._shutdown_requested = True
        if self._loop is not None:
            self._loop.stop()

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("linerelay").setLevel(level)
