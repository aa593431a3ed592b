"""
=============================================================================
RELAY CONFIGURATION
=============================================================================

Centralized configuration for the relay.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m linerelay 4242 --max-clients 8                  │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── RELAY_LOG_LEVEL=DEBUG python -m linerelay 4242            │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


MAX_CLIENTS = 64
INPUT_CAPACITY = 4096


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return int(value)


@dataclass
class RelayConfig:
    """
    Configuration for the broadcast relay.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog

    CAPACITY SETTINGS
    - max_clients, input_capacity, max_queued_bytes

    BROADCAST POLICY
    - exclude_sender

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IPv4 address to bind to. Loopback only by default: the relay has
    no authentication and is meant for a single machine.
    """

    port: int = 0
    """
    The TCP port to listen on. 0 lets the OS pick one (useful in tests).
    """

    backlog: int = 0
    """
    listen() backlog. 0 leaves queueing to the OS minimum.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CAPACITY SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_clients: int = MAX_CLIENTS
    """
    Number of connection slots. Connections beyond this are told the
    relay is full and closed.
    """

    input_capacity: int = INPUT_CAPACITY
    """
    Size of each client's input buffer. Also the longest line a client
    may send, line-feed included.
    """

    max_queued_bytes: Optional[int] = None
    """
    Cap on a client's pending output. A client whose queue would grow
    past it is disconnected. None = unbounded.
    """

    # ─────────────────────────────────────────────────────────────────────
    # BROADCAST POLICY
    # ─────────────────────────────────────────────────────────────────────

    exclude_sender: bool = True
    """
    Do not echo a client's own lines (or its own arrival notice) back
    to it.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """
    Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    DEBUG logs every accept, eviction and broadcast.
    """

    @classmethod
    def from_env(cls, **overrides) -> "RelayConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        RELAY_HOST              Bind address (default: 127.0.0.1)
        RELAY_PORT              Port (default: 0)
        RELAY_MAX_CLIENTS       Connection slots (default: 64)
        RELAY_EXCLUDE_SENDER    Skip the sender on broadcast (default: true)
        RELAY_MAX_QUEUED_BYTES  Per-client output cap (default: unbounded)
        RELAY_LOG_LEVEL         Logging level (default: INFO)

        Keyword arguments override the environment (the CLI passes the
        values it parsed this way).
        =====================================================================
        """
        values = dict(
            host=os.getenv("RELAY_HOST", "127.0.0.1"),
            port=int(os.getenv("RELAY_PORT", "0")),
            max_clients=int(os.getenv("RELAY_MAX_CLIENTS", str(MAX_CLIENTS))),
            exclude_sender=_env_bool("RELAY_EXCLUDE_SENDER", True),
            max_queued_bytes=_env_optional_int("RELAY_MAX_QUEUED_BYTES"),
            log_level=os.getenv("RELAY_LOG_LEVEL", "INFO"),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: On the first invalid value.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 0:
            raise ValueError("backlog must be >= 0")

        if self.max_clients < 1:
            raise ValueError("max_clients must be >= 1")

        if self.input_capacity < 2:
            raise ValueError("input_capacity must be >= 2")

        if self.max_queued_bytes is not None and self.max_queued_bytes < 2 * self.input_capacity:
            raise ValueError("max_queued_bytes must be >= 2 * input_capacity")
