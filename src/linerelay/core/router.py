"""
=============================================================================
BROADCAST ROUTER
=============================================================================

Fans one message out to the output buffers of every live connection. The
router never touches sockets: it only queues bytes. The event loop drains
the queues later, when select() reports the sockets writable.

=============================================================================
WIRE FORMAT
=============================================================================

    Chat line from client 3:        client 3: hello\\n
    Arrival of client 3:            server: client 3 just arrived\\n
    Departure of client 3:          server: client 3 just left\\n

The message itself always carries its own trailing line-feed; the router
only adds the prefix.

=============================================================================
ALL OR NOTHING
=============================================================================

Growing an output buffer can fail (allocation failure or the per-client
queue limit). The broadcast is done in two phases so a failure never leaves
some recipients with the message and others without it:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  PHASE 1: RESERVE                                                   │
    │     for each recipient: output.reserve(len(prefix) + len(message))  │
    │     any failure → BroadcastError(failed ids), nothing appended      │
    │                                                                      │
    │  PHASE 2: COMMIT                                                    │
    │     for each recipient: output.append(prefix + message)            │
    │     (cannot fail, the room is already there)                        │
    └─────────────────────────────────────────────────────────────────────┘

The caller evicts the failed recipients and broadcasts again.

=============================================================================
"""

import logging
from enum import Enum
from typing import Iterable, List


logger = logging.getLogger(__name__)


class Origin(Enum):
    """Who a broadcast is attributed to."""
    CLIENT = "client"  # A line typed by a client
    SERVER = "server"  # An arrival or departure notice


class RelayError(Exception):
    """Base class for relay errors."""


class BroadcastError(RelayError):
    """
    Raised when one or more recipients could not make room for a message.

    Attributes:
        failed: Slot ids of the recipients whose reservation failed.
    """

    def __init__(self, failed: List[int]):
        self.failed = failed
        super().__init__(f"Broadcast failed for clients {failed}")


ARRIVAL = b"just arrived\n"
DEPARTURE = b"just left\n"


def format_prefix(sender_id: int, origin: Origin = Origin.CLIENT) -> bytes:
    """Build the prefix placed in front of a broadcast message."""
    if origin is Origin.SERVER:
        return f"server: client {sender_id} ".encode("ascii")
    return f"client {sender_id}: ".encode("ascii")


class BroadcastRouter:
    """
    Queues messages on the output buffers of live connections.

    Args:
        exclude_sender: Skip the sender's own slot. Applies to chat lines
                        and to notices alike.
    """

    def __init__(self, exclude_sender: bool = True):
        self.exclude_sender = exclude_sender

    def recipients(self, connections: Iterable, sender_id: int) -> list:
        return [
            conn for conn in connections
            if conn.is_live and not (self.exclude_sender and conn.id == sender_id)
        ]

    def broadcast(
        self,
        connections: Iterable,
        sender_id: int,
        message: bytes,
        origin: Origin = Origin.CLIENT,
    ) -> int:
        """
        Queue `prefix + message` for every recipient.

        Args:
            connections: The connection table (empty slots are skipped).
            sender_id: Slot id the message is attributed to.
            message: Exact bytes to deliver, line-feed included.
            origin: CLIENT for chat lines, SERVER for notices.

        Returns:
            Number of recipients the message was queued for.

        Raises:
            BroadcastError: If any recipient could not reserve room. No
                            recipient is modified in that case.
        """
        prefix = format_prefix(sender_id, origin)
        payload = prefix + message
        targets = self.recipients(connections, sender_id)

        failed = [conn.id for conn in targets if not conn.output.reserve(len(payload))]
        if failed:
            raise BroadcastError(failed)

        for conn in targets:
            conn.output.append(payload)

        logger.debug(f"Queued {len(payload)} bytes from {origin.value} {sender_id} for {len(targets)} clients")
        return len(targets)
