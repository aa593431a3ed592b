"""
=============================================================================
CORE RELAY COMPONENTS
=============================================================================

The low-level pieces of the relay, leaves first:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Buffer          growable bytes, separate used/free regions         │
    │  LineFramer      finds "\\n" across partial reads                   │
    │  Connection      one slot: socket + input Buffer + output Buffer    │
    │  BroadcastRouter queues prefixed copies on output Buffers           │
    │  EventLoop       selector wait, accept, service, evict              │
    │  SocketServer    listening socket and signal handlers               │
    └─────────────────────────────────────────────────────────────────────┘

Everything runs on one thread. No locks are needed: the router mutates
output buffers inside the event loop's own call stack.

=============================================================================
"""

from .buffer import Buffer
from .framer import LineFramer, find_line_end
from .connection import Connection, WriteStatus
from .router import BroadcastRouter, BroadcastError, Origin, RelayError, format_prefix
from .event_loop import EventLoop, ConnectionTable
from .socket_server import SocketServer

__all__ = [
    "Buffer",
    "LineFramer",
    "find_line_end",
    "Connection",
    "WriteStatus",
    "BroadcastRouter",
    "BroadcastError",
    "Origin",
    "RelayError",
    "format_prefix",
    "EventLoop",
    "ConnectionTable",
    "SocketServer",
]
