"""
=============================================================================
LINERELAY - Line-Oriented TCP Broadcast Relay
=============================================================================

Every line a client sends is forwarded to every other connected client,
prefixed with the sender's id:

    client 0 ── "hello\\n" ──►  relay  ──► client 1: "client 0: hello\\n"
                                      ──► client 2: "client 0: hello\\n"

Clients coming and going are announced by the relay itself:

    server: client 3 just arrived
    server: client 3 just left

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    linerelay/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m linerelay PORT)
    ├── server.py            # RelayServer orchestrator
    ├── config.py            # RelayConfig dataclass
    └── core/
        ├── buffer.py        # Growable byte buffer
        ├── framer.py        # Line framing across partial reads
        ├── connection.py    # Connection slot (socket + buffers)
        ├── router.py        # Broadcast to output buffers
        ├── event_loop.py    # selector loop and connection table
        └── socket_server.py # Listening socket and signals

=============================================================================
QUICK START
=============================================================================

    $ python -m linerelay 4242
    $ nc 127.0.0.1 4242        # in two other terminals

    from linerelay import RelayServer, RelayConfig

    server = RelayServer(RelayConfig(port=4242))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import RelayServer
from .config import RelayConfig

__all__ = ["RelayServer", "RelayConfig", "__version__"]
