"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Callable, Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from linerelay import RelayServer, RelayConfig
from linerelay.core import Connection


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def socket_pair() -> Generator[tuple, None, None]:
    """A connected (relay side, peer side) pair of sockets."""
    relay_side, peer_side = socket.socketpair()
    yield relay_side, peer_side
    relay_side.close()
    peer_side.close()


@pytest.fixture
def make_connection() -> Generator[Callable[..., tuple], None, None]:
    """
    Factory for live Connections backed by a socketpair.

    Calling it returns (conn, peer); everything is closed after the test.
    """
    opened = []

    def make(id: int = 0, input_capacity: int = 64, output_limit: Optional[int] = None):
        relay_side, peer_side = socket.socketpair()
        conn = Connection(id, output_limit=output_limit)
        assert conn.open(relay_side, ("127.0.0.1", 40000 + id), input_capacity)
        peer_side.settimeout(2.0)
        opened.append((conn, relay_side, peer_side))
        return conn, peer_side

    yield make

    for conn, relay_side, peer_side in opened:
        conn.close()
        relay_side.close()
        peer_side.close()


class RelayClient:
    """Line-oriented test client."""

    def __init__(self, port: int, timeout: float = 2.0):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=timeout)
        self.timeout = timeout
        self._pending = b""

    def send(self, data: bytes):
        self.sock.sendall(data)

    def send_line(self, text: str):
        self.sock.sendall(text.encode() + b"\n")

    def read_line(self) -> str:
        """Read one line, failing the test if none arrives in time."""
        self.sock.settimeout(self.timeout)
        while b"\n" not in self._pending:
            chunk = self.sock.recv(4096)
            if not chunk:
                raise ConnectionError(f"Connection closed, pending {self._pending!r}")
            self._pending += chunk
        line, _, self._pending = self._pending.partition(b"\n")
        return line.decode() + "\n"

    def receives_nothing(self, wait: float = 0.3) -> bool:
        """True if no bytes arrive within `wait` seconds."""
        if self._pending:
            return False
        self.sock.settimeout(wait)
        try:
            chunk = self.sock.recv(4096)
        except socket.timeout:
            return True
        self._pending += chunk
        return False

    def read_eof(self) -> bytes:
        """Read until the relay closes the connection; return what arrived."""
        self.sock.settimeout(self.timeout)
        data = self._pending
        self._pending = b""
        while True:
            try:
                chunk = self.sock.recv(4096)
            except ConnectionResetError:
                return data
            if not chunk:
                return data
            data += chunk

    def close(self):
        self.sock.close()


class RunningRelay:
    """Relay server running in a background thread."""

    def __init__(self, config: RelayConfig):
        self.server = RelayServer(config)
        self.config = config
        self.clients: List[RelayClient] = []
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_listening(timeout=5.0):
            raise RuntimeError("Relay failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
        for client in self.clients:
            client.close()

    def connect(self) -> RelayClient:
        client = RelayClient(self.port)
        self.clients.append(client)
        return client

    def connect_clients(self, n: int) -> List[RelayClient]:
        """
        Connect `n` clients with ids 0..n-1 and consume their arrival notices.

        Each client is confirmed accepted (through the notice seen by the
        others) before the next one connects, so ids are deterministic.
        """
        connected: List[RelayClient] = []
        for client_id in range(n):
            client = self.connect()
            notice = f"server: client {client_id} just arrived\n"
            for other in connected:
                assert other.read_line() == notice
            if not self.config.exclude_sender:
                assert client.read_line() == notice
            connected.append(client)
        return connected

    @property
    def loop(self):
        return self.server.loop


@pytest.fixture
def relay_factory() -> Generator[Callable[..., RunningRelay], None, None]:
    """Start relays with custom configuration; all are stopped afterwards."""
    started: List[RunningRelay] = []

    def make(**overrides) -> RunningRelay:
        values = dict(host="127.0.0.1", port=0, backlog=16, log_level="WARNING")
        values.update(overrides)
        relay = RunningRelay(RelayConfig(**values))
        relay.start()
        started.append(relay)
        return relay

    yield make

    for relay in started:
        relay.stop()


@pytest.fixture
def relay(relay_factory) -> RunningRelay:
    """A relay with the default broadcast policy (sender excluded)."""
    return relay_factory()
