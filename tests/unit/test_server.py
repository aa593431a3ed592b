"""
Unit tests for RelayServer start-up and shutdown.
"""

import threading

from linerelay import RelayConfig, RelayServer


def make_server(**overrides) -> RelayServer:
    values = dict(host="127.0.0.1", port=0, log_level="WARNING")
    values.update(overrides)
    return RelayServer(RelayConfig(**values))


class TestShutdown:
    """Tests for RelayServer.shutdown()."""

    def test_shutdown_before_run_is_kept(self):
        """A shutdown requested before run() makes run() return promptly."""
        server = make_server()
        server.shutdown()

        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert server.loop.is_running is False

    def test_shutdown_while_running(self):
        server = make_server()
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        assert server.wait_until_listening(timeout=5.0)

        server.shutdown()
        thread.join(timeout=5.0)

        assert not thread.is_alive()

    def test_address_reports_bound_port(self):
        server = make_server()
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        assert server.wait_until_listening(timeout=5.0)

        host, port = server.address

        assert host == "127.0.0.1"
        assert port != 0
        server.shutdown()
        thread.join(timeout=5.0)
