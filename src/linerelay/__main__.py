"""
=============================================================================
RELAY CLI ENTRY POINT
=============================================================================

    # Relay on port 4242 (loopback only)
    python -m linerelay 4242

    # Echo each client's lines back to it as well
    python -m linerelay 4242 --include-sender

    # Disconnect clients that fall more than 1 MB behind
    python -m linerelay 4242 --max-queued-bytes 1048576

=============================================================================
EXIT STATUS
=============================================================================

    0   Clean shutdown (SIGINT / SIGTERM)
    1   "Wrong number of arguments" - the port is missing, or extra
        positional arguments were given
    1   "Fatal error" - invalid port, bind failure, or the event loop died

The diagnostics are single fixed lines on stderr so scripts can match them.
Details go to the log.

=============================================================================
"""

import argparse
import logging
import sys
from typing import NoReturn, Optional, Sequence

from . import __version__
from .server import RelayServer
from .config import RelayConfig


logger = logging.getLogger(__name__)


WRONG_ARGUMENTS = "Wrong number of arguments\n"
FATAL_ERROR = "Fatal error\n"


class RelayArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with the relay's fixed diagnostic."""

    def error(self, message: str) -> NoReturn:
        logger.debug(f"Argument error: {message}")
        sys.stderr.write(WRONG_ARGUMENTS)
        sys.exit(1)


def build_parser() -> RelayArgumentParser:
    parser = RelayArgumentParser(
        prog="linerelay",
        description="Line-oriented TCP broadcast relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m linerelay 4242                      # Relay on 127.0.0.1:4242
  python -m linerelay 4242 --include-sender     # Echo lines to their sender
  python -m linerelay 4242 --max-clients 8      # Fewer slots
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # REQUIRED
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "port",
        help="TCP port to listen on"
    )

    # ─────────────────────────────────────────────────────────────────────
    # OPTIONAL (defaults come from RELAY_* environment variables)
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="IPv4 address to bind to (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--max-clients", "-m",
        type=int,
        default=None,
        help="Number of connection slots (default: 64)"
    )

    parser.add_argument(
        "--max-queued-bytes",
        type=int,
        default=None,
        help="Disconnect clients whose pending output exceeds this (default: unbounded)"
    )

    parser.add_argument(
        "--include-sender",
        action="store_true",
        help="Deliver each line back to its sender too"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"linerelay {__version__}"
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Parse arguments, run the relay, and return the exit status.
    """
    args = build_parser().parse_args(argv)

    try:
        config = RelayConfig.from_env(
            port=int(args.port),
            host=args.host,
            max_clients=args.max_clients,
            max_queued_bytes=args.max_queued_bytes,
            exclude_sender=False if args.include_sender else None,
            log_level=args.log_level,
        )
        server = RelayServer(config)
        server.run()
    except (OSError, ValueError) as e:
        logger.error(f"Relay failed: {e}")
        sys.stderr.write(FATAL_ERROR)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
