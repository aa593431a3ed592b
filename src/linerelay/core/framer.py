"""
=============================================================================
LINE FRAMING
=============================================================================

TCP delivers a byte stream, not messages. A client that sends

    "hello\\nworld\\n"

may show up as "hel", "lo\\nwo", "rld\\n" across three recv() calls. The
framer finds where each line ends so the event loop can slice out exactly
one message at a time.

    recv #1   "hel"         scan "hel"           -> no line
    recv #2   "lo\\nwo"      scan "lo\\nwo"        -> line ends at 6
    consume 6               remainder "wo"        (not scanned yet)
    recv #3   "rld\\n"       scan "world\\n"       -> line ends at 6

Bytes that were already scanned without finding a line-feed are never
scanned again. A line longer than the input capacity can never complete;
the event loop treats a full input buffer without a line-feed as an error.

=============================================================================
"""

from .buffer import Buffer


LINE_FEED = b"\n"


def find_line_end(data, start: int, end: int) -> int:
    """
    Find the end of the first line in data[start:end].

    Returns:
        Offset one past the first line-feed (the byte length of the line
        counted from the start of `data`), or 0 if there is none.
    """
    index = data.find(LINE_FEED, start, end)
    if index == -1:
        return 0
    return index + 1


class LineFramer:
    """
    Incremental line scanner for one input buffer.

    Remembers how far the buffer has been scanned so each byte is
    examined once, no matter how many partial reads it takes to
    complete a line.
    """

    def __init__(self):
        self._scanned = 0

    def scan(self, buffer: Buffer) -> int:
        """
        Look for a complete line in the unscanned part of `buffer`.

        Returns:
            Length of the first complete line (terminator included),
            or 0 if no line is ready yet.
        """
        line_end = find_line_end(buffer, self._scanned, buffer.length)
        self._scanned = line_end or buffer.length
        return line_end

    def consumed(self, n: int):
        """Account for `n` bytes removed from the front of the buffer."""
        self._scanned = max(0, self._scanned - n)

    def reset(self):
        self._scanned = 0
