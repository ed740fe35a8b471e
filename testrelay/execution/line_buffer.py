"""
Incremental line extraction from a chunked byte stream.
"""

from typing import Iterator


NEWLINE = b"\n"


class LineBuffer:
    """
    Turns an unbounded sequence of byte chunks into complete lines.

    One instance serves exactly one output channel. Partial data after the
    last newline is carried over to the next ``append`` call, so the lines
    produced do not depend on how the transport split the stream.

    Bytes left over when the stream ends are never emitted as a line; they
    remain visible through ``pending`` only. Callers that keep a full copy
    of the output still see them there.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self._buffer = bytearray()
        self._cursor = 0

    @property
    def pending(self) -> bytes:
        """Bytes received after the last newline."""
        return bytes(self._buffer[self._cursor:])

    def append(self, chunk: bytes) -> Iterator[str]:
        """
        Add a chunk and yield every line it completes.

        The chunk is buffered immediately; the returned iterator is lazy
        and only advances the cursor as lines are consumed.

        Args:
            chunk: Raw bytes as delivered by the channel

        Yields:
            Complete lines without their trailing newline
        """
        if chunk:
            self._compact()
            self._buffer.extend(chunk)
        return self._drain()

    def _drain(self) -> Iterator[str]:
        while True:
            index = self._buffer.find(NEWLINE, self._cursor)
            if index < 0:
                return
            line = bytes(self._buffer[self._cursor:index])
            self._cursor = index + 1
            yield line.decode(self.encoding, errors="replace")

    def _compact(self) -> None:
        if self._cursor:
            del self._buffer[: self._cursor]
            self._cursor = 0
