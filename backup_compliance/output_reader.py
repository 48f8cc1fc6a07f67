"""
Line reader for command output streams.

Every public method closes the stream it is given exactly once, whether it
returns normally, finds nothing, or raises. On normal exit the remainder of
the stream is drained first so the remote command runs to completion.
"""

import logging
from typing import Callable, Iterator, List, Optional

# Configure logging
logger = logging.getLogger(__name__)

_LINE_TERMINATORS = "\r\n"


class OutputReader:
    """Decodes a byte stream into text lines."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def _decode(self, raw) -> str:
        if isinstance(raw, bytes):
            raw = raw.decode(self.encoding, errors="replace")
        return raw.rstrip(_LINE_TERMINATORS)

    def iter_lines(self, stream) -> Iterator[str]:
        """Yield decoded lines until end of stream. Does not close the stream."""
        while True:
            raw = stream.readline()
            if not raw:
                return
            # A bare "\r" separates lines too
            for line in self._decode(raw).split("\r"):
                yield line

    def _drain(self, stream):
        while stream.readline():
            pass

    def read_all(self, stream) -> List[str]:
        try:
            return list(self.iter_lines(stream))
        finally:
            stream.close()

    def read_first_line(self, stream) -> Optional[str]:
        try:
            line = next(self.iter_lines(stream), None)
            self._drain(stream)
            return line
        finally:
            stream.close()

    def scan_for_line(self, stream, predicate: Callable[[str], bool]) -> Optional[str]:
        """Return the first line matching predicate, or None at end of stream."""
        try:
            for line in self.iter_lines(stream):
                if predicate(line):
                    self._drain(stream)
                    return line
            return None
        finally:
            stream.close()

    def drain_and_close(self, stream):
        """Consume the stream to the end so the command completes, then close it."""
        try:
            self._drain(stream)
        finally:
            stream.close()
