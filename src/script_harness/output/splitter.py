"""
Byte stream -> text lines.

Fragments may cut a multi-byte character or a line terminator anywhere; the
incremental decoder holds partial sequences back until they are complete.
Invalid bytes become U+FFFD instead of failing the stream.

An unterminated line is kept as a list of pieces and joined once, when its
terminator arrives. With ``max_line_chars`` set, an over-long line is cut into
pieces of that size so the held-back text never grows past the cap.
"""
from __future__ import annotations
import codecs
from typing import BinaryIO, Iterable, Iterator, List, Optional


class LineSplitter:
    def __init__(self, encoding: str = "utf-8", max_line_chars: Optional[int] = None):
        if max_line_chars is not None and max_line_chars < 1:
            raise ValueError("max_line_chars must be >= 1")
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self.max_line_chars = max_line_chars
        self._pending: List[str] = []
        self._pending_chars = 0
        self._closed = False

    @property
    def buffered(self) -> int:
        """Characters held back for the current unterminated line."""
        return self._pending_chars

    def feed(self, data: bytes) -> List[str]:
        """Return the lines completed by ``data``, terminators stripped."""
        if self._closed:
            raise ValueError("splitter is closed")
        return self._split(self._decoder.decode(data))

    def close(self) -> List[str]:
        """Flush at end of stream: a trailing unterminated line, if any."""
        if self._closed:
            return []
        self._closed = True
        lines = self._split(self._decoder.decode(b"", final=True))
        if self._pending:
            lines.extend(self._cut(self._take()))
        return lines

    def _split(self, text: str) -> List[str]:
        lines: List[str] = []
        start = 0
        while True:
            nl = text.find("\n", start)
            if nl < 0:
                break
            self._pending.append(text[start:nl])
            lines.extend(self._cut(self._take()))
            start = nl + 1
        rest = text[start:]
        if rest:
            self._pending.append(rest)
            self._pending_chars += len(rest)
            cap = self.max_line_chars
            if cap is not None and self._pending_chars > cap:
                *full, tail = self._cut(self._take())
                lines.extend(full)
                self._pending.append(tail)
                self._pending_chars = len(tail)
        return lines

    def _take(self) -> str:
        line = "".join(self._pending)
        self._pending = []
        self._pending_chars = 0
        return line

    def _cut(self, line: str) -> List[str]:
        # every piece non-empty; the last one holds the remainder
        cap = self.max_line_chars
        if cap is None or len(line) <= cap:
            return [line]
        return [line[i:i + cap] for i in range(0, len(line), cap)]


def split_lines(
    fragments: Iterable[bytes],
    encoding: str = "utf-8",
    max_line_chars: Optional[int] = None,
) -> Iterator[str]:
    splitter = LineSplitter(encoding, max_line_chars)
    for fragment in fragments:
        yield from splitter.feed(fragment)
    yield from splitter.close()


def read_fragments(pipe: BinaryIO, chunk_size: int = 4096) -> Iterator[bytes]:
    # unbuffered pipe: read() returns whatever is available, b"" at EOF
    while True:
        data = pipe.read(chunk_size)
        if not data:
            return
        yield data
