from __future__ import annotations
from typing import Callable, Iterable, Iterator, List, Optional

TRUNCATION_MARKER = "output truncated: limit of {limit} lines reached"


class OutputLimiter:
    """
    Forwards at most ``max_lines`` lines. The first line past the limit is
    replaced by a single marker line and ``on_truncate`` fires once; every
    later line is dropped. ``max_lines=None`` disables the cap.
    """

    def __init__(self, max_lines: Optional[int] = None, on_truncate: Optional[Callable[[], None]] = None):
        if max_lines is not None and max_lines < 0:
            raise ValueError("max_lines must be >= 0")
        self.max_lines = max_lines
        self.on_truncate = on_truncate
        self.count = 0
        self.truncated = False

    @property
    def marker(self) -> str:
        return TRUNCATION_MARKER.format(limit=self.max_lines)

    def offer(self, line: str) -> List[str]:
        if self.truncated:
            return []
        if self.max_lines is None or self.count < self.max_lines:
            self.count += 1
            return [line]
        self.truncated = True
        if self.on_truncate is not None:
            self.on_truncate()
        return [self.marker]

    def wrap(self, lines: Iterable[str]) -> Iterator[str]:
        for line in lines:
            yield from self.offer(line)
