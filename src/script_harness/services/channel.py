"""
Per-session fan-out of output chunks.

Publishing never blocks. Each subscription owns a bounded buffer; when it is
full the chunk is dropped for that subscriber only and counted, and the count
is delivered later as an ``OutputGap``. Closure always reaches subscribers.
"""
from __future__ import annotations
import threading
from collections import deque
from typing import Callable, Deque, Iterator, List, Optional, Union

import structlog

from ..core.models import OutputChunk, OutputGap

log = structlog.get_logger(__name__)

Item = Union[OutputChunk, OutputGap]


class Subscription:
    def __init__(self, channel: "OutputChannel", maxsize: int):
        if maxsize < 2:
            raise ValueError("subscription buffer must hold at least 2 items")
        self._channel = channel
        self.maxsize = maxsize
        self._buffer: Deque[Item] = deque()
        self._cond = threading.Condition()
        self._missed = 0
        self._closed = False
        self._detached = False
        self.dropped = 0

    # ---- producer side (called by the channel) ----

    def offer(self, chunk: OutputChunk) -> bool:
        with self._cond:
            if self._closed:
                return False
            if self._missed and len(self._buffer) < self.maxsize:
                self._buffer.append(OutputGap(self._missed))
                self._missed = 0
            if len(self._buffer) >= self.maxsize:
                if not self._missed and not self.dropped:
                    log.warning("subscriber_overflow", maxsize=self.maxsize)
                self._missed += 1
                self.dropped += 1
                return False
            self._buffer.append(chunk)
            self._cond.notify_all()
            return True

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            if self._missed:
                self._buffer.append(OutputGap(self._missed))
                self._missed = 0
            self._closed = True
            self._cond.notify_all()

    # ---- consumer side ----

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, timeout: Optional[float] = None) -> Optional[Item]:
        """Next item, or None once the feed is closed and drained (or on timeout)."""
        with self._cond:
            self._cond.wait_for(lambda: self._buffer or self._closed, timeout=timeout)
            if self._buffer:
                return self._buffer.popleft()
        if self._closed:
            self.unsubscribe()
        return None

    def __iter__(self) -> Iterator[Item]:
        while True:
            item = self.get()
            if item is None:
                return
            yield item

    def unsubscribe(self) -> None:
        with self._cond:
            if self._detached:
                return
            self._detached = True
            self._closed = True
            self._buffer.clear()
            self._cond.notify_all()
        self._channel.detach(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()


class OutputChannel:
    def __init__(self, buffer_size: int = 1024, backlog: int = 0, on_idle: Optional[Callable[[], None]] = None):
        self.buffer_size = buffer_size
        self._history: Optional[Deque[OutputChunk]] = deque(maxlen=backlog) if backlog else None
        self._subs: List[Subscription] = []
        self._lock = threading.Lock()
        self._closed = False
        self._on_idle = on_idle

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def publish(self, chunk: OutputChunk) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("publish on closed channel")
            if self._history is not None:
                self._history.append(chunk)
            for sub in self._subs:
                sub.offer(chunk)

    def subscribe(self, replay: bool = False, buffer_size: Optional[int] = None) -> Subscription:
        sub = Subscription(self, buffer_size or self.buffer_size)
        with self._lock:
            if replay and self._history is not None:
                for chunk in self._history:
                    sub.offer(chunk)
            self._subs.append(sub)
            if self._closed:
                sub.close()
        return sub

    def detach(self, sub: Subscription) -> None:
        with self._lock:
            if sub not in self._subs:
                return
            self._subs.remove(sub)
            idle = self._closed and not self._subs
        if idle and self._on_idle is not None:
            self._on_idle()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subs = list(self._subs)
            idle = not subs
        for sub in subs:
            sub.close()
        if idle and self._on_idle is not None:
            self._on_idle()
