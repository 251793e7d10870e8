from __future__ import annotations
import queue
import threading
import time
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

import structlog

from .channel import OutputChannel, Subscription
from .storage import LocalFSStorage
from ..core.errors import StartupFailure
from ..core.models import (
    ErrorLocation,
    KillReason,
    Limits,
    OutputChunk,
    Result,
    ResultKind,
    Script,
    SessionState,
    Stream,
)
from ..core.utils import parse_error_location
from ..executor.base import ExecSpec
from ..executor.supervisor import ProcessHandle, ProcessSupervisor
from ..output.limiter import OutputLimiter
from ..output.splitter import read_fragments, split_lines
from ..runners.base import Runner

log = structlog.get_logger(__name__)

MAX_LOCATIONS = 20
_EOF = None


class ExecutionSession:
    """
    One run of one script.

    Threads: the session thread waits on the process (and its deadline), two
    readers split stdout/stderr into lines, and one pump thread is the only
    writer of the output feed: it applies the line limit, assigns indices and
    publishes. The result is set only after the pump has drained both streams.
    """

    def __init__(
        self,
        session_id: str,
        script: Script,
        runner: Runner,
        limits: Limits,
        supervisor: ProcessSupervisor,
        storage: LocalFSStorage,
        stderr_tail_lines: int = 10,
        read_chunk_bytes: int = 4096,
        max_line_chars: Optional[int] = None,
        subscriber_buffer: int = 1024,
        backlog_lines: int = 0,
        on_change: Optional[Callable[["ExecutionSession"], None]] = None,
    ):
        self.session_id = session_id
        self.script = script
        self.runner = runner
        self.limits = limits
        self.supervisor = supervisor
        self.storage = storage
        self.read_chunk_bytes = read_chunk_bytes
        self.max_line_chars = max_line_chars
        self.on_change = on_change
        # on_change fires when the session finishes and when its last subscriber leaves
        self.channel = OutputChannel(subscriber_buffer, backlog_lines, on_idle=self._notify)

        self.state = SessionState.PENDING
        self.started_at: Optional[datetime] = None
        self.lines_emitted = 0
        self.result: Optional[Result] = None
        self.result_delivered = False

        self._t0 = 0.0
        self._handle: Optional[ProcessHandle] = None
        self._workspace: Optional[Path] = None
        self._limiter = OutputLimiter(limits.line_limit, on_truncate=self._on_truncate)
        self._stderr_tail: Deque[str] = deque(maxlen=stderr_tail_lines)
        self._locations: List[ErrorLocation] = []
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.log = log.bind(session_id=session_id, script_id=script.script_id)

    # ------------ lifecycle ------------

    @property
    def is_active(self) -> bool:
        return not self.state.is_terminal

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._t0) * 1000) if self._t0 else 0

    def start(self) -> None:
        """Spawn the interpreter; a launch failure finalises the session at once."""
        if self.state is not SessionState.PENDING:
            raise RuntimeError(f"session {self.session_id} already started")
        self.started_at = datetime.now(timezone.utc)
        self._t0 = time.monotonic()

        try:
            entry, workdir, self._workspace = self.storage.materialize(self.script, self.runner)
            spec = ExecSpec(
                cmd=self.runner.command(entry),
                workdir=workdir,
                env=self.runner.env(),
                timeout_s=self.limits.timeout_s,
            )
            self._handle = self.supervisor.spawn(spec)
        except (StartupFailure, OSError) as e:
            self.log.warning("session_startup_failed", error=str(e))
            self._finish(SessionState.FAILED, Result(
                kind=ResultKind.COMPILE_FAILURE,
                total_lines=0,
                elapsed_ms=self.elapsed_ms,
                message=str(e),
            ))
            return

        self.state = SessionState.RUNNING
        self.log.info("session_started", pid=self._handle.pid, cmd=self._handle.cmd,
                      timeout_s=self.limits.timeout_s, line_limit=self.limits.line_limit)
        self._thread = threading.Thread(target=self._run, name=f"session-{self.session_id}", daemon=True)
        self._thread.start()

    def cancel(self) -> bool:
        if self.state is not SessionState.RUNNING or self._handle is None:
            return False
        self.log.info("session_cancelled")
        return self._handle.kill(KillReason.CANCELLED)

    def subscribe(self, replay: bool = False, buffer_size: Optional[int] = None) -> Subscription:
        return self.channel.subscribe(replay=replay, buffer_size=buffer_size)

    def wait_result(self, timeout: Optional[float] = None) -> Result:
        if not self._done.wait(timeout):
            raise TimeoutError(f"session {self.session_id} still running")
        return self.result

    def status(self) -> Dict[str, Any]:
        return {
            "id": self.session_id,
            "script_id": self.script.script_id,
            "state": self.state.value,
            "lines_emitted": self.lines_emitted,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "pid": self._handle.pid if self._handle else None,
            "result": self.result.to_dict() if self.result else None,
        }

    # ------------ worker ------------

    def _run(self) -> None:
        handle = self._handle
        merged: "queue.Queue[Tuple[Stream, Optional[str]]]" = queue.Queue()
        readers = [
            threading.Thread(target=self._read, args=(Stream.STDOUT, handle.stdout, merged),
                             name=f"session-{self.session_id}-stdout", daemon=True),
            threading.Thread(target=self._read, args=(Stream.STDERR, handle.stderr, merged),
                             name=f"session-{self.session_id}-stderr", daemon=True),
        ]
        pump = threading.Thread(target=self._pump, args=(merged, len(readers)),
                                name=f"session-{self.session_id}-pump", daemon=True)
        try:
            for t in readers:
                t.start()
            pump.start()
            rc = handle.wait()
            for t in readers:
                t.join()
            pump.join()
            state, result = self._classify(rc)
        except Exception as e:
            self.log.exception("session_error")
            handle.kill(KillReason.CANCELLED)
            if pump.is_alive():
                pump.join(self.limits.kill_grace_s + 1.0)
            state, result = SessionState.FAILED, Result(
                kind=ResultKind.RUNTIME_FAILURE,
                total_lines=self.lines_emitted,
                elapsed_ms=self.elapsed_ms,
                message=f"harness_error:{e}",
            )
        finally:
            handle.close()
        self._finish(state, result)

    def _read(self, stream: Stream, pipe, merged: queue.Queue) -> None:
        try:
            for line in split_lines(read_fragments(pipe, self.read_chunk_bytes),
                                    max_line_chars=self.max_line_chars):
                merged.put((stream, line))
        except (OSError, ValueError) as e:
            # pipe closed under us
            self.log.debug("reader_stopped", stream=stream.value, error=str(e))
        finally:
            merged.put((stream, _EOF))

    def _pump(self, merged: queue.Queue, open_streams: int) -> None:
        while open_streams:
            stream, line = merged.get()
            if line is _EOF:
                open_streams -= 1
                continue
            if stream is Stream.STDERR:
                self._stderr_tail.append(line)
            if len(self._locations) < MAX_LOCATIONS:
                loc = parse_error_location(line)
                if loc is not None:
                    self._locations.append(loc)
            for text in self._limiter.offer(line):
                self._emit(stream, text)

    def _emit(self, stream: Stream, text: str) -> None:
        chunk = OutputChunk(stream=stream, line=text, index=self.lines_emitted)
        self.lines_emitted += 1
        self.channel.publish(chunk)

    def _on_truncate(self) -> None:
        self.log.info("output_truncated", line_limit=self.limits.line_limit)
        self._handle.kill(KillReason.OUTPUT_LIMIT)

    def _classify(self, rc: int) -> Tuple[SessionState, Result]:
        reason = self._handle.kill_reason
        common = dict(
            total_lines=self.lines_emitted,
            elapsed_ms=self.elapsed_ms,
            exit_code=rc,
            locations=tuple(self._locations),
        )
        if reason is KillReason.OUTPUT_LIMIT or (reason is None and self._limiter.truncated):
            return SessionState.LIMIT_EXCEEDED, Result(
                kind=ResultKind.OUTPUT_LIMIT_EXCEEDED,
                message=self._limiter.marker,
                **common,
            )
        if reason is KillReason.TIMEOUT:
            return SessionState.TIMED_OUT, Result(
                kind=ResultKind.TIMEOUT,
                message=f"timeout_{self.limits.timeout_s:g}s",
                **common,
            )
        if reason is KillReason.CANCELLED:
            return SessionState.TIMED_OUT, Result(kind=ResultKind.TIMEOUT, message="cancelled", **common)
        if rc == 0:
            return SessionState.SUCCEEDED, Result(kind=ResultKind.SUCCESS, **common)
        message = "\n".join(self._stderr_tail) or f"exit_{rc}"
        return SessionState.FAILED, Result(kind=ResultKind.RUNTIME_FAILURE, message=message, **common)

    def _finish(self, state: SessionState, result: Result) -> None:
        with self._lock:
            if self.result is not None:
                return
            self.result = result
            self.state = state
        self.storage.cleanup(self._workspace)
        self.log.info("session_finished", state=state.value, kind=result.kind.value,
                      exit_code=result.exit_code, total_lines=result.total_lines,
                      elapsed_ms=result.elapsed_ms)
        self._done.set()
        self.channel.close()
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
