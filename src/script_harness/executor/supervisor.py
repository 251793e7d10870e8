# src/script_harness/executor/supervisor.py
from __future__ import annotations
import os
import signal
import subprocess
import threading
import time
from typing import BinaryIO, Optional

import structlog

from .base import ExecSpec
from ..core.errors import ProcessNotTerminated, StartupFailure
from ..core.models import KillReason

log = structlog.get_logger(__name__)


class ProcessHandle:
    """
    A running interpreter process in its own process group.

    ``kill()`` never blocks: it sends SIGTERM to the group and arms a timer
    that sends SIGKILL once the grace period runs out.
    """

    def __init__(self, proc: subprocess.Popen, spec: ExecSpec, kill_grace_s: float):
        self._proc = proc
        self.pid = proc.pid
        self.cmd = list(spec.cmd)
        self.kill_grace_s = kill_grace_s
        self.deadline: Optional[float] = (
            time.monotonic() + spec.timeout_s if spec.timeout_s is not None else None
        )
        self.kill_reason: Optional[KillReason] = None
        self._lock = threading.Lock()
        self._force_timer: Optional[threading.Timer] = None

    @property
    def stdout(self) -> BinaryIO:
        return self._proc.stdout

    @property
    def stderr(self) -> BinaryIO:
        return self._proc.stderr

    @property
    def timed_out(self) -> bool:
        return self.kill_reason is KillReason.TIMEOUT

    @property
    def running(self) -> bool:
        return self._proc.poll() is None

    @property
    def exit_code(self) -> int:
        rc = self._proc.returncode
        if rc is None:
            raise ProcessNotTerminated(f"pid {self.pid} still running")
        return rc

    def wait(self) -> int:
        """Block until the process exits; kill it if the deadline passes first."""
        try:
            remaining = None
            if self.deadline is not None:
                remaining = max(0.0, self.deadline - time.monotonic())
            try:
                return self._proc.wait(timeout=remaining)
            except subprocess.TimeoutExpired:
                self.kill(KillReason.TIMEOUT)
                return self._proc.wait()
        finally:
            if self._force_timer is not None:
                self._force_timer.cancel()
            # leftover children still hold the pipes open
            self._signal_group(signal.SIGKILL)

    def kill(self, reason: KillReason) -> bool:
        """Request termination. Returns False if the process had already exited."""
        with self._lock:
            if self._proc.poll() is not None:
                return False
            if self.kill_reason is not None:
                return True
            self.kill_reason = reason
            log.info("process_kill_requested", pid=self.pid, reason=reason.value)
            self._signal_group(signal.SIGTERM)
            self._force_timer = threading.Timer(self.kill_grace_s, self._force_kill)
            self._force_timer.daemon = True
            self._force_timer.start()
            return True

    def _force_kill(self) -> None:
        if self._proc.poll() is None:
            log.warning("process_force_killed", pid=self.pid, grace_s=self.kill_grace_s)
            self._signal_group(signal.SIGKILL)

    def _signal_group(self, sig: int) -> None:
        try:
            os.killpg(self.pid, sig)
        except (ProcessLookupError, PermissionError):
            # group already empty
            pass

    def close(self) -> None:
        for pipe in (self._proc.stdout, self._proc.stderr):
            if pipe is not None and not pipe.closed:
                pipe.close()


class ProcessSupervisor:
    def __init__(self, kill_grace_s: float = 2.0):
        self.kill_grace_s = kill_grace_s

    def spawn(self, spec: ExecSpec) -> ProcessHandle:
        if not spec.cmd:
            raise StartupFailure("empty command")
        try:
            proc = subprocess.Popen(
                spec.cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                cwd=str(spec.workdir),
                env={**os.environ, **spec.env},
                start_new_session=True,  # setsid: the group id is the pid
            )
        except OSError as e:
            raise StartupFailure(f"cannot start {spec.cmd[0]}: {e.strerror or e}") from e
        log.debug("process_spawned", pid=proc.pid, cmd=spec.cmd)
        return ProcessHandle(proc, spec, self.kill_grace_s)
