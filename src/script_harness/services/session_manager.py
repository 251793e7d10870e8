from __future__ import annotations
import threading
from typing import Any, Dict, List, Optional

import structlog

from .channel import Subscription
from .session import ExecutionSession
from .storage import LocalFSStorage
from ..core.errors import DuplicateSession, ScriptRejected, SessionNotFound
from ..core.models import Limits, Result, Script
from ..core.utils import infer_lang_from_entry, new_session_id
from ..executor.supervisor import ProcessSupervisor
from ..logging import setup_logging
from ..runners.registry import get_runner
from ..settings import Settings, load_settings

log = structlog.get_logger(__name__)


class SessionManager:
    """
    Public entry point: start scripts, follow their output, collect results.

    The registry (session id -> session) is the only shared mutable state and
    every mutation goes through ``self._lock``. At most one active session per
    id; a finished session stays registered until its result has been handed
    out and its last subscriber has gone.
    """

    def __init__(self, settings: Optional[Settings] = None, supervisor: Optional[ProcessSupervisor] = None):
        self.settings = settings or load_settings()
        if not structlog.is_configured():
            setup_logging(self.settings.log_level)
        self.supervisor = supervisor or ProcessSupervisor(kill_grace_s=self.settings.kill_grace_s)
        self.storage = LocalFSStorage(self.settings.workspace_dir)
        self._sessions: Dict[str, ExecutionSession] = {}
        self._lock = threading.Lock()

    # ---------- validation ----------

    def _resolve_lang(self, script: Script) -> str:
        if script.lang:
            return script.lang
        if script.path is not None:
            return infer_lang_from_entry(script.path.name, self.settings.default_lang)
        return self.settings.default_lang

    def _validate(self, script: Script) -> None:
        if script.source is not None:
            if not script.source.strip():
                raise ScriptRejected("script is empty")
            size = len(script.source.encode("utf-8"))
            if size > self.settings.max_script_bytes:
                raise ScriptRejected(
                    f"script is too large ({size} bytes, maximum is {self.settings.max_script_bytes})"
                )
        elif not script.path.is_file():
            raise ScriptRejected(f"script not found: {script.path}")

    # ---------- public API ----------

    def start(
        self,
        script: Script,
        session_id: Optional[str] = None,
        timeout_s: Optional[float] = None,
        line_limit: Optional[int] = None,
    ) -> str:
        """
        Launch ``script`` and return its session id without waiting for it.

        ``timeout_s`` and ``line_limit`` fall back to the configured defaults.
        Raises DuplicateSession when ``session_id`` names an active session and
        ScriptRejected when the script fails validation. A script whose
        interpreter cannot be launched still gets a session, finished with a
        compile_failure result.
        """
        self._validate(script)
        runner = get_runner(self._resolve_lang(script), self.settings.runtimes)
        sid = session_id or new_session_id()
        limits = Limits(
            timeout_s=timeout_s if timeout_s is not None else self.settings.default_timeout_s,
            line_limit=line_limit if line_limit is not None else self.settings.line_limit,
            kill_grace_s=self.settings.kill_grace_s,
        )

        with self._lock:
            existing = self._sessions.get(sid)
            if existing is not None and existing.is_active:
                raise DuplicateSession(sid)
            session = ExecutionSession(
                session_id=sid,
                script=script,
                runner=runner,
                limits=limits,
                supervisor=self.supervisor,
                storage=self.storage,
                stderr_tail_lines=self.settings.stderr_tail_lines,
                read_chunk_bytes=self.settings.read_chunk_bytes,
                max_line_chars=self.settings.max_line_chars,
                subscriber_buffer=self.settings.subscriber_buffer,
                backlog_lines=self.settings.backlog_lines,
                on_change=self._release_if_done,
            )
            self._sessions[sid] = session

        try:
            session.start()
        except ScriptRejected:
            with self._lock:
                if self._sessions.get(sid) is session:
                    del self._sessions[sid]
            raise
        return sid

    def get_session(self, session_id: str) -> ExecutionSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def subscribe(self, session_id: str, replay: bool = False, buffer_size: Optional[int] = None) -> Subscription:
        """Live output from now on; ``replay`` first delivers the retained backlog."""
        return self.get_session(session_id).subscribe(replay=replay, buffer_size=buffer_size)

    def result(self, session_id: str, timeout: Optional[float] = None) -> Result:
        session = self.get_session(session_id)
        res = session.wait_result(timeout)
        session.result_delivered = True
        self._release_if_done(session)
        return res

    def cancel(self, session_id: str) -> bool:
        return self.get_session(session_id).cancel()

    def status(self, session_id: str) -> Dict[str, Any]:
        return self.get_session(session_id).status()

    def active_sessions(self) -> List[str]:
        with self._lock:
            return [sid for sid, s in self._sessions.items() if s.is_active]

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Cancel every active session and wait for each to finish."""
        with self._lock:
            sessions = [s for s in self._sessions.values() if s.is_active]
        for session in sessions:
            session.cancel()
        for session in sessions:
            try:
                session.wait_result(timeout)
            except TimeoutError:
                log.warning("shutdown_timeout", session_id=session.session_id)

    # ---------- registry housekeeping ----------

    def _release_if_done(self, session: ExecutionSession) -> None:
        if not (session.state.is_terminal and session.result_delivered):
            return
        if session.channel.subscriber_count:
            return
        with self._lock:
            if self._sessions.get(session.session_id) is session:
                del self._sessions[session.session_id]
                log.debug("session_released", session_id=session.session_id)
