from __future__ import annotations


class HarnessError(Exception):
    """Base class for errors raised by the harness."""


class StartupFailure(HarnessError):
    """The interpreter process could not be launched."""


class DuplicateSession(HarnessError):
    def __init__(self, session_id: str):
        super().__init__(f"session already active: {session_id}")
        self.session_id = session_id


class SessionNotFound(HarnessError):
    def __init__(self, session_id: str):
        super().__init__(f"session not found: {session_id}")
        self.session_id = session_id


class ScriptRejected(HarnessError):
    """Script failed local validation; no process was started."""


class ProcessNotTerminated(HarnessError):
    """Exit code requested before the process finished."""
