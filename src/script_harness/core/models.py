from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


class SessionState(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"

    @property
    def is_terminal(self) -> bool:
        return self not in (SessionState.PENDING, SessionState.RUNNING)


class ResultKind(str, Enum):
    SUCCESS = "success"
    RUNTIME_FAILURE = "runtime_failure"
    COMPILE_FAILURE = "compile_failure"
    TIMEOUT = "timeout"
    OUTPUT_LIMIT_EXCEEDED = "output_limit_exceeded"


class Stream(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


class KillReason(str, Enum):
    TIMEOUT = "timeout"
    OUTPUT_LIMIT = "output_limit"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Script:
    """A script to run: inline ``source`` text or an existing file ``path``."""
    script_id: str
    source: Optional[str] = None
    path: Optional[Path] = None
    lang: Optional[str] = None  # "kotlin" | "python" | "node" | "bash"; None = infer

    def __post_init__(self):
        if (self.source is None) == (self.path is None):
            raise ValueError("script needs exactly one of source or path")
        if self.path is not None and not isinstance(self.path, Path):
            object.__setattr__(self, "path", Path(self.path))


@dataclass
class Limits:
    timeout_s: float
    line_limit: Optional[int]  # None = unlimited
    kill_grace_s: float


@dataclass(frozen=True)
class OutputChunk:
    stream: Stream
    line: str
    index: int

    def to_dict(self) -> Dict[str, Any]:
        return {"stream": self.stream.value, "line": self.line, "index": self.index}


@dataclass(frozen=True)
class OutputGap:
    """Placeholder for chunks a slow subscriber lost to buffer overflow."""
    missed: int


@dataclass(frozen=True)
class ErrorLocation:
    file: str
    line: int
    column: Optional[int]
    text: str


@dataclass(frozen=True)
class Result:
    kind: ResultKind
    total_lines: int
    elapsed_ms: int
    exit_code: Optional[int] = None
    message: Optional[str] = None
    locations: Tuple[ErrorLocation, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.kind is ResultKind.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "total_lines": self.total_lines,
            "elapsed_ms": self.elapsed_ms,
        }
        if self.exit_code is not None:
            data["exit_code"] = self.exit_code
        if self.message is not None:
            data["message"] = self.message
        if self.locations:
            data["locations"] = [
                {"file": loc.file, "line": loc.line, "column": loc.column, "text": loc.text}
                for loc in self.locations
            ]
        return data
