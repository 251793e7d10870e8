from __future__ import annotations
import random, re, string, time
from typing import Optional

from .models import ErrorLocation

# diagnostics sit at the start of a line; longer lines are only scanned this far
MAX_SCAN_CHARS = 512

# script.kts:2:1: error: ...   /tmp/x/main.js:3:9
_COMPILER_LOCATION = re.compile(
    r"(?<![^\s:()\"'])(?P<file>[^\s:()\"']{1,255}\.(?:kts|kt|py|js|sh)):(?P<line>\d+):(?P<column>\d+)"
)
#   File "/tmp/x/main.py", line 3, in <module>
_TRACEBACK_LOCATION = re.compile(r'File "(?P<file>[^"]+)", line (?P<line>\d+)')

_SUFFIX_LANG = {
    ".kts": "kotlin",
    ".kt": "kotlin",
    ".py": "python",
    ".js": "node",
    ".sh": "bash",
}


def new_session_id() -> str:
    suf = "".join(random.choice(string.hexdigits.lower()) for _ in range(6))
    return f"{int(time.time())}-{suf}"


def infer_lang_from_entry(entry: str, default: Optional[str] = None) -> Optional[str]:
    entry = entry.lower()
    for suffix, lang in _SUFFIX_LANG.items():
        if entry.endswith(suffix):
            return lang
    return default


def parse_error_location(line: str) -> Optional[ErrorLocation]:
    """Extract a file/line/column reference from a diagnostic or traceback line."""
    head = line[:MAX_SCAN_CHARS]
    m = _COMPILER_LOCATION.search(head)
    if m:
        return ErrorLocation(
            file=m.group("file"),
            line=int(m.group("line")),
            column=int(m.group("column")),
            text=head.strip(),
        )
    m = _TRACEBACK_LOCATION.search(head)
    if m:
        return ErrorLocation(file=m.group("file"), line=int(m.group("line")), column=None, text=head.strip())
    return None
