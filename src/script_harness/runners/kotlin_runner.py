from __future__ import annotations
import re
from pathlib import Path
from typing import List

from .base import Runner

_MAIN_DEF = re.compile(r"\bfun\s+main\s*\(")
_MAIN_CALL = re.compile(r"\bmain\s*\(\s*\)")
_AUTO_MAIN = "\n\n// Auto-generated: Call the main function\nmain()\n"


def ensure_main_called(source: str) -> str:
    """
    Kotlin scripts do not run ``main`` on their own. Append a call when the
    script defines ``fun main(`` and never calls ``main()`` at top level.
    """
    if not source or not source.strip():
        return source
    if not _MAIN_DEF.search(source):
        return source

    cleaned = re.sub(r"//[^\n]*", "", source)
    cleaned = re.sub(r"/\*.*?\*/", "", cleaned, flags=re.DOTALL)
    cleaned = re.sub(r'"([^"\\]|\\.)*"', '""', cleaned)
    cleaned = re.sub(r"\bfun\s+main\s*\([^)]*\)", "", cleaned)

    for m in _MAIN_CALL.finditer(cleaned):
        prefix = cleaned[: m.start()]
        if prefix.count("{") - prefix.count("}") == 0:
            return source
    return source + _AUTO_MAIN


class KotlinRunner(Runner):
    lang = "kotlin"
    suffix = ".kts"
    default_binary = "kotlinc"

    def command(self, entry: Path) -> List[str]:
        return [self.binary, "-script", str(entry)]

    def prepare_source(self, source: str) -> str:
        return ensure_main_called(source)
