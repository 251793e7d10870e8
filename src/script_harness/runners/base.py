from pathlib import Path
from typing import Dict, List

UTF8_LOCALE = "C.UTF-8"


class Runner:
    """Turns a script file into the interpreter command that executes it."""

    lang = ""
    suffix = ""
    default_binary = ""

    def __init__(self, binary: str = ""):
        self.binary = binary or self.default_binary

    def command(self, entry: Path) -> List[str]:
        return [self.binary, str(entry)]

    def env(self) -> Dict[str, str]:
        return {"LANG": UTF8_LOCALE, "LC_ALL": UTF8_LOCALE}

    def prepare_source(self, source: str) -> str:
        return source

    def entry_name(self, script_id: str) -> str:
        stem = "".join(c if c.isalnum() or c in "-_" else "_" for c in script_id) or "script"
        return stem + self.suffix
