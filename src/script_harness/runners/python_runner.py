from pathlib import Path
from typing import Dict, List

from .base import Runner


class PythonRunner(Runner):
    lang = "python"
    suffix = ".py"
    default_binary = "python3"

    def command(self, entry: Path) -> List[str]:
        return [self.binary, "-u", str(entry)]

    def env(self) -> Dict[str, str]:
        return {**super().env(), "PYTHONUNBUFFERED": "1", "PYTHONIOENCODING": "utf-8"}
