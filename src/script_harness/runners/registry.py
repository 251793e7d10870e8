from __future__ import annotations
from typing import Dict, Optional, Type

from .base import Runner
from .kotlin_runner import KotlinRunner
from .node_runner import BashRunner, NodeRunner
from .python_runner import PythonRunner
from ..core.errors import ScriptRejected

RUNNERS: Dict[str, Type[Runner]] = {
    r.lang: r for r in (KotlinRunner, PythonRunner, NodeRunner, BashRunner)
}


def get_runner(lang: str, runtimes: Optional[Dict[str, str]] = None) -> Runner:
    cls = RUNNERS.get(lang)
    if cls is None:
        raise ScriptRejected(f"unsupported language: {lang}")
    return cls((runtimes or {}).get(lang, ""))
