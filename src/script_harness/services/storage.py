from __future__ import annotations
import shutil
import uuid
from pathlib import Path
from typing import Optional, Tuple

from ..core.errors import ScriptRejected
from ..core.models import Script
from ..runners.base import Runner


class LocalFSStorage:
    """
    Materialises inline scripts on disk:
      <workspace_dir>/<token>/
        └─ <entry>   (prepared source, UTF-8)
    Path scripts run in place; nothing is created for them.
    """

    def __init__(self, workspace_dir: Path):
        self.workspace_dir = workspace_dir if workspace_dir.is_absolute() else workspace_dir.resolve()

    def create_workspace(self) -> Path:
        p = self.workspace_dir / uuid.uuid4().hex[:12]
        p.mkdir(parents=True, exist_ok=False)
        return p

    def materialize(self, script: Script, runner: Runner) -> Tuple[Path, Path, Optional[Path]]:
        """Return (entry, workdir, workspace); workspace is None for path scripts."""
        if script.path is not None:
            entry = script.path.resolve()
            if not entry.is_file():
                raise ScriptRejected(f"script not found: {script.path}")
            return entry, entry.parent, None

        ws = self.create_workspace()
        entry = ws / runner.entry_name(script.script_id)
        entry.write_text(runner.prepare_source(script.source), encoding="utf-8")
        return entry, ws, ws

    def cleanup(self, workspace: Optional[Path]) -> None:
        if workspace is not None:
            shutil.rmtree(workspace, ignore_errors=True)
