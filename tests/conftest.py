import sys
import time
from pathlib import Path

import pytest

from script_harness.services.session_manager import SessionManager
from script_harness.settings import Settings

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        workspace_dir=tmp_path / "workspaces",
        default_lang="python",
        runtimes={"python": sys.executable, "bash": "bash", "node": "node", "kotlin": "kotlinc"},
        default_timeout_s=20.0,
        line_limit=10_000,
        kill_grace_s=0.5,
        subscriber_buffer=4096,
        backlog_lines=20_000,
    )


@pytest.fixture
def manager(settings):
    m = SessionManager(settings)
    yield m
    m.shutdown(timeout=10)


def drain(sub, timeout=30.0):
    """Read a subscription until it closes; fail if it stays open too long."""
    items = []
    deadline = time.monotonic() + timeout
    while True:
        item = sub.get(timeout=max(0.01, deadline - time.monotonic()))
        if item is None:
            assert sub.closed, "output feed did not close in time"
            return items
        items.append(item)
