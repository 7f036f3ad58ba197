"""Shared test fixtures for warren tests."""

import os
import sys
import textwrap
from pathlib import Path

import pytest

from warren.config import Settings
from warren.protocol import OUTPUT_END_MARKER, OUTPUT_START_MARKER

REPO_ROOT = Path(__file__).resolve().parent.parent

# Prepended to every stub agent script.  The stub reads the payload from
# stdin and gets a ``frame()`` helper that writes one result frame.
AGENT_PRELUDE = '''\
import json
import os
import signal
import sys
import time

START = "@START@"
END = "@END@"


def frame(result, session="warren:g1", status="success"):
    body = json.dumps({"status": status, "result": result, "newSessionId": session})
    sys.stdout.write(START + "\\n" + body + "\\n" + END + "\\n")
    sys.stdout.flush()


payload = json.loads(sys.stdin.read() or "{}")
'''.replace("@START@", OUTPUT_START_MARKER).replace("@END@", OUTPUT_END_MARKER)


def write_script(path: Path, body: str, prelude: str = "") -> Path:
    path.write_text(prelude + textwrap.dedent(body))
    return path


@pytest.fixture
def tmp_home(tmp_path):
    """Isolated warren home.  WARREN_HOME points at it for the test."""
    hc_home = tmp_path / "warren"
    hc_home.mkdir()
    old_env = os.environ.get("WARREN_HOME")
    os.environ["WARREN_HOME"] = str(hc_home)
    yield hc_home
    if old_env is None:
        os.environ.pop("WARREN_HOME", None)
    else:
        os.environ["WARREN_HOME"] = old_env


@pytest.fixture
def settings(tmp_path):
    """Host-mode settings with short timers."""
    return Settings(
        runtime="host",
        agent_timeout=30.0,
        idle_timeout=0.0,
        timeout_grace=0.0,
        kill_delay=1.0,
        poll_interval=0.05,
        project_root=tmp_path / "project",
    )


@pytest.fixture
def stub_agent(tmp_path, settings):
    """Factory: write a stub agent script and make it the host command."""
    counter = {"n": 0}

    def _make(body: str) -> Path:
        counter["n"] += 1
        script = write_script(tmp_path / f"agent_{counter['n']}.py", body, AGENT_PRELUDE)
        settings.host_command = [sys.executable, str(script)]
        return script

    return _make


@pytest.fixture
def stub_cli(tmp_path):
    """Factory: write a stub agent CLI; returns the argv prefix to run it.

    The stub sees the same argv the real CLI would: ``chat --no-interactive
    ... <prompt>``.
    """
    counter = {"n": 0}

    def _make(body: str) -> list[str]:
        counter["n"] += 1
        script = write_script(
            tmp_path / f"cli_{counter['n']}.py", body, "import os\nimport sys\n\n",
        )
        return [sys.executable, str(script)]

    return _make
