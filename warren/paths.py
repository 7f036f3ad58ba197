"""Centralized path computations for Warren.

All host-side state lives under a single home directory (``~/.warren`` by
default).  The ``WARREN_HOME`` environment variable overrides the default
for testing.

Per-conversation state is split across two trees:

- ``groups/<folder>/`` — the agent's working directory and its run logs
- ``data/{ipc,sessions,extra}/<folder>/`` — mailbox, session state and
  extra-mount symlinks
"""

import os
from pathlib import Path

_DEFAULT_HOME = Path.home() / ".warren"

# Name of the presence-only file that ends a conversation.
CLOSE_SENTINEL = "_close"


def home(override: Path | None = None) -> Path:
    """Return the Warren home directory.

    Resolution order:
    1. *override* argument (used in tests)
    2. ``WARREN_HOME`` environment variable
    3. ``~/.warren``
    """
    if override is not None:
        return override
    env = os.environ.get("WARREN_HOME")
    if env:
        return Path(env)
    return _DEFAULT_HOME


# --- Global paths ---

def config_path(hc_home: Path) -> Path:
    return hc_home / "config.yaml"


def env_file_path(hc_home: Path) -> Path:
    """``.env`` file holding the secrets forwarded to agents over stdin."""
    return hc_home / ".env"


def groups_dir(hc_home: Path) -> Path:
    return hc_home / "groups"


def data_dir(hc_home: Path) -> Path:
    return hc_home / "data"


def global_dir(hc_home: Path) -> Path:
    """Directory shared read-mostly by every conversation."""
    return groups_dir(hc_home) / "global"


# --- Per-conversation paths ---

def group_dir(hc_home: Path, folder: str) -> Path:
    """Working directory for one conversation."""
    return groups_dir(hc_home) / folder


def logs_dir(hc_home: Path, folder: str) -> Path:
    """Per-run log artifacts for one conversation."""
    return group_dir(hc_home, folder) / "logs"


def ipc_dir(hc_home: Path, folder: str) -> Path:
    return data_dir(hc_home) / "ipc" / folder


def input_dir(ipc: Path) -> Path:
    """Mailbox directory inside an ipc dir (host or container side)."""
    return ipc / "input"


def close_sentinel_path(ipc: Path) -> Path:
    return input_dir(ipc) / CLOSE_SENTINEL


def sessions_dir(hc_home: Path, folder: str) -> Path:
    """Per-conversation agent session state (``HOME/.agent`` for host runs)."""
    return data_dir(hc_home) / "sessions" / folder / ".agent"


def extra_dir(hc_home: Path, folder: str) -> Path:
    """Symlink farm for validated additional mounts."""
    return data_dir(hc_home) / "extra" / folder
