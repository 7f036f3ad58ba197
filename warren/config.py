"""Configuration management for Warren.

Global config lives in ``~/.warren/config.yaml``.  Every key is optional;
a handful can also be overridden from the environment (env wins over the
file so a single run can be tweaked without editing config).

Secrets are read from ``~/.warren/.env`` into memory only.  They are never
copied into ``os.environ``; the supervisor hands them to the agent over
stdin and then drops them.
"""

import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml
from dotenv import dotenv_values

from warren.paths import config_path, env_file_path
from warren.timeout import DEFAULT_GRACE, DEFAULT_KILL_DELAY, idle_window

# Secrets forwarded to agents (read from .env, passed over stdin).
SECRET_KEYS = ("CLAUDE_CODE_OAUTH_TOKEN", "ANTHROPIC_API_KEY")

RUNTIMES = ("docker", "host")

# env var -> (settings field, converter)
_ENV_OVERRIDES = {
    "WARREN_RUNTIME": ("runtime", str),
    "WARREN_IMAGE": ("image", str),
    "WARREN_AGENT_TIMEOUT": ("agent_timeout", float),
    "WARREN_IDLE_TIMEOUT": ("idle_timeout", float),
    "WARREN_MAX_OUTPUT_SIZE": ("max_output_size", int),
    "WARREN_AGENT_ONE_SHOT": ("one_shot", lambda v: v.strip().lower() in ("1", "true", "yes")),
    "LOG_LEVEL": ("log_level", str),
}


class ConfigError(ValueError):
    """Raised when config.yaml or an override holds an unusable value."""


def _default_host_command() -> list[str]:
    return [sys.executable, "-m", "warren.runner"]


@dataclass
class Settings:
    """Resolved runtime settings for the supervisor.

    Durations are in seconds.  ``max_output_size`` is in UTF-8 bytes and
    caps each captured stream independently.
    """

    runtime: str = "docker"
    image: str = "warren-agent:latest"
    agent_timeout: float = 1800.0
    idle_timeout: float = 1800.0
    timeout_grace: float = DEFAULT_GRACE
    kill_delay: float = DEFAULT_KILL_DELAY
    max_output_size: int = 10 * 1024 * 1024
    one_shot: bool = False
    main_folder: str = "main"
    poll_interval: float = 0.5
    host_command: list[str] = field(default_factory=_default_host_command)
    mount_allowlist: list[str] = field(default_factory=list)
    log_level: str = "info"
    project_root: Path = field(default_factory=Path.cwd)

    @property
    def verbose(self) -> bool:
        return self.log_level.lower() in ("debug", "trace")

    def effective_timeout(self, configured: float | None = None) -> float:
        """Idle window: never shorter than ``idle_timeout + timeout_grace``."""
        return idle_window(configured or self.agent_timeout, self.idle_timeout, self.timeout_grace)


# ---------------------------------------------------------------------------
# Global config (config.yaml)
# ---------------------------------------------------------------------------

def _read(hc_home: Path) -> dict:
    """Read global config.yaml, returning empty dict if missing."""
    cp = config_path(hc_home)
    if cp.exists():
        data = yaml.safe_load(cp.read_text()) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{cp} must contain a mapping, got {type(data).__name__}")
        return data
    return {}


def _write(hc_home: Path, data: dict) -> None:
    """Write global config.yaml (creates parent dirs if needed)."""
    cp = config_path(hc_home)
    cp.parent.mkdir(parents=True, exist_ok=True)
    cp.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))


def set_value(hc_home: Path, key: str, value) -> None:
    """Persist a single config key.  The result must still load."""
    if key not in {f.name for f in fields(Settings)}:
        raise ConfigError(f"Unknown config key: {key}")
    data = _read(hc_home)
    data[key] = value
    _build(dict(data))
    _write(hc_home, data)


def _build(data: dict) -> Settings:
    """Convert and validate raw config values."""
    if "project_root" in data:
        data["project_root"] = Path(data["project_root"]).expanduser()
    if "host_command" in data and isinstance(data["host_command"], str):
        data["host_command"] = data["host_command"].split()

    try:
        settings = Settings(**data)
    except TypeError as e:
        raise ConfigError(str(e)) from e
    if settings.runtime not in RUNTIMES:
        raise ConfigError(
            f"runtime must be one of {', '.join(RUNTIMES)}, got {settings.runtime!r}"
        )
    if settings.max_output_size <= 0:
        raise ConfigError("max_output_size must be positive")
    return settings


def load_settings(hc_home: Path, env: dict[str, str] | None = None) -> Settings:
    """Build ``Settings`` from config.yaml, then apply environment overrides."""
    env = os.environ if env is None else env
    data = _read(hc_home)

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    for var, (key, convert) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            data[key] = convert(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {var}: {raw!r}") from e

    return _build(data)


# ---------------------------------------------------------------------------
# Secrets (.env)
# ---------------------------------------------------------------------------

def read_secrets(hc_home: Path, keys: tuple[str, ...] = SECRET_KEYS) -> dict[str, str]:
    """Return the allowed secrets present in ``<home>/.env``.

    Values are parsed without touching ``os.environ``.
    """
    path = env_file_path(hc_home)
    if not path.exists():
        return {}
    values = dotenv_values(path)
    return {k: v for k in keys if (v := values.get(k))}
